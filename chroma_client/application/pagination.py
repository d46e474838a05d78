from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Callable, Dict, Generic, Iterator, List, Mapping, Optional, TypeVar, Union

from ..domain.errors import ContractError
from ..infrastructure.logging import get_logger
from .deferred import Deferred

logger = get_logger("chroma_client.pagination")

T = TypeVar("T")

FetchPage = Callable[[Dict[str, Any]], "Deferred[List[Any]]"]


class Page(Sequence, Generic[T]):
    """One page of results, usable as a read-only list.

    ``next_page`` is a zero-argument continuation returning the Deferred of the
    following page; it is None on the last page. A page that came back exactly
    ``limit`` long always gets a continuation, so a result set whose size is a
    multiple of the limit ends with one empty fetch.
    """

    def __init__(self, items: List[T], params: Mapping[str, Any], next_page: Optional[Callable[[], "Deferred[Page[T]]"]] = None) -> None:
        self._items = list(items)
        self.params = dict(params)
        self.next_page = next_page

    @property
    def has_more(self) -> bool:
        return self.next_page is not None

    @property
    def offset(self) -> int:
        return int(self.params.get("offset") or 0)

    @property
    def limit(self) -> int:
        return int(self.params["limit"])

    @property
    def items(self) -> List[T]:
        return list(self._items)

    def __getitem__(self, index):
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Page):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        state = "has_more" if self.has_more else "exhausted"
        return f"<Page offset={self.offset} limit={self.limit} items={len(self)} {state}>"


def _check_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(params)
    limit = out.get("limit")
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
        raise ContractError(f"Pagination limit must be a positive integer, got {limit!r}")
    offset = out.get("offset") or 0
    if not isinstance(offset, int) or offset < 0:
        raise ContractError(f"Pagination offset must be a non-negative integer, got {offset!r}")
    out["offset"] = offset
    return out


def with_continuation(items: List[T], fetch_page: FetchPage, params: Mapping[str, Any]) -> Page[T]:
    """Wrap a fetched item list, attaching a continuation when the page is full."""
    if len(items) < params["limit"]:
        return Page(items, params)
    next_params = dict(params)
    next_params["offset"] = params["offset"] + params["limit"]

    def _next_page() -> Deferred[Page[T]]:
        logger.debug("fetching next page | offset=%d | limit=%d", next_params["offset"], next_params["limit"])
        return paginate(fetch_page, next_params)

    return Page(items, params, _next_page)


def paginate(fetch_page: FetchPage, params: Mapping[str, Any]) -> Deferred[Page[Any]]:
    """Fetch one page; the resulting Page knows how to fetch the next.

    Raises:
        ContractError: ``limit`` is missing or not positive, or ``offset`` is negative.
    """
    checked = _check_params(params)
    return fetch_page(dict(checked)).map(lambda items: with_continuation(list(items), fetch_page, checked))


def expand(page: Union[Page[T], Deferred[Page[T]]]) -> Iterator[T]:
    """Lazily walk every page, starting from ``page``.

    The next page is requested only once the previous one has been fully
    consumed. The iterator is one-shot; walking again means paginating again.
    """
    current = page.result() if isinstance(page, Deferred) else page
    while True:
        yield from current
        if current.next_page is None:
            return
        current = current.next_page().result()
