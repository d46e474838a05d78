from __future__ import annotations

import threading
from concurrent.futures import Executor, Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class _TimedOut:
    def __repr__(self) -> str:
        return "TIMED_OUT"


TIMED_OUT: Any = _TimedOut()
_UNSET = object()


class Deferred(Generic[T]):
    """Handle on a value that becomes available later.

    A Deferred is either backed by a ``concurrent.futures.Future`` or derived
    from a parent Deferred through ``map``. The underlying work runs once;
    each Deferred memoizes its own outcome (value or error) the first time it
    is resolved and replays it to every later consumer.

    ``result`` blocks; with a timeout it returns ``timeout_value`` instead of
    raising, and the in-flight work keeps running for other holders.
    """

    def __init__(
        self,
        future: Optional[Future] = None,
        *,
        parent: Optional["Deferred[Any]"] = None,
        fn: Optional[Callable[[Any], T]] = None,
    ) -> None:
        if (future is None) == (parent is None):
            raise ValueError("Deferred needs exactly one of future or parent")
        self._future = future
        self._parent = parent
        self._fn = fn
        self._lock = threading.Lock()
        self._value: Any = _UNSET
        self._error: Optional[BaseException] = None

    # --- construction ---
    @classmethod
    def submit(cls, pool: Executor, producer: Callable[..., T], *args: Any) -> "Deferred[T]":
        return cls(pool.submit(producer, *args))

    @classmethod
    def resolved(cls, value: T) -> "Deferred[T]":
        fut: Future = Future()
        fut.set_result(value)
        return cls(fut)

    @classmethod
    def failed(cls, error: BaseException) -> "Deferred[Any]":
        fut: Future = Future()
        fut.set_exception(error)
        return cls(fut)

    # --- consumption ---
    def is_resolved(self) -> bool:
        if self._future is not None:
            return self._future.done()
        return self._parent.is_resolved()  # type: ignore[union-attr]

    def result(self, timeout: Optional[float] = None, timeout_value: Any = TIMED_OUT) -> T:
        if self._future is not None:
            try:
                return self._future.result(timeout)
            except FutureTimeout:
                if self._future.done():
                    raise
                return timeout_value

        with self._lock:
            settled = self._value is not _UNSET or self._error is not None
        if not settled:
            upstream = self._parent.result(timeout, _UNSET)  # type: ignore[union-attr]
            if upstream is _UNSET:
                return timeout_value
            with self._lock:
                if self._value is _UNSET and self._error is None:
                    try:
                        self._value = self._fn(upstream)  # type: ignore[misc]
                    except Exception as ex:
                        self._error = ex
        if self._error is not None:
            raise self._error
        return self._value

    def map(self, fn: Callable[[T], U]) -> "Deferred[U]":
        """New Deferred applying ``fn`` to this one's value; errors pass through untouched."""
        return Deferred(parent=self, fn=fn)

    def __repr__(self) -> str:
        state = "resolved" if self.is_resolved() else "pending"
        return f"<Deferred {state}>"
