from __future__ import annotations

import contextlib
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from ..domain.errors import ConfigurationError


def parse_dotenv(dotenv_path: Path) -> Dict[str, str]:
    """Parse a simple .env file (KEY=VALUE per line, '#' comments, quotes stripped)."""
    env: Dict[str, str] = {}
    if dotenv_path.exists():
        with contextlib.suppress(OSError):
            for raw in dotenv_path.read_text(encoding="utf-8", errors="ignore").splitlines():
                s = raw.strip()
                if not s or s.startswith("#") or "=" not in s:
                    continue
                k, v = s.split("=", 1)
                k = k.strip()
                v = v.strip().strip('"').strip("'")
                if k:
                    env[k] = v
    return env


def env_get(key: str, dotenv_path: Path = Path(".env")) -> Optional[str]:
    """Get environment value from process env, falling back to .env in CWD."""
    v = os.getenv(key)
    if v is not None and v.strip():
        return v.strip()
    v2 = parse_dotenv(dotenv_path).get(key)
    return v2.strip() if v2 is not None and v2.strip() else None


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    return env_get(name) or default


def _truth_str(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.strip().lower() == "true"


def _as_int(name: str, value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigurationError(f"Option {name} must be an integer, got {value!r}") from None


@dataclass(frozen=True)
class ChromaConfig:
    """Resolved connection options.

    Fields:
        protocol: http or https.
        host: Chroma host; required before any request is made.
        port: HTTP port.
        timeout: Request timeout in milliseconds.
        api_key: Sent as the x-chroma-token header when set.
        tenant: Tenant routed on every request.
        database: Database routed on every request.
        allow_reset: Whether reset() may wipe the server.
    """
    protocol: str = "http"
    host: Optional[str] = None
    port: int = 8000
    timeout: int = 10000
    api_key: Optional[str] = None
    tenant: str = "default_tenant"
    database: str = "default_database"
    allow_reset: bool = False

    @classmethod
    def from_env(cls) -> "ChromaConfig":
        """Build a config from CHROMA_* variables (process env first, then ./.env)."""
        return cls(
            protocol=env_str("CHROMA_PROTOCOL", "http"),
            host=env_str("CHROMA_HOST"),
            port=_as_int("port", env_str("CHROMA_PORT", "8000")),
            timeout=_as_int("timeout", env_str("CHROMA_TIMEOUT", "10000")),
            api_key=env_str("CHROMA_API_KEY"),
            tenant=env_str("CHROMA_TENANT", "default_tenant"),
            database=env_str("CHROMA_DATABASE", "default_database"),
            allow_reset=_truth_str(env_str("CHROMA_ALLOW_RESET")),
        )

    def configure(self, **options: object) -> "ChromaConfig":
        """Return a copy with the given options replaced.

        Raises:
            ConfigurationError: Unknown option name or non-integer port/timeout.
        """
        known = {f.name for f in fields(self)}
        for key in options:
            if key not in known:
                raise ConfigurationError(f"Unknown configuration option: {key}")
        for key in ("port", "timeout"):
            if key in options:
                options[key] = _as_int(key, options[key])
        return replace(self, **options)  # type: ignore[arg-type]

    @property
    def base_url(self) -> str:
        if not self.host:
            raise ConfigurationError("CHROMA_HOST is not set; configure a host before making requests")
        return f"{self.protocol}://{self.host}:{self.port}/api/v1"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0


ConfigSource = Union[ChromaConfig, Callable[[], ChromaConfig]]


def config_provider(source: Optional[ConfigSource] = None) -> Callable[[], ChromaConfig]:
    """Normalize a config value or provider into a zero-arg provider.

    None yields a provider that re-reads the environment on every call.
    """
    if source is None:
        return ChromaConfig.from_env
    if isinstance(source, ChromaConfig):
        return lambda: source
    return source
