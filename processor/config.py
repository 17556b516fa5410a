"""
Processor - Configuration.

============================================================
RESPONSIBILITY
============================================================
Resolves the shared queue connection configuration.

- Build-time defaults are merged with runtime environment overrides
- A connection URL wins over every individual override
- The result is immutable and shared read-only by all workers

Malformed numeric values are not validated here; they are
handed to the connection layer as the raw string.

============================================================
"""

import os
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

import redis.asyncio as aioredis

from .constants import (
    ENV_LOG_FORMAT,
    ENV_LOG_LEVEL,
    ENV_REDIS_CONNECT_TIMEOUT,
    ENV_REDIS_DB,
    ENV_REDIS_HOST,
    ENV_REDIS_LAZY_CONNECT,
    ENV_REDIS_PASSWORD,
    ENV_REDIS_PORT,
    ENV_REDIS_URL,
    ENV_REDIS_USERNAME,
    ENV_WORKER_MODULES,
)


# camelCase spellings accepted in build-time defaults
_KEY_ALIASES = {
    "lazyConnect": "lazy_connect",
    "connectTimeout": "connect_timeout",
}


# ============================================================
# CONNECTION CONFIG
# ============================================================

@dataclass(frozen=True)
class ConnectionConfig:
    """Parameters needed to reach the queue backend."""

    url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[Union[int, str]] = None
    password: Optional[str] = None
    username: Optional[str] = None
    db: Optional[Union[int, str]] = None
    lazy_connect: Optional[bool] = None
    connect_timeout: Optional[Union[int, str]] = None
    """Connect timeout in milliseconds."""

    options: Mapping[str, Any] = field(default_factory=dict)
    """Extra build-time fields, carried through untouched."""

    def __post_init__(self):
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ConnectionConfig":
        """Build a config from a plain mapping (snake_case or camelCase keys)."""
        known = {f.name for f in fields(cls)} - {"options"}
        values: Dict[str, Any] = {}
        options: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            key = _KEY_ALIASES.get(key, key)
            if key in known:
                values[key] = value
            else:
                options[key] = value
        return cls(options=options, **values)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a dictionary holding only the fields that are set."""
        result = dict(self.options)
        for f in fields(self):
            if f.name == "options":
                continue
            value = getattr(self, f.name)
            if value is not None:
                result[f.name] = value
        return result

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for a ``redis.asyncio`` client."""
        kwargs: Dict[str, Any] = dict(self.options)
        for name in ("host", "port", "password", "username", "db"):
            value = getattr(self, name)
            if value is not None and not self.url:
                kwargs[name] = value
        if self.url and self.password is not None:
            kwargs["password"] = self.password
        if isinstance(self.connect_timeout, (int, float)):
            kwargs["socket_connect_timeout"] = self.connect_timeout / 1000.0
        return kwargs

    def create_client(self, **overrides: Any) -> "aioredis.Redis":
        """Create a new ``redis.asyncio`` client. No I/O happens here."""
        kwargs = self.client_kwargs()
        kwargs.update(overrides)
        if self.url:
            return aioredis.Redis.from_url(self.url, **kwargs)
        return aioredis.Redis(**kwargs)

    def describe(self) -> str:
        """Connection target without credentials, for logging."""
        if self.url:
            scheme, sep, rest = self.url.partition("://")
            if sep and "@" in rest:
                rest = rest.split("@", 1)[1]
            return f"{scheme}{sep}{rest}"
        return f"{self.host or 'localhost'}:{self.port or 6379}/{self.db or 0}"


# ============================================================
# RESOLUTION
# ============================================================

def _as_int(value: str) -> Union[int, str]:
    try:
        return int(value)
    except ValueError:
        return value


def resolve_connection_config(
    defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ConnectionConfig:
    """
    Merge build-time defaults with runtime environment overrides.

    If a connection URL is present, it replaces every individual
    override and ``lazy_connect`` falls back to ``True`` when the
    defaults leave it unset. Otherwise each present value overrides
    only its own field. The lazy-connect flag is true only for the
    exact string ``"true"``.

    Args:
        defaults: Build-time defaults
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Resolved, immutable configuration
    """
    if not isinstance(defaults, ConnectionConfig):
        defaults = ConnectionConfig.from_mapping(defaults)
    if env is None:
        env = os.environ

    url = env.get(ENV_REDIS_URL)
    if url:
        lazy_connect = defaults.lazy_connect if defaults.lazy_connect is not None else True
        return replace(defaults, url=url, lazy_connect=lazy_connect)

    overrides: Dict[str, Any] = {}

    host = env.get(ENV_REDIS_HOST)
    port = env.get(ENV_REDIS_PORT)
    password = env.get(ENV_REDIS_PASSWORD)
    username = env.get(ENV_REDIS_USERNAME)
    db = env.get(ENV_REDIS_DB)
    lazy_connect = env.get(ENV_REDIS_LAZY_CONNECT)
    connect_timeout = env.get(ENV_REDIS_CONNECT_TIMEOUT)

    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = _as_int(port)
    if password:
        overrides["password"] = password
    if username:
        overrides["username"] = username
    if db:
        overrides["db"] = _as_int(db)
    if lazy_connect:
        overrides["lazy_connect"] = lazy_connect == "true"
    if connect_timeout:
        overrides["connect_timeout"] = _as_int(connect_timeout)

    return replace(defaults, **overrides)


# ============================================================
# RUNTIME SETTINGS
# ============================================================

@dataclass
class ProcessorSettings:
    """Settings for the runtime entry point."""

    log_level: str = "INFO"
    log_format: str = "text"
    worker_modules: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ProcessorSettings":
        """Load settings from environment variables."""
        if env is None:
            env = os.environ
        modules = env.get(ENV_WORKER_MODULES, "")
        return cls(
            log_level=env.get(ENV_LOG_LEVEL, "INFO"),
            log_format=env.get(ENV_LOG_FORMAT, "text").lower(),
            worker_modules=[m.strip() for m in modules.split(",") if m.strip()],
        )


__all__ = [
    "ConnectionConfig",
    "resolve_connection_config",
    "ProcessorSettings",
]
