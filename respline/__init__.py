from respline.client import Pipeline, Redis
from respline.connection import Connection, UnixDomainSocketConnection
from respline.exceptions import (
    AuthenticationError,
    BusyLoadingError,
    ConnectionError,
    DataError,
    ExecAbortError,
    InvalidResponse,
    NoPermissionError,
    NoScriptError,
    ReadOnlyError,
    RedisError,
    ResponseError,
    TimeoutError,
    WatchError,
)
from respline.parser import HiredisParser, PythonParser
from respline.utils import from_url


__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "BusyLoadingError",
    "Connection",
    "ConnectionError",
    "DataError",
    "ExecAbortError",
    "from_url",
    "HiredisParser",
    "InvalidResponse",
    "NoPermissionError",
    "NoScriptError",
    "Pipeline",
    "PythonParser",
    "ReadOnlyError",
    "Redis",
    "RedisError",
    "ResponseError",
    "TimeoutError",
    "UnixDomainSocketConnection",
    "WatchError",
]
