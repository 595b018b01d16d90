"""Request logging.

The default request log writes one line per request in the extended NCSA
format to the ``api_scaffold.requestlog`` logger:

    host - user [dd/Mon/yyyy:HH:MM:SS +zzzz] "GET /path?q HTTP/1.1" 200 123 "referer" "agent"

Static assets (images, stylesheets, scripts, icons) are not logged. Any object
with a ``log(entry)`` method can replace the default log entirely.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Any, Iterable, Protocol

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send


logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATHS = (
    "/images/*",
    "/img/*",
    "*.css",
    "*.jpg",
    "*.JPG",
    "*.gif",
    "*.GIF",
    "*.ico",
    "*.ICO",
    "*.js",
)


@dataclass(slots=True)
class RequestLogEntry:
    method: str
    path: str
    status: int
    query: str = ""
    protocol: str = "HTTP/1.1"
    remote_host: str | None = None
    user: str | None = None
    referer: str | None = None
    user_agent: str | None = None
    bytes_sent: int = 0
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now().astimezone())

    @property
    def request_line(self) -> str:
        target = f"{self.path}?{self.query}" if self.query else self.path
        return f"{self.method} {target} {self.protocol}"


class RequestLog(Protocol):
    def log(self, entry: RequestLogEntry) -> None: ...


def _dash(value: Any) -> str:
    return "-" if value in (None, "") else str(value)


class NcsaRequestLog:
    """Extended NCSA request log with glob-style path exclusions.

    Patterns are matched case-sensitively against the request path, so
    ``*.jpg`` and ``*.JPG`` are distinct entries.
    """

    def __init__(
        self,
        ignore_paths: Iterable[str] = DEFAULT_IGNORE_PATHS,
        *,
        logger_name: str = "api_scaffold.requestlog",
    ) -> None:
        self.ignore_paths = tuple(ignore_paths)
        self.logger = logging.getLogger(logger_name)

    def is_ignored(self, path: str) -> bool:
        return any(fnmatchcase(path, pattern) for pattern in self.ignore_paths)

    def format(self, entry: RequestLogEntry) -> str:
        stamp = entry.timestamp.strftime("%d/%b/%Y:%H:%M:%S %z")
        return (
            f'{_dash(entry.remote_host)} - {_dash(entry.user)} [{stamp}] '
            f'"{entry.request_line}" {entry.status} {entry.bytes_sent} '
            f'"{_dash(entry.referer)}" "{_dash(entry.user_agent)}"'
        )

    def log(self, entry: RequestLogEntry) -> None:
        if self.is_ignored(entry.path):
            return
        self.logger.info(self.format(entry))


class RequestLogMiddleware:
    """ASGI middleware feeding a RequestLog once each response has been sent."""

    def __init__(self, app: ASGIApp, request_log: RequestLog) -> None:
        self.app = app
        self.request_log = request_log

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        state = {"status": 500, "bytes": 0}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                state["status"] = message["status"]
            elif message["type"] == "http.response.body":
                state["bytes"] += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            self._write(scope, state["status"], state["bytes"], started)

    def _write(self, scope: Scope, status: int, bytes_sent: int, started: float) -> None:
        try:
            headers = Headers(scope=scope)
            client = scope.get("client")
            entry = RequestLogEntry(
                method=scope.get("method", "-"),
                path=scope.get("path", ""),
                query=scope.get("query_string", b"").decode("latin-1"),
                protocol=f"HTTP/{scope.get('http_version', '1.1')}",
                status=status,
                remote_host=client[0] if client else None,
                referer=headers.get("referer"),
                user_agent=headers.get("user-agent"),
                bytes_sent=bytes_sent,
                latency_ms=(time.perf_counter() - started) * 1000.0,
            )
            self.request_log.log(entry)
        except Exception:  # noqa: BLE001
            logger.warning("Request log failed", exc_info=True)
