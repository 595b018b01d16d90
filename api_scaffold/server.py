"""HTTP server assembly.

``Server.builder()`` returns a fluent ``ServerBuilder``; ``build()`` wires the
optional pieces into one FastAPI application served by uvicorn, always in the
same order:

  1. home directory + logging
  2. exception mappers (default on)
  3. CORS headers (default off)
  4. gzip (default on)
  5. JSON codec
  6. bind address and external URI
  7. registered routers under the service context path
  8. static files (optional, no directory listings)
  9. request log
 10. no ``Server`` response header
 11. stop when the process exits

A builder produces exactly one server. Using it again raises BuilderUsedError.
"""

from __future__ import annotations

import atexit
import logging
import socket
import threading
import time
import weakref
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import APIRouter, Depends, FastAPI
from starlette.middleware.gzip import GZipMiddleware
from starlette.staticfiles import StaticFiles

from .codec import JsonCodec, decode_request_body
from .config import ServerSettings
from .headers import CorsHeadersMiddleware
from .logs import init_logging
from .mappers import install_exception_mappers
from .requestlog import NcsaRequestLog, RequestLog, RequestLogMiddleware


logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080

# built servers, held weakly so a discarded server can be collected
_shutdown_servers: "weakref.WeakSet[Server]" = weakref.WeakSet()


class BuilderUsedError(RuntimeError):
    """The builder already produced a server."""


class ServerConfigError(RuntimeError):
    pass


def local_host_address() -> str:
    """Network address of this machine, used when no host is configured."""

    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError as exc:
        raise ServerConfigError(f"Cannot resolve the local host address: {exc}") from exc


def _normalize_prefix(path: str | None) -> str:
    prefix = (path or "").strip().rstrip("/")
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix


class ServerBuilder:
    def __init__(self) -> None:
        self._home_dir: str | Path = "./"
        self._host: str | None = None
        self._port = DEFAULT_PORT
        self._cors = False
        self._gzip = True
        self._static_dir: str | Path | None = None
        self._static_path: str | None = None
        self._service_context_path = "/"
        self._request_log: RequestLog | None = None
        self._standard_exception_mappers = True
        self._codec: JsonCodec | None = None
        self._log_level = "INFO"
        self._routers: list[tuple[APIRouter, dict[str, Any]]] = []
        self._built = False

    def _set(self, name: str, value: Any) -> "ServerBuilder":
        if self._built:
            raise BuilderUsedError("This builder has already built a server.")
        setattr(self, name, value)
        return self

    def home_dir(self, home_dir: str | Path) -> "ServerBuilder":
        """Directory that relative paths (static files, etc/) resolve against. Default ``./``."""
        return self._set("_home_dir", home_dir)

    def cors(self, cors: bool) -> "ServerBuilder":
        return self._set("_cors", cors)

    def gzip(self, gzip: bool) -> "ServerBuilder":
        return self._set("_gzip", gzip)

    def host(self, host: str | None) -> "ServerBuilder":
        """Bind host. Defaults to the local machine address."""
        return self._set("_host", host)

    def port(self, port: int) -> "ServerBuilder":
        return self._set("_port", int(port))

    def static_files(self, static_dir: str | Path, static_path: str | None = None) -> "ServerBuilder":
        """Serve files from ``static_dir`` (absolute or relative to home) at ``static_path`` (default ``/``)."""
        self._set("_static_dir", static_dir)
        return self._set("_static_path", static_path)

    def service_context_path(self, path: str) -> "ServerBuilder":
        """Prefix for registered routes: ``"/api"`` puts ``/foo`` at ``/api/foo``."""
        return self._set("_service_context_path", path)

    def request_log(self, request_log: RequestLog) -> "ServerBuilder":
        return self._set("_request_log", request_log)

    def standard_exception_mappers(self, enabled: bool) -> "ServerBuilder":
        return self._set("_standard_exception_mappers", enabled)

    def codec(self, codec: JsonCodec) -> "ServerBuilder":
        return self._set("_codec", codec)

    def log_level(self, level: str) -> "ServerBuilder":
        return self._set("_log_level", level)

    def register(self, router: APIRouter, **include_kwargs: Any) -> "ServerBuilder":
        """Add application routes. Extra kwargs go to ``FastAPI.include_router``."""
        if self._built:
            raise BuilderUsedError("This builder has already built a server.")
        self._routers.append((router, include_kwargs))
        return self

    def from_settings(self, settings: ServerSettings) -> "ServerBuilder":
        self.home_dir(settings.home_dir)
        self.host(settings.host)
        self.port(settings.port)
        self.cors(settings.cors)
        self.gzip(settings.gzip)
        self.standard_exception_mappers(settings.standard_exception_mappers)
        self.service_context_path(settings.service_context_path)
        self.log_level(settings.log_level)
        if settings.static_dir:
            self.static_files(settings.static_dir, settings.static_path)
        return self

    def build(self) -> "Server":
        if self._built:
            raise BuilderUsedError("This builder has already built a server.")
        self._built = True

        home_dir = Path(self._home_dir).resolve()
        init_logging(home_dir, self._log_level)

        app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

        if self._standard_exception_mappers:
            install_exception_mappers(app)

        if self._cors:
            app.add_middleware(CorsHeadersMiddleware)

        if self._gzip:
            app.add_middleware(GZipMiddleware)

        codec = self._codec or JsonCodec(omit_none=True, ignore_unknown_fields=True)
        app.state.codec = codec
        app.router.default_response_class = codec.response_class
        # routers are included below, so they pick up the body dependency
        app.router.dependencies.append(Depends(decode_request_body))

        host = self._host or local_host_address()
        uri = f"http://{host}:{self._port}/"
        logger.info("Initializing server at %s in %s", uri, home_dir)

        prefix = _normalize_prefix(self._service_context_path)
        for router, include_kwargs in self._routers:
            app.include_router(router, prefix=prefix, **include_kwargs)

        if self._static_dir is not None:
            static_dir = Path(self._static_dir)
            if not static_dir.is_absolute():
                static_dir = (home_dir / static_dir).resolve()
            # StaticFiles never renders directory listings
            app.mount(self._static_path or "/", StaticFiles(directory=static_dir), name="static")

        request_log = self._request_log if self._request_log is not None else NcsaRequestLog()
        app.add_middleware(RequestLogMiddleware, request_log=request_log)

        config = uvicorn.Config(
            app,
            host=host,
            port=self._port,
            server_header=False,
            access_log=False,
            log_config=None,
        )
        server = Server(app, config, uri=uri, home_dir=home_dir, request_log=request_log)
        server.stop_at_shutdown = True
        _shutdown_servers.add(server)
        return server


class Server:
    """A built server. Create one with ``Server.builder()...build()``."""

    def __init__(
        self,
        app: FastAPI,
        config: uvicorn.Config,
        *,
        uri: str,
        home_dir: Path,
        request_log: RequestLog,
    ) -> None:
        self.app = app
        self.config = config
        self.uri = uri
        self.home_dir = home_dir
        self.request_log = request_log
        self.stop_at_shutdown = False
        self._server = uvicorn.Server(config)
        self._thread: threading.Thread | None = None

    @staticmethod
    def builder() -> ServerBuilder:
        return ServerBuilder()

    @property
    def middleware(self) -> list[str]:
        """Installed middleware class names, outermost first."""
        return [m.cls.__name__ for m in self.app.user_middleware]

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, timeout: float = 10.0) -> None:
        """Start accepting connections on a background thread."""

        thread = threading.Thread(target=self._server.run, name="api-scaffold-server", daemon=True)
        self._thread = thread
        thread.start()
        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not thread.is_alive():
                raise ServerConfigError(f"Server at {self.uri} failed to start")
            if time.monotonic() > deadline:
                raise TimeoutError(f"Server at {self.uri} did not start within {timeout}s")
            time.sleep(0.05)
        logger.info("Started.")

    def serve(self) -> None:
        """Run in the foreground until interrupted."""
        self._server.run()

    def stop_now(self, timeout: float = 10.0) -> None:
        """Stop the server immediately.

        Must not be called from a request handler of this same server; hand it
        to another thread if a request needs to trigger it.
        """

        logger.info("Stopping server...")
        self._server.should_exit = True
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _stop_at_shutdown(self) -> None:
        if self.stop_at_shutdown and self.running:
            self.stop_now()


@atexit.register
def _stop_servers_at_shutdown() -> None:
    for server in list(_shutdown_servers):
        server._stop_at_shutdown()
