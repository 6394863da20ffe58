"""Shared server pieces: WSGI wrappers, the health check application and a threaded server."""

from __future__ import annotations

import json
import logging
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable
from wsgiref.simple_server import WSGIRequestHandler, make_server
from wsgiref.simple_server import WSGIServer as _BaseWSGIServer

_LOG = logging.getLogger(__name__)

MAINTENANCE_CHECK = "maintenance_status"
MAINTENANCE_MESSAGE = "maintenance mode"

WSGIApp = Callable[..., Iterable[bytes]]


def remove_trailing_slash(app: WSGIApp) -> WSGIApp:
    """Wrap a WSGI application so that one trailing slash is dropped from the path."""

    def wrapped(environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        environ = dict(environ)
        environ["PATH_INFO"] = environ.get("PATH_INFO", "").removesuffix("/")
        return app(environ, start_response)

    return wrapped


def check(error: BaseException | None, message: str) -> None:
    """Log ``error`` with ``message`` and exit with status 1; do nothing for ``None``."""
    if error is None:
        return
    _LOG.error("%s: %s", message, error)
    raise SystemExit(1)


class StatusUpdater:
    """Holds the last reported error of a health check; ``None`` means healthy."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def update(self, error: BaseException | None) -> None:
        with self._lock:
            self._error = error

    def check(self) -> BaseException | None:
        with self._lock:
            return self._error


default_updater = StatusUpdater()


def _respond(start_response: Callable, status: str, body: bytes, content_type: str) -> list[bytes]:
    start_response(
        status, [("Content-Type", content_type), ("Content-Length", str(len(body)))]
    )
    return [body]


def make_healthcheck_app(updater: StatusUpdater | None = None) -> WSGIApp:
    """Build the health check application with its maintenance up/down switches."""
    status_updater = updater if updater is not None else default_updater

    def status(start_response: Callable) -> list[bytes]:
        error = status_updater.check()
        checks = {} if error is None else {MAINTENANCE_CHECK: str(error)}
        code = "200 OK" if not checks else "503 Service Unavailable"
        body = json.dumps(checks).encode("utf-8")
        return _respond(start_response, code, body, "application/json; charset=utf-8")

    def down(start_response: Callable) -> list[bytes]:
        status_updater.update(RuntimeError(MAINTENANCE_MESSAGE))
        return _respond(start_response, "200 OK", b"", "text/plain; charset=utf-8")

    def up(start_response: Callable) -> list[bytes]:
        status_updater.update(None)
        return _respond(start_response, "200 OK", b"", "text/plain; charset=utf-8")

    routes = {
        "/healthcheck": ("GET", status),
        "/healthcheck/down": ("POST", down),
        "/healthcheck/up": ("POST", up),
    }

    def app(environ: dict[str, Any], start_response: Callable) -> list[bytes]:
        route = routes.get(environ.get("PATH_INFO", ""))
        if route is None:
            return _respond(
                start_response, "404 Not Found", b"404 page not found\n", "text/plain; charset=utf-8"
            )
        method, handler = route
        if environ.get("REQUEST_METHOD", "GET") != method:
            return _respond(
                start_response, "405 Method Not Allowed", b"", "text/plain; charset=utf-8"
            )
        return handler(start_response)

    return app


def _parse_bind_address(bind_address: str) -> tuple[str, int]:
    host, sep, port = bind_address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid bind address {bind_address!r}")
    return host, int(port)


class _ThreadingWSGIServer(ThreadingMixIn, _BaseWSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        _LOG.debug("%s - %s", self.address_string(), format % args)


class WSGIServer:
    """A threaded HTTP server for one WSGI application, bound to ``host:port``."""

    def __init__(self, app: WSGIApp, bind_address: str, name: str = "API") -> None:
        self.app = app
        self.bind_address = bind_address
        self.name = name
        self.host, self.port = _parse_bind_address(bind_address)
        self._httpd: _ThreadingWSGIServer | None = None
        self._serving = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """The address the listening socket is bound to."""
        if self._httpd is None:
            raise RuntimeError(f"{self.name} server is not listening")
        host, port = self._httpd.server_address[:2]
        return host, port

    def listen(self) -> None:
        """Bind the listening socket without serving requests yet."""
        self._httpd = make_server(
            self.host,
            self.port,
            self.app,
            server_class=_ThreadingWSGIServer,
            handler_class=_QuietHandler,
        )

    def serve(self) -> None:
        """Serve requests until ``stop`` is called; blocks."""
        httpd = self._httpd
        if httpd is None:
            raise RuntimeError(f"{self.name} server is not listening")
        _LOG.info("Serving %s at %s", self.name, self.bind_address)
        self._serving.set()
        try:
            httpd.serve_forever()
        except OSError as exc:
            check(exc, f"{self.name} server terminated with errors")
        _LOG.info("%s server terminated", self.name)

    def start(self) -> None:
        """Listen on the bind address and serve; blocks."""
        try:
            self.listen()
        except OSError as exc:
            check(exc, f"Unable to start {self.name} server")
        self.serve()

    def stop(self) -> None:
        httpd = self._httpd
        if httpd is None:
            return
        if self._serving.is_set():
            httpd.shutdown()
        httpd.server_close()
        self._serving.clear()
        self._httpd = None