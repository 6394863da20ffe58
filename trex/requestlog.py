"""JSON request/response logging middleware for WSGI applications."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

LOGGING_THRESHOLD = 1

# Paths that only add log noise; they are served but never logged.
QUIET_PATHS = frozenset({"/api/rh-trex"})

_LOG = logging.getLogger(__name__)


@dataclass
class ResponseInfo:
    """What is known about a response once the application has produced it."""

    header: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    status: int = 0
    elapsed: str = ""


class LogFormatter(Protocol):
    def format_request_log(self, environ: dict[str, Any]) -> str: ...

    def format_response_log(self, info: ResponseInfo) -> str: ...


def _request_uri(environ: dict[str, Any]) -> str:
    uri = environ.get("REQUEST_URI") or environ.get("RAW_URI")
    if uri:
        return uri
    path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    query = environ.get("QUERY_STRING")
    return f"{path}?{query}" if query else path


def _request_headers(environ: dict[str, Any]) -> dict[str, list[str]]:
    headers: dict[str, list[str]] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            name = "-".join(part.capitalize() for part in key[5:].split("_"))
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
            name = "-".join(part.capitalize() for part in key.split("_"))
        else:
            continue
        headers.setdefault(name, []).append(value)
    return headers


def _trim(value: float) -> str:
    return f"{value:.9f}".rstrip("0").rstrip(".")


def _format_duration(seconds: float) -> str:
    ns = round(seconds * 1e9)
    if ns == 0:
        return "0s"
    if ns < 1_000:
        return f"{ns}ns"
    if ns < 1_000_000:
        return f"{_trim(ns / 1e3)}µs"
    if ns < 1_000_000_000:
        return f"{_trim(ns / 1e6)}ms"
    minutes, secs = divmod(ns / 1e9, 60)
    hours, minutes = divmod(int(minutes), 60)
    text = f"{_trim(secs)}s"
    if minutes or hours:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return text


class JSONLogFormatter:
    """Formats requests and responses as compact JSON documents."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    def format_request_log(self, environ: dict[str, Any]) -> str:
        entry: dict[str, Any] = {
            "request_method": environ.get("REQUEST_METHOD", ""),
            "request_url": _request_uri(environ),
        }
        if self.verbose:
            headers = _request_headers(environ)
            if headers:
                entry["request_header"] = headers
        remote = environ.get("REMOTE_ADDR")
        if remote:
            entry["request_remote_ip"] = remote
        return json.dumps(entry, separators=(",", ":"), ensure_ascii=False)

    def format_response_log(self, info: ResponseInfo) -> str:
        entry: dict[str, Any] = {}
        if info.status:
            entry["response_status"] = info.status
        if self.verbose and info.body:
            entry["response_body"] = info.body.decode("utf-8", errors="replace")
        if info.elapsed:
            entry["elapsed"] = info.elapsed
        return json.dumps(entry, separators=(",", ":"), ensure_ascii=False)


class RequestLoggingMiddleware:
    """WSGI middleware logging each request and its response."""

    def __init__(
        self,
        app: Callable[..., Iterable[bytes]],
        formatter: LogFormatter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.app = app
        self.formatter = formatter if formatter is not None else JSONLogFormatter()
        self.logger = logger if logger is not None else _LOG

    def _log(self, format_entry: Callable[[Any], str], subject: Any) -> None:
        try:
            message = format_entry(subject)
        except (TypeError, ValueError) as exc:
            self.logger.error(
                "Unable to format request/response for log.", extra={"error": str(exc)}
            )
        else:
            self.logger.debug(message)

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> list[bytes]:
        path = environ.get("PATH_INFO", "").removesuffix("/")
        do_log = path not in QUIET_PATHS

        if do_log:
            self._log(self.formatter.format_request_log, environ)

        info = ResponseInfo()
        written: list[bytes] = []

        def logging_start_response(status, headers, exc_info=None):
            info.status = int(status.split(" ", 1)[0])
            info.header = list(headers)
            write = start_response(status, headers, exc_info)

            def logging_write(data: bytes) -> None:
                written.append(data)
                write(data)

            return logging_write

        before = time.perf_counter()
        result = self.app(environ, logging_start_response)
        try:
            chunks = list(result)
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
        info.elapsed = _format_duration(time.perf_counter() - before)
        info.body = b"".join(written + chunks)

        if do_log:
            self._log(self.formatter.format_response_log, info)
        return chunks