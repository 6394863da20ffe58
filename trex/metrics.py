"""Request count and duration metrics in the Prometheus text format.

Paths are reduced to their route template with variables replaced by a dash,
so that ``/dinosaurs/123`` and ``/dinosaurs/456`` share ``/dinosaurs/-``.
"""

from __future__ import annotations

import re
import threading
import time
from bisect import bisect_left
from dataclasses import dataclass
from itertools import accumulate
from typing import Any, Callable, Iterable

PATH_VAR_SUB = "-"
METRICS_SUBSYSTEM = "api_inbound"

METRICS_METHOD_LABEL = "method"
METRICS_PATH_LABEL = "path"
METRICS_CODE_LABEL = "code"
METRICS_LABELS = (METRICS_METHOD_LABEL, METRICS_PATH_LABEL, METRICS_CODE_LABEL)

REQUEST_COUNT = "request_count"
REQUEST_DURATION = "request_duration"
METRICS_NAMES = (REQUEST_COUNT, REQUEST_DURATION)

DEFAULT_BUCKETS = (0.1, 1.0, 10.0, 30.0)

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_PATH_VAR_RE = re.compile(r"{[^}]*}")

_Key = tuple[str, str, str]


def strip_path_variables(template: str) -> str:
    """Replace every ``{variable}`` of a route template with a dash."""
    return _PATH_VAR_RE.sub(PATH_VAR_SUB, template)


def _format_number(value: float) -> str:
    if value == float("inf"):
        return "+Inf"
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _labels(key: _Key, extra: tuple[tuple[str, str], ...] = ()) -> str:
    method, path, code = key
    pairs = sorted(
        [(METRICS_CODE_LABEL, code), (METRICS_METHOD_LABEL, method), (METRICS_PATH_LABEL, path)]
    )
    pairs.extend(extra)
    return "{" + ",".join(f'{name}="{_escape(value)}"' for name, value in pairs) + "}"


@dataclass
class _Histogram:
    buckets: list[int]
    total: float = 0.0
    count: int = 0


class RequestMetrics:
    """Thread-safe request counter and duration histogram keyed by method, path and code."""

    def __init__(self, buckets: Iterable[float] = DEFAULT_BUCKETS) -> None:
        self.buckets = tuple(sorted(buckets))
        self._lock = threading.Lock()
        self._counts: dict[_Key, int] = {}
        self._durations: dict[_Key, _Histogram] = {}

    def observe(self, method: str, path: str, code: int | str, seconds: float) -> None:
        key = (method, path, str(code))
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + 1
            histogram = self._durations.get(key)
            if histogram is None:
                histogram = _Histogram(buckets=[0] * (len(self.buckets) + 1))
                self._durations[key] = histogram
            histogram.buckets[bisect_left(self.buckets, seconds)] += 1
            histogram.total += seconds
            histogram.count += 1

    def count(self, method: str, path: str, code: int | str) -> int:
        with self._lock:
            return self._counts.get((method, path, str(code)), 0)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._durations.clear()

    def render(self) -> str:
        count_name = f"{METRICS_SUBSYSTEM}_{REQUEST_COUNT}"
        duration_name = f"{METRICS_SUBSYSTEM}_{REQUEST_DURATION}"
        with self._lock:
            counts = sorted(self._counts.items())
            durations = sorted(
                (key, _Histogram(list(h.buckets), h.total, h.count))
                for key, h in self._durations.items()
            )
        lines = [
            f"# HELP {count_name} Number of requests served.",
            f"# TYPE {count_name} counter",
        ]
        lines.extend(f"{count_name}{_labels(key)} {value}" for key, value in counts)
        lines.append(f"# HELP {duration_name} Request duration in seconds.")
        lines.append(f"# TYPE {duration_name} histogram")
        for key, histogram in durations:
            cumulative = accumulate(histogram.buckets[: len(self.buckets)])
            for bound, value in zip(self.buckets, cumulative):
                le = (("le", _format_number(bound)),)
                lines.append(f"{duration_name}_bucket{_labels(key, le)} {value}")
            lines.append(f'{duration_name}_bucket{_labels(key, (("le", "+Inf"),))} {histogram.count}')
            lines.append(f"{duration_name}_sum{_labels(key)} {_format_number(histogram.total)}")
            lines.append(f"{duration_name}_count{_labels(key)} {histogram.count}")
        return "\n".join(lines) + "\n"


default_metrics = RequestMetrics()


def reset_metric_collectors() -> None:
    """Reset the process-wide metrics."""
    default_metrics.reset()


class MetricsMiddleware:
    """WSGI middleware recording the count and duration of every request."""

    def __init__(
        self,
        app: Callable[..., Iterable[bytes]],
        metrics: RequestMetrics | None = None,
        route_template: Callable[[dict[str, Any]], str | None] | None = None,
    ) -> None:
        self.app = app
        self.metrics = metrics if metrics is not None else default_metrics
        self.route_template = route_template

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> list[bytes]:
        code = 0

        def recording_start_response(status, headers, exc_info=None):
            nonlocal code
            code = int(status.split(" ", 1)[0])
            return start_response(status, headers, exc_info)

        before = time.perf_counter()
        result = self.app(environ, recording_start_response)
        try:
            chunks = list(result)
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
        elapsed = time.perf_counter() - before

        path = "/" + PATH_VAR_SUB
        if self.route_template is not None:
            template = self.route_template(environ)
            if template is not None:
                path = strip_path_variables(template)

        self.metrics.observe(environ.get("REQUEST_METHOD", ""), path, code, elapsed)
        return chunks


def make_metrics_app(metrics: RequestMetrics | None = None) -> Callable[..., list[bytes]]:
    """Build a WSGI application exposing ``/metrics``."""
    source = metrics if metrics is not None else default_metrics

    def app(environ: dict[str, Any], start_response: Callable) -> list[bytes]:
        if environ.get("PATH_INFO", "") != "/metrics":
            body = b"404 page not found\n"
            start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
            return [body]
        body = source.render().encode("utf-8")
        start_response(
            "200 OK", [("Content-Type", CONTENT_TYPE), ("Content-Length", str(len(body)))]
        )
        return [body]

    return app