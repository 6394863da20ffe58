from wsgiref.util import setup_testing_defaults

from trex.metrics import (
    MetricsMiddleware,
    RequestMetrics,
    default_metrics,
    make_metrics_app,
    reset_metric_collectors,
    strip_path_variables,
)


def _call(app, path="/", method="GET"):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(PATH_INFO=path, REQUEST_METHOD=method)
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        return lambda data: None

    body = b"".join(app(environ, start_response))
    return captured["status"], body


def _app(status):
    def app(environ, start_response):
        start_response(status, [("Content-Type", "text/plain")])
        return [b"ok"]

    return app


def _sample_lines(text, prefix):
    return [line for line in text.splitlines() if line.startswith(prefix)]


def test_strip_path_variables():
    assert strip_path_variables("/api/rh-trex/v1/dinosaurs/{id}") == "/api/rh-trex/v1/dinosaurs/-"
    assert strip_path_variables("/plain") == "/plain"


def test_observe_counts_per_label_set():
    metrics = RequestMetrics()
    metrics.observe("GET", "/x", 200, 0.01)
    metrics.observe("GET", "/x", "200", 0.02)
    metrics.observe("POST", "/x", 201, 0.02)
    assert metrics.count("GET", "/x", 200) == 2
    assert metrics.count("POST", "/x", 201) == 1
    assert metrics.count("DELETE", "/x", 204) == 0


def test_render_count_line():
    metrics = RequestMetrics()
    metrics.observe("GET", "/x", 200, 0.01)
    metrics.observe("GET", "/x", 200, 0.01)
    text = metrics.render()
    assert 'api_inbound_request_count{code="200",method="GET",path="/x"} 2' in text.splitlines()
    assert "# TYPE api_inbound_request_duration histogram" in text


def test_histogram_buckets_are_cumulative():
    metrics = RequestMetrics()
    for seconds in (0.05, 5.0, 45.0):
        metrics.observe("GET", "/x", 200, seconds)
    buckets = _sample_lines(metrics.render(), "api_inbound_request_duration_bucket")
    values = [int(line.rsplit(" ", 1)[1]) for line in buckets]
    assert values == sorted(values)
    assert 'le="+Inf"' in buckets[-1]
    assert values[-1] == 3
    assert len(buckets) == len(metrics.buckets) + 1


def test_custom_buckets_used():
    metrics = RequestMetrics(buckets=[2.0, 0.5])
    metrics.observe("GET", "/x", 200, 1.0)
    assert metrics.buckets == (0.5, 2.0)
    buckets = _sample_lines(metrics.render(), "api_inbound_request_duration_bucket")
    assert len(buckets) == 3


def test_reset_removes_samples():
    metrics = RequestMetrics()
    metrics.observe("GET", "/x", 200, 0.01)
    metrics.reset()
    assert metrics.count("GET", "/x", 200) == 0
    samples = [line for line in metrics.render().splitlines() if not line.startswith("#")]
    assert samples == []


def test_middleware_uses_route_template():
    metrics = RequestMetrics()
    app = MetricsMiddleware(_app("201 Created"), metrics, lambda environ: "/dinosaurs/{id}")
    status, body = _call(app, "/dinosaurs/123", "POST")
    assert (status, body) == ("201 Created", b"ok")
    assert metrics.count("POST", "/dinosaurs/-", 201) == 1


def test_middleware_without_route_uses_placeholder_path():
    metrics = RequestMetrics()
    app = MetricsMiddleware(_app("404 Not Found"), metrics)
    _call(app, "/anything")
    assert metrics.count("GET", "/-", 404) == 1


def test_metrics_app_serves_render():
    metrics = RequestMetrics()
    metrics.observe("GET", "/x", 200, 0.01)
    status, body = _call(make_metrics_app(metrics), "/metrics")
    assert status.startswith("200")
    assert body.decode() == metrics.render()


def test_metrics_app_unknown_path():
    status, _ = _call(make_metrics_app(RequestMetrics()), "/other")
    assert status.startswith("404")


def test_reset_metric_collectors_resets_default():
    default_metrics.observe("GET", "/reset-check", 200, 0.01)
    reset_metric_collectors()
    assert default_metrics.count("GET", "/reset-check", 200) == 0