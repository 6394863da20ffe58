# trex

`trex` is the runtime skeleton of a small HTTP microservice, built on the
standard library alone. It provides:

- runtime **environments** (`development`, `testing`, `production`) that set
  configuration defaults, chosen through the `OCM_ENV` environment variable
  (`development` when unset or empty) — `trex.environments`;
- a **health check** WSGI application with `GET /healthcheck` and
  `POST /healthcheck/down` / `POST /healthcheck/up` to switch maintenance mode
  on and off — `trex.server`;
- a **metrics** WSGI application serving request counts and duration
  histograms at `/metrics` in the Prometheus text format — `trex.metrics`;
- WSGI middleware for **request metrics** and **JSON request/response
  logging** — `trex.metrics`, `trex.requestlog`;
- a threaded `WSGIServer` to run any of these on a `host:port` address;
- a **clone** tool that copies a project tree under a new service name —
  `trex.clone`.

## Installation

```
pip install .
```

## Command line

### `trex serve`

```
trex serve
OCM_ENV=production trex serve
trex serve --metrics-server-bindaddress=localhost:9090 --v 0
```

Applies the selected environment's flag defaults, then any `--flag=value`,
`--flag value` or bare `--flag` (meaning `true`) given on the command line,
then starts two servers in background threads and waits until interrupted:

- the metrics server on `metrics-server-bindaddress` (default `localhost:8080`);
- the health check server on `health-check-server-bindaddress`
  (default `localhost:8083`).

An unknown flag or a value that does not parse stops the command with a usage
error. When the verbosity (`v`) is 1 or more, logging goes to debug level.

### `trex clone`

```
trex clone --name maestro --destination /tmp/clone-test
```

Copies the current directory into the destination (defaults: name `maestro`,
destination `/tmp/clone-test`). `.git` is left behind. Every `trex` in a
destination path becomes the lower-cased new name, and file contents have
`RHTrex` and `TRex` replaced by the name, and `rh-trex`, `rhtrex` and `trex`
by the lower-cased name. Files are appended to, so the destination should
start empty. A filesystem error is printed and ends the copy.

## Using the pieces as a library

```python
from trex.metrics import RequestMetrics, MetricsMiddleware, make_metrics_app
from trex.requestlog import JSONLogFormatter, RequestLoggingMiddleware
from trex.server import StatusUpdater, WSGIServer, make_healthcheck_app, remove_trailing_slash

metrics = RequestMetrics(buckets=[0.1, 1.0, 10.0, 30.0])
app = MetricsMiddleware(my_app, metrics, route_template=lambda environ: "/api/things/{id}")
app = RequestLoggingMiddleware(app, JSONLogFormatter(verbose=False))
app = remove_trailing_slash(app)

metrics.count("GET", "/api/things/-", 200)   # requests recorded so far
print(metrics.render())                      # Prometheus text

updater = StatusUpdater()
health = WSGIServer(make_healthcheck_app(updater), "localhost:8083", "HealthCheck")
health.start()   # blocks; call health.stop() from another thread
```

- `MetricsMiddleware` labels each request by method, status code and path.
  `route_template` is a callable given the WSGI environ; its template has every
  `{variable}` replaced by `-` (see `strip_path_variables`). Without it, or
  when it returns `None`, the path label is `/-`. Without a `RequestMetrics`,
  the process-wide one is used; `reset_metric_collectors()` clears it.
- `RequestLoggingMiddleware` logs one JSON line for the request and one for the
  response at debug level, skipping `/api/rh-trex`. With `verbose=True` the
  formatter also includes request headers and the response body.
- The health check answers `200` with `{}` when healthy and `503` with
  `{"maintenance_status": "maintenance mode"}` in maintenance mode.
- `check(error, message)` logs the error and exits with status 1; `None` is
  ignored.

Environments can be driven directly:

```python
from trex.environments import environment

env = environment()            # process-wide Env, named from OCM_ENV
env.add_flags()                # apply the environment's flag defaults
env.config.set_flag("db-port", "5433")
env.initialize()               # environment adjustments, error-reporting options
env.sentry_dsn()               # "" unless enable-sentry is true
```

## What this package does not do

It has no API server: there are no resource endpoints, no OpenAPI document,
no authentication or authorization, and `trex serve` starts only the metrics
and health check servers. There is no database access and no migration
command, no OCM client, and no event controllers. Error reporting is only
configured — `Env.initialize` computes the options and DSN — nothing is sent.

## Running the tests

```
pip install .[test]
pytest
```