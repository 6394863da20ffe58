"""Runtime environments: application configuration, per-environment flag defaults and visitors."""

from __future__ import annotations

import logging
import os
import re
import socket
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

_LOG = logging.getLogger(__name__)

TESTING_ENV = "testing"
DEVELOPMENT_ENV = "development"
PRODUCTION_ENV = "production"

ENVIRONMENT_STRING_KEY = "OCM_ENV"
ENVIRONMENT_DEFAULT = DEVELOPMENT_ENV

SENTRY_BUFFER_SIZE = 10

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid boolean value {value!r}")


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"invalid integer value {value!r}") from None


def _parse_duration(value: str) -> float:
    """Parse a duration such as ``5s`` or ``1m30s`` into seconds."""
    text = value.strip()
    if text == "0":
        return 0.0
    sign = -1.0 if text.startswith("-") else 1.0
    text = text.lstrip("+-")
    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if not text or position != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return sign * total


@dataclass
class ServerConfig:
    """Settings of the API server."""

    hostname: str = ""
    bind_address: str = "localhost:8000"
    enable_https: bool = False
    enable_jwt: bool = True
    enable_authz: bool = True
    https_cert_file: str = ""
    https_key_file: str = ""
    jwk_cert_file: str = ""
    jwk_cert_url: str = ""
    acl_file: str = ""


@dataclass
class DatabaseConfig:
    """Settings of the database connection."""

    dialect: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    name: str = ""
    username: str = ""
    sslmode: str = "disable"
    debug: bool = False
    max_open_connections: int = 50


@dataclass
class EndpointConfig:
    """Bind address and TLS switch of an auxiliary server (metrics, health check)."""

    bind_address: str = ""
    enable_https: bool = False


@dataclass
class SentryConfig:
    """Error reporting settings."""

    enabled: bool = False
    key: str = ""
    url: str = ""
    project: str = ""
    debug: bool = False
    timeout: float = 5.0


@dataclass
class OCMConfig:
    """Settings of the OCM authorization client."""

    base_url: str = field(default_factory=str)
    token_url: str = field(default_factory=str)
    client_id: str = field(default_factory=str)
    client_secret: str = field(default_factory=str)
    self_token: str = field(default_factory=str)
    debug: bool = False
    enable_mock: bool = False


_Setter = Callable[["ApplicationConfig", str], None]


def _setter(section: str | None, attribute: str, parse: Callable[[str], Any]) -> _Setter:
    def apply(config: ApplicationConfig, value: str) -> None:
        target = config if section is None else getattr(config, section)
        setattr(target, attribute, parse(value))

    return apply


def _ocm_attribute(flag: str) -> str:
    """Attribute of :class:`OCMConfig` behind an OCM text flag."""
    return flag.removeprefix("ocm-").replace("-", "_")


_OCM_TEXT_FLAGS = (
    "ocm-base-url",
    "ocm-token-url",
    "ocm-client-id",
    "ocm-client-secret",
    "self-token",
)

_FLAGS: dict[str, _Setter] = {
    "v": _setter(None, "verbosity", _parse_int),
    "logtostderr": _setter(None, "log_to_stderr", _parse_bool),
    "api-server-hostname": _setter("server", "hostname", str),
    "api-server-bindaddress": _setter("server", "bind_address", str),
    "enable-https": _setter("server", "enable_https", _parse_bool),
    "enable-jwt": _setter("server", "enable_jwt", _parse_bool),
    "enable-authz": _setter("server", "enable_authz", _parse_bool),
    "https-cert-file": _setter("server", "https_cert_file", str),
    "https-key-file": _setter("server", "https_key_file", str),
    "jwk-cert-file": _setter("server", "jwk_cert_file", str),
    "jwk-cert-url": _setter("server", "jwk_cert_url", str),
    "acl-file": _setter("server", "acl_file", str),
    "metrics-server-bindaddress": _setter("metrics", "bind_address", str),
    "enable-metrics-https": _setter("metrics", "enable_https", _parse_bool),
    "health-check-server-bindaddress": _setter("health_check", "bind_address", str),
    "enable-health-check-https": _setter("health_check", "enable_https", _parse_bool),
    "db-host": _setter("database", "host", str),
    "db-port": _setter("database", "port", _parse_int),
    "db-name": _setter("database", "name", str),
    "db-user": _setter("database", "username", str),
    "db-sslmode": _setter("database", "sslmode", str),
    "db-max-open-connections": _setter("database", "max_open_connections", _parse_int),
    "enable-db-debug": _setter("database", "debug", _parse_bool),
    "ocm-debug": _setter("ocm", "debug", _parse_bool),
    "enable-ocm-mock": _setter("ocm", "enable_mock", _parse_bool),
    "enable-sentry": _setter("sentry", "enabled", _parse_bool),
    "sentry-key": _setter("sentry", "key", str),
    "sentry-url": _setter("sentry", "url", str),
    "sentry-project": _setter("sentry", "project", str),
    "enable-sentry-debug": _setter("sentry", "debug", _parse_bool),
    "sentry-timeout": _setter("sentry", "timeout", _parse_duration),
}
_FLAGS.update({flag: _setter("ocm", _ocm_attribute(flag), str) for flag in _OCM_TEXT_FLAGS})


@dataclass
class ApplicationConfig:
    """The whole configuration of the service, settable flag by flag."""

    server: ServerConfig = field(default_factory=ServerConfig)
    metrics: EndpointConfig = field(
        default_factory=lambda: EndpointConfig(bind_address="localhost:8080")
    )
    health_check: EndpointConfig = field(
        default_factory=lambda: EndpointConfig(bind_address="localhost:8083")
    )
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    ocm: OCMConfig = field(default_factory=OCMConfig)
    sentry: SentryConfig = field(default_factory=SentryConfig)
    verbosity: int = 0
    log_to_stderr: bool = True

    def set_flag(self, name: str, value: str) -> None:
        """Set the setting behind command-line flag ``name`` from its text ``value``."""
        try:
            apply = _FLAGS[name]
        except KeyError:
            raise ValueError(f"no such flag -{name}") from None
        try:
            apply(self, value)
        except ValueError as exc:
            raise ValueError(f"invalid argument {value!r} for flag {name!r}: {exc}") from exc


_Override = tuple[str, str, Any]


def _apply_overrides(config: ApplicationConfig, overrides: tuple[_Override, ...]) -> None:
    """Force each ``(section, attribute, value)`` of ``overrides`` onto ``config``."""
    for section, attribute, value in overrides:
        setattr(getattr(config, section), attribute, value)


class EnvironmentImpl(Protocol):
    def flags(self) -> dict[str, str]: ...

    def visit_config(self, config: ApplicationConfig) -> None: ...


class DevelopmentEnvironment:
    """For local use while developing features."""

    overrides: tuple[_Override, ...] = (
        ("server", "enable_jwt", False),
        ("server", "enable_https", False),
    )

    def flags(self) -> dict[str, str]:
        return {
            "v": "10",
            "enable-authz": "false",
            "ocm-debug": "false",
            "enable-ocm-mock": "true",
            "enable-https": "false",
            "enable-metrics-https": "false",
            "api-server-hostname": "localhost",
            "api-server-bindaddress": "localhost:8000",
            "enable-sentry": "false",
        }

    def visit_config(self, config: ApplicationConfig) -> None:
        _apply_overrides(config, self.overrides)


class TestingEnvironment:
    """For local integration tests."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self.environ = environ

    def flags(self) -> dict[str, str]:
        return {
            "v": "0",
            "logtostderr": "true",
            "ocm-base-url": "https://api.integration.openshift.com",
            "enable-https": "false",
            "enable-metrics-https": "false",
            "enable-authz": "true",
            "ocm-debug": "false",
            "enable-ocm-mock": "true",
            "enable-sentry": "false",
        }

    def visit_config(self, config: ApplicationConfig) -> None:
        environ = os.environ if self.environ is None else self.environ
        if environ.get("DB_DEBUG") == "true":
            config.database.debug = True


class ProductionEnvironment:
    """Any deployed instance of the service; the configuration is taken as given."""

    overrides: tuple[_Override, ...] = ()

    def flags(self) -> dict[str, str]:
        return {
            "v": "1",
            "ocm-debug": "false",
            "enable-ocm-mock": "false",
            "enable-sentry": "true",
        }

    def visit_config(self, config: ApplicationConfig) -> None:
        _apply_overrides(config, self.overrides)


def _environment_impls() -> dict[str, EnvironmentImpl]:
    return {
        DEVELOPMENT_ENV: DevelopmentEnvironment(),
        TESTING_ENV: TestingEnvironment(),
        PRODUCTION_ENV: ProductionEnvironment(),
    }


def get_environment_name(environ: Mapping[str, str] | None = None) -> str:
    """Name of the environment selected by ``OCM_ENV``, or the default when unset or empty."""
    source = os.environ if environ is None else environ
    return source.get(ENVIRONMENT_STRING_KEY) or ENVIRONMENT_DEFAULT


def set_config_defaults(config: ApplicationConfig, defaults: Mapping[str, str]) -> None:
    """Apply every flag of ``defaults`` to ``config``; the first bad flag raises."""
    for name, value in defaults.items():
        try:
            config.set_flag(name, value)
        except ValueError:
            _LOG.error("Error setting flag %s", name)
            raise


@dataclass
class Env:
    """A named environment together with its configuration."""

    name: str = field(default_factory=get_environment_name)
    config: ApplicationConfig = field(default_factory=ApplicationConfig)
    impls: dict[str, EnvironmentImpl] = field(default_factory=_environment_impls)
    sentry_options: dict[str, Any] = field(default_factory=dict)
    initialized: bool = False

    def _impl(self) -> EnvironmentImpl:
        try:
            return self.impls[self.name]
        except KeyError:
            raise ValueError(f"Unknown runtime environment: {self.name}") from None

    def add_flags(self) -> None:
        """Apply the environment's flag defaults to the configuration."""
        set_config_defaults(self.config, self._impl().flags())

    def initialize(self) -> None:
        """Let the environment adjust the configuration and prepare error reporting."""
        _LOG.info("Initializing %s environment", self.name)
        impl = self._impl()
        impl.visit_config(self.config)
        self.sentry_options = self._sentry_options()
        self.initialized = True

    def sentry_dsn(self) -> str:
        """The error reporting DSN; empty when reporting is disabled."""
        sentry = self.config.sentry
        if not sentry.enabled:
            return ""
        return f"https://{sentry.key}@{sentry.url}/{sentry.project}"

    def _sentry_options(self) -> dict[str, Any]:
        sentry = self.config.sentry
        if sentry.enabled:
            _LOG.info(
                "Sentry error reporting enabled to %s on project %s", sentry.url, sentry.project
            )
        else:
            _LOG.info("Disabling Sentry error reporting")
        options: dict[str, Any] = {
            "dsn": self.sentry_dsn(),
            "timeout": sentry.timeout,
            "buffer_size": SENTRY_BUFFER_SIZE,
            "debug": sentry.debug,
            "attach_stacktrace": True,
            "environment": self.name,
        }
        hostname = socket.gethostname()
        if hostname:
            options["server_name"] = hostname
        return options


_environment: Env | None = None
_environment_lock = threading.Lock()


def environment() -> Env:
    """The process-wide environment, created on first use."""
    global _environment
    with _environment_lock:
        if _environment is None:
            _environment = Env()
        return _environment