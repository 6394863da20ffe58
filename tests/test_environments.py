import pytest

from trex.environments import (
    DEVELOPMENT_ENV,
    PRODUCTION_ENV,
    TESTING_ENV,
    ApplicationConfig,
    DevelopmentEnvironment,
    Env,
    ProductionEnvironment,
    TestingEnvironment,
    environment,
    get_environment_name,
    set_config_defaults,
)


def test_environment_name_defaults_to_development():
    assert get_environment_name({}) == DEVELOPMENT_ENV
    assert get_environment_name({"OCM_ENV": ""}) == DEVELOPMENT_ENV


def test_environment_name_from_variable():
    assert get_environment_name({"OCM_ENV": "production"}) == PRODUCTION_ENV


def test_set_flag_parses_values():
    config = ApplicationConfig()
    config.set_flag("api-server-bindaddress", "localhost:8000")
    config.set_flag("enable-https", "true")
    config.set_flag("v", "10")
    config.set_flag("sentry-timeout", "1m30s")
    assert config.server.bind_address == "localhost:8000"
    assert config.server.enable_https is True
    assert config.verbosity == 10
    assert config.sentry.timeout == 90.0


def test_set_flag_unknown_name_raises():
    with pytest.raises(ValueError, match="no such flag"):
        ApplicationConfig().set_flag("not-a-flag", "x")


def test_set_flag_bad_boolean_raises():
    with pytest.raises(ValueError):
        ApplicationConfig().set_flag("enable-https", "maybe")


def test_set_config_defaults_applies_all_flags():
    config = ApplicationConfig()
    set_config_defaults(config, DevelopmentEnvironment().flags())
    assert config.server.hostname == "localhost"
    assert config.server.enable_authz is False
    assert config.ocm.enable_mock is True
    assert config.sentry.enabled is False


def test_set_config_defaults_stops_on_bad_flag():
    config = ApplicationConfig()
    with pytest.raises(ValueError):
        set_config_defaults(config, {"enable-sentry": "true", "bogus": "1"})
    assert config.sentry.enabled is True


def test_development_visit_config_disables_jwt_and_https():
    config = ApplicationConfig()
    config.server.enable_https = True
    DevelopmentEnvironment().visit_config(config)
    assert config.server.enable_jwt is False
    assert config.server.enable_https is False


def test_testing_visit_config_db_debug():
    config = ApplicationConfig()
    TestingEnvironment({"DB_DEBUG": "true"}).visit_config(config)
    assert config.database.debug is True
    other = ApplicationConfig()
    TestingEnvironment({"DB_DEBUG": "yes"}).visit_config(other)
    assert other.database.debug is False


def test_testing_flags_set_ocm_url():
    env = Env(name=TESTING_ENV)
    env.add_flags()
    assert env.config.ocm.base_url == "https://api.integration.openshift.com"
    assert env.config.server.enable_authz is True


def test_production_flags_enable_sentry():
    env = Env(name=PRODUCTION_ENV)
    env.add_flags()
    assert env.config.sentry.enabled is True
    assert env.config.ocm.enable_mock is False
    assert env.config.verbosity == 1


def test_flags_are_fresh_copies():
    impl = ProductionEnvironment()
    first = impl.flags()
    first["v"] = "99"
    assert impl.flags()["v"] == "1"


def test_sentry_dsn_enabled_and_disabled():
    env = Env(name=PRODUCTION_ENV)
    assert env.sentry_dsn() == ""
    env.config.set_flag("enable-sentry", "true")
    env.config.set_flag("sentry-key", "placeholder")
    env.config.set_flag("sentry-url", "sentry.example.com")
    env.config.set_flag("sentry-project", "42")
    assert env.sentry_dsn() == "https://placeholder@sentry.example.com/42"


def test_initialize_records_sentry_options():
    env = Env(name=DEVELOPMENT_ENV)
    env.add_flags()
    env.initialize()
    assert env.initialized is True
    assert env.sentry_options["dsn"] == ""
    assert env.sentry_options["environment"] == DEVELOPMENT_ENV
    assert env.config.server.enable_jwt is False


def test_unknown_environment_raises():
    env = Env(name="staging")
    with pytest.raises(ValueError, match="Unknown runtime environment"):
        env.initialize()
    with pytest.raises(ValueError):
        env.add_flags()


def test_environment_is_singleton():
    first = environment()
    previous = first.config.verbosity
    try:
        first.config.set_flag("v", "7")
        assert environment() is first
        assert environment().config.verbosity == 7
    finally:
        first.config.verbosity = previous