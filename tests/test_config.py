import pytest

from msgstore.config import (
    AppConfig,
    ConfigError,
    RetryConfig,
    load_config,
    parse_duration,
)

_ENV_VARS = (
    "APP_HTTP_ENABLED",
    "APP_GRPC_ENABLED",
    "HTTP_ADDR",
    "HTTP_READ_HEADER_TIMEOUT",
    "HTTP_READ_TIMEOUT",
    "HTTP_WRITE_TIMEOUT",
    "HTTP_IDLE_TIMEOUT",
)

FULL_CONFIG = """\
app:
  http_enable: false
  grpc_enable: true
  shutdown_timeout: 5s
retry:
  attempts: 4
  initial: 200ms
  max: 2s
  factor: 1.5
  jitter: false
http:
  addr: ":8080"
  read_header_timeout: 1s
  read_timeout: 2s
  write_timeout: 3s
  idle_timeout: 1m
mongo:
  addr: localhost:27017
  username: user
  password: password
  db_name: messages
  connect_timeout: 3s
  max_pool_size: 20
kafka:
  address: localhost:9092
  test-topic: test
  group-id: store
  network: tcp
  fetchBackoff:
    attempts: 7
  commitBackoff:
    initial: 50ms
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_parse_duration_minute():
    assert parse_duration("1m") == 60.0


def test_parse_duration_compound_is_sum_of_parts():
    assert parse_duration("1m30s") == parse_duration("1m") + parse_duration("30s")


def test_parse_duration_units_relate():
    assert parse_duration("1h") == 60 * parse_duration("1m")
    assert parse_duration("1500ms") == parse_duration("1.5s")
    assert parse_duration("2000us") == parse_duration("2ms")


def test_parse_duration_sign_and_zero():
    assert parse_duration("0") == 0.0
    assert parse_duration("-2s") == -parse_duration("2s")
    assert parse_duration("+2s") == parse_duration("2s")


def test_parse_duration_integer_is_nanoseconds():
    assert parse_duration(1_500_000_000) == parse_duration("1.5s")


@pytest.mark.parametrize("bad", ["10", "", "1x", "s", ".", "1s2", True])
def test_parse_duration_rejects_invalid(bad):
    with pytest.raises(ValueError):
        parse_duration(bad)


def test_defaults_follow_source():
    assert AppConfig().shutdown_timeout == parse_duration("10s")
    retry = RetryConfig()
    assert retry.max == parse_duration("30s")
    assert retry.initial == parse_duration("1s")


def test_load_full_config(tmp_path):
    cfg = load_config(_write(tmp_path, FULL_CONFIG))
    assert cfg.app.is_http_enabled is False
    assert cfg.app.is_grpc_enabled is True
    assert cfg.app.shutdown_timeout == parse_duration("5s")
    assert cfg.retry == RetryConfig(
        attempts=4,
        initial=parse_duration("200ms"),
        max=parse_duration("2s"),
        factor=1.5,
        jitter=False,
    )
    assert cfg.http.addr == ":8080"
    assert cfg.http.idle_timeout == parse_duration("1m")
    assert cfg.mongo.addr == "localhost:27017"
    assert cfg.mongo.db == "messages"
    assert cfg.mongo.max_pool_size == 20
    assert cfg.kafka.test_topic == "test"
    assert cfg.kafka.group_id == "store"
    assert cfg.kafka.network == "tcp"


def test_nested_backoffs_keep_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, FULL_CONFIG))
    assert cfg.kafka.fetch_backoff.attempts == 7
    assert cfg.kafka.fetch_backoff.initial == RetryConfig().initial
    assert cfg.kafka.commit_backoff.initial == parse_duration("50ms")
    assert cfg.kafka.commit_backoff.attempts == RetryConfig().attempts


def test_missing_sections_use_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, "app: {}\n"))
    assert cfg.app == AppConfig()
    assert cfg.retry == RetryConfig()
    assert cfg.http.addr == ""


def test_environment_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("HTTP_ADDR", ":9090")
    monkeypatch.setenv("APP_HTTP_ENABLED", "true")
    monkeypatch.setenv("HTTP_READ_TIMEOUT", "7s")
    cfg = load_config(_write(tmp_path, FULL_CONFIG))
    assert cfg.http.addr == ":9090"
    assert cfg.app.is_http_enabled is True
    assert cfg.http.read_timeout == parse_duration("7s")


def test_bad_environment_value(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_GRPC_ENABLED", "maybe")
    with pytest.raises(ConfigError, match="APP_GRPC_ENABLED"):
        load_config(_write(tmp_path, FULL_CONFIG))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="config not found"):
        load_config(tmp_path / "absent.yaml")


def test_empty_file(tmp_path):
    with pytest.raises(ConfigError, match="config is empty"):
        load_config(_write(tmp_path, ""))


def test_invalid_duration_names_field(tmp_path):
    with pytest.raises(ConfigError, match="retry.initial"):
        load_config(_write(tmp_path, "retry:\n  initial: fast\n"))


def test_negative_pool_size(tmp_path):
    with pytest.raises(ConfigError, match="mongo.max_pool_size"):
        load_config(_write(tmp_path, "mongo:\n  max_pool_size: -1\n"))


def test_top_level_must_be_mapping(tmp_path):
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, "- a\n- b\n"))


def test_malformed_yaml(tmp_path):
    with pytest.raises(ConfigError, match="cannot read config"):
        load_config(_write(tmp_path, "app: [unclosed\n"))