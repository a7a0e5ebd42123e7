"""Application configuration: typed sections read from YAML with environment overrides."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml


class ConfigError(Exception):
    """Raised when the configuration cannot be read or holds invalid values."""


_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_MAX_NS = 2**63 - 1


def parse_duration(value: Any) -> float:
    """Parse a duration such as ``"1m30s"`` or ``"250ms"`` into seconds.

    Integers are taken as nanoseconds, ``timedelta`` values are converted.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, int):
        return value / 1e9
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total_ns = 0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        try:
            amount = Decimal(match.group(1))
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration {value!r}") from exc
        total_ns += int(amount * _UNIT_NS[match.group(2)])
        if total_ns > _MAX_NS:
            raise ValueError(f"duration out of range {value!r}")
        pos = match.end()
    return sign * total_ns / 1e9


@dataclass
class AppConfig:
    """Switches for the application's subsystems."""

    is_http_enabled: bool = True
    is_grpc_enabled: bool = False
    shutdown_timeout: float = 10.0


@dataclass
class RetryConfig:
    """Parameters of the retry mechanism; durations are in seconds."""

    attempts: int = 3
    initial: float = 1.0
    max: float = 30.0
    factor: float = 2.0
    jitter: bool = True


@dataclass
class HTTPConfig:
    """HTTP server settings; timeouts are in seconds."""

    addr: str = ""
    read_header_timeout: float = 0.0
    read_timeout: float = 0.0
    write_timeout: float = 0.0
    idle_timeout: float = 0.0


@dataclass
class MongoConfig:
    """MongoDB connection parameters."""

    addr: str = ""
    username: str = ""
    password: str = ""
    db: str = ""
    connect_timeout: float = 0.0
    max_pool_size: int = 0


@dataclass
class KafkaConfig:
    """Kafka broker settings used by producers and consumers."""

    address: str = ""
    test_topic: str = ""
    group_id: str = ""
    network: str = ""
    fetch_backoff: RetryConfig = field(default_factory=RetryConfig)
    commit_backoff: RetryConfig = field(default_factory=RetryConfig)


@dataclass
class Config:
    """All configuration sections of the application."""

    app: AppConfig = field(default_factory=AppConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    mongo: MongoConfig = field(default_factory=MongoConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
    raise ValueError(f"invalid boolean {value!r}")


def _to_str(value: Any) -> str:
    if isinstance(value, (Mapping, list)):
        raise TypeError("expected a scalar value")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"invalid integer {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"invalid integer {value!r}")


def _to_uint(value: Any) -> int:
    number = _to_int(value)
    if number < 0:
        raise ValueError(f"must not be negative, got {number}")
    return number


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError(f"invalid number {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"invalid number {value!r}")


_FieldSpec = tuple[str, str, Callable[[Any], Any], "str | None"]


def _build(cls: type, data: Any, section: str, fields: tuple[_FieldSpec, ...], environ: Mapping[str, str]) -> Any:
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{section}: expected a mapping, got {type(data).__name__}")
    values: dict[str, Any] = {}
    for key, attr, convert, env_name in fields:
        if env_name is not None and env_name in environ:
            raw, where = environ[env_name], env_name
        elif data.get(key) is not None:
            raw, where = data[key], f"{section}.{key}"
        else:
            continue
        try:
            values[attr] = convert(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{where}: {exc}") from exc
    return cls(**values)


_APP_FIELDS: tuple[_FieldSpec, ...] = (
    ("http_enable", "is_http_enabled", _to_bool, "APP_HTTP_ENABLED"),
    ("grpc_enable", "is_grpc_enabled", _to_bool, "APP_GRPC_ENABLED"),
    ("shutdown_timeout", "shutdown_timeout", parse_duration, None),
)

_RETRY_FIELDS: tuple[_FieldSpec, ...] = (
    ("attempts", "attempts", _to_int, None),
    ("initial", "initial", parse_duration, None),
    ("max", "max", parse_duration, None),
    ("factor", "factor", _to_float, None),
    ("jitter", "jitter", _to_bool, None),
)

_HTTP_FIELDS: tuple[_FieldSpec, ...] = (
    ("addr", "addr", _to_str, "HTTP_ADDR"),
    ("read_header_timeout", "read_header_timeout", parse_duration, "HTTP_READ_HEADER_TIMEOUT"),
    ("read_timeout", "read_timeout", parse_duration, "HTTP_READ_TIMEOUT"),
    ("write_timeout", "write_timeout", parse_duration, "HTTP_WRITE_TIMEOUT"),
    ("idle_timeout", "idle_timeout", parse_duration, "HTTP_IDLE_TIMEOUT"),
)

_MONGO_FIELDS: tuple[_FieldSpec, ...] = (
    ("addr", "addr", _to_str, None),
    ("username", "username", _to_str, None),
    ("password", "password", _to_str, None),
    ("db_name", "db", _to_str, None),
    ("connect_timeout", "connect_timeout", parse_duration, None),
    ("max_pool_size", "max_pool_size", _to_uint, None),
)


def _nested_retry(section: str) -> Callable[[Any], RetryConfig]:
    def convert(raw: Any) -> RetryConfig:
        return _build(RetryConfig, raw, section, _RETRY_FIELDS, {})

    return convert


_KAFKA_FIELDS: tuple[_FieldSpec, ...] = (
    ("address", "address", _to_str, None),
    ("test-topic", "test_topic", _to_str, None),
    ("group-id", "group_id", _to_str, None),
    ("network", "network", _to_str, None),
    ("fetchBackoff", "fetch_backoff", _nested_retry("kafka.fetchBackoff"), None),
    ("commitBackoff", "commit_backoff", _nested_retry("kafka.commitBackoff"), None),
)


def _config_from_mapping(data: Any, environ: Mapping[str, str]) -> Config:
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError("config: expected a mapping at the top level")
    return Config(
        app=_build(AppConfig, data.get("app"), "app", _APP_FIELDS, environ),
        retry=_build(RetryConfig, data.get("retry"), "retry", _RETRY_FIELDS, environ),
        http=_build(HTTPConfig, data.get("http"), "http", _HTTP_FIELDS, environ),
        mongo=_build(MongoConfig, data.get("mongo"), "mongo", _MONGO_FIELDS, environ),
        kafka=_build(KafkaConfig, data.get("kafka"), "kafka", _KAFKA_FIELDS, environ),
    )


def load_config(path: str | os.PathLike[str]) -> Config:
    """Read the YAML configuration at *path*, applying environment overrides."""
    config_path = Path(path)
    try:
        stat = config_path.stat()
    except FileNotFoundError:
        raise ConfigError("config not found") from None
    except OSError as exc:
        raise ConfigError(f"cannot access config: {exc}") from exc

    if stat.st_size == 0:
        raise ConfigError("config is empty")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read config: {exc}") from exc

    return _config_from_mapping(data, os.environ)