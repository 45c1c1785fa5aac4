"""
Unit Tests: Configuration

Tests:
    - Duration parsing
    - Environment loading and validation
    - Command line overrides
"""

import pytest

from evstore.__main__ import build_config, parse_args
from evstore.core.config import EvStoreConfig, LimitsConfig, ObservabilityConfig
from evstore.core.types import format_timestamp, parse_duration, parse_timestamp
from evstore.storage.config import BackendType


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "EVSTORE_HOST",
        "EVSTORE_PORT",
        "EVSTORE_STORE",
        "EVSTORE_BACKEND",
        "EVSTORE_PERSIST_VALUES_FOR",
        "EVSTORE_COMPRESSION",
        "EVSTORE_LOG_LEVEL",
        "EVSTORE_LOG_JSON",
        "EVSTORE_RATE_LIMIT_BURST",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDurations:
    """Tests for parse_duration."""

    @pytest.mark.parametrize("text, seconds", [
        ("24h", 86400.0),
        ("90m", 5400.0),
        ("1h30m", 5400.0),
        ("45s", 45.0),
        ("1.5h", 5400.0),
        ("500ms", 0.5),
        ("0", 0.0),
    ])
    def test_valid(self, text, seconds):
        assert parse_duration(text).unwrap() == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "-1h", "5x", "24", "h"])
    def test_invalid(self, text):
        assert parse_duration(text).is_err()


class TestTimestamps:
    """Tests for RFC 3339 formatting."""

    def test_format(self):
        assert format_timestamp(1_700_000_000.0) == "2023-11-14T22:13:20Z"

    def test_parse(self):
        assert parse_timestamp("2023-11-14T22:13:20Z").timestamp() == 1_700_000_000.0


class TestEnvironment:
    """Tests for EvStoreConfig.from_env."""

    def test_defaults(self):
        config = EvStoreConfig.from_env().unwrap()
        assert config.service.port == 8080
        assert config.storage.backend == BackendType.SQLITE
        assert config.storage.retention_seconds == 86400
        assert config.limits.burst == 5

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EVSTORE_PORT", "9000")
        monkeypatch.setenv("EVSTORE_STORE", str(tmp_path))
        monkeypatch.setenv("EVSTORE_PERSIST_VALUES_FOR", "2h")
        monkeypatch.setenv("EVSTORE_COMPRESSION", "none")
        monkeypatch.setenv("EVSTORE_LOG_JSON", "true")
        config = EvStoreConfig.from_env().unwrap()
        assert config.service.port == 9000
        assert config.storage.sqlite.data_dir == tmp_path
        assert config.storage.sqlite.compression == "none"
        assert config.storage.retention_seconds == 7200
        assert config.observability.log_json is True

    def test_memory_store(self, monkeypatch):
        monkeypatch.setenv("EVSTORE_STORE", ":memory:")
        assert EvStoreConfig.from_env().unwrap().storage.backend == BackendType.IN_MEMORY

    @pytest.mark.parametrize("name, value", [
        ("EVSTORE_PORT", "eighty"),
        ("EVSTORE_PORT", "70000"),
        ("EVSTORE_PERSIST_VALUES_FOR", "forever"),
        ("EVSTORE_BACKEND", "cassandra"),
        ("EVSTORE_RATE_LIMIT_BURST", "0"),
    ])
    def test_invalid(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        result = EvStoreConfig.from_env()
        assert result.is_err()
        assert result.error.startswith("Configuration error")

    def test_validate_log_level(self):
        config = EvStoreConfig(observability=ObservabilityConfig(log_level="LOUD"))
        assert config.validate().is_err()

    def test_limits_reject_zero_rate(self):
        with pytest.raises(ValueError):
            LimitsConfig(rate_per_second=0)


class TestCommandLine:
    """Tests for flag parsing and overrides."""

    def test_no_flags(self):
        config = build_config(parse_args([])).unwrap()
        assert config.storage.retention_seconds == 86400

    def test_memory_store(self):
        config = build_config(parse_args(["--store", ":memory:", "--persist-values-for", "90m"])).unwrap()
        assert config.storage.backend == BackendType.IN_MEMORY
        assert config.storage.retention_seconds == 5400

    def test_store_directory(self, tmp_path):
        config = build_config(parse_args(["--store", str(tmp_path)])).unwrap()
        assert config.storage.backend == BackendType.SQLITE
        assert config.storage.sqlite.data_dir == tmp_path

    def test_listener(self):
        config = build_config(parse_args(["--host", "0.0.0.0", "--port", "9090"])).unwrap()
        assert (config.service.host, config.service.port) == ("0.0.0.0", 9090)

    def test_logging(self):
        config = build_config(parse_args(["--log-level", "debug", "--log-json"])).unwrap()
        assert config.observability.log_level == "DEBUG"
        assert config.observability.log_json is True

    def test_backend_flag(self):
        config = build_config(parse_args(["--backend", "memory"])).unwrap()
        assert config.storage.backend == BackendType.IN_MEMORY

    @pytest.mark.parametrize("argv", [
        ["--persist-values-for", "soon"],
        ["--persist-values-for", "0"],
        ["--log-level", "chatty"],
    ])
    def test_invalid(self, argv):
        assert build_config(parse_args(argv)).is_err()
