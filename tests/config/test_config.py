from pathlib import Path

import pytest
import yaml

from config.config import (
    DEFAULT_CONFIG_FILE,
    AdminConfig,
    _cli_main,
    _deep_merge,
    _expand_env_vars,
    get_config,
    load_config,
    load_yaml,
    reset_config,
    set_config,
)
from core.resilience import DEFAULT_RETRY_POLICY, RetryPolicy


def _base_yaml() -> dict:
    return {
        "kafka": {
            "connection": {"bootstrap_servers": "broker:9092"},
            "consumer_defaults": {
                "auto_offset_reset": "earliest",
                "enable_auto_commit": False,
                "max_poll_records": 50,
            },
            "producer_defaults": {"acks": "all"},
            "listeners": {
                "income_calculation": {
                    "topic": "senik.events",
                    "group_id": "senik-admin-income-calculated-consumer-group",
                    "concurrency": 2,
                },
            },
            "retry": {
                "max_attempts": 3,
                "initial_interval_ms": 500,
                "multiplier": 1.5,
                "max_interval_ms": 2000,
            },
            "dead_letter": {"suffix": ".DLT", "same_partition": True},
        },
        "health": {"port": 9000},
    }


@pytest.fixture
def config_file(tmp_path):
    def _write(data: dict) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture(autouse=True)
def _reset_singleton():
    reset_config()
    yield
    reset_config()


# =========================================================================
# load_yaml / env expansion / merge
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/config.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = tmp_path / "test.yaml"
        config_file.write_text("key: value\nnested:\n  a: 1\n")

        assert load_yaml(config_file) == {"key": "value", "nested": {"a": 1}}

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert load_yaml(config_file) == {}


class TestExpandEnvVars:
    def test_expands_set_variable(self, monkeypatch):
        monkeypatch.setenv("BROKER", "kafka:9093")

        assert _expand_env_vars({"a": "${BROKER}"}) == {"a": "kafka:9093"}

    def test_uses_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("MISSING_VAR", raising=False)

        assert _expand_env_vars("${MISSING_VAR:-fallback}") == "fallback"
        assert _expand_env_vars("${MISSING_VAR:-}") == ""

    def test_leaves_unset_without_default(self, monkeypatch):
        monkeypatch.delenv("MISSING_VAR", raising=False)

        assert _expand_env_vars("${MISSING_VAR}") == "${MISSING_VAR}"

    def test_recurses_into_lists_and_keeps_non_strings(self, monkeypatch):
        monkeypatch.setenv("X", "1")

        assert _expand_env_vars({"l": ["${X}", 2], "n": 3}) == {"l": ["1", 2], "n": 3}


class TestDeepMerge:
    def test_nested_merge(self):
        base = {"a": {"b": 1, "c": 2}, "d": 1}

        result = _deep_merge(base, {"a": {"c": 3}, "e": 4})

        assert result == {"a": {"b": 1, "c": 3}, "d": 1, "e": 4}
        assert base["a"]["c"] == 2

    def test_non_dict_overrides(self):
        assert _deep_merge({"a": {"b": 1}}, {"a": 5}) == {"a": 5}


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_loads_all_sections(self, config_file):
        config = load_config(config_file(_base_yaml()))

        assert config.bootstrap_servers == "broker:9092"
        assert config.get_topic("income_calculation") == "senik.events"
        assert config.get_consumer_group("income_calculation") == "senik-admin-income-calculated-consumer-group"
        assert config.get_concurrency("income_calculation") == 2
        assert config.get_retry_policy() == DEFAULT_RETRY_POLICY
        assert config.get_dead_letter_topic("senik.events") == "senik.events.DLT"
        assert config.dead_letter_same_partition is True
        assert config.health_port == 9000

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_kafka_section(self, config_file):
        with pytest.raises(ValueError, match="missing 'kafka:'"):
            load_config(config_file({"health": {"port": 1}}))

    def test_overrides_are_deep_merged(self, config_file):
        config = load_config(
            config_file(_base_yaml()),
            overrides={"kafka": {"retry": {"max_attempts": 5}, "dead_letter": {"suffix": ".dead"}}},
        )

        assert config.get_retry_policy().max_attempts == 5
        assert config.get_retry_policy().initial_interval_ms == 500
        assert config.get_dead_letter_topic("senik.events") == "senik.events.dead"

    def test_env_expansion(self, config_file, monkeypatch):
        data = _base_yaml()
        data["kafka"]["connection"]["bootstrap_servers"] = "${TEST_BROKERS:-localhost:9092}"
        monkeypatch.setenv("TEST_BROKERS", "b1:9092,b2:9092")

        assert load_config(config_file(data)).bootstrap_servers == "b1:9092,b2:9092"

    def test_string_booleans(self, config_file):
        data = _base_yaml()
        data["kafka"]["dead_letter"]["same_partition"] = "false"

        assert load_config(config_file(data)).dead_letter_same_partition is False

    def test_classify_unknown_read_from_retry_section(self, config_file):
        data = _base_yaml()
        data["kafka"]["retry"]["classify_unknown"] = "true"

        config = load_config(config_file(data))

        assert config.classify_unknown is True
        assert config.get_retry_policy() == DEFAULT_RETRY_POLICY

    def test_default_config_file_is_valid(self, monkeypatch):
        for var in (
            "KAFKA_BOOTSTRAP_SERVERS",
            "KAFKA_SECURITY_PROTOCOL",
            "HEALTH_PORT",
            "SENIK_EVENTS_TOPIC",
            "RETRY_CLASSIFY_UNKNOWN",
        ):
            monkeypatch.delenv(var, raising=False)

        config = load_config(DEFAULT_CONFIG_FILE)

        assert config.bootstrap_servers == "localhost:9092"
        assert config.get_topic("income_calculation") == "senik.events"
        assert config.get_retry_policy() == RetryPolicy(3, 500, 1.5, 2000)
        assert config.classify_unknown is False
        assert config.health_port == 8080


# =========================================================================
# AdminConfig accessors and validation
# =========================================================================


class TestAdminConfig:
    def _config(self, **kwargs) -> AdminConfig:
        defaults = {
            "bootstrap_servers": "broker:9092",
            "listeners": {"income_calculation": {"topic": "senik.events"}},
        }
        defaults.update(kwargs)
        return AdminConfig(**defaults)

    def test_unknown_listener(self):
        with pytest.raises(ValueError, match="No configuration found for listener"):
            self._config().get_listener_config("nope")

    def test_consumer_group_fallback(self):
        assert self._config().get_consumer_group("income_calculation") == "senik-admin-income_calculation"

    def test_consumer_config_merges_listener_overrides(self):
        config = self._config(
            consumer_defaults={"max_poll_records": 50, "auto_offset_reset": "earliest"},
            listeners={"income_calculation": {"topic": "t", "consumer": {"max_poll_records": 5}}},
        )

        assert config.get_consumer_config("income_calculation") == {
            "max_poll_records": 5,
            "auto_offset_reset": "earliest",
        }

    def test_valid_config_passes(self):
        self._config().validate()

    def test_requires_bootstrap_servers(self):
        with pytest.raises(ValueError, match="bootstrap_servers"):
            self._config(bootstrap_servers="").validate()

    def test_rejects_unknown_security_protocol(self):
        with pytest.raises(ValueError, match="security_protocol"):
            self._config(security_protocol="TLS").validate()

    def test_requires_listener(self):
        with pytest.raises(ValueError, match="At least one listener"):
            self._config(listeners={}).validate()

    def test_listener_requires_topic(self):
        with pytest.raises(ValueError, match="topic is required"):
            self._config(listeners={"income_calculation": {}}).validate()

    def test_listener_concurrency_range(self):
        with pytest.raises(ValueError, match="concurrency"):
            self._config(listeners={"income_calculation": {"topic": "t", "concurrency": 0}}).validate()

    def test_rejects_auto_commit(self):
        with pytest.raises(ValueError, match="enable_auto_commit"):
            self._config(consumer_defaults={"enable_auto_commit": True}).validate()

    def test_heartbeat_must_be_below_third_of_session(self):
        with pytest.raises(ValueError, match="heartbeat_interval_ms"):
            self._config(
                consumer_defaults={"heartbeat_interval_ms": 20000, "session_timeout_ms": 45000}
            ).validate()

    def test_session_timeout_below_max_poll_interval(self):
        with pytest.raises(ValueError, match="session_timeout_ms"):
            self._config(
                consumer_defaults={"session_timeout_ms": 300000, "max_poll_interval_ms": 300000}
            ).validate()

    @pytest.mark.parametrize(
        "retry",
        [
            {"max_attempts": -1},
            {"multiplier": 1.0},
            {"initial_interval_ms": 3000, "max_interval_ms": 2000},
            {"max_attempts": "three"},
        ],
    )
    def test_rejects_invalid_retry_settings(self, retry):
        with pytest.raises(ValueError, match="retry:"):
            self._config(retry=retry).validate()

    def test_rejects_backoff_longer_than_poll_interval(self):
        # 2 records x (1000 + 1000)ms of backoff reaches the 4000ms poll interval
        config = self._config(
            consumer_defaults={"max_poll_records": 2, "max_poll_interval_ms": 4000},
            retry={"max_attempts": 3, "initial_interval_ms": 1000, "multiplier": 2.0, "max_interval_ms": 1000},
        )

        with pytest.raises(ValueError, match="worst-case backoff"):
            config.validate()

    def test_backoff_budget_uses_listener_overrides(self):
        retry = {"max_attempts": 3, "initial_interval_ms": 1000, "multiplier": 2.0, "max_interval_ms": 1000}
        listeners = {"income_calculation": {"topic": "t", "consumer": {"max_poll_records": 1}}}
        config = self._config(
            consumer_defaults={"max_poll_records": 2, "max_poll_interval_ms": 4000},
            listeners=listeners,
            retry=retry,
        )

        config.validate()

    def test_rejects_empty_dead_letter_suffix(self):
        with pytest.raises(ValueError, match="suffix"):
            self._config(dead_letter_suffix="").validate()

    def test_rejects_bad_health_port(self):
        with pytest.raises(ValueError, match="port"):
            self._config(health_port=70000).validate()

    def test_rejects_bad_producer_acks(self):
        with pytest.raises(ValueError, match="acks"):
            self._config(producer_defaults={"acks": "most"}).validate()


# =========================================================================
# Singleton
# =========================================================================


class TestConfigSingleton:
    def test_set_and_get(self):
        config = AdminConfig(bootstrap_servers="x", listeners={"a": {"topic": "t"}})
        set_config(config)

        assert get_config() is config

    def test_reset_forces_reload(self, monkeypatch):
        sentinel = AdminConfig(bootstrap_servers="loaded")
        monkeypatch.setattr("config.config.load_config", lambda: sentinel)

        reset_config()

        assert get_config() is sentinel


# =========================================================================
# CLI
# =========================================================================


class TestCli:
    def test_validate_passes(self, config_file, monkeypatch, capsys):
        path = config_file(_base_yaml())
        monkeypatch.setattr("sys.argv", ["config", "--validate", "--config", str(path)])

        assert _cli_main() == 0
        assert "validation passed" in capsys.readouterr().out

    def test_validate_fails_with_json(self, config_file, monkeypatch, capsys):
        data = _base_yaml()
        data["kafka"]["retry"]["multiplier"] = 0.5
        path = config_file(data)
        monkeypatch.setattr("sys.argv", ["config", "--validate", "--json", "--config", str(path)])

        assert _cli_main() == 1
        assert "retry:" in capsys.readouterr().out
