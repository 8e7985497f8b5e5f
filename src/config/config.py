"""SENIK-ADMIN worker configuration.

Everything lives in one YAML document (config/config.yaml):
- kafka.connection: brokers, security and client timeouts
- kafka.consumer_defaults / producer_defaults: client settings
- kafka.listeners: topic, consumer group and worker count per listener
- kafka.retry / kafka.dead_letter: consumer error handling
- health: probe and metrics server

String values may reference the environment as ${VAR} or ${VAR:-default}.
"""

import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.resilience import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent / "config" / "config.yaml"

DEFAULT_DEAD_LETTER_SUFFIX = ".DLT"

# aiokafka consumer settings used when the YAML leaves them out
DEFAULT_MAX_POLL_RECORDS = 50
DEFAULT_MAX_POLL_INTERVAL_MS = 300000

# ${NAME} or ${NAME:-default}; unset variables without a default are left as written
_ENV_REF = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

SECURITY_PROTOCOLS = ["PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL"]
OFFSET_RESET_POLICIES = ["earliest", "latest", "none"]
ACKS_VALUES = ["0", "1", "all", 0, 1]
COMPRESSION_TYPES = ["none", "gzip", "snappy", "lz4", "zstd"]


def load_yaml(path: Path) -> Dict[str, Any]:
    """Parse a YAML file; a missing or empty file yields {}."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _env_value(match: re.Match) -> str:
    name, default = match.group(1), match.group(2)
    return os.getenv(name, match.group(0) if default is None else default)


def _expand_env_vars(data: Any) -> Any:
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if isinstance(data, str):
        return _ENV_REF.sub(_env_value, data)
    return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _check_choice(settings: Dict[str, Any], key: str, choices: List[Any], context: str) -> None:
    if key in settings and settings[key] not in choices:
        raise ValueError(f"{context}: {key} must be one of {choices}, got '{settings[key]}'")


def _check_min(settings: Dict[str, Any], key: str, minimum: float, context: str) -> None:
    if key in settings and settings[key] < minimum:
        raise ValueError(f"{context}: {key} must be >= {minimum}, got {settings[key]}")


def _check_range(settings: Dict[str, Any], key: str, low: float, high: float, context: str) -> None:
    if key in settings and not low <= settings[key] <= high:
        raise ValueError(f"{context}: {key} must be between {low} and {high}, got {settings[key]}")


def _check_consumer_settings(settings: Dict[str, Any], context: str) -> None:
    """Kafka group-protocol constraints plus the explicit-commit requirement."""
    heartbeat = settings.get("heartbeat_interval_ms")
    session = settings.get("session_timeout_ms")
    max_poll = settings.get("max_poll_interval_ms")

    if heartbeat is not None and session is not None and heartbeat >= session / 3:
        raise ValueError(
            f"{context}: heartbeat_interval_ms ({heartbeat}) must be < session_timeout_ms/3 "
            f"({session / 3:.0f})"
        )
    if session is not None and max_poll is not None and session >= max_poll:
        raise ValueError(
            f"{context}: session_timeout_ms ({session}) must be < max_poll_interval_ms ({max_poll})"
        )
    if settings.get("enable_auto_commit"):
        raise ValueError(
            f"{context}: enable_auto_commit must be false; offsets are committed "
            "once each message is settled"
        )
    _check_min(settings, "max_poll_records", 1, context)
    _check_choice(settings, "auto_offset_reset", OFFSET_RESET_POLICIES, context)


def _check_producer_settings(settings: Dict[str, Any], context: str) -> None:
    _check_choice(settings, "acks", ACKS_VALUES, context)
    _check_choice(settings, "compression_type", COMPRESSION_TYPES, context)
    _check_min(settings, "linger_ms", 0, context)
    _check_min(settings, "max_batch_size", 1, context)


@dataclass
class AdminConfig:
    """Worker settings. Timings are in milliseconds.

    kafka:
      connection: {bootstrap_servers, security_protocol, sasl_*, ssl_cafile, *_ms}
      consumer_defaults: {...}
      producer_defaults: {...}
      listeners:
        income_calculation:
          topic: senik.events
          group_id: senik-admin-income-calculated-consumer-group
          concurrency: 1
          consumer: {...}        # overrides consumer_defaults
      retry: {max_attempts, initial_interval_ms, multiplier, max_interval_ms, classify_unknown}
      dead_letter: {suffix, same_partition}
    health: {enabled, port}
    """

    bootstrap_servers: str = ""
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str = "PLAIN"
    sasl_plain_username: str = ""
    sasl_plain_password: str = ""
    ssl_cafile: str = ""
    request_timeout_ms: int = 120000
    metadata_max_age_ms: int = 300000
    connections_max_idle_ms: int = 540000

    consumer_defaults: Dict[str, Any] = field(default_factory=dict)
    producer_defaults: Dict[str, Any] = field(default_factory=dict)
    listeners: Dict[str, Any] = field(default_factory=dict)

    retry: Dict[str, Any] = field(default_factory=dict)
    classify_unknown: bool = False
    dead_letter_suffix: str = DEFAULT_DEAD_LETTER_SUFFIX
    dead_letter_same_partition: bool = True

    health_port: int = 8080
    health_enabled: bool = True

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> "AdminConfig":
        """Build from a parsed (and env-expanded) config document."""
        if "kafka" not in document:
            raise ValueError("Invalid config file: missing 'kafka:' section")

        kafka = document["kafka"]
        connection = kafka.get("connection", {})
        retry = kafka.get("retry", {})
        dead_letter = kafka.get("dead_letter", {})
        health = document.get("health", {})

        return cls(
            bootstrap_servers=connection.get("bootstrap_servers", ""),
            security_protocol=connection.get("security_protocol", "PLAINTEXT"),
            sasl_mechanism=connection.get("sasl_mechanism", "PLAIN"),
            sasl_plain_username=connection.get("sasl_plain_username", ""),
            sasl_plain_password=connection.get("sasl_plain_password", ""),
            ssl_cafile=connection.get("ssl_cafile", ""),
            request_timeout_ms=int(connection.get("request_timeout_ms", cls.request_timeout_ms)),
            metadata_max_age_ms=int(connection.get("metadata_max_age_ms", cls.metadata_max_age_ms)),
            connections_max_idle_ms=int(connection.get("connections_max_idle_ms", cls.connections_max_idle_ms)),
            consumer_defaults=kafka.get("consumer_defaults", {}),
            producer_defaults=kafka.get("producer_defaults", {}),
            listeners=kafka.get("listeners", {}),
            retry=retry,
            classify_unknown=_as_bool(retry.get("classify_unknown", False)),
            dead_letter_suffix=dead_letter.get("suffix", DEFAULT_DEAD_LETTER_SUFFIX),
            dead_letter_same_partition=_as_bool(dead_letter.get("same_partition", True)),
            health_port=int(health.get("port", cls.health_port)),
            health_enabled=_as_bool(health.get("enabled", True)),
        )

    def get_listener_config(self, listener_name: str) -> Dict[str, Any]:
        try:
            return self.listeners[listener_name]
        except KeyError:
            raise ValueError(
                f"No configuration found for listener: {listener_name}. "
                f"Available listeners: {sorted(self.listeners)}"
            ) from None

    def get_consumer_config(self, listener_name: str) -> Dict[str, Any]:
        """consumer_defaults overlaid with listeners.<name>.consumer."""
        overrides = self.get_listener_config(listener_name).get("consumer", {})
        return {**self.consumer_defaults, **overrides}

    def get_producer_config(self) -> Dict[str, Any]:
        return dict(self.producer_defaults)

    def get_topic(self, listener_name: str) -> str:
        topic = self.get_listener_config(listener_name).get("topic")
        if topic is None:
            raise ValueError(f"Listener '{listener_name}' has no topic configured")
        return topic

    def get_consumer_group(self, listener_name: str) -> str:
        return self.get_listener_config(listener_name).get("group_id") or f"senik-admin-{listener_name}"

    def get_concurrency(self, listener_name: str) -> int:
        return int(self.get_listener_config(listener_name).get("concurrency", 1))

    def get_dead_letter_topic(self, topic: str) -> str:
        """e.g. senik.events -> senik.events.DLT"""
        return f"{topic}{self.dead_letter_suffix}"

    def get_retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_dict(self.retry)

    def _check_backoff_budget(self, policy: RetryPolicy) -> None:
        """Retries sleep inside the poll loop: a batch of failing records must not outlast max.poll.interval.ms."""
        per_record_ms = sum(policy.intervals_ms())
        for name in self.listeners:
            consumer = self.get_consumer_config(name)
            records = consumer.get("max_poll_records", DEFAULT_MAX_POLL_RECORDS)
            max_poll = consumer.get("max_poll_interval_ms", DEFAULT_MAX_POLL_INTERVAL_MS)
            if per_record_ms * records >= max_poll:
                raise ValueError(
                    f"retry: worst-case backoff per poll ({per_record_ms}ms x {records} records) "
                    f"must be < listeners.{name} max_poll_interval_ms ({max_poll})"
                )

    def validate(self) -> None:
        """Raise ValueError naming the first invalid setting."""
        if not self.bootstrap_servers:
            raise ValueError("bootstrap_servers is required in kafka.connection section")
        _check_choice(
            {"security_protocol": self.security_protocol.upper()},
            "security_protocol",
            SECURITY_PROTOCOLS,
            "kafka.connection",
        )

        _check_consumer_settings(self.consumer_defaults, "consumer_defaults")
        _check_producer_settings(self.producer_defaults, "producer_defaults")

        if not self.listeners:
            raise ValueError("At least one listener is required in kafka.listeners section")
        for name, listener in self.listeners.items():
            context = f"listeners.{name}"
            if not listener.get("topic"):
                raise ValueError(f"{context}: topic is required")
            _check_range(listener, "concurrency", 1, 50, context)
            if "consumer" in listener:
                _check_consumer_settings(listener["consumer"], f"{context}.consumer")

        try:
            policy = self.get_retry_policy()
        except (TypeError, ValueError) as e:
            raise ValueError(f"retry: {e}") from e
        self._check_backoff_budget(policy)

        if not self.dead_letter_suffix:
            raise ValueError("dead_letter: suffix must not be empty")
        _check_range({"port": self.health_port}, "port", 0, 65535, "health")


def _read_document(config_path: Path) -> Dict[str, Any]:
    return _expand_env_vars(load_yaml(config_path))


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AdminConfig:
    """Load, env-expand, merge overrides into, and validate config.yaml.

    Precedence: overrides > environment (via ${VAR}) > YAML > dataclass defaults.
    """
    config_path = config_path or DEFAULT_CONFIG_FILE
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info("Loading configuration from %s", config_path)
    document = _read_document(config_path)
    if overrides:
        document = _deep_merge(document, overrides)

    config = AdminConfig.from_dict(document)
    config.validate()
    logger.debug(
        "Configuration valid",
        extra={"bootstrap_servers": config.bootstrap_servers, "listeners": sorted(config.listeners)},
    )
    return config


_admin_config: Optional[AdminConfig] = None


def get_config() -> AdminConfig:
    """Process-wide config, loaded from the default file on first use."""
    global _admin_config
    if _admin_config is None:
        _admin_config = load_config()
    return _admin_config


def set_config(config: AdminConfig) -> None:
    global _admin_config
    _admin_config = config


def reset_config() -> None:
    global _admin_config
    _admin_config = None


def _describe(config: AdminConfig) -> List[str]:
    lines = [
        f"  - Listener {name}: {config.get_topic(name)} ({config.get_consumer_group(name)})"
        for name in config.listeners
    ]
    lines.append(f"  - Retry policy: {config.get_retry_policy()}")
    lines.append(f"  - Classify unknown errors by message: {config.classify_unknown}")
    return lines


def _cli_main(argv: Optional[List[str]] = None) -> int:
    """python -m config.config --validate [--show-merged] [--json] [--config PATH]"""
    import argparse

    parser = argparse.ArgumentParser(description="Validate or print the SENIK-ADMIN configuration")
    parser.add_argument("--validate", action="store_true", help="Load and validate the configuration")
    parser.add_argument("--show-merged", action="store_true", help="Print the env-expanded document")
    parser.add_argument("--config", type=Path, help="config.yaml to load (default: the packaged one)")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s: %(message)s")

    if not (args.validate or args.show_merged):
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
    except (FileNotFoundError, ValueError) as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    document = _read_document(args.config or DEFAULT_CONFIG_FILE)
    if args.json:
        output: Dict[str, Any] = {}
        if args.validate:
            output["validation"] = {"passed": True, "errors": []}
        if args.show_merged:
            output["merged_config"] = document
        print(json.dumps(output, indent=2))
        return 0

    if args.validate:
        print("✓ Configuration validation passed")
        print("\n".join(_describe(config)))
    if args.show_merged:
        print(yaml.dump(document, default_flow_style=False, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
