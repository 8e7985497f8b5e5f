"""Shared Kafka security configuration builder."""

import ssl

from config.config import AdminConfig

SASL_MECHANISMS = ("PLAIN", "SCRAM-SHA-256", "SCRAM-SHA-512")


def build_kafka_security_config(config: AdminConfig) -> dict:
    """Build aiokafka security kwargs from AdminConfig.

    Handles SSL context creation and SASL PLAIN / SCRAM credentials.
    Returns an empty dict for PLAINTEXT connections.
    """
    protocol = config.security_protocol.upper()
    if protocol == "PLAINTEXT":
        return {}

    security_config: dict = {"security_protocol": protocol}

    if "SSL" in protocol:
        security_config["ssl_context"] = ssl.create_default_context(
            cafile=config.ssl_cafile or None
        )

    if protocol.startswith("SASL"):
        mechanism = config.sasl_mechanism.upper()
        if mechanism not in SASL_MECHANISMS:
            raise ValueError(
                f"Unsupported sasl_mechanism '{config.sasl_mechanism}'. "
                f"Supported: {list(SASL_MECHANISMS)}"
            )
        security_config["sasl_mechanism"] = mechanism
        security_config["sasl_plain_username"] = config.sasl_plain_username
        security_config["sasl_plain_password"] = config.sasl_plain_password

    return security_config
