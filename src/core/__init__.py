"""
Core library: Reusable, transport-agnostic components.

Modules:
    resilience  - Retry policy with capped exponential backoff
    logging     - Structured JSON logging with worker and message context
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization and worker identifiers

Design Principles:
    - No dependency on Kafka or any specific event schema
    - All modules are independently testable
"""

from .types import ErrorCategory, ErrorClassifier

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]
