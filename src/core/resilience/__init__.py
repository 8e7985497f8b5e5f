"""
Resilience patterns module.

Components:
    - RetryPolicy: Capped exponential backoff with a bounded attempt count
    - DEFAULT_RETRY_POLICY: Consumer error handler defaults
"""

from .retry import DEFAULT_RETRY_POLICY, RetryPolicy

__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
]
