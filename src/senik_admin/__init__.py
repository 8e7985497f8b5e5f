"""
SENIK-ADMIN: administrative backend worker for SENIK domain events.

Consumes events from Kafka and runs each message through a resilient
processing pipeline: bounded retry with exponential backoff for transient
failures, immediate dead-lettering for permanent ones, and explicit offset
commits once a message reaches its outcome.

Subpackages:
    domain     - Event schemas and the className-tagged JSON codec
    common     - Consumer, producer, error handler, health, metrics
    dlq        - Dead-letter records, publisher and inspection CLI
    listeners  - Business listeners bound to topics
    runners    - Composition root and worker lifecycle

Flow:
    senik.events -> MessageConsumer -> MessageProcessor -> IncomeCalculationListener
                                            | (permanent / retries exhausted)
                                      senik.events.DLT
"""

__version__ = "0.1.0"
