"""Dead-letter routing and inspection.

    from senik_admin.dlq.publisher import DeadLetterPublisher
    from senik_admin.dlq.records import DeadLetterRecord
"""

__all__: list[str] = []
