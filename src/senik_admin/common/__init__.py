"""Transport infrastructure shared by all listeners.

Import concrete classes from their submodules so aiokafka and aiohttp are
only loaded when needed:
    from senik_admin.common.consumer import MessageConsumer
    from senik_admin.common.error_handler import MessageProcessor
    from senik_admin.common.producer import MessageProducer
"""

from senik_admin.common.types import Outcome, PipelineMessage, ProduceResult

__all__ = [
    "Outcome",
    "PipelineMessage",
    "ProduceResult",
]
