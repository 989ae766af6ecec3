from .publisher import ResultPublisher, NullPublisher
from .memory_publisher import MemoryQueuePublisher
from .http_publisher import HttpFormPublisher

__all__ = [
    "ResultPublisher",
    "NullPublisher",
    "MemoryQueuePublisher",
    "HttpFormPublisher",
]
