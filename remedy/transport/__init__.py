"""Remote sync service client."""

from .client import SyncClient
from .models import BatchItemResult, BatchResponse, ItemResponse, SkippedItem, SyncBatch
from .results import Conflict, NetworkError, Ok, Rejected, Timeout, TransportResult

__all__ = [
    "SyncClient",
    "BatchItemResult",
    "BatchResponse",
    "ItemResponse",
    "SkippedItem",
    "SyncBatch",
    "Conflict",
    "NetworkError",
    "Ok",
    "Rejected",
    "Timeout",
    "TransportResult",
]
