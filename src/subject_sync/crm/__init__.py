"""CRM integration layer -- record store interface and its implementations.

- RecordStore: ABC every store implements
- PipedriveClient: Pipedrive v1 REST adapter (httpx)
- RetryingClient: decorator adding bounded retry with linear backoff
"""

from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.pipedrive import PipedriveClient
from src.subject_sync.crm.retrying import RetryingClient

__all__ = [
    "RecordStore",
    "PipedriveClient",
    "RetryingClient",
]
