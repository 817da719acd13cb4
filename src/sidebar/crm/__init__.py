"""CRM integration layer -- HTTP client, typed records, and client-side reconciliation.

Provides:
- CrmClient / CrmApiError: async record API client with retry
- CrmRepository: typed people/company/deal/stage operations
- CacheSlot / CrmCache: TTL-bounded, single-flight collection caches
- attributes: typed value extraction with fallback chains
- relationships: deal-to-person/company classification
- field_mapping: payload builders for create/update mutations
"""

from src.sidebar.crm.cache import CacheName, CacheSlot, CrmCache, SlotState
from src.sidebar.crm.client import CrmApiError, CrmClient
from src.sidebar.crm.repository import CrmRepository
from src.sidebar.crm.schemas import (
    Company,
    CrmRecord,
    Deal,
    Person,
    RecordKind,
    StatusOption,
)

__all__ = [
    "CacheName",
    "CacheSlot",
    "Company",
    "CrmApiError",
    "CrmCache",
    "CrmClient",
    "CrmRecord",
    "CrmRepository",
    "Deal",
    "Person",
    "RecordKind",
    "SlotState",
    "StatusOption",
]
