"""Domain services for Planet Core."""

from planet_core.domain.services.anonymization import AnonymizationEngine, DeletionReport
from planet_core.domain.services.audit import AuditService
from planet_core.domain.services.content_store import ContentStore
from planet_core.domain.services.identity import IdentityService
from planet_core.domain.services.message_pagination import (
    MessageFilter,
    MessagePaginationEngine,
)
from planet_core.domain.services.read_tracker import ReadTracker
from planet_core.domain.services.search import SearchHit, SearchIndexCoordinator
from planet_core.domain.services.sentinel import SentinelIdentityResolver

__all__ = [
    "AnonymizationEngine",
    "AuditService",
    "ContentStore",
    "DeletionReport",
    "IdentityService",
    "MessageFilter",
    "MessagePaginationEngine",
    "ReadTracker",
    "SearchHit",
    "SearchIndexCoordinator",
    "SentinelIdentityResolver",
]
