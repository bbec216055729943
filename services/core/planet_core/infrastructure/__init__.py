"""Infrastructure adapters for external services."""

from planet_core.infrastructure.events import (
    CeleryEventPublisher,
    EventPublisher,
    NullEventPublisher,
    enqueue_account_erasure,
    get_celery_app,
    get_event_publisher,
)

__all__ = [
    "CeleryEventPublisher",
    "EventPublisher",
    "NullEventPublisher",
    "enqueue_account_erasure",
    "get_celery_app",
    "get_event_publisher",
]
