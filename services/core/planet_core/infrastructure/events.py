"""Outbound events and background jobs.

The core does not push anything to clients itself. After a transaction
commits, routes publish a small event (message created, edited, deleted,
restored; account erased) for the notification collaborator, and hand
long-running work to the worker. Both go through Celery ``send_task`` so
the core never imports worker code.
"""

from typing import Any, Optional

from celery import Celery

from planet_core.config import Settings, get_settings
from planet_core.observability import get_logger

logger = get_logger(__name__)

EVENTS_TASK = "events.dispatch"
EVENTS_QUEUE = "events"


def get_celery_app(settings: Optional[Settings] = None) -> Celery:
    """Get a Celery app instance for sending tasks."""
    settings = settings or get_settings()
    return Celery(broker=settings.celery_broker_url, backend=settings.celery_result_backend)


class EventPublisher:
    """Publishes domain events after commit."""

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class NullEventPublisher(EventPublisher):
    """Drops events; used when no notification collaborator is configured."""

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        logger.debug("Event dropped", event=event)


class CeleryEventPublisher(EventPublisher):
    """Sends events to the ``events`` queue."""

    def __init__(self, celery_app: Celery):
        self.celery_app = celery_app

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        self.celery_app.send_task(
            EVENTS_TASK,
            kwargs={"event": event, "payload": payload},
            queue=EVENTS_QUEUE,
        )
        logger.info("Event published", event=event)


def get_event_publisher(settings: Optional[Settings] = None) -> EventPublisher:
    settings = settings or get_settings()
    if not settings.events_enabled:
        return NullEventPublisher()
    return CeleryEventPublisher(get_celery_app(settings))


def enqueue_account_erasure(
    identity_id: int,
    actor_id: Optional[int],
    delete_all_data: bool,
    reason: Optional[str],
    settings: Optional[Settings] = None,
) -> str:
    """Queue an account erasure on the worker.

    Returns:
        The Celery task id.
    """
    task = get_celery_app(settings).send_task(
        "account.erase",
        kwargs={
            "identity_id": identity_id,
            "actor_id": actor_id,
            "delete_all_data": delete_all_data,
            "reason": reason,
        },
        queue="account",
    )
    logger.info("Account erasure queued", identity_id=identity_id, task_id=task.id)
    return task.id
