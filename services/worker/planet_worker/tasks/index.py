"""Search column maintenance tasks.

``messages.searchable_text`` is written synchronously on every append and
edit. These tasks rebuild it in bulk, e.g. after the normalization rules
change, without touching the request path.

A sweep that stops early, on ``max_batches`` or on the soft time limit,
re-enqueues itself from the last committed id so long tables are covered
across several runs instead of restarting from the beginning.
"""

from typing import Any

from celery.exceptions import SoftTimeLimitExceeded

from planet_worker.celery_app import app

DEFAULT_BATCH_SIZE = 500


@app.task(name="index.reindex_messages", bind=True)
def reindex_messages(
    self,
    batch_size: int = DEFAULT_BATCH_SIZE,
    after_id: int = 0,
    max_batches: int = 0,
    resume: bool = True,
) -> dict[str, Any]:
    """Rebuild the search column in id order, one committed batch at a time.

    Args:
        batch_size: Messages per batch (and per transaction).
        after_id: Resume after this message id.
        max_batches: Stop after this many batches (0 means until done).
        resume: Re-enqueue the rest of the sweep when stopped early.

    Returns:
        Dictionary with status, totals and the last committed id. The status
        is ``continued`` when the remainder was handed to a new run.
    """
    # Import here to avoid circular imports
    from planet_core.domain.services.search import SearchIndexCoordinator
    from planet_core.infra.db import get_sync_session_factory
    from planet_core.observability import get_logger

    logger = get_logger(__name__)
    session = get_sync_session_factory()()

    processed = 0
    updated = 0
    batches = 0
    last_id = after_id
    finished = False

    try:
        coordinator = SearchIndexCoordinator(session)
        while True:
            result = coordinator.reindex(batch_size=batch_size, after_id=last_id)
            session.commit()
            if result["processed"] == 0:
                finished = True
                break

            processed += result["processed"]
            updated += result["updated"]
            last_id = result["last_id"]
            batches += 1
            if max_batches and batches >= max_batches:
                break

    except SoftTimeLimitExceeded:
        # The batch in flight is lost; everything up to last_id is committed
        session.rollback()
        logger.warning("Search reindex hit the time limit", last_id=last_id)

    except Exception as e:
        session.rollback()
        logger.error("Search reindex failed", exc_info=True, last_id=last_id)
        return {
            "status": "error",
            "processed": processed,
            "updated": updated,
            "last_id": last_id,
            "error": str(e),
        }
    finally:
        session.close()

    status = "success"
    if not finished and resume:
        self.apply_async(
            kwargs={
                "batch_size": batch_size,
                "after_id": last_id,
                "max_batches": max_batches,
                "resume": resume,
            }
        )
        status = "continued"

    logger.info(
        "Search column reindexed",
        processed=processed,
        updated=updated,
        last_id=last_id,
        status=status,
    )
    return {
        "status": status,
        "processed": processed,
        "updated": updated,
        "last_id": last_id,
    }
