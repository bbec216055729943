"""Account lifecycle tasks.

Account erasure runs here when the API is configured to hand it off
instead of erasing inside the request.
"""

from typing import Any, Optional

from planet_worker.celery_app import app


@app.task(name="account.erase", bind=True, max_retries=3)
def erase(
    self,
    identity_id: int,
    actor_id: Optional[int] = None,
    delete_all_data: bool = True,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """Erase an identity.

    Transient database errors are retried; the erasure is idempotent, so a
    retry after a partial failure (which was rolled back) is safe.

    Returns:
        Dictionary with status and the deletion report.
    """
    # Import here to avoid circular imports
    from sqlalchemy.exc import OperationalError

    from planet_core.domain.errors import CoreError
    from planet_core.domain.services.anonymization import AnonymizationEngine
    from planet_core.infra.db import get_sync_session_factory
    from planet_core.observability import RequestContext

    session = get_sync_session_factory()()
    context = RequestContext(
        request_id=self.request.id,
        actor_id=actor_id,
        extra={"task": "account.erase"},
    )

    try:
        report = AnonymizationEngine(session).erase_account(
            identity_id,
            actor_id=actor_id,
            delete_all_data=delete_all_data,
            reason=reason,
            context=context,
        )
        return {
            "status": "success",
            "identity_id": identity_id,
            "report": report.to_dict(),
        }

    except CoreError as e:
        return {
            "status": "error",
            "identity_id": identity_id,
            "error": e.message,
            "code": e.code,
        }
    except OperationalError as exc:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=30 * (self.request.retries + 1))
        return {
            "status": "error",
            "identity_id": identity_id,
            "error": str(exc),
        }
    finally:
        session.close()
