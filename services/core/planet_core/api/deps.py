"""API dependencies for dependency injection."""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from planet_core.config import Settings, get_settings
from planet_core.domain.models import User
from planet_core.infra.db import get_sync_session_factory
from planet_core.infrastructure.events import EventPublisher, get_event_publisher
from planet_core.observability import RequestContext


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_app_settings(request: Request) -> Settings:
    """Settings stored on the app at startup, falling back to the environment."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_current_actor(
    db: Annotated[Session, Depends(get_db)],
    x_actor_id: Annotated[Optional[int], Header()] = None,
) -> User:
    """Resolve the acting identity from the gateway header.

    The gateway authenticates the session and forwards the identity id.

    Raises:
        HTTPException: 401 if the header is missing or unknown, 403 if the
            identity is erased or a system identity.
    """
    if x_actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    actor = db.get(User, x_actor_id)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown identity",
        )
    if actor.deleted_at is not None or actor.is_system:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Identity is not active",
        )
    return actor


def get_request_context(
    request: Request,
    actor: Annotated[User, Depends(get_current_actor)],
    x_request_id: Annotated[Optional[str], Header()] = None,
) -> RequestContext:
    """Logging context for the current request."""
    return RequestContext(
        request_id=x_request_id,
        actor_id=actor.id,
        path=request.url.path,
        method=request.method,
    )


def get_publisher(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> EventPublisher:
    return get_event_publisher(settings)


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
CurrentActor = Annotated[User, Depends(get_current_actor)]
RequestCtx = Annotated[RequestContext, Depends(get_request_context)]
Publisher = Annotated[EventPublisher, Depends(get_publisher)]
