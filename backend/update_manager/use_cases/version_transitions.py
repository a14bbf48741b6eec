"""Version lifecycle transitions.

Each transition is written as a conditional UPDATE guarded by the state the
caller observed, so two concurrent requests for the same version cannot both
succeed. Side effects (audit row, release notifications, cache invalidation)
are emitted through the event sink inside the same transaction.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import conflict, invalid_transition
from ..enums import VersionState
from ..events import (
    VERSION_APPROVED,
    VERSION_DEPRECATED,
    VERSION_REJECTED,
    VERSION_RELEASED,
    VERSION_RETIRED,
    VERSION_SUBMITTED,
    DomainEvent,
    EventSink,
)
from ..models import Version
from ..schemas import VersionOut
from ..services.version_rules import now_utc, state_timestamps, validate_version_transition
from .catalog import get_version, to_version_out

logger = logging.getLogger(__name__)


def _transition(
    *,
    version_id: uuid.UUID,
    next_state: str,
    event_name: str,
    action: str,
    actor: str,
    db: Session,
    events: EventSink,
    extra_values: Optional[dict] = None,
    at: datetime | None = None,
) -> VersionOut:
    version = get_version(db, version_id)
    current = version.state
    try:
        validate_version_transition(current_state=current, next_state=next_state)
    except ValueError as exc:
        raise invalid_transition(str(exc), current=current, requested=next_state) from exc

    ts = at or now_utc()
    values = {"state": next_state, **state_timestamps(next_state=next_state, actor=actor, at=ts)}
    values.update(extra_values or {})

    affected = (
        db.query(Version)
        .filter(Version.id == version.id, Version.state == current)
        .update(values, synchronize_session=False)
    )
    if affected == 0:
        db.rollback()
        raise conflict(f"Version {version_id} changed state concurrently")
    db.expire(version)

    events.publish(
        db,
        DomainEvent(
            name=event_name,
            action=action,
            resource_type="version",
            resource_id=str(version_id),
            actor=actor,
            details={
                "product_id": version.product_id,
                "version_number": version.version_number,
                "release_type": version.release_type,
                "from_state": current,
                "to_state": next_state,
            },
        ),
    )
    db.commit()
    db.refresh(version)
    logger.info("version.transition id=%s %s->%s actor=%s", version_id, current, next_state, actor)
    return to_version_out(version, at=ts)


@store_retry
def submit_version_use_case(*, version_id: uuid.UUID, actor: str, db: Session, events: EventSink) -> VersionOut:
    return _transition(
        version_id=version_id,
        next_state=VersionState.PENDING_REVIEW.value,
        event_name=VERSION_SUBMITTED,
        action="submit",
        actor=actor,
        db=db,
        events=events,
    )


@store_retry
def approve_version_use_case(*, version_id: uuid.UUID, actor: str, db: Session, events: EventSink) -> VersionOut:
    return _transition(
        version_id=version_id,
        next_state=VersionState.APPROVED.value,
        event_name=VERSION_APPROVED,
        action="approve",
        actor=actor,
        db=db,
        events=events,
    )


@store_retry
def reject_version_use_case(*, version_id: uuid.UUID, actor: str, db: Session, events: EventSink) -> VersionOut:
    return _transition(
        version_id=version_id,
        next_state=VersionState.DRAFT.value,
        event_name=VERSION_REJECTED,
        action="reject",
        actor=actor,
        db=db,
        events=events,
    )


@store_retry
def release_version_use_case(
    *,
    version_id: uuid.UUID,
    actor: str,
    db: Session,
    events: EventSink,
    at: datetime | None = None,
) -> VersionOut:
    return _transition(
        version_id=version_id,
        next_state=VersionState.RELEASED.value,
        event_name=VERSION_RELEASED,
        action="release",
        actor=actor,
        db=db,
        events=events,
        at=at,
    )


@store_retry
def deprecate_version_use_case(
    *,
    version_id: uuid.UUID,
    actor: str,
    db: Session,
    events: EventSink,
    eol_date: datetime | None = None,
) -> VersionOut:
    return _transition(
        version_id=version_id,
        next_state=VersionState.DEPRECATED.value,
        event_name=VERSION_DEPRECATED,
        action="deprecate",
        actor=actor,
        db=db,
        events=events,
        extra_values={"eol_date": eol_date} if eol_date is not None else None,
    )


@store_retry
def retire_version_use_case(*, version_id: uuid.UUID, actor: str, db: Session, events: EventSink) -> VersionOut:
    return _transition(
        version_id=version_id,
        next_state=VersionState.EOL.value,
        event_name=VERSION_RETIRED,
        action="retire",
        actor=actor,
        db=db,
        events=events,
    )
