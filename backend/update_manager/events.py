"""In-process domain events and their transactional subscribers."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import event as orm_event
from sqlalchemy.orm import Session

from .models import AuditLog
from .services.pending_cache import PendingUpdatesCache
from .use_cases.notifications import notify_version_released

logger = logging.getLogger(__name__)

VERSION_CREATED = "VersionCreated"
VERSION_UPDATED = "VersionUpdated"
VERSION_SUBMITTED = "VersionSubmitted"
VERSION_APPROVED = "VersionApproved"
VERSION_REJECTED = "VersionRejected"
VERSION_RELEASED = "VersionReleased"
VERSION_DEPRECATED = "VersionDeprecated"
VERSION_RETIRED = "VersionRetired"
ALLOCATION_CREATED = "AllocationCreated"
ALLOCATION_RELEASED = "AllocationReleased"
ROLLOUT_INITIATED = "RolloutInitiated"
ROLLOUT_STATUS_CHANGED = "RolloutStatusChanged"
DEPLOYMENT_CHANGED = "DeploymentChanged"
UPGRADE_PATH_BLOCKED = "UpgradePathBlocked"
UPGRADE_PATH_UNBLOCKED = "UpgradePathUnblocked"
COMPATIBILITY_MATRIX_STORED = "CompatibilityMatrixStored"

# Events after which cached pending updates no longer reflect the catalog.
CACHE_INVALIDATING_EVENTS: frozenset[str] = frozenset(
    {
        VERSION_RELEASED,
        VERSION_DEPRECATED,
        VERSION_RETIRED,
        DEPLOYMENT_CHANGED,
        UPGRADE_PATH_BLOCKED,
        UPGRADE_PATH_UNBLOCKED,
        COMPATIBILITY_MATRIX_STORED,
    }
)


@dataclass(frozen=True)
class DomainEvent:
    name: str
    action: str
    resource_type: str
    resource_id: str
    actor: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[Session, DomainEvent], None]


class EventSink:
    """Dispatches events synchronously so subscribers share the caller's transaction."""

    def __init__(self, subscribers: list[Subscriber] | None = None):
        self._subscribers: list[Subscriber] = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, db: Session, event: DomainEvent) -> None:
        logger.debug("event.publish name=%s resource=%s:%s", event.name, event.resource_type, event.resource_id)
        for subscriber in self._subscribers:
            subscriber(db, event)


def write_audit_log(db: Session, event: DomainEvent) -> None:
    db.add(
        AuditLog(
            action=event.action,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            user_id=event.actor,
            details={"event": event.name, **event.details},
        )
    )


def write_release_notifications(db: Session, event: DomainEvent) -> None:
    if event.name != VERSION_RELEASED:
        return
    notify_version_released(
        db=db,
        product_id=event.details["product_id"],
        version_id=event.resource_id,
        version_number=event.details["version_number"],
        release_type=event.details["release_type"],
    )


def cache_invalidator(cache: PendingUpdatesCache) -> Subscriber:
    """Clear cached pending updates after the publishing transaction commits."""
    pending_key = f"pending_cache.invalidate:{id(cache)}"
    hooked_key = f"pending_cache.hooked:{id(cache)}"

    def _after_commit(session: Session) -> None:
        if session.info.pop(pending_key, False):
            cache.invalidate_all()

    def _after_soft_rollback(session: Session, previous_transaction) -> None:
        if previous_transaction.parent is None:
            session.info.pop(pending_key, None)

    def _invalidate(db: Session, event: DomainEvent) -> None:
        if event.name not in CACHE_INVALIDATING_EVENTS:
            return
        db.info[pending_key] = True
        if not db.info.get(hooked_key):
            db.info[hooked_key] = True
            orm_event.listen(db, "after_commit", _after_commit)
            orm_event.listen(db, "after_soft_rollback", _after_soft_rollback)

    return _invalidate


def build_event_sink(cache: PendingUpdatesCache | None = None) -> EventSink:
    sink = EventSink([write_audit_log, write_release_notifications])
    if cache is not None:
        sink.subscribe(cache_invalidator(cache))
    return sink
