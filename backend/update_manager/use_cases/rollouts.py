"""Update detections and rollout lifecycle use-cases."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import DomainError, conflict, invalid_transition, not_found, validation_failed
from ..enums import CompatibilityStatus, ProductType, RolloutStatus, VersionState
from ..events import (
    DEPLOYMENT_CHANGED,
    ROLLOUT_INITIATED,
    ROLLOUT_STATUS_CHANGED,
    DomainEvent,
    EventSink,
)
from ..models import Deployment, UpdateDetection, UpdateRollout, Version
from ..pagination import PageParams, paginate
from ..schemas import (
    DeploymentRolloutCreate,
    DetectionCreate,
    DetectionOut,
    RolloutCreate,
    RolloutOut,
    RolloutUpdate,
)
from ..security import require_entity
from ..services.compatibility import evaluate
from ..services.rollout_rules import (
    apply_rollout_timestamps,
    normalize_rollout_status,
    validate_progress,
    validate_rollout_transition,
)
from ..services.version_algebra import same_version
from ..services.version_rules import now_utc
from .catalog import get_product
from .compatibility_matrix import rule_for_version
from .customers import get_deployment
from .pending_updates import resolve_server_version
from .upgrade_paths import plan_upgrade

logger = logging.getLogger(__name__)


def find_version(db: Session, product_id: str, version_number: str) -> Version | None:
    for version in db.query(Version).filter(Version.product_id == product_id).all():
        if same_version(version.version_number, version_number):
            return version
    return None


def _require_version(db: Session, product_id: str, version_number: str) -> Version:
    version = find_version(db, product_id, version_number)
    if version is None:
        raise not_found("Version", f"{product_id}@{version_number}")
    return version


def _require_released(version: Version) -> None:
    if version.state != VersionState.RELEASED.value:
        raise validation_failed(
            f"Version {version.version_number} is not released",
            {"version_number": version.version_number, "state": version.state},
        )


def get_rollout(db: Session, rollout_id: uuid.UUID) -> UpdateRollout:
    return require_entity(db, UpdateRollout, field="id", value=rollout_id, entity="UpdateRollout")


@store_retry
def upsert_detection_use_case(
    *,
    data: DetectionCreate,
    actor: str,
    db: Session,
    events: EventSink,
    at: datetime | None = None,
) -> DetectionOut:
    """Record the newest available version seen by an endpoint; one row per (endpoint, product)."""
    get_product(db, data.product_id)
    _require_version(db, data.product_id, data.current_version)
    available = _require_version(db, data.product_id, data.available_version)
    _require_released(available)

    at = at or now_utc()
    detection = (
        db.query(UpdateDetection)
        .filter(UpdateDetection.endpoint_id == data.endpoint_id, UpdateDetection.product_id == data.product_id)
        .with_for_update()
        .first()
    )
    if detection is None:
        detection = UpdateDetection(
            endpoint_id=data.endpoint_id,
            product_id=data.product_id,
            detected_at=at,
        )
        db.add(detection)
    elif not same_version(detection.available_version, data.available_version):
        detection.detected_at = at
    detection.current_version = data.current_version
    detection.available_version = data.available_version
    detection.last_checked_at = at
    db.flush()

    events.publish(
        db,
        DomainEvent(
            name="UpdateDetected",
            action="detect",
            resource_type="update_detection",
            resource_id=str(detection.id),
            actor=actor,
            details={
                "endpoint_id": data.endpoint_id,
                "product_id": data.product_id,
                "available_version": data.available_version,
            },
        ),
    )
    db.commit()
    db.refresh(detection)
    return DetectionOut.model_validate(detection)


@store_retry
def list_detections_use_case(
    *,
    db: Session,
    params: PageParams,
    endpoint_id: Optional[str] = None,
    product_id: Optional[str] = None,
) -> dict:
    query = db.query(UpdateDetection)
    if endpoint_id:
        query = query.filter(UpdateDetection.endpoint_id == endpoint_id)
    if product_id:
        query = query.filter(UpdateDetection.product_id == product_id)
    query = query.order_by(UpdateDetection.last_checked_at.desc(), UpdateDetection.id)
    return paginate(query, params, to_out=DetectionOut.model_validate)


def _ensure_upgrade_allowed(db: Session, *, product_id: str, from_version: str, to_version: str) -> None:
    plan = plan_upgrade(db=db, product_id=product_id, from_version=from_version, to_version=to_version)
    if plan.is_blocked:
        raise DomainError(
            code="blocked_path",
            http_status=422,
            message=f"Upgrade {from_version} -> {to_version} is blocked",
            details={"block_reason": plan.block_reason},
        )


def _record_rollout(
    db: Session,
    events: EventSink,
    *,
    endpoint_id: str,
    product_id: str,
    deployment_id: Optional[str],
    from_version: str,
    to_version: str,
    actor: str,
) -> RolloutOut:
    rollout = UpdateRollout(
        endpoint_id=endpoint_id,
        product_id=product_id,
        deployment_id=deployment_id,
        from_version=from_version,
        to_version=to_version,
        status=RolloutStatus.PENDING.value,
        progress=0,
        initiated_by=actor,
        initiated_at=now_utc(),
    )
    db.add(rollout)
    db.flush()
    events.publish(
        db,
        DomainEvent(
            name=ROLLOUT_INITIATED,
            action="initiate_rollout",
            resource_type="update_rollout",
            resource_id=str(rollout.id),
            actor=actor,
            details={
                "endpoint_id": endpoint_id,
                "deployment_id": deployment_id,
                "product_id": product_id,
                "from_version": from_version,
                "to_version": to_version,
            },
        ),
    )
    db.commit()
    db.refresh(rollout)
    logger.info(
        "rollout.initiated id=%s endpoint=%s %s->%s",
        rollout.id,
        endpoint_id,
        from_version,
        to_version,
    )
    return RolloutOut.model_validate(rollout)


@store_retry
def initiate_rollout_use_case(
    *,
    data: RolloutCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> RolloutOut:
    """Endpoint-scoped rollout; requires a prior detection for the endpoint."""
    get_product(db, data.product_id)
    _require_version(db, data.product_id, data.from_version)
    target = _require_version(db, data.product_id, data.to_version)
    _require_released(target)

    detection = (
        db.query(UpdateDetection)
        .filter(UpdateDetection.endpoint_id == data.endpoint_id, UpdateDetection.product_id == data.product_id)
        .first()
    )
    if detection is None:
        raise not_found("UpdateDetection", f"{data.endpoint_id}:{data.product_id}")

    _ensure_upgrade_allowed(db, product_id=data.product_id, from_version=data.from_version, to_version=data.to_version)
    return _record_rollout(
        db,
        events,
        endpoint_id=data.endpoint_id,
        product_id=data.product_id,
        deployment_id=None,
        from_version=data.from_version,
        to_version=data.to_version,
        actor=actor,
    )


@store_retry
def initiate_deployment_rollout_use_case(
    *,
    deployment_id: str,
    data: DeploymentRolloutCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> RolloutOut:
    deployment = get_deployment(db, deployment_id)
    product = get_product(db, deployment.product_id)
    target = _require_version(db, deployment.product_id, data.to_version)
    _require_released(target)

    _ensure_upgrade_allowed(
        db,
        product_id=deployment.product_id,
        from_version=deployment.installed_version,
        to_version=target.version_number,
    )
    if product.type == ProductType.CLIENT.value:
        server_version = resolve_server_version(db, deployment)
        if server_version is not None:
            result = evaluate(rule_for_version(db, target), server_version)
            if result.status == CompatibilityStatus.INCOMPATIBLE.value:
                raise DomainError(
                    code="incompatible",
                    http_status=422,
                    message=f"{product.product_id} {target.version_number} is incompatible with server {server_version}",
                    details={"server_version": server_version, "reason": result.reason},
                )

    return _record_rollout(
        db,
        events,
        endpoint_id=data.endpoint_id or deployment.deployment_id,
        product_id=deployment.product_id,
        deployment_id=deployment.deployment_id,
        from_version=deployment.installed_version,
        to_version=target.version_number,
        actor=actor,
    )


@store_retry
def list_rollouts_use_case(
    *,
    db: Session,
    params: PageParams,
    endpoint_id: Optional[str] = None,
    deployment_id: Optional[str] = None,
    product_id: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    query = db.query(UpdateRollout)
    if endpoint_id:
        query = query.filter(UpdateRollout.endpoint_id == endpoint_id)
    if deployment_id:
        query = query.filter(UpdateRollout.deployment_id == deployment_id)
    if product_id:
        query = query.filter(UpdateRollout.product_id == product_id)
    if status:
        query = query.filter(UpdateRollout.status == status)
    query = query.order_by(UpdateRollout.initiated_at.desc(), UpdateRollout.id)
    return paginate(query, params, to_out=RolloutOut.model_validate)


@store_retry
def get_rollout_use_case(*, rollout_id: uuid.UUID, db: Session) -> RolloutOut:
    return RolloutOut.model_validate(get_rollout(db, rollout_id))


def _apply_status(
    db: Session,
    rollout: UpdateRollout,
    *,
    next_status: str,
    error_message: Optional[str],
    at: datetime,
) -> str:
    current = normalize_rollout_status(rollout.status)
    try:
        validate_rollout_transition(current_status=current, next_status=next_status)
    except ValueError as exc:
        raise invalid_transition(str(exc), current=current, requested=next_status) from exc
    if next_status == RolloutStatus.FAILED.value and not error_message:
        raise validation_failed("error_message is required when a rollout fails", {"field": "error_message"})

    values = {"status": next_status, **apply_rollout_timestamps(next_status=next_status, error_message=error_message, at=at)}
    affected = (
        db.query(UpdateRollout)
        .filter(UpdateRollout.id == rollout.id, UpdateRollout.status == current)
        .update(values, synchronize_session=False)
    )
    if affected == 0:
        db.rollback()
        raise conflict(f"Rollout {rollout.id} changed status concurrently")
    return current


def _apply_progress(db: Session, rollout: UpdateRollout, *, progress: int) -> None:
    try:
        validate_progress(status=rollout.status, current_progress=rollout.progress, progress=progress)
    except ValueError as exc:
        raise validation_failed(str(exc), {"progress": progress, "current_progress": rollout.progress}) from exc

    affected = (
        db.query(UpdateRollout)
        .filter(
            UpdateRollout.id == rollout.id,
            UpdateRollout.status == RolloutStatus.IN_PROGRESS.value,
            UpdateRollout.progress <= progress,
        )
        .update({"progress": progress}, synchronize_session=False)
    )
    if affected == 0:
        db.rollback()
        raise conflict(f"Rollout {rollout.id} progress changed concurrently")


def _record_installed_version(db: Session, rollout: UpdateRollout, *, at: datetime) -> bool:
    """Completed rollouts move the deployment or detection forward to the installed version."""
    moved = False
    if rollout.deployment_id:
        deployment = db.query(Deployment).filter(Deployment.deployment_id == rollout.deployment_id).first()
        if deployment is not None:
            deployment.installed_version = rollout.to_version
            deployment.last_updated_date = at
            moved = True
    detection = (
        db.query(UpdateDetection)
        .filter(UpdateDetection.endpoint_id == rollout.endpoint_id, UpdateDetection.product_id == rollout.product_id)
        .first()
    )
    if detection is not None:
        detection.current_version = rollout.to_version
        detection.last_checked_at = at
    return moved


@store_retry
def update_rollout_use_case(
    *,
    rollout_id: uuid.UUID,
    data: RolloutUpdate,
    actor: str,
    db: Session,
    events: EventSink,
    at: datetime | None = None,
) -> RolloutOut:
    if data.status is None and data.progress is None:
        raise validation_failed("Nothing to update: provide status and/or progress")

    at = at or now_utc()
    rollout = get_rollout(db, rollout_id)
    next_status = data.status.value if data.status is not None else None
    previous_status = rollout.status

    # Progress belongs to the in-progress phase: report it after starting, before finishing.
    if next_status == RolloutStatus.IN_PROGRESS.value:
        _apply_status(db, rollout, next_status=next_status, error_message=data.error_message, at=at)
        db.expire(rollout)
        if data.progress is not None:
            _apply_progress(db, rollout, progress=data.progress)
    else:
        if data.progress is not None:
            _apply_progress(db, rollout, progress=data.progress)
            db.expire(rollout)
        if next_status is not None:
            _apply_status(db, rollout, next_status=next_status, error_message=data.error_message, at=at)
    db.expire(rollout)

    moved = False
    if next_status == RolloutStatus.COMPLETED.value:
        moved = _record_installed_version(db, rollout, at=at)

    if next_status is not None:
        events.publish(
            db,
            DomainEvent(
                name=ROLLOUT_STATUS_CHANGED,
                action="update_rollout",
                resource_type="update_rollout",
                resource_id=str(rollout_id),
                actor=actor,
                details={"from_status": previous_status, "to_status": next_status, "progress": rollout.progress},
            ),
        )
    if moved:
        events.publish(
            db,
            DomainEvent(
                name=DEPLOYMENT_CHANGED,
                action="update",
                resource_type="deployment",
                resource_id=rollout.deployment_id,
                actor=actor,
                details={"installed_version": rollout.to_version, "rollout_id": str(rollout_id)},
            ),
        )
    db.commit()
    db.refresh(rollout)
    logger.info(
        "rollout.updated id=%s status=%s progress=%s",
        rollout_id,
        rollout.status,
        rollout.progress,
    )
    return RolloutOut.model_validate(rollout)
