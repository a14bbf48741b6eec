"""Upgrade-path planning and operator-curated stored paths."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import duplicate, not_found, validation_failed
from ..enums import PathType, ValidationStatus, VersionState
from ..events import UPGRADE_PATH_BLOCKED, UPGRADE_PATH_UNBLOCKED, DomainEvent, EventSink
from ..models import CompatibilityMatrix, UpgradePath, Version
from ..pagination import PageParams, paginate
from ..schemas import (
    UpgradePathBlock,
    UpgradePathCreate,
    UpgradePathOut,
    UpgradePathUnblock,
    UpgradePlanOut,
)
from ..security import require_entity
from ..services.upgrade_planner import PlanCandidate, required_stops
from ..services.version_algebra import is_older, same_version
from ..services.version_rules import UPGRADE_TARGET_STATES, is_past, now_utc
from .catalog import get_product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpgradePlan:
    path_type: str
    intermediate_versions: tuple[str, ...] = field(default_factory=tuple)
    is_blocked: bool = False
    block_reason: Optional[str] = None


def _stored_path(paths: list[UpgradePath], from_version: str, to_version: str) -> UpgradePath | None:
    for path in paths:
        if same_version(path.from_version, from_version) and same_version(path.to_version, to_version):
            return path
    return None


def _blocked(reason: str | None) -> UpgradePlan:
    return UpgradePlan(path_type=PathType.BLOCKED.value, is_blocked=True, block_reason=reason)


def load_plan_candidates(db: Session, product_id: str, *, at: datetime) -> list[PlanCandidate]:
    """Released and deprecated versions of a product that have not passed EOL."""
    versions = (
        db.query(Version)
        .filter(Version.product_id == product_id, Version.state.in_(sorted(UPGRADE_TARGET_STATES)))
        .all()
    )
    matrices = {
        m.version_number: m
        for m in db.query(CompatibilityMatrix).filter(
            CompatibilityMatrix.product_id == product_id,
            CompatibilityMatrix.validation_status == ValidationStatus.PASSED.value,
        )
    }

    candidates: list[PlanCandidate] = []
    for version in versions:
        if version.state == VersionState.DEPRECATED.value and is_past(version.eol_date, at=at):
            continue
        matrix = matrices.get(version.version_number)
        candidates.append(
            PlanCandidate(
                version_number=version.version_number,
                release_type=version.release_type,
                incompatible_versions=tuple(matrix.incompatible_versions or ()) if matrix else (),
                recommended_version=matrix.recommended_server_version if matrix else None,
            )
        )
    return candidates


def plan_upgrade(
    *,
    db: Session,
    product_id: str,
    from_version: str,
    to_version: str,
    at: datetime | None = None,
    candidates: list[PlanCandidate] | None = None,
    stored_paths: list[UpgradePath] | None = None,
) -> UpgradePlan:
    """Plan the chain of installs from ``from_version`` to ``to_version``.

    ``candidates`` and ``stored_paths`` may be preloaded by callers that plan
    many targets for the same product.
    """
    if same_version(from_version, to_version):
        return UpgradePlan(path_type=PathType.DIRECT.value)
    if is_older(to_version, from_version):
        raise validation_failed(
            "Downgrades are not planned",
            {"from_version": from_version, "to_version": to_version},
        )

    at = at or now_utc()
    if stored_paths is None:
        stored_paths = db.query(UpgradePath).filter(UpgradePath.product_id == product_id).all()

    direct = _stored_path(stored_paths, from_version, to_version)
    if direct is not None and direct.is_blocked:
        return _blocked(direct.block_reason)

    if candidates is None:
        candidates = load_plan_candidates(db, product_id, at=at)
    try:
        stops = required_stops(from_version, to_version, candidates)
    except ValueError as exc:
        return _blocked(str(exc))

    chain = [from_version, *stops, to_version]
    for step_from, step_to in zip(chain, chain[1:]):
        stored = _stored_path(stored_paths, step_from, step_to)
        if stored is not None and stored.is_blocked:
            return _blocked(stored.block_reason)

    if not stops:
        return UpgradePlan(path_type=PathType.DIRECT.value)
    return UpgradePlan(path_type=PathType.MULTI_STEP.value, intermediate_versions=tuple(stops))


def _find_product_version(db: Session, product_id: str, version_number: str) -> Version | None:
    for version in db.query(Version).filter(Version.product_id == product_id).all():
        if same_version(version.version_number, version_number):
            return version
    return None


@store_retry
def get_upgrade_plan_use_case(
    *,
    product_id: str,
    from_version: str,
    to_version: str,
    db: Session,
    at: datetime | None = None,
) -> UpgradePlanOut:
    get_product(db, product_id)
    target = _find_product_version(db, product_id, to_version)
    if target is None:
        raise not_found("Version", f"{product_id}@{to_version}")
    if target.state not in UPGRADE_TARGET_STATES:
        raise validation_failed(
            "Upgrade target is not released",
            {"version_number": target.version_number, "state": target.state},
        )

    plan = plan_upgrade(db=db, product_id=product_id, from_version=from_version, to_version=to_version, at=at)
    return UpgradePlanOut(
        product_id=product_id,
        from_version=from_version,
        to_version=to_version,
        path_type=plan.path_type,
        intermediate_versions=list(plan.intermediate_versions),
        is_blocked=plan.is_blocked,
        block_reason=plan.block_reason,
    )


def _stored_path_type(*, is_blocked: bool, intermediate_versions: list[str]) -> str:
    if is_blocked:
        return PathType.BLOCKED.value
    if intermediate_versions:
        return PathType.MULTI_STEP.value
    return PathType.DIRECT.value


def _require_versions(db: Session, product_id: str, *version_numbers: str) -> None:
    for number in version_numbers:
        if _find_product_version(db, product_id, number) is None:
            raise not_found("Version", f"{product_id}@{number}")


@store_retry
def create_upgrade_path_use_case(
    *,
    product_id: str,
    data: UpgradePathCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> UpgradePathOut:
    get_product(db, product_id)
    if not is_older(data.from_version, data.to_version):
        raise validation_failed(
            "from_version must be older than to_version",
            {"from_version": data.from_version, "to_version": data.to_version},
        )
    _require_versions(db, product_id, data.from_version, data.to_version, *data.intermediate_versions)

    existing = _stored_path(
        db.query(UpgradePath).filter(UpgradePath.product_id == product_id).all(),
        data.from_version,
        data.to_version,
    )
    if existing is not None:
        raise duplicate("UpgradePath", product_id=product_id, from_version=data.from_version, to_version=data.to_version)

    path = UpgradePath(
        product_id=product_id,
        from_version=data.from_version,
        to_version=data.to_version,
        intermediate_versions=list(data.intermediate_versions),
        is_blocked=data.is_blocked,
        block_reason=data.block_reason if data.is_blocked else None,
        path_type=_stored_path_type(is_blocked=data.is_blocked, intermediate_versions=data.intermediate_versions),
    )
    db.add(path)
    db.flush()
    events.publish(
        db,
        DomainEvent(
            name="UpgradePathCreated",
            action="create",
            resource_type="upgrade_path",
            resource_id=str(path.id),
            actor=actor,
            details={"product_id": product_id, "from_version": path.from_version, "to_version": path.to_version},
        ),
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate("UpgradePath", product_id=product_id, from_version=data.from_version, to_version=data.to_version) from exc
    db.refresh(path)
    return UpgradePathOut.model_validate(path)


@store_retry
def list_upgrade_paths_use_case(
    *,
    product_id: str,
    db: Session,
    params: PageParams,
    blocked_only: bool = False,
) -> dict:
    get_product(db, product_id)
    query = db.query(UpgradePath).filter(UpgradePath.product_id == product_id)
    if blocked_only:
        query = query.filter(UpgradePath.is_blocked.is_(True))
    query = query.order_by(UpgradePath.created_at, UpgradePath.id)
    return paginate(query, params, to_out=UpgradePathOut.model_validate)


@store_retry
def get_upgrade_path_use_case(*, path_id: uuid.UUID, db: Session) -> UpgradePathOut:
    path = require_entity(db, UpgradePath, field="id", value=path_id, entity="UpgradePath")
    return UpgradePathOut.model_validate(path)


@store_retry
def block_upgrade_path_use_case(
    *,
    product_id: str,
    data: UpgradePathBlock,
    actor: str,
    db: Session,
    events: EventSink,
) -> UpgradePathOut:
    """Block a hop; the stored path is created when the operator has not curated one yet."""
    get_product(db, product_id)
    path = _stored_path(
        db.query(UpgradePath).filter(UpgradePath.product_id == product_id).all(),
        data.from_version,
        data.to_version,
    )
    if path is None:
        if not is_older(data.from_version, data.to_version):
            raise validation_failed("from_version must be older than to_version")
        _require_versions(db, product_id, data.from_version, data.to_version)
        path = UpgradePath(
            product_id=product_id,
            from_version=data.from_version,
            to_version=data.to_version,
            intermediate_versions=[],
        )
        db.add(path)

    path.is_blocked = True
    path.block_reason = data.reason
    path.path_type = PathType.BLOCKED.value
    db.flush()

    events.publish(
        db,
        DomainEvent(
            name=UPGRADE_PATH_BLOCKED,
            action="block",
            resource_type="upgrade_path",
            resource_id=str(path.id),
            actor=actor,
            details={"product_id": product_id, "from_version": path.from_version, "to_version": path.to_version, "reason": data.reason},
        ),
    )
    db.commit()
    db.refresh(path)
    logger.info("upgrade_path.blocked product=%s %s->%s", product_id, path.from_version, path.to_version)
    return UpgradePathOut.model_validate(path)


@store_retry
def unblock_upgrade_path_use_case(
    *,
    product_id: str,
    data: UpgradePathUnblock,
    actor: str,
    db: Session,
    events: EventSink,
) -> UpgradePathOut:
    get_product(db, product_id)
    path = _stored_path(
        db.query(UpgradePath).filter(UpgradePath.product_id == product_id).all(),
        data.from_version,
        data.to_version,
    )
    if path is None:
        raise not_found("UpgradePath", f"{product_id}:{data.from_version}->{data.to_version}")

    path.is_blocked = False
    path.block_reason = None
    path.path_type = _stored_path_type(is_blocked=False, intermediate_versions=list(path.intermediate_versions or []))

    events.publish(
        db,
        DomainEvent(
            name=UPGRADE_PATH_UNBLOCKED,
            action="unblock",
            resource_type="upgrade_path",
            resource_id=str(path.id),
            actor=actor,
            details={"product_id": product_id, "from_version": path.from_version, "to_version": path.to_version},
        ),
    )
    db.commit()
    db.refresh(path)
    return UpgradePathOut.model_validate(path)
