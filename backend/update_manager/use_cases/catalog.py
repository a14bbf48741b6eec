"""Product and version catalog use-cases."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import DomainError, duplicate, invalid_transition, validation_failed
from ..enums import VersionState
from ..events import VERSION_CREATED, VERSION_UPDATED, DomainEvent, EventSink
from ..models import Product, Version
from ..pagination import PageParams, page_of, paginate
from ..schemas import (
    EolWarningOut,
    PackageCreate,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    VersionCreate,
    VersionOut,
    VersionUpdate,
)
from ..security import require_entity
from ..services.compatibility import CompatibilityRule, validate_rule
from ..services.version_algebra import sort_key
from ..services.version_rules import (
    as_utc,
    effective_state,
    ensure_editable,
    now_utc,
    validate_package,
)

logger = logging.getLogger(__name__)


def to_version_out(version: Version, *, at: datetime | None = None) -> VersionOut:
    return VersionOut(
        id=version.id,
        product_id=version.product_id,
        version_number=version.version_number,
        release_type=version.release_type,
        state=version.state,
        effective_state=effective_state(state=version.state, eol_date=version.eol_date, at=at),
        release_date=version.release_date,
        released_at=version.released_at,
        eol_date=version.eol_date,
        min_server_version=version.min_server_version,
        max_server_version=version.max_server_version,
        recommended_server_version=version.recommended_server_version,
        release_notes=version.release_notes,
        packages=list(version.packages or []),
        created_by=version.created_by,
        approved_by=version.approved_by,
        approved_at=version.approved_at,
        created_at=version.created_at,
        updated_at=version.updated_at,
    )


def get_product(db: Session, product_id: str, *, for_update: bool = False) -> Product:
    return require_entity(db, Product, field="product_id", value=product_id, entity="Product", for_update=for_update)


def get_version(db: Session, version_id: uuid.UUID, *, for_update: bool = False) -> Version:
    return require_entity(db, Version, field="id", value=version_id, entity="Version", for_update=for_update)


def _commit_or_duplicate(db: Session, entity: str, **key: object) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate(entity, **key) from exc


def _ensure_interval(min_version: Optional[str], max_version: Optional[str], recommended: Optional[str]) -> None:
    errors = validate_rule(
        CompatibilityRule(
            min_server_version=min_version,
            max_server_version=max_version,
            recommended_server_version=recommended,
        )
    )
    if errors:
        raise validation_failed("Invalid server version constraints", {"errors": errors})


@store_retry
def create_product_use_case(*, data: ProductCreate, actor: str, db: Session, events: EventSink) -> ProductOut:
    if db.query(Product).filter(Product.product_id == data.product_id).first():
        raise duplicate("Product", product_id=data.product_id)

    product = Product(
        product_id=data.product_id,
        name=data.name,
        type=data.type.value,
        description=data.description,
        vendor=data.vendor,
        is_active=True,
    )
    db.add(product)
    db.flush()
    events.publish(
        db,
        DomainEvent(
            name="ProductCreated",
            action="create",
            resource_type="product",
            resource_id=product.product_id,
            actor=actor,
            details={"name": product.name, "type": product.type},
        ),
    )
    _commit_or_duplicate(db, "Product", product_id=data.product_id)
    db.refresh(product)
    return ProductOut.model_validate(product)


@store_retry
def list_products_use_case(
    *,
    db: Session,
    params: PageParams,
    active_only: bool = False,
    product_type: Optional[str] = None,
) -> dict:
    query = db.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if product_type:
        query = query.filter(Product.type == product_type)
    return paginate(query.order_by(Product.product_id), params, to_out=ProductOut.model_validate)


@store_retry
def get_product_use_case(*, product_id: str, db: Session) -> ProductOut:
    return ProductOut.model_validate(get_product(db, product_id))


@store_retry
def update_product_use_case(
    *,
    product_id: str,
    data: ProductUpdate,
    actor: str,
    db: Session,
    events: EventSink,
) -> ProductOut:
    product = get_product(db, product_id)
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(product, field, value)

    events.publish(
        db,
        DomainEvent(
            name="ProductUpdated",
            action="update",
            resource_type="product",
            resource_id=product.product_id,
            actor=actor,
            details={"fields": sorted(changes)},
        ),
    )
    db.commit()
    db.refresh(product)
    return ProductOut.model_validate(product)


@store_retry
def deactivate_product_use_case(*, product_id: str, actor: str, db: Session, events: EventSink) -> ProductOut:
    """Soft delete: the product stays referenced by versions and deployments."""
    product = get_product(db, product_id)
    product.is_active = False
    events.publish(
        db,
        DomainEvent(
            name="ProductDeactivated",
            action="delete",
            resource_type="product",
            resource_id=product.product_id,
            actor=actor,
        ),
    )
    db.commit()
    db.refresh(product)
    return ProductOut.model_validate(product)


@store_retry
def create_version_use_case(
    *,
    product_id: str,
    data: VersionCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> VersionOut:
    product = get_product(db, product_id)
    if not product.is_active:
        raise validation_failed("Product is inactive", {"product_id": product_id})

    _ensure_interval(data.min_server_version, data.max_server_version, data.recommended_server_version)

    exists = (
        db.query(Version.id)
        .filter(Version.product_id == product_id, Version.version_number == data.version_number)
        .first()
    )
    if exists:
        raise duplicate("Version", product_id=product_id, version_number=data.version_number)

    version = Version(
        product_id=product_id,
        version_number=data.version_number,
        release_type=data.release_type.value,
        state=VersionState.DRAFT.value,
        release_date=data.release_date,
        eol_date=data.eol_date,
        min_server_version=data.min_server_version,
        max_server_version=data.max_server_version,
        recommended_server_version=data.recommended_server_version,
        release_notes=data.release_notes,
        packages=[],
        created_by=actor,
    )
    db.add(version)
    db.flush()
    events.publish(
        db,
        DomainEvent(
            name=VERSION_CREATED,
            action="create",
            resource_type="version",
            resource_id=str(version.id),
            actor=actor,
            details={"product_id": product_id, "version_number": version.version_number},
        ),
    )
    _commit_or_duplicate(db, "Version", product_id=product_id, version_number=data.version_number)
    db.refresh(version)
    logger.info("version.created product=%s version=%s", product_id, version.version_number)
    return to_version_out(version)


@store_retry
def list_versions_use_case(
    *,
    product_id: str,
    db: Session,
    params: PageParams,
    state: Optional[str] = None,
) -> dict:
    get_product(db, product_id)
    query = db.query(Version).filter(Version.product_id == product_id)
    if state:
        query = query.filter(Version.state == state)

    at = now_utc()
    # Newest first by version ordering, which the store cannot sort on.
    versions = sorted(query.all(), key=lambda v: sort_key(v.version_number), reverse=True)
    window = versions[params.offset: params.offset + params.limit]
    return page_of([to_version_out(v, at=at) for v in window], total=len(versions), params=params)


@store_retry
def get_version_use_case(*, version_id: uuid.UUID, db: Session) -> VersionOut:
    return to_version_out(get_version(db, version_id))


@store_retry
def update_version_use_case(
    *,
    version_id: uuid.UUID,
    data: VersionUpdate,
    actor: str,
    db: Session,
    events: EventSink,
) -> VersionOut:
    version = get_version(db, version_id)
    try:
        ensure_editable(version.state)
    except ValueError as exc:
        raise invalid_transition(str(exc), current=version.state, requested="edit") from exc

    changes = data.model_dump(exclude_unset=True)
    if changes.get("release_type") is not None:
        changes["release_type"] = data.release_type.value
    else:
        changes.pop("release_type", None)

    _ensure_interval(
        changes.get("min_server_version", version.min_server_version),
        changes.get("max_server_version", version.max_server_version),
        changes.get("recommended_server_version", version.recommended_server_version),
    )
    for field, value in changes.items():
        setattr(version, field, value)

    events.publish(
        db,
        DomainEvent(
            name=VERSION_UPDATED,
            action="update",
            resource_type="version",
            resource_id=str(version.id),
            actor=actor,
            details={"fields": sorted(changes)},
        ),
    )
    db.commit()
    db.refresh(version)
    return to_version_out(version)


@store_retry
def add_package_use_case(
    *,
    version_id: uuid.UUID,
    data: PackageCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> VersionOut:
    version = get_version(db, version_id, for_update=True)
    try:
        ensure_editable(version.state)
    except ValueError as exc:
        raise invalid_transition(str(exc), current=version.state, requested="add_package") from exc
    try:
        validate_package(package_type=data.type.value, sha256=data.sha256)
    except ValueError as exc:
        raise validation_failed(str(exc), {"field": "sha256"}) from exc

    package = {
        "id": str(uuid.uuid4()),
        "type": data.type.value,
        "name": data.name,
        "size_bytes": data.size_bytes,
        "sha256": data.sha256.lower(),
        "url": data.url,
        "uploaded_at": now_utc().isoformat(),
        "uploaded_by": actor,
    }
    # Reassign so the JSON column is marked dirty.
    version.packages = [*(version.packages or []), package]

    events.publish(
        db,
        DomainEvent(
            name=VERSION_UPDATED,
            action="add_package",
            resource_type="version",
            resource_id=str(version.id),
            actor=actor,
            details={"package_id": package["id"], "package_type": package["type"]},
        ),
    )
    db.commit()
    db.refresh(version)
    return to_version_out(version)


@store_retry
def list_eol_warnings_use_case(
    *,
    product_id: str,
    db: Session,
    within_days: int,
    at: datetime | None = None,
) -> list[EolWarningOut]:
    """Released or deprecated versions reaching EOL within ``within_days``."""
    if within_days < 0:
        raise DomainError(code="validation_failed", http_status=400, message="within_days must be >= 0")
    get_product(db, product_id)
    at = at or now_utc()

    versions = (
        db.query(Version)
        .filter(
            Version.product_id == product_id,
            Version.state.in_([VersionState.RELEASED.value, VersionState.DEPRECATED.value]),
            Version.eol_date.isnot(None),
        )
        .all()
    )
    warnings: list[EolWarningOut] = []
    for version in versions:
        eol = as_utc(version.eol_date)
        remaining = eol - at
        if remaining.total_seconds() < 0 or remaining.days > within_days:
            continue
        warnings.append(
            EolWarningOut(
                version_id=version.id,
                product_id=version.product_id,
                version_number=version.version_number,
                state=version.state,
                eol_date=eol,
                days_remaining=remaining.days,
            )
        )
    warnings.sort(key=lambda w: w.eol_date)
    return warnings
