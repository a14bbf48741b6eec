"""Subscriptions, licenses and seat allocations.

Seat conservation: for every license the sum of seats held by active
allocations never exceeds ``number_of_seats``. The license row is locked
(``SELECT ... FOR UPDATE``) before the sum is read, and the sum is read again
after the insert so an over-allocation is rolled back instead of committed.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import DomainError, duplicate, not_found, validation_failed
from ..enums import AllocationStatus, LicenseStatus, LicenseType
from ..events import ALLOCATION_CREATED, ALLOCATION_RELEASED, DomainEvent, EventSink
from ..models import CustomerTenant, Deployment, License, LicenseAllocation, Subscription
from ..pagination import PageParams, paginate
from ..schemas import (
    AllocationCreate,
    AllocationOut,
    LicenseCreate,
    LicenseOut,
    LicenseUpdate,
    LicenseUtilizationOut,
    SubscriptionCreate,
    SubscriptionOut,
)
from ..security import require_entity
from ..services.version_rules import as_utc, now_utc
from .catalog import get_product
from .customers import get_customer

logger = logging.getLogger(__name__)


def get_subscription(db: Session, subscription_id: str) -> Subscription:
    return require_entity(db, Subscription, field="subscription_id", value=subscription_id, entity="Subscription")


def get_license(db: Session, license_id: str, *, for_update: bool = False) -> License:
    return require_entity(db, License, field="license_id", value=license_id, entity="License", for_update=for_update)


def allocated_seats(db: Session, license_id: str) -> int:
    total = (
        db.query(func.coalesce(func.sum(LicenseAllocation.number_of_seats_allocated), 0))
        .filter(
            LicenseAllocation.license_id == license_id,
            LicenseAllocation.status == AllocationStatus.ACTIVE.value,
        )
        .scalar()
    )
    return int(total or 0)


def available_seats(db: Session, license: License) -> int:
    return license.number_of_seats - allocated_seats(db, license.license_id)


def ensure_license_window(*, license_type: str, start_date: datetime, end_date: Optional[datetime]) -> None:
    if license_type != LicenseType.TIME_BASED.value:
        return
    if end_date is None:
        raise validation_failed("Time-based licenses require an end_date", {"field": "end_date"})
    if as_utc(end_date) <= as_utc(start_date):
        raise validation_failed("end_date must be after start_date", {"field": "end_date"})


def ensure_license_usable(license: License, *, at: datetime) -> None:
    if license.status != LicenseStatus.ACTIVE.value:
        raise DomainError(
            code="license_inactive",
            http_status=409,
            message=f"License {license.license_id} is {license.status}",
            details={"license_id": license.license_id, "status": license.status},
        )
    if license.license_type == LicenseType.TIME_BASED.value and license.end_date is not None:
        if as_utc(license.end_date) < at:
            raise DomainError(
                code="license_inactive",
                http_status=409,
                message=f"License {license.license_id} expired",
                details={"license_id": license.license_id, "end_date": as_utc(license.end_date).isoformat()},
            )


def _seats_exceeded(license: License, *, available: int, requested: int) -> DomainError:
    return DomainError(
        code="seats_exceeded",
        http_status=409,
        message=f"License {license.license_id} has {max(available, 0)} seats available, {requested} requested",
        details={"license_id": license.license_id, "available": max(available, 0), "requested": requested},
    )


@store_retry
def create_subscription_use_case(
    *,
    customer_id: str,
    data: SubscriptionCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> SubscriptionOut:
    get_customer(db, customer_id)
    if data.end_date is not None and as_utc(data.end_date) <= as_utc(data.start_date):
        raise validation_failed("end_date must be after start_date", {"field": "end_date"})
    if db.query(Subscription.id).filter(Subscription.subscription_id == data.subscription_id).first():
        raise duplicate("Subscription", subscription_id=data.subscription_id)

    subscription = Subscription(
        subscription_id=data.subscription_id,
        customer_id=customer_id,
        name=data.name,
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        status=data.status.value,
        created_by=actor,
        notes=data.notes,
    )
    db.add(subscription)
    db.flush()
    events.publish(
        db,
        DomainEvent(
            name="SubscriptionCreated",
            action="create",
            resource_type="subscription",
            resource_id=subscription.subscription_id,
            actor=actor,
            details={"customer_id": customer_id},
        ),
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate("Subscription", subscription_id=data.subscription_id) from exc
    db.refresh(subscription)
    return SubscriptionOut.model_validate(subscription)


@store_retry
def list_subscriptions_use_case(*, customer_id: str, db: Session, params: PageParams) -> dict:
    get_customer(db, customer_id)
    query = (
        db.query(Subscription)
        .filter(Subscription.customer_id == customer_id)
        .order_by(Subscription.subscription_id)
    )
    return paginate(query, params, to_out=SubscriptionOut.model_validate)


@store_retry
def create_license_use_case(
    *,
    subscription_id: str,
    data: LicenseCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> LicenseOut:
    get_subscription(db, subscription_id)
    get_product(db, data.product_id)
    ensure_license_window(license_type=data.license_type.value, start_date=data.start_date, end_date=data.end_date)
    if db.query(License.id).filter(License.license_id == data.license_id).first():
        raise duplicate("License", license_id=data.license_id)

    license = License(
        license_id=data.license_id,
        subscription_id=subscription_id,
        product_id=data.product_id,
        license_type=data.license_type.value,
        number_of_seats=data.number_of_seats,
        start_date=data.start_date,
        end_date=data.end_date,
        status=LicenseStatus.ACTIVE.value,
        assigned_by=actor,
        assignment_date=now_utc(),
        notes=data.notes,
    )
    db.add(license)
    db.flush()
    events.publish(
        db,
        DomainEvent(
            name="LicenseCreated",
            action="create",
            resource_type="license",
            resource_id=license.license_id,
            actor=actor,
            details={"subscription_id": subscription_id, "product_id": data.product_id, "seats": data.number_of_seats},
        ),
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate("License", license_id=data.license_id) from exc
    db.refresh(license)
    return LicenseOut.model_validate(license)


@store_retry
def list_licenses_use_case(*, subscription_id: str, db: Session, params: PageParams) -> dict:
    get_subscription(db, subscription_id)
    query = db.query(License).filter(License.subscription_id == subscription_id).order_by(License.license_id)
    return paginate(query, params, to_out=LicenseOut.model_validate)


@store_retry
def get_license_use_case(*, license_id: str, db: Session) -> LicenseOut:
    return LicenseOut.model_validate(get_license(db, license_id))


@store_retry
def update_license_use_case(
    *,
    license_id: str,
    data: LicenseUpdate,
    actor: str,
    db: Session,
    events: EventSink,
) -> LicenseOut:
    license = get_license(db, license_id, for_update=True)
    changes = data.model_dump(exclude_unset=True)

    if changes.get("number_of_seats") is not None:
        in_use = allocated_seats(db, license_id)
        if data.number_of_seats < in_use:
            raise validation_failed(
                "number_of_seats cannot drop below currently allocated seats",
                {"allocated": in_use, "requested": data.number_of_seats},
            )
        license.number_of_seats = data.number_of_seats
    if "end_date" in changes:
        ensure_license_window(license_type=license.license_type, start_date=license.start_date, end_date=data.end_date)
        license.end_date = data.end_date
    if changes.get("status") is not None:
        license.status = data.status.value
    if "notes" in changes:
        license.notes = data.notes

    events.publish(
        db,
        DomainEvent(
            name="LicenseUpdated",
            action="update",
            resource_type="license",
            resource_id=license.license_id,
            actor=actor,
            details={"fields": sorted(changes)},
        ),
    )
    db.commit()
    db.refresh(license)
    return LicenseOut.model_validate(license)


def _resolve_target(db: Session, license: License, data: AllocationCreate) -> tuple[Optional[str], Optional[str]]:
    """Validate the single allocation target against the license's customer and product."""
    if bool(data.tenant_id) == bool(data.deployment_id):
        raise validation_failed("Exactly one of tenant_id or deployment_id must be set")

    subscription = get_subscription(db, license.subscription_id)
    if data.tenant_id:
        tenant = db.query(CustomerTenant).filter(CustomerTenant.tenant_id == data.tenant_id).first()
        if tenant is None:
            raise not_found("Tenant", data.tenant_id)
        if tenant.customer_id != subscription.customer_id:
            raise validation_failed(
                "Tenant does not belong to the license customer",
                {"tenant_id": data.tenant_id, "customer_id": subscription.customer_id},
            )
        return data.tenant_id, None

    deployment = db.query(Deployment).filter(Deployment.deployment_id == data.deployment_id).first()
    if deployment is None:
        raise not_found("Deployment", data.deployment_id)
    tenant = db.query(CustomerTenant).filter(CustomerTenant.tenant_id == deployment.tenant_id).first()
    if tenant is None or tenant.customer_id != subscription.customer_id:
        raise validation_failed(
            "Deployment does not belong to the license customer",
            {"deployment_id": data.deployment_id, "customer_id": subscription.customer_id},
        )
    if deployment.product_id != license.product_id:
        raise validation_failed(
            "Deployment product does not match the license product",
            {"deployment_product_id": deployment.product_id, "license_product_id": license.product_id},
        )
    return None, data.deployment_id


@store_retry
def allocate_seats_use_case(
    *,
    license_id: str,
    data: AllocationCreate,
    actor: str,
    db: Session,
    events: EventSink,
    at: datetime | None = None,
) -> AllocationOut:
    at = at or now_utc()
    license = get_license(db, license_id, for_update=True)
    ensure_license_usable(license, at=at)
    tenant_id, deployment_id = _resolve_target(db, license, data)

    requested = data.number_of_seats_allocated
    available = available_seats(db, license)
    if requested > available:
        raise _seats_exceeded(license, available=available, requested=requested)

    allocation = LicenseAllocation(
        allocation_id=f"ALLOC-{uuid.uuid4().hex[:12].upper()}",
        license_id=license_id,
        tenant_id=tenant_id,
        deployment_id=deployment_id,
        number_of_seats_allocated=requested,
        status=AllocationStatus.ACTIVE.value,
        allocation_date=at,
        allocated_by=actor,
        notes=data.notes,
    )
    db.add(allocation)
    db.flush()

    in_use = allocated_seats(db, license_id)
    if in_use > license.number_of_seats:
        db.rollback()
        raise _seats_exceeded(license, available=license.number_of_seats - (in_use - requested), requested=requested)

    events.publish(
        db,
        DomainEvent(
            name=ALLOCATION_CREATED,
            action="allocate",
            resource_type="license_allocation",
            resource_id=allocation.allocation_id,
            actor=actor,
            details={
                "license_id": license_id,
                "tenant_id": tenant_id,
                "deployment_id": deployment_id,
                "seats": requested,
            },
        ),
    )
    db.commit()
    db.refresh(allocation)
    logger.info(
        "license.allocated license=%s allocation=%s seats=%s in_use=%s/%s",
        license_id,
        allocation.allocation_id,
        requested,
        in_use,
        license.number_of_seats,
    )
    return AllocationOut.model_validate(allocation)


@store_retry
def release_allocation_use_case(
    *,
    allocation_id: str,
    actor: str,
    db: Session,
    events: EventSink,
    at: datetime | None = None,
) -> AllocationOut:
    allocation = require_entity(
        db,
        LicenseAllocation,
        field="allocation_id",
        value=allocation_id,
        entity="LicenseAllocation",
        for_update=True,
    )
    if allocation.status == AllocationStatus.RELEASED.value:
        raise DomainError(
            code="already_released",
            http_status=409,
            message=f"Allocation {allocation_id} is already released",
            details={"allocation_id": allocation_id},
        )

    allocation.status = AllocationStatus.RELEASED.value
    allocation.released_date = at or now_utc()
    allocation.released_by = actor

    events.publish(
        db,
        DomainEvent(
            name=ALLOCATION_RELEASED,
            action="release_allocation",
            resource_type="license_allocation",
            resource_id=allocation.allocation_id,
            actor=actor,
            details={"license_id": allocation.license_id, "seats": allocation.number_of_seats_allocated},
        ),
    )
    db.commit()
    db.refresh(allocation)
    logger.info("license.released license=%s allocation=%s", allocation.license_id, allocation_id)
    return AllocationOut.model_validate(allocation)


@store_retry
def list_allocations_use_case(
    *,
    license_id: str,
    db: Session,
    params: PageParams,
    status: Optional[str] = None,
) -> dict:
    get_license(db, license_id)
    query = db.query(LicenseAllocation).filter(LicenseAllocation.license_id == license_id)
    if status:
        query = query.filter(LicenseAllocation.status == status)
    query = query.order_by(LicenseAllocation.allocation_date, LicenseAllocation.allocation_id)
    return paginate(query, params, to_out=AllocationOut.model_validate)


@store_retry
def license_utilization_use_case(*, license_id: str, db: Session) -> LicenseUtilizationOut:
    license = get_license(db, license_id)
    allocated = allocated_seats(db, license_id)
    active = (
        db.query(LicenseAllocation)
        .filter(
            LicenseAllocation.license_id == license_id,
            LicenseAllocation.status == AllocationStatus.ACTIVE.value,
        )
        .count()
    )
    total = license.number_of_seats
    return LicenseUtilizationOut(
        license_id=license_id,
        total_seats=total,
        allocated_seats=allocated,
        available_seats=total - allocated,
        utilization_percent=round(allocated * 100.0 / total, 2) if total else 0.0,
        active_allocations=active,
    )
