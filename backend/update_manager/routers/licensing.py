"""Subscription, license and seat allocation endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_event_sink
from ..enums import AllocationStatus
from ..events import EventSink
from ..pagination import PageParams, page_params
from ..schemas import (
    AllocationCreate,
    AllocationOut,
    LicenseCreate,
    LicenseOut,
    LicenseUpdate,
    LicenseUtilizationOut,
    Page,
    SubscriptionCreate,
    SubscriptionOut,
)
from ..security import get_actor
from ..use_cases.licensing import (
    allocate_seats_use_case,
    create_license_use_case,
    create_subscription_use_case,
    get_license_use_case,
    license_utilization_use_case,
    list_allocations_use_case,
    list_licenses_use_case,
    list_subscriptions_use_case,
    release_allocation_use_case,
    update_license_use_case,
)

router = APIRouter(tags=["licensing"])


@router.post("/customers/{customer_id}/subscriptions", response_model=SubscriptionOut, status_code=201)
def create_subscription(
    customer_id: str,
    data: SubscriptionCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return create_subscription_use_case(customer_id=customer_id, data=data, actor=actor, db=db, events=events)


@router.get("/customers/{customer_id}/subscriptions", response_model=Page[SubscriptionOut])
def list_subscriptions(
    customer_id: str,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_subscriptions_use_case(customer_id=customer_id, db=db, params=params)


@router.post("/subscriptions/{subscription_id}/licenses", response_model=LicenseOut, status_code=201)
def create_license(
    subscription_id: str,
    data: LicenseCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return create_license_use_case(subscription_id=subscription_id, data=data, actor=actor, db=db, events=events)


@router.get("/subscriptions/{subscription_id}/licenses", response_model=Page[LicenseOut])
def list_licenses(
    subscription_id: str,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_licenses_use_case(subscription_id=subscription_id, db=db, params=params)


@router.get("/licenses/{license_id}", response_model=LicenseOut)
def get_license(license_id: str, db: Session = Depends(get_db)):
    return get_license_use_case(license_id=license_id, db=db)


@router.put("/licenses/{license_id}", response_model=LicenseOut)
def update_license(
    license_id: str,
    data: LicenseUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return update_license_use_case(license_id=license_id, data=data, actor=actor, db=db, events=events)


@router.post("/licenses/{license_id}/allocations", response_model=AllocationOut, status_code=201)
def allocate_seats(
    license_id: str,
    data: AllocationCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Allocate seats to exactly one tenant or deployment."""
    return allocate_seats_use_case(license_id=license_id, data=data, actor=actor, db=db, events=events)


@router.get("/licenses/{license_id}/allocations", response_model=Page[AllocationOut])
def list_allocations(
    license_id: str,
    status: Optional[AllocationStatus] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_allocations_use_case(
        license_id=license_id,
        db=db,
        params=params,
        status=status.value if status else None,
    )


@router.get("/licenses/{license_id}/utilization", response_model=LicenseUtilizationOut)
def get_license_utilization(license_id: str, db: Session = Depends(get_db)):
    return license_utilization_use_case(license_id=license_id, db=db)


@router.post("/allocations/{allocation_id}/release", response_model=AllocationOut)
def release_allocation(
    allocation_id: str,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return release_allocation_use_case(allocation_id=allocation_id, actor=actor, db=db, events=events)
