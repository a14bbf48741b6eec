"""Pending-updates endpoints for deployments, tenants and customers."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_pending_cache
from ..enums import DeploymentType, Priority
from ..pagination import PageParams, page_params
from ..schemas import (
    CustomerPendingUpdatesOut,
    DeploymentPendingUpdatesOut,
    Page,
    TenantPendingUpdatesOut,
)
from ..services.pending_cache import PendingUpdatesCache
from ..use_cases.pending_updates import (
    PendingFilters,
    customer_pending_updates_use_case,
    deployment_pending_updates_use_case,
    list_all_pending_updates_use_case,
    tenant_pending_updates_use_case,
)

router = APIRouter(tags=["pending-updates"])


def pending_filters(
    product_id: Optional[str] = None,
    deployment_type: Optional[DeploymentType] = None,
    priority: Optional[Priority] = None,
) -> PendingFilters:
    return PendingFilters(
        product_id=product_id,
        deployment_type=deployment_type.value if deployment_type else None,
        priority=priority.value if priority else None,
    )


@router.get("/deployments/{deployment_id}/pending-updates", response_model=DeploymentPendingUpdatesOut)
def get_deployment_pending_updates(
    deployment_id: str,
    db: Session = Depends(get_db),
    cache: Optional[PendingUpdatesCache] = Depends(get_pending_cache),
):
    return deployment_pending_updates_use_case(deployment_id=deployment_id, db=db, cache=cache)


@router.get("/tenants/{tenant_id}/pending-updates", response_model=TenantPendingUpdatesOut)
def get_tenant_pending_updates(
    tenant_id: str,
    filters: PendingFilters = Depends(pending_filters),
    db: Session = Depends(get_db),
    cache: Optional[PendingUpdatesCache] = Depends(get_pending_cache),
):
    return tenant_pending_updates_use_case(tenant_id=tenant_id, db=db, filters=filters, cache=cache)


@router.get("/customers/{customer_id}/pending-updates", response_model=CustomerPendingUpdatesOut)
def get_customer_pending_updates(
    customer_id: str,
    filters: PendingFilters = Depends(pending_filters),
    db: Session = Depends(get_db),
    cache: Optional[PendingUpdatesCache] = Depends(get_pending_cache),
):
    return customer_pending_updates_use_case(customer_id=customer_id, db=db, filters=filters, cache=cache)


@router.get("/updates/pending", response_model=Page[DeploymentPendingUpdatesOut])
def list_pending_updates(
    filters: PendingFilters = Depends(pending_filters),
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    """Deployments with at least one pending update, across all tenants."""
    return list_all_pending_updates_use_case(db=db, params=params, filters=filters)
