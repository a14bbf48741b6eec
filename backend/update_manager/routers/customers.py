"""Customer, tenant and deployment endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_event_sink
from ..enums import CustomerStatus, DeploymentType
from ..events import EventSink
from ..pagination import PageParams, page_params
from ..schemas import (
    CustomerCreate,
    CustomerOut,
    CustomerUpdate,
    DeploymentCreate,
    DeploymentOut,
    DeploymentUpdate,
    Page,
    TenantCreate,
    TenantOut,
    TenantUpdate,
)
from ..security import get_actor
from ..use_cases.customers import (
    create_customer_use_case,
    create_deployment_use_case,
    create_tenant_use_case,
    get_customer_use_case,
    get_deployment_use_case,
    get_tenant_use_case,
    list_customers_use_case,
    list_deployments_use_case,
    list_tenants_use_case,
    update_customer_use_case,
    update_deployment_use_case,
    update_tenant_use_case,
)

router = APIRouter(tags=["customers"])


@router.post("/customers", response_model=CustomerOut, status_code=201)
def create_customer(
    data: CustomerCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return create_customer_use_case(data=data, actor=actor, db=db, events=events)


@router.get("/customers", response_model=Page[CustomerOut])
def list_customers(
    status: Optional[CustomerStatus] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_customers_use_case(db=db, params=params, status=status.value if status else None)


@router.get("/customers/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: str, db: Session = Depends(get_db)):
    return get_customer_use_case(customer_id=customer_id, db=db)


@router.put("/customers/{customer_id}", response_model=CustomerOut)
def update_customer(
    customer_id: str,
    data: CustomerUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return update_customer_use_case(customer_id=customer_id, data=data, actor=actor, db=db, events=events)


@router.post("/customers/{customer_id}/tenants", response_model=TenantOut, status_code=201)
def create_tenant(
    customer_id: str,
    data: TenantCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return create_tenant_use_case(customer_id=customer_id, data=data, actor=actor, db=db, events=events)


@router.get("/customers/{customer_id}/tenants", response_model=Page[TenantOut])
def list_tenants(
    customer_id: str,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_tenants_use_case(customer_id=customer_id, db=db, params=params)


@router.get("/tenants/{tenant_id}", response_model=TenantOut)
def get_tenant(tenant_id: str, db: Session = Depends(get_db)):
    return get_tenant_use_case(tenant_id=tenant_id, db=db)


@router.put("/tenants/{tenant_id}", response_model=TenantOut)
def update_tenant(
    tenant_id: str,
    data: TenantUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return update_tenant_use_case(tenant_id=tenant_id, data=data, actor=actor, db=db, events=events)


@router.post("/tenants/{tenant_id}/deployments", response_model=DeploymentOut, status_code=201)
def create_deployment(
    tenant_id: str,
    data: DeploymentCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return create_deployment_use_case(tenant_id=tenant_id, data=data, actor=actor, db=db, events=events)


@router.get("/tenants/{tenant_id}/deployments", response_model=Page[DeploymentOut])
def list_deployments(
    tenant_id: str,
    product_id: Optional[str] = None,
    deployment_type: Optional[DeploymentType] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_deployments_use_case(
        tenant_id=tenant_id,
        db=db,
        params=params,
        product_id=product_id,
        deployment_type=deployment_type.value if deployment_type else None,
    )


@router.get("/deployments/{deployment_id}", response_model=DeploymentOut)
def get_deployment(deployment_id: str, db: Session = Depends(get_db)):
    return get_deployment_use_case(deployment_id=deployment_id, db=db)


@router.put("/deployments/{deployment_id}", response_model=DeploymentOut)
def update_deployment(
    deployment_id: str,
    data: DeploymentUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Record a manual change (installed version, status, host details)."""
    return update_deployment_use_case(deployment_id=deployment_id, data=data, actor=actor, db=db, events=events)
