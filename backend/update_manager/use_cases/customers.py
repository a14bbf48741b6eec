"""Customer, tenant and deployment use-cases."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import duplicate
from ..enums import CustomerStatus, DeploymentStatus, TenantStatus
from ..events import DEPLOYMENT_CHANGED, DomainEvent, EventSink
from ..models import Customer, CustomerTenant, Deployment
from ..pagination import PageParams, paginate
from ..schemas import (
    CustomerCreate,
    CustomerOut,
    CustomerUpdate,
    DeploymentCreate,
    DeploymentOut,
    DeploymentUpdate,
    TenantCreate,
    TenantOut,
    TenantUpdate,
)
from ..security import require_entity
from ..services.version_rules import now_utc
from .catalog import get_product

logger = logging.getLogger(__name__)


def get_customer(db: Session, customer_id: str) -> Customer:
    return require_entity(db, Customer, field="customer_id", value=customer_id, entity="Customer")


def get_tenant(db: Session, tenant_id: str) -> CustomerTenant:
    return require_entity(db, CustomerTenant, field="tenant_id", value=tenant_id, entity="Tenant")


def get_deployment(db: Session, deployment_id: str) -> Deployment:
    return require_entity(db, Deployment, field="deployment_id", value=deployment_id, entity="Deployment")


def _audit(events: EventSink, db: Session, *, name: str, action: str, resource_type: str, resource_id: str, actor: str, **details) -> None:
    events.publish(
        db,
        DomainEvent(
            name=name,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            actor=actor,
            details=details,
        ),
    )


@store_retry
def create_customer_use_case(*, data: CustomerCreate, actor: str, db: Session, events: EventSink) -> CustomerOut:
    if db.query(Customer.id).filter(Customer.customer_id == data.customer_id).first():
        raise duplicate("Customer", customer_id=data.customer_id)

    customer = Customer(
        customer_id=data.customer_id,
        name=data.name,
        organization_name=data.organization_name,
        email=data.email,
        phone=data.phone,
        address=data.address,
        account_status=CustomerStatus.ACTIVE.value,
        notification_preferences=data.notification_preferences.model_dump(),
    )
    db.add(customer)
    db.flush()
    _audit(events, db, name="CustomerCreated", action="create", resource_type="customer", resource_id=customer.customer_id, actor=actor)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate("Customer", customer_id=data.customer_id) from exc
    db.refresh(customer)
    return CustomerOut.model_validate(customer)


@store_retry
def list_customers_use_case(*, db: Session, params: PageParams, status: Optional[str] = None) -> dict:
    query = db.query(Customer)
    if status:
        query = query.filter(Customer.account_status == status)
    return paginate(query.order_by(Customer.customer_id), params, to_out=CustomerOut.model_validate)


@store_retry
def get_customer_use_case(*, customer_id: str, db: Session) -> CustomerOut:
    return CustomerOut.model_validate(get_customer(db, customer_id))


@store_retry
def update_customer_use_case(
    *,
    customer_id: str,
    data: CustomerUpdate,
    actor: str,
    db: Session,
    events: EventSink,
) -> CustomerOut:
    customer = get_customer(db, customer_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "account_status" in changes:
        changes["account_status"] = data.account_status.value
    for field, value in changes.items():
        setattr(customer, field, value)

    _audit(
        events, db,
        name="CustomerUpdated", action="update", resource_type="customer",
        resource_id=customer.customer_id, actor=actor, fields=sorted(changes),
    )
    db.commit()
    db.refresh(customer)
    return CustomerOut.model_validate(customer)


@store_retry
def create_tenant_use_case(
    *,
    customer_id: str,
    data: TenantCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> TenantOut:
    get_customer(db, customer_id)
    if db.query(CustomerTenant.id).filter(CustomerTenant.tenant_id == data.tenant_id).first():
        raise duplicate("Tenant", tenant_id=data.tenant_id)

    tenant = CustomerTenant(
        tenant_id=data.tenant_id,
        customer_id=customer_id,
        name=data.name,
        description=data.description,
        status=TenantStatus.ACTIVE.value,
    )
    db.add(tenant)
    db.flush()
    _audit(
        events, db,
        name="TenantCreated", action="create", resource_type="tenant",
        resource_id=tenant.tenant_id, actor=actor, customer_id=customer_id,
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate("Tenant", tenant_id=data.tenant_id) from exc
    db.refresh(tenant)
    return TenantOut.model_validate(tenant)


@store_retry
def list_tenants_use_case(*, customer_id: str, db: Session, params: PageParams) -> dict:
    get_customer(db, customer_id)
    query = db.query(CustomerTenant).filter(CustomerTenant.customer_id == customer_id).order_by(CustomerTenant.tenant_id)
    return paginate(query, params, to_out=TenantOut.model_validate)


@store_retry
def get_tenant_use_case(*, tenant_id: str, db: Session) -> TenantOut:
    return TenantOut.model_validate(get_tenant(db, tenant_id))


@store_retry
def update_tenant_use_case(
    *,
    tenant_id: str,
    data: TenantUpdate,
    actor: str,
    db: Session,
    events: EventSink,
) -> TenantOut:
    tenant = get_tenant(db, tenant_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in changes:
        changes["status"] = data.status.value
    for field, value in changes.items():
        setattr(tenant, field, value)

    _audit(
        events, db,
        name="TenantUpdated", action="update", resource_type="tenant",
        resource_id=tenant.tenant_id, actor=actor, fields=sorted(changes),
    )
    db.commit()
    db.refresh(tenant)
    return TenantOut.model_validate(tenant)


@store_retry
def create_deployment_use_case(
    *,
    tenant_id: str,
    data: DeploymentCreate,
    actor: str,
    db: Session,
    events: EventSink,
) -> DeploymentOut:
    get_tenant(db, tenant_id)
    get_product(db, data.product_id)

    if db.query(Deployment.id).filter(Deployment.deployment_id == data.deployment_id).first():
        raise duplicate("Deployment", deployment_id=data.deployment_id)
    clash = (
        db.query(Deployment.id)
        .filter(
            Deployment.tenant_id == tenant_id,
            Deployment.product_id == data.product_id,
            Deployment.deployment_type == data.deployment_type.value,
        )
        .first()
    )
    if clash:
        raise duplicate(
            "Deployment",
            tenant_id=tenant_id,
            product_id=data.product_id,
            deployment_type=data.deployment_type.value,
        )

    now = now_utc()
    deployment = Deployment(
        deployment_id=data.deployment_id,
        tenant_id=tenant_id,
        product_id=data.product_id,
        deployment_type=data.deployment_type.value,
        installed_version=data.installed_version,
        number_of_users=data.number_of_users,
        server_hostname=data.server_hostname,
        environment_details=data.environment_details,
        status=DeploymentStatus.ACTIVE.value,
        deployment_date=data.deployment_date or now,
        last_updated_date=now,
    )
    db.add(deployment)
    db.flush()
    _audit(
        events, db,
        name=DEPLOYMENT_CHANGED, action="create", resource_type="deployment",
        resource_id=deployment.deployment_id, actor=actor,
        tenant_id=tenant_id, product_id=data.product_id, installed_version=data.installed_version,
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise duplicate("Deployment", deployment_id=data.deployment_id) from exc
    db.refresh(deployment)
    logger.info(
        "deployment.created id=%s tenant=%s product=%s type=%s",
        deployment.deployment_id,
        tenant_id,
        deployment.product_id,
        deployment.deployment_type,
    )
    return DeploymentOut.model_validate(deployment)


@store_retry
def list_deployments_use_case(
    *,
    tenant_id: str,
    db: Session,
    params: PageParams,
    product_id: Optional[str] = None,
    deployment_type: Optional[str] = None,
) -> dict:
    get_tenant(db, tenant_id)
    query = db.query(Deployment).filter(Deployment.tenant_id == tenant_id)
    if product_id:
        query = query.filter(Deployment.product_id == product_id)
    if deployment_type:
        query = query.filter(Deployment.deployment_type == deployment_type)
    return paginate(query.order_by(Deployment.deployment_id), params, to_out=DeploymentOut.model_validate)


@store_retry
def get_deployment_use_case(*, deployment_id: str, db: Session) -> DeploymentOut:
    return DeploymentOut.model_validate(get_deployment(db, deployment_id))


@store_retry
def update_deployment_use_case(
    *,
    deployment_id: str,
    data: DeploymentUpdate,
    actor: str,
    db: Session,
    events: EventSink,
) -> DeploymentOut:
    deployment = get_deployment(db, deployment_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in changes:
        changes["status"] = data.status.value
    previous_version = deployment.installed_version
    for field, value in changes.items():
        setattr(deployment, field, value)
    if changes.get("installed_version") and changes["installed_version"] != previous_version:
        deployment.last_updated_date = now_utc()

    _audit(
        events, db,
        name=DEPLOYMENT_CHANGED, action="update", resource_type="deployment",
        resource_id=deployment.deployment_id, actor=actor,
        fields=sorted(changes), previous_version=previous_version,
    )
    db.commit()
    db.refresh(deployment)
    return DeploymentOut.model_validate(deployment)
