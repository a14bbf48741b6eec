"""Customer notification records and the notification inbox."""
from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Optional

from sqlalchemy.orm import Session

from ..database import store_retry
from ..enums import (
    CustomerStatus,
    DeploymentStatus,
    DeploymentType,
    NotificationType,
    Priority,
    ReleaseType,
)
from ..models import Customer, CustomerTenant, Deployment, Notification, Product
from ..pagination import PageParams, paginate
from ..schemas import NotificationOut, NotificationPreferences, UnreadCountOut
from ..security import require_entity
from ..services.version_rules import now_utc

logger = logging.getLogger(__name__)


def preferences_for(customer: Customer) -> NotificationPreferences:
    return NotificationPreferences(**(customer.notification_preferences or {}))


def deployment_type_allowed(preferences: NotificationPreferences, deployment_type: str) -> bool:
    if deployment_type == DeploymentType.PRODUCTION.value:
        return preferences.production_notifications
    return preferences.uat_notifications


def notify_version_released(
    *,
    db: Session,
    product_id: str,
    version_id: str,
    version_number: str,
    release_type: str,
) -> list[Notification]:
    """Write one notification per customer with an affected, opted-in deployment.

    Runs inside the release transaction; nothing is committed here.
    """
    rows = (
        db.query(Deployment, Customer)
        .join(CustomerTenant, CustomerTenant.tenant_id == Deployment.tenant_id)
        .join(Customer, Customer.customer_id == CustomerTenant.customer_id)
        .filter(
            Deployment.product_id == product_id,
            Deployment.status == DeploymentStatus.ACTIVE.value,
            Customer.account_status == CustomerStatus.ACTIVE.value,
        )
        .all()
    )

    affected: dict[str, list[Deployment]] = defaultdict(list)
    customers: dict[str, Customer] = {}
    for deployment, customer in rows:
        preferences = preferences_for(customer)
        if not preferences.in_app_enabled:
            continue
        if not deployment_type_allowed(preferences, deployment.deployment_type):
            continue
        affected[customer.customer_id].append(deployment)
        customers[customer.customer_id] = customer

    product = db.query(Product).filter(Product.product_id == product_id).first()
    product_name = product.name if product else product_id
    is_security = release_type == ReleaseType.SECURITY.value

    created: list[Notification] = []
    for customer_id, deployments in sorted(affected.items()):
        has_production = any(d.deployment_type == DeploymentType.PRODUCTION.value for d in deployments)
        if is_security:
            priority = Priority.CRITICAL.value
        elif has_production:
            priority = Priority.HIGH.value
        else:
            priority = Priority.NORMAL.value

        notification = Notification(
            type=(NotificationType.SECURITY_RELEASE if is_security else NotificationType.NEW_VERSION).value,
            recipient_id=customer_id,
            customer_id=customer_id,
            product_id=product_id,
            version_id=uuid.UUID(str(version_id)),
            title=f"{'Security release' if is_security else 'New version'}: {product_name} {version_number}",
            message=(
                f"{product_name} {version_number} has been released and affects "
                f"{len(deployments)} of your deployment(s): "
                + ", ".join(sorted(d.deployment_id for d in deployments))
            ),
            priority=priority,
            is_read=False,
        )
        db.add(notification)
        created.append(notification)

    logger.info(
        "notifications.release product=%s version=%s customers=%s",
        product_id,
        version_number,
        len(created),
    )
    return created


@store_retry
def list_notifications_use_case(
    *,
    recipient_id: str,
    db: Session,
    params: PageParams,
    unread_only: bool = False,
    notification_type: Optional[str] = None,
) -> dict:
    query = db.query(Notification).filter(Notification.recipient_id == recipient_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    if notification_type:
        query = query.filter(Notification.type == notification_type)
    query = query.order_by(Notification.created_at.desc(), Notification.id)
    return paginate(query, params, to_out=NotificationOut.model_validate)


@store_retry
def unread_count_use_case(*, recipient_id: str, db: Session) -> UnreadCountOut:
    count = (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .count()
    )
    return UnreadCountOut(recipient_id=recipient_id, unread_count=count)


@store_retry
def mark_read_use_case(*, notification_id: uuid.UUID, db: Session) -> NotificationOut:
    notification = require_entity(db, Notification, field="id", value=notification_id, entity="Notification")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = now_utc()
        db.commit()
        db.refresh(notification)
    return NotificationOut.model_validate(notification)


@store_retry
def mark_all_read_use_case(*, recipient_id: str, db: Session) -> dict:
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": now_utc()}, synchronize_session=False)
    )
    db.commit()
    return {"recipient_id": recipient_id, "updated": updated}
