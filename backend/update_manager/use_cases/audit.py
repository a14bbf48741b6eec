"""Audit log queries."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import store_retry
from ..models import AuditLog
from ..pagination import PageParams, paginate
from ..schemas import AuditLogOut


@store_retry
def list_audit_logs_use_case(
    *,
    db: Session,
    params: PageParams,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    since: Optional[datetime] = None,
) -> dict:
    query = db.query(AuditLog)
    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)
    if resource_id:
        query = query.filter(AuditLog.resource_id == resource_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if since:
        query = query.filter(AuditLog.created_at >= since)
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id)
    return paginate(query, params, to_out=AuditLogOut.model_validate)
