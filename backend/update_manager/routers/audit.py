"""Audit log endpoints."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..pagination import PageParams, page_params
from ..schemas import AuditLogOut, Page
from ..use_cases.audit import list_audit_logs_use_case

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=Page[AuditLogOut])
def list_audit_logs(
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    since: Optional[datetime] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    """Most recent audit entries first."""
    return list_audit_logs_use_case(
        db=db,
        params=params,
        resource_type=resource_type,
        resource_id=resource_id,
        action=action,
        user_id=user_id,
        since=since,
    )
