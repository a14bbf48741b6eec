"""Notification inbox endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..enums import NotificationType
from ..pagination import PageParams, page_params
from ..schemas import NotificationOut, Page, UnreadCountOut
from ..use_cases.notifications import (
    list_notifications_use_case,
    mark_all_read_use_case,
    mark_read_use_case,
    unread_count_use_case,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=Page[NotificationOut])
def list_notifications(
    recipient_id: str = Query(..., min_length=1),
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_notifications_use_case(
        recipient_id=recipient_id,
        db=db,
        params=params,
        unread_only=unread_only,
        notification_type=type.value if type else None,
    )


@router.get("/unread-count", response_model=UnreadCountOut)
def get_unread_count(recipient_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return unread_count_use_case(recipient_id=recipient_id, db=db)


@router.post("/mark-all-read")
def mark_all_read(recipient_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return mark_all_read_use_case(recipient_id=recipient_id, db=db)


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: UUID, db: Session = Depends(get_db)):
    return mark_read_use_case(notification_id=notification_id, db=db)
