"""Compatibility matrix endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_event_sink
from ..enums import ValidationStatus
from ..events import EventSink
from ..pagination import PageParams, page_params
from ..schemas import CompatibilityCheckOut, CompatibilityMatrixIn, CompatibilityMatrixOut, Page
from ..security import get_actor
from ..use_cases.compatibility_matrix import (
    check_compatibility_use_case,
    get_compatibility_use_case,
    list_compatibility_use_case,
    set_compatibility_use_case,
)

router = APIRouter(tags=["compatibility"])


@router.post("/versions/{version_id}/compatibility", response_model=CompatibilityMatrixOut)
def set_compatibility(
    version_id: UUID,
    data: CompatibilityMatrixIn,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Store and validate the server-version matrix of a version."""
    return set_compatibility_use_case(version_id=version_id, data=data, actor=actor, db=db, events=events)


@router.get("/versions/{version_id}/compatibility", response_model=CompatibilityMatrixOut)
def get_compatibility(version_id: UUID, db: Session = Depends(get_db)):
    return get_compatibility_use_case(version_id=version_id, db=db)


@router.get("/versions/{version_id}/compatibility/check", response_model=CompatibilityCheckOut)
def check_compatibility(
    version_id: UUID,
    server_version: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    return check_compatibility_use_case(version_id=version_id, server_version=server_version, db=db)


@router.get("/compatibility", response_model=Page[CompatibilityMatrixOut])
def list_compatibility(
    product_id: Optional[str] = None,
    validation_status: Optional[ValidationStatus] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_compatibility_use_case(
        db=db,
        params=params,
        product_id=product_id,
        validation_status=validation_status.value if validation_status else None,
    )
