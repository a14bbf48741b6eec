"""Version lifecycle endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_event_sink
from ..events import EventSink
from ..schemas import PackageCreate, VersionEolUpdate, VersionOut, VersionUpdate
from ..security import get_actor
from ..use_cases.catalog import add_package_use_case, get_version_use_case, update_version_use_case
from ..use_cases.version_transitions import (
    approve_version_use_case,
    deprecate_version_use_case,
    reject_version_use_case,
    release_version_use_case,
    retire_version_use_case,
    submit_version_use_case,
)

router = APIRouter(prefix="/versions", tags=["versions"])


@router.get("/{version_id}", response_model=VersionOut)
def get_version(version_id: UUID, db: Session = Depends(get_db)):
    return get_version_use_case(version_id=version_id, db=db)


@router.put("/{version_id}", response_model=VersionOut)
def update_version(
    version_id: UUID,
    data: VersionUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Edit a draft version."""
    return update_version_use_case(version_id=version_id, data=data, actor=actor, db=db, events=events)


@router.post("/{version_id}/packages", response_model=VersionOut, status_code=201)
def add_package(
    version_id: UUID,
    data: PackageCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return add_package_use_case(version_id=version_id, data=data, actor=actor, db=db, events=events)


@router.post("/{version_id}/submit", response_model=VersionOut)
def submit_version(
    version_id: UUID,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return submit_version_use_case(version_id=version_id, actor=actor, db=db, events=events)


@router.post("/{version_id}/approve", response_model=VersionOut)
def approve_version(
    version_id: UUID,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return approve_version_use_case(version_id=version_id, actor=actor, db=db, events=events)


@router.post("/{version_id}/reject", response_model=VersionOut)
def reject_version(
    version_id: UUID,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Send a version under review back to draft."""
    return reject_version_use_case(version_id=version_id, actor=actor, db=db, events=events)


@router.post("/{version_id}/release", response_model=VersionOut)
def release_version(
    version_id: UUID,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return release_version_use_case(version_id=version_id, actor=actor, db=db, events=events)


@router.post("/{version_id}/deprecate", response_model=VersionOut)
def deprecate_version(
    version_id: UUID,
    data: Optional[VersionEolUpdate] = Body(default=None),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return deprecate_version_use_case(
        version_id=version_id,
        actor=actor,
        db=db,
        events=events,
        eol_date=data.eol_date if data else None,
    )


@router.post("/{version_id}/retire", response_model=VersionOut)
def retire_version(
    version_id: UUID,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Move a deprecated version to end of life."""
    return retire_version_use_case(version_id=version_id, actor=actor, db=db, events=events)
