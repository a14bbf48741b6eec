"""Update detection and rollout endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_event_sink
from ..enums import RolloutStatus
from ..events import EventSink
from ..pagination import PageParams, page_params
from ..schemas import (
    DeploymentRolloutCreate,
    DetectionCreate,
    DetectionOut,
    Page,
    RolloutCreate,
    RolloutOut,
    RolloutUpdate,
)
from ..security import get_actor
from ..use_cases.rollouts import (
    get_rollout_use_case,
    initiate_deployment_rollout_use_case,
    initiate_rollout_use_case,
    list_detections_use_case,
    list_rollouts_use_case,
    update_rollout_use_case,
    upsert_detection_use_case,
)

router = APIRouter(tags=["rollouts"])


@router.post("/update-detections", response_model=DetectionOut)
def record_detection(
    data: DetectionCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return upsert_detection_use_case(data=data, actor=actor, db=db, events=events)


@router.get("/update-detections", response_model=Page[DetectionOut])
def list_detections(
    endpoint_id: Optional[str] = None,
    product_id: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_detections_use_case(db=db, params=params, endpoint_id=endpoint_id, product_id=product_id)


@router.post("/deployments/{deployment_id}/rollouts", response_model=RolloutOut, status_code=201)
def initiate_deployment_rollout(
    deployment_id: str,
    data: DeploymentRolloutCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Start upgrading a deployment from its installed version."""
    return initiate_deployment_rollout_use_case(
        deployment_id=deployment_id,
        data=data,
        actor=actor,
        db=db,
        events=events,
    )


@router.post("/update-rollouts", response_model=RolloutOut, status_code=201)
def initiate_rollout(
    data: RolloutCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return initiate_rollout_use_case(data=data, actor=actor, db=db, events=events)


@router.get("/update-rollouts", response_model=Page[RolloutOut])
def list_rollouts(
    endpoint_id: Optional[str] = None,
    deployment_id: Optional[str] = None,
    product_id: Optional[str] = None,
    status: Optional[RolloutStatus] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_rollouts_use_case(
        db=db,
        params=params,
        endpoint_id=endpoint_id,
        deployment_id=deployment_id,
        product_id=product_id,
        status=status.value if status else None,
    )


@router.get("/rollouts/{rollout_id}", response_model=RolloutOut)
def get_rollout(rollout_id: UUID, db: Session = Depends(get_db)):
    return get_rollout_use_case(rollout_id=rollout_id, db=db)


@router.patch("/rollouts/{rollout_id}", response_model=RolloutOut)
def update_rollout(
    rollout_id: UUID,
    data: RolloutUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Report status and/or progress of a rollout."""
    return update_rollout_use_case(rollout_id=rollout_id, data=data, actor=actor, db=db, events=events)
