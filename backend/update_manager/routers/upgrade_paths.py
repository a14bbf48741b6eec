"""Upgrade-path planning and stored path endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_event_sink
from ..events import EventSink
from ..pagination import PageParams, page_params
from ..schemas import (
    Page,
    UpgradePathBlock,
    UpgradePathCreate,
    UpgradePathOut,
    UpgradePathUnblock,
    UpgradePlanOut,
)
from ..security import get_actor
from ..use_cases.upgrade_paths import (
    block_upgrade_path_use_case,
    create_upgrade_path_use_case,
    get_upgrade_path_use_case,
    get_upgrade_plan_use_case,
    list_upgrade_paths_use_case,
    unblock_upgrade_path_use_case,
)

router = APIRouter(tags=["upgrade-paths"])


@router.get("/products/{product_id}/upgrade-paths", response_model=UpgradePlanOut)
def plan_upgrade_path(
    product_id: str,
    from_version: str = Query(..., alias="from", min_length=1),
    to_version: str = Query(..., alias="to", min_length=1),
    db: Session = Depends(get_db),
):
    """Plan the chain of installs between two versions."""
    return get_upgrade_plan_use_case(
        product_id=product_id,
        from_version=from_version,
        to_version=to_version,
        db=db,
    )


@router.post("/products/{product_id}/upgrade-paths", response_model=UpgradePathOut, status_code=201)
def create_upgrade_path(
    product_id: str,
    data: UpgradePathCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return create_upgrade_path_use_case(product_id=product_id, data=data, actor=actor, db=db, events=events)


@router.get("/products/{product_id}/upgrade-paths/stored", response_model=Page[UpgradePathOut])
def list_upgrade_paths(
    product_id: str,
    blocked_only: bool = False,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_upgrade_paths_use_case(product_id=product_id, db=db, params=params, blocked_only=blocked_only)


@router.post("/products/{product_id}/upgrade-paths/block", response_model=UpgradePathOut)
def block_upgrade_path(
    product_id: str,
    data: UpgradePathBlock,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return block_upgrade_path_use_case(product_id=product_id, data=data, actor=actor, db=db, events=events)


@router.post("/products/{product_id}/upgrade-paths/unblock", response_model=UpgradePathOut)
def unblock_upgrade_path(
    product_id: str,
    data: UpgradePathUnblock,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return unblock_upgrade_path_use_case(product_id=product_id, data=data, actor=actor, db=db, events=events)


@router.get("/upgrade-paths/{path_id}", response_model=UpgradePathOut)
def get_upgrade_path(path_id: UUID, db: Session = Depends(get_db)):
    return get_upgrade_path_use_case(path_id=path_id, db=db)
