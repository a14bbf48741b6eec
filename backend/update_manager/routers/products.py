"""Product catalog and per-product version endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import get_event_sink
from ..enums import ProductType, VersionState
from ..events import EventSink
from ..pagination import PageParams, page_params
from ..schemas import (
    EolWarningOut,
    Page,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    VersionCreate,
    VersionOut,
)
from ..security import get_actor
from ..use_cases.catalog import (
    create_product_use_case,
    create_version_use_case,
    deactivate_product_use_case,
    get_product_use_case,
    list_eol_warnings_use_case,
    list_products_use_case,
    list_versions_use_case,
    update_product_use_case,
)

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(
    data: ProductCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Register a product in the catalog."""
    return create_product_use_case(data=data, actor=actor, db=db, events=events)


@router.get("", response_model=Page[ProductOut])
def list_products(
    type: Optional[ProductType] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_products_use_case(db=db, params=params, product_type=type.value if type else None)


@router.get("/active", response_model=Page[ProductOut])
def list_active_products(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_products_use_case(db=db, params=params, active_only=True)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return get_product_use_case(product_id=product_id, db=db)


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    data: ProductUpdate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    return update_product_use_case(product_id=product_id, data=data, actor=actor, db=db, events=events)


@router.delete("/{product_id}", response_model=ProductOut)
def delete_product(
    product_id: str,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Soft delete: marks the product inactive."""
    return deactivate_product_use_case(product_id=product_id, actor=actor, db=db, events=events)


@router.post("/{product_id}/versions", response_model=VersionOut, status_code=201)
def create_version(
    product_id: str,
    data: VersionCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
):
    """Create a draft version."""
    return create_version_use_case(product_id=product_id, data=data, actor=actor, db=db, events=events)


@router.get("/{product_id}/versions", response_model=Page[VersionOut])
def list_versions(
    product_id: str,
    state: Optional[VersionState] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    return list_versions_use_case(
        product_id=product_id,
        db=db,
        params=params,
        state=state.value if state else None,
    )


@router.get("/{product_id}/eol-warnings", response_model=list[EolWarningOut])
def list_eol_warnings(
    product_id: str,
    within_days: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """Versions whose EOL date falls inside the warning window."""
    days = settings.EOL_WARNING_DAYS if within_days is None else within_days
    return list_eol_warnings_use_case(product_id=product_id, db=db, within_days=days)
