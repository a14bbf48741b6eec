"""Request actor resolution and scoped entity loading."""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from fastapi import Header
from sqlalchemy.orm import Session

from .domain_errors import not_found

T = TypeVar("T")

SYSTEM_ACTOR = "system"


def get_actor(x_actor: Optional[str] = Header(default=None, alias="X-Actor")) -> str:
    """Actor recorded on audit rows; authentication happens upstream of this service."""
    actor = (x_actor or "").strip()
    return actor or SYSTEM_ACTOR


def require_entity(
    db: Session,
    model: type[T],
    *,
    field: str,
    value: Any,
    entity: str,
    for_update: bool = False,
) -> T:
    """Load an entity by a unique column or raise ``not_found``."""
    query = db.query(model).filter(getattr(model, field) == value)  # type: ignore[arg-type]
    if for_update:
        query = query.with_for_update()
    found = query.first()
    if found is None:
        raise not_found(entity, value)
    return found
