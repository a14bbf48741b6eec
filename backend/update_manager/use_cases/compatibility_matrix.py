"""Compatibility matrix storage, validation and checks."""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from ..database import store_retry
from ..domain_errors import DomainError, not_found, validation_failed
from ..enums import CompatibilityStatus, ProductType, ValidationStatus
from ..events import COMPATIBILITY_MATRIX_STORED, DomainEvent, EventSink
from ..models import CompatibilityMatrix, Product, Version
from ..pagination import PageParams, paginate
from ..schemas import CompatibilityCheckOut, CompatibilityMatrixIn, CompatibilityMatrixOut
from ..services.compatibility import CompatibilityRule, evaluate, validate_rule
from ..services.version_rules import now_utc
from .catalog import get_version

logger = logging.getLogger(__name__)


def find_matrix(db: Session, product_id: str, version_number: str) -> CompatibilityMatrix | None:
    return (
        db.query(CompatibilityMatrix)
        .filter(
            CompatibilityMatrix.product_id == product_id,
            CompatibilityMatrix.version_number == version_number,
        )
        .first()
    )


def rule_for_version(db: Session, version: Version) -> CompatibilityRule:
    """Stored matrix when it passed validation, otherwise the constraints carried by the version itself."""
    matrix = find_matrix(db, version.product_id, version.version_number)
    if matrix is not None and matrix.validation_status == ValidationStatus.PASSED.value:
        return CompatibilityRule.from_record(matrix)
    return CompatibilityRule.from_record(version)


@store_retry
def set_compatibility_use_case(
    *,
    version_id: uuid.UUID,
    data: CompatibilityMatrixIn,
    actor: str,
    db: Session,
    events: EventSink,
) -> CompatibilityMatrixOut:
    version = get_version(db, version_id)
    rule = CompatibilityRule(
        min_server_version=data.min_server_version,
        max_server_version=data.max_server_version,
        recommended_server_version=data.recommended_server_version,
        incompatible_versions=tuple(data.incompatible_versions),
    )
    errors = validate_rule(rule)

    matrix = find_matrix(db, version.product_id, version.version_number)
    if matrix is None:
        matrix = CompatibilityMatrix(product_id=version.product_id, version_number=version.version_number)
        db.add(matrix)
    matrix.min_server_version = data.min_server_version
    matrix.max_server_version = data.max_server_version
    matrix.recommended_server_version = data.recommended_server_version
    matrix.incompatible_versions = list(data.incompatible_versions)
    matrix.validation_status = (ValidationStatus.FAILED if errors else ValidationStatus.PASSED).value
    matrix.validation_errors = errors
    matrix.validated_at = now_utc()
    matrix.validated_by = actor
    db.flush()

    events.publish(
        db,
        DomainEvent(
            name=COMPATIBILITY_MATRIX_STORED,
            action="validate_compatibility",
            resource_type="compatibility_matrix",
            resource_id=str(matrix.id),
            actor=actor,
            details={
                "product_id": version.product_id,
                "version_number": version.version_number,
                "validation_status": matrix.validation_status,
            },
        ),
    )
    db.commit()
    db.refresh(matrix)

    if errors:
        logger.info(
            "compatibility.validation_failed product=%s version=%s errors=%s",
            version.product_id,
            version.version_number,
            len(errors),
        )
        raise validation_failed("Compatibility matrix failed validation", {"errors": errors, "matrix_id": str(matrix.id)})
    return CompatibilityMatrixOut.model_validate(matrix)


@store_retry
def get_compatibility_use_case(*, version_id: uuid.UUID, db: Session) -> CompatibilityMatrixOut:
    version = get_version(db, version_id)
    matrix = find_matrix(db, version.product_id, version.version_number)
    if matrix is None:
        raise not_found("CompatibilityMatrix", version_id)
    return CompatibilityMatrixOut.model_validate(matrix)


@store_retry
def list_compatibility_use_case(
    *,
    db: Session,
    params: PageParams,
    product_id: Optional[str] = None,
    validation_status: Optional[str] = None,
) -> dict:
    query = db.query(CompatibilityMatrix)
    if product_id:
        query = query.filter(CompatibilityMatrix.product_id == product_id)
    if validation_status:
        query = query.filter(CompatibilityMatrix.validation_status == validation_status)
    query = query.order_by(CompatibilityMatrix.product_id, CompatibilityMatrix.version_number)
    return paginate(query, params, to_out=CompatibilityMatrixOut.model_validate)


@store_retry
def check_compatibility_use_case(
    *,
    version_id: uuid.UUID,
    server_version: str,
    db: Session,
) -> CompatibilityCheckOut:
    if not server_version or not server_version.strip():
        raise DomainError(code="validation_failed", http_status=400, message="server_version is required")
    version = get_version(db, version_id)
    product = db.query(Product).filter(Product.product_id == version.product_id).first()
    if product is not None and product.type != ProductType.CLIENT.value:
        return CompatibilityCheckOut(
            product_id=version.product_id,
            client_version=version.version_number,
            server_version=server_version,
            status=CompatibilityStatus.NOT_APPLICABLE.value,
        )

    result = evaluate(rule_for_version(db, version), server_version)
    return CompatibilityCheckOut(
        product_id=version.product_id,
        client_version=version.version_number,
        server_version=server_version,
        status=result.status,
        reason=result.reason,
    )
