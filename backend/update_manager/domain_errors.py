"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def not_found(entity: str, identifier: object) -> DomainError:
    return DomainError(
        code="not_found",
        http_status=404,
        message=f"{entity} not found",
        details={"entity": entity, "id": str(identifier)},
    )


def duplicate(entity: str, **key: object) -> DomainError:
    return DomainError(
        code="duplicate",
        http_status=409,
        message=f"{entity} already exists",
        details={k: str(v) for k, v in key.items()},
    )


def validation_failed(message: str, details: dict[str, Any] | None = None) -> DomainError:
    return DomainError(code="validation_failed", http_status=400, message=message, details=details)


def invalid_transition(message: str, *, current: str, requested: str) -> DomainError:
    return DomainError(
        code="invalid_transition",
        http_status=409,
        message=message,
        details={"current": current, "requested": requested},
    )


def conflict(message: str) -> DomainError:
    return DomainError(code="conflict", http_status=409, message=message)
