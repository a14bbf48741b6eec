"""Version lifecycle invariant helpers."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from ..enums import PackageType, VersionState

EDITABLE_STATES: set[str] = {VersionState.DRAFT.value}
UPGRADE_TARGET_STATES: set[str] = {VersionState.RELEASED.value, VersionState.DEPRECATED.value}
_ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    VersionState.DRAFT.value: {VersionState.PENDING_REVIEW.value},
    VersionState.PENDING_REVIEW.value: {VersionState.APPROVED.value, VersionState.DRAFT.value},
    VersionState.APPROVED.value: {VersionState.RELEASED.value},
    VersionState.RELEASED.value: {VersionState.DEPRECATED.value},
    VersionState.DEPRECATED.value: {VersionState.EOL.value},
    VersionState.EOL.value: set(),
}
_SHA256 = re.compile(r"^[0-9a-fA-F]{64}$")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_state(state: str | None) -> str:
    if not state:
        return VersionState.DRAFT.value
    return state.strip().lower()


def validate_version_transition(*, current_state: str | None, next_state: str) -> str:
    current = normalize_state(current_state)
    nxt = normalize_state(next_state)
    if nxt not in _ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid version state transition: {current} -> {nxt}")
    return nxt


def is_past(moment: datetime | None, *, at: datetime) -> bool:
    moment = as_utc(moment)
    return moment is not None and moment <= at


def effective_state(*, state: str, eol_date: datetime | None, at: datetime | None = None) -> str:
    """Deprecated versions whose EOL date has passed read as ``eol``."""
    at = at or now_utc()
    if normalize_state(state) == VersionState.DEPRECATED.value and is_past(eol_date, at=at):
        return VersionState.EOL.value
    return normalize_state(state)


def ensure_editable(state: str | None) -> None:
    if normalize_state(state) not in EDITABLE_STATES:
        raise ValueError(f"Version can only be modified in draft state (current: {normalize_state(state)})")


def validate_package(*, package_type: str, sha256: str | None) -> None:
    if package_type not in {member.value for member in PackageType}:
        raise ValueError(f"Unknown package type: {package_type}")
    if not sha256 or not _SHA256.match(sha256):
        raise ValueError("Package sha256 must be 64 hexadecimal characters")


def state_timestamps(*, next_state: str, actor: str | None, at: datetime | None = None) -> dict:
    ts = at or now_utc()
    if next_state == VersionState.APPROVED.value:
        return {"approved_by": actor, "approved_at": ts}
    if next_state == VersionState.RELEASED.value:
        return {"released_at": ts}
    return {}
