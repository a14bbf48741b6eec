"""Rollout status invariant helpers."""

from __future__ import annotations

from datetime import datetime, timezone

from ..enums import RolloutStatus

TERMINAL_STATUSES: set[str] = {
    RolloutStatus.COMPLETED.value,
    RolloutStatus.FAILED.value,
    RolloutStatus.CANCELLED.value,
}
_ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    RolloutStatus.PENDING.value: {RolloutStatus.IN_PROGRESS.value, RolloutStatus.CANCELLED.value},
    RolloutStatus.IN_PROGRESS.value: {
        RolloutStatus.COMPLETED.value,
        RolloutStatus.FAILED.value,
        RolloutStatus.CANCELLED.value,
    },
    RolloutStatus.COMPLETED.value: set(),
    RolloutStatus.FAILED.value: set(),
    RolloutStatus.CANCELLED.value: set(),
}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_rollout_status(status: str | None) -> str:
    if not status:
        return RolloutStatus.PENDING.value
    return status.strip().lower()


def validate_rollout_transition(*, current_status: str | None, next_status: str) -> str:
    current = normalize_rollout_status(current_status)
    nxt = normalize_rollout_status(next_status)
    if nxt not in _ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid rollout status transition: {current} -> {nxt}")
    return nxt


def validate_progress(*, status: str | None, current_progress: int | None, progress: int) -> int:
    if normalize_rollout_status(status) != RolloutStatus.IN_PROGRESS.value:
        raise ValueError("Progress can only be reported while the rollout is in progress")
    if progress < 0 or progress > 100:
        raise ValueError("Progress must be between 0 and 100")
    if progress < (current_progress or 0):
        raise ValueError(f"Progress cannot decrease ({current_progress} -> {progress})")
    return progress


def apply_rollout_timestamps(
    *,
    next_status: str,
    error_message: str | None = None,
    at: datetime | None = None,
) -> dict:
    ts = at or now_utc()
    nxt = normalize_rollout_status(next_status)
    if nxt == RolloutStatus.IN_PROGRESS.value:
        return {"started_at": ts}
    if nxt == RolloutStatus.COMPLETED.value:
        return {"completed_at": ts, "progress": 100}
    if nxt == RolloutStatus.FAILED.value:
        return {"failed_at": ts, "error_message": error_message}
    return {}
