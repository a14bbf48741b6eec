"""Required-stop selection for multi-step upgrades."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..enums import ReleaseType
from .version_algebra import in_list, is_newer, parse, same_version, sort_key


@dataclass(frozen=True)
class PlanCandidate:
    """A released or deprecated version inside the upgrade window."""

    version_number: str
    release_type: str | None = None
    # Versions that cannot upgrade straight to this one.
    incompatible_versions: tuple[str, ...] = field(default_factory=tuple)
    recommended_version: str | None = None


def _is_major_step(candidate: PlanCandidate, cursor: str) -> bool:
    if candidate.release_type == ReleaseType.MAJOR.value:
        return True
    return parse(candidate.version_number)[0] > parse(cursor)[0]


def _pick_gate(
    window: list[PlanCandidate],
    *,
    cursor: str,
    blocked_at: PlanCandidate,
) -> PlanCandidate | None:
    options = [
        c
        for c in window
        if is_newer(c.version_number, cursor)
        and is_newer(blocked_at.version_number, c.version_number)
        and not in_list(c.version_number, blocked_at.incompatible_versions)
    ]
    if not options:
        return None
    if blocked_at.recommended_version:
        for option in options:
            if same_version(option.version_number, blocked_at.recommended_version):
                return option
    return options[-1]


def required_stops(
    from_version: str,
    to_version: str,
    candidates: Iterable[PlanCandidate],
) -> list[str]:
    """Ordered intermediate versions strictly between ``from_version`` and ``to_version``.

    Every major step is a stop, and a candidate that declares the current
    position incompatible forces a stop at the newest acceptable version
    before it (its recommended version when that is an option). Raises
    ``ValueError`` when no such version exists.
    """
    window = sorted(
        (
            c
            for c in candidates
            if is_newer(c.version_number, from_version) and not is_newer(c.version_number, to_version)
        ),
        key=lambda c: sort_key(c.version_number),
    )

    stops: list[str] = []
    cursor = from_version
    for candidate in window:
        if in_list(cursor, candidate.incompatible_versions):
            gate = _pick_gate(window, cursor=cursor, blocked_at=candidate)
            if gate is None:
                raise ValueError(
                    f"No compatible intermediate version between {cursor} and {candidate.version_number}"
                )
            stops.append(gate.version_number)
            cursor = gate.version_number

        if same_version(candidate.version_number, to_version):
            break
        if _is_major_step(candidate, cursor) and is_newer(candidate.version_number, cursor):
            stops.append(candidate.version_number)
            cursor = candidate.version_number
    return stops
