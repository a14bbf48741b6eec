"""Version string parsing, ordering and gap classification.

Accepted shape is ``MAJOR.MINOR.PATCH[-prerelease][+build]``. Build metadata
and the pre-release tag are ignored for ordering; each of the first three
dot components contributes its first run of digits, anything missing or
non-numeric counts as 0. Ordering is therefore total over any string.
"""

from __future__ import annotations

import re
from typing import Iterable

from ..enums import GapType

_DIGITS = re.compile(r"\d+")


def parse(version: str | None) -> tuple[int, int, int]:
    raw = (version or "").strip()
    raw = raw.split("+", 1)[0]
    raw = raw.split("-", 1)[0]

    parts = raw.split(".")
    numbers: list[int] = []
    for index in range(3):
        if index >= len(parts):
            numbers.append(0)
            continue
        match = _DIGITS.search(parts[index])
        numbers.append(int(match.group(0)) if match else 0)
    return numbers[0], numbers[1], numbers[2]


def compare(v1: str | None, v2: str | None) -> int:
    left = parse(v1)
    right = parse(v2)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def is_newer(v1: str | None, v2: str | None) -> bool:
    """True when ``v1`` orders strictly after ``v2``."""
    return compare(v1, v2) > 0


def is_older(v1: str | None, v2: str | None) -> bool:
    return compare(v1, v2) < 0


def same_version(v1: str | None, v2: str | None) -> bool:
    return compare(v1, v2) == 0


def sort_key(version: str | None) -> tuple[int, int, int]:
    return parse(version)


def sort_versions(versions: Iterable[str]) -> list[str]:
    return sorted(versions, key=sort_key)


def gap_type(current: str | None, latest: str | None) -> str:
    """Classify how far ``latest`` is ahead of ``current``.

    ``unknown`` when ``latest`` is not newer than ``current``.
    """
    cur = parse(current)
    new = parse(latest)
    if new <= cur:
        return GapType.UNKNOWN.value
    if new[0] > cur[0]:
        return GapType.MAJOR.value
    if new[1] > cur[1]:
        return GapType.MINOR.value
    return GapType.PATCH.value


def in_list(version: str | None, candidates: Iterable[str] | None) -> bool:
    """Membership by version ordering, so ``1.0`` matches ``1.0.0``."""
    return any(same_version(version, candidate) for candidate in candidates or ())
