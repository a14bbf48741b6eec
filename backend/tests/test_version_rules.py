from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from update_manager.services.version_rules import (
    _ALLOWED_TRANSITIONS,
    effective_state,
    ensure_editable,
    state_timestamps,
    validate_package,
    validate_version_transition,
)


def test_version_transition_allows_declared_edges() -> None:
    assert validate_version_transition(current_state="draft", next_state="pending_review") == "pending_review"
    assert validate_version_transition(current_state="pending_review", next_state="draft") == "draft"
    assert validate_version_transition(current_state="released", next_state="deprecated") == "deprecated"


@pytest.mark.parametrize(
    ("current", "requested"),
    [
        ("draft", "released"),
        ("approved", "draft"),
        ("eol", "released"),
        ("deprecated", "released"),
        ("released", "approved"),
    ],
)
def test_version_transition_rejects_undeclared_edges(current, requested) -> None:
    with pytest.raises(ValueError, match="Invalid version state transition"):
        validate_version_transition(current_state=current, next_state=requested)


def test_released_is_unreachable_from_deprecated_or_eol() -> None:
    reachable = {"deprecated", "eol"}
    frontier = set(reachable)
    while frontier:
        frontier = {nxt for state in frontier for nxt in _ALLOWED_TRANSITIONS[state]} - reachable
        reachable |= frontier
    assert "released" not in reachable


def test_every_state_has_a_transition_entry() -> None:
    states = set(_ALLOWED_TRANSITIONS)
    for targets in _ALLOWED_TRANSITIONS.values():
        assert targets <= states


def test_effective_state_reads_expired_deprecation_as_eol() -> None:
    at = datetime(2026, 6, 1, tzinfo=timezone.utc)
    past = at - timedelta(days=1)
    future = at + timedelta(days=1)

    assert effective_state(state="deprecated", eol_date=past, at=at) == "eol"
    assert effective_state(state="deprecated", eol_date=future, at=at) == "deprecated"
    assert effective_state(state="released", eol_date=past, at=at) == "released"
    assert effective_state(state="deprecated", eol_date=None, at=at) == "deprecated"
    # Naive datetimes from the store are treated as UTC.
    assert effective_state(state="deprecated", eol_date=past.replace(tzinfo=None), at=at) == "eol"


def test_only_draft_is_editable() -> None:
    ensure_editable("draft")
    for state in ("pending_review", "approved", "released", "deprecated", "eol"):
        with pytest.raises(ValueError, match="draft"):
            ensure_editable(state)


def test_package_checksum_must_be_sha256_hex() -> None:
    validate_package(package_type="full_installer", sha256="a" * 64)
    with pytest.raises(ValueError, match="sha256"):
        validate_package(package_type="full_installer", sha256="abc")
    with pytest.raises(ValueError, match="sha256"):
        validate_package(package_type="delta", sha256="z" * 64)
    with pytest.raises(ValueError, match="Unknown package type"):
        validate_package(package_type="tarball", sha256="a" * 64)


def test_state_timestamps() -> None:
    at = datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert state_timestamps(next_state="approved", actor="alice", at=at) == {"approved_by": "alice", "approved_at": at}
    assert state_timestamps(next_state="released", actor="alice", at=at) == {"released_at": at}
    for state in ("pending_review", "draft", "deprecated", "eol"):
        assert state_timestamps(next_state=state, actor="alice", at=at) == {}


def test_no_transition_sequence_returns_to_released_after_deprecation() -> None:
    states = list(_ALLOWED_TRANSITIONS)
    for path in itertools.product(states, repeat=3):
        current = "deprecated"
        for nxt in path:
            try:
                current = validate_version_transition(current_state=current, next_state=nxt)
            except ValueError:
                break
        assert current != "released"
