from __future__ import annotations

import pytest

from update_manager.services.upgrade_planner import PlanCandidate, required_stops


def _released(*numbers: str, major: tuple[str, ...] = ()) -> list[PlanCandidate]:
    return [PlanCandidate(n, release_type="major" if n in major else "feature") for n in numbers]


def test_major_versions_are_required_stops() -> None:
    candidates = _released("1.0.0", "1.5.0", "2.0.0", "3.0.0")

    assert required_stops("1.0.0", "3.0.0", candidates) == ["2.0.0"]


def test_target_is_never_an_intermediate() -> None:
    candidates = _released("1.0.0", "2.0.0")

    assert required_stops("1.0.0", "2.0.0", candidates) == []


def test_minor_upgrade_inside_a_major_is_direct() -> None:
    candidates = _released("1.0.0", "1.1.0", "1.2.0", "1.3.0")

    assert required_stops("1.0.0", "1.3.0", candidates) == []


def test_major_release_type_forces_a_stop_without_major_bump() -> None:
    candidates = _released("1.0.0", "1.5.0", "1.8.0", major=("1.5.0",))

    assert required_stops("1.0.0", "1.8.0", candidates) == ["1.5.0"]


def test_incompatibility_forces_a_stop_before_the_blocking_version() -> None:
    candidates = [
        PlanCandidate("1.0.0"),
        PlanCandidate("1.5.0"),
        PlanCandidate("2.0.0", incompatible_versions=("1.0.0",)),
        PlanCandidate("3.0.0"),
    ]

    assert required_stops("1.0.0", "3.0.0", candidates) == ["1.5.0", "2.0.0"]


def test_incompatible_target_needs_an_intermediate() -> None:
    candidates = [
        PlanCandidate("1.0.0"),
        PlanCandidate("1.2.0"),
        PlanCandidate("1.4.0"),
        PlanCandidate("1.6.0", incompatible_versions=("1.0.0",)),
    ]

    # Newest acceptable version before the blocking one.
    assert required_stops("1.0.0", "1.6.0", candidates) == ["1.4.0"]


def test_recommended_version_is_preferred_as_the_gate() -> None:
    candidates = [
        PlanCandidate("1.0.0"),
        PlanCandidate("1.2.0"),
        PlanCandidate("1.4.0"),
        PlanCandidate("1.6.0", incompatible_versions=("1.0.0",), recommended_version="1.2.0"),
    ]

    assert required_stops("1.0.0", "1.6.0", candidates) == ["1.2.0"]


def test_gate_skips_versions_that_are_also_incompatible() -> None:
    candidates = [
        PlanCandidate("1.0.0"),
        PlanCandidate("1.2.0"),
        PlanCandidate("1.4.0"),
        PlanCandidate("1.6.0", incompatible_versions=("1.0.0", "1.4.0")),
    ]

    assert required_stops("1.0.0", "1.6.0", candidates) == ["1.2.0"]


def test_no_acceptable_gate_raises() -> None:
    candidates = [PlanCandidate("1.0.0"), PlanCandidate("1.1.0", incompatible_versions=("1.0.0",))]

    with pytest.raises(ValueError, match="No compatible intermediate version"):
        required_stops("1.0.0", "1.1.0", candidates)


def test_versions_outside_the_window_are_ignored() -> None:
    candidates = _released("0.9.0", "1.0.0", "2.0.0", "4.0.0")

    assert required_stops("1.0.0", "3.0.0", candidates + [PlanCandidate("3.0.0")]) == ["2.0.0"]


def test_stops_are_strictly_ascending() -> None:
    candidates = _released("1.0.0", "2.0.0", "2.5.0", "3.0.0", "4.0.0", "5.0.0")

    stops = required_stops("1.0.0", "5.0.0", candidates)

    assert stops == ["2.0.0", "3.0.0", "4.0.0"]
