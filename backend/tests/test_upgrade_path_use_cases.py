from __future__ import annotations

import itertools

import pytest

from update_manager.domain_errors import DomainError
from update_manager.models import UpgradePath
from update_manager.schemas import (
    CompatibilityMatrixIn,
    UpgradePathBlock,
    UpgradePathCreate,
    UpgradePathUnblock,
)
from update_manager.services.version_algebra import sort_key
from update_manager.use_cases.compatibility_matrix import set_compatibility_use_case
from update_manager.use_cases.upgrade_paths import (
    block_upgrade_path_use_case,
    create_upgrade_path_use_case,
    get_upgrade_plan_use_case,
    plan_upgrade,
    unblock_upgrade_path_use_case,
)


@pytest.fixture()
def catalog(seed):
    seed.product("acme-srv")
    return {n: seed.version("acme-srv", n) for n in ("1.0.0", "1.5.0", "2.0.0", "3.0.0")}


def _plan(db_session, from_version, to_version):
    return get_upgrade_plan_use_case(
        product_id="acme-srv",
        from_version=from_version,
        to_version=to_version,
        db=db_session,
    )


def test_same_version_is_direct(db_session, catalog) -> None:
    plan = _plan(db_session, "2.0.0", "2.0.0")

    assert plan.path_type == "direct"
    assert plan.intermediate_versions == []


def test_multi_step_through_major_versions(db_session, catalog) -> None:
    plan = _plan(db_session, "1.0.0", "3.0.0")

    assert plan.path_type == "multi_step"
    assert plan.intermediate_versions == ["2.0.0"]
    assert plan.is_blocked is False


def test_compatibility_gate_adds_a_stop(db_session, events, catalog) -> None:
    set_compatibility_use_case(
        version_id=catalog["2.0.0"].id,
        data=CompatibilityMatrixIn(incompatible_versions=["1.0.0"]),
        actor="qa",
        db=db_session,
        events=events,
    )

    plan = _plan(db_session, "1.0.0", "3.0.0")

    assert plan.path_type == "multi_step"
    assert plan.intermediate_versions == ["1.5.0", "2.0.0"]


def test_matrix_that_failed_validation_adds_no_gate(db_session, events, catalog) -> None:
    with pytest.raises(DomainError):
        set_compatibility_use_case(
            version_id=catalog["2.0.0"].id,
            data=CompatibilityMatrixIn(
                min_server_version="3.0.0",
                max_server_version="2.0.0",
                incompatible_versions=["1.0.0"],
            ),
            actor="qa",
            db=db_session,
            events=events,
        )

    plan = _plan(db_session, "1.0.0", "3.0.0")

    assert plan.intermediate_versions == ["2.0.0"]


def test_blocked_first_hop_blocks_the_whole_plan(db_session, events, catalog) -> None:
    block_upgrade_path_use_case(
        product_id="acme-srv",
        data=UpgradePathBlock(from_version="1.0.0", to_version="2.0.0", reason="data migration required"),
        actor="ops",
        db=db_session,
        events=events,
    )

    plan = _plan(db_session, "1.0.0", "3.0.0")

    assert plan.path_type == "blocked"
    assert plan.is_blocked is True
    assert plan.block_reason == "data migration required"
    assert plan.intermediate_versions == []


def test_blocked_direct_path_is_returned_as_stored(db_session, events, catalog) -> None:
    block_upgrade_path_use_case(
        product_id="acme-srv",
        data=UpgradePathBlock(from_version="1.0.0", to_version="1.5.0", reason="known defect"),
        actor="ops",
        db=db_session,
        events=events,
    )

    plan = _plan(db_session, "1.0.0", "1.5.0")

    assert plan.is_blocked is True
    assert plan.block_reason == "known defect"


def test_multi_step_plans_never_cross_a_blocked_hop(db_session, events, catalog) -> None:
    block_upgrade_path_use_case(
        product_id="acme-srv",
        data=UpgradePathBlock(from_version="2.0.0", to_version="3.0.0", reason="schema rewrite"),
        actor="ops",
        db=db_session,
        events=events,
    )
    blocked = [(p.from_version, p.to_version) for p in db_session.query(UpgradePath).filter(UpgradePath.is_blocked.is_(True))]

    numbers = sorted(catalog, key=sort_key)
    for source, target in itertools.combinations(numbers, 2):
        plan = plan_upgrade(db=db_session, product_id="acme-srv", from_version=source, to_version=target)
        if plan.path_type == "multi_step":
            chain = [source, *plan.intermediate_versions, target]
            for hop in zip(chain, chain[1:]):
                assert hop not in blocked


def test_unblock_restores_planning(db_session, events, catalog) -> None:
    block_upgrade_path_use_case(
        product_id="acme-srv",
        data=UpgradePathBlock(from_version="1.0.0", to_version="2.0.0", reason="hold"),
        actor="ops",
        db=db_session,
        events=events,
    )
    path = unblock_upgrade_path_use_case(
        product_id="acme-srv",
        data=UpgradePathUnblock(from_version="1.0.0", to_version="2.0.0"),
        actor="ops",
        db=db_session,
        events=events,
    )

    assert path.is_blocked is False
    assert path.block_reason is None
    assert _plan(db_session, "1.0.0", "3.0.0").path_type == "multi_step"


def test_downgrade_is_rejected(db_session, catalog) -> None:
    with pytest.raises(DomainError) as exc:
        _plan(db_session, "3.0.0", "1.0.0")

    assert exc.value.code == "validation_failed"


def test_plan_target_must_be_released(db_session, seed, catalog) -> None:
    seed.version("acme-srv", "4.0.0", state="approved")

    with pytest.raises(DomainError) as exc:
        _plan(db_session, "1.0.0", "4.0.0")
    assert exc.value.code == "validation_failed"

    with pytest.raises(DomainError) as exc:
        _plan(db_session, "1.0.0", "9.0.0")
    assert exc.value.code == "not_found"


def test_stored_paths_are_unique_per_hop(db_session, events, catalog) -> None:
    created = create_upgrade_path_use_case(
        product_id="acme-srv",
        data=UpgradePathCreate(from_version="1.0.0", to_version="3.0.0", intermediate_versions=["2.0.0"]),
        actor="ops",
        db=db_session,
        events=events,
    )
    assert created.path_type == "multi_step"

    with pytest.raises(DomainError) as exc:
        create_upgrade_path_use_case(
            product_id="acme-srv",
            data=UpgradePathCreate(from_version="1.0.0", to_version="3.0.0"),
            actor="ops",
            db=db_session,
            events=events,
        )
    assert exc.value.code == "duplicate"


def test_stored_path_requires_known_versions(db_session, events, catalog) -> None:
    with pytest.raises(DomainError) as exc:
        create_upgrade_path_use_case(
            product_id="acme-srv",
            data=UpgradePathCreate(from_version="1.0.0", to_version="7.0.0"),
            actor="ops",
            db=db_session,
            events=events,
        )

    assert exc.value.code == "not_found"
