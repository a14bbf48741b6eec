from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from update_manager.domain_errors import DomainError
from update_manager.models import LicenseAllocation
from update_manager.schemas import AllocationCreate, LicenseCreate, LicenseUpdate
from update_manager.use_cases import licensing
from update_manager.use_cases.licensing import (
    allocate_seats_use_case,
    allocated_seats,
    create_license_use_case,
    license_utilization_use_case,
    release_allocation_use_case,
    update_license_use_case,
)


@pytest.fixture()
def license_10(seed):
    seed.product("acme-srv")
    seed.customer("CUST-1")
    seed.tenant("CUST-1", "TEN-1")
    seed.tenant("CUST-1", "TEN-2")
    seed.subscription("CUST-1", "SUB-1")
    return seed.license("SUB-1", "LIC-1", product_id="acme-srv", seats=10)


def _allocate(db_session, events, seats, *, tenant_id="TEN-1", deployment_id=None, license_id="LIC-1"):
    return allocate_seats_use_case(
        license_id=license_id,
        data=AllocationCreate(tenant_id=tenant_id, deployment_id=deployment_id, number_of_seats_allocated=seats),
        actor="sales",
        db=db_session,
        events=events,
    )


def _active_sum(db_session, license_id="LIC-1") -> int:
    return sum(
        a.number_of_seats_allocated
        for a in db_session.query(LicenseAllocation).filter(
            LicenseAllocation.license_id == license_id,
            LicenseAllocation.status == "active",
        )
    )


def test_second_allocation_over_capacity_reports_available_seats(db_session, events, license_10) -> None:
    first = _allocate(db_session, events, 6)
    assert first.status == "active"
    assert first.allocation_id.startswith("ALLOC-")

    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 5, tenant_id="TEN-2")

    assert exc.value.code == "seats_exceeded"
    assert exc.value.http_status == 409
    assert exc.value.details["available"] == 4
    assert _active_sum(db_session) == 6


def test_recount_after_insert_rejects_a_stale_capacity_check(db_session, events, license_10, monkeypatch) -> None:
    _allocate(db_session, events, 6)
    # The concurrent writer's capacity check ran before the first allocation landed.
    monkeypatch.setattr(licensing, "available_seats", lambda db, license: license.number_of_seats)

    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 5, tenant_id="TEN-2")

    assert exc.value.code == "seats_exceeded"
    assert exc.value.details["available"] == 4
    assert _active_sum(db_session) == 6
    assert db_session.query(LicenseAllocation).count() == 1


def test_seats_are_conserved_across_allocate_and_release(db_session, events, license_10) -> None:
    allocations = [_allocate(db_session, events, 3) for _ in range(3)]
    with pytest.raises(DomainError):
        _allocate(db_session, events, 2)

    release_allocation_use_case(allocation_id=allocations[0].allocation_id, actor="sales", db=db_session, events=events)
    _allocate(db_session, events, 4)

    assert _active_sum(db_session) == 10
    assert allocated_seats(db_session, "LIC-1") == 10

    utilization = license_utilization_use_case(license_id="LIC-1", db=db_session)
    assert utilization.available_seats == 0
    assert utilization.utilization_percent == 100.0
    assert utilization.active_allocations == 3


def test_second_release_is_rejected(db_session, events, license_10) -> None:
    allocation = _allocate(db_session, events, 2)

    released = release_allocation_use_case(
        allocation_id=allocation.allocation_id, actor="sales", db=db_session, events=events
    )
    assert released.status == "released"
    assert released.released_by == "sales"
    assert released.released_date is not None

    with pytest.raises(DomainError) as exc:
        release_allocation_use_case(allocation_id=allocation.allocation_id, actor="sales", db=db_session, events=events)

    assert exc.value.code == "already_released"
    assert exc.value.http_status == 409


def test_inactive_license_cannot_allocate(db_session, events, license_10) -> None:
    update_license_use_case(
        license_id="LIC-1",
        data=LicenseUpdate(status="revoked"),
        actor="sales",
        db=db_session,
        events=events,
    )

    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 1)

    assert exc.value.code == "license_inactive"


def test_expired_time_based_license_cannot_allocate(db_session, events, seed, license_10) -> None:
    seed.license(
        "SUB-1",
        "LIC-TB",
        product_id="acme-srv",
        license_type="time_based",
        end_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
    )

    with pytest.raises(DomainError) as exc:
        allocate_seats_use_case(
            license_id="LIC-TB",
            data=AllocationCreate(tenant_id="TEN-1", number_of_seats_allocated=1),
            actor="sales",
            db=db_session,
            events=events,
            at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )

    assert exc.value.code == "license_inactive"


def test_time_based_license_requires_window(db_session, events, license_10) -> None:
    with pytest.raises(DomainError) as exc:
        create_license_use_case(
            subscription_id="SUB-1",
            data=LicenseCreate(
                license_id="LIC-TB",
                product_id="acme-srv",
                license_type="time_based",
                number_of_seats=5,
                start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
            ),
            actor="sales",
            db=db_session,
            events=events,
        )

    assert exc.value.code == "validation_failed"


def test_allocation_needs_exactly_one_target(db_session, events, license_10) -> None:
    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 1, tenant_id=None)
    assert exc.value.code == "validation_failed"

    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 1, tenant_id="TEN-1", deployment_id="DEP-1")
    assert exc.value.code == "validation_failed"


def test_allocation_target_must_belong_to_license_customer(db_session, events, seed, license_10) -> None:
    seed.customer("CUST-2")
    seed.tenant("CUST-2", "TEN-X")

    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 1, tenant_id="TEN-X")

    assert exc.value.code == "validation_failed"


def test_deployment_allocation_must_match_license_product(db_session, events, seed, license_10) -> None:
    seed.product("acme-cli", type="client")
    seed.deployment("TEN-1", "DEP-CLI", product_id="acme-cli", installed_version="1.0.0")
    seed.deployment("TEN-1", "DEP-SRV", product_id="acme-srv", installed_version="1.0.0")

    with pytest.raises(DomainError) as exc:
        _allocate(db_session, events, 1, tenant_id=None, deployment_id="DEP-CLI")
    assert exc.value.code == "validation_failed"

    allocation = _allocate(db_session, events, 2, tenant_id=None, deployment_id="DEP-SRV")
    assert allocation.deployment_id == "DEP-SRV"
    assert allocation.tenant_id is None


def test_seat_count_cannot_drop_below_allocated(db_session, events, license_10) -> None:
    _allocate(db_session, events, 7)

    with pytest.raises(DomainError) as exc:
        update_license_use_case(
            license_id="LIC-1",
            data=LicenseUpdate(number_of_seats=5),
            actor="sales",
            db=db_session,
            events=events,
        )
    assert exc.value.code == "validation_failed"
    assert exc.value.details == {"allocated": 7, "requested": 5}

    grown = update_license_use_case(
        license_id="LIC-1",
        data=LicenseUpdate(number_of_seats=12, end_date=datetime.now(timezone.utc) + timedelta(days=365)),
        actor="sales",
        db=db_session,
        events=events,
    )
    assert grown.number_of_seats == 12
