from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from update_manager.domain_errors import DomainError
from update_manager.models import AuditLog, Version
from update_manager.schemas import PackageCreate, ProductUpdate, VersionCreate, VersionUpdate
from update_manager.use_cases import version_transitions
from update_manager.use_cases.catalog import (
    add_package_use_case,
    create_version_use_case,
    deactivate_product_use_case,
    get_version_use_case,
    list_eol_warnings_use_case,
    list_versions_use_case,
    update_product_use_case,
    update_version_use_case,
)
from update_manager.use_cases.version_transitions import (
    approve_version_use_case,
    release_version_use_case,
    reject_version_use_case,
    submit_version_use_case,
)
from update_manager.pagination import PageParams


def test_release_happy_path_stamps_approval_and_release(db_session, events, seed) -> None:
    seed.product("acme-srv", type="server")
    draft = seed.version("acme-srv", "1.0.0", state="draft")
    assert draft.state == "draft"

    submit_version_use_case(version_id=draft.id, actor="bob", db=db_session, events=events)
    approved = approve_version_use_case(version_id=draft.id, actor="alice", db=db_session, events=events)
    released = release_version_use_case(version_id=draft.id, actor="alice", db=db_session, events=events)

    assert approved.approved_by == "alice"
    assert released.state == "released"
    assert released.approved_by == "alice"
    assert released.approved_at is not None
    assert released.released_at is not None

    actions = [
        row.action
        for row in db_session.query(AuditLog)
        .filter(AuditLog.resource_type == "version", AuditLog.resource_id == str(draft.id))
        .all()
    ]
    assert sorted(actions) == ["approve", "create", "release", "submit"]


def test_release_from_eol_is_invalid_transition_and_state_is_unchanged(db_session, events, seed) -> None:
    seed.product("acme-srv")
    retired = seed.version("acme-srv", "0.9.0", state="eol")

    with pytest.raises(DomainError) as exc:
        release_version_use_case(version_id=retired.id, actor="alice", db=db_session, events=events)

    assert exc.value.code == "invalid_transition"
    assert exc.value.http_status == 409
    assert exc.value.details == {"current": "eol", "requested": "released"}
    assert get_version_use_case(version_id=retired.id, db=db_session).state == "eol"


def test_reject_returns_version_to_draft(db_session, events, seed) -> None:
    seed.product("acme-srv")
    pending = seed.version("acme-srv", "1.1.0", state="pending_review")

    rejected = reject_version_use_case(version_id=pending.id, actor="alice", db=db_session, events=events)

    assert rejected.state == "draft"


def test_concurrent_transition_loses_with_conflict(db_session, events, seed, monkeypatch) -> None:
    seed.product("acme-srv")
    draft = seed.version("acme-srv", "1.2.0", state="draft")

    # Another request moved the row after this one read it.
    db_session.query(Version).filter(Version.id == draft.id).update({"state": "pending_review"})
    db_session.commit()
    stale = SimpleNamespace(id=draft.id, state="draft")
    monkeypatch.setattr(version_transitions, "get_version", lambda db, version_id: stale)

    with pytest.raises(DomainError) as exc:
        submit_version_use_case(version_id=draft.id, actor="bob", db=db_session, events=events)

    assert exc.value.code == "conflict"
    assert exc.value.http_status == 409


def test_versions_are_unique_per_product(db_session, events, seed) -> None:
    seed.product("acme-srv")
    seed.version("acme-srv", "1.0.0", state="draft")

    with pytest.raises(DomainError) as exc:
        create_version_use_case(
            product_id="acme-srv",
            data=VersionCreate(version_number="1.0.0", release_type="feature"),
            actor="tester",
            db=db_session,
            events=events,
        )

    assert exc.value.code == "duplicate"
    assert exc.value.http_status == 409


def test_versions_cannot_be_created_for_inactive_product(db_session, events, seed) -> None:
    seed.product("acme-srv")
    deactivate_product_use_case(product_id="acme-srv", actor="tester", db=db_session, events=events)

    with pytest.raises(DomainError) as exc:
        seed.version("acme-srv", "1.0.0", state="draft")

    assert exc.value.code == "validation_failed"


def test_version_server_interval_is_validated(db_session, events, seed) -> None:
    seed.product("acme-cli", type="client")

    with pytest.raises(DomainError) as exc:
        create_version_use_case(
            product_id="acme-cli",
            data=VersionCreate(
                version_number="1.0.0",
                release_type="feature",
                min_server_version="2.0.0",
                max_server_version="1.0.0",
            ),
            actor="tester",
            db=db_session,
            events=events,
        )

    assert exc.value.code == "validation_failed"
    assert exc.value.http_status == 400


def test_only_draft_versions_are_editable(db_session, events, seed) -> None:
    seed.product("acme-srv")
    draft = seed.version("acme-srv", "1.0.0", state="draft")
    released = seed.version("acme-srv", "1.1.0")

    updated = update_version_use_case(
        version_id=draft.id,
        data=VersionUpdate(release_type="security", release_notes={"summary": "fixes"}),
        actor="tester",
        db=db_session,
        events=events,
    )
    assert updated.release_type == "security"
    assert updated.release_notes == {"summary": "fixes"}

    with pytest.raises(DomainError) as exc:
        update_version_use_case(
            version_id=released.id,
            data=VersionUpdate(release_notes={"summary": "late edit"}),
            actor="tester",
            db=db_session,
            events=events,
        )
    assert exc.value.code == "invalid_transition"


def test_packages_are_recorded_on_draft_versions(db_session, events, seed) -> None:
    seed.product("acme-srv")
    draft = seed.version("acme-srv", "1.0.0", state="draft")

    result = add_package_use_case(
        version_id=draft.id,
        data=PackageCreate(type="full_installer", name="acme-1.0.0.msi", size_bytes=1024, sha256="AB" * 32),
        actor="tester",
        db=db_session,
        events=events,
    )

    assert len(result.packages) == 1
    assert result.packages[0].sha256 == "ab" * 32
    assert result.packages[0].uploaded_by == "tester"

    with pytest.raises(DomainError) as exc:
        add_package_use_case(
            version_id=draft.id,
            data=PackageCreate(type="delta", name="bad.bin", size_bytes=1, sha256="nothex"),
            actor="tester",
            db=db_session,
            events=events,
        )
    assert exc.value.code == "validation_failed"


def test_list_versions_sorts_newest_first_by_version_order(db_session, events, seed) -> None:
    seed.product("acme-srv")
    for number in ("1.2.0", "1.10.0", "1.9.0"):
        seed.version("acme-srv", number, state="draft")

    page = list_versions_use_case(product_id="acme-srv", db=db_session, params=PageParams(page=1, limit=2))

    assert [v.version_number for v in page["items"]] == ["1.10.0", "1.9.0"]
    assert page["total"] == 3
    assert page["total_pages"] == 2


def test_deprecated_version_past_eol_reads_as_eol(db_session, events, seed) -> None:
    seed.product("acme-srv")
    past = datetime.now(timezone.utc) - timedelta(days=2)
    version = seed.version("acme-srv", "1.0.0", state="deprecated", eol_date=past)

    assert version.state == "deprecated"
    assert get_version_use_case(version_id=version.id, db=db_session).effective_state == "eol"


def test_eol_warnings_within_window(db_session, events, seed) -> None:
    seed.product("acme-srv")
    at = datetime(2026, 5, 1, tzinfo=timezone.utc)
    seed.version("acme-srv", "1.0.0", state="deprecated", eol_date=at + timedelta(days=10))
    seed.version("acme-srv", "1.1.0", state="deprecated", eol_date=at + timedelta(days=90))

    warnings = list_eol_warnings_use_case(product_id="acme-srv", db=db_session, within_days=30, at=at)

    assert [w.version_number for w in warnings] == ["1.0.0"]
    assert warnings[0].days_remaining == 10


def test_product_update_changes_only_given_fields(db_session, events, seed) -> None:
    seed.product("acme-srv", name="Acme Server")

    updated = update_product_use_case(
        product_id="acme-srv",
        data=ProductUpdate(vendor="Acme"),
        actor="tester",
        db=db_session,
        events=events,
    )

    assert updated.vendor == "Acme"
    assert updated.name == "Acme Server"
