from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from update_manager.config import settings
from update_manager.database import store_retry
from update_manager.domain_errors import DomainError


class _Session:
    def __init__(self) -> None:
        self.rollbacks = 0

    def rollback(self) -> None:
        self.rollbacks += 1


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "DB_RETRY_BACKOFF_MS", 0)
    monkeypatch.setattr(settings, "DB_RETRY_ATTEMPTS", 3)


def test_transient_error_is_retried_after_rollback() -> None:
    calls = []

    @store_retry
    def flaky(*, db):
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))
        return "ok"

    session = _Session()
    assert flaky(db=session) == "ok"
    assert len(calls) == 3
    assert session.rollbacks == 2


def test_exhausted_retries_surface_as_internal() -> None:
    @store_retry
    def down(*, db):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    session = _Session()
    with pytest.raises(DomainError) as exc:
        down(db=session)

    assert exc.value.code == "internal"
    assert exc.value.http_status == 500
    assert session.rollbacks == 3


def test_non_transient_errors_propagate_unchanged() -> None:
    calls = []

    @store_retry
    def broken(*, db):
        calls.append(1)
        raise IntegrityError("INSERT", {}, Exception("unique violation"))

    with pytest.raises(IntegrityError):
        broken(db=_Session())
    assert len(calls) == 1
