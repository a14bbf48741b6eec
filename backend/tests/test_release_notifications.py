from __future__ import annotations

from update_manager.models import Notification
from update_manager.pagination import PageParams
from update_manager.use_cases.notifications import (
    list_notifications_use_case,
    mark_all_read_use_case,
    mark_read_use_case,
    unread_count_use_case,
)


def _estate(seed):
    seed.product("acme-srv", type="server", name="Acme Server")
    seed.version("acme-srv", "1.0.0")

    seed.customer("CUST-PROD")
    seed.tenant("CUST-PROD", "TEN-PROD")
    seed.deployment("TEN-PROD", "DEP-PROD", product_id="acme-srv", installed_version="1.0.0")

    seed.customer("CUST-UAT")
    seed.tenant("CUST-UAT", "TEN-UAT")
    seed.deployment("TEN-UAT", "DEP-UAT", product_id="acme-srv", installed_version="1.0.0", deployment_type="uat")

    seed.customer("CUST-QUIET", uat_notifications=False)
    seed.tenant("CUST-QUIET", "TEN-QUIET")
    seed.deployment("TEN-QUIET", "DEP-QUIET", product_id="acme-srv", installed_version="1.0.0", deployment_type="uat")


def test_release_notifies_each_affected_customer_once(db_session, seed) -> None:
    _estate(seed)
    seed.deployment("TEN-PROD", "DEP-PROD-UAT", product_id="acme-srv", installed_version="1.0.0", deployment_type="uat")

    version = seed.version("acme-srv", "1.1.0")

    rows = db_session.query(Notification).filter(Notification.version_id == version.id).all()
    by_customer = {n.recipient_id: n for n in rows}
    assert set(by_customer) == {"CUST-PROD", "CUST-UAT"}
    assert by_customer["CUST-PROD"].priority == "high"
    assert by_customer["CUST-UAT"].priority == "normal"
    assert by_customer["CUST-PROD"].type == "new_version"
    assert "DEP-PROD, DEP-PROD-UAT" in by_customer["CUST-PROD"].message
    assert by_customer["CUST-PROD"].title == "New version: Acme Server 1.1.0"


def test_security_release_is_critical(db_session, seed) -> None:
    _estate(seed)

    version = seed.version("acme-srv", "1.0.1", release_type="security")

    rows = db_session.query(Notification).filter(Notification.version_id == version.id).all()
    assert {n.priority for n in rows} == {"critical"}
    assert {n.type for n in rows} == {"security_release"}


def test_inbox_read_flow(db_session, seed) -> None:
    _estate(seed)
    seed.version("acme-srv", "1.1.0")
    seed.version("acme-srv", "1.2.0")

    assert unread_count_use_case(recipient_id="CUST-PROD", db=db_session).unread_count == 2

    page = list_notifications_use_case(recipient_id="CUST-PROD", db=db_session, params=PageParams(page=1, limit=20))
    marked = mark_read_use_case(notification_id=page["items"][0].id, db=db_session)
    assert marked.is_read is True
    assert marked.read_at is not None
    assert unread_count_use_case(recipient_id="CUST-PROD", db=db_session).unread_count == 1

    result = mark_all_read_use_case(recipient_id="CUST-PROD", db=db_session)
    assert result["updated"] == 1
    assert unread_count_use_case(recipient_id="CUST-PROD", db=db_session).unread_count == 0
