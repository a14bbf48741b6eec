from __future__ import annotations

import json

from update_manager.domain_errors import DomainError
from update_manager.error_envelope import build_error_response


def _release(client, version_id, approver="alice"):
    client.post(f"/api/v1/versions/{version_id}/submit")
    client.post(f"/api/v1/versions/{version_id}/approve", headers={"X-Actor": approver})
    return client.post(f"/api/v1/versions/{version_id}/release")


def test_error_envelope_payload() -> None:
    response = build_error_response(
        DomainError(code="seats_exceeded", http_status=409, message="no seats", details={"available": 4})
    )

    assert response.status_code == 409
    assert json.loads(response.body) == {
        "error": {"code": "seats_exceeded", "message": "no seats", "details": {"available": 4}}
    }


def test_error_envelope_omits_missing_details() -> None:
    response = build_error_response(DomainError(code="conflict", http_status=409, message="lost race"))

    assert json.loads(response.body) == {"error": {"code": "conflict", "message": "lost race"}}


def test_release_flow_over_http(client) -> None:
    created = client.post(
        "/api/v1/products",
        json={"product_id": "acme-srv", "name": "Acme Server", "type": "server"},
    )
    assert created.status_code == 201

    version = client.post(
        "/api/v1/products/acme-srv/versions",
        json={"version_number": "1.0.0", "release_type": "feature"},
        headers={"X-Actor": "bob"},
    )
    assert version.status_code == 201
    body = version.json()
    assert body["state"] == "draft"
    assert body["created_by"] == "bob"

    released = _release(client, body["id"])
    assert released.status_code == 200
    assert released.json()["state"] == "released"
    assert released.json()["approved_by"] == "alice"

    again = client.post(f"/api/v1/versions/{body['id']}/release")
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "invalid_transition"


def test_request_validation_uses_envelope(client) -> None:
    response = client.post("/api/v1/products", json={"product_id": "acme-srv", "type": "desktop"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "validation_failed"
    assert {tuple(f["loc"][-1:]) for f in error["details"]["fields"]} >= {("name",), ("type",)}


def test_missing_entities_are_404(client) -> None:
    response = client.get("/api/v1/products/nope")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_duplicate_product_is_409(client) -> None:
    payload = {"product_id": "acme-srv", "name": "Acme Server", "type": "server"}
    client.post("/api/v1/products", json=payload)

    response = client.post("/api/v1/products", json=payload)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "duplicate"


def test_pagination_defaults_and_cap(client) -> None:
    for idx in range(3):
        client.post("/api/v1/products", json={"product_id": f"p-{idx}", "name": f"P {idx}", "type": "client"})

    default = client.get("/api/v1/products").json()
    assert default["page"] == 1
    assert default["limit"] == 20
    assert default["total"] == 3
    assert default["total_pages"] == 1
    assert [p["product_id"] for p in default["items"]] == ["p-0", "p-1", "p-2"]

    capped = client.get("/api/v1/products", params={"limit": 1000}).json()
    assert capped["limit"] == 100

    second = client.get("/api/v1/products", params={"page": 2, "limit": 2}).json()
    assert [p["product_id"] for p in second["items"]] == ["p-2"]
    assert second["total_pages"] == 2

    invalid = client.get("/api/v1/products", params={"page": 0})
    assert invalid.status_code == 400


def test_upgrade_plan_endpoint(client) -> None:
    client.post("/api/v1/products", json={"product_id": "acme-srv", "name": "Acme Server", "type": "server"})
    for number in ("1.0.0", "1.5.0", "2.0.0", "3.0.0"):
        created = client.post(
            "/api/v1/products/acme-srv/versions",
            json={"version_number": number, "release_type": "feature"},
        ).json()
        _release(client, created["id"])

    plan = client.get("/api/v1/products/acme-srv/upgrade-paths", params={"from": "1.0.0", "to": "3.0.0"})
    assert plan.status_code == 200
    assert plan.json()["path_type"] == "multi_step"
    assert plan.json()["intermediate_versions"] == ["2.0.0"]

    blocked = client.post(
        "/api/v1/products/acme-srv/upgrade-paths/block",
        json={"from_version": "1.0.0", "to_version": "2.0.0", "reason": "data migration required"},
    )
    assert blocked.status_code == 200

    plan = client.get("/api/v1/products/acme-srv/upgrade-paths", params={"from": "1.0.0", "to": "3.0.0"}).json()
    assert plan["path_type"] == "blocked"
    assert plan["block_reason"] == "data migration required"


def test_actor_header_is_recorded_in_audit_log(client) -> None:
    client.post(
        "/api/v1/products",
        json={"product_id": "acme-srv", "name": "Acme Server", "type": "server"},
        headers={"X-Actor": "carol"},
    )
    client.post("/api/v1/products", json={"product_id": "acme-cli", "name": "Acme Client", "type": "client"})

    logs = client.get("/api/v1/audit-logs", params={"resource_type": "product"}).json()
    actors = {item["resource_id"]: item["user_id"] for item in logs["items"]}

    assert actors == {"acme-srv": "carol", "acme-cli": "system"}


def test_health_reports_database_and_disabled_cache(client) -> None:
    response = client.get("/api/v1/system/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "ok"
    assert response.json()["redis"] == "disabled"
