"""HTTP surface: routing, error mapping, headers and metrics."""
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY

from control_plane.api import deps
from control_plane.config import settings

from tests.conftest import OPERATOR, OUTSIDER, SUPER_ADMIN, SUPPORT, feature_spec

FEATURES = "/api/v1/features"


def _as(actor, **headers):
    return {"X-Actor": actor, **headers}


async def _create(client, **overrides):
    response = await client.post(f"{FEATURES}/", json=feature_spec(**overrides), headers=_as(OPERATOR))
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_feature_lifecycle_over_http(client):
    feature = await _create(client)
    assert feature["version"] == 1
    assert feature["enabled"] is False

    check_url = f"{FEATURES}/check/new_loan_ui?platform=web&target_key=member-42"
    assert (await client.get(check_url)).json()["enabled"] is False

    enabled = await client.post(f"{FEATURES}/{feature['id']}/enable", headers=_as(OPERATOR))
    assert enabled.status_code == 200
    assert enabled.json()["version"] == 2

    rolled = await client.patch(
        f"{FEATURES}/{feature['id']}/rollout",
        json={"rollout_percentage": 100},
        headers=_as(OPERATOR),
    )
    assert rolled.json()["rollout_percentage"] == 100
    assert (await client.get(check_url)).json()["enabled"] is True

    await client.patch(
        f"{FEATURES}/{feature['id']}/rollout",
        json={"rollout_percentage": 0},
        headers=_as(OPERATOR),
    )
    assert (await client.get(check_url)).json()["enabled"] is False

    log = await client.get(f"{FEATURES}/{feature['id']}/changelog", headers=_as(SUPPORT))
    body = log.json()
    assert body["total"] == 4
    assert body["perPage"] == 20
    assert [e["action"] for e in body["items"]] == ["rollout_updated", "rollout_updated", "enabled", "created"]
    assert body["items"][0]["changes"]["rollout_percentage"] == {"old": 100, "new": 0}


@pytest.mark.asyncio
async def test_denied_mutation_returns_generic_403(client):
    feature = await _create(client)
    response = await client.post(f"{FEATURES}/{feature['id']}/enable", headers=_as(SUPPORT))
    assert response.status_code == 403
    assert response.json() == {
        "error": {"code": "PERMISSION_DENIED", "message": "Insufficient privilege", "details": []},
    }

    missing_actor = await client.post(f"{FEATURES}/{feature['id']}/enable")
    assert missing_actor.status_code == 403

    current = await client.get(f"{FEATURES}/{feature['id']}", headers=_as(SUPPORT))
    assert current.json()["enabled"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"rollout_percentage": 150},
    {"rollout_percentage": -1},
    {"rollout_percentage": 50, "extra": True},
    {"rollout_percentage": "50"},
])
async def test_invalid_rollout_is_400(client, payload):
    feature = await _create(client)
    response = await client.patch(f"{FEATURES}/{feature['id']}/rollout", json=payload, headers=_as(OPERATOR))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_invalid_create_is_400(client):
    response = await client.post(
        f"{FEATURES}/",
        json=feature_spec(platforms=["web", "smart_fridge"]),
        headers=_as(OPERATOR),
    )
    assert response.status_code == 400
    assert response.json()["error"]["details"]


@pytest.mark.asyncio
async def test_unknown_feature_is_404(client):
    response = await client.get(f"{FEATURES}/{uuid4()}", headers=_as(SUPER_ADMIN))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_stale_expected_version_is_409(client):
    feature = await _create(client)
    await client.post(f"{FEATURES}/{feature['id']}/enable", headers=_as(OPERATOR))
    response = await client.post(
        f"{FEATURES}/{feature['id']}/disable?expected_version=1",
        headers=_as(OPERATOR),
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_expired_deadline_is_504(client):
    response = await client.get(
        f"{FEATURES}/",
        headers=_as(SUPPORT, **{"X-Request-Timeout": "0.000001"}),
    )
    assert response.status_code == 504
    assert response.json()["error"]["code"] == "DEADLINE_EXCEEDED"


@pytest.mark.asyncio
async def test_malformed_timeout_falls_back_to_default(client):
    response = await client.get(f"{FEATURES}/", headers=_as(SUPPORT, **{"X-Request-Timeout": "soon"}))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_list_filters_over_http(client):
    await _create(client, name="loan_calculator", platforms=["web", "mobile"])
    await _create(client, name="instant_transfer", category="payment", platforms=["mobile"])
    response = await client.get(f"{FEATURES}/?platform=mobile&sort=name", headers=_as(SUPPORT))
    assert [f["name"] for f in response.json()["items"]] == ["instant_transfer", "loan_calculator"]

    bad_page = await client.get(f"{FEATURES}/?page=0", headers=_as(SUPPORT))
    assert bad_page.status_code == 400


@pytest.mark.asyncio
async def test_platform_listing_is_public(client):
    feature = await _create(client, name="dark_mode", platforms=["web"], config={"theme": "dark"})
    await client.post(f"{FEATURES}/{feature['id']}/enable", headers=_as(OPERATOR))
    response = await client.get(f"{FEATURES}/platform/web")
    assert response.status_code == 200
    assert response.json() == [{"name": "dark_mode", "display_name": "Dark Mode", "description": ""}]

    assert (await client.get(f"{FEATURES}/platform/desktop")).status_code == 400


@pytest.mark.asyncio
async def test_retire_over_http(client):
    feature = await _create(client)
    response = await client.delete(f"{FEATURES}/{feature['id']}", headers=_as(OPERATOR))
    assert response.status_code == 200
    assert response.json()["retired"] is True


@pytest.mark.asyncio
async def test_admin_roles_include_level_label(client):
    response = await client.get("/api/v1/admin-roles/", headers=_as(SUPPORT))
    assert response.status_code == 200
    first = response.json()["items"][0]
    assert first["name"] == "super_admin"
    assert first["level_label"] == "Super Admin"


@pytest.mark.asyncio
async def test_admin_user_assignment_over_http(client):
    roles = (await client.get("/api/v1/admin-roles/?search=finance", headers=_as(SUPPORT))).json()
    finance_id = roles["items"][0]["id"]

    denied = await client.post(
        "/api/v1/admin-users/",
        json={"user_ref": "alice", "role_id": finance_id},
        headers=_as(OPERATOR),
    )
    assert denied.status_code == 403

    created = await client.post(
        "/api/v1/admin-users/",
        json={"user_ref": "alice", "role_id": finance_id},
        headers=_as(SUPER_ADMIN),
    )
    assert created.status_code == 201
    assert created.json()["status"] == "active"

    check = await client.get("/api/v1/admin-users/check/alice")
    assert check.json() == {"user_ref": "alice", "is_admin": True}
    assert (await client.get(f"/api/v1/admin-users/check/{OUTSIDER}")).json()["is_admin"] is False


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    await _create(client)
    await client.get(f"{FEATURES}/check/new_loan_ui?platform=web&target_key=member-42")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "feature_evaluations_total" in response.text
    assert "http_requests_total" in response.text


@pytest.mark.asyncio
async def test_check_endpoint_counts_evaluations(client):
    await _create(client, enabled=True, rollout_percentage=100)

    def on():
        return REGISTRY.get_sample_value("feature_evaluations_total", {"result": "on"}) or 0

    before = on()
    response = await client.get(f"{FEATURES}/check/new_loan_ui?platform=web&target_key=member-42")
    assert response.json()["enabled"] is True
    assert on() == before + 1


@pytest.mark.asyncio
async def test_get_role_by_name_over_http(client):
    response = await client.get("/api/v1/admin-roles/name/finance", headers=_as(SUPPORT))
    assert response.status_code == 200
    assert response.json()["name"] == "finance"

    assert (await client.get("/api/v1/admin-roles/name/finance", headers=_as(OUTSIDER))).status_code == 403
    assert (await client.get("/api/v1/admin-roles/name/nobody", headers=_as(SUPPORT))).status_code == 404


@pytest.fixture
async def default_client(monkeypatch):
    """Client over the app's own memory backend, no dependency overrides."""
    from control_plane.main import app as fastapi_app

    monkeypatch.setattr(settings, "STORE_BACKEND", "memory")
    deps.get_control_plane.cache_clear()
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    deps.get_control_plane.cache_clear()


@pytest.mark.asyncio
async def test_memory_backend_is_seeded(default_client):
    admin = _as(settings.FIRST_SUPER_ADMIN_REF)

    created = await default_client.post(f"{FEATURES}/", json=feature_spec(), headers=admin)
    assert created.status_code == 201

    role = await default_client.get("/api/v1/admin-roles/name/super_admin", headers=admin)
    assert role.status_code == 200
    roles = await default_client.get("/api/v1/admin-roles/", headers=admin)
    assert {"super_admin", "operations", "finance"} <= {r["name"] for r in roles.json()["items"]}
