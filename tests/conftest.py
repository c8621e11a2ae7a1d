"""Pytest configuration and shared fixtures."""
import pytest
from httpx import AsyncClient, ASGITransport

from control_plane.repositories.memory import InMemoryStore
from control_plane.services.bootstrap import bootstrap_super_admin, seed_default_roles
from control_plane.services.control_plane import ControlPlane

# --- Actors ---
SUPER_ADMIN = "root@coop.test"
OPERATOR = "ops@coop.test"          # operations role: manage_features, no manage_admins
SUPPORT = "support@coop.test"       # member_support role: read only
OUTSIDER = "nobody@coop.test"       # no admin record


def make_control_plane(store) -> ControlPlane:
    """Seed the standard roles, the super admin, an operator and a support admin."""
    cp = ControlPlane(store)
    seed_default_roles(store, cp.audit)
    bootstrap_super_admin(store, cp.audit, SUPER_ADMIN)
    cp.admin_users.assign(SUPER_ADMIN, OPERATOR, store.get_role_by_name("operations").id)
    cp.admin_users.assign(SUPER_ADMIN, SUPPORT, store.get_role_by_name("member_support").id)
    return cp


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def cp(store):
    return make_control_plane(store)


@pytest.fixture
def role(store):
    """Look up a seeded role by name."""
    return store.get_role_by_name


def feature_spec(name="new_loan_ui", **overrides):
    spec = {
        "name": name,
        "display_name": name.replace("_", " ").title(),
        "description": "",
        "category": "lending",
        "platforms": ["web"],
        "rollout_percentage": 0,
        "enabled": False,
    }
    spec.update(overrides)
    return spec


@pytest.fixture
async def client(cp):
    """Async HTTP client bound to the seeded in-memory control plane."""
    from control_plane.main import app as fastapi_app
    from control_plane.api.deps import get_control_plane

    fastapi_app.dependency_overrides[get_control_plane] = lambda: cp
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()
