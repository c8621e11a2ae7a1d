"""Audit log: diffs, ordering and atomicity with the mutation."""
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from control_plane.repositories.memory import InMemoryStore
from control_plane.schemas.admin import AdminUserRecord
from control_plane.schemas.pagination import PageParams
from control_plane.services.audit_log import AuditLog, diff
from control_plane.services.common import evolve

from tests.conftest import OPERATOR, feature_spec


def _admin_user(**overrides):
    now = datetime.now(timezone.utc)
    fields = dict(
        id=uuid4(), user_ref="alice", role_id=uuid4(), status="active",
        assigned_by="root", created_at=now, updated_at=now,
    )
    fields.update(overrides)
    return AdminUserRecord(**fields)


def test_diff_reports_only_changed_fields():
    before = _admin_user()
    after = evolve(before, status="suspended")
    changes = diff(before, after)
    assert {k: v.model_dump() for k, v in changes.items()} == {
        "status": {"old": "active", "new": "suspended"},
    }


def test_diff_ignores_bookkeeping_fields():
    before = _admin_user()
    after = evolve(before, version=7, updated_at=datetime.now(timezone.utc))
    assert diff(before, after) == {}


def test_diff_for_creation_reports_every_field():
    record = _admin_user()
    changes = diff(None, record)
    assert set(changes) == {"user_ref", "role_id", "status", "assigned_by"}
    assert changes["role_id"].old is None
    assert changes["role_id"].new == str(record.role_id)


def test_config_number_to_bool_is_a_change(cp):
    feature = cp.features.create(OPERATOR, feature_spec(config={"flag": 1}))
    updated = cp.features.update_config(OPERATOR, feature.id, {"flag": True})
    assert updated.version == 2
    entry = cp.audit.query(feature.id).items[0]
    assert entry.changes["config.flag"].model_dump() == {"old": 1, "new": True}


def test_record_without_transaction_commits_on_its_own():
    store = InMemoryStore()
    audit = AuditLog(store)
    entity_id = uuid4()
    entry = audit.record(None, entity_id, "feature", "enabled", "root", {})
    page = audit.query(entity_id)
    assert page.items == [entry.model_copy(update={"sequence": page.items[0].sequence})]


def test_record_inside_failed_transaction_is_discarded():
    store = InMemoryStore()
    audit = AuditLog(store)
    entity_id = uuid4()
    with pytest.raises(RuntimeError):
        with store.transaction() as tx:
            audit.record(tx, entity_id, "feature", "enabled", "root", {})
            raise RuntimeError("boom")
    assert audit.query(entity_id).total == 0


def test_query_newest_first_with_total_order():
    store = InMemoryStore()
    audit = AuditLog(store)
    entity_id = uuid4()
    with store.transaction() as tx:
        for action in ("created", "enabled", "disabled"):
            audit.record(tx, entity_id, "feature", action, "root", {})

    page = audit.query(entity_id, PageParams(page=1, limit=2))
    assert page.total == 3
    assert [e.action for e in page.items] == ["disabled", "enabled"]
    assert page.items[0].sequence > page.items[1].sequence

    rest = audit.query(entity_id, PageParams(page=2, limit=2))
    assert [e.action for e in rest.items] == ["created"]


def test_entries_are_scoped_to_their_entity(cp):
    first = cp.features.create(OPERATOR, feature_spec("first"))
    second = cp.features.create(OPERATOR, feature_spec("second"))
    cp.features.enable(OPERATOR, second.id)
    assert cp.audit.query(first.id).total == 1
    assert cp.audit.query(second.id).total == 2
