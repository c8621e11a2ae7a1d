import json
import logging

from control_plane.logging_config import (
    HumanFormatter,
    JSONFormatter,
    actor_ctx,
    mask_pii,
    request_id_ctx,
)


def _record(msg, *args, **extra):
    record = logging.LogRecord("control_plane.audit", logging.INFO, __file__, 1, msg, args, None)
    record.__dict__.update(extra)
    return record


def test_mask_pii():
    assert mask_pii("assigned by root@coop.test") == "assigned by r***@coop.test"
    assert mask_pii('{"token": "abc123"}') == '{"token": "***"}'
    assert mask_pii("no personal data") == "no personal data"


def test_json_formatter_includes_context_and_extras():
    rid = request_id_ctx.set("req-1")
    actor = actor_ctx.set("ops@coop.test")
    try:
        line = JSONFormatter().format(
            _record("%s by %s", "enabled", "ops@coop.test", entity_type="feature", fields=["enabled"])
        )
    finally:
        request_id_ctx.reset(rid)
        actor_ctx.reset(actor)

    entry = json.loads(line)
    assert entry["message"] == "enabled by o***@coop.test"
    assert entry["request_id"] == "req-1"
    assert entry["actor"] == "o***@coop.test"
    assert entry["entity_type"] == "feature"
    assert entry["fields"] == ["enabled"]
    assert entry["level"] == "INFO"


def test_json_formatter_drops_empty_context():
    entry = json.loads(JSONFormatter().format(_record("startup")))
    assert "request_id" not in entry
    assert "actor" not in entry


def test_human_formatter():
    line = HumanFormatter().format(_record("hello %s", "root@coop.test"))
    assert "control_plane.audit" in line
    assert "hello r***@coop.test" in line


def test_human_formatter_leaves_shared_record_untouched():
    record = _record("hello %s", "root@coop.test")
    HumanFormatter().format(record)

    # a JSON handler on the same logger still sees the original record
    assert record.msg == "hello %s"
    assert record.args == ("root@coop.test",)
    assert not hasattr(record, "request_id")
    assert "r***@coop.test" in JSONFormatter().format(record)
