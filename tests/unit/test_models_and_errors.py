"""Unit tests for data models, errors and notifications."""

import pytest

from sync_engine.engine.notifications import NotificationCenter, NotificationLevel
from sync_engine.schemas.models import CacheEntry, FilterSignature, Position, Record
from sync_engine.utils.errors import (
    InvalidTransitionError,
    TransportError,
    create_error_context,
)


class TestRecord:

    def test_from_dict_splits_status_and_fields(self):
        record = Record.from_dict({"id": 7, "name": "Acme", "queue": "Test Queue"}, status_field="queue")
        assert record.id == "7"
        assert record.fields == {"name": "Acme"}
        assert record.status == "Test Queue"
        assert record.to_dict(status_field="queue") == {"id": "7", "name": "Acme", "queue": "Test Queue"}

    def test_missing_id_is_rejected(self):
        with pytest.raises(ValueError):
            Record.from_dict({"name": "no id"})


class TestFilterSignature:

    def test_equivalent_signatures_share_a_key(self):
        a = FilterSignature(search=" Acme ", filters={"status": "open", "owner": "", "region": "eu"})
        b = FilterSignature(search="acme", filters={"region": "eu", "status": "open"})
        assert a.key() == b.key()
        assert a == b
        assert len({a, b}) == 1

    def test_different_filters_differ(self):
        assert FilterSignature(filters={"status": "open"}) != FilterSignature(filters={"status": "closed"})

    def test_with_search_keeps_filters(self):
        signature = FilterSignature(filters={"status": "open"}).with_search("x")
        assert signature.to_params() == {"search": "x", "status": "open"}


class TestPosition:

    def test_exactly_one_of_offset_or_cursor(self):
        with pytest.raises(ValueError):
            Position(offset=0, cursor="abc")
        with pytest.raises(ValueError):
            Position()
        assert Position.at_cursor("abc").to_params() == {"cursor": "abc"}

    def test_negative_offset_is_rejected(self):
        with pytest.raises(ValueError):
            Position.at_offset(-1)


def test_cache_entry_roundtrip_and_age():
    entry = CacheEntry(key="k", payload={"v": 1}, timestamp=100.0, ttl=600, kind="counts")
    assert CacheEntry.from_dict(entry.to_dict()) == entry
    assert entry.age(160.0) == 60.0


def test_error_to_dict_includes_context():
    error = InvalidTransitionError(
        "nope",
        from_state="Calibration Queue",
        to_state="Calibration Queue",
        record_id="a",
        context=create_error_context(view="records", operation="set_edit", record_id="a"),
    )
    data = error.to_dict()
    assert data["error_code"] == "INVALID_TRANSITION"
    assert data["details"]["record_id"] == "a"
    assert data["context"]["operation"] == "set_edit"


def test_transport_error_is_retryable():
    error = TransportError("slow", transport_code="timeout", attempts=3)
    assert error.retryable
    assert error.details == {"transport_code": "timeout", "attempts": 3}


class TestNotificationCenter:

    def test_notify_and_dismiss(self):
        center = NotificationCenter("records")
        seen = []
        center.subscribe(seen.append)

        first = center.warning("stale_cache", "Showing cached data", age_seconds=30)
        center.error("transport_failure", "Failed")

        assert center.codes() == ["stale_cache", "transport_failure"]
        assert seen[0].level is NotificationLevel.WARNING
        assert first.to_dict()["details"] == {"age_seconds": 30}
        assert center.dismiss(first.id)
        assert center.codes() == ["transport_failure"]

    def test_bounded(self):
        center = NotificationCenter("records", max_items=3)
        for i in range(5):
            center.info("n", str(i))
        assert [n.message for n in center.active()] == ["2", "3", "4"]

    def test_failing_listener_does_not_break_notify(self):
        center = NotificationCenter("records")

        def broken(notification):
            raise RuntimeError("listener bug")

        center.subscribe(broken)
        center.info("n", "still recorded")
        assert center.codes() == ["n"]
