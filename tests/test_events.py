"""Tests for event batch parsing."""

from conftest import LOGOUT_CLOSE, TRANSIENT_CLOSE
from wademo.session.events import (
    EVENT_KINDS,
    ConnectionUpdate,
    ContactsUpdate,
    CredsUpdate,
    HistorySet,
    MessagesUpsert,
    PresenceUpdate,
    parse_batch,
)


class TestParseBatch:

    def test_events_follow_fixed_processing_order(self):
        events = parse_batch({
            "contacts.update": [],
            "messages.upsert": {"messages": [], "type": "notify"},
            "creds.update": {"registered": True},
            "connection.update": {"connection": "open"},
        })
        assert [type(e) for e in events] == [ConnectionUpdate, CredsUpdate, MessagesUpsert, ContactsUpdate]

    def test_all_kinds_are_known(self):
        assert len(EVENT_KINDS) == 14
        assert EVENT_KINDS[0] == "connection.update"
        assert EVENT_KINDS[-1] == "chats.delete"

    def test_unknown_kinds_are_ignored(self):
        events = parse_batch({"blocklist.set": {}, "presence.update": {"id": "x"}})
        assert len(events) == 1
        assert isinstance(events[0], PresenceUpdate)
        assert events[0].payload == {"id": "x"}

    def test_empty_batch(self):
        assert parse_batch({}) == []


class TestConnectionUpdate:

    def test_logout_status_is_extracted(self):
        (event,) = parse_batch(LOGOUT_CLOSE)
        assert event.connection == "close"
        assert event.status_code == 401
        assert event.reason == "Logged Out"
        assert event.is_logged_out

    def test_transient_close_is_not_logout(self):
        (event,) = parse_batch(TRANSIENT_CLOSE)
        assert event.status_code == 428
        assert not event.is_logged_out

    def test_close_without_status_code(self):
        (event,) = parse_batch({"connection.update": {"connection": "close", "lastDisconnect": {}}})
        assert event.status_code is None
        assert not event.is_logged_out

    def test_qr_update(self):
        (event,) = parse_batch({"connection.update": {"qr": "2@abc"}})
        assert event.connection is None
        assert event.qr == "2@abc"
        assert event.raw == {"qr": "2@abc"}


class TestPayloads:

    def test_upsert_request_id(self):
        (event,) = parse_batch({"messages.upsert": {"messages": [{"key": {}}], "type": "notify", "requestId": "R1"}})
        assert event.request_id == "R1"
        assert event.type == "notify"
        assert len(event.messages) == 1

    def test_history_sync_type(self):
        (on_demand,) = parse_batch({"messaging-history.set": {"syncType": 6, "isLatest": False, "progress": 40}})
        (initial,) = parse_batch({"messaging-history.set": {"syncType": 2}})
        assert isinstance(on_demand, HistorySet)
        assert on_demand.is_on_demand
        assert on_demand.progress == 40
        assert not initial.is_on_demand

    def test_null_payloads_become_empty(self):
        events = parse_batch({"creds.update": None, "contacts.update": None, "messages.upsert": None})
        assert events[0].creds == {}
        assert events[1].messages == []
        assert events[2].contacts == []
