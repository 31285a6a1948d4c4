"""Tests for EventDispatcher."""

import pytest

from wademo.session.dispatcher import EventDispatcher
from wademo.session.events import EVENT_KINDS, ConnectionUpdate, CredsUpdate, _PARSERS


def complete_dispatcher(handler):
    dispatcher = EventDispatcher()
    for kind in EVENT_KINDS:
        event_type = type(_PARSERS[kind]({}))
        dispatcher.register(event_type, handler)
    return dispatcher


class TestEventDispatcher:

    def test_missing_handler_is_reported(self):
        dispatcher = EventDispatcher()
        dispatcher.register(ConnectionUpdate, lambda event: None)

        with pytest.raises(RuntimeError, match="creds.update"):
            dispatcher.ensure_complete()

    def test_complete_registration_passes(self):
        complete_dispatcher(lambda event: None).ensure_complete()

    @pytest.mark.asyncio
    async def test_handlers_run_in_order(self):
        seen = []

        async def handler(event):
            seen.append(event.kind)

        dispatcher = complete_dispatcher(handler)
        failures = await dispatcher.dispatch({"creds.update": {}, "connection.update": {"connection": "open"}})

        assert failures == 0
        assert seen == ["connection.update", "creds.update"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_batch(self):
        seen = []

        async def handler(event):
            seen.append(event.kind)
            if isinstance(event, ConnectionUpdate):
                raise ValueError("bad update")

        dispatcher = complete_dispatcher(handler)
        failures = await dispatcher.dispatch({
            "connection.update": {"connection": "open"},
            "creds.update": {},
            "chats.delete": [],
        })

        assert failures == 1
        assert seen == ["connection.update", "creds.update", "chats.delete"]

    @pytest.mark.asyncio
    async def test_later_registration_replaces_handler(self):
        seen = []

        async def first(event):
            seen.append("first")

        async def second(event):
            seen.append("second")

        dispatcher = complete_dispatcher(first)
        dispatcher.register(CredsUpdate, second)
        await dispatcher.dispatch({"creds.update": {}})

        assert seen == ["second"]
