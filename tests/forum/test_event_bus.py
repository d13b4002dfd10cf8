# -*- coding: utf-8 -*-
from flask_socketio import SocketIO

from constants.forum import ForumEvent
from extensions.event_bus import EventBus, event_bus, socketio


def test_unbound_bus_drops_events():
    bus = EventBus(SocketIO())
    assert bus.emit("thread_created", {"threadId": 1}) is False


def test_wire_name_uses_configured_prefix(app_context):
    assert event_bus.wire_name("post_created") == "forum:post_created"

    app_context.config["FORUM_EVENT_PREFIX"] = "lms.forum."
    assert event_bus.wire_name("post_created") == "lms.forum.post_created"


def test_emit_accepts_enum_members(app_context, events):
    assert event_bus.emit(ForumEvent.CATEGORY_CREATED, {"categoryId": 7}) is True
    assert events == [("forum:category_created", {"categoryId": 7})]


def test_emit_failure_is_swallowed(app_context, monkeypatch):
    def _broken(*_args, **_kwargs):
        raise ConnectionError("no transport")

    monkeypatch.setattr(socketio, "emit", _broken)

    assert event_bus.emit("thread_deleted", {"threadId": 3}) is False
