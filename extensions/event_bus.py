# extensions/event_bus.py
"""
论坛领域事件广播。
- 底层使用 Flask-SocketIO 向所有已连接客户端广播，不做按订阅者过滤（客户端按 category/thread id 自行过滤）。
- 发送是尽力而为：Socket.IO 未初始化或发送异常时只记录日志，绝不影响调用方的业务结果。
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import current_app, has_app_context
from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

socketio = SocketIO(logger=False, engineio_logger=False)


class EventBus:
    def __init__(self, sio: SocketIO) -> None:
        self._socketio = sio
        self._bound = False
        self._prefix = "forum:"

    def init_app(self, app) -> None:
        self._prefix = app.config.get("FORUM_EVENT_PREFIX", "")
        origins = app.config.get("SOCKETIO_CORS_ORIGINS") or "*"
        if origins != "*":
            origins = [o.strip() for o in origins.split(",") if o.strip()]
        self._socketio.init_app(
            app,
            cors_allowed_origins=origins,
            async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "threading"),
        )
        self._bound = True

    def wire_name(self, event_name: str) -> str:
        prefix = self._prefix
        if has_app_context():
            prefix = current_app.config.get("FORUM_EVENT_PREFIX", prefix)
        return f"{prefix}{event_name}"

    def emit(self, event_name: str, payload: Dict[str, Any]) -> bool:
        """广播一个事件；返回是否成功交给 Socket.IO。"""
        name = getattr(event_name, "value", event_name)
        if not self._bound:
            logger.debug("event bus not bound, drop event %s", name)
            return False
        try:
            self._socketio.emit(self.wire_name(name), payload)
        except Exception:
            logger.exception("emit forum event failed: %s %s", name, payload)
            return False
        return True


event_bus = EventBus(socketio)

__all__ = ["socketio", "event_bus", "EventBus"]
