# extensions/redis_client.py
import logging
import os

import redis
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

_DEFAULT_URL = "redis://127.0.0.1:6379/0"
_clients = {}


def get_redis():
    """按 REDIS_URL 缓存客户端；应用上下文内优先使用应用配置。"""
    url = None
    if has_app_context():
        url = current_app.config.get("REDIS_URL")
    url = url or os.getenv("REDIS_URL", _DEFAULT_URL)
    client = _clients.get(url)
    if client is None:
        logger.info("redis client created for %s", url.rsplit("@", 1)[-1])
        client = redis.from_url(url)
        _clients[url] = client
    return client
