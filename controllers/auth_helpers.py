# controllers/auth_helpers.py
from __future__ import annotations

import logging
from functools import wraps

from flask import g, request

from constants.roles import normalize_role
from extensions.jwt import TokenError, decode_token
from utils.exceptions import ValidationError
from utils.permissions import CurrentUser
from utils.response import json_response
from utils.validators import normalize_email

logger = logging.getLogger(__name__)


def _extract_bearer(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def _resolve_user_from_token(token: str) -> CurrentUser:
    """
    解析 token 并返回 CurrentUser。
    失败时抛出 (code, message) 的 ValueError，供调用方决定如何返回。
    """
    try:
        payload = decode_token(token)
    except TokenError as e:
        logger.info("token rejected: %s", e)
        raise ValueError(("TOKEN_INVALID", "Token 无效或已过期"))

    try:
        email = normalize_email(payload.get("sub"))
        role = normalize_role(payload.get("role"))
    except (ValidationError, ValueError):
        raise ValueError(("TOKEN_PAYLOAD_INVALID", "Token 载荷无效"))
    return CurrentUser(email=email, role=role)


def auth_required():
    """
    鉴权装饰器：
      - 验证 Authorization: Bearer <token>
      - 解析 token -> CurrentUser，注入 g.current_user
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            g.current_user = None
            token = _extract_bearer(request.headers.get("Authorization"))
            if not token:
                return json_response(code=401, message="缺少或无效 Authorization")
            try:
                user = _resolve_user_from_token(token)
            except ValueError as ve:
                _code, msg = ve.args[0] if isinstance(ve.args[0], tuple) else ("TOKEN_ERROR", "认证失败")
                return json_response(code=401, message=msg)

            g.current_user = user
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def optional_auth():
    """
    可选鉴权：
      - 无 Authorization：g.current_user = None，继续
      - 有 Authorization 且有效：注入 g.current_user
      - 有 Authorization 但无效：返回 401
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = _extract_bearer(request.headers.get("Authorization"))
            if token is None:
                g.current_user = None
                return fn(*args, **kwargs)
            try:
                user = _resolve_user_from_token(token)
            except ValueError as ve:
                _code, msg = ve.args[0] if isinstance(ve.args[0], tuple) else ("TOKEN_ERROR", "认证失败")
                return json_response(code=401, message=msg)
            g.current_user = user
            return fn(*args, **kwargs)

        return wrapper

    return decorator
