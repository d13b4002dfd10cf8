# extensions/jwt.py
"""
论坛访问 token（HS256，自签发）。
载荷约定：
  - sub : 调用方邮箱（论坛内所有归属判断都以邮箱为准）
  - role: LMS 角色 student / teacher / admin
  - exp / iat / jti
吊销由认证服务负责：它把 jti 写入 redis 黑名单 jwt:blk:<jti>，这里只做检查。
"""
import base64
import hashlib
import hmac
import json
import time
import uuid

from flask import current_app

from extensions.redis_client import get_redis

_HEADER = {"alg": "HS256", "typ": "JWT"}
_BLACKLIST_PREFIX = "jwt:blk:"


class TokenError(ValueError):
    pass


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64decode_json(segment: str) -> dict:
    pad = "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(segment + pad).decode())


def _signature(signing_input: str) -> str:
    secret = current_app.config["JWT_SECRET_KEY"].encode()
    return _b64encode(hmac.new(secret, signing_input.encode(), hashlib.sha256).digest())


def _blacklist_key(jti: str) -> str:
    return f"{_BLACKLIST_PREFIX}{jti}"


def create_token(email: str, role: str, expires_seconds: int | None = None) -> str:
    """签发访问 token，默认有效期取 JWT_EXPIRES_SECONDS。"""
    if expires_seconds is None:
        expires_seconds = current_app.config.get("JWT_EXPIRES_SECONDS", 8 * 3600)
    now = int(time.time())
    claims = {
        "sub": email,
        "role": role,
        "iat": now,
        "exp": now + expires_seconds,
        "jti": uuid.uuid4().hex,
    }
    header_seg = _b64encode(json.dumps(_HEADER, separators=(",", ":")).encode())
    claims_seg = _b64encode(json.dumps(claims, separators=(",", ":")).encode())
    signing_input = f"{header_seg}.{claims_seg}"
    return f"{signing_input}.{_signature(signing_input)}"


def decode_token(token: str, check_revoked: bool | None = None) -> dict:
    """
    校验签名与有效期并返回载荷。
    check_revoked 为 None 时按 JWT_CHECK_REVOKED 配置决定是否查询黑名单。
    任何失败统一抛 TokenError。
    """
    if check_revoked is None:
        check_revoked = current_app.config.get("JWT_CHECK_REVOKED", True)

    parts = (token or "").split(".")
    if len(parts) != 3:
        raise TokenError("token不合法")
    header_seg, claims_seg, sig = parts

    if not hmac.compare_digest(_signature(f"{header_seg}.{claims_seg}").encode(), sig.encode()):
        raise TokenError("签名不匹配")

    try:
        claims = _b64decode_json(claims_seg)
    except (ValueError, UnicodeDecodeError):
        raise TokenError("token不合法")
    if not isinstance(claims, dict):
        raise TokenError("token不合法")

    exp = claims.get("exp")
    if exp and time.time() > exp:
        raise TokenError("token已过期")

    if check_revoked and claims.get("jti") and is_token_revoked(claims["jti"]):
        raise TokenError("token已失效")
    return claims


def is_token_revoked(jti: str) -> bool:
    return bool(get_redis().get(_blacklist_key(jti)))
