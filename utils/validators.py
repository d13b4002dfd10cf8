import re

from utils.exceptions import ValidationError

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def validate_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def normalize_email(email: str) -> str:
    """
    处理逻辑：
      1. 去首尾空白
      2. 格式校验，失败抛 ValidationError
    大小写保持原样：身份比对以认证层给出的邮箱为准。
    """
    value = email.strip() if isinstance(email, str) else ""
    if not validate_email(value):
        raise ValidationError("invalid_email", "邮箱格式不正确")
    return value


def require_text(value, error_code: str, label: str) -> str:
    """必填文本字段：去空白后不能为空。"""
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(error_code, f"{label}不能为空")
    return value


def optional_dict(value, error_code: str, label: str):
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(error_code, f"{label} 必须为对象")
    return value


def optional_int(value, error_code: str, label: str):
    """可选整数：None 原样返回；bool 与非整数字符串都视为非法。"""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(error_code, f"{label} 必须为整数")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(error_code, f"{label} 必须为整数")


def optional_bool(value, error_code: str, label: str):
    """可选布尔：只接受 JSON true / false，字符串 "false" 之类不做猜测。"""
    if value is None or isinstance(value, bool):
        return value
    raise ValidationError(error_code, f"{label} 必须为布尔值")
