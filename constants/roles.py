from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    """
    LMS 用户角色（由认证层签发在 token 中）：
    - 论坛的版主权限并不依赖该角色，而是按分类归属 / 课程教师动态推导
    - 这里仅用于透传与展示
    """

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"

    @classmethod
    def values(cls) -> list[str]:
        return [role.value for role in cls]


ALL_ROLES: set[str] = set(UserRole.values())

DEFAULT_USER_ROLE = UserRole.STUDENT


def normalize_role(raw: str | None, default: UserRole = DEFAULT_USER_ROLE) -> str:
    """
    清洗 token 中的 role 值：
    - None 或空 => 默认
    - 去掉首尾空白
    - 转为小写
    - 校验是否在已注册角色中
    """
    if not raw:
        return default.value
    value = raw.strip().lower()
    if value not in ALL_ROLES:
        raise ValueError(f"非法用户角色: {raw}")
    return value
