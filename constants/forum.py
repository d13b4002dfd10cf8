# constants/forum.py
"""
论坛相关的枚举与常量集合
统一管理：
  - 可见性 Visibility: course / institution / public
  - 作用域类型 ContextType: course / institution（可扩展）
  - 领域事件 ForumEvent: 每次状态变更后广播的事件名
提供:
  - Enum 定义
  - values() 方法：返回所有 value 列表
  - 校验辅助函数
"""

from enum import Enum

from utils.exceptions import ValidationError


class Visibility(str, Enum):
    COURSE = "course"
    INSTITUTION = "institution"
    PUBLIC = "public"

    @classmethod
    def values(cls):
        return [m.value for m in cls]


class ContextType(str, Enum):
    COURSE = "course"
    INSTITUTION = "institution"

    @classmethod
    def values(cls):
        return [m.value for m in cls]


class ForumEvent(str, Enum):
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"
    THREAD_CREATED = "thread_created"
    THREAD_UPDATED = "thread_updated"
    THREAD_DELETED = "thread_deleted"
    POST_CREATED = "post_created"
    POST_UPDATED = "post_updated"
    POST_DELETED = "post_deleted"
    SUBSCRIPTION_CHANGED = "subscription_changed"

    @classmethod
    def values(cls):
        return [m.value for m in cls]


DEFAULT_VISIBILITY = Visibility.COURSE


# -------- 校验辅助函数 --------
def validate_visibility(visibility: str):
    if visibility not in Visibility.values():
        raise ValidationError(
            "invalid_visibility",
            f"可见性必须是 {Visibility.values()} 之一",
        )
