from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import g

from constants.forum import ContextType
from utils.exceptions import BizError


@dataclass(frozen=True)
class CurrentUser:
    """认证层解析出的调用方身份（邮箱 + 角色）。"""
    email: str
    role: str


def get_current_user() -> CurrentUser:
    """
    获取当前登录用户（由 auth_required 写入 g.current_user）
    """
    user = getattr(g, "current_user", None)
    if not user:
        raise BizError("未登录", 401)
    return user


def get_current_email(default=None) -> Optional[str]:
    user = getattr(g, "current_user", None)
    return user.email if user else default


# ---------------------------------------------------------------------------
# 纯策略函数：只依据已加载的行数据做判断，不访问数据库
# ---------------------------------------------------------------------------

def _same_actor(owner: Optional[str], actor_email: Optional[str]) -> bool:
    return bool(owner) and bool(actor_email) and owner == actor_email


def is_category_owner(category, actor_email: Optional[str]) -> bool:
    return category is not None and _same_actor(category.created_by, actor_email)


def is_course_scoped(category, thread) -> bool:
    course = ContextType.COURSE.value
    return (
        (category is not None and category.context_type == course)
        or (thread is not None and thread.context_type == course)
    )


def resolve_course_id(category, thread) -> Optional[str]:
    """
    课程 ID 解析：
      - 分类或主题任一限定到课程时才有意义
      - 优先取分类的 context_id，其次回落到主题自身的 context_id
    """
    if not is_course_scoped(category, thread):
        return None
    if category is not None and category.context_id:
        return category.context_id
    if thread is not None and thread.context_id:
        return thread.context_id
    return None


def has_moderator_rights(category, thread, actor_email: Optional[str], course_teacher_email: Optional[str] = None) -> bool:
    """
    版主权限阶梯（两级）：
      1. 分类所有者 => 授权
      2. 分类/主题限定到课程，且该课程教师为调用方 => 授权
    其他情况一律拒绝。
    """
    if is_category_owner(category, actor_email):
        return True
    if resolve_course_id(category, thread) is None:
        return False
    return _same_actor(course_teacher_email, actor_email)


def can_manage_thread(thread, actor_email: Optional[str], is_moderator: bool) -> bool:
    """主题编辑/删除：作者或版主。"""
    return _same_actor(thread.author_email, actor_email) or bool(is_moderator)


def can_edit_post(post, actor_email: Optional[str]) -> bool:
    """回复编辑/删除：仅作者本人，版主也不能代改。"""
    return _same_actor(post.author_email, actor_email)
