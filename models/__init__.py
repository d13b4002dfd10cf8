# -*- coding: utf-8 -*-
"""
__init__.py
--------------------------------------------------------------------
汇总导入所有模型，使得：
- Flask-Migrate/Alembic 自动检测模型。
- 外部模块可简化引用：from models import ForumThread, ForumPost
注意：
- 避免循环导入：各模型仅在这里集中 import。
"""

from .mixins import TimestampMixin, SoftDeleteMixin
from .course import Course
from .forum_category import ForumCategory
from .forum_thread import ForumThread
from .forum_post import ForumPost, ForumPostReaction
from .forum_subscription import ForumThreadSubscription

__all__ = [
    "TimestampMixin", "SoftDeleteMixin",
    "Course", "ForumCategory", "ForumThread", "ForumPost", "ForumPostReaction",
    "ForumThreadSubscription",
]
