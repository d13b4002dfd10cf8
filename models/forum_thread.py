# -*- coding: utf-8 -*-
"""
forum_thread.py
--------------------------------------------------------------------
论坛主题：
- 隶属唯一分类，category_id 创建后不可修改。
- 状态为两个正交标记：is_pinned × is_locked，只能通过置顶/锁定接口切换。
- last_activity_at 创建时写入，每条新回复刷新，用于列表排序。
"""

from extensions.database import db
from utils.datetime_helpers import datetime_to_iso, utc_now
from .mixins import TimestampMixin, COMMON_TABLE_ARGS


class ForumThread(TimestampMixin, db.Model):
    __tablename__ = "forum_threads"
    __table_args__ = (
        db.Index("ix_forum_threads_listing", "category_id", "is_pinned", "last_activity_at"),
        COMMON_TABLE_ARGS,
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("forum_categories.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(255), nullable=False)
    author_email = db.Column(db.String(255), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    rich_content = db.Column(db.JSON, nullable=False, default=dict)
    context_type = db.Column(db.String(32))
    context_id = db.Column(db.String(64))
    is_pinned = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    is_locked = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    last_activity_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<ForumThread id={self.id} category={self.category_id} title={self.title[:30]!r}>"

    def to_dict(self):
        return {
            "id": self.id,
            "category_id": self.category_id,
            "title": self.title,
            "author_email": self.author_email,
            "content": self.content,
            "rich_content": self.rich_content or {},
            "context_type": self.context_type,
            "context_id": self.context_id,
            "is_pinned": self.is_pinned,
            "is_locked": self.is_locked,
            "last_activity_at": datetime_to_iso(self.last_activity_at),
            "metadata": self.meta or {},
            "created_at": datetime_to_iso(self.created_at),
            "updated_at": datetime_to_iso(self.updated_at),
        }
