# -*- coding: utf-8 -*-
"""
forum_category.py
--------------------------------------------------------------------
论坛分类：
- 主题(Thread)的容器，可限定到课程(context_type=course)或全校范围。
- created_by 为分类所有者邮箱，分类的修改/锁定/删除仅限所有者。
- 删除分类时其下主题由数据库外键 ON DELETE CASCADE 清理，应用层不做级联。
"""

from extensions.database import db
from utils.datetime_helpers import datetime_to_iso
from .mixins import TimestampMixin, COMMON_TABLE_ARGS


class ForumCategory(TimestampMixin, db.Model):
    __tablename__ = "forum_categories"
    __table_args__ = (
        db.Index("ix_forum_categories_context", "context_type", "context_id"),
        COMMON_TABLE_ARGS,
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    context_type = db.Column(db.String(32))  # course / institution
    context_id = db.Column(db.String(64))
    visibility = db.Column(db.String(16), nullable=False, default="course", server_default="course")
    created_by = db.Column(db.String(255), nullable=False, index=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    order_index = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    # metadata 是 Declarative 保留属性名，这里映射到同名列
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<ForumCategory id={self.id} title={self.title!r}>"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "context_type": self.context_type,
            "context_id": self.context_id,
            "visibility": self.visibility,
            "created_by": self.created_by,
            "is_locked": self.is_locked,
            "order_index": self.order_index,
            "metadata": self.meta or {},
            "created_at": datetime_to_iso(self.created_at),
            "updated_at": datetime_to_iso(self.updated_at),
        }
