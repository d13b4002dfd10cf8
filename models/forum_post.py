# -*- coding: utf-8 -*-
"""
forum_post.py
--------------------------------------------------------------------
主题下的回复：
- parent_post_id 为弱引用（仅用于楼中楼展示），父回复删除时置空，不级联。
- 删除为软删除（is_deleted / deleted_at），读取详情时统一过滤。
- reactions 由外部模块维护，这里只读关联。
"""

from extensions.database import db
from utils.datetime_helpers import datetime_to_iso
from .mixins import TimestampMixin, SoftDeleteMixin, COMMON_TABLE_ARGS


class ForumPost(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "forum_posts"
    __table_args__ = (
        db.Index("ix_forum_posts_thread_created", "thread_id", "created_at"),
        COMMON_TABLE_ARGS,
    )

    id = db.Column(db.Integer, primary_key=True)
    thread_id = db.Column(
        db.Integer, db.ForeignKey("forum_threads.id", ondelete="CASCADE"), nullable=False
    )
    parent_post_id = db.Column(
        db.Integer, db.ForeignKey("forum_posts.id", ondelete="SET NULL"), index=True
    )
    author_email = db.Column(db.String(255), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    rich_content = db.Column(db.JSON, nullable=False, default=dict)
    edited_at = db.Column(db.DateTime)

    reactions = db.relationship(
        "ForumPostReaction",
        viewonly=True,
        lazy="selectin",
        order_by="ForumPostReaction.id",
    )

    def __repr__(self):
        return f"<ForumPost id={self.id} thread={self.thread_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "parent_post_id": self.parent_post_id,
            "author_email": self.author_email,
            "content": self.content,
            "rich_content": self.rich_content or {},
            "is_deleted": self.is_deleted,
            "deleted_at": datetime_to_iso(self.deleted_at),
            "edited_at": datetime_to_iso(self.edited_at),
            "created_at": datetime_to_iso(self.created_at),
            "updated_at": datetime_to_iso(self.updated_at),
            "reactions": [r.to_dict() for r in self.reactions],
        }


class ForumPostReaction(db.Model):
    __tablename__ = "forum_post_reactions"
    __table_args__ = (
        db.UniqueConstraint("post_id", "user_email", "reaction_type", name="uq_forum_reaction_post_user_type"),
        COMMON_TABLE_ARGS,
    )

    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(
        db.Integer, db.ForeignKey("forum_posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_email = db.Column(db.String(255), nullable=False)
    reaction_type = db.Column(db.String(32), nullable=False, server_default="like")
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "post_id": self.post_id,
            "user_email": self.user_email,
            "reaction_type": self.reaction_type,
            "created_at": datetime_to_iso(self.created_at),
        }
