# -*- coding: utf-8 -*-
"""
forum_subscription.py
--------------------------------------------------------------------
主题订阅：每个 (thread, user) 至多一条记录。
订阅为 upsert，取消订阅为物理删除，两个方向都是幂等的。
"""

from extensions.database import db
from utils.datetime_helpers import datetime_to_iso
from .mixins import TimestampMixin, COMMON_TABLE_ARGS


class ForumThreadSubscription(TimestampMixin, db.Model):
    __tablename__ = "forum_thread_subscriptions"
    __table_args__ = (
        db.UniqueConstraint("thread_id", "user_email", name="uq_forum_subscription_thread_user"),
        COMMON_TABLE_ARGS,
    )

    id = db.Column(db.Integer, primary_key=True)
    thread_id = db.Column(
        db.Integer, db.ForeignKey("forum_threads.id", ondelete="CASCADE"), nullable=False
    )
    user_email = db.Column(db.String(255), nullable=False, index=True)
    notify = db.Column(db.Boolean, nullable=False, default=True, server_default="1")

    def to_dict(self):
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "user_email": self.user_email,
            "notify": self.notify,
            "created_at": datetime_to_iso(self.created_at),
            "updated_at": datetime_to_iso(self.updated_at),
        }
