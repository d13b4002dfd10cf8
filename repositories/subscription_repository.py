from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from extensions.database import db
from models.forum_subscription import ForumThreadSubscription


class SubscriptionRepository:

    @staticmethod
    def get(thread_id: int, user_email: str) -> Optional[ForumThreadSubscription]:
        stmt = select(ForumThreadSubscription).where(
            ForumThreadSubscription.thread_id == thread_id,
            ForumThreadSubscription.user_email == user_email,
        )
        return db.session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def upsert(thread_id: int, user_email: str, notify: bool = True) -> ForumThreadSubscription:
        sub = SubscriptionRepository.get(thread_id, user_email)
        if sub is None:
            sub = ForumThreadSubscription(thread_id=thread_id, user_email=user_email, notify=notify)
            db.session.add(sub)
        else:
            sub.notify = notify
        db.session.flush()
        return sub

    @staticmethod
    def delete(thread_id: int, user_email: str) -> int:
        """返回删除的行数，不存在时为 0。"""
        result = db.session.execute(
            delete(ForumThreadSubscription).where(
                ForumThreadSubscription.thread_id == thread_id,
                ForumThreadSubscription.user_email == user_email,
            )
        )
        db.session.flush()
        return result.rowcount or 0

    @staticmethod
    def count(thread_id: int, user_email: str) -> int:
        stmt = select(db.func.count(ForumThreadSubscription.id)).where(
            ForumThreadSubscription.thread_id == thread_id,
            ForumThreadSubscription.user_email == user_email,
        )
        return db.session.execute(stmt).scalar() or 0

    @staticmethod
    def commit():
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise e

    @staticmethod
    def rollback():
        db.session.rollback()
