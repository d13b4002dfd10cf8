from typing import Optional, List, Dict, Any
from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from extensions.database import db
from models.forum_thread import ForumThread
from utils.datetime_helpers import utc_now


class ThreadRepository:
    @staticmethod
    def create(
        category_id: int,
        author_email: str,
        title: str,
        content: str,
        rich_content: Optional[Dict[str, Any]] = None,
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> ForumThread:
        thread = ForumThread(
            category_id=category_id,
            author_email=author_email,
            title=title.strip(),
            content=content,
            rich_content=rich_content or {},
            context_type=context_type or None,
            context_id=context_id or None,
            meta=meta or {},
            is_pinned=False,
            is_locked=False,
            last_activity_at=utc_now(),
        )
        db.session.add(thread)
        db.session.flush()
        return thread

    @staticmethod
    def get_by_id(thread_id: int) -> Optional[ForumThread]:
        return db.session.get(ForumThread, thread_id)

    @staticmethod
    def list_by_category(category_id: int, include_locked: bool = False) -> List[ForumThread]:
        """置顶优先，其次按最近活跃时间倒序。"""
        stmt = select(ForumThread).where(ForumThread.category_id == category_id)
        if not include_locked:
            stmt = stmt.where(ForumThread.is_locked == False)  # noqa: E712
        stmt = stmt.order_by(
            desc(ForumThread.is_pinned),
            desc(ForumThread.last_activity_at),
            desc(ForumThread.id),
        )
        return list(db.session.execute(stmt).scalars().all())

    @staticmethod
    def update(thread: ForumThread, changes: Dict[str, Any]) -> ForumThread:
        for field, value in changes.items():
            setattr(thread, field, value)
        db.session.flush()
        return thread

    @staticmethod
    def touch_activity(thread: ForumThread, when=None) -> ForumThread:
        thread.last_activity_at = when or utc_now()
        db.session.flush()
        return thread

    @staticmethod
    def delete(thread: ForumThread):
        db.session.delete(thread)
        db.session.flush()

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
