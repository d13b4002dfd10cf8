from typing import Optional, List, Dict, Any
from sqlalchemy import select, asc
from sqlalchemy.exc import IntegrityError
from extensions.database import db
from models.forum_post import ForumPost


class PostRepository:

    @staticmethod
    def _active_stmt():
        """所有读取回复的查询都从这里出发，统一过滤软删除记录。"""
        return select(ForumPost).where(ForumPost.is_deleted == False)  # noqa: E712

    @staticmethod
    def create(
        thread_id: int,
        author_email: str,
        content: str,
        rich_content: Optional[Dict[str, Any]] = None,
        parent_post_id: Optional[int] = None,
    ) -> ForumPost:
        post = ForumPost(
            thread_id=thread_id,
            author_email=author_email,
            content=content,
            rich_content=rich_content or {},
            parent_post_id=parent_post_id,
            is_deleted=False,
        )
        db.session.add(post)
        db.session.flush()
        return post

    @staticmethod
    def get_in_thread(thread_id: int, post_id: int, include_deleted: bool = False) -> Optional[ForumPost]:
        if include_deleted:
            stmt = select(ForumPost)
        else:
            stmt = PostRepository._active_stmt()
        stmt = stmt.where(ForumPost.id == post_id, ForumPost.thread_id == thread_id)
        return db.session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def list_by_thread(thread_id: int) -> List[ForumPost]:
        """未删除回复，按创建时间正序（阅读顺序）。"""
        stmt = (
            PostRepository._active_stmt()
            .where(ForumPost.thread_id == thread_id)
            .order_by(asc(ForumPost.created_at), asc(ForumPost.id))
        )
        return list(db.session.execute(stmt).scalars().all())

    @staticmethod
    def update(post: ForumPost, changes: Dict[str, Any]) -> ForumPost:
        for field, value in changes.items():
            setattr(post, field, value)
        db.session.flush()
        return post

    @staticmethod
    def soft_delete(post: ForumPost):
        post.soft_delete()
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
