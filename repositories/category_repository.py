from typing import Optional, List, Dict, Any
from sqlalchemy import select, asc
from sqlalchemy.exc import IntegrityError
from extensions.database import db
from models.forum_category import ForumCategory


class CategoryRepository:
    @staticmethod
    def create(
        title: str,
        created_by: str,
        description: Optional[str] = None,
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        visibility: str = "course",
        order_index: int = 0,
        meta: Optional[Dict[str, Any]] = None,
    ) -> ForumCategory:
        category = ForumCategory(
            title=title.strip(),
            description=description,
            context_type=context_type or None,
            context_id=context_id or None,
            visibility=visibility,
            created_by=created_by,
            order_index=order_index or 0,
            meta=meta or {},
        )
        db.session.add(category)
        db.session.flush()
        return category

    @staticmethod
    def get_by_id(category_id: int) -> Optional[ForumCategory]:
        return db.session.get(ForumCategory, category_id)

    @staticmethod
    def list(
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        include_locked: bool = False,
    ) -> List[ForumCategory]:
        stmt = select(ForumCategory)
        conditions = []
        if context_type:
            conditions.append(ForumCategory.context_type == context_type)
        if context_id:
            conditions.append(ForumCategory.context_id == context_id)
        if not include_locked:
            conditions.append(ForumCategory.is_locked == False)  # noqa: E712
        if conditions:
            stmt = stmt.where(*conditions)
        stmt = stmt.order_by(
            asc(ForumCategory.order_index),
            asc(ForumCategory.created_at),
            asc(ForumCategory.id),
        )
        return list(db.session.execute(stmt).scalars().all())

    @staticmethod
    def update(category: ForumCategory, changes: Dict[str, Any]) -> ForumCategory:
        for field, value in changes.items():
            setattr(category, field, value)
        db.session.flush()
        return category

    @staticmethod
    def delete(category: ForumCategory):
        db.session.delete(category)
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
