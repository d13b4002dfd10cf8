from typing import Optional
from sqlalchemy import select
from extensions.database import db
from models.course import Course


class CourseRepository:
    """课程只读查询，论坛只关心课程教师。"""

    @staticmethod
    def get_teacher_email(course_id: str) -> Optional[str]:
        if not course_id:
            return None
        stmt = select(Course.teacher_email).where(Course.id == str(course_id))
        return db.session.execute(stmt).scalar_one_or_none()
