# -*- coding: utf-8 -*-
"""
course.py
--------------------------------------------------------------------
课程（只读）：
- 课程的增删改由 LMS 其他模块负责，论坛只读取 teacher_email 用于版主权限推导。
"""

from extensions.database import db
from .mixins import TimestampMixin, COMMON_TABLE_ARGS


class Course(TimestampMixin, db.Model):
    __tablename__ = "courses"
    __table_args__ = (COMMON_TABLE_ARGS,)

    id = db.Column(db.String(64), primary_key=True)  # 与 forum context_id 同型
    title = db.Column(db.String(255), nullable=False)
    teacher_email = db.Column(db.String(255), index=True)

    def __repr__(self):
        return f"<Course id={self.id} teacher={self.teacher_email}>"
