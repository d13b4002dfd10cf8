import uuid
from typing import Any, Dict, List, Tuple

import pytest

from app import create_app
from extensions.database import db
from extensions.event_bus import socketio
from extensions.jwt import create_token
from models import Course
from services.forum_service import ForumService
from support.accounts import CATEGORY_OWNER_EMAIL, COURSE_ID, TEACHER_EMAIL
from support.api_client import APIClient


@pytest.fixture()
def app_context():
    """提供测试用的 Flask 应用上下文（使用内存数据库）。"""

    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def events(app_context, monkeypatch) -> List[Tuple[str, Dict[str, Any]]]:
    """替换 socketio.emit，记录广播出去的 (事件名, payload)。"""

    recorded: List[Tuple[str, Dict[str, Any]]] = []

    def _record(event, data=None, *args, **kwargs):
        recorded.append((event, data))

    monkeypatch.setattr(socketio, "emit", _record)
    return recorded


@pytest.fixture()
def course(app_context):
    """course-42，教师为 teacher@x.edu。"""

    c = Course(id=COURSE_ID, title="Intro to Forums", teacher_email=TEACHER_EMAIL)
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture()
def make_category(app_context):
    def _create(owner: str = TEACHER_EMAIL, **kwargs):
        kwargs.setdefault("title", f"Category-{uuid.uuid4().hex[:6]}")
        return ForumService.create_category(owner, **kwargs)

    return _create


@pytest.fixture()
def make_thread(app_context):
    def _create(category_id: int, author: str = TEACHER_EMAIL, **kwargs):
        kwargs.setdefault("title", f"Thread-{uuid.uuid4().hex[:6]}")
        kwargs.setdefault("content", "hello forum")
        return ForumService.create_thread(author, category_id=category_id, **kwargs)

    return _create


@pytest.fixture()
def course_category(course, make_category):
    """限定到 course-42 的分类，创建者为 owner@x.edu（不是课程教师）。"""

    return make_category(
        CATEGORY_OWNER_EMAIL,
        title="General",
        context_type="course",
        context_id=COURSE_ID,
    )


@pytest.fixture()
def api_client(app_context):
    return APIClient(app_context.test_client())


@pytest.fixture()
def token_for(app_context):
    def _issue(email: str, role: str = "student") -> str:
        return create_token(email, role)

    return _issue
