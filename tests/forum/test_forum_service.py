# -*- coding: utf-8 -*-
"""单元测试：论坛服务层（分类 / 主题 / 回复 / 订阅 / 版主操作）。"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from extensions.database import db
from extensions.event_bus import socketio
from models import ForumPost, ForumPostReaction, ForumThreadSubscription
from repositories.subscription_repository import SubscriptionRepository
from repositories.thread_repository import ThreadRepository
from services.forum_policy_service import ForumPolicyService
from services.forum_service import ForumService
from utils.datetime_helpers import utc_now
from utils.exceptions import (
    InsufficientPermissions,
    NotFound,
    PersistenceFailure,
    ThreadLocked,
    ValidationError,
)

from support.accounts import (
    CATEGORY_OWNER_EMAIL,
    COURSE_ID,
    OTHER_STUDENT_EMAIL,
    STUDENT_EMAIL,
    TEACHER_EMAIL,
)


def _names(events):
    return [name for name, _payload in events]


def _subscription_rows(thread_id: int, email: str) -> int:
    return (
        db.session.query(ForumThreadSubscription)
        .filter_by(thread_id=thread_id, user_email=email)
        .count()
    )


# ==================== 分类 ====================

def test_create_category_defaults_and_event(make_category, events):
    category = make_category(TEACHER_EMAIL, title="  General  ")

    assert category.title == "General"
    assert category.created_by == TEACHER_EMAIL
    assert category.visibility == "course"
    assert category.is_locked is False
    assert events == [("forum:category_created", {"categoryId": category.id})]


def test_create_category_rejects_bad_input(make_category):
    with pytest.raises(ValidationError) as exc:
        make_category(TEACHER_EMAIL, title="   ")
    assert exc.value.error_code == "title_required"

    with pytest.raises(ValidationError) as exc:
        make_category(TEACHER_EMAIL, visibility="secret")
    assert exc.value.error_code == "invalid_visibility"


@pytest.mark.parametrize("order_index", ["abc", "1.5", True, [1]])
def test_create_category_rejects_non_integer_order(make_category, events, order_index):
    with pytest.raises(ValidationError) as exc:
        make_category(TEACHER_EMAIL, order_index=order_index)
    assert exc.value.code == 400
    assert exc.value.error_code == "invalid_order_index"
    assert ForumService.list_categories(include_locked=True) == []
    assert events == []


def test_create_category_accepts_numeric_order_string(make_category):
    category = make_category(TEACHER_EMAIL, order_index="3")
    assert category.order_index == 3


@pytest.mark.parametrize("is_locked", ["false", "true", 0, 1])
def test_update_category_rejects_non_boolean_lock(make_category, is_locked):
    category = make_category()

    with pytest.raises(ValidationError) as exc:
        ForumService.update_category(category.id, TEACHER_EMAIL, is_locked=is_locked)

    assert exc.value.error_code == "invalid_is_locked"
    assert ForumService.get_category(category.id).is_locked is False


def test_create_thread_rejects_non_boolean_subscribe(make_category):
    category = make_category()

    with pytest.raises(ValidationError) as exc:
        ForumService.create_thread(
            TEACHER_EMAIL, category_id=category.id, title="t", content="c", subscribe="false"
        )

    assert exc.value.error_code == "invalid_subscribe"
    assert ForumService.list_threads(category.id) == []


def test_list_categories_orders_and_hides_locked(make_category):
    late = make_category(title="late", order_index=5)
    early = make_category(title="early", order_index=1)
    locked = make_category(title="locked", order_index=0)
    ForumService.update_category(locked.id, TEACHER_EMAIL, is_locked=True)

    visible = ForumService.list_categories()
    assert [c.id for c in visible] == [early.id, late.id]

    everything = ForumService.list_categories(include_locked=True)
    assert [c.id for c in everything] == [locked.id, early.id, late.id]


def test_list_categories_filters_by_context(course, make_category):
    scoped = make_category(context_type="course", context_id=COURSE_ID)
    make_category(context_type="course", context_id="course-7")
    make_category()

    result = ForumService.list_categories(context_type="course", context_id=COURSE_ID)
    assert [c.id for c in result] == [scoped.id]


def test_update_category_requires_owner(course_category, events):
    # 课程教师拥有版主权限，但分类的修改仍然只认创建者
    for actor in (TEACHER_EMAIL, STUDENT_EMAIL):
        with pytest.raises(InsufficientPermissions) as exc:
            ForumService.update_category(course_category.id, actor, title="Hijacked")
        assert exc.value.code == 403
        assert exc.value.error_code == "insufficient_permissions"

    events.clear()
    updated = ForumService.update_category(course_category.id, CATEGORY_OWNER_EMAIL, title="Renamed")
    assert updated.title == "Renamed"
    assert events == [("forum:category_updated", {"categoryId": course_category.id})]


def test_update_category_empty_diff_is_noop(make_category, events):
    category = make_category()
    before = category.updated_at
    events.clear()

    result = ForumService.update_category(category.id, TEACHER_EMAIL)

    assert result.id == category.id
    assert result.updated_at == before
    assert events == []


def test_delete_category_requires_owner_and_cascades(course_category, make_thread, events):
    category_id = course_category.id
    thread_id = make_thread(category_id, author=STUDENT_EMAIL).thread.id
    ForumService.add_post(thread_id, STUDENT_EMAIL, content="reply")

    with pytest.raises(InsufficientPermissions):
        ForumService.delete_category(category_id, STUDENT_EMAIL)

    events.clear()
    ForumService.delete_category(category_id, CATEGORY_OWNER_EMAIL)

    assert events == [("forum:category_deleted", {"categoryId": category_id})]
    with pytest.raises(NotFound) as exc:
        ForumService.get_category(category_id)
    assert exc.value.error_code == "forum_category_not_found"
    assert ThreadRepository.get_by_id(thread_id) is None
    assert db.session.query(ForumPost).filter_by(thread_id=thread_id).count() == 0


def test_missing_category_is_not_found(app_context):
    with pytest.raises(NotFound):
        ForumService.update_category(999, TEACHER_EMAIL, title="x")
    with pytest.raises(NotFound):
        ForumService.list_threads(999)


# ==================== 主题 ====================

def test_create_thread_with_subscribe(make_category, make_thread, events):
    category = make_category()
    events.clear()

    detail = make_thread(category.id, title="Welcome", subscribe=True)

    assert detail.thread.author_email == TEACHER_EMAIL
    assert detail.thread.is_pinned is False
    assert detail.thread.is_locked is False
    assert detail.thread.last_activity_at is not None
    assert detail.posts == []
    assert detail.subscription is not None
    assert detail.subscription.user_email == TEACHER_EMAIL
    assert events == [
        ("forum:thread_created", {"categoryId": category.id, "threadId": detail.thread.id})
    ]


def test_create_thread_without_subscribe(make_category, make_thread):
    detail = make_thread(make_category().id)
    assert detail.subscription is None


def test_create_thread_in_missing_category(app_context):
    with pytest.raises(NotFound) as exc:
        ForumService.create_thread(TEACHER_EMAIL, category_id=404, title="t", content="c")
    assert exc.value.error_code == "forum_category_not_found"


def test_auto_subscribe_failure_keeps_thread(make_category, make_thread, monkeypatch, events):
    category = make_category()

    def _boom(*_args, **_kwargs):
        raise OperationalError("INSERT", {}, Exception("db gone"))

    monkeypatch.setattr(SubscriptionRepository, "upsert", staticmethod(_boom))

    detail = make_thread(category.id, subscribe=True)

    assert detail.thread.id is not None
    assert detail.subscription is None
    assert "forum:thread_created" in _names(events)


def test_auto_subscribe_unexpected_error_keeps_thread(make_category, make_thread, monkeypatch, events):
    category = make_category()

    def _boom(*_args, **_kwargs):
        raise RuntimeError("notification backend down")

    monkeypatch.setattr(SubscriptionRepository, "upsert", staticmethod(_boom))

    detail = make_thread(category.id, subscribe=True)

    assert detail.subscription is None
    assert [t.id for t in ForumService.list_threads(category.id)] == [detail.thread.id]
    assert "forum:thread_created" in _names(events)


def test_create_thread_persistence_failure(make_category, monkeypatch, events):
    category = make_category()
    events.clear()

    def _boom(*_args, **_kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ThreadRepository, "create", staticmethod(_boom))

    with pytest.raises(PersistenceFailure) as exc:
        ForumService.create_thread(TEACHER_EMAIL, category_id=category.id, title="t", content="c")

    assert exc.value.code == 500
    assert exc.value.error_code == "failed_to_create_forum_thread"
    assert "disk" not in exc.value.message
    assert events == []


def test_update_thread_author_or_moderator(course_category, make_thread, events):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id

    with pytest.raises(InsufficientPermissions):
        ForumService.update_thread(thread_id, OTHER_STUDENT_EMAIL, title="nope")

    ForumService.update_thread(thread_id, STUDENT_EMAIL, title="by author")
    events.clear()
    detail = ForumService.update_thread(thread_id, TEACHER_EMAIL, content="by course teacher")

    assert detail.thread.title == "by author"
    assert detail.thread.content == "by course teacher"
    assert events == [
        ("forum:thread_updated", {"categoryId": course_category.id, "threadId": thread_id})
    ]


def test_update_thread_category_is_immutable(make_category, make_thread):
    first = make_category()
    second = make_category()
    thread_id = make_thread(first.id).thread.id

    with pytest.raises(ValidationError) as exc:
        ForumService.update_thread(thread_id, TEACHER_EMAIL, category_id=second.id)
    assert exc.value.error_code == "category_id_immutable"

    # 传入相同的分类视为未修改
    detail = ForumService.update_thread(thread_id, TEACHER_EMAIL, category_id=first.id, title="same")
    assert detail.thread.category_id == first.id


def test_update_thread_empty_diff_emits_nothing(make_category, make_thread, events):
    thread_id = make_thread(make_category().id).thread.id
    events.clear()

    detail = ForumService.update_thread(thread_id, TEACHER_EMAIL)

    assert detail.thread.id == thread_id
    assert events == []


def test_delete_thread(course_category, make_thread, events):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id

    with pytest.raises(InsufficientPermissions):
        ForumService.delete_thread(thread_id, OTHER_STUDENT_EMAIL)

    events.clear()
    ForumService.delete_thread(thread_id, CATEGORY_OWNER_EMAIL)

    assert events == [("forum:thread_deleted", {"threadId": thread_id})]
    with pytest.raises(NotFound) as exc:
        ForumService.get_thread_detail(thread_id)
    assert exc.value.error_code == "forum_thread_not_found"


def test_list_threads_pinned_first(course_category, make_thread):
    t1 = make_thread(course_category.id, title="T1").thread
    t2 = make_thread(course_category.id, title="T2").thread
    t1_id, t2_id = t1.id, t2.id
    ThreadRepository.touch_activity(t1, when=utc_now() - timedelta(days=3))
    ThreadRepository.commit()

    assert [t.id for t in ForumService.list_threads(course_category.id)] == [t2_id, t1_id]

    ForumService.pin_thread(t1_id, CATEGORY_OWNER_EMAIL)

    assert [t.id for t in ForumService.list_threads(course_category.id)] == [t1_id, t2_id]


def test_list_threads_orders_by_recent_activity(make_category, make_thread):
    category = make_category()
    older = make_thread(category.id).thread
    newer = make_thread(category.id).thread
    older_id, newer_id = older.id, newer.id
    ThreadRepository.touch_activity(older, when=utc_now() - timedelta(hours=2))
    ThreadRepository.touch_activity(newer, when=utc_now() - timedelta(hours=1))
    ThreadRepository.commit()

    assert [t.id for t in ForumService.list_threads(category.id)] == [newer_id, older_id]

    # 新回复刷新活跃时间，旧主题浮到前面
    ForumService.add_post(older_id, STUDENT_EMAIL, content="bump")
    assert [t.id for t in ForumService.list_threads(category.id)] == [older_id, newer_id]


def test_list_threads_hides_locked_unless_included(course_category, make_thread):
    open_id = make_thread(course_category.id).thread.id
    locked_id = make_thread(course_category.id).thread.id
    ForumService.lock_thread(locked_id, TEACHER_EMAIL)

    assert [t.id for t in ForumService.list_threads(course_category.id)] == [open_id]
    assert set(t.id for t in ForumService.list_threads(course_category.id, include_locked=True)) == {
        open_id,
        locked_id,
    }


# ==================== 版主操作 ====================

@pytest.mark.parametrize("actor", [CATEGORY_OWNER_EMAIL, TEACHER_EMAIL])
def test_moderators_can_lock(course_category, make_thread, events, actor):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id
    events.clear()

    detail = ForumService.lock_thread(thread_id, actor)

    assert detail.thread.is_locked is True
    assert events == [
        ("forum:thread_updated", {"categoryId": course_category.id, "threadId": thread_id})
    ]


@pytest.mark.parametrize("actor", [STUDENT_EMAIL, OTHER_STUDENT_EMAIL])
def test_non_moderators_cannot_lock(course_category, make_thread, actor):
    # 主题作者本人也不具备版主权限
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id

    with pytest.raises(InsufficientPermissions):
        ForumService.lock_thread(thread_id, actor)
    with pytest.raises(InsufficientPermissions):
        ForumService.pin_thread(thread_id, actor)


def test_teacher_of_other_course_is_not_moderator(course, make_category, make_thread):
    category = make_category(CATEGORY_OWNER_EMAIL, context_type="course", context_id="course-7")
    thread_id = make_thread(category.id, author=STUDENT_EMAIL).thread.id

    with pytest.raises(InsufficientPermissions):
        ForumService.lock_thread(thread_id, TEACHER_EMAIL)


def test_moderator_rights_follow_course_teacher_changes(course, course_category, make_thread):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id
    ForumService.pin_thread(thread_id, TEACHER_EMAIL)

    course.teacher_email = "new-teacher@x.edu"
    db.session.commit()

    with pytest.raises(InsufficientPermissions):
        ForumService.unpin_thread(thread_id, TEACHER_EMAIL)
    detail = ForumService.unpin_thread(thread_id, "new-teacher@x.edu")
    assert detail.thread.is_pinned is False


def test_lock_gate(course_category, make_thread):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id
    ForumService.lock_thread(thread_id, TEACHER_EMAIL)

    for actor in (STUDENT_EMAIL, TEACHER_EMAIL, CATEGORY_OWNER_EMAIL, OTHER_STUDENT_EMAIL):
        with pytest.raises(ThreadLocked) as exc:
            ForumService.add_post(thread_id, actor, content="still here?")
        assert exc.value.code == 400
        assert exc.value.error_code == "thread_locked"

    ForumService.unlock_thread(thread_id, TEACHER_EMAIL)
    detail = ForumService.add_post(thread_id, STUDENT_EMAIL, content="back again")
    assert [p.content for p in detail.posts] == ["back again"]


# ==================== 回复 ====================

def test_add_post_returns_full_detail(make_category, make_thread, events):
    thread_id = make_thread(make_category().id).thread.id
    first = ForumService.add_post(thread_id, STUDENT_EMAIL, content="first")
    events.clear()

    detail = ForumService.add_post(
        thread_id, OTHER_STUDENT_EMAIL, content="nested", parent_post_id=first.posts[0].id
    )

    assert [p.content for p in detail.posts] == ["first", "nested"]
    assert detail.posts[1].parent_post_id == first.posts[0].id
    assert events == [
        ("forum:post_created", {"threadId": thread_id, "postId": detail.posts[1].id})
    ]


def test_add_post_validation(make_category, make_thread):
    category = make_category()
    thread_id = make_thread(category.id).thread.id
    other_thread = make_thread(category.id).thread.id
    foreign = ForumService.add_post(other_thread, STUDENT_EMAIL, content="elsewhere").posts[0]

    with pytest.raises(ValidationError) as exc:
        ForumService.add_post(thread_id, STUDENT_EMAIL, content="  ")
    assert exc.value.error_code == "content_required"

    with pytest.raises(ValidationError) as exc:
        ForumService.add_post(thread_id, STUDENT_EMAIL, content="hi", parent_post_id=foreign.id)
    assert exc.value.error_code == "invalid_parent_post"

    with pytest.raises(NotFound):
        ForumService.add_post(12345, STUDENT_EMAIL, content="hi")


def test_update_post_is_author_only(course_category, make_thread, events):
    thread_id = make_thread(course_category.id).thread.id
    post_id = ForumService.add_post(thread_id, STUDENT_EMAIL, content="typo").posts[0].id

    # 版主也不能修改他人的回复
    for actor in (TEACHER_EMAIL, CATEGORY_OWNER_EMAIL):
        with pytest.raises(InsufficientPermissions):
            ForumService.update_post(thread_id, post_id, actor, content="censored")

    events.clear()
    detail = ForumService.update_post(thread_id, post_id, STUDENT_EMAIL, content="fixed")

    assert detail.posts[0].content == "fixed"
    assert detail.posts[0].edited_at is not None
    assert events == [("forum:post_updated", {"threadId": thread_id, "postId": post_id})]


def test_update_post_not_found_cases(make_category, make_thread):
    category = make_category()
    thread_id = make_thread(category.id).thread.id
    other_thread = make_thread(category.id).thread.id
    post_id = ForumService.add_post(thread_id, STUDENT_EMAIL, content="x").posts[0].id

    with pytest.raises(NotFound) as exc:
        ForumService.update_post(other_thread, post_id, STUDENT_EMAIL, content="y")
    assert exc.value.error_code == "forum_post_not_found"

    with pytest.raises(NotFound) as exc:
        ForumService.update_post(999, post_id, STUDENT_EMAIL, content="y")
    assert exc.value.error_code == "forum_thread_not_found"


def test_delete_post_soft_deletes(course_category, make_thread, events):
    thread_id = make_thread(course_category.id).thread.id
    keep_id = ForumService.add_post(thread_id, OTHER_STUDENT_EMAIL, content="keep").posts[0].id
    detail = ForumService.add_post(thread_id, STUDENT_EMAIL, content="remove me")
    gone_id = detail.posts[-1].id

    with pytest.raises(InsufficientPermissions):
        ForumService.delete_post(thread_id, gone_id, TEACHER_EMAIL)

    events.clear()
    detail = ForumService.delete_post(thread_id, gone_id, STUDENT_EMAIL)

    assert [p.id for p in detail.posts] == [keep_id]
    assert events == [("forum:post_deleted", {"threadId": thread_id, "postId": gone_id})]
    assert gone_id not in [p.id for p in ForumService.get_thread_detail(thread_id).posts]

    row = db.session.get(ForumPost, gone_id)
    assert row is not None
    assert row.is_deleted is True
    assert row.deleted_at is not None

    with pytest.raises(NotFound):
        ForumService.delete_post(thread_id, gone_id, STUDENT_EMAIL)


# ==================== 订阅 ====================

def test_subscribe_is_idempotent(make_category, make_thread, events):
    thread_id = make_thread(make_category().id).thread.id
    events.clear()

    first = ForumService.subscribe(thread_id, STUDENT_EMAIL)
    second = ForumService.subscribe(thread_id, STUDENT_EMAIL)

    assert first.id == second.id
    assert _subscription_rows(thread_id, STUDENT_EMAIL) == 1
    expected = ("forum:subscription_changed", {"threadId": thread_id, "userEmail": STUDENT_EMAIL, "subscribed": True})
    assert events == [expected, expected]


def test_unsubscribe_without_subscription_still_emits(make_category, make_thread, events):
    thread_id = make_thread(make_category().id).thread.id
    events.clear()

    assert ForumService.unsubscribe(thread_id, STUDENT_EMAIL) is False
    assert events == [
        ("forum:subscription_changed", {"threadId": thread_id, "userEmail": STUDENT_EMAIL, "subscribed": False})
    ]


def test_unsubscribe_removes_row(make_category, make_thread):
    thread_id = make_thread(make_category().id).thread.id
    ForumService.subscribe(thread_id, STUDENT_EMAIL)

    assert ForumService.unsubscribe(thread_id, STUDENT_EMAIL) is True
    assert _subscription_rows(thread_id, STUDENT_EMAIL) == 0
    assert ForumService.get_thread_detail(thread_id, STUDENT_EMAIL).subscription is None


def test_subscribe_missing_thread(app_context):
    with pytest.raises(NotFound):
        ForumService.subscribe(404, STUDENT_EMAIL)


# ==================== 事件 ====================

def test_event_bus_failure_does_not_fail_operation(make_category, monkeypatch):
    def _broken(*_args, **_kwargs):
        raise RuntimeError("socket server down")

    monkeypatch.setattr(socketio, "emit", _broken)

    category = make_category(title="still created")
    assert ForumService.get_category(category.id).title == "still created"


# ==================== 端到端场景 ====================

def test_course_forum_scenario(course, events):
    category = ForumService.create_category(
        TEACHER_EMAIL,
        title="General",
        visibility="course",
        context_type="course",
        context_id=COURSE_ID,
    )
    created = ForumService.create_thread(
        TEACHER_EMAIL,
        category_id=category.id,
        title="Welcome",
        content="Welcome to the course forum",
        subscribe=True,
    )
    thread_id = created.thread.id

    ForumService.add_post(thread_id, STUDENT_EMAIL, content="Hi!")

    student_view = ForumService.get_thread_detail(thread_id, STUDENT_EMAIL)
    assert len(student_view.posts) == 1
    assert student_view.posts[0].author_email == STUDENT_EMAIL
    assert student_view.posts[0].content == "Hi!"
    assert student_view.subscription is None

    teacher_view = ForumService.get_thread_detail(thread_id, TEACHER_EMAIL)
    assert teacher_view.subscription is not None
    assert teacher_view.subscription.user_email == TEACHER_EMAIL

    payload = student_view.to_dict()
    assert payload["thread"]["title"] == "Welcome"
    assert payload["subscription"] is None
    assert _names(events) == [
        "forum:category_created",
        "forum:thread_created",
        "forum:post_created",
    ]


# ==================== 版主权限查询 ====================

def test_has_moderator_rights_lookup(course_category, make_thread):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id

    assert ForumPolicyService.has_moderator_rights(thread_id, CATEGORY_OWNER_EMAIL) is True
    assert ForumPolicyService.has_moderator_rights(thread_id, TEACHER_EMAIL) is True
    assert ForumPolicyService.has_moderator_rights(thread_id, STUDENT_EMAIL) is False
    assert ForumPolicyService.has_moderator_rights(9999, TEACHER_EMAIL) is False


def test_permission_lookup_failure_rolls_back(course_category, make_thread, monkeypatch):
    thread_id = make_thread(course_category.id, author=STUDENT_EMAIL).thread.id
    rollbacks = []
    real_rollback = db.session.rollback

    def _boom(*_args, **_kwargs):
        raise OperationalError("SELECT", {}, Exception("db gone"))

    def _rollback():
        rollbacks.append(True)
        real_rollback()

    monkeypatch.setattr("repositories.course_repository.CourseRepository.get_teacher_email", staticmethod(_boom))
    monkeypatch.setattr(db.session, "rollback", _rollback)

    with pytest.raises(PersistenceFailure) as exc:
        ForumService.lock_thread(thread_id, TEACHER_EMAIL)

    assert exc.value.error_code == "failed_to_check_forum_permissions"
    assert rollbacks


def test_subscription_count_after_repeated_subscribe(make_category, make_thread):
    thread_id = make_thread(make_category().id, subscribe=True).thread.id
    for _ in range(3):
        ForumService.subscribe(thread_id, TEACHER_EMAIL)

    assert SubscriptionRepository.count(thread_id, TEACHER_EMAIL) == 1


def test_thread_detail_attaches_reactions(make_category, make_thread):
    thread_id = make_thread(make_category().id).thread.id
    post_id = ForumService.add_post(thread_id, STUDENT_EMAIL, content="+1 me").posts[0].id
    db.session.add(ForumPostReaction(post_id=post_id, user_email=TEACHER_EMAIL, reaction_type="like"))
    db.session.commit()

    payload = ForumService.get_thread_detail(thread_id).to_dict()

    reactions = payload["posts"][0]["reactions"]
    assert [(r["user_email"], r["reaction_type"]) for r in reactions] == [(TEACHER_EMAIL, "like")]
