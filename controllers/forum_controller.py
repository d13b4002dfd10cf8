from flask import Blueprint, request

from controllers.auth_helpers import auth_required, optional_auth
from services.forum_service import ForumService
from utils.exceptions import BizError
from utils.permissions import get_current_email, get_current_user
from utils.response import error_response, json_response

forum_bp = Blueprint("forum", __name__, url_prefix="/api/forum")


@forum_bp.errorhandler(BizError)
def _biz_error(e: BizError):
    return error_response(e)


def _flag(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ==================== 分类 ====================

@forum_bp.get("/categories")
@auth_required()
def list_categories():
    args = request.args
    categories = ForumService.list_categories(
        context_type=args.get("context_type") or None,
        context_id=args.get("context_id") or None,
        include_locked=_flag(args.get("include_locked")),
    )
    return json_response(data=[c.to_dict() for c in categories])


@forum_bp.post("/categories")
@auth_required()
def create_category():
    data = _body()
    category = ForumService.create_category(
        get_current_user().email,
        title=data.get("title"),
        description=data.get("description"),
        context_type=data.get("context_type"),
        context_id=data.get("context_id"),
        visibility=data.get("visibility"),
        metadata=data.get("metadata"),
        order_index=data.get("order_index"),
    )
    return json_response(message="创建成功", data=category.to_dict(), code=201)


@forum_bp.get("/categories/<int:category_id>")
@auth_required()
def get_category(category_id: int):
    category = ForumService.get_category(category_id)
    return json_response(data=category.to_dict())


@forum_bp.put("/categories/<int:category_id>")
@auth_required()
def update_category(category_id: int):
    data = _body()
    category = ForumService.update_category(
        category_id,
        get_current_user().email,
        title=data.get("title"),
        description=data.get("description"),
        context_type=data.get("context_type"),
        context_id=data.get("context_id"),
        visibility=data.get("visibility"),
        metadata=data.get("metadata"),
        is_locked=data.get("is_locked"),
        order_index=data.get("order_index"),
    )
    return json_response(message="更新成功", data=category.to_dict())


@forum_bp.delete("/categories/<int:category_id>")
@auth_required()
def delete_category(category_id: int):
    ForumService.delete_category(category_id, get_current_user().email)
    return json_response(message="删除成功")


@forum_bp.get("/categories/<int:category_id>/threads")
@auth_required()
def list_threads(category_id: int):
    threads = ForumService.list_threads(
        category_id,
        include_locked=_flag(request.args.get("include_locked")),
    )
    return json_response(data=[t.to_dict() for t in threads])


# ==================== 主题 ====================

@forum_bp.post("/threads")
@auth_required()
def create_thread():
    data = _body()
    detail = ForumService.create_thread(
        get_current_user().email,
        category_id=data.get("category_id"),
        title=data.get("title"),
        content=data.get("content"),
        rich_content=data.get("rich_content"),
        context_type=data.get("context_type"),
        context_id=data.get("context_id"),
        metadata=data.get("metadata"),
        subscribe=data.get("subscribe", False),
    )
    return json_response(message="创建成功", data=detail.to_dict(), code=201)


@forum_bp.get("/threads/<int:thread_id>")
@optional_auth()
def get_thread(thread_id: int):
    detail = ForumService.get_thread_detail(thread_id, get_current_email())
    return json_response(data=detail.to_dict())


@forum_bp.put("/threads/<int:thread_id>")
@auth_required()
def update_thread(thread_id: int):
    data = _body()
    detail = ForumService.update_thread(
        thread_id,
        get_current_user().email,
        title=data.get("title"),
        content=data.get("content"),
        rich_content=data.get("rich_content"),
        metadata=data.get("metadata"),
        category_id=data.get("category_id"),
    )
    return json_response(message="更新成功", data=detail.to_dict())


@forum_bp.delete("/threads/<int:thread_id>")
@auth_required()
def delete_thread(thread_id: int):
    ForumService.delete_thread(thread_id, get_current_user().email)
    return json_response(message="删除成功")


@forum_bp.post("/threads/<int:thread_id>/pin")
@auth_required()
def pin_thread(thread_id: int):
    detail = ForumService.pin_thread(thread_id, get_current_user().email)
    return json_response(message="已置顶", data=detail.to_dict())


@forum_bp.post("/threads/<int:thread_id>/unpin")
@auth_required()
def unpin_thread(thread_id: int):
    detail = ForumService.unpin_thread(thread_id, get_current_user().email)
    return json_response(message="已取消置顶", data=detail.to_dict())


@forum_bp.post("/threads/<int:thread_id>/lock")
@auth_required()
def lock_thread(thread_id: int):
    detail = ForumService.lock_thread(thread_id, get_current_user().email)
    return json_response(message="已锁定", data=detail.to_dict())


@forum_bp.post("/threads/<int:thread_id>/unlock")
@auth_required()
def unlock_thread(thread_id: int):
    detail = ForumService.unlock_thread(thread_id, get_current_user().email)
    return json_response(message="已解锁", data=detail.to_dict())


# ==================== 回复 ====================

@forum_bp.post("/threads/<int:thread_id>/posts")
@auth_required()
def add_post(thread_id: int):
    data = _body()
    detail = ForumService.add_post(
        thread_id,
        get_current_user().email,
        content=data.get("content"),
        rich_content=data.get("rich_content"),
        parent_post_id=data.get("parent_post_id"),
    )
    return json_response(message="回复成功", data=detail.to_dict(), code=201)


@forum_bp.put("/threads/<int:thread_id>/posts/<int:post_id>")
@auth_required()
def update_post(thread_id: int, post_id: int):
    data = _body()
    detail = ForumService.update_post(
        thread_id,
        post_id,
        get_current_user().email,
        content=data.get("content"),
        rich_content=data.get("rich_content"),
    )
    return json_response(message="更新成功", data=detail.to_dict())


@forum_bp.delete("/threads/<int:thread_id>/posts/<int:post_id>")
@auth_required()
def delete_post(thread_id: int, post_id: int):
    detail = ForumService.delete_post(thread_id, post_id, get_current_user().email)
    return json_response(message="删除成功", data=detail.to_dict())


# ==================== 订阅 ====================

@forum_bp.post("/threads/<int:thread_id>/subscription")
@auth_required()
def subscribe(thread_id: int):
    subscription = ForumService.subscribe(thread_id, get_current_user().email)
    return json_response(message="订阅成功", data=subscription.to_dict())


@forum_bp.delete("/threads/<int:thread_id>/subscription")
@auth_required()
def unsubscribe(thread_id: int):
    removed = ForumService.unsubscribe(thread_id, get_current_user().email)
    return json_response(message="已取消订阅", data={"thread_id": thread_id, "removed": removed})
