"""
论坛核心服务：分类 / 主题 / 回复 / 订阅 / 版主操作。

每个写操作遵循同一流程：
  1. 读取判断所需的最少数据（不存在 => NotFound）
  2. 权限校验（失败 => InsufficientPermissions），状态校验（锁定 => ThreadLocked）
  3. 通过 Repository 落库，存储异常统一记录日志后转换为 PersistenceFailure
  4. 重新读取并组装返回视图
  5. 广播一个领域事件（尽力而为，失败不影响结果）
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from constants.forum import DEFAULT_VISIBILITY, ForumEvent, validate_visibility
from extensions.database import db
from extensions.event_bus import event_bus
from models.forum_category import ForumCategory
from models.forum_post import ForumPost
from models.forum_subscription import ForumThreadSubscription
from models.forum_thread import ForumThread
from repositories.category_repository import CategoryRepository
from repositories.post_repository import PostRepository
from repositories.subscription_repository import SubscriptionRepository
from repositories.thread_repository import ThreadRepository
from services.forum_policy_service import ForumPolicyService
from utils.datetime_helpers import utc_now
from utils.exceptions import NotFound, PersistenceFailure, ThreadLocked, ValidationError
from utils.validators import optional_bool, optional_dict, optional_int, require_text

logger = logging.getLogger(__name__)


@dataclass
class ThreadDetail:
    """主题详情视图：主题本身 + 未删除回复（正序）+ 调用方的订阅记录。"""
    thread: ForumThread
    posts: List[ForumPost] = field(default_factory=list)
    subscription: Optional[ForumThreadSubscription] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread": self.thread.to_dict(),
            "posts": [p.to_dict() for p in self.posts],
            "subscription": self.subscription.to_dict() if self.subscription else None,
        }


class ForumService:

    # ==================== 内部工具 ====================

    @staticmethod
    def _emit(event: ForumEvent, **payload):
        event_bus.emit(event.value, payload)

    @staticmethod
    def _storage_failure(error_code: str, message: str, *args) -> PersistenceFailure:
        """记录上下文并回滚会话，返回不含底层细节的 PersistenceFailure。"""
        logger.exception(message, *args)
        try:
            db.session.rollback()
        except SQLAlchemyError:
            logger.warning("rollback after storage failure also failed", exc_info=True)
        return PersistenceFailure(error_code)

    @staticmethod
    def _require_actor(actor_email: Optional[str]) -> str:
        return require_text(actor_email, "actor_required", "操作人")

    @staticmethod
    def _default_visibility() -> str:
        if has_app_context():
            return current_app.config.get("FORUM_DEFAULT_VISIBILITY", DEFAULT_VISIBILITY.value)
        return DEFAULT_VISIBILITY.value

    @staticmethod
    def _load_category(category_id: int) -> ForumCategory:
        try:
            category = CategoryRepository.get_by_id(category_id)
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_fetch_forum_category", "fetch forum category failed: id=%s", category_id
            )
        if category is None:
            raise NotFound("forum_category_not_found", "分类不存在")
        return category

    @staticmethod
    def _load_thread(thread_id: int) -> ForumThread:
        try:
            thread = ThreadRepository.get_by_id(thread_id)
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_fetch_forum_thread", "fetch forum thread failed: id=%s", thread_id
            )
        if thread is None:
            raise NotFound("forum_thread_not_found", "主题不存在")
        return thread

    @staticmethod
    def _load_post(thread_id: int, post_id: int) -> ForumPost:
        try:
            post = PostRepository.get_in_thread(thread_id, post_id)
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_fetch_forum_post", "fetch forum post failed: thread=%s post=%s", thread_id, post_id
            )
        if post is None:
            raise NotFound("forum_post_not_found", "回复不存在")
        return post

    # ==================== 分类 ====================

    @staticmethod
    def list_categories(
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        include_locked: bool = False,
    ) -> List[ForumCategory]:
        try:
            return CategoryRepository.list(
                context_type=context_type,
                context_id=context_id,
                include_locked=include_locked,
            )
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_list_forum_categories",
                "list forum categories failed: context=%s/%s", context_type, context_id,
            )

    @staticmethod
    def get_category(category_id: int) -> ForumCategory:
        return ForumService._load_category(category_id)

    @staticmethod
    def create_category(
        actor_email: str,
        *,
        title: str,
        description: Optional[str] = None,
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        visibility: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        order_index: Optional[int] = None,
    ) -> ForumCategory:
        actor_email = ForumService._require_actor(actor_email)
        require_text(title, "title_required", "分类标题")
        visibility = visibility or ForumService._default_visibility()
        validate_visibility(visibility)
        optional_dict(metadata, "invalid_metadata", "metadata")
        order_index = optional_int(order_index, "invalid_order_index", "order_index")

        try:
            category = CategoryRepository.create(
                title=title,
                created_by=actor_email,
                description=description,
                context_type=context_type,
                context_id=context_id,
                visibility=visibility,
                order_index=order_index or 0,
                meta=metadata,
            )
            CategoryRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_create_forum_category", "create forum category failed: actor=%s", actor_email
            )

        logger.info("forum category created: id=%s by=%s", category.id, actor_email)
        ForumService._emit(ForumEvent.CATEGORY_CREATED, categoryId=category.id)
        return category

    @staticmethod
    def update_category(
        category_id: int,
        actor_email: str,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        visibility: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        is_locked: Optional[bool] = None,
        order_index: Optional[int] = None,
    ) -> ForumCategory:
        category = ForumService._load_category(category_id)
        ForumPolicyService.assert_category_owner(category, actor_email)

        changes: Dict[str, Any] = {}
        if title is not None:
            changes["title"] = require_text(title, "title_required", "分类标题").strip()
        if description is not None:
            changes["description"] = description
        if context_type is not None:
            changes["context_type"] = context_type or None
        if context_id is not None:
            changes["context_id"] = context_id or None
        if visibility is not None:
            validate_visibility(visibility)
            changes["visibility"] = visibility
        if metadata is not None:
            changes["meta"] = optional_dict(metadata, "invalid_metadata", "metadata")
        if is_locked is not None:
            changes["is_locked"] = optional_bool(is_locked, "invalid_is_locked", "is_locked")
        if order_index is not None:
            changes["order_index"] = optional_int(order_index, "invalid_order_index", "order_index")

        if not changes:
            return category

        try:
            CategoryRepository.update(category, changes)
            CategoryRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_update_forum_category", "update forum category failed: id=%s", category_id
            )

        category = ForumService._load_category(category_id)
        ForumService._emit(ForumEvent.CATEGORY_UPDATED, categoryId=category.id)
        return category

    @staticmethod
    def delete_category(category_id: int, actor_email: str):
        category = ForumService._load_category(category_id)
        ForumPolicyService.assert_category_owner(category, actor_email)

        try:
            CategoryRepository.delete(category)
            CategoryRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_delete_forum_category", "delete forum category failed: id=%s", category_id
            )

        logger.info("forum category deleted: id=%s by=%s", category_id, actor_email)
        ForumService._emit(ForumEvent.CATEGORY_DELETED, categoryId=category_id)

    # ==================== 主题 ====================

    @staticmethod
    def list_threads(category_id: int, include_locked: bool = False) -> List[ForumThread]:
        ForumService._load_category(category_id)
        try:
            return ThreadRepository.list_by_category(category_id, include_locked=include_locked)
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_list_forum_threads", "list forum threads failed: category=%s", category_id
            )

    @staticmethod
    def get_thread_detail(thread_id: int, actor_email: Optional[str] = None) -> ThreadDetail:
        thread = ForumService._load_thread(thread_id)
        try:
            posts = PostRepository.list_by_thread(thread.id)
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_fetch_forum_posts", "fetch forum posts failed: thread=%s", thread_id
            )

        subscription = None
        if actor_email:
            try:
                subscription = SubscriptionRepository.get(thread.id, actor_email)
            except SQLAlchemyError:
                raise ForumService._storage_failure(
                    "failed_to_fetch_forum_subscription",
                    "fetch forum subscription failed: thread=%s user=%s", thread_id, actor_email,
                )
        return ThreadDetail(thread=thread, posts=posts, subscription=subscription)

    @staticmethod
    def create_thread(
        actor_email: str,
        *,
        category_id: int,
        title: str,
        content: str,
        rich_content: Optional[Dict[str, Any]] = None,
        context_type: Optional[str] = None,
        context_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        subscribe: bool = False,
    ) -> ThreadDetail:
        actor_email = ForumService._require_actor(actor_email)
        if category_id is None:
            raise ValidationError("category_id_required", "category_id 不能为空")
        category = ForumService._load_category(category_id)
        require_text(title, "title_required", "主题标题")
        require_text(content, "content_required", "主题内容")
        optional_dict(rich_content, "invalid_rich_content", "rich_content")
        optional_dict(metadata, "invalid_metadata", "metadata")
        subscribe = optional_bool(subscribe, "invalid_subscribe", "subscribe")

        try:
            thread = ThreadRepository.create(
                category_id=category.id,
                author_email=actor_email,
                title=title,
                content=content,
                rich_content=rich_content,
                context_type=context_type,
                context_id=context_id,
                meta=metadata,
            )
            ThreadRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_create_forum_thread",
                "create forum thread failed: category=%s actor=%s", category_id, actor_email,
            )
        thread_id = thread.id
        logger.info("forum thread created: id=%s category=%s by=%s", thread_id, category.id, actor_email)

        if subscribe:
            ForumService._auto_subscribe(thread_id, actor_email)

        ForumService._emit(ForumEvent.THREAD_CREATED, categoryId=category.id, threadId=thread_id)
        return ForumService.get_thread_detail(thread_id, actor_email)

    @staticmethod
    def _auto_subscribe(thread_id: int, actor_email: str):
        """作者自动订阅：失败只记日志，主题已提交不回滚。"""
        try:
            SubscriptionRepository.upsert(thread_id, actor_email, notify=True)
            SubscriptionRepository.commit()
        except Exception:
            logger.warning(
                "auto subscribe failed: thread=%s user=%s", thread_id, actor_email, exc_info=True
            )
            try:
                SubscriptionRepository.rollback()
            except SQLAlchemyError:
                logger.warning("rollback after auto subscribe failure also failed", exc_info=True)

    @staticmethod
    def update_thread(
        thread_id: int,
        actor_email: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        rich_content: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        category_id: Optional[int] = None,
    ) -> ThreadDetail:
        thread = ForumService._load_thread(thread_id)
        ForumPolicyService.assert_thread_access(thread, actor_email)

        if category_id is not None:
            try:
                requested = int(category_id)
            except (TypeError, ValueError):
                raise ValidationError("invalid_category_id", "category_id 必须为整数")
            if requested != thread.category_id:
                raise ValidationError("category_id_immutable", "主题所属分类不可修改")

        changes: Dict[str, Any] = {}
        if title is not None:
            changes["title"] = require_text(title, "title_required", "主题标题").strip()
        if content is not None:
            changes["content"] = require_text(content, "content_required", "主题内容")
        if rich_content is not None:
            changes["rich_content"] = optional_dict(rich_content, "invalid_rich_content", "rich_content")
        if metadata is not None:
            changes["meta"] = optional_dict(metadata, "invalid_metadata", "metadata")

        if not changes:
            return ForumService.get_thread_detail(thread_id, actor_email)

        try:
            ThreadRepository.update(thread, changes)
            ThreadRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_update_forum_thread", "update forum thread failed: id=%s", thread_id
            )

        detail = ForumService.get_thread_detail(thread_id, actor_email)
        ForumService._emit(ForumEvent.THREAD_UPDATED, categoryId=detail.thread.category_id, threadId=thread_id)
        return detail

    @staticmethod
    def delete_thread(thread_id: int, actor_email: str):
        thread = ForumService._load_thread(thread_id)
        ForumPolicyService.assert_thread_access(thread, actor_email)

        try:
            ThreadRepository.delete(thread)
            ThreadRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_delete_forum_thread", "delete forum thread failed: id=%s", thread_id
            )

        logger.info("forum thread deleted: id=%s by=%s", thread_id, actor_email)
        ForumService._emit(ForumEvent.THREAD_DELETED, threadId=thread_id)

    # ==================== 版主操作 ====================

    @staticmethod
    def _moderate(thread_id: int, actor_email: str, flag: str, value: bool, action: str) -> ThreadDetail:
        thread = ForumService._load_thread(thread_id)
        ForumPolicyService.assert_moderator(thread, actor_email)

        try:
            ThreadRepository.update(thread, {flag: value})
            ThreadRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                f"failed_to_{action}_forum_thread", "%s forum thread failed: id=%s", action, thread_id
            )

        logger.info("forum thread %s: id=%s by=%s", action, thread_id, actor_email)
        detail = ForumService.get_thread_detail(thread_id, actor_email)
        ForumService._emit(ForumEvent.THREAD_UPDATED, categoryId=detail.thread.category_id, threadId=thread_id)
        return detail

    @staticmethod
    def pin_thread(thread_id: int, actor_email: str) -> ThreadDetail:
        return ForumService._moderate(thread_id, actor_email, "is_pinned", True, "pin")

    @staticmethod
    def unpin_thread(thread_id: int, actor_email: str) -> ThreadDetail:
        return ForumService._moderate(thread_id, actor_email, "is_pinned", False, "unpin")

    @staticmethod
    def lock_thread(thread_id: int, actor_email: str) -> ThreadDetail:
        return ForumService._moderate(thread_id, actor_email, "is_locked", True, "lock")

    @staticmethod
    def unlock_thread(thread_id: int, actor_email: str) -> ThreadDetail:
        return ForumService._moderate(thread_id, actor_email, "is_locked", False, "unlock")

    # ==================== 回复 ====================

    @staticmethod
    def add_post(
        thread_id: int,
        actor_email: str,
        *,
        content: str,
        rich_content: Optional[Dict[str, Any]] = None,
        parent_post_id: Optional[int] = None,
    ) -> ThreadDetail:
        actor_email = ForumService._require_actor(actor_email)
        thread = ForumService._load_thread(thread_id)
        if thread.is_locked:
            raise ThreadLocked(message="主题已锁定，无法回复")
        require_text(content, "content_required", "回复内容")
        optional_dict(rich_content, "invalid_rich_content", "rich_content")

        if parent_post_id is not None:
            try:
                parent = PostRepository.get_in_thread(thread.id, parent_post_id, include_deleted=True)
            except SQLAlchemyError:
                raise ForumService._storage_failure(
                    "failed_to_fetch_forum_post", "fetch parent post failed: thread=%s post=%s",
                    thread_id, parent_post_id,
                )
            if parent is None:
                raise ValidationError("invalid_parent_post", "父回复不存在或不属于该主题")

        try:
            post = PostRepository.create(
                thread_id=thread.id,
                author_email=actor_email,
                content=content,
                rich_content=rich_content,
                parent_post_id=parent_post_id,
            )
            ThreadRepository.touch_activity(thread)
            PostRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_create_forum_post", "create forum post failed: thread=%s actor=%s", thread_id, actor_email
            )
        post_id = post.id

        detail = ForumService.get_thread_detail(thread_id, actor_email)
        ForumService._emit(ForumEvent.POST_CREATED, threadId=thread_id, postId=post_id)
        return detail

    @staticmethod
    def update_post(
        thread_id: int,
        post_id: int,
        actor_email: str,
        *,
        content: Optional[str] = None,
        rich_content: Optional[Dict[str, Any]] = None,
    ) -> ThreadDetail:
        ForumService._load_thread(thread_id)
        post = ForumService._load_post(thread_id, post_id)
        ForumPolicyService.assert_post_author(post, actor_email)

        changes: Dict[str, Any] = {}
        if content is not None:
            changes["content"] = require_text(content, "content_required", "回复内容")
        if rich_content is not None:
            changes["rich_content"] = optional_dict(rich_content, "invalid_rich_content", "rich_content")

        if not changes:
            return ForumService.get_thread_detail(thread_id, actor_email)

        changes["edited_at"] = utc_now()
        try:
            PostRepository.update(post, changes)
            PostRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_update_forum_post", "update forum post failed: thread=%s post=%s", thread_id, post_id
            )

        detail = ForumService.get_thread_detail(thread_id, actor_email)
        ForumService._emit(ForumEvent.POST_UPDATED, threadId=thread_id, postId=post_id)
        return detail

    @staticmethod
    def delete_post(thread_id: int, post_id: int, actor_email: str) -> ThreadDetail:
        ForumService._load_thread(thread_id)
        post = ForumService._load_post(thread_id, post_id)
        ForumPolicyService.assert_post_author(post, actor_email)

        try:
            PostRepository.soft_delete(post)
            PostRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_delete_forum_post", "delete forum post failed: thread=%s post=%s", thread_id, post_id
            )

        logger.info("forum post soft-deleted: thread=%s post=%s by=%s", thread_id, post_id, actor_email)
        detail = ForumService.get_thread_detail(thread_id, actor_email)
        ForumService._emit(ForumEvent.POST_DELETED, threadId=thread_id, postId=post_id)
        return detail

    # ==================== 订阅 ====================

    @staticmethod
    def subscribe(thread_id: int, user_email: str) -> ForumThreadSubscription:
        user_email = ForumService._require_actor(user_email)
        thread = ForumService._load_thread(thread_id)

        try:
            try:
                subscription = SubscriptionRepository.upsert(thread.id, user_email, notify=True)
                SubscriptionRepository.commit()
            except IntegrityError:
                # 并发订阅撞上唯一约束：对方已写入，按已订阅处理
                SubscriptionRepository.rollback()
                subscription = SubscriptionRepository.get(thread_id, user_email)
                if subscription is None:
                    raise
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_subscribe_forum_thread", "subscribe failed: thread=%s user=%s", thread_id, user_email
            )

        ForumService._emit(
            ForumEvent.SUBSCRIPTION_CHANGED, threadId=thread_id, userEmail=user_email, subscribed=True
        )
        return subscription

    @staticmethod
    def unsubscribe(thread_id: int, user_email: str) -> bool:
        """取消订阅；返回是否真的删除了记录（不存在时为 False，不报错）。"""
        user_email = ForumService._require_actor(user_email)
        thread = ForumService._load_thread(thread_id)

        try:
            removed = SubscriptionRepository.delete(thread.id, user_email)
            SubscriptionRepository.commit()
        except SQLAlchemyError:
            raise ForumService._storage_failure(
                "failed_to_unsubscribe_forum_thread", "unsubscribe failed: thread=%s user=%s", thread_id, user_email
            )

        ForumService._emit(
            ForumEvent.SUBSCRIPTION_CHANGED, threadId=thread_id, userEmail=user_email, subscribed=False
        )
        return removed > 0
