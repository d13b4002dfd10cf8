import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from extensions.database import db
from models.forum_category import ForumCategory
from models.forum_post import ForumPost
from models.forum_thread import ForumThread
from repositories.category_repository import CategoryRepository
from repositories.course_repository import CourseRepository
from repositories.thread_repository import ThreadRepository
from utils import permissions
from utils.exceptions import InsufficientPermissions, PersistenceFailure

logger = logging.getLogger(__name__)


class ForumPolicyService:
    """
    权限判断的加载层：读取判断所需的最少行数据，再交给 utils.permissions 里的纯函数。
    每次调用都重新读库，不缓存，避免课程教师变更后出现过期授权。
    """

    @staticmethod
    def _check_failed(message: str, *args) -> PersistenceFailure:
        logger.exception(message, *args)
        try:
            db.session.rollback()
        except SQLAlchemyError:
            logger.warning("rollback after permission check failure also failed", exc_info=True)
        return PersistenceFailure("failed_to_check_forum_permissions")

    @staticmethod
    def _load_context(thread: ForumThread) -> Tuple[Optional[ForumCategory], Optional[str]]:
        try:
            category = CategoryRepository.get_by_id(thread.category_id)
            course_id = permissions.resolve_course_id(category, thread)
            teacher_email = CourseRepository.get_teacher_email(course_id) if course_id else None
        except SQLAlchemyError:
            raise ForumPolicyService._check_failed("load moderator context failed: thread=%s", thread.id)
        return category, teacher_email

    @staticmethod
    def has_moderator_rights(thread_id: int, actor_email: str) -> bool:
        try:
            thread = ThreadRepository.get_by_id(thread_id)
        except SQLAlchemyError:
            raise ForumPolicyService._check_failed("load thread for moderator check failed: thread=%s", thread_id)
        if thread is None:
            return False
        return ForumPolicyService.thread_moderator(thread, actor_email)

    @staticmethod
    def thread_moderator(thread: ForumThread, actor_email: str) -> bool:
        category, teacher_email = ForumPolicyService._load_context(thread)
        allowed = permissions.has_moderator_rights(category, thread, actor_email, teacher_email)
        logger.debug("moderator check thread=%s actor=%s allowed=%s", thread.id, actor_email, allowed)
        return allowed

    @staticmethod
    def assert_category_owner(category: ForumCategory, actor_email: str):
        if not permissions.is_category_owner(category, actor_email):
            logger.info("category owner check denied: category=%s actor=%s", category.id, actor_email)
            raise InsufficientPermissions(message="仅分类创建者可以执行该操作")

    @staticmethod
    def assert_thread_access(thread: ForumThread, actor_email: str):
        # 作者本人直接放行，避免多余的版主查询
        if thread.author_email == actor_email:
            return
        is_moderator = ForumPolicyService.thread_moderator(thread, actor_email)
        if not permissions.can_manage_thread(thread, actor_email, is_moderator):
            logger.info("thread access denied: thread=%s actor=%s", thread.id, actor_email)
            raise InsufficientPermissions(message="仅主题作者或版主可以执行该操作")

    @staticmethod
    def assert_moderator(thread: ForumThread, actor_email: str):
        if not ForumPolicyService.thread_moderator(thread, actor_email):
            logger.info("moderation denied: thread=%s actor=%s", thread.id, actor_email)
            raise InsufficientPermissions(message="需要版主权限")

    @staticmethod
    def assert_post_author(post: ForumPost, actor_email: str):
        if not permissions.can_edit_post(post, actor_email):
            logger.info("post edit denied: post=%s actor=%s", post.id, actor_email)
            raise InsufficientPermissions(message="仅回复作者本人可以执行该操作")
