# models/mixins.py
from sqlalchemy import func, DateTime
from extensions.database import db
from utils.datetime_helpers import utc_now

COMMON_TABLE_ARGS = {
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class TimestampMixin:
    created_at = db.Column(DateTime, nullable=False, default=utc_now, server_default=func.now(), index=True)
    updated_at = db.Column(
        DateTime, nullable=False, default=utc_now, server_default=func.now(), onupdate=utc_now, index=True
    )


class SoftDeleteMixin:
    """软删除混入类"""
    is_deleted = db.Column(
        db.Boolean,
        nullable=False,
        default=False,
        server_default="0",
        index=True,
        comment="是否已删除"
    )
    deleted_at = db.Column(
        DateTime,
        comment="删除时间"
    )

    def soft_delete(self):
        """执行软删除"""
        self.is_deleted = True
        self.deleted_at = utc_now()
