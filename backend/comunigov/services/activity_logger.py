"""
User activity logging.

Entries are written in a savepoint of the caller's session and committed with
the request. Denied access attempts are committed immediately because the
request that triggered them is rolled back.
"""
import logging
from typing import Optional, Any

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.models.activity_log import UserActivityLog, UserAction

logger = logging.getLogger(__name__)


def get_client_ip(request: Optional[Request]) -> Optional[str]:
    """Client address from X-Forwarded-For, falling back to the socket peer."""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


class ActivityLogger:
    """Records user actions in ``user_activity_logs``."""

    @staticmethod
    async def log(
        db: AsyncSession,
        user_id: str,
        action: UserAction,
        description: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        request: Optional[Request] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[UserActivityLog]:
        """Insert an activity entry in its own savepoint.

        The caller's pending changes are flushed first so their errors still
        propagate. A failure writing the entry itself is logged and only the
        savepoint is rolled back.
        """
        await db.flush()
        entry = UserActivityLog(
            user_id=user_id,
            action=action,
            description=description,
            entity_type=entity_type,
            entity_id=entity_id,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent") if request else None,
            extra=metadata,
        )
        try:
            async with db.begin_nested():
                db.add(entry)
                await db.flush()
        except SQLAlchemyError:
            logger.exception("Failed to record %s activity for user %s", action.value, user_id)
            return None
        return entry

    @classmethod
    async def log_login(cls, db, user_id, request=None):
        return await cls.log(db, user_id, UserAction.LOGIN, "User logged in", "auth", request=request)

    @classmethod
    async def log_logout(cls, db, user_id, request=None):
        return await cls.log(db, user_id, UserAction.LOGOUT, "User logged out", "auth", request=request)

    @classmethod
    async def log_view(cls, db, user_id, entity_type, entity_id=None, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.VIEW,
            description or f"Viewed {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_create(cls, db, user_id, entity_type, entity_id, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.CREATE,
            description or f"Created {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_update(cls, db, user_id, entity_type, entity_id, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.UPDATE,
            description or f"Updated {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_delete(cls, db, user_id, entity_type, entity_id, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.DELETE,
            description or f"Deleted {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_send(cls, db, user_id, entity_type, entity_id, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.SEND,
            description or f"Sent {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_download(cls, db, user_id, entity_type, entity_id, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.DOWNLOAD,
            description or f"Downloaded {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_upload(cls, db, user_id, entity_type, entity_id=None, description=None, request=None, metadata=None):
        return await cls.log(
            db, user_id, UserAction.UPLOAD,
            description or f"Uploaded {entity_type}",
            entity_type, entity_id, request, metadata
        )

    @classmethod
    async def log_access_denied(
        cls,
        db: AsyncSession,
        user_id: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> None:
        """Record a denied access attempt and commit it before the 403 is raised."""
        logger.warning("Access denied: user=%s %s=%s", user_id, entity_type, entity_id)
        await cls.log(
            db, user_id, UserAction.VIEW,
            f"Access denied to {entity_type}",
            entity_type, entity_id, request,
            metadata={"access_denied": True},
        )
        try:
            await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to store access denial for user %s", user_id)
            await db.rollback()
