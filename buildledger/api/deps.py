import uuid
from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.exceptions import PermissionDeniedError, UnauthenticatedError
from buildledger.common.permissions import permission_checker
from buildledger.core.audit.recorder import AuditRecorder, audit_recorder
from buildledger.core.policy import EngineConfig
from buildledger.db import guard
from buildledger.db.models.user import User
from buildledger.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-Id", description="Verified caller id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not x_user_id:
        raise UnauthenticatedError()

    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise UnauthenticatedError("Invalid caller identity")

    result = await guard.execute(
        db, select(User).where(User.id == user_id, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise UnauthenticatedError("Unknown or inactive user")

    return user


def require_permission(permission: str):
    async def permission_dependency(current_user: User = Depends(get_current_user)) -> User:
        if not permission_checker.has_permission(current_user.role, permission):
            raise PermissionDeniedError(f"This action requires the '{permission}' permission")
        return current_user

    return permission_dependency


@lru_cache
def get_engine_config() -> EngineConfig:
    return EngineConfig.from_settings()


def get_audit_recorder() -> AuditRecorder:
    return audit_recorder
