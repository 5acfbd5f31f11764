"""Shared route dependencies: current user and service execution."""
from typing import Callable, Optional, TypeVar

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from roastmyapp.models.base import get_db
from roastmyapp.models.user import User
from roastmyapp.services.errors import NotAuthenticated, RoastError

T = TypeVar("T")


def http_error(exc: RoastError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.as_detail())


async def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the id forwarded by the session provider."""
    if x_user_id is None:
        raise http_error(NotAuthenticated())
    user = await db.get(User, x_user_id)
    if user is None:
        raise http_error(NotAuthenticated("Unknown user"))
    return user


async def run_command(db: AsyncSession, work: Callable[[Session], T]) -> T:
    """Run a sync service call in one transaction; domain errors roll it back."""
    try:
        result = await db.run_sync(work)
        await db.commit()
        return result
    except RoastError as exc:
        await db.rollback()
        raise http_error(exc)
    except Exception:
        await db.rollback()
        raise


async def run_query(db: AsyncSession, work: Callable[[Session], T]) -> T:
    try:
        return await db.run_sync(work)
    except RoastError as exc:
        raise http_error(exc)


def page_limit(limit: int, maximum: int = 100) -> int:
    return max(1, min(int(limit), maximum))

