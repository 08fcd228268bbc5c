"""
Permission store access layer for Taskgate.

Provides get_permission_store() as a FastAPI dependency. The store is built
per request around the request's database session.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.db.session import get_db
from taskgate.permissions.protocol import PermissionStore
from taskgate.permissions.sql import SQLPermissionStore


async def get_permission_store(db: AsyncSession = Depends(get_db)) -> PermissionStore:
    """FastAPI dependency that returns the request-scoped permission store."""
    return SQLPermissionStore(db)
