"""
Bootstrap script for creating the initial super user.

Idempotent: skips anything that already exists.
Run via: python -m taskgate.cli.bootstrap

Creates a protected "SuperUser" position, a protected user holding it, and a
global grant on every subject ("*") with all actions allowed.

Reads configuration from environment variables:
  TASKGATE_BOOTSTRAP_SUPERUSER_EMAIL  - Super user email (required)
  DATABASE_URL                        - PostgreSQL connection URL (from Helm)
"""

import asyncio
import logging
import os
import sys

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from taskgate.auth.permission_types import GlobalPermissionSubject
from taskgate.db.models import GlobalPermission, Position, User

# Use stdlib logging, structlog isn't configured yet during bootstrap
logger = logging.getLogger("taskgate.bootstrap")
logging.basicConfig(level=logging.INFO, format="%(message)s")

SUPERUSER_POSITION = "SuperUser"


async def seed_superuser(session: AsyncSession, email: str) -> None:
    """Create the super user position, user and wildcard grant if missing."""
    result = await session.execute(select(Position).where(Position.name == SUPERUSER_POSITION))
    position = result.scalar_one_or_none()
    if position is None:
        position = Position(name=SUPERUSER_POSITION, is_protected=True)
        session.add(position)
        await session.flush()
        logger.info("Created position: %s", SUPERUSER_POSITION)
    else:
        logger.info("Position %s already exists, skipping", SUPERUSER_POSITION)

    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            email=email,
            display_name="Super User",
            position_id=position.id,
            is_active=True,
            is_protected=True,
        )
        session.add(user)
        await session.flush()
        logger.info("Created user: %s", email)
    else:
        logger.info("User %s already exists, skipping user creation", email)

    result = await session.execute(
        select(GlobalPermission).where(
            GlobalPermission.user_id == user.id,
            GlobalPermission.subject == GlobalPermissionSubject.EVERYTHING,
        )
    )
    if result.scalar_one_or_none() is not None:
        logger.info("Global permissions already granted to %s, skipping", email)
        return

    session.add(
        GlobalPermission(
            subject=GlobalPermissionSubject.EVERYTHING,
            user_id=user.id,
            can_read=True,
            can_create=True,
            can_edit=True,
            can_delete=True,
        )
    )
    logger.info("Granted all global permissions to %s", email)


async def bootstrap() -> None:
    email = os.environ.get("TASKGATE_BOOTSTRAP_SUPERUSER_EMAIL", "").strip()
    database_url = os.environ.get("DATABASE_URL", "").strip()

    if not email:
        logger.error("TASKGATE_BOOTSTRAP_SUPERUSER_EMAIL is required")
        sys.exit(1)

    if not database_url:
        logger.error("DATABASE_URL is required")
        sys.exit(1)

    # Ensure async driver
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        logger.info("Connected to database")

    async with AsyncSession(engine, expire_on_commit=False) as session:
        async with session.begin():
            await seed_superuser(session, email)

    await engine.dispose()
    logger.info("Bootstrap complete")


def main() -> None:
    asyncio.run(bootstrap())


if __name__ == "__main__":
    main()
