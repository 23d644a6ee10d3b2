"""User provisioning."""

import structlog
from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.core.exceptions import NotFoundError
from sentinel.models.user import User

logger = structlog.get_logger()

PROVISIONED_EMAIL_DOMAIN = "sentinel.local"


class UserStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> User | None:
        return await self.db.get(User, user_id)

    async def ensure_user(self, user_id: str, email: str | None = None) -> bool:
        """Create the user if it does not exist yet.

        Uses INSERT ... ON CONFLICT DO NOTHING so two concurrent first writes
        for the same user cannot fail each other. Returns True when a row was
        inserted.
        """
        dialect = self.db.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(User)
            .values(id=user_id, email=email or f"{user_id}@{PROVISIONED_EMAIL_DOMAIN}")
            .on_conflict_do_nothing(index_elements=[User.id])
        )
        result = await self.db.execute(stmt)
        created = bool(result.rowcount)
        if created:
            logger.info("user_provisioned", user_id=user_id)
        return created

    async def delete(self, user_id: str) -> None:
        """Delete a user; transactions and alert rules go with it."""
        result = await self.db.execute(delete(User).where(User.id == user_id))
        if not result.rowcount:
            raise NotFoundError("User")
        await self.db.flush()
