"""Transaction persistence and spending aggregates."""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.models.transaction import Transaction


class TransactionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: str,
        description: str,
        amount: Decimal,
        category: str,
        confidence: float,
    ) -> Transaction:
        """Insert a classified transaction. The user row must already exist."""
        txn = Transaction(
            user_id=user_id,
            description=description,
            amount=amount,
            category=category,
            confidence=confidence,
        )
        self.db.add(txn)
        await self.db.flush()
        return txn

    async def get(self, transaction_id: str) -> Transaction | None:
        return await self.db.get(Transaction, transaction_id)

    async def find_by_user(self, user_id: str) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_by_category(self, user_id: str, category: str) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id, Transaction.category == category)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def total_by_category(self, user_id: str, category: str) -> Decimal:
        """Sum every stored amount for (user, category); 0 when there are none."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == user_id,
                Transaction.category == category,
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def totals_by_category(self, user_id: str) -> dict[str, Decimal]:
        result = await self.db.execute(
            select(Transaction.category, func.sum(Transaction.amount).label("total"))
            .where(Transaction.user_id == user_id)
            .group_by(Transaction.category)
        )
        return {row.category: Decimal(str(row.total or 0)) for row in result.all()}

    async def delete(self, txn: Transaction) -> None:
        await self.db.delete(txn)
        await self.db.flush()
