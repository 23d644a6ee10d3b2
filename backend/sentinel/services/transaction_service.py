"""Transaction ingestion and read service.

``create_transaction`` runs the ingestion path in order:

1. validate the input (nothing else is touched when it is invalid)
2. classify the description (the gateway never raises)
3. provision the user, insert the transaction, commit
4. enqueue the alert-evaluation job

Steps 3 and 4 are separate failure domains: a store failure raises
``PersistenceError`` and nothing is enqueued, while a queue failure is logged
and the committed transaction is still returned.
"""

import asyncio
from decimal import Decimal

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.config import Settings
from sentinel.core.categories import allowed_categories, is_valid_category
from sentinel.core.exceptions import DispatchError, NotFoundError, PersistenceError, ValidationError
from sentinel.models.transaction import Transaction
from sentinel.queue.job_queue import BackoffPolicy, JobOptions, JobQueue
from sentinel.schemas.alert import AlertJob
from sentinel.schemas.classification import ClassificationResult
from sentinel.schemas.transaction import TransactionCreate
from sentinel.services.classification_service import ClassificationGateway
from sentinel.stores.transactions import TransactionStore
from sentinel.stores.users import UserStore

logger = structlog.get_logger()

ALERT_JOB_NAME = "new-transaction"

ALERT_JOB_OPTIONS = JobOptions(
    attempts=3,
    backoff=BackoffPolicy(type="exponential", delay_ms=2000),
    remove_on_complete=True,
    remove_on_fail=False,
)


def alert_job_options(settings: Settings) -> JobOptions:
    """Retry policy for alert jobs, as configured."""
    return JobOptions(
        attempts=settings.alert_job_attempts,
        backoff=BackoffPolicy(type="exponential", delay_ms=settings.alert_job_backoff_ms),
        remove_on_complete=True,
        remove_on_fail=False,
    )


class TransactionService:
    def __init__(
        self,
        db: AsyncSession,
        gateway: ClassificationGateway,
        queue: JobQueue,
        persistence_timeout: float = 5.0,
        job_options: JobOptions = ALERT_JOB_OPTIONS,
    ):
        self.db = db
        self.gateway = gateway
        self.queue = queue
        self.persistence_timeout = persistence_timeout
        self.job_options = job_options
        self.users = UserStore(db)
        self.transactions = TransactionStore(db)

    async def create_transaction(
        self, user_id: str, description: str, amount: Decimal | float
    ) -> Transaction:
        """Classify, persist and dispatch one incoming transaction."""
        try:
            data = TransactionCreate(user_id=user_id, description=description, amount=amount)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        classification = await self.gateway.classify(data.description)

        try:
            txn = await asyncio.wait_for(
                self._persist(data, classification), timeout=self.persistence_timeout
            )
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            await self.db.rollback()
            logger.error("transaction_persist_failed", user_id=data.user_id, error=repr(e))
            raise PersistenceError(f"Could not save transaction: {e!r}") from e

        logger.info(
            "transaction_created",
            transaction_id=txn.id,
            user_id=txn.user_id,
            category=txn.category,
            confidence=txn.confidence,
        )

        await self._dispatch_alert_job(txn)
        return txn

    async def _persist(
        self, data: TransactionCreate, classification: ClassificationResult
    ) -> Transaction:
        # User provisioning is its own step so the side effect stays visible
        await self.users.ensure_user(data.user_id)
        txn = await self.transactions.create(
            user_id=data.user_id,
            description=data.description,
            amount=data.amount,
            category=classification.category,
            confidence=classification.confidence,
        )
        # Commit before enqueueing: workers read the row from another session
        await self.db.commit()
        return txn

    async def _dispatch_alert_job(self, txn: Transaction) -> None:
        payload = AlertJob(
            user_id=txn.user_id,
            transaction_id=txn.id,
            category=txn.category,
            amount=float(txn.amount),
        )
        try:
            job = await self.queue.add(
                ALERT_JOB_NAME, payload.model_dump(by_alias=True), self.job_options
            )
        except DispatchError as e:
            # Accepted partial failure: the transaction stays, no evaluation for it
            logger.warning(
                "alert_job_dispatch_failed",
                transaction_id=txn.id,
                user_id=txn.user_id,
                error=e.message,
            )
            return
        logger.info("alert_job_dispatched", job_id=job.id, transaction_id=txn.id)

    # ── Reads ──────────────────────────────────────────

    async def list_transactions(self, user_id: str, category: str | None = None) -> list[Transaction]:
        """List a user's transactions, newest first, optionally for one category."""
        if category is None:
            return await self.transactions.find_by_user(user_id)
        if not is_valid_category(category):
            raise ValidationError(f"Invalid category: {category}")
        return await self.transactions.find_by_category(user_id, category)

    async def get_spending_summary(self, user_id: str) -> dict[str, Decimal]:
        """Total spent per allowed category (0 when nothing was spent)."""
        totals = await self.transactions.totals_by_category(user_id)
        return {category: totals.get(category, Decimal("0")) for category in allowed_categories()}

    async def delete_transaction(self, transaction_id: str, user_id: str) -> Transaction:
        txn = await self.transactions.get(transaction_id)
        if not txn or txn.user_id != user_id:
            raise NotFoundError("Transaction")
        await self.transactions.delete(txn)
        await self.db.commit()
        logger.info("transaction_deleted", transaction_id=transaction_id, user_id=user_id)
        return txn
