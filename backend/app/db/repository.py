"""
Generic async repository and the optimistic transaction scope.

The scheduling services only speak in equality and range filters, so the
query shapes stay portable across stores:

  - find_by_equality(space_id=3, status=["confirmed", "checked_in"])
  - find_by_range("start_time", lower, upper, user_id=7)

A sequence/set value in an equality filter means IN.
"""

from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import StoreFailure
from app.core.logging import get_logger
from app.core.metrics import record_store_failure, record_store_retry
from app.db.base import Base

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)
T = TypeVar("T")


class VersionConflict(Exception):
    """A compare-and-set on a concurrency token matched zero rows."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} was modified concurrently")
        self.entity = entity
        self.entity_id = entity_id


class Repository(Generic[ModelT]):
    def __init__(self, db: AsyncSession, model: type[ModelT]):
        self.db = db
        self.model = model

    def _column(self, field: str):
        try:
            return getattr(self.model, field)
        except AttributeError:
            raise ValueError(f"{self.model.__name__} has no field {field!r}")

    def _equality_clauses(self, filters: dict) -> list:
        clauses = []
        for field, value in filters.items():
            column = self._column(field)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        return clauses

    async def get(self, entity_id: Any, fresh: bool = False) -> Optional[ModelT]:
        """`fresh` reloads the row even when the identity map already holds it."""
        return await self.db.get(self.model, entity_id, populate_existing=fresh)

    async def find_by_equality(
        self,
        order_by: Optional[str] = None,
        **filters: Any,
    ) -> list[ModelT]:
        query = select(self.model).where(*self._equality_clauses(filters))
        if order_by:
            query = query.order_by(self._column(order_by))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_by_range(
        self,
        field: str,
        lower: Any = None,
        upper: Any = None,
        order_by: Optional[str] = None,
        **filters: Any,
    ) -> list[ModelT]:
        """Rows where lower <= field <= upper (either bound may be omitted)."""
        column = self._column(field)
        clauses = self._equality_clauses(filters)
        if lower is not None:
            clauses.append(column >= lower)
        if upper is not None:
            clauses.append(column <= upper)
        query = select(self.model).where(*clauses).order_by(self._column(order_by or field))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def add(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        return entity


async def with_transaction(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int,
    **log_context: Any,
) -> T:
    """
    Run `work` until its writes flush without a version conflict.

    On VersionConflict/StaleDataError the session is rolled back and `work`
    re-reads everything from scratch. Domain errors raised by `work`
    propagate untouched. Any other store error, or running out of
    attempts, surfaces as StoreFailure.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await work()
        except (VersionConflict, StaleDataError) as e:
            record_store_retry(operation)
            logger.info(
                "reservation_retry",
                operation=operation,
                attempt=attempt,
                reason=str(e),
                **log_context,
            )
            await db.rollback()
        except SQLAlchemyError as e:
            record_store_failure(operation)
            logger.error("store_failure", operation=operation, error=str(e), **log_context)
            raise StoreFailure("Reservation store is unavailable", operation=operation) from e

    record_store_failure(operation)
    logger.error(
        "store_retry_budget_exhausted",
        operation=operation,
        attempts=max_attempts,
        **log_context,
    )
    raise StoreFailure("Reservation could not be saved due to concurrent updates. Please try again.")
