"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back the caller's transaction themselves.
    Each balance-affecting operation runs inside ``unit_of_work()``, a
    SAVEPOINT that is rolled back as a whole if any step raises, so a
    failed operation leaves no partial debit or credit even when the
    caller keeps using the session.

Failure modes:
    - If a subclass calls ``session.commit()``, the caller can no longer
      group several operations atomically.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generic, Iterator, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import is_lock_conflict
from ledger_kernel.exceptions import ConcurrencyConflictError
from ledger_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()``; the caller controls
          transaction boundaries.

    Non-goals:
        - Does NOT provide aggregate read queries -- those belong in
          ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def unit_of_work(self, operation: str) -> Iterator[None]:
        """
        Atomic unit of work nested in the caller's transaction.

        Opens a SAVEPOINT (beginning the outer transaction if none is
        active).  On normal exit the savepoint is released; on exception
        it is rolled back and the exception re-raised.
        """
        try:
            with self.session.begin_nested():
                yield
        except Exception as exc:
            logger.info(
                "unit_of_work_rolled_back",
                extra={
                    "uow_operation": operation,
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                },
            )
            raise

    def _fetch_for_update(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        """
        ``SELECT ... FOR UPDATE`` one row by id and re-read it.

        Raises:
            ConcurrencyConflictError: The store reported a lock timeout
                or deadlock while waiting.
        """
        stmt = (
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        try:
            return self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            if is_lock_conflict(exc):
                logger.warning(
                    "row_lock_conflict",
                    extra={
                        "table": model.__tablename__,
                        "row_id": str(entity_id),
                        "reason": str(exc.orig),
                    },
                )
                raise ConcurrencyConflictError(
                    model.__tablename__, str(entity_id), str(exc.orig),
                ) from exc
            raise
