"""Run an operation as one all-or-nothing transaction, retrying on conflicts."""
from __future__ import annotations

from typing import Callable, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_random,
)

from .config import EngineConfig
from .exceptions import ConflictError
from .logging import operation_context
from .store.base import RecordStore
from .store.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TransactionRunner:
    """Executes work against a fresh UnitOfWork per attempt.

    Only ConflictError is retried; the whole operation re-runs from a fresh
    snapshot so nothing from a failed attempt leaks into the next. Once the
    attempt or time budget is spent the last ConflictError is raised.
    """

    def __init__(self, store: RecordStore, config: EngineConfig | None = None) -> None:
        self.store = store
        self.config = config or EngineConfig()

    def run(self, operation: str, work: Callable[[UnitOfWork], T], **context) -> T:
        with operation_context(operation=operation, **context):
            return self._run(work)

    def _run(self, work: Callable[[UnitOfWork], T]) -> T:
        def _before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning("transaction.conflict", attempt=state.attempt_number, error=str(error))

        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_attempts) | stop_after_delay(self.config.operation_timeout),
            # Exponential backoff plus up to one initial wait of jitter
            wait=wait_exponential(multiplier=self.config.retry_wait_initial, max=self.config.retry_wait_max)
            + wait_random(0, self.config.retry_wait_initial),
            retry=retry_if_exception_type(ConflictError),
            before_sleep=_before_sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                uow = UnitOfWork(self.store)
                result = work(uow)
                uow.commit()
        logger.debug("transaction.committed", attempts=retrying.statistics.get("attempt_number", 1))
        return result
