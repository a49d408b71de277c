"""Statement persistence interface and an in-memory reference store."""

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ..models.core import (
    ComputedInsights,
    IngestionOutcome,
    ParsedTransaction,
    StatementRecord,
    StatementStatus,
)


logger = logging.getLogger(__name__)


class StatementNotFoundError(LookupError):
    """No statement exists with the given id"""


class StatementStore(Protocol):
    """Persistence operations the pipeline relies on"""

    def create_statement(self, statement_id: str, filename: str = "") -> StatementRecord: ...

    def get_statement(self, statement_id: str) -> Optional[StatementRecord]: ...

    def persist_transaction_batch(self, statement_id: str, batch: Sequence[ParsedTransaction]) -> None: ...

    def update_statement_status(self,
                                statement_id: str,
                                status: StatementStatus,
                                counts: Optional[IngestionOutcome] = None,
                                period: Optional[Tuple[datetime, datetime]] = None,
                                error_message: Optional[str] = None) -> StatementRecord: ...

    def find_insight(self, statement_id: str) -> Optional[ComputedInsights]: ...

    def find_or_create_insight(self,
                               statement_id: str,
                               compute: Callable[[], ComputedInsights]) -> ComputedInsights: ...

    def find_transactions_ordered_by_date(self, statement_id: str) -> List[ParsedTransaction]: ...

    def record_insights_failure(self, statement_id: str, message: str) -> None: ...


class InMemoryStatementStore:
    """Thread-safe in-process implementation of StatementStore.

    Insights are write-once: find_or_create_insight holds a per-statement
    lock while computing, so concurrent first requests compute exactly once.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._insight_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._statements: Dict[str, StatementRecord] = {}
        self._transactions: Dict[str, List[ParsedTransaction]] = {}
        self._insights: Dict[str, ComputedInsights] = {}
        self.batch_sizes: Dict[str, List[int]] = defaultdict(list)

    def create_statement(self, statement_id: str, filename: str = "") -> StatementRecord:
        with self._lock:
            if statement_id in self._statements:
                raise ValueError(f"Statement already exists: {statement_id}")
            record = StatementRecord(statement_id=statement_id, filename=filename)
            self._statements[statement_id] = record
            self._transactions[statement_id] = []
        logger.debug(f"Created statement {statement_id}")
        return record

    def get_statement(self, statement_id: str) -> Optional[StatementRecord]:
        with self._lock:
            return self._statements.get(statement_id)

    def _require(self, statement_id: str) -> StatementRecord:
        record = self._statements.get(statement_id)
        if record is None:
            raise StatementNotFoundError(f"Statement not found: {statement_id}")
        return record

    def persist_transaction_batch(self, statement_id: str, batch: Sequence[ParsedTransaction]) -> None:
        with self._lock:
            self._require(statement_id)
            self._transactions[statement_id].extend(batch)
            self.batch_sizes[statement_id].append(len(batch))
        logger.debug(f"Persisted {len(batch)} transactions for statement {statement_id}")

    def update_statement_status(self,
                                statement_id: str,
                                status: StatementStatus,
                                counts: Optional[IngestionOutcome] = None,
                                period: Optional[Tuple[datetime, datetime]] = None,
                                error_message: Optional[str] = None) -> StatementRecord:
        with self._lock:
            record = self._require(statement_id)
            record.status = status
            if counts is not None:
                record.transaction_count = counts.total_rows
                record.successful_transactions = counts.successful_rows
                record.failed_transactions = counts.failed_rows
            if period is not None:
                record.period_start, record.period_end = period
            record.error_message = error_message
        logger.info(f"Statement {statement_id} is now {status.value}")
        return record

    def find_insight(self, statement_id: str) -> Optional[ComputedInsights]:
        with self._lock:
            return self._insights.get(statement_id)

    def find_or_create_insight(self,
                               statement_id: str,
                               compute: Callable[[], ComputedInsights]) -> ComputedInsights:
        with self._lock:
            self._require(statement_id)
            statement_lock = self._insight_locks[statement_id]

        with statement_lock:
            existing = self.find_insight(statement_id)
            if existing is not None:
                logger.debug(f"Returning stored insights for statement {statement_id}")
                return existing

            insight = compute()

            with self._lock:
                self._insights[statement_id] = insight
                self._statements[statement_id].insights_error = None
            logger.info(f"Stored insights for statement {statement_id}")
            return insight

    def find_transactions_ordered_by_date(self, statement_id: str) -> List[ParsedTransaction]:
        with self._lock:
            self._require(statement_id)
            transactions = list(self._transactions[statement_id])
        # sorted() is stable, so same-day rows keep their upload order
        return sorted(transactions, key=lambda t: t.date)

    def record_insights_failure(self, statement_id: str, message: str) -> None:
        with self._lock:
            record = self._require(statement_id)
            record.insights_error = message
        logger.warning(f"Insights failed for statement {statement_id}: {message}")
