"""Statement processing pipeline: ingest, persist, signal, compute insights.

Processing a statement puts its id on a ready queue once its transactions are
stored. An InsightsWorker drains that queue and computes insights; failures
are recorded on the statement rather than dropped.
"""

import logging
import queue
from typing import Dict, Optional, Union

from .analytics.engine import EmptyInputError, InsightsEngine
from .models.core import (
    AppConfig,
    ComputedInsights,
    IngestionOutcome,
    StatementStatus,
)
from .parsers.base import CsvFormatError
from .parsers.csv_parser import StatementRowParser
from .utils.error_handler import ErrorCategory, ErrorHandler
from .utils.statement_store import StatementNotFoundError, StatementStore


logger = logging.getLogger(__name__)


NO_VALID_TRANSACTIONS = "No valid transactions found in CSV"


class StatementNotReadyError(Exception):
    """Insights were requested for a statement that is not processed yet"""

    def __init__(self, statement_id: str, status: StatementStatus):
        self.statement_id = statement_id
        self.status = status
        super().__init__("Statement must be processed before computing insights")


class StatementProcessor:
    """Parses an uploaded CSV and stores its transactions in batches.

    Args:
        store: Persistence for statements and transactions
        parser: Row parser. Built from config when omitted.
        ready_queue: Receives the id of every successfully processed statement
        config: Supplies the persistence chunk size
        error_handler: Optional handler receiving structured row errors
    """

    def __init__(self,
                 store: StatementStore,
                 parser: Optional[StatementRowParser] = None,
                 ready_queue: Optional["queue.Queue[str]"] = None,
                 config: Optional[AppConfig] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.store = store
        self.config = config or AppConfig()
        self.parser = parser or StatementRowParser(self.config)
        self.ready_queue = ready_queue
        self.error_handler = error_handler

    def process(self, statement_id: str, data: bytes) -> IngestionOutcome:
        """Run ingestion for one statement and update its status.

        Returns:
            The ingestion outcome, also for statements that end up FAILED

        Raises:
            StatementNotFoundError: If the statement was never created
        """
        if self.store.get_statement(statement_id) is None:
            raise StatementNotFoundError(f"Statement not found: {statement_id}")

        self.store.update_statement_status(statement_id, StatementStatus.PROCESSING)
        logger.info(f"Processing statement {statement_id}")

        try:
            outcome = self.parser.ingest(data, self.error_handler, statement_id)
        except CsvFormatError as e:
            logger.error(f"Statement {statement_id} could not be read: {e}")
            if self.error_handler:
                self.error_handler.log_error(
                    str(e), "MALFORMED_FILE", ErrorCategory.FILE_FORMAT,
                    statement_id=statement_id, exception=e
                )
            self.store.update_statement_status(
                statement_id, StatementStatus.FAILED, error_message=str(e)
            )
            return IngestionOutcome()

        if outcome.successful_rows == 0:
            logger.warning(f"Statement {statement_id}: {NO_VALID_TRANSACTIONS}")
            if self.error_handler:
                self.error_handler.log_error(
                    NO_VALID_TRANSACTIONS, "EMPTY_STATEMENT", ErrorCategory.DATA_PARSING,
                    statement_id=statement_id,
                    context={'failed_rows': outcome.failed_rows}
                )
            self.store.update_statement_status(
                statement_id, StatementStatus.FAILED,
                counts=outcome, error_message=NO_VALID_TRANSACTIONS
            )
            return outcome

        chunk_size = self.config.chunk_size
        for start in range(0, len(outcome.transactions), chunk_size):
            self.store.persist_transaction_batch(
                statement_id, outcome.transactions[start:start + chunk_size]
            )

        self.store.update_statement_status(
            statement_id,
            StatementStatus.PROCESSED,
            counts=outcome,
            period=(outcome.period_start, outcome.period_end),
            error_message='; '.join(outcome.errors) if outcome.errors else None
        )

        if self.ready_queue is not None:
            self.ready_queue.put(statement_id)
            logger.debug(f"Statement {statement_id} queued for insights")

        return outcome


class InsightsService:
    """Computes or returns the stored insights of a processed statement"""

    def __init__(self, store: StatementStore, engine: Optional[InsightsEngine] = None):
        self.store = store
        self.engine = engine or InsightsEngine()

    def run_insights(self, statement_id: str) -> ComputedInsights:
        """Return insights for a statement, computing them on first request.

        Raises:
            StatementNotFoundError: If the statement does not exist
            StatementNotReadyError: If the statement is not PROCESSED
            EmptyInputError: If the statement has no stored transactions
        """
        statement = self.store.get_statement(statement_id)
        if statement is None:
            raise StatementNotFoundError(f"Statement not found: {statement_id}")
        if statement.status != StatementStatus.PROCESSED:
            raise StatementNotReadyError(statement_id, statement.status)

        def compute() -> ComputedInsights:
            logger.info(f"Computing insights for statement {statement_id}")
            transactions = self.store.find_transactions_ordered_by_date(statement_id)
            return self.engine.compute_insights(transactions, statement.parsing_stats())

        return self.store.find_or_create_insight(statement_id, compute)


class InsightsWorker:
    """Drains the ready queue and runs insights for each statement"""

    def __init__(self,
                 service: InsightsService,
                 ready_queue: "queue.Queue[str]",
                 error_handler: Optional[ErrorHandler] = None):
        self.service = service
        self.store = service.store
        self.ready_queue = ready_queue
        self.error_handler = error_handler

    def run_pending(self) -> Dict[str, Union[ComputedInsights, Exception]]:
        """Process every statement currently queued.

        Returns:
            Mapping of statement id to its insights, or to the error that
            stopped them
        """
        results: Dict[str, Union[ComputedInsights, Exception]] = {}

        while True:
            try:
                statement_id = self.ready_queue.get_nowait()
            except queue.Empty:
                break

            try:
                results[statement_id] = self.service.run_insights(statement_id)
            except (EmptyInputError, StatementNotReadyError, StatementNotFoundError) as e:
                results[statement_id] = e
                self._record_failure(statement_id, e)
            finally:
                self.ready_queue.task_done()

        return results

    def _record_failure(self, statement_id: str, error: Exception) -> None:
        message = str(error)
        logger.error(f"Insights for statement {statement_id} failed: {message}")

        if self.error_handler:
            if isinstance(error, StatementNotReadyError):
                error_type = "STATEMENT_NOT_READY"
            elif isinstance(error, StatementNotFoundError):
                error_type = "STATEMENT_NOT_FOUND"
            else:
                error_type = "EMPTY_STATEMENT"
            self.error_handler.log_error(
                message, error_type, ErrorCategory.ANALYTICS, statement_id=statement_id
            )

        if not isinstance(error, StatementNotFoundError):
            self.store.record_insights_failure(statement_id, message)
