"""Tests for statement processing and the insights worker"""

import queue
import threading
from datetime import datetime
from decimal import Decimal

import pytest

from credit_insights.analytics.engine import EmptyInputError, InsightsEngine
from credit_insights.models.core import AppConfig, RiskLevel, StatementStatus
from credit_insights.pipeline import (
    InsightsService,
    InsightsWorker,
    StatementNotReadyError,
    StatementProcessor,
)
from credit_insights.utils.error_handler import ErrorHandler
from credit_insights.utils.statement_store import InMemoryStatementStore, StatementNotFoundError


STATEMENT_CSV = (
    "date,description,amount,balance\n"
    "2025-01-01,Salary Payment,5000.00,5000.00\n"
    "2025-01-03,Tesco groceries,-120.50,4879.50\n"
    "not-a-date,Broken row,-1.00,4878.50\n"
    "2025-01-02,Netflix,-9.99,4990.01\n"
    "2025-01-10,Uber,-25.00,4854.50\n"
).encode('utf-8')


def build_csv(rows):
    lines = ["date,description,amount,balance"]
    for i in range(rows):
        lines.append(f"2025-01-{1 + i % 28:02d},Shop {i},-1.00,1000.00")
    return ("\n".join(lines) + "\n").encode('utf-8')


class CountingEngine(InsightsEngine):

    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def compute_insights(self, transactions, parsing_stats=None):
        with self._lock:
            self.calls += 1
        return super().compute_insights(transactions, parsing_stats)


class TestStatementProcessor:

    def setup_method(self):
        self.store = InMemoryStatementStore()
        self.ready_queue = queue.Queue()
        self.error_handler = ErrorHandler()
        self.processor = StatementProcessor(
            self.store,
            ready_queue=self.ready_queue,
            config=AppConfig(chunk_size=2),
            error_handler=self.error_handler
        )
        self.store.create_statement("stmt-1", filename="jan.csv")

    def test_process_marks_statement_processed(self):
        outcome = self.processor.process("stmt-1", STATEMENT_CSV)

        statement = self.store.get_statement("stmt-1")
        assert statement.status == StatementStatus.PROCESSED
        assert statement.transaction_count == 5
        assert statement.successful_transactions == 4
        assert statement.failed_transactions == 1
        assert statement.period_start == datetime(2025, 1, 1)
        assert statement.period_end == datetime(2025, 1, 10)
        assert statement.error_message == "Row 3: Invalid date format: not-a-date"
        assert outcome.successful_rows == 4

    def test_transactions_persisted_in_chunks(self):
        self.processor.process("stmt-1", STATEMENT_CSV)

        assert self.store.batch_sizes["stmt-1"] == [2, 2]

    def test_default_chunk_size(self):
        processor = StatementProcessor(self.store)

        processor.process("stmt-1", build_csv(2500))

        assert self.store.batch_sizes["stmt-1"] == [1000, 1000, 500]
        assert len(self.store.find_transactions_ordered_by_date("stmt-1")) == 2500

    def test_processed_statement_is_queued(self):
        self.processor.process("stmt-1", STATEMENT_CSV)

        assert self.ready_queue.get_nowait() == "stmt-1"

    def test_no_valid_rows_fails_statement(self):
        data = b"date,description,amount\nbad,Row,1\n,Missing,2\n"

        outcome = self.processor.process("stmt-1", data)

        statement = self.store.get_statement("stmt-1")
        assert statement.status == StatementStatus.FAILED
        assert statement.error_message == "No valid transactions found in CSV"
        assert statement.failed_transactions == 2
        assert outcome.failed_rows == 2
        assert self.ready_queue.empty()
        assert self.error_handler.has_errors()

    def test_ragged_row_keeps_statement_processed(self):
        data = (
            b"date,description,amount,balance\n"
            b"2025-01-01,Salary,5000.00,5000.00\n"
            b"2025-01-02,Coffee, extra,-3.50,4996.50\n"
            b"2025-01-03,Tesco,-40.00,4956.50\n"
        )

        self.processor.process("stmt-1", data)

        statement = self.store.get_statement("stmt-1")
        assert statement.status == StatementStatus.PROCESSED
        assert statement.transaction_count == 3
        assert statement.successful_transactions == 2
        assert statement.failed_transactions == 1
        assert statement.error_message == "Row 2: Malformed row: expected 4 fields, saw 5"
        assert len(self.store.find_transactions_ordered_by_date("stmt-1")) == 2
        assert self.ready_queue.get_nowait() == "stmt-1"

    def test_unreadable_file_fails_statement(self):
        self.processor.process("stmt-1", b"date,description,amount\n2025-01-01,Caf\xe9,-3\n")

        statement = self.store.get_statement("stmt-1")
        assert statement.status == StatementStatus.FAILED
        assert statement.error_message.startswith("CSV parsing failed")
        assert self.ready_queue.empty()

    def test_unknown_statement(self):
        with pytest.raises(StatementNotFoundError):
            self.processor.process("missing", STATEMENT_CSV)


class TestInsightsService:

    def setup_method(self):
        self.store = InMemoryStatementStore()
        self.engine = CountingEngine()
        self.service = InsightsService(self.store, self.engine)
        self.store.create_statement("stmt-1")

    def test_requires_existing_statement(self):
        with pytest.raises(StatementNotFoundError):
            self.service.run_insights("missing")

    def test_requires_processed_statement(self):
        with pytest.raises(StatementNotReadyError) as excinfo:
            self.service.run_insights("stmt-1")

        assert str(excinfo.value) == "Statement must be processed before computing insights"
        assert excinfo.value.status == StatementStatus.UPLOADED

    def test_computes_once_and_reuses(self):
        StatementProcessor(self.store).process("stmt-1", STATEMENT_CSV)

        first = self.service.run_insights("stmt-1")
        second = self.service.run_insights("stmt-1")

        assert first is second
        assert self.engine.calls == 1
        assert first.net_cash_flow == Decimal('4844.51')
        assert first.total_transactions == 5
        assert first.failed_transactions == 1
        assert first.parsing_success_rate == 0.8
        assert first.risk_level == RiskLevel.LOW

    def test_concurrent_first_requests_compute_once(self):
        StatementProcessor(self.store).process("stmt-1", STATEMENT_CSV)
        results = []

        threads = [
            threading.Thread(target=lambda: results.append(self.service.run_insights("stmt-1")))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert self.engine.calls == 1
        assert len({id(result) for result in results}) == 1

    def test_transactions_read_in_date_order(self):
        StatementProcessor(self.store).process("stmt-1", STATEMENT_CSV)

        dates = [t.date for t in self.store.find_transactions_ordered_by_date("stmt-1")]

        assert dates == sorted(dates)


class TestInsightsWorker:

    def setup_method(self):
        self.store = InMemoryStatementStore()
        self.ready_queue = queue.Queue()
        self.service = InsightsService(self.store)
        self.worker = InsightsWorker(self.service, self.ready_queue)
        self.processor = StatementProcessor(self.store, ready_queue=self.ready_queue)

    def test_runs_insights_for_queued_statements(self):
        for statement_id in ("a", "b"):
            self.store.create_statement(statement_id)
            self.processor.process(statement_id, STATEMENT_CSV)

        results = self.worker.run_pending()

        assert set(results) == {"a", "b"}
        assert self.store.find_insight("a") is results["a"]
        assert self.ready_queue.empty()

    def test_failure_is_recorded_on_statement(self):
        self.store.create_statement("empty")
        self.store.update_statement_status("empty", StatementStatus.PROCESSED)
        self.ready_queue.put("empty")

        results = self.worker.run_pending()

        assert isinstance(results["empty"], EmptyInputError)
        assert self.store.get_statement("empty").insights_error == "No transactions found for statement"
        assert self.store.find_insight("empty") is None

    def test_not_ready_statement_is_recorded(self):
        self.store.create_statement("pending")
        self.ready_queue.put("pending")

        results = self.worker.run_pending()

        assert isinstance(results["pending"], StatementNotReadyError)
        assert self.store.get_statement("pending").insights_error is not None

    def test_empty_queue(self):
        assert self.worker.run_pending() == {}

    def test_failures_carry_distinct_error_codes(self):
        handler = ErrorHandler()
        worker = InsightsWorker(self.service, self.ready_queue, error_handler=handler)
        self.store.create_statement("pending")
        self.store.create_statement("empty")
        self.store.update_statement_status("empty", StatementStatus.PROCESSED)
        for statement_id in ("pending", "empty", "ghost"):
            self.ready_queue.put(statement_id)

        results = worker.run_pending()

        assert isinstance(results["ghost"], StatementNotFoundError)
        codes = {error.statement_id: error.error_code for error in handler.errors}
        assert codes == {"pending": "A002", "empty": "A001", "ghost": "A003"}
