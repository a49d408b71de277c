"""CSV statement parser with flexible column aliases."""

import io
import itertools
import json
import logging
import re
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Union

import pandas as pd

from .base import DataTransformer, ParseRowError, CsvFormatError
from ..models.core import (
    AppConfig,
    IngestionOutcome,
    ParsedTransaction,
    TransactionDirection,
)
from ..utils.categorizer import TransactionCategorizer
from ..utils.error_handler import ErrorHandler, handle_row_error


logger = logging.getLogger(__name__)

# Rows materialized per read from the buffer
READ_CHUNK_SIZE = 1000

# Stands in for a line with too many fields until the reader swaps it back
MALFORMED_ROW_MARKER = '\x00malformed-line-'


class MalformedRow(NamedTuple):
    """A line carrying more fields than the header names"""
    expected_fields: int
    fields: List[str]

    @property
    def raw_text(self) -> str:
        return ','.join(str(field) for field in self.fields)

    def describe(self) -> str:
        return f"Malformed row: expected {self.expected_fields} fields, saw {len(self.fields)}"


# Accepted column names per logical field, tried in order
COLUMN_ALIASES: Dict[str, Sequence[str]] = {
    'date': ('date', 'Date', 'DATE', 'transaction_date', 'TransactionDate'),
    'description': (
        'description', 'Description', 'DESCRIPTION', 'memo', 'Memo', 'details', 'Details'
    ),
    'amount': ('amount', 'Amount', 'AMOUNT', 'value', 'Value'),
    'balance': ('balance', 'Balance', 'BALANCE', 'running_balance', 'RunningBalance'),
}


def resolve_field(row: Dict[str, Any], aliases: Sequence[str]) -> Optional[str]:
    """Return the first present, non-empty value among the candidate columns"""
    for alias in aliases:
        value = row.get(alias)
        if value is None or pd.isna(value):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


class StatementRowParser:
    """Turns delimited statement rows into categorized transactions"""

    def __init__(self,
                 config: Optional[AppConfig] = None,
                 categorizer: Optional[TransactionCategorizer] = None):
        self.config = config or AppConfig()
        self.transformer = DataTransformer(self.config)
        self.categorizer = categorizer or TransactionCategorizer()
        self.column_aliases = COLUMN_ALIASES

    def parse_row(self, row: Dict[str, Any], ordinal: int) -> Optional[ParsedTransaction]:
        """Convert one raw row to a ParsedTransaction.

        Args:
            row: Mapping of column name to raw cell value
            ordinal: 1-based position of the row in its statement

        Returns:
            The transaction, or None when date, description or amount is missing

        Raises:
            ParseRowError: If the date or amount cannot be parsed
        """
        original_row = row
        row = {str(key).strip(): value for key, value in row.items()}

        date_str = resolve_field(row, self.column_aliases['date'])
        description = resolve_field(row, self.column_aliases['description'])
        amount_str = resolve_field(row, self.column_aliases['amount'])
        balance_str = resolve_field(row, self.column_aliases['balance'])

        if not date_str or not description or not amount_str:
            logger.debug(f"Row {ordinal} is missing a required field")
            return None

        transaction_date = self.transformer.normalize_date(date_str)
        amount = self.transformer.normalize_amount(amount_str)
        balance = self.transformer.normalize_balance(balance_str)

        if amount >= 0:
            direction = TransactionDirection.CREDIT
        else:
            direction = TransactionDirection.DEBIT

        category, confidence = self.categorizer.categorize(description)
        is_income = (
            direction == TransactionDirection.CREDIT
            and self.categorizer.is_income(description)
        )

        return ParsedTransaction(
            date=transaction_date,
            description=description,
            magnitude=abs(amount),
            direction=direction,
            balance=balance,
            category=category,
            category_confidence=confidence,
            is_income=is_income,
            raw_payload=self._serialize_row(original_row)
        )

    def iter_rows(self, data: bytes) -> Iterator[Union[Dict[str, Any], MalformedRow]]:
        """Lazily yield rows of a CSV buffer as column -> value mappings.

        A line with more fields than the header comes back as a MalformedRow
        in its place, so later rows still parse. The sequence cannot be
        restarted; call again to re-read the buffer.

        Raises:
            CsvFormatError: If the buffer is not valid delimited UTF-8 text
        """
        bad_lines: Dict[str, List[str]] = {}
        line_ids = itertools.count()

        def keep_bad_line(fields: List[str]) -> List[str]:
            marker = f"{MALFORMED_ROW_MARKER}{next(line_ids)}"
            bad_lines[marker] = fields
            return [marker]

        # The header is read as row 0 so its width, not the first data
        # line's, fixes the column count
        try:
            reader = pd.read_csv(
                io.BytesIO(data),
                header=None,
                dtype=str,
                keep_default_na=False,
                encoding='utf-8-sig',
                engine='python',
                on_bad_lines=keep_bad_line,
                chunksize=READ_CHUNK_SIZE
            )
        except pd.errors.EmptyDataError:
            logger.warning("CSV buffer is empty")
            return
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise CsvFormatError(f"CSV parsing failed: {e}") from e

        columns: Optional[List[str]] = None
        try:
            with reader:
                for chunk in reader:
                    for values in chunk.itertuples(index=False, name=None):
                        if columns is None:
                            columns = [str(value).strip() for value in values]
                            continue

                        first = values[0]
                        if isinstance(first, str) and first in bad_lines:
                            yield MalformedRow(len(columns), bad_lines.pop(first))
                            continue

                        record: Dict[str, Any] = {}
                        for column, value in zip(columns, values):
                            record.setdefault(column, value)
                        yield record
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise CsvFormatError(f"CSV parsing failed: {e}") from e

    def ingest(self,
               data: bytes,
               error_handler: Optional[ErrorHandler] = None,
               statement_id: Optional[str] = None) -> IngestionOutcome:
        """Parse every row of a statement buffer.

        One bad row never aborts the batch; it is counted and its message kept.

        Args:
            data: Raw CSV bytes with a header row
            error_handler: Optional handler receiving structured row errors
            statement_id: Statement the rows belong to, for error records
        """
        outcome = IngestionOutcome()

        for ordinal, row in enumerate(self.iter_rows(data), start=1):
            if isinstance(row, MalformedRow):
                logger.warning(f"Skipping malformed row {ordinal}: {row.describe()}")
                outcome.record_failure(f"Row {ordinal}: {row.describe()}")
                if error_handler:
                    handle_row_error(error_handler, statement_id, ordinal,
                                     f"Row {ordinal}: {row.describe()}",
                                     raw_value=row.raw_text, error_type="MALFORMED_ROW")
                continue

            try:
                transaction = self.parse_row(row, ordinal)
            except ParseRowError as e:
                logger.warning(f"Skipping malformed row {ordinal}: {e}")
                outcome.record_failure(f"Row {ordinal}: {e}")
                if error_handler:
                    handle_row_error(error_handler, statement_id, ordinal, str(e),
                                     field_name=e.field_name, raw_value=e.raw_value)
                continue

            if transaction is None:
                outcome.record_failure(f"Row {ordinal}: Invalid data format")
                if error_handler:
                    handle_row_error(error_handler, statement_id, ordinal,
                                     f"Row {ordinal}: Invalid data format")
            else:
                outcome.record_success(transaction)

        logger.info(
            f"Parsed {outcome.successful_rows}/{outcome.total_rows} rows "
            f"({outcome.failed_rows} failed)"
        )
        return outcome

    def validate_csv_format(self, data: bytes) -> bool:
        """Check that the header names a date, a description and an amount column"""
        try:
            headers = pd.read_csv(io.BytesIO(data), nrows=0, encoding='utf-8-sig').columns
        except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
            logger.error(f"Error validating CSV header: {e}")
            return False

        headers = [str(header) for header in headers]
        has_date = any(re.search(r'date', h, re.IGNORECASE) for h in headers)
        has_description = any(
            re.search(r'(description|memo|details)', h, re.IGNORECASE) for h in headers
        )
        has_amount = any(re.search(r'(amount|value)', h, re.IGNORECASE) for h in headers)

        return has_date and has_description and has_amount

    @staticmethod
    def _serialize_row(row: Dict[str, Any]) -> str:
        cleaned = {
            key: (None if value is None or pd.isna(value) else str(value))
            for key, value in row.items()
        }
        return json.dumps(cleaned, ensure_ascii=False)
