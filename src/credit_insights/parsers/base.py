"""Field normalization shared by statement parsers."""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional

from ..models.core import AppConfig


CENTS = Decimal('0.01')

# Extended format list with common variations
EXTENDED_DATE_FORMATS = [
    "%m-%d-%Y", "%d-%m-%Y", "%Y/%m/%d", "%d/%m/%Y %H:%M:%S",
    "%m-%d-%Y %H:%M:%S", "%d-%m-%Y %H:%M:%S", "%Y/%m/%d %H:%M:%S",
    "%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y",
    "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f", "%Y%m%d"
]


class ParseRowError(ValueError):
    """A single row could not be normalized.

    Non-fatal for the batch: the caller records the message and moves on.
    """

    def __init__(self, message: str, field_name: Optional[str] = None, raw_value: Optional[str] = None):
        self.field_name = field_name
        self.raw_value = raw_value
        super().__init__(message)


class CsvFormatError(ValueError):
    """The statement buffer is not readable as delimited text"""


class DataTransformer:
    """Normalizes raw date and money strings"""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or AppConfig()

    def normalize_date(self, date_str: str, formats: Optional[List[str]] = None) -> datetime:
        """Convert various date formats to datetime with multiple format support

        Raises:
            ParseRowError: If no supported format matches
        """
        if date_str is None or not str(date_str).strip():
            raise ParseRowError("Date string cannot be empty", field_name='date', raw_value=date_str)

        date_str = str(date_str).strip()

        if formats is None:
            formats = self.config.date_formats

        all_formats = list(formats) + EXTENDED_DATE_FORMATS

        for fmt in all_formats:
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue

        # ISO strings with a zone, e.g. "2025-01-01T00:00:00.000Z"; offsets are shifted to UTC
        iso_candidate = date_str[:-1] + '+00:00' if date_str.endswith('Z') else date_str
        try:
            parsed = datetime.fromisoformat(iso_candidate)
            if parsed.tzinfo:
                return parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except ValueError:
            pass

        # Ordinal indicators (1st, 2nd, 3rd, ...)
        ordinal_cleaned = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', date_str)
        if ordinal_cleaned != date_str:
            for fmt in all_formats:
                try:
                    return datetime.strptime(ordinal_cleaned, fmt)
                except ValueError:
                    continue

        raise ParseRowError(f"Invalid date format: {date_str}", field_name='date', raw_value=date_str)

    def normalize_amount(self, amount_str: str, field_name: str = 'amount') -> Decimal:
        """Convert a money string to a signed Decimal rounded to cents

        Currency symbols, thousands separators and whitespace are stripped.
        Parentheses mark a negative amount.

        Raises:
            ParseRowError: If the cleaned value is not a finite number
        """
        if amount_str is None or str(amount_str).strip() == '':
            raise ParseRowError(f"Invalid {field_name} format: empty value",
                                field_name=field_name, raw_value=amount_str)

        raw = str(amount_str).strip()
        cleaned = re.sub(r'[\$£€¥₹,\s]', '', raw)

        is_negative = False
        if cleaned.startswith('(') and cleaned.endswith(')'):
            cleaned = cleaned[1:-1]
            is_negative = True

        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            raise ParseRowError(f"Invalid {field_name} format: {raw}",
                                field_name=field_name, raw_value=raw) from None

        if not amount.is_finite():
            raise ParseRowError(f"Invalid {field_name} format: {raw}",
                                field_name=field_name, raw_value=raw)

        if is_negative:
            amount = -amount

        try:
            return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            # More digits than the decimal context can hold
            raise ParseRowError(f"Invalid {field_name} format: {raw}",
                                field_name=field_name, raw_value=raw) from None

    def normalize_balance(self, balance_str: Optional[str]) -> Decimal:
        """Parse a running balance, falling back to zero on bad input"""
        if balance_str is None:
            return Decimal('0.00')
        try:
            return self.normalize_amount(balance_str, field_name='balance')
        except ParseRowError:
            return Decimal('0.00')
