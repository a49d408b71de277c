"""Statement parsers and field normalization"""

from .base import DataTransformer, ParseRowError, CsvFormatError
from .csv_parser import StatementRowParser, COLUMN_ALIASES

__all__ = [
    'DataTransformer',
    'ParseRowError',
    'CsvFormatError',
    'StatementRowParser',
    'COLUMN_ALIASES',
]
