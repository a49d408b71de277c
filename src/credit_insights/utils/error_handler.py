"""Structured error recording and JSON logging for ingestion and integrations."""

import json
import logging
import traceback
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, asdict


class ErrorSeverity(Enum):
    """Error severity levels"""
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(Enum):
    """Error categories for classification"""
    FILE_FORMAT = "file_format"
    DATA_PARSING = "data_parsing"
    ANALYTICS = "analytics"
    INTEGRATION = "integration"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


ERROR_CODES = {
    # File format errors
    "MALFORMED_FILE": "F102",
    "INVALID_HEADER": "F103",

    # Row parsing errors
    "DATE_PARSE_ERROR": "D001",
    "AMOUNT_PARSE_ERROR": "D002",
    "MALFORMED_ROW": "D003",
    "MISSING_REQUIRED_FIELD": "D004",

    # Analytics errors
    "EMPTY_STATEMENT": "A001",
    "STATEMENT_NOT_READY": "A002",
    "STATEMENT_NOT_FOUND": "A003",

    # Integration errors
    "TRANSIENT_INTEGRATION_ERROR": "I001",
    "PERMANENT_INTEGRATION_ERROR": "I002",
    "RETRIES_EXHAUSTED": "I003",

    "UNEXPECTED_ERROR": "S999"
}


@dataclass
class ErrorDetail:
    """Detailed error information"""
    timestamp: str
    severity: str
    category: str
    error_code: str
    message: str
    statement_id: Optional[str] = None
    row_number: Optional[int] = None
    field_name: Optional[str] = None
    raw_value: Optional[str] = None
    stack_trace: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)


class JSONFormatter(logging.Formatter):
    """Renders log records as one JSON object per line"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for key in ('error_code', 'statement_id', 'category', 'context'):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class ErrorHandler:
    """Collects errors and warnings and mirrors them to a structured logger"""

    def __init__(self, log_directory: Optional[str] = None, logger_name: str = 'credit_insights.errors'):
        self.errors: List[ErrorDetail] = []
        self.warnings: List[ErrorDetail] = []
        self.logger = logging.getLogger(logger_name)

        if log_directory:
            self._setup_file_logging(Path(log_directory))

    def _setup_file_logging(self, log_directory: Path):
        """Attach a JSON-lines file handler under the log directory"""
        log_directory.mkdir(parents=True, exist_ok=True)
        log_file = log_directory / f"insights_{datetime.now().strftime('%Y%m%d')}.jsonl"

        # Avoid stacking handlers when several handlers share a logger
        for handler in self.logger.handlers:
            if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_file.resolve():
                return

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        self.logger.addHandler(file_handler)

    def _record(self,
                severity: ErrorSeverity,
                message: str,
                error_type: str,
                category: ErrorCategory,
                statement_id: Optional[str] = None,
                row_number: Optional[int] = None,
                field_name: Optional[str] = None,
                raw_value: Optional[str] = None,
                exception: Optional[BaseException] = None,
                context: Optional[Dict[str, Any]] = None) -> ErrorDetail:
        error_code = ERROR_CODES.get(error_type, "S999")
        stack_trace = None

        if exception is not None and exception.__traceback__ is not None:
            stack_trace = ''.join(traceback.format_exception(
                type(exception), exception, exception.__traceback__
            ))

        detail = ErrorDetail(
            timestamp=datetime.now().isoformat(),
            severity=severity.value,
            category=category.value,
            error_code=error_code,
            message=message,
            statement_id=statement_id,
            row_number=row_number,
            field_name=field_name,
            raw_value=raw_value,
            stack_trace=stack_trace,
            context=context or {}
        )

        extra = {
            'error_code': error_code,
            'category': category.value,
            'statement_id': statement_id,
            'context': context or {}
        }
        if severity == ErrorSeverity.ERROR:
            self.errors.append(detail)
            self.logger.error(message, extra=extra)
        else:
            self.warnings.append(detail)
            self.logger.warning(message, extra=extra)

        return detail

    def log_error(self, message: str, error_type: str,
                  category: ErrorCategory = ErrorCategory.SYSTEM, **kwargs) -> ErrorDetail:
        """Log an error with detailed information"""
        return self._record(ErrorSeverity.ERROR, message, error_type, category, **kwargs)

    def log_warning(self, message: str, warning_type: str,
                    category: ErrorCategory = ErrorCategory.SYSTEM, **kwargs) -> ErrorDetail:
        """Log a warning with detailed information"""
        return self._record(ErrorSeverity.WARNING, message, warning_type, category, **kwargs)

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of all errors and warnings"""
        errors_by_category: Dict[str, int] = {}
        warnings_by_category: Dict[str, int] = {}

        for error in self.errors:
            errors_by_category[error.category] = errors_by_category.get(error.category, 0) + 1
        for warning in self.warnings:
            warnings_by_category[warning.category] = warnings_by_category.get(warning.category, 0) + 1

        return {
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings),
            'errors_by_category': errors_by_category,
            'warnings_by_category': warnings_by_category,
            'statements_with_errors': len(set(e.statement_id for e in self.errors if e.statement_id)),
        }

    def get_errors_for_statement(self, statement_id: str) -> List[ErrorDetail]:
        return [e for e in self.errors + self.warnings if e.statement_id == statement_id]

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def clear_errors(self):
        self.errors.clear()
        self.warnings.clear()


def handle_row_error(error_handler: ErrorHandler,
                     statement_id: Optional[str],
                     row_number: int,
                     message: str,
                     field_name: Optional[str] = None,
                     raw_value: Optional[str] = None,
                     error_type: Optional[str] = None) -> ErrorDetail:
    """Record a row that was skipped or failed to parse"""
    if error_type is None:
        if field_name is None:
            error_type = "MISSING_REQUIRED_FIELD"
        elif 'date' in field_name.lower():
            error_type = "DATE_PARSE_ERROR"
        else:
            error_type = "AMOUNT_PARSE_ERROR"

    return error_handler.log_warning(
        message,
        error_type,
        ErrorCategory.DATA_PARSING,
        statement_id=statement_id,
        row_number=row_number,
        field_name=field_name,
        raw_value=raw_value
    )
