"""Utility functions and helpers"""

from .categorizer import TransactionCategorizer
from .config_manager import ConfigManager
from .error_handler import ErrorHandler, ErrorCategory, ErrorSeverity, handle_row_error
from .statement_store import InMemoryStatementStore, StatementNotFoundError, StatementStore

__all__ = [
    'TransactionCategorizer',
    'ConfigManager',
    'ErrorHandler',
    'ErrorCategory',
    'ErrorSeverity',
    'handle_row_error',
    'InMemoryStatementStore',
    'StatementNotFoundError',
    'StatementStore'
]
