"""Data models and structures"""

from .core import (
    AppConfig,
    BureauConfig,
    ComputedInsights,
    CreditCheckRequest,
    CreditReport,
    IngestionOutcome,
    ParsedTransaction,
    ParsingStats,
    RetryOutcome,
    RiskBand,
    RiskLevel,
    StatementRecord,
    StatementStatus,
    TransactionCategory,
    TransactionDirection,
)

__all__ = [
    'AppConfig',
    'BureauConfig',
    'ComputedInsights',
    'CreditCheckRequest',
    'CreditReport',
    'IngestionOutcome',
    'ParsedTransaction',
    'ParsingStats',
    'RetryOutcome',
    'RiskBand',
    'RiskLevel',
    'StatementRecord',
    'StatementStatus',
    'TransactionCategory',
    'TransactionDirection',
]
