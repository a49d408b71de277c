"""Core data models for statement ingestion, insights and credit checks."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple


class TransactionDirection(Enum):
    """Direction of money movement for a signed amount"""
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(Enum):
    """Spending categories assigned by keyword match"""
    INCOME = "income"
    TRANSFER = "transfer"
    GROCERIES = "groceries"
    ENTERTAINMENT = "entertainment"
    TRANSPORT = "transport"
    UTILITIES = "utilities"
    HEALTHCARE = "healthcare"
    SHOPPING = "shopping"
    DINING = "dining"
    EDUCATION = "education"
    INVESTMENT = "investment"
    LOAN_PAYMENT = "loan_payment"
    FEES_CHARGES = "fees_charges"
    OTHER = "other"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StatementStatus(Enum):
    """Lifecycle of an uploaded statement"""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class RiskBand(Enum):
    """Risk band reported by the credit bureau"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    VERY_POOR = "very_poor"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "RiskBand":
        """Map a bureau label to a band; unknown labels are treated as very poor."""
        for band in cls:
            if band.value == label:
                return band
        return cls.VERY_POOR


@dataclass(frozen=True)
class ParsedTransaction:
    """Normalized transaction produced from one raw statement row.

    Attributes:
        date: Transaction date
        description: Trimmed description text
        magnitude: Absolute amount, never negative
        direction: CREDIT for inflows, DEBIT for outflows
        balance: Running balance after the transaction (0 when unknown)
        category: Keyword-derived spending category
        category_confidence: Certainty of the category assignment in [0, 1]
        is_income: Whether a credit looks like income
        raw_payload: Original row serialized as JSON for audit
    """
    date: datetime
    description: str
    magnitude: Decimal
    direction: TransactionDirection
    balance: Decimal
    category: TransactionCategory
    category_confidence: float
    is_income: bool
    raw_payload: str


@dataclass
class ParsingStats:
    """Row counts of one ingestion run"""
    total: int
    successful: int
    failed: int

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.successful / self.total, 4)


@dataclass
class IngestionOutcome:
    """Result of parsing one statement buffer"""
    total_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    errors: List[str] = field(default_factory=list)
    transactions: List[ParsedTransaction] = field(default_factory=list)

    def record_success(self, transaction: ParsedTransaction) -> None:
        self.total_rows += 1
        self.successful_rows += 1
        self.transactions.append(transaction)

    def record_failure(self, message: str) -> None:
        self.total_rows += 1
        self.failed_rows += 1
        self.errors.append(message)

    @property
    def period_start(self) -> Optional[datetime]:
        if not self.transactions:
            return None
        return min(t.date for t in self.transactions)

    @property
    def period_end(self) -> Optional[datetime]:
        if not self.transactions:
            return None
        return max(t.date for t in self.transactions)

    def parsing_stats(self) -> ParsingStats:
        return ParsingStats(
            total=self.total_rows,
            successful=self.successful_rows,
            failed=self.failed_rows
        )


@dataclass(frozen=True)
class ComputedInsights:
    """Aggregate financial-health metrics for one statement.

    Monetary fields are Decimal values quantized to cents.
    """
    # Income analysis
    avg_monthly_income: Decimal
    total_income: Decimal
    income_transaction_count: int

    # Cash flow analysis
    total_inflow: Decimal
    total_outflow: Decimal
    net_cash_flow: Decimal

    # Spending buckets
    groceries_spend: Decimal
    entertainment_spend: Decimal
    transport_spend: Decimal
    utilities_spend: Decimal
    healthcare_spend: Decimal
    shopping_spend: Decimal
    dining_spend: Decimal
    other_spend: Decimal

    # Risk analysis
    overdraft_count: int
    bounced_payment_count: int
    avg_daily_balance: Decimal
    min_balance: Decimal
    max_balance: Decimal
    total_fees: Decimal
    risk_level: RiskLevel
    risk_flags: Tuple[str, ...]

    # Parsing statistics
    parsing_success_rate: float
    total_transactions: int
    successful_transactions: int
    failed_transactions: int

    def to_dict(self) -> Dict[str, Any]:
        """Render the grouped response shape used by callers"""
        return {
            'income_analysis': {
                'avg_monthly_income': str(self.avg_monthly_income),
                'total_income': str(self.total_income),
                'income_transaction_count': self.income_transaction_count,
            },
            'cash_flow_analysis': {
                'total_inflow': str(self.total_inflow),
                'total_outflow': str(self.total_outflow),
                'net_cash_flow': str(self.net_cash_flow),
            },
            'spending_buckets': {
                'groceries': str(self.groceries_spend),
                'entertainment': str(self.entertainment_spend),
                'transport': str(self.transport_spend),
                'utilities': str(self.utilities_spend),
                'healthcare': str(self.healthcare_spend),
                'shopping': str(self.shopping_spend),
                'dining': str(self.dining_spend),
                'other': str(self.other_spend),
            },
            'risk_analysis': {
                'overdraft_count': self.overdraft_count,
                'bounced_payment_count': self.bounced_payment_count,
                'avg_daily_balance': str(self.avg_daily_balance),
                'min_balance': str(self.min_balance),
                'max_balance': str(self.max_balance),
                'total_fees': str(self.total_fees),
                'risk_level': self.risk_level.value,
                'risk_flags': list(self.risk_flags),
            },
            'parsing_stats': {
                'success_rate': self.parsing_success_rate,
                'total_transactions': self.total_transactions,
                'successful_transactions': self.successful_transactions,
                'failed_transactions': self.failed_transactions,
            },
        }


@dataclass
class CreditCheckRequest:
    """Outbound credit-check request"""
    email: str
    user_id: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'email': self.email}
        if self.user_id is not None:
            payload['user_id'] = self.user_id
        if self.additional_data is not None:
            payload['additional_data'] = self.additional_data
        return payload


@dataclass
class CreditReport:
    """Typed view of a successful bureau response"""
    score: int
    risk_band: RiskBand
    enquiries_6m: int
    defaults: int
    open_loans: int
    trade_lines: int
    reference_id: str
    timestamp: str

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CreditReport":
        return cls(
            score=int(data['score']),
            risk_band=RiskBand.from_label(data.get('risk_band')),
            enquiries_6m=int(data.get('enquiries_6m', 0)),
            defaults=int(data.get('defaults', 0)),
            open_loans=int(data.get('open_loans', 0)),
            trade_lines=int(data.get('trade_lines', 0)),
            reference_id=str(data.get('reference_id', '')),
            timestamp=str(data.get('timestamp', '')),
        )


@dataclass
class RetryOutcome:
    """Result of one logical credit-check call"""
    success: bool
    status_code: int
    elapsed_time: float
    attempts_used: int
    response_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    reference_id: Optional[str] = None
    report: Optional[CreditReport] = None

    @property
    def retry_count(self) -> int:
        return max(0, self.attempts_used - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'status_code': self.status_code,
            'elapsed_time': round(self.elapsed_time, 3),
            'attempts_used': self.attempts_used,
            'retry_count': self.retry_count,
            'response_data': self.response_data,
            'error_message': self.error_message,
            'reference_id': self.reference_id,
            'risk_band': self.report.risk_band.value if self.report else None,
        }


@dataclass
class StatementRecord:
    """Persisted state of one uploaded statement"""
    statement_id: str
    filename: str = ""
    status: StatementStatus = StatementStatus.UPLOADED
    transaction_count: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    error_message: Optional[str] = None
    insights_error: Optional[str] = None

    def parsing_stats(self) -> ParsingStats:
        return ParsingStats(
            total=self.transaction_count,
            successful=self.successful_transactions,
            failed=self.failed_transactions
        )


@dataclass
class BureauConfig:
    """Connection and retry settings for the credit bureau"""
    base_url: str = "http://localhost:3001"
    api_key: str = ""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 10.0


@dataclass
class AppConfig:
    """Configuration for ingestion, persistence batching and the bureau client"""
    date_formats: Optional[List[str]] = None
    chunk_size: int = 1000
    bureau: BureauConfig = field(default_factory=BureauConfig)

    def __post_init__(self):
        if self.date_formats is None:
            self.date_formats = [
                "%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y",
                "%Y-%m-%d %H:%M:%S", "%m/%d/%Y %H:%M:%S",
                "%m/%d/%y", "%d/%m/%y", "%y-%m-%d"
            ]
