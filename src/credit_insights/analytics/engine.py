"""Financial-health insights computed from a statement's transactions.

All money is summed in exact Decimal arithmetic and rounded to cents with
ROUND_HALF_UP only when the result is emitted. Threshold rules compare the
unrounded values.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from ..models.core import (
    ComputedInsights,
    ParsedTransaction,
    ParsingStats,
    RiskLevel,
    TransactionCategory,
    TransactionDirection,
)


logger = logging.getLogger(__name__)


CENTS = Decimal('0.01')
ZERO = Decimal('0')
SECONDS_PER_MONTH = Decimal(30 * 24 * 60 * 60)

# Debit categories with their own spending bucket; everything else lands in "other"
SPEND_BUCKETS: Dict[TransactionCategory, str] = {
    TransactionCategory.GROCERIES: 'groceries_spend',
    TransactionCategory.ENTERTAINMENT: 'entertainment_spend',
    TransactionCategory.TRANSPORT: 'transport_spend',
    TransactionCategory.UTILITIES: 'utilities_spend',
    TransactionCategory.HEALTHCARE: 'healthcare_spend',
    TransactionCategory.SHOPPING: 'shopping_spend',
    TransactionCategory.DINING: 'dining_spend',
}
OTHER_BUCKET = 'other_spend'

BOUNCE_AMOUNT_THRESHOLD = Decimal('100')
HIGH_FEES_THRESHOLD = Decimal('100')
LOW_BALANCE_THRESHOLD = Decimal('100')
VOLATILE_MULTIPLIER = Decimal('3')
VOLATILE_SHARE = Decimal('0.1')


class EmptyInputError(ValueError):
    """No transactions to aggregate for a statement"""


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class InsightsEngine:
    """Reduces an ordered transaction set into income, cash-flow, spend and risk aggregates"""

    def compute_insights(self,
                         transactions: Sequence[ParsedTransaction],
                         parsing_stats: Optional[ParsingStats] = None) -> ComputedInsights:
        """Compute insights for one statement.

        Args:
            transactions: Transactions ordered by date; not modified
            parsing_stats: Row counts from ingestion. Defaults to treating every
                transaction as a successfully parsed row.

        Raises:
            EmptyInputError: If there are no transactions
        """
        transactions = list(transactions)
        if not transactions:
            raise EmptyInputError("No transactions found for statement")

        if parsing_stats is None:
            parsing_stats = ParsingStats(
                total=len(transactions),
                successful=len(transactions),
                failed=0
            )

        credits = [t for t in transactions if t.direction == TransactionDirection.CREDIT]
        debits = [t for t in transactions if t.direction == TransactionDirection.DEBIT]

        income = self._income_analysis(transactions, credits)
        cash_flow = self._cash_flow_analysis(credits, debits)
        buckets = self._spending_buckets(debits)
        risk = self._risk_analysis(transactions, debits)

        logger.debug(
            f"Computed insights for {len(transactions)} transactions: "
            f"risk level {risk['risk_level'].value}"
        )

        return ComputedInsights(
            parsing_success_rate=parsing_stats.success_rate,
            total_transactions=parsing_stats.total,
            successful_transactions=parsing_stats.successful,
            failed_transactions=parsing_stats.failed,
            **income,
            **cash_flow,
            **buckets,
            **risk
        )

    def _income_analysis(self,
                         transactions: List[ParsedTransaction],
                         credits: List[ParsedTransaction]) -> Dict:
        # Every credit counts towards income, whatever its is_income flag
        total_income = sum((t.magnitude for t in credits), ZERO)

        period_start = min(t.date for t in transactions)
        period_end = max(t.date for t in transactions)
        elapsed_seconds = Decimal(str((period_end - period_start).total_seconds()))
        # 30-day months, floored at one month
        period_months = max(Decimal(1), elapsed_seconds / SECONDS_PER_MONTH)

        return {
            'avg_monthly_income': to_cents(total_income / period_months),
            'total_income': to_cents(total_income),
            'income_transaction_count': len(credits),
        }

    def _cash_flow_analysis(self,
                            credits: List[ParsedTransaction],
                            debits: List[ParsedTransaction]) -> Dict:
        total_inflow = sum((t.magnitude for t in credits), ZERO)
        total_outflow = sum((t.magnitude for t in debits), ZERO)

        return {
            'total_inflow': to_cents(total_inflow),
            'total_outflow': to_cents(total_outflow),
            'net_cash_flow': to_cents(total_inflow - total_outflow),
        }

    def _spending_buckets(self, debits: List[ParsedTransaction]) -> Dict:
        buckets = {name: ZERO for name in SPEND_BUCKETS.values()}
        buckets[OTHER_BUCKET] = ZERO

        for transaction in debits:
            name = SPEND_BUCKETS.get(transaction.category, OTHER_BUCKET)
            buckets[name] += transaction.magnitude

        return {name: to_cents(total) for name, total in buckets.items()}

    def _risk_analysis(self,
                       transactions: List[ParsedTransaction],
                       debits: List[ParsedTransaction]) -> Dict:
        risk_flags = []

        balances = [t.balance for t in transactions]
        min_balance = min(balances)
        max_balance = max(balances)
        avg_daily_balance = sum(balances, ZERO) / len(balances)

        overdraft_count = sum(1 for b in balances if b < 0)
        if overdraft_count > 0:
            risk_flags.append(f"{overdraft_count} overdraft incidents detected")

        # A large debit into a negative balance followed straight away by a fee
        bounced_payment_count = 0
        for current, following in zip(transactions, transactions[1:]):
            if (current.direction == TransactionDirection.DEBIT
                    and current.magnitude > BOUNCE_AMOUNT_THRESHOLD
                    and current.balance < 0
                    and following.category == TransactionCategory.FEES_CHARGES):
                bounced_payment_count += 1
        if bounced_payment_count > 0:
            risk_flags.append(f"{bounced_payment_count} potential bounced payments")

        total_fees = sum(
            (t.magnitude for t in transactions if t.category == TransactionCategory.FEES_CHARGES),
            ZERO
        )
        if total_fees > HIGH_FEES_THRESHOLD:
            risk_flags.append(f"High fees charged: {to_cents(total_fees)}")

        if avg_daily_balance < LOW_BALANCE_THRESHOLD:
            risk_flags.append("Low average daily balance")

        if debits:
            debit_amounts = [t.magnitude for t in debits]
            avg_spend = sum(debit_amounts, ZERO) / len(debit_amounts)
            large_count = sum(1 for a in debit_amounts if a > avg_spend * VOLATILE_MULTIPLIER)
            if large_count > len(debit_amounts) * VOLATILE_SHARE:
                risk_flags.append("Volatile spending patterns detected")

        risk_level = self._risk_level(
            overdraft_count, bounced_payment_count, avg_daily_balance, total_fees
        )

        return {
            'overdraft_count': overdraft_count,
            'bounced_payment_count': bounced_payment_count,
            'avg_daily_balance': to_cents(avg_daily_balance),
            'min_balance': to_cents(min_balance),
            'max_balance': to_cents(max_balance),
            'total_fees': to_cents(total_fees),
            'risk_level': risk_level,
            'risk_flags': tuple(risk_flags),
        }

    @staticmethod
    def _risk_level(overdraft_count: int,
                    bounced_payment_count: int,
                    avg_daily_balance: Decimal,
                    total_fees: Decimal) -> RiskLevel:
        """First matching tier wins, checked from HIGH down"""
        if overdraft_count > 5 or bounced_payment_count > 2 or avg_daily_balance < 50:
            return RiskLevel.HIGH
        if (overdraft_count > 2 or bounced_payment_count > 0
                or avg_daily_balance < 200 or total_fees > 50):
            return RiskLevel.MEDIUM
        return RiskLevel.LOW
