"""Tests for the insights engine"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from credit_insights.analytics.engine import EmptyInputError, InsightsEngine
from credit_insights.models.core import (
    ParsedTransaction,
    ParsingStats,
    RiskLevel,
    TransactionCategory,
    TransactionDirection,
)


START = datetime(2025, 1, 1)


def make_transaction(day, amount, balance, category=TransactionCategory.OTHER, description="txn"):
    amount = Decimal(amount)
    return ParsedTransaction(
        date=START + timedelta(days=day),
        description=description,
        magnitude=abs(amount),
        direction=TransactionDirection.CREDIT if amount >= 0 else TransactionDirection.DEBIT,
        balance=Decimal(balance),
        category=category,
        category_confidence=0.8,
        is_income=False,
        raw_payload="{}"
    )


class TestInsightsEngine:

    def setup_method(self):
        self.engine = InsightsEngine()

    def test_empty_input_raises(self):
        with pytest.raises(EmptyInputError):
            self.engine.compute_insights([])

    def test_cash_flow_and_income(self):
        transactions = [
            make_transaction(0, '5000.00', '5000.00'),
            make_transaction(1, '-120.50', '4879.50', TransactionCategory.GROCERIES),
            make_transaction(2, '-30.25', '4849.25', TransactionCategory.DINING),
        ]

        insights = self.engine.compute_insights(transactions)

        assert insights.total_inflow == Decimal('5000.00')
        assert insights.total_outflow == Decimal('150.75')
        assert insights.net_cash_flow == Decimal('4849.25')
        assert insights.total_income == Decimal('5000.00')
        assert insights.income_transaction_count == 1
        # Shorter than a month, so the period is floored at one month
        assert insights.avg_monthly_income == Decimal('5000.00')
        assert insights.groceries_spend == Decimal('120.50')
        assert insights.dining_spend == Decimal('30.25')
        assert insights.other_spend == Decimal('0.00')

    def test_net_cash_flow_identity(self):
        transactions = [
            make_transaction(0, '100.005', '1000'),
            make_transaction(3, '-0.335', '1000'),
            make_transaction(5, '-7.10', '1000'),
        ]

        insights = self.engine.compute_insights(transactions)

        assert insights.total_inflow == Decimal('100.01')
        assert insights.total_outflow == Decimal('7.44')
        assert insights.net_cash_flow == insights.total_inflow - insights.total_outflow

    def test_monthly_income_over_sixty_days(self):
        transactions = [
            make_transaction(0, '3000', '3000'),
            make_transaction(60, '3000', '6000'),
        ]

        insights = self.engine.compute_insights(transactions)

        assert insights.avg_monthly_income == Decimal('3000.00')

    def test_spend_buckets_sum_to_outflow(self):
        transactions = [
            make_transaction(0, '2000', '2000'),
            make_transaction(1, '-10', '1990', TransactionCategory.TRANSPORT),
            make_transaction(2, '-20', '1970', TransactionCategory.UTILITIES),
            make_transaction(3, '-30', '1940', TransactionCategory.LOAN_PAYMENT),
            make_transaction(4, '-40', '1900', TransactionCategory.EDUCATION),
        ]

        insights = self.engine.compute_insights(transactions)

        buckets = [
            insights.groceries_spend, insights.entertainment_spend, insights.transport_spend,
            insights.utilities_spend, insights.healthcare_spend, insights.shopping_spend,
            insights.dining_spend, insights.other_spend
        ]
        assert sum(buckets) == insights.total_outflow
        assert insights.other_spend == Decimal('70.00')

    def test_balance_statistics_and_low_risk(self):
        transactions = [
            make_transaction(0, '1000', '1000'),
            make_transaction(1, '-100', '900'),
            make_transaction(2, '-100', '800'),
        ]

        insights = self.engine.compute_insights(transactions)

        assert insights.min_balance == Decimal('800.00')
        assert insights.max_balance == Decimal('1000.00')
        assert insights.avg_daily_balance == Decimal('900.00')
        assert insights.overdraft_count == 0
        assert insights.risk_level == RiskLevel.LOW
        assert insights.risk_flags == ()

    def test_bounced_payment_and_fees(self):
        transactions = [
            make_transaction(0, '500', '500'),
            make_transaction(1, '-600', '-100'),
            make_transaction(1, '-25', '-125', TransactionCategory.FEES_CHARGES),
            make_transaction(2, '1000', '875'),
        ]

        insights = self.engine.compute_insights(transactions)

        assert insights.overdraft_count == 2
        assert insights.bounced_payment_count == 1
        assert insights.total_fees == Decimal('25.00')
        assert "2 overdraft incidents detected" in insights.risk_flags
        assert "1 potential bounced payments" in insights.risk_flags
        assert insights.risk_level == RiskLevel.MEDIUM

    def test_high_risk_for_low_average_balance(self):
        transactions = [
            make_transaction(0, '40', '40'),
            make_transaction(1, '-10', '30'),
        ]

        insights = self.engine.compute_insights(transactions)

        assert insights.risk_level == RiskLevel.HIGH
        assert "Low average daily balance" in insights.risk_flags

    def test_high_fees_flag(self):
        transactions = [
            make_transaction(0, '5000', '5000'),
            make_transaction(1, '-60', '4940', TransactionCategory.FEES_CHARGES),
            make_transaction(2, '-45.50', '4894.50', TransactionCategory.FEES_CHARGES),
        ]

        insights = self.engine.compute_insights(transactions)

        assert "High fees charged: 105.50" in insights.risk_flags
        assert insights.risk_level == RiskLevel.MEDIUM

    def test_volatile_spending(self):
        transactions = [make_transaction(0, '10000', '10000')]
        transactions += [make_transaction(day, '-10', '9000') for day in range(1, 10)]
        transactions.append(make_transaction(10, '-1000', '8000'))
        transactions.append(make_transaction(11, '-1000', '7000'))

        insights = self.engine.compute_insights(transactions)

        assert "Volatile spending patterns detected" in insights.risk_flags

    def test_parsing_stats_are_reported(self):
        transactions = [make_transaction(0, '100', '1000')]

        insights = self.engine.compute_insights(transactions, ParsingStats(total=4, successful=3, failed=1))

        assert insights.parsing_success_rate == 0.75
        assert insights.total_transactions == 4
        assert insights.failed_transactions == 1

    def test_default_parsing_stats(self):
        insights = self.engine.compute_insights([make_transaction(0, '100', '1000')])

        assert insights.parsing_success_rate == 1.0
        assert insights.successful_transactions == 1

    def test_idempotent_and_input_untouched(self):
        transactions = [
            make_transaction(0, '1000', '1000'),
            make_transaction(1, '-250', '750', TransactionCategory.SHOPPING),
        ]
        snapshot = list(transactions)

        first = self.engine.compute_insights(transactions)
        second = self.engine.compute_insights(transactions)

        assert first == second
        assert transactions == snapshot

    def test_to_dict_serializes_money_as_strings(self):
        insights = self.engine.compute_insights([make_transaction(0, '100', '1000')])

        data = insights.to_dict()

        assert data['risk_analysis']['risk_level'] == 'low'
        assert data['cash_flow_analysis']['total_inflow'] == '100.00'
