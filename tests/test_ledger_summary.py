"""
Unit Tests for Ledger Summary Calculator
"""

import pytest
from datetime import date
from decimal import Decimal
from reconciliation.calculators.ledger import LedgerSummaryCalculator, transactions_between
from reconciliation.errors import ValidationError
from reconciliation.models import Participant, Transaction, TransactionStatus, TransactionType


def txn(day, kind, amount, service_id=None, month=1):
    return Transaction(
        transaction_id=f"t-{month}-{day}-{amount}",
        date=date(2024, month, day),
        type=kind,
        amount=Decimal(amount),
        status=TransactionStatus.PAID,
        service_id=service_id,
    )


INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE


@pytest.fixture
def ledger():
    return [
        txn(2, INCOME, "1000", service_id="svc-1"),
        txn(3, EXPENSE, "250"),
        txn(15, INCOME, "500"),
        txn(20, EXPENSE, "150", service_id="svc-1"),
        txn(5, INCOME, "300", month=2),
    ]


@pytest.fixture
def members():
    return [Participant("ana", Decimal("60"), role="ops"), Participant("bruno", Decimal("40"))]


@pytest.fixture
def calculator():
    return LedgerSummaryCalculator()


class TestSummarize:
    """Test the profit pool and member split."""

    def test_totals_over_range(self, calculator, ledger, members):
        """Income, expense and profit cover January only."""
        summary = calculator.summarize(ledger, members, date(2024, 1, 1), date(2024, 1, 31))

        assert summary.transaction_count == 4
        assert summary.income == Decimal("1500")
        assert summary.expense == Decimal("400")
        assert summary.profit == Decimal("1100")
        assert [m.amount for m in summary.members] == [Decimal("660"), Decimal("440")]
        assert summary.warnings == []

    def test_margin(self, calculator, ledger):
        """Margin is profit over income; no income means no margin."""
        summary = calculator.summarize(ledger, start=date(2024, 1, 1), end=date(2024, 1, 31))
        assert summary.margin_percent.quantize(Decimal("0.01")) == Decimal("73.33")

        expenses_only = calculator.summarize([txn(3, EXPENSE, "250")])
        assert expenses_only.margin_percent is None

    def test_loss_is_split_too(self, calculator, members):
        """A negative pool gives negative member amounts."""
        summary = calculator.summarize([txn(1, INCOME, "100"), txn(2, EXPENSE, "300")], members)

        assert summary.profit == Decimal("-200")
        assert summary.members[0].amount == Decimal("-120")

    def test_single_service(self, calculator, ledger):
        """service_id keeps only that service's transactions."""
        summary = calculator.summarize(ledger, service_id="svc-1")

        assert summary.transaction_count == 2
        assert summary.profit == Decimal("850")

    def test_split_not_100_is_a_warning(self, calculator, ledger):
        """Members adding up to 90% are flagged, not rejected."""
        members = [Participant("ana", Decimal("50")), Participant("bruno", Decimal("40"))]
        summary = calculator.summarize(ledger, members)

        assert summary.distributed_percent == Decimal("90")
        assert len(summary.warnings) == 1
        assert summary.warnings[0].details["distributed_percent"] == Decimal("90")

    def test_duplicate_member_rejected(self, calculator, ledger):
        """A member can hold one share of the pool."""
        members = [Participant("ana", Decimal("50")), Participant("ana", Decimal("50"))]
        with pytest.raises(ValidationError):
            calculator.summarize(ledger, members)


class TestTimeline:
    """Test per-period ledger totals."""

    def test_monthly(self, calculator, ledger):
        """Transactions group into YYYY-MM buckets, oldest first."""
        points = calculator.timeline(ledger, "month")

        assert [p.key for p in points] == ["2024-01", "2024-02"]
        assert points[0].profit == Decimal("1100")
        assert points[1].income == Decimal("300")

    def test_services_only(self, calculator, ledger):
        """Only service-linked transactions are counted."""
        points = calculator.timeline(ledger, "day", services_only=True)

        assert [p.key for p in points] == ["2024-01-02", "2024-01-20"]
        assert points[1].expense == Decimal("150")

    def test_bad_granularity(self, calculator, ledger):
        """Only day and month are supported."""
        with pytest.raises(ValueError):
            calculator.timeline(ledger, "week")

    def test_range_is_inclusive(self, ledger):
        """Both ends of the range are kept."""
        selected = transactions_between(ledger, date(2024, 1, 3), date(2024, 1, 15))
        assert [t.date.day for t in selected] == [3, 15]
