"""
Ledger Summary Calculator

Works on ledger transactions rather than daily entries: income minus expense
over a date range gives the profit pool, which is split across team members
by their default share. Every transaction counts whatever its status, and
totals stay unrounded.
"""

from collections.abc import Iterable
from datetime import date

from ..models import (
    HUNDRED,
    LedgerPoint,
    LedgerSummary,
    MemberPayout,
    Participant,
    Transaction,
    TransactionType,
    ZERO,
)
from ..validators import InputValidator
from .summary import GRANULARITIES


def transactions_between(
    transactions: Iterable[Transaction],
    start: date | None = None,
    end: date | None = None,
    service_id: str | None = None,
    services_only: bool = False,
) -> list[Transaction]:
    """Transactions in the inclusive range, optionally limited to service-linked ones."""
    selected = []
    for t in transactions:
        if (start is not None and t.date < start) or (end is not None and t.date > end):
            continue
        if service_id is not None and t.service_id != service_id:
            continue
        if services_only and not t.service_id:
            continue
        selected.append(t)
    return selected


class LedgerSummaryCalculator:
    """Profit pool and per-member split over the transaction ledger."""

    def __init__(self, validator: InputValidator | None = None):
        self.validator = validator or InputValidator()

    def summarize(
        self,
        transactions: Iterable[Transaction],
        members: Iterable[Participant] = (),
        start: date | None = None,
        end: date | None = None,
        service_id: str | None = None,
    ) -> LedgerSummary:
        """
        Totals for the range plus each member's cut of the profit.

        A loss is split the same way, so member amounts can be negative.
        """
        members = list(members)
        self.validator.validate_participants(members)
        selected = transactions_between(transactions, start, end, service_id)

        summary = LedgerSummary(start=start, end=end, service_id=service_id, transaction_count=len(selected))
        for t in selected:
            if t.type == TransactionType.INCOME:
                summary.income += t.amount
            else:
                summary.expense += t.amount

        summary.members = [
            MemberPayout(
                member_id=m.member_id,
                role=m.role,
                share_percent=m.share_percent,
                amount=summary.profit * m.share_percent / HUNDRED,
            )
            for m in members
        ]
        summary.distributed_percent = sum((m.share_percent for m in members), ZERO)
        summary.warnings = self.validator.split_warnings(members)
        return summary

    def timeline(
        self,
        transactions: Iterable[Transaction],
        granularity: str = "day",
        start: date | None = None,
        end: date | None = None,
        services_only: bool = False,
    ) -> list[LedgerPoint]:
        """Income and expense per day or per month, oldest first."""
        if granularity not in GRANULARITIES:
            raise ValueError(f"Invalid granularity: {granularity}. Must be 'day' or 'month'")

        points: dict[str, LedgerPoint] = {}
        for t in transactions_between(transactions, start, end, services_only=services_only):
            key = t.date.isoformat()
            if granularity == "month":
                key = key[:7]

            point = points.setdefault(key, LedgerPoint(key=key))
            if t.type == TransactionType.INCOME:
                point.income += t.amount
            else:
                point.expense += t.amount

        return [points[key] for key in sorted(points)]
