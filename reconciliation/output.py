"""
Output Builder

Turns result models into JSON-ready dictionaries. This is the only place
money gets rounded: amounts leave as fixed-point strings with 2 decimals,
percentages as plain decimal strings, dates as YYYY-MM-DD.
"""

from datetime import date

from .errors import ExternalServiceError, ReconciliationError
from .models import (
    BillingPassResult,
    ComplianceReport,
    DailyEntry,
    LedgerPoint,
    LedgerSummary,
    MissingEntry,
    OfferSummary,
    ResolutionResult,
    ShareBreakdown,
    TimelinePoint,
    Transaction,
)
from .money import round_percent, to_money, to_percent


def _day(value: date | None) -> str | None:
    return value.isoformat() if value else None


def error_to_dict(error: Exception) -> dict:
    if isinstance(error, ReconciliationError):
        return error.to_dict()
    return ExternalServiceError(str(error)).to_dict()


class OutputBuilder:
    """Builds API responses from engine results."""

    def build_shares(self, breakdown: ShareBreakdown) -> dict:
        return {
            "offer_id": breakdown.offer_id,
            "date": _day(breakdown.date),
            "payout_model": breakdown.payout_model.value,
            "base_amount": to_money(breakdown.base_amount),
            "team_pot_percent": to_percent(breakdown.team_pot_percent),
            "team_share": to_money(breakdown.team_share),
            "participants": [
                {
                    "member_id": p.member_id,
                    "share_percent": to_percent(p.share_percent),
                    "effective_percent": to_percent(p.effective_percent),
                    "amount": to_money(p.amount),
                }
                for p in breakdown.participant_shares
            ],
            "warnings": [error_to_dict(w) for w in breakdown.warnings],
        }

    def build_compliance(self, report: ComplianceReport) -> dict:
        return {
            "today": _day(report.today),
            "compliance_rate": report.compliance_rate,
            "active_offers": report.active_offers,
            "compliant_offers": report.compliant_offers,
            "pending_count": report.pending_count,
            "missing": [self._missing(m) for m in report.missing],
            "due_today": [self._missing(m) for m in report.due_today],
            "overdue": [self._missing(m) for m in report.overdue],
            "missing_by_offer": report.missing_by_offer,
        }

    def build_entry(self, entry: DailyEntry) -> dict:
        return {
            "id": entry.entry_id,
            "date": _day(entry.date),
            "revenue": to_money(entry.revenue),
            "ads_spend": to_money(entry.ads_spend),
            "net_profit": to_money(entry.net_profit),
            "team_share": to_money(entry.team_share),
            "note": entry.note,
        }

    def build_resolution(self, result: ResolutionResult) -> dict:
        output = {
            "offer_id": result.offer_id,
            "date": _day(result.date),
            "status": "resolved" if result.ok else "failed",
        }
        if result.ok:
            output["entry"] = self.build_entry(result.entry)
        else:
            output["error"] = error_to_dict(result.error)
        return output

    def build_transaction(self, transaction: Transaction) -> dict:
        return {
            "id": transaction.transaction_id,
            "date": _day(transaction.date),
            "type": transaction.type.value,
            "amount": to_money(transaction.amount),
            "status": transaction.status.value,
            "description": transaction.description,
            "category": transaction.category,
            "offer_id": transaction.offer_id,
            "service_id": transaction.service_id,
            "subscription_id": transaction.subscription_id,
        }

    def build_billing_pass(self, result: BillingPassResult) -> dict:
        return {
            "today": _day(result.today),
            "due_count": result.due_count,
            "total_charged": to_money(result.total_charged),
            "charged": [
                {
                    "subscription_id": c.subscription_id,
                    "previous_payment_date": _day(c.previous_payment_date),
                    "next_payment_date": _day(c.next_payment_date),
                    "still_due": c.still_due,
                    "transaction": self.build_transaction(c.transaction),
                }
                for c in result.charged
            ],
            "already_processed": list(result.already_processed),
            "failures": [
                {"subscription_id": f.subscription_id, "error": error_to_dict(f.error)}
                for f in result.failures
            ],
        }

    def build_summary(self, summary: OfferSummary) -> dict:
        return {
            "offer_id": summary.offer_id,
            "start": _day(summary.start),
            "end": _day(summary.end),
            "entry_count": summary.entry_count,
            "total_revenue": to_money(summary.total_revenue),
            "total_ads_spend": to_money(summary.total_ads_spend),
            "total_net_profit": to_money(summary.total_net_profit),
            "total_team_payout": to_money(summary.total_team_payout),
            "distributed_percent": to_percent(summary.distributed_percent),
            "participants": [
                {
                    "member_id": p.member_id,
                    "role": p.role,
                    "share_percent": to_percent(p.share_percent),
                    "effective_percent": to_percent(p.effective_percent),
                    "total": to_money(p.total),
                }
                for p in summary.participants
            ],
            "warnings": [error_to_dict(w) for w in summary.warnings],
        }

    def build_timeline(self, points: list[TimelinePoint]) -> list[dict]:
        return [
            {
                "key": p.key,
                "revenue": to_money(p.revenue),
                "ads_spend": to_money(p.ads_spend),
                "net_profit": to_money(p.net_profit),
                "commission": to_money(p.commission),
            }
            for p in points
        ]

    def build_ledger_summary(self, summary: LedgerSummary) -> dict:
        return {
            "start": _day(summary.start),
            "end": _day(summary.end),
            "service_id": summary.service_id,
            "transaction_count": summary.transaction_count,
            "income": to_money(summary.income),
            "expense": to_money(summary.expense),
            "profit": to_money(summary.profit),
            "margin_percent": to_percent(round_percent(summary.margin_percent)),
            "distributed_percent": to_percent(summary.distributed_percent),
            "members": [
                {
                    "member_id": m.member_id,
                    "role": m.role,
                    "share_percent": to_percent(m.share_percent),
                    "amount": to_money(m.amount),
                }
                for m in summary.members
            ],
            "warnings": [error_to_dict(w) for w in summary.warnings],
        }

    def build_ledger_timeline(self, points: list[LedgerPoint]) -> list[dict]:
        return [
            {
                "key": p.key,
                "income": to_money(p.income),
                "expense": to_money(p.expense),
                "profit": to_money(p.profit),
            }
            for p in points
        ]

    def _missing(self, missing: MissingEntry) -> dict:
        return {"offer_id": missing.offer_id, "offer_name": missing.offer_name, "date": _day(missing.date)}
