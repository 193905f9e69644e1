"""
Offer Summary Calculator

Aggregates daily entries over a period. Commissions are recomputed for every
entry from the offer's current rules and summed unrounded.
"""

from collections.abc import Iterable
from datetime import date

from ..models import ZERO, Offer, OfferSummary, ParticipantEarnings, TimelinePoint
from .commission import CommissionCalculator

GRANULARITIES = ("day", "month")


class OfferSummaryCalculator:
    """Builds per-offer totals and cross-offer timelines."""

    def __init__(self, commission_calculator: CommissionCalculator | None = None):
        self.commission_calculator = commission_calculator or CommissionCalculator()

    def summarize(self, offer: Offer, start: date | None = None, end: date | None = None) -> OfferSummary:
        """Totals for entries between start and end (both inclusive, both optional)."""
        calc = self.commission_calculator
        entries = offer.entries_between(start, end)

        summary = OfferSummary(offer_id=offer.offer_id, start=start, end=end, entry_count=len(entries))
        for entry in entries:
            summary.total_revenue += entry.revenue
            summary.total_ads_spend += entry.ads_spend
            summary.total_net_profit += entry.net_profit
            summary.total_team_payout += calc.team_share(offer, entry)

        summary.participants = [
            ParticipantEarnings(
                member_id=p.member_id,
                role=p.role,
                share_percent=p.share_percent,
                effective_percent=calc.effective_percent(offer, p),
                total=sum((calc.participant_share(offer, e, p) for e in entries), ZERO),
            )
            for p in offer.participants
        ]
        summary.distributed_percent = sum((p.share_percent for p in offer.participants), ZERO)
        summary.warnings = calc.validator.participant_warnings(offer)
        return summary

    def timeline(
        self,
        offers: Iterable[Offer],
        granularity: str = "day",
        start: date | None = None,
        end: date | None = None,
    ) -> list[TimelinePoint]:
        """
        Totals per day or per month across all offers.

        Every offer is included whatever its status, since entries are
        historical records.
        """
        if granularity not in GRANULARITIES:
            raise ValueError(f"Invalid granularity: {granularity}. Must be 'day' or 'month'")

        points: dict[str, TimelinePoint] = {}
        for offer in offers:
            for entry in offer.entries_between(start, end):
                key = entry.date.isoformat()
                if granularity == "month":
                    key = key[:7]

                point = points.setdefault(key, TimelinePoint(key=key))
                point.revenue += entry.revenue
                point.ads_spend += entry.ads_spend
                point.net_profit += entry.net_profit
                point.commission += self.commission_calculator.team_share(offer, entry)

        return [points[key] for key in sorted(points)]
