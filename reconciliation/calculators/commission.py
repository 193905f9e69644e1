"""
Commission Calculator

Derives the team pot and each participant's slice for a day of activity.
Always recomputed from the offer's current configuration; the team_share
stored on an entry is ignored.
"""

from decimal import Decimal

from ..models import (
    HUNDRED,
    DailyEntry,
    Offer,
    Participant,
    ParticipantShare,
    PayoutModel,
    ShareBreakdown,
)
from ..validators import InputValidator


class CommissionCalculator:
    """Calculates team and participant shares. Pure, no side effects."""

    def __init__(self, validator: InputValidator | None = None):
        self.validator = validator or InputValidator()

    def base_amount(self, offer: Offer, entry: DailyEntry) -> Decimal:
        """
        Amount the team pot is taken from.

        REVENUE payout model: gross revenue.
        PROFIT payout model: revenue - ads spend (may be negative).
        """
        if offer.payout_model == PayoutModel.REVENUE:
            return entry.revenue
        return entry.net_profit

    def team_share(self, offer: Offer, entry: DailyEntry) -> Decimal:
        """base × team_pot_percent / 100, unrounded."""
        return self.base_amount(offer, entry) * offer.pot_percent / HUNDRED

    def participant_share(self, offer: Offer, entry: DailyEntry, participant: Participant) -> Decimal:
        return self.team_share(offer, entry) * participant.share_percent / HUNDRED

    def effective_percent(self, offer: Offer, participant: Participant) -> Decimal:
        """Participant's share expressed as a % of the base amount."""
        return participant.share_percent * offer.pot_percent / HUNDRED

    def compute_shares(self, offer: Offer, entry: DailyEntry) -> ShareBreakdown:
        """Full breakdown for one entry, including split warnings."""
        team_share = self.team_share(offer, entry)

        shares = [
            ParticipantShare(
                member_id=p.member_id,
                share_percent=p.share_percent,
                effective_percent=self.effective_percent(offer, p),
                amount=team_share * p.share_percent / HUNDRED,
            )
            for p in offer.participants
        ]

        return ShareBreakdown(
            offer_id=offer.offer_id,
            date=entry.date,
            payout_model=offer.payout_model,
            base_amount=self.base_amount(offer, entry),
            team_pot_percent=offer.pot_percent,
            team_share=team_share,
            participant_shares=shares,
            warnings=self.validator.participant_warnings(offer),
        )
