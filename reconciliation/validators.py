"""
Input Validation for the Reconciliation Engine

Hard checks raise ValidationError with a clear message. Participant
percentages that do not add up to 100 are only a warning: the configuration
is still usable, so the check returns warnings instead of raising.
"""

from collections.abc import Iterable
from decimal import Decimal

from .errors import ValidationError
from .models import HUNDRED, ZERO, DailyEntry, Offer, Participant, Subscription


class InputValidator:
    """Validates offers, entries and subscriptions according to business rules."""

    # Allowed distance from 100% before the participant split is flagged
    SHARE_TOLERANCE = Decimal("0.1")

    def validate_offer(self, offer: Offer) -> None:
        """Run all offer checks. Raises ValidationError if any check fails."""
        if offer.team_pot_percent is not None and not (ZERO <= offer.team_pot_percent <= HUNDRED):
            raise ValidationError(
                f"team_pot_percent must be between 0 and 100, got: {offer.team_pot_percent}",
                offer_id=offer.offer_id,
            )

        if offer.end_date is not None and offer.end_date < offer.start_date:
            raise ValidationError(
                f"end_date {offer.end_date.isoformat()} is before start_date {offer.start_date.isoformat()}",
                offer_id=offer.offer_id,
            )

        self.validate_participants(offer.participants, offer_id=offer.offer_id)

        for entry in offer.daily_entries.values():
            self.validate_entry(entry)

    def validate_participants(self, participants: Iterable[Participant], **details) -> None:
        """Each member at most once, each share between 0 and 100."""
        seen = set()
        for participant in participants:
            if participant.member_id in seen:
                raise ValidationError(f"Participant {participant.member_id} listed more than once", **details)
            seen.add(participant.member_id)
            if not (ZERO <= participant.share_percent <= HUNDRED):
                raise ValidationError(
                    f"share_percent must be between 0 and 100, got: {participant.share_percent}",
                    member_id=participant.member_id,
                    **details,
                )

    def validate_entry(self, entry: DailyEntry) -> None:
        self.validate_entry_values(entry.revenue, entry.ads_spend)

    def validate_entry_values(self, revenue: Decimal, ads_spend: Decimal) -> None:
        if revenue < 0:
            raise ValidationError(f"revenue cannot be negative, got: {revenue}")
        if ads_spend < 0:
            raise ValidationError(f"ads_spend cannot be negative, got: {ads_spend}")

    def validate_subscription(self, subscription: Subscription) -> None:
        if subscription.amount < 0:
            raise ValidationError(
                f"amount cannot be negative, got: {subscription.amount}",
                subscription_id=subscription.subscription_id,
            )
        if (
            subscription.first_payment_date is not None
            and subscription.next_payment_date < subscription.first_payment_date
        ):
            raise ValidationError(
                "next_payment_date cannot be before first_payment_date",
                subscription_id=subscription.subscription_id,
            )

    def participant_warnings(self, offer: Offer) -> list[ValidationError]:
        """Non-blocking checks on the participant split."""
        return self.split_warnings(offer.participants, offer_id=offer.offer_id)

    def split_warnings(self, participants: Iterable[Participant], **details) -> list[ValidationError]:
        participants = list(participants)
        if not participants:
            return []

        distributed = sum((p.share_percent for p in participants), ZERO)
        if abs(distributed - HUNDRED) > self.SHARE_TOLERANCE:
            return [
                ValidationError(
                    f"Participant shares add up to {distributed}%, expected 100%",
                    distributed_percent=distributed,
                    **details,
                )
            ]
        return []
