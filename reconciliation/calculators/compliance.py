"""
Compliance Scanner

Finds active offers with no daily entry for days inside the monitoring
window and computes the share of active offers that are fully up to date.
"""

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from ..models import HUNDRED, ComplianceReport, MissingEntry, Offer
from ..money import round_half_up

DEFAULT_WINDOW_DAYS = 30


class ComplianceScanner:
    """Scans offers for missing daily entries."""

    def __init__(self, window_days: int = DEFAULT_WINDOW_DAYS):
        if window_days < 1:
            raise ValueError(f"window_days must be at least 1, got: {window_days}")
        self.window_days = window_days

    def window(self, today: date) -> list[date]:
        """Days checked for a given reference date, newest first."""
        return [today - timedelta(days=i) for i in range(self.window_days)]

    def missing_dates(self, offer: Offer, today: date) -> list[date]:
        """
        Days in the window with no entry for this offer.

        Only ACTIVE offers are monitored; paused and ended offers never have
        missing days. Days before the start date or after the end date are
        not expected to have entries.
        """
        if not offer.is_active:
            return []
        return [
            day
            for day in self.window(today)
            if offer.covers(day) and day not in offer.daily_entries
        ]

    def scan(self, offers: Iterable[Offer], today: date) -> ComplianceReport:
        """
        Scan all offers against the window ending at `today` (inclusive).

        The compliance rate is the rounded percentage of active offers with
        nothing missing. With no active offers the rate is 100.
        """
        missing: list[MissingEntry] = []
        missing_by_offer: dict[str, int] = {}
        active = 0
        compliant = 0

        for offer in offers:
            if not offer.is_active:
                continue
            active += 1

            gaps = self.missing_dates(offer, today)
            if not gaps:
                compliant += 1
                continue

            missing_by_offer[offer.offer_id] = len(gaps)
            missing.extend(MissingEntry(offer.offer_id, day, offer.name) for day in gaps)

        # Most recent first; sort is stable so offer order breaks ties
        missing.sort(key=lambda m: m.date, reverse=True)

        if active == 0:
            rate = 100
        else:
            rate = round_half_up(Decimal(compliant) / Decimal(active) * HUNDRED)

        return ComplianceReport(
            today=today,
            missing=missing,
            compliance_rate=rate,
            active_offers=active,
            compliant_offers=compliant,
            missing_by_offer=missing_by_offer,
        )
