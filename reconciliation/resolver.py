"""
Daily Entry Resolver

Records one day of revenue and ads spend for an offer. Exactly one entry may
exist per (offer, date); the store enforces that, this class turns the
outcome into a ResolutionResult.

Amounts are stored in cents, so revenue and ads spend are rounded half-up
before they reach the store. Every store then keeps, and returns, the same
values.
"""

import logging
from datetime import date
from decimal import Decimal

from .calculators import CommissionCalculator
from .errors import ConflictError, ExternalServiceError, ReconciliationError
from .models import DailyEntry, Offer, ResolutionResult, to_decimal
from .money import quantize_money
from .storage import Store
from .validators import InputValidator

logger = logging.getLogger(__name__)


class DailyEntryResolver:
    """Creates and corrects daily entries through the store."""

    def __init__(
        self,
        store: Store,
        commission_calculator: CommissionCalculator | None = None,
        validator: InputValidator | None = None,
    ):
        self.store = store
        self.commission_calculator = commission_calculator or CommissionCalculator()
        self.validator = validator or InputValidator()

    async def resolve(
        self,
        offer_id: str,
        day: date,
        revenue: Decimal,
        ads_spend: Decimal,
        note: str | None = None,
    ) -> ResolutionResult:
        """
        Create the entry for (offer_id, day).

        A second call for the same pair returns a ConflictError result and
        leaves the first entry untouched. Callers should treat that as
        "already resolved", not retry.
        """
        try:
            revenue, ads_spend = self._validated_values(revenue, ads_spend)
            offer = await self.store.get_offer(offer_id)
            entry = await self.store.insert_daily_entry(
                offer_id, day, self._fields(offer, day, revenue, ads_spend, note)
            )
        except ReconciliationError as e:
            return self._failed(offer_id, day, e)
        except Exception as e:
            logger.error(f"Unexpected error resolving {offer_id} on {day}: {e}", exc_info=True)
            return self._failed(offer_id, day, ExternalServiceError(str(e), offer_id=offer_id))

        logger.info(f"Resolved daily entry: offer={offer_id} date={day.isoformat()}")
        return ResolutionResult(offer_id=offer_id, date=day, entry=entry)

    async def correct(
        self,
        offer_id: str,
        day: date,
        revenue: Decimal,
        ads_spend: Decimal,
        note: str | None = None,
    ) -> ResolutionResult:
        """
        Replace an existing entry with a new one.

        Entries are otherwise immutable. The store swaps the old entry for
        the new one in a single step, so the day is never left empty and no
        concurrent resolve can claim it in between.
        """
        try:
            # Validate before touching the store so bad input never removes the old entry
            revenue, ads_spend = self._validated_values(revenue, ads_spend)
            offer = await self.store.get_offer(offer_id)
            entry = await self.store.replace_daily_entry(
                offer_id, day, self._fields(offer, day, revenue, ads_spend, note)
            )
        except ReconciliationError as e:
            return self._failed(offer_id, day, e)
        except Exception as e:
            logger.error(f"Unexpected error correcting {offer_id} on {day}: {e}", exc_info=True)
            return self._failed(offer_id, day, ExternalServiceError(str(e), offer_id=offer_id))

        logger.info(f"Corrected daily entry: offer={offer_id} date={day.isoformat()}")
        return ResolutionResult(offer_id=offer_id, date=day, entry=entry)

    def _fields(self, offer: Offer, day: date, revenue: Decimal, ads_spend: Decimal, note: str | None) -> dict:
        # Cached for convenience only; totals are always recomputed
        draft = DailyEntry(date=day, revenue=revenue, ads_spend=ads_spend)
        team_share = self.commission_calculator.team_share(offer, draft)
        return {"revenue": revenue, "ads_spend": ads_spend, "team_share": team_share, "note": note}

    def _validated_values(self, revenue, ads_spend) -> tuple[Decimal, Decimal]:
        revenue = quantize_money(to_decimal(revenue, "revenue"))
        ads_spend = quantize_money(to_decimal(ads_spend, "ads_spend"))
        self.validator.validate_entry_values(revenue, ads_spend)
        return revenue, ads_spend

    def _failed(self, offer_id: str, day: date, error: Exception) -> ResolutionResult:
        log = logger.info if isinstance(error, ConflictError) else logger.warning
        log(f"Daily entry not resolved: offer={offer_id} date={day.isoformat()}: {error}")
        return ResolutionResult(offer_id=offer_id, date=day, error=error)
