"""
Reconciliation Engine - Main Orchestrator

Single entry point for callers. Wires the pure calculators, the two writing
components and the store together, and offers dict-in / dict-out variants
for the HTTP layer.

Pure operations (shares, compliance, summaries) are synchronous and take
"today" as an argument. Writes (entry resolution, billing) are coroutines.
"""

from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal
from typing import Any, Dict

from .billing import SubscriptionBillingProcessor
from .calculators import CommissionCalculator, ComplianceScanner, LedgerSummaryCalculator, OfferSummaryCalculator
from .calculators.compliance import DEFAULT_WINDOW_DAYS
from .config import Settings
from .currency import CurrencyNormalizer, fetch_rates
from .models import (
    BillingPassResult,
    ComplianceReport,
    DailyEntry,
    LedgerPoint,
    LedgerSummary,
    Offer,
    OfferSummary,
    Participant,
    ResolutionResult,
    ShareBreakdown,
    Subscription,
    TimelinePoint,
    Transaction,
    parse_bool,
    parse_date,
    to_decimal,
)
from .money import to_money
from .output import OutputBuilder
from .resolver import DailyEntryResolver
from .sql_storage import SqlStore
from .storage import InMemoryStore, Store
from .validators import InputValidator


class ReconciliationEngine:
    """
    Facade over the engine components.

    Operations:
    1. compute_shares       - team pot and participant split for one entry
    2. scan_compliance      - missing daily entries and compliance rate
    3. resolve_daily_entry  - record one day for an offer (once)
    4. run_billing_pass     - charge due subscriptions (once per cycle)
    5. summarize_offer / commission_timeline - period aggregates
    6. summarize_ledger / ledger_timeline - profit pool over transactions
    """

    def __init__(
        self,
        store: Store | None = None,
        currency: CurrencyNormalizer | None = None,
        compliance_window_days: int = DEFAULT_WINDOW_DAYS,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store or InMemoryStore()
        self.validator = InputValidator()
        self.commission_calculator = CommissionCalculator(self.validator)
        self.compliance_scanner = ComplianceScanner(compliance_window_days)
        self.summary_calculator = OfferSummaryCalculator(self.commission_calculator)
        self.ledger_calculator = LedgerSummaryCalculator(self.validator)
        self.resolver = DailyEntryResolver(self.store, self.commission_calculator, self.validator)
        self.billing_processor = SubscriptionBillingProcessor(self.store, self.validator)
        self.currency = currency or CurrencyNormalizer()
        self.output_builder = OutputBuilder()
        # Only the dict API reads the clock, and only when no date is supplied
        self.clock = clock

    # --- Pure operations ---

    def compute_shares(self, offer: Offer, entry: DailyEntry) -> ShareBreakdown:
        return self.commission_calculator.compute_shares(offer, entry)

    def scan_compliance(self, offers: Iterable[Offer], today: date) -> ComplianceReport:
        return self.compliance_scanner.scan(offers, today)

    def summarize_offer(self, offer: Offer, start: date | None = None, end: date | None = None) -> OfferSummary:
        return self.summary_calculator.summarize(offer, start, end)

    def commission_timeline(
        self,
        offers: Iterable[Offer],
        granularity: str = "day",
        start: date | None = None,
        end: date | None = None,
    ) -> list[TimelinePoint]:
        return self.summary_calculator.timeline(offers, granularity, start, end)

    def summarize_ledger(
        self,
        transactions: Iterable[Transaction],
        members: Iterable[Participant] = (),
        start: date | None = None,
        end: date | None = None,
        service_id: str | None = None,
    ) -> LedgerSummary:
        return self.ledger_calculator.summarize(transactions, members, start, end, service_id)

    def ledger_timeline(
        self,
        transactions: Iterable[Transaction],
        granularity: str = "day",
        start: date | None = None,
        end: date | None = None,
        services_only: bool = False,
    ) -> list[LedgerPoint]:
        return self.ledger_calculator.timeline(transactions, granularity, start, end, services_only)

    # --- Writes ---

    async def resolve_daily_entry(
        self, offer_id: str, day: date, revenue: Decimal, ads_spend: Decimal, note: str | None = None
    ) -> ResolutionResult:
        return await self.resolver.resolve(offer_id, day, revenue, ads_spend, note)

    async def correct_daily_entry(
        self, offer_id: str, day: date, revenue: Decimal, ads_spend: Decimal, note: str | None = None
    ) -> ResolutionResult:
        return await self.resolver.correct(offer_id, day, revenue, ads_spend, note)

    async def run_billing_pass(self, subscriptions: Iterable[Subscription], today: date) -> BillingPassResult:
        return await self.billing_processor.run_pass(subscriptions, today)

    # --- Dict API (HTTP layer) ---

    def compute_shares_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        offer = self._parse_offer(data["offer"])
        entry = DailyEntry.from_dict(data["entry"])
        self.validator.validate_entry(entry)
        return self.output_builder.build_shares(self.compute_shares(offer, entry))

    def offer_summary_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        offer = self._parse_offer(data["offer"])
        summary = self.summarize_offer(offer, self._optional_date(data, "start"), self._optional_date(data, "end"))
        output = self.output_builder.build_summary(summary)

        display_currency = data.get("display_currency")
        if display_currency:
            convert = self.currency.convert_from_base
            output["display"] = {
                "currency": display_currency.upper(),
                "total_revenue": to_money(convert(summary.total_revenue, display_currency)),
                "total_team_payout": to_money(convert(summary.total_team_payout, display_currency)),
            }
        return output

    def commission_timeline_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        offers = [self._parse_offer(o) for o in data.get("offers", [])]
        points = self.commission_timeline(
            offers,
            data.get("granularity", "day"),
            self._optional_date(data, "start"),
            self._optional_date(data, "end"),
        )
        return {"granularity": data.get("granularity", "day"), "points": self.output_builder.build_timeline(points)}

    async def scan_compliance_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Scan the offers in the payload, or the store's offers if none are given."""
        if "offers" in data:
            offers = [self._parse_offer(o) for o in data["offers"]]
        else:
            offers = await self.store.list_offers()
        today = self._today(data)
        return self.output_builder.build_compliance(self.scan_compliance(offers, today))

    async def resolve_daily_entry_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve one (offer, date). Amounts in another currency are converted
        to the base currency before anything is stored.
        """
        currency = data.get("currency")
        revenue = to_decimal(data.get("revenue", 0), "revenue")
        ads_spend = to_decimal(data.get("ads_spend", 0), "ads_spend")
        if currency:
            revenue = self.currency.convert_to_base(revenue, currency)
            ads_spend = self.currency.convert_to_base(ads_spend, currency)

        result = await self.resolve_daily_entry(
            str(data["offer_id"]), parse_date(data["date"]), revenue, ads_spend, data.get("note")
        )
        return self.output_builder.build_resolution(result)

    async def run_billing_pass_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Run a pass over the payload's subscriptions, or the store's if none are given."""
        if "subscriptions" in data:
            subscriptions = [Subscription.from_dict(s) for s in data["subscriptions"]]
        else:
            subscriptions = await self.store.list_subscriptions()
        result = await self.run_billing_pass(subscriptions, self._today(data))
        return self.output_builder.build_billing_pass(result)

    async def ledger_summary_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Profit pool over the payload's transactions, or the store's ledger if none are given."""
        transactions = await self._transactions(data)
        members = [Participant.from_dict(m) for m in data.get("members", [])]
        summary = self.summarize_ledger(
            transactions,
            members,
            self._optional_date(data, "start"),
            self._optional_date(data, "end"),
            data.get("service_id"),
        )
        return self.output_builder.build_ledger_summary(summary)

    async def ledger_timeline_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        transactions = await self._transactions(data)
        granularity = data.get("granularity", "day")
        points = self.ledger_timeline(
            transactions,
            granularity,
            self._optional_date(data, "start"),
            self._optional_date(data, "end"),
            parse_bool(data.get("services_only", False), "services_only"),
        )
        return {"granularity": granularity, "points": self.output_builder.build_ledger_timeline(points)}

    async def _transactions(self, data: Dict[str, Any]) -> list[Transaction]:
        if "transactions" in data:
            return [Transaction.from_dict(t) for t in data["transactions"]]
        return await self.store.list_transactions()

    def _parse_offer(self, data: Dict[str, Any]) -> Offer:
        offer = Offer.from_dict(data)
        self.validator.validate_offer(offer)
        return offer

    def _today(self, data: Dict[str, Any]) -> date:
        return parse_date(data["today"], "today") if data.get("today") else self.clock()

    @staticmethod
    def _optional_date(data: Dict[str, Any], key: str) -> date | None:
        return parse_date(data[key], key) if data.get(key) else None


def build_store(settings: Settings) -> Store:
    """SQL store when DATABASE_URL is set, in-memory otherwise."""
    if settings.database_url:
        return SqlStore(settings.database_url)
    return InMemoryStore()


def build_engine(settings: Settings | None = None) -> ReconciliationEngine:
    """Engine wired from environment settings. Exchange rates are fetched on first use."""
    settings = settings or Settings.from_env()
    currency = CurrencyNormalizer(
        loader=lambda: fetch_rates(settings.exchange_rates_url, settings.base_currency, settings.rates_timeout)
    )
    return ReconciliationEngine(
        store=build_store(settings),
        currency=currency,
        compliance_window_days=settings.compliance_window_days,
    )
