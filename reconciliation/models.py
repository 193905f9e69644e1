"""
Domain Models for the Team Pot Reconciliation Engine

These dataclasses provide type-safe representations of all business entities.
All monetary values and percentages use Decimal for precision; all dates are
calendar days (datetime.date) with no time component.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from .errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Build a Decimal from user input, going through str() to avoid float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number, got: {value!r}")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number, got: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got: {value!r}")
    return result


def parse_date(value, field_name: str = "date") -> date:
    """Parse a YYYY-MM-DD calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"{field_name} must be a YYYY-MM-DD date, got: {value!r}")


def _optional_date(value, field_name: str) -> date | None:
    return parse_date(value, field_name) if value else None


def parse_bool(value, field_name: str) -> bool:
    """Accept real booleans and the strings "true"/"false"; anything else is an error."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field_name} must be true or false, got: {value!r}")


# =============================================================================
# ENUMS
# =============================================================================


class OfferStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


class PayoutModel(str, Enum):
    REVENUE = "REVENUE"  # team gets a % of gross revenue
    PROFIT = "PROFIT"  # team gets a % of revenue - ads spend


class BillingCycle(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIAL = "PARTIAL"


def _enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field_name}: {value!r}. Must be one of {allowed}")


# =============================================================================
# INPUT MODELS
# =============================================================================


@dataclass
class Participant:
    """A team member's slice of an offer's team pot."""

    member_id: str
    share_percent: Decimal  # % of the team pot, not of revenue
    role: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Participant":
        return cls(
            member_id=str(data["member_id"]),
            share_percent=to_decimal(data.get("share_percent", 0), "share_percent"),
            role=data.get("role"),
        )


@dataclass
class DailyEntry:
    """One calendar day of revenue and ads spend for an offer."""

    date: date
    revenue: Decimal
    ads_spend: Decimal
    # Snapshot taken when the entry was created. Never used for totals.
    team_share: Decimal | None = None
    entry_id: str | None = None
    note: str | None = None

    @property
    def net_profit(self) -> Decimal:
        return self.revenue - self.ads_spend

    @classmethod
    def from_dict(cls, data: dict) -> "DailyEntry":
        cached = data.get("team_share")
        return cls(
            date=parse_date(data["date"]),
            revenue=to_decimal(data.get("revenue", 0), "revenue"),
            ads_spend=to_decimal(data.get("ads_spend", 0), "ads_spend"),
            team_share=to_decimal(cached, "team_share") if cached is not None else None,
            entry_id=str(data["id"]) if data.get("id") is not None else None,
            note=data.get("note"),
        )


@dataclass
class Offer:
    """A revenue-generating initiative with its payout rules and daily log."""

    offer_id: str
    name: str
    status: OfferStatus
    payout_model: PayoutModel
    start_date: date
    team_pot_percent: Decimal | None = None  # None is treated as 0
    participants: list[Participant] = field(default_factory=list)
    end_date: date | None = None
    daily_entries: dict[date, DailyEntry] = field(default_factory=dict)
    description: str | None = None
    currency: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == OfferStatus.ACTIVE

    @property
    def pot_percent(self) -> Decimal:
        return self.team_pot_percent if self.team_pot_percent is not None else ZERO

    def covers(self, day: date) -> bool:
        """True when the day falls between the offer's start and end dates."""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date

    def entry_for(self, day: date) -> DailyEntry | None:
        return self.daily_entries.get(day)

    def entries_between(self, start: date | None = None, end: date | None = None) -> list[DailyEntry]:
        """Entries in the inclusive range, oldest first."""
        return [
            entry
            for day, entry in sorted(self.daily_entries.items())
            if (start is None or day >= start) and (end is None or day <= end)
        ]

    @classmethod
    def from_dict(cls, data: dict) -> "Offer":
        entries: dict[date, DailyEntry] = {}
        for raw in data.get("daily_entries", []):
            entry = DailyEntry.from_dict(raw)
            if entry.date in entries:
                raise ValidationError(
                    f"Offer {data.get('id')} has more than one daily entry for {entry.date.isoformat()}"
                )
            entries[entry.date] = entry

        pot = data.get("team_pot_percent")
        return cls(
            offer_id=str(data["id"]),
            name=data.get("name", ""),
            status=_enum(OfferStatus, data.get("status", "ACTIVE"), "status"),
            payout_model=_enum(PayoutModel, data.get("payout_model", "REVENUE"), "payout_model"),
            start_date=parse_date(data["start_date"], "start_date"),
            team_pot_percent=to_decimal(pot, "team_pot_percent") if pot is not None else None,
            participants=[Participant.from_dict(p) for p in data.get("participants", [])],
            end_date=_optional_date(data.get("end_date"), "end_date"),
            daily_entries=entries,
            description=data.get("description"),
            currency=data.get("currency"),
        )


@dataclass
class Subscription:
    """A recurring cost billed every month or year."""

    subscription_id: str
    name: str
    amount: Decimal  # base currency
    billing_cycle: BillingCycle
    next_payment_date: date
    active: bool = True
    auto_pay: bool = False
    first_payment_date: date | None = None
    category: str | None = None
    currency: str | None = None
    original_amount: Decimal | None = None

    def is_due(self, today: date) -> bool:
        return self.active and self.auto_pay and self.next_payment_date <= today

    @classmethod
    def from_dict(cls, data: dict) -> "Subscription":
        original = data.get("original_amount")
        return cls(
            subscription_id=str(data["id"]),
            name=data.get("name", ""),
            amount=to_decimal(data["amount"], "amount"),
            billing_cycle=_enum(BillingCycle, data.get("billing_cycle", "MONTHLY"), "billing_cycle"),
            next_payment_date=parse_date(data["next_payment_date"], "next_payment_date"),
            active=parse_bool(data.get("active", True), "active"),
            auto_pay=parse_bool(data.get("auto_pay", False), "auto_pay"),
            first_payment_date=_optional_date(data.get("first_payment_date"), "first_payment_date"),
            category=data.get("category"),
            currency=data.get("currency"),
            original_amount=to_decimal(original, "original_amount") if original is not None else None,
        )


@dataclass(frozen=True)
class Transaction:
    """An immutable ledger line.

    Links to offers, services and subscriptions are references only; removing
    the parent clears the link and keeps the transaction.
    """

    transaction_id: str
    date: date
    type: TransactionType
    amount: Decimal
    status: TransactionStatus
    description: str = ""
    category: str | None = None
    offer_id: str | None = None
    service_id: str | None = None
    subscription_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            transaction_id=str(data.get("id") or ""),
            date=parse_date(data["date"]),
            type=_enum(TransactionType, data["type"], "type"),
            amount=to_decimal(data["amount"], "amount"),
            status=_enum(TransactionStatus, data.get("status", "PAID"), "status"),
            description=data.get("description", ""),
            category=data.get("category"),
            offer_id=data.get("offer_id"),
            service_id=data.get("service_id"),
            subscription_id=data.get("subscription_id"),
        )


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class ParticipantShare:
    """One participant's cut of a team share."""

    member_id: str
    share_percent: Decimal
    effective_percent: Decimal  # % of the base amount
    amount: Decimal


@dataclass
class ShareBreakdown:
    """Team pot and participant split for a single daily entry."""

    offer_id: str
    date: date
    payout_model: PayoutModel
    base_amount: Decimal
    team_pot_percent: Decimal
    team_share: Decimal
    participant_shares: list[ParticipantShare] = field(default_factory=list)
    warnings: list = field(default_factory=list)  # ValidationError instances


@dataclass
class MissingEntry:
    """An active offer with no daily entry for a day inside the window."""

    offer_id: str
    date: date
    offer_name: str = ""


@dataclass
class ComplianceReport:
    """Result of a compliance scan."""

    today: date
    missing: list[MissingEntry] = field(default_factory=list)
    compliance_rate: int = 100
    active_offers: int = 0
    compliant_offers: int = 0
    missing_by_offer: dict[str, int] = field(default_factory=dict)

    @property
    def pending_count(self) -> int:
        return len(self.missing)

    @property
    def due_today(self) -> list[MissingEntry]:
        return [m for m in self.missing if m.date == self.today]

    @property
    def overdue(self) -> list[MissingEntry]:
        return [m for m in self.missing if m.date != self.today]


@dataclass
class ResolutionResult:
    """Outcome of a daily entry resolution. Exactly one of entry/error is set."""

    offer_id: str
    date: date
    entry: DailyEntry | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BillingCharge:
    """A subscription cycle that was charged during a pass."""

    subscription_id: str
    transaction: Transaction
    previous_payment_date: date
    next_payment_date: date
    still_due: bool = False  # backlog left for the next pass


@dataclass
class BillingFailure:
    """A due subscription whose cycle could not be posted."""

    subscription_id: str
    error: Exception


@dataclass
class BillingPassResult:
    """Outcome of one billing reconciliation pass."""

    today: date
    charged: list[BillingCharge] = field(default_factory=list)
    already_processed: list[str] = field(default_factory=list)
    failures: list[BillingFailure] = field(default_factory=list)

    @property
    def due_count(self) -> int:
        return len(self.charged) + len(self.already_processed) + len(self.failures)

    @property
    def total_charged(self) -> Decimal:
        return sum((c.transaction.amount for c in self.charged), ZERO)


@dataclass
class ParticipantEarnings:
    """Accumulated earnings for one participant over a period."""

    member_id: str
    role: str | None
    share_percent: Decimal
    effective_percent: Decimal
    total: Decimal


@dataclass
class OfferSummary:
    """Totals for an offer over a date range, recomputed from current rules."""

    offer_id: str
    start: date | None
    end: date | None
    entry_count: int = 0
    total_revenue: Decimal = ZERO
    total_ads_spend: Decimal = ZERO
    total_net_profit: Decimal = ZERO
    total_team_payout: Decimal = ZERO
    participants: list[ParticipantEarnings] = field(default_factory=list)
    distributed_percent: Decimal = ZERO
    warnings: list = field(default_factory=list)


@dataclass
class TimelinePoint:
    """Totals across offers for one day or one month."""

    key: str  # YYYY-MM-DD or YYYY-MM
    revenue: Decimal = ZERO
    ads_spend: Decimal = ZERO
    net_profit: Decimal = ZERO
    commission: Decimal = ZERO


@dataclass
class MemberPayout:
    """A team member's cut of the ledger profit pool."""

    member_id: str
    role: str | None
    share_percent: Decimal
    amount: Decimal


@dataclass
class LedgerSummary:
    """Income, expense and profit over ledger transactions in a date range."""

    start: date | None
    end: date | None
    service_id: str | None = None
    transaction_count: int = 0
    income: Decimal = ZERO
    expense: Decimal = ZERO
    members: list[MemberPayout] = field(default_factory=list)
    distributed_percent: Decimal = ZERO
    warnings: list = field(default_factory=list)

    @property
    def profit(self) -> Decimal:
        return self.income - self.expense

    @property
    def margin_percent(self) -> Decimal | None:
        """Profit as a % of income; None without income."""
        if self.income <= 0:
            return None
        return self.profit / self.income * HUNDRED


@dataclass
class LedgerPoint:
    """Ledger totals for one day or one month."""

    key: str  # YYYY-MM-DD or YYYY-MM
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def profit(self) -> Decimal:
        return self.income - self.expense
