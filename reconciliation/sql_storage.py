"""
SQLAlchemy Store

Relational implementation of the persistence collaborator. Invariants live
in the schema and in the statements rather than in Python:

- `daily_entries` has a unique constraint on (offer_id, date);
- subscription date advances are `UPDATE ... WHERE next_payment_date = :old`
  and commit in the same database transaction as the ledger line.

SQLAlchemy is synchronous here; each call runs in a worker thread so the
async interface does not block the event loop.
"""

import asyncio
import datetime as dt
import logging
import threading
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import ConflictError, ExternalServiceError, NotFoundError
from .models import (
    BillingCycle,
    DailyEntry,
    Offer,
    OfferStatus,
    Participant,
    PayoutModel,
    Subscription,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from .storage import Store, new_id

logger = logging.getLogger(__name__)


# =============================================================================
# SCHEMA
# =============================================================================


class Base(DeclarativeBase):
    pass


class OfferRow(Base):
    __tablename__ = "offers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16))
    payout_model: Mapped[str] = mapped_column(String(16))
    team_pot_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))
    start_date: Mapped[dt.date] = mapped_column(Date)
    end_date: Mapped[dt.date | None] = mapped_column(Date)
    currency: Mapped[str | None] = mapped_column(String(3))

    participants: Mapped[list["ParticipantRow"]] = relationship(
        order_by="ParticipantRow.position", cascade="all, delete-orphan"
    )
    entries: Mapped[list["DailyEntryRow"]] = relationship(
        order_by="DailyEntryRow.date", cascade="all, delete-orphan"
    )


class ParticipantRow(Base):
    __tablename__ = "offer_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offer_id: Mapped[str] = mapped_column(ForeignKey("offers.id", ondelete="CASCADE"))
    member_id: Mapped[str] = mapped_column(String(64))
    role: Mapped[str | None] = mapped_column(String(100))
    share_percent: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    position: Mapped[int] = mapped_column(Integer, default=0)


class DailyEntryRow(Base):
    __tablename__ = "daily_entries"
    __table_args__ = (UniqueConstraint("offer_id", "date", name="uq_daily_entries_offer_date"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    offer_id: Mapped[str] = mapped_column(ForeignKey("offers.id", ondelete="CASCADE"))
    date: Mapped[dt.date] = mapped_column(Date)
    revenue: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    ads_spend: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    team_share: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    note: Mapped[str | None] = mapped_column(Text)


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    billing_cycle: Mapped[str] = mapped_column(String(16))
    next_payment_date: Mapped[dt.date] = mapped_column(Date)
    first_payment_date: Mapped[dt.date | None] = mapped_column(Date)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_pay: Mapped[bool] = mapped_column(Boolean, default=False)
    category: Mapped[str | None] = mapped_column(String(100))
    currency: Mapped[str | None] = mapped_column(String(3))
    original_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date)
    type: Mapped[str] = mapped_column(String(16))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(16))
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str | None] = mapped_column(String(100))
    # Links, not ownership: deleting the parent only clears them
    offer_id: Mapped[str | None] = mapped_column(ForeignKey("offers.id", ondelete="SET NULL"))
    service_id: Mapped[str | None] = mapped_column(String(32))
    subscription_id: Mapped[str | None] = mapped_column(ForeignKey("subscriptions.id", ondelete="SET NULL"))


# =============================================================================
# ROW <-> MODEL MAPPING
# =============================================================================


def _entry_from_row(row: DailyEntryRow) -> DailyEntry:
    return DailyEntry(
        date=row.date,
        revenue=Decimal(row.revenue),
        ads_spend=Decimal(row.ads_spend),
        team_share=Decimal(row.team_share) if row.team_share is not None else None,
        entry_id=row.id,
        note=row.note,
    )


def _offer_from_row(row: OfferRow) -> Offer:
    return Offer(
        offer_id=row.id,
        name=row.name,
        status=OfferStatus(row.status),
        payout_model=PayoutModel(row.payout_model),
        start_date=row.start_date,
        team_pot_percent=Decimal(row.team_pot_percent) if row.team_pot_percent is not None else None,
        participants=[
            Participant(member_id=p.member_id, share_percent=Decimal(p.share_percent), role=p.role)
            for p in row.participants
        ],
        end_date=row.end_date,
        daily_entries={e.date: _entry_from_row(e) for e in row.entries},
        description=row.description,
        currency=row.currency,
    )


def _subscription_from_row(row: SubscriptionRow) -> Subscription:
    return Subscription(
        subscription_id=row.id,
        name=row.name,
        amount=Decimal(row.amount),
        billing_cycle=BillingCycle(row.billing_cycle),
        next_payment_date=row.next_payment_date,
        active=row.active,
        auto_pay=row.auto_pay,
        first_payment_date=row.first_payment_date,
        category=row.category,
        currency=row.currency,
        original_amount=Decimal(row.original_amount) if row.original_amount is not None else None,
    )


def _transaction_from_row(row: TransactionRow) -> Transaction:
    return Transaction(
        transaction_id=row.id,
        date=row.date,
        type=TransactionType(row.type),
        amount=Decimal(row.amount),
        status=TransactionStatus(row.status),
        description=row.description,
        category=row.category,
        offer_id=row.offer_id,
        service_id=row.service_id,
        subscription_id=row.subscription_id,
    )


def _transaction_row(fields: dict) -> TransactionRow:
    columns = dict(fields)
    columns["type"] = TransactionType(columns["type"]).value
    columns["status"] = TransactionStatus(columns["status"]).value
    return TransactionRow(id=new_id(), **columns)


# =============================================================================
# STORE
# =============================================================================


class SqlStore(Store):
    """Store backed by any database SQLAlchemy supports."""

    def __init__(self, url: str = "sqlite://", create_schema: bool = True):
        options = {}
        if url.startswith("sqlite"):
            options["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every thread gets an empty database
                options["poolclass"] = StaticPool
            # SQLite allows one writer at a time; calls from worker threads take turns
            self._lock = threading.Lock()
        else:
            self._lock = None

        self.engine = create_engine(url, **options)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(self.engine)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(self._call, fn, *args)
        except SQLAlchemyError as e:
            logger.error(f"Database error in {fn.__name__}: {e}")
            raise ExternalServiceError(f"Database error: {e.__class__.__name__}") from e

    def _call(self, fn, *args):
        if self._lock is None:
            return fn(*args)
        with self._lock:
            return fn(*args)

    # --- Offers ---

    async def list_offers(self) -> list[Offer]:
        return await self._run(self._list_offers)

    def _list_offers(self) -> list[Offer]:
        with self._sessions() as session:
            rows = session.scalars(
                select(OfferRow).options(selectinload(OfferRow.participants), selectinload(OfferRow.entries))
            ).all()
            return [_offer_from_row(row) for row in rows]

    async def get_offer(self, offer_id: str) -> Offer:
        return await self._run(self._get_offer, offer_id)

    def _get_offer(self, offer_id: str) -> Offer:
        with self._sessions() as session:
            row = session.get(
                OfferRow,
                offer_id,
                options=[selectinload(OfferRow.participants), selectinload(OfferRow.entries)],
            )
            if row is None:
                raise NotFoundError(f"Offer not found: {offer_id}", offer_id=offer_id)
            return _offer_from_row(row)

    async def add_offer(self, offer: Offer) -> Offer:
        return await self._run(self._add_offer, offer)

    def _add_offer(self, offer: Offer) -> Offer:
        offer_id = offer.offer_id or new_id()
        with self._sessions.begin() as session:
            row = OfferRow(
                id=offer_id,
                name=offer.name,
                description=offer.description,
                status=offer.status.value,
                payout_model=offer.payout_model.value,
                team_pot_percent=offer.team_pot_percent,
                start_date=offer.start_date,
                end_date=offer.end_date,
                currency=offer.currency,
                participants=[
                    ParticipantRow(
                        member_id=p.member_id, role=p.role, share_percent=p.share_percent, position=i
                    )
                    for i, p in enumerate(offer.participants)
                ],
                entries=[
                    DailyEntryRow(
                        id=e.entry_id or new_id(),
                        date=e.date,
                        revenue=e.revenue,
                        ads_spend=e.ads_spend,
                        team_share=e.team_share,
                        note=e.note,
                    )
                    for e in offer.daily_entries.values()
                ],
            )
            session.add(row)
        return self._get_offer(offer_id)

    # --- Daily entries ---

    async def insert_daily_entry(self, offer_id: str, day: dt.date, fields: dict) -> DailyEntry:
        return await self._run(self._insert_daily_entry, offer_id, day, fields)

    def _insert_daily_entry(self, offer_id: str, day: dt.date, fields: dict) -> DailyEntry:
        try:
            with self._sessions.begin() as session:
                if session.get(OfferRow, offer_id) is None:
                    raise NotFoundError(f"Offer not found: {offer_id}", offer_id=offer_id)
                row = DailyEntryRow(id=new_id(), offer_id=offer_id, date=day, **fields)
                session.add(row)
                session.flush()
                # read back what the Numeric columns kept
                session.refresh(row)
                return _entry_from_row(row)
        except IntegrityError:
            # uq_daily_entries_offer_date: another writer got there first
            raise ConflictError(
                f"Daily entry already exists for offer {offer_id} on {day.isoformat()}",
                offer_id=offer_id,
                date=day.isoformat(),
            )

    async def delete_daily_entry(self, offer_id: str, day: dt.date) -> None:
        await self._run(self._delete_daily_entry, offer_id, day)

    def _delete_daily_entry(self, offer_id: str, day: dt.date) -> None:
        with self._sessions.begin() as session:
            row = session.scalars(
                select(DailyEntryRow).where(DailyEntryRow.offer_id == offer_id, DailyEntryRow.date == day)
            ).first()
            if row is None:
                raise NotFoundError(
                    f"No daily entry for offer {offer_id} on {day.isoformat()}",
                    offer_id=offer_id,
                    date=day.isoformat(),
                )
            session.delete(row)

    async def replace_daily_entry(self, offer_id: str, day: dt.date, fields: dict) -> DailyEntry:
        return await self._run(self._replace_daily_entry, offer_id, day, fields)

    def _replace_daily_entry(self, offer_id: str, day: dt.date, fields: dict) -> DailyEntry:
        with self._sessions.begin() as session:
            old = session.scalars(
                select(DailyEntryRow)
                .where(DailyEntryRow.offer_id == offer_id, DailyEntryRow.date == day)
                .with_for_update()
            ).first()
            if old is None:
                raise NotFoundError(
                    f"No daily entry for offer {offer_id} on {day.isoformat()}",
                    offer_id=offer_id,
                    date=day.isoformat(),
                )
            session.delete(old)
            # the delete must reach the database before the unique key is reused
            session.flush()
            row = DailyEntryRow(id=new_id(), offer_id=offer_id, date=day, **fields)
            session.add(row)
            session.flush()
            session.refresh(row)
            return _entry_from_row(row)

    # --- Subscriptions & transactions ---

    async def list_subscriptions(self) -> list[Subscription]:
        return await self._run(self._list_subscriptions)

    def _list_subscriptions(self) -> list[Subscription]:
        with self._sessions() as session:
            return [_subscription_from_row(r) for r in session.scalars(select(SubscriptionRow)).all()]

    async def add_subscription(self, subscription: Subscription) -> Subscription:
        return await self._run(self._add_subscription, subscription)

    def _add_subscription(self, subscription: Subscription) -> Subscription:
        with self._sessions.begin() as session:
            row = SubscriptionRow(
                id=subscription.subscription_id or new_id(),
                name=subscription.name,
                amount=subscription.amount,
                billing_cycle=subscription.billing_cycle.value,
                next_payment_date=subscription.next_payment_date,
                first_payment_date=subscription.first_payment_date,
                active=subscription.active,
                auto_pay=subscription.auto_pay,
                category=subscription.category,
                currency=subscription.currency,
                original_amount=subscription.original_amount,
            )
            session.add(row)
            session.flush()
            return _subscription_from_row(row)

    async def insert_transaction(self, fields: dict) -> Transaction:
        return await self._run(self._insert_transaction, fields)

    def _insert_transaction(self, fields: dict) -> Transaction:
        with self._sessions.begin() as session:
            row = _transaction_row(fields)
            session.add(row)
            session.flush()
            return _transaction_from_row(row)

    async def list_transactions(self) -> list[Transaction]:
        return await self._run(self._list_transactions)

    def _list_transactions(self) -> list[Transaction]:
        with self._sessions() as session:
            rows = session.scalars(select(TransactionRow).order_by(TransactionRow.date)).all()
            return [_transaction_from_row(r) for r in rows]

    async def update_subscription(
        self, subscription_id: str, next_payment_date: dt.date, expected: dt.date | None = None
    ) -> bool:
        return await self._run(self._update_subscription, subscription_id, next_payment_date, expected)

    def _update_subscription(self, subscription_id: str, next_payment_date: dt.date, expected: dt.date | None) -> bool:
        with self._sessions.begin() as session:
            return self._advance(session, subscription_id, next_payment_date, expected)

    async def commit_billing_cycle(
        self,
        subscription_id: str,
        expected: dt.date,
        next_payment_date: dt.date,
        transaction_fields: dict,
    ) -> Transaction | None:
        return await self._run(
            self._commit_billing_cycle, subscription_id, expected, next_payment_date, transaction_fields
        )

    def _commit_billing_cycle(
        self, subscription_id: str, expected: dt.date, next_payment_date: dt.date, transaction_fields: dict
    ) -> Transaction | None:
        with self._sessions.begin() as session:
            if not self._advance(session, subscription_id, next_payment_date, expected):
                return None
            row = _transaction_row(transaction_fields)
            session.add(row)
            session.flush()
            return _transaction_from_row(row)

    def _advance(self, session, subscription_id: str, next_payment_date: dt.date, expected: dt.date | None) -> bool:
        """Compare-and-swap on next_payment_date inside the caller's transaction."""
        stmt = update(SubscriptionRow).where(SubscriptionRow.id == subscription_id)
        if expected is not None:
            stmt = stmt.where(SubscriptionRow.next_payment_date == expected)
        result = session.execute(
            stmt.values(next_payment_date=next_payment_date).execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return True
        if session.get(SubscriptionRow, subscription_id) is None:
            raise NotFoundError(f"Subscription not found: {subscription_id}", subscription_id=subscription_id)
        return False


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
