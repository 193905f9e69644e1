"""
Persistence Collaborator

`Store` is the interface the writing components depend on. Two rules matter
for correctness and every implementation must honour them at the storage
boundary:

- at most one daily entry per (offer_id, date): a second insert raises
  ConflictError;
- `next_payment_date` is updated with compare-and-swap, and a billing cycle
  (transaction + date advance) commits as one unit.

Identifiers are assigned here, at the point of durable write.
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import date

from .errors import ConflictError, NotFoundError
from .models import DailyEntry, Offer, Subscription, Transaction


def new_id() -> str:
    return uuid.uuid4().hex


class Store(ABC):
    """Async persistence interface consumed by the engine."""

    @abstractmethod
    async def list_offers(self) -> list[Offer]: ...

    @abstractmethod
    async def get_offer(self, offer_id: str) -> Offer:
        """Raises NotFoundError."""

    @abstractmethod
    async def add_offer(self, offer: Offer) -> Offer: ...

    @abstractmethod
    async def list_subscriptions(self) -> list[Subscription]: ...

    @abstractmethod
    async def add_subscription(self, subscription: Subscription) -> Subscription: ...

    @abstractmethod
    async def insert_daily_entry(self, offer_id: str, day: date, fields: dict) -> DailyEntry:
        """Create the entry. Raises ConflictError if one exists for the day."""

    @abstractmethod
    async def delete_daily_entry(self, offer_id: str, day: date) -> None:
        """Raises NotFoundError if there is no entry for the day."""

    @abstractmethod
    async def replace_daily_entry(self, offer_id: str, day: date, fields: dict) -> DailyEntry:
        """
        Delete the day's entry and create a new one in a single step, so no
        other writer can take the day in between. Raises NotFoundError if
        there is no entry to replace.
        """

    @abstractmethod
    async def insert_transaction(self, fields: dict) -> Transaction: ...

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]: ...

    @abstractmethod
    async def update_subscription(
        self, subscription_id: str, next_payment_date: date, expected: date | None = None
    ) -> bool:
        """
        Set next_payment_date. When `expected` is given the write only happens
        if the stored value still equals it. Returns whether a row changed.
        """

    @abstractmethod
    async def commit_billing_cycle(
        self,
        subscription_id: str,
        expected: date,
        next_payment_date: date,
        transaction_fields: dict,
    ) -> Transaction | None:
        """
        Atomically advance the subscription from `expected` to
        `next_payment_date` and post the transaction. Returns None, posting
        nothing, when the stored date no longer equals `expected`.
        """


class InMemoryStore(Store):
    """
    Dict-backed store for tests and local runs.

    Every method holds one lock for its whole check-and-write, so the store
    stays consistent when several threads each drive their own event loop
    (Flask's threaded server runs every request through asyncio.run). Reads
    return deep copies so a caller's snapshot never changes under it.
    """

    def __init__(self):
        self._offers: dict[str, Offer] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._transactions: list[Transaction] = []
        self._lock = threading.Lock()

    async def list_offers(self) -> list[Offer]:
        with self._lock:
            return copy.deepcopy(list(self._offers.values()))

    async def get_offer(self, offer_id: str) -> Offer:
        with self._lock:
            return copy.deepcopy(self._get_offer(offer_id))

    async def add_offer(self, offer: Offer) -> Offer:
        stored = copy.deepcopy(offer)
        if not stored.offer_id:
            stored.offer_id = new_id()
        for entry in stored.daily_entries.values():
            entry.entry_id = entry.entry_id or new_id()
        with self._lock:
            self._offers[stored.offer_id] = stored
            return copy.deepcopy(stored)

    async def list_subscriptions(self) -> list[Subscription]:
        with self._lock:
            return copy.deepcopy(list(self._subscriptions.values()))

    async def add_subscription(self, subscription: Subscription) -> Subscription:
        stored = copy.deepcopy(subscription)
        if not stored.subscription_id:
            stored.subscription_id = new_id()
        with self._lock:
            self._subscriptions[stored.subscription_id] = stored
            return copy.deepcopy(stored)

    async def insert_daily_entry(self, offer_id: str, day: date, fields: dict) -> DailyEntry:
        with self._lock:
            offer = self._get_offer(offer_id)
            if day in offer.daily_entries:
                raise ConflictError(
                    f"Daily entry already exists for offer {offer_id} on {day.isoformat()}",
                    offer_id=offer_id,
                    date=day.isoformat(),
                )
            entry = DailyEntry(date=day, entry_id=new_id(), **fields)
            offer.daily_entries[day] = entry
            return copy.deepcopy(entry)

    async def delete_daily_entry(self, offer_id: str, day: date) -> None:
        with self._lock:
            offer = self._get_offer(offer_id)
            if offer.daily_entries.pop(day, None) is None:
                raise self._no_entry(offer_id, day)

    async def replace_daily_entry(self, offer_id: str, day: date, fields: dict) -> DailyEntry:
        with self._lock:
            offer = self._get_offer(offer_id)
            if day not in offer.daily_entries:
                raise self._no_entry(offer_id, day)
            entry = DailyEntry(date=day, entry_id=new_id(), **fields)
            offer.daily_entries[day] = entry
            return copy.deepcopy(entry)

    async def insert_transaction(self, fields: dict) -> Transaction:
        transaction = Transaction(transaction_id=new_id(), **fields)
        with self._lock:
            self._transactions.append(transaction)
        return transaction

    async def list_transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions)

    async def update_subscription(
        self, subscription_id: str, next_payment_date: date, expected: date | None = None
    ) -> bool:
        with self._lock:
            subscription = self._get_subscription(subscription_id)
            if expected is not None and subscription.next_payment_date != expected:
                return False
            subscription.next_payment_date = next_payment_date
            return True

    async def commit_billing_cycle(
        self,
        subscription_id: str,
        expected: date,
        next_payment_date: date,
        transaction_fields: dict,
    ) -> Transaction | None:
        with self._lock:
            subscription = self._get_subscription(subscription_id)
            if subscription.next_payment_date != expected:
                return None
            transaction = Transaction(transaction_id=new_id(), **transaction_fields)
            self._transactions.append(transaction)
            subscription.next_payment_date = next_payment_date
            return transaction

    def _get_offer(self, offer_id: str) -> Offer:
        try:
            return self._offers[offer_id]
        except KeyError:
            raise NotFoundError(f"Offer not found: {offer_id}", offer_id=offer_id)

    def _get_subscription(self, subscription_id: str) -> Subscription:
        try:
            return self._subscriptions[subscription_id]
        except KeyError:
            raise NotFoundError(
                f"Subscription not found: {subscription_id}", subscription_id=subscription_id
            )

    @staticmethod
    def _no_entry(offer_id: str, day: date) -> NotFoundError:
        return NotFoundError(
            f"No daily entry for offer {offer_id} on {day.isoformat()}",
            offer_id=offer_id,
            date=day.isoformat(),
        )
