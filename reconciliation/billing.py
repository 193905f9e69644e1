"""
Subscription Billing Processor

One reconciliation pass over a snapshot of subscriptions: every due
subscription gets one paid expense transaction and its next payment date
moves forward by one cycle. Not a scheduler; callers decide when to run it.
"""

import asyncio
import calendar
import logging
from collections.abc import Iterable
from datetime import MAXYEAR, date

from .errors import ExternalServiceError, ReconciliationError, ValidationError
from .models import (
    BillingCharge,
    BillingCycle,
    BillingFailure,
    BillingPassResult,
    Subscription,
    TransactionStatus,
    TransactionType,
)
from .storage import Store
from .validators import InputValidator

logger = logging.getLogger(__name__)


def add_billing_cycle(previous: date, cycle: BillingCycle, anchor_day: int | None = None) -> date:
    """
    Move a payment date forward by one calendar month or year.

    The day is clamped to the end of the target month, so 2024-01-31 becomes
    2024-02-29 rather than spilling into March. `anchor_day` (usually the day
    of the first payment) restores a clamped date: with anchor 31,
    2024-02-29 becomes 2024-03-31.
    """
    if cycle == BillingCycle.MONTHLY:
        year = previous.year + previous.month // 12
        month = previous.month % 12 + 1
    else:
        year, month = previous.year + 1, previous.month

    if year > MAXYEAR:
        raise ValidationError(f"Cannot move payment date {previous.isoformat()} past year {MAXYEAR}")

    day = previous.day
    # Only a date sitting on a month end can have been clamped
    if anchor_day and anchor_day > day and day == calendar.monthrange(previous.year, previous.month)[1]:
        day = anchor_day

    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


class SubscriptionBillingProcessor:
    """Posts due subscription charges without double-charging."""

    DESCRIPTION_PREFIX = "Automatic renewal"

    def __init__(self, store: Store, validator: InputValidator | None = None):
        self.store = store
        self.validator = validator or InputValidator()

    def due_subscriptions(self, subscriptions: Iterable[Subscription], today: date) -> list[Subscription]:
        """Active, auto-pay subscriptions whose next payment date is today or earlier."""
        return [s for s in subscriptions if s.is_due(today)]

    async def run_pass(self, subscriptions: Iterable[Subscription], today: date) -> BillingPassResult:
        """
        Charge every due subscription once.

        - A subscription several cycles behind is charged for one cycle only
          and stays due for the next pass.
        - If another pass already advanced a subscription, it is reported as
          already processed and nothing is posted.
        - A failure on one subscription is logged and recorded; the rest of
          the pass carries on.
        """
        due = self.due_subscriptions(subscriptions, today)
        result = BillingPassResult(today=today)
        if not due:
            logger.info(f"Billing pass {today.isoformat()}: nothing due")
            return result

        logger.info(f"Billing pass {today.isoformat()}: {len(due)} subscription(s) due")
        outcomes = await asyncio.gather(*(self._charge(sub, today) for sub in due))

        for subscription, outcome in zip(due, outcomes):
            if isinstance(outcome, BillingCharge):
                result.charged.append(outcome)
            elif isinstance(outcome, BillingFailure):
                result.failures.append(outcome)
            else:
                result.already_processed.append(subscription.subscription_id)

        logger.info(
            f"Billing pass {today.isoformat()} done: charged={len(result.charged)} "
            f"already_processed={len(result.already_processed)} failed={len(result.failures)}"
        )
        return result

    async def _charge(self, subscription: Subscription, today: date) -> BillingCharge | BillingFailure | None:
        sub_id = subscription.subscription_id
        previous = subscription.next_payment_date
        anchor = subscription.first_payment_date.day if subscription.first_payment_date else None

        try:
            self.validator.validate_subscription(subscription)
            next_date = add_billing_cycle(previous, subscription.billing_cycle, anchor)
            transaction = await self.store.commit_billing_cycle(
                sub_id,
                expected=previous,
                next_payment_date=next_date,
                transaction_fields=self._transaction_fields(subscription, today),
            )
        except ReconciliationError as e:
            logger.error(f"Billing failed for subscription {sub_id}: {e}")
            return BillingFailure(subscription_id=sub_id, error=e)
        except Exception as e:
            logger.error(f"Billing failed for subscription {sub_id}: {e}", exc_info=True)
            return BillingFailure(
                subscription_id=sub_id,
                error=ExternalServiceError(f"Billing failed: {e}", subscription_id=sub_id),
            )

        if transaction is None:
            logger.info(f"Subscription {sub_id} already advanced past {previous.isoformat()}, skipping")
            return None

        logger.info(
            f"Charged subscription {sub_id}: {transaction.amount} "
            f"({previous.isoformat()} -> {next_date.isoformat()})"
        )
        return BillingCharge(
            subscription_id=sub_id,
            transaction=transaction,
            previous_payment_date=previous,
            next_payment_date=next_date,
            still_due=next_date <= today,
        )

    def _transaction_fields(self, subscription: Subscription, today: date) -> dict:
        return {
            "date": today,
            "type": TransactionType.EXPENSE,
            "amount": subscription.amount,
            "status": TransactionStatus.PAID,
            "description": f"{self.DESCRIPTION_PREFIX}: {subscription.name}",
            "category": subscription.category,
            "subscription_id": subscription.subscription_id,
        }
