"""
TEAM POT RECONCILIATION ENGINE

Commission shares, daily-entry compliance and subscription billing.
"""

from .models import DailyEntry, Offer, Subscription, Transaction
from .processor import ReconciliationEngine, build_engine

__all__ = ["ReconciliationEngine", "build_engine", "Offer", "DailyEntry", "Subscription", "Transaction"]
