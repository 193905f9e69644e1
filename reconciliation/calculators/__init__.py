"""
Calculators Package

Pure calculation components. None of them perform I/O or read the clock.
"""

from .commission import CommissionCalculator
from .compliance import ComplianceScanner
from .ledger import LedgerSummaryCalculator
from .summary import OfferSummaryCalculator

__all__ = [
    "CommissionCalculator",
    "ComplianceScanner",
    "LedgerSummaryCalculator",
    "OfferSummaryCalculator",
]
