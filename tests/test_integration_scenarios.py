"""
Integration Test Scenarios for the Team Pot Reconciliation Engine

End-to-end scenarios through the engine facade: a team logs its days,
compliance is checked, commissions are paid out and subscriptions renew.

Run with: python -m pytest tests/test_integration_scenarios.py -v

IMPORTANT: This file has a companion business summary document:
    docs/test_scenarios_business_summary.md

When adding or modifying tests, please update the business summary document
to keep them in sync. The summary provides plain-English explanations of
each test scenario for business stakeholders.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from reconciliation import ReconciliationEngine
from reconciliation.models import Offer, Subscription


def launch_offer(**overrides):
    data = {
        "id": "launch",
        "name": "Course Launch",
        "status": "ACTIVE",
        "payout_model": "PROFIT",
        "start_date": "2024-01-10",
        "team_pot_percent": 30,
        "participants": [
            {"member_id": "ana", "share_percent": 50, "role": "media buyer"},
            {"member_id": "bruno", "share_percent": 30, "role": "copywriter"},
            {"member_id": "carla", "share_percent": 20, "role": "designer"},
        ],
    }
    data.update(overrides)
    return data


class TestComplianceLifecycle:
    """A new offer goes from fully missing to fully compliant."""

    @pytest.fixture
    def engine(self):
        engine = ReconciliationEngine()
        asyncio.run(engine.store.add_offer(Offer.from_dict(launch_offer())))
        return engine

    def test_new_offer_reports_every_day_missing(self, engine):
        """Offer started on the 10th, checked on the 15th: six days to log."""
        offers = asyncio.run(engine.store.list_offers())
        report = engine.scan_compliance(offers, date(2024, 1, 15))

        assert report.pending_count == 6
        assert report.compliance_rate == 0
        assert len(report.due_today) == 1
        assert len(report.overdue) == 5

    def test_logging_every_day_reaches_full_compliance(self, engine):
        """After all six days are resolved the offer is compliant."""

        async def log_days():
            for day in range(10, 16):
                await engine.resolve_daily_entry("launch", date(2024, 1, day), Decimal("1000"), Decimal("400"))

        asyncio.run(log_days())
        report = engine.scan_compliance(asyncio.run(engine.store.list_offers()), date(2024, 1, 15))

        assert report.pending_count == 0
        assert report.compliance_rate == 100

    def test_pausing_offer_clears_pending_days(self, engine):
        """A paused offer is not expected to log anything."""
        paused = Offer.from_dict(launch_offer(status="PAUSED"))
        report = engine.scan_compliance([paused], date(2024, 1, 15))

        assert report.pending_count == 0
        assert report.compliance_rate == 100


class TestTeamPayout:
    """Commissions for a team over a period."""

    @pytest.fixture
    def engine(self):
        return ReconciliationEngine()

    def test_profit_offer_period_payout(self, engine):
        """Three days of a PROFIT offer, including a losing day."""
        offer = launch_offer(
            daily_entries=[
                {"date": "2024-01-10", "revenue": 2000, "ads_spend": 800},
                {"date": "2024-01-11", "revenue": 500, "ads_spend": 700},
                {"date": "2024-01-12", "revenue": 1500, "ads_spend": 500},
            ]
        )
        result = engine.offer_summary_from_dict({"offer": offer})

        # Net profit 1200 - 200 + 1000 = 2000; 30% pot = 600
        assert result["total_net_profit"] == "2000.00"
        assert result["total_team_payout"] == "600.00"
        totals = {p["member_id"]: p["total"] for p in result["participants"]}
        assert totals == {"ana": "300.00", "bruno": "180.00", "carla": "120.00"}

    def test_pot_change_recomputes_history(self, engine):
        """Raising the pot changes every past day's payout."""
        entries = [{"date": "2024-01-10", "revenue": 1000, "ads_spend": 0, "team_share": 300}]
        result = engine.offer_summary_from_dict({"offer": launch_offer(team_pot_percent=40, daily_entries=entries)})

        assert result["total_team_payout"] == "400.00"

    def test_incomplete_split_is_flagged(self, engine):
        """Shares adding up to 80% still pay out but carry a warning."""
        participants = [{"member_id": "ana", "share_percent": 50}, {"member_id": "bruno", "share_percent": 30}]
        result = engine.compute_shares_from_dict(
            {
                "offer": launch_offer(participants=participants),
                "entry": {"date": "2024-01-10", "revenue": 1000, "ads_spend": 0},
            }
        )

        assert result["team_share"] == "300.00"
        assert result["warnings"][0]["code"] == "validation_error"


class TestSubscriptionRenewals:
    """Auto-pay subscriptions renew once per cycle."""

    @pytest.fixture
    def engine(self):
        engine = ReconciliationEngine()

        async def seed():
            await engine.store.add_subscription(
                Subscription.from_dict(
                    {
                        "id": "hosting",
                        "name": "Hosting",
                        "amount": 100,
                        "billing_cycle": "MONTHLY",
                        "next_payment_date": "2024-01-31",
                        "first_payment_date": "2023-10-31",
                        "auto_pay": True,
                        "category": "infra",
                    }
                )
            )
            await engine.store.add_subscription(
                Subscription.from_dict(
                    {
                        "id": "domain",
                        "name": "Domain",
                        "amount": 60,
                        "billing_cycle": "YEARLY",
                        "next_payment_date": "2024-06-01",
                        "auto_pay": True,
                    }
                )
            )

        asyncio.run(seed())
        return engine

    def test_month_end_renewal(self, engine):
        """Due on Jan 31, processed Feb 1: one expense, next due Feb 29."""
        result = asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-02-01"}))

        assert result["due_count"] == 1
        charge = result["charged"][0]
        assert charge["transaction"]["amount"] == "100.00"
        assert charge["transaction"]["date"] == "2024-02-01"
        assert charge["next_payment_date"] == "2024-02-29"

    def test_repeat_pass_does_not_double_charge(self, engine):
        """Running the pass twice on the same day posts one expense."""
        asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-02-01"}))
        asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-02-01"}))

        assert len(asyncio.run(engine.store.list_transactions())) == 1

    def test_renewal_returns_to_month_end(self, engine):
        """After February, a subscription first paid on the 31st is due on Mar 31."""
        asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-02-01"}))
        result = asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-03-01"}))

        assert result["charged"][0]["next_payment_date"] == "2024-03-31"

    def test_catch_up_one_cycle_per_pass(self, engine):
        """A long-overdue subscription is charged one cycle per pass."""
        first = asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-05-01"}))
        second = asyncio.run(engine.run_billing_pass_from_dict({"today": "2024-05-01"}))

        assert first["charged"][0]["still_due"] is True
        assert second["charged"][0]["next_payment_date"] == "2024-03-31"
        assert len(asyncio.run(engine.store.list_transactions())) == 2
