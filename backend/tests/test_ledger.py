"""Unit tests for the corporate credit ledger and driver earnings."""

import tempfile
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event

from ridefare.main import app
from ridefare.database import DatabaseManager
from ridefare.errors import AccountNotFound, InvalidInput, UnsupportedServiceType
from ridefare.models import CorporateAccount, ServiceType, VehicleType
from ridefare.services.ledger import (
    apply_charge,
    apply_top_up,
    driver_earnings,
    has_sufficient_credit,
)

client = TestClient(app)


def account(balance="150.00", threshold="100.00"):
    return CorporateAccount(
        company_id="acme",
        credit_balance=Decimal(balance),
        low_balance_threshold=Decimal(threshold),
    )


class TestLedger:
    """Test balance calculations."""

    def test_charge_deducts_amount(self):
        entry = apply_charge(account(), Decimal("20.50"), ride_reference="ride-1")
        assert entry.transaction_type == "deduction"
        assert entry.balance_before == Decimal("150.00")
        assert entry.balance_after == Decimal("129.50")
        assert entry.ride_reference == "ride-1"
        assert entry.low_balance_alert is False

    def test_alert_when_crossing_threshold(self):
        entry = apply_charge(account(), 60)
        assert entry.balance_after == Decimal("90.00")
        assert entry.low_balance_alert is True

    def test_alert_when_landing_on_threshold(self):
        entry = apply_charge(account(), 50)
        assert entry.balance_after == Decimal("100.00")
        assert entry.low_balance_alert is True

    def test_no_repeat_alert_below_threshold(self):
        entry = apply_charge(account(balance="80.00"), 10)
        assert entry.balance_after == Decimal("70.00")
        assert entry.low_balance_alert is False

    def test_charge_can_overdraw(self):
        entry = apply_charge(account(balance="5.00"), 12)
        assert entry.balance_after == Decimal("-7.00")

    def test_negative_charge_rejected(self):
        with pytest.raises(InvalidInput):
            apply_charge(account(), -5)

    def test_non_numeric_charge_rejected(self):
        with pytest.raises(InvalidInput):
            apply_charge(account(), "lots")

    @pytest.mark.parametrize("amount", ["Infinity", "NaN", "1e30"])
    def test_out_of_range_charge_rejected(self, amount):
        with pytest.raises(InvalidInput):
            apply_charge(account(), amount)

    def test_top_up(self):
        entry = apply_top_up(account(balance="10.00"), "40")
        assert entry.transaction_type == "top_up"
        assert entry.balance_after == Decimal("50.00")
        assert entry.low_balance_alert is False

    def test_has_sufficient_credit(self):
        assert has_sufficient_credit(account(), Decimal("150.00"))
        assert not has_sufficient_credit(account(), Decimal("150.01"))
        assert not has_sufficient_credit(account(balance="0"), 1)


class TestDriverEarnings:
    """Test commission split."""

    def test_default_commission(self):
        earnings = driver_earnings(Decimal("100"))
        assert earnings.commission == Decimal("15.00")
        assert earnings.driver_earnings == Decimal("85.00")
        assert earnings.commission_rate == Decimal("0.15")

    def test_commission_rounds_half_up(self):
        earnings = driver_earnings("10.05")
        # 10.05 x 0.15 = 1.5075
        assert earnings.commission == Decimal("1.51")
        assert earnings.driver_earnings == Decimal("8.54")
        assert earnings.commission + earnings.driver_earnings == earnings.total_fare

    def test_invalid_commission_rate(self):
        with pytest.raises(InvalidInput):
            driver_earnings(100, commission_rate="1.5")


class TestDatabase:
    """Test datastore functionality against a private database."""

    def setup_method(self):
        db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.db = DatabaseManager(f"sqlite:///{db_file.name}")
        self.db.init_default_pricing()

    def test_default_rates_seeded(self):
        rates = self.db.get_all_service_rates()
        assert set(rates) == set(ServiceType)
        assert rates[ServiceType.TAXI].base_fare == Decimal("2.00")
        assert rates[ServiceType.ERRANDS].task_fare == Decimal("8.00")
        assert rates[ServiceType.COURIER].vehicle_prices[VehicleType.LARGE_MPV] == Decimal("12")

    def test_seeding_is_idempotent(self):
        self.db.init_default_pricing()
        assert len(self.db.get_all_service_rates()) == len(ServiceType)

    def test_update_service_rate(self):
        rate = self.db.update_service_rate("school-run", per_km_rate=Decimal("0.75"))
        assert rate.per_km_rate == Decimal("0.75")
        assert rate.base_fare == Decimal("2.00")
        assert self.db.get_service_rate(ServiceType.SCHOOL_RUN).per_km_rate == Decimal("0.75")

    def test_update_unknown_service(self):
        with pytest.raises(UnsupportedServiceType):
            self.db.update_service_rate("boat", base_fare=Decimal("1"))

    def test_reset_pricing(self):
        self.db.update_service_rate("taxi", base_fare=Decimal("9"))
        self.db.reset_pricing()
        assert self.db.get_service_rate("taxi").base_fare == Decimal("2.00")

    def test_config_values(self):
        assert self.db.get_config_value("max_trips_per_booking") == "31"
        assert self.db.get_config_value("non_existent_key") is None
        self.db.set_config_value("max_trips_per_booking", "40")
        assert self.db.get_config_value("max_trips_per_booking") == "40"

    def test_charge_updates_balance_and_logs(self):
        self.db.upsert_account("acme", credit_balance=Decimal("150"))
        entry = self.db.record_charge("acme", Decimal("60"), ride_reference="ride-9")
        assert entry.low_balance_alert is True
        assert self.db.get_account("acme").credit_balance == Decimal("90.00")

        self.db.record_top_up("acme", Decimal("25"))
        transactions = self.db.list_transactions("acme")
        assert [t.transaction_type for t in transactions] == ["deduction", "top_up"]
        assert transactions[0].ride_reference == "ride-9"
        assert transactions[1].balance_after == Decimal("115.00")

    def test_concurrent_charges_both_apply(self):
        """A charge committed by another process between read and write is kept."""
        self.db.upsert_account("acme", credit_balance=Decimal("150"))
        other = DatabaseManager(self.db.database_url)
        other_entries = []

        def charge_from_other_process(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("UPDATE corporate_accounts") and not other_entries:
                other_entries.append(other.record_charge("acme", Decimal("60")))

        event.listen(self.db.engine, "before_cursor_execute", charge_from_other_process)
        try:
            entry = self.db.record_charge("acme", Decimal("60"))
        finally:
            event.remove(self.db.engine, "before_cursor_execute", charge_from_other_process)

        assert other_entries[0].balance_after == Decimal("90.00")
        assert entry.balance_before == Decimal("90.00")
        assert entry.balance_after == Decimal("30.00")
        assert entry.low_balance_alert is False
        assert self.db.get_account("acme").credit_balance == Decimal("30.00")
        transactions = self.db.list_transactions("acme")
        assert [t.balance_after for t in transactions] == [Decimal("90.00"), Decimal("30.00")]

    def test_missing_account(self):
        with pytest.raises(AccountNotFound):
            self.db.get_account("nobody")
        with pytest.raises(AccountNotFound):
            self.db.record_charge("nobody", Decimal("1"))


class TestCorporateAPI:
    """Test corporate credit endpoints."""

    def test_charge_flow(self):
        response = client.put(
            "/api/corporate/globex",
            json={"credit_balance": 150, "low_balance_threshold": 100},
        )
        assert response.status_code == 200
        assert response.json()["credit_balance"] == 150.0

        response = client.post("/api/corporate/globex/charges", json={"amount": 60})
        assert response.status_code == 200
        data = response.json()
        assert data["balance_after"] == 90.0
        assert data["low_balance_alert"] is True

        response = client.post("/api/corporate/globex/top-ups", json={"amount": 10})
        assert response.json()["balance_after"] == 100.0

        response = client.get("/api/corporate/globex/transactions")
        assert response.status_code == 200
        assert len(response.json()) == 2

        response = client.get("/api/corporate/globex")
        assert response.json()["credit_balance"] == 100.0

    def test_unknown_account(self):
        assert client.get("/api/corporate/initech").status_code == 404
        response = client.post("/api/corporate/initech/charges", json={"amount": 5})
        assert response.status_code == 404

    def test_charge_must_be_positive(self):
        client.put("/api/corporate/umbrella", json={"credit_balance": 10})
        response = client.post("/api/corporate/umbrella/charges", json={"amount": -5})
        assert response.status_code == 422
