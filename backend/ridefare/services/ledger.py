"""Corporate credit ledger and driver earnings."""

from decimal import Decimal
from typing import Optional, Union
import logging

from ridefare.errors import InvalidInput
from ridefare.models import CorporateAccount, DriverEarnings, LedgerEntry
from ridefare.services.fare_calculator import round_money

logger = logging.getLogger(__name__)

Amount = Union[Decimal, float, int, str]

DEFAULT_COMMISSION_RATE = Decimal("0.15")


def to_amount(value: Amount, name: str = "amount") -> Decimal:
    """Validate a non-negative money amount and round it to cents."""
    try:
        amount = Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidInput(f"{name} is not a number: {value!r}") from e
    if not amount.is_finite():
        raise InvalidInput(f"{name} must be finite, got {value!r}")
    if amount < 0:
        raise InvalidInput(f"{name} cannot be negative, got {value!r}")
    try:
        return round_money(amount)
    except ArithmeticError as e:
        raise InvalidInput(f"{name} is out of range: {value!r}") from e


def has_sufficient_credit(account: CorporateAccount, amount: Amount) -> bool:
    """Whether the account balance covers the amount."""
    return account.credit_balance >= to_amount(amount)


def apply_charge(
    account: CorporateAccount, amount: Amount, ride_reference: Optional[str] = None
) -> LedgerEntry:
    """
    Deduct a completed trip's fare from the account.

    The low balance alert fires only on the charge that moves the balance
    from above the threshold to at or below it.
    """
    amount = to_amount(amount)
    before = round_money(account.credit_balance)
    after = before - amount
    threshold = account.low_balance_threshold
    alert = before > threshold >= after
    if alert:
        logger.info(
            "Low balance for company %s: %s (threshold %s)", account.company_id, after, threshold
        )
    return LedgerEntry(
        company_id=account.company_id,
        transaction_type="deduction",
        amount=amount,
        balance_before=before,
        balance_after=after,
        low_balance_alert=alert,
        ride_reference=ride_reference,
    )


def apply_top_up(account: CorporateAccount, amount: Amount) -> LedgerEntry:
    """Add purchased credit to the account."""
    amount = to_amount(amount)
    before = round_money(account.credit_balance)
    return LedgerEntry(
        company_id=account.company_id,
        transaction_type="top_up",
        amount=amount,
        balance_before=before,
        balance_after=before + amount,
    )


def driver_earnings(
    total_fare: Amount, commission_rate: Amount = DEFAULT_COMMISSION_RATE
) -> DriverEarnings:
    """Split a fare into platform commission and driver earnings."""
    fare = to_amount(total_fare, "total_fare")
    try:
        rate = Decimal(str(commission_rate))
    except ArithmeticError as e:
        raise InvalidInput(f"commission_rate is not a number: {commission_rate!r}") from e
    if not rate.is_finite() or not Decimal("0") <= rate <= Decimal("1"):
        raise InvalidInput(f"commission_rate must be between 0 and 1, got {commission_rate!r}")
    commission = round_money(fare * rate)
    return DriverEarnings(
        total_fare=fare,
        commission=commission,
        driver_earnings=fare - commission,
        commission_rate=rate,
    )
