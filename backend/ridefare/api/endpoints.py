"""API endpoints for fare estimates, recurring schedules and corporate credit."""

from decimal import Decimal
from typing import List
import logging

from fastapi import APIRouter, HTTPException, Depends

from ridefare.models import (
    BookingQuote,
    BookingQuoteRequest,
    ChargeRequest,
    CorporateAccount,
    CorporateAccountUpdate,
    DriverEarnings,
    EarningsRequest,
    ExpandRequest,
    FareBreakdown,
    FareEstimateRequest,
    LedgerEntry,
    RecurrenceResult,
    ScheduledTrip,
    ScheduleRequest,
    ServiceRateUpdate,
    TopUpRequest,
)
from ridefare.services import get_recurrence_expander, RecurrenceExpander
from ridefare.services.fare_calculator import DistanceFareCalculator, FareCalculatorInterface
from ridefare.services.ledger import driver_earnings
from ridefare.config import settings
from ridefare.database import get_db_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Fare Calculation"])


def get_calculator() -> FareCalculatorInterface:
    """
    Dependency injection for fare calculator.
    Builds a calculator over the active rate table so admin changes apply.
    """
    return DistanceFareCalculator(settings.get_rate_table())


def get_expander() -> RecurrenceExpander:
    """Dependency injection for the recurrence expander."""
    return get_recurrence_expander()


@router.post("/fares/estimate", response_model=FareBreakdown)
async def estimate_fare(
    request: FareEstimateRequest,
    calculator: FareCalculatorInterface = Depends(get_calculator)
) -> FareBreakdown:
    """
    Calculate the fare for a booking.

    Raises:
        InvalidInput / UnsupportedServiceType: mapped to 400 by the app
    """
    return calculator.compute(request.model_dump())


@router.post("/recurrence/expand", response_model=RecurrenceResult)
async def expand_recurrence(
    request: ExpandRequest,
    expander: RecurrenceExpander = Depends(get_expander)
) -> RecurrenceResult:
    """Expand a recurrence pattern into trip dates and their count."""
    return expander.expand(request.pattern)


@router.post("/recurrence/schedule", response_model=List[ScheduledTrip])
async def schedule_recurrence(
    request: ScheduleRequest,
    expander: RecurrenceExpander = Depends(get_expander)
) -> List[ScheduledTrip]:
    """Number every trip of a recurring series and attach its departure time."""
    return expander.schedule(request.pattern, request.trip_time)


@router.post("/bookings/quote", response_model=BookingQuote)
async def quote_booking(
    request: BookingQuoteRequest,
    calculator: FareCalculatorInterface = Depends(get_calculator),
    expander: RecurrenceExpander = Depends(get_expander)
) -> BookingQuote:
    """
    Price a booking submission.

    When a recurrence pattern is given, the number of trips is the number of
    dates it expands to.
    """
    fare_fields = request.fare.model_dump()
    dates = []
    if request.recurrence is not None:
        dates = expander.expand_dates(request.recurrence)
        fare_fields["number_of_trips"] = len(dates)

    max_trips = settings.get_max_trips_per_booking()
    if fare_fields["number_of_trips"] > max_trips:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {max_trips} trips allowed per booking"
        )

    breakdown = calculator.compute(fare_fields)
    return BookingQuote(fare=breakdown, dates=dates, count=breakdown.number_of_trips)


@router.get("/pricing")
async def get_pricing():
    """
    Get the active rate table.

    Returns:
        Rate of every service plus booking limits
    """
    rate_table = settings.get_rate_table()
    return {
        "rates": {
            service_type.value: rate.model_dump(mode="json")
            for service_type, rate in rate_table.items()
        },
        "currency": settings.CURRENCY,
        "max_trips_per_booking": settings.get_max_trips_per_booking(),
    }


@router.put("/pricing/{service_type}")
async def update_pricing(service_type: str, update: ServiceRateUpdate):
    """
    Update the rate of one service in the datastore.

    Args:
        service_type: Service whose rate changes
        update: Fields to change; others keep their value

    Returns:
        Updated rate
    """
    db_manager = get_db_manager()
    rate = db_manager.update_service_rate(service_type, **update.model_dump())

    # Clear cache to ensure new rates are loaded
    settings.reload_rate_table()

    return {
        "service_type": service_type,
        "rate": rate.model_dump(mode="json"),
        "message": "Service rate updated successfully"
    }


@router.post("/pricing/reset")
async def reset_pricing():
    """Restore the static default rate table."""
    get_db_manager().reset_pricing()
    settings.reload_rate_table()
    return {"message": "Rate table reset to defaults"}


@router.get("/corporate/{company_id}", response_model=CorporateAccount)
async def get_corporate_account(company_id: str) -> CorporateAccount:
    return get_db_manager().get_account(company_id)


@router.put("/corporate/{company_id}", response_model=CorporateAccount)
async def update_corporate_account(
    company_id: str, update: CorporateAccountUpdate
) -> CorporateAccount:
    """Create a corporate account or change its balance and alert threshold."""
    return get_db_manager().upsert_account(
        company_id,
        credit_balance=update.credit_balance,
        low_balance_threshold=update.low_balance_threshold,
    )


@router.post("/corporate/{company_id}/charges", response_model=LedgerEntry)
async def charge_corporate_account(company_id: str, request: ChargeRequest) -> LedgerEntry:
    """
    Deduct a completed trip from a corporate account.

    The entry's low_balance_alert tells the caller to notify the company.
    """
    entry = get_db_manager().record_charge(
        company_id, request.amount, ride_reference=request.ride_reference
    )
    if entry.low_balance_alert:
        logger.warning("Company %s dropped to %s", company_id, entry.balance_after)
    return entry


@router.post("/corporate/{company_id}/top-ups", response_model=LedgerEntry)
async def top_up_corporate_account(company_id: str, request: TopUpRequest) -> LedgerEntry:
    return get_db_manager().record_top_up(company_id, request.amount)


@router.get("/corporate/{company_id}/transactions", response_model=List[LedgerEntry])
async def list_corporate_transactions(company_id: str) -> List[LedgerEntry]:
    db_manager = get_db_manager()
    db_manager.get_account(company_id)
    return db_manager.list_transactions(company_id)


@router.post("/earnings", response_model=DriverEarnings)
async def calculate_earnings(request: EarningsRequest) -> DriverEarnings:
    """Split a fare into platform commission and driver earnings."""
    rate = request.commission_rate
    if rate is None:
        stored = get_db_manager().get_config_value("commission_rate")
        rate = Decimal(stored) if stored is not None else settings.DEFAULT_COMMISSION_RATE
    return driver_earnings(request.total_fare, rate)


@router.get("/health")
async def health_check():
    """Health check endpoint including database status."""
    db_status = "healthy"
    try:
        db_manager = get_db_manager()
        rates_count = len(db_manager.get_all_service_rates())
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        rates_count = 0

    return {
        "status": "healthy",
        "service": "RideFare Pricing Service",
        "datastore_status": db_status,
        "service_rates_count": rates_count
    }
