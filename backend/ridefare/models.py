"""Models for the RideFare pricing and scheduling system."""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)

# Decimals stay exact in Python and are written out as JSON numbers.
JsonDecimal = Annotated[
    Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")
]
Money = JsonDecimal


# Upper bounds that keep booking totals within Decimal precision.
MAX_DISTANCE_KM = 50_000
MAX_TRIPS = 10_000


def _normalize_choice(value):
    if isinstance(value, str):
        return value.strip().lower().replace("-", "_")
    return value


class ServiceType(str, Enum):
    """Bookable services."""
    TAXI = "taxi"
    COURIER = "courier"
    SCHOOL_RUN = "school_run"
    ERRANDS = "errands"
    BULK = "bulk"


class VehicleType(str, Enum):
    MOTORCYCLE = "motorcycle"
    SEDAN = "sedan"
    MPV = "mpv"
    LARGE_MPV = "large_mpv"
    COMBI = "combi"
    SUV = "suv"
    VAN = "van"
    TRUCK = "truck"


class PackageSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    EXTRA_LARGE = "extra_large"


class FareRequest(BaseModel):
    """Trip geometry and service parameters for a fare estimate."""
    model_config = ConfigDict(frozen=True)

    distance_km: float = Field(
        ..., ge=0, le=MAX_DISTANCE_KM, allow_inf_nan=False,
        description="Trip distance in kilometres",
    )
    service_type: ServiceType = Field(..., description="Service being booked")
    is_round_trip: bool = Field(False, description="Return to pickup after drop-off")
    number_of_trips: int = Field(
        1, ge=1, le=MAX_TRIPS, description="Trips in the booking"
    )
    vehicle_type: VehicleType = Field(VehicleType.SEDAN, description="Requested vehicle")
    package_size: PackageSize = Field(
        PackageSize.MEDIUM, description="Package size (courier only)"
    )
    task_count: int = Field(1, ge=1, le=MAX_TRIPS, description="Number of tasks (errands only)")

    @field_validator("service_type", "vehicle_type", "package_size", mode="before")
    @classmethod
    def normalize_choice(cls, v):
        return _normalize_choice(v)


class FareEstimateRequest(FareRequest):
    """
    Fare request as received by the API.

    service_type stays a plain string here so an unknown service is reported
    by the calculator as UnsupportedServiceType.
    """
    service_type: str = Field(..., description="Service being booked")


class FareBreakdown(BaseModel):
    """
    Fare estimate for a whole booking.

    The components cover every trip of the booking, so
    total_fare == base_fare + distance_charge + sum(surcharges).
    """
    model_config = ConfigDict(frozen=True)

    service_type: ServiceType
    base_fare: Money
    distance_charge: Money
    surcharges: Dict[str, Money] = Field(default_factory=dict)
    single_trip_fare: Money = Field(..., description="Fare for one trip")
    number_of_trips: int = Field(..., ge=1)
    total_fare: Money


class SpecificDates(BaseModel):
    """Hand-picked trip dates."""
    type: Literal["specific_dates"] = "specific_dates"
    dates: List[dt.date] = Field(..., min_length=1)
    time: Optional[dt.time] = Field(None, description="Time of day for every trip")


class _MonthPattern(BaseModel):
    month: Optional[str] = Field(
        None, description="Calendar month as YYYY-MM; defaults to the current month"
    )
    time: Optional[dt.time] = Field(None, description="Time of day for every trip")

    @field_validator("month")
    @classmethod
    def validate_month(cls, v):
        if v is None:
            return v
        parts = v.split("-")
        if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2:
            raise ValueError(f"Month must be formatted YYYY-MM, got {v!r}")
        if not (parts[0].isdigit() and parts[1].isdigit()):
            raise ValueError(f"Month must be formatted YYYY-MM, got {v!r}")
        if not 1 <= int(parts[1]) <= 12:
            raise ValueError(f"Month number out of range in {v!r}")
        return v


class Weekdays(_MonthPattern):
    """Every Monday to Friday of a month."""
    type: Literal["weekdays"] = "weekdays"


class Weekends(_MonthPattern):
    """Every Saturday and Sunday of a month."""
    type: Literal["weekends"] = "weekends"


RecurrencePattern = Annotated[
    Union[SpecificDates, Weekdays, Weekends], Field(discriminator="type")
]


class RecurrenceResult(BaseModel):
    """Concrete trip dates produced by a recurrence pattern."""
    dates: List[dt.date]
    count: int


class ExpandRequest(BaseModel):
    pattern: RecurrencePattern


class ScheduleRequest(BaseModel):
    pattern: RecurrencePattern
    trip_time: Optional[dt.time] = None


class ScheduledTrip(BaseModel):
    """One occurrence of a recurring series."""
    series_trip_number: int = Field(..., ge=1)
    scheduled_datetime: dt.datetime
    total_trips_in_series: int
    remaining_trips_in_series: int


class ServiceRate(BaseModel):
    """Rate table entry for one service type."""
    model_config = ConfigDict(frozen=True)

    base_fare: Money = Field(..., ge=0, description="Minimum fare per trip")
    per_km_rate: Money = Field(..., ge=0, description="Charge per km after the minimum")
    min_distance_km: JsonDecimal = Field(..., ge=0, description="Distance covered by the base fare")
    round_trip_multiplier: JsonDecimal = Field(Decimal("2"), ge=1)
    task_fare: Optional[Money] = Field(
        None, ge=0, description="Flat price per task for flat-rate services"
    )
    vehicle_prices: Dict[VehicleType, Money] = Field(default_factory=dict)
    size_multipliers: Dict[PackageSize, JsonDecimal] = Field(default_factory=dict)

    @property
    def is_flat_rate(self) -> bool:
        return self.task_fare is not None


class ServiceRateUpdate(BaseModel):
    """Partial update of a rate table entry."""
    base_fare: Optional[Decimal] = Field(None, ge=0)
    per_km_rate: Optional[Decimal] = Field(None, ge=0)
    min_distance_km: Optional[Decimal] = Field(None, ge=0)
    round_trip_multiplier: Optional[Decimal] = Field(None, ge=1)
    task_fare: Optional[Decimal] = Field(None, ge=0)
    vehicle_prices: Optional[Dict[VehicleType, Decimal]] = None
    size_multipliers: Optional[Dict[PackageSize, Decimal]] = None

    @field_validator("vehicle_prices", "size_multipliers", mode="before")
    @classmethod
    def normalize_keys(cls, v):
        if isinstance(v, dict):
            return {_normalize_choice(k): price for k, price in v.items()}
        return v


class BookingQuoteRequest(BaseModel):
    """Fare request plus an optional recurrence pattern."""
    fare: FareEstimateRequest
    recurrence: Optional[RecurrencePattern] = None


class BookingQuote(BaseModel):
    fare: FareBreakdown
    dates: List[dt.date] = Field(default_factory=list)
    count: int = Field(..., ge=1, description="Number of trips priced")


class CorporateAccount(BaseModel):
    """Prepaid credit held by a corporate client."""
    company_id: str
    credit_balance: Money = Decimal("0.00")
    low_balance_threshold: Money = Decimal("100.00")


class CorporateAccountUpdate(BaseModel):
    credit_balance: Optional[Decimal] = None
    low_balance_threshold: Optional[Decimal] = Field(None, ge=0)


class LedgerEntry(BaseModel):
    """A single movement on a corporate credit account."""
    model_config = ConfigDict(frozen=True)

    company_id: str
    transaction_type: Literal["deduction", "top_up"]
    amount: Money
    balance_before: Money
    balance_after: Money
    low_balance_alert: bool = False
    ride_reference: Optional[str] = None


class ChargeRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    ride_reference: Optional[str] = None


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)


class EarningsRequest(BaseModel):
    total_fare: Decimal = Field(..., ge=0)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=1)


class DriverEarnings(BaseModel):
    """Split of a fare between platform commission and driver."""
    total_fare: Money
    commission: Money
    driver_earnings: Money
    commission_rate: Decimal
