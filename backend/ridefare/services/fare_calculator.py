"""Fare calculation service implementing business logic."""

from abc import ABC, abstractmethod
import decimal
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable
import logging

from pydantic import ValidationError

from ridefare.config import DEFAULT_RATE_TABLE, RateTable
from ridefare.errors import InvalidInput, UnsupportedServiceType
from ridefare.models import (
    FareBreakdown,
    FareEstimateRequest,
    FareRequest,
    ServiceRate,
    ServiceType,
    VehicleType,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

FareInput = Union[FareRequest, Mapping[str, Any]]


def round_money(value: Decimal) -> Decimal:
    """Quantize to cents using half-up rounding."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def coerce_fare_request(request: FareInput) -> FareRequest:
    """
    Validate a mapping into a FareRequest.

    Raises:
        UnsupportedServiceType: service_type is not recognized
        InvalidInput: any other field is malformed
    """
    if isinstance(request, FareEstimateRequest):
        request = request.model_dump()
    if isinstance(request, FareRequest):
        return request
    if not isinstance(request, Mapping):
        raise InvalidInput(f"Expected a fare request, got {type(request).__name__}")
    try:
        return FareRequest.model_validate(request)
    except ValidationError as e:
        for error in e.errors():
            if error["loc"] and error["loc"][0] == "service_type" and error["type"] != "missing":
                raise UnsupportedServiceType(request.get("service_type")) from e
        raise InvalidInput(_describe_errors(e)) from e


def _describe_errors(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors()
    )


@runtime_checkable
class FareCalculatorInterface(Protocol):
    """
    Interface for fare calculation.
    This protocol defines the contract that all fare calculators must follow.
    """

    def compute(self, request: FareInput) -> FareBreakdown:
        """Calculate the fare breakdown for a booking."""
        ...


class BaseFareCalculator(ABC):
    """Abstract base class for fare calculators."""

    @abstractmethod
    def price_single_trip(self, request: FareRequest) -> Dict[str, Any]:
        """
        Price one trip of a booking.
        Must return the cent-rounded base_fare, distance_charge and surcharges.
        """
        pass

    def compute(self, request: FareInput) -> FareBreakdown:
        """
        Calculate the fare for a whole booking.

        The single trip fare is multiplied by number_of_trips. Components are
        scaled by the same factor so they still add up to the total.
        """
        request = coerce_fare_request(request)
        try:
            trip = self.price_single_trip(request)

            trips = Decimal(request.number_of_trips)
            single_trip_fare = (
                trip["base_fare"] + trip["distance_charge"]
                + sum(trip["surcharges"].values(), Decimal("0"))
            )
            breakdown = FareBreakdown(
                service_type=request.service_type,
                base_fare=trip["base_fare"] * trips,
                distance_charge=trip["distance_charge"] * trips,
                surcharges={name: amount * trips for name, amount in trip["surcharges"].items()},
                single_trip_fare=single_trip_fare,
                number_of_trips=request.number_of_trips,
                total_fare=round_money(single_trip_fare * trips),
            )
        except decimal.InvalidOperation as e:
            raise InvalidInput(
                f"Fare out of range for {request.distance_km} km x {request.number_of_trips} trips"
            ) from e
        logger.debug("Computed fare %s for %s", breakdown.total_fare, request)
        return breakdown


class DistanceFareCalculator(BaseFareCalculator):
    """
    Rate-table fare calculator.

    Every service charges a base fare that covers the first min_distance_km,
    then per_km_rate for the rest. Couriers add a package surcharge of
    vehicle price times size multiplier; round trips add the distance charge
    again (times round_trip_multiplier - 1). Errands charge the base fare per
    task, or the flat task fare when no distance is given.
    """

    def __init__(self, rate_table: Optional[RateTable] = None):
        self.rate_table = rate_table if rate_table is not None else DEFAULT_RATE_TABLE

    def get_rate(self, service_type: ServiceType) -> ServiceRate:
        rate = self.rate_table.get(service_type)
        if rate is None:
            raise UnsupportedServiceType(getattr(service_type, "value", service_type))
        return rate

    def price_single_trip(self, request: FareRequest) -> Dict[str, Any]:
        rate = self.get_rate(request.service_type)
        distance = Decimal(str(request.distance_km))
        if not distance.is_finite():
            raise InvalidInput(f"distance_km must be finite, got {request.distance_km}")
        if distance < 0:
            raise InvalidInput(f"distance_km cannot be negative, got {request.distance_km}")

        surcharges: Dict[str, Decimal] = {}

        if distance == 0:
            if not rate.is_flat_rate:
                raise InvalidInput(
                    f"distance_km must be positive for {request.service_type.value} fares"
                )
            base_fare = round_money(rate.task_fare * request.task_count)
            distance_charge = Decimal("0.00")
        else:
            tasks = request.task_count if request.service_type == ServiceType.ERRANDS else 1
            base_fare = round_money(rate.base_fare * tasks)
            chargeable_km = max(Decimal("0"), distance - rate.min_distance_km)
            distance_charge = round_money(rate.per_km_rate * chargeable_km)

        if request.service_type == ServiceType.COURIER:
            surcharges["package"] = self._package_surcharge(rate, request)

        if request.is_round_trip and distance_charge > 0:
            surcharges["round_trip"] = round_money(
                distance_charge * (rate.round_trip_multiplier - 1)
            )

        return {
            "base_fare": base_fare,
            "distance_charge": distance_charge,
            "surcharges": surcharges,
        }

    @staticmethod
    def _package_surcharge(rate: ServiceRate, request: FareRequest) -> Decimal:
        vehicle_price = rate.vehicle_prices.get(request.vehicle_type)
        if vehicle_price is None:
            vehicle_price = rate.vehicle_prices.get(VehicleType.SEDAN, Decimal("0"))
        multiplier = rate.size_multipliers.get(request.package_size, Decimal("1"))
        return round_money(vehicle_price * multiplier)


def format_price(amount: Optional[Decimal], currency: str = "USD") -> str:
    """Format a money amount for display."""
    if amount is None:
        return "N/A"
    symbol = "$" if currency == "USD" else f"{currency} "
    return f"{symbol}{round_money(Decimal(str(amount)))}"


def describe_breakdown(breakdown: FareBreakdown, currency: str = "USD") -> List[str]:
    """Human-readable lines for a booking confirmation."""
    lines = [f"Base fare: {format_price(breakdown.base_fare, currency)}"]
    if breakdown.distance_charge > 0:
        lines.append(f"Distance charge: {format_price(breakdown.distance_charge, currency)}")
    for name, amount in breakdown.surcharges.items():
        label = name.replace("_", " ").capitalize()
        lines.append(f"{label}: {format_price(amount, currency)}")
    if breakdown.number_of_trips > 1:
        lines.append(
            f"{breakdown.number_of_trips} trips x "
            f"{format_price(breakdown.single_trip_fare, currency)}"
        )
    lines.append(f"Total: {format_price(breakdown.total_fare, currency)}")
    return lines


# Singleton instance for default calculator
_default_calculator: Optional[FareCalculatorInterface] = None


def get_fare_calculator() -> FareCalculatorInterface:
    """
    Get the default fare calculator instance (Singleton pattern).

    Uses the static rate table; the API builds its own calculator from the
    active table so admin overrides apply.
    """
    global _default_calculator
    if _default_calculator is None:
        _default_calculator = DistanceFareCalculator()
    return _default_calculator
