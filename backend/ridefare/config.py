"""Configuration for the RideFare system."""

from decimal import Decimal
from typing import Dict
import logging
import os
from dotenv import load_dotenv

from ridefare.models import PackageSize, ServiceRate, ServiceType, VehicleType

load_dotenv()

logger = logging.getLogger(__name__)

RateTable = Dict[ServiceType, ServiceRate]

COURIER_VEHICLE_PRICES = {
    VehicleType.MOTORCYCLE: Decimal("5"),
    VehicleType.SEDAN: Decimal("8"),
    VehicleType.MPV: Decimal("10"),
    VehicleType.LARGE_MPV: Decimal("12"),
    VehicleType.COMBI: Decimal("14"),
    VehicleType.SUV: Decimal("12"),
    VehicleType.VAN: Decimal("15"),
    VehicleType.TRUCK: Decimal("20"),
}

COURIER_SIZE_MULTIPLIERS = {
    PackageSize.SMALL: Decimal("1"),
    PackageSize.MEDIUM: Decimal("1.5"),
    PackageSize.LARGE: Decimal("2"),
    PackageSize.EXTRA_LARGE: Decimal("3"),
}

# Static rate table, one entry per service type
DEFAULT_RATE_TABLE: RateTable = {
    ServiceType.TAXI: ServiceRate(
        base_fare=Decimal("2.00"),
        per_km_rate=Decimal("0.50"),
        min_distance_km=Decimal("3"),
    ),
    ServiceType.COURIER: ServiceRate(
        base_fare=Decimal("2.00"),
        per_km_rate=Decimal("0.50"),
        min_distance_km=Decimal("3"),
        vehicle_prices=COURIER_VEHICLE_PRICES,
        size_multipliers=COURIER_SIZE_MULTIPLIERS,
    ),
    ServiceType.SCHOOL_RUN: ServiceRate(
        base_fare=Decimal("2.00"),
        per_km_rate=Decimal("0.50"),
        min_distance_km=Decimal("3"),
    ),
    ServiceType.ERRANDS: ServiceRate(
        base_fare=Decimal("2.00"),
        per_km_rate=Decimal("0.50"),
        min_distance_km=Decimal("3"),
        # Flat per-task price for errands booked without a route
        task_fare=Decimal("8.00"),
    ),
    ServiceType.BULK: ServiceRate(
        base_fare=Decimal("2.00"),
        per_km_rate=Decimal("0.50"),
        min_distance_km=Decimal("3"),
    ),
}


class Settings:
    """Application settings."""

    # API Settings
    API_TITLE = "RideFare Pricing Service"
    API_VERSION = "1.0.0"
    API_DESCRIPTION = (
        "Fare estimates, recurring trip schedules and corporate credit ledger "
        "for the ride-hailing platform"
    )

    # Database Settings
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ridefare.db")

    # Cache Settings
    REDIS_URL = os.getenv("REDIS_URL", "")
    PRICING_CACHE_TTL = int(os.getenv("PRICING_CACHE_TTL", "300"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # CORS Settings
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:4028",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Booking Constraints
    MAX_TRIPS_PER_BOOKING = int(os.getenv("MAX_TRIPS_PER_BOOKING", "31"))
    DEFAULT_COMMISSION_RATE = Decimal(os.getenv("DEFAULT_COMMISSION_RATE", "0.15"))
    CURRENCY = os.getenv("CURRENCY", "USD")

    @classmethod
    def get_rate_table(cls) -> RateTable:
        """
        Get the active rate table.

        Admin overrides stored in the database (read through the pricing
        cache) replace the static defaults service by service. Falls back to
        DEFAULT_RATE_TABLE if the store is unavailable.
        """
        table = dict(DEFAULT_RATE_TABLE)
        try:
            from ridefare.cache import get_rate_with_cache

            for service_type in ServiceType:
                rate = get_rate_with_cache(service_type)
                if rate is not None:
                    table[service_type] = rate
        except Exception as e:
            logger.warning("Could not load rate table from database, using defaults: %s", e)
            return dict(DEFAULT_RATE_TABLE)
        return table

    @classmethod
    def reload_rate_table(cls):
        """Drop cached rates so the next read hits the database."""
        from ridefare.cache import get_pricing_cache

        get_pricing_cache().invalidate_cache()

    @classmethod
    def get_max_trips_per_booking(cls) -> int:
        """Booking limit from the database config, or the environment default."""
        try:
            from ridefare.database import get_db_manager

            value = get_db_manager().get_config_value("max_trips_per_booking")
            if value is not None:
                return int(value)
        except Exception as e:
            logger.warning("Cannot read max_trips_per_booking from database: %s", e)
        return cls.MAX_TRIPS_PER_BOOKING


settings = Settings()
