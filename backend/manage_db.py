#!/usr/bin/env python3
"""
Database management utility for RideFare system.

Usage:
    python manage_db.py init      - Initialize database with default rates
    python manage_db.py show      - Show all service rates
    python manage_db.py update    - Update a service rate
    python manage_db.py reset     - Reset to default rates
"""

import sys
import os
from decimal import Decimal, InvalidOperation
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from ridefare.cache import PricingCache
from ridefare.config import settings
from ridefare.database import DatabaseManager
from ridefare.errors import PricingError
from ridefare.models import ServiceType


def init_database():
    """Initialize database with default service rates."""
    print("Initializing database...")
    db = DatabaseManager()
    db.init_default_pricing()
    print("Database initialized successfully!")
    show_rates()


def show_rates():
    """Display all service rates."""
    db = DatabaseManager()
    rates = db.get_all_service_rates()

    print("\n" + "="*66)
    print("CURRENT SERVICE RATES IN LOCAL DATASTORE")
    print("="*66)
    print(f"{'Service':<12} {'Base':>8} {'Per km':>8} {'Free km':>8} {'Round x':>8} {'Task':>8}")
    print("-"*66)

    for service_type, rate in sorted(rates.items(), key=lambda item: item[0].value):
        task = f"{rate.task_fare:.2f}" if rate.task_fare is not None else "-"
        print(
            f"{service_type.value:<12} {rate.base_fare:>8.2f} {rate.per_km_rate:>8.2f} "
            f"{rate.min_distance_km:>8.1f} {rate.round_trip_multiplier:>8.2f} {task:>8}"
        )
        if rate.vehicle_prices:
            prices = ", ".join(f"{k.value}={v}" for k, v in rate.vehicle_prices.items())
            print(f"{'':<12} vehicles: {prices}")
        if rate.size_multipliers:
            sizes = ", ".join(f"{k.value}=x{v}" for k, v in rate.size_multipliers.items())
            print(f"{'':<12} sizes: {sizes}")

    print("-"*66)
    print(f"Total services: {len(rates)}")

    max_trips = db.get_config_value("max_trips_per_booking")
    commission = db.get_config_value("commission_rate")
    print(f"\nMax trips per booking: {max_trips}")
    print(f"Commission rate: {commission}")
    print("="*66)


def invalidate_cached_rates():
    """Drop rates cached in Redis so running services read the new values."""
    cache = PricingCache(redis_url=settings.REDIS_URL or None, ttl=settings.PRICING_CACHE_TTL)
    cache.invalidate_cache()


def _read_decimal(prompt: str):
    raw = input(prompt).strip()
    if not raw:
        return None
    return Decimal(raw)


def update_rate():
    """Interactive service rate update."""
    print("\nUPDATE SERVICE RATE")
    print("-"*30)
    print(f"Services: {', '.join(s.value for s in ServiceType)}")

    try:
        db = DatabaseManager()
        service_type = input("Service type: ").strip()
        print("Leave a field empty to keep its current value.")
        fields = {
            "base_fare": _read_decimal("Base fare: "),
            "per_km_rate": _read_decimal("Rate per km: "),
            "min_distance_km": _read_decimal("Distance included in base fare (km): "),
            "round_trip_multiplier": _read_decimal("Round trip multiplier: "),
        }
        rate = db.update_service_rate(service_type, **fields)
        invalidate_cached_rates()
        print(f"\nUpdated {service_type}: base {rate.base_fare}, {rate.per_km_rate}/km")
    except (InvalidOperation, PricingError) as e:
        print(f"Error: {e}")
    except ValueError as e:
        print(f"Invalid value: {e}")


def reset_database():
    """Reset database to default service rates."""
    confirm = input("Are you sure you want to reset all rates to defaults? (yes/no): ")
    if confirm.lower() == "yes":
        db = DatabaseManager()
        db.reset_pricing()
        invalidate_cached_rates()
        print("Rates reset to defaults.")
        show_rates()
    else:
        print("Reset cancelled.")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    command = sys.argv[1].lower()

    commands = {
        "init": init_database,
        "show": show_rates,
        "update": update_rate,
        "reset": reset_database,
    }

    if command in commands:
        commands[command]()
    else:
        print(f"Unknown command: {command}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
