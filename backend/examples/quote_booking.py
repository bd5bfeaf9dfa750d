"""
Utility for quoting bookings against a running RideFare service.

Shows how a booking form would price a trip, expand a recurring schedule
and update a service rate without code changes.
"""

import json
import sys

import requests


def quote_via_api(base_url: str = "http://localhost:8000",
                  fare: dict = None,
                  recurrence: dict = None):
    """
    Quote a booking via the API.

    Args:
        base_url: API base URL
        fare: Fare request fields (distance_km, service_type, ...)
        recurrence: Optional recurrence pattern
    """
    if not fare:
        print("Error: fare request is required")
        return None

    payload = {"fare": fare}
    if recurrence:
        payload["recurrence"] = recurrence

    response = requests.post(f"{base_url}/api/bookings/quote", json=payload, timeout=10)
    if response.status_code != 200:
        print(f"✗ Quote failed ({response.status_code}): {response.text}")
        return None

    quote = response.json()
    breakdown = quote["fare"]
    print(f"✓ {breakdown['service_type']} booking, {quote['count']} trip(s)")
    print(f"  Base fare:       ${breakdown['base_fare']:.2f}")
    print(f"  Distance charge: ${breakdown['distance_charge']:.2f}")
    for name, amount in breakdown["surcharges"].items():
        print(f"  {name}: ${amount:.2f}")
    print(f"  Per trip:        ${breakdown['single_trip_fare']:.2f}")
    print(f"  Total:           ${breakdown['total_fare']:.2f}")
    if quote["dates"]:
        print(f"  Dates: {', '.join(quote['dates'])}")
    return quote


def update_rate_via_api(base_url: str, service_type: str, fields: dict):
    """Change a service rate and show the resulting rate table entry."""
    response = requests.put(f"{base_url}/api/pricing/{service_type}", json=fields, timeout=10)
    if response.status_code == 200:
        print(f"✓ {service_type} rate updated")
        print(json.dumps(response.json()["rate"], indent=2))
    else:
        print(f"✗ Failed to update rate: {response.text}")


def show_usage():
    """Show usage instructions."""
    print("=" * 60)
    print("BOOKING QUOTE UTILITY")
    print("=" * 60)
    print("\nUsage:")
    print("  python quote_booking.py taxi <km>               # Single taxi trip")
    print("  python quote_booking.py weekdays <km> <YYYY-MM>  # School run every weekday")
    print("  python quote_booking.py rate <service> <per_km>  # Change per-km rate")
    print("\nExample - quote via curl:")
    print('  curl -X POST http://localhost:8000/api/bookings/quote \\')
    print('    -H "Content-Type: application/json" \\')
    print('    -d \'{"fare": {"distance_km": 10, "service_type": "taxi"}}\'')
    print("\n" + "=" * 60)


if __name__ == "__main__":
    base = "http://localhost:8000"
    args = sys.argv[1:]

    if len(args) == 2 and args[0] == "taxi":
        quote_via_api(base, fare={"distance_km": float(args[1]), "service_type": "taxi"})
    elif len(args) == 3 and args[0] == "weekdays":
        quote_via_api(
            base,
            fare={"distance_km": float(args[1]), "service_type": "school_run", "is_round_trip": True},
            recurrence={"type": "weekdays", "month": args[2]},
        )
    elif len(args) == 3 and args[0] == "rate":
        update_rate_via_api(base, args[1], {"per_km_rate": args[2]})
    else:
        show_usage()
