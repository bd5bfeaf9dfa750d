"""Services package for RideFare system."""

from .fare_calculator import (
    get_fare_calculator,
    FareCalculatorInterface,
    DistanceFareCalculator
)
from .recurrence import (
    get_recurrence_expander,
    RecurrenceExpander
)

__all__ = [
    'get_fare_calculator',
    'FareCalculatorInterface',
    'DistanceFareCalculator',
    'get_recurrence_expander',
    'RecurrenceExpander'
]
