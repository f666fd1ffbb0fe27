"""Policy subpackage - booking composition and availability checks."""
from .composition_validator import CompositionValidator, ValidationResult
from .availability import (
    AvailabilityResult, BlockedDateRange, BlockedDateResult,
    check_availability, check_blocked_date, list_blocked_dates,
)

__all__ = [
    'CompositionValidator', 'ValidationResult', 'AvailabilityResult', 'BlockedDateRange',
    'BlockedDateResult', 'check_availability', 'check_blocked_date', 'list_blocked_dates',
]
