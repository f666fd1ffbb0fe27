"""
Exception taxonomy for the package pricing core.

Booking rule errors are user-facing and recoverable. Validators and the
availability gate collect them in result objects instead of raising, so a
caller can render every violation at once.
"""
from typing import Optional


class PricingError(Exception):
    """Base exception for package pricing errors."""
    pass


class InvalidCompositionError(PricingError):
    """Composition references an unknown tier or carries a negative quantity."""
    pass


class PackageNotFoundError(PricingError):
    pass


class RuleSheetError(PricingError):
    """A pricing sheet could not be parsed into rule objects."""
    pass


class BookingRuleError(PricingError):
    """A booking violates a package rule. Recoverable and shown to the user."""

    code = "booking_rule"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class GroupSizeError(BookingRuleError):
    code = "group_size"


class AccompanimentError(BookingRuleError):
    code = "adult_accompaniment"


class PerTierCapError(BookingRuleError):
    code = "per_tier_cap"


class AddOnLimitError(BookingRuleError):
    code = "addon_limit"


class SoldOutError(BookingRuleError):
    code = "sold_out"


class CancelledError(BookingRuleError):
    code = "cancelled"


class InsufficientSlotsError(BookingRuleError):
    code = "insufficient_slots"


class BlockedDateError(BookingRuleError):
    code = "blocked_date"


class BookingValidationError(PricingError):
    """Raised when a paid calculation is requested for an invalid booking."""

    def __init__(self, validation):
        self.validation = validation
        messages = "; ".join(e.message for e in validation.errors)
        super().__init__(f"Booking failed validation: {messages}")
