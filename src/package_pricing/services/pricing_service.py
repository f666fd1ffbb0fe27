"""
Pricing Service - The call-style operations consumed by the booking system.

calculate_price   validate, then price a booking for a package
validate_composition   group size / accompaniment / per-tier caps
check_availability   departure slot check
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from ..engine.exceptions import BookingValidationError
from ..engine.models import (
    ZERO, HUNDRED, as_money,
    BookingComposition, TierCatalog, DepartureInventory, PriceRequest, PriceBreakdown,
)
from ..engine.pricing_engine import PriceEngine
from ..policy.availability import AvailabilityResult, check_availability as _check_availability, check_blocked_date
from ..policy.composition_validator import CompositionValidator, ValidationResult
from ..data.rule_store import PricingPackage


@dataclass
class Quote:
    """A priced booking with the validation it was priced under."""
    package_id: str
    breakdown: PriceBreakdown
    validation: ValidationResult
    availability: Optional[AvailabilityResult] = None
    preview: bool = False

    @property
    def bookable(self) -> bool:
        return self.validation.valid

    def to_dict(self) -> dict:
        return {
            "package_id": self.package_id,
            "preview": self.preview,
            "bookable": self.bookable,
            "breakdown": self.breakdown.to_dict(),
            "validation": self.validation.to_dict(),
            "availability": self.availability.to_dict() if self.availability else None,
        }


@dataclass
class ProfitMargin:
    profit: Decimal
    margin_percentage: Decimal


def calculate_profit_margin(selling_price, cost_price) -> ProfitMargin:
    """Profit and margin on cost. Margin is 0 when there is no cost."""
    selling_price, cost_price = as_money(selling_price), as_money(cost_price)
    profit = selling_price - cost_price
    margin = profit / cost_price * HUNDRED if cost_price > ZERO else ZERO
    return ProfitMargin(profit=profit, margin_percentage=margin)


class PricingService:
    """
    Validates and prices bookings against package snapshots.

    Stateless: the engine and validator hold no per-call data, so one
    service can be shared across request handlers.
    """

    def __init__(self, engine: Optional[PriceEngine] = None, validator: Optional[CompositionValidator] = None):
        self.engine = engine or PriceEngine()
        self.validator = validator or CompositionValidator()

    def calculate_price(
        self,
        package: PricingPackage,
        composition: BookingComposition,
        travel_date: date,
        booking_date: Union[date, datetime, None] = None,
        promo_code: Optional[str] = None,
        addon_selections=None,
        preview: bool = False,
    ) -> Quote:
        """
        Validate a booking and price it.

        In preview mode a quote is returned even when validation fails, so
        the caller can show an estimate next to the violations.

        Raises:
            BookingValidationError: validation failed and preview is off
            InvalidCompositionError: composition references unknown tiers or negative quantities
        """
        validation = self.validate_composition(
            composition, package.tier_catalog, package.min_group_size, package.max_group_size
        )
        for error in self.validator.validate_addons(addon_selections, package.rule_set.addons):
            validation.add_error(error)

        blocked = check_blocked_date(package.blocked_dates, travel_date)
        if blocked.blocked:
            validation.add_error(blocked.as_error())

        availability = None
        departure = package.departure_for(travel_date)
        if departure is not None:
            availability = _check_availability(departure, composition.total_passengers)
            if not availability.available:
                validation.add_error(availability.error)

        if not validation.valid and not preview:
            raise BookingValidationError(validation)

        breakdown = self.engine.calculate(
            package.tier_catalog,
            package.rule_set_for(travel_date),
            PriceRequest(
                composition=composition,
                travel_date=travel_date,
                booking_date=booking_date,
                promo_code=promo_code,
                addon_selections=addon_selections,
            ),
            currency=package.currency,
        )
        return Quote(
            package_id=package.package_id,
            breakdown=breakdown,
            validation=validation,
            availability=availability,
            preview=preview,
        )

    def validate_composition(
        self,
        composition: BookingComposition,
        catalog: TierCatalog,
        min_group_size: int = 1,
        max_group_size: Optional[int] = None,
    ) -> ValidationResult:
        return self.validator.validate(composition, catalog, min_group_size, max_group_size)

    def check_availability(self, inventory: DepartureInventory, requested_slots: int) -> AvailabilityResult:
        return _check_availability(inventory, requested_slots)


_default_service: Optional[PricingService] = None


def get_pricing_service() -> PricingService:
    """Get the shared service instance."""
    global _default_service
    if _default_service is None:
        _default_service = PricingService()
    return _default_service


def calculate_price(package: PricingPackage, composition: BookingComposition, travel_date: date, **kwargs) -> Quote:
    return get_pricing_service().calculate_price(package, composition, travel_date, **kwargs)


def validate_composition(composition, catalog, min_group_size=1, max_group_size=None) -> ValidationResult:
    return get_pricing_service().validate_composition(composition, catalog, min_group_size, max_group_size)


def check_availability(inventory: DepartureInventory, requested_slots: int) -> AvailabilityResult:
    return get_pricing_service().check_availability(inventory, requested_slots)
