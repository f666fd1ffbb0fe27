"""
Pricing service tests: validation gates in front of the engine.
"""
from datetime import date
from decimal import Decimal

import pytest

from package_pricing.data.rule_store import PricingPackage
from package_pricing.engine import PriceEngine
from package_pricing.engine.exceptions import BookingValidationError, InvalidCompositionError
from package_pricing.engine.models import (
    AddOn, BookingComposition, DepartureInventory, GroupPricingBand, RuleSet,
)
from package_pricing.policy import BlockedDateRange
from package_pricing.services.pricing_service import PricingService, calculate_profit_margin

from conftest import FIXED_NOW

TRAVEL = date(2026, 6, 15)


@pytest.fixture
def service():
    return PricingService(engine=PriceEngine(clock=lambda: FIXED_NOW))


@pytest.fixture
def package(catalog):
    return PricingPackage(
        package_id='andes',
        package_name='Andes Explorer',
        tier_catalog=catalog,
        rule_set=RuleSet(
            group_bands=[GroupPricingBand(2, 5, 'discount_percentage', discount_percentage=Decimal('10'))],
            addons=[AddOn('ins', 'Insurance', Decimal('20'), max_quantity=6)],
            package_id='andes',
        ),
        min_group_size=1,
        max_group_size=6,
        currency='PEN',
        departures=(
            DepartureInventory(available_slots=10, booked_slots=8, departure_date=TRAVEL),
            DepartureInventory(available_slots=10, has_custom_pricing=True,
                               custom_prices={'adult': Decimal('150')}, departure_date=date(2026, 7, 1)),
        ),
        blocked_dates=(BlockedDateRange(date(2026, 12, 24), date(2026, 12, 25), reason='Christmas'),),
    )


def test_valid_booking_is_priced(service, package):
    quote = service.calculate_price(package, BookingComposition({'adult': 2}), TRAVEL,
                                    addon_selections={'ins': 2})

    assert quote.bookable
    assert quote.availability.available
    assert quote.breakdown.currency == 'PEN'
    assert quote.breakdown.total_price == Decimal('220')


def test_departure_override_used_for_travel_date(service, package):
    quote = service.calculate_price(package, BookingComposition({'adult': 1}), date(2026, 7, 1))
    assert quote.breakdown.base_price == Decimal('150')


def test_invalid_booking_raises(service, package):
    with pytest.raises(BookingValidationError) as exc_info:
        service.calculate_price(package, BookingComposition({'child': 1}), date(2026, 8, 1))

    validation = exc_info.value.validation
    assert [e.code for e in validation.errors] == ['adult_accompaniment']


def test_preview_returns_quote_with_violations(service, package):
    quote = service.calculate_price(package, BookingComposition({'adult': 2, 'child': 1}), TRAVEL,
                                    preview=True)

    assert not quote.bookable
    assert quote.preview
    assert [e.code for e in quote.validation.errors] == ['insufficient_slots']
    assert quote.breakdown.total_price == Decimal('234')
    assert quote.to_dict()['bookable'] is False


def test_blocked_date_rejected(service, package):
    with pytest.raises(BookingValidationError) as exc_info:
        service.calculate_price(package, BookingComposition({'adult': 1}), date(2026, 12, 24))
    assert exc_info.value.validation.errors[0].code == 'blocked_date'


def test_addon_limit_rejected(service, package):
    with pytest.raises(BookingValidationError, match="Insurance"):
        service.calculate_price(package, BookingComposition({'adult': 1}), date(2026, 8, 1),
                                addon_selections={'ins': 7})


def test_unknown_tier_raises_before_validation(service, package):
    with pytest.raises(InvalidCompositionError):
        service.calculate_price(package, BookingComposition({'ghost': 1}), TRAVEL, preview=True)


def test_profit_margin():
    margin = calculate_profit_margin(Decimal('150'), Decimal('120'))

    assert margin.profit == Decimal('30')
    assert margin.margin_percentage == Decimal('25')
    assert calculate_profit_margin(Decimal('50'), 0).margin_percentage == 0
