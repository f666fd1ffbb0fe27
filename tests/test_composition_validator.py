"""
Composition validator tests: group bounds, adult accompaniment, per-tier
caps and add-on limits.
"""
from decimal import Decimal

import pytest

from package_pricing.engine.exceptions import (
    AccompanimentError, AddOnLimitError, GroupSizeError, InvalidCompositionError, PerTierCapError,
)
from package_pricing.engine.models import AddOn, BookingComposition, PricingTier, TierCatalog
from package_pricing.policy import CompositionValidator


@pytest.fixture
def validator():
    return CompositionValidator()


def test_valid_family(validator, catalog):
    result = validator.validate(BookingComposition({'adult': 2, 'child': 1}), catalog, 1, 6)

    assert result.valid
    assert result.errors == []
    assert result.total_passengers == 3
    assert result.adult_count == 2
    assert result.composition.quantities == {'adult': 2, 'child': 1}


def test_group_above_maximum(validator, catalog):
    result = validator.validate(BookingComposition({'adult': 3, 'child': 2}), catalog, 2, 4)

    assert not result.valid
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], GroupSizeError)
    assert "Maximum group size is 4" in result.errors[0].message


def test_group_below_minimum(validator, catalog):
    result = validator.validate(BookingComposition({'adult': 1}), catalog, 2, 4)

    assert not result.valid
    assert isinstance(result.errors[0], GroupSizeError)
    assert result.errors[0].details == {'min_group_size': 2, 'total_passengers': 1}


def test_no_maximum_when_unset(validator, catalog):
    result = validator.validate(BookingComposition({'adult': 40}), catalog, 1, None)
    assert result.valid


def test_child_without_adult(validator, catalog):
    result = validator.validate(BookingComposition({'child': 2}), catalog)

    assert not result.valid
    assert isinstance(result.errors[0], AccompanimentError)
    assert result.errors[0].code == 'adult_accompaniment'


def test_per_tier_cap(validator, catalog):
    result = validator.validate(BookingComposition({'adult': 1, 'child': 5}), catalog)

    assert not result.valid
    cap = result.errors[0]
    assert isinstance(cap, PerTierCapError)
    assert cap.details['requested'] == 5
    assert cap.details['max_per_booking'] == 4


def test_every_violation_reported(validator, catalog):
    result = validator.validate(BookingComposition({'child': 5}), catalog, 1, 3)

    codes = sorted(e.code for e in result.errors)
    assert codes == ['adult_accompaniment', 'group_size', 'per_tier_cap']
    with pytest.raises(GroupSizeError):
        result.raise_for_errors()


def test_unknown_tier_raises(validator, catalog):
    with pytest.raises(InvalidCompositionError):
        validator.validate(BookingComposition({'dog': 1}), catalog)


def test_inactive_tier_warns(validator):
    catalog = TierCatalog(tiers=[
        PricingTier(id='adult', tier_type='adult', base_price=Decimal('100')),
        PricingTier(id='old', tier_type='student', base_price=Decimal('40'), is_active=False),
    ])
    result = validator.validate(BookingComposition({'adult': 1, 'old': 1}), catalog)

    assert result.valid
    assert len(result.warnings) == 1


def test_legacy_counts_map_to_first_active_tier_of_type():
    catalog = TierCatalog(tiers=[
        PricingTier(id='adult-old', tier_type='adult', base_price=Decimal('90'), is_active=False),
        PricingTier(id='adult-2026', tier_type='adult', base_price=Decimal('100')),
    ])
    composition = BookingComposition.from_type_counts({'adult': 2, 'child': 0}, catalog)
    assert composition.quantities == {'adult-2026': 2}

    with pytest.raises(InvalidCompositionError):
        BookingComposition.from_type_counts({'senior': 1}, catalog)


def test_selections_summed_by_tier_id():
    composition = BookingComposition.from_selections([
        ('a', 1), {'tier_id': 'a', 'quantity': 2}, ('b', 1),
    ])
    assert composition.quantities == {'a': 3, 'b': 1}
    assert composition.total_passengers == 4


def test_duplicate_tier_types_need_custom_mode():
    tiers = [
        PricingTier(id='a1', tier_type='adult', base_price=Decimal('100')),
        PricingTier(id='a2', tier_type='adult', base_price=Decimal('120'), label='Adult (private room)'),
    ]
    with pytest.raises(ValueError):
        TierCatalog(tiers=tiers)
    assert len(TierCatalog(tiers=tiers, custom_tiers=True)) == 2


def test_addon_limits(validator):
    addons = [
        AddOn('ins', 'Insurance', Decimal('15'), max_quantity=4),
        AddOn('park', 'Park fee', Decimal('10'), is_required=True),
        AddOn('old', 'Old', Decimal('5'), is_required=True, is_active=False),
    ]
    errors = validator.validate_addons({'ins': 5}, addons)

    assert len(errors) == 2
    assert all(isinstance(e, AddOnLimitError) for e in errors)
    assert errors[0].details['addon_id'] == 'ins'
    assert errors[1].details == {'addon_id': 'park', 'required': True}

    assert validator.validate_addons(['park', 'ins'], addons) == []


def test_active_tiers_in_display_order():
    catalog = TierCatalog(tiers=[
        PricingTier(id='senior', tier_type='senior', base_price=Decimal('80'), display_order=3),
        PricingTier(id='adult', tier_type='adult', base_price=Decimal('100'), display_order=1),
        PricingTier(id='student', tier_type='student', base_price=Decimal('50'), display_order=2,
                    is_active=False),
        PricingTier(id='child', tier_type='child', base_price=Decimal('60'), display_order=1),
    ])
    assert [t.id for t in catalog.active_tiers()] == ['adult', 'child', 'senior']
