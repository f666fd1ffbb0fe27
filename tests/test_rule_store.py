"""
Pricing store tests: CSV directories, Excel workbooks, global promotions
and sheet errors.
"""
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

from package_pricing.data.rule_store import PricingStore, parse_bool, parse_optional_datetime
from package_pricing.engine import PriceEngine
from package_pricing.engine.exceptions import PackageNotFoundError, RuleSheetError
from package_pricing.engine.models import BookingComposition
from package_pricing.services.pricing_service import PricingService

SAMPLE_DIR = Path(__file__).resolve().parent.parent / 'data' / 'packages'


def write_sheets(root: Path, package_id: str, sheets: dict):
    package_dir = root / package_id
    package_dir.mkdir(parents=True, exist_ok=True)
    for name, rows in sheets.items():
        pd.DataFrame(rows).to_csv(package_dir / f"{name}.csv", index=False)


TIERS = [
    {'id': 'ad', 'tier_type': 'Adult', 'base_price': '100', 'selling_price': '', 'is_active': 'true'},
    {'id': 'ch', 'tier_type': 'child', 'base_price': '60', 'selling_price': '',
     'requires_adult_accompaniment': 'yes', 'max_per_booking': '3'},
]


@pytest.fixture
def store(tmp_path):
    write_sheets(tmp_path, 'lima-city', {
        'package': [{'package_name': 'Lima City Tour', 'min_group_size': '2', 'max_group_size': '8',
                     'use_custom_tiers': 'false', 'currency': 'PEN'}],
        'tiers': TIERS,
        'group_pricing': [
            {'min_pax': '2', 'max_pax': '5', 'pricing_type': 'discount_percentage', 'discount_percentage': '10'},
        ],
        'seasonal_pricing': [
            {'season_name': 'Summer', 'start_date': '2026-06-01', 'end_date': '2026-08-31',
             'adjustment_type': 'percentage', 'adjustment_value': '20', 'priority': '1'},
        ],
        'departures': [
            {'departure_date': '2026-06-15', 'available_slots': '10', 'booked_slots': '3',
             'status': 'open', 'has_custom_pricing': 'true', 'custom_adult_price': '110', 'custom_child_price': ''},
        ],
        'blocked_dates': [{'start_date': '2026-07-28', 'end_date': '2026-07-29', 'reason': 'Independence Day'}],
    })
    pd.DataFrame([
        {'promotion_code': 'LIMA5', 'discount_type': 'fixed_amount', 'discount_value': '5',
         'valid_to': '2026-12-31', 'package_ids': 'lima-city; cusco'},
        {'promotion_code': 'ALL10', 'discount_type': 'percentage', 'discount_value': '10', 'package_ids': ''},
    ]).to_csv(tmp_path / 'promotions.csv', index=False)
    return PricingStore(tmp_path)


def test_load_csv_package(store):
    package = store.load('lima-city')

    assert package.package_name == 'Lima City Tour'
    assert package.currency == 'PEN'
    assert (package.min_group_size, package.max_group_size) == (2, 8)
    assert not package.use_custom_tiers

    adult = package.tier_catalog.get('ad')
    assert adult.tier_type == 'adult', "tier types are lower-cased"
    assert adult.base_price == Decimal('100')
    assert adult.selling_price is None
    child = package.tier_catalog.get('ch')
    assert child.requires_adult_accompaniment
    assert child.max_per_booking == 3

    band = package.rule_set.group_bands[0]
    assert band.discount_percentage == Decimal('10')
    assert band.is_active, "blank is_active defaults to active"
    assert package.rule_set.seasonal_rules[0].start_date == date(2026, 6, 1)
    assert package.rule_set.time_discounts == ()
    assert package.rule_set.package_id == 'lima-city'


def test_departures_and_blocked_dates(store):
    package = store.load('lima-city')

    departure = package.departure_for(date(2026, 6, 15))
    assert departure.remaining_slots == 7
    assert departure.custom_price_for('adult') == Decimal('110')
    assert departure.custom_price_for('child') is None
    assert package.departure_for(date(2026, 6, 16)) is None
    assert package.rule_set_for(date(2026, 6, 15)).departure == departure

    blocked = package.blocked_dates[0]
    assert blocked.contains(date(2026, 7, 29))
    assert blocked.reason == 'Independence Day'


def test_global_promotions_scoped_by_package(store):
    package = store.load('lima-city')
    promos = {p.promotion_code: p for p in package.rule_set.promotions}

    assert promos['LIMA5'].package_ids == ('lima-city', 'cusco')
    assert promos['LIMA5'].valid_to == date(2026, 12, 31)
    assert promos['ALL10'].package_ids is None
    assert promos['ALL10'].applies_to_package('anything')


def test_cache_and_reload(store, tmp_path):
    first = store.load('lima-city')
    assert store.load('lima-city') is first

    store.reload()
    assert store.load('lima-city') is not first


def test_list_packages(store, tmp_path):
    with pd.ExcelWriter(tmp_path / 'cusco.xlsx') as writer:
        pd.DataFrame(TIERS).to_excel(writer, sheet_name='tiers', index=False)
    assert store.list_packages() == ['cusco', 'lima-city']


def test_excel_workbook(tmp_path):
    with pd.ExcelWriter(tmp_path / 'cusco.xlsx') as writer:
        pd.DataFrame([{'package_name': 'Cusco Classic', 'use_custom_tiers': True}]).to_excel(
            writer, sheet_name='package', index=False)
        pd.DataFrame([
            {'id': 'std', 'tier_type': 'adult', 'base_price': 300, 'tier_label': 'Adult (shared)'},
            {'id': 'prv', 'tier_type': 'adult', 'base_price': 420, 'tier_label': 'Adult (private)'},
        ]).to_excel(writer, sheet_name='tiers', index=False)
        pd.DataFrame([
            {'discount_name': 'Early', 'days_before_travel': 60, 'comparison': 'greater_than',
             'discount_amount_type': 'percentage', 'discount_value': 7.5,
             'valid_to': datetime(2026, 9, 30)},
        ]).to_excel(writer, sheet_name='time_discounts', index=False)

    package = PricingStore(tmp_path).load('cusco')

    assert package.use_custom_tiers
    assert len(package.tier_catalog) == 2
    assert package.tier_catalog.get('prv').base_price == Decimal('420')
    discount = package.rule_set.time_discounts[0]
    assert discount.discount_value == Decimal('7.5')
    assert discount.valid_to == date(2026, 9, 30), "midnight timestamps become dates"
    assert package.rule_set.promotions == ()


def test_unknown_package(store):
    with pytest.raises(PackageNotFoundError):
        store.load('atlantis')
    with pytest.raises(PackageNotFoundError):
        store.load('../etc')


def test_bad_row_reports_sheet_and_line(tmp_path):
    write_sheets(tmp_path, 'broken', {
        'tiers': [
            {'id': 'ad', 'tier_type': 'adult', 'base_price': '100'},
            {'id': 'ch', 'tier_type': 'child', 'base_price': 'sixty'},
        ],
    })
    with pytest.raises(RuleSheetError, match="tiers line 3"):
        PricingStore(tmp_path).load('broken')


def test_duplicate_tier_type_without_custom_mode(tmp_path):
    write_sheets(tmp_path, 'dupes', {
        'tiers': [
            {'id': 'a1', 'tier_type': 'adult', 'base_price': '100'},
            {'id': 'a2', 'tier_type': 'adult', 'base_price': '120'},
        ],
    })
    with pytest.raises(RuleSheetError, match="Duplicate active tier type"):
        PricingStore(tmp_path).load('dupes')


def test_cell_parsers():
    assert parse_bool('Yes')
    assert not parse_bool('0')
    assert parse_bool('', default=True)
    assert parse_optional_datetime('2026-05-01') == date(2026, 5, 1)
    assert parse_optional_datetime('2026-05-01T18:30:00') == datetime(2026, 5, 1, 18, 30)
    assert parse_optional_datetime('') is None
    with pytest.raises(ValueError):
        parse_optional_datetime('next tuesday')


def test_shipped_sample_package_loads():
    store = PricingStore(SAMPLE_DIR)
    package = store.load('sample-tour')

    assert 'sample-tour' in store.list_packages()
    assert package.tier_catalog.first_active_of_type('adult').unit_price == Decimal('100')
    assert len(package.departures) == 4
    assert {p.promotion_code for p in package.rule_set.promotions} == {'SUMMER10', 'WELCOME25', 'FAMILY'}


def test_timezone_aware_promotion_window_prices(tmp_path):
    write_sheets(tmp_path, 'lima-city', {'tiers': TIERS})
    pd.DataFrame([
        {'promotion_code': 'SAVE', 'discount_type': 'fixed_amount', 'discount_value': '15',
         'valid_from': '2026-01-01T00:00:00+00:00', 'valid_to': '2026-12-31T23:59:59+00:00'},
    ]).to_csv(tmp_path / 'promotions.csv', index=False)
    package = PricingStore(tmp_path).load('lima-city')
    assert package.rule_set.promotions[0].valid_to.tzinfo is not None

    service = PricingService(engine=PriceEngine(clock=lambda: datetime(2026, 5, 1, 9, 0)))
    quote = service.calculate_price(package, BookingComposition({'ad': 1}), date(2026, 6, 15),
                                    promo_code='SAVE')

    assert quote.breakdown.promo_discount == Decimal('15')
    assert quote.breakdown.total_price == Decimal('85')
