"""
Pricing Store - Loads package pricing sheets into immutable rule snapshots.

A package lives either in `<pricing_dir>/<package_id>.xlsx` (one sheet per
rule type) or in `<pricing_dir>/<package_id>/` with one CSV per sheet. A
workbook sheet wins over a CSV of the same name; a missing sheet means the
package has no rules of that kind. Promotions are global and live in
`<pricing_dir>/promotions.csv` or the `promotions` sheet of
`<pricing_dir>/promotions.xlsx`.

Row order is kept: it is the declaration order every "first match" rule
relies on.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import pandas as pd

from ..engine.exceptions import PackageNotFoundError, RuleSheetError
from ..engine.models import (
    PricingTier, TierCatalog, GroupPricingBand, SeasonalRule, TimeBasedDiscount,
    Promotion, AddOn, DepartureInventory, RuleSet,
)
from ..policy.availability import BlockedDateRange

logger = logging.getLogger(__name__)


PACKAGE_SHEETS = (
    'package', 'tiers', 'group_pricing', 'seasonal_pricing',
    'time_discounts', 'addons', 'departures', 'blocked_dates',
)

_PACKAGE_ID = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')
_CUSTOM_PRICE_COLUMN = re.compile(r'^custom_(\w+)_price$')


@dataclass(frozen=True)
class PricingPackage:
    """Snapshot of one package: tiers, rules, bounds, departures and blocked dates."""
    package_id: str
    package_name: str
    tier_catalog: TierCatalog
    rule_set: RuleSet
    min_group_size: int = 1
    max_group_size: Optional[int] = None
    use_custom_tiers: bool = False
    currency: str = 'USD'
    departures: tuple = ()
    blocked_dates: tuple = ()

    def departure_for(self, travel_date: date) -> Optional[DepartureInventory]:
        for departure in self.departures:
            if departure.departure_date == travel_date:
                return departure
        return None

    def rule_set_for(self, travel_date: date) -> RuleSet:
        """Rule set with the departure scheduled on the travel date attached."""
        return self.rule_set.with_departure(self.departure_for(travel_date))


# ---------------------------------------------------------------------------
# Cell parsing
# ---------------------------------------------------------------------------

def _blank(value) -> bool:
    return value is None or str(value).strip() in ('', 'nan', 'NaT', 'None')


def parse_bool(value, default: bool = False) -> bool:
    """Parse a boolean from a sheet cell."""
    if _blank(value):
        return default
    return str(value).strip().lower() in ('true', '1', 'yes', 'on', '1.0')


def parse_optional_str(value) -> Optional[str]:
    if _blank(value):
        return None
    return str(value).strip()


def parse_optional_money(value) -> Optional[Decimal]:
    if _blank(value):
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"'{value}' is not a number")


def parse_optional_int(value) -> Optional[int]:
    number = parse_optional_money(value)
    if number is None:
        return None
    if number != number.to_integral_value():
        raise ValueError(f"'{value}' is not a whole number")
    return int(number)


def parse_optional_datetime(value):
    """
    Parse a date or datetime cell.

    Midnight timestamps (how spreadsheets store plain dates) come back as
    dates so that end-of-window bounds stay inclusive of the whole day.
    """
    if _blank(value):
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"'{value}' must be YYYY-MM-DD or an ISO timestamp")
    if parsed.time() == time.min and parsed.tzinfo is None:
        return parsed.date()
    return parsed


def parse_optional_date(value) -> Optional[date]:
    parsed = parse_optional_datetime(value)
    if isinstance(parsed, datetime):
        return parsed.date()
    return parsed


def _required(value, parser, name: str):
    parsed = parser(value)
    if parsed is None:
        raise ValueError(f"{name} is required")
    return parsed


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class PricingStore:
    """
    Reads package pricing sheets from disk and caches the parsed snapshots.

    Snapshots are immutable; `reload()` drops the cache so the next `load`
    re-reads the sheets.
    """

    def __init__(self, pricing_dir: Path):
        self.pricing_dir = Path(pricing_dir)
        self._cache: dict[str, PricingPackage] = {}
        self._promotions: Optional[tuple] = None

    def list_packages(self) -> list[str]:
        """Ids of every package with a workbook or sheet directory."""
        if not self.pricing_dir.exists():
            return []
        ids = set()
        for path in self.pricing_dir.iterdir():
            if path.is_dir():
                ids.add(path.name)
            elif path.suffix == '.xlsx' and path.stem != 'promotions':
                ids.add(path.stem)
        return sorted(ids)

    def reload(self):
        """Forget cached snapshots."""
        self._cache.clear()
        self._promotions = None

    def load(self, package_id: str) -> PricingPackage:
        """
        Load a package snapshot.

        Raises:
            PackageNotFoundError: no workbook or sheet directory for the id
            RuleSheetError: a sheet row could not be parsed
        """
        if package_id in self._cache:
            return self._cache[package_id]

        if not _PACKAGE_ID.match(str(package_id)):
            raise PackageNotFoundError(f"Package '{package_id}' not found")

        workbook = self.pricing_dir / f"{package_id}.xlsx"
        sheet_dir = self.pricing_dir / package_id
        if not workbook.exists() and not sheet_dir.is_dir():
            raise PackageNotFoundError(f"Package '{package_id}' not found in {self.pricing_dir}")

        sheets = self._read_sheets(workbook, sheet_dir, PACKAGE_SHEETS)
        package = self._build_package(package_id, sheets)
        logger.info(
            "Loaded package %s from %s (%d tiers, %d departures)",
            package_id, workbook.name if workbook.exists() else f"{sheet_dir.name}/",
            len(package.tier_catalog), len(package.departures),
        )
        self._cache[package_id] = package
        return package

    def promotions(self) -> tuple:
        """Global promotions, shared by every package."""
        if self._promotions is None:
            sheets = self._read_sheets(
                self.pricing_dir / 'promotions.xlsx', self.pricing_dir, ('promotions',)
            )
            self._promotions = tuple(
                self._parse_rows('promotions', sheets['promotions'], self._promotion_from_row)
            )
        return self._promotions

    # -- Reading --------------------------------------------------------------

    def _read_sheets(self, workbook: Path, sheet_dir: Path, names: tuple) -> dict[str, pd.DataFrame]:
        frames = {}
        excel_sheets = {}
        if workbook.exists():
            with pd.ExcelFile(workbook) as xls:
                for name in names:
                    if name in xls.sheet_names:
                        excel_sheets[name] = pd.read_excel(xls, sheet_name=name, dtype=str)

        for name in names:
            csv_path = sheet_dir / f"{name}.csv"
            if name in excel_sheets:
                df = excel_sheets[name]
            elif csv_path.exists():
                df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
            else:
                df = pd.DataFrame()
            frames[name] = self._normalize(df)
        return frames

    @staticmethod
    def _normalize(df: pd.DataFrame) -> pd.DataFrame:
        """Strip headers and string cells; blanks become empty strings."""
        if df.empty:
            return df
        df = df.fillna('')
        df.columns = [str(c).strip() for c in df.columns]
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()
        return df

    def _parse_rows(self, sheet: str, df: pd.DataFrame, parser) -> list:
        items = []
        if df.empty:
            return items
        for line_num, row in enumerate(df.to_dict(orient='records'), start=2):
            if all(_blank(v) for v in row.values()):
                continue
            try:
                items.append(parser(row))
            except (ValueError, KeyError) as e:
                raise RuleSheetError(f"{sheet} line {line_num}: {e}") from e
        return items

    # -- Building -------------------------------------------------------------

    def _build_package(self, package_id: str, sheets: dict[str, pd.DataFrame]) -> PricingPackage:
        meta = {}
        if not sheets['package'].empty:
            meta = sheets['package'].to_dict(orient='records')[0]

        try:
            min_group_size = parse_optional_int(meta.get('min_group_size')) or 1
            max_group_size = parse_optional_int(meta.get('max_group_size'))
        except ValueError as e:
            raise RuleSheetError(f"package: {e}") from e
        use_custom_tiers = parse_bool(meta.get('use_custom_tiers'))

        tiers = self._parse_rows('tiers', sheets['tiers'], self._tier_from_row)
        try:
            catalog = TierCatalog(tiers=tiers, custom_tiers=use_custom_tiers)
        except ValueError as e:
            raise RuleSheetError(f"tiers: {e}") from e

        rule_set = RuleSet(
            group_bands=self._parse_rows('group_pricing', sheets['group_pricing'], self._group_band_from_row),
            seasonal_rules=self._parse_rows('seasonal_pricing', sheets['seasonal_pricing'], self._seasonal_from_row),
            time_discounts=self._parse_rows('time_discounts', sheets['time_discounts'], self._time_discount_from_row),
            promotions=self.promotions(),
            addons=self._parse_rows('addons', sheets['addons'], self._addon_from_row),
            package_id=package_id,
        )

        return PricingPackage(
            package_id=package_id,
            package_name=parse_optional_str(meta.get('package_name')) or package_id,
            tier_catalog=catalog,
            rule_set=rule_set,
            min_group_size=min_group_size,
            max_group_size=max_group_size,
            use_custom_tiers=use_custom_tiers,
            currency=parse_optional_str(meta.get('currency')) or 'USD',
            departures=tuple(self._parse_rows('departures', sheets['departures'], self._departure_from_row)),
            blocked_dates=tuple(self._parse_rows('blocked_dates', sheets['blocked_dates'], self._blocked_from_row)),
        )

    @staticmethod
    def _tier_from_row(row: dict) -> PricingTier:
        return PricingTier(
            id=_required(row.get('id'), parse_optional_str, 'id'),
            tier_type=_required(row.get('tier_type'), parse_optional_str, 'tier_type').lower(),
            base_price=_required(row.get('base_price'), parse_optional_money, 'base_price'),
            selling_price=parse_optional_money(row.get('selling_price')),
            label=parse_optional_str(row.get('tier_label')),
            min_age=parse_optional_int(row.get('min_age')),
            max_age=parse_optional_int(row.get('max_age')),
            requires_adult_accompaniment=parse_bool(row.get('requires_adult_accompaniment')),
            max_per_booking=parse_optional_int(row.get('max_per_booking')),
            display_order=parse_optional_int(row.get('display_order')) or 0,
            is_active=parse_bool(row.get('is_active'), default=True),
        )

    @staticmethod
    def _group_band_from_row(row: dict) -> GroupPricingBand:
        return GroupPricingBand(
            id=parse_optional_str(row.get('id')),
            min_pax=_required(row.get('min_pax'), parse_optional_int, 'min_pax'),
            max_pax=_required(row.get('max_pax'), parse_optional_int, 'max_pax'),
            pricing_type=_required(row.get('pricing_type'), parse_optional_str, 'pricing_type'),
            discount_percentage=parse_optional_money(row.get('discount_percentage')),
            discount_amount=parse_optional_money(row.get('discount_amount')),
            price_per_person=parse_optional_money(row.get('price_per_person')),
            price_per_group=parse_optional_money(row.get('price_per_group')),
            is_active=parse_bool(row.get('is_active'), default=True),
        )

    @staticmethod
    def _seasonal_from_row(row: dict) -> SeasonalRule:
        return SeasonalRule(
            id=parse_optional_str(row.get('id')),
            season_name=parse_optional_str(row.get('season_name')),
            start_date=_required(row.get('start_date'), parse_optional_date, 'start_date'),
            end_date=_required(row.get('end_date'), parse_optional_date, 'end_date'),
            adjustment_type=_required(row.get('adjustment_type'), parse_optional_str, 'adjustment_type'),
            adjustment_value=_required(row.get('adjustment_value'), parse_optional_money, 'adjustment_value'),
            priority=parse_optional_int(row.get('priority')) or 0,
            is_active=parse_bool(row.get('is_active'), default=True),
        )

    @staticmethod
    def _time_discount_from_row(row: dict) -> TimeBasedDiscount:
        return TimeBasedDiscount(
            id=parse_optional_str(row.get('id')),
            discount_name=parse_optional_str(row.get('discount_name')) or 'Time-based discount',
            discount_type=parse_optional_str(row.get('discount_type')),
            days_before_travel=_required(row.get('days_before_travel'), parse_optional_int, 'days_before_travel'),
            comparison=_required(row.get('comparison'), parse_optional_str, 'comparison'),
            discount_amount_type=_required(row.get('discount_amount_type'), parse_optional_str, 'discount_amount_type'),
            discount_value=_required(row.get('discount_value'), parse_optional_money, 'discount_value'),
            valid_from=parse_optional_datetime(row.get('valid_from')),
            valid_to=parse_optional_datetime(row.get('valid_to')),
            is_active=parse_bool(row.get('is_active'), default=True),
        )

    @staticmethod
    def _promotion_from_row(row: dict) -> Promotion:
        package_ids = parse_optional_str(row.get('package_ids'))
        return Promotion(
            promotion_code=_required(row.get('promotion_code'), parse_optional_str, 'promotion_code'),
            promotion_name=parse_optional_str(row.get('promotion_name')),
            discount_type=_required(row.get('discount_type'), parse_optional_str, 'discount_type'),
            discount_value=parse_optional_money(row.get('discount_value')),
            valid_from=parse_optional_datetime(row.get('valid_from')),
            valid_to=parse_optional_datetime(row.get('valid_to')),
            max_uses=parse_optional_int(row.get('max_uses')),
            current_uses=parse_optional_int(row.get('current_uses')) or 0,
            min_purchase_amount=parse_optional_money(row.get('min_purchase_amount')),
            min_pax=parse_optional_int(row.get('min_pax')),
            is_active=parse_bool(row.get('is_active'), default=True),
            package_ids=tuple(p.strip() for p in package_ids.split(';') if p.strip()) if package_ids else None,
            buy_quantity=parse_optional_int(row.get('buy_quantity')),
            get_quantity=parse_optional_int(row.get('get_quantity')),
        )

    @staticmethod
    def _addon_from_row(row: dict) -> AddOn:
        return AddOn(
            id=_required(row.get('id'), parse_optional_str, 'id'),
            addon_name=_required(row.get('addon_name'), parse_optional_str, 'addon_name'),
            price=_required(row.get('price'), parse_optional_money, 'price'),
            pricing_type=parse_optional_str(row.get('pricing_type')) or 'per_person',
            is_required=parse_bool(row.get('is_required')),
            max_quantity=parse_optional_int(row.get('max_quantity')),
            is_active=parse_bool(row.get('is_active'), default=True),
        )

    @staticmethod
    def _departure_from_row(row: dict) -> DepartureInventory:
        custom_prices = {}
        for column, value in row.items():
            match = _CUSTOM_PRICE_COLUMN.match(column)
            if match and not _blank(value):
                custom_prices[match.group(1)] = parse_optional_money(value)
        return DepartureInventory(
            id=parse_optional_str(row.get('id')),
            departure_date=_required(row.get('departure_date'), parse_optional_date, 'departure_date'),
            available_slots=_required(row.get('available_slots'), parse_optional_int, 'available_slots'),
            booked_slots=parse_optional_int(row.get('booked_slots')) or 0,
            status=parse_optional_str(row.get('status')) or 'open',
            has_custom_pricing=parse_bool(row.get('has_custom_pricing')),
            custom_prices=custom_prices,
        )

    @staticmethod
    def _blocked_from_row(row: dict) -> BlockedDateRange:
        return BlockedDateRange(
            start_date=_required(row.get('start_date'), parse_optional_date, 'start_date'),
            end_date=_required(row.get('end_date'), parse_optional_date, 'end_date'),
            reason=parse_optional_str(row.get('reason')),
            notes=parse_optional_str(row.get('notes')),
        )
