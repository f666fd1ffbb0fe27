"""
Data models for the package pricing engine.

Rule entities are frozen dataclasses supplied per call by the catalog
subsystem. BookingComposition and PriceBreakdown are created fresh for each
calculation and never mutated afterwards.
"""
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Union

from .exceptions import InvalidCompositionError


ZERO = Decimal("0")
HUNDRED = Decimal("100")

STANDARD_TIER_TYPES = ('adult', 'child', 'infant', 'senior', 'student')

DateBound = Union[date, datetime, None]


def as_money(value) -> Decimal:
    """Convert a number to Decimal without picking up binary float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


# ---------------------------------------------------------------------------
# Catalog and rule entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingTier:
    """A passenger category with its own price and eligibility constraints."""
    id: str
    tier_type: str  # adult, child, infant, senior, student or a custom label
    base_price: Decimal
    selling_price: Optional[Decimal] = None
    label: Optional[str] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    requires_adult_accompaniment: bool = False
    max_per_booking: Optional[int] = None
    display_order: int = 0
    is_active: bool = True

    @property
    def unit_price(self) -> Decimal:
        """Selling price, or the base price when no markup is configured."""
        if self.selling_price:
            return as_money(self.selling_price)
        return as_money(self.base_price)

    @property
    def display_label(self) -> str:
        return self.label or self.tier_type.capitalize()


@dataclass(frozen=True)
class TierCatalog:
    """
    The tiers of one package.

    Outside custom-tier mode each active tier type may appear only once.
    In custom-tier mode several tiers can share a type and are told apart
    by id.
    """
    tiers: tuple = ()
    custom_tiers: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'tiers', tuple(self.tiers))
        if not self.custom_tiers:
            seen = set()
            for tier in self.tiers:
                if not tier.is_active:
                    continue
                if tier.tier_type in seen:
                    raise ValueError(
                        f"Duplicate active tier type '{tier.tier_type}' "
                        "requires custom tier mode"
                    )
                seen.add(tier.tier_type)

    def __iter__(self):
        return iter(self.tiers)

    def __len__(self):
        return len(self.tiers)

    def get(self, tier_id: str) -> Optional[PricingTier]:
        for tier in self.tiers:
            if tier.id == tier_id:
                return tier
        return None

    def first_active_of_type(self, tier_type: str) -> Optional[PricingTier]:
        for tier in self.tiers:
            if tier.tier_type == tier_type and tier.is_active:
                return tier
        return None

    def active_tiers(self) -> list[PricingTier]:
        """Active tiers in display order (declaration order breaks ties)."""
        return sorted((t for t in self.tiers if t.is_active), key=lambda t: t.display_order)


@dataclass(frozen=True)
class GroupPricingBand:
    """Volume pricing for an inclusive passenger-count range."""
    min_pax: int
    max_pax: int
    pricing_type: str  # discount_percentage, discount_amount, per_person, per_group
    discount_percentage: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    price_per_person: Optional[Decimal] = None
    price_per_group: Optional[Decimal] = None
    is_active: bool = True
    id: Optional[str] = None

    def contains(self, pax: int) -> bool:
        return self.min_pax <= pax <= self.max_pax


@dataclass(frozen=True)
class SeasonalRule:
    """A date-ranged price adjustment. Higher priority wins on overlap."""
    start_date: date
    end_date: date
    adjustment_type: str  # percentage, fixed_amount, override_price
    adjustment_value: Decimal
    priority: int = 0
    is_active: bool = True
    season_name: Optional[str] = None
    id: Optional[str] = None

    def contains(self, travel_date: date) -> bool:
        return self.start_date <= travel_date <= self.end_date


@dataclass(frozen=True)
class TimeBasedDiscount:
    """Early bird / last minute discount keyed on days before travel."""
    discount_name: str
    days_before_travel: int
    comparison: str  # greater_than, less_than, equal
    discount_amount_type: str  # percentage, fixed
    discount_value: Decimal
    valid_from: DateBound = None
    valid_to: DateBound = None
    is_active: bool = True
    discount_type: Optional[str] = None  # early_bird, last_minute
    id: Optional[str] = None


@dataclass(frozen=True)
class Promotion:
    """A promo code. Codes match case-insensitively."""
    promotion_code: str
    discount_type: str  # percentage, fixed_amount, buy_x_get_y
    discount_value: Optional[Decimal] = None
    valid_from: DateBound = None
    valid_to: DateBound = None
    max_uses: Optional[int] = None
    current_uses: int = 0
    min_purchase_amount: Optional[Decimal] = None
    min_pax: Optional[int] = None
    is_active: bool = True
    promotion_name: Optional[str] = None
    package_ids: Optional[tuple] = None  # None = every package
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None

    def applies_to_package(self, package_id: Optional[str]) -> bool:
        if not self.package_ids or package_id is None:
            return True
        return package_id in self.package_ids


@dataclass(frozen=True)
class AddOn:
    """Optional extra sold with a package. Never discounted."""
    id: str
    addon_name: str
    price: Decimal
    pricing_type: str = 'per_person'  # per_person, per_group, per_unit
    is_required: bool = False
    max_quantity: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class DepartureInventory:
    """A scheduled departure with slot inventory and optional tier price overrides."""
    available_slots: int
    booked_slots: int = 0
    status: str = 'open'  # open, sold_out, cancelled
    has_custom_pricing: bool = False
    custom_prices: dict = field(default_factory=dict)  # tier_type -> price
    departure_date: Optional[date] = None
    id: Optional[str] = None

    @property
    def remaining_slots(self) -> int:
        return self.available_slots - self.booked_slots

    def custom_price_for(self, tier_type: str) -> Optional[Decimal]:
        """Override price for a tier type, or None when the tier keeps its own price."""
        if not self.has_custom_pricing:
            return None
        price = self.custom_prices.get(tier_type)
        if not price:
            return None
        return as_money(price)


@dataclass(frozen=True)
class RuleSet:
    """All pricing and discount rules attached to one package, in declaration order."""
    group_bands: tuple = ()
    seasonal_rules: tuple = ()
    time_discounts: tuple = ()
    promotions: tuple = ()
    addons: tuple = ()
    departure: Optional[DepartureInventory] = None
    package_id: Optional[str] = None

    def __post_init__(self):
        for name in ('group_bands', 'seasonal_rules', 'time_discounts', 'promotions', 'addons'):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def with_departure(self, departure: Optional[DepartureInventory]) -> 'RuleSet':
        return replace(self, departure=departure)


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BookingComposition:
    """Requested passenger quantities keyed by tier id."""
    quantities: dict = field(default_factory=dict)

    def __post_init__(self):
        quantities = dict(self.quantities)
        for tier_id, qty in quantities.items():
            if not isinstance(qty, int) or isinstance(qty, bool):
                raise InvalidCompositionError(f"Quantity for tier '{tier_id}' must be an integer, got {qty!r}")
            if qty < 0:
                raise InvalidCompositionError(f"Quantity for tier '{tier_id}' cannot be negative ({qty})")
        object.__setattr__(self, 'quantities', quantities)

    @property
    def total_passengers(self) -> int:
        return sum(self.quantities.values())

    def adult_count(self, catalog: TierCatalog) -> int:
        """Passengers booked on tiers whose type is adult."""
        total = 0
        for tier_id, qty in self.quantities.items():
            tier = catalog.get(tier_id)
            if tier is not None and tier.tier_type == 'adult':
                total += qty
        return total

    def items(self):
        return self.quantities.items()

    @classmethod
    def from_selections(cls, selections: Iterable) -> 'BookingComposition':
        """
        Build from tier-id selections.

        Accepts (tier_id, quantity) pairs or mappings with tier_id/quantity
        keys. Repeated tier ids are summed.
        """
        quantities: dict[str, int] = {}
        for selection in selections:
            if isinstance(selection, Mapping):
                tier_id, qty = selection['tier_id'], selection['quantity']
            else:
                tier_id, qty = selection
            if isinstance(qty, int) and qty < 0:
                raise InvalidCompositionError(f"Quantity for tier '{tier_id}' cannot be negative ({qty})")
            quantities[tier_id] = quantities.get(tier_id, 0) + qty
        return cls(quantities)

    @classmethod
    def from_type_counts(cls, counts: Mapping[str, int], catalog: TierCatalog) -> 'BookingComposition':
        """
        Expand legacy per-type counts (adult_count, child_count...) into an id-keyed composition.

        Each type maps onto the first active tier of that type.
        """
        quantities: dict[str, int] = {}
        for tier_type, qty in counts.items():
            if not qty:
                continue
            tier = catalog.first_active_of_type(tier_type)
            if tier is None:
                raise InvalidCompositionError(f"No active tier of type '{tier_type}' in this package")
            quantities[tier.id] = quantities.get(tier.id, 0) + qty
        return cls(quantities)


def normalize_addon_selections(selections) -> list[tuple[str, Optional[int]]]:
    """
    Normalize add-on selections to ordered (addon_id, quantity) pairs.

    Accepts a mapping of id -> quantity (None meaning unspecified) or a
    plain sequence of ids.
    """
    if not selections:
        return []
    if isinstance(selections, Mapping):
        return list(selections.items())
    return [(addon_id, None) for addon_id in selections]


@dataclass(frozen=True)
class PriceRequest:
    """A pricing request: composition plus dates, promo code and add-ons."""
    composition: BookingComposition
    travel_date: date
    booking_date: Union[date, datetime, None] = None
    promo_code: Optional[str] = None
    addon_selections: Optional[Union[Mapping[str, Optional[int]], tuple, list]] = None


# ---------------------------------------------------------------------------
# Result side
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TierLine:
    tier_id: str
    tier_type: str
    tier_label: str
    count: int
    unit_price: Decimal
    subtotal: Decimal
    price_source: str  # selling_price, base_price, departure_override


@dataclass(frozen=True)
class SeasonalMatch:
    season_name: Optional[str]
    adjustment_type: str
    adjustment_value: Decimal
    priority: int
    applied_amount: Decimal


@dataclass(frozen=True)
class GroupMatch:
    min_pax: int
    max_pax: int
    pricing_type: str
    raw_amount: Decimal
    applied_amount: Decimal


@dataclass(frozen=True)
class TimeDiscountMatch:
    discount_name: str
    discount_type: Optional[str]
    comparison: str
    threshold_days: int
    applied_amount: Decimal


@dataclass(frozen=True)
class PromotionMatch:
    promotion_code: str
    promotion_name: Optional[str]
    discount_type: str
    applied_amount: Decimal
    implemented: bool = True


@dataclass(frozen=True)
class AddOnLine:
    addon_id: str
    addon_name: str
    pricing_type: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class PriceBreakdown:
    """Complete, itemized result of a price calculation."""
    base_price: Decimal
    seasonal_adjustment: Decimal
    group_discount: Decimal
    time_based_discount: Decimal
    promo_discount: Decimal
    addons_total: Decimal
    total_price: Decimal
    total_passengers: int
    days_before_travel: int
    currency: str = 'USD'
    tier_lines: tuple = ()
    addon_lines: tuple = ()
    seasonal: Optional[SeasonalMatch] = None
    group: Optional[GroupMatch] = None
    time_based: Optional[TimeDiscountMatch] = None
    promotion: Optional[PromotionMatch] = None
    trace: tuple = ()
    warnings: tuple = ()

    @property
    def discounted_subtotal(self) -> Decimal:
        """Tour price after every discount stage, before add-ons."""
        return self.total_price - self.addons_total

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return asdict(self)
