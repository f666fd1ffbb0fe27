"""
Rule Set Audit - Flags pricing data that resolves ambiguously or looks wrong.

Overlaps are legal (resolution is deterministic) but usually unintended,
so they are reported as warnings. Inverted ranges and negative prices are
errors.
"""
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Optional

from ..engine.models import as_money, ZERO
from ..data.rule_store import PricingPackage


@dataclass
class AuditResult:
    """Result of a rule-set audit."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def _date_part(value):
    return value.date() if isinstance(value, datetime) else value


def audit_rule_set(package: PricingPackage, today: Optional[datetime] = None) -> AuditResult:
    """Audit a package's tiers and rules."""
    result = AuditResult(valid=True)
    today = (today or datetime.now()).date()
    rule_set = package.rule_set

    def error(message: str):
        result.errors.append(message)
        result.valid = False

    # Tiers
    for tier in package.tier_catalog:
        if as_money(tier.base_price) < ZERO or (tier.selling_price is not None and as_money(tier.selling_price) < ZERO):
            error(f"Tier {tier.id} has a negative price")
        if tier.min_age is not None and tier.max_age is not None and tier.min_age > tier.max_age:
            error(f"Tier {tier.id} min_age is above max_age")

    if package.max_group_size and package.min_group_size > package.max_group_size:
        error("min_group_size is above max_group_size")

    # Group bands
    active_bands = [b for b in rule_set.group_bands if b.is_active]
    for band in active_bands:
        if band.min_pax > band.max_pax:
            error(f"Group band {band.min_pax}-{band.max_pax} has min_pax above max_pax")
    for first, second in combinations(active_bands, 2):
        if first.min_pax <= second.max_pax and second.min_pax <= first.max_pax:
            result.warnings.append(
                f"Group bands {first.min_pax}-{first.max_pax} and {second.min_pax}-{second.max_pax} overlap; "
                f"the first declared band wins"
            )

    # Seasonal rules
    active_seasons = [s for s in rule_set.seasonal_rules if s.is_active]
    for season in active_seasons:
        if season.start_date > season.end_date:
            error(f"Season {season.season_name or season.id} ends before it starts")
    for first, second in combinations(active_seasons, 2):
        overlaps = first.start_date <= second.end_date and second.start_date <= first.end_date
        if overlaps and first.priority == second.priority:
            result.warnings.append(
                f"Seasons {first.season_name or first.id} and {second.season_name or second.id} overlap "
                f"with equal priority {first.priority}; the first declared season wins"
            )

    # Time-based discounts
    for discount in rule_set.time_discounts:
        if discount.valid_from and discount.valid_to and _date_part(discount.valid_from) > _date_part(discount.valid_to):
            error(f"Time-based discount {discount.discount_name} validity ends before it starts")
        if discount.comparison not in ('greater_than', 'less_than', 'equal', 'equal_to'):
            result.warnings.append(
                f"Time-based discount {discount.discount_name} has unknown comparison "
                f"'{discount.comparison}'; it is treated as equal"
            )

    # Promotions scoped to this package
    for promo in rule_set.promotions:
        if not promo.is_active or not promo.applies_to_package(package.package_id):
            continue
        if promo.valid_to and _date_part(promo.valid_to) < today:
            result.warnings.append(f"Promotion {promo.promotion_code} has expired")
        if promo.max_uses and promo.current_uses >= promo.max_uses:
            result.warnings.append(f"Promotion {promo.promotion_code} has no uses left")
        if promo.discount_type == 'buy_x_get_y':
            result.warnings.append(f"Promotion {promo.promotion_code} is buy_x_get_y, which gives no discount yet")

    # Add-ons
    for addon in rule_set.addons:
        if as_money(addon.price) < ZERO:
            error(f"Add-on {addon.id} has a negative price")

    # Departures
    for departure in package.departures:
        if departure.booked_slots > departure.available_slots:
            result.warnings.append(f"Departure {departure.departure_date} is overbooked")

    return result
