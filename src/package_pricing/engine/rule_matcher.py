"""
Rule Matcher - Selects the single applicable rule for each pricing stage.

Every "first match" resolution here walks the rule tuples in declaration
order. Seasonal rules are stably sorted by priority (higher first), so
rules sharing a priority keep their declaration order.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from .models import (
    ZERO, HUNDRED, as_money, DateBound,
    RuleSet, SeasonalRule, GroupPricingBand, TimeBasedDiscount, Promotion, AddOn,
)


def _as_instant(value: datetime) -> datetime:
    """Aware datetime for comparison; naive values are taken as UTC."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def within_window(now: datetime, valid_from: DateBound, valid_to: DateBound) -> bool:
    """
    Check that `now` falls inside an optional validity window.

    Date-only bounds are compared by calendar day and include the whole
    day; datetime bounds are compared as instants. When only one side of a
    comparison carries a timezone, the naive side is read as UTC.
    """
    if valid_from is not None:
        if isinstance(valid_from, datetime):
            if _as_instant(now) < _as_instant(valid_from):
                return False
        elif now.date() < valid_from:
            return False
    if valid_to is not None:
        if isinstance(valid_to, datetime):
            if _as_instant(now) > _as_instant(valid_to):
                return False
        elif now.date() > valid_to:
            return False
    return True


def override_price_as_fixed_amount(rule: SeasonalRule, base_price: Decimal) -> Decimal:
    """
    Seasonal override_price treated like fixed_amount: the value is added as a flat delta.

    Current production behaviour; a real per-tier override would replace
    unit prices in the base stage instead.
    """
    return as_money(rule.adjustment_value)


OverrideStrategy = Callable[[SeasonalRule, Decimal], Decimal]


class RuleMatcher:
    """
    Matches the rules of one RuleSet against a booking context.

    Stateless apart from the read-only rule set it wraps.
    """

    def __init__(self, rule_set: RuleSet):
        self.rule_set = rule_set

    # -- Seasonal ---------------------------------------------------------

    def find_seasonal_rule(self, travel_date: date) -> Optional[SeasonalRule]:
        """Active rule containing the travel date with the highest priority (first declared on ties)."""
        candidates = [
            r for r in self.rule_set.seasonal_rules
            if r.is_active and r.contains(travel_date)
        ]
        if not candidates:
            return None
        # sorted() is stable, so equal priorities keep declaration order
        return sorted(candidates, key=lambda r: -r.priority)[0]

    @staticmethod
    def seasonal_amount(
        rule: SeasonalRule,
        base_price: Decimal,
        override_strategy: OverrideStrategy = override_price_as_fixed_amount,
    ) -> Decimal:
        """Seasonal adjustment. Percentages apply to the raw tier subtotal."""
        value = as_money(rule.adjustment_value)
        if rule.adjustment_type == 'percentage':
            return base_price * value / HUNDRED
        if rule.adjustment_type == 'fixed_amount':
            return value
        if rule.adjustment_type == 'override_price':
            return override_strategy(rule, base_price)
        return ZERO

    # -- Group ------------------------------------------------------------

    def find_group_band(self, total_passengers: int) -> Optional[GroupPricingBand]:
        for band in self.rule_set.group_bands:
            if band.is_active and band.contains(total_passengers):
                return band
        return None

    @staticmethod
    def group_amount(band: GroupPricingBand, base_price: Decimal, total_passengers: int) -> Decimal:
        """
        Raw (unclamped) group discount, computed against the tier subtotal.

        per_person reports the replacement per-person total itself as the
        discount, not a delta against the base price.
        """
        if band.pricing_type == 'discount_percentage':
            return base_price * as_money(band.discount_percentage) / HUNDRED
        if band.pricing_type == 'discount_amount':
            return as_money(band.discount_amount)
        if band.pricing_type == 'per_person':
            return as_money(band.price_per_person) * total_passengers
        if band.pricing_type == 'per_group':
            return base_price - as_money(band.price_per_group)
        return ZERO

    # -- Time based -------------------------------------------------------

    def find_time_discount(self, days_before_travel: int, now: datetime) -> Optional[TimeBasedDiscount]:
        """First active, currently valid rule whose day comparison holds."""
        for discount in self.rule_set.time_discounts:
            if not discount.is_active:
                continue
            if not within_window(now, discount.valid_from, discount.valid_to):
                continue
            if discount.comparison == 'greater_than':
                matched = days_before_travel > discount.days_before_travel
            elif discount.comparison == 'less_than':
                matched = days_before_travel < discount.days_before_travel
            else:
                matched = days_before_travel == discount.days_before_travel
            if matched:
                return discount
        return None

    @staticmethod
    def time_discount_amount(discount: TimeBasedDiscount, running_price: Decimal) -> Decimal:
        value = as_money(discount.discount_value)
        if discount.discount_amount_type == 'percentage':
            return running_price * value / HUNDRED
        return value

    # -- Promotions -------------------------------------------------------

    def find_promotion(
        self,
        promo_code: str,
        running_price: Decimal,
        total_passengers: int,
        now: datetime,
    ) -> tuple[Optional[Promotion], list[str]]:
        """
        Find the promotion a code unlocks.

        Returns (promotion, reasons) where reasons explains why each
        promotion carrying the code was rejected.
        """
        code = promo_code.strip().lower()
        reasons = []

        for promo in self.rule_set.promotions:
            if promo.promotion_code.strip().lower() != code:
                continue
            if not promo.is_active:
                reasons.append(f"{promo.promotion_code} inactive")
                continue
            if not promo.applies_to_package(self.rule_set.package_id):
                reasons.append(f"{promo.promotion_code} not valid for this package")
                continue
            if not within_window(now, promo.valid_from, promo.valid_to):
                reasons.append(f"{promo.promotion_code} outside validity period")
                continue
            if promo.max_uses and promo.current_uses >= promo.max_uses:
                reasons.append(f"{promo.promotion_code} usage limit reached")
                continue
            if promo.min_purchase_amount and running_price < as_money(promo.min_purchase_amount):
                reasons.append(f"{promo.promotion_code} below minimum purchase {promo.min_purchase_amount}")
                continue
            if promo.min_pax and total_passengers < promo.min_pax:
                reasons.append(f"{promo.promotion_code} requires {promo.min_pax} passengers")
                continue
            return promo, reasons

        if not reasons:
            reasons.append(f"No promotion with code {promo_code}")
        return None, reasons

    @staticmethod
    def promotion_amount(promo: Promotion, running_price: Decimal) -> Decimal:
        if promo.discount_type == 'percentage':
            return running_price * as_money(promo.discount_value) / HUNDRED
        if promo.discount_type == 'fixed_amount':
            return as_money(promo.discount_value)
        # buy_x_get_y is reserved and not implemented yet; it contributes nothing
        return ZERO

    # -- Add-ons ----------------------------------------------------------

    def find_addon(self, addon_id: str) -> Optional[AddOn]:
        for addon in self.rule_set.addons:
            if addon.id == addon_id and addon.is_active:
                return addon
        return None
