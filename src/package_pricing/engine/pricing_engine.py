"""
Price Engine - Six-stage package price resolution with traceability.

Stages run in a fixed order:
A. Base price from tier selling prices (or departure overrides)
B. Seasonal adjustment (percentage of the tier subtotal, or flat)
C. Group discount (computed against the tier subtotal, clamped at zero)
D. Time-based discount (percentage of the running price after B and C)
E. Promotion code (percentage of the running price after D)
F. Add-ons (never discounted)

Unmatched rules contribute zero. The engine holds no state beyond its
clock and strategy, so one instance can serve concurrent callers.
"""
import logging
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Callable, Optional

from .exceptions import InvalidCompositionError
from .models import (
    ZERO, as_money, normalize_addon_selections,
    TierCatalog, RuleSet, PriceRequest, PriceBreakdown, TraceStep,
    TierLine, SeasonalMatch, GroupMatch, TimeDiscountMatch, PromotionMatch, AddOnLine,
)
from .rule_matcher import RuleMatcher, OverrideStrategy, override_price_as_fixed_amount

logger = logging.getLogger(__name__)


def days_until(travel_date: date, booking_date) -> int:
    """
    Whole days from booking to travel, rounded up.

    The travel date counts from midnight. A date-only booking also counts
    from midnight; an aware booking datetime lends its tzinfo to the
    travel midnight.
    """
    if isinstance(booking_date, datetime):
        travel_start = datetime.combine(travel_date, time.min, tzinfo=booking_date.tzinfo)
        booked_at = booking_date
    else:
        travel_start = datetime.combine(travel_date, time.min)
        booked_at = datetime.combine(booking_date, time.min)
    return math.ceil((travel_start - booked_at).total_seconds() / 86400)


class PriceEngine:
    """
    Turns a booking composition and a package rule set into a PriceBreakdown.

    Args:
        clock: Returns "now"; drives validity windows and the default booking date
        currency: Settlement currency, passed through unchanged
        override_strategy: How seasonal override_price rules are turned into an amount
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        currency: str = 'USD',
        override_strategy: OverrideStrategy = override_price_as_fixed_amount,
    ):
        self.clock = clock or datetime.now
        self.currency = currency
        self.override_strategy = override_strategy

    def calculate(
        self,
        catalog: TierCatalog,
        rule_set: RuleSet,
        request: PriceRequest,
        currency: Optional[str] = None,
    ) -> PriceBreakdown:
        """
        Calculate an itemized price.

        `currency` overrides the engine default for this call only.

        Raises:
            InvalidCompositionError: composition references a tier the catalog does not know
        """
        now = self.clock()
        currency = currency or self.currency
        matcher = RuleMatcher(rule_set)
        trace: list[TraceStep] = []
        warnings: list[str] = []

        def add_trace(step: str, description: str, value: Optional[str] = None):
            trace.append(TraceStep(step=step, description=description, value=value))

        def fmt(amount: Decimal) -> str:
            return f"{amount:.2f} {currency}"

        composition = request.composition
        unknown = [tier_id for tier_id, _ in composition.items() if catalog.get(tier_id) is None]
        if unknown:
            raise InvalidCompositionError(f"Unknown tier id(s): {', '.join(map(str, unknown))}")

        total_passengers = composition.total_passengers
        booking_date = request.booking_date or now
        days_before_travel = days_until(request.travel_date, booking_date)
        add_trace("Context", f"{total_passengers} passenger(s), travel {request.travel_date.isoformat()}",
                  f"{days_before_travel} day(s) before travel")

        # Stage A - base price
        tier_lines = []
        base_price = ZERO
        for tier_id, qty in composition.items():
            if qty <= 0:
                continue
            tier = catalog.get(tier_id)
            if not tier.is_active:
                warnings.append(f"Tier {tier.display_label} is inactive and was not priced")
                add_trace("Base Price", f"{tier.display_label} inactive, skipped")
                continue

            override = rule_set.departure.custom_price_for(tier.tier_type) if rule_set.departure else None
            if override is not None:
                unit_price, source = override, 'departure_override'
            elif tier.selling_price:
                unit_price, source = tier.unit_price, 'selling_price'
            else:
                unit_price, source = as_money(tier.base_price), 'base_price'

            subtotal = unit_price * qty
            base_price += subtotal
            tier_lines.append(TierLine(
                tier_id=tier.id,
                tier_type=tier.tier_type,
                tier_label=tier.display_label,
                count=qty,
                unit_price=unit_price,
                subtotal=subtotal,
                price_source=source,
            ))
            add_trace("Base Price", f"{tier.display_label}: {qty} × {fmt(unit_price)} ({source})",
                      fmt(subtotal))
        logger.debug("Base price %s from %d tier line(s)", base_price, len(tier_lines))

        # Rule stages only apply to bookings with passengers
        if not total_passengers:
            add_trace("Rules", "No passengers booked, discount stages skipped")

        # Stage B - seasonal
        seasonal_adjustment = ZERO
        seasonal = None
        rule = matcher.find_seasonal_rule(request.travel_date) if total_passengers else None
        if rule is not None:
            seasonal_adjustment = matcher.seasonal_amount(rule, base_price, self.override_strategy)
            seasonal = SeasonalMatch(
                season_name=rule.season_name,
                adjustment_type=rule.adjustment_type,
                adjustment_value=as_money(rule.adjustment_value),
                priority=rule.priority,
                applied_amount=seasonal_adjustment,
            )
            add_trace("Seasonal", f"{rule.season_name or 'Season'} ({rule.adjustment_type} {rule.adjustment_value})",
                      fmt(seasonal_adjustment))
        else:
            add_trace("Seasonal", "No seasonal rule for travel date")
        logger.debug("Seasonal adjustment %s", seasonal_adjustment)

        # Stage C - group discount
        group_discount = ZERO
        group = None
        band = matcher.find_group_band(total_passengers) if total_passengers else None
        if band is not None:
            raw = matcher.group_amount(band, base_price, total_passengers)
            group_discount = max(ZERO, raw)
            group = GroupMatch(
                min_pax=band.min_pax,
                max_pax=band.max_pax,
                pricing_type=band.pricing_type,
                raw_amount=raw,
                applied_amount=group_discount,
            )
            add_trace("Group", f"{band.min_pax}-{band.max_pax} pax band ({band.pricing_type})",
                      fmt(group_discount))
            if raw < ZERO:
                warnings.append("Group pricing would raise the price; discount clamped to zero")
        else:
            add_trace("Group", f"No group band for {total_passengers} passenger(s)")
        logger.debug("Group discount %s", group_discount)

        # Stage D - time based discount
        running_price = base_price + seasonal_adjustment - group_discount
        time_based_discount = ZERO
        time_based = None
        discount = matcher.find_time_discount(days_before_travel, now) if total_passengers else None
        if discount is not None:
            time_based_discount = matcher.time_discount_amount(discount, running_price)
            time_based = TimeDiscountMatch(
                discount_name=discount.discount_name,
                discount_type=discount.discount_type,
                comparison=discount.comparison,
                threshold_days=discount.days_before_travel,
                applied_amount=time_based_discount,
            )
            add_trace("Time Based", f"{discount.discount_name} on {fmt(running_price)}",
                      fmt(time_based_discount))
        else:
            add_trace("Time Based", "No time-based discount applies")
        logger.debug("Time-based discount %s", time_based_discount)

        # Stage E - promotion
        running_price -= time_based_discount
        promo_discount = ZERO
        promotion = None
        if request.promo_code and total_passengers:
            promo, reasons = matcher.find_promotion(request.promo_code, running_price, total_passengers, now)
            if promo is not None:
                promo_discount = matcher.promotion_amount(promo, running_price)
                implemented = promo.discount_type in ('percentage', 'fixed_amount')
                promotion = PromotionMatch(
                    promotion_code=promo.promotion_code,
                    promotion_name=promo.promotion_name,
                    discount_type=promo.discount_type,
                    applied_amount=promo_discount,
                    implemented=implemented,
                )
                if not implemented:
                    warnings.append(f"Promotion type {promo.discount_type} is not supported yet; no discount applied")
                add_trace("Promotion", f"Code {promo.promotion_code} on {fmt(running_price)}",
                          fmt(promo_discount))
            else:
                warnings.append(f"Promo code {request.promo_code} not applied")
                add_trace("Promotion", "; ".join(reasons))
        logger.debug("Promo discount %s", promo_discount)

        # Stage F - add-ons
        addon_lines = []
        addons_total = ZERO
        for addon_id, quantity in normalize_addon_selections(request.addon_selections):
            if quantity is None:
                quantity = 1
            if quantity < 0:
                raise InvalidCompositionError(f"Quantity for add-on '{addon_id}' cannot be negative ({quantity})")
            if quantity == 0:
                continue
            addon = matcher.find_addon(addon_id)
            if addon is None:
                warnings.append(f"Add-on {addon_id} unavailable and was not charged")
                continue
            price = as_money(addon.price)
            subtotal = price * quantity
            addons_total += subtotal
            addon_lines.append(AddOnLine(
                addon_id=addon.id,
                addon_name=addon.addon_name,
                pricing_type=addon.pricing_type,
                quantity=quantity,
                unit_price=price,
                subtotal=subtotal,
            ))
            add_trace("Add-on", f"{addon.addon_name}: {quantity} × {fmt(price)}", fmt(subtotal))

        subtotal_after_discounts = base_price + seasonal_adjustment - group_discount - time_based_discount - promo_discount
        if subtotal_after_discounts < ZERO:
            warnings.append("Discounts exceed the tour price; tour price clamped to zero")
        total_price = max(ZERO, subtotal_after_discounts) + addons_total
        add_trace("Total", "Tour price after discounts plus add-ons", fmt(total_price))
        logger.debug("Total price %s (%s add-ons)", total_price, addons_total)

        return PriceBreakdown(
            base_price=base_price,
            seasonal_adjustment=seasonal_adjustment,
            group_discount=group_discount,
            time_based_discount=time_based_discount,
            promo_discount=promo_discount,
            addons_total=addons_total,
            total_price=total_price,
            total_passengers=total_passengers,
            days_before_travel=days_before_travel,
            currency=currency,
            tier_lines=tuple(tier_lines),
            addon_lines=tuple(addon_lines),
            seasonal=seasonal,
            group=group,
            time_based=time_based,
            promotion=promotion,
            trace=tuple(trace),
            warnings=tuple(warnings),
        )
