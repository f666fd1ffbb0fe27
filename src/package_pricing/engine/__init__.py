"""Engine subpackage - core price calculation and rule resolution."""
from .pricing_engine import PriceEngine
from .models import (
    PricingTier, TierCatalog, GroupPricingBand, SeasonalRule, TimeBasedDiscount,
    Promotion, AddOn, DepartureInventory, RuleSet, BookingComposition,
    PriceRequest, PriceBreakdown,
)

__all__ = [
    'PriceEngine', 'PricingTier', 'TierCatalog', 'GroupPricingBand', 'SeasonalRule',
    'TimeBasedDiscount', 'Promotion', 'AddOn', 'DepartureInventory', 'RuleSet',
    'BookingComposition', 'PriceRequest', 'PriceBreakdown',
]
