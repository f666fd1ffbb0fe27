import os
import sys
from datetime import datetime
from decimal import Decimal

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from package_pricing.engine import PriceEngine
from package_pricing.engine.models import PricingTier, TierCatalog

FIXED_NOW = datetime(2026, 5, 1, 9, 0)


@pytest.fixture
def catalog():
    """Adult $100, child $60 (child needs an adult)."""
    return TierCatalog(tiers=[
        PricingTier(id='adult', tier_type='adult', base_price=Decimal('100')),
        PricingTier(id='child', tier_type='child', base_price=Decimal('60'),
                    requires_adult_accompaniment=True, max_per_booking=4),
    ])


@pytest.fixture
def engine():
    return PriceEngine(clock=lambda: FIXED_NOW)


@pytest.fixture
def now():
    return FIXED_NOW
