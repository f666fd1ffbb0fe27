"""
Shared API state - the pricing store and service used by request handlers.

Handlers receive these through FastAPI dependencies so tests can swap them
with `app.dependency_overrides`.
"""
from typing import Optional

from ..config.settings import get_settings
from ..data.rule_store import PricingStore
from ..engine.pricing_engine import PriceEngine
from ..services.pricing_service import PricingService

_store: Optional[PricingStore] = None
_service: Optional[PricingService] = None


def get_store() -> PricingStore:
    global _store
    if _store is None:
        _store = PricingStore(get_settings().pricing_dir)
    return _store


def get_service() -> PricingService:
    global _service
    if _service is None:
        _service = PricingService(engine=PriceEngine(currency=get_settings().currency))
    return _service
