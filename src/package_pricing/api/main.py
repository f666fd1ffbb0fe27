import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from package_pricing import __version__
from package_pricing.api.state import get_service, get_store
from package_pricing.data.rule_store import PricingPackage, PricingStore
from package_pricing.engine.exceptions import (
    BookingValidationError, InvalidCompositionError, PackageNotFoundError, RuleSheetError,
)
from package_pricing.engine.models import STANDARD_TIER_TYPES, BookingComposition
from package_pricing.policy.availability import list_blocked_dates
from package_pricing.rules.audit import audit_rule_set
from package_pricing.services.pricing_service import PricingService

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Package Pricing API",
    description="Price calculation and booking validation for tour packages",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class TierSelectionIn(BaseModel):
    tier_id: str
    quantity: int
    tier_label: Optional[str] = None


class CompositionIn(BaseModel):
    """Either tier-id selections (custom tiers) or legacy per-type counts."""
    package_id: str
    selected_tiers: Optional[List[TierSelectionIn]] = None
    adult_count: int = 0
    child_count: int = 0
    infant_count: int = 0
    senior_count: int = 0
    student_count: int = 0
    addon_ids: List[str] = []
    addon_quantities: Dict[str, int] = {}

    def composition_for(self, package: PricingPackage) -> BookingComposition:
        if self.selected_tiers:
            return BookingComposition.from_selections(
                (s.tier_id, s.quantity) for s in self.selected_tiers
            )
        counts = {t: getattr(self, f"{t}_count") for t in STANDARD_TIER_TYPES}
        return BookingComposition.from_type_counts(counts, package.tier_catalog)

    def addon_selections(self) -> Dict[str, int]:
        """Listed add-ons with a missing or zero quantity count once."""
        return {addon_id: self.addon_quantities.get(addon_id) or 1 for addon_id in self.addon_ids}


class CalcRequest(CompositionIn):
    travel_date: date
    booking_date: Optional[datetime] = None
    promo_code: Optional[str] = None
    preview: bool = False


def _load_package(store: PricingStore, package_id: str) -> PricingPackage:
    try:
        return store.load(package_id)
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleSheetError as e:
        logger.exception("Pricing sheets for %s are invalid", package_id)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/")
async def root():
    return {"status": "online", "message": "Package Pricing API Active"}


@app.post("/calculate")
async def calculate_price(
    req: CalcRequest,
    store: PricingStore = Depends(get_store),
    service: PricingService = Depends(get_service),
):
    package = _load_package(store, req.package_id)
    try:
        quote = service.calculate_price(
            package,
            req.composition_for(package),
            req.travel_date,
            booking_date=req.booking_date,
            promo_code=req.promo_code,
            addon_selections=req.addon_selections(),
            preview=req.preview,
        )
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=e.validation.to_dict())
    except InvalidCompositionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Price calculation failed for %s", req.package_id)
        raise HTTPException(status_code=500, detail=str(e))
    return jsonable_encoder(quote.to_dict())


@app.post("/validate")
async def validate_composition(
    req: CompositionIn,
    store: PricingStore = Depends(get_store),
    service: PricingService = Depends(get_service),
):
    package = _load_package(store, req.package_id)
    try:
        validation = service.validate_composition(
            req.composition_for(package),
            package.tier_catalog,
            package.min_group_size,
            package.max_group_size,
        )
    except InvalidCompositionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    for error in service.validator.validate_addons(req.addon_selections(), package.rule_set.addons):
        validation.add_error(error)
    return validation.to_dict()


@app.get("/packages")
async def list_packages(store: PricingStore = Depends(get_store)):
    packages = []
    for package_id in store.list_packages():
        package = _load_package(store, package_id)
        packages.append({
            "package_id": package.package_id,
            "package_name": package.package_name,
            "currency": package.currency,
            "min_group_size": package.min_group_size,
            "max_group_size": package.max_group_size,
            "use_custom_tiers": package.use_custom_tiers,
            "tiers": [
                {
                    "id": tier.id,
                    "tier_type": tier.tier_type,
                    "label": tier.display_label,
                    "unit_price": tier.unit_price,
                    "requires_adult_accompaniment": tier.requires_adult_accompaniment,
                    "max_per_booking": tier.max_per_booking,
                }
                for tier in package.tier_catalog.active_tiers()
            ],
        })
    return jsonable_encoder(packages)


@app.get("/packages/{package_id}/departures/{departure_date}/availability")
async def departure_availability(
    package_id: str,
    departure_date: date,
    slots: int = 1,
    store: PricingStore = Depends(get_store),
    service: PricingService = Depends(get_service),
):
    package = _load_package(store, package_id)
    departure = package.departure_for(departure_date)
    if departure is None:
        raise HTTPException(status_code=404, detail=f"No departure on {departure_date.isoformat()}")
    result = service.check_availability(departure, slots)
    return {"package_id": package_id, "departure_date": departure_date, **result.to_dict()}


@app.get("/packages/{package_id}/blocked-dates")
async def blocked_dates(
    package_id: str,
    start_date: date,
    end_date: date,
    store: PricingStore = Depends(get_store),
):
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    package = _load_package(store, package_id)
    ranges = [r for r in package.blocked_dates if r.start_date <= end_date and r.end_date >= start_date]
    return jsonable_encoder({
        "package_id": package_id,
        "start_date": start_date,
        "end_date": end_date,
        "blocked_dates": list_blocked_dates(ranges, start_date, end_date),
        "blocked_ranges": ranges,
    })


@app.get("/packages/{package_id}/audit")
async def audit_package(package_id: str, store: PricingStore = Depends(get_store)):
    package = _load_package(store, package_id)
    return audit_rule_set(package).to_dict()


@app.post("/system/reload")
async def reload_data(store: PricingStore = Depends(get_store)):
    """Drop cached package snapshots so the next request re-reads the sheets."""
    store.reload()
    return {"success": True, "packages": store.list_packages()}
