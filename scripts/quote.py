#!/usr/bin/env python
"""
Price a booking from the command line and print the itemized receipt.

Usage:
    python scripts/quote.py sample-tour 2026-12-20 --tier adult=2 --tier child=1
    python scripts/quote.py sample-tour 2026-12-20 --tier adult=2 --addon insurance=3 --promo SUMMER10
"""
import argparse
import sys
from datetime import date, datetime
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from package_pricing.config.settings import get_settings
from package_pricing.data.rule_store import PricingStore
from package_pricing.engine.exceptions import BookingValidationError, PricingError
from package_pricing.engine.models import BookingComposition
from package_pricing.services.pricing_service import PricingService


def _pairs(values: list[str]) -> dict[str, int]:
    pairs = {}
    for value in values or []:
        key, _, qty = value.partition('=')
        pairs[key] = int(qty) if qty else 1
    return pairs


def main():
    parser = argparse.ArgumentParser(description="Price a package booking")
    parser.add_argument("package_id")
    parser.add_argument("travel_date", type=date.fromisoformat)
    parser.add_argument("--tier", action="append", metavar="TYPE_OR_ID=QTY",
                        help="tier type (legacy packages) or tier id (custom tiers) with quantity")
    parser.add_argument("--addon", action="append", metavar="ID[=QTY]")
    parser.add_argument("--promo")
    parser.add_argument("--booking-date", type=datetime.fromisoformat)
    parser.add_argument("--preview", action="store_true", help="price even if the booking is invalid")
    args = parser.parse_args()

    settings = get_settings()
    store = PricingStore(settings.pricing_dir)
    service = PricingService()

    try:
        package = store.load(args.package_id)
        tiers = _pairs(args.tier)
        if package.use_custom_tiers:
            composition = BookingComposition(tiers)
        else:
            composition = BookingComposition.from_type_counts(tiers, package.tier_catalog)

        quote = service.calculate_price(
            package,
            composition,
            args.travel_date,
            booking_date=args.booking_date,
            promo_code=args.promo,
            addon_selections=_pairs(args.addon),
            preview=args.preview,
        )
    except BookingValidationError as e:
        print("❌ Booking rejected:")
        for error in e.validation.errors:
            print(f"  {error.message}")
        sys.exit(1)
    except PricingError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)

    breakdown = quote.breakdown
    print("=" * 60)
    print(f"{package.package_name} - {args.travel_date.isoformat()}")
    print("=" * 60)
    print(breakdown.get_trace_text())
    print()
    print(f"  Base price:          {breakdown.base_price:>12.2f}")
    print(f"  Seasonal adjustment: {breakdown.seasonal_adjustment:>12.2f}")
    print(f"  Group discount:      {-breakdown.group_discount:>12.2f}")
    print(f"  Time-based discount: {-breakdown.time_based_discount:>12.2f}")
    print(f"  Promo discount:      {-breakdown.promo_discount:>12.2f}")
    print(f"  Add-ons:             {breakdown.addons_total:>12.2f}")
    print(f"  TOTAL ({breakdown.currency}):         {breakdown.total_price:>12.2f}")

    for warning in breakdown.warnings:
        print(f"  ⚠️ {warning}")
    if not quote.bookable:
        print("\nPreview only, booking is not valid:")
        for message in quote.validation.messages:
            print(f"  {message}")


if __name__ == "__main__":
    main()
