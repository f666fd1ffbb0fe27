"""
Composition Validator - Checks that a set of tier quantities is bookable.

Rules enforced:
1. Group size within the package bounds
2. Tiers requiring adult accompaniment need at least one adult
3. Per-tier max_per_booking caps
4. Add-on quantity caps and required add-ons (separate check)

Every violation is collected; nothing is raised for rule failures.
"""
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..engine.exceptions import (
    BookingRuleError, GroupSizeError, AccompanimentError, PerTierCapError,
    AddOnLimitError, InvalidCompositionError,
)
from ..engine.models import BookingComposition, TierCatalog, AddOn, normalize_addon_selections


@dataclass
class ValidationResult:
    """Result of composition validation."""
    valid: bool
    composition: BookingComposition
    total_passengers: int = 0
    adult_count: int = 0
    errors: list[BookingRuleError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: BookingRuleError):
        self.errors.append(error)
        self.valid = False

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def raise_for_errors(self):
        """Raise the first violation, if any."""
        if self.errors:
            raise self.errors[0]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "total_passengers": self.total_passengers,
            "adult_count": self.adult_count,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }


class CompositionValidator:
    """Validates booking compositions against a package's tiers and group bounds."""

    def validate(
        self,
        composition: BookingComposition,
        catalog: TierCatalog,
        min_group_size: int = 1,
        max_group_size: Optional[int] = None,
    ) -> ValidationResult:
        """
        Validate a composition. Returns the composition unchanged inside the result.

        Raises:
            InvalidCompositionError: composition references an unknown tier id
        """
        for tier_id, _ in composition.items():
            if catalog.get(tier_id) is None:
                raise InvalidCompositionError(f"Unknown tier id: {tier_id}")

        total = composition.total_passengers
        adults = composition.adult_count(catalog)
        result = ValidationResult(
            valid=True,
            composition=composition,
            total_passengers=total,
            adult_count=adults,
        )

        # 1. Group size
        if total < min_group_size:
            result.add_error(GroupSizeError(
                f"Minimum group size is {min_group_size} passengers. You have {total}.",
                {"min_group_size": min_group_size, "total_passengers": total},
            ))
        if max_group_size and total > max_group_size:
            result.add_error(GroupSizeError(
                f"Maximum group size is {max_group_size} passengers. You have {total}.",
                {"max_group_size": max_group_size, "total_passengers": total},
            ))

        # 2. Adult accompaniment
        dependents = []
        for tier_id, qty in composition.items():
            tier = catalog.get(tier_id)
            if tier.requires_adult_accompaniment and qty > 0:
                dependents.append(tier.display_label)
        if dependents and adults == 0:
            result.add_error(AccompanimentError(
                "At least one adult is required when booking " + ", ".join(dependents) + ".",
                {"tiers": dependents},
            ))

        # 3. Per-tier caps
        for tier_id, qty in composition.items():
            tier = catalog.get(tier_id)
            if tier.max_per_booking and qty > tier.max_per_booking:
                result.add_error(PerTierCapError(
                    f"{tier.display_label}: Maximum {tier.max_per_booking} per booking.",
                    {"tier_id": tier.id, "max_per_booking": tier.max_per_booking, "requested": qty},
                ))
            if not tier.is_active and qty > 0:
                result.warnings.append(f"{tier.display_label} is no longer offered and will not be priced")

        return result

    def validate_addons(self, selections, addons: Iterable[AddOn]) -> list[AddOnLimitError]:
        """Check add-on quantity caps and that every required add-on was selected."""
        errors = []
        addons = [a for a in addons if a.is_active]
        by_id = {a.id: a for a in addons}
        selected = {}
        for addon_id, qty in normalize_addon_selections(selections):
            selected[addon_id] = 1 if qty is None else qty

        for addon_id, qty in selected.items():
            addon = by_id.get(addon_id)
            if addon is None:
                continue
            if addon.max_quantity and qty > addon.max_quantity:
                errors.append(AddOnLimitError(
                    f"{addon.addon_name}: Maximum {addon.max_quantity} per booking.",
                    {"addon_id": addon.id, "max_quantity": addon.max_quantity, "requested": qty},
                ))

        for addon in addons:
            if addon.is_required and selected.get(addon.id, 0) <= 0:
                errors.append(AddOnLimitError(
                    f"{addon.addon_name} is required for this package.",
                    {"addon_id": addon.id, "required": True},
                ))
        return errors
