"""
Availability - Departure slot checks and blocked travel dates.

Pure functions over inventory snapshots. Nothing here reserves or mutates
inventory; reservations belong to the booking system.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from ..engine.exceptions import (
    BookingRuleError, SoldOutError, CancelledError, InsufficientSlotsError, BlockedDateError,
)
from ..engine.models import DepartureInventory


@dataclass
class AvailabilityResult:
    """Whether a departure can take the requested number of slots."""
    available: bool
    remaining_slots: int
    requested_slots: int
    error: Optional[BookingRuleError] = None

    @property
    def reason(self) -> Optional[str]:
        return self.error.message if self.error else None

    def raise_for_errors(self):
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "remaining_slots": self.remaining_slots,
            "requested_slots": self.requested_slots,
            "error": self.error.to_dict() if self.error else None,
        }


def check_availability(inventory: DepartureInventory, requested_slots: int) -> AvailabilityResult:
    """
    Check a departure's inventory for a requested slot count.

    Precedence: sold out (status or no slots left), cancelled, insufficient
    slots, available. An overbooked departure counts as sold out.
    """
    remaining = inventory.remaining_slots

    if inventory.status == 'sold_out' or remaining <= 0:
        return AvailabilityResult(
            available=False,
            remaining_slots=0,
            requested_slots=requested_slots,
            error=SoldOutError("This departure is sold out.", {"remaining_slots": 0}),
        )

    if inventory.status == 'cancelled':
        return AvailabilityResult(
            available=False,
            remaining_slots=0,
            requested_slots=requested_slots,
            error=CancelledError("This departure has been cancelled."),
        )

    if requested_slots > remaining:
        return AvailabilityResult(
            available=False,
            remaining_slots=remaining,
            requested_slots=requested_slots,
            error=InsufficientSlotsError(
                f"Only {remaining} slots available for this departure. You requested {requested_slots}.",
                {"remaining_slots": remaining, "requested_slots": requested_slots},
            ),
        )

    return AvailabilityResult(available=True, remaining_slots=remaining, requested_slots=requested_slots)


@dataclass(frozen=True)
class BlockedDateRange:
    """An inclusive range of dates on which a package cannot be booked."""
    start_date: date
    end_date: date
    reason: Optional[str] = None
    notes: Optional[str] = None

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass
class BlockedDateResult:
    blocked: bool
    reason: Optional[str] = None
    notes: Optional[str] = None

    def as_error(self) -> Optional[BlockedDateError]:
        if not self.blocked:
            return None
        message = "This date is not available for booking"
        if self.reason:
            message += f": {self.reason}"
        return BlockedDateError(message, {"reason": self.reason, "notes": self.notes})


def check_blocked_date(ranges: Iterable[BlockedDateRange], travel_date: date) -> BlockedDateResult:
    """First blocked range containing the travel date decides."""
    for blocked in ranges:
        if blocked.contains(travel_date):
            return BlockedDateResult(blocked=True, reason=blocked.reason, notes=blocked.notes)
    return BlockedDateResult(blocked=False)


def list_blocked_dates(ranges: Iterable[BlockedDateRange], start: date, end: date) -> list[date]:
    """
    Expand blocked ranges into individual dates within [start, end].

    Ranges that only partly overlap the window are clipped; overlapping
    ranges do not produce duplicates. Result is sorted.
    """
    days = set()
    for blocked in ranges:
        first = max(blocked.start_date, start)
        last = min(blocked.end_date, end)
        day = first
        while day <= last:
            days.add(day)
            day += timedelta(days=1)
    return sorted(days)
