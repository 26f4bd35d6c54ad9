from __future__ import annotations

from decimal import Decimal


class PricingError(RuntimeError):
    """Base error for rate resolution and assignment failures."""


class NoRateConfigured(PricingError):
    """Raised when neither an actor override nor a tier default exists."""


class ChannelInactive(PricingError):
    """Raised when pricing is requested for a disabled channel."""


class RateBelowFloor(PricingError):
    """Raised when a rate or fee would undercut its floor."""

    def __init__(self, actual: Decimal, floor: Decimal, message: str | None = None):
        self.actual = actual
        self.floor = floor
        super().__init__(message or f"Value {actual} is below the floor {floor}.")


class OverlappingSlabs(PricingError):
    """Raised when a slab table has overlapping or malformed ranges."""


class NoSlabMatch(PricingError):
    """Raised when no slab covers an amount (a configuration bug)."""

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__(f"No slab matches amount {amount}.")


class AssignmentNotPermitted(PricingError):
    """Raised when the assigner may not price the target."""
