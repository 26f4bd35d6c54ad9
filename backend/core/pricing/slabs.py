"""Flat-fee slab tables.

A slab table is a list of amount ranges ``[min_amount, max_amount]`` (both
inclusive, ``max_amount`` may be ``None`` for a catch-all) each carrying a
flat fee. Tables are validated once, when they are assigned, and resolved
many times afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Sequence

from pricing.exceptions import NoSlabMatch, OverlappingSlabs


@dataclass(frozen=True, slots=True)
class SlabRange:
    min_amount: Decimal
    max_amount: Decimal | None
    flat_fee: Decimal

    def contains(self, amount: Decimal) -> bool:
        return self.min_amount <= amount and (self.max_amount is None or amount <= self.max_amount)

    def overlaps(self, other: "SlabRange") -> bool:
        if self.max_amount is not None and other.min_amount > self.max_amount:
            return False
        if other.max_amount is not None and self.min_amount > other.max_amount:
            return False
        return True


def _to_decimal(value: Any, *, field: str) -> Decimal:
    if value is None or value == "":
        raise OverlappingSlabs(f"Missing {field}.")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise OverlappingSlabs(f"Invalid decimal for {field}.") from exc
    if not number.is_finite():
        raise OverlappingSlabs(f"Invalid decimal for {field}.")
    return number


def as_slab_range(slab: Any) -> SlabRange:
    """Accept a SlabRange, a ``pricing.Slab`` row or a mapping."""

    if isinstance(slab, SlabRange):
        return slab
    if isinstance(slab, Mapping):
        raw_min = slab.get("min_amount")
        raw_max = slab.get("max_amount")
        raw_fee = slab.get("flat_fee")
    else:
        raw_min = getattr(slab, "min_amount", None)
        raw_max = getattr(slab, "max_amount", None)
        raw_fee = getattr(slab, "flat_fee", None)

    return SlabRange(
        min_amount=_to_decimal(raw_min, field="min_amount"),
        max_amount=None if raw_max in (None, "") else _to_decimal(raw_max, field="max_amount"),
        flat_fee=_to_decimal(raw_fee, field="flat_fee"),
    )


def sort_slabs(slabs: Iterable[Any]) -> list[SlabRange]:
    return sorted((as_slab_range(slab) for slab in slabs), key=lambda s: s.min_amount)


def validate_slab_table(slabs: Iterable[Any]) -> list[SlabRange]:
    """Return the table sorted by ``min_amount`` or raise ``OverlappingSlabs``."""

    ordered = sort_slabs(slabs)
    if not ordered:
        raise OverlappingSlabs("A slab table needs at least one slab.")

    for slab in ordered:
        if slab.min_amount < 0:
            raise OverlappingSlabs(f"Slab minimum {slab.min_amount} is negative.")
        if slab.flat_fee < 0:
            raise OverlappingSlabs(f"Slab fee {slab.flat_fee} is negative.")
        if slab.max_amount is not None and slab.max_amount < slab.min_amount:
            raise OverlappingSlabs(
                f"Slab maximum {slab.max_amount} is below its minimum {slab.min_amount}."
            )

    for current, following in zip(ordered, ordered[1:]):
        if current.max_amount is None:
            raise OverlappingSlabs(
                f"Catch-all slab starting at {current.min_amount} is followed by another slab."
            )
        if following.min_amount <= current.max_amount:
            raise OverlappingSlabs(
                f"Slab starting at {following.min_amount} overlaps slab ending at {current.max_amount}."
            )

    return ordered


def resolve(slabs: Sequence[Any], amount: Decimal) -> Decimal:
    """Flat fee of the first slab, by ascending minimum, that contains ``amount``."""

    amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    for slab in sort_slabs(slabs):
        if slab.contains(amount):
            return slab.flat_fee
    raise NoSlabMatch(amount)


def overlapping_floor(slab: SlabRange, floor_table: Sequence[SlabRange]) -> SlabRange | None:
    """Most expensive slab of ``floor_table`` whose range meets ``slab``."""

    candidates = [other for other in floor_table if other.overlaps(slab)]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.flat_fee)
