"""Carton / unit conversion for packed products.

Quantities are carried as a count of individual units ("total units"). A
product packed by the carton also has a packing factor, ``units_per_carton``,
and any non-negative total can be shown as whole cartons plus the units left
over. Products without carton packaging use a factor of 1, which makes every
carton equal to a single unit.

Signed differences are never decomposed directly. To describe the change
between two quantities in cartons and units, both sides are decomposed on
their own and subtracted component-wise (see :func:`pairwise_delta`), so a
count going from 11 to 12 units with 12 units per carton reads as
``+1 carton, -11 units`` rather than ``+1 unit``.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class QuantityDelta:
    """Signed difference between two quantities of the same product."""

    cartons: int
    units: int
    total_units: int

    @property
    def is_zero(self) -> bool:
        return self.total_units == 0


def normalize_units_per_carton(units_per_carton: Optional[int]) -> int:
    """Return a usable packing factor, falling back to 1."""
    if units_per_carton is None or units_per_carton < 1:
        return 1
    return int(units_per_carton)


def to_total_units(cartons: int, units: int, units_per_carton: Optional[int]) -> int:
    """Expand cartons + loose units into a total unit count."""
    if cartons < 0 or units < 0:
        raise ValueError(f"Quantities cannot be negative (cartons={cartons}, units={units})")
    return cartons * normalize_units_per_carton(units_per_carton) + units


def to_cartons_and_units(total_units: int, units_per_carton: Optional[int]) -> Tuple[int, int]:
    """Split a total unit count into (whole cartons, remaining units).

    Raises:
        ValueError: If ``total_units`` is negative.
    """
    if total_units < 0:
        raise ValueError(f"Cannot decompose a negative quantity ({total_units})")
    factor = normalize_units_per_carton(units_per_carton)
    return total_units // factor, total_units % factor


def normalize(cartons: int, units: int, units_per_carton: Optional[int]) -> Tuple[int, int]:
    """Carry surplus loose units over into cartons."""
    return to_cartons_and_units(to_total_units(cartons, units, units_per_carton), units_per_carton)


def pairwise_delta(before_total: int, after_total: int, units_per_carton: Optional[int]) -> QuantityDelta:
    """Difference between two totals, expressed per component."""
    before_cartons, before_units = to_cartons_and_units(before_total, units_per_carton)
    after_cartons, after_units = to_cartons_and_units(after_total, units_per_carton)
    return QuantityDelta(
        cartons=after_cartons - before_cartons,
        units=after_units - before_units,
        total_units=after_total - before_total,
    )
