"""
fee_tiers.py - Tiered transfer fee schedule

A FeeTierTable maps the fiat value of a transfer to a fiat fee. Each tier is a
(minimum_value, rate) pair; the rate is in basis points. The tier used for a
value is the one with the greatest minimum not exceeding the value.

Example:
    table = FeeTierTable()
    table.set_tiers([0, 1000, 2000], [100, 500, 40])
    table.fee_for(1200)   # 1200 * 500 // 10000 == 60
"""

from bisect import bisect_right
from typing import List, Sequence, Tuple

from .core import BASIS_POINTS, UINT16_MAX, InvalidArgument, require_uint


class FeeTierTable:
    """
    Sorted list of (minimum_value, rate_basis_points) tiers.

    Minimums are strictly ascending. set_tiers() replaces the whole table,
    so it can grow, shrink, or shift thresholds in one call.
    """

    def __init__(self, minimums: Sequence[int] = (), rates: Sequence[int] = ()):
        self._minimums: List[int] = []
        self._rates: List[int] = []
        if minimums or rates:
            self.set_tiers(minimums, rates)

    def set_tiers(self, minimums: Sequence[int], rates: Sequence[int]) -> None:
        """
        Replace the entire table.

        Raises:
            InvalidArgument: If the sequences differ in length, minimums are not
                strictly ascending (duplicates included), or a value is out of
                range. The table is left unchanged.
        """
        minimums = list(minimums)
        rates = list(rates)
        if len(minimums) != len(rates):
            raise InvalidArgument(
                f"Tier minimums and rates differ in length: {len(minimums)} != {len(rates)}"
            )
        for i, minimum in enumerate(minimums):
            require_uint(minimum, f"minimums[{i}]")
        for i, rate in enumerate(rates):
            require_uint(rate, f"rates[{i}]", UINT16_MAX)
        for i in range(1, len(minimums)):
            if minimums[i] == minimums[i - 1]:
                raise InvalidArgument(f"Duplicate tier minimum {minimums[i]}")
            if minimums[i] < minimums[i - 1]:
                raise InvalidArgument(
                    f"Tier minimums not ascending at index {i}: {minimums[i - 1]} > {minimums[i]}"
                )
        self._minimums = minimums
        self._rates = rates

    def fee_for(self, value: int) -> int:
        """
        Fee for a fiat value, truncated toward zero.

        Returns 0 when the table is empty or the value is below every tier.
        """
        require_uint(value, "value")
        # Rightmost tier with minimum <= value
        idx = bisect_right(self._minimums, value)
        if idx == 0:
            return 0
        return value * self._rates[idx - 1] // BASIS_POINTS

    def tier_count(self) -> int:
        return len(self._minimums)

    def tier(self, i: int) -> Tuple[int, int]:
        """Return (minimum_value, rate) of tier i."""
        if i < 0 or i >= len(self._minimums):
            raise InvalidArgument(f"Fee tier {i} does not exist")
        return self._minimums[i], self._rates[i]

    @property
    def minimums(self) -> Tuple[int, ...]:
        return tuple(self._minimums)

    @property
    def rates(self) -> Tuple[int, ...]:
        return tuple(self._rates)

    def copy(self) -> "FeeTierTable":
        return FeeTierTable(self._minimums, self._rates)

    def __repr__(self):
        tiers = ", ".join(f"({m}, {r})" for m, r in zip(self._minimums, self._rates))
        return f"FeeTierTable([{tiers}])"
