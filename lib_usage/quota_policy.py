"""
Quota Policy

Pure computation of remaining allowance from a consumption snapshot.
"""
from dataclasses import dataclass
from typing import Union

Number = Union[int, float]


@dataclass(frozen=True)
class QuotaDecision:
    consumption: Number
    limit: Number
    remaining: Number
    admitted: bool

    @classmethod
    def unlimited(cls, consumption: Number = 0) -> "QuotaDecision":
        """Decision for quota-exempt accounts."""
        return cls(consumption=consumption, limit=float('inf'), remaining=float('inf'), admitted=True)


def evaluate(consumption: Number, limit: Number) -> QuotaDecision:
    """
    Compare period consumption against a limit.

    Comparison uses the unrounded values; a consumption equal to the limit
    is not admitted.
    """
    return QuotaDecision(
        consumption=consumption,
        limit=limit,
        remaining=max(0, limit - consumption),
        admitted=consumption < limit,
    )


def round_minutes(minutes: float) -> float:
    """Two-decimal rounding used only for display."""
    return round(minutes, 2)
