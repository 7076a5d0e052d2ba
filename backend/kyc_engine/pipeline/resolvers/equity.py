"""Equity consistency: do the declared percentages add up to 100?

Advisory only.  The UBO resolver recomputes from shares regardless of
what this check finds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from kyc_engine.config import DEFAULT_POLICY, ValidationPolicy
from kyc_engine.pipeline.schemas import Shareholder

logger = logging.getLogger(__name__)

STATUS_CONSISTENT = "consistent"
STATUS_NEAR_100 = "near_100"
STATUS_INCONSISTENT = "inconsistent"


@dataclass
class EquityCheck:
    sum_declared_pct: float
    deviation_from_100: float
    declared_count: int
    shareholder_count: int
    declared_values_used: bool          # True when share counts are incomplete
    status: str                         # consistent | near_100 | inconsistent

    def to_dict(self) -> dict:
        return {
            "sum_declared_pct": self.sum_declared_pct,
            "deviation_from_100": self.deviation_from_100,
            "declared_count": self.declared_count,
            "shareholder_count": self.shareholder_count,
            "declared_values_used": self.declared_values_used,
            "status": self.status,
        }


def check_equity_consistency(
    shareholders: Optional[list[Shareholder]],
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> Optional[EquityCheck]:
    """Sum the declared percentages; ``None`` when nothing is declared."""
    shareholders = shareholders or []
    declared = [s.percentage for s in shareholders if s.percentage is not None]
    if not declared:
        return None

    total = round(sum(declared), 4)
    deviation = round(abs(total - 100.0), 4)
    if deviation <= policy.equity_exact_epsilon_pct:
        status = STATUS_CONSISTENT
    elif deviation <= policy.equity_tolerance_pct:
        status = STATUS_NEAR_100
    else:
        status = STATUS_INCONSISTENT

    return EquityCheck(
        sum_declared_pct=total,
        deviation_from_100=deviation,
        declared_count=len(declared),
        shareholder_count=len(shareholders),
        declared_values_used=not all(s.shares is not None for s in shareholders),
        status=status,
    )
