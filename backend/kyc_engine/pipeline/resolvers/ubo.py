"""Beneficial-ownership (UBO) resolution.

When every shareholder carries a share count, percentages are recomputed
as ``shares / total_shares × 100`` (2 decimals, largest remainder so
the list sums to exactly 100.00) and declared percentages
are ignored.  Otherwise the declared percentages are used as-is and each
trace entry says so.

A shareholder is a UBO iff its percentage is strictly above the threshold
(25% by default: exactly 25.00% is not a UBO) or the deed explicitly marks
it ``is_beneficial_owner``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Optional

from kyc_engine.config import DEFAULT_POLICY, TRACE_ENABLED, ValidationPolicy
from kyc_engine.pipeline.schemas import Shareholder

logger = logging.getLogger(__name__)

BASIS_SHARES = "shares"
BASIS_DECLARED = "declared"
BASIS_INDETERMINATE = "indeterminate"


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# PERCENTAGE RECOMPUTATION
# ═══════════════════════════════════════════════════

@dataclass
class ShareComputation:
    basis: str                                     # shares | declared | indeterminate
    total_shares: Optional[float]
    percentages: list[Optional[float]]             # aligned with the input list
    note: str = ""


def _apportion(shares: list[float]) -> list[float]:
    """Largest-remainder rounding to hundredths; the result sums to exactly 100.00."""
    total = sum(Fraction(s) for s in shares)
    exact = [Fraction(s) * 10000 / total for s in shares]
    cents = [math.floor(x) for x in exact]
    leftover = 10000 - sum(cents)
    # Ties go to the earlier holder
    order = sorted(range(len(shares)), key=lambda i: (-(exact[i] - cents[i]), i))
    for i in order[:leftover]:
        cents[i] += 1
    return [c / 100 for c in cents]


def compute_percentages(shareholders: list[Shareholder]) -> ShareComputation:
    """Derive one percentage per shareholder, aligned with the input order."""
    if not shareholders:
        return ShareComputation(BASIS_DECLARED, None, [])

    if all(s.shares is not None for s in shareholders):
        total = sum(float(s.shares) for s in shareholders)
        if total <= 0:
            return ShareComputation(
                BASIS_INDETERMINATE, total, [None] * len(shareholders),
                note="Total share count is 0; percentages cannot be computed",
            )
        return ShareComputation(
            BASIS_SHARES, total,
            _apportion([float(s.shares) for s in shareholders]),
        )

    known = [s.shares for s in shareholders if s.shares is not None]
    total = sum(float(v) for v in known) if known else None
    missing = len(shareholders) - len(known)
    return ShareComputation(
        BASIS_DECLARED, total,
        [s.percentage for s in shareholders],
        note=f"Share counts missing for {missing} shareholder(s); declared percentages used",
    )


def recompute_percentages(shareholders: list[Shareholder]) -> list[Shareholder]:
    """Return copies with ``percentage`` recomputed from shares when possible."""
    comp = compute_percentages(shareholders)
    if comp.basis != BASIS_SHARES:
        return list(shareholders)
    return [
        s.model_copy(update={"percentage": pct})
        for s, pct in zip(shareholders, comp.percentages)
    ]


# ═══════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════

@dataclass
class UboTrace:
    """One shareholder's ownership computation and UBO verdict."""
    name: str
    shares: Optional[float]
    total_shares: Optional[float]
    computed_percentage: Optional[float]
    declared_percentage: Optional[float]
    threshold_applied: float
    basis: str                                     # shares | declared | indeterminate
    is_ubo: bool
    explicit_beneficial_owner: bool = False
    nationality: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "shares": self.shares,
            "total_shares": self.total_shares,
            "computed_percentage": self.computed_percentage,
            "declared_percentage": self.declared_percentage,
            "threshold_applied": self.threshold_applied,
            "basis": self.basis,
            "is_ubo": self.is_ubo,
            "explicit_beneficial_owner": self.explicit_beneficial_owner,
            "nationality": self.nationality,
            "notes": self.notes,
        }


@dataclass
class UboResolution:
    entries: list[UboTrace] = field(default_factory=list)
    basis: str = BASIS_DECLARED
    total_shares: Optional[float] = None
    note: str = ""

    @property
    def ubos(self) -> list[UboTrace]:
        return [e for e in self.entries if e.is_ubo]

    @property
    def indeterminate(self) -> bool:
        return self.basis == BASIS_INDETERMINATE


# ═══════════════════════════════════════════════════
# RESOLUTION
# ═══════════════════════════════════════════════════

def resolve_ubo(
    shareholders: Optional[list[Shareholder]],
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> UboResolution:
    """Compute every shareholder's percentage and apply the UBO threshold."""
    shareholders = shareholders or []
    comp = compute_percentages(shareholders)
    threshold = policy.ubo_threshold_pct
    res = UboResolution(basis=comp.basis, total_shares=comp.total_shares, note=comp.note)

    for sh, pct in zip(shareholders, comp.percentages):
        explicit = sh.is_beneficial_owner is True
        notes: list[str] = []
        if comp.basis == BASIS_DECLARED:
            notes.append("Threshold applied to declared percentage (shares unavailable)")
        elif comp.basis == BASIS_INDETERMINATE:
            notes.append(comp.note)
        elif sh.percentage is not None and abs(sh.percentage - pct) > policy.share_recompute_tolerance_pct:
            notes.append(f"Declared {sh.percentage:.2f}% replaced by share-derived {pct:.2f}%")
        if pct is None and comp.basis == BASIS_DECLARED:
            notes.append("No declared percentage")

        is_ubo = (pct is not None and pct > threshold) or explicit
        if explicit and not (pct is not None and pct > threshold):
            notes.append("Marked as beneficial owner in the deed")

        res.entries.append(UboTrace(
            name=sh.name,
            shares=sh.shares,
            total_shares=comp.total_shares,
            computed_percentage=pct,
            declared_percentage=sh.percentage,
            threshold_applied=threshold,
            basis=comp.basis,
            is_ubo=is_ubo,
            explicit_beneficial_owner=explicit,
            nationality=sh.nationality,
            notes=notes,
        ))

    _trace(f"UBO: basis={res.basis} total_shares={res.total_shares} "
           f"ubos={[u.name for u in res.ubos]}")
    return res
