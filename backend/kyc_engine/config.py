"""Application configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from backend root (before any os.getenv calls)
load_dotenv(BASE_DIR / ".env")


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# Debug trace mode: set KYC_TRACE=1 to get detailed resolver/validator logs
TRACE_ENABLED = os.getenv("KYC_TRACE", "").strip().lower() in ("1", "true", "yes")

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",") if o.strip()]

# Ownership
UBO_THRESHOLD_PCT = _env_float("UBO_THRESHOLD_PCT", 25.0)                    # strict ">": 25.00% exactly is NOT a UBO
FOREIGN_MAJORITY_PCT = _env_float("FOREIGN_MAJORITY_PCT", 50.0)              # foreign ownership above this needs RNIE registration
SHARE_RECOMPUTE_TOLERANCE_PCT = _env_float("SHARE_RECOMPUTE_TOLERANCE_PCT", 0.01)  # declared % further than this from the share-derived value is noted

# Equity consistency (advisory)
EQUITY_TOLERANCE_PCT = _env_float("EQUITY_TOLERANCE_PCT", 2.0)               # deviation above this → EQUITY_INCONSISTENT
EQUITY_EXACT_EPSILON_PCT = _env_float("EQUITY_EXACT_EPSILON_PCT", 0.01)      # deviation at/below this → exactly 100

# Document freshness (days, inclusive)
FRESHNESS_THRESHOLDS_DAYS = {
    "proof_of_address": _env_int("POA_MAX_AGE_DAYS", 90),
    "bank_statement": _env_int("BANK_STATEMENT_MAX_AGE_DAYS", 90),
    "sat_constancia": _env_int("SAT_CONSTANCIA_MAX_AGE_DAYS", 90),
}

# Score weighting, tuned by trial; keep overridable
SCORE_COVERAGE_WEIGHT = _env_float("SCORE_COVERAGE_WEIGHT", 0.30)   # share of the score driven by document coverage
SCORE_CRITICAL_PENALTY = _env_float("SCORE_CRITICAL_PENALTY", 0.20)
SCORE_WARNING_PENALTY = _env_float("SCORE_WARNING_PENALTY", 0.05)
SCORE_INFO_PENALTY = _env_float("SCORE_INFO_PENALTY", 0.0)
SCORE_CRITICAL_CEILING = _env_float("SCORE_CRITICAL_CEILING", 0.49)  # any critical flag caps the score here

# Trust bands (score in [0, 1]); CRITICAL is forced whenever a critical flag exists
TRUST_BANDS = {
    "HIGH": {"min": 0.90, "max": 1.00, "label": "High Trust"},
    "MEDIUM": {"min": 0.70, "max": 0.8999, "label": "Medium Trust"},
    "LOW": {"min": 0.0, "max": 0.6999, "label": "Low Trust"},
    "CRITICAL": {"min": 0.0, "max": 1.00, "label": "Critical Issues"},
}

# Document categories required for a complete run
REQUIRED_CATEGORIES_MORAL = [
    "acta",                  # Acta Constitutiva
    "sat_constancia",        # Constancia de Situación Fiscal
    "rep_identity",          # FM2 / INE / Passport of the legal representative
    "proof_of_address",      # CFE / Telmex / other utility
    "bank_statement",        # Bank statement or identity page
]
REQUIRED_CATEGORIES_FISICA = [
    "sat_constancia",
    "rep_identity",
    "proof_of_address",
    "bank_statement",
]


@dataclass(frozen=True)
class ValidationPolicy:
    """Explicit policy parameters for validation and trace building.

    Passed into the engine instead of a process-wide toggle so two runs
    with different policies can coexist.
    """
    ubo_threshold_pct: float = UBO_THRESHOLD_PCT
    foreign_majority_pct: float = FOREIGN_MAJORITY_PCT
    share_recompute_tolerance_pct: float = SHARE_RECOMPUTE_TOLERANCE_PCT
    equity_tolerance_pct: float = EQUITY_TOLERANCE_PCT
    equity_exact_epsilon_pct: float = EQUITY_EXACT_EPSILON_PCT
    freshness_thresholds_days: dict = field(
        default_factory=lambda: dict(FRESHNESS_THRESHOLDS_DAYS)
    )
    score_coverage_weight: float = SCORE_COVERAGE_WEIGHT
    score_critical_penalty: float = SCORE_CRITICAL_PENALTY
    score_warning_penalty: float = SCORE_WARNING_PENALTY
    score_info_penalty: float = SCORE_INFO_PENALTY
    score_critical_ceiling: float = SCORE_CRITICAL_CEILING

    def threshold_for(self, category: str) -> int:
        return int(self.freshness_thresholds_days.get(category, 90))


DEFAULT_POLICY = ValidationPolicy()
