"""Deterministic resolvers shared by the validator and the trace builder."""

from .addresses import AddressEvidenceTrace, AddressResolution, resolve_addresses
from .equity import EquityCheck, check_equity_consistency
from .freshness import FreshnessTrace, check_freshness
from .signatories import PowerTrace, resolve_signatories
from .ubo import UboResolution, UboTrace, recompute_percentages, resolve_ubo

__all__ = [
    "AddressEvidenceTrace",
    "AddressResolution",
    "resolve_addresses",
    "EquityCheck",
    "check_equity_consistency",
    "FreshnessTrace",
    "check_freshness",
    "PowerTrace",
    "resolve_signatories",
    "UboResolution",
    "UboTrace",
    "recompute_percentages",
    "resolve_ubo",
]
