"""Trace builder: the evidence behind the validator's verdicts.

Uses the exact ``ResolverOutputs`` the validator consumes (``run_resolvers``),
so a borderline case can never be decided one way in the trace and the
other way in the flags.  Pass ``outputs`` to reuse a computation already
done for ``validate_profile``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from kyc_engine.config import DEFAULT_POLICY, ValidationPolicy
from kyc_engine.pipeline.resolvers import AddressEvidenceTrace, EquityCheck, FreshnessTrace, PowerTrace, UboTrace
from kyc_engine.pipeline.schemas import KycProfile
from kyc_engine.pipeline.utils import NameMatch, match_names
from kyc_engine.pipeline.validator import ResolverOutputs, run_resolvers

logger = logging.getLogger(__name__)


@dataclass
class IdentityMatchTrace:
    """Token-level comparison of an identity document name with one representative."""
    document_name: str
    representative_name: str
    scope: str
    match: NameMatch

    def to_dict(self) -> dict:
        return {
            "document_name": self.document_name,
            "representative_name": self.representative_name,
            "scope": self.scope,
            **self.match.to_dict(),
        }


@dataclass
class TraceSection:
    customer_id: str
    as_of: str
    persona_fisica: bool
    ubos: list[UboTrace] = field(default_factory=list)
    address_evidence: list[AddressEvidenceTrace] = field(default_factory=list)
    powers: list[PowerTrace] = field(default_factory=list)
    identity_matches: list[IdentityMatchTrace] = field(default_factory=list)
    freshness: list[FreshnessTrace] = field(default_factory=list)
    equity: Optional[EquityCheck] = None
    ownership_basis: Optional[str] = None
    ownership_note: str = ""
    unavailable: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "as_of": self.as_of,
            "persona_fisica": self.persona_fisica,
            "ubos": [u.to_dict() for u in self.ubos],
            "address_evidence": [a.to_dict() for a in self.address_evidence],
            "powers": [p.to_dict() for p in self.powers],
            "identity_matches": [m.to_dict() for m in self.identity_matches],
            "freshness": [f.to_dict() for f in self.freshness],
            "equity": self.equity.to_dict() if self.equity else None,
            "ownership_basis": self.ownership_basis,
            "ownership_note": self.ownership_note,
            "unavailable": dict(self.unavailable),
        }


def _identity_names(profile: KycProfile) -> list[str]:
    names = []
    for doc in (profile.representative_identity, profile.passport_identity):
        if doc is not None and doc.full_name:
            names.append(doc.full_name)
    return names


def build_trace(
    profile: KycProfile,
    as_of: Any = None,
    policy: ValidationPolicy = DEFAULT_POLICY,
    outputs: Optional[ResolverOutputs] = None,
) -> TraceSection:
    """Bundle resolver evidence for one profile.

    Resolvers that failed are listed in ``unavailable`` with their error.
    """
    outputs = outputs or run_resolvers(profile, as_of, policy)
    section = TraceSection(
        customer_id=profile.customer_id,
        as_of=outputs.as_of.isoformat(),
        persona_fisica=outputs.persona_fisica,
        unavailable=dict(outputs.failed),
    )

    if outputs.addresses is not None:
        section.address_evidence = list(outputs.addresses.evidence)
    if outputs.freshness is not None:
        section.freshness = list(outputs.freshness)
    if outputs.ubo is not None:
        section.ubos = list(outputs.ubo.entries)
        section.ownership_basis = outputs.ubo.basis
        section.ownership_note = outputs.ubo.note
    section.equity = outputs.equity
    if outputs.signatories is not None:
        section.powers = list(outputs.signatories)
        for doc_name in _identity_names(profile):
            for power in outputs.signatories:
                section.identity_matches.append(IdentityMatchTrace(
                    document_name=doc_name,
                    representative_name=power.person_name,
                    scope=power.scope,
                    match=match_names(doc_name, power.person_name),
                ))

    logger.info(
        f"Trace: {profile.customer_id} - {len(section.ubos)} ownership entr(ies), "
        f"{len(section.powers)} representative(s), {len(section.address_evidence)} address role(s)"
    )
    return section
