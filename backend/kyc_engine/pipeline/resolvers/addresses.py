"""Address precedence resolution.

  - Fiscal:       SAT Constancia only.  Never taken from the Acta.
  - Operational:  proof of address (newest first) → bank statement address
                  (unless marked non-operational) → fiscal fallback.
  - Founding:     Acta domicilio; recorded as history, never promoted.

The same function feeds the profile builder and the trace builder, so the
address a profile carries and the evidence reported for it always agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from kyc_engine.config import TRACE_ENABLED
from kyc_engine.pipeline.resolvers.freshness import bank_identity_date, bank_statement_date, proof_of_address_date
from kyc_engine.pipeline.schemas import (
    Address,
    BankAccountProfile,
    BankIdentity,
    CompanyIdentity,
    CompanyTaxProfile,
    ProofOfAddress,
)
from kyc_engine.pipeline.utils import normalize_text

logger = logging.getLogger(__name__)

_STREET_FIELDS = ("street", "ext_number", "int_number", "colonia", "cp", "cross_streets")
_ALL_FIELDS = _STREET_FIELDS + ("municipio", "estado")


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


def is_empty_address(address: Optional[Address]) -> bool:
    if address is None:
        return True
    return all(getattr(address, f) is None for f in _ALL_FIELDS)


def format_address(address: Optional[Address]) -> str:
    if address is None:
        return ""
    parts = []
    if address.street:
        parts.append(address.street + (f" {address.ext_number}" if address.ext_number else ""))
    for f in ("colonia", "municipio", "estado"):
        if getattr(address, f):
            parts.append(getattr(address, f))
    if address.cp:
        parts.append(f"CP {address.cp}")
    return ", ".join(parts)


def sanitize_founding_address(address: Optional[Address]) -> Optional[Address]:
    """Null street-level fields when the deed only names a jurisdiction.

    "Domicilio: Ciudad de México" yields municipio/estado only; the
    jurisdiction text is never copied into ``street``.
    """
    if is_empty_address(address):
        return None
    detail = any(getattr(address, f) for f in ("ext_number", "int_number", "colonia", "cp"))
    street = normalize_text(address.street)
    jurisdictions = {normalize_text(address.municipio), normalize_text(address.estado)} - {""}

    updates: dict = {}
    if street and street in jurisdictions:
        updates["street"] = None
    elif street and not detail and not jurisdictions:
        # Bare place name extracted into the street slot
        updates = {f: None for f in _STREET_FIELDS}
        updates["municipio"] = address.street
    if not updates:
        return address
    _trace(f"Founding address is jurisdiction-only ({address.street!r}); street fields nulled")
    return address.model_copy(update=updates)


# ═══════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════

@dataclass
class AddressSource:
    type: str                      # acta | sat_constancia | cfe | telmex | proof_of_address | bank_statement | bank_identity_page
    description: str
    date: Optional[str] = None

    def to_dict(self) -> dict:
        return {"type": self.type, "description": self.description, "date": self.date}


@dataclass
class AddressEvidenceTrace:
    """Which documents decided one address role, and by which rule."""
    role: str                      # founding | fiscal | operational
    address: Optional[Address]
    rule: str
    sources: list[AddressSource] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "address": self.address.model_dump() if self.address else None,
            "rule": self.rule,
            "sources": [s.to_dict() for s in self.sources],
        }


@dataclass
class AddressResolution:
    founding: Optional[Address] = None
    fiscal: Optional[Address] = None
    operational: Optional[Address] = None
    operational_basis: Optional[str] = None       # proof_of_address | bank | fiscal_fallback
    evidence: list[AddressEvidenceTrace] = field(default_factory=list)


# ═══════════════════════════════════════════════════
# RESOLUTION
# ═══════════════════════════════════════════════════

def _poa_source_type(poa: ProofOfAddress) -> str:
    kind = (poa.document_type or "").lower()
    if "cfe" in kind:
        return "cfe"
    if "telmex" in kind:
        return "telmex"
    return "proof_of_address"


def _newest_first(items: list, date_of) -> list:
    """Sort by document date descending; undated items keep input order, last."""
    indexed = list(enumerate(items))
    dated = [(i, it) for i, it in indexed if date_of(it)]
    undated = [(i, it) for i, it in indexed if not date_of(it)]
    dated.sort(key=lambda pair: (date_of(pair[1]), -pair[0]), reverse=True)
    return [it for _, it in dated + undated]


def resolve_addresses(
    company_identity: Optional[CompanyIdentity] = None,
    tax_profile: Optional[CompanyTaxProfile] = None,
    proofs_of_address: Optional[list[ProofOfAddress]] = None,
    bank_accounts: Optional[list[BankAccountProfile]] = None,
    bank_identity: Optional[BankIdentity] = None,
) -> AddressResolution:
    """Resolve founding, fiscal and operational addresses with evidence."""
    res = AddressResolution()
    proofs_of_address = proofs_of_address or []
    bank_accounts = bank_accounts or []

    # ── Founding (historical only) ──
    if company_identity and not is_empty_address(company_identity.founding_address):
        res.founding = sanitize_founding_address(company_identity.founding_address)
        res.evidence.append(AddressEvidenceTrace(
            role="founding",
            address=res.founding,
            rule="Acta domicilio social; historical only",
            sources=[AddressSource("acta", "Acta Constitutiva (Domicilio Social)",
                                   company_identity.incorporation_date)],
        ))

    # ── Fiscal (SAT only) ──
    if tax_profile and not is_empty_address(tax_profile.fiscal_address):
        res.fiscal = tax_profile.fiscal_address
        res.evidence.append(AddressEvidenceTrace(
            role="fiscal",
            address=res.fiscal,
            rule="SAT Constancia fiscal address",
            sources=[AddressSource("sat_constancia", "Constancia de Situación Fiscal",
                                   tax_profile.issue.issue_date if tax_profile.issue else None)],
        ))

    # ── Operational ──
    proofs = [p for p in proofs_of_address if not is_empty_address(p.client_address)]
    statements = [
        b for b in bank_accounts
        if not is_empty_address(b.address_on_statement) and b.address_matches_operational is not False
    ]
    excluded = [b for b in bank_accounts if b.address_matches_operational is False]
    if excluded:
        _trace(f"{len(excluded)} bank address(es) marked non-operational and skipped")

    sources: list[AddressSource] = []
    if proofs:
        ordered = _newest_first(proofs, proof_of_address_date)
        res.operational = ordered[0].client_address
        res.operational_basis = "proof_of_address"
        rule = "Most recent proof of address"
        for poa in ordered:
            sources.append(AddressSource(
                _poa_source_type(poa),
                f"{poa.vendor_name or 'Utility bill'} - {format_address(poa.client_address)}",
                proof_of_address_date(poa),
            ))
    elif statements:
        ordered = _newest_first(statements, bank_statement_date)
        res.operational = ordered[0].address_on_statement
        res.operational_basis = "bank"
        rule = "Bank statement address (no proof of address available)"
        for acct in ordered:
            sources.append(AddressSource(
                "bank_statement",
                f"{acct.bank_name or 'Bank statement'} - {format_address(acct.address_on_statement)}",
                bank_statement_date(acct),
            ))
    elif bank_identity and not is_empty_address(bank_identity.address_on_file):
        res.operational = bank_identity.address_on_file
        res.operational_basis = "bank"
        rule = "Bank identity page address (no proof of address available)"
        sources.append(AddressSource(
            "bank_identity_page",
            f"{bank_identity.bank_name or 'Bank identity page'} - {format_address(bank_identity.address_on_file)}",
            bank_identity_date(bank_identity),
        ))
    elif res.fiscal is not None:
        res.operational = res.fiscal
        res.operational_basis = "fiscal_fallback"
        rule = "No operational evidence; fiscal address used as fallback"
        sources.append(AddressSource("sat_constancia", "Inferred from SAT fiscal address"))

    if res.operational is not None:
        res.evidence.append(AddressEvidenceTrace(
            role="operational", address=res.operational, rule=rule, sources=sources,
        ))

    _trace(f"Addresses: founding={'yes' if res.founding else 'no'}, fiscal={'yes' if res.fiscal else 'no'}, "
           f"operational via {res.operational_basis}")
    return res
