"""Document freshness: age of the newest dated document per category.

Thresholds are inclusive: a document exactly ``threshold_days`` old is
still fresh, one day older is stale.  A category whose documents carry no
usable date is reported as *unavailable* (``within_threshold = False``),
never as a pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from kyc_engine.config import DEFAULT_POLICY, TRACE_ENABLED, ValidationPolicy
from kyc_engine.pipeline.schemas import BankAccountProfile, BankIdentity, KycProfile, ProofOfAddress
from kyc_engine.pipeline.utils import as_of_date, parse_date

logger = logging.getLogger(__name__)

FRESHNESS_CATEGORIES = ("proof_of_address", "bank_statement", "sat_constancia")


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ── Usable date per document ──

def proof_of_address_date(poa: ProofOfAddress) -> Optional[str]:
    """Issue date of a utility bill, falling back to its due date."""
    for value in (poa.issue_datetime, poa.date, poa.due_date):
        parsed = parse_date(value)
        if parsed:
            return parsed.isoformat()
    return None


def bank_statement_date(account: BankAccountProfile) -> Optional[str]:
    parsed = parse_date(account.statement_period_end) or parse_date(account.statement_period_start)
    return parsed.isoformat() if parsed else None


def bank_identity_date(identity: BankIdentity) -> Optional[str]:
    parsed = parse_date(identity.document_date)
    return parsed.isoformat() if parsed else None


# ═══════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════

@dataclass
class SupportingDocument:
    type: str
    date: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {"type": self.type, "date": self.date, "description": self.description}


@dataclass
class FreshnessTrace:
    """Freshness verdict for one document category, with its evidence."""
    doc_type: str                                  # proof_of_address | bank_statement | sat_constancia
    threshold_days: int
    latest_date: Optional[str] = None
    age_in_days: Optional[int] = None
    within_threshold: bool = False
    supporting_documents: list[SupportingDocument] = field(default_factory=list)
    message: str = ""

    @property
    def has_documents(self) -> bool:
        return bool(self.supporting_documents)

    def to_dict(self) -> dict:
        return {
            "doc_type": self.doc_type,
            "latest_date": self.latest_date,
            "age_in_days": self.age_in_days,
            "within_threshold": self.within_threshold,
            "threshold_days": self.threshold_days,
            "supporting_documents": [d.to_dict() for d in self.supporting_documents],
            "message": self.message,
        }


# ═══════════════════════════════════════════════════
# CHECK
# ═══════════════════════════════════════════════════

def _supporting_documents(profile: KycProfile, category: str) -> list[SupportingDocument]:
    docs: list[SupportingDocument] = []
    if category == "proof_of_address":
        for poa in profile.address_evidence:
            docs.append(SupportingDocument(
                type=poa.document_type or "proof_of_address",
                date=proof_of_address_date(poa),
                description=poa.vendor_name,
            ))
    elif category == "bank_statement":
        for account in profile.bank_accounts:
            docs.append(SupportingDocument(
                type="bank_statement",
                date=bank_statement_date(account),
                description=account.bank_name,
            ))
        if profile.bank_identity:
            docs.append(SupportingDocument(
                type="bank_identity_page",
                date=bank_identity_date(profile.bank_identity),
                description=profile.bank_identity.bank_name,
            ))
    elif category == "sat_constancia":
        tax = profile.company_tax_profile
        if tax:
            issue_date = parse_date(tax.issue.issue_date) if tax.issue else None
            docs.append(SupportingDocument(
                type="sat_constancia",
                date=issue_date.isoformat() if issue_date else None,
                description="Constancia de Situación Fiscal",
            ))
    return docs


def evaluate_category(
    category: str,
    documents: list[SupportingDocument],
    as_of: Any = None,
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> FreshnessTrace:
    """Compare the newest dated document against the category threshold."""
    threshold = policy.threshold_for(category)
    result = FreshnessTrace(doc_type=category, threshold_days=threshold, supporting_documents=documents)

    dated = [d.date for d in documents if d.date]
    if not documents:
        result.message = f"No {category} documents provided"
        return result
    if not dated:
        result.message = f"No usable date found on {category} documents; freshness unavailable"
        return result

    latest = max(dated)
    age = (as_of_date(as_of) - parse_date(latest)).days
    result.latest_date = latest
    result.age_in_days = age
    result.within_threshold = age <= threshold
    if age < 0:
        result.message = f"Latest {category} is dated {-age} day(s) after the evaluation date"
    elif result.within_threshold:
        result.message = f"Latest {category} is {age} day(s) old (limit {threshold})"
    else:
        result.message = f"Latest {category} is {age} day(s) old, exceeds {threshold}-day limit"
    return result


def check_freshness(
    profile: KycProfile,
    as_of: Any = None,
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> list[FreshnessTrace]:
    """Freshness verdict for every tracked category, in a fixed order."""
    results = []
    for category in FRESHNESS_CATEGORIES:
        res = evaluate_category(category, _supporting_documents(profile, category), as_of, policy)
        _trace(f"Freshness {category}: latest={res.latest_date} age={res.age_in_days} "
               f"within={res.within_threshold}")
        results.append(res)
    return results
