"""KYC validator: resolvers → flags → score.

Every check is a plain function ``(ctx) -> list[Finding]`` registered in
``_CHECKS``.  ``validate_profile()`` runs them in order, each in isolation:
an exception inside one check is logged and becomes a CHECK_INDETERMINATE
info flag, it never escapes the validator.

Resolver outputs (UBO, signatories, freshness, equity, addresses) are
computed once by ``run_resolvers()`` and shared with the trace builder,
so the audit trace and the verdict can never disagree.

Score (policy, see ``ValidationPolicy``):
  score = W_cov·coverage + (1 − W_cov) − P_crit·n_crit − P_warn·n_warn − P_info·n_info
  clamped to [0, 1], capped at SCORE_CRITICAL_CEILING when any critical flag
  exists, rounded to 4 decimals.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from kyc_engine.config import (
    DEFAULT_POLICY,
    REQUIRED_CATEGORIES_FISICA,
    REQUIRED_CATEGORIES_MORAL,
    TRACE_ENABLED,
    TRUST_BANDS,
    ValidationPolicy,
)
from kyc_engine.pipeline.flags import FlagCode, Finding, format_flag
from kyc_engine.pipeline.resolvers.addresses import AddressResolution, resolve_addresses
from kyc_engine.pipeline.resolvers.equity import STATUS_INCONSISTENT, STATUS_NEAR_100, EquityCheck, check_equity_consistency
from kyc_engine.pipeline.resolvers.freshness import FreshnessTrace, check_freshness
from kyc_engine.pipeline.resolvers.signatories import PowerTrace, resolve_signatories
from kyc_engine.pipeline.resolvers.ubo import BASIS_DECLARED, UboResolution, resolve_ubo
from kyc_engine.pipeline.schemas import KycProfile, KycValidationResult
from kyc_engine.pipeline.utils import (
    as_of_date,
    find_name_match,
    match_entity_names,
    match_names,
    normalize_text,
    parse_date,
)
from kyc_engine.pipeline.validators import is_persona_fisica_rfc, sanitize_clabe, sanitize_curp, sanitize_rfc

logger = logging.getLogger(__name__)

_MEXICAN_NATIONALITIES = {"MEXICANA", "MEXICANO", "MEXICO", "MX", "MEX"}
_PERSONA_FISICA_REGIME_RE = re.compile(r"PERSONAS? FISICAS?|SIN OBLIGACIONES FISCALES")
_STALE_CODES = {
    "proof_of_address": FlagCode.POA_STALE,
    "bank_statement": FlagCode.BANK_STATEMENT_STALE,
    "sat_constancia": FlagCode.SAT_CONSTANCIA_STALE,
}


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# PERSONA FÍSICA DETECTION
# ═══════════════════════════════════════════════════

def is_persona_fisica(profile: KycProfile) -> bool:
    """Individual taxpayer rather than a company.

    True when the SAT regime names persona física / sin obligaciones
    fiscales, or when there is no Acta and the SAT RFC has the
    13-character individual shape.
    """
    tax = profile.company_tax_profile
    if tax and tax.tax_regime and _PERSONA_FISICA_REGIME_RE.search(normalize_text(tax.tax_regime)):
        return True
    if profile.company_identity is None and tax and is_persona_fisica_rfc(tax.rfc):
        return True
    return False


# ═══════════════════════════════════════════════════
# SHARED RESOLVER OUTPUTS
# ═══════════════════════════════════════════════════

class ResolverUnavailable(Exception):
    """A check needed a resolver output that failed to compute."""


@dataclass
class ResolverOutputs:
    """Everything the validator and trace builder derive from a profile."""
    persona_fisica: bool
    as_of: date
    addresses: Optional[AddressResolution] = None
    ubo: Optional[UboResolution] = None
    signatories: Optional[list[PowerTrace]] = None
    freshness: Optional[list[FreshnessTrace]] = None
    equity: Optional[EquityCheck] = None
    failed: dict[str, str] = field(default_factory=dict)      # resolver → error text

    def require(self, name: str) -> Any:
        if name in self.failed:
            raise ResolverUnavailable(f"{name} resolver failed: {self.failed[name]}")
        return getattr(self, name)


def run_resolvers(
    profile: KycProfile,
    as_of: Any = None,
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> ResolverOutputs:
    """Run every resolver once; a failing resolver is recorded, not raised."""
    out = ResolverOutputs(persona_fisica=is_persona_fisica(profile), as_of=as_of_date(as_of))
    identity = profile.company_identity
    corporate = not out.persona_fisica and identity is not None

    steps: list[tuple[str, Callable[[], Any]]] = [
        ("addresses", lambda: resolve_addresses(
            company_identity=identity,
            tax_profile=profile.company_tax_profile,
            proofs_of_address=profile.address_evidence,
            bank_accounts=profile.bank_accounts,
            bank_identity=profile.bank_identity,
        )),
        ("freshness", lambda: check_freshness(profile, out.as_of, policy)),
    ]
    if corporate:
        steps += [
            ("ubo", lambda: resolve_ubo(identity.shareholders, policy)),
            ("signatories", lambda: resolve_signatories(identity.legal_representatives, identity.comisarios)),
            ("equity", lambda: check_equity_consistency(identity.shareholders, policy)),
        ]

    for name, step in steps:
        try:
            setattr(out, name, step())
        except Exception as e:
            logger.error(f"Resolver [{name}] failed: {e}")
            out.failed[name] = str(e)
    return out


# ═══════════════════════════════════════════════════
# CHECK CONTEXT
# ═══════════════════════════════════════════════════

@dataclass
class _Context:
    profile: KycProfile
    outputs: ResolverOutputs
    policy: ValidationPolicy

    @property
    def persona_fisica(self) -> bool:
        return self.outputs.persona_fisica

    def customer_name(self) -> Optional[str]:
        p = self.profile
        if p.company_tax_profile and p.company_tax_profile.razon_social:
            return p.company_tax_profile.razon_social
        if p.company_identity and p.company_identity.razon_social:
            return p.company_identity.razon_social
        if self.persona_fisica:
            return self.identity_names()[0] if self.identity_names() else None
        return None

    def identity_names(self) -> list[str]:
        names = []
        if self.profile.representative_identity and self.profile.representative_identity.full_name:
            names.append(self.profile.representative_identity.full_name)
        if self.profile.passport_identity and self.profile.passport_identity.full_name:
            names.append(self.profile.passport_identity.full_name)
        return names


def _fmt_pct(value: Optional[float]) -> str:
    return f"{value:.2f}%" if value is not None else "percentage unknown"


# ═══════════════════════════════════════════════════
# 1. COVERAGE
# ═══════════════════════════════════════════════════

def _category_present(profile: KycProfile, category: str) -> bool:
    if category == "acta":
        return profile.company_identity is not None
    if category == "sat_constancia":
        return profile.company_tax_profile is not None
    if category == "rep_identity":
        return profile.representative_identity is not None or profile.passport_identity is not None
    if category == "proof_of_address":
        return bool(profile.address_evidence)
    if category == "bank_statement":
        return bool(profile.bank_accounts) or profile.bank_identity is not None
    return False


def document_coverage(profile: KycProfile, persona_fisica: bool) -> float:
    """Share of required document categories present, in [0, 1]."""
    required = REQUIRED_CATEGORIES_FISICA if persona_fisica else REQUIRED_CATEGORIES_MORAL
    present = sum(1 for c in required if _category_present(profile, c))
    return round(present / len(required), 4) if required else 1.0


def check_document_coverage(ctx: _Context) -> list[Finding]:
    p = ctx.profile
    findings = []
    if not ctx.persona_fisica and not _category_present(p, "acta"):
        findings.append(Finding(FlagCode.MISSING_ACTA))
    if not _category_present(p, "sat_constancia"):
        findings.append(Finding(FlagCode.MISSING_COMPANY_SAT))
    if not _category_present(p, "rep_identity"):
        # An individual without ID cannot be identified at all
        findings.append(Finding(FlagCode.MISSING_REP_IDENTITY, level="critical" if ctx.persona_fisica else None))
    if not _category_present(p, "proof_of_address"):
        findings.append(Finding(FlagCode.MISSING_PROOF_OF_ADDRESS))
    if not _category_present(p, "bank_statement"):
        findings.append(Finding(FlagCode.MISSING_BANK_STATEMENT))
    return findings


def check_commercial_registry(ctx: _Context) -> list[Finding]:
    p = ctx.profile
    if ctx.persona_fisica or p.company_identity is None:
        return []
    reg = p.company_identity.registry
    has_folio = any([reg.fme, reg.folio, reg.nci, reg.unique_doc_number])
    if p.boleta_rpc and (p.boleta_rpc.fme or p.boleta_rpc.folio):
        has_folio = True
    return [] if has_folio else [Finding(FlagCode.MISSING_FME, supporting_docs=["acta"])]


def check_foreign_investment(ctx: _Context) -> list[Finding]:
    ubo = ctx.outputs.require("ubo")
    if ubo is None:
        return []
    foreign_pct = sum(
        e.computed_percentage or 0.0
        for e in ubo.entries
        if e.nationality and normalize_text(e.nationality) not in _MEXICAN_NATIONALITIES
    )
    foreign_pct = round(foreign_pct, 2)
    _trace(f"Foreign ownership: {foreign_pct}% (limit {ctx.policy.foreign_majority_pct}%)")
    if foreign_pct > ctx.policy.foreign_majority_pct and not ctx.profile.foreign_investment_constancias:
        return [Finding(
            FlagCode.MISSING_FOREIGN_INVESTMENT_REGISTRATION,
            params={"foreign_pct": foreign_pct},
            supporting_docs=["acta"],
        )]
    return []


# ═══════════════════════════════════════════════════
# 2. TAX IDENTITY
# ═══════════════════════════════════════════════════

def check_sat_status(ctx: _Context) -> list[Finding]:
    tax = ctx.profile.company_tax_profile
    if tax is None:
        return []
    findings = []
    status = normalize_text(tax.status)
    if status and not status.startswith("ACTIV"):
        findings.append(Finding(FlagCode.SAT_STATUS_INACTIVE, params={"status": tax.status},
                                supporting_docs=["sat_constancia"]))
    if tax.tax_regime and "SIN OBLIGACIONES FISCALES" in normalize_text(tax.tax_regime):
        findings.append(Finding(FlagCode.TAX_REGIME_NO_COMMERCE, params={"regime": tax.tax_regime},
                                supporting_docs=["sat_constancia"]))
    return findings


def check_rfc_consistency(ctx: _Context) -> list[Finding]:
    """SAT RFC is authoritative; every other RFC is compared against it."""
    p = ctx.profile
    findings = []
    sat_raw = p.company_tax_profile.rfc if p.company_tax_profile else None
    sat_rfc = sanitize_rfc(sat_raw)
    if sat_raw and not sat_rfc:
        findings.append(Finding(FlagCode.RFC_INVALID, params={"rfc": sat_raw, "source": "SAT Constancia"},
                                supporting_docs=["sat_constancia"]))

    others: list[tuple[str, str, str]] = []          # (source label, raw rfc, doc type)
    if p.company_identity and p.company_identity.rfc:
        others.append(("Acta Constitutiva", p.company_identity.rfc, "acta"))
    for acct in p.bank_accounts:
        if acct.rfc:
            others.append((f"bank statement ({acct.bank_name or 'unknown bank'})", acct.rfc, "bank_statement"))
    if p.bank_identity and p.bank_identity.rfc:
        others.append((f"bank identity page ({p.bank_identity.bank_name or 'unknown bank'})",
                       p.bank_identity.rfc, "bank_identity_page"))

    for source, raw, doc in others:
        rfc = sanitize_rfc(raw)
        if rfc is None:
            findings.append(Finding(FlagCode.RFC_INVALID, params={"rfc": raw, "source": source},
                                    supporting_docs=[doc]))
        elif p.company_tax_profile is None:
            findings.append(Finding(FlagCode.RFC_UNVERIFIED, params={"rfc": rfc, "source": source},
                                    supporting_docs=[doc]))
        elif sat_rfc and rfc != sat_rfc:
            findings.append(Finding(
                FlagCode.RFC_MISMATCH,
                params={"source": source, "other_rfc": rfc, "sat_rfc": sat_rfc},
                supporting_docs=[doc, "sat_constancia"],
            ))
    return findings


def check_razon_social(ctx: _Context) -> list[Finding]:
    p = ctx.profile
    sat_name = p.company_tax_profile.razon_social if p.company_tax_profile else None
    if not sat_name or ctx.persona_fisica:
        return []
    others: list[tuple[str, Optional[str], str]] = []
    if p.company_identity:
        others.append(("Acta Constitutiva", p.company_identity.razon_social, "acta"))
    if p.boleta_rpc:
        others.append(("Boleta RPC", p.boleta_rpc.razon_social, "boleta_rpc"))
    findings = []
    for source, name, doc in others:
        if name and not match_entity_names(name, sat_name).matched:
            findings.append(Finding(
                FlagCode.RAZON_SOCIAL_MISMATCH,
                params={"source": source, "other_name": name, "sat_name": sat_name},
                supporting_docs=[doc, "sat_constancia"],
            ))
    return findings


# ═══════════════════════════════════════════════════
# 3. EVIDENCE DOCUMENTS
# ═══════════════════════════════════════════════════

def check_proof_of_address_name(ctx: _Context) -> list[Finding]:
    customer = ctx.customer_name()
    if not customer:
        return []
    findings = []
    for poa in ctx.profile.address_evidence:
        if poa.client_name and not match_entity_names(poa.client_name, customer).matched:
            findings.append(Finding(
                FlagCode.POA_NAME_MISMATCH,
                params={"client_name": poa.client_name, "customer_name": customer},
                supporting_docs=[poa.document_type or "proof_of_address"],
            ))
    return findings


def check_bank_holder(ctx: _Context) -> list[Finding]:
    customer = ctx.customer_name()
    if not customer:
        return []
    holders = [(a.account_holder_name, "bank_statement") for a in ctx.profile.bank_accounts]
    if ctx.profile.bank_identity:
        holders.append((ctx.profile.bank_identity.account_holder_name, "bank_identity_page"))
    return [
        Finding(FlagCode.BANK_HOLDER_MISMATCH,
                params={"holder_name": holder, "customer_name": customer},
                supporting_docs=[doc])
        for holder, doc in holders
        if holder and not match_entity_names(holder, customer).matched
    ]


def check_clabe(ctx: _Context) -> list[Finding]:
    entries = [(a.clabe, a.bank_name, "bank_statement") for a in ctx.profile.bank_accounts]
    if ctx.profile.bank_identity:
        bi = ctx.profile.bank_identity
        entries.append((bi.clabe, bi.bank_name, "bank_identity_page"))
    return [
        Finding(FlagCode.CLABE_INVALID, params={"clabe": clabe, "bank_name": bank or "unknown bank"},
                supporting_docs=[doc])
        for clabe, bank, doc in entries
        if clabe and sanitize_clabe(clabe) is None
    ]


def _postal_code(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def check_address_consistency(ctx: _Context) -> list[Finding]:
    addresses = ctx.outputs.require("addresses")
    if addresses.operational_basis in (None, "fiscal_fallback"):
        return []
    fiscal = ctx.profile.current_fiscal_address or addresses.fiscal
    operational = ctx.profile.current_operational_address or addresses.operational
    if fiscal is None or operational is None:
        return []
    fiscal_cp, op_cp = _postal_code(fiscal.cp), _postal_code(operational.cp)
    if fiscal_cp and op_cp and fiscal_cp != op_cp:
        return [Finding(FlagCode.ADDRESS_MISMATCH,
                        params={"fiscal_cp": fiscal.cp, "operational_cp": operational.cp},
                        supporting_docs=["sat_constancia", addresses.operational_basis or "operational"])]
    return []


# ═══════════════════════════════════════════════════
# 4. FRESHNESS
# ═══════════════════════════════════════════════════

def check_document_freshness(ctx: _Context) -> list[Finding]:
    findings = []
    for res in ctx.outputs.require("freshness"):
        if not res.has_documents:
            continue                  # absence is a coverage flag, not a freshness one
        docs = [d.type for d in res.supporting_documents]
        if res.latest_date is None:
            findings.append(Finding(FlagCode.DOCUMENT_DATE_UNAVAILABLE,
                                    params={"doc_type": res.doc_type}, supporting_docs=docs))
        elif not res.within_threshold:
            findings.append(Finding(_STALE_CODES[res.doc_type],
                                    params={"age_days": res.age_in_days, "threshold_days": res.threshold_days},
                                    supporting_docs=docs))
    return findings


# ═══════════════════════════════════════════════════
# 5. OWNERSHIP
# ═══════════════════════════════════════════════════

def check_beneficial_owners(ctx: _Context) -> list[Finding]:
    ubo = ctx.outputs.require("ubo")
    if ubo is None:
        return []
    if not ubo.entries:
        return [Finding(FlagCode.UBO_INDETERMINATE,
                        params={"reason": "no shareholders were extracted from the Acta"},
                        supporting_docs=["acta"])]
    if ubo.indeterminate:
        findings = [Finding(FlagCode.UBO_INDETERMINATE, params={"reason": ubo.note}, supporting_docs=["acta"])]
    elif ubo.basis == BASIS_DECLARED and all(e.computed_percentage is None for e in ubo.entries):
        findings = [Finding(FlagCode.UBO_INDETERMINATE,
                            params={"reason": "no share counts or declared percentages"},
                            supporting_docs=["acta"])]
    else:
        findings = []

    if not ubo.ubos:
        if not findings:
            findings.append(Finding(FlagCode.UBO_MISSING, params={"threshold": ctx.policy.ubo_threshold_pct},
                                    supporting_docs=["acta"]))
        return findings

    id_names = ctx.identity_names()
    for owner in ubo.ubos:
        if not any(match_names(owner.name, n).matched for n in id_names):
            pct = _fmt_pct(owner.computed_percentage) if owner.computed_percentage is not None \
                else "declared beneficial owner"
            findings.append(Finding(FlagCode.UBO_IDENTITY_NOT_VERIFIED,
                                    params={"name": owner.name, "percentage": pct},
                                    supporting_docs=["acta"]))
    return findings


def check_equity(ctx: _Context) -> list[Finding]:
    eq = ctx.outputs.require("equity")
    if eq is None:
        return []
    if eq.status == STATUS_INCONSISTENT:
        if eq.declared_values_used:
            return [Finding(FlagCode.EQUITY_INCONSISTENT, params={"sum_pct": eq.sum_declared_pct, "suffix": ""},
                            supporting_docs=["acta"])]
        return [Finding(
            FlagCode.EQUITY_INCONSISTENT,
            level="warning",
            params={"sum_pct": eq.sum_declared_pct,
                    "suffix": " Ownership was recomputed from share counts."},
            supporting_docs=["acta"],
        )]
    if eq.status == STATUS_NEAR_100:
        return [Finding(FlagCode.EQUITY_NEAR_100, params={"sum_pct": eq.sum_declared_pct},
                        supporting_docs=["acta"])]
    return []


# ═══════════════════════════════════════════════════
# 6. SIGNING AUTHORITY
# ═══════════════════════════════════════════════════

def _signatory_summary(signatories: list[PowerTrace]) -> str:
    if not signatories:
        return "no legal representatives listed"
    counts = {}
    for s in signatories:
        counts[s.scope] = counts.get(s.scope, 0) + 1
    return ", ".join(f"{counts[k]} {k}" for k in ("full", "limited", "none") if k in counts)


def check_signatories(ctx: _Context) -> list[Finding]:
    signatories = ctx.outputs.require("signatories")
    if signatories is None:
        return []
    findings = []
    if not any(s.scope == "full" for s in signatories):
        findings.append(Finding(FlagCode.NO_FULL_SIGNATORY,
                                params={"signatory_summary": _signatory_summary(signatories)},
                                supporting_docs=["acta"]))
    if not signatories:
        return findings

    for doc_name in ctx.identity_names():
        match, ambiguous = find_name_match(doc_name, signatories, key=lambda s: s.person_name)
        if ambiguous:
            findings.append(Finding(FlagCode.REP_IDENTITY_NOT_VERIFIED,
                                    params={"document_name": doc_name,
                                            "reason": "matches several legal representatives"},
                                    supporting_docs=["rep_identity", "acta"]))
        elif match is None:
            findings.append(Finding(FlagCode.REP_IDENTITY_NOT_VERIFIED,
                                    params={"document_name": doc_name,
                                            "reason": "does not match any legal representative in the Acta"},
                                    supporting_docs=["rep_identity", "acta"]))
        elif match.scope != "full":
            findings.append(Finding(FlagCode.REP_NOT_SIGNATORY,
                                    params={"document_name": doc_name, "rep_name": match.person_name,
                                            "scope": match.scope},
                                    supporting_docs=["rep_identity", "acta"]))
    return findings


# ═══════════════════════════════════════════════════
# 7. IDENTITY DOCUMENTS
# ═══════════════════════════════════════════════════

def _expired(expiry: Optional[str], as_of: date) -> bool:
    parsed = parse_date(expiry)
    return parsed is not None and parsed < as_of


def check_identity_documents(ctx: _Context) -> list[Finding]:
    as_of = ctx.outputs.as_of
    findings = []
    passport = ctx.profile.passport_identity
    if passport and _expired(passport.expiry_date, as_of):
        findings.append(Finding(FlagCode.IDENTITY_DOC_EXPIRED,
                                params={"doc_label": "Passport", "expiry_date": passport.expiry_date},
                                supporting_docs=["passport"]))

    rep = ctx.profile.representative_identity
    if rep is None:
        return findings
    doc_type = normalize_text(rep.document_type).replace(" ", "")
    is_ine = doc_type.startswith("INE") or doc_type.startswith("IFE")
    if _expired(rep.expiry_date, as_of):
        if is_ine:
            findings.append(Finding(FlagCode.IDENTITY_DOC_EXPIRED,
                                    params={"doc_label": "INE credential", "expiry_date": rep.expiry_date},
                                    supporting_docs=["ine"]))
        else:
            findings.append(Finding(FlagCode.IMMIGRATION_DOC_EXPIRED,
                                    params={"expiry_date": rep.expiry_date}, supporting_docs=["fm2"]))
    if doc_type.startswith("FM2") or doc_type.startswith("FM3"):
        findings.append(Finding(FlagCode.IMMIGRATION_CARD_OLD,
                                params={"document_type": rep.document_type}, supporting_docs=["fm2"]))
    if rep.curp and sanitize_curp(rep.curp) is None:
        findings.append(Finding(FlagCode.CURP_INVALID,
                                params={"curp": rep.curp, "source": "INE credential" if is_ine else "immigration card"},
                                supporting_docs=["ine" if is_ine else "fm2"]))
    return findings


def check_persona_fisica_identity(ctx: _Context) -> list[Finding]:
    """Individual taxpayers: the SAT name must be the identity document holder."""
    if not ctx.persona_fisica or ctx.profile.company_tax_profile is None:
        return []
    sat_name = ctx.profile.company_tax_profile.razon_social
    id_names = ctx.identity_names()
    if not sat_name or not id_names:
        return []
    if any(match_names(sat_name, n).matched for n in id_names):
        return []
    return [Finding(FlagCode.IDENTITY_MISMATCH,
                    params={"sat_name": sat_name, "identity_name": id_names[0]},
                    supporting_docs=["sat_constancia", "rep_identity"])]


# ═══════════════════════════════════════════════════
# SCORE
# ═══════════════════════════════════════════════════

def compute_score(
    coverage: float,
    critical: int,
    warning: int,
    info: int,
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> float:
    """Monotone in every flag count: adding a flag never raises the score."""
    w = policy.score_coverage_weight
    raw = (
        w * coverage + (1.0 - w)
        - policy.score_critical_penalty * critical
        - policy.score_warning_penalty * warning
        - policy.score_info_penalty * info
    )
    score = min(1.0, max(0.0, raw))
    if critical > 0:
        score = min(score, policy.score_critical_ceiling)
    return round(score, 4)


def trust_level(score: float, critical: int) -> str:
    if critical > 0:
        return "CRITICAL"
    if score >= TRUST_BANDS["HIGH"]["min"]:
        return "HIGH"
    if score >= TRUST_BANDS["MEDIUM"]["min"]:
        return "MEDIUM"
    return "LOW"


# ═══════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════

# (label, function, corporate_only)
_CHECKS: list[tuple[str, Callable[[_Context], list[Finding]], bool]] = [
    ("Coverage: Documents", check_document_coverage, False),
    ("Coverage: Commercial registry", check_commercial_registry, True),
    ("Coverage: Foreign investment", check_foreign_investment, True),
    ("Tax: SAT status", check_sat_status, False),
    ("Tax: RFC consistency", check_rfc_consistency, False),
    ("Tax: Razón social", check_razon_social, True),
    ("Evidence: Proof of address name", check_proof_of_address_name, False),
    ("Evidence: Bank holder", check_bank_holder, False),
    ("Evidence: CLABE format", check_clabe, False),
    ("Evidence: Address consistency", check_address_consistency, False),
    ("Freshness: Documents", check_document_freshness, False),
    ("Ownership: Beneficial owners", check_beneficial_owners, True),
    ("Ownership: Equity consistency", check_equity, True),
    ("Authority: Signatories", check_signatories, True),
    ("Identity: Documents", check_identity_documents, False),
    ("Identity: Persona física", check_persona_fisica_identity, False),
]


def validate_profile(
    profile: KycProfile,
    as_of: Any = None,
    policy: ValidationPolicy = DEFAULT_POLICY,
    outputs: Optional[ResolverOutputs] = None,
    generated_at: Optional[datetime] = None,
) -> KycValidationResult:
    """Run every applicable check and score the profile.

    Args:
        profile: the assembled profile
        as_of: evaluation date for freshness and expiry (default: today UTC)
        policy: thresholds and score weights
        outputs: precomputed :func:`run_resolvers` result, shared with the trace
        generated_at: timestamp for the result (default: now UTC)
    """
    outputs = outputs or run_resolvers(profile, as_of, policy)
    ctx = _Context(profile=profile, outputs=outputs, policy=policy)

    findings: list[Finding] = []
    rules_applied = 0
    for label, fn, corporate_only in _CHECKS:
        if corporate_only and outputs.persona_fisica:
            continue
        rules_applied += 1
        try:
            results = fn(ctx)
            if results:
                logger.info(f"Validator [{label}]: {len(results)} flag(s) generated")
            findings.extend(results)
        except Exception as e:
            logger.error(f"Validator [{label}] failed: {e}")
            findings.append(Finding(FlagCode.CHECK_INDETERMINATE, params={"check": label}))

    flags = [format_flag(f) for f in findings]
    critical = sum(1 for f in flags if f.level == "critical")
    warning = sum(1 for f in flags if f.level == "warning")
    info = sum(1 for f in flags if f.level == "info")
    coverage = document_coverage(profile, outputs.persona_fisica)
    score = compute_score(coverage, critical, warning, info, policy)

    result = KycValidationResult(
        customer_id=profile.customer_id,
        score=score,
        trust_level=trust_level(score, critical),
        flags=flags,
        critical_count=critical,
        warning_count=warning,
        info_count=info,
        coverage=coverage,
        persona_fisica=outputs.persona_fisica,
        rules_applied=rules_applied,
        generated_at=generated_at or datetime.now(timezone.utc),
    )
    logger.info(
        f"Validator: {profile.customer_id} score={score} trust={result.trust_level} "
        f"({critical} critical, {warning} warning, {info} info)"
    )
    if TRACE_ENABLED:
        for f in flags:
            _trace(f"FLAG {f.code.value} level={f.level}")
    return result
