"""Flag registry: single source of truth for validation flag codes.

Each code defines:
  - level: default severity (info | warning | critical); a rule may
           override it when the same condition is more or less severe
           in context (e.g. equity deviation on recomputed shares)
  - title: short human label
  - message: ``str.format`` template rendered from the finding params
  - action: what the customer or analyst must do next (optional)

Rules emit a :class:`Finding` (code + params only).  ``format_flag()``
renders the human-facing text in a separate step, so downstream systems
route on ``code`` and never on ``message``.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class FlagCode(str, Enum):
    # Coverage
    MISSING_ACTA = "MISSING_ACTA"
    MISSING_COMPANY_SAT = "MISSING_COMPANY_SAT"
    MISSING_REP_IDENTITY = "MISSING_REP_IDENTITY"
    MISSING_PROOF_OF_ADDRESS = "MISSING_PROOF_OF_ADDRESS"
    MISSING_BANK_STATEMENT = "MISSING_BANK_STATEMENT"
    MISSING_FME = "MISSING_FME"
    MISSING_FOREIGN_INVESTMENT_REGISTRATION = "MISSING_FOREIGN_INVESTMENT_REGISTRATION"
    # Tax identity
    SAT_STATUS_INACTIVE = "SAT_STATUS_INACTIVE"
    TAX_REGIME_NO_COMMERCE = "TAX_REGIME_NO_COMMERCE"
    RFC_MISMATCH = "RFC_MISMATCH"
    RFC_UNVERIFIED = "RFC_UNVERIFIED"
    RFC_INVALID = "RFC_INVALID"
    RAZON_SOCIAL_MISMATCH = "RAZON_SOCIAL_MISMATCH"
    # Evidence documents
    POA_NAME_MISMATCH = "POA_NAME_MISMATCH"
    BANK_HOLDER_MISMATCH = "BANK_HOLDER_MISMATCH"
    CLABE_INVALID = "CLABE_INVALID"
    ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
    # Freshness
    POA_STALE = "POA_STALE"
    BANK_STATEMENT_STALE = "BANK_STATEMENT_STALE"
    SAT_CONSTANCIA_STALE = "SAT_CONSTANCIA_STALE"
    DOCUMENT_DATE_UNAVAILABLE = "DOCUMENT_DATE_UNAVAILABLE"
    # Ownership
    UBO_MISSING = "UBO_MISSING"
    UBO_INDETERMINATE = "UBO_INDETERMINATE"
    UBO_IDENTITY_NOT_VERIFIED = "UBO_IDENTITY_NOT_VERIFIED"
    EQUITY_INCONSISTENT = "EQUITY_INCONSISTENT"
    EQUITY_NEAR_100 = "EQUITY_NEAR_100"
    # Signing authority
    NO_FULL_SIGNATORY = "NO_FULL_SIGNATORY"
    REP_IDENTITY_NOT_VERIFIED = "REP_IDENTITY_NOT_VERIFIED"
    REP_NOT_SIGNATORY = "REP_NOT_SIGNATORY"
    # Identity documents
    IDENTITY_DOC_EXPIRED = "IDENTITY_DOC_EXPIRED"
    IMMIGRATION_DOC_EXPIRED = "IMMIGRATION_DOC_EXPIRED"
    IMMIGRATION_CARD_OLD = "IMMIGRATION_CARD_OLD"
    CURP_INVALID = "CURP_INVALID"
    IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
    # Internal
    CHECK_INDETERMINATE = "CHECK_INDETERMINATE"


LEVELS = ("info", "warning", "critical")


@dataclass
class Finding:
    """Machine-level outcome of a single rule, before presentation."""
    code: FlagCode
    level: str | None = None                     # None → registry default
    params: dict[str, Any] = field(default_factory=dict)
    supporting_docs: list[str] = field(default_factory=list)


# ───────────────────────────────────────────────────────
# Templates
# ───────────────────────────────────────────────────────

FLAG_REGISTRY: dict[FlagCode, dict[str, str]] = {
    FlagCode.MISSING_ACTA: {
        "level": "critical",
        "title": "Acta Constitutiva Required",
        "message": "Missing Acta Constitutiva — company existence and structure cannot be verified.",
        "action": "Provide the Acta Constitutiva and any later protocolizations.",
    },
    FlagCode.MISSING_COMPANY_SAT: {
        "level": "critical",
        "title": "SAT Constancia Required",
        "message": "Missing SAT Constancia de Situación Fiscal.",
        "action": "Provide a current SAT Constancia de Situación Fiscal.",
    },
    FlagCode.MISSING_REP_IDENTITY: {
        "level": "warning",
        "title": "Representative ID Required",
        "message": "No identity document for the legal representative.",
        "action": "Provide FM2, INE or passport for the legal representative.",
    },
    FlagCode.MISSING_PROOF_OF_ADDRESS: {
        "level": "warning",
        "title": "Proof of Address Required",
        "message": "No proof of address document provided.",
        "action": "Provide a utility bill (CFE, Telmex) in the customer's name.",
    },
    FlagCode.MISSING_BANK_STATEMENT: {
        "level": "warning",
        "title": "Bank Statement Required",
        "message": "No bank statement or bank identity page provided.",
        "action": "Provide a bank statement for account verification.",
    },
    FlagCode.MISSING_FME: {
        "level": "warning",
        "title": "Commercial Registry Folio Missing",
        "message": "No Folio Mercantil Electrónico (FME) or registry folio found for the company.",
        "action": "Provide the Boleta de Inscripción del Registro Público de Comercio.",
    },
    FlagCode.MISSING_FOREIGN_INVESTMENT_REGISTRATION: {
        "level": "critical",
        "title": "Foreign Investment Registration Missing",
        "message": (
            "Foreign shareholders hold {foreign_pct:.2f}% of the company but no "
            "RNIE (Registro Nacional de Inversiones Extranjeras) constancia was provided."
        ),
        "action": "Provide the RNIE registration acknowledgement.",
    },
    FlagCode.SAT_STATUS_INACTIVE: {
        "level": "critical",
        "title": "SAT Status Check",
        "message": "SAT status is {status} — the company may not be active.",
        "action": "Verify company tax status with SAT.",
    },
    FlagCode.TAX_REGIME_NO_COMMERCE: {
        "level": "warning",
        "title": "Tax Regime Without Obligations",
        "message": "Tax regime '{regime}' does not allow business activity.",
        "action": "Confirm the taxpayer is registered under an active business regime.",
    },
    FlagCode.RFC_MISMATCH: {
        "level": "critical",
        "title": "RFC Consistency",
        "message": "RFC mismatch: {source} says {other_rfc}, SAT Constancia says {sat_rfc}.",
        "action": "Verify the correct RFC; the SAT Constancia is authoritative.",
    },
    FlagCode.RFC_UNVERIFIED: {
        "level": "info",
        "title": "RFC Not Confirmed",
        "message": "RFC {rfc} appears in the {source} but there is no SAT Constancia to confirm it.",
        "action": "Provide the SAT Constancia to confirm the RFC.",
    },
    FlagCode.RFC_INVALID: {
        "level": "warning",
        "title": "RFC Format",
        "message": "RFC '{rfc}' from the {source} is not a well-formed RFC.",
        "action": "Verify the RFC printed on the source document.",
    },
    FlagCode.RAZON_SOCIAL_MISMATCH: {
        "level": "warning",
        "title": "Company Name Consistency",
        "message": "Company name in the {source} ({other_name}) does not match SAT ({sat_name}).",
        "action": "Confirm the legal name; the SAT Constancia is authoritative.",
    },
    FlagCode.POA_NAME_MISMATCH: {
        "level": "critical",
        "title": "Proof of Address Name Match",
        "message": "Proof of address name '{client_name}' does not match the customer '{customer_name}'.",
        "action": "Provide a utility bill in the customer's name or a rental contract.",
    },
    FlagCode.BANK_HOLDER_MISMATCH: {
        "level": "warning",
        "title": "Bank Account Holder Match",
        "message": "Bank account holder '{holder_name}' may not match the customer '{customer_name}'.",
        "action": "Verify the bank account is in the customer's name.",
    },
    FlagCode.CLABE_INVALID: {
        "level": "warning",
        "title": "CLABE Format",
        "message": "CLABE '{clabe}' from {bank_name} is not exactly 18 digits.",
        "action": "Verify the CLABE on the bank document.",
    },
    FlagCode.ADDRESS_MISMATCH: {
        "level": "warning",
        "title": "Fiscal vs Operational Address",
        "message": "Fiscal postal code ({fiscal_cp}) does not match operational postal code ({operational_cp}).",
        "action": "Confirm the operating address or update the fiscal address with SAT.",
    },
    FlagCode.POA_STALE: {
        "level": "warning",
        "title": "Proof of Address Freshness",
        "message": "Latest proof of address is {age_days} days old (max {threshold_days} days).",
        "action": "Provide a more recent utility bill.",
    },
    FlagCode.BANK_STATEMENT_STALE: {
        "level": "warning",
        "title": "Bank Statement Freshness",
        "message": "Latest bank statement is {age_days} days old (max {threshold_days} days).",
        "action": "Provide a more recent bank statement.",
    },
    FlagCode.SAT_CONSTANCIA_STALE: {
        "level": "warning",
        "title": "SAT Constancia Freshness",
        "message": "SAT Constancia was issued {age_days} days ago (max {threshold_days} days).",
        "action": "Download a fresh Constancia de Situación Fiscal.",
    },
    FlagCode.DOCUMENT_DATE_UNAVAILABLE: {
        "level": "info",
        "title": "Document Date Unavailable",
        "message": "No usable date found on the {doc_type} document(s); freshness cannot be confirmed.",
        "action": "Provide a document with a legible issue or period date.",
    },
    FlagCode.UBO_MISSING: {
        "level": "warning",
        "title": "Beneficial Owners",
        "message": "No beneficial owners (>{threshold:g}%) detected from the shareholder structure.",
        "action": "Identify the natural persons who ultimately own or control the company.",
    },
    FlagCode.UBO_INDETERMINATE: {
        "level": "info",
        "title": "Beneficial Ownership Indeterminate",
        "message": "Ownership percentages could not be computed: {reason}",
        "action": "Provide the shareholder table with share counts.",
    },
    FlagCode.UBO_IDENTITY_NOT_VERIFIED: {
        "level": "info",
        "title": "UBO Identity Verification",
        "message": "Beneficial owner '{name}' ({percentage}) has no matching identity document.",
        "action": "Provide ID for all beneficial owners above the threshold.",
    },
    FlagCode.EQUITY_INCONSISTENT: {
        "level": "critical",
        "title": "Equity Consistency",
        "message": "Declared share percentages sum to {sum_pct:.2f}%, which is inconsistent with 100%.{suffix}",
        "action": "Review the shareholder table; possible extraction error.",
    },
    FlagCode.EQUITY_NEAR_100: {
        "level": "info",
        "title": "Equity Rounding",
        "message": "Declared share percentages sum to {sum_pct:.2f}%; likely a rounding artifact.",
        "action": "",
    },
    FlagCode.NO_FULL_SIGNATORY: {
        "level": "warning",
        "title": "Signing Authority",
        "message": "No legal representative holds full powers ({signatory_summary}).",
        "action": "Provide the power of attorney granting full powers to a representative.",
    },
    FlagCode.REP_IDENTITY_NOT_VERIFIED: {
        "level": "info",
        "title": "Representative Identity",
        "message": "Identity document holder '{document_name}' {reason}.",
        "action": "Confirm which legal representative presented the identity document.",
    },
    FlagCode.REP_NOT_SIGNATORY: {
        "level": "warning",
        "title": "Representative Powers",
        "message": "Identity document holder '{document_name}' matches '{rep_name}', whose signing scope is {scope}.",
        "action": "Provide a power of attorney for the person signing on behalf of the company.",
    },
    FlagCode.IDENTITY_DOC_EXPIRED: {
        "level": "critical",
        "title": "Identity Document Expiry",
        "message": "{doc_label} expired on {expiry_date}.",
        "action": "Provide a valid (unexpired) identity document.",
    },
    FlagCode.IMMIGRATION_DOC_EXPIRED: {
        "level": "critical",
        "title": "Immigration Document Expiry",
        "message": "Immigration document expired on {expiry_date}.",
        "action": "Provide a valid residency card.",
    },
    FlagCode.IMMIGRATION_CARD_OLD: {
        "level": "warning",
        "title": "Obsolete Immigration Card",
        "message": "Immigration document type '{document_type}' is obsolete (FM2/FM3).",
        "action": "Exchange the FM card for a current Tarjeta de Residente.",
    },
    FlagCode.CURP_INVALID: {
        "level": "warning",
        "title": "CURP Format",
        "message": "CURP '{curp}' on the {source} is invalid or incomplete (must be 18 characters).",
        "action": "Verify the CURP printed on the identity document.",
    },
    FlagCode.IDENTITY_MISMATCH: {
        "level": "warning",
        "title": "Identity vs SAT Name",
        "message": "SAT name ({sat_name}) does not match identity document name ({identity_name}).",
        "action": "Confirm the taxpayer's identity.",
    },
    FlagCode.CHECK_INDETERMINATE: {
        "level": "info",
        "title": "Check Indeterminate",
        "message": "Check '{check}' could not be completed and was skipped.",
        "action": "Review the input documents manually.",
    },
}


class _SafeFormatter(string.Formatter):
    """Formatter that renders missing params as ``?`` instead of raising."""

    def get_value(self, key, args, kwargs):
        if isinstance(key, str):
            return kwargs.get(key, "?")
        return super().get_value(key, args, kwargs)

    def format_field(self, value, format_spec):
        try:
            return super().format_field(value, format_spec)
        except (ValueError, TypeError):
            return str(value)


_FORMATTER = _SafeFormatter()


def default_level(code: FlagCode) -> str:
    return FLAG_REGISTRY[code]["level"]


def render_message(code: FlagCode, params: dict[str, Any]) -> tuple[str, str | None]:
    """Render ``(message, action_required)`` for a code and its params."""
    entry = FLAG_REGISTRY[code]
    message = _FORMATTER.format(entry["message"], **params)
    action = _FORMATTER.format(entry["action"], **params) if entry.get("action") else None
    return message, action


def format_flag(finding: Finding):
    """Turn a :class:`Finding` into a presentation-ready ``KycValidationFlag``."""
    from kyc_engine.pipeline.schemas import KycValidationFlag

    level = finding.level or default_level(finding.code)
    if level not in LEVELS:
        logger.warning(f"Unknown flag level '{level}' for {finding.code.value}; using registry default")
        level = default_level(finding.code)
    message, action = render_message(finding.code, finding.params)
    return KycValidationFlag(
        code=finding.code,
        level=level,
        message=message,
        action_required=action,
        supporting_docs=list(finding.supporting_docs),
        params=dict(finding.params),
    )
