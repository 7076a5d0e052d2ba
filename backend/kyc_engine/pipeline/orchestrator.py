"""Run orchestrator - turns a persisted run into profile, validation and trace.

  Stage 1  → Parse every document payload into its typed model
  Stage 2  → Merge Acta amendments onto the original (when >1 acta)
  Stage 3  → Assemble the KycProfile
  Stage 4  → Resolve once, then validate and build the trace from the same outputs
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel

from kyc_engine.config import DEFAULT_POLICY, ValidationPolicy
from kyc_engine.pipeline.merger import ActaExtraction, MergeResult, merge_modifications
from kyc_engine.pipeline.profile_builder import build_kyc_profile
from kyc_engine.pipeline.schemas import (
    PROOF_OF_ADDRESS_TYPES,
    DocumentType,
    KycDocument,
    KycProfile,
    KycRun,
    parse_payload,
)
from kyc_engine.pipeline.trace import TraceSection, build_trace
from kyc_engine.pipeline.validator import run_resolvers, validate_profile

logger = logging.getLogger(__name__)

_ORIGINAL_HINTS = ("ORIGINAL", "CONSTITUTIVA")


@dataclass
class ParsedDocument:
    document: KycDocument
    payload: BaseModel


@dataclass
class RunOutcome:
    run: KycRun
    trace: TraceSection
    merge_result: Optional[MergeResult] = None


def group_documents(documents: list[KycDocument]) -> dict[DocumentType, list[ParsedDocument]]:
    """Parse each document's payload and bucket by type, keeping input order.

    Documents without a payload (extraction not finished) are skipped.

    Raises:
        PayloadValidationError: a payload does not fit its document type.
    """
    groups: dict[DocumentType, list[ParsedDocument]] = defaultdict(list)
    skipped = 0
    for doc in documents:
        if doc.extracted_payload is None:
            skipped += 1
            continue
        payload = parse_payload(doc.type, doc.extracted_payload, doc.source_name or doc.id)
        groups[doc.type].append(ParsedDocument(doc, payload))
    if skipped:
        logger.warning(f"Orchestrator: {skipped} document(s) without extracted payload skipped")
    return dict(groups)


def _is_original(parsed: ParsedDocument) -> bool:
    doc = parsed.document
    if doc.is_original is not None:
        return doc.is_original
    flag = (doc.extracted_payload or {}).get("is_original")
    if isinstance(flag, bool):
        return flag
    name = (doc.source_name or "").upper()
    return any(h in name for h in _ORIGINAL_HINTS)


def _acta_extractions(actas: list[ParsedDocument]) -> list[ActaExtraction]:
    marked = [p for p in actas if _is_original(p)]
    original = marked[0] if marked else actas[0]
    return [
        ActaExtraction(
            source_file=p.document.source_name or p.document.id,
            extracted_data=p.payload,
            is_original=p is original,
            extraction_date=p.document.extracted_at.isoformat() if p.document.extracted_at else None,
        )
        for p in actas
    ]


def _one(groups: dict, doc_type: DocumentType) -> Any:
    """Latest payload of a single-instance document type."""
    items = groups.get(doc_type) or []
    if len(items) > 1:
        logger.warning(f"Orchestrator: {len(items)} '{doc_type.value}' documents; using the last one")
    return items[-1].payload if items else None


def _many(groups: dict, *doc_types: DocumentType) -> list:
    return [p.payload for t in doc_types for p in groups.get(t, [])]


def build_profile_from_documents(
    customer_id: str,
    documents: list[KycDocument],
) -> tuple[KycProfile, Optional[MergeResult]]:
    """Parse, merge and assemble; returns the profile and the merge result (if any)."""
    groups = group_documents(documents)

    merge_result = None
    actas = groups.get(DocumentType.ACTA, [])
    if len(actas) > 1:
        merge_result = merge_modifications(_acta_extractions(actas))
        company_identity = merge_result.merged_company_identity
    else:
        company_identity = actas[0].payload if actas else None

    representative = _one(groups, DocumentType.FM2) or _one(groups, DocumentType.INE)
    profile = build_kyc_profile(
        customer_id=customer_id,
        company_identity=company_identity,
        company_tax_profile=_one(groups, DocumentType.SAT_CONSTANCIA),
        representative_identity=representative,
        passport_identity=_one(groups, DocumentType.PASSPORT),
        proofs_of_address=_many(groups, *sorted(PROOF_OF_ADDRESS_TYPES, key=lambda t: t.value)),
        bank_accounts=_many(groups, DocumentType.BANK_STATEMENT),
        bank_identity=_one(groups, DocumentType.BANK_IDENTITY_PAGE),
        boleta_rpc=_one(groups, DocumentType.BOLETA_RPC),
        foreign_investment_constancias=_many(groups, DocumentType.RNIE_CONSTANCIA),
        sre_convenio=_one(groups, DocumentType.SRE_CONVENIO),
        name_authorization=_one(groups, DocumentType.AUTORIZACION_DENOMINACION),
    )
    return profile, merge_result


def process_run(
    run: KycRun,
    as_of: Any = None,
    policy: ValidationPolicy = DEFAULT_POLICY,
) -> RunOutcome:
    """Process a run whose documents have all been extracted.

    Returns a new ``KycRun`` (the input is not modified) with ``profile``
    and ``validation`` filled, plus the trace and merge result.
    """
    logger.info(f"Orchestrator: processing run {run.run_id} ({len(run.documents)} document(s))")
    profile, merge_result = build_profile_from_documents(run.customer_id, run.documents)

    outputs = run_resolvers(profile, as_of, policy)
    validation = validate_profile(profile, as_of, policy, outputs=outputs)
    trace = build_trace(profile, as_of, policy, outputs=outputs)

    processed = run.model_copy(update={"profile": profile, "validation": validation})
    logger.info(
        f"Orchestrator: run {run.run_id} complete - score={validation.score} "
        f"trust={validation.trust_level}"
    )
    return RunOutcome(run=processed, trace=trace, merge_result=merge_result)
