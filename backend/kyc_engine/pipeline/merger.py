"""Modification merger: original Acta + amendments → current corporate state.

The merge is a fold over the ordered amendment list.  Each step takes an
immutable ``_MergeState`` and returns a new one, so the same ordered input
always yields the same current state and the same change history.  The
only wall-clock value is ``merge_timestamp`` on the result; no merge
decision depends on it.

Rules per amendment:
  - Shareholders named in it are matched by name: unmatched → ADDED,
    different shares/percentage → SHARES_CHANGED.  Holders it does not
    mention and who are not already zeroed (unknown counts included) are
    REMOVED (zeroed, kept in history).
    An amendment that lists no shareholders changes nothing.
  - Legal representatives: new names → ADDED, a different power set
    (order-independent) → POWERS_CHANGED.
  - Comisario: the PROPIETARIO (or first listed) replaces the current one
    when the names differ → REPLACED.

Afterwards percentages are recomputed from the final share counts and
explicitly zeroed holders leave the active roster.  Holders with unknown
counts stay.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from functools import reduce
from typing import Literal, Optional

from pydantic import BaseModel, Field

from kyc_engine.config import TRACE_ENABLED
from kyc_engine.pipeline.errors import MergeInputError
from kyc_engine.pipeline.resolvers import recompute_percentages
from kyc_engine.pipeline.schemas import Comisario, CompanyIdentity, LegalRepresentative, Shareholder
from kyc_engine.pipeline.utils import find_name_match, names_match

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# INPUT / OUTPUT RECORDS
# ═══════════════════════════════════════════════════

class ActaExtraction(BaseModel):
    source_file: str
    extracted_data: CompanyIdentity
    is_original: bool = False                   # True only for the founding deed
    extraction_date: Optional[str] = None


class ShareholderChange(BaseModel):
    shareholder_name: str
    action: Literal["ADDED", "REMOVED", "SHARES_CHANGED"]
    old_shares: Optional[float] = None
    new_shares: Optional[float] = None
    old_percentage: Optional[float] = None
    new_percentage: Optional[float] = None
    source_document: str


class LegalRepChange(BaseModel):
    name: str
    action: Literal["ADDED", "POWERS_CHANGED"]
    old_powers: list[str] = Field(default_factory=list)
    new_powers: list[str] = Field(default_factory=list)
    source_document: str


class ComisarioChange(BaseModel):
    action: Literal["REPLACED"] = "REPLACED"
    old_comisario: Comisario
    new_comisario: Comisario
    source_document: str


class MergeResult(BaseModel):
    merged_company_identity: CompanyIdentity
    shareholder_history: list[ShareholderChange] = Field(default_factory=list)
    legal_rep_history: list[LegalRepChange] = Field(default_factory=list)
    comisario_current: Optional[Comisario] = None
    comisario_history: list[ComisarioChange] = Field(default_factory=list)
    documents_merged: int = 0
    merge_timestamp: Optional[datetime] = None
    warnings: list[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════
# FOLD STATE
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class _MergeState:
    shareholders: tuple[Shareholder, ...] = ()
    legal_reps: tuple[LegalRepresentative, ...] = ()
    comisario: Optional[Comisario] = None
    comisario_roster: tuple[Comisario, ...] = ()
    shareholder_history: tuple[ShareholderChange, ...] = ()
    legal_rep_history: tuple[LegalRepChange, ...] = ()
    comisario_history: tuple[ComisarioChange, ...] = ()
    modifications: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def _is_zeroed(sh: Shareholder) -> bool:
    """Explicitly holds nothing; unknown counts (None) still hold a position."""
    if sh.shares is not None:
        return sh.shares == 0
    return sh.percentage == 0


def _pick_comisario(comisarios: list[Comisario]) -> Optional[Comisario]:
    if not comisarios:
        return None
    for c in comisarios:
        if (c.tipo or "").strip().upper() == "PROPIETARIO":
            return c
    return comisarios[0]


def _provided(model: BaseModel) -> dict:
    """Fields the amendment actually states (non-null); the matched name is kept."""
    return model.model_dump(exclude_none=True, exclude={"name"})


# ── Shareholders ──

def _merge_shareholders(state: _MergeState, acta: ActaExtraction) -> _MergeState:
    listed = acta.extracted_data.shareholders
    if not listed:
        return state

    source = acta.source_file
    current = list(state.shareholders)
    history = list(state.shareholder_history)
    warnings = list(state.warnings)
    mentioned: set[int] = set()

    for new_sh in listed:
        match, ambiguous = find_name_match(new_sh.name, current)
        if ambiguous:
            warnings.append(
                f"{source}: shareholder '{new_sh.name}' matches several current holders; treated as new"
            )
        if match is None:
            history.append(ShareholderChange(
                shareholder_name=new_sh.name, action="ADDED",
                new_shares=new_sh.shares, new_percentage=new_sh.percentage,
                source_document=source,
            ))
            current.append(new_sh)
            mentioned.add(len(current) - 1)
            continue

        idx = next(i for i, s in enumerate(current) if s is match)
        mentioned.add(idx)
        shares_changed = new_sh.shares is not None and new_sh.shares != match.shares
        pct_changed = (
            new_sh.percentage is not None and match.percentage is not None
            and new_sh.percentage != match.percentage
        )
        if shares_changed or pct_changed:
            history.append(ShareholderChange(
                shareholder_name=match.name, action="SHARES_CHANGED",
                old_shares=match.shares, new_shares=new_sh.shares if new_sh.shares is not None else match.shares,
                old_percentage=match.percentage,
                new_percentage=new_sh.percentage if new_sh.percentage is not None else match.percentage,
                source_document=source,
            ))
            current[idx] = match.model_copy(update=_provided(new_sh))

    for idx, sh in enumerate(current):
        if idx in mentioned or _is_zeroed(sh):
            continue
        history.append(ShareholderChange(
            shareholder_name=sh.name, action="REMOVED",
            old_shares=sh.shares, new_shares=0,
            old_percentage=sh.percentage, new_percentage=0,
            source_document=source,
        ))
        current[idx] = sh.model_copy(update={"shares": 0, "percentage": 0})

    return replace(
        state,
        shareholders=tuple(current),
        shareholder_history=tuple(history),
        warnings=tuple(warnings),
    )


# ── Legal representatives ──

def _power_set(rep: LegalRepresentative) -> frozenset[str]:
    return frozenset(" ".join(p.split()).upper() for p in rep.poder_scope if p)


def _merge_legal_reps(state: _MergeState, acta: ActaExtraction) -> _MergeState:
    listed = acta.extracted_data.legal_representatives
    if not listed:
        return state

    source = acta.source_file
    current = list(state.legal_reps)
    history = list(state.legal_rep_history)
    warnings = list(state.warnings)

    for new_rep in listed:
        match, ambiguous = find_name_match(new_rep.name, current)
        if ambiguous:
            warnings.append(
                f"{source}: representative '{new_rep.name}' matches several current representatives; treated as new"
            )
        if match is None:
            history.append(LegalRepChange(
                name=new_rep.name, action="ADDED",
                new_powers=list(new_rep.poder_scope), source_document=source,
            ))
            current.append(new_rep)
            continue

        # An amendment that names a representative without listing powers does not revoke them
        if not new_rep.poder_scope:
            continue
        if _power_set(new_rep) != _power_set(match):
            history.append(LegalRepChange(
                name=match.name, action="POWERS_CHANGED",
                old_powers=list(match.poder_scope), new_powers=list(new_rep.poder_scope),
                source_document=source,
            ))
            idx = next(i for i, r in enumerate(current) if r is match)
            current[idx] = match.model_copy(update=_provided(new_rep))

    return replace(
        state,
        legal_reps=tuple(current),
        legal_rep_history=tuple(history),
        warnings=tuple(warnings),
    )


# ── Comisario ──

def _merge_comisario(state: _MergeState, acta: ActaExtraction) -> _MergeState:
    listed = acta.extracted_data.comisarios
    new = _pick_comisario(listed)
    if new is None:
        return state
    if state.comisario is None:
        return replace(state, comisario=new, comisario_roster=tuple(listed))
    if names_match(state.comisario.name, new.name):
        return replace(state, comisario_roster=tuple(listed))
    change = ComisarioChange(old_comisario=state.comisario, new_comisario=new, source_document=acta.source_file)
    return replace(
        state,
        comisario=new,
        comisario_roster=tuple(listed),
        comisario_history=state.comisario_history + (change,),
    )


def _apply_amendment(state: _MergeState, acta: ActaExtraction) -> _MergeState:
    _trace(f"Merger: applying {acta.source_file}")
    state = _merge_shareholders(state, acta)
    state = _merge_legal_reps(state, acta)
    state = _merge_comisario(state, acta)
    notes = tuple(acta.extracted_data.modifications)
    return replace(state, modifications=state.modifications + notes) if notes else state


# ═══════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════

def order_actas(actas: list[ActaExtraction]) -> tuple[ActaExtraction, list[ActaExtraction], list[str]]:
    """Split into (original, amendments) keeping the caller's amendment order."""
    warnings: list[str] = []
    originals = [a for a in actas if a.is_original]
    if not originals:
        warnings.append("No original Acta Constitutiva found - using first document as base")
        return actas[0], list(actas[1:]), warnings
    if len(originals) > 1:
        warnings.append(
            f"{len(originals)} documents marked as original; using {originals[0].source_file} as base"
        )
    base = originals[0]
    return base, [a for a in actas if a is not base], warnings


def merge_modifications(
    actas: list[ActaExtraction],
    merged_at: Optional[datetime] = None,
) -> MergeResult:
    """Fold the ordered Acta extractions into the current corporate state.

    Raises:
        MergeInputError: when ``actas`` is empty.
    """
    if not actas:
        raise MergeInputError("merge_modifications requires at least one Acta extraction")

    base, amendments, warnings = order_actas(list(actas))
    base_identity = base.extracted_data
    initial = _MergeState(
        shareholders=tuple(base_identity.shareholders),
        legal_reps=tuple(base_identity.legal_representatives),
        comisario=_pick_comisario(base_identity.comisarios),
        comisario_roster=tuple(base_identity.comisarios),
        modifications=tuple(base_identity.modifications),
        warnings=tuple(warnings),
    )
    final = reduce(_apply_amendment, amendments, initial)

    active = [s for s in final.shareholders if not _is_zeroed(s)]
    active = recompute_percentages(active)

    change_log = [f"{h.action}: {h.shareholder_name}" for h in final.shareholder_history]
    change_log += [f"{h.action}: {h.name}" for h in final.legal_rep_history]
    change_log += [
        f"COMISARIO REPLACED: {h.old_comisario.name} -> {h.new_comisario.name}"
        for h in final.comisario_history
    ]

    merged = base_identity.model_copy(update={
        "shareholders": active,
        "legal_representatives": list(final.legal_reps),
        "comisarios": list(final.comisario_roster),
        "modifications": list(final.modifications) + change_log,
    })

    logger.info(
        f"Merger: {len(actas)} document(s) merged, {len(final.shareholder_history)} shareholder "
        f"change(s), {len(final.legal_rep_history)} representative change(s), "
        f"{len(active)} active shareholder(s)"
    )
    for w in final.warnings:
        logger.warning(f"Merger: {w}")

    return MergeResult(
        merged_company_identity=merged,
        shareholder_history=list(final.shareholder_history),
        legal_rep_history=list(final.legal_rep_history),
        comisario_current=final.comisario,
        comisario_history=list(final.comisario_history),
        documents_merged=len(actas),
        merge_timestamp=merged_at or datetime.now(timezone.utc),
        warnings=list(final.warnings),
    )
