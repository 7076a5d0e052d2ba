"""Signing-authority classification for legal representatives.

Scope rules:
  - full:    all four canonical powers, no limiting qualifier attached to
             them, and ``can_sign_contracts`` confirmed.
  - limited: some canonical power present, or a limiting qualifier
             ("limitado", "poder especial", "solo", "únicamente") attached
             to a canonical power, or an explicit "apoderado especial" role.
             The stock "facultades generales y aun las especiales que
             requieran cláusula especial" wording is not a qualifier.
  - none:    comisarios, officer-only roles (secretario, vocal, consejo)
             without an apoderado grant, or no canonical power at all.

A qualifier only limits when it sits in the same clause as a canonical
power: "poder especial para actos de dirección" grants something extra,
it does not restrict the general powers granted elsewhere.

Joint signature (mancomunada / indistinta) is recorded, never used to
change the scope.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from kyc_engine.config import TRACE_ENABLED
from kyc_engine.pipeline.schemas import Comisario, LegalRepresentative
from kyc_engine.pipeline.utils import names_match, normalize_name, normalize_text

logger = logging.getLogger(__name__)

# Patterns run on accent-stripped uppercase text
CANONICAL_POWERS: list[tuple[str, re.Pattern]] = [
    ("PLEITOS Y COBRANZAS", re.compile(r"PLEITOS? Y COBRANZAS?")),
    ("ACTOS DE ADMINISTRACION", re.compile(r"ACTOS? DE ADMINISTRACION")),
    ("ACTOS DE DOMINIO", re.compile(r"ACTOS? DE (?:ADMINISTRACION Y (?:DE )?)?(?:RIGUROSO )?DOMINIO")),
    ("TITULOS DE CREDITO", re.compile(r"TITULOS? (?:Y OPERACIONES )?DE CREDITO")),
]
_QUALIFIER_RE = re.compile(r"\b(LIMITAD[OA]S?|PODER(?:ES)? ESPECIAL(?:ES)?|SOLO|SOLAMENTE|UNICAMENTE)\b")
# "con todas las facultades generales y aun las especiales que requieran cláusula especial"
# extends a general grant; it never restricts it
_GENERAL_GRANT_RE = re.compile(
    r"FACULTADES GENERALES Y (?:AUN )?(?:LAS )?ESPECIALES|(?:PODER O )?CLAUSULAS? ESPECIAL(?:ES)?"
)
_CLAUSE_SPLIT_RE = re.compile(r"[;\n]+")
_LIMITED_ROLE_RE = re.compile(r"APODERAD[OA] (?:ESPECIAL|LIMITAD[OA])|(?:ESPECIAL|LIMITAD[OA]) APODERAD[OA]")
_OFFICER_RE = re.compile(r"\b(SECRETARI[OA]|VOCAL|CONSEJO|CONSEJER[OA])\b")
_JOINT_RE = re.compile(r"MANCOMUNAD|CONJUNTA")
_SEVERAL_RE = re.compile(r"INDISTINT|SEPARAD")

_SCOPE_RANK = {"none": 0, "limited": 1, "full": 2}
_COMISARIO_NOTE = "Comisario is a supervisory officer and never a signatory"


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


@dataclass
class PowerTrace:
    """A representative's scope and the literal evidence behind it."""
    person_name: str
    role: str
    scope: str                                          # full | limited | none
    matched_phrases: list[str] = field(default_factory=list)
    missing_powers: list[str] = field(default_factory=list)
    limitations: list[str] = field(default_factory=list)
    joint_signature: Optional[str] = None               # joint | several | None
    can_sign_contracts: Optional[bool] = None
    source_reference: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "person_name": self.person_name,
            "role": self.role,
            "scope": self.scope,
            "matched_phrases": self.matched_phrases,
            "missing_powers": self.missing_powers,
            "limitations": self.limitations,
            "joint_signature": self.joint_signature,
            "can_sign_contracts": self.can_sign_contracts,
            "source_reference": self.source_reference,
        }


def _joint_signature(rep: LegalRepresentative, texts: list[str]) -> Optional[str]:
    blob = " ".join(texts)
    if _JOINT_RE.search(blob):
        return "joint"
    if _SEVERAL_RE.search(blob):
        return "several"
    if rep.joint_signature_required is True:
        return "joint"
    if rep.joint_signature_required is False:
        return "several"
    return None


def classify_representative(
    rep: LegalRepresentative,
    comisarios: Optional[list[Comisario]] = None,
) -> PowerTrace:
    role_u = normalize_text(rep.role)
    scope_texts = [normalize_text(s) for s in rep.poder_scope if s]
    result = PowerTrace(
        person_name=rep.name,
        role=rep.role or "",
        scope="none",
        joint_signature=_joint_signature(rep, scope_texts + [role_u]),
        can_sign_contracts=rep.can_sign_contracts,
    )

    # Canonical powers and clause-bound qualifiers
    found: set[str] = set()
    for text in scope_texts:
        for clause in _CLAUSE_SPLIT_RE.split(text):
            powers_here = [label for label, rx in CANONICAL_POWERS if rx.search(clause)]
            found.update(powers_here)
            qualifier = _QUALIFIER_RE.search(_GENERAL_GRANT_RE.sub(" ", clause))
            if powers_here and qualifier:
                result.limitations.append(
                    f"Qualifier '{qualifier.group(1)}' attached to: {clause.strip()}"
                )
    result.matched_phrases = [label for label, _ in CANONICAL_POWERS if label in found]
    result.missing_powers = [label for label, _ in CANONICAL_POWERS if label not in found]

    # Never signatories
    is_comisario = "COMISARIO" in role_u or any(names_match(rep.name, c.name) for c in (comisarios or []))
    if is_comisario:
        result.scope = "none"
        result.limitations.append(_COMISARIO_NOTE)
        return result
    if _OFFICER_RE.search(role_u) and "APODERAD" not in role_u:
        result.scope = "none"
        result.limitations.append("Officer role without explicit apoderado grant")
        return result

    labelled_limited = bool(_LIMITED_ROLE_RE.search(role_u))
    if labelled_limited:
        result.limitations.append(f"Role labelled as limited: {rep.role}")
    qualified = bool(result.limitations)

    if not found and not labelled_limited:
        result.scope = "none"
        result.limitations.append("No canonical power phrases found")
    elif len(found) == len(CANONICAL_POWERS) and not qualified and rep.can_sign_contracts is True:
        result.scope = "full"
    else:
        result.scope = "limited"
        if len(found) == len(CANONICAL_POWERS) and not qualified:
            result.limitations.append("All canonical powers present but contract signing not confirmed")

    return result


def _merge_duplicate(existing: PowerTrace, new: PowerTrace) -> None:
    """Fold a second appearance of the same person into the first, keeping the best scope."""
    if _SCOPE_RANK[new.scope] > _SCOPE_RANK[existing.scope]:
        existing.scope = new.scope
    if new.role and new.role not in existing.role:
        existing.role = f"{existing.role} / {new.role}" if existing.role else new.role
    matched = set(existing.matched_phrases) | set(new.matched_phrases)
    existing.matched_phrases = [label for label, _ in CANONICAL_POWERS if label in matched]
    existing.missing_powers = [label for label, _ in CANONICAL_POWERS if label not in matched]
    existing.joint_signature = existing.joint_signature or new.joint_signature
    if existing.can_sign_contracts is not True:
        existing.can_sign_contracts = new.can_sign_contracts
    if existing.scope == "full":
        existing.limitations = []
        existing.missing_powers = []
    else:
        existing.limitations += [l for l in new.limitations if l not in existing.limitations]


def resolve_signatories(
    representatives: Optional[list[LegalRepresentative]],
    comisarios: Optional[list[Comisario]] = None,
) -> list[PowerTrace]:
    """Classify every representative; repeated names collapse into one entry."""
    by_name: dict[str, PowerTrace] = {}
    comisario_keys: set[str] = set()
    for rep in representatives or []:
        trace = classify_representative(rep, comisarios)
        key = normalize_name(rep.name)
        if _COMISARIO_NOTE in trace.limitations:
            comisario_keys.add(key)
        if key in by_name:
            _merge_duplicate(by_name[key], trace)
        else:
            by_name[key] = trace
        _trace(f"Signatory {rep.name}: scope={trace.scope} matched={trace.matched_phrases}")

    for key in comisario_keys:
        entry = by_name[key]
        entry.scope = "none"
        if _COMISARIO_NOTE not in entry.limitations:
            entry.limitations.append(_COMISARIO_NOTE)
    return list(by_name.values())
