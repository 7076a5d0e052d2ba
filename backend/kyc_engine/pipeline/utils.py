"""Shared text, name and date helpers for the KYC engine."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, TypeVar

from kyc_engine.pipeline.validators import sanitize_date

T = TypeVar("T")


# ═══════════════════════════════════════════════════
# 1. TEXT NORMALIZATION
# ═══════════════════════════════════════════════════

def strip_accents(text: str) -> str:
    """Drop combining marks: "ADMINISTRACIÓN" → "ADMINISTRACION"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Any) -> str:
    """Uppercase, accent-free, single-spaced.  Used for phrase matching."""
    if not text:
        return ""
    s = strip_accents(str(text)).upper()
    return re.sub(r"\s+", " ", s).strip()


# ═══════════════════════════════════════════════════
# 2. NAME MATCHING (token containment)
# ═══════════════════════════════════════════════════

_PUNCT_RE = re.compile(r"[^\w\s]")
_MIN_TOKEN_LEN = 3   # tokens of length <= 2 ("DE", "LA", initials) carry no identity


def normalize_name(name: Any) -> str:
    """Normalize a person or entity name for comparison.

    Uppercases, removes accents and punctuation, collapses whitespace.
    """
    if not name:
        return ""
    s = strip_accents(str(name)).upper()
    s = _PUNCT_RE.sub("", s)
    return re.sub(r"\s+", " ", s).strip()


def name_tokens(name: Any) -> list[str]:
    """Significant tokens of a normalized name, in order, de-duplicated."""
    seen: list[str] = []
    for tok in normalize_name(name).split(" "):
        if len(tok) >= _MIN_TOKEN_LEN and tok not in seen:
            seen.append(tok)
    return seen


@dataclass
class NameMatch:
    """Outcome of comparing two names, with the tokens that decided it."""
    matched: bool
    exact: bool = False
    matched_tokens: list[str] = field(default_factory=list)
    missing_tokens: list[str] = field(default_factory=list)   # tokens of the smaller name absent from the larger

    def to_dict(self) -> dict:
        return {
            "matched": self.matched,
            "exact": self.exact,
            "matched_tokens": self.matched_tokens,
            "missing_tokens": self.missing_tokens,
        }


def match_names(a: Any, b: Any) -> NameMatch:
    """Compare two names.

    Exact normalized equality matches.  Otherwise every significant token
    of the smaller name must appear in the larger one:

      "ASHISH PUNJ"  vs "PUNJ ASHISH EXTRA" → match
      "ASHISH PUNJ"  vs "ASHISH GARCIA"     → no match (PUNJ missing)
    """
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return NameMatch(matched=False)
    if na == nb:
        return NameMatch(matched=True, exact=True, matched_tokens=name_tokens(na))

    ta, tb = name_tokens(na), name_tokens(nb)
    small, large = (ta, tb) if len(ta) <= len(tb) else (tb, ta)
    if not small:
        return NameMatch(matched=False)
    large_set = set(large)
    matched = [t for t in small if t in large_set]
    missing = [t for t in small if t not in large_set]
    return NameMatch(matched=not missing, matched_tokens=matched, missing_tokens=missing)


def names_match(a: Any, b: Any) -> bool:
    return match_names(a, b).matched


_CORPORATE_FORM_RE = re.compile(
    r"\b(?:SOCIEDAD ANONIMA(?: PROMOTORA DE INVERSION)?(?: BURSATIL)?|SOCIEDAD DE RESPONSABILIDAD LIMITADA"
    r"|SOCIEDAD CIVIL|SOCIEDAD COOPERATIVA|(?:DE )?CAPITAL VARIABLE|SAPI|SAB|SRL|SA|CV|SC)\b"
)


def strip_corporate_form(name: Any) -> str:
    """Normalized company name without its legal form ("SA DE CV", "SAPI", ...)."""
    s = _CORPORATE_FORM_RE.sub(" ", normalize_name(name))
    return re.sub(r"\s+", " ", s).strip()


def match_entity_names(a: Any, b: Any) -> NameMatch:
    """Like :func:`match_names`, ignoring the company legal form on either side."""
    return match_names(strip_corporate_form(a) or normalize_name(a), strip_corporate_form(b) or normalize_name(b))


def find_name_match(name: Any, candidates: list[T], key=lambda c: c.name) -> tuple[Optional[T], bool]:
    """Find the single candidate whose name matches ``name``.

    Returns ``(candidate, ambiguous)``.  An exact normalized match wins
    outright.  If several candidates match only by containment the result
    is ``(None, True)``: ambiguity is never resolved by guessing.
    """
    hits: list[tuple[T, NameMatch]] = []
    for cand in candidates:
        m = match_names(name, key(cand))
        if m.matched:
            hits.append((cand, m))
    if not hits:
        return None, False

    exact = [c for c, m in hits if m.exact]
    if len(exact) == 1:
        return exact[0], False
    if len(exact) > 1 or len(hits) > 1:
        return None, True
    return hits[0][0], False


# ═══════════════════════════════════════════════════
# 3. DATES
# ═══════════════════════════════════════════════════

def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date (or datetime) into a ``date``; ``None`` if unusable."""
    iso = sanitize_date(value)
    return date.fromisoformat(iso) if iso else None


def as_of_date(as_of: Any = None) -> date:
    """Evaluation date: explicit ``as_of`` or today (UTC)."""
    if as_of is None:
        return datetime.now(timezone.utc).date()
    if isinstance(as_of, datetime):
        return as_of.date()
    if isinstance(as_of, date):
        return as_of
    parsed = parse_date(as_of)
    if parsed is None:
        raise ValueError(f"Unparseable evaluation date: {as_of!r}")
    return parsed


def latest_date(values: Iterable[Any]) -> Optional[date]:
    dates = [d for d in (parse_date(v) for v in values) if d is not None]
    return max(dates) if dates else None
