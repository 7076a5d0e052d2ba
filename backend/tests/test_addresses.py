"""Tests for kyc_engine/pipeline/resolvers/addresses.py and freshness.py.

Covers:
  - Operational precedence: proof of address → bank → fiscal fallback
  - Fiscal address only from SAT; founding address only as history
  - Jurisdiction-only founding addresses
  - Inclusive freshness thresholds (90 days fresh, 91 stale)
  - Undated documents reported as unavailable
"""

from datetime import date, timedelta

from kyc_engine.config import ValidationPolicy
from kyc_engine.pipeline.resolvers.addresses import (
    format_address,
    resolve_addresses,
    sanitize_founding_address,
)
from kyc_engine.pipeline.resolvers.freshness import (
    SupportingDocument,
    check_freshness,
    evaluate_category,
)
from kyc_engine.pipeline.schemas import (
    Address,
    BankAccountProfile,
    BankIdentity,
    CompanyIdentity,
    CompanyTaxProfile,
    KycProfile,
    ProofOfAddress,
)

AS_OF = date(2024, 6, 30)


def _poa(address: Address, on: str | None, name: str = "ACME SA DE CV") -> ProofOfAddress:
    return ProofOfAddress(document_type="cfe_receipt", date=on, client_name=name, client_address=address)


def _days_ago(n: int) -> str:
    return (AS_OF - timedelta(days=n)).isoformat()


# ═══════════════════════════════════════════════════
# ADDRESS PRECEDENCE
# ═══════════════════════════════════════════════════

class TestResolveAddresses:

    def test_proof_of_address_beats_bank(self, address_a, address_b):
        res = resolve_addresses(
            proofs_of_address=[_poa(address_a, "2024-06-01")],
            bank_accounts=[BankAccountProfile(address_on_statement=address_b, statement_period_end="2024-06-20")],
        )
        assert res.operational == address_a
        assert res.operational_basis == "proof_of_address"

    def test_newest_proof_wins(self, address_a, address_b):
        res = resolve_addresses(proofs_of_address=[
            _poa(address_a, "2024-01-10"),
            _poa(address_b, "2024-05-10"),
        ])
        assert res.operational == address_b
        evidence = next(e for e in res.evidence if e.role == "operational")
        assert [s.date for s in evidence.sources] == ["2024-05-10", "2024-01-10"]

    def test_bank_used_without_proof(self, address_a, address_b):
        tax = CompanyTaxProfile(fiscal_address=address_a)
        res = resolve_addresses(
            tax_profile=tax,
            bank_accounts=[BankAccountProfile(address_on_statement=address_b)],
        )
        assert res.operational == address_b
        assert res.operational_basis == "bank"

    def test_bank_marked_non_operational_skipped(self, address_a, address_b):
        tax = CompanyTaxProfile(fiscal_address=address_a)
        res = resolve_addresses(
            tax_profile=tax,
            bank_accounts=[BankAccountProfile(address_on_statement=address_b, address_matches_operational=False)],
        )
        assert res.operational == address_a
        assert res.operational_basis == "fiscal_fallback"

    def test_bank_identity_page_address(self, address_b):
        res = resolve_addresses(bank_identity=BankIdentity(address_on_file=address_b))
        assert res.operational == address_b
        assert res.operational_basis == "bank"

    def test_fiscal_only_from_sat(self, address_a):
        acta = CompanyIdentity(founding_address=address_a)
        res = resolve_addresses(company_identity=acta)
        assert res.fiscal is None
        assert res.operational is None
        assert res.founding == address_a

    def test_nothing_available(self):
        res = resolve_addresses()
        assert res.operational is None
        assert res.operational_basis is None
        assert res.evidence == []

    def test_empty_poa_address_ignored(self, address_b):
        res = resolve_addresses(
            proofs_of_address=[_poa(Address(), "2024-06-01")],
            bank_accounts=[BankAccountProfile(address_on_statement=address_b)],
        )
        assert res.operational_basis == "bank"


class TestFoundingAddress:

    def test_jurisdiction_only_keeps_no_street(self):
        addr = Address(street="Ciudad de México", estado="Ciudad de México")
        clean = sanitize_founding_address(addr)
        assert clean.street is None
        assert clean.estado == "Ciudad de México"

    def test_bare_place_in_street_slot(self):
        clean = sanitize_founding_address(Address(street="Guadalajara"))
        assert clean.street is None
        assert clean.municipio == "Guadalajara"

    def test_real_street_untouched(self, address_a):
        assert sanitize_founding_address(address_a) == address_a

    def test_format(self, address_a):
        assert format_address(address_a) == "Calle Uno 1, Centro, Monterrey, CP 64000"


# ═══════════════════════════════════════════════════
# FRESHNESS
# ═══════════════════════════════════════════════════

def _profile(**kw) -> KycProfile:
    return KycProfile(customer_id="C-1", **kw)


class TestFreshness:

    def test_exactly_90_days_is_fresh(self, address_a):
        profile = _profile(address_evidence=[_poa(address_a, _days_ago(90))])
        poa = check_freshness(profile, AS_OF)[0]
        assert poa.doc_type == "proof_of_address"
        assert poa.age_in_days == 90
        assert poa.within_threshold is True

    def test_91_days_is_stale(self, address_a):
        profile = _profile(address_evidence=[_poa(address_a, _days_ago(91))])
        poa = check_freshness(profile, AS_OF)[0]
        assert poa.age_in_days == 91
        assert poa.within_threshold is False

    def test_newest_document_counts(self, address_a):
        profile = _profile(address_evidence=[_poa(address_a, _days_ago(200)), _poa(address_a, _days_ago(10))])
        poa = check_freshness(profile, AS_OF)[0]
        assert poa.latest_date == _days_ago(10)
        assert len(poa.supporting_documents) == 2

    def test_undated_is_unavailable_not_pass(self, address_a):
        profile = _profile(address_evidence=[_poa(address_a, None)])
        poa = check_freshness(profile, AS_OF)[0]
        assert poa.has_documents
        assert poa.latest_date is None
        assert poa.within_threshold is False
        assert "freshness unavailable" in poa.message

    def test_no_documents(self):
        results = check_freshness(_profile(), AS_OF)
        assert [r.doc_type for r in results] == ["proof_of_address", "bank_statement", "sat_constancia"]
        assert all(not r.has_documents and not r.within_threshold for r in results)

    def test_bank_statement_uses_period_end(self):
        acct = BankAccountProfile(statement_period_start=_days_ago(120), statement_period_end=_days_ago(89))
        bank = check_freshness(_profile(bank_accounts=[acct]), AS_OF)[1]
        assert bank.age_in_days == 89
        assert bank.within_threshold is True

    def test_bank_identity_page_counts_for_bank(self):
        profile = _profile(bank_identity=BankIdentity(document_date=_days_ago(5)))
        bank = check_freshness(profile, AS_OF)[1]
        assert bank.latest_date == _days_ago(5)
        assert bank.supporting_documents[0].type == "bank_identity_page"

    def test_sat_issue_date(self):
        tax = CompanyTaxProfile(issue={"issue_date": _days_ago(100)})
        sat = check_freshness(_profile(company_tax_profile=tax), AS_OF)[2]
        assert sat.within_threshold is False
        assert sat.threshold_days == 90

    def test_policy_threshold(self):
        policy = ValidationPolicy(freshness_thresholds_days={"proof_of_address": 30})
        res = evaluate_category("proof_of_address", [SupportingDocument("cfe_receipt", _days_ago(31))], AS_OF, policy)
        assert res.threshold_days == 30
        assert res.within_threshold is False

    def test_future_dated_document(self):
        future = (AS_OF + timedelta(days=3)).isoformat()
        res = evaluate_category("proof_of_address", [SupportingDocument("cfe_receipt", future)], AS_OF)
        assert res.age_in_days == -3
        assert res.within_threshold is True
        assert "after the evaluation date" in res.message
