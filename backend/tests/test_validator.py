"""Tests for kyc_engine/pipeline/validator.py: rules, score and trust level.

Each test class starts from the clean persona moral in conftest.py, changes
one thing, and asserts on the flag codes the validator emits:
  - Correct code and level
  - No false positives for clean data
  - Score monotone in critical flags, capped when any critical exists
  - Internal failures degrade to CHECK_INDETERMINATE
"""

import pytest
from datetime import datetime, timezone

from kyc_engine.config import ValidationPolicy
from kyc_engine.pipeline import validator
from kyc_engine.pipeline.flags import FlagCode
from kyc_engine.pipeline.profile_builder import build_kyc_profile
from kyc_engine.pipeline.schemas import (
    CompanyIdentity,
    CompanyTaxProfile,
    ForeignInvestmentConstancia,
    ImmigrationProfile,
    PassportIdentity,
)
from kyc_engine.pipeline.validator import (
    compute_score,
    document_coverage,
    is_persona_fisica,
    run_resolvers,
    trust_level,
    validate_profile,
)

from conftest import AS_OF, FULL_POWERS

TS = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)
FIXED_UPDATED = datetime(2024, 6, 30, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════

@pytest.fixture
def docs(acta_basic, sat_basic, fm2_basic, cfe_basic, bank_basic):
    return dict(
        company_identity=acta_basic,
        company_tax_profile=sat_basic,
        representative_identity=fm2_basic,
        proofs_of_address=[cfe_basic],
        bank_accounts=[bank_basic],
    )


def _validate(**docs):
    profile = build_kyc_profile("C-1", last_updated_at=FIXED_UPDATED, **docs)
    return validate_profile(profile, as_of=AS_OF, generated_at=TS)


def _codes(result) -> list[str]:
    return [f.code.value for f in result.flags]


def _find(result, code: FlagCode):
    for f in result.flags:
        if f.code == code:
            return f
    return None


def _acta_with(acta: CompanyIdentity, **fields) -> CompanyIdentity:
    return CompanyIdentity.model_validate({**acta.model_dump(by_alias=True), **fields})


# ═══════════════════════════════════════════════════
# CLEAN PROFILE
# ═══════════════════════════════════════════════════

class TestCleanProfile:

    def test_only_unverified_minority_ubo(self, docs):
        result = _validate(**docs)
        assert _codes(result) == ["UBO_IDENTITY_NOT_VERIFIED"]
        flag = result.flags[0]
        assert flag.level == "info"
        assert "María López García" in flag.message
        assert flag.params["percentage"] == "40.00%"

    def test_score_and_trust(self, docs):
        result = _validate(**docs)
        assert result.score == 1.0
        assert result.trust_level == "HIGH"
        assert result.coverage == 1.0
        assert result.critical_count == 0 and result.warning_count == 0 and result.info_count == 1
        assert result.persona_fisica is False
        assert result.rules_applied == 16
        assert result.customer_id == "C-1"
        assert result.generated_at == TS

    def test_deterministic(self, docs):
        assert _validate(**docs).model_dump() == _validate(**docs).model_dump()


# ═══════════════════════════════════════════════════
# COVERAGE
# ═══════════════════════════════════════════════════

class TestCoverage:

    def test_missing_acta_is_critical(self, docs):
        docs.pop("company_identity")
        result = _validate(**docs)
        assert "MISSING_ACTA" in _codes(result)
        assert _find(result, FlagCode.MISSING_ACTA).level == "critical"
        assert result.trust_level == "CRITICAL"
        assert result.score <= 0.49
        assert result.coverage == 0.8

    def test_missing_everything(self):
        result = _validate()
        assert set(_codes(result)) >= {
            "MISSING_ACTA", "MISSING_COMPANY_SAT", "MISSING_REP_IDENTITY",
            "MISSING_PROOF_OF_ADDRESS", "MISSING_BANK_STATEMENT",
        }
        assert result.coverage == 0.0
        assert result.score == 0.15
        assert result.trust_level == "CRITICAL"

    def test_missing_fme(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, registry={})
        assert "MISSING_FME" in _codes(_validate(**docs))

    def test_boleta_supplies_folio(self, docs, acta_basic):
        from kyc_engine.pipeline.schemas import BoletaRpc
        docs["company_identity"] = _acta_with(acta_basic, registry={})
        docs["boleta_rpc"] = BoletaRpc(fme="N-2015001234")
        assert "MISSING_FME" not in _codes(_validate(**docs))

    def test_foreign_majority_without_rnie(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": "Ashish Punj", "shares": 600, "percentage": 60, "nationality": "India"},
            {"name": "María López García", "shares": 400, "percentage": 40, "nationality": "Mexicana"},
        ])
        result = _validate(**docs)
        flag = _find(result, FlagCode.MISSING_FOREIGN_INVESTMENT_REGISTRATION)
        assert flag is not None and flag.level == "critical"
        assert "60.00%" in flag.message

    def test_foreign_majority_with_rnie(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": "Ashish Punj", "shares": 600, "nationality": "India"},
            {"name": "María López García", "shares": 400, "nationality": "Mexicana"},
        ])
        docs["foreign_investment_constancias"] = [ForeignInvestmentConstancia(folio_ingreso="RNIE-1")]
        assert "MISSING_FOREIGN_INVESTMENT_REGISTRATION" not in _codes(_validate(**docs))

    def test_document_coverage_ratio(self, sat_basic):
        profile = build_kyc_profile("C-1", company_tax_profile=sat_basic)
        assert document_coverage(profile, persona_fisica=False) == 0.2
        assert document_coverage(profile, persona_fisica=True) == 0.25


# ═══════════════════════════════════════════════════
# TAX IDENTITY
# ═══════════════════════════════════════════════════

class TestTaxIdentity:

    def test_inactive_status(self, docs, sat_basic):
        docs["company_tax_profile"] = sat_basic.model_copy(update={"status": "SUSPENDIDO"})
        result = _validate(**docs)
        assert _find(result, FlagCode.SAT_STATUS_INACTIVE).level == "critical"

    def test_bank_rfc_mismatch(self, docs, bank_basic):
        docs["bank_accounts"] = [bank_basic.model_copy(update={"rfc": "XYZ150101AB1"})]
        flag = _find(_validate(**docs), FlagCode.RFC_MISMATCH)
        assert flag.level == "critical"
        assert flag.params["other_rfc"] == "XYZ150101AB1"
        assert flag.params["sat_rfc"] == "CNO150101AB1"

    def test_acta_rfc_unverified_without_sat(self, docs):
        docs.pop("company_tax_profile")
        result = _validate(**docs)
        assert _find(result, FlagCode.RFC_UNVERIFIED).level == "info"
        assert "RFC_MISMATCH" not in _codes(result)

    def test_invalid_rfc(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, rfc="CNO-15")
        assert _find(_validate(**docs), FlagCode.RFC_INVALID).params["source"] == "Acta Constitutiva"

    def test_razon_social_mismatch(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, razon_social="DISTRIBUIDORA DEL SUR SA DE CV")
        assert "RAZON_SOCIAL_MISMATCH" in _codes(_validate(**docs))


# ═══════════════════════════════════════════════════
# EVIDENCE DOCUMENTS
# ═══════════════════════════════════════════════════

class TestEvidence:

    def test_poa_name_mismatch_is_critical(self, docs, cfe_basic):
        docs["proofs_of_address"] = [cfe_basic.model_copy(update={"client_name": "JUAN PEREZ"})]
        flag = _find(_validate(**docs), FlagCode.POA_NAME_MISMATCH)
        assert flag.level == "critical"
        assert flag.supporting_docs == ["cfe_receipt"]

    def test_bank_holder_mismatch(self, docs, bank_basic):
        docs["bank_accounts"] = [bank_basic.model_copy(update={"account_holder_name": "OTRA EMPRESA SA"})]
        assert _find(_validate(**docs), FlagCode.BANK_HOLDER_MISMATCH).level == "warning"

    def test_invalid_clabe(self, docs, bank_basic):
        docs["bank_accounts"] = [bank_basic.model_copy(update={"clabe": "01258000123"})]
        assert "CLABE_INVALID" in _codes(_validate(**docs))

    def test_postal_code_mismatch(self, docs, cfe_basic):
        moved = cfe_basic.client_address.model_copy(update={"cp": "66220"})
        docs["proofs_of_address"] = [cfe_basic.model_copy(update={"client_address": moved})]
        flag = _find(_validate(**docs), FlagCode.ADDRESS_MISMATCH)
        assert flag.params == {"fiscal_cp": "64000", "operational_cp": "66220"}

    def test_fiscal_fallback_never_mismatches(self, docs):
        docs.pop("proofs_of_address")
        docs.pop("bank_accounts")
        assert "ADDRESS_MISMATCH" not in _codes(_validate(**docs))


# ═══════════════════════════════════════════════════
# FRESHNESS
# ═══════════════════════════════════════════════════

class TestFreshnessFlags:

    def test_poa_91_days_stale(self, docs, cfe_basic):
        docs["proofs_of_address"] = [cfe_basic.model_copy(update={"date": "2024-03-31"})]
        flag = _find(_validate(**docs), FlagCode.POA_STALE)
        assert flag.params == {"age_days": 91, "threshold_days": 90}

    def test_poa_90_days_fresh(self, docs, cfe_basic):
        docs["proofs_of_address"] = [cfe_basic.model_copy(update={"date": "2024-04-01"})]
        assert "POA_STALE" not in _codes(_validate(**docs))

    def test_stale_sat(self, docs, sat_basic):
        docs["company_tax_profile"] = sat_basic.model_copy(update={"issue": sat_basic.issue.model_copy(
            update={"issue_date": "2023-01-01"})})
        assert "SAT_CONSTANCIA_STALE" in _codes(_validate(**docs))

    def test_undated_documents(self, docs, bank_basic):
        docs["bank_accounts"] = [bank_basic.model_copy(update={
            "statement_period_start": None, "statement_period_end": None})]
        flag = _find(_validate(**docs), FlagCode.DOCUMENT_DATE_UNAVAILABLE)
        assert flag.params["doc_type"] == "bank_statement"
        assert "BANK_STATEMENT_STALE" not in _codes(_validate(**docs))

    def test_missing_category_is_not_a_freshness_flag(self, docs):
        docs.pop("bank_accounts")
        codes = _codes(_validate(**docs))
        assert "MISSING_BANK_STATEMENT" in codes
        assert "DOCUMENT_DATE_UNAVAILABLE" not in codes


# ═══════════════════════════════════════════════════
# OWNERSHIP
# ═══════════════════════════════════════════════════

class TestOwnership:

    def test_no_ubo_above_threshold(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": f"Socio Numero {n}", "shares": 20} for n in ("Uno", "Dos", "Tres", "Cuatro", "Cinco")
        ])
        result = _validate(**docs)
        assert _codes(result) == ["UBO_MISSING"]
        assert "25%" in result.flags[0].message

    def test_zero_total_shares_indeterminate(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": "Ashish Punj", "shares": 0}, {"name": "María López García", "shares": 0},
        ])
        result = _validate(**docs)
        assert "UBO_INDETERMINATE" in _codes(result)
        assert "UBO_MISSING" not in _codes(result)

    def test_declared_equity_inconsistent_is_critical(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": "Ashish Punj", "percentage": 70}, {"name": "María López García", "percentage": 50},
        ])
        flag = _find(_validate(**docs), FlagCode.EQUITY_INCONSISTENT)
        assert flag.level == "critical"
        assert "120.00%" in flag.message

    def test_recomputed_equity_inconsistent_is_warning(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": "Ashish Punj", "shares": 600, "percentage": 70},
            {"name": "María López García", "shares": 400, "percentage": 50},
        ])
        flag = _find(_validate(**docs), FlagCode.EQUITY_INCONSISTENT)
        assert flag.level == "warning"
        assert "recomputed from share counts" in flag.message

    def test_equity_near_100(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, shareholders=[
            {"name": "Ashish Punj", "shares": 600, "percentage": 59.5},
            {"name": "María López García", "shares": 400, "percentage": 40},
        ])
        assert _find(_validate(**docs), FlagCode.EQUITY_NEAR_100).level == "info"


# ═══════════════════════════════════════════════════
# SIGNING AUTHORITY
# ═══════════════════════════════════════════════════

class TestSigningAuthority:

    def test_limited_rep_presenting_id(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, legal_representatives=[{
            "name": "Ashish Punj", "role": "Apoderado", "can_sign_contracts": True,
            "poder_scope": ["Poder especial limitado a pleitos y cobranzas"] + FULL_POWERS[1:],
        }])
        result = _validate(**docs)
        no_full = _find(result, FlagCode.NO_FULL_SIGNATORY)
        assert no_full.level == "warning"
        assert "1 limited" in no_full.message
        assert _find(result, FlagCode.REP_NOT_SIGNATORY).params["scope"] == "limited"

    def test_id_holder_not_a_representative(self, docs, fm2_basic):
        docs["representative_identity"] = fm2_basic.model_copy(update={"full_name": "ROBERTO SOSA"})
        flag = _find(_validate(**docs), FlagCode.REP_IDENTITY_NOT_VERIFIED)
        assert "does not match" in flag.message

    def test_ambiguous_representative(self, docs, acta_basic, fm2_basic):
        docs["company_identity"] = _acta_with(acta_basic, legal_representatives=[
            {"name": "Juan Perez Lopez", "role": "Apoderado", "can_sign_contracts": True, "poder_scope": FULL_POWERS},
            {"name": "Juan Perez Gomez", "role": "Apoderado", "can_sign_contracts": True, "poder_scope": FULL_POWERS},
        ])
        docs["representative_identity"] = fm2_basic.model_copy(update={"full_name": "JUAN PEREZ"})
        flag = _find(_validate(**docs), FlagCode.REP_IDENTITY_NOT_VERIFIED)
        assert "several" in flag.message

    def test_no_representatives(self, docs, acta_basic):
        docs["company_identity"] = _acta_with(acta_basic, legal_representatives=[])
        flag = _find(_validate(**docs), FlagCode.NO_FULL_SIGNATORY)
        assert "no legal representatives" in flag.message


# ═══════════════════════════════════════════════════
# IDENTITY DOCUMENTS
# ═══════════════════════════════════════════════════

class TestIdentityDocuments:

    def test_expired_fm2(self, docs, fm2_basic):
        docs["representative_identity"] = fm2_basic.model_copy(update={
            "document_type": "FM2", "expiry_date": "2024-01-01"})
        codes = _codes(_validate(**docs))
        assert "IMMIGRATION_DOC_EXPIRED" in codes
        assert "IMMIGRATION_CARD_OLD" in codes

    def test_expired_ine(self, docs):
        docs["representative_identity"] = ImmigrationProfile(
            full_name="PUNJ ASHISH", document_type="INE", expiry_date="2023-12-31")
        flag = _find(_validate(**docs), FlagCode.IDENTITY_DOC_EXPIRED)
        assert flag.message == "INE credential expired on 2023-12-31."

    def test_expired_passport(self, docs):
        docs["passport_identity"] = PassportIdentity(full_name="ASHISH PUNJ", expiry_date="2024-06-29")
        flag = _find(_validate(**docs), FlagCode.IDENTITY_DOC_EXPIRED)
        assert flag.params["doc_label"] == "Passport"

    def test_expiry_on_evaluation_day_is_valid(self, docs):
        docs["passport_identity"] = PassportIdentity(full_name="ASHISH PUNJ", expiry_date="2024-06-30")
        assert "IDENTITY_DOC_EXPIRED" not in _codes(_validate(**docs))

    def test_invalid_curp(self, docs, fm2_basic):
        docs["representative_identity"] = fm2_basic.model_copy(update={"curp": "PUAA800101"})
        assert _find(_validate(**docs), FlagCode.CURP_INVALID).level == "warning"


# ═══════════════════════════════════════════════════
# PERSONA FÍSICA
# ═══════════════════════════════════════════════════

@pytest.fixture
def pf_docs(fm2_basic, cfe_basic, bank_basic):
    sat = CompanyTaxProfile.model_validate({
        "rfc": "PUAA800101AB1",
        "razon_social": "ASHISH PUNJ",
        "tax_regime": "Régimen de las Personas Físicas con Actividades Empresariales y Profesionales",
        "status": "ACTIVO",
        "issue": {"issue_date": "2024-06-01"},
        "fiscal_address": cfe_basic.client_address.model_dump(),
    })
    return dict(
        company_tax_profile=sat,
        representative_identity=fm2_basic,
        proofs_of_address=[cfe_basic.model_copy(update={"client_name": "ASHISH PUNJ"})],
        bank_accounts=[bank_basic.model_copy(update={"account_holder_name": "Ashish Punj", "rfc": "PUAA800101AB1"})],
    )


class TestPersonaFisica:

    def test_detection(self, pf_docs):
        profile = build_kyc_profile("PF-1", **pf_docs)
        assert is_persona_fisica(profile) is True

    def test_detection_by_rfc_shape(self):
        profile = build_kyc_profile("PF-1", company_tax_profile=CompanyTaxProfile(rfc="PUAA800101AB1"))
        assert is_persona_fisica(profile) is True

    def test_moral_with_acta_not_detected(self, docs):
        assert is_persona_fisica(build_kyc_profile("C-1", **docs)) is False

    def test_clean_individual(self, pf_docs):
        result = _validate(**pf_docs)
        assert result.flags == []
        assert result.persona_fisica is True
        assert result.rules_applied == 10
        assert result.trust_level == "HIGH"

    def test_identity_mismatch(self, pf_docs, fm2_basic):
        pf_docs["representative_identity"] = fm2_basic.model_copy(update={"full_name": "ROBERTO SOSA"})
        assert "IDENTITY_MISMATCH" in _codes(_validate(**pf_docs))

    def test_missing_identity_is_critical(self, pf_docs):
        pf_docs.pop("representative_identity")
        result = _validate(**pf_docs)
        assert _find(result, FlagCode.MISSING_REP_IDENTITY).level == "critical"
        assert "MISSING_ACTA" not in _codes(result)


# ═══════════════════════════════════════════════════
# FAILURE ISOLATION
# ═══════════════════════════════════════════════════

class TestFailureIsolation:

    def test_check_exception_becomes_indeterminate(self, docs, monkeypatch):
        def boom(ctx):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(validator, "_CHECKS", [("Boom", boom, False)])
        result = _validate(**docs)
        assert _codes(result) == ["CHECK_INDETERMINATE"]
        assert result.flags[0].params == {"check": "Boom"}
        assert result.rules_applied == 1

    def test_resolver_exception_becomes_indeterminate(self, docs, monkeypatch):
        def broken(*args, **kwargs):
            raise ZeroDivisionError("division by zero")

        monkeypatch.setattr(validator, "resolve_ubo", broken)
        profile = build_kyc_profile("C-1", **docs)
        outputs = run_resolvers(profile, AS_OF)
        assert "ubo" in outputs.failed
        result = validate_profile(profile, as_of=AS_OF, outputs=outputs)
        assert _codes(result) == ["CHECK_INDETERMINATE", "CHECK_INDETERMINATE"]
        assert {f.params["check"] for f in result.flags} == {
            "Coverage: Foreign investment", "Ownership: Beneficial owners",
        }


# ═══════════════════════════════════════════════════
# SCORE
# ═══════════════════════════════════════════════════

class TestScore:

    @pytest.mark.parametrize("critical,warning,info", [
        (0, 0, 0), (0, 3, 1), (1, 0, 0), (2, 5, 3), (0, 20, 0),
    ])
    def test_adding_critical_never_raises_score(self, critical, warning, info):
        for coverage in (0.0, 0.6, 1.0):
            before = compute_score(coverage, critical, warning, info)
            after = compute_score(coverage, critical + 1, warning, info)
            assert after <= before

    def test_critical_ceiling(self):
        assert compute_score(1.0, 1, 0, 0) == 0.49
        assert trust_level(0.49, 1) == "CRITICAL"

    def test_clamped(self):
        assert compute_score(0.0, 0, 100, 0) == 0.0
        assert compute_score(1.0, 0, 0, 0) == 1.0

    def test_bands(self):
        assert trust_level(0.95, 0) == "HIGH"
        assert trust_level(0.90, 0) == "HIGH"
        assert trust_level(0.75, 0) == "MEDIUM"
        assert trust_level(0.5, 0) == "LOW"

    def test_policy_weights(self):
        policy = ValidationPolicy(score_warning_penalty=0.5)
        assert compute_score(1.0, 0, 1, 0, policy) == 0.5

    def test_warning_only_profile(self, docs, cfe_basic):
        docs["proofs_of_address"] = [cfe_basic.model_copy(update={"date": "2024-03-01"})]
        result = _validate(**docs)
        assert result.warning_count == 1
        assert result.score == 0.95
        assert result.trust_level == "HIGH"
