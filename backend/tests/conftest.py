"""Shared fixtures for the KYC engine test suite."""

import pytest
from datetime import date

from kyc_engine.pipeline.schemas import (
    Address,
    BankAccountProfile,
    CompanyIdentity,
    CompanyTaxProfile,
    ImmigrationProfile,
    ProofOfAddress,
)

AS_OF = date(2024, 6, 30)

FULL_POWERS = [
    "Poder general para pleitos y cobranzas",
    "Poder general para actos de administración",
    "Poder general para actos de dominio",
    "Otorgar, suscribir y endosar títulos de crédito",
]


# ═══════════════════════════════════════════════════
# Typed payload fixtures (one clean persona moral)
# ═══════════════════════════════════════════════════

@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def acta_basic():
    """Acta: two Mexican shareholders 60/40, one full apoderado, one comisario."""
    return CompanyIdentity.model_validate({
        "razon_social": "COMERCIALIZADORA DEL NORTE, S.A. DE C.V.",
        "rfc": "CNO150101AB1",
        "incorporation_date": "2015-01-01",
        "founding_address": {"municipio": "Monterrey", "estado": "Nuevo León"},
        "legal_representatives": [
            {
                "name": "Ashish Punj",
                "role": "Apoderado General",
                "can_sign_contracts": True,
                "poder_scope": FULL_POWERS,
            },
        ],
        "shareholders": [
            {"name": "Ashish Punj", "shares": 600, "percentage": 60, "nationality": "Mexicana"},
            {"name": "María López García", "shares": 400, "percentage": 40, "nationality": "Mexicana"},
        ],
        "comisarios": [{"name": "Carlos Ruiz Torres", "tipo": "PROPIETARIO"}],
        "registry": {"fme": "N-2015001234"},
    })


@pytest.fixture
def sat_basic():
    return CompanyTaxProfile.model_validate({
        "rfc": "CNO150101AB1",
        "razon_social": "COMERCIALIZADORA DEL NORTE",
        "capital_regime": "SOCIEDAD ANONIMA DE CAPITAL VARIABLE",
        "tax_regime": "Régimen General de Ley Personas Morales",
        "status": "ACTIVO",
        "issue": {"place_municipio": "Monterrey", "place_estado": "Nuevo León", "issue_date": "2024-06-01"},
        "fiscal_address": {
            "street": "Av. Constitución", "ext_number": "100", "colonia": "Centro",
            "municipio": "Monterrey", "estado": "Nuevo León", "cp": "64000",
        },
    })


@pytest.fixture
def fm2_basic():
    return ImmigrationProfile.model_validate({
        "full_name": "PUNJ ASHISH",
        "nationality": "INDIA",
        "document_type": "RESIDENTE PERMANENTE",
        "document_number": "123456789",
        "curp": "PUAA800101HNELSS09",
        "issuer_country": "MX",
    })


@pytest.fixture
def cfe_basic():
    return ProofOfAddress.model_validate({
        "document_type": "cfe_receipt",
        "date": "2024-06-10",
        "vendor_name": "CFE Suministrador de Servicios Básicos",
        "client_name": "COMERCIALIZADORA DEL NORTE SA DE CV",
        "client_address": {
            "street": "Av. Constitución", "ext_number": "100", "colonia": "Centro",
            "municipio": "Monterrey", "estado": "Nuevo León", "cp": "64000",
        },
    })


@pytest.fixture
def bank_basic():
    return BankAccountProfile.model_validate({
        "bank_name": "BBVA México",
        "account_holder_name": "Comercializadora del Norte SA de CV",
        "account_number": "0123456789",
        "clabe": "012580001234567890",
        "currency": "MXN",
        "statement_period_start": "2024-05-01",
        "statement_period_end": "2024-05-31",
        "address_on_statement": {"street": "Av. Constitución", "ext_number": "100", "cp": "64000"},
        "rfc": "CNO150101AB1",
    })


@pytest.fixture
def address_a():
    return Address(street="Calle Uno", ext_number="1", colonia="Centro", municipio="Monterrey", cp="64000")


@pytest.fixture
def address_b():
    return Address(street="Calle Dos", ext_number="2", colonia="Del Valle", municipio="San Pedro", cp="66220")
