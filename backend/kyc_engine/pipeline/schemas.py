"""Typed records for every document payload and engine output.

The extraction collaborator hands over loosely-typed JSON.  ``parse_payload()``
is the single schema-validated entry point: it picks the model for the
document type, turns empty-string sentinels into ``None`` and validates.
Past this boundary the engine only sees these models.

All models are plain records (JSON-serializable via ``model_dump``) with no
engine behaviour attached.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from kyc_engine.pipeline.errors import PayloadValidationError
from kyc_engine.pipeline.flags import FlagCode
from kyc_engine.pipeline.validators import normalize_empty_to_null


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _empty_strings_to_none(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalize_empty_to_null(data)
        return data


def _none_as_empty(value: Any) -> Any:
    return [] if value is None else value


# ═══════════════════════════════════════════════════
# DOCUMENT TYPES
# ═══════════════════════════════════════════════════

class DocumentType(str, Enum):
    ACTA = "acta"                                   # Acta Constitutiva / protocolization
    SAT_CONSTANCIA = "sat_constancia"               # Constancia de Situación Fiscal
    FM2 = "fm2"                                     # Residente card (FM2 / FM3 / Residente Permanente)
    INE = "ine"                                     # Credencial para votar
    PASSPORT = "passport"
    CFE = "cfe"                                     # CFE electricity bill
    TELMEX = "telmex"                               # Telmex phone bill
    PROOF_OF_ADDRESS = "proof_of_address"           # Any other utility bill
    BANK_IDENTITY_PAGE = "bank_identity_page"       # Carátula / identity sheet
    BANK_STATEMENT = "bank_statement"
    BOLETA_RPC = "boleta_rpc"                       # Registro Público de Comercio slip
    RNIE_CONSTANCIA = "rnie_constancia"             # Foreign-investment registration
    SRE_CONVENIO = "sre_convenio"                   # Foreigners' clause agreement
    AUTORIZACION_DENOMINACION = "autorizacion_denominacion"  # Name authorization


PROOF_OF_ADDRESS_TYPES = {DocumentType.CFE, DocumentType.TELMEX, DocumentType.PROOF_OF_ADDRESS}


# ═══════════════════════════════════════════════════
# SHARED
# ═══════════════════════════════════════════════════

class Address(_Record):
    street: Optional[str] = None
    ext_number: Optional[str] = None
    int_number: Optional[str] = None
    colonia: Optional[str] = None
    municipio: Optional[str] = None
    estado: Optional[str] = None
    cp: Optional[str] = None
    cross_streets: Optional[str] = None
    country: str = "MX"

    @field_validator("street", "ext_number", "int_number", "colonia", "municipio",
                     "estado", "cp", "cross_streets", mode="before")
    @classmethod
    def _numbers_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v)) if float(v).is_integer() else str(v)
        return v

    @field_validator("country", mode="before")
    @classmethod
    def _default_country(cls, v: Any) -> Any:
        return v or "MX"


# ═══════════════════════════════════════════════════
# ACTA CONSTITUTIVA
# ═══════════════════════════════════════════════════

class LegalRepresentative(_Record):
    name: str
    role: Optional[str] = None
    has_poder: Optional[bool] = None
    can_sign_contracts: Optional[bool] = None
    poder_scope: list[str] = Field(default_factory=list)
    joint_signature_required: Optional[bool] = None

    @field_validator("poder_scope", mode="before")
    @classmethod
    def _scope_list(cls, v: Any) -> Any:
        return _none_as_empty(v)


class Shareholder(_Record):
    name: str
    shares: Optional[float] = None
    percentage: Optional[float] = None
    share_class: Optional[str] = Field(default=None, alias="class")
    is_beneficial_owner: Optional[bool] = None
    nationality: Optional[str] = None


class Comisario(_Record):
    name: str
    tipo: Optional[str] = None        # PROPIETARIO | SUPLENTE


class NotaryInfo(_Record):
    name: Optional[str] = None
    notary_number: Optional[str] = None
    protocol_number: Optional[str] = None
    protocol_date: Optional[str] = None
    office_location: Optional[str] = None


class RegistryInfo(_Record):
    fme: Optional[str] = None
    nci: Optional[str] = None
    unique_doc_number: Optional[str] = None
    registration_city: Optional[str] = None
    registration_date: Optional[str] = None
    folio: Optional[str] = None


class GovernanceInfo(_Record):
    board_type: Optional[str] = None
    quorum_rules: Optional[str] = None
    voting_rights: Optional[str] = None
    share_transfer_rules: Optional[str] = None
    capital_rules: Optional[str] = None


class CompanyIdentity(_Record):
    razon_social: Optional[str] = None
    rfc: Optional[str] = None
    registro_mercantil: Optional[str] = None
    incorporation_date: Optional[str] = None
    founding_address: Optional[Address] = None
    legal_representatives: list[LegalRepresentative] = Field(default_factory=list)
    shareholders: list[Shareholder] = Field(default_factory=list)
    comisarios: list[Comisario] = Field(default_factory=list)
    corporate_purpose: list[str] = Field(default_factory=list)
    notary: NotaryInfo = Field(default_factory=NotaryInfo)
    registry: RegistryInfo = Field(default_factory=RegistryInfo)
    governance: GovernanceInfo = Field(default_factory=GovernanceInfo)
    modifications: list[str] = Field(default_factory=list)

    @field_validator("legal_representatives", "shareholders", "comisarios",
                     "corporate_purpose", "modifications", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> Any:
        return _none_as_empty(v)

    @field_validator("notary", "registry", "governance", mode="before")
    @classmethod
    def _blocks(cls, v: Any) -> Any:
        return {} if v is None else v


# ═══════════════════════════════════════════════════
# SAT CONSTANCIA
# ═══════════════════════════════════════════════════

class TaxIssue(_Record):
    place_municipio: Optional[str] = None
    place_estado: Optional[str] = None
    issue_date: Optional[str] = None


class EconomicActivity(_Record):
    order: Optional[int] = None
    description: str
    percentage: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class TaxObligation(_Record):
    description: str
    due_rule: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class CompanyTaxProfile(_Record):
    rfc: Optional[str] = None
    razon_social: Optional[str] = None
    commercial_name: Optional[str] = None
    capital_regime: Optional[str] = None
    tax_regime: Optional[str] = None
    start_of_operations: Optional[str] = None
    status: Optional[str] = None
    last_status_change: Optional[str] = None
    issue: Optional[TaxIssue] = None
    fiscal_address: Optional[Address] = None
    economic_activities: list[EconomicActivity] = Field(default_factory=list)
    tax_obligations: list[TaxObligation] = Field(default_factory=list)

    @field_validator("economic_activities", "tax_obligations", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> Any:
        return _none_as_empty(v)


# ═══════════════════════════════════════════════════
# IDENTITY DOCUMENTS
# ═══════════════════════════════════════════════════

class ImmigrationProfile(_Record):
    """FM2 / Residente card, also used for INE credentials."""
    full_name: Optional[str] = None
    nationality: Optional[str] = None
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    secondary_number: Optional[str] = None
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None     # None on Residente Permanente (indefinite)
    issuer_country: Optional[str] = None
    curp: Optional[str] = None
    sex: Optional[str] = None
    date_of_birth: Optional[str] = None
    issuing_office: Optional[str] = None


class PassportIdentity(_Record):
    full_name: Optional[str] = None
    nationality: Optional[str] = None
    document_type: Optional[str] = "PASSPORT"
    document_number: Optional[str] = None
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None
    issuer_country: Optional[str] = None
    date_of_birth: Optional[str] = None
    sex: Optional[str] = None
    issuing_authority: Optional[str] = None


# ═══════════════════════════════════════════════════
# ADDRESS & BANKING EVIDENCE
# ═══════════════════════════════════════════════════

class ServiceInfo(_Record):
    category: Optional[str] = None
    telephone_number: Optional[str] = None


class ProofOfAddress(_Record):
    document_type: Optional[str] = None          # cfe_receipt | telmex_bill | ...
    date: Optional[str] = None
    vendor_name: Optional[str] = None
    vendor_address: Optional[Address] = None
    vendor_tax_id: Optional[str] = None
    client_name: Optional[str] = None
    client_address: Optional[Address] = None
    client_tax_id: Optional[str] = None
    total_due: Optional[float] = None
    currency: Optional[str] = None
    due_date: Optional[str] = None
    billing_month: Optional[str] = None
    issue_datetime: Optional[str] = None
    service: Optional[ServiceInfo] = None
    account_reference: Optional[str] = None
    invoice_number: Optional[str] = None


class BankAccountProfile(_Record):
    bank_name: Optional[str] = None
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    account_type: Optional[str] = None
    clabe: Optional[str] = None
    currency: Optional[str] = None
    statement_period_start: Optional[str] = None
    statement_period_end: Optional[str] = None
    address_on_statement: Optional[Address] = None
    address_matches_operational: Optional[bool] = None   # False excludes it from operational resolution
    rfc: Optional[str] = None


class BankIdentity(_Record):
    bank_name: Optional[str] = None
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    clabe: Optional[str] = None
    currency: Optional[str] = None
    document_date: Optional[str] = None
    address_on_file: Optional[Address] = None
    rfc: Optional[str] = None


# ═══════════════════════════════════════════════════
# COMMERCIAL REGISTRY
# ═══════════════════════════════════════════════════

class BoletaRpc(_Record):
    fme: Optional[str] = None                    # Número Único de Documento / FME
    folio: Optional[str] = None
    libro: Optional[str] = None
    instrumento: Optional[str] = None
    fecha_inscripcion: Optional[str] = None
    razon_social: Optional[str] = None
    capital_social: Optional[float] = None


class ForeignInvestmentConstancia(_Record):
    folio_ingreso: Optional[str] = None
    fecha_recepcion: Optional[str] = None
    hora_recepcion: Optional[str] = None
    razon_social: Optional[str] = None
    instrumento: Optional[str] = None


class SreConvenio(_Record):
    folio: Optional[str] = None
    fecha: Optional[str] = None
    razon_social: Optional[str] = None


class NameAuthorization(_Record):
    clave_unica: Optional[str] = None
    denominacion: Optional[str] = None
    fecha_autorizacion: Optional[str] = None


# ═══════════════════════════════════════════════════
# AGGREGATE PROFILE
# ═══════════════════════════════════════════════════

class HistoricalAddress(_Record):
    source: Literal["acta", "sat", "proof_of_address", "bank", "other"]
    address: Address
    date: Optional[str] = None


class KycProfile(_Record):
    customer_id: str
    company_identity: Optional[CompanyIdentity] = None
    company_tax_profile: Optional[CompanyTaxProfile] = None
    representative_identity: Optional[ImmigrationProfile] = None
    passport_identity: Optional[PassportIdentity] = None
    founding_address: Optional[Address] = None
    current_fiscal_address: Optional[Address] = None
    current_operational_address: Optional[Address] = None
    address_evidence: list[ProofOfAddress] = Field(default_factory=list)
    bank_accounts: list[BankAccountProfile] = Field(default_factory=list)
    bank_identity: Optional[BankIdentity] = None
    historical_addresses: list[HistoricalAddress] = Field(default_factory=list)
    boleta_rpc: Optional[BoletaRpc] = None
    foreign_investment_constancias: list[ForeignInvestmentConstancia] = Field(default_factory=list)
    sre_convenio: Optional[SreConvenio] = None
    name_authorization: Optional[NameAuthorization] = None
    last_updated_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════
# VALIDATION OUTPUT
# ═══════════════════════════════════════════════════

FlagLevel = Literal["info", "warning", "critical"]


class KycValidationFlag(_Record):
    code: FlagCode
    level: FlagLevel
    message: str
    action_required: Optional[str] = None
    supporting_docs: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)


class KycValidationResult(_Record):
    customer_id: str
    score: float
    trust_level: Literal["HIGH", "MEDIUM", "LOW", "CRITICAL"]
    flags: list[KycValidationFlag] = Field(default_factory=list)
    critical_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    coverage: float = 0.0
    persona_fisica: bool = False
    rules_applied: int = 0
    generated_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════
# RUN BOUNDARY
# ═══════════════════════════════════════════════════

class KycDocument(_Record):
    id: str
    customer_id: str
    type: DocumentType
    file_url: Optional[str] = None
    extracted_at: Optional[datetime] = None
    extracted_payload: Optional[dict[str, Any]] = None
    source_name: Optional[str] = None
    is_original: Optional[bool] = None       # acta only: founding deed vs amendment


class KycRun(_Record):
    run_id: str
    customer_id: str
    created_at: datetime
    documents: list[KycDocument] = Field(default_factory=list)
    profile: Optional[KycProfile] = None
    validation: Optional[KycValidationResult] = None


# ═══════════════════════════════════════════════════
# PARSE STEP
# ═══════════════════════════════════════════════════

PAYLOAD_MODELS: dict[DocumentType, type[BaseModel]] = {
    DocumentType.ACTA: CompanyIdentity,
    DocumentType.SAT_CONSTANCIA: CompanyTaxProfile,
    DocumentType.FM2: ImmigrationProfile,
    DocumentType.INE: ImmigrationProfile,
    DocumentType.PASSPORT: PassportIdentity,
    DocumentType.CFE: ProofOfAddress,
    DocumentType.TELMEX: ProofOfAddress,
    DocumentType.PROOF_OF_ADDRESS: ProofOfAddress,
    DocumentType.BANK_IDENTITY_PAGE: BankIdentity,
    DocumentType.BANK_STATEMENT: BankAccountProfile,
    DocumentType.BOLETA_RPC: BoletaRpc,
    DocumentType.RNIE_CONSTANCIA: ForeignInvestmentConstancia,
    DocumentType.SRE_CONVENIO: SreConvenio,
    DocumentType.AUTORIZACION_DENOMINACION: NameAuthorization,
}

# Extractors sometimes wrap the payload in a single top-level key
_WRAPPER_KEYS = {
    DocumentType.ACTA: "company_identity",
    DocumentType.SAT_CONSTANCIA: "company_tax_profile",
    DocumentType.FM2: "immigration_profile",
    DocumentType.INE: "ine_identity",
    DocumentType.PASSPORT: "passport_identity",
    DocumentType.CFE: "proof_of_address",
    DocumentType.TELMEX: "proof_of_address",
    DocumentType.PROOF_OF_ADDRESS: "proof_of_address",
    DocumentType.BANK_IDENTITY_PAGE: "bank_account_profile",
    DocumentType.BANK_STATEMENT: "bank_account_profile",
}

_DEFAULT_POA_TYPES = {
    DocumentType.CFE: "cfe_receipt",
    DocumentType.TELMEX: "telmex_bill",
}


def parse_payload(doc_type: DocumentType | str, raw: Any, source_name: str | None = None) -> BaseModel:
    """Validate one extraction payload into its typed model.

    Raises:
        PayloadValidationError: unknown type, non-object payload or schema mismatch.
    """
    try:
        dtype = DocumentType(doc_type)
    except ValueError:
        raise PayloadValidationError(str(doc_type), "unknown document type", source_name)

    if not isinstance(raw, dict):
        raise PayloadValidationError(dtype.value, "payload must be a JSON object", source_name)

    wrapper = _WRAPPER_KEYS.get(dtype)
    if wrapper and len(raw) == 1 and isinstance(raw.get(wrapper), dict):
        raw = raw[wrapper]

    data = normalize_empty_to_null(raw)
    if dtype in _DEFAULT_POA_TYPES and not data.get("document_type"):
        data = {**data, "document_type": _DEFAULT_POA_TYPES[dtype]}
    if dtype == DocumentType.INE:
        data = {**data, "document_type": data.get("document_type") or "INE",
                "issuer_country": data.get("issuer_country") or "MX"}

    try:
        return PAYLOAD_MODELS[dtype].model_validate(data)
    except ValidationError as exc:
        raise PayloadValidationError(dtype.value, str(exc), source_name) from exc
