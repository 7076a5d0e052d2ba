"""Profile builder: typed per-document payloads → one ``KycProfile``.

Pure assembly.  Addresses come from ``resolve_addresses`` (the founding
address is history only); every other field is a structural copy.
Validation lives in ``validator.py``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from kyc_engine.pipeline.resolvers.addresses import is_empty_address, resolve_addresses
from kyc_engine.pipeline.resolvers.freshness import bank_identity_date, bank_statement_date, proof_of_address_date
from kyc_engine.pipeline.schemas import (
    BankAccountProfile,
    BankIdentity,
    BoletaRpc,
    CompanyIdentity,
    CompanyTaxProfile,
    ForeignInvestmentConstancia,
    HistoricalAddress,
    ImmigrationProfile,
    KycProfile,
    NameAuthorization,
    PassportIdentity,
    ProofOfAddress,
    SreConvenio,
)

logger = logging.getLogger(__name__)


def build_kyc_profile(
    customer_id: str,
    company_identity: Optional[CompanyIdentity] = None,
    company_tax_profile: Optional[CompanyTaxProfile] = None,
    representative_identity: Optional[ImmigrationProfile] = None,
    passport_identity: Optional[PassportIdentity] = None,
    proofs_of_address: Optional[list[ProofOfAddress]] = None,
    bank_accounts: Optional[list[BankAccountProfile]] = None,
    bank_identity: Optional[BankIdentity] = None,
    boleta_rpc: Optional[BoletaRpc] = None,
    foreign_investment_constancias: Optional[list[ForeignInvestmentConstancia]] = None,
    sre_convenio: Optional[SreConvenio] = None,
    name_authorization: Optional[NameAuthorization] = None,
    last_updated_at: Optional[datetime] = None,
) -> KycProfile:
    """Assemble the aggregate profile for one customer.

    Simple document types take zero or one payload; proofs of address,
    bank accounts and foreign-investment constancias take any number, in
    the order given.
    """
    proofs_of_address = list(proofs_of_address or [])
    bank_accounts = list(bank_accounts or [])

    addresses = resolve_addresses(
        company_identity=company_identity,
        tax_profile=company_tax_profile,
        proofs_of_address=proofs_of_address,
        bank_accounts=bank_accounts,
        bank_identity=bank_identity,
    )

    # ── Historical addresses (append-only, input order) ──
    history: list[HistoricalAddress] = []
    if addresses.founding is not None:
        history.append(HistoricalAddress(
            source="acta", address=addresses.founding,
            date=company_identity.incorporation_date,
        ))
    if addresses.fiscal is not None:
        history.append(HistoricalAddress(
            source="sat", address=addresses.fiscal,
            date=company_tax_profile.issue.issue_date if company_tax_profile.issue else None,
        ))
    for poa in proofs_of_address:
        if not is_empty_address(poa.client_address):
            history.append(HistoricalAddress(
                source="proof_of_address", address=poa.client_address, date=proof_of_address_date(poa),
            ))
    for account in bank_accounts:
        if not is_empty_address(account.address_on_statement):
            history.append(HistoricalAddress(
                source="bank", address=account.address_on_statement, date=bank_statement_date(account),
            ))
    if bank_identity and not is_empty_address(bank_identity.address_on_file):
        history.append(HistoricalAddress(
            source="bank", address=bank_identity.address_on_file, date=bank_identity_date(bank_identity),
        ))

    profile = KycProfile(
        customer_id=customer_id,
        company_identity=company_identity,
        company_tax_profile=company_tax_profile,
        representative_identity=representative_identity,
        passport_identity=passport_identity,
        founding_address=addresses.founding,
        current_fiscal_address=addresses.fiscal,
        current_operational_address=addresses.operational,
        address_evidence=proofs_of_address,
        bank_accounts=bank_accounts,
        bank_identity=bank_identity,
        historical_addresses=history,
        boleta_rpc=boleta_rpc,
        foreign_investment_constancias=list(foreign_investment_constancias or []),
        sre_convenio=sre_convenio,
        name_authorization=name_authorization,
        last_updated_at=last_updated_at or datetime.now(timezone.utc),
    )
    logger.info(
        f"Profile builder: {customer_id} assembled "
        f"(acta={'yes' if company_identity else 'no'}, sat={'yes' if company_tax_profile else 'no'}, "
        f"poa={len(proofs_of_address)}, bank={len(bank_accounts)}, "
        f"operational via {addresses.operational_basis or 'none'})"
    )
    return profile
