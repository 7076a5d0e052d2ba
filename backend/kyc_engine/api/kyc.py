"""KYC endpoints: profile assembly, validation, trace, merge and run processing."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from kyc_engine.pipeline.errors import MergeInputError, PayloadValidationError
from kyc_engine.pipeline.merger import ActaExtraction, merge_modifications
from kyc_engine.pipeline.orchestrator import build_profile_from_documents, process_run
from kyc_engine.pipeline.schemas import KycDocument, KycProfile, KycRun
from kyc_engine.pipeline.trace import build_trace
from kyc_engine.pipeline.validator import run_resolvers, validate_profile

router = APIRouter()
logger = logging.getLogger(__name__)


class ProfileRequest(BaseModel):
    customer_id: str
    documents: list[KycDocument] = Field(default_factory=list)


class ProfileCheckRequest(BaseModel):
    profile: KycProfile
    as_of: Optional[str] = None          # YYYY-MM-DD; default today (UTC)


class MergeRequest(BaseModel):
    actas: list[ActaExtraction]


class ProcessRunRequest(BaseModel):
    run: KycRun
    as_of: Optional[str] = None


def _unprocessable(exc: Exception) -> HTTPException:
    logger.warning(f"Rejected request: {exc}")
    return HTTPException(status_code=422, detail=str(exc))


@router.post("/profile")
async def build_profile(request: ProfileRequest):
    """Assemble a KycProfile from extracted documents (merging Acta amendments)."""
    try:
        profile, merge_result = build_profile_from_documents(request.customer_id, request.documents)
    except PayloadValidationError as exc:
        raise _unprocessable(exc)
    return {
        "profile": profile.model_dump(mode="json"),
        "merge": merge_result.model_dump(mode="json") if merge_result else None,
    }


@router.post("/validate")
async def validate(request: ProfileCheckRequest):
    """Score a profile and return its flags."""
    try:
        result = validate_profile(request.profile, as_of=request.as_of)
    except ValueError as exc:
        raise _unprocessable(exc)
    return result.model_dump(mode="json")


@router.post("/trace")
async def trace(request: ProfileCheckRequest):
    """Evidence behind the validator's verdicts (ownership, powers, addresses, freshness)."""
    try:
        outputs = run_resolvers(request.profile, as_of=request.as_of)
    except ValueError as exc:
        raise _unprocessable(exc)
    return build_trace(request.profile, outputs=outputs).to_dict()


@router.post("/merge")
async def merge(request: MergeRequest):
    """Fold an original Acta and its amendments into the current corporate state."""
    try:
        result = merge_modifications(request.actas)
    except MergeInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return result.model_dump(mode="json")


@router.post("/runs/process")
async def process(request: ProcessRunRequest):
    """Process a fully extracted run: profile, validation and trace."""
    try:
        outcome = process_run(request.run, as_of=request.as_of)
    except PayloadValidationError as exc:
        raise _unprocessable(exc)
    except MergeInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ValueError as exc:
        raise _unprocessable(exc)
    return {
        "run": outcome.run.model_dump(mode="json"),
        "trace": outcome.trace.to_dict(),
        "merge": outcome.merge_result.model_dump(mode="json") if outcome.merge_result else None,
    }
