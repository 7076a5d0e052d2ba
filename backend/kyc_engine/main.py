"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kyc_engine.api import kyc
from kyc_engine.config import CORS_ORIGINS, TRACE_ENABLED

logger = logging.getLogger(__name__)

app = FastAPI(
    title="KYC Validation Engine",
    description="Deterministic KYC profile assembly and validation for Mexican companies",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(kyc.router, prefix="/api/kyc", tags=["KYC"])

if TRACE_ENABLED:
    logger.info("KYC trace logging enabled (KYC_TRACE=1)")


@app.get("/api/health")
async def health():
    return {"status": "operational", "platform": "KYC Validation Engine"}
