"""Scan endpoints: extract, confirm, correct bank names, cache lookup and bank list."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile

from transferscan.core.config import get_settings
from transferscan.core.dependencies import get_scan_services
from transferscan.schemas.scan import (
    BankOut,
    CorrectBankNameRequest,
    CorrectBankNameResponse,
    ExtractionResponse,
    ScanStatsOut,
)
from transferscan.services.extraction.contracts import ExtractedBankData
from transferscan.services.extraction.service import ScanServices

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024


def _ensure_scan_enabled() -> None:
    settings = get_settings()
    if not settings.enable_scan_api:
        raise HTTPException(404, "Not found")


router = APIRouter(dependencies=[Depends(_ensure_scan_enabled)])


@router.post("/scan/extract", response_model=ExtractionResponse)
async def extract_bank_details(
    file: UploadFile = File(...),
    known_bank_name: Optional[str] = Form(None),
    known_account_number: Optional[str] = Form(None),
    services: ScanServices = Depends(get_scan_services),
):
    content = await file.read()
    if not content:
        raise HTTPException(400, "Empty file")
    if len(content) > MAX_IMAGE_BYTES:
        raise HTTPException(413, "File too large")

    outcome = await services.orchestrator.extract_with_metadata(
        content,
        known_bank_name=known_bank_name or None,
        known_account_number=known_account_number or None,
    )
    return ExtractionResponse(result=outcome.result, metadata=outcome.metadata.to_dict())


@router.post("/scan/confirm", status_code=204)
async def confirm_extraction(
    payload: ExtractedBankData,
    services: ScanServices = Depends(get_scan_services),
):
    """User confirmed the pre-filled details; cache them and learn the bank."""
    await services.confirm(payload)
    return Response(status_code=204)


@router.post("/scan/correct-bank-name", response_model=CorrectBankNameResponse)
def correct_bank_name(
    payload: CorrectBankNameRequest,
    services: ScanServices = Depends(get_scan_services),
):
    return CorrectBankNameResponse(input=payload.input, corrected=services.corrector.correct(payload.input))


@router.get("/scan/cache", response_model=ExtractedBankData)
async def get_cached_extraction(
    account_number: str = Query(..., min_length=1),
    bank_name: str = Query(..., min_length=1),
    services: ScanServices = Depends(get_scan_services),
):
    cached = await services.cache.get(account_number, bank_name)
    if cached is None:
        raise HTTPException(404, "Not cached")
    return cached


@router.get("/scan/banks", response_model=list[BankOut])
def list_banks(services: ScanServices = Depends(get_scan_services)):
    return [BankOut(code=b.code, name=b.name) for b in services.registry.entries()]


@router.get("/scan/stats", response_model=ScanStatsOut)
async def scan_stats(services: ScanServices = Depends(get_scan_services)):
    return ScanStatsOut(
        corrector=services.corrector.stats(),
        prompts=services.prompts.stats(),
        cache=await services.cache.stats(),
        registry_source=services.registry.loaded_from,
    )
