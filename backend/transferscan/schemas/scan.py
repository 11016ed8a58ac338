from typing import Any, Optional

from pydantic import BaseModel, Field

from transferscan.services.extraction.contracts import ExtractedBankData


class ExtractionResponse(BaseModel):
    result: ExtractedBankData
    metadata: dict[str, Any]


class CorrectBankNameRequest(BaseModel):
    input: str = Field(..., min_length=1, max_length=200)


class CorrectBankNameResponse(BaseModel):
    input: str
    corrected: str


class BankOut(BaseModel):
    code: str
    name: str


class ScanStatsOut(BaseModel):
    corrector: dict[str, int]
    prompts: dict[str, Any]
    cache: dict[str, Any]
    registry_source: Optional[str] = None
