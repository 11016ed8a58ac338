"""Extraction audit: one structured log line per orchestrator run."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from .contracts import ExtractionOutcome

logger = logging.getLogger("transferscan.audit")


def image_digest(image: bytes | str) -> str:
    raw = image if isinstance(image, bytes) else image.encode()
    return hashlib.sha256(raw).hexdigest()


def log_extraction_run(
    outcome: ExtractionOutcome,
    *,
    image: bytes | str,
    store_raw: bool = False,
    extra_meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Log the run and return the logged record.

    PII: the image is always hashed and field values are omitted; the result
    fields are only included when *store_raw* is set (``SCAN_DEBUG_STORE_RAW``).
    """
    result = outcome.result
    record: dict[str, Any] = {
        "image_sha256": image_digest(image),
        "confidence": result.confidence,
        "extracted_fields": result.extracted_fields.model_dump(),
        **outcome.metadata.to_dict(),
    }

    if store_raw:
        record["result_raw"] = result.model_dump(exclude={"extracted_fields"})

    if extra_meta:
        record.update(extra_meta)

    logger.info("SCAN_EXTRACTION_RUN %s", json.dumps(record, default=str, sort_keys=True))
    return record
