"""Extraction orchestrator: OCR, interpret, persist, match.

Strictly sequential per request. Each step fails in its own way:

- authorization and request validation fail before any external call
- OCR failure aborts with OcrUnavailable
- provider calls running past the request deadline abort with DeadlineExceeded
- too little OCR text is a normal NoTextDetected answer (success=False)
- interpretation never aborts, it degrades to empty fields
- persistence failure aborts with PersistenceFailed
- matching failure or timeout is logged and yields no suggestions

The request deadline covers the two provider calls only. Nothing is written
until both have returned, so a request abandoned at its deadline leaves no
partial extraction behind, and a saved extraction is always returned.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

from config import settings
from errors import (
    DeadlineExceeded,
    InvalidRequest,
    OcrUnavailable,
    PermissionDenied,
    PersistenceFailed,
    Unauthenticated,
)
from interpretation import interpret
from llm_client import LLMClient
from matching import Matcher
from models import ExtractedFields, ExtractionResult, ExtractWineResponse
from ocr_client import OcrClient, OcrServiceError, OcrServiceUnavailable
from stores import ExtractionRepository

logger = logging.getLogger(__name__)

NO_TEXT_MESSAGE = "No text detected in the image. Try a sharper photo of the label."

ALLOWED_REFERENCE_SCHEMES = {"http", "https", "gs"}


def authenticate(requester_id: str | None) -> str:
    if not requester_id or not requester_id.strip():
        raise Unauthenticated()
    return requester_id


def authorize(requester_id: str, owner_id: str) -> None:
    """Only the owner of a scope may extract into it."""
    if requester_id != owner_id:
        raise PermissionDenied()


def validate_request(image_reference: str, owner_id: str) -> None:
    if not owner_id or not owner_id.strip() or "/" in owner_id:
        raise InvalidRequest("Invalid request: owner id is missing or malformed")

    parsed = urlparse(image_reference or "")
    if parsed.scheme not in ALLOWED_REFERENCE_SCHEMES or not parsed.netloc:
        raise InvalidRequest("Invalid request: photo reference must be an absolute image URL")


async def extract_wine(
    image_reference: str,
    owner_id: str,
    requester_id: str | None,
    *,
    ocr_client: OcrClient,
    llm_client: LLMClient,
    repository: ExtractionRepository,
    matcher: Matcher,
    min_text_length: int | None = None,
    timeout: float | None = None,
    match_timeout: float | None = None,
) -> ExtractWineResponse:
    """Run the label pipeline for one photo.

    ``timeout`` bounds the provider calls and raises DeadlineExceeded.
    Persistence is never cancelled; matching gets ``match_timeout`` and
    degrades to no suggestions when it runs out.
    """
    start = time.monotonic()
    min_length = min_text_length if min_text_length is not None else settings.MIN_OCR_TEXT_LENGTH
    deadline = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
    match_deadline = match_timeout if match_timeout is not None else settings.MATCH_TIMEOUT_SECONDS

    requester_id = authenticate(requester_id)
    validate_request(image_reference, owner_id)
    authorize(requester_id, owner_id)

    # Privacy: log a truncated reference only, never image content
    logger.info("Starting label extraction: owner=%s photo=%s", owner_id, image_reference[:50])

    # Steps 1-2: provider calls, bounded by the request deadline
    try:
        label = await asyncio.wait_for(
            _read_label(image_reference, owner_id, ocr_client, llm_client, min_length),
            timeout=deadline,
        )
    except asyncio.TimeoutError as e:
        logger.error("Provider calls exceeded %.1fs deadline for owner=%s, abandoned", deadline, owner_id)
        raise DeadlineExceeded() from e

    if label is None:
        return ExtractWineResponse(success=False, error=NO_TEXT_MESSAGE)
    ocr_text, fields = label

    # Step 3: persist exactly once
    extraction = ExtractionResult(
        owner_id=owner_id,
        photo_reference=image_reference,
        raw_ocr_text=ocr_text,
        extracted_fields=fields,
        was_manually_edited=False,
        created_at=datetime.now(timezone.utc),
    )
    try:
        extraction_id = await repository.save(extraction)
    except Exception as e:
        logger.error("Saving extraction failed for owner=%s: %s", owner_id, e)
        raise PersistenceFailed() from e
    extraction = extraction.model_copy(update={"id": extraction_id})

    # Step 4: suggest existing wines; the saved extraction stands regardless
    try:
        suggested = await asyncio.wait_for(matcher.find_candidates(fields, owner_id), timeout=match_deadline)
    except asyncio.TimeoutError:
        logger.warning("Matching exceeded %.1fs for extraction %s, returning no suggestions", match_deadline, extraction_id)
        suggested = []
    except Exception:
        logger.exception("Matching failed for extraction %s, returning no suggestions", extraction_id)
        suggested = []

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Extraction completed: id=%s confidence=%.2f matches=%d in %dms",
        extraction_id,
        extraction.overall_confidence,
        len(suggested),
        elapsed_ms,
    )

    return ExtractWineResponse(
        success=True,
        extraction=extraction,
        suggested_matches=suggested,
    )


async def _read_label(
    image_reference: str,
    owner_id: str,
    ocr_client: OcrClient,
    llm_client: LLMClient,
    min_length: int,
) -> tuple[str, ExtractedFields] | None:
    """OCR then interpretation. None when the label carries too little text."""
    try:
        ocr = await ocr_client.detect_text(image_reference)
    except (OcrServiceUnavailable, OcrServiceError) as e:
        logger.error("OCR failed for owner=%s: %s", owner_id, e)
        raise OcrUnavailable() from e

    logger.info("OCR completed: %d chars, %d blocks", len(ocr.text), len(ocr.blocks))

    if len(ocr.text) < min_length:
        logger.info("No usable text detected (%d chars), stopping", len(ocr.text))
        return None

    # Never fatal, degrades to empty fields
    fields = await interpret(ocr.text, llm_client)
    logger.info("Interpretation completed: %d fields extracted", len(fields.present()))
    return ocr.text, fields
