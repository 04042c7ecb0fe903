"""FastAPI label brain service: wine label extraction and inventory matching.

Handles request authorization, store wiring and response shaping. OCR and
interpretation are delegated to the remote providers.
Privacy: images are passed by reference only; nothing about the image
content is logged or stored.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import settings
from errors import LabelPipelineError
from firestore_store import FirestoreClient, FirestoreExtractionRepository, FirestoreInventoryStore
from llm_client import LLMClient
from matching import LinearScanMatcher, Matcher
from models import ExtractWineRequest, ExtractWineResponse
from ocr_client import OcrClient
from pipeline import extract_wine
from stores import (
    ExtractionRepository,
    InMemoryExtractionRepository,
    InMemoryInventoryStore,
    InventoryStore,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_ocr_client: OcrClient | None = None
_llm_client: LLMClient | None = None
_store_client: FirestoreClient | None = None
_inventory: InventoryStore | None = None
_repository: ExtractionRepository | None = None
_matcher: Matcher | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create provider clients and stores on startup."""
    global _ocr_client, _llm_client, _store_client, _inventory, _repository, _matcher

    if not settings.VISION_API_KEY:
        logger.info("OCR provider not configured (VISION_API_KEY is empty), label extraction disabled")
    else:
        _ocr_client = OcrClient()

    _llm_client = LLMClient()
    if not _llm_client.configured:
        logger.warning("LLM_API_KEY is empty, every extraction will be degraded to manual entry")

    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory stores, inventory is empty and extractions are lost on restart")
        _inventory = InMemoryInventoryStore()
        _repository = InMemoryExtractionRepository()
    elif settings.STORE_BACKEND == "firestore" and settings.FIRESTORE_PROJECT_ID:
        _store_client = FirestoreClient()
        _inventory = FirestoreInventoryStore(_store_client)
        _repository = FirestoreExtractionRepository(_store_client)
        logger.info("Using Firestore project %s", settings.FIRESTORE_PROJECT_ID)
    else:
        logger.error(
            "No document store configured (STORE_BACKEND=%s, FIRESTORE_PROJECT_ID empty), label extraction disabled",
            settings.STORE_BACKEND,
        )

    if _inventory is not None:
        _matcher = LinearScanMatcher(_inventory)

    yield

    if _ocr_client is not None:
        await _ocr_client.close()
    if _llm_client is not None:
        await _llm_client.close()
    if _store_client is not None:
        await _store_client.close()


app = FastAPI(title="Cellar Label Brain", version="1.0.0", lifespan=lifespan)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


@app.exception_handler(LabelPipelineError)
async def pipeline_error_handler(request: Request, exc: LabelPipelineError):
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected malformed request: %d validation errors", len(exc.errors()))
    return _error_response(400, "Invalid request")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return _error_response(500, LabelPipelineError.user_message)


@app.post(
    "/api/v1/extract",
    response_model=ExtractWineResponse,
    response_model_exclude_none=True,
)
async def extract(
    body: ExtractWineRequest,
    x_authenticated_user: str | None = Header(default=None),
):
    """Extract a structured wine record from a label photo and suggest matches."""
    if _ocr_client is None or _llm_client is None or _repository is None or _matcher is None:
        return _error_response(503, "Label extraction is not available - OCR provider or store not configured")

    return await extract_wine(
        body.photo_reference,
        body.requester_id,
        x_authenticated_user,
        ocr_client=_ocr_client,
        llm_client=_llm_client,
        repository=_repository,
        matcher=_matcher,
    )


@app.get("/health")
async def health():
    """Return service status and collaborator reachability."""
    start = time.monotonic()

    store_status = "not_configured"
    store_latency_ms = 0
    if _inventory is not None:
        probe_start = time.monotonic()
        try:
            await _inventory.query_by_owner("_health", limit=1)
            store_status = "ok"
        except Exception as e:
            logger.warning("Inventory health probe failed: %s", e)
            store_status = "error"
        store_latency_ms = int((time.monotonic() - probe_start) * 1000)

    ocr_status = await _ocr_client.health() if _ocr_client is not None else "not_configured"
    llm_status = await _llm_client.health() if _llm_client is not None else "not_configured"

    return {
        "status": "ok" if store_status == "ok" and _ocr_client is not None else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.SERVICE_VERSION,
        "services": {
            "ocr": ocr_status,
            "llm": llm_status,
            "store": store_status,
        },
        "latency": {"store": store_latency_ms},
        "totalLatency": int((time.monotonic() - start) * 1000),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
