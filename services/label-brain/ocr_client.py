"""HTTP client for the text detection (OCR) provider.

Talks to the Google Cloud Vision ``images:annotate`` REST endpoint using
httpx, with tenacity retry and exponential backoff on 429/5xx responses and
connection errors. The image is passed by reference, never uploaded.
"""

import logging
from typing import Any

import httpx

from config import settings
from models import BoundingBox, OcrBlock, OcrResult
from provider_http import call_with_retry, post_json

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_CONFIDENCE = 0.5


class OcrServiceUnavailable(Exception):
    """OCR provider is temporarily unavailable (retryable: 429, 5xx, connection error)."""


class OcrServiceError(Exception):
    """OCR provider rejected the request (non-retryable)."""


class OcrClient:
    """Text detection client with retry and backoff."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        language_hints: list[str] | None = None,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        retry_backoff: float | None = None,
    ):
        self._base_url = (base_url or settings.VISION_API_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.VISION_API_KEY
        self._language_hints = list(language_hints or settings.OCR_LANGUAGE_HINTS)
        self._retry_attempts = retry_attempts if retry_attempts is not None else settings.OCR_RETRY_ATTEMPTS
        self._retry_delay = retry_delay if retry_delay is not None else settings.OCR_RETRY_DELAY
        self._retry_backoff = retry_backoff if retry_backoff is not None else settings.OCR_RETRY_BACKOFF

        read_timeout = timeout if timeout is not None else settings.OCR_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.OCR_CONNECT_TIMEOUT

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=30.0,
                pool=30.0,
            ),
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def close(self):
        await self._client.aclose()

    async def detect_text(self, image_reference: str) -> OcrResult:
        """Run text detection on the image behind ``image_reference``.

        Zero annotations is a valid result (empty text, confidence 0).
        Raises OcrServiceUnavailable (after retries) or OcrServiceError,
        including when a 200 body does not have the annotate shape.
        """
        payload = {
            "requests": [
                {
                    "image": {"source": {"imageUri": image_reference}},
                    "features": [{"type": "TEXT_DETECTION"}],
                    "imageContext": {"languageHints": self._language_hints},
                }
            ]
        }

        data = await self._annotate_with_retry(payload)
        if not isinstance(data, dict):
            raise _malformed("body is not an object")

        responses = data.get("responses") or [{}]
        if not isinstance(responses, list) or not isinstance(responses[0], dict):
            raise _malformed("responses is not a list of objects")
        first = responses[0]

        error = first.get("error")
        if error:
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                message = error["message"]
            else:
                message = "unknown provider error"
            logger.error("OCR provider returned an error: %s", message)
            raise OcrServiceError(message)

        annotations = first.get("textAnnotations") or []
        if not isinstance(annotations, list):
            raise _malformed("textAnnotations is not a list")
        return parse_annotations(annotations)

    async def _annotate_with_retry(self, payload: dict) -> Any:
        return await call_with_retry(
            lambda: self._send_annotate(payload),
            unavailable=OcrServiceUnavailable,
            attempts=self._retry_attempts,
            delay=self._retry_delay,
            backoff=self._retry_backoff,
            label="OCR provider",
        )

    async def _send_annotate(self, payload: dict) -> Any:
        """Send a single annotate request."""
        return await post_json(
            self._client,
            "/images:annotate",
            unavailable=OcrServiceUnavailable,
            error=OcrServiceError,
            label="OCR provider",
            params={"key": self._api_key},
            json=payload,
        )

    async def health(self) -> str:
        return "configured" if self.configured else "not_configured"


def parse_annotations(annotations: list[dict]) -> OcrResult:
    """Normalize provider annotations into an OcrResult.

    The first annotation is the full-document transcript, the rest are
    token blocks. Bounds come from polygon vertex 0 and the opposite vertex 2.
    Raises OcrServiceError when an annotation is not an object or carries
    a non-string description.
    """
    if not annotations:
        return OcrResult(text="", confidence=0.0, blocks=[])

    full_text = _description(annotations[0])

    blocks = []
    for ann in annotations[1:]:
        text = _description(ann)
        vertices = _vertices(ann)
        top_left = vertices[0] if len(vertices) > 0 else {}
        bottom_right = vertices[2] if len(vertices) > 2 else {}
        x0, y0 = _coord(top_left, "x"), _coord(top_left, "y")
        x2, y2 = _coord(bottom_right, "x"), _coord(bottom_right, "y")

        blocks.append(OcrBlock(
            text=text,
            confidence=_block_confidence(ann.get("confidence")),
            bounds=BoundingBox(x=x0, y=y0, width=x2 - x0, height=y2 - y0),
        ))

    if blocks:
        confidence = sum(b.confidence for b in blocks) / len(blocks)
    else:
        confidence = DEFAULT_BLOCK_CONFIDENCE

    return OcrResult(text=full_text, confidence=confidence, blocks=blocks)


def _description(ann: Any) -> str:
    if not isinstance(ann, dict):
        raise _malformed("annotation is not an object")
    description = ann.get("description")
    if description is None:
        return ""
    if not isinstance(description, str):
        raise _malformed("annotation description is not a string")
    return description


def _block_confidence(raw: Any) -> float:
    """Provider confidence when it sent a number, the default only when it did not."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return DEFAULT_BLOCK_CONFIDENCE
    return float(raw)


def _vertices(ann: dict) -> list[dict]:
    poly = ann.get("boundingPoly")
    vertices = poly.get("vertices") if isinstance(poly, dict) else None
    if not isinstance(vertices, list):
        return []
    return [v if isinstance(v, dict) else {} for v in vertices]


def _coord(vertex: dict, axis: str) -> int:
    # Vision omits zero coordinates
    value = vertex.get(axis, 0)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _malformed(reason: str) -> OcrServiceError:
    logger.error("OCR provider returned a malformed body: %s", reason)
    return OcrServiceError(f"OCR provider returned a malformed body: {reason}")
