"""Firestore-backed inventory store and extraction repository.

Talks to the Firestore REST API with httpx, using the same transport and
retry scaffolding as the provider clients. Wines live in the top-level
``wines`` collection keyed by ``createdBy``; extractions are appended to
``users/{uid}/extractions``.

Extraction ids are generated here and sent as ``documentId``, so a create
retried after a lost response cannot produce a second document.
"""

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError

from config import settings
from models import ExtractionResult, WineRecord
from provider_http import call_with_retry, post_json

logger = logging.getLogger(__name__)

WINES_COLLECTION = "wines"


class StoreUnavailable(Exception):
    """Document store is temporarily unavailable (retryable)."""


class StoreError(Exception):
    """Document store rejected the request or answered with an unexpected body."""


class FirestoreClient:
    """Minimal Firestore REST client: structured queries and document creates."""

    def __init__(
        self,
        base_url: str | None = None,
        project_id: str | None = None,
        database: str | None = None,
        access_token: str | None = None,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        retry_backoff: float | None = None,
    ):
        self._project_id = project_id if project_id is not None else settings.FIRESTORE_PROJECT_ID
        database = database or settings.FIRESTORE_DATABASE
        self._documents_path = f"/projects/{self._project_id}/databases/{database}/documents"
        self._retry_attempts = retry_attempts if retry_attempts is not None else settings.STORE_RETRY_ATTEMPTS
        self._retry_delay = retry_delay if retry_delay is not None else settings.STORE_RETRY_DELAY
        self._retry_backoff = retry_backoff if retry_backoff is not None else settings.STORE_RETRY_BACKOFF

        token = access_token if access_token is not None else settings.FIRESTORE_ACCESS_TOKEN
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        read_timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.STORE_CONNECT_TIMEOUT

        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.FIRESTORE_API_URL).rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=10.0,
                pool=10.0,
            ),
        )

    @property
    def configured(self) -> bool:
        return bool(self._project_id)

    async def close(self):
        await self._client.aclose()

    async def query_equal(self, collection: str, field_path: str, value: str, limit: int) -> list[dict]:
        """Documents of ``collection`` whose ``field_path`` equals ``value``.

        Each result is the decoded field map plus its document ``id``.
        """
        body = {
            "structuredQuery": {
                "from": [{"collectionId": collection}],
                "where": {
                    "fieldFilter": {
                        "field": {"fieldPath": field_path},
                        "op": "EQUAL",
                        "value": encode_value(value),
                    }
                },
                "limit": limit,
            }
        }
        rows = await self._post(f"{self._documents_path}:runQuery", json=body)
        if not isinstance(rows, list):
            raise StoreError("runQuery answered with a non-list body")

        documents = []
        for row in rows:
            # Rows without a document only carry readTime or skippedResults
            doc = row.get("document") if isinstance(row, dict) else None
            if not isinstance(doc, dict) or not isinstance(doc.get("name"), str):
                continue
            data = decode_fields(doc.get("fields") or {})
            data["id"] = doc["name"].rsplit("/", 1)[-1]
            documents.append(data)
        return documents

    async def create(self, collection_path: str, document_id: str, data: Mapping[str, Any]) -> str:
        body = {"fields": {k: encode_value(v) for k, v in data.items()}}
        await self._post(
            f"{self._documents_path}/{collection_path}",
            conflict_ok=True,
            params={"documentId": document_id},
            json=body,
        )
        return document_id

    async def _post(self, path: str, conflict_ok: bool = False, **kwargs: Any) -> Any:
        return await call_with_retry(
            lambda: post_json(
                self._client,
                path,
                unavailable=StoreUnavailable,
                error=StoreError,
                label="Document store",
                conflict_ok=conflict_ok,
                **kwargs,
            ),
            unavailable=StoreUnavailable,
            attempts=self._retry_attempts,
            delay=self._retry_delay,
            backoff=self._retry_backoff,
            label="Document store",
        )


class FirestoreInventoryStore:
    def __init__(self, client: FirestoreClient, collection: str = WINES_COLLECTION):
        self._client = client
        self._collection = collection

    async def query_by_owner(self, owner_id: str, limit: int) -> list[WineRecord]:
        documents = await self._client.query_equal(self._collection, "createdBy", owner_id, limit)

        records = []
        for data in documents:
            try:
                records.append(WineRecord.model_validate(data))
            except ValidationError as e:
                logger.warning("Skipping wine %s, %d invalid fields", data["id"], e.error_count())
        return records


class FirestoreExtractionRepository:
    def __init__(self, client: FirestoreClient):
        self._client = client

    async def save(self, extraction: ExtractionResult) -> str:
        data = extraction.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        extraction_id = uuid.uuid4().hex
        await self._client.create(f"users/{extraction.owner_id}/extractions", extraction_id, data)
        logger.debug("Stored extraction %s for owner %s", extraction_id, extraction.owner_id)
        return extraction_id


def encode_value(value: Any) -> dict:
    """Python value to a Firestore typed ``Value``."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": {str(k): encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store {type(value).__name__} in a document")


def decode_value(value: Any) -> Any:
    """Firestore typed ``Value`` to a Python value. Unknown kinds decode to None."""
    if not isinstance(value, dict):
        return None
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return value["booleanValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields") or {})
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values") or []]
    if "referenceValue" in value:
        return value["referenceValue"]
    return None


def decode_fields(fields: Mapping[str, Any]) -> dict:
    return {k: decode_value(v) for k, v in fields.items()}
