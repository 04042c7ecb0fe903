"""Inventory and extraction storage collaborators.

The pipeline only reads the inventory and only appends extractions. The
in-memory implementations back the tests and opt-in local runs; the
Firestore adapter in firestore_store implements the same two protocols.
"""

import logging
import uuid
from typing import Protocol

from models import ExtractionResult, WineRecord

logger = logging.getLogger(__name__)


class InventoryStore(Protocol):
    async def query_by_owner(self, owner_id: str, limit: int) -> list[WineRecord]: ...


class ExtractionRepository(Protocol):
    async def save(self, extraction: ExtractionResult) -> str: ...


class InMemoryInventoryStore:
    """Wine records keyed by creator, in insertion order."""

    def __init__(self, records: list[WineRecord] | None = None):
        self._records: list[WineRecord] = list(records or [])

    def add(self, record: WineRecord) -> None:
        self._records.append(record)

    async def query_by_owner(self, owner_id: str, limit: int) -> list[WineRecord]:
        owned = [r for r in self._records if r.created_by == owner_id]
        return owned[:limit]


class InMemoryExtractionRepository:
    """Append-only extraction log. Ids are random UUID hex strings."""

    def __init__(self):
        self._items: dict[str, ExtractionResult] = {}

    async def save(self, extraction: ExtractionResult) -> str:
        extraction_id = uuid.uuid4().hex
        self._items[extraction_id] = extraction.model_copy(update={"id": extraction_id})
        logger.debug("Stored extraction %s for owner %s", extraction_id, extraction.owner_id)
        return extraction_id

    def get(self, extraction_id: str) -> ExtractionResult | None:
        return self._items.get(extraction_id)

    def __len__(self) -> int:
        return len(self._items)
