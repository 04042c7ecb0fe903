"""Shared test fixtures for label brain tests."""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import OcrResult, WineRecord  # noqa: E402
from stores import InMemoryExtractionRepository, InMemoryInventoryStore  # noqa: E402

OWNER = "user-123"

BAROLO_OCR_TEXT = "BAROLO MONFORTINO GIACOMO CONTERNO 2016"


@pytest.fixture
def mock_barolo_response() -> str:
    """Mock model reply for a Barolo Monfortino label."""
    return json.dumps({
        "name": {"value": "Barolo Monfortino", "confidence": 0.95},
        "producer": {"value": "Giacomo Conterno", "confidence": 0.9},
        "vintage": {"value": "2016", "confidence": 0.98},
        "type": {"value": "red", "confidence": 0.95},
        "region": {"value": "Piemonte", "confidence": 0.85},
        "country": {"value": "Italia", "confidence": 0.9},
    })


@pytest.fixture
def mock_markdown_response() -> str:
    """Mock model reply wrapped in a markdown code fence."""
    return '```json\n{"name": {"value": "Chianti Classico", "confidence": 0.8}}\n```'


@pytest.fixture
def mock_preamble_response() -> str:
    """Mock model reply with text before the JSON."""
    return (
        'Here is the extracted data:\n\n'
        '{"name": {"value": "Chianti Classico", "confidence": 0.8}, '
        '"producer": {"value": "Antinori", "confidence": 0.6}}'
    )


@pytest.fixture
def barolo_annotations() -> list[dict]:
    """Text annotations as returned by the OCR provider."""
    return [
        {
            "locale": "it",
            "description": BAROLO_OCR_TEXT,
            "boundingPoly": {"vertices": [{"x": 10, "y": 20}, {"x": 300, "y": 20}, {"x": 300, "y": 90}, {"x": 10, "y": 90}]},
        },
        {
            "description": "BAROLO",
            "confidence": 0.97,
            "boundingPoly": {"vertices": [{"x": 10, "y": 20}, {"x": 80, "y": 20}, {"x": 80, "y": 40}, {"x": 10, "y": 40}]},
        },
        {
            "description": "2016",
            "boundingPoly": {"vertices": [{"x": 250, "y": 70}, {"x": 300, "y": 70}, {"x": 300, "y": 90}, {"x": 250, "y": 90}]},
        },
    ]


@pytest.fixture
def barolo_record() -> WineRecord:
    return WineRecord(
        id="wine-1",
        name="Barolo Monfortino",
        producer="Giacomo Conterno",
        vintage=2016,
        type="red",
        region="Piemonte",
        created_by=OWNER,
    )


@pytest.fixture
def inventory(barolo_record: WineRecord) -> InMemoryInventoryStore:
    return InMemoryInventoryStore([
        WineRecord(id="wine-0", name="Chianti Classico Riserva", producer="Antinori", vintage=2019, created_by=OWNER),
        barolo_record,
        WineRecord(id="wine-2", name="Barolo", producer="Bartolo Mascarello", vintage=2015, created_by=OWNER),
        WineRecord(id="wine-9", name="Barolo Monfortino", producer="Giacomo Conterno", vintage=2016, created_by="someone-else"),
    ])


@pytest.fixture
def repository() -> InMemoryExtractionRepository:
    return InMemoryExtractionRepository()


@pytest.fixture
def ocr_client() -> MagicMock:
    """OCR client stub returning the Barolo transcript."""
    client = MagicMock()
    client.detect_text = AsyncMock(return_value=OcrResult(text=BAROLO_OCR_TEXT, confidence=0.9, blocks=[]))
    return client


@pytest.fixture
def llm_client(mock_barolo_response: str) -> MagicMock:
    """Language model client stub returning a well-formed reply."""
    client = MagicMock()
    client.complete = AsyncMock(return_value=mock_barolo_response)
    return client
