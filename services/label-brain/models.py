"""Pydantic models for the label extraction API and its collaborators."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from confidence import aggregate


class WineType(str, Enum):
    RED = "red"
    WHITE = "white"
    ROSE = "rosé"
    SPARKLING = "sparkling"
    DESSERT = "dessert"
    FORTIFIED = "fortified"


# Wire names of the extractable label fields, in prompt order
FIELD_NAMES: tuple[str, ...] = (
    "name",
    "producer",
    "vintage",
    "type",
    "region",
    "country",
    "alcoholContent",
    "grapes",
)


class ExtractedField(BaseModel):
    value: str
    confidence: float = Field(ge=0.0, le=1.0)


class ExtractedFields(BaseModel):
    """Label fields read by the language model.

    A field the model found no basis for is None, which is distinct from a
    field present with low confidence.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: ExtractedField | None = None
    producer: ExtractedField | None = None
    vintage: ExtractedField | None = None
    type: ExtractedField | None = None
    region: ExtractedField | None = None
    country: ExtractedField | None = None
    alcohol_content: ExtractedField | None = Field(default=None, alias="alcoholContent")
    grapes: ExtractedField | None = None

    def present(self) -> dict[str, ExtractedField]:
        """Return the populated fields keyed by wire name."""
        data = {
            "name": self.name,
            "producer": self.producer,
            "vintage": self.vintage,
            "type": self.type,
            "region": self.region,
            "country": self.country,
            "alcoholContent": self.alcohol_content,
            "grapes": self.grapes,
        }
        return {key: value for key, value in data.items() if value is not None}


class ExtractionResult(BaseModel):
    """One persisted pipeline run. overallConfidence is always derived."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    owner_id: str = Field(alias="ownerId")
    photo_reference: str = Field(alias="photoReference")
    raw_ocr_text: str = Field(default="", alias="rawOcrText")
    extracted_fields: ExtractedFields = Field(default_factory=ExtractedFields, alias="extractedFields")
    was_manually_edited: bool = Field(default=False, alias="wasManuallyEdited")
    created_at: datetime | None = Field(default=None, alias="createdAt")

    @computed_field(alias="overallConfidence")  # type: ignore[prop-decorator]
    @property
    def overall_confidence(self) -> float:
        return aggregate(self.extracted_fields.present())


class WineRecord(BaseModel):
    """Inventory wine as owned by the store. Read-only to the pipeline."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    producer: str | None = None
    vintage: int | None = None
    type: WineType = WineType.RED
    region: str | None = None
    country: str | None = None
    appellation: str | None = None
    grapes: list[str] = []
    alcohol: float | None = None
    created_by: str = Field(alias="createdBy")


class ExtractWineRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    photo_reference: str = Field(alias="photoReference")
    requester_id: str = Field(alias="requesterId")


class ExtractWineResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    extraction: ExtractionResult | None = None
    suggested_matches: list[WineRecord] | None = Field(default=None, alias="suggestedMatches")
    error: str | None = None


@dataclass(frozen=True)
class BoundingBox:
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class OcrBlock:
    text: str
    confidence: float
    bounds: BoundingBox


@dataclass(frozen=True)
class OcrResult:
    """Normalized text detection output. Empty text is a valid result."""

    text: str = ""
    confidence: float = 0.0
    blocks: list[OcrBlock] = field(default_factory=list)
