"""Shared data models for extraction modules."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SYSTEM_SENDERS = {"BOT", "SYSTEM", "ASSISTANT", "AGENT"}


class Sender(str, Enum):
    """Speaker of a transcript entry."""

    SYSTEM = "SYSTEM"
    PARTY = "PARTY"

    @classmethod
    def coerce(cls, value: Any) -> "Sender":
        """Map call-log sender labels ("BOT", "FARMER", ...) onto the two roles."""
        if isinstance(value, Sender):
            return value
        label = str(value or "").strip().upper()
        return cls.SYSTEM if label in _SYSTEM_SENDERS else cls.PARTY


class TranscriptEntry(BaseModel):
    """One line of a call transcript."""

    model_config = ConfigDict(frozen=True)

    sender: Sender
    message: str
    timestamp: str = ""

    @field_validator("sender", mode="before")
    @classmethod
    def _coerce_sender(cls, value: Any) -> Sender:
        return Sender.coerce(value)

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: Any) -> str:
        return "" if value is None else str(value)


Reading = Optional[Union[int, float, str]]


class SoilReading(BaseModel):
    """IoT soil sensor readings; every field is optional."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    temperature: Reading = None
    humidity: Reading = None
    soil_moisture: Reading = Field(default=None, alias="soilMoisture")
    moisture: Reading = None
    ldr: Reading = None
    gas: Reading = None
    rain: Reading = None
    received_at: str | None = Field(default=None, alias="receivedAt")
    ph: Reading = None
    nitrogen: Reading = None
    phosphorus: Reading = None
    potassium: Reading = None
    organic_matter: Reading = Field(default=None, alias="organicMatter")


class ExtractionRequest(BaseModel):
    """Rendered prompt plus the source text used by manual extraction."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    source_text: str = ""
    context: Optional[str] = None


CRITICAL_FIELDS = (
    "crop_type",
    "variety",
    "harvest_quantity",
    "sowing_date",
    "harvest_date",
    "price_per_kg",
)


class ExtractedCropData(BaseModel):
    """Structured crop record extracted from a call transcript.

    Every field is optional; ``None`` means the field was not mentioned.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    crop_type: Optional[str] = Field(default=None, alias="cropType")
    variety: Optional[str] = None
    harvest_quantity: Optional[int] = Field(default=None, alias="harvestQuantity")
    sowing_date: Optional[str] = Field(default=None, alias="sowingDate")
    harvest_date: Optional[str] = Field(default=None, alias="harvestDate")
    price_per_kg: Optional[float] = Field(default=None, alias="pricePerKg")
    certification: Optional[str] = None
    grading: Optional[str] = None
    lab_test: Optional[str] = Field(default=None, alias="labTest")
    freshness_duration: Optional[float] = Field(default=None, alias="freshnessDuration")
    farm_location: Optional[str] = Field(default=None, alias="farmLocation")
    farmer_name: Optional[str] = Field(default=None, alias="farmerName")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    def critical_field_count(self) -> int:
        """Number of critical fields carrying a non-empty value."""
        count = 0
        for name in CRITICAL_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            count += 1
        return count

    def is_empty(self) -> bool:
        return not self.to_payload(include_confidence=False)

    def to_payload(self, *, include_confidence: bool = True) -> Dict[str, Any]:
        """Return the camelCase payload with absent fields omitted."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        if not include_confidence:
            payload.pop("confidence", None)
        return payload


QualityLabel = Literal["Excellent", "Good", "Fair", "Poor"]


class CropQualityAnalysis(BaseModel):
    """Crop quality assessment derived from soil readings."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    quality_assessment: Optional[str] = Field(default=None, alias="qualityAssessment")
    quality_score: Optional[float] = Field(default=None, ge=0.0, le=100.0, alias="qualityScore")
    recommendations: List[str] = Field(default_factory=list)
    soil_recommendations: List[str] = Field(default_factory=list, alias="soilRecommendations")
    overall_assessment: Optional[str] = Field(default=None, alias="overallAssessment")
    expected_yield: Optional[str] = Field(default=None, alias="expectedYield")
    crop_quality: Optional[QualityLabel] = Field(default=None, alias="cropQuality")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
