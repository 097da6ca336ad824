"""Extraction package exports."""

from src.extraction.errors import ConfigurationError, ErrorKind, ExtractionError
from src.extraction.gemini_transport import FailureDecision, GeminiTransport, classify_failure
from src.extraction.manual_extractor import ManualExtractor
from src.extraction.models import (
    CropQualityAnalysis,
    ExtractedCropData,
    ExtractionRequest,
    Sender,
    SoilReading,
    TranscriptEntry,
)
from src.extraction.prompt_builder import PromptBuilder
from src.extraction.response_parser import ParseOutcome, ResponseParser, strict_parse

__all__ = [
    "ConfigurationError",
    "CropQualityAnalysis",
    "ErrorKind",
    "ExtractedCropData",
    "ExtractionError",
    "ExtractionRequest",
    "FailureDecision",
    "GeminiTransport",
    "ManualExtractor",
    "ParseOutcome",
    "PromptBuilder",
    "ResponseParser",
    "Sender",
    "SoilReading",
    "TranscriptEntry",
    "classify_failure",
    "strict_parse",
]
