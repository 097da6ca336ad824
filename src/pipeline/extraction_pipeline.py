"""End-to-end crop data extraction pipeline.

This module orchestrates the extraction workflow:
1. Prompt rendering (transcript or soil readings)
2. Throttled, retried call to the Gemini generateContent API
3. Response parsing (strict JSON, then manual regex extraction)
4. Normalization into typed records

Results are returned to the caller; nothing is persisted here.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any, Dict, Iterable, Optional

from loguru import logger

from src.extraction.errors import ErrorKind, ExtractionError
from src.extraction.gemini_transport import GeminiTransport
from src.extraction.manual_extractor import QUALITY_FIELD_RULES, ManualExtractor
from src.extraction.models import (
    CropQualityAnalysis,
    ExtractedCropData,
    ExtractionRequest,
    SoilReading,
)
from src.extraction.prompt_builder import PromptBuilder
from src.extraction.response_parser import ResponseParser, present_fields
from src.normalization.record_normalizer import RecordNormalizer
from src.normalization.vocabulary import CropVocabulary
from src.utils.config import Config
from src.utils.throttle import RequestThrottler

QUALITY_LIST_FIELDS = ("recommendations", "soilRecommendations")


class CropExtractionPipeline:
    """Turn transcripts and soil readings into typed records via Gemini."""

    def __init__(
        self,
        config: Config,
        *,
        throttler: Optional[RequestThrottler] = None,
        transport: Optional[GeminiTransport] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        parser: Optional[ResponseParser] = None,
        quality_parser: Optional[ResponseParser] = None,
        normalizer: Optional[RecordNormalizer] = None,
    ) -> None:
        config.validate_config()
        self.config = config

        vocab_file = config.extraction.vocabulary_file
        vocabulary = CropVocabulary.from_yaml(
            config.extraction.resolve_path(vocab_file) if vocab_file else None
        )

        if throttler is None:
            throttler = (
                transport.throttler
                if transport is not None
                else RequestThrottler(config.gemini.min_interval_seconds)
            )
        self.throttler = throttler
        self.transport = transport or GeminiTransport(config.gemini, self.throttler)
        self.prompt_builder = prompt_builder or PromptBuilder(
            config.extraction.resolve_path(config.extraction.prompts_path),
            crop_types=vocabulary.crop_type_labels(),
        )
        self.parser = parser or ResponseParser()
        self.quality_parser = quality_parser or ResponseParser(
            ManualExtractor(QUALITY_FIELD_RULES)
        )
        self.normalizer = normalizer or RecordNormalizer(
            vocabulary,
            dayfirst=config.extraction.date_dayfirst,
            narrative_lines=config.extraction.narrative_lines,
        )

        logger.info(
            "Initialized CropExtractionPipeline",
            model=config.gemini.model,
            min_interval=self.throttler.min_interval,
        )

    async def __aenter__(self) -> "CropExtractionPipeline":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    # -----------------------
    # Public API
    # -----------------------
    async def extract_from_transcript(
        self,
        transcript: Iterable[Any],
        call_summary: Optional[str] = None,
    ) -> ExtractedCropData:
        """Extract a crop record from a farmer call transcript.

        Raises:
            ExtractionError: On quota exhaustion, exhausted retries, transport or
                network failure. Malformed model output never raises.
        """
        request = self.prompt_builder.build_crop_extraction(transcript, call_summary)
        logger.info(
            "Sending transcript to Gemini for extraction",
            transcript_chars=len(request.source_text),
        )
        candidate = await self._run(request, self.parser)
        record = self.normalizer.normalize(candidate)

        if record.is_empty():
            logger.warning("Extraction produced an empty record")
        else:
            logger.info(
                "Extracted crop data",
                fields=sorted(record.to_payload(include_confidence=False)),
                confidence=record.confidence,
            )
        return record

    async def analyze_soil_quality(
        self,
        reading: SoilReading | Dict[str, Any],
        crop_type: Optional[str] = None,
        variety: Optional[str] = None,
    ) -> CropQualityAnalysis:
        """Assess expected crop quality from soil sensor readings."""
        request = self.prompt_builder.build_soil_quality_analysis(
            reading,
            crop_type,
            variety,
            narrative_lines=self.config.extraction.narrative_lines,
        )
        logger.info("Sending soil data to Gemini for crop quality analysis")
        candidate = await self._run(request, self.quality_parser, QUALITY_LIST_FIELDS)
        analysis = self.normalizer.normalize_quality(candidate)
        logger.info(
            "Crop quality analysis complete",
            score=analysis.quality_score,
            quality=analysis.crop_quality,
        )
        return analysis

    # -----------------------
    # Internals
    # -----------------------
    async def _run(
        self,
        request: ExtractionRequest,
        parser: ResponseParser,
        list_fields: tuple[str, ...] = (),
    ) -> Dict[str, Any]:
        raw = await self.transport.send(request.prompt)
        try:
            candidate = parser.parse(raw, request.source_text, list_fields=list_fields)
        except ExtractionError as exc:
            if exc.kind is not ErrorKind.EMPTY_RESPONSE:
                raise
            logger.warning("No text in Gemini response; extracting from source text only")
            candidate = parser.fallback(request.source_text, list_fields=list_fields)

        logger.debug("Candidate fields", fields=present_fields(candidate))
        return candidate


def create_pipeline(config: Config) -> CropExtractionPipeline:
    return CropExtractionPipeline(config)
