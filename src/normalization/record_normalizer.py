"""Canonicalize candidate fields into typed extraction records."""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from dateutil import parser as date_parser
from loguru import logger

from src.extraction.models import CropQualityAnalysis, ExtractedCropData
from src.normalization.vocabulary import CropVocabulary

_CANONICAL_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_YEAR_FIRST_RE = re.compile(r"^\s*\d{4}[-/.]")
_QUALITY_LABELS = ("Excellent", "Good", "Fair", "Poor")

# camelCase (model output) -> snake_case (record field)
_CROP_FIELD_ALIASES = {
    name: (field.alias or name) for name, field in ExtractedCropData.model_fields.items()
}
_QUALITY_FIELD_ALIASES = {
    name: (field.alias or name) for name, field in CropQualityAnalysis.model_fields.items()
}


def quality_label(score: float) -> str:
    """Map a 0-100 score onto Excellent/Good/Fair/Poor."""
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Poor"


def trim_narrative(text: str, max_lines: int) -> str:
    """Drop blank lines and keep at most ``max_lines``; never pads."""
    lines = [line.strip() for line in str(text).splitlines() if line.strip()]
    if len(lines) < max_lines:
        logger.warning(f"Narrative has {len(lines)} line(s), expected {max_lines}; using as-is")
    return "\n".join(lines[:max_lines])


def default_confidence(critical_count: int) -> float:
    return round(min(0.5 + 0.1 * critical_count, 0.95), 2)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_float(value: Any) -> Optional[float]:
    """Coerce model output to a float; accepts "10,000" and "₹45"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = re.sub(r"[,\s₹]", "", str(value))
        match = re.match(r"^-?\d+(?:\.\d+)?", cleaned)
        if not match:
            return None
        number = float(match.group(0))
    return number if math.isfinite(number) else None


def _pick(candidate: Mapping[str, Any], name: str, alias: str) -> Any:
    if alias in candidate and candidate[alias] is not None:
        return candidate[alias]
    return candidate.get(name)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


class RecordNormalizer:
    """Normalize categories, quantities, dates, scores, and narrative fields."""

    def __init__(
        self,
        vocabulary: Optional[CropVocabulary] = None,
        *,
        dayfirst: bool = True,
        narrative_lines: int = 5,
        reference_date: Optional[date] = None,
    ) -> None:
        self.vocabulary = vocabulary or CropVocabulary()
        self.dayfirst = dayfirst
        self.narrative_lines = narrative_lines
        self.reference_date = reference_date

    # -----------------------
    # Crop record
    # -----------------------
    def normalize(self, candidate: Mapping[str, Any]) -> ExtractedCropData:
        values: Dict[str, Any] = {
            name: _pick(candidate, name, alias) for name, alias in _CROP_FIELD_ALIASES.items()
        }

        for name in (
            "crop_type",
            "variety",
            "sowing_date",
            "harvest_date",
            "certification",
            "grading",
            "lab_test",
            "farm_location",
            "farmer_name",
        ):
            values[name] = _clean_text(values[name])

        values["crop_type"] = self.normalize_crop_type(values["crop_type"])
        variety, implied_crop = self.normalize_variety(values["variety"])
        values["variety"] = variety
        if implied_crop and not values["crop_type"]:
            values["crop_type"] = implied_crop

        values["harvest_quantity"] = self.normalize_quantity(values["harvest_quantity"])
        values["price_per_kg"] = to_float(values["price_per_kg"])
        values["freshness_duration"] = to_float(values["freshness_duration"])
        values["sowing_date"] = self.normalize_date(values["sowing_date"])
        values["harvest_date"] = self.normalize_date(values["harvest_date"])

        confidence = to_float(values["confidence"])
        values["confidence"] = None if confidence is None else max(0.0, min(confidence, 1.0))

        record = ExtractedCropData(**values)
        if record.confidence is None:
            record.confidence = default_confidence(record.critical_field_count())
        return record

    def normalize_crop_type(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        term = self.vocabulary.match_crop_type(value)
        return term.canonical if term else value

    def normalize_variety(self, value: Optional[str]) -> tuple[Optional[str], Optional[str]]:
        """Return (variety, implied crop type)."""
        if not value:
            return None, None
        term = self.vocabulary.match_variety(value)
        if term is None:
            return value, None
        return term.canonical, term.implies_crop

    def normalize_quantity(self, value: Any) -> Optional[int]:
        number = to_float(value)
        if number is None:
            if value not in (None, ""):
                logger.warning("Dropping non-numeric quantity", value=str(value))
            return None
        return round_half_up(number)

    def normalize_date(self, value: Optional[str]) -> Optional[str]:
        """Reformat to YYYY-MM-DD when parseable; otherwise keep the original text."""
        if not value:
            return None
        text = value.strip()
        if _CANONICAL_DATE_RE.fullmatch(text):
            try:
                return date.fromisoformat(text).isoformat()
            except ValueError:
                logger.warning("Impossible calendar date; keeping original", value=value)
                return value

        translated = self.vocabulary.translate_months(text)
        reference = self.reference_date or date.today()
        default = datetime(reference.year, 1, 1)
        # "2024/1/7" is year-month-day regardless of the day-first setting.
        yearfirst = bool(_YEAR_FIRST_RE.match(translated))
        try:
            parsed = date_parser.parse(
                translated,
                dayfirst=self.dayfirst and not yearfirst,
                yearfirst=yearfirst,
                default=default,
            )
        except (ValueError, OverflowError):
            logger.warning("Could not parse date; keeping original", value=value)
            return value
        return parsed.strftime("%Y-%m-%d")

    # -----------------------
    # Quality analysis
    # -----------------------
    def normalize_quality(self, candidate: Mapping[str, Any]) -> CropQualityAnalysis:
        values: Dict[str, Any] = {
            name: _pick(candidate, name, alias) for name, alias in _QUALITY_FIELD_ALIASES.items()
        }

        score = to_float(values["quality_score"])
        if score is not None:
            score = max(0.0, min(score, 100.0))
        values["quality_score"] = score

        label = self._match_quality_label(values["crop_quality"])
        if label is None and score is not None:
            label = quality_label(score)
        values["crop_quality"] = label

        assessment = values["quality_assessment"]
        if isinstance(assessment, list):
            assessment = "\n".join(self._clean_list(assessment))
        assessment = _clean_text(assessment)
        if assessment is not None:
            assessment = trim_narrative(assessment, self.narrative_lines) or None
        values["quality_assessment"] = assessment

        values["recommendations"] = self._clean_list(values["recommendations"])
        values["soil_recommendations"] = self._clean_list(values["soil_recommendations"])
        values["overall_assessment"] = _clean_text(values["overall_assessment"])
        values["expected_yield"] = _clean_text(values["expected_yield"])

        return CropQualityAnalysis(**values)

    def _match_quality_label(self, value: Any) -> Optional[str]:
        text = _clean_text(value)
        if text is None:
            return None
        return next((label for label in _QUALITY_LABELS if label.lower() == text.lower()), None)

    def _clean_list(self, value: Any) -> List[str]:
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        return [str(item).strip() for item in items if item is not None and str(item).strip()]
