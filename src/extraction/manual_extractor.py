"""Regex-based fallback extraction used when the model output is not valid JSON."""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict

_NUMBER = r"-?\d+(?:\.\d+)?"
_QUINTAL_UNITS = ("quintal", "क्विंटल")


def quoted_string_pattern(field: str) -> str:
    return rf'"{re.escape(field)}"\s*:\s*"((?:[^"\\]|\\.)*)"'


def quoted_number_pattern(field: str) -> str:
    return rf'"{re.escape(field)}"\s*:\s*({_NUMBER})'


def _decode_json_string(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value


class FieldRule(BaseModel):
    """Patterns for one target field.

    ``response_pattern`` is matched against the raw model text;
    ``source_pattern`` is a natural-language pattern matched against the
    transcript (then the model text). Group 1 is the value; an optional
    ``unit`` group feeds ``convert``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    field: str
    response_pattern: Optional[str] = None
    source_pattern: Optional[str] = None
    numeric: bool = False
    convert: Optional[Callable[[float, Optional[str]], float]] = None


def _quintal_to_kg(value: float, unit: Optional[str]) -> float:
    if unit and unit.lower() in _QUINTAL_UNITS:
        return value * 100
    return value


def _string_rule(field: str, source_pattern: Optional[str] = None) -> FieldRule:
    return FieldRule(
        field=field,
        response_pattern=quoted_string_pattern(field),
        source_pattern=source_pattern,
    )


def _number_rule(
    field: str,
    source_pattern: Optional[str] = None,
    convert: Optional[Callable[[float, Optional[str]], float]] = None,
) -> FieldRule:
    return FieldRule(
        field=field,
        response_pattern=quoted_number_pattern(field),
        source_pattern=source_pattern,
        numeric=True,
        convert=convert,
    )


CROP_FIELD_RULES: List[FieldRule] = [
    _string_rule(
        "cropType",
        r"(?:crop|फसल)[\s:]+(?:is|are|का|की)?[\s:]+"
        r"(Rice|Wheat|Maize|Turmeric|Black Gram|Green Chili|Coconut|Onion|Potato|Tomato"
        r"|चावल|गेहूं|मक्का|हल्दी)",
    ),
    _string_rule("variety", r"(Basmati|Pusa|Lakadong|बासमती)"),
    _number_rule(
        "harvestQuantity",
        rf"({_NUMBER})\s*(?P<unit>quintal|क्विंटल|kg|kilo|किलो)",
        convert=_quintal_to_kg,
    ),
    _number_rule(
        "pricePerKg",
        rf"(?:₹|rs\.?|rupees?|रुपये)\s*({_NUMBER})\s*(?:per|/|प्रति)\s*(?:kg|kilo|किलो)",
    ),
    _string_rule("sowingDate"),
    _string_rule("harvestDate"),
    _string_rule("certification"),
    _string_rule("grading"),
    _string_rule("labTest"),
    _number_rule("freshnessDuration"),
    _string_rule(
        "farmLocation",
        r"(?:location|स्थान)(?:[ \t]*[:\-][ \t]*|[ \t]+(?:is[ \t]+)?)([A-Za-z][A-Za-z ,]*)",
    ),
    _string_rule("farmerName"),
    _number_rule("confidence"),
]

QUALITY_FIELD_RULES: List[FieldRule] = [
    _number_rule("qualityScore", rf"(?:quality\s*score)\s*[:=-]?\s*({_NUMBER})"),
    _string_rule("cropQuality", r"(?:crop\s*quality)\s*[:=-]?\s*(Excellent|Good|Fair|Poor)"),
    _string_rule("qualityAssessment"),
    _string_rule("overallAssessment"),
    _string_rule("expectedYield", r"(?:expected\s*yield)[^:\n]*:\s*(High|Medium|Low)"),
]


class ManualExtractor:
    """Independent per-field pattern searches; never raises, never invents fields."""

    def __init__(self, rules: Sequence[FieldRule] | None = None) -> None:
        self.rules = list(rules) if rules is not None else list(CROP_FIELD_RULES)
        self._compiled = [
            (
                rule,
                re.compile(rule.response_pattern, re.IGNORECASE) if rule.response_pattern else None,
                re.compile(rule.source_pattern, re.IGNORECASE) if rule.source_pattern else None,
            )
            for rule in self.rules
        ]

    def extract(self, response_text: str, source_text: str = "") -> Dict[str, Any]:
        """Extract whatever fields can be found in the model text and source text."""
        response_text = response_text or ""
        source_text = source_text or ""
        extracted: Dict[str, Any] = {}

        for rule, response_re, source_re in self._compiled:
            value = self._match_response(rule, response_re, response_text)
            if value is None and source_re is not None:
                for haystack in (source_text, response_text):
                    value = self._match_source(rule, source_re, haystack)
                    if value is not None:
                        break
            if value is not None:
                extracted[rule.field] = value

        logger.debug(
            f"Manual extraction recovered {len(extracted)} field(s)",
            fields=sorted(extracted),
        )
        return extracted

    def _match_response(
        self, rule: FieldRule, pattern: Optional[re.Pattern[str]], text: str
    ) -> Any:
        if pattern is None or not text:
            return None
        match = pattern.search(text)
        if not match:
            return None
        raw = match.group(1)
        if rule.numeric:
            return _to_number(raw)
        value = _decode_json_string(raw).strip()
        return value or None

    def _match_source(self, rule: FieldRule, pattern: re.Pattern[str], text: str) -> Any:
        if not text:
            return None
        match = pattern.search(text)
        if not match:
            return None
        raw = match.group(1).strip()
        if not rule.numeric:
            return raw.rstrip(",").strip() or None

        number = _to_number(raw)
        if number is None:
            return None
        unit = match.groupdict().get("unit")
        if rule.convert is not None:
            number = rule.convert(number, unit)
        return _to_number(number)


def _to_number(value: Any) -> Optional[float | int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number
