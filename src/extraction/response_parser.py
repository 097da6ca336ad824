"""Parse Gemini responses into loosely-typed candidate fields.

Parsing is a two-stage strategy: ``strict_parse`` returns a result-or-failure
value, and ``ManualExtractor`` runs only when that value is a failure.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict

from src.extraction.errors import ErrorKind, ExtractionError
from src.extraction.manual_extractor import ManualExtractor

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class ParseOutcome(BaseModel):
    """Result of the strict JSON stage."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def extract_generated_text(raw_response: str | Dict[str, Any]) -> str:
    """Pull ``candidates[0].content.parts[0].text`` out of the response envelope.

    Raises:
        ExtractionError: EMPTY_RESPONSE when the envelope or text is missing.
    """
    envelope: Any = raw_response
    if isinstance(raw_response, str):
        try:
            envelope = json.loads(raw_response)
        except json.JSONDecodeError:
            envelope = None

    text: Any = None
    try:
        text = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None

    if not isinstance(text, str) or not text.strip():
        raise ExtractionError(ErrorKind.EMPTY_RESPONSE, "Gemini API returned empty response.")
    return text


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip())


def find_json_candidate(text: str) -> str:
    """Greedy first-``{`` to last-``}`` substring, or the whole text if none."""
    match = _OBJECT_RE.search(text)
    return match.group(0) if match else text


def strict_parse(text: str) -> ParseOutcome:
    candidate = find_json_candidate(strip_code_fences(text or ""))
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return ParseOutcome(ok=False, error=str(exc))
    if not isinstance(data, dict):
        return ParseOutcome(ok=False, error=f"Expected a JSON object, got {type(data).__name__}")
    return ParseOutcome(ok=True, data=data)


def coerce_list_fields(data: Dict[str, Any], list_fields: Sequence[str]) -> Dict[str, Any]:
    """Wrap scalar values of list-typed fields in a one-element list."""
    coerced = dict(data)
    for field in list_fields:
        value = coerced.get(field)
        if isinstance(value, list):
            continue
        coerced[field] = [] if value is None or value == "" else [value]
    return coerced


class ResponseParser:
    """Strict JSON parsing with a manual-extraction fallback."""

    def __init__(self, manual_extractor: Optional[ManualExtractor] = None) -> None:
        self.manual_extractor = manual_extractor or ManualExtractor()

    def parse(
        self,
        raw_response: str | Dict[str, Any],
        source_text: str = "",
        *,
        list_fields: Sequence[str] = (),
    ) -> Dict[str, Any]:
        """Parse a raw response envelope into candidate fields.

        Raises:
            ExtractionError: EMPTY_RESPONSE when the envelope carries no text.
        """
        text = extract_generated_text(raw_response)
        logger.debug("Gemini extracted text", preview=text[:500])
        return self.parse_text(text, source_text, list_fields=list_fields)

    def parse_text(
        self,
        text: str,
        source_text: str = "",
        *,
        list_fields: Sequence[str] = (),
    ) -> Dict[str, Any]:
        outcome = strict_parse(text)
        if outcome.ok and outcome.data is not None:
            data = outcome.data
            logger.info("Parsed Gemini JSON response", fields=len(data))
        else:
            logger.warning(
                "Failed to parse Gemini JSON; falling back to manual extraction",
                error=outcome.error,
            )
            data = self.manual_extractor.extract(text, source_text)

        if list_fields:
            data = coerce_list_fields(data, list_fields)
        return data

    def fallback(self, source_text: str, *, list_fields: Sequence[str] = ()) -> Dict[str, Any]:
        """Manual extraction against the source text alone (no usable model text)."""
        data = self.manual_extractor.extract("", source_text)
        if list_fields:
            data = coerce_list_fields(data, list_fields)
        return data


def present_fields(data: Dict[str, Any]) -> List[str]:
    return sorted(k for k, v in data.items() if v not in (None, "", []))
