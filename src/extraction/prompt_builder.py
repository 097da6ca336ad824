"""Prompt rendering for transcript extraction and soil quality analysis.

Templates live in YAML (``config/extraction_prompts.yaml``) and are rendered
with ``str.format``. Rendering is pure: the same input always yields the same
prompt text.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml
from loguru import logger

from src.extraction.models import ExtractionRequest, Sender, SoilReading, TranscriptEntry
from src.utils.config import PROJECT_ROOT

DEFAULT_PROMPTS_PATH = PROJECT_ROOT / "config" / "extraction_prompts.yaml"

ROLE_LABELS = {Sender.SYSTEM: "Bot", Sender.PARTY: "Farmer"}

# (field, label, unit suffix)
_SOIL_FIELDS = (
    ("temperature", "Temperature", "°C"),
    ("humidity", "Humidity", "%"),
    ("soil_moisture", "Soil Moisture", "%"),
    ("ldr", "Light Level (LDR)", ""),
    ("gas", "Gas Reading", ""),
    ("rain", "Rain Sensor", ""),
    ("received_at", "Data Timestamp", ""),
    ("ph", "pH Level", ""),
    ("nitrogen", "Nitrogen (N)", " ppm"),
    ("phosphorus", "Phosphorus (P)", " ppm"),
    ("potassium", "Potassium (K)", " ppm"),
    ("organic_matter", "Organic Matter", "%"),
)


class PromptBuilder:
    """Render extraction requests from YAML prompt templates."""

    def __init__(
        self,
        prompts_path: str | Path = DEFAULT_PROMPTS_PATH,
        *,
        crop_types: Optional[Sequence[str]] = None,
    ) -> None:
        self.prompts_path = Path(prompts_path)
        self.prompts = self._load_prompts(self.prompts_path)
        self.crop_types = list(crop_types or [])

        logger.info("Initialized PromptBuilder", prompts=str(self.prompts_path))

    # -----------------------
    # Transcript extraction
    # -----------------------
    def render_transcript(self, transcript: Iterable[Any]) -> str:
        """Render entries as ``<Role>: <message>`` lines in conversation order."""
        lines: List[str] = []
        for entry in self._coerce_transcript(transcript):
            message = entry.message.strip()
            if not message:
                continue
            lines.append(f"{ROLE_LABELS[entry.sender]}: {message}")
        return "\n".join(lines)

    def build_crop_extraction(
        self,
        transcript: Iterable[Any],
        call_summary: Optional[str] = None,
    ) -> ExtractionRequest:
        conversation_text = self.render_transcript(transcript)
        summary = (call_summary or "").strip()
        context = {
            "conversation_text": conversation_text,
            "call_summary_block": f"\nCall Summary: {summary}\n" if summary else "",
            "crop_types": ", ".join(self.crop_types) or "Rice, Wheat, Maize, Turmeric",
        }
        prompt = self._render_prompt("crop_extraction", context)
        return ExtractionRequest(
            prompt=prompt,
            source_text=conversation_text,
            context=summary or None,
        )

    # -----------------------
    # Soil quality analysis
    # -----------------------
    def render_soil_readings(self, reading: SoilReading | Dict[str, Any]) -> str:
        """Render present readings as ``- <Label>: <value><unit>`` lines."""
        if not isinstance(reading, SoilReading):
            reading = SoilReading.model_validate(reading)

        values = reading.model_dump()
        if values.get("soil_moisture") is None:
            values["soil_moisture"] = values.get("moisture")

        lines: List[str] = []
        for field, label, unit in _SOIL_FIELDS:
            value = values.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            lines.append(f"- {label}: {value}{unit}")
        return "\n".join(lines)

    def build_soil_quality_analysis(
        self,
        reading: SoilReading | Dict[str, Any],
        crop_type: Optional[str] = None,
        variety: Optional[str] = None,
        *,
        narrative_lines: int = 5,
    ) -> ExtractionRequest:
        soil_data = self.render_soil_readings(reading)
        context = {
            "crop_type": crop_type or "Not specified",
            "variety": variety or "Not specified",
            "crop_label": crop_type or "the crop",
            "soil_data": soil_data or "- No readings available",
            "narrative_lines": narrative_lines,
        }
        prompt = self._render_prompt("soil_quality_analysis", context)
        return ExtractionRequest(prompt=prompt, source_text=soil_data)

    # -----------------------
    # Template handling
    # -----------------------
    def _load_prompts(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Extraction prompt template not found: {path}")
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Prompt template root must be a mapping/dict: {path}")
        return data

    def _render_prompt(self, key: str, context: Dict[str, Any]) -> str:
        if key not in self.prompts:
            raise KeyError(f"Prompt key not found in template: {key}")

        prompt = self.prompts.get(key) or {}
        template = str(prompt.get("template", "{conversation_text}"))

        try:
            return template.format(**context).strip()
        except KeyError as exc:
            missing = exc.args[0]
            raise KeyError(f"Missing placeholder '{missing}' in prompt context for '{key}'")

    def _coerce_transcript(self, transcript: Iterable[Any]) -> List[TranscriptEntry]:
        entries: List[TranscriptEntry] = []
        for item in transcript:
            if isinstance(item, TranscriptEntry):
                entries.append(item)
            elif isinstance(item, dict):
                entries.append(TranscriptEntry.model_validate(item))
            else:
                raise ValueError("Transcript entries must be TranscriptEntry objects or dicts.")
        return entries
