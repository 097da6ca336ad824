from __future__ import annotations

from pathlib import Path

import pytest

from src.extraction.models import Sender, SoilReading, TranscriptEntry
from src.extraction.prompt_builder import PromptBuilder


@pytest.fixture(scope="module")
def builder() -> PromptBuilder:
    return PromptBuilder(crop_types=["Rice", "Wheat"])


TRANSCRIPT = [
    {"sender": "BOT", "message": "Which crop did you harvest?", "timestamp": "10:00"},
    {"sender": "FARMER", "message": "Basmati rice, 100 quintal", "timestamp": "10:01"},
    {"sender": "BOT", "message": "   ", "timestamp": "10:02"},
    {"sender": "FARMER", "message": "Sown on 7 January 2024", "timestamp": "10:03"},
]


def test_render_transcript_preserves_order_and_roles(builder: PromptBuilder) -> None:
    text = builder.render_transcript(TRANSCRIPT)

    assert text.splitlines() == [
        "Bot: Which crop did you harvest?",
        "Farmer: Basmati rice, 100 quintal",
        "Farmer: Sown on 7 January 2024",
    ]


def test_each_non_empty_entry_appears_exactly_once(builder: PromptBuilder) -> None:
    request = builder.build_crop_extraction(TRANSCRIPT)

    for entry in TRANSCRIPT:
        message = entry["message"].strip()
        if message:
            assert request.prompt.count(message) == 1


def test_accepts_transcript_entry_models(builder: PromptBuilder) -> None:
    entries = [
        TranscriptEntry(sender=Sender.SYSTEM, message="Hello"),
        TranscriptEntry(sender="farmer", message="Namaste"),
    ]

    assert builder.render_transcript(entries) == "Bot: Hello\nFarmer: Namaste"


def test_crop_prompt_contains_instructions(builder: PromptBuilder) -> None:
    request = builder.build_crop_extraction(TRANSCRIPT)
    prompt = request.prompt

    assert "1 quintal = 100 kg" in prompt
    assert "YYYY-MM-DD" in prompt
    assert "Use null for fields" in prompt
    assert "Return ONLY valid JSON" in prompt
    assert '"harvestQuantity": number or null' in prompt
    assert "confidence" in prompt
    assert "Rice, Wheat" in prompt
    assert request.source_text == builder.render_transcript(TRANSCRIPT)
    assert request.context is None


def test_call_summary_is_appended(builder: PromptBuilder) -> None:
    request = builder.build_crop_extraction(TRANSCRIPT, call_summary="Farmer registered a batch")

    assert "Call Summary: Farmer registered a batch" in request.prompt
    assert request.context == "Farmer registered a batch"


def test_rendering_is_deterministic(builder: PromptBuilder) -> None:
    first = builder.build_crop_extraction(TRANSCRIPT, "summary")
    second = builder.build_crop_extraction(TRANSCRIPT, "summary")

    assert first == second


def test_soil_readings_render_only_present_fields(builder: PromptBuilder) -> None:
    reading = SoilReading.model_validate(
        {"temperature": 28.5, "moisture": 41, "ph": 6.8, "nitrogen": None, "organicMatter": 2.1}
    )

    text = builder.render_soil_readings(reading)

    assert text.splitlines() == [
        "- Temperature: 28.5°C",
        "- Soil Moisture: 41%",
        "- pH Level: 6.8",
        "- Organic Matter: 2.1%",
    ]


def test_soil_prompt_mentions_crop_and_line_count(builder: PromptBuilder) -> None:
    request = builder.build_soil_quality_analysis(
        {"humidity": 70}, crop_type="Rice", variety="Basmati", narrative_lines=5
    )

    assert "- Crop Type: Rice" in request.prompt
    assert "- Variety: Basmati" in request.prompt
    assert "EXACTLY 5 lines" in request.prompt
    assert "- Humidity: 70%" in request.prompt
    assert request.source_text == "- Humidity: 70%"


def test_missing_template_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        PromptBuilder(tmp_path / "missing.yaml")


def test_missing_template_key_raises(tmp_path: Path) -> None:
    path = tmp_path / "prompts.yaml"
    path.write_text("other:\n  template: hi\n", encoding="utf-8")
    builder = PromptBuilder(path)

    with pytest.raises(KeyError):
        builder.build_crop_extraction(TRANSCRIPT)
