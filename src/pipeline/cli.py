"""Command-line interface for running extractions on saved call logs and sensor dumps."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer
from loguru import logger
from rich.console import Console

from src.extraction.errors import ExtractionError
from src.pipeline import extraction_pipeline
from src.utils.config import Config, load_config
from src.utils.logging_setup import setup_logging

app = typer.Typer(help="Extract structured crop data with Gemini.")

console = Console(color_system=None, force_terminal=False, width=120)


def _load(config_path: Path, verbose: bool) -> Config:
    try:
        cfg = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=1)
    setup_logging(cfg.logging, verbose=verbose)
    return cfg


def _read_json(path: Path) -> Any:
    if not path.exists():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(code=1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON in {path}:[/red] {exc}")
        raise typer.Exit(code=1)


def _split_transcript(data: Any) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    if isinstance(data, list):
        return data, None
    if isinstance(data, dict) and isinstance(data.get("transcript"), list):
        return data["transcript"], data.get("summary") or data.get("callSummary")
    console.print("[red]Expected a JSON list of messages or an object with 'transcript'.[/red]")
    raise typer.Exit(code=1)


def _print_payload(payload: Dict[str, Any]) -> None:
    console.print_json(json.dumps(payload, ensure_ascii=False))


@app.command("transcript")
def transcript(
    path: Path = typer.Argument(..., help="JSON file with {sender, message, timestamp} entries."),
    summary: Optional[str] = typer.Option(None, help="Optional call summary for context."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Extract a crop registration record from a call transcript."""
    cfg = _load(config, verbose)
    entries, file_summary = _split_transcript(_read_json(path))

    async def _run() -> Dict[str, Any]:
        async with extraction_pipeline.create_pipeline(cfg) as pipeline:
            record = await pipeline.extract_from_transcript(entries, summary or file_summary)
            return record.to_payload()

    try:
        payload = asyncio.run(_run())
    except ExtractionError as exc:
        logger.error(f"Extraction failed: {exc.kind.value}")
        console.print(f"[red]Extraction failed ({exc.kind.value}):[/red] {exc.message}")
        raise typer.Exit(code=1)

    _print_payload(payload)


@app.command("soil")
def soil(
    path: Path = typer.Argument(..., help="JSON file with soil sensor readings."),
    crop_type: Optional[str] = typer.Option(None, help="Crop type being grown."),
    variety: Optional[str] = typer.Option(None, help="Crop variety being grown."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Assess expected crop quality from a soil reading set."""
    cfg = _load(config, verbose)
    reading = _read_json(path)
    if not isinstance(reading, dict):
        console.print("[red]Expected a JSON object of soil readings.[/red]")
        raise typer.Exit(code=1)

    async def _run() -> Dict[str, Any]:
        async with extraction_pipeline.create_pipeline(cfg) as pipeline:
            analysis = await pipeline.analyze_soil_quality(reading, crop_type, variety)
            return analysis.to_payload()

    try:
        payload = asyncio.run(_run())
    except ExtractionError as exc:
        logger.error(f"Crop quality analysis failed: {exc.kind.value}")
        console.print(f"[red]Analysis failed ({exc.kind.value}):[/red] {exc.message}")
        raise typer.Exit(code=1)

    _print_payload(payload)


def run() -> None:
    """Entrypoint for Typer."""
    app()


if __name__ == "__main__":
    run()
