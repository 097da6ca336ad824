#!/usr/bin/env python3
"""CLI entrypoint for crop data extraction.

Usage:
    python scripts/extract_crop_data.py transcript data/call.json
    python scripts/extract_crop_data.py soil data/soil.json --crop-type Rice
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.pipeline.cli import run  # noqa: E402


def main() -> None:
    """Launch the extraction CLI."""
    run()


if __name__ == "__main__":
    main()
