"""Pipeline package for crop data extraction."""

from src.pipeline.extraction_pipeline import CropExtractionPipeline, create_pipeline

__all__ = ["CropExtractionPipeline", "create_pipeline"]
