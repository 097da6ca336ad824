"""Normalization package."""

from src.normalization.record_normalizer import (
    RecordNormalizer,
    default_confidence,
    quality_label,
    trim_narrative,
)
from src.normalization.vocabulary import CropVocabulary, VocabularyTerm

__all__ = [
    "CropVocabulary",
    "RecordNormalizer",
    "VocabularyTerm",
    "default_confidence",
    "quality_label",
    "trim_narrative",
]
