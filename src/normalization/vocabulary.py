"""Closed crop vocabulary with English/Hindi synonyms."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


class VocabularyTerm(BaseModel):
    """Canonical label plus the substrings that map onto it."""

    model_config = ConfigDict(frozen=True)

    canonical: str
    synonyms: List[str] = Field(default_factory=list)
    implies_crop: Optional[str] = None

    def matches(self, value: str) -> bool:
        lowered = value.lower()
        return any(term.lower() in lowered for term in [self.canonical, *self.synonyms])


def _default_crop_types() -> List[VocabularyTerm]:
    return [
        VocabularyTerm(canonical="Rice", synonyms=["चावल", "धान", "paddy", "dhan"]),
        VocabularyTerm(canonical="Wheat", synonyms=["गेहूं", "गेहूँ", "gehun"]),
        VocabularyTerm(canonical="Maize", synonyms=["मक्का", "corn", "makka"]),
        VocabularyTerm(canonical="Turmeric", synonyms=["हल्दी", "haldi"]),
        VocabularyTerm(canonical="Black Gram", synonyms=["उड़द", "urad"]),
        VocabularyTerm(canonical="Green Chili", synonyms=["हरी मिर्च", "green chilli"]),
        VocabularyTerm(canonical="Coconut", synonyms=["नारियल"]),
        VocabularyTerm(canonical="Onion", synonyms=["प्याज"]),
        VocabularyTerm(canonical="Potato", synonyms=["आलू"]),
        VocabularyTerm(canonical="Tomato", synonyms=["टमाटर"]),
    ]


def _default_varieties() -> List[VocabularyTerm]:
    return [
        VocabularyTerm(canonical="Basmati", synonyms=["बासमती"], implies_crop="Rice"),
        VocabularyTerm(canonical="Lakadong", synonyms=["लाकाडोंग"], implies_crop="Turmeric"),
    ]


def _default_hindi_months() -> Dict[str, str]:
    return {
        "जनवरी": "January",
        "फरवरी": "February",
        "मार्च": "March",
        "अप्रैल": "April",
        "मई": "May",
        "जून": "June",
        "जुलाई": "July",
        "अगस्त": "August",
        "सितंबर": "September",
        "अक्टूबर": "October",
        "नवंबर": "November",
        "दिसंबर": "December",
    }


class CropVocabulary(BaseModel):
    """Vocabulary tables used by normalization and manual extraction."""

    model_config = ConfigDict(extra="ignore")

    crop_types: List[VocabularyTerm] = Field(default_factory=_default_crop_types)
    varieties: List[VocabularyTerm] = Field(default_factory=_default_varieties)
    month_names: Dict[str, str] = Field(default_factory=_default_hindi_months)

    @classmethod
    def from_yaml(cls, vocabulary_file: Path | None) -> CropVocabulary:
        """Load the vocabulary from YAML; sections present in the file replace the defaults."""
        base = cls()

        if vocabulary_file is None:
            return base

        if not vocabulary_file.exists():
            raise FileNotFoundError(f"Crop vocabulary file not found: {vocabulary_file}")

        loaded = yaml.safe_load(vocabulary_file.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Crop vocabulary must be a mapping/dict.")

        merged = base.model_dump()
        for key, value in loaded.items():
            if key not in merged:
                continue
            if isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value

        return cls(**merged)

    def crop_type_labels(self) -> List[str]:
        return [term.canonical for term in self.crop_types]

    def match_crop_type(self, value: str) -> Optional[VocabularyTerm]:
        return next((term for term in self.crop_types if term.matches(value)), None)

    def match_variety(self, value: str) -> Optional[VocabularyTerm]:
        return next((term for term in self.varieties if term.matches(value)), None)

    def translate_months(self, value: str) -> str:
        """Replace Hindi month names with English ones so dateutil can parse them."""
        for native, english in self.month_names.items():
            value = value.replace(native, english)
        return value
