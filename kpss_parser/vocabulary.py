"""
Bulletin Vocabulary
===================
Fixed vocabularies the parsers anchor on instead of column positions:

    - CITIES: the 81 Turkish provinces, canonical UTF-8, upper case
    - EMPLOYMENT_TYPES: ordered; the first type found bounds the institution
    - INSTITUTION_SUFFIXES: words that close an institution name when a
      listing carries no employment type

All components share one ``Vocabulary`` instance. A different bulletin
year can be targeted by loading a JSON override with ``Vocabulary.from_file``.
"""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CITIES: tuple[str, ...] = (
    "ADANA", "ADIYAMAN", "AFYONKARAHİSAR", "AĞRI", "AKSARAY", "AMASYA",
    "ANKARA", "ANTALYA", "ARDAHAN", "ARTVİN", "AYDIN", "BALIKESİR", "BARTIN",
    "BATMAN", "BAYBURT", "BİLECİK", "BİNGÖL", "BİTLİS", "BOLU", "BURDUR",
    "BURSA", "ÇANAKKALE", "ÇANKIRI", "ÇORUM", "DENİZLİ", "DİYARBAKIR", "DÜZCE",
    "EDİRNE", "ELAZIĞ", "ERZİNCAN", "ERZURUM", "ESKİŞEHİR", "GAZİANTEP",
    "GİRESUN", "GÜMÜŞHANE", "HAKKARİ", "HATAY", "IĞDIR", "ISPARTA",
    "İSTANBUL", "İZMİR", "KAHRAMANMARAŞ", "KARABÜK", "KARAMAN", "KARS",
    "KASTAMONU", "KAYSERİ", "KIRIKKALE", "KIRKLARELİ", "KIRŞEHİR", "KİLİS",
    "KOCAELİ", "KONYA", "KÜTAHYA", "MALATYA", "MANİSA", "MARDİN", "MERSİN",
    "MUĞLA", "MUŞ", "NEVŞEHİR", "NİĞDE", "ORDU", "OSMANİYE", "RİZE",
    "SAKARYA", "SAMSUN", "SİİRT", "SİNOP", "SİVAS", "ŞANLIURFA", "ŞIRNAK",
    "TEKİRDAĞ", "TOKAT", "TRABZON", "TUNCELİ", "UŞAK", "VAN", "YALOVA",
    "YOZGAT", "ZONGULDAK",
)

EMPLOYMENT_TYPES: tuple[str, ...] = (
    "SÖZLEŞMELİ PERSONEL",
    "MEMUR",
    "İŞÇİ",
    "KADROLU",
)

INSTITUTION_SUFFIXES: tuple[str, ...] = (
    "İDARESİ",
    "BAKANLIĞI",
    "BAŞKANLIĞI",
    "MÜDÜRLÜĞÜ",
    "BELEDİYESİ",
    "ÜNİVERSİTESİ",
    "REKTÖRLÜĞÜ",
    "VALİLİĞİ",
    "KAYMAKAMLIĞI",
    "BAŞHEKİMLİĞİ",
    "HASTANESİ",
    "KURUMU",
    "KURULU",
    "AJANSI",
    "BİRLİĞİ",
)


def normalize(text: str) -> str:
    """NFC-normalize so decomposed Turkish letters (I + U+0307) match."""
    return unicodedata.normalize("NFC", text)


def _word_pattern(words: tuple[str, ...]) -> re.Pattern:
    # Longest first so overlapping entries prefer the fuller spelling
    ordered = sorted(words, key=len, reverse=True)
    alternatives = "|".join(re.escape(w) for w in ordered)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")


@dataclass(frozen=True)
class Vocabulary:
    """Injectable vocabulary tables for one bulletin format."""

    cities: tuple[str, ...] = CITIES
    employment_types: tuple[str, ...] = EMPLOYMENT_TYPES
    institution_suffixes: tuple[str, ...] = INSTITUTION_SUFFIXES
    source: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        for name in ("cities", "employment_types", "institution_suffixes"):
            values = tuple(normalize(v).strip() for v in getattr(self, name))
            if not all(values):
                raise ValueError(f"Vocabulary '{name}' contains blank entries")
            object.__setattr__(self, name, values)
        if not self.cities:
            raise ValueError("Vocabulary needs at least one city")
        if not self.employment_types:
            raise ValueError("Vocabulary needs at least one employment type")

    @classmethod
    def from_dict(cls, data: dict, source: Optional[str] = None) -> "Vocabulary":
        """Build from a mapping; missing keys keep the canonical defaults."""
        unknown = set(data) - {"cities", "employment_types", "institution_suffixes"}
        if unknown:
            logger.warning(f"Ignoring unknown vocabulary keys: {sorted(unknown)}")
        return cls(
            cities=tuple(data.get("cities", CITIES)),
            employment_types=tuple(data.get("employment_types", EMPLOYMENT_TYPES)),
            institution_suffixes=tuple(
                data.get("institution_suffixes", INSTITUTION_SUFFIXES)
            ),
            source=source,
        )

    @classmethod
    def from_file(cls, path: str) -> "Vocabulary":
        """Load a JSON vocabulary override."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Vocabulary file must hold a JSON object: {path}")
        vocabulary = cls.from_dict(data, source=str(Path(path)))
        logger.info(
            f"Loaded vocabulary from {path}: {len(vocabulary.cities)} cities, "
            f"{len(vocabulary.employment_types)} employment types"
        )
        return vocabulary

    @cached_property
    def city_pattern(self) -> re.Pattern:
        return _word_pattern(self.cities)

    @cached_property
    def employment_patterns(self) -> tuple[tuple[str, re.Pattern], ...]:
        """One pattern per employment type, in priority order."""
        return tuple(
            (et, _word_pattern((et,))) for et in self.employment_types
        )

    @cached_property
    def suffix_pattern(self) -> Optional[re.Pattern]:
        if not self.institution_suffixes:
            return None
        return _word_pattern(self.institution_suffixes)

    def is_city(self, name: str) -> bool:
        return normalize(name) in self.cities


DEFAULT_VOCABULARY = Vocabulary()
