"""
File Classifier
===============
Decides which bulletin type and education level a source file holds, from
its filename alone.

Upstream filenames change between bulletin releases
(``tablo2_onlisans18122025_(1)_1766511639495.pdf``), so the rules key on
stable substrings only: the table number, the ``nitelik`` marker and the
level keyword. The first matching rule wins; a name matching no rule is
unclassified, never guessed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Iterable, Optional

from .models import UNCLASSIFIED, BulletinType, Classification, EducationLevel

logger = logging.getLogger(__name__)

_TURKISH_FOLD = str.maketrans({
    "ç": "c", "ğ": "g", "ı": "i", "ö": "o", "ş": "s", "ü": "u",
    "Ç": "c", "Ğ": "g", "İ": "i", "I": "i", "Ö": "o", "Ş": "s", "Ü": "u",
    "â": "a", "î": "i", "û": "u",
})


def fold_name(filename: str) -> str:
    """Lower-case a filename and fold Turkish letters to ASCII."""
    name = PurePath(filename).name
    return name.translate(_TURKISH_FOLD).lower().replace("\u0307", "")


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table: a pattern and what it identifies."""

    pattern: re.Pattern
    bulletin_type: BulletinType
    education_level: EducationLevel

    @classmethod
    def build(
        cls,
        pattern: str,
        bulletin_type: BulletinType,
        education_level: EducationLevel,
    ) -> "ClassificationRule":
        return cls(re.compile(pattern), bulletin_type, education_level)

    def matches(self, folded_name: str) -> bool:
        return self.pattern.search(folded_name) is not None


# "ort" must be the level keyword (orta, ortaogretim, ort_), not "ortak".
_SECONDARY = r"(?<![a-z])orta?(?:ogr|[_\d.]|$)"

# Order matters: an explicit table number beats any keyword, "onlisans"
# contains "lisans" so associate rules precede bachelor rules, and
# qualification keywords precede the table keywords.
DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule.build(
        r"ozel.*kosul", BulletinType.QUALIFICATION, EducationLevel.SPECIAL
    ),
    ClassificationRule.build(
        r"tablo[-_ ]?1(?!\d)", BulletinType.POSITION, EducationLevel.SECONDARY
    ),
    ClassificationRule.build(
        r"tablo[-_ ]?2(?!\d)", BulletinType.POSITION, EducationLevel.ASSOCIATE
    ),
    ClassificationRule.build(
        r"tablo[-_ ]?3(?!\d)", BulletinType.POSITION, EducationLevel.BACHELOR
    ),
    ClassificationRule.build(
        rf"^(?=.*nitelik)(?=.*{_SECONDARY})", BulletinType.QUALIFICATION, EducationLevel.SECONDARY
    ),
    ClassificationRule.build(
        r"^(?=.*nitelik)(?=.*onlisans)", BulletinType.QUALIFICATION, EducationLevel.ASSOCIATE
    ),
    ClassificationRule.build(
        r"^(?=.*nitelik)(?=.*lisans)", BulletinType.QUALIFICATION, EducationLevel.BACHELOR
    ),
    ClassificationRule.build(
        rf"tablo.*{_SECONDARY}", BulletinType.POSITION, EducationLevel.SECONDARY
    ),
    ClassificationRule.build(
        r"tablo.*onlisans", BulletinType.POSITION, EducationLevel.ASSOCIATE
    ),
    ClassificationRule.build(
        r"tablo.*lisans", BulletinType.POSITION, EducationLevel.BACHELOR
    ),
)


class FileClassifier:
    """Routes source files to the right parser by filename."""

    def __init__(self, rules: Optional[Iterable[ClassificationRule]] = None):
        self.rules = tuple(rules) if rules is not None else DEFAULT_RULES

    def classify(self, filename: str) -> Classification:
        folded = fold_name(filename)
        for rule in self.rules:
            if rule.matches(folded):
                logger.debug(
                    f"Classified {filename} as {rule.bulletin_type.value}"
                    f"/{rule.education_level.value}"
                )
                return Classification(
                    bulletin_type=rule.bulletin_type,
                    education_level=rule.education_level,
                )
        return UNCLASSIFIED
