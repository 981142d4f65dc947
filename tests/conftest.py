"""
Shared fixtures: bulletin PDFs generated on the fly with PyMuPDF.
"""

from __future__ import annotations

from pathlib import Path

import pymupdf as fitz
import pytest


def build_pdf(pages: list[list[str]]) -> bytes:
    """One PDF page per entry; each string becomes one text line."""
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        y = 72
        for line in lines:
            page.insert_text((50, y), line, fontsize=9)
            y += 14
    data = doc.tobytes()
    doc.close()
    return data


QUALIFICATION_LINES_LISANS = [
    "4419 Hukuk lisans programindan mezun olmak.",
    "6225 Muhasebe lisans programindan",
    "mezun olmak.",
]

QUALIFICATION_LINES_ONLISANS = [
    "3249 Bilgisayar Programciligi onlisans",
    "programindan mezun olmak.",
    "6225 Muhasebe onlisans programindan mezun olmak.",
]

POSITION_LINES_LISANS = [
    "302010101 00001 ANKARA BELEDIYESI MEMUR AVUKAT ANKARA 2 4419",
    "302010102 00002 BURSA BELEDIYESI MEMUR MUHASEBECI BURSA 1 6225",
]


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def bulletin_dir(tmp_path: Path) -> Path:
    """A directory holding one bulletin of each kind plus a stray file."""
    directory = tmp_path / "bulletins"
    directory.mkdir()
    (directory / "nitelik_lisans.pdf").write_bytes(
        build_pdf([QUALIFICATION_LINES_LISANS])
    )
    (directory / "nitelik_onlisans.pdf").write_bytes(
        build_pdf([QUALIFICATION_LINES_ONLISANS])
    )
    (directory / "tablo3_lisans.pdf").write_bytes(
        build_pdf([POSITION_LINES_LISANS])
    )
    (directory / "random_report.pdf").write_bytes(build_pdf([["nothing here"]]))
    return directory
