"""
Bulletin Fetcher
================
Acquires the source PDFs from the ÖSYM site.

Steps:
    1. Read the yearly KPSS index page and pick the newest general
       preference guide (ministry-specific guides are skipped)
    2. Collect the ``dokuman.osym.gov.tr`` PDF links of that guide
    3. Download only the PDFs the FileClassifier recognises

A failed download is reported and skipped; it never aborts the others.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

import requests

from .classifier import FileClassifier
from .errors import FetchError
from .storage import sanitize_filename

logger = logging.getLogger(__name__)

OSYM_BASE_URL = "https://www.osym.gov.tr"
KPSS_INDEX_PAGE = "/TR,32935/2025.html"

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "tr-TR,tr;q=0.9,en;q=0.8",
}

# "/TR,33415/2025-kpss-tercih-kilavuzu.html"
GUIDE_LINK_PATTERN = re.compile(r"/TR,(\d+)/[^\"'\s]*tercih[^\"'\s]*\.html", re.IGNORECASE)

PDF_LINK_PATTERN = re.compile(r"https?://dokuman\.osym\.gov\.tr/[^\"'\s<>]+\.pdf", re.IGNORECASE)

# Ministry-specific guides publish their own table formats
EXCLUDED_GUIDE_MARKERS = ("saglik", "cevre", "bakanlig")


@dataclass
class FetchResult:
    """Downloaded bulletins of one guide plus the ones that failed."""

    guide_url: str
    files: list[tuple[str, bytes]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)


def find_latest_guide(index_html: str) -> Optional[str]:
    """Highest-id general preference guide linked from the index page."""
    best_id = -1
    best_url: Optional[str] = None

    for match in GUIDE_LINK_PATTERN.finditer(index_html):
        url = match.group(0)
        if any(marker in url.lower() for marker in EXCLUDED_GUIDE_MARKERS):
            continue
        guide_id = int(match.group(1))
        if guide_id > best_id:
            best_id, best_url = guide_id, url

    return best_url


def extract_pdf_links(html: str) -> list[tuple[str, str]]:
    """Unique (filename, url) pairs of bulletin PDFs, in page order."""
    links: list[tuple[str, str]] = []
    seen: set[str] = set()
    for url in PDF_LINK_PATTERN.findall(html):
        if url in seen:
            continue
        seen.add(url)
        links.append((url.rsplit("/", 1)[-1], url))
    return links


class BulletinFetcher:
    """Thin requests wrapper around the publisher's site."""

    def __init__(
        self,
        base_url: str = OSYM_BASE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        classifier: Optional[FileClassifier] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.classifier = classifier or FileClassifier()

    def _get(self, url: str) -> requests.Response:
        full_url = urljoin(self.base_url, url)
        try:
            resp = self.session.get(full_url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"GET {full_url} failed: {e}") from e
        return resp

    def fetch_page(self, url: str) -> str:
        return self._get(url).text

    def download(self, url: str) -> bytes:
        resp = self._get(url)
        content_type = resp.headers.get("Content-Type", "")
        if "html" in content_type.lower():
            raise FetchError(f"Expected a PDF from {url}, got {content_type}")
        return resp.content

    def find_latest_guide(self, index_page: str = KPSS_INDEX_PAGE) -> str:
        """
        Raises:
            FetchError: If the index cannot be read or links no guide.
        """
        guide = find_latest_guide(self.fetch_page(index_page))
        if guide is None:
            raise FetchError(f"No preference guide linked from {index_page}")
        logger.info(f"Latest guide: {guide}")
        return guide

    def fetch_bulletins(self, guide_url: Optional[str] = None) -> FetchResult:
        """
        Download every classifiable bulletin PDF of a guide.

        Args:
            guide_url: Guide page; defaults to the latest one on the index.

        Returns:
            FetchResult; ``files`` holds (filename, bytes) in page order.
        """
        guide_url = guide_url or self.find_latest_guide()
        links = extract_pdf_links(self.fetch_page(guide_url))
        if not links:
            raise FetchError(f"No PDF links found on {guide_url}")

        logger.info(f"Found {len(links)} PDF links on {guide_url}")
        result = FetchResult(guide_url=guide_url)

        for name, url in links:
            filename = sanitize_filename(name) or name
            if not self.classifier.classify(filename).is_classified:
                logger.info(f"Skipped (not a bulletin): {filename}")
                result.skipped.append(filename)
                continue
            try:
                result.files.append((filename, self.download(url)))
                logger.info(f"Downloaded: {filename}")
            except FetchError as e:
                logger.warning(f"Download failed: {filename}: {e}")
                result.failures.append((filename, str(e)))

        return result
