"""
Extracts data from the tracker's HTML pages. Each page shape has its own
extractor; fetching the page is the client's job.
"""

import logging
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup

T = TypeVar("T")

log = logging.getLogger(__name__)


class PageExtractor(ABC, Generic[T]):
    """Turns the HTML of one kind of page into a value."""

    def soup(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "html.parser")

    @abstractmethod
    def extract(self, html: str) -> T:
        """Parses `html` and returns the extracted value."""


class DetailsPageExtractor(PageExtractor[Optional[str]]):
    """Finds the .torrent download link on a torrent's details page."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/") + "/"

    def extract(self, html: str) -> Optional[str]:
        link = self.soup(html).select_one(".download > a")
        href = link.get("href") if link else None
        if not href:
            log.debug("No download link found on details page.")
            return None
        return urljoin(self.base_url, href)


class ObligationPageExtractor(PageExtractor[list[str]]):
    """
    Reads the hit-and-run listing and returns the source ids of torrents the
    tracker no longer requires to be seeded. A row is released when its
    'time spent' cell shows a dash.
    """

    ROW_SELECTOR = ".hnr_all, .hnr_all2"
    RELEASED_MARKER = "-"

    def extract(self, html: str) -> list[str]:
        source_ids = []
        for row in self.soup(html).select(self.ROW_SELECTOR):
            time_spent = row.select_one(".hnr_ttimespent")
            if time_spent is None or time_spent.get_text(strip=True) != self.RELEASED_MARKER:
                continue
            link = row.select_one(".hnr_tname a")
            source_id = self._source_id(link.get("href", "") if link else "")
            if source_id:
                source_ids.append(source_id)
            else:
                log.debug("Skipping hit-and-run row without a details link.")
        return source_ids

    @staticmethod
    def _source_id(details_url: str) -> Optional[str]:
        ids = parse_qs(urlparse(details_url).query).get("id")
        return ids[0] if ids else None
