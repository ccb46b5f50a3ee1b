"""
Web Scraping Layer.

This package contains the extractors that read data out of the tracker's
HTML pages.
"""

from .extractors import DetailsPageExtractor, ObligationPageExtractor, PageExtractor

__all__ = ["DetailsPageExtractor", "ObligationPageExtractor", "PageExtractor"]
