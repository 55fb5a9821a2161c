from __future__ import annotations

import logging
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from .config import HTTP_TIMEOUT_SECONDS
from .utils import get_http_session, retryable_request

logger = logging.getLogger(__name__)

# Second Use style "last updated" banner.
TIMESTAMP_SELECTOR = ".timestamp > p"

# WooCommerce style shop grid.
PRODUCT_LIST_SELECTOR = "ul.products"
PRODUCT_LINK_SELECTOR = "ul.products li.product .product-images a"


class ExtractionError(Exception):
    """Raised when the part of the page a selector relies on is missing."""


@retryable_request
def _get(session: requests.Session, url: str, **kwargs: dict) -> requests.Response:
    """Thin wrapper around session.get with retry policy from utils.retryable_request."""
    return session.get(url, **kwargs)


def fetch_page(url: str, session: Optional[requests.Session] = None) -> str:
    """Fetch a page and return its body text. Raises NetworkError."""
    close_session = False
    if session is None:
        session = get_http_session()
        close_session = True
    try:
        resp = _get(session, url, timeout=HTTP_TIMEOUT_SECONDS)
        logger.debug("Fetched %s (%d chars)", url, len(resp.text))
        return resp.text
    finally:
        if close_session:
            session.close()


def parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def select_text(doc: BeautifulSoup, selector: str) -> str:
    """Text of the first element matching `selector`.

    A missing element raises ExtractionError; an element with no text
    yields "" which callers treat as a real value.
    """
    node = doc.select_one(selector)
    if node is None:
        raise ExtractionError(f"No element matches {selector!r}")
    return node.get_text()


def select_attrs(doc: BeautifulSoup, selector: str, attr: str) -> List[str]:
    """Value of `attr` for every match of `selector`, in document order."""
    return [str(el.get(attr)) for el in doc.select(selector) if el.get(attr) is not None]


def extract_marker(doc: BeautifulSoup) -> str:
    return select_text(doc, TIMESTAMP_SELECTOR)


def extract_product_links(doc: BeautifulSoup) -> List[str]:
    # An empty shop is fine; a page without the grid at all is a scrape failure.
    if doc.select_one(PRODUCT_LIST_SELECTOR) is None:
        raise ExtractionError(f"No element matches {PRODUCT_LIST_SELECTOR!r}")
    return select_attrs(doc, PRODUCT_LINK_SELECTOR, "href")


__all__ = [
    "ExtractionError",
    "fetch_page",
    "parse",
    "select_text",
    "select_attrs",
    "extract_marker",
    "extract_product_links",
    "TIMESTAMP_SELECTOR",
    "PRODUCT_LIST_SELECTOR",
    "PRODUCT_LINK_SELECTOR",
]
