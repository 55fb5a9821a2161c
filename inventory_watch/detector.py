"""Change detection against stored provider state.

Each detector pulls its value out of the freshly parsed page, then in a
single transaction compares it with what was stored last time and writes
the new value.  The return value says whether subscribers should hear
about it.
"""

from __future__ import annotations

import logging
from typing import List

from bs4 import BeautifulSoup

from .db import Store, Transaction
from .scraper import extract_marker, extract_product_links

logger = logging.getLogger(__name__)


def detect_timestamp(store: Store, provider_key: str, doc: BeautifulSoup) -> bool:
    """Changed iff the "last updated" marker differs from the stored one."""
    marker = extract_marker(doc)

    def _compare_and_set(txn: Transaction) -> bool:
        state = txn.get_provider_state(provider_key)
        previous = state.updated_msg if state else None
        if previous is not None and marker == previous:
            return False
        txn.set_updated_msg(provider_key, marker)
        logger.debug("%s marker %r -> %r", provider_key, previous, marker)
        return True

    return store.run_transaction(_compare_and_set)


def detect_listing(store: Store, provider_key: str, doc: BeautifulSoup) -> bool:
    """Changed iff the first listed item was not in the stored listing.

    The stored listing is replaced whenever it differs, so removals and
    reordering are tracked without triggering a notification.  An emptied
    shop has no first item, so it is stored but reported as unchanged;
    only a provider with no stored listing at all counts as changed when
    the fresh listing is empty.
    """
    links = extract_product_links(doc)

    def _compare_and_set(txn: Transaction) -> bool:
        state = txn.get_provider_state(provider_key)
        previous: List[str] | None = state.product_links if state else None
        stored = previous or []
        # No stored listing yet counts as changed, even for an empty shop.
        changed = previous is None or (bool(links) and links[0] not in stored)
        if previous is None or links != previous:
            txn.set_product_links(provider_key, links)
            logger.debug("%s listing updated (%d -> %d items)", provider_key, len(stored), len(links))
        return changed

    return store.run_transaction(_compare_and_set)


__all__ = ["detect_timestamp", "detect_listing"]
