"""Subscriber notifications.

One email per subscriber per detected change.  The first email to a
subscriber for a provider becomes the thread anchor: its Message-ID is
stored on the subscription and every later email replies to it.
"""
from __future__ import annotations

import logging
from html import escape
from typing import TYPE_CHECKING, Optional, Protocol, Tuple

from bs4 import BeautifulSoup

from .db import Store
from .emailer import OutgoingEmail
from .scraper import extract_marker, extract_product_links

if TYPE_CHECKING:
    from .providers import ProviderDescriptor

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def send(self, email: OutgoingEmail) -> str: ...


def compose_timestamp(provider: "ProviderDescriptor", doc: BeautifulSoup) -> Tuple[str, str, str]:
    marker = extract_marker(doc)
    subject = f"There is new inventory at {provider.name}"
    text = f"{provider.name} {marker} {provider.url}"
    html = "<b>{}</b>".format(escape(text))
    return subject, text, html


def compose_listing(provider: "ProviderDescriptor", doc: BeautifulSoup) -> Tuple[str, str, str]:
    links = extract_product_links(doc)
    subject = f"There is new inventory at {provider.name}"
    name, url = escape(provider.name), escape(provider.url)
    if links:
        newest = links[0]
        text = f"New at {provider.name}: {newest}\n\nBrowse everything: {provider.url}"
        html = (
            "<p><b>New at {name}:</b> <a href=\"{newest}\">{newest}</a></p>"
            "<p><a href=\"{url}\">Browse everything</a></p>"
        ).format(name=name, newest=escape(newest), url=url)
    else:
        text = f"{provider.name} updated its listing: {provider.url}"
        html = f"<b>{name} updated its listing: <a href=\"{url}\">{url}</a></b>"
    return subject, text, html


def notify(
    store: Store,
    transport: Transport,
    provider: "ProviderDescriptor",
    user_id: str,
    doc: BeautifulSoup,
) -> bool:
    """Email one subscriber about `provider`. Never raises.

    The send happens outside any transaction.  Afterwards the returned
    Message-ID is claimed as the thread anchor only if none is stored yet,
    so a concurrent run that anchored first keeps its thread.

    Returns True if an email went out.
    """
    try:
        sub = store.get_subscription(user_id, provider.key)
        if sub is None:
            logger.warning("Subscription %s/%s vanished before notify; skipping", user_id, provider.key)
            return False
        anchor: Optional[str] = sub.message_id
        subject, text, html = provider.compose(provider, doc)
        message_id = transport.send(
            OutgoingEmail(to=user_id, subject=subject, text=text, html=html, thread_reference=anchor)
        )
    except Exception:
        logger.exception("Failed to notify %s about %s", user_id, provider.key)
        return False

    if anchor is not None:
        return True
    try:
        claimed = store.run_transaction(
            lambda txn: txn.claim_message_id(user_id, provider.key, message_id)
        )
    except Exception:
        logger.exception("Sent %s to %s but could not store it as the thread anchor", message_id, user_id)
        return True
    if claimed:
        logger.info("Anchored %s/%s thread on %s", user_id, provider.key, message_id)
    else:
        logger.info("Thread for %s/%s was anchored concurrently; keeping it", user_id, provider.key)
    return True


__all__ = ["notify", "compose_timestamp", "compose_listing", "Transport"]
