"""Shared fixtures: a throwaway SQLite store, a recording transport and page builders."""
from typing import List, Optional

import pytest

from inventory_watch.db import Store
from inventory_watch.emailer import OutgoingEmail, TransportError
from inventory_watch.scraper import parse


class FakeTransport:
    """Records every email and hands out sequential Message-IDs."""

    def __init__(self, fail_for: Optional[set] = None):
        self.sent: List[OutgoingEmail] = []
        self.fail_for = fail_for or set()

    def send(self, email: OutgoingEmail) -> str:
        if email.to in self.fail_for:
            raise TransportError(f"rejected {email.to}")
        self.sent.append(email)
        return f"<msg-{len(self.sent)}@test>"


def timestamp_page(marker: str) -> str:
    return (
        "<html><body><div class='timestamp'>"
        f"<p>{marker}</p><p>ignored</p>"
        "</div></body></html>"
    )


def listing_page(links: List[str]) -> str:
    items = "".join(
        f"<li class='product'><div class='product-images'><a href='{href}'>img</a></div>"
        f"<a href='/cart?add={href}'>Add</a></li>"
        for href in links
    )
    return f"<html><body><ul class='products'>{items}</ul></body></html>"


@pytest.fixture
def store(tmp_path):
    s = Store(str(tmp_path / "watch.db"), busy_timeout=0.1)
    s.init_db()
    return s


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def timestamp_doc():
    return lambda marker: parse(timestamp_page(marker))


@pytest.fixture
def listing_doc():
    return lambda links: parse(listing_page(links))


@pytest.fixture
def make_transport():
    return lambda fail_for=None: FakeTransport(fail_for)


@pytest.fixture
def timestamp_html():
    return timestamp_page


@pytest.fixture
def listing_html():
    return listing_page
