"""Monitored inventory sites.

Each provider pairs a page URL with one change detector and one email
composer.  Registry order is the order a run visits them in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Tuple

from bs4 import BeautifulSoup

from .db import Store
from .detector import detect_listing, detect_timestamp
from .notifier import compose_listing, compose_timestamp


@dataclass(frozen=True)
class ProviderDescriptor:
    key: str
    name: str
    url: str
    detect: Callable[[Store, str, BeautifulSoup], bool]
    compose: Callable[["ProviderDescriptor", BeautifulSoup], Tuple[str, str, str]]


REGISTRY: Tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        key="seconduse",
        name="Second Use",
        url="https://www.seconduse.com/inventory/",
        detect=detect_timestamp,
        compose=compose_timestamp,
    ),
    ProviderDescriptor(
        key="rebuildingcenter",
        name="The ReBuilding Center",
        url="https://www.rebuildingcenter.org/shop/",
        detect=detect_listing,
        compose=compose_listing,
    ),
)


def provider_keys() -> List[str]:
    return [p.key for p in REGISTRY]


def get_provider(key: str) -> ProviderDescriptor:
    for p in REGISTRY:
        if p.key == key:
            return p
    raise KeyError(f"Unknown provider {key!r}")


__all__ = ["ProviderDescriptor", "REGISTRY", "provider_keys", "get_provider"]
