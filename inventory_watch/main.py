from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import requests

from . import config, scraper
from .db import Store
from .emailer import transport_from_config
from .notifier import Transport, notify
from .providers import REGISTRY, ProviderDescriptor
from .subscriptions import resolve_subscribers
from .utils import get_http_session

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@dataclass
class ProviderOutcome:
    key: str
    changed: bool = False
    sent: int = 0
    failed: int = 0
    error: Optional[str] = None


@dataclass
class RunSummary:
    outcomes: List[ProviderOutcome] = field(default_factory=list)

    @property
    def emails_sent(self) -> int:
        return sum(o.sent for o in self.outcomes)

    @property
    def errors(self) -> Dict[str, str]:
        return {o.key: o.error for o in self.outcomes if o.error}


def check_provider(
    provider: ProviderDescriptor,
    store: Store,
    transport: Transport,
    subscribers: Dict[str, List[str]],
    session: Optional[requests.Session] = None,
) -> ProviderOutcome:
    """Fetch, detect and notify for a single provider."""
    outcome = ProviderOutcome(key=provider.key)
    logger.info("Checking %s (%s)…", provider.key, provider.url)
    try:
        html = scraper.fetch_page(provider.url, session=session)
        doc = scraper.parse(html)
        outcome.changed = provider.detect(store, provider.key, doc)
    except Exception as e:
        logger.exception("Check failed for %s; moving on.", provider.key)
        outcome.error = f"{type(e).__name__}: {e}"
        return outcome

    if not outcome.changed:
        logger.info("No new updates for %s.", provider.key)
        return outcome

    users = subscribers.get(provider.key, [])
    logger.info("New inventory at %s; notifying %d subscriber(s).", provider.key, len(users))
    for user_id in users:
        if notify(store, transport, provider, user_id, doc):
            outcome.sent += 1
        else:
            outcome.failed += 1
    return outcome


def run(
    store: Store,
    transport: Transport,
    session: Optional[requests.Session] = None,
    providers: Sequence[ProviderDescriptor] = REGISTRY,
) -> RunSummary:
    """One pass over every provider, in registry order."""
    summary = RunSummary()
    try:
        subscribers = resolve_subscribers(store, [p.key for p in providers])
    except Exception as e:
        # Bail out before any detector commits, so the change is still pending next run.
        logger.exception("Could not resolve subscribers; skipping this run.")
        error = f"{type(e).__name__}: {e}"
        summary.outcomes = [ProviderOutcome(key=p.key, error=error) for p in providers]
        return summary
    for provider in providers:
        summary.outcomes.append(check_provider(provider, store, transport, subscribers, session=session))

    logger.info(
        "Run complete: %d provider(s), %d changed, %d email(s) sent, %d error(s).",
        len(summary.outcomes),
        sum(1 for o in summary.outcomes if o.changed),
        summary.emails_sent,
        len(summary.errors),
    )
    return summary


def run_once(db_path: Optional[str] = None) -> RunSummary:
    """Entry point for schedulers and manual runs."""
    config.validate()
    store = Store(db_path or config.SQLITE_DB_PATH, config.SQLITE_BUSY_TIMEOUT_SECONDS)
    store.init_db()
    transport = transport_from_config()
    session = get_http_session()
    try:
        return run(store, transport, session=session)
    finally:
        session.close()


def loop(interval_minutes: int = config.SCRAPE_INTERVAL_MINUTES, db_path: Optional[str] = None) -> None:
    """Call run_once() every `interval_minutes`, forever."""
    config.validate()
    while True:
        try:
            run_once(db_path)
        except Exception:
            logger.exception("Unexpected error during run.")
        logger.info("Sleeping for %d minutes before next run.", interval_minutes)
        time.sleep(interval_minutes * 60)


def main() -> None:
    setup_logging()
    run_once()


if __name__ == "__main__":
    main()
