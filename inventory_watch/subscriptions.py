from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .db import Store

logger = logging.getLogger(__name__)


def resolve_subscribers(store: Store, provider_keys: Iterable[str] = ()) -> Dict[str, List[str]]:
    """Group opted-in users by provider.

    Only subscriptions with `base` set count.  Users keep the order their
    subscription was first seen in; every key in `provider_keys` is present
    even when nobody follows it.
    """
    grouped: Dict[str, List[str]] = {key: [] for key in provider_keys}
    for sub in store.list_subscriptions():
        if not sub.base:
            continue
        users = grouped.setdefault(sub.provider_key, [])
        if sub.user_id not in users:
            users.append(sub.user_id)
    logger.debug(
        "Resolved subscribers: %s",
        ", ".join(f"{k}={len(v)}" for k, v in grouped.items()) or "none",
    )
    return grouped


__all__ = ["resolve_subscribers"]
