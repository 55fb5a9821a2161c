"""Helper utilities.

This module centralises common helper functions such as creating a
configured HTTP session and applying retry policies to network calls.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import requests
from requests import Response
from tenacity import (after_log, retry, retry_if_exception_type,
                      stop_after_attempt, wait_exponential)


logger = logging.getLogger(__name__)


def get_http_session() -> requests.Session:
    """Return a new HTTP session with sensible defaults.

    The session sets a realistic User-Agent header and asks for HTML.
    Caller is responsible for closing the session.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": "Mozilla/5.0 (compatible; InventoryWatch/1.0; +https://github.com/)",
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        }
    )
    return session


class NetworkError(Exception):
    """Raised when a page is unreachable or answers with a non-2xx status."""


class _ServerError(Exception):
    """Internal marker for 5xx responses so they get retried."""


def retryable_request(method: Callable[..., Response]) -> Callable[..., Response]:
    """Apply the retry policy to an HTTP call.

    The decorated function must accept a `requests.Session` as its first
    argument, followed by URL and optional kwargs, and return a
    `requests.Response`.  Connection errors and 5xx responses are retried
    up to 3 attempts with exponential back-off.  Whatever still fails is
    surfaced as `NetworkError`; 4xx responses fail immediately.
    """

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=(
            retry_if_exception_type(requests.ConnectionError)
            | retry_if_exception_type(requests.Timeout)
            | retry_if_exception_type(_ServerError)
        ),
        after=after_log(logger, logging.WARNING),
    )
    def _attempt(session: requests.Session, url: str, **kwargs: Any) -> Response:
        response = method(session, url, **kwargs)
        if response.status_code >= 500:
            raise _ServerError(f"{url} returned status {response.status_code}")
        return response

    def wrapper(session: requests.Session, url: str, **kwargs: Any) -> Response:
        try:
            response = _attempt(session, url, **kwargs)
        except (requests.RequestException, _ServerError) as e:
            raise NetworkError(str(e)) from e
        try:
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(str(e)) from e
        return response

    return wrapper


__all__ = ["get_http_session", "retryable_request", "NetworkError"]
