"""
Inventory watch package.

This package contains modules for polling retail-inventory pages,
detecting changes against stored state, resolving subscribers and
emailing them, plus the run loop and CLI that tie it together.
"""

__all__ = [
    "config",
    "db",
    "detector",
    "emailer",
    "notifier",
    "providers",
    "scraper",
    "subscriptions",
    "main",
    "cli",
    "utils",
]
