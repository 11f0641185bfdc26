"""Datasette plugin exposing the quote-desk analyze/generate API."""

from datasette_quote_desk.plugin import (
    register_routes,
    skip_csrf,
    startup,
)

__all__ = [
    "register_routes",
    "skip_csrf",
    "startup",
]
