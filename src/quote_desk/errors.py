"""
Exceptions raised by quote-desk.

Only InputError is meant to reach the caller verbatim. UpstreamError is
recovered from locally by falling back to a templated question, and anything
else is logged and replaced with a generic message at the pipeline boundary.
"""


class QuoteDeskError(Exception):
    """Base class for quote-desk errors."""


class InputError(QuoteDeskError):
    """The caller's input cannot produce a result (nothing parsed, missing fields)."""


class UpstreamError(QuoteDeskError):
    """The clarification service is unreachable, misconfigured, or failed."""


class CatalogLoadError(QuoteDeskError):
    """The product catalog could not be loaded."""
