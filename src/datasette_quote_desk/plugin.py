"""
Datasette plugin exposing the quote-desk API.

One JSON endpoint, POST /-/quote-desk/api, with two actions:
- analyze: {"action": "analyze", "rawRequest": "...", "customerTier": "..."}
- generate: {"action": "generate", "parsedItems": [...], "selectedSkus": [...],
  "customerTier": "..."}

Requests are rate limited per caller (X-Forwarded-For) with a fixed window.
"""

import json
import logging
import time
import weakref
from dataclasses import dataclass, field
from typing import Any

from datasette import Response, hookimpl
from datasette.utils.asgi import Request

from quote_desk.catalog import load_catalog
from quote_desk.config import PLUGIN_NAME, QuoteDeskConfig, RateLimitConfig
from quote_desk.pipeline import QuoteAgent

logger = logging.getLogger(__name__)

API_PATH = "/-/quote-desk/api"

# -----------------------------------------------------------------------------
# Plugin Configuration
# -----------------------------------------------------------------------------


def get_plugin_config(datasette) -> QuoteDeskConfig:
    """Get plugin configuration from datasette.yaml."""
    config = datasette.plugin_config(PLUGIN_NAME) or {}
    return QuoteDeskConfig.from_dict(config)


# -----------------------------------------------------------------------------
# Rate Limiting
# -----------------------------------------------------------------------------


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass
class RateLimiter:
    """Fixed-window request counter keyed by caller identifier."""

    max_requests: int = 10
    window_seconds: float = 60.0
    clock: Any = time.monotonic
    _windows: dict[str, _Window] = field(default_factory=dict)
    _next_sweep: float | None = None

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "RateLimiter":
        return cls(max_requests=config.max_requests, window_seconds=config.window_seconds)

    def check(self, identifier: str) -> bool:
        """Count a request; False once the caller's window is used up."""
        now = self.clock()
        self._sweep(now)
        window = self._windows.get(identifier)

        if window is None or now > window.reset_at:
            self._windows[identifier] = _Window(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.max_requests:
            return False

        window.count += 1
        return True

    def _sweep(self, now: float) -> None:
        """Drop expired windows, at most once per window length."""
        if self._next_sweep is not None and now < self._next_sweep:
            return
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug(f"Rate limiter dropped {len(expired)} expired caller(s)")
        self._next_sweep = now + self.window_seconds


# -----------------------------------------------------------------------------
# Per-Datasette State
# -----------------------------------------------------------------------------


@dataclass
class QuoteDeskState:
    agent: QuoteAgent
    limiter: RateLimiter


_states: "weakref.WeakKeyDictionary[Any, QuoteDeskState]" = weakref.WeakKeyDictionary()


def get_state(datasette) -> QuoteDeskState:
    """Build the agent and rate limiter once per Datasette instance."""
    state = _states.get(datasette)
    if state is None:
        config = get_plugin_config(datasette)
        catalog = load_catalog(config.catalog_path)
        state = QuoteDeskState(
            agent=QuoteAgent(catalog, config),
            limiter=RateLimiter.from_config(config.rate_limit),
        )
        _states[datasette] = state
    return state


def get_caller_id(request: Request) -> str:
    """Identify the caller for rate limiting."""
    forwarded = request.headers.get("x-forwarded-for", "")
    return forwarded.split(",")[0].strip() or "unknown"


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


def _error(message: str, status: int) -> Response:
    return Response.json({"error": message}, status=status)


async def quote_desk_api(request: Request, datasette) -> Response:
    """Handle analyze/generate API calls."""
    if request.method != "POST":
        return _error("Method not allowed. Use POST.", 405)

    try:
        state = get_state(datasette)

        if not state.limiter.check(get_caller_id(request)):
            return _error("Rate limit exceeded. Please wait a moment before trying again.", 429)

        try:
            body = json.loads(await request.post_body() or b"{}")
        except ValueError:
            return _error("Invalid request: body must be JSON", 400)
        if not isinstance(body, dict):
            return _error("Invalid request: body must be a JSON object", 400)

        action = body.get("action")
        tier = body.get("customerTier") or "standard"

        if action == "analyze":
            raw_request = body.get("rawRequest")
            if not raw_request or not isinstance(raw_request, str):
                return _error("Invalid request: rawRequest is required", 400)

            result = await state.agent.analyze(raw_request, tier)
            return Response.json(result.to_dict())

        if action == "generate":
            parsed_items = body.get("parsedItems")
            selected_skus = body.get("selectedSkus")
            if not parsed_items or selected_skus is None:
                return _error("Invalid request: parsedItems and selectedSkus are required", 400)

            result = state.agent.generate(parsed_items, selected_skus, tier)
            return Response.json(result.to_dict())

        return _error('Invalid action. Use "analyze" or "generate".', 400)

    except Exception:
        logger.exception("Quote desk API error")
        return _error("An internal error occurred. Please try again.", 500)


# -----------------------------------------------------------------------------
# Datasette Hooks
# -----------------------------------------------------------------------------


@hookimpl
def register_routes():
    """Register plugin routes with Datasette."""
    return [
        (r"^/-/quote-desk/api$", quote_desk_api),
    ]


@hookimpl
def skip_csrf(datasette, scope):
    """The JSON API is called by scripts and the front end, not HTML forms."""
    if scope.get("path", "") == API_PATH:
        return True
    return None


@hookimpl
def startup(datasette):
    """Load the catalog at startup so a bad catalog fails fast."""
    get_state(datasette)
