"""Integration tests for the quote-desk HTTP API."""

import pytest
from datasette.app import Datasette

from datasette_quote_desk.plugin import RateLimiter

API = "/-/quote-desk/api"


def build_datasette(**plugin_config):
    """Build a Datasette instance with the quote-desk plugin configured."""
    return Datasette(
        memory=True,
        config={
            "plugins": {
                "datasette-quote-desk": {
                    "clarification": {"use_llm": False},
                    **plugin_config,
                }
            }
        },
    )


@pytest.fixture
def ds():
    return build_datasette()


class TestAnalyze:
    """Tests for the analyze action."""

    async def test_analyze(self, ds):
        response = await ds.client.post(
            API,
            json={"action": "analyze", "rawRequest": "15 pairs of work gloves, large size"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["parsedItems"][0]["qty"] == 15
        assert data["matches"]["0"][0]["sku"] == "GL-NIT-100"

    async def test_clarifying_questions(self, ds):
        response = await ds.client.post(
            API,
            json={"action": "analyze", "rawRequest": "4 ea flux capacitor", "customerTier": "premium"},
        )

        data = response.json()
        assert data["matches"]["0"] == []
        assert data["clarifyingQuestions"] == [
            'Item 1: Could you provide more details about "flux capacitor"? '
            "(e.g., size, brand, specifications)"
        ]

    async def test_nothing_extracted(self, ds):
        """An unparseable request is reported in the body, not as an HTTP error."""
        response = await ds.client.post(
            API, json={"action": "analyze", "rawRequest": "Item  Description  Qty"}
        )

        assert response.status_code == 200
        assert "Could not extract any items" in response.json()["error"]

    @pytest.mark.parametrize("body", [{"action": "analyze"}, {"action": "analyze", "rawRequest": 42}])
    async def test_missing_raw_request(self, ds, body):
        response = await ds.client.post(API, json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request: rawRequest is required"}


class TestGenerate:
    """Tests for the generate action."""

    async def test_analyze_then_generate(self, ds):
        analyzed = (
            await ds.client.post(
                API,
                json={"action": "analyze", "rawRequest": "2 box safety gloves\n4 ea flux capacitor"},
            )
        ).json()

        response = await ds.client.post(
            API,
            json={
                "action": "generate",
                "parsedItems": analyzed["parsedItems"],
                "selectedSkus": ["GL-NIT-100", "NEEDS-REVIEW"],
                "customerTier": "standard",
            },
        )

        assert response.status_code == 200
        data = response.json()
        quote = data["quote"]
        assert quote["quoteNumber"].startswith("RH-Q-")
        assert [line["status"] for line in quote["lineItems"]] == ["matched", "needs-review"]
        assert quote["subtotal"] == 37.98
        assert quote["tax"] == 3.04
        assert quote["total"] == 41.02
        assert '1 item(s) marked as "Needs Review"' in data["emailSummary"]

    @pytest.mark.parametrize(
        "body",
        [
            {"action": "generate", "selectedSkus": []},
            {"action": "generate", "parsedItems": [{"description": "gloves"}]},
            {"action": "generate", "parsedItems": [], "selectedSkus": []},
        ],
    )
    async def test_missing_fields(self, ds, body):
        response = await ds.client.post(API, json=body)

        assert response.status_code == 400
        assert response.json() == {
            "error": "Invalid request: parsedItems and selectedSkus are required"
        }

    async def test_invalid_items_reported(self, ds):
        response = await ds.client.post(
            API,
            json={
                "action": "generate",
                "parsedItems": [{"description": "gloves", "qty": -1}],
                "selectedSkus": ["GL-NIT-100"],
            },
        )

        assert response.status_code == 200
        assert "bad quantity" in response.json()["error"]


class TestRequestValidation:
    """Tests for method, body and action checks."""

    async def test_get_not_allowed(self, ds):
        response = await ds.client.get(API)
        assert response.status_code == 405

    async def test_invalid_json(self, ds):
        response = await ds.client.post(
            API, content=b"not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    async def test_non_object_body(self, ds):
        response = await ds.client.post(API, json=["analyze"])
        assert response.status_code == 400

    async def test_unknown_action(self, ds):
        response = await ds.client.post(API, json={"action": "delete"})

        assert response.status_code == 400
        assert response.json() == {"error": 'Invalid action. Use "analyze" or "generate".'}


class TestRateLimit:
    """Tests for per-caller rate limiting."""

    async def test_rate_limited(self):
        ds = build_datasette(rate_limit={"max_requests": 2, "window_seconds": 60})
        body = {"action": "analyze", "rawRequest": "2 roll duct tape"}
        headers = {"x-forwarded-for": "203.0.113.7"}

        for _ in range(2):
            response = await ds.client.post(API, json=body, headers=headers)
            assert response.status_code == 200

        response = await ds.client.post(API, json=body, headers=headers)
        assert response.status_code == 429
        assert response.json() == {
            "error": "Rate limit exceeded. Please wait a moment before trying again."
        }

        # Other callers have their own window
        other = await ds.client.post(API, json=body, headers={"x-forwarded-for": "198.51.100.2"})
        assert other.status_code == 200

    def test_window_resets(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=lambda: now[0])

        assert limiter.check("a") is True
        assert limiter.check("a") is False
        now[0] = 10.5
        assert limiter.check("a") is True

    def test_expired_callers_evicted(self):
        """Windows of callers that went quiet do not accumulate."""
        now = [0.0]
        limiter = RateLimiter(max_requests=10, window_seconds=60, clock=lambda: now[0])

        for i in range(10_000):
            limiter.check(f"10.0.{i // 256}.{i % 256}")
        assert len(limiter._windows) == 10_000

        now[0] = 10_000.0
        assert limiter.check("192.0.2.1") is True
        assert list(limiter._windows) == ["192.0.2.1"]

    def test_active_callers_kept_on_sweep(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=lambda: now[0])

        limiter.check("old")
        now[0] = 50.0
        limiter.check("recent")
        now[0] = 70.0
        limiter.check("new")

        assert set(limiter._windows) == {"recent", "new"}
        # "recent" is still inside its window, so it stays limited
        assert limiter.check("recent") is False

    def test_limit_is_inclusive(self):
        limiter = RateLimiter(max_requests=3, clock=lambda: 0.0)
        assert [limiter.check("a") for _ in range(4)] == [True, True, True, False]
