"""Tests for clarifying-question advisors."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from quote_desk.advisor import (
    FallbackQuestionAdvisor,
    LLMQuestionAdvisor,
    QuestionAdvisor,
    ask_with_timeout,
    build_advisor,
    build_prompt,
    fallback_question,
    gather_questions,
)
from quote_desk.config import LLMConfig, QuoteDeskConfig
from quote_desk.errors import UpstreamError
from quote_desk.models import CatalogMatchCandidate, ParsedLineItem

ITEM = ParsedLineItem(description="flux capacitor", quantity=4, unit="ea")
CANDIDATES = [
    CatalogMatchCandidate(
        sku="GL-NIT-100",
        name="Nitrile Work Gloves",
        brand="SafeGuard",
        unit="box",
        list_price=18.99,
        score=20,
        reason="Possible match",
    ),
]


def mock_response(payload):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = payload
    return response


class SlowAdvisor(QuestionAdvisor):
    """Advisor that answers after a delay."""

    def __init__(self, delay, answer="What size?"):
        self.delay = delay
        self.answer = answer

    async def ask(self, item, candidates):
        await asyncio.sleep(self.delay)
        return f"{self.answer} ({item.description})"


class TestPrompt:
    """Test prompt and fallback text."""

    def test_fallback_question(self):
        assert fallback_question(ITEM) == (
            'Could you provide more details about "flux capacitor"? '
            "(e.g., size, brand, specifications)"
        )

    def test_prompt_with_candidates(self):
        prompt = build_prompt(ITEM, CANDIDATES)
        assert '"flux capacitor" (quantity: 4)' in prompt
        assert "- Nitrile Work Gloves (SafeGuard)" in prompt
        assert "confidence is low" in prompt

    def test_prompt_without_candidates(self):
        prompt = build_prompt(ITEM, [])
        assert "We found no matches in the catalog." in prompt

    async def test_fallback_advisor(self):
        assert await FallbackQuestionAdvisor().ask(ITEM, []) == fallback_question(ITEM)


class TestLLMQuestionAdvisor:
    """Test the hosted-model advisor."""

    async def test_missing_key(self):
        """Should raise without an API key."""
        advisor = LLMQuestionAdvisor(LLMConfig())
        with pytest.raises(UpstreamError, match="not configured"):
            await advisor.ask(ITEM, CANDIDATES)

    async def test_anthropic_success(self):
        """Should post a Messages request and return the trimmed answer."""
        advisor = LLMQuestionAdvisor(LLMConfig(api_key="test-key", timeout_seconds=3.0))

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = mock_response(
                {"content": [{"type": "text", "text": "  Which voltage rating?  "}]}
            )

            question = await advisor.ask(ITEM, CANDIDATES)

        assert question == "Which voltage rating?"
        mock_client.assert_called_once_with(timeout=3.0)
        args, kwargs = mock_instance.post.call_args
        assert args[0] == "https://api.anthropic.com/v1/messages"
        assert kwargs["headers"]["x-api-key"] == "test-key"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert kwargs["json"]["model"] == LLMConfig().model
        assert kwargs["json"]["max_tokens"] == 2000
        assert "flux capacitor" in kwargs["json"]["messages"][0]["content"]

    async def test_openai_success(self):
        advisor = LLMQuestionAdvisor(
            LLMConfig(
                provider="openai",
                model="gpt-4o-mini",
                base_url="https://llm.example.com/",
                api_key="sk-test",
            )
        )

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = mock_response(
                {"choices": [{"message": {"content": "Which brand do you prefer?"}}]}
            )

            question = await advisor.ask(ITEM, [])

        assert question == "Which brand do you prefer?"
        args, kwargs = mock_instance.post.call_args
        assert args[0] == "https://llm.example.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"

    async def test_http_error_status(self):
        """Non-success responses become UpstreamError."""
        advisor = LLMQuestionAdvisor(LLMConfig(api_key="test-key"))
        response = MagicMock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "server error", request=MagicMock(), response=MagicMock(status_code=529)
        )

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = response

            with pytest.raises(UpstreamError, match="HTTP 529"):
                await advisor.ask(ITEM, CANDIDATES)

    async def test_connection_error(self):
        advisor = LLMQuestionAdvisor(LLMConfig(api_key="test-key"))

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.side_effect = httpx.ConnectError("connection refused")

            with pytest.raises(UpstreamError, match="unreachable"):
                await advisor.ask(ITEM, CANDIDATES)

    @pytest.mark.parametrize("payload", [{}, {"content": []}, {"content": [{"text": "   "}]}])
    async def test_unusable_payload(self, payload):
        advisor = LLMQuestionAdvisor(LLMConfig(api_key="test-key"))

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = mock_response(payload)

            with pytest.raises(UpstreamError):
                await advisor.ask(ITEM, CANDIDATES)

    async def test_unsupported_provider(self):
        advisor = LLMQuestionAdvisor(LLMConfig(provider="carrier-pigeon", api_key="k"))
        with pytest.raises(UpstreamError, match="Unsupported"):
            await advisor.ask(ITEM, CANDIDATES)


class TestBuildAdvisor:
    """Test advisor selection from config."""

    def test_no_key_uses_fallback(self):
        assert isinstance(build_advisor(QuoteDeskConfig()), FallbackQuestionAdvisor)

    def test_key_from_env_uses_llm(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        assert isinstance(build_advisor(QuoteDeskConfig()), LLMQuestionAdvisor)

    def test_llm_disabled(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        config = QuoteDeskConfig.from_dict({"clarification": {"use_llm": False}})
        assert isinstance(build_advisor(config), FallbackQuestionAdvisor)


class TestAskWithTimeout:
    """Test that advisor failures degrade to the template."""

    async def test_answer_passed_through(self):
        advisor = AsyncMock(spec=QuestionAdvisor)
        advisor.ask.return_value = " What length? "
        assert await ask_with_timeout(advisor, ITEM, [], 1.0) == "What length?"

    async def test_upstream_error(self):
        advisor = AsyncMock(spec=QuestionAdvisor)
        advisor.ask.side_effect = UpstreamError("down")
        assert await ask_with_timeout(advisor, ITEM, [], 1.0) == fallback_question(ITEM)

    async def test_unexpected_error(self):
        advisor = AsyncMock(spec=QuestionAdvisor)
        advisor.ask.side_effect = RuntimeError("bug")
        assert await ask_with_timeout(advisor, ITEM, [], 1.0) == fallback_question(ITEM)

    async def test_empty_answer(self):
        advisor = AsyncMock(spec=QuestionAdvisor)
        advisor.ask.return_value = ""
        assert await ask_with_timeout(advisor, ITEM, [], 1.0) == fallback_question(ITEM)

    async def test_timeout(self):
        """A slow advisor is abandoned after the per-call timeout."""
        question = await ask_with_timeout(SlowAdvisor(delay=5), ITEM, [], 0.05)
        assert question == fallback_question(ITEM)


class TestGatherQuestions:
    """Test concurrent question gathering."""

    async def test_empty(self):
        assert await gather_questions(FallbackQuestionAdvisor(), [], 1.0, 1.0) == []

    async def test_order_and_prefix(self):
        """Questions come back in request order, prefixed with the item number."""
        other = ParsedLineItem(description="left-handed wrench")
        questions = await gather_questions(
            SlowAdvisor(delay=0.01),
            [(2, ITEM, []), (5, other, [])],
            per_call_timeout=1.0,
            overall_timeout=1.0,
        )
        assert questions == [
            "Item 2: What size? (flux capacitor)",
            "Item 5: What size? (left-handed wrench)",
        ]

    async def test_overall_timeout(self):
        """Calls still pending at the overall deadline use the template."""
        questions = await gather_questions(
            SlowAdvisor(delay=5),
            [(1, ITEM, [])],
            per_call_timeout=10.0,
            overall_timeout=0.05,
        )
        assert questions == [f"Item 1: {fallback_question(ITEM)}"]
