"""
Clarifying-question advisors for quote-desk.

When an item's catalog matches are weak, the analyze step asks an advisor
for one clarifying question. The live advisor calls a text-completion API;
the fallback advisor answers from a fixed template. Every live call is
bounded by a timeout, and any failure degrades to the template, so a slow
or broken upstream never fails a request. There are no retries.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

from .config import LLMConfig, QuoteDeskConfig
from .errors import UpstreamError
from .models import CatalogMatchCandidate, ParsedLineItem

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

FALLBACK_TEMPLATE = (
    'Could you provide more details about "{description}"? '
    "(e.g., size, brand, specifications)"
)


def fallback_question(item: ParsedLineItem) -> str:
    """Deterministic templated clarifying question."""
    return FALLBACK_TEMPLATE.format(description=item.description)


def build_prompt(item: ParsedLineItem, candidates: Sequence[CatalogMatchCandidate]) -> str:
    """Prompt asking for a single clarifying question about one item."""
    if candidates:
        listing = "\n".join(f"- {c.name} ({c.brand})" for c in candidates)
        found = f"We found these possible matches but confidence is low:\n{listing}"
    else:
        found = "We found no matches in the catalog."

    return (
        "You are helping match a customer request to catalog items.\n"
        f'The customer requested: "{item.description}" (quantity: {item.quantity})\n'
        "\n"
        f"{found}\n"
        "\n"
        "Generate a brief, specific clarifying question (one sentence) to help "
        "identify the correct product. Ask about specifications, brand "
        "preferences, or key features."
    )


class QuestionAdvisor(ABC):
    """Produces one clarifying question for a low-confidence item."""

    name: str = "base"

    @abstractmethod
    async def ask(
        self,
        item: ParsedLineItem,
        candidates: Sequence[CatalogMatchCandidate],
    ) -> str:
        """Return a single clarifying question."""
        pass


class FallbackQuestionAdvisor(QuestionAdvisor):
    """Template-only advisor, used when no language model is configured."""

    name = "fallback"

    async def ask(
        self,
        item: ParsedLineItem,
        candidates: Sequence[CatalogMatchCandidate],
    ) -> str:
        return fallback_question(item)


class LLMQuestionAdvisor(QuestionAdvisor):
    """
    Advisor backed by a hosted language model.

    Supports the Anthropic Messages API and OpenAI-compatible chat
    completion endpoints. Raises UpstreamError for a missing key, transport
    errors, non-success responses and unusable payloads.
    """

    name = "llm"

    def __init__(self, config: LLMConfig):
        self.config = config

    async def ask(
        self,
        item: ParsedLineItem,
        candidates: Sequence[CatalogMatchCandidate],
    ) -> str:
        api_key = self.config.get_api_key()
        if not api_key:
            raise UpstreamError("LLM API key is not configured")

        prompt = build_prompt(item, candidates)
        url, headers, payload = self._build_request(api_key, prompt)

        logger.debug(f"Requesting clarifying question for {item.description!r}")

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            try:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise UpstreamError(
                    f"Clarification service returned HTTP {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise UpstreamError(f"Clarification service unreachable: {e}") from e
            except ValueError as e:
                raise UpstreamError("Clarification service returned invalid JSON") from e

        question = self._extract_text(data).strip()
        if not question:
            raise UpstreamError("Clarification service returned an empty answer")
        return question

    def _build_request(self, api_key: str, prompt: str) -> tuple[str, dict[str, str], dict]:
        base_url = self.config.base_url.rstrip("/")
        messages = [{"role": "user", "content": prompt}]

        if self.config.provider == "anthropic":
            return (
                f"{base_url}/v1/messages",
                {
                    "x-api-key": api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
                {
                    "model": self.config.model,
                    "max_tokens": self.config.max_tokens,
                    "messages": messages,
                },
            )

        if self.config.provider == "openai":
            return (
                f"{base_url}/v1/chat/completions",
                {"Authorization": f"Bearer {api_key}"},
                {
                    "model": self.config.model,
                    "max_tokens": self.config.max_tokens,
                    "messages": messages,
                },
            )

        raise UpstreamError(f"Unsupported LLM provider: {self.config.provider}")

    def _extract_text(self, data: Any) -> str:
        try:
            if self.config.provider == "anthropic":
                return data["content"][0]["text"]
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Clarification service returned an unexpected payload") from e


def build_advisor(config: QuoteDeskConfig) -> QuestionAdvisor:
    """Pick the live advisor when a model is configured, else the fallback."""
    if config.clarification.use_llm and config.llm.get_api_key():
        logger.info(f"Clarifying questions via {config.llm.provider} ({config.llm.model})")
        return LLMQuestionAdvisor(config.llm)

    logger.info("Clarifying questions via fallback template (no LLM configured)")
    return FallbackQuestionAdvisor()


async def ask_with_timeout(
    advisor: QuestionAdvisor,
    item: ParsedLineItem,
    candidates: Sequence[CatalogMatchCandidate],
    timeout: float,
) -> str:
    """Ask the advisor, degrading to the fallback question on any failure."""
    try:
        question = await asyncio.wait_for(advisor.ask(item, candidates), timeout)
    except UpstreamError as e:
        logger.warning(f"Advisor unavailable for {item.description!r}: {e}")
        return fallback_question(item)
    except TimeoutError:
        logger.warning(f"Advisor timed out after {timeout}s for {item.description!r}")
        return fallback_question(item)
    except Exception:
        logger.exception(f"Advisor failed for {item.description!r}")
        return fallback_question(item)

    question = (question or "").strip()
    return question or fallback_question(item)


async def gather_questions(
    advisor: QuestionAdvisor,
    requests: Sequence[tuple[int, ParsedLineItem, Sequence[CatalogMatchCandidate]]],
    per_call_timeout: float,
    overall_timeout: float,
) -> list[str]:
    """
    Ask for clarifying questions concurrently.

    Args:
        advisor: Advisor to ask
        requests: (item number, item, candidates) for each low-confidence item
        per_call_timeout: Bound on each individual call
        overall_timeout: Bound on the whole batch

    Returns:
        "Item <n>: <question>" strings in the order of `requests`
    """
    if not requests:
        return []

    tasks = [
        asyncio.create_task(ask_with_timeout(advisor, item, candidates, per_call_timeout))
        for _, item, candidates in requests
    ]
    done, pending = await asyncio.wait(tasks, timeout=overall_timeout)

    if pending:
        logger.warning(
            f"{len(pending)} clarifying question(s) still pending after "
            f"{overall_timeout}s, using fallback"
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    questions = []
    for (number, item, _), task in zip(requests, tasks, strict=True):
        if task in done:
            question = task.result()
        else:
            question = fallback_question(item)
        questions.append(f"Item {number}: {question}")
    return questions
