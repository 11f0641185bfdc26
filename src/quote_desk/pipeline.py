"""
Request-to-quote pipeline for quote-desk.

Two operations, mirroring the two steps a sales rep takes:

- analyze: parse the request, match every item against the catalog, and ask
  clarifying questions for items with weak matches
- generate: price the SKUs the caller confirmed and assemble the quote

Both return a result object carrying either data or an error message; they
never raise for bad input or upstream trouble.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .advisor import QuestionAdvisor, build_advisor, gather_questions
from .catalog import CatalogIndex, CatalogMatcher
from .config import QuoteDeskConfig
from .errors import InputError
from .models import (
    CatalogMatchCandidate,
    CustomerTier,
    ParsedLineItem,
    Quote,
)
from .parser import RequestParser
from .pricing import PricingEngine, coerce_tier
from .quote import LineItemResolver, QuoteAssembler

logger = logging.getLogger(__name__)

NOTHING_EXTRACTED = (
    "Could not extract any items from the request. Please ensure the input "
    "contains product descriptions and quantities."
)
ANALYZE_FAILED = "An unexpected error occurred while analyzing the request."
GENERATE_FAILED = "Failed to generate quote."


@dataclass
class AnalyzeResult:
    """Result of analyzing a raw request.

    `matches[i]` holds the ranked candidates for `parsed_items[i]`.
    """

    parsed_items: list[ParsedLineItem] = field(default_factory=list)
    matches: list[list[CatalogMatchCandidate]] = field(default_factory=list)
    clarifying_questions: list[str] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        if self.error:
            return {"error": self.error}
        result: dict[str, Any] = {
            "parsedItems": [item.to_dict() for item in self.parsed_items],
            "matches": {
                str(i): [c.to_dict() for c in candidates]
                for i, candidates in enumerate(self.matches)
            },
        }
        if self.clarifying_questions:
            result["clarifyingQuestions"] = self.clarifying_questions
        return result


@dataclass
class GenerateResult:
    """Result of generating a quote from confirmed selections."""

    quote: Quote | None = None
    email_summary: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        if self.error or self.quote is None:
            return {"error": self.error or GENERATE_FAILED}
        return {"quote": self.quote.to_dict(), "emailSummary": self.email_summary}


class QuoteAgent:
    """
    Coordinates parsing, matching, clarification and quote assembly.

    Holds only the read-only catalog and configuration, so one instance can
    serve any number of independent requests.
    """

    def __init__(
        self,
        catalog: CatalogIndex,
        config: QuoteDeskConfig | None = None,
        advisor: QuestionAdvisor | None = None,
    ):
        """
        Initialize the agent.

        Args:
            catalog: Loaded product catalog
            config: quote-desk configuration (defaults if omitted)
            advisor: Optional QuestionAdvisor (for testing); picked from
                config when omitted
        """
        self.config = config or QuoteDeskConfig()
        self.catalog = catalog
        self.parser = RequestParser()
        self.matcher = CatalogMatcher(
            catalog,
            max_results=self.config.matching.max_results,
            relevance_floor=self.config.matching.relevance_floor,
        )
        self.pricing = PricingEngine(catalog)
        self.resolver = LineItemResolver(
            self.matcher,
            self.pricing,
            unmatched_sku=self.config.resolution.unmatched_sku,
        )
        self.assembler = QuoteAssembler(
            tax_rate=self.config.pricing.tax_rate,
            number_prefix=self.config.quote.number_prefix,
            sales_team=self.config.quote.sales_team,
        )
        self.advisor = advisor or build_advisor(self.config)

    def is_low_confidence(self, candidates: Sequence[CatalogMatchCandidate]) -> bool:
        """No candidates, or a weak top score among several candidates."""
        if not candidates:
            return True
        threshold = self.config.clarification.low_confidence_score
        return candidates[0].score < threshold and len(candidates) > 1

    async def analyze(
        self,
        raw_request: str,
        tier: CustomerTier | str = CustomerTier.STANDARD,
    ) -> AnalyzeResult:
        """
        Parse a raw request and match each item against the catalog.

        The tier is accepted for symmetry with generate(); matching does not
        depend on it.
        """
        try:
            logger.info("Step 1: Parsing request")
            parsed_items = self.parser.parse(raw_request)
            if not parsed_items:
                raise InputError(NOTHING_EXTRACTED)

            logger.info(f"Step 2: Searching catalog for {len(parsed_items)} item(s)")
            matches = [
                self.matcher.search(item.description, item.part_number_hint)
                for item in parsed_items
            ]

            questions = await self._clarify(parsed_items, matches)

            logger.info(
                f"Analyzed request (tier={coerce_tier(tier).value}): "
                f"{len(parsed_items)} item(s), {len(questions)} clarifying question(s)"
            )
            return AnalyzeResult(
                parsed_items=parsed_items,
                matches=matches,
                clarifying_questions=questions or None,
            )

        except InputError as e:
            logger.info(f"Analyze rejected: {e}")
            return AnalyzeResult(error=str(e))
        except Exception:
            logger.exception("Error analyzing request")
            return AnalyzeResult(error=ANALYZE_FAILED)

    async def _clarify(
        self,
        parsed_items: list[ParsedLineItem],
        matches: list[list[CatalogMatchCandidate]],
    ) -> list[str]:
        if not self.config.clarification.enabled:
            return []

        requests = [
            (number, item, candidates)
            for number, (item, candidates) in enumerate(zip(parsed_items, matches, strict=True), 1)
            if self.is_low_confidence(candidates)
        ]
        if requests:
            logger.info(f"Step 3: Asking {len(requests)} clarifying question(s)")

        return await gather_questions(
            self.advisor,
            requests,
            per_call_timeout=self.config.llm.timeout_seconds,
            overall_timeout=self.config.clarification.overall_timeout_seconds,
        )

    def generate(
        self,
        parsed_items: Sequence[ParsedLineItem | dict[str, Any]],
        selected_skus: Sequence[str | None],
        tier: CustomerTier | str = CustomerTier.STANDARD,
    ) -> GenerateResult:
        """
        Build the final quote from the caller's confirmed SKU per item.

        `selected_skus[i]` is the confirmation for `parsed_items[i]`; a
        missing, empty or NEEDS-REVIEW entry leaves that line for manual
        review.
        """
        try:
            items = self._coerce_items(parsed_items)
            if not isinstance(selected_skus, (list, tuple)):
                raise InputError("Invalid request: selectedSkus must be a list")

            line_items = []
            for number, item in enumerate(items, 1):
                sku = selected_skus[number - 1] if number <= len(selected_skus) else None
                line = self.resolver.resolve(number, item, sku, tier)
                if line is not None:
                    line_items.append(line)

            quote = self.assembler.assemble(line_items)
            return GenerateResult(quote=quote, email_summary=self.assembler.summarize(quote))

        except InputError as e:
            logger.info(f"Generate rejected: {e}")
            return GenerateResult(error=str(e))
        except Exception:
            logger.exception("Quote generation error")
            return GenerateResult(error=GENERATE_FAILED)

    @staticmethod
    def _coerce_items(
        parsed_items: Sequence[ParsedLineItem | dict[str, Any]],
    ) -> list[ParsedLineItem]:
        if not isinstance(parsed_items, (list, tuple)):
            raise InputError("Invalid request: parsedItems must be a list")
        if not parsed_items:
            raise InputError("Invalid request: parsedItems is empty")
        return [
            item if isinstance(item, ParsedLineItem) else ParsedLineItem.from_dict(item)
            for item in parsed_items
        ]
