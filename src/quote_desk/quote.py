"""
Quote assembly for quote-desk.

Resolves each parsed item against the caller's confirmed SKU, totals the
resulting lines, and renders the plain-text summary used for email and
clipboard.
"""

import logging
import time
from collections.abc import Callable, Sequence
from datetime import date

from .catalog import CatalogMatcher
from .models import (
    NEEDS_REVIEW_SKU,
    CustomerTier,
    LineItemStatus,
    ParsedLineItem,
    Quote,
    QuoteLineItem,
)
from .pricing import PricingEngine, round_money

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE = 0.08
ALTERNATE_SCORE_THRESHOLD = 40
SUMMARY_KEY_ITEMS = 5

NEEDS_REVIEW_REASON = "No suitable match found - manual review required"
CONFIRMED_REASON = "Customer confirmed"
ALTERNATE_REASON = "Alternate product suggested"


def format_long_date(value: date) -> str:
    """Format a date as e.g. "January 5, 2025"."""
    return f"{value:%B} {value.day}, {value.year}"


def _format_rate(rate: float) -> str:
    return f"{rate * 100:g}%"


class QuoteAssembler:
    """
    Totals confirmed line items into a Quote.

    Subtotal, tax and total are each rounded as they are computed; the total
    is the sum of the already rounded subtotal and tax.
    """

    def __init__(
        self,
        tax_rate: float = DEFAULT_TAX_RATE,
        number_prefix: str = "RH-Q",
        sales_team: str = "Riverhawk Inside Sales Team",
        clock: Callable[[], int] = time.time_ns,
        today: Callable[[], date] = date.today,
    ):
        self.tax_rate = tax_rate
        self.number_prefix = number_prefix
        self.sales_team = sales_team
        self._clock = clock
        self._today = today
        self._last_stamp = 0

    def assemble(self, line_items: Sequence[QuoteLineItem]) -> Quote:
        """Build a Quote with a fresh number, today's date and totals."""
        subtotal = round_money(sum(item.extended_price for item in line_items))
        tax = round_money(subtotal * self.tax_rate)
        total = round_money(subtotal + tax)

        quote = Quote(
            quote_number=self.next_quote_number(),
            date=format_long_date(self._today()),
            line_items=list(line_items),
            subtotal=subtotal,
            tax=tax,
            total=total,
        )
        logger.info(
            f"Assembled quote {quote.quote_number}: {len(quote.line_items)} line(s), "
            f"total ${quote.total:.2f}"
        )
        return quote

    def next_quote_number(self) -> str:
        """
        Quote number from the trailing 8 digits of the millisecond clock.

        Two quotes issued in the same millisecond get consecutive numbers.
        """
        stamp = self._clock() // 1_000_000
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return f"{self.number_prefix}-{str(stamp)[-8:]}"

    def summarize(self, quote: Quote) -> str:
        """Plain-text quote summary for the email/clipboard collaborator."""
        lines = [
            f"Quote {quote.quote_number} - {quote.date}",
            "",
            "Thank you for your inquiry. Please find your quote summary below:",
            "",
            f"Total Items: {len(quote.line_items)}",
            f"Subtotal: ${quote.subtotal:.2f}",
            f"Tax ({_format_rate(self.tax_rate)}): ${quote.tax:.2f}",
            f"Total: ${quote.total:.2f}",
            "",
        ]

        needs_review = quote.needs_review_count
        if needs_review > 0:
            lines.append(
                f'⚠️ {needs_review} item(s) marked as "Needs Review" - '
                "please contact us for clarification."
            )
            lines.append("")

        lines.append("Key Items:")
        for item in quote.line_items[:SUMMARY_KEY_ITEMS]:
            lines.append(
                f"• {item.quantity} {item.unit} - {item.description} "
                f"({item.sku}): ${item.extended_price:.2f}"
            )
        if len(quote.line_items) > SUMMARY_KEY_ITEMS:
            lines.append(f"... and {len(quote.line_items) - SUMMARY_KEY_ITEMS} more item(s)")

        lines.extend(
            [
                "",
                "Please review and let us know if you have any questions.",
                "",
                "Best regards,",
                self.sales_team,
            ]
        )
        return "\n".join(lines)


class LineItemResolver:
    """
    Turns a parsed item plus the caller's SKU choice into a quote line.

    - empty or NEEDS-REVIEW selection: needs-review, zero pricing
    - otherwise priced, then re-scored against the item description:
      score < 40 is an alternate, anything else is matched
    - a SKU that no longer re-resolves becomes needs-review ("review")
      or is left off the quote ("omit")
    """

    def __init__(
        self,
        matcher: CatalogMatcher,
        pricing: PricingEngine,
        unmatched_sku: str = "review",
    ):
        self.matcher = matcher
        self.pricing = pricing
        self.unmatched_sku = unmatched_sku

    def resolve(
        self,
        line_number: int,
        item: ParsedLineItem,
        selected_sku: str | None,
        tier: CustomerTier | str = CustomerTier.STANDARD,
    ) -> QuoteLineItem | None:
        """Resolve one line; None only when an unmatched SKU is omitted."""
        sku = str(selected_sku).strip() if selected_sku else ""
        if not sku or sku == NEEDS_REVIEW_SKU:
            return self._needs_review(line_number, item, NEEDS_REVIEW_REASON)

        price = self.pricing.price(sku, item.quantity, tier)
        match = self.matcher.candidate_for(item.description, sku, item.part_number_hint)

        if match is None:
            logger.warning(
                f"Line {line_number}: selected SKU {sku} does not match "
                f"{item.description!r} ({self.unmatched_sku})"
            )
            if self.unmatched_sku == "omit":
                return None
            return self._needs_review(
                line_number,
                item,
                f"Selected SKU {sku} could not be confirmed - manual review required",
            )

        if match.score < ALTERNATE_SCORE_THRESHOLD:
            status = LineItemStatus.ALTERNATE
            reason = ALTERNATE_REASON
        else:
            status = LineItemStatus.MATCHED
            reason = CONFIRMED_REASON

        return QuoteLineItem(
            line_number=line_number,
            description=match.name,
            quantity=item.quantity,
            unit=match.unit,
            sku=sku,
            unit_price=price.unit_price,
            extended_price=price.extended_price,
            status=status,
            match_reason=reason,
        )

    @staticmethod
    def _needs_review(line_number: int, item: ParsedLineItem, reason: str) -> QuoteLineItem:
        return QuoteLineItem(
            line_number=line_number,
            description=item.description,
            quantity=item.quantity,
            unit=item.unit,
            sku=NEEDS_REVIEW_SKU,
            unit_price=0.0,
            extended_price=0.0,
            status=LineItemStatus.NEEDS_REVIEW,
            match_reason=reason,
        )
