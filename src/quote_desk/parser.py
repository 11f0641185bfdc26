"""
Free-text request parsing for quote-desk.

Turns a pasted purchase request (email body, spreadsheet rows, notes) into
ordered line items. Each physical line is handled on its own and malformed
lines degrade to best-effort extraction rather than failing the request.
Pure Python implementation - no external dependencies.
"""

import logging
import re

from .models import ParsedLineItem

logger = logging.getLogger(__name__)

MIN_LINE_LENGTH = 5
MIN_DESCRIPTION_LENGTH = 4

UNIT_WORDS = (
    "ea",
    "each",
    "box",
    "pc",
    "pcs",
    "pieces",
    "pair",
    "roll",
    "can",
    "bottle",
    "gallon",
    "tube",
    "set",
    "pack",
    "ft",
    "feet",
)

SUBSTITUTION_PHRASES = (
    "or equivalent",
    "substitute ok",
    "similar ok",
    "alternate acceptable",
)

# Table headers rather than data
HEADER_PATTERN = re.compile(r"^(item|description|qty|quantity|part)", re.IGNORECASE)

# An integer token of at most 9 digits (not glued to letters, decimals,
# fractions or codes), optionally followed by a unit word:
# "15 pcs", "100ft", "3 rolls" -> 3
_UNIT_ALTERNATION = "|".join(sorted(UNIT_WORDS, key=len, reverse=True))
QUANTITY_PATTERN = re.compile(
    rf"(?<![\w.\-/])(\d{{1,9}})(?:\s*({_UNIT_ALTERNATION})\b|(?![\w./]))",
    re.IGNORECASE,
)

# SKU-like codes: "GL-NIT-100" or a bare uppercase/digit token "3M6200"
PART_NUMBER_PATTERN = re.compile(r"\b([A-Z]{2,}-[A-Z0-9]+-\d+|[A-Z0-9]{5,})\b")

SUBSTITUTION_PATTERN = re.compile(
    "(" + "|".join(re.escape(p) for p in SUBSTITUTION_PHRASES) + ")",
    re.IGNORECASE,
)

_EMPTY_BRACKETS = re.compile(r"\(\s*\)|\[\s*\]")
_EDGE_CHARS = " \t,;:-–*•"


def _clean_description(text: str) -> str:
    """Collapse whitespace and trim separators left behind by stripping."""
    text = _EMPTY_BRACKETS.sub(" ", text)
    text = " ".join(text.split())
    return text.strip(_EDGE_CHARS)


class RequestParser:
    """
    Extracts structured line items from raw request text.

    For every line that survives the header/noise filter:
    - quantity and unit from the first integer token (default 1 "each")
    - an optional part number hint
    - an optional substitution note ("or equivalent", ...)
    - the remaining text as the description
    """

    def parse(self, raw_text: str) -> list[ParsedLineItem]:
        """
        Parse raw request text into line items, in input order.

        Never raises for malformed lines; an empty result is the caller's
        signal that nothing could be extracted.
        """
        items = []
        for line in raw_text.splitlines():
            item = self.parse_line(line)
            if item is not None:
                items.append(item)

        logger.debug(f"Parsed {len(items)} line item(s)")
        return items

    def parse_line(self, line: str) -> ParsedLineItem | None:
        """Parse a single physical line; None if it is blank, a header or noise."""
        text = line.strip()
        if len(text) < MIN_LINE_LENGTH or HEADER_PATTERN.match(text):
            return None

        quantity = 1
        unit = "each"
        remainder = text

        qty_match = QUANTITY_PATTERN.search(text)
        if qty_match:
            quantity = int(qty_match.group(1)) or 1
            if qty_match.group(2):
                unit = qty_match.group(2).lower()
            remainder = text[: qty_match.start()] + " " + text[qty_match.end() :]

        part_number_hint = ""
        part_match = PART_NUMBER_PATTERN.search(remainder)
        if part_match:
            part_number_hint = part_match.group(1)
            remainder = remainder[: part_match.start()] + " " + remainder[part_match.end() :]

        notes = ""
        note_match = SUBSTITUTION_PATTERN.search(remainder)
        if note_match:
            notes = note_match.group(1)
            remainder = SUBSTITUTION_PATTERN.sub(" ", remainder)

        description = _clean_description(remainder)
        if len(description) < MIN_DESCRIPTION_LENGTH:
            logger.debug(f"Dropping line with no usable description: {text!r}")
            return None

        return ParsedLineItem(
            description=description,
            quantity=quantity,
            unit=unit,
            part_number_hint=part_number_hint,
            notes=notes,
        )


def parse_request(raw_text: str) -> list[ParsedLineItem]:
    """Parse raw request text with a default RequestParser."""
    return RequestParser().parse(raw_text)
