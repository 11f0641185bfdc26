"""
Data models for quote-desk.

The dataclasses here are plain values; `to_dict()` produces the JSON wire
shape shared with the HTTP API (camelCase keys).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import InputError

NEEDS_REVIEW_SKU = "NEEDS-REVIEW"


class CustomerTier(str, Enum):
    """Customer pricing class."""

    STANDARD = "standard"
    PREFERRED = "preferred"
    PREMIUM = "premium"


class LineItemStatus(str, Enum):
    """Resolution status of a quote line."""

    MATCHED = "matched"
    ALTERNATE = "alternate"
    NEEDS_REVIEW = "needs-review"


@dataclass(frozen=True)
class CatalogEntry:
    """A product in the catalog."""

    sku: str
    name: str
    brand: str
    category: str
    unit: str
    list_price: float
    keywords: tuple[str, ...] = ()

    def searchable_text(self) -> str:
        """Name, brand, category and keywords as one lowercase string."""
        return " ".join([self.name, self.brand, self.category, *self.keywords]).lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "sku": self.sku,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "unit": self.unit,
            "listPrice": self.list_price,
            "keywords": list(self.keywords),
        }


@dataclass(frozen=True)
class ParsedLineItem:
    """One line item extracted from a free-text request."""

    description: str
    quantity: int = 1
    unit: str = "each"
    part_number_hint: str = ""
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "description": self.description,
            "qty": self.quantity,
            "unit": self.unit,
            "partNumberHint": self.part_number_hint,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedLineItem":
        """Create from a wire dictionary (camelCase or snake_case keys).

        Raises InputError if the description is missing or the quantity is
        not a positive integer.
        """
        if not isinstance(data, dict):
            raise InputError("Invalid request: each parsed item must be an object")

        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            raise InputError("Invalid request: each parsed item needs a description")

        raw_qty = data.get("qty", data.get("quantity", 1))
        # bool is an int subclass; fractional floats would truncate silently
        if isinstance(raw_qty, bool) or (isinstance(raw_qty, float) and not raw_qty.is_integer()):
            raise InputError(f"Invalid request: bad quantity {raw_qty!r}")
        try:
            quantity = int(raw_qty)
        except (TypeError, ValueError, OverflowError):
            raise InputError(f"Invalid request: bad quantity {raw_qty!r}") from None
        if quantity < 1:
            raise InputError(f"Invalid request: bad quantity {raw_qty!r}")

        return cls(
            description=description.strip(),
            quantity=quantity,
            unit=data.get("unit") or "each",
            part_number_hint=data.get("partNumberHint", data.get("part_number_hint", "")) or "",
            notes=data.get("notes") or "",
        )


@dataclass(frozen=True)
class CatalogMatchCandidate:
    """A scored catalog entry for one parsed item."""

    sku: str
    name: str
    brand: str
    unit: str
    list_price: float
    score: int
    reason: str

    @classmethod
    def from_entry(cls, entry: CatalogEntry, score: int, reason: str) -> "CatalogMatchCandidate":
        return cls(
            sku=entry.sku,
            name=entry.name,
            brand=entry.brand,
            unit=entry.unit,
            list_price=entry.list_price,
            score=score,
            reason=reason,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "sku": self.sku,
            "name": self.name,
            "brand": self.brand,
            "unit": self.unit,
            "listPrice": self.list_price,
            "score": self.score,
            "reason": self.reason,
        }


@dataclass
class QuoteLineItem:
    """A priced (or unresolved) line on a quote."""

    line_number: int
    description: str
    quantity: int
    unit: str
    sku: str
    unit_price: float
    extended_price: float
    status: LineItemStatus
    match_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "lineNumber": self.line_number,
            "description": self.description,
            "qty": self.quantity,
            "unit": self.unit,
            "sku": self.sku,
            "unitPrice": self.unit_price,
            "extendedPrice": self.extended_price,
            "status": self.status.value,
        }
        if self.match_reason:
            result["matchReason"] = self.match_reason
        return result


@dataclass
class Quote:
    """A totalled quote."""

    quote_number: str
    date: str
    line_items: list[QuoteLineItem] = field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0

    @property
    def needs_review_count(self) -> int:
        return sum(1 for item in self.line_items if item.status == LineItemStatus.NEEDS_REVIEW)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "quoteNumber": self.quote_number,
            "date": self.date,
            "lineItems": [item.to_dict() for item in self.line_items],
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
        }
