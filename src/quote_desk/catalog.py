"""
Product catalog and keyword matching for quote-desk.

The catalog is loaded once and never mutated. Matching is a deterministic
keyword score so every ranking can be explained line by line:

- exact SKU hint: a single candidate scored 100
- each search term found in name/brand/category/keywords: +10
- ... and +5 more when it matches as a whole word
- any term inside the category: +15 (once)
- any term inside the brand: +10 (once)

Entries at or below the relevance floor are dropped, ties keep catalog order.
"""

import json
import logging
import re
import string
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import yaml

from .errors import CatalogLoadError
from .models import CatalogEntry, CatalogMatchCandidate

logger = logging.getLogger(__name__)

SEED_CATALOG_PATH = Path(__file__).parent / "data" / "seed_catalog.json"

EXACT_SKU_SCORE = 100
TERM_POINTS = 10
WHOLE_WORD_BONUS = 5
CATEGORY_BONUS = 15
BRAND_BONUS = 10
MIN_TERM_LENGTH = 3

DEFAULT_MAX_RESULTS = 5
DEFAULT_RELEVANCE_FLOOR = 15


def classify_score(score: int) -> str:
    """Human-readable match reason for a keyword score."""
    if score > 40:
        return "Strong match"
    if score > 25:
        return "Good match"
    return "Possible match"


def search_terms(description: str) -> list[str]:
    """Lowercase whitespace tokens of a description, minus short noise tokens."""
    terms = []
    for token in description.lower().split():
        term = token.strip(string.punctuation)
        if len(term) >= MIN_TERM_LENGTH:
            terms.append(term)
    return terms


def _entry_from_record(record: dict[str, Any], position: int) -> CatalogEntry:
    """Build a CatalogEntry from a catalog file record."""
    if not isinstance(record, dict):
        raise CatalogLoadError(f"Catalog record {position} is not an object")

    missing = [key for key in ("sku", "name") if not record.get(key)]
    if missing:
        raise CatalogLoadError(f"Catalog record {position} is missing {', '.join(missing)}")

    raw_price = record.get("listPrice", record.get("list_price"))
    try:
        list_price = float(raw_price)
    except (TypeError, ValueError):
        raise CatalogLoadError(
            f"Catalog record {record['sku']} has an invalid list price: {raw_price!r}"
        ) from None
    if list_price < 0:
        raise CatalogLoadError(f"Catalog record {record['sku']} has a negative list price")

    # Normalize keywords: lowercase, stripped, de-duplicated in file order
    keywords: list[str] = []
    for keyword in record.get("keywords", []) or []:
        normalized = str(keyword).strip().lower()
        if normalized and normalized not in keywords:
            keywords.append(normalized)

    return CatalogEntry(
        sku=str(record["sku"]),
        name=str(record["name"]),
        brand=str(record.get("brand", "")),
        category=str(record.get("category", "")),
        unit=str(record.get("unit") or "each"),
        list_price=list_price,
        keywords=tuple(keywords),
    )


class CatalogIndex:
    """
    Immutable in-memory product catalog.

    Supports exact SKU lookup and iteration in load order (which is the
    tie-break order for equal match scores).
    """

    def __init__(self, entries: Iterable[CatalogEntry]):
        self._entries: tuple[CatalogEntry, ...] = tuple(entries)
        by_sku: dict[str, CatalogEntry] = {}
        for entry in self._entries:
            if entry.sku in by_sku:
                raise CatalogLoadError(f"Duplicate SKU in catalog: {entry.sku}")
            by_sku[entry.sku] = entry
        self._by_sku = by_sku

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, sku: object) -> bool:
        return sku in self._by_sku

    def get(self, sku: str) -> CatalogEntry | None:
        """Exact SKU lookup."""
        return self._by_sku.get(sku)

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> "CatalogIndex":
        """Build an index from raw records (camelCase or snake_case keys)."""
        return cls(_entry_from_record(record, i) for i, record in enumerate(records, 1))

    @classmethod
    def from_path(cls, path: Path) -> "CatalogIndex":
        """
        Load a catalog from a JSON or YAML file.

        The file holds either a list of records or an object with an
        "items" list.
        """
        path = Path(path)
        try:
            with open(path) as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise CatalogLoadError(f"Could not read catalog {path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("items")
        if not isinstance(data, list):
            raise CatalogLoadError(f"Catalog {path} must contain a list of items")

        index = cls.from_records(data)
        logger.info(f"Loaded {len(index)} catalog entries from {path}")
        return index


def load_catalog(path: Path | None = None) -> CatalogIndex:
    """Load the catalog at `path`, or the bundled seed catalog."""
    return CatalogIndex.from_path(path or SEED_CATALOG_PATH)


class CatalogMatcher:
    """
    Scores catalog entries against a parsed item's description.

    Pure and deterministic: identical catalog and input always produce the
    identical ranked output.
    """

    def __init__(
        self,
        catalog: CatalogIndex,
        max_results: int = DEFAULT_MAX_RESULTS,
        relevance_floor: int = DEFAULT_RELEVANCE_FLOOR,
    ):
        self.catalog = catalog
        self.max_results = max_results
        self.relevance_floor = relevance_floor

    def search(self, description: str, part_number_hint: str = "") -> list[CatalogMatchCandidate]:
        """
        Rank catalog entries for a description.

        Args:
            description: Free-text item description
            part_number_hint: Optional exact SKU hint

        Returns:
            Up to max_results candidates, highest score first
        """
        exact = self._exact_match(part_number_hint)
        if exact is not None:
            return [exact]

        terms = search_terms(description)
        candidates = []
        for entry in self.catalog:
            score = self.score_entry(entry, terms)
            if score > self.relevance_floor:
                candidates.append(
                    CatalogMatchCandidate.from_entry(entry, score, classify_score(score))
                )

        # sorted() is stable, so equal scores keep catalog order
        ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
        logger.debug(
            f"Search {description!r}: {len(candidates)} candidates above floor, "
            f"returning {min(len(ranked), self.max_results)}"
        )
        return ranked[: self.max_results]

    def candidate_for(
        self,
        description: str,
        sku: str,
        part_number_hint: str = "",
    ) -> CatalogMatchCandidate | None:
        """
        Re-derive the candidate for one confirmed SKU.

        Scores only that entry, with the same rules as search(). Returns None
        when the SKU is not in the catalog, when the hint names a different
        catalog SKU, or when the entry falls at or below the relevance floor.
        """
        entry = self.catalog.get(sku)
        if entry is None:
            return None

        if part_number_hint and part_number_hint in self.catalog:
            return self._exact_match(part_number_hint) if part_number_hint == sku else None

        score = self.score_entry(entry, search_terms(description))
        if score <= self.relevance_floor:
            return None
        return CatalogMatchCandidate.from_entry(entry, score, classify_score(score))

    @staticmethod
    def score_entry(entry: CatalogEntry, terms: list[str]) -> int:
        """Keyword score of one entry for a list of search terms."""
        text = entry.searchable_text()
        score = 0

        for term in terms:
            if term in text:
                score += TERM_POINTS
                # Bonus for whole-word matches ("bolt" but not "bolted")
                if re.search(rf"\b{re.escape(term)}\b", text):
                    score += WHOLE_WORD_BONUS

        category = entry.category.lower()
        if any(term in category for term in terms):
            score += CATEGORY_BONUS

        brand = entry.brand.lower()
        if any(term in brand for term in terms):
            score += BRAND_BONUS

        return score

    def _exact_match(self, part_number_hint: str) -> CatalogMatchCandidate | None:
        if not part_number_hint:
            return None
        entry = self.catalog.get(part_number_hint)
        if entry is None:
            return None
        return CatalogMatchCandidate.from_entry(entry, EXACT_SKU_SCORE, "Exact SKU match")
