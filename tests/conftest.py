"""Shared pytest fixtures for quote-desk tests."""

import pytest

from quote_desk.advisor import FallbackQuestionAdvisor
from quote_desk.catalog import CatalogIndex
from quote_desk.config import QuoteDeskConfig
from quote_desk.pipeline import QuoteAgent

CATALOG_RECORDS = [
    {
        "sku": "GL-NIT-100",
        "name": "Nitrile Work Gloves",
        "brand": "SafeGuard",
        "category": "Safety & PPE",
        "unit": "box",
        "listPrice": 18.99,
        "keywords": ["gloves", "nitrile", "disposable"],
    },
    {
        "sku": "GL-LTH-200",
        "name": "Leather Driver Gloves",
        "brand": "Ironclad",
        "category": "Safety & PPE",
        "unit": "pair",
        "listPrice": 14.50,
        "keywords": ["gloves", "leather", "driver"],
    },
    {
        "sku": "FS-HEX-516",
        "name": "Hex Head Cap Screw 5/16 in",
        "brand": "Grade 5 Fasteners",
        "category": "Fasteners",
        "unit": "box",
        "listPrice": 21.40,
        "keywords": ["bolt", "bolts", "hex", "zinc"],
    },
    {
        "sku": "TP-DUC-200",
        "name": "Duct Tape 2 in Silver",
        "brand": "Shurtape",
        "category": "Tapes & Adhesives",
        "unit": "roll",
        "listPrice": 7.85,
        "keywords": ["tape", "duct tape", "silver"],
    },
    {
        "sku": "LB-WD4-011",
        "name": "Multi-Use Lubricant Spray",
        "brand": "WD-40",
        "category": "Lubricants",
        "unit": "can",
        "listPrice": 8.49,
        "keywords": ["lubricant", "spray", "rust"],
    },
]


@pytest.fixture(autouse=True)
def no_llm_key(monkeypatch):
    """Keep tests off the network even if the developer has a key exported."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


@pytest.fixture
def catalog():
    """A small in-memory catalog."""
    return CatalogIndex.from_records(CATALOG_RECORDS)


@pytest.fixture
def config():
    """Default config."""
    return QuoteDeskConfig()


@pytest.fixture
def agent(catalog, config):
    """QuoteAgent with the template advisor."""
    return QuoteAgent(catalog, config, advisor=FallbackQuestionAdvisor())
