"""
quote-desk: Free-text purchase request to priced quote.

Parses unstructured purchase requests into line items, matches them against
the product catalog with deterministic keyword scoring, asks clarifying
questions through an optional language model, and assembles priced quotes.
"""

__version__ = "0.1.0"
