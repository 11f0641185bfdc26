"""
CLI runner for quote-desk.

Usage:
    python -m quote_desk.run [OPTIONS] [REQUEST_FILE]

    # Analyze a request (reads stdin when no file is given)
    python -m quote_desk.run request.txt

    # Analyze, then build a quote from the top candidate for each item
    python -m quote_desk.run request.txt --auto-select --tier preferred

    # Build a quote with explicit SKU selections, one per parsed item
    python -m quote_desk.run request.txt --select GL-NIT-100 --select NEEDS-REVIEW
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .catalog import load_catalog
from .config import QuoteDeskConfig
from .errors import CatalogLoadError
from .models import NEEDS_REVIEW_SKU, CustomerTier
from .pipeline import AnalyzeResult, QuoteAgent

logger = logging.getLogger("quote-desk")


def auto_select(analysis: AnalyzeResult) -> list[str]:
    """Top candidate per item, or NEEDS-REVIEW when there is none."""
    return [candidates[0].sku if candidates else NEEDS_REVIEW_SKU for candidates in analysis.matches]


async def run_request(
    agent: QuoteAgent,
    raw_request: str,
    tier: CustomerTier,
    selections: list[str] | None = None,
    pick_top: bool = False,
) -> tuple[dict, str | None]:
    """
    Analyze a request and, when selections are available, generate the quote.

    Returns (json_payload, email_summary).
    """
    analysis = await agent.analyze(raw_request, tier)
    if not analysis.ok:
        return analysis.to_dict(), None

    if pick_top:
        selections = auto_select(analysis)
    if not selections:
        return analysis.to_dict(), None

    result = agent.generate(analysis.parsed_items, selections, tier)
    payload = result.to_dict()
    if analysis.clarifying_questions:
        payload["clarifyingQuestions"] = analysis.clarifying_questions
    return payload, result.email_summary


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="quote-desk: turn free-text purchase requests into priced quotes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Analyze a request from stdin
    echo "15 pairs of work gloves, large size" | python -m quote_desk.run

    # Quote the best match for each item at the preferred tier
    python -m quote_desk.run request.txt --auto-select --tier preferred

    # Use a specific config file and catalog
    python -m quote_desk.run request.txt --config quote-desk.yaml --catalog catalog.json
        """,
    )

    parser.add_argument(
        "request_file",
        nargs="?",
        type=Path,
        help="File containing the raw request (default: stdin)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("quote-desk.yaml"),
        help="Path to config file (default: quote-desk.yaml)",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        help="Override catalog path from config",
    )
    parser.add_argument(
        "--tier",
        choices=[t.value for t in CustomerTier],
        default=CustomerTier.STANDARD.value,
        help="Customer pricing tier (default: standard)",
    )
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument(
        "--select",
        action="append",
        metavar="SKU",
        help="Confirmed SKU for the next parsed item (repeat per item)",
    )
    selection.add_argument(
        "--auto-select",
        action="store_true",
        help="Confirm the top candidate for every item",
    )
    parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Use the template for clarifying questions even if an LLM is configured",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    config = QuoteDeskConfig.from_yaml(args.config)
    if args.catalog:
        config.catalog_path = args.catalog
    if args.no_llm:
        config.clarification.use_llm = False

    try:
        catalog = load_catalog(config.catalog_path)
    except CatalogLoadError as e:
        logger.error(str(e))
        return 1

    if args.request_file:
        try:
            raw_request = args.request_file.read_text()
        except OSError as e:
            logger.error(f"Could not read request file: {e}")
            return 1
    else:
        raw_request = sys.stdin.read()

    agent = QuoteAgent(catalog, config)
    payload, summary = asyncio.run(
        run_request(
            agent,
            raw_request,
            CustomerTier(args.tier),
            selections=args.select,
            pick_top=args.auto_select,
        )
    )

    if summary:
        print(summary)
        print()
    print(json.dumps(payload, indent=2))

    return 1 if "error" in payload else 0


if __name__ == "__main__":
    sys.exit(main())
