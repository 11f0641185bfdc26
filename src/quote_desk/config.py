"""
Configuration for quote-desk.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

PLUGIN_NAME = "datasette-quote-desk"


@dataclass
class LLMConfig:
    """Language model provider configuration."""

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    base_url: str = "https://api.anthropic.com"
    api_key: str | None = None
    api_key_env: str | None = "ANTHROPIC_API_KEY"
    max_tokens: int = 2000
    timeout_seconds: float = 10.0

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class ClarificationConfig:
    """When and how clarifying questions are generated."""

    enabled: bool = True
    use_llm: bool = True  # Falls back to the template when no API key is set
    overall_timeout_seconds: float = 20.0
    low_confidence_score: int = 30


@dataclass
class MatchingConfig:
    """Catalog matching limits."""

    max_results: int = 5
    relevance_floor: int = 15


@dataclass
class PricingConfig:
    """Pricing configuration."""

    tax_rate: float = 0.08


@dataclass
class QuoteConfig:
    """Quote numbering and summary sign-off."""

    number_prefix: str = "RH-Q"
    sales_team: str = "Riverhawk Inside Sales Team"


@dataclass
class ResolutionConfig:
    """Handling of confirmed SKUs that no longer match the item."""

    unmatched_sku: str = "review"  # review, omit


@dataclass
class RateLimitConfig:
    """Per-caller request limit for the HTTP API."""

    max_requests: int = 10
    window_seconds: float = 60.0


@dataclass
class QuoteDeskConfig:
    """Complete quote-desk configuration."""

    catalog_path: Path | None = None  # None means the bundled seed catalog

    llm: LLMConfig = field(default_factory=LLMConfig)
    clarification: ClarificationConfig = field(default_factory=ClarificationConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    quote: QuoteConfig = field(default_factory=QuoteConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuoteDeskConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if data.get("catalog_path"):
            config.catalog_path = Path(data["catalog_path"])

        if "llm" in data:
            llm = data["llm"]
            config.llm = LLMConfig(
                provider=llm.get("provider", "anthropic"),
                model=llm.get("model", config.llm.model),
                base_url=llm.get("base_url", config.llm.base_url),
                api_key=llm.get("api_key"),
                api_key_env=llm.get("api_key_env", "ANTHROPIC_API_KEY"),
                max_tokens=llm.get("max_tokens", 2000),
                timeout_seconds=llm.get("timeout_seconds", 10.0),
            )

        if "clarification" in data:
            cl = data["clarification"]
            config.clarification = ClarificationConfig(
                enabled=cl.get("enabled", True),
                use_llm=cl.get("use_llm", True),
                overall_timeout_seconds=cl.get("overall_timeout_seconds", 20.0),
                low_confidence_score=cl.get("low_confidence_score", 30),
            )

        if "matching" in data:
            m = data["matching"]
            config.matching = MatchingConfig(
                max_results=m.get("max_results", 5),
                relevance_floor=m.get("relevance_floor", 15),
            )

        if "pricing" in data:
            config.pricing = PricingConfig(
                tax_rate=data["pricing"].get("tax_rate", 0.08),
            )

        if "quote" in data:
            q = data["quote"]
            config.quote = QuoteConfig(
                number_prefix=q.get("number_prefix", config.quote.number_prefix),
                sales_team=q.get("sales_team", config.quote.sales_team),
            )

        if "resolution" in data:
            unmatched = data["resolution"].get("unmatched_sku", "review")
            if unmatched not in ("review", "omit"):
                raise ValueError(
                    f"resolution.unmatched_sku must be 'review' or 'omit', got {unmatched!r}"
                )
            config.resolution = ResolutionConfig(unmatched_sku=unmatched)

        if "rate_limit" in data:
            rl = data["rate_limit"]
            config.rate_limit = RateLimitConfig(
                max_requests=rl.get("max_requests", 10),
                window_seconds=rl.get("window_seconds", 60.0),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "QuoteDeskConfig":
        """Load config from a YAML file.

        Accepts either a standalone quote-desk config or a datasette.yaml with
        the settings under plugins.datasette-quote-desk.
        """
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        plugin_config = data.get("plugins", {}).get(PLUGIN_NAME)
        if plugin_config is not None:
            data = plugin_config

        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        return {
            "catalog_path": str(self.catalog_path) if self.catalog_path else None,
            "llm": {
                "provider": self.llm.provider,
                "model": self.llm.model,
                "base_url": self.llm.base_url,
                "max_tokens": self.llm.max_tokens,
                "timeout_seconds": self.llm.timeout_seconds,
            },
            "clarification": {
                "enabled": self.clarification.enabled,
                "use_llm": self.clarification.use_llm,
                "overall_timeout_seconds": self.clarification.overall_timeout_seconds,
                "low_confidence_score": self.clarification.low_confidence_score,
            },
            "matching": {
                "max_results": self.matching.max_results,
                "relevance_floor": self.matching.relevance_floor,
            },
            "pricing": {"tax_rate": self.pricing.tax_rate},
            "quote": {
                "number_prefix": self.quote.number_prefix,
                "sales_team": self.quote.sales_team,
            },
            "resolution": {"unmatched_sku": self.resolution.unmatched_sku},
            "rate_limit": {
                "max_requests": self.rate_limit.max_requests,
                "window_seconds": self.rate_limit.window_seconds,
            },
        }
