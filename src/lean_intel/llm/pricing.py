"""Model pricing and cost calculation.

Prices are USD per million tokens. Each vendor maps an ordered set of
model-name substrings to rates; the first matching pattern wins, so more
specific patterns are declared first. Unmatched models use the vendor's
``_default`` rate.

The table is immutable and passed explicitly to ``calculate_cost``.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from lean_intel.models.llm_config import Vendor

DEFAULT_PATTERN = "_default"


@dataclass(frozen=True)
class ModelPricing:
    """Rates for one model family.

    Attributes:
        input: USD per million input tokens
        output: USD per million output tokens
    """

    input: float
    output: float


PricingTable = Mapping[Vendor, Mapping[str, ModelPricing]]


def _freeze(table: dict[Vendor, dict[str, ModelPricing]]) -> PricingTable:
    return MappingProxyType({vendor: MappingProxyType(dict(rates)) for vendor, rates in table.items()})


# Last reviewed against vendor price pages 2026-02-15
DEFAULT_PRICING: PricingTable = _freeze(
    {
        Vendor.ANTHROPIC: {
            "opus": ModelPricing(5.0, 25.0),
            "haiku": ModelPricing(1.0, 5.0),
            "sonnet": ModelPricing(3.0, 15.0),
            DEFAULT_PATTERN: ModelPricing(3.0, 15.0),
        },
        Vendor.OPENAI: {
            "gpt-4.1-nano": ModelPricing(0.10, 0.40),
            "gpt-4.1-mini": ModelPricing(0.40, 1.60),
            "gpt-4.1": ModelPricing(2.0, 8.0),
            "o4-mini": ModelPricing(1.10, 4.40),
            "o3": ModelPricing(2.0, 8.0),
            "gpt-4o-mini": ModelPricing(0.15, 0.60),
            "gpt-4o": ModelPricing(2.50, 10.0),
            DEFAULT_PATTERN: ModelPricing(2.0, 8.0),
        },
        Vendor.GOOGLE: {
            "2.5-flash-lite": ModelPricing(0.10, 0.40),
            "2.5-pro": ModelPricing(1.25, 10.0),
            "2.5-flash": ModelPricing(0.30, 2.50),
            "2.0-flash": ModelPricing(0.075, 0.30),
            "1.5-pro": ModelPricing(1.25, 5.0),
            "1.5-flash": ModelPricing(0.075, 0.30),
            DEFAULT_PATTERN: ModelPricing(0.30, 2.50),
        },
        Vendor.XAI: {
            "grok-3-mini": ModelPricing(0.30, 0.50),
            "grok-3": ModelPricing(3.0, 15.0),
            DEFAULT_PATTERN: ModelPricing(3.0, 15.0),
        },
    }
)


def get_model_pricing(table: PricingTable, vendor: Vendor, model: str | None) -> ModelPricing:
    """Find the rates for a model.

    Args:
        table: Pricing table
        vendor: Model vendor
        model: Model name (case-insensitive); None selects the default

    Returns:
        ModelPricing of the first matching pattern, else the vendor default
    """
    rates = table[vendor]
    if model:
        model_lower = model.lower()
        for pattern, pricing in rates.items():
            if pattern != DEFAULT_PATTERN and pattern in model_lower:
                return pricing
    return rates[DEFAULT_PATTERN]


def calculate_cost(
    table: PricingTable,
    vendor: Vendor,
    model: str | None,
    input_tokens: int,
    output_tokens: int,
) -> float:
    """Calculate the USD cost of a completion, rounded to 4 decimals."""
    pricing = get_model_pricing(table, vendor, model)
    input_cost = input_tokens / 1_000_000 * pricing.input
    output_cost = output_tokens / 1_000_000 * pricing.output
    return round(input_cost + output_cost, 4)


def format_pricing(table: PricingTable, vendor: Vendor, model: str | None) -> str:
    """Return a short rate description such as ``$3/$15 per M``."""
    pricing = get_model_pricing(table, vendor, model)
    return f"${pricing.input:g}/${pricing.output:g} per M"
