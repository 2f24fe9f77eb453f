"""Rough cost estimation for a run, before any provider is called.

Token counts per job type are typical figures for small, medium and large
projects; cost applies the configured model's rates.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from lean_intel.llm.pricing import DEFAULT_PRICING, PricingTable, format_pricing, get_model_pricing
from lean_intel.models.llm_config import Vendor
from lean_intel.models.project import ProjectContext


class ProjectSize(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


# (input tokens, output tokens) per job type and project size
TOKEN_ESTIMATES: dict[str, dict[ProjectSize, tuple[int, int]]] = {
    "documentation": {
        ProjectSize.SMALL: (50_000, 20_000),
        ProjectSize.MEDIUM: (97_000, 45_000),
        ProjectSize.LARGE: (180_000, 80_000),
    },
    "security": {
        ProjectSize.SMALL: (40_000, 2_000),
        ProjectSize.MEDIUM: (62_000, 3_500),
        ProjectSize.LARGE: (100_000, 5_000),
    },
    "license": {
        ProjectSize.SMALL: (50_000, 2_500),
        ProjectSize.MEDIUM: (75_000, 4_000),
        ProjectSize.LARGE: (120_000, 6_000),
    },
    "quality": {
        ProjectSize.SMALL: (50_000, 3_000),
        ProjectSize.MEDIUM: (78_000, 5_000),
        ProjectSize.LARGE: (130_000, 8_000),
    },
    "cost": {
        ProjectSize.SMALL: (55_000, 3_000),
        ProjectSize.MEDIUM: (87_000, 5_000),
        ProjectSize.LARGE: (140_000, 8_000),
    },
    "hipaa": {
        ProjectSize.SMALL: (45_000, 3_000),
        ProjectSize.MEDIUM: (71_000, 5_000),
        ProjectSize.LARGE: (110_000, 8_000),
    },
}


@dataclass
class CostEstimate:
    """Estimated usage for a run.

    Attributes:
        input_tokens: Estimated prompt tokens
        output_tokens: Estimated completion tokens
        estimated_cost: Estimated USD cost, rounded to cents
        pricing_info: Rates used (e.g., "$3/$15 per M")
    """

    input_tokens: int
    output_tokens: int
    estimated_cost: float
    pricing_info: str


def determine_project_size(context: ProjectContext) -> ProjectSize:
    if context.file_count < 100 and context.line_count < 10_000:
        return ProjectSize.SMALL
    if context.file_count < 400 and context.line_count < 50_000:
        return ProjectSize.MEDIUM
    return ProjectSize.LARGE


def estimate_cost(
    context: ProjectContext,
    jobs: Iterable[str],
    vendor: Vendor,
    model: str | None,
    pricing: PricingTable = DEFAULT_PRICING,
) -> CostEstimate:
    """Estimate the cost of running the given job types on a project.

    Args:
        context: Project context
        jobs: Job types (documentation, security, license, quality, cost, hipaa)
        vendor: Model vendor
        model: Model name
        pricing: Pricing table

    Raises:
        ValueError: If a job type is unknown
    """
    size = determine_project_size(context)
    input_tokens = output_tokens = 0

    for job in jobs:
        if job not in TOKEN_ESTIMATES:
            raise ValueError(f"Unknown job type '{job}'. Must be one of: {sorted(TOKEN_ESTIMATES)}")
        job_input, job_output = TOKEN_ESTIMATES[job][size]
        input_tokens += job_input
        output_tokens += job_output

    rates = get_model_pricing(pricing, vendor, model)
    cost = input_tokens / 1_000_000 * rates.input + output_tokens / 1_000_000 * rates.output

    return CostEstimate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        estimated_cost=round(cost, 2),
        pricing_info=format_pricing(pricing, vendor, model),
    )
