"""LLM runtime for lean-intel.

Provider gateway (LiteLLM), retry executor, bounded-concurrency scheduler,
result cache and the resilience pipeline for structured output.
"""

from lean_intel.llm.cache import CacheStats, ResultCache
from lean_intel.llm.errors import (
    CacheIOError,
    ExtractionFailure,
    LLMError,
    PermanentProviderError,
    ProviderError,
    SchemaValidationFailure,
    TransientProviderError,
)
from lean_intel.llm.pricing import DEFAULT_PRICING, calculate_cost
from lean_intel.llm.providers import LLMProvider, create_provider
from lean_intel.llm.resilience import ValidationFailure, ValidationSuccess, parse_structured
from lean_intel.llm.retry import RetryPolicy, with_retry
from lean_intel.llm.scheduler import (
    Job,
    TaskResult,
    TaskStatus,
    parallel_limit,
    parallel_limit_strict,
    parallel_limit_with_progress,
    run_staged,
)

__all__ = [
    "CacheIOError",
    "CacheStats",
    "DEFAULT_PRICING",
    "ExtractionFailure",
    "Job",
    "LLMError",
    "LLMProvider",
    "PermanentProviderError",
    "ProviderError",
    "ResultCache",
    "RetryPolicy",
    "SchemaValidationFailure",
    "TaskResult",
    "TaskStatus",
    "TransientProviderError",
    "ValidationFailure",
    "ValidationSuccess",
    "calculate_cost",
    "create_provider",
    "parallel_limit",
    "parallel_limit_strict",
    "parallel_limit_with_progress",
    "parse_structured",
    "run_staged",
    "with_retry",
]
