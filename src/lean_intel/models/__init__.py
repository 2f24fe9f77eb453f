"""lean-intel data models.

- CompletionOptions / CompletionRequest / CompletionResult: one LLM call
- CacheEntry: persisted completion
- ProviderConfig / Vendor: provider selection
- JobResult / BatchResult: orchestrated job outcomes
- ProjectContext / DocumentationTier: what is known about the analyzed project
"""

from lean_intel.models.completion import (
    CacheEntry,
    CompletionOptions,
    CompletionRequest,
    CompletionResult,
    StructuredCompletionResult,
)
from lean_intel.models.llm_config import MODEL_DEFAULTS, VALID_PROVIDERS, ProviderConfig, Vendor
from lean_intel.models.project import DocumentationTier, ProjectContext, determine_tier
from lean_intel.models.results import BatchResult, JobResult, JobStatus

__all__ = [
    "BatchResult",
    "CacheEntry",
    "CompletionOptions",
    "CompletionRequest",
    "CompletionResult",
    "DocumentationTier",
    "JobResult",
    "JobStatus",
    "MODEL_DEFAULTS",
    "ProjectContext",
    "ProviderConfig",
    "StructuredCompletionResult",
    "VALID_PROVIDERS",
    "Vendor",
    "determine_tier",
]
