"""Job and batch result entities.

- JobStatus: outcome of a single orchestrated job
- JobResult: per-job outcome handed to writers and reports
- BatchResult: per-job outcomes plus batch-level totals
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobStatus(Enum):
    """Status of an orchestrated job."""

    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class JobResult:
    """Outcome of a single job.

    Attributes:
        name: Job name (e.g., "security", "ARCHITECTURE.md")
        status: success, error or skipped
        output: Raw text or a validated payload serialized to JSON
        error: Diagnostic message when status is error
        input_tokens: Prompt tokens consumed
        output_tokens: Completion tokens consumed
        cost: USD cost
        duration: Wall-clock seconds
        warnings: Non-fatal problems found in the output
    """

    name: str
    status: JobStatus
    output: str | None = None
    error: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    duration: float = 0.0
    warnings: list[str] = field(default_factory=list)

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def ok(self) -> bool:
        return self.status == JobStatus.SUCCESS

    @classmethod
    def failure(cls, name: str, error: str, duration: float = 0.0) -> "JobResult":
        """Create an error result with no usage."""
        return cls(name=name, status=JobStatus.ERROR, error=error, duration=duration)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "tokensUsed": self.tokens_used,
            "cost": self.cost,
            "duration": round(self.duration, 3),
            "warnings": list(self.warnings),
        }


@dataclass
class BatchResult:
    """Outcomes of a batch of jobs in submission order."""

    results: list[JobResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def total_input_tokens(self) -> int:
        return sum(r.input_tokens for r in self.results)

    @property
    def total_output_tokens(self) -> int:
        return sum(r.output_tokens for r in self.results)

    @property
    def tokens_used(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def total_cost(self) -> float:
        return round(sum(r.cost for r in self.results), 4)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status == JobStatus.SUCCESS)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.status == JobStatus.ERROR)

    def get(self, name: str) -> JobResult | None:
        """Return the result for a job name, if present."""
        for result in self.results:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "results": [r.to_dict() for r in self.results],
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "totalCost": self.total_cost,
            "duration": round(self.duration, 3),
        }
