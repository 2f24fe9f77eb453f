"""Completion request and result entities.

- CompletionOptions: per-call generation options
- CompletionRequest: immutable request value, the identity used for caching
- CompletionResult: content plus token usage and derived cost
- StructuredCompletionResult: CompletionResult with parsed data
- CacheEntry: persisted completion with expiry/revision metadata
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CompletionOptions:
    """Generation options for a single completion.

    Attributes:
        max_tokens: Maximum output tokens
        temperature: Sampling temperature
    """

    max_tokens: int = 4096
    temperature: float = 0.0

    def __post_init__(self) -> None:
        """Validate options."""
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be between 0 and 2. Got: {self.temperature}")


@dataclass(frozen=True)
class CompletionRequest:
    """Immutable completion request.

    Two requests with the same prompt, model, max_tokens and temperature
    share one fingerprint.
    """

    prompt: str
    model: str
    max_tokens: int
    temperature: float

    @classmethod
    def create(cls, prompt: str, model: str, options: CompletionOptions) -> "CompletionRequest":
        """Build a request from a prompt, model name and options."""
        return cls(
            prompt=prompt,
            model=model,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
        )

    def fingerprint(self) -> str:
        """Return a deterministic 16-character hex digest of the request."""
        canonical = json.dumps(
            {
                "prompt": self.prompt,
                "model": self.model,
                "maxTokens": self.max_tokens,
                "temperature": self.temperature,
            },
            sort_keys=True,
            ensure_ascii=False,
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


@dataclass
class CompletionResult:
    """Result of a completion call.

    Attributes:
        content: Generated text
        input_tokens: Prompt tokens billed
        output_tokens: Completion tokens billed
        cost: USD cost computed from the token counts
    """

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "content": self.content,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletionResult":
        """Create a CompletionResult from its serialized form."""
        return cls(
            content=str(data["content"]),
            input_tokens=int(data.get("inputTokens", 0)),
            output_tokens=int(data.get("outputTokens", 0)),
            cost=float(data.get("cost", 0.0)),
        )


@dataclass
class StructuredCompletionResult(CompletionResult):
    """Completion result carrying schema-validated data."""

    data: Any = None


@dataclass
class CacheEntry:
    """Persisted completion.

    Attributes:
        result: Cached completion result
        timestamp: Creation time as epoch seconds
        fingerprint: Request fingerprint (cache key)
        model: Model that produced the result
        source_revision: Source revision at write time, if determinable
    """

    result: CompletionResult
    timestamp: float
    fingerprint: str
    model: str
    source_revision: str | None = None

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.timestamp > ttl_seconds

    def matches_revision(self, current_revision: str | None) -> bool:
        """Check the entry against the current source revision.

        An entry without a recorded revision always matches. An entry with a
        recorded revision matches only an equal, determinable revision.
        """
        if self.source_revision is None:
            return True
        return self.source_revision == current_revision

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "result": self.result.to_dict(),
            "timestamp": self.timestamp,
            "promptHash": self.fingerprint,
            "model": self.model,
            "gitCommit": self.source_revision,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """Create a CacheEntry from its serialized form.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field has the wrong type
        """
        return cls(
            result=CompletionResult.from_dict(data["result"]),
            timestamp=float(data["timestamp"]),
            fingerprint=str(data["promptHash"]),
            model=str(data["model"]),
            source_revision=data.get("gitCommit"),
        )
