"""Error taxonomy for the LLM runtime.

- TransientProviderError: retryable (timeouts, rate limits, 5xx)
- PermanentProviderError: not retried (auth, validation, other 4xx)
- ExtractionFailure: no parsable payload in model output
- SchemaValidationFailure: payload parsed but violated its schema
- CacheIOError: non-fatal, treated as a cache miss
"""


class LLMError(Exception):
    """Base class for all LLM runtime errors."""

    pass


class ProviderError(LLMError):
    """Error raised by a provider call.

    Attributes:
        provider: Provider name (e.g., "Anthropic")
        status_code: HTTP status returned by the vendor, if any
        retry_after: Seconds the vendor asked us to wait, if any
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after


class TransientProviderError(ProviderError):
    """Retryable provider failure (timeout, rate limit, server error)."""

    pass


class PermanentProviderError(ProviderError):
    """Non-retryable provider failure (authentication, bad request)."""

    pass


class ExtractionFailure(LLMError):
    """No extractable text or structured payload in a model response."""

    def __init__(self, message: str, raw_payload: str = "") -> None:
        super().__init__(message)
        self.raw_payload = raw_payload


class SchemaValidationFailure(LLMError):
    """Structured payload failed schema validation.

    Attributes:
        errors: Field-path-qualified error messages
        raw_payload: Truncated payload for diagnostics
    """

    def __init__(self, message: str, errors: list[str] | None = None, raw_payload: str = "") -> None:
        super().__init__(message)
        self.errors = errors or []
        self.raw_payload = raw_payload


class CacheIOError(LLMError):
    """Cache store could not be read or written."""

    pass
