"""LLM provider gateway using LiteLLM.

One provider class per vendor, all sharing a LiteLLM-backed base. Each call
performs exactly one outbound request; retrying is the caller's concern
(see ``lean_intel.llm.retry``). Vendor SDK exceptions surfaced by LiteLLM
are translated into TransientProviderError or PermanentProviderError.

Structured output:
- Anthropic: forced tool use, the tool's input schema is the payload schema
- OpenAI: JSON mode
- Google, xAI: freeform completion recovered by the resilience pipeline
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import litellm
from pydantic import TypeAdapter

from lean_intel.llm.errors import (
    ExtractionFailure,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)
from lean_intel.llm.pricing import DEFAULT_PRICING, PricingTable, calculate_cost
from lean_intel.llm.resilience import parse_structured
from lean_intel.models.completion import (
    CompletionOptions,
    CompletionResult,
    StructuredCompletionResult,
)
from lean_intel.models.llm_config import ProviderConfig, Vendor

logger = logging.getLogger(__name__)

_TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    TimeoutError,
    ConnectionError,
)


class LLMProvider(ABC):
    """Interface every vendor provider implements."""

    @abstractmethod
    async def generate_completion(
        self, prompt: str, options: CompletionOptions
    ) -> CompletionResult:
        """Generate a freeform completion."""

    @abstractmethod
    async def generate_structured_completion(
        self,
        prompt: str,
        options: CompletionOptions,
        schema: Any,
        severity_fields: Iterable[str] | None = None,
    ) -> StructuredCompletionResult:
        """Generate a completion whose payload is validated against ``schema``."""

    @abstractmethod
    def get_name(self) -> str:
        """Display name of the vendor (e.g., "Anthropic")."""

    @abstractmethod
    def get_model(self) -> str:
        """Model identifier used for calls."""

    @abstractmethod
    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """USD cost of a call with the given token counts."""


def _retry_after_seconds(error: BaseException) -> float | None:
    """Read a Retry-After header from the vendor response, if present."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    try:
        value = headers.get("retry-after")
    except AttributeError:
        return None
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def translate_error(error: Exception, provider: str) -> ProviderError:
    """Map a LiteLLM/vendor exception onto the provider error taxonomy."""
    if isinstance(error, ProviderError):
        return error

    status = getattr(error, "status_code", None)
    if not isinstance(status, int):
        status = None
    retry_after = _retry_after_seconds(error)
    message = f"{provider} request failed: {error}"

    transient = isinstance(error, _TRANSIENT_EXCEPTIONS) or (
        status is not None and (status == 429 or status >= 500)
    )
    if not transient and "overloaded" in str(error).lower():
        transient = True

    error_class = TransientProviderError if transient else PermanentProviderError
    return error_class(message, provider=provider, status_code=status, retry_after=retry_after)


class LiteLLMProvider(LLMProvider):
    """Provider backed by ``litellm.acompletion``.

    Subclasses set the vendor, the LiteLLM model prefix and display name,
    and may override structured output.
    """

    vendor: Vendor
    display_name: str
    model_prefix: str
    api_base: str | None = None

    def __init__(self, config: ProviderConfig, pricing: PricingTable = DEFAULT_PRICING) -> None:
        """Initialize provider.

        Args:
            config: Provider configuration (vendor must match this class)
            pricing: Pricing table used for cost calculation
        """
        if config.vendor != self.vendor:
            raise ValueError(
                f"{type(self).__name__} cannot serve provider '{config.provider}'"
            )
        self.config = config
        self.pricing = pricing

    def get_name(self) -> str:
        return self.display_name

    def get_model(self) -> str:
        return self.config.model

    def get_litellm_model_name(self) -> str:
        """Model name with the LiteLLM routing prefix."""
        return f"{self.model_prefix}/{self.config.model}"

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return calculate_cost(
            self.pricing, self.vendor, self.config.model, input_tokens, output_tokens
        )

    def _completion_kwargs(self, prompt: str, options: CompletionOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.get_litellm_model_name(),
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "api_key": self.config.api_key,
            "timeout": self.config.timeout,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    async def _call(self, **kwargs: Any) -> Any:
        """Perform one LiteLLM call, translating failures."""
        try:
            return await litellm.acompletion(**kwargs)
        except Exception as e:
            raise translate_error(e, self.display_name) from e

    def _usage(self, response: Any) -> tuple[int, int]:
        usage = getattr(response, "usage", None)
        if usage is None:
            return 0, 0
        return (
            int(getattr(usage, "prompt_tokens", 0) or 0),
            int(getattr(usage, "completion_tokens", 0) or 0),
        )

    def _message(self, response: Any) -> Any:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ExtractionFailure(f"{self.display_name} returned no choices")
        return choices[0].message

    async def generate_completion(
        self, prompt: str, options: CompletionOptions
    ) -> CompletionResult:
        """Generate a freeform completion.

        Raises:
            TransientProviderError: Retryable vendor failure
            PermanentProviderError: Non-retryable vendor failure
            ExtractionFailure: The response carried no text
        """
        response = await self._call(**self._completion_kwargs(prompt, options))
        content = self._message(response).content or ""
        if not content.strip():
            raise ExtractionFailure(f"{self.display_name} returned an empty response")

        input_tokens, output_tokens = self._usage(response)
        logger.debug(
            "%s completion: %d input, %d output tokens",
            self.display_name,
            input_tokens,
            output_tokens,
        )
        return CompletionResult(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
        )

    async def generate_structured_completion(
        self,
        prompt: str,
        options: CompletionOptions,
        schema: Any,
        severity_fields: Iterable[str] | None = None,
    ) -> StructuredCompletionResult:
        """Freeform completion recovered through the resilience pipeline.

        Raises:
            ExtractionFailure: No payload could be recovered
            SchemaValidationFailure: The payload did not fit the schema
        """
        result = await self.generate_completion(prompt, options)
        data = parse_structured(result.content, schema, severity_fields).unwrap()
        return StructuredCompletionResult(
            content=result.content,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost=result.cost,
            data=data,
        )

    def _structured_result(
        self,
        response: Any,
        payload: str,
        schema: Any,
        severity_fields: Iterable[str] | None,
    ) -> StructuredCompletionResult:
        input_tokens, output_tokens = self._usage(response)
        data = parse_structured(payload, schema, severity_fields).unwrap()
        return StructuredCompletionResult(
            content=payload,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(input_tokens, output_tokens),
            data=data,
        )


class AnthropicProvider(LiteLLMProvider):
    """Claude models via Anthropic; structured output through forced tool use."""

    vendor = Vendor.ANTHROPIC
    display_name = "Anthropic"
    model_prefix = "anthropic"
    tool_name = "output"

    async def generate_structured_completion(
        self,
        prompt: str,
        options: CompletionOptions,
        schema: Any,
        severity_fields: Iterable[str] | None = None,
    ) -> StructuredCompletionResult:
        kwargs = self._completion_kwargs(prompt, options)
        kwargs["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": self.tool_name,
                    "description": "Output the structured response",
                    "parameters": TypeAdapter(schema).json_schema(),
                },
            }
        ]
        kwargs["tool_choice"] = {"type": "function", "function": {"name": self.tool_name}}

        response = await self._call(**kwargs)
        message = self._message(response)

        tool_calls = getattr(message, "tool_calls", None) or []
        if tool_calls:
            arguments = tool_calls[0].function.arguments
            payload = arguments if isinstance(arguments, str) else json.dumps(arguments)
        else:
            # Model answered in text despite the forced tool
            payload = message.content or ""
            if not payload.strip():
                raise ExtractionFailure(f"{self.display_name} returned neither tool input nor text")

        return self._structured_result(response, payload, schema, severity_fields)


class OpenAIProvider(LiteLLMProvider):
    """OpenAI models; structured output through JSON mode."""

    vendor = Vendor.OPENAI
    display_name = "OpenAI"
    model_prefix = "openai"

    async def generate_structured_completion(
        self,
        prompt: str,
        options: CompletionOptions,
        schema: Any,
        severity_fields: Iterable[str] | None = None,
    ) -> StructuredCompletionResult:
        kwargs = self._completion_kwargs(prompt, options)
        kwargs["response_format"] = {"type": "json_object"}

        response = await self._call(**kwargs)
        payload = self._message(response).content or ""
        if not payload.strip():
            raise ExtractionFailure(f"{self.display_name} returned an empty response")

        return self._structured_result(response, payload, schema, severity_fields)


class GoogleProvider(LiteLLMProvider):
    """Gemini models via Google AI Studio."""

    vendor = Vendor.GOOGLE
    display_name = "Google"
    model_prefix = "gemini"


class XAIProvider(LiteLLMProvider):
    """Grok models via the xAI OpenAI-compatible API."""

    vendor = Vendor.XAI
    display_name = "xAI"
    model_prefix = "xai"
    api_base = "https://api.x.ai/v1"


PROVIDER_CLASSES: dict[Vendor, type[LiteLLMProvider]] = {
    Vendor.ANTHROPIC: AnthropicProvider,
    Vendor.OPENAI: OpenAIProvider,
    Vendor.GOOGLE: GoogleProvider,
    Vendor.XAI: XAIProvider,
}


def create_provider(
    config: ProviderConfig, pricing: PricingTable = DEFAULT_PRICING
) -> LiteLLMProvider:
    """Create the provider for a configuration.

    Args:
        config: Provider configuration
        pricing: Pricing table passed to the provider

    Returns:
        Provider instance for the configured vendor
    """
    provider = PROVIDER_CLASSES[config.vendor](config, pricing)
    logger.debug("Using %s provider with model %s", provider.get_name(), provider.get_model())
    return provider
