"""Provider configuration entity for lean-intel.

Defines the configuration for the LLM vendor used for analysis and
documentation generation. Supports Anthropic, OpenAI, Google and xAI.
"""

import os
from dataclasses import dataclass, field
from enum import Enum


class Vendor(Enum):
    """Supported LLM vendors."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    XAI = "xai"


# Default models used when no model is configured
MODEL_DEFAULTS: dict[Vendor, str] = {
    Vendor.ANTHROPIC: "claude-sonnet-4-6",
    Vendor.OPENAI: "gpt-4.1",
    Vendor.GOOGLE: "gemini-2.5-flash",
    Vendor.XAI: "grok-3",
}

# Environment variables consulted when no api_key is configured
API_KEY_ENV_VARS: dict[Vendor, tuple[str, ...]] = {
    Vendor.ANTHROPIC: ("ANTHROPIC_API_KEY",),
    Vendor.OPENAI: ("OPENAI_API_KEY",),
    Vendor.GOOGLE: ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    Vendor.XAI: ("XAI_API_KEY",),
}

VALID_PROVIDERS = frozenset(v.value for v in Vendor)


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider.

    Attributes:
        provider: Vendor name (anthropic, openai, google, xai)
        model: Model identifier (defaults per vendor)
        api_key: API key (falls back to the vendor's environment variable)
        timeout: Per-call timeout in seconds
        max_tokens: Default maximum output tokens
    """

    provider: str
    model: str = ""
    api_key: str | None = None
    timeout: float = field(default=600.0)
    max_tokens: int = field(default=8192)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        self.model = (self.model or "").strip() or MODEL_DEFAULTS[self.vendor]

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive. Got: {self.timeout}")

        if not self.api_key:
            self.api_key = self._api_key_from_env()
        if not self.api_key:
            env_vars = " or ".join(API_KEY_ENV_VARS[self.vendor])
            raise ValueError(f"api_key is required for {self.provider} provider (set {env_vars})")

    @property
    def vendor(self) -> Vendor:
        return Vendor(self.provider)

    def _api_key_from_env(self) -> str | None:
        for var in API_KEY_ENV_VARS[self.vendor]:
            value = os.environ.get(var)
            if value:
                return value
        return None

    def validate(self) -> list[str]:
        """Validate configuration and return warnings.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.max_tokens < 1000:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate responses"
            )

        prefixes = {
            Vendor.ANTHROPIC: "sk-ant-",
            Vendor.OPENAI: "sk-",
            Vendor.XAI: "xai-",
        }
        prefix = prefixes.get(self.vendor)
        if prefix and self.api_key and not self.api_key.startswith(prefix):
            warnings.append(f"api_key for {self.provider} usually starts with '{prefix}'")

        return warnings
