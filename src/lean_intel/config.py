"""lean-intel configuration system.

Configuration is YAML-based with a few CLI overrides (--concurrency, --industry,
--skip-cache, --output). Supports environment variable substitution (${VAR})
in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. <project>/.lean-intel/config.yaml
3. <project>/lean-intel.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lean_intel.llm.retry import RetryPolicy
from lean_intel.models.llm_config import MODEL_DEFAULTS, VALID_PROVIDERS, ProviderConfig, Vendor

CONFIG_DIR = ".lean-intel"

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class LLMSettings:
    """LLM provider settings as written in the config file.

    The API key is resolved (config value or environment variable) only when
    a provider is actually needed, so commands that never call a provider
    work without one.

    Attributes:
        provider: Vendor name (anthropic, openai, google, xai)
        model: Model identifier (empty selects the vendor default)
        api_key: API key or "${VAR}" reference, resolved lazily
        timeout: Per-call timeout in seconds
        max_tokens: Default maximum output tokens
    """

    provider: str = "anthropic"
    model: str = ""
    api_key: str | None = None
    timeout: float = 600.0
    max_tokens: int = 8192

    def __post_init__(self) -> None:
        """Validate LLM settings."""
        self.provider = str(self.provider).lower().strip()
        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid LLM provider: {self.provider}. Valid: {sorted(VALID_PROVIDERS)}"
            )

    @property
    def resolved_model(self) -> str:
        return self.model or MODEL_DEFAULTS[Vendor(self.provider)]

    def provider_config(self) -> ProviderConfig:
        """Build the provider configuration.

        A configured api_key is only substituted here, so an unset
        "${VAR}" reference fails the commands that need a provider and no
        others.

        Raises:
            ValueError: If no API key is configured or set in the environment
        """
        return ProviderConfig(
            provider=self.provider,
            model=self.model,
            api_key=substitute_env_vars(self.api_key) if self.api_key else None,
            timeout=self.timeout,
            max_tokens=self.max_tokens,
        )


@dataclass
class RuntimeConfig:
    """Orchestration runtime settings.

    Attributes:
        concurrency: Maximum LLM calls in flight
        cache_ttl_hours: Cache entry lifetime
        skip_cache: Bypass the result cache
        max_retries: Total attempts per provider call
        initial_delay: Seconds before the first retry
    """

    concurrency: int = 3
    cache_ttl_hours: float = 24.0
    skip_cache: bool = False
    max_retries: int = 3
    initial_delay: float = 2.0

    def __post_init__(self) -> None:
        """Validate runtime settings."""
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1 (got {self.concurrency})")
        if self.cache_ttl_hours <= 0:
            raise ValueError(f"cache_ttl_hours must be positive (got {self.cache_ttl_hours})")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1 (got {self.max_retries})")

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, initial_delay=self.initial_delay)


@dataclass
class OutputConfig:
    """Output configuration.

    Attributes:
        directory: Where generated documentation is written
        reports_directory: Where analyzer reports are written
    """

    directory: str = "docs"
    reports_directory: str = f"{CONFIG_DIR}/reports"


@dataclass
class ProjectSettings:
    """Project description and gathering settings.

    Attributes:
        industry: Industry hint; regulated industries get the comprehensive tier
        redact_pii: Also redact emails and SSNs from gathered content
    """

    industry: str | None = None
    redact_pii: bool = False


@dataclass
class LeanIntelConfig:
    """Top-level lean-intel configuration.

    Attributes:
        llm: Provider settings
        runtime: Concurrency, cache and retry settings
        output: Output locations
        project: Industry and redaction settings
    """

    llm: LLMSettings = field(default_factory=LLMSettings)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    project: ProjectSettings = field(default_factory=ProjectSettings)

    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(value: Any) -> Any:
    """Substitute ${VAR} references in config values.

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return _ENV_VAR_PATTERN.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the configuration file for a project.

    Args:
        start_path: Project directory (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    start_path = (start_path or Path.cwd()).resolve()

    for candidate in (start_path / CONFIG_DIR / "config.yaml", start_path / "lean-intel.yaml"):
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def load_config_from_dict(data: dict[str, Any]) -> LeanIntelConfig:
    """Load configuration from a dictionary.

    Raises:
        ValueError: On invalid values or unset environment variables
    """
    llm_data = dict(data.get("llm") or {})
    # llm.api_key is substituted when a provider is built
    api_key = llm_data.pop("api_key", None)
    data = substitute_env_vars({**data, "llm": llm_data})
    config = LeanIntelConfig()

    if data["llm"] or api_key:
        llm_data = data["llm"]
        config.llm = LLMSettings(
            provider=llm_data.get("provider", config.llm.provider),
            model=llm_data.get("model") or "",
            api_key=api_key,
            timeout=float(llm_data.get("timeout", config.llm.timeout)),
            max_tokens=int(llm_data.get("max_tokens", config.llm.max_tokens)),
        )

    if data.get("runtime"):
        runtime_data = data["runtime"]
        defaults = RuntimeConfig()
        config.runtime = RuntimeConfig(
            concurrency=int(runtime_data.get("concurrency", defaults.concurrency)),
            cache_ttl_hours=float(runtime_data.get("cache_ttl_hours", defaults.cache_ttl_hours)),
            skip_cache=bool(runtime_data.get("skip_cache", defaults.skip_cache)),
            max_retries=int(runtime_data.get("max_retries", defaults.max_retries)),
            initial_delay=float(runtime_data.get("initial_delay", defaults.initial_delay)),
        )

    if data.get("output"):
        output_data = data["output"]
        config.output = OutputConfig(
            directory=output_data.get("directory", config.output.directory),
            reports_directory=output_data.get(
                "reports_directory", config.output.reports_directory
            ),
        )

    if data.get("project"):
        project_data = data["project"]
        config.project = ProjectSettings(
            industry=project_data.get("industry") or None,
            redact_pii=bool(project_data.get("redact_pii", False)),
        )

    return config


def load_config(
    config_path: Path | None = None,
    project_path: Path | None = None,
    auto_discover: bool = True,
) -> LeanIntelConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        project_path: Project directory searched when no path is given
        auto_discover: Whether to search for a config file if not specified

    Returns:
        LeanIntelConfig instance (defaults if no file is found)

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
        ValueError: If the file contains invalid settings
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path: Path | None = config_path
    elif auto_discover:
        found_path = find_config_file(project_path)
    else:
        found_path = None

    if found_path is None:
        return LeanIntelConfig()

    with open(found_path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {found_path}")

    config = load_config_from_dict(data)
    config._config_path = found_path
    return config


def create_default_config(provider: str = "anthropic") -> str:
    """Create default configuration YAML content.

    Args:
        provider: Vendor to preconfigure

    Returns:
        YAML string with default configuration and comments
    """
    settings = LLMSettings(provider=provider)
    env_var = {
        "anthropic": "ANTHROPIC_API_KEY",
        "openai": "OPENAI_API_KEY",
        "google": "GEMINI_API_KEY",
        "xai": "XAI_API_KEY",
    }[settings.provider]

    return f'''# lean-intel configuration

# LLM provider
llm:
  provider: "{settings.provider}"   # anthropic, openai, google, xai
  model: "{settings.resolved_model}"
  # api_key: "${{{env_var}}}"  # defaults to the {env_var} environment variable
  timeout: 600        # seconds per call
  max_tokens: 8192

# Orchestration runtime
runtime:
  concurrency: 3      # LLM calls in flight
  cache_ttl_hours: 24
  skip_cache: false
  max_retries: 3      # total attempts per call
  initial_delay: 2.0  # seconds before the first retry, doubled each time

# Output locations (relative to the project)
output:
  directory: "docs"
  reports_directory: ".lean-intel/reports"

# Project
project:
  # industry: "healthcare"  # regulated industries get comprehensive docs
  redact_pii: false         # also redact emails and SSNs
'''
