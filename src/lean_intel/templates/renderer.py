"""Prompt template renderer.

Renders prompts from Jinja2 templates shipped in ``lean_intel/templates/prompts``.
Rendering is deterministic: identical variables produce identical prompts,
which keeps cache fingerprints stable across runs.
"""

import logging
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

logger = logging.getLogger(__name__)


class PromptRenderer:
    """Renders prompt templates.

    Usage:
        renderer = PromptRenderer()
        prompt = renderer.render("security.j2", **context.to_prompt_vars())
    """

    def __init__(self) -> None:
        self._env = Environment(
            loader=PackageLoader("lean_intel", "templates/prompts"),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, **variables: Any) -> str:
        """Render a template.

        Args:
            template_name: Template file name (e.g., "security.j2")
            **variables: Template variables

        Returns:
            Rendered prompt

        Raises:
            ValueError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(template_name)
            return template.render(**variables)
        except TemplateError as e:
            logger.error("Failed to render prompt %s: %s", template_name, e)
            raise ValueError(f"Prompt rendering failed for {template_name}: {e}") from e
