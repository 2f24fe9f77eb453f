"""Jinja2 prompt templates."""

from lean_intel.templates.renderer import PromptRenderer

__all__ = ["PromptRenderer"]
