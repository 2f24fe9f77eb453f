"""Prompt definitions for analyzers and documentation files.

Each analyzer pairs a template with its report schema and generation
options. Documentation files are chosen by tier; ARCHITECTURE.md is always
first and feeds every other file.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from lean_intel.models.completion import CompletionOptions
from lean_intel.models.project import DocumentationTier, ProjectContext
from lean_intel.models.reports import (
    SEVERITY_FIELDS,
    CostReport,
    GradedReport,
    HipaaReport,
    LicenseReport,
    QualityReport,
    SecurityReport,
)
from lean_intel.models.results import JobResult
from lean_intel.templates import PromptRenderer

ARCHITECTURE_FILE = "ARCHITECTURE.md"

DOC_OPTIONS = CompletionOptions(max_tokens=8000, temperature=0.3)
SUMMARY_OPTIONS = CompletionOptions(max_tokens=8000, temperature=0.3)


@dataclass(frozen=True)
class AnalyzerDefinition:
    """Prompt, schema and options for one analysis category.

    Attributes:
        category: Analyzer name (security, license, quality, cost, hipaa)
        title: Human-readable name used in prompts and logs
        schema: Report schema the response must satisfy
        options: Generation options
    """

    category: str
    title: str
    schema: type[GradedReport]
    options: CompletionOptions

    @property
    def template(self) -> str:
        return f"{self.category}.j2"

    @property
    def severity_fields(self) -> tuple[str, ...]:
        return SEVERITY_FIELDS.get(self.schema, ())


ANALYZERS: dict[str, AnalyzerDefinition] = {
    definition.category: definition
    for definition in (
        AnalyzerDefinition(
            "security", "security", SecurityReport, CompletionOptions(12000, 0.1)
        ),
        AnalyzerDefinition(
            "license", "license compliance", LicenseReport, CompletionOptions(12000, 0.1)
        ),
        AnalyzerDefinition(
            "quality", "code quality", QualityReport, CompletionOptions(12000, 0.2)
        ),
        AnalyzerDefinition(
            "cost", "infrastructure cost", CostReport, CompletionOptions(12000, 0.2)
        ),
        AnalyzerDefinition(
            "hipaa", "HIPAA compliance", HipaaReport, CompletionOptions(12000, 0.1)
        ),
    )
}


@dataclass(frozen=True)
class DocumentDefinition:
    file_name: str
    purpose: str


_DOCUMENTS = {
    ARCHITECTURE_FILE: "Describe the system architecture: components, their responsibilities, "
    "how data flows between them, and the main technology choices.",
    "SETUP.md": "Explain how to install dependencies, configure and run the project locally.",
    "API.md": "Document the public interfaces: endpoints, commands or exported functions.",
    "DATA_MODEL.md": "Describe the core data structures, storage and their relationships.",
    "TESTING.md": "Explain how the project is tested and how to run and extend the tests.",
    "DEPLOYMENT.md": "Describe how the project is built, packaged and deployed.",
    "SECURITY.md": "Describe authentication, authorization, secret handling and known risks.",
    "CONTRIBUTING.md": "Describe the development workflow, conventions and review process.",
    "TROUBLESHOOTING.md": "List common failures and how to diagnose and fix them.",
}

TIER_DOCUMENTS: dict[DocumentationTier, tuple[str, ...]] = {
    DocumentationTier.MINIMAL: (ARCHITECTURE_FILE, "SETUP.md"),
    DocumentationTier.STANDARD: (
        ARCHITECTURE_FILE,
        "SETUP.md",
        "API.md",
        "DATA_MODEL.md",
        "TESTING.md",
    ),
    DocumentationTier.COMPREHENSIVE: tuple(_DOCUMENTS),
}

DOCUMENT_FILES: tuple[str, ...] = tuple(_DOCUMENTS)


def get_analyzer(category: str) -> AnalyzerDefinition:
    """Look up an analyzer by category.

    Raises:
        ValueError: If the category is unknown
    """
    try:
        return ANALYZERS[category]
    except KeyError:
        raise ValueError(
            f"Unknown analyzer '{category}'. Must be one of: {sorted(ANALYZERS)}"
        ) from None


def documents_for_tier(tier: DocumentationTier) -> list[DocumentDefinition]:
    """Documentation files generated for a tier, ARCHITECTURE.md first."""
    return [DocumentDefinition(name, _DOCUMENTS[name]) for name in TIER_DOCUMENTS[tier]]


def documents_named(file_names: Iterable[str]) -> list[DocumentDefinition]:
    """Definitions for the given file names, in canonical order.

    Raises:
        ValueError: If a file name is not a known document
    """
    wanted = set(file_names)
    unknown = wanted - set(_DOCUMENTS)
    if unknown:
        raise ValueError(
            f"Unknown document(s) {sorted(unknown)}. Must be one of: {list(_DOCUMENTS)}"
        )
    return [
        DocumentDefinition(name, purpose)
        for name, purpose in _DOCUMENTS.items()
        if name in wanted
    ]


class PromptBuilder:
    """Builds prompts from project context."""

    def __init__(self, renderer: PromptRenderer | None = None) -> None:
        self.renderer = renderer or PromptRenderer()

    def analyzer_prompt(self, definition: AnalyzerDefinition, context: ProjectContext) -> str:
        return self.renderer.render(
            definition.template, title=definition.title, **context.to_prompt_vars()
        )

    def document_prompt(
        self,
        document: DocumentDefinition,
        context: ProjectContext,
        architecture: str | None = None,
    ) -> str:
        return self.renderer.render(
            "document.j2",
            file_name=document.file_name,
            purpose=document.purpose,
            architecture=architecture,
            **context.to_prompt_vars(),
        )

    def summary_prompt(self, context: ProjectContext, results: list[JobResult]) -> str:
        findings: list[dict[str, Any]] = [
            {
                "name": r.name,
                "status": r.status.value,
                "output": r.output,
                "error": r.error,
            }
            for r in results
        ]
        return self.renderer.render("summary.j2", results=findings, **context.to_prompt_vars())
