"""Project context entity: what the analyzers and doc generators know about a codebase.

The context is gathered once per run (see ``lean_intel.context``) and fed
into every prompt. Manifest contents are redacted before they land here.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class DocumentationTier(Enum):
    """Documentation depth chosen from codebase size."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


# Source file count thresholds (exclusive upper bounds)
MINIMAL_TIER_LIMIT = 20
STANDARD_TIER_LIMIT = 200

# Industries whose projects always get the full documentation suite
REGULATED_INDUSTRY_KEYWORDS = ("health", "medical", "fhir", "hipaa", "finance", "fintech", "banking")


def determine_tier(source_file_count: int, industry: str | None = None) -> DocumentationTier:
    """Pick the documentation tier for a codebase.

    Args:
        source_file_count: Number of source files
        industry: Optional industry hint (regulated industries get comprehensive)

    Returns:
        DocumentationTier
    """
    if industry and any(k in industry.lower() for k in REGULATED_INDUSTRY_KEYWORDS):
        return DocumentationTier.COMPREHENSIVE
    if source_file_count < MINIMAL_TIER_LIMIT:
        return DocumentationTier.MINIMAL
    if source_file_count < STANDARD_TIER_LIMIT:
        return DocumentationTier.STANDARD
    return DocumentationTier.COMPREHENSIVE


@dataclass
class ProjectContext:
    """Facts about the project under analysis.

    Attributes:
        root_path: Absolute path to the project root
        name: Project name (directory name by default)
        languages: Detected languages, most files first
        file_count: Number of source files
        line_count: Total lines across source files
        file_tree: Indented listing of the project (bounded)
        manifests: Dependency manifest file name to (redacted) content
        recent_commits: Recent commit subjects, newest first
        git_revision: Short commit hash of HEAD, if a git repository
        tier: Documentation tier
    """

    root_path: Path
    name: str
    languages: list[str] = field(default_factory=list)
    file_count: int = 0
    line_count: int = 0
    file_tree: str = ""
    manifests: dict[str, str] = field(default_factory=dict)
    recent_commits: list[str] = field(default_factory=list)
    git_revision: str | None = None
    tier: DocumentationTier = DocumentationTier.MINIMAL

    def __post_init__(self) -> None:
        """Normalize the root path."""
        if isinstance(self.root_path, str):
            self.root_path = Path(self.root_path)
        self.root_path = self.root_path.resolve()

    @property
    def primary_language(self) -> str | None:
        return self.languages[0] if self.languages else None

    def to_prompt_vars(self) -> dict[str, Any]:
        """Variables exposed to prompt templates."""
        return {
            "project_name": self.name,
            "languages": self.languages,
            "file_count": self.file_count,
            "line_count": self.line_count,
            "file_tree": self.file_tree,
            "manifests": self.manifests,
            "recent_commits": self.recent_commits,
            "tier": self.tier.value,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (manifest contents omitted)."""
        return {
            "rootPath": str(self.root_path),
            "name": self.name,
            "languages": self.languages,
            "fileCount": self.file_count,
            "lineCount": self.line_count,
            "manifests": sorted(self.manifests),
            "gitRevision": self.git_revision,
            "tier": self.tier.value,
        }
