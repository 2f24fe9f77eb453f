"""Incremental documentation updates.

After a full ``docs`` run the commit and the generated files are recorded
in ``.lean-intel/generation.json``. ``update`` diffs the project against
that commit, sorts the changed files into areas (api, database, config...)
and regenerates only the documents those areas affect.
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from lean_intel.config import CONFIG_DIR
from lean_intel.llm.prompts import ARCHITECTURE_FILE, DOCUMENT_FILES

logger = logging.getLogger(__name__)

GENERATION_FILE = Path(CONFIG_DIR) / "generation.json"

# Changes to these files alter how the whole project is built or run
CRITICAL_FILES = frozenset(
    {
        "package.json",
        "pyproject.toml",
        "setup.py",
        "setup.cfg",
        "requirements.txt",
        "go.mod",
        "cargo.toml",
        "gemfile",
        "pom.xml",
        "build.gradle",
        "pubspec.yaml",
        "tsconfig.json",
        "webpack.config.js",
        "vite.config.ts",
        "next.config.js",
    }
)

# Areas counted as significant structural change
STRUCTURAL_AREAS = ("components", "routes", "api", "database", "styling")

_KEYWORD_DOCS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("auth", "security", "crypto", "encrypt", "secret", "permission"), "SECURITY.md"),
    (
        ("docker", "deploy", ".github/workflows", ".gitlab-ci", "jenkinsfile", "terraform",
         ".tf", "k8s", "kubernetes", "helm"),
        "DEPLOYMENT.md",
    ),
    (("error", "exception"), "TROUBLESHOOTING.md"),
    (("contributing", "pre-commit", "lint", "editorconfig"), "CONTRIBUTING.md"),
)  # fmt: skip


class ChangeStatus(Enum):
    """How a file changed between two commits."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ImpactLevel(Enum):
    """Rough size of a change set."""

    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    MAJOR = "major"


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: ChangeStatus
    old_path: str | None = None


@dataclass
class ChangeCategories:
    """Changed file paths grouped by the area of the project they touch."""

    components: list[str] = field(default_factory=list)
    routes: list[str] = field(default_factory=list)
    api: list[str] = field(default_factory=list)
    config: list[str] = field(default_factory=list)
    database: list[str] = field(default_factory=list)
    styling: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    other: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(len(paths) for paths in vars(self).values())

    @property
    def all_paths(self) -> list[str]:
        return [path for paths in vars(self).values() for path in paths]

    def active_areas(self) -> list[str]:
        """Structural areas with at least one change."""
        return [area for area in STRUCTURAL_AREAS if getattr(self, area)]


@dataclass
class GenerationRecord:
    """What the last documentation run produced.

    Attributes:
        commit: Git revision the documents were generated at
        timestamp: ISO-8601 UTC time of the run
        tier: Documentation tier of the run
        generated_files: File names written by the run
    """

    commit: str
    timestamp: str
    tier: str
    generated_files: list[str] = field(default_factory=list)

    @classmethod
    def create(cls, commit: str, tier: str, generated_files: list[str]) -> "GenerationRecord":
        """Create a record stamped with the current time."""
        return cls(
            commit=commit,
            timestamp=datetime.now(UTC).isoformat(),
            tier=tier,
            generated_files=list(generated_files),
        )

    def merged(self, commit: str, generated_files: list[str]) -> "GenerationRecord":
        """A new record at ``commit`` listing previous and newly generated files."""
        files = list(dict.fromkeys([*self.generated_files, *generated_files]))
        return GenerationRecord.create(commit, self.tier, files)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "commit": self.commit,
            "timestamp": self.timestamp,
            "tier": self.tier,
            "generatedFiles": list(self.generated_files),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenerationRecord":
        """Create a record from its serialized form.

        Raises:
            KeyError: If a required field is missing
        """
        return cls(
            commit=str(data["commit"]),
            timestamp=str(data["timestamp"]),
            tier=str(data["tier"]),
            generated_files=[str(f) for f in data.get("generatedFiles", [])],
        )


# =============================================================================
# Generation record storage
# =============================================================================


def load_generation_record(project_path: Path) -> GenerationRecord | None:
    """Load the last generation record.

    Returns:
        The record, or None if there is none or it cannot be read
    """
    path = project_path / GENERATION_FILE
    if not path.is_file():
        return None
    try:
        return GenerationRecord.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Ignoring unreadable generation record %s: %s", path, e)
        return None


def save_generation_record(project_path: Path, record: GenerationRecord) -> Path:
    """Write the generation record and return its path."""
    path = project_path / GENERATION_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record.to_dict(), indent=2))
    logger.debug("Saved generation record: %s", path)
    return path


# =============================================================================
# Git
# =============================================================================


def _git(project_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        cwd=str(project_path),
        timeout=30,
    )


def is_valid_commit(project_path: Path, commit: str) -> bool:
    """Check that a revision names a commit in the repository."""
    try:
        result = _git(project_path, "rev-parse", "--verify", "--quiet", f"{commit}^{{commit}}")
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return False
    return result.returncode == 0


def parse_name_status(output: str) -> list[ChangedFile]:
    """Parse ``git diff --name-status`` output.

    Copies count as added files and type changes as modifications.
    """
    changes = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0]:
            continue
        code = parts[0][0]
        if code == "R" and len(parts) >= 3:
            changes.append(ChangedFile(parts[2], ChangeStatus.RENAMED, old_path=parts[1]))
        elif code == "C" and len(parts) >= 3:
            changes.append(ChangedFile(parts[2], ChangeStatus.ADDED))
        elif code == "A":
            changes.append(ChangedFile(parts[1], ChangeStatus.ADDED))
        elif code == "D":
            changes.append(ChangedFile(parts[1], ChangeStatus.DELETED))
        else:
            changes.append(ChangedFile(parts[1], ChangeStatus.MODIFIED))
    return changes


def changed_files_since(project_path: Path, commit: str) -> list[ChangedFile]:
    """List files changed between a commit and HEAD.

    Raises:
        ValueError: If git is unavailable or the diff fails
    """
    try:
        result = _git(project_path, "diff", "--name-status", "-M", commit, "HEAD")
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        raise ValueError(f"Failed to get changed files: {e}") from e
    if result.returncode != 0:
        raise ValueError(f"Failed to get changed files: {result.stderr.strip()}")
    return parse_name_status(result.stdout)


# =============================================================================
# Change analysis
# =============================================================================


def _area(path: str) -> str:
    p = "/" + path.lower()
    name = p.rsplit("/", 1)[-1]

    if (
        "/components/" in p
        or "/component/" in p
        or p.endswith((".tsx", ".jsx", ".vue", ".svelte"))
    ):
        return "components"
    if (
        any(s in p for s in ("/routes/", "/router/", "/pages/", "/urls/", "app-routing"))
        or name in ("urls.py", "routes.py", "routes.ts", "routes.js", "route.ts", "route.js")
    ):
        return "routes"
    if any(
        s in p
        for s in ("/api/", "/services/", "/controllers/", "/endpoints/", "/handlers/", "/views/")
    ):
        return "api"
    if (
        "config" in p
        or name.endswith((".json", ".yaml", ".yml", ".toml", ".ini", ".cfg"))
        or name.startswith(".env")
        or any(s in p for s in ("tsconfig", "webpack", "vite.config", "next.config"))
    ):
        return "config"
    if any(
        s in p
        for s in ("/models/", "/entities/", "/schema/", "/migrations/", "/prisma/", "/drizzle/")
    ) or name in ("models.py", "schema.sql", "schema.prisma"):
        return "database"
    if (
        any(s in p for s in ("/styles/", "/css/", "tailwind"))
        or name.endswith((".css", ".scss", ".sass", ".less"))
    ):
        return "styling"
    if (
        any(s in p for s in ("/test/", "/tests/", "__tests__"))
        or name.startswith("test_")
        or any(s in name for s in (".test.", ".spec.", "_test."))
    ):
        return "tests"
    return "other"


def categorize_changes(files: list[ChangedFile]) -> ChangeCategories:
    """Group changed files by area; deleted files are left out."""
    categories = ChangeCategories()
    for changed in files:
        if changed.status == ChangeStatus.DELETED:
            continue
        getattr(categories, _area(changed.path)).append(changed.path)
    return categories


def map_changes_to_docs(categories: ChangeCategories, existing_docs: list[str]) -> list[str]:
    """Documents affected by a change set.

    Only documents that were generated before are returned, in the order
    they are generated.
    """
    affected: set[str] = set()

    if categories.components or categories.routes or categories.api or categories.database:
        affected.add(ARCHITECTURE_FILE)
    if categories.routes or categories.api:
        affected.add("API.md")
    if categories.database:
        affected.add("DATA_MODEL.md")
    if categories.tests:
        affected.add("TESTING.md")
    if categories.config:
        affected.update((ARCHITECTURE_FILE, "SETUP.md"))

    for path in categories.all_paths:
        lower = path.lower()
        for keywords, document in _KEYWORD_DOCS:
            if any(k in lower for k in keywords):
                affected.add(document)

    existing = {Path(doc).name for doc in existing_docs}
    return [doc for doc in DOCUMENT_FILES if doc in affected and doc in existing]


def estimate_impact_level(categories: ChangeCategories) -> ImpactLevel:
    """Size a change set; config changes weigh triple and tests are not counted."""
    weighted = categories.total - len(categories.tests) + 2 * len(categories.config)
    if weighted <= 2:
        return ImpactLevel.MINIMAL
    if weighted <= 5:
        return ImpactLevel.MODERATE
    if weighted <= 15:
        return ImpactLevel.SIGNIFICANT
    return ImpactLevel.MAJOR


def full_regeneration_reason(categories: ChangeCategories) -> str | None:
    """Why a change set should be handled by a full ``docs`` run, if it should."""
    for path in categories.all_paths:
        if Path(path).name.lower() in CRITICAL_FILES:
            return f"Critical config file changed: {path}"

    if len(categories.active_areas()) >= 4:
        return "Changes span too many areas of the codebase"

    return None
