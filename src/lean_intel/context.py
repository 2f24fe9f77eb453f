"""Project context gathering.

Walks the project once to collect what the prompts need: a bounded file
tree, languages by extension, dependency manifests (redacted), recent git
history and a documentation tier. Paths excluded by the ignore rules
(binaries, credential files, .leanignore) are never read.
"""

import logging
import os
import subprocess
from collections import Counter
from pathlib import Path

from lean_intel.llm.cache import get_git_revision
from lean_intel.models.project import ProjectContext, determine_tier
from lean_intel.utils.ignore import IgnoreRules
from lean_intel.utils.redaction import ContentRedactor

logger = logging.getLogger(__name__)

LANGUAGE_EXTENSIONS: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".rs": "rust",
    ".php": "php",
    ".cs": "csharp",
    ".swift": "swift",
    ".tf": "terraform",
}

MANIFEST_FILES = (
    "package.json",
    "requirements.txt",
    "pyproject.toml",
    "go.mod",
    "Cargo.toml",
    "Gemfile",
    "pom.xml",
)

SKIP_DIRS = frozenset(
    {
        ".git",
        ".lean-intel",
        ".venv",
        "venv",
        "vendor",
        "node_modules",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        ".tox",
        "dist",
        "build",
        "coverage",
        "htmlcov",
        ".idea",
        ".vscode",
        ".next",
        ".terraform",
        ".gradle",
        "Pods",
    }
)

MAX_TREE_ENTRIES = 500
MAX_MANIFEST_CHARS = 20_000
RECENT_COMMIT_COUNT = 30


class ContextGatherer:
    """Collects a ProjectContext for a directory."""

    def __init__(
        self,
        root_path: Path | str,
        redactor: ContentRedactor | None = None,
        ignore: IgnoreRules | None = None,
        max_tree_entries: int = MAX_TREE_ENTRIES,
    ) -> None:
        """Initialize the gatherer.

        Args:
            root_path: Project root
            redactor: Redactor applied to manifest contents
            ignore: Exclusion rules (defaults to built-ins plus .leanignore)
            max_tree_entries: Maximum lines in the file tree
        """
        self.root_path = Path(root_path).resolve()
        self.redactor = redactor or ContentRedactor()
        self.ignore = ignore or IgnoreRules.load(self.root_path)
        self.max_tree_entries = max_tree_entries

    def gather(self, industry: str | None = None) -> ProjectContext:
        """Gather the project context.

        Args:
            industry: Optional industry hint used for tier selection

        Returns:
            ProjectContext

        Raises:
            ValueError: If the root path is not a directory
        """
        if not self.root_path.is_dir():
            raise ValueError(f"Project path is not a directory: {self.root_path}")

        logger.info("Gathering project context...")
        source_files = self._source_files()
        languages = Counter(LANGUAGE_EXTENSIONS[f.suffix.lower()] for f in source_files)

        context = ProjectContext(
            root_path=self.root_path,
            name=self.root_path.name,
            languages=[lang for lang, _ in languages.most_common()],
            file_count=len(source_files),
            line_count=sum(self._count_lines(f) for f in source_files),
            file_tree=self._file_tree(),
            manifests=self._manifests(),
            recent_commits=self._recent_commits(),
            git_revision=get_git_revision(self.root_path),
            tier=determine_tier(len(source_files), industry),
        )

        if self.redactor.total:
            logger.info("Redacted %d secret(s) from gathered content", self.redactor.total)
        logger.debug(
            "Found %d source files (%s), tier %s",
            context.file_count,
            ", ".join(context.languages) or "no known languages",
            context.tier.value,
        )
        return context

    def _walk(self):
        for dirpath, dirnames, filenames in os.walk(self.root_path):
            directory = Path(dirpath)
            rel = directory.relative_to(self.root_path)
            dirnames[:] = sorted(
                d
                for d in dirnames
                if d not in SKIP_DIRS
                and not d.endswith(".egg-info")
                and not self.ignore.is_ignored((rel / d).as_posix(), is_dir=True)
            )
            files = [f for f in filenames if not self.ignore.is_ignored((rel / f).as_posix())]
            yield directory, dirnames, sorted(files)

    def _source_files(self) -> list[Path]:
        files = []
        for directory, _, filenames in self._walk():
            for name in filenames:
                path = directory / name
                if path.suffix.lower() in LANGUAGE_EXTENSIONS:
                    files.append(path)
        return files

    def _count_lines(self, path: Path) -> int:
        try:
            with path.open("rb") as f:
                return sum(1 for _ in f)
        except OSError:
            return 0

    def _file_tree(self) -> str:
        lines: list[str] = []
        for directory, _, filenames in self._walk():
            rel = directory.relative_to(self.root_path)
            depth = len(rel.parts)
            if depth:
                lines.append(f"{'  ' * (depth - 1)}{rel.name}/")
            lines.extend(f"{'  ' * depth}{name}" for name in filenames)
            if len(lines) >= self.max_tree_entries:
                lines = lines[: self.max_tree_entries]
                lines.append("... (truncated)")
                break
        return "\n".join(lines)

    def _manifests(self) -> dict[str, str]:
        manifests: dict[str, str] = {}
        for name in MANIFEST_FILES:
            path = self.root_path / name
            if not path.is_file() or self.ignore.is_ignored(name):
                continue
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug("Could not read %s: %s", name, e)
                continue
            manifests[name] = self.redactor.redact(content[:MAX_MANIFEST_CHARS])
        return manifests

    def _recent_commits(self) -> list[str]:
        try:
            result = subprocess.run(
                ["git", "log", f"-{RECENT_COMMIT_COUNT}", "--pretty=format:%h %s"],
                capture_output=True,
                text=True,
                cwd=str(self.root_path),
                timeout=10,
            )
            if result.returncode == 0:
                return [line for line in result.stdout.splitlines() if line.strip()]
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
            pass
        return []


def gather_context(
    root_path: Path | str,
    industry: str | None = None,
    redact_pii: bool = False,
) -> ProjectContext:
    """Gather the context of a project directory.

    Args:
        root_path: Project root
        industry: Optional industry hint used for tier selection
        redact_pii: Also redact emails and SSNs from manifests

    Returns:
        ProjectContext
    """
    redactor = ContentRedactor(include_pii=redact_pii)
    return ContextGatherer(root_path, redactor=redactor).gather(industry)
