"""Ignore rules for project context gathering.

Files matched here never reach a prompt. Built-in rules exclude binaries and
files that commonly hold credentials; a ``.leanignore`` file at the project
root adds more in gitignore style (``#`` comments, ``!`` negation, trailing
``/`` for directories). Later rules win, so ``!.env.example`` re-includes
what ``.env.*`` excluded.
"""

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

IGNORE_FILE = ".leanignore"

BINARY_PATTERNS = tuple(
    f"*.{ext}"
    for ext in (
        # Images
        "png", "jpg", "jpeg", "gif", "webp", "bmp", "ico", "svg",
        # Fonts
        "woff", "woff2", "ttf", "eot", "otf",
        # Audio/Video
        "mp3", "mp4", "webm", "mov", "avi", "wav", "ogg", "flac",
        # Archives
        "zip", "tar", "gz", "bz2", "7z", "rar",
        # Documents
        "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
        # Compiled
        "exe", "dll", "so", "dylib", "o", "a", "lib",
        "class", "jar", "war", "pyc", "pyo", "wasm",
    )
)  # fmt: skip

SENSITIVE_PATTERNS = (
    ".env",
    ".env.*",
    "!.env.example",
    "*.pem",
    "*.key",
    "*.p12",
    "*.pfx",
    "credentials.*",
    "serviceAccountKey.json",
    "secrets/",
    ".htpasswd",
    "id_rsa*",
    "*.jks",
    "*.keystore",
)


@dataclass(frozen=True)
class IgnoreRule:
    """A single ignore pattern.

    Attributes:
        pattern: Glob matched against the basename, or against the path
            relative to the project root when the pattern contains a slash
        negated: Re-include matches instead of excluding them
        dir_only: Match directories only
        anchored: Match the relative path rather than the basename
    """

    pattern: str
    negated: bool = False
    dir_only: bool = False
    anchored: bool = False

    @classmethod
    def parse(cls, line: str) -> "IgnoreRule | None":
        """Parse one ignore-file line; comments and blank lines yield None."""
        line = line.strip()
        if not line or line.startswith("#"):
            return None

        negated = line.startswith("!")
        if negated:
            line = line[1:]

        dir_only = False
        if line.endswith("/**"):
            line, dir_only = line[:-3], True
        elif line.endswith("/"):
            line, dir_only = line[:-1], True

        while line.startswith("**/"):
            line = line[3:]

        anchored = line.startswith("/") or "/" in line
        line = line.lstrip("/")
        if not line:
            return None
        return cls(line, negated, dir_only, anchored)

    def matches(self, rel_path: str, is_dir: bool = False) -> bool:
        if self.dir_only and not is_dir:
            return False
        target = rel_path if self.anchored else rel_path.rsplit("/", 1)[-1]
        return fnmatch.fnmatchcase(target, self.pattern)


class IgnoreRules:
    """Ordered ignore rules; the last matching rule decides."""

    def __init__(self, rules: list[IgnoreRule] | None = None) -> None:
        self.rules = list(rules or [])

    @classmethod
    def defaults(cls, include_sensitive: bool = False) -> "IgnoreRules":
        """Built-in rules: binaries, plus credential files unless included."""
        lines = list(BINARY_PATTERNS)
        if not include_sensitive:
            lines.extend(SENSITIVE_PATTERNS)
        return cls([rule for rule in map(IgnoreRule.parse, lines) if rule])

    @classmethod
    def load(cls, root_path: Path | str, include_sensitive: bool = False) -> "IgnoreRules":
        """Built-in rules followed by the project's .leanignore, if any.

        An unreadable ignore file is logged and skipped.
        """
        rules = cls.defaults(include_sensitive)
        path = Path(root_path) / IGNORE_FILE
        if not path.is_file():
            return rules

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return rules

        extra = [rule for rule in map(IgnoreRule.parse, content.splitlines()) if rule]
        logger.debug("Loaded %d rule(s) from %s", len(extra), IGNORE_FILE)
        rules.rules.extend(extra)
        return rules

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        """Check a path relative to the project root (``/``-separated)."""
        ignored = False
        for rule in self.rules:
            if rule.matches(rel_path, is_dir):
                ignored = not rule.negated
        return ignored
