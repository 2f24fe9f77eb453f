"""Checks on generated markdown documents.

Models sometimes leave template placeholders ("[Your project name]") or
generic names ("your-app") in a document, or run far past a sensible
length. These checks find them with line numbers so they can be reported
alongside the job result.
"""

import re
from dataclasses import dataclass, field

MAX_LINES = 600
MAX_CHARS = 35_000

PLACEHOLDER_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"\[Actual line count\]",
        r"\[Actual character count\]",
        r"\[Date\]",
        r"\[Current date YYYY-MM-DD\]",
        r"\[TODO:?[^\]]+\]",
        r"\[FIXME:?[^\]]+\]",
        r"\[Replace with[^\]]+\]",
        r"\[Your[^\]]+\]",
        r"\[Example[^\]]+\]",
    )
)

GENERIC_NAME_PATTERNS = (
    re.compile(r"\byour-app\b", re.IGNORECASE),
    re.compile(r"\bYourComponent\b"),
    re.compile(r"\bYourClass\b"),
    re.compile(r"\bYourService\b"),
    re.compile(r"\bexample-service\b", re.IGNORECASE),
    re.compile(r"\bSampleClass\b"),
    re.compile(r"\bmyApp\b"),
    re.compile(r"\[project-name\]", re.IGNORECASE),
    re.compile(r"\[app-name\]", re.IGNORECASE),
)


@dataclass(frozen=True)
class DocumentIssue:
    """A problem found in a generated document.

    Attributes:
        kind: "empty", "placeholder", "generic_name" or "oversized"
        severity: "error" or "warning"
        message: Human-readable description
        line: 1-based line number, when the issue has a location
    """

    kind: str
    severity: str
    message: str
    line: int | None = None

    def __str__(self) -> str:
        location = f"line {self.line}: " if self.line else ""
        return f"{location}{self.message}"


@dataclass
class DocumentCheck:
    """Result of checking one document."""

    issues: list[DocumentIssue] = field(default_factory=list)
    line_count: int = 0
    char_count: int = 0

    @property
    def errors(self) -> list[DocumentIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[DocumentIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def valid(self) -> bool:
        """True when there are no errors; warnings are allowed."""
        return not self.errors


def _line_number(text: str, index: int) -> int:
    return text.count("\n", 0, index) + 1


def _find(
    content: str, patterns: tuple[re.Pattern[str], ...], kind: str, severity: str, label: str
) -> list[DocumentIssue]:
    issues = []
    for pattern in patterns:
        for match in pattern.finditer(content):
            issues.append(
                DocumentIssue(
                    kind=kind,
                    severity=severity,
                    message=f"{label}: {match.group(0)}",
                    line=_line_number(content, match.start()),
                )
            )
    return sorted(issues, key=lambda i: i.line or 0)


def validate_markdown(
    content: str, max_lines: int = MAX_LINES, max_chars: int = MAX_CHARS
) -> DocumentCheck:
    """Check a generated document.

    Unfilled placeholders and empty documents are errors; generic names and
    oversized documents are warnings.

    Args:
        content: Document text
        max_lines: Line count above which the document is oversized
        max_chars: Character count above which the document is oversized

    Returns:
        DocumentCheck with issues ordered by line
    """
    check = DocumentCheck(line_count=len(content.split("\n")), char_count=len(content))

    if not content.strip():
        check.issues.append(DocumentIssue("empty", "error", "Document is empty"))
        return check

    check.issues.extend(
        _find(content, PLACEHOLDER_PATTERNS, "placeholder", "error", "Unfilled placeholder")
    )
    check.issues.extend(
        _find(content, GENERIC_NAME_PATTERNS, "generic_name", "warning", "Generic name")
    )

    if check.line_count > max_lines or check.char_count > max_chars:
        check.issues.append(
            DocumentIssue(
                "oversized",
                "warning",
                f"Document is oversized: {check.line_count}/{max_lines} lines, "
                f"{check.char_count}/{max_chars} chars",
            )
        )

    return check
