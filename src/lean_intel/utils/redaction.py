"""Secret and PII redaction for content sent to LLM providers."""

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RedactionPattern:
    name: str
    pattern: re.Pattern[str]

    @property
    def replacement(self) -> str:
        return f"[REDACTED:{self.name}]"


SECRET_PATTERNS: tuple[RedactionPattern, ...] = (
    RedactionPattern("AWS_KEY", re.compile(r"(?:AKIA|ABIA|ACCA|ASIA)[0-9A-Z]{16}")),
    RedactionPattern(
        "AWS_SECRET",
        re.compile(
            r"aws_secret_access_key\s*[=:]\s*['\"]?[A-Za-z0-9/+=]{40}['\"]?", re.IGNORECASE
        ),
    ),
    RedactionPattern("GITHUB_TOKEN", re.compile(r"(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9_]{36,255}")),
    RedactionPattern("SLACK_TOKEN", re.compile(r"xox[bpors]-[A-Za-z0-9-]{10,250}")),
    RedactionPattern("API_KEY", re.compile(r"sk-(?:ant-)?[A-Za-z0-9_-]{20,}")),
    RedactionPattern(
        "JWT",
        re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}"),
    ),
    RedactionPattern(
        "PRIVATE_KEY",
        re.compile(
            r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----[\s\S]*?"
            r"-----END (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"
        ),
    ),
    RedactionPattern("BEARER_TOKEN", re.compile(r"Bearer\s+[A-Za-z0-9_\-.~+/]+=*")),
    RedactionPattern(
        "CONNECTION_STRING",
        re.compile(
            r"(?:mongodb(?:\+srv)?|postgres(?:ql)?|mysql|redis|amqp)s?://[^\s'\"`,)}\]]+",
            re.IGNORECASE,
        ),
    ),
    RedactionPattern(
        "GENERIC_SECRET",
        re.compile(
            r"(?:api_?key|api_?secret|auth_?token|access_?token|secret_?key|password|passwd"
            r"|private_?key|client_?secret)\s*[=:]\s*['\"]?[A-Za-z0-9_\-./+=]{8,128}['\"]?",
            re.IGNORECASE,
        ),
    ),
)

PII_PATTERNS: tuple[RedactionPattern, ...] = (
    RedactionPattern("EMAIL", re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")),
    RedactionPattern("SSN", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
)


@dataclass
class ContentRedactor:
    """Redacts secrets (and optionally PII) and counts what it removed.

    Attributes:
        include_pii: Also redact emails and SSNs
        counts: Redactions so far, by pattern name
    """

    include_pii: bool = False
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def patterns(self) -> tuple[RedactionPattern, ...]:
        return SECRET_PATTERNS + PII_PATTERNS if self.include_pii else SECRET_PATTERNS

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def redact(self, content: str) -> str:
        """Return content with every match replaced by a ``[REDACTED:TYPE]`` marker."""
        for redaction in self.patterns:
            content, count = redaction.pattern.subn(redaction.replacement, content)
            if count:
                self.counts[redaction.name] = self.counts.get(redaction.name, 0) + count
        return content
