"""Shared pytest fixtures for lean-intel tests.

This module provides common fixtures used across unit and integration
tests. Fixtures are organized by category:
- Provider fixtures: A scripted in-memory LLM provider
- Project fixtures: Sample project directories and contexts
- Report fixtures: Valid analyzer payloads
"""

import json
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from lean_intel.models.project import DocumentationTier, ProjectContext
from lean_intel.utils.logging import ROOT_LOGGER
from tests.fakes import FakeProvider

# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Restore propagation so caplog sees records after a CLI run configured logging."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Return a provider that answers every prompt with "ok"."""
    return FakeProvider()


@pytest.fixture
def recorded_sleeps() -> tuple[list[float], Callable[[float], Any]]:
    """Return a list of requested delays and a sleep function that records them."""
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    return delays, sleep


# =============================================================================
# Project Fixtures
# =============================================================================


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """Create a small Python project with a manifest containing a secret."""
    project = tmp_path / "sample_app"
    (project / "src" / "app").mkdir(parents=True)
    (project / "tests").mkdir()
    (project / "node_modules" / "left-pad").mkdir(parents=True)

    (project / "src" / "app" / "__init__.py").write_text('"""Sample app."""\n')
    (project / "src" / "app" / "main.py").write_text(
        "def main():\n    print('hello')\n\n\nif __name__ == '__main__':\n    main()\n"
    )
    (project / "src" / "app" / "web.js").write_text("export const x = 1;\n")
    (project / "tests" / "test_main.py").write_text("def test_main():\n    assert True\n")
    (project / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1;\n")
    (project / "requirements.txt").write_text(
        "requests==2.31.0\n# api_key = abcdefgh12345678\n"
    )
    (project / "README.md").write_text("# Sample\n")
    return project


@pytest.fixture
def project_context(tmp_path: Path) -> ProjectContext:
    """Return a hand-built context (no filesystem walk)."""
    return ProjectContext(
        root_path=tmp_path,
        name="sample_app",
        languages=["python", "javascript"],
        file_count=12,
        line_count=840,
        file_tree="src/\n  app/\n    main.py",
        manifests={"requirements.txt": "requests==2.31.0\n"},
        recent_commits=["abc1234 Initial commit"],
        git_revision="abc12345",
        tier=DocumentationTier.MINIMAL,
    )


# =============================================================================
# Report Fixtures
# =============================================================================


@pytest.fixture
def security_payload() -> dict[str, Any]:
    """Return a valid security report payload in wire (camelCase) form."""
    return {
        "overallGrade": "B",
        "score": 82,
        "summary": "Mostly sound; one hardcoded credential.",
        "criticalIssues": [
            {
                "severity": "🔴 CRITICAL",
                "category": "Secrets",
                "issue": "Hardcoded database password",
                "location": "config/settings.py:12",
                "impact": "Database compromise",
                "remediation": "Load the password from the environment",
            }
        ],
        "vulnerabilities": {
            "dependencies": [
                {
                    "package": "requests",
                    "currentVersion": "2.19.0",
                    "vulnerability": "Proxy-Authorization leak",
                    "severity": "moderate",
                    "fixedVersion": "2.31.0",
                    "cveId": "CVE-2023-32681",
                }
            ],
            "hardcodedSecrets": [],
            "insecurePatterns": [],
        },
        "recommendations": [{"priority": "high", "action": "Rotate the password"}],
    }


@pytest.fixture
def security_response(security_payload: dict[str, Any]) -> str:
    """Return a model response wrapping the security payload in prose and a fence."""
    return (
        "Here is the security analysis:\n\n```json\n"
        + json.dumps(security_payload, indent=2)
        + "\n```\n"
    )


@pytest.fixture
def minimal_report_payload() -> Callable[[str], dict[str, Any]]:
    """Return a factory for the smallest valid payload of each analyzer."""

    def build(category: str) -> dict[str, Any]:
        base = {"overallGrade": "A", "score": 95, "summary": f"{category} looks fine"}
        extra: dict[str, dict[str, Any]] = {
            "security": {"criticalIssues": []},
            "license": {"dealbreakers": []},
            "quality": {
                "technicalDebtPercentage": 5,
                "metrics": {"linesOfCode": 840, "codeFiles": 12, "testFiles": 3},
            },
            "cost": {"monthlyCost": "$120"},
            "hipaa": {},
        }
        return {**base, **extra[category]}

    return build
