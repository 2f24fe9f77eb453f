"""Integration tests for lean-intel CLI commands.

These tests exercise the full CLI workflow against a sample project, with
the LLM provider replaced by a scripted fake.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from lean_intel import __version__
from lean_intel.cli import app
from lean_intel.incremental import (
    ChangedFile,
    ChangeStatus,
    GenerationRecord,
    load_generation_record,
    save_generation_record,
)
from tests.fakes import FakeProvider

runner = CliRunner()


@pytest.fixture(autouse=True)
def api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-key")


def run_with(provider: FakeProvider, args: list[str]):
    with patch("lean_intel.cli.create_provider", return_value=provider):
        return runner.invoke(app, args)


class TestVersion:
    """Tests for `lean-intel --version`."""

    def test_version(self) -> None:
        """Test the version flag prints and exits cleanly."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"lean-intel {__version__}" in result.output


class TestInit:
    """Tests for `lean-intel init`."""

    def test_creates_config(self, tmp_path: Path) -> None:
        """Test init writes a loadable config for the chosen provider."""
        result = runner.invoke(app, ["init", "--repo", str(tmp_path), "--provider", "openai"])

        assert result.exit_code == 0, result.output
        content = (tmp_path / ".lean-intel" / "config.yaml").read_text()
        assert 'provider: "openai"' in content
        assert "${OPENAI_API_KEY}" in content

    def test_refuses_to_overwrite(self, tmp_path: Path) -> None:
        """Test an existing config is kept unless --force is given."""
        runner.invoke(app, ["init", "--repo", str(tmp_path), "--provider", "openai"])

        result = runner.invoke(app, ["init", "--repo", str(tmp_path), "--provider", "xai"])
        assert result.exit_code == 1

        result = runner.invoke(
            app, ["init", "--repo", str(tmp_path), "--provider", "xai", "--force"]
        )
        assert result.exit_code == 0
        assert 'provider: "xai"' in (tmp_path / ".lean-intel" / "config.yaml").read_text()

    def test_prompts_for_provider(self, tmp_path: Path) -> None:
        """Test the provider is asked for when not given."""
        result = runner.invoke(app, ["init", "--repo", str(tmp_path)], input="google\n")

        assert result.exit_code == 0
        assert 'provider: "google"' in (tmp_path / ".lean-intel" / "config.yaml").read_text()

    def test_invalid_provider(self, tmp_path: Path) -> None:
        """Test an unknown provider is rejected."""
        result = runner.invoke(app, ["init", "--repo", str(tmp_path), "--provider", "ollama"])

        assert result.exit_code == 1
        assert not (tmp_path / ".lean-intel" / "config.yaml").exists()


class TestAnalyze:
    """Tests for `lean-intel analyze`."""

    def test_writes_report(self, sample_project: Path, security_response: str) -> None:
        """Test a successful analyzer writes its JSON report and exits 0."""
        provider = FakeProvider([security_response])

        result = run_with(provider, ["analyze", "--repo", str(sample_project), "--security"])

        assert result.exit_code == 0, result.output
        report_file = sample_project / ".lean-intel" / "reports" / "security.json"
        saved = json.loads(report_file.read_text())
        assert saved["status"] == "success"
        assert json.loads(saved["output"])["overallGrade"] == "B"
        assert "1/1 succeeded" in result.output
        assert provider.calls == 1

    def test_partial_failure_exits_2(
        self, sample_project: Path, security_response: str
    ) -> None:
        """Test one failed analyzer out of two exits with code 2."""

        def respond(prompt: str) -> str:
            if "the security review" in prompt:
                return security_response
            return "no idea"

        result = run_with(
            FakeProvider([respond]),
            ["analyze", "--repo", str(sample_project), "--security", "--license"],
        )

        assert result.exit_code == 2, result.output
        saved = json.loads(
            (sample_project / ".lean-intel" / "reports" / "license.json").read_text()
        )
        assert saved["status"] == "error"
        assert json.loads(saved["output"])["error"] == "Failed to parse response"

    def test_all_failed_exits_1(self, sample_project: Path) -> None:
        """Test a batch where every analyzer fails exits with code 1."""
        result = run_with(
            FakeProvider(["not json at all"]),
            ["analyze", "--repo", str(sample_project), "--quality"],
        )

        assert result.exit_code == 1

    def test_second_run_uses_cache(self, sample_project: Path, security_response: str) -> None:
        """Test re-running on an unchanged project makes no provider calls."""
        provider = FakeProvider([security_response])
        args = ["analyze", "--repo", str(sample_project), "--security"]

        run_with(provider, args)
        result = run_with(provider, args)

        assert result.exit_code == 0
        assert provider.calls == 1

    def test_skip_cache(self, sample_project: Path, security_response: str) -> None:
        """Test --skip-cache calls the provider every time."""
        provider = FakeProvider([security_response])
        args = ["analyze", "--repo", str(sample_project), "--security", "--skip-cache"]

        run_with(provider, args)
        run_with(provider, args)

        assert provider.calls == 2

    def test_summary(self, sample_project: Path, security_response: str) -> None:
        """Test --summary writes SUMMARY.md next to the reports."""

        def respond(prompt: str) -> str:
            if prompt.startswith("You are writing an executive summary"):
                return "# Summary\nLooks good."
            return security_response

        result = run_with(
            FakeProvider([respond]),
            ["analyze", "--repo", str(sample_project), "--security", "--summary"],
        )

        assert result.exit_code == 0, result.output
        summary = sample_project / ".lean-intel" / "reports" / "SUMMARY.md"
        assert summary.read_text() == "# Summary\nLooks good."

    def test_missing_api_key(
        self, sample_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a missing key is a configuration error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY")

        result = runner.invoke(app, ["analyze", "--repo", str(sample_project), "--security"])

        assert result.exit_code == 1

    def test_config_file_provider(
        self, sample_project: Path, monkeypatch: pytest.MonkeyPatch, minimal_report_payload
    ) -> None:
        """Test the project's config selects the provider."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        runner.invoke(app, ["init", "--repo", str(sample_project), "--provider", "openai"])

        provider = FakeProvider([json.dumps(minimal_report_payload("cost"))])
        with patch("lean_intel.cli.create_provider", return_value=provider) as create:
            result = runner.invoke(app, ["analyze", "--repo", str(sample_project), "--cost"])

        provider_config = create.call_args[0][0]
        assert provider_config.provider == "openai"
        assert provider_config.api_key == "sk-openai"
        assert result.exit_code == 0, result.output


class TestDocs:
    """Tests for `lean-intel docs`."""

    def test_writes_tier_documents(self, sample_project: Path, tmp_path: Path) -> None:
        """Test the minimal tier writes ARCHITECTURE.md and SETUP.md."""
        output = tmp_path / "out"

        result = run_with(
            FakeProvider(["# Generated\nContent"]),
            ["docs", "--repo", str(sample_project), "--output", str(output)],
        )

        assert result.exit_code == 0, result.output
        assert sorted(p.name for p in output.iterdir()) == ["ARCHITECTURE.md", "SETUP.md"]
        assert (output / "SETUP.md").read_text() == "# Generated\nContent"

    def test_explicit_tier(self, sample_project: Path) -> None:
        """Test --tier overrides the detected tier and defaults to the docs directory."""
        result = run_with(
            FakeProvider(["# Doc"]),
            ["docs", "--repo", str(sample_project), "--tier", "standard"],
        )

        assert result.exit_code == 0, result.output
        assert len(list((sample_project / "docs").glob("*.md"))) == 5

    def test_invalid_tier(self, sample_project: Path) -> None:
        """Test an unknown tier is rejected."""
        result = run_with(
            FakeProvider(), ["docs", "--repo", str(sample_project), "--tier", "epic"]
        )

        assert result.exit_code == 1

    def test_industry_option(self, sample_project: Path) -> None:
        """Test a regulated industry selects the comprehensive tier."""
        result = run_with(
            FakeProvider(["# Doc"]),
            ["docs", "--repo", str(sample_project), "--industry", "healthcare"],
        )

        assert result.exit_code == 0, result.output
        assert len(list((sample_project / "docs").glob("*.md"))) == 9

    def test_industry_from_config(self, sample_project: Path) -> None:
        """Test the project section of the config supplies the industry."""
        config_dir = sample_project / ".lean-intel"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("project:\n  industry: fintech\n")

        result = run_with(FakeProvider(["# Doc"]), ["docs", "--repo", str(sample_project)])

        assert result.exit_code == 0, result.output
        assert len(list((sample_project / "docs").glob("*.md"))) == 9

    def test_records_generation(self, sample_project: Path) -> None:
        """Test a run inside a git repository records the commit and files."""
        with patch("lean_intel.context.get_git_revision", return_value="abc12345"):
            result = run_with(FakeProvider(["# Doc"]), ["docs", "--repo", str(sample_project)])

        assert result.exit_code == 0, result.output
        record = load_generation_record(sample_project)
        assert record is not None
        assert record.commit == "abc12345"
        assert record.tier == "minimal"
        assert record.generated_files == ["ARCHITECTURE.md", "SETUP.md"]

    def test_no_record_outside_git(self, sample_project: Path) -> None:
        """Test no generation record is written without a git revision."""
        with patch("lean_intel.context.get_git_revision", return_value=None):
            run_with(FakeProvider(["# Doc"]), ["docs", "--repo", str(sample_project)])

        assert load_generation_record(sample_project) is None

    def test_run_totals_logged(self, sample_project: Path) -> None:
        """Test run totals are logged as structured fields."""
        with patch("lean_intel.cli._logger.structured") as structured:
            run_with(FakeProvider(["# Doc"]), ["docs", "--repo", str(sample_project)])

        fields = structured.call_args.kwargs
        assert fields["succeeded"] == 2
        assert fields["failed"] == 0
        assert fields["input_tokens"] > 0
        assert structured.call_args.args[1] == "Run complete: 2/2 succeeded"


class TestUpdate:
    """Tests for `lean-intel update`."""

    @pytest.fixture
    def recorded_project(self, sample_project: Path) -> Path:
        """A project documented at abc12345 with an ARCHITECTURE.md on disk."""
        save_generation_record(
            sample_project,
            GenerationRecord.create(
                "abc12345", "standard", ["ARCHITECTURE.md", "SETUP.md", "API.md"]
            ),
        )
        docs_dir = sample_project / "docs"
        docs_dir.mkdir()
        (docs_dir / "ARCHITECTURE.md").write_text("# Old architecture\n")
        (docs_dir / "SETUP.md").write_text("# Old setup\n")
        return sample_project

    def run_update(
        self,
        provider: FakeProvider,
        project: Path,
        changes: list[ChangedFile],
        *extra: str,
        valid_commit: bool = True,
    ):
        with (
            patch("lean_intel.cli.is_valid_commit", return_value=valid_commit),
            patch("lean_intel.cli.changed_files_since", return_value=changes),
            patch("lean_intel.context.get_git_revision", return_value="def67890"),
        ):
            return run_with(provider, ["update", "--repo", str(project), *extra])

    def test_requires_previous_run(self, sample_project: Path) -> None:
        """Test update without a generation record asks for a docs run first."""
        provider = FakeProvider(["# Doc"])

        result = run_with(provider, ["update", "--repo", str(sample_project)])

        assert result.exit_code == 1
        assert provider.calls == 0

    def test_regenerates_affected_documents(self, recorded_project: Path) -> None:
        """Test an API change refreshes ARCHITECTURE.md and API.md only."""
        provider = FakeProvider(["# New"])

        result = self.run_update(
            provider, recorded_project, [ChangedFile("src/api/users.py", ChangeStatus.MODIFIED)]
        )

        assert result.exit_code == 0, result.output
        assert "Files to regenerate: ARCHITECTURE.md, API.md" in result.output
        assert provider.calls == 2
        docs_dir = recorded_project / "docs"
        assert (docs_dir / "API.md").read_text() == "# New"
        assert (docs_dir / "SETUP.md").read_text() == "# Old setup\n"

        record = load_generation_record(recorded_project)
        assert record is not None
        assert record.commit == "def67890"
        assert record.generated_files == ["ARCHITECTURE.md", "SETUP.md", "API.md"]

    def test_existing_architecture_feeds_other_documents(self, recorded_project: Path) -> None:
        """Test documents regenerated without ARCHITECTURE.md see the one on disk."""
        save_generation_record(
            recorded_project,
            GenerationRecord.create("abc12345", "standard", ["ARCHITECTURE.md", "TESTING.md"]),
        )
        provider = FakeProvider(["# New"])

        result = self.run_update(
            provider,
            recorded_project,
            [ChangedFile("tests/test_main.py", ChangeStatus.MODIFIED)],
            "--since",
            "abc12345",
        )

        assert result.exit_code == 0, result.output
        assert "Files to regenerate: TESTING.md" in result.output
        assert provider.calls == 1
        assert "# Old architecture" in provider.prompts[0]

    def test_up_to_date(self, recorded_project: Path) -> None:
        """Test no changes since the recorded commit is a clean no-op."""
        provider = FakeProvider(["# New"])

        result = self.run_update(provider, recorded_project, [])

        assert result.exit_code == 0
        assert "documentation is up to date" in result.output
        assert provider.calls == 0

    def test_critical_change_recommends_full_run(self, recorded_project: Path) -> None:
        """Test a changed build manifest stops short of regenerating anything."""
        provider = FakeProvider(["# New"])

        result = self.run_update(
            provider,
            recorded_project,
            [ChangedFile("pyproject.toml", ChangeStatus.MODIFIED)],
        )

        assert result.exit_code == 0
        assert "lean-intel update --force" in result.output
        assert provider.calls == 0

    def test_unaffected_change(self, recorded_project: Path) -> None:
        """Test a change that touches no document regenerates nothing."""
        provider = FakeProvider(["# New"])

        result = self.run_update(
            provider, recorded_project, [ChangedFile("src/app/main.py", ChangeStatus.MODIFIED)]
        )

        assert result.exit_code == 0
        assert "No documentation affected" in result.output
        assert provider.calls == 0

    def test_dry_run(self, recorded_project: Path) -> None:
        """Test --dry-run lists the files without calling the provider."""
        provider = FakeProvider(["# New"])

        result = self.run_update(
            provider,
            recorded_project,
            [ChangedFile("src/api/users.py", ChangeStatus.MODIFIED)],
            "--dry-run",
        )

        assert result.exit_code == 0
        assert "Files to regenerate: ARCHITECTURE.md, API.md" in result.output
        assert provider.calls == 0
        assert not (recorded_project / "docs" / "API.md").exists()

    def test_unknown_commit(self, recorded_project: Path) -> None:
        """Test a commit missing from history is an error."""
        provider = FakeProvider(["# New"])

        result = self.run_update(provider, recorded_project, [], valid_commit=False)

        assert result.exit_code == 1
        assert provider.calls == 0

    def test_force_regenerates_recorded_files(self, recorded_project: Path) -> None:
        """Test --force regenerates every recorded file without diffing."""
        provider = FakeProvider(["# New"])

        with patch("lean_intel.cli.changed_files_since") as diff:
            result = run_with(provider, ["update", "--repo", str(recorded_project), "--force"])

        assert result.exit_code == 0, result.output
        assert "Forced regeneration of 3 file(s)" in result.output
        assert provider.calls == 3
        diff.assert_not_called()

    def test_force_without_record(self, sample_project: Path) -> None:
        """Test --force with no previous run generates the tier's documents."""
        provider = FakeProvider(["# New"])

        result = run_with(provider, ["update", "--repo", str(sample_project), "--force"])

        assert result.exit_code == 0, result.output
        assert sorted(p.name for p in (sample_project / "docs").iterdir()) == [
            "ARCHITECTURE.md",
            "SETUP.md",
        ]

    def test_failed_document_keeps_record(self, recorded_project: Path) -> None:
        """Test the record is not advanced when a document fails."""

        def respond(prompt: str) -> str:
            return "" if prompt.startswith("You are writing API.md") else "# New"

        result = self.run_update(
            FakeProvider([respond]),
            recorded_project,
            [ChangedFile("src/api/users.py", ChangeStatus.MODIFIED)],
        )

        assert result.exit_code == 2, result.output
        record = load_generation_record(recorded_project)
        assert record is not None
        assert record.commit == "abc12345"


class TestEstimate:
    """Tests for `lean-intel estimate`."""

    def test_estimate_everything(self, sample_project: Path) -> None:
        """Test the default estimate covers documentation and every analyzer."""
        result = runner.invoke(app, ["estimate", "--repo", str(sample_project)])

        assert result.exit_code == 0, result.output
        assert "documentation, security, license, quality, cost, hipaa" in result.output
        assert "$3/$15 per M" in result.output

    def test_estimate_selected(self, sample_project: Path) -> None:
        """Test selected jobs only."""
        result = runner.invoke(app, ["estimate", "--repo", str(sample_project), "--security"])

        assert result.exit_code == 0
        assert "Jobs: security\n" in result.output
        assert "40,000 input + 2,000 output tokens" in result.output

    def test_estimate_after_init_without_key(
        self, sample_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a freshly initialized project estimates without an API key."""
        monkeypatch.delenv("ANTHROPIC_API_KEY")
        runner.invoke(app, ["init", "--repo", str(sample_project), "--provider", "anthropic"])

        result = runner.invoke(app, ["estimate", "--repo", str(sample_project)])

        assert result.exit_code == 0, result.output
        assert "Estimated:" in result.output

    def test_analyze_after_init_without_key_fails(
        self, sample_project: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test the missing key is still reported once a provider is needed."""
        monkeypatch.delenv("ANTHROPIC_API_KEY")
        runner.invoke(app, ["init", "--repo", str(sample_project), "--provider", "anthropic"])

        result = runner.invoke(app, ["analyze", "--repo", str(sample_project), "--security"])

        assert result.exit_code == 1


class TestCache:
    """Tests for `lean-intel cache`."""

    def test_stats_and_clear(self, sample_project: Path, security_response: str) -> None:
        """Test cache stats reflect a run and clear empties the store."""
        run_with(
            FakeProvider([security_response]),
            ["analyze", "--repo", str(sample_project), "--security"],
        )

        stats = runner.invoke(app, ["cache", "stats", "--repo", str(sample_project)])
        assert stats.exit_code == 0
        assert "Entries: 1" in stats.output

        cleared = runner.invoke(app, ["cache", "clear", "--repo", str(sample_project)])
        assert cleared.exit_code == 0
        assert "Cleared 1 cached result(s)" in cleared.output

        stats = runner.invoke(app, ["cache", "stats", "--repo", str(sample_project)])
        assert "Entries: 0" in stats.output
