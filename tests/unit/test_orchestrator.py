"""Unit tests for the LLM orchestrator."""

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from lean_intel.llm.cache import ResultCache
from lean_intel.llm.errors import PermanentProviderError, TransientProviderError
from lean_intel.llm.retry import RetryPolicy
from lean_intel.llm.scheduler import Job
from lean_intel.models.completion import CompletionOptions, CompletionResult
from lean_intel.models.project import DocumentationTier, ProjectContext
from lean_intel.models.results import JobResult, JobStatus
from lean_intel.orchestrator import LLMOrchestrator
from tests.fakes import FakeProvider, no_sleep

OPTIONS = CompletionOptions(max_tokens=1000, temperature=0.1)


def make_orchestrator(
    provider: FakeProvider, cache: ResultCache | None = None, **kwargs: Any
) -> LLMOrchestrator:
    return LLMOrchestrator(
        provider,
        cache=cache,
        retry_policy=RetryPolicy(max_retries=3, initial_delay=0.0),
        sleep=no_sleep,
        **kwargs,
    )


@pytest.fixture
def cache(tmp_path: Path) -> ResultCache:
    return ResultCache(tmp_path, revision_provider=lambda: "abc12345")


def analyzer_responder(
    build: Callable[[str], dict[str, Any]], broken: set[str] = frozenset()
) -> Callable[[str], str]:
    """Answer each analyzer prompt with the payload for the category it names."""
    titles = {
        "the security review": "security",
        "the license compliance review": "license",
        "the code quality review": "quality",
        "the infrastructure cost review": "cost",
        "the HIPAA compliance review": "hipaa",
    }

    def respond(prompt: str) -> str:
        for title, category in titles.items():
            if title in prompt:
                if category in broken:
                    return "I could not analyze this project, sorry."
                return "```json\n" + json.dumps(build(category)) + "\n```"
        raise AssertionError(f"unexpected prompt: {prompt[:80]}")

    return respond


class TestCachedCompletion:
    """Tests for cached_completion."""

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, cache: ResultCache) -> None:
        """Test an identical request hits the cache and skips the provider."""
        provider = FakeProvider(["answer"])
        orchestrator = make_orchestrator(provider, cache)

        first = await orchestrator.cached_completion("prompt", OPTIONS)
        second = await orchestrator.cached_completion("prompt", OPTIONS)

        assert provider.calls == 1
        assert second == first

    @pytest.mark.asyncio
    async def test_different_options_miss(self, cache: ResultCache) -> None:
        """Test requests differing only in options are cached separately."""
        provider = FakeProvider(["answer"])
        orchestrator = make_orchestrator(provider, cache)

        await orchestrator.cached_completion("prompt", OPTIONS)
        await orchestrator.cached_completion("prompt", CompletionOptions(1000, 0.5))

        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_skip_cache_bypasses_reads_and_writes(self, cache: ResultCache) -> None:
        """Test skip_cache neither reads nor writes the store."""
        provider = FakeProvider(["answer"])
        orchestrator = make_orchestrator(provider, cache, skip_cache=True)

        await orchestrator.cached_completion("prompt", OPTIONS)
        await orchestrator.cached_completion("prompt", OPTIONS)

        assert provider.calls == 2
        assert cache.stats().entries == 0

    @pytest.mark.asyncio
    async def test_no_cache(self) -> None:
        """Test a missing cache disables caching."""
        provider = FakeProvider(["answer"])
        orchestrator = make_orchestrator(provider, None)

        await orchestrator.cached_completion("prompt", OPTIONS)
        await orchestrator.cached_completion("prompt", OPTIONS)

        assert orchestrator.caching is False
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, cache: ResultCache) -> None:
        """Test transient provider failures are retried, then cached."""
        provider = FakeProvider([TransientProviderError("503"), "answer"])
        orchestrator = make_orchestrator(provider, cache)

        result = await orchestrator.cached_completion("prompt", OPTIONS)

        assert result.content == "answer"
        assert provider.calls == 2
        assert cache.stats().entries == 1

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, cache: ResultCache) -> None:
        """Test a failed call stores nothing."""
        provider = FakeProvider([PermanentProviderError("401")])
        orchestrator = make_orchestrator(provider, cache)

        with pytest.raises(PermanentProviderError):
            await orchestrator.cached_completion("prompt", OPTIONS)

        assert provider.calls == 1
        assert cache.stats().entries == 0


class TestRunBatch:
    """Tests for run_job and run_batch."""

    @pytest.mark.asyncio
    async def test_one_result_per_job_in_order(self, fake_provider: FakeProvider) -> None:
        """Test a batch of N jobs yields N results in submission order."""
        orchestrator = make_orchestrator(fake_provider, concurrency=2)

        async def ok(value: str) -> CompletionResult:
            await asyncio.sleep(0.01 if value == "a" else 0)
            return CompletionResult(content=value, input_tokens=10, output_tokens=5, cost=0.01)

        async def boom() -> CompletionResult:
            raise RuntimeError("exploded")

        jobs = [
            Job("a", lambda: ok("a")),
            Job("b", boom),
            Job("c", lambda: ok("c")),
        ]

        batch = await orchestrator.run_batch(jobs, on_progress=None)

        assert [r.name for r in batch.results] == ["a", "b", "c"]
        assert [r.status for r in batch.results] == [
            JobStatus.SUCCESS,
            JobStatus.ERROR,
            JobStatus.SUCCESS,
        ]
        assert batch.results[1].error == "exploded"
        assert batch.tokens_used == 30
        assert batch.total_cost == 0.02
        assert batch.success_count == 2
        assert batch.error_count == 1

    @pytest.mark.asyncio
    async def test_progress_callback(self, fake_provider: FakeProvider) -> None:
        """Test progress receives a JobResult per settled job."""
        orchestrator = make_orchestrator(fake_provider)
        seen: list[tuple[int, int, str]] = []

        async def ok() -> str:
            return "done"

        await orchestrator.run_batch(
            [Job("x", ok), Job("y", ok)],
            on_progress=lambda done, total, result: seen.append((done, total, result.name)),
        )

        assert [(done, total) for done, total, _ in seen] == [(1, 2), (2, 2)]
        assert sorted(name for _, _, name in seen) == ["x", "y"]

    @pytest.mark.asyncio
    async def test_returned_job_result_is_renamed(self, fake_provider: FakeProvider) -> None:
        """Test a task returning a JobResult keeps its status under the job's name."""
        orchestrator = make_orchestrator(fake_provider)

        async def partial() -> JobResult:
            return JobResult(name="ignored", status=JobStatus.SKIPPED)

        result = await orchestrator.run_job(Job("real", partial))

        assert result.name == "real"
        assert result.status == JobStatus.SKIPPED


class TestRunAnalyzers:
    """Tests for analyzer runs."""

    @pytest.mark.asyncio
    async def test_security_report(
        self, project_context: ProjectContext, security_response: str
    ) -> None:
        """Test a valid response becomes a camelCase JSON report."""
        provider = FakeProvider([security_response])
        orchestrator = make_orchestrator(provider)

        result = await orchestrator.run_analyzer("security", project_context)

        assert result.ok
        report = json.loads(result.output)
        assert report["overallGrade"] == "B"
        assert report["criticalIssues"][0]["severity"] == "Critical"
        assert result.input_tokens == 1000
        assert result.cost > 0

    @pytest.mark.asyncio
    async def test_unparsable_response(self, project_context: ProjectContext) -> None:
        """Test an unrecoverable response is an error that keeps usage and raw text."""
        provider = FakeProvider(['{"overallGrade": "A"}'])
        orchestrator = make_orchestrator(provider)

        result = await orchestrator.run_analyzer("license", project_context)

        assert result.status == JobStatus.ERROR
        assert json.loads(result.output) == {
            "error": "Failed to parse response",
            "raw": '{"overallGrade": "A"}',
        }
        assert "score" in result.error
        assert result.tokens_used == 1500

    @pytest.mark.asyncio
    async def test_unknown_category(self, project_context: ProjectContext) -> None:
        """Test unknown analyzers are rejected before any call."""
        provider = FakeProvider()
        orchestrator = make_orchestrator(provider)

        with pytest.raises(ValueError, match="Unknown analyzer"):
            await orchestrator.run_all_analyzers(project_context, ["security", "vibes"])

        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_all_analyzers_isolated(
        self, project_context: ProjectContext, minimal_report_payload
    ) -> None:
        """Test a broken analyzer and a crashed one never affect the rest."""

        def respond(prompt: str) -> str:
            if "the infrastructure cost review" in prompt:
                raise PermanentProviderError("invalid request")
            return analyzer_responder(minimal_report_payload, broken={"quality"})(prompt)

        provider = FakeProvider([respond])
        orchestrator = make_orchestrator(provider, concurrency=2)

        batch = await orchestrator.run_all_analyzers(project_context, on_progress=None)

        statuses = {r.name: r.status for r in batch.results}
        assert [r.name for r in batch.results] == ["security", "license", "quality", "cost", "hipaa"]
        assert statuses["security"] == JobStatus.SUCCESS
        assert statuses["license"] == JobStatus.SUCCESS
        assert statuses["quality"] == JobStatus.ERROR
        assert statuses["cost"] == JobStatus.ERROR
        assert statuses["hipaa"] == JobStatus.SUCCESS
        assert "invalid request" in batch.get("cost").error

    @pytest.mark.asyncio
    async def test_cached_rerun_makes_no_calls(
        self, project_context: ProjectContext, cache: ResultCache, minimal_report_payload
    ) -> None:
        """Test re-running analyzers on an unchanged project is served from cache."""
        provider = FakeProvider([analyzer_responder(minimal_report_payload)])
        orchestrator = make_orchestrator(provider, cache)

        await orchestrator.run_all_analyzers(project_context, on_progress=None)
        calls = provider.calls
        batch = await orchestrator.run_all_analyzers(project_context, on_progress=None)

        assert calls == 5
        assert provider.calls == 5
        assert batch.success_count == 5


class TestGenerateDocumentation:
    """Tests for documentation generation."""

    @pytest.mark.asyncio
    async def test_architecture_feeds_other_documents(
        self, project_context: ProjectContext
    ) -> None:
        """Test ARCHITECTURE.md is generated first and passed to the rest."""

        def respond(prompt: str) -> str:
            if prompt.startswith("You are writing ARCHITECTURE.md"):
                return "```markdown\n# Architecture\nLayered design.\n```"
            return "# Doc\nBody"

        provider = FakeProvider([respond])
        orchestrator = make_orchestrator(provider, concurrency=3)

        batch = await orchestrator.generate_documentation(
            project_context, DocumentationTier.STANDARD, on_progress=None
        )

        assert [r.name for r in batch.results] == [
            "ARCHITECTURE.md",
            "SETUP.md",
            "API.md",
            "DATA_MODEL.md",
            "TESTING.md",
        ]
        assert batch.get("ARCHITECTURE.md").output == "# Architecture\nLayered design."
        assert provider.prompts[0].startswith("You are writing ARCHITECTURE.md")
        for prompt in provider.prompts[1:]:
            assert "Layered design." in prompt

    @pytest.mark.asyncio
    async def test_tier_defaults_to_context(self, project_context: ProjectContext) -> None:
        """Test the context's tier is used when none is given."""
        provider = FakeProvider(["# Doc"])
        orchestrator = make_orchestrator(provider)

        batch = await orchestrator.generate_documentation(project_context, on_progress=None)

        assert [r.name for r in batch.results] == ["ARCHITECTURE.md", "SETUP.md"]

    @pytest.mark.asyncio
    async def test_failed_architecture_still_generates_rest(
        self, project_context: ProjectContext
    ) -> None:
        """Test other documents are generated without architecture context."""

        def respond(prompt: str) -> str:
            if prompt.startswith("You are writing ARCHITECTURE.md"):
                raise PermanentProviderError("content filtered")
            return "# Setup"

        provider = FakeProvider([respond])
        orchestrator = make_orchestrator(provider)

        batch = await orchestrator.generate_documentation(
            project_context, DocumentationTier.MINIMAL, on_progress=None
        )

        assert batch.get("ARCHITECTURE.md").status == JobStatus.ERROR
        setup = batch.get("SETUP.md")
        assert setup.ok
        assert "--- ARCHITECTURE.md ---" not in provider.prompts[-1]

    @pytest.mark.asyncio
    async def test_document_issues_become_warnings(
        self, project_context: ProjectContext
    ) -> None:
        """Test placeholders are reported on an otherwise successful result."""
        provider = FakeProvider(["# Setup\n\nLast updated: [Date]\nRun your-app locally."])
        orchestrator = make_orchestrator(provider)

        batch = await orchestrator.generate_documentation(
            project_context, DocumentationTier.MINIMAL, on_progress=None
        )

        setup = batch.get("SETUP.md")
        assert setup.ok
        assert setup.warnings == [
            "line 3: Unfilled placeholder: [Date]",
            "line 4: Generic name: your-app",
        ]
        assert setup.to_dict()["warnings"] == setup.warnings

    @pytest.mark.asyncio
    async def test_empty_document_fails(self, project_context: ProjectContext) -> None:
        """Test a blank response is an error with usage still counted."""
        provider = FakeProvider(["```markdown\n\n```"])
        orchestrator = make_orchestrator(provider)

        batch = await orchestrator.generate_documentation(
            project_context, DocumentationTier.MINIMAL, on_progress=None
        )

        architecture = batch.get("ARCHITECTURE.md")
        assert architecture.status == JobStatus.ERROR
        assert architecture.error == "Document is empty"
        assert architecture.tokens_used == 1500
        assert "--- ARCHITECTURE.md ---" not in provider.prompts[-1]


class TestUpdateDocumentation:
    """Tests for regenerating selected documents."""

    @pytest.mark.asyncio
    async def test_existing_architecture_is_context(
        self, project_context: ProjectContext
    ) -> None:
        """Test files regenerated without ARCHITECTURE.md see the existing one."""
        provider = FakeProvider(["# Doc"])
        orchestrator = make_orchestrator(provider)

        batch = await orchestrator.update_documentation(
            project_context,
            ["TESTING.md", "API.md"],
            existing_architecture="# Architecture\nEvent sourced.",
            on_progress=None,
        )

        assert [r.name for r in batch.results] == ["API.md", "TESTING.md"]
        assert provider.calls == 2
        for prompt in provider.prompts:
            assert "Event sourced." in prompt

    @pytest.mark.asyncio
    async def test_regenerated_architecture_replaces_existing(
        self, project_context: ProjectContext
    ) -> None:
        """Test a regenerated ARCHITECTURE.md runs first and feeds the others."""

        def respond(prompt: str) -> str:
            if prompt.startswith("You are writing ARCHITECTURE.md"):
                return "# Architecture\nNow with queues."
            return "# Doc"

        provider = FakeProvider([respond])
        orchestrator = make_orchestrator(provider, concurrency=3)

        batch = await orchestrator.update_documentation(
            project_context,
            ["SETUP.md", "ARCHITECTURE.md"],
            existing_architecture="# Architecture\nOld design.",
            on_progress=None,
        )

        assert [r.name for r in batch.results] == ["ARCHITECTURE.md", "SETUP.md"]
        assert "Now with queues." in provider.prompts[1]
        assert "Old design." not in provider.prompts[1]

    @pytest.mark.asyncio
    async def test_unknown_document(self, project_context: ProjectContext) -> None:
        """Test unknown file names are rejected before any call."""
        provider = FakeProvider()
        orchestrator = make_orchestrator(provider)

        with pytest.raises(ValueError, match="Unknown document"):
            await orchestrator.update_documentation(project_context, ["README.md"])

        assert provider.calls == 0


class TestGenerateSummary:
    """Tests for the executive summary."""

    @pytest.mark.asyncio
    async def test_summary_includes_results(self, project_context: ProjectContext) -> None:
        """Test earlier results are included in the summary prompt."""
        provider = FakeProvider(["# Summary\nShip it."])
        orchestrator = make_orchestrator(provider)
        results = [
            JobResult(name="security", status=JobStatus.SUCCESS, output='{"overallGrade": "B"}'),
            JobResult(name="cost", status=JobStatus.ERROR, error="timed out"),
        ]

        summary = await orchestrator.generate_summary(project_context, results)

        assert summary.name == "SUMMARY.md"
        assert summary.output == "# Summary\nShip it."
        assert '--- security (success) ---' in provider.prompts[0]
        assert "timed out" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_summary_failure_is_a_result(self, project_context: ProjectContext) -> None:
        """Test a failed summary call is reported, not raised."""
        provider = FakeProvider([PermanentProviderError("quota exceeded")])
        orchestrator = make_orchestrator(provider)

        summary = await orchestrator.generate_summary(project_context, [])

        assert summary.status == JobStatus.ERROR
        assert summary.error == "quota exceeded"
