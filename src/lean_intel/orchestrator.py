"""LLM orchestration: cached, retried completions fanned out over bounded concurrency.

Every job goes through the same path: cache lookup, provider call wrapped in
the retry executor, cache store, then (for analyzers) the resilience
pipeline. Failures are isolated per job and reported as JobResult errors;
a batch of N jobs always yields N results.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any

from lean_intel.llm.cache import ResultCache
from lean_intel.llm.prompts import (
    ANALYZERS,
    ARCHITECTURE_FILE,
    DOC_OPTIONS,
    SUMMARY_OPTIONS,
    DocumentDefinition,
    PromptBuilder,
    documents_for_tier,
    documents_named,
    get_analyzer,
)
from lean_intel.llm.providers import LLMProvider
from lean_intel.llm.resilience import ValidatedOutput, extract_markdown, parse_structured
from lean_intel.llm.retry import RetryPolicy, SleepFn, with_retry
from lean_intel.llm.scheduler import Job, TaskResult, run_staged
from lean_intel.models.completion import CompletionOptions, CompletionRequest, CompletionResult
from lean_intel.models.project import DocumentationTier, ProjectContext
from lean_intel.models.results import BatchResult, JobResult, JobStatus
from lean_intel.utils.output_validator import validate_markdown

logger = logging.getLogger(__name__)

JobProgress = Callable[[int, int, JobResult], None]

PARSE_FAILURE_MESSAGE = "Failed to parse response"


def log_progress(completed: int, total: int, result: JobResult) -> None:
    """Default progress reporter: one log line per settled job."""
    if result.ok:
        logger.info(
            "[%d/%d] Generated %s (%s tokens, $%.4f)",
            completed,
            total,
            result.name,
            f"{result.tokens_used:,}",
            result.cost,
        )
    else:
        logger.error("[%d/%d] Failed %s: %s", completed, total, result.name, result.error)


class LLMOrchestrator:
    """Runs LLM jobs against one provider.

    Usage:
        orchestrator = LLMOrchestrator(provider, cache=ResultCache(repo_path))
        batch = await orchestrator.run_all_analyzers(context)
    """

    def __init__(
        self,
        provider: LLMProvider,
        cache: ResultCache | None = None,
        retry_policy: RetryPolicy | None = None,
        concurrency: int = 3,
        skip_cache: bool = False,
        prompt_builder: PromptBuilder | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider: LLM provider
            cache: Result cache (None disables caching)
            retry_policy: Retry policy for provider calls
            concurrency: Maximum jobs in flight
            skip_cache: Bypass cache reads and writes for this session
            prompt_builder: Prompt builder (defaults to the packaged templates)
            sleep: Sleep function used between retries
        """
        self.provider = provider
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = max(1, concurrency)
        self.skip_cache = skip_cache
        self.prompts = prompt_builder or PromptBuilder()
        self._sleep = sleep

        logger.debug(
            "Initialized LLM provider: %s (%s)", provider.get_name(), provider.get_model()
        )
        if skip_cache:
            logger.debug("Cache disabled for this session")

    @property
    def caching(self) -> bool:
        return self.cache is not None and not self.skip_cache

    async def cached_completion(
        self, prompt: str, options: CompletionOptions
    ) -> CompletionResult:
        """Completion served from the cache when possible.

        On a miss the provider is called through the retry executor and the
        result is stored.
        """
        request = CompletionRequest.create(prompt, self.provider.get_model(), options)

        if self.caching:
            cached = self.cache.get(request)  # type: ignore[union-attr]
            if cached is not None:
                logger.info("(cached)")
                return cached

        result = await with_retry(
            lambda: self.provider.generate_completion(prompt, options),
            self.retry_policy,
            sleep=self._sleep,
            description=f"{self.provider.get_name()} API call",
        )

        if self.caching:
            self.cache.set(request, result)  # type: ignore[union-attr]

        return result

    async def structured_completion(
        self,
        prompt: str,
        options: CompletionOptions,
        schema: Any,
        severity_fields: Iterable[str] | None = None,
    ) -> tuple[CompletionResult, ValidatedOutput[Any]]:
        """Cached completion recovered into a schema-validated value."""
        result = await self.cached_completion(prompt, options)
        return result, parse_structured(result.content, schema, severity_fields)

    async def run_job(self, job: Job[Any]) -> JobResult:
        """Run one job, converting its outcome (or any exception) into a JobResult."""
        start = time.monotonic()
        try:
            value = await job.task()
        except Exception as e:
            duration = time.monotonic() - start
            logger.debug("Job %s failed: %s", job.name, e)
            return JobResult.failure(job.name, str(e) or type(e).__name__, duration)

        duration = time.monotonic() - start

        if isinstance(value, JobResult):
            value.name = job.name
            if not value.duration:
                value.duration = duration
            return value

        if isinstance(value, CompletionResult):
            return JobResult(
                name=job.name,
                status=JobStatus.SUCCESS,
                output=value.content,
                input_tokens=value.input_tokens,
                output_tokens=value.output_tokens,
                cost=value.cost,
                duration=duration,
            )

        return JobResult(
            name=job.name,
            status=JobStatus.SUCCESS,
            output=None if value is None else str(value),
            duration=duration,
        )

    async def run_batch(
        self,
        jobs: Sequence[Job[Any]],
        on_progress: JobProgress | None = log_progress,
    ) -> BatchResult:
        """Run jobs with bounded concurrency, honouring ``blocks_on``.

        Args:
            jobs: Jobs to run
            on_progress: Called as ``(completed, total, JobResult)`` per settled job

        Returns:
            BatchResult with one result per job, in submission order

        Raises:
            ValueError: If a job blocks on an unknown job or the dependencies cycle
        """
        start = time.monotonic()

        def wrap(job: Job[Any]) -> Job[JobResult]:
            return Job(job.name, lambda: self.run_job(job), job.blocks_on)

        def report(completed: int, total: int, result: TaskResult[Any]) -> None:
            if on_progress is not None and isinstance(result.value, JobResult):
                on_progress(completed, total, result.value)

        settled = await run_staged([wrap(job) for job in jobs], self.concurrency, report)

        results = []
        for job, outcome in zip(jobs, settled):
            if outcome.fulfilled and isinstance(outcome.value, JobResult):
                results.append(outcome.value)
            else:
                results.append(JobResult.failure(job.name, str(outcome.reason)))

        return BatchResult(results=results, duration=time.monotonic() - start)

    async def run_analyzer(self, category: str, context: ProjectContext) -> JobResult:
        """Run one analyzer and validate its report.

        A response that cannot be recovered into the report schema yields an
        ERROR result whose output is ``{"error", "raw"}``; tokens and cost
        are still reported.
        """
        definition = get_analyzer(category)
        prompt = self.prompts.analyzer_prompt(definition, context)
        logger.info("Running %s analysis...", definition.title)

        start = time.monotonic()
        result, validated = await self.structured_completion(
            prompt, definition.options, definition.schema, definition.severity_fields
        )
        duration = time.monotonic() - start

        job_result = JobResult(
            name=category,
            status=JobStatus.SUCCESS,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost=result.cost,
            duration=duration,
        )

        if validated.ok:
            report = validated.data
            job_result.output = report.model_dump_json(by_alias=True)
            logger.info(
                "%s analysis complete: Grade %s, score %g",
                definition.title.capitalize(),
                report.overall_grade,
                report.score,
            )
        else:
            logger.error("Failed to parse %s report: %s", category, validated.error)
            for message in validated.errors:
                logger.debug("  %s", message)
            job_result.status = JobStatus.ERROR
            job_result.error = "; ".join([validated.error, *validated.errors])
            job_result.output = json.dumps(
                {"error": PARSE_FAILURE_MESSAGE, "raw": validated.raw_payload}
            )

        return job_result

    async def run_all_analyzers(
        self,
        context: ProjectContext,
        categories: Iterable[str] | None = None,
        on_progress: JobProgress | None = log_progress,
    ) -> BatchResult:
        """Run analyzers concurrently; one crash never affects the others.

        Raises:
            ValueError: If a category is unknown
        """
        selected = list(categories) if categories is not None else list(ANALYZERS)
        for category in selected:
            get_analyzer(category)

        jobs = [
            Job(category, self._analyzer_task(category, context)) for category in selected
        ]
        return await self.run_batch(jobs, on_progress)

    def _analyzer_task(
        self, category: str, context: ProjectContext
    ) -> Callable[[], Awaitable[JobResult]]:
        return lambda: self.run_analyzer(category, context)

    async def generate_document(
        self,
        document: DocumentDefinition,
        context: ProjectContext,
        architecture: str | None = None,
    ) -> JobResult:
        """Generate one documentation file and check it.

        An empty document is an error. Placeholders, generic names and
        oversized output are kept and reported as warnings on the result.
        """
        prompt = self.prompts.document_prompt(document, context, architecture)
        result = await self.cached_completion(prompt, DOC_OPTIONS)
        content = extract_markdown(result.content)

        job_result = JobResult(
            name=document.file_name,
            status=JobStatus.SUCCESS,
            output=content,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost=result.cost,
        )

        if not content:
            job_result.status = JobStatus.ERROR
            job_result.output = None
            job_result.error = "Document is empty"
            return job_result

        for issue in validate_markdown(content).issues:
            logger.warning("%s: %s", document.file_name, issue)
            job_result.warnings.append(str(issue))

        return job_result

    async def generate_documentation(
        self,
        context: ProjectContext,
        tier: DocumentationTier | None = None,
        on_progress: JobProgress | None = log_progress,
    ) -> BatchResult:
        """Generate the documentation files for a tier.

        ARCHITECTURE.md is generated first; every other file waits for it and
        receives its content as context. If it fails, the others are still
        generated without it.
        """
        tier = tier or context.tier
        documents = documents_for_tier(tier)
        logger.info(
            "Generating %s documentation (%d files, concurrency %d)",
            tier.value,
            len(documents),
            self.concurrency,
        )
        return await self._document_batch(context, documents, None, on_progress)

    async def update_documentation(
        self,
        context: ProjectContext,
        file_names: Iterable[str],
        existing_architecture: str | None = None,
        on_progress: JobProgress | None = log_progress,
    ) -> BatchResult:
        """Regenerate selected documentation files.

        When ARCHITECTURE.md is among them it runs first as usual. Otherwise
        (or if regenerating it fails) the existing ARCHITECTURE.md content is
        given to the other files as context.

        Raises:
            ValueError: If a file name is not a known document
        """
        documents = documents_named(file_names)
        logger.info(
            "Updating %d documentation file(s): %s",
            len(documents),
            ", ".join(d.file_name for d in documents),
        )
        return await self._document_batch(context, documents, existing_architecture, on_progress)

    async def _document_batch(
        self,
        context: ProjectContext,
        documents: list[DocumentDefinition],
        existing_architecture: str | None,
        on_progress: JobProgress | None,
    ) -> BatchResult:
        generated: dict[str, str] = {}
        if existing_architecture:
            generated[ARCHITECTURE_FILE] = existing_architecture

        def task(document: DocumentDefinition) -> Callable[[], Awaitable[JobResult]]:
            async def generate() -> JobResult:
                architecture = None
                if document.file_name != ARCHITECTURE_FILE:
                    architecture = generated.get(ARCHITECTURE_FILE)
                result = await self.generate_document(document, context, architecture)
                if result.ok and result.output:
                    generated[document.file_name] = result.output
                return result

            return generate

        has_architecture = any(d.file_name == ARCHITECTURE_FILE for d in documents)
        jobs = [
            Job(
                d.file_name,
                task(d),
                blocks_on=ARCHITECTURE_FILE
                if has_architecture and d.file_name != ARCHITECTURE_FILE
                else None,
            )
            for d in documents
        ]

        batch = await self.run_batch(jobs, on_progress)
        logger.info(
            "Generated %d/%d files: %s tokens, $%.4f, %.1fs",
            batch.success_count,
            len(documents),
            f"{batch.tokens_used:,}",
            batch.total_cost,
            batch.duration,
        )
        return batch

    async def generate_summary(
        self, context: ProjectContext, results: Sequence[JobResult]
    ) -> JobResult:
        """Write an executive summary over earlier analyzer results."""
        job = Job("SUMMARY.md", lambda: self._summary(context, list(results)))
        return await self.run_job(job)

    async def _summary(self, context: ProjectContext, results: list[JobResult]) -> JobResult:
        logger.info("Generating executive summary...")
        prompt = self.prompts.summary_prompt(context, results)
        result = await self.cached_completion(prompt, SUMMARY_OPTIONS)
        content = extract_markdown(result.content)
        logger.info("Summary generated: %d lines, $%.4f", len(content.splitlines()), result.cost)
        return JobResult(
            name="SUMMARY.md",
            status=JobStatus.SUCCESS,
            output=content,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost=result.cost,
        )
