"""lean-intel CLI interface.

Commands:
- init: Create a project configuration
- analyze: Run security/license/quality/cost/HIPAA analyzers
- docs: Generate documentation files
- update: Regenerate only the documentation affected by recent commits
- estimate: Estimate the cost of a run before making any calls
- cache stats / cache clear: Inspect or empty the LLM result cache

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log lines
- --version: Show version and exit

Exit codes:
    0: Every job succeeded
    1: Every job failed, or configuration/input was invalid
    2: Some jobs failed
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from lean_intel import __version__
from lean_intel.config import CONFIG_DIR, LeanIntelConfig, create_default_config, load_config
from lean_intel.context import gather_context
from lean_intel.incremental import (
    GenerationRecord,
    categorize_changes,
    changed_files_since,
    estimate_impact_level,
    full_regeneration_reason,
    is_valid_commit,
    load_generation_record,
    map_changes_to_docs,
    save_generation_record,
)
from lean_intel.llm.cache import ResultCache
from lean_intel.llm.prompts import ANALYZERS, ARCHITECTURE_FILE, documents_for_tier
from lean_intel.llm.providers import create_provider
from lean_intel.models.llm_config import VALID_PROVIDERS, Vendor
from lean_intel.models.project import DocumentationTier, ProjectContext
from lean_intel.models.results import BatchResult
from lean_intel.orchestrator import LLMOrchestrator
from lean_intel.utils.estimate import estimate_cost
from lean_intel.utils.logging import configure_from_cli, get_logger

app = typer.Typer(
    name="lean-intel",
    help="LLM-powered documentation and due-diligence analysis for codebases",
    add_completion=False,
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect or clear the LLM result cache", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

# Global state
_config_path: Path | None = None
_logger = get_logger()

RepoOption = Annotated[
    Path,
    typer.Option("--repo", "-r", help="Project path", exists=True, file_okay=False),
]

IndustryOption = Annotated[
    str | None,
    typer.Option(
        "--industry",
        help="Industry hint (e.g. healthcare, fintech) for tier selection; overrides config",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"lean-intel {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output with timestamps"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress info messages (warnings and errors only)"),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option("--ci", help="Enable CI mode with JSON output"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """lean-intel - codebase documentation and analysis with LLMs."""
    global _config_path

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)
    _config_path = config


def _load_config(repo_path: Path) -> LeanIntelConfig:
    """Load configuration for a project, exiting with 1 on errors."""
    try:
        config = load_config(config_path=_config_path, project_path=repo_path)
    except (FileNotFoundError, ValueError, OSError) as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)

    if config.config_path:
        _logger.debug(f"Loaded config from: {config.config_path}")
    return config


def _gather(
    repo_path: Path, config: LeanIntelConfig, industry: str | None = None
) -> ProjectContext:
    """Gather project context; --industry overrides the configured industry."""
    try:
        return gather_context(
            repo_path,
            industry=industry or config.project.industry,
            redact_pii=config.project.redact_pii,
        )
    except ValueError as e:
        _logger.error(f"Invalid project: {e}")
        raise typer.Exit(1)


def _build_orchestrator(
    config: LeanIntelConfig,
    repo_path: Path,
    context: ProjectContext,
    concurrency: int | None,
    skip_cache: bool,
) -> LLMOrchestrator:
    """Create the provider and orchestrator, exiting with 1 on configuration errors."""
    try:
        provider_config = config.llm.provider_config()
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    for warning in provider_config.validate():
        _logger.warning(warning)

    provider = create_provider(provider_config)
    # The revision read while gathering context holds for the whole run
    cache = ResultCache(
        repo_path,
        ttl_seconds=config.runtime.cache_ttl_seconds,
        revision_provider=lambda: context.git_revision,
    )

    return LLMOrchestrator(
        provider,
        cache=cache,
        retry_policy=config.runtime.retry_policy(),
        concurrency=concurrency or config.runtime.concurrency,
        skip_cache=skip_cache or config.runtime.skip_cache,
    )


def _selected_analyzers(
    security: bool, license: bool, quality: bool, cost: bool, hipaa: bool
) -> list[str]:
    flags = {
        "security": security,
        "license": license,
        "quality": quality,
        "cost": cost,
        "hipaa": hipaa,
    }
    selected = [name for name, enabled in flags.items() if enabled]
    return selected or list(ANALYZERS)


def _write_documents(batch: BatchResult, output_dir: Path) -> list[str]:
    """Write successful documents and return their file names."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for result in batch.results:
        if result.ok and result.output:
            (output_dir / result.name).write_text(result.output)
            written.append(result.name)
    return written


def _report_totals(batch: BatchResult) -> None:
    typer.echo(
        f"\n{batch.success_count}/{len(batch.results)} succeeded | "
        f"{batch.tokens_used:,} tokens | ${batch.total_cost:.4f} | {batch.duration:.1f}s"
    )
    _logger.structured(
        logging.INFO,
        f"Run complete: {batch.success_count}/{len(batch.results)} succeeded",
        succeeded=batch.success_count,
        failed=batch.error_count,
        input_tokens=batch.total_input_tokens,
        output_tokens=batch.total_output_tokens,
        cost=batch.total_cost,
        duration=round(batch.duration, 3),
    )


def _exit_for(batch: BatchResult) -> None:
    """Exit 0 when all jobs succeeded, 2 when some failed, 1 when all failed."""
    if batch.error_count == 0:
        raise typer.Exit(0)
    if batch.success_count == 0:
        raise typer.Exit(1)
    raise typer.Exit(2)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    repo: RepoOption = Path("."),
    provider: Annotated[
        str | None,
        typer.Option("--provider", "-p", help="LLM provider: anthropic, openai, google, xai"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing config"),
    ] = False,
) -> None:
    """Create .lean-intel/config.yaml for a project."""
    config_dir = repo.resolve() / CONFIG_DIR
    config_file = config_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    if provider is None:
        provider = typer.prompt(
            f"LLM provider ({', '.join(v.value for v in Vendor)})",
            default=Vendor.ANTHROPIC.value,
            show_default=True,
        )

    provider = provider.lower().strip()
    if provider not in VALID_PROVIDERS:
        _logger.error(f"Invalid provider: {provider}. Valid: {sorted(VALID_PROVIDERS)}")
        raise typer.Exit(1)

    config_dir.mkdir(parents=True, exist_ok=True)
    config_file.write_text(create_default_config(provider))
    _logger.info(f"Created config: {config_file}")

    typer.echo("\n✅ lean-intel configuration initialized")
    typer.echo(f"   Config: {config_file}")
    raise typer.Exit(0)


# =============================================================================
# analyze command
# =============================================================================


@app.command()
def analyze(
    repo: RepoOption = Path("."),
    security: Annotated[bool, typer.Option("--security", help="Run security analysis")] = False,
    license: Annotated[bool, typer.Option("--license", help="Run license analysis")] = False,
    quality: Annotated[bool, typer.Option("--quality", help="Run code quality analysis")] = False,
    cost: Annotated[bool, typer.Option("--cost", help="Run infrastructure cost analysis")] = False,
    hipaa: Annotated[bool, typer.Option("--hipaa", help="Run HIPAA compliance analysis")] = False,
    summary: Annotated[
        bool,
        typer.Option("--summary/--no-summary", help="Write an executive summary"),
    ] = False,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", min=1, help="LLM calls in flight (overrides config)"),
    ] = None,
    skip_cache: Annotated[
        bool,
        typer.Option("--skip-cache", help="Bypass the LLM result cache"),
    ] = False,
    industry: IndustryOption = None,
) -> None:
    """Run analyzers and write one JSON report per analyzer.

    Without category flags, every analyzer runs.
    """
    repo_path = repo.resolve()
    config = _load_config(repo_path)
    categories = _selected_analyzers(security, license, quality, cost, hipaa)

    context = _gather(repo_path, config, industry)
    orchestrator = _build_orchestrator(config, repo_path, context, concurrency, skip_cache)

    _logger.info(f"Running analyzers: {', '.join(categories)}")
    batch = asyncio.run(orchestrator.run_all_analyzers(context, categories))

    reports_dir = repo_path / config.output.reports_directory
    reports_dir.mkdir(parents=True, exist_ok=True)

    for result in batch.results:
        report_path = reports_dir / f"{result.name}.json"
        report_path.write_text(json.dumps(result.to_dict(), indent=2))
        _logger.debug(f"Wrote {report_path}")

    if summary and batch.success_count:
        summary_result = asyncio.run(orchestrator.generate_summary(context, batch.results))
        if summary_result.ok and summary_result.output:
            (reports_dir / "SUMMARY.md").write_text(summary_result.output)
        else:
            _logger.warning(f"Summary generation failed: {summary_result.error}")
        batch.results.append(summary_result)

    for result in batch.results:
        status = "✅" if result.ok else "❌"
        typer.echo(f"{status} {result.name}: {result.status.value}")
    typer.echo(f"\n📄 Reports written to: {reports_dir}")
    _report_totals(batch)
    _exit_for(batch)


# =============================================================================
# docs command
# =============================================================================


@app.command()
def docs(
    repo: RepoOption = Path("."),
    tier: Annotated[
        str | None,
        typer.Option("--tier", "-t", help="minimal, standard or comprehensive (auto if omitted)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output directory (overrides config)"),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", min=1, help="LLM calls in flight (overrides config)"),
    ] = None,
    skip_cache: Annotated[
        bool,
        typer.Option("--skip-cache", help="Bypass the LLM result cache"),
    ] = False,
    industry: IndustryOption = None,
) -> None:
    """Generate documentation files, ARCHITECTURE.md first."""
    repo_path = repo.resolve()
    config = _load_config(repo_path)

    doc_tier: DocumentationTier | None = None
    if tier is not None:
        try:
            doc_tier = DocumentationTier(tier.lower())
        except ValueError:
            valid = [t.value for t in DocumentationTier]
            _logger.error(f"Invalid tier: {tier}. Valid: {valid}")
            raise typer.Exit(1)

    context = _gather(repo_path, config, industry)
    orchestrator = _build_orchestrator(config, repo_path, context, concurrency, skip_cache)

    batch = asyncio.run(orchestrator.generate_documentation(context, doc_tier))

    output_dir = output or (repo_path / config.output.directory)
    written = _write_documents(batch, output_dir)

    if context.git_revision and written:
        record = GenerationRecord.create(
            context.git_revision, (doc_tier or context.tier).value, written
        )
        save_generation_record(repo_path, record)
    elif not context.git_revision:
        _logger.debug("Not a git repository; `update` will need --force")

    typer.echo(f"\n📄 Documentation written to: {output_dir}")
    _report_totals(batch)
    _exit_for(batch)


# =============================================================================
# update command
# =============================================================================


@app.command()
def update(
    repo: RepoOption = Path("."),
    since: Annotated[
        str | None,
        typer.Option("--since", help="Commit to diff against (default: last docs run)"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Documentation directory (overrides config)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Regenerate every previously generated file"),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be regenerated without calling a provider"),
    ] = False,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", min=1, help="LLM calls in flight (overrides config)"),
    ] = None,
    skip_cache: Annotated[
        bool,
        typer.Option("--skip-cache", help="Bypass the LLM result cache"),
    ] = False,
    industry: IndustryOption = None,
) -> None:
    """Regenerate the documentation affected by commits since the last docs run."""
    repo_path = repo.resolve()
    config = _load_config(repo_path)
    output_dir = output or (repo_path / config.output.directory)
    record = load_generation_record(repo_path)

    if record is None and not force:
        _logger.error("No previous generation found")
        _logger.info("Run `lean-intel docs` first, or use --force to regenerate everything")
        raise typer.Exit(1)

    context = _gather(repo_path, config, industry)

    if force or record is None:
        file_names = (
            record.generated_files
            if record
            else [d.file_name for d in documents_for_tier(context.tier)]
        )
        typer.echo(f"Forced regeneration of {len(file_names)} file(s)")
    else:
        since_commit = since or record.commit
        if not is_valid_commit(repo_path, since_commit):
            _logger.error(f"Commit {since_commit} not found in history")
            _logger.info("Use --force to regenerate everything")
            raise typer.Exit(1)

        try:
            changes = changed_files_since(repo_path, since_commit)
        except ValueError as e:
            _logger.error(str(e))
            raise typer.Exit(1)

        if not changes:
            typer.echo(f"No changes since {since_commit}; documentation is up to date")
            raise typer.Exit(0)

        categories = categorize_changes(changes)
        typer.echo(
            f"{len(changes)} file(s) changed since {since_commit} "
            f"(impact: {estimate_impact_level(categories).value})"
        )

        reason = full_regeneration_reason(categories)
        if reason:
            _logger.warning(f"{reason}; full regeneration recommended")
            typer.echo("Run `lean-intel docs`, or `lean-intel update --force`")
            raise typer.Exit(0)

        file_names = map_changes_to_docs(categories, record.generated_files)
        if not file_names:
            typer.echo("No documentation affected by these changes")
            raise typer.Exit(0)

    typer.echo(f"Files to regenerate: {', '.join(file_names)}")
    if dry_run:
        raise typer.Exit(0)

    architecture_path = output_dir / ARCHITECTURE_FILE
    existing_architecture = (
        architecture_path.read_text() if architecture_path.is_file() else None
    )

    orchestrator = _build_orchestrator(config, repo_path, context, concurrency, skip_cache)
    try:
        batch = asyncio.run(
            orchestrator.update_documentation(context, file_names, existing_architecture)
        )
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    written = _write_documents(batch, output_dir)

    if not context.git_revision:
        _logger.debug("Not a git repository; generation record not updated")
    elif batch.error_count:
        _logger.warning("Generation record not updated; failed files are retried next update")
    elif record:
        save_generation_record(repo_path, record.merged(context.git_revision, written))
    else:
        save_generation_record(
            repo_path, GenerationRecord.create(context.git_revision, context.tier.value, written)
        )

    typer.echo(f"\n📄 Documentation written to: {output_dir}")
    _report_totals(batch)
    _exit_for(batch)


# =============================================================================
# estimate command
# =============================================================================


@app.command()
def estimate(
    repo: RepoOption = Path("."),
    docs: Annotated[bool, typer.Option("--docs", help="Include documentation")] = False,
    security: Annotated[bool, typer.Option("--security")] = False,
    license: Annotated[bool, typer.Option("--license")] = False,
    quality: Annotated[bool, typer.Option("--quality")] = False,
    cost: Annotated[bool, typer.Option("--cost")] = False,
    hipaa: Annotated[bool, typer.Option("--hipaa")] = False,
    industry: IndustryOption = None,
) -> None:
    """Estimate tokens and cost of a run without calling any provider.

    Without flags, documentation plus every analyzer is estimated.
    """
    repo_path = repo.resolve()
    config = _load_config(repo_path)
    context = _gather(repo_path, config, industry)

    any_analyzer = any((security, license, quality, cost, hipaa))
    if not docs and not any_analyzer:
        jobs = ["documentation", *ANALYZERS]
    else:
        jobs = ["documentation"] if docs else []
        if any_analyzer:
            jobs += _selected_analyzers(security, license, quality, cost, hipaa)

    result = estimate_cost(
        context, jobs, Vendor(config.llm.provider), config.llm.resolved_model
    )

    typer.echo(f"Project: {context.name} ({context.file_count} files, {context.line_count:,} lines)")
    typer.echo(f"Model: {config.llm.provider}/{config.llm.resolved_model} ({result.pricing_info})")
    typer.echo(f"Jobs: {', '.join(jobs)}")
    typer.echo(
        f"Estimated: {result.input_tokens:,} input + {result.output_tokens:,} output tokens"
        f" = ${result.estimated_cost:.2f}"
    )
    raise typer.Exit(0)


# =============================================================================
# cache commands
# =============================================================================


@cache_app.command("stats")
def cache_stats(repo: RepoOption = Path(".")) -> None:
    """Show the number and size of cached results."""
    cache = ResultCache(repo.resolve())
    stats = cache.stats()
    typer.echo(f"Entries: {stats.entries}")
    typer.echo(f"Size: {stats.size_bytes / 1024:.1f} KB")
    typer.echo(f"Location: {cache.cache_dir}")
    raise typer.Exit(0)


@cache_app.command("clear")
def cache_clear(repo: RepoOption = Path(".")) -> None:
    """Delete every cached result."""
    removed = ResultCache(repo.resolve()).clear()
    typer.echo(f"Cleared {removed} cached result(s)")
    raise typer.Exit(0)


if __name__ == "__main__":
    app()
