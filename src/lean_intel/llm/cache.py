"""Disk-backed cache for LLM completions.

One JSON file per request fingerprint under
``<project>/.lean-intel/llm-cache/``. An entry is served only while it is
younger than the TTL and was written at the current source revision. Every
storage failure degrades to a miss (or a skipped write); the cache never
fails its caller.
"""

import json
import logging
import os
import subprocess
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from lean_intel.llm.errors import CacheIOError
from lean_intel.models.completion import CacheEntry, CompletionRequest, CompletionResult

logger = logging.getLogger(__name__)

CACHE_DIR = Path(".lean-intel") / "llm-cache"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

RevisionProvider = Callable[[], str | None]


@dataclass
class CacheStats:
    """Cache usage summary.

    Attributes:
        entries: Number of cached entries
        size_bytes: Total size of entry files
    """

    entries: int = 0
    size_bytes: int = 0


def get_git_revision(project_path: Path) -> str | None:
    """Get the short (8-char) commit hash of HEAD.

    Args:
        project_path: Directory inside the repository

    Returns:
        Short hash, or None if not a git repository or git is unavailable
    """
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short=8", "HEAD"],
            capture_output=True,
            text=True,
            cwd=str(project_path),
            timeout=10,
        )
        if result.returncode == 0:
            return result.stdout.strip() or None
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        pass
    return None


class ResultCache:
    """File-per-entry completion cache keyed by request fingerprint."""

    def __init__(
        self,
        project_path: Path | str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        revision_provider: RevisionProvider | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            project_path: Project root; the store lives beneath it
            ttl_seconds: Maximum entry age
            revision_provider: Returns the current source revision
                (defaults to the project's git HEAD, read once)
            clock: Returns the current time as epoch seconds
        """
        self.project_path = Path(project_path)
        self.cache_dir = self.project_path / CACHE_DIR
        self.ttl_seconds = ttl_seconds
        self._revision_provider = revision_provider or self._head_revision
        self._head: str | None = None
        self._head_resolved = False
        self._clock = clock

    def _head_revision(self) -> str | None:
        """Git HEAD of the project, looked up once per cache instance."""
        if not self._head_resolved:
            self._head = get_git_revision(self.project_path)
            self._head_resolved = True
        return self._head

    def _entry_path(self, fingerprint: str) -> Path:
        return self.cache_dir / f"{fingerprint}.json"

    def get(self, request: CompletionRequest) -> CompletionResult | None:
        """Look up a cached result.

        Expired or stale entries are removed.

        Returns:
            Cached result, or None on a miss
        """
        fingerprint = request.fingerprint()
        path = self._entry_path(fingerprint)

        try:
            entry = self._read_entry(path)
        except CacheIOError as e:
            logger.debug("Cache read failed for %s: %s", fingerprint, e)
            return None

        if entry is None:
            return None

        if entry.is_expired(self._clock(), self.ttl_seconds):
            logger.debug("Cache entry %s expired", fingerprint)
            self._evict(path)
            return None

        if not entry.matches_revision(self._revision_provider()):
            logger.debug("Cache entry %s written at another revision", fingerprint)
            self._evict(path)
            return None

        logger.debug("Cache hit: %s", fingerprint)
        return entry.result

    def set(self, request: CompletionRequest, result: CompletionResult) -> None:
        """Store a result for a request. Failures are logged and ignored."""
        entry = CacheEntry(
            result=result,
            timestamp=self._clock(),
            fingerprint=request.fingerprint(),
            model=request.model,
            source_revision=self._revision_provider(),
        )

        try:
            self._write_entry(self._entry_path(entry.fingerprint), entry)
        except CacheIOError as e:
            logger.debug("Cache write failed for %s: %s", entry.fingerprint, e)

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries removed
        """
        removed = 0
        for path in self._entry_files():
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.debug("Could not remove cache file %s: %s", path.name, e)
        return removed

    def stats(self) -> CacheStats:
        """Count entries and their total size on disk."""
        stats = CacheStats()
        for path in self._entry_files():
            try:
                stats.size_bytes += path.stat().st_size
                stats.entries += 1
            except OSError:
                continue
        return stats

    def _entry_files(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return sorted(self.cache_dir.glob("*.json"))

    def _read_entry(self, path: Path) -> CacheEntry | None:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CacheIOError(f"Unreadable cache entry {path.name}: {e}") from e

    def _write_entry(self, path: Path, entry: CacheEntry) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entry.to_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CacheIOError(f"Cannot write cache entry {path.name}: {e}") from e

    def _evict(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Could not evict cache file %s: %s", path.name, e)
