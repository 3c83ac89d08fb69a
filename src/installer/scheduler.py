"""Bounded-concurrency installation of locked packages.

Each package runs through metadata lookup, content fetch, checksum
verification and extraction. Up to ``max_concurrency`` pipelines drain a
shared queue. Pipelines never raise into the pool: every package ends as a
``PackageOutcome`` stored in a lock-guarded results map.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from common.errors import RockyardError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from common.retry import acall_with_retries
from constants import Constants
from lockfile.checksum import compute_checksum, parse_checksum, verify_checksum
from lockfile.models import LockEntry, Lockfile

from .extract import place_package
from .locking import ProjectLock
from .models import InstallReport, InstallStatus, PackageOutcome

logger = logging.getLogger(__name__)


class _Stopped(Exception):
    """Raised inside a pipeline when fail-fast was triggered elsewhere."""


class _Attempts:
    __slots__ = ("count",)

    def __init__(self) -> None:
        self.count = 0


async def call_source(func: Callable[..., Any], *args: Any) -> Any:
    """Await async source methods; run blocking ones in a worker thread."""
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    return await asyncio.to_thread(func, *args)


class InstallScheduler:
    """Installs lock entries from a package source into ``dest``."""

    def __init__(
        self,
        source: Any,
        dest: str,
        max_concurrency: int = Constants.MAX_CONCURRENT_INSTALLS,
        fail_fast: bool = False,
        timeout: Optional[float] = Constants.REQUEST_TIMEOUT,
        retry_max: int = Constants.HTTP_RETRY_MAX,
        retry_base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
        verify_checksums: bool = True,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.source = source
        self.dest = dest
        self.max_concurrency = max_concurrency
        self.fail_fast = fail_fast
        self.timeout = timeout
        self.retry_max = retry_max
        self.retry_base_delay = retry_base_delay
        self.verify_checksums = verify_checksums
        self._results: Dict[str, PackageOutcome] = {}
        self._results_lock: Optional[asyncio.Lock] = None
        self._stop: Optional[asyncio.Event] = None

    async def run(self, entries: Iterable[LockEntry]) -> InstallReport:
        """Install every entry and return one outcome per package."""
        queue: "asyncio.Queue[LockEntry]" = asyncio.Queue()
        pending = list(entries)
        for entry in pending:
            queue.put_nowait(entry)
        self._results = {}
        self._results_lock = asyncio.Lock()
        self._stop = asyncio.Event()

        worker_count = min(self.max_concurrency, len(pending))
        with Timer() as timer:
            workers = [asyncio.create_task(self._worker(queue)) for _ in range(worker_count)]
            await asyncio.gather(*workers)

        report = InstallReport(outcomes=dict(sorted(self._results.items())))
        logger.info(
            "Installed %d of %d package(s)",
            len(report.succeeded),
            len(report),
            extra=extra_context(
                event="install", component="installer",
                outcome="success" if report.ok else "failed",
                duration_ms=timer.duration_ms(),
            ),
        )
        for outcome in report.failed:
            if not outcome.cancelled:
                logger.error("%s", outcome)
        return report

    def install(self, entries: Iterable[LockEntry], lock_path: Optional[str] = None) -> InstallReport:
        """Blocking wrapper around ``run``, optionally holding a project lock."""
        if isinstance(entries, Lockfile):
            entries = entries.entries
        if lock_path is None:
            return asyncio.run(self.run(entries))
        with ProjectLock(lock_path):
            return asyncio.run(self.run(entries))

    async def _record(self, outcome: PackageOutcome) -> None:
        assert self._results_lock is not None
        async with self._results_lock:
            self._results[outcome.name] = outcome

    async def _worker(self, queue: "asyncio.Queue[LockEntry]") -> None:
        assert self._stop is not None
        while True:
            try:
                entry = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                if self._stop.is_set():
                    outcome = PackageOutcome(entry.name, entry.version, InstallStatus.FAILED,
                                             "not started: cancelled after an earlier failure", cancelled=True)
                else:
                    outcome = await self._pipeline(entry)
                await self._record(outcome)
                if not outcome.ok and not outcome.cancelled and self.fail_fast:
                    self._stop.set()
            finally:
                queue.task_done()

    def _checkpoint(self) -> None:
        assert self._stop is not None
        if self._stop.is_set():
            raise _Stopped()

    async def _pipeline(self, entry: LockEntry) -> PackageOutcome:
        attempts = _Attempts()
        version = entry.semantic_version
        try:
            published = await self._with_retries(lambda: call_source(self.source.list_versions, entry.name),
                                                 f"metadata {entry.name}", attempts)
            if not any(p.version == version for p in published):
                return self._failed(entry, f"version {entry.version} is not published", attempts)
            self._checkpoint()

            content = await self._with_retries(lambda: call_source(self.source.fetch, entry.name, version),
                                               f"fetch {entry.name}@{entry.version}", attempts)
            self._checkpoint()

            if self.verify_checksums and not verify_checksum(content, entry.checksum):
                algorithm, _ = parse_checksum(entry.checksum)
                return self._failed(
                    entry,
                    f"checksum mismatch: expected {entry.checksum}, got {compute_checksum(content, algorithm)}",
                    attempts,
                )
            self._checkpoint()

            await asyncio.to_thread(place_package, self.dest, entry.name, entry.version, content)
        except _Stopped:
            return PackageOutcome(entry.name, entry.version, InstallStatus.FAILED,
                                  "stopped: cancelled after an earlier failure", cancelled=True,
                                  attempts=attempts.count)
        except (RockyardError, OSError) as exc:
            return self._failed(entry, str(exc), attempts)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.exception("Unexpected error installing %s@%s", entry.name, entry.version)
            return self._failed(entry, f"unexpected error: {exc.__class__.__name__}: {exc}", attempts)

        if is_debug_enabled(logger):
            logger.debug("Package installed",
                         extra=extra_context(event="install_package", component="installer",
                                             package=entry.name, outcome="success"))
        return PackageOutcome(entry.name, entry.version, InstallStatus.SUCCESS, attempts=attempts.count)

    async def _with_retries(self, func: Callable[[], Any], context: str, attempts: _Attempts) -> Any:
        async def counted() -> Any:
            attempts.count += 1
            return await func()

        return await acall_with_retries(
            counted,
            retries=self.retry_max,
            base_delay=self.retry_base_delay,
            timeout=self.timeout,
            context=context,
        )

    @staticmethod
    def _failed(entry: LockEntry, reason: str, attempts: _Attempts) -> PackageOutcome:
        return PackageOutcome(entry.name, entry.version, InstallStatus.FAILED, reason, attempts=attempts.count)


def install(
    entries: Iterable[LockEntry],
    source: Any,
    dest: str,
    *,
    lock_path: Optional[str] = None,
    **options: Any,
) -> InstallReport:
    """Install ``entries`` into ``dest`` with a fresh scheduler."""
    return InstallScheduler(source, dest, **options).install(entries, lock_path=lock_path)