"""High-level operations used by the command-line front end.

``lock``, ``install``, ``verify`` and ``update`` each rebuild the workspace
view from disk, so nothing carries over between invocations except the
lockfile itself.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence

from common.config import Settings, load_settings
from common.errors import LockfileError
from common.retry import call_with_retries
from constants import Constants
from installer.extract import installed_packages, read_installed_content, remove_package
from installer.locking import ProjectLock
from installer.models import InstallReport
from installer.scheduler import InstallScheduler
from lockfile.diff import UpdateDiff
from lockfile.manager import LockfileManager, collect_content
from lockfile.models import IntegrityViolation, Lockfile
from lockfile.store import load_lockfile, save_lockfile, with_rollback
from resolver.models import ResolutionGraph, ResolverOptions
from resolver.resolver import Resolver
from source.http import HttpPackageSource
from workspace.graph import ConstraintDivergence, build_graph
from workspace.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class LockResult:
    """Outcome of ``lock`` or ``update``."""
    graph: ResolutionGraph
    lockfile: Lockfile
    diff: UpdateDiff
    path: str
    diagnostics: List[ConstraintDivergence] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return list(self.graph.warnings) + [str(d) for d in self.diagnostics]


@dataclass
class InstallResult:
    """Outcome of ``install``."""
    report: InstallReport
    lockfile: Lockfile
    removed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.report.ok


def lock_path(project_root: str) -> str:
    return os.path.join(project_root, Constants.STATE_DIR, Constants.LOCK_FILE_NAME)


def default_source(settings: Settings) -> HttpPackageSource:
    return HttpPackageSource(
        registry_url=settings.registry_url,
        timeout=settings.request_timeout,
        retry_max=settings.retry_max,
        retry_base_delay=settings.retry_base_delay,
    )


def retrying_fetcher(source: Any, settings: Settings) -> Callable[[str, Any], bytes]:
    """``source.fetch`` retried on transient failures with the configured backoff."""
    def fetch(name: str, version: Any) -> bytes:
        return call_with_retries(
            lambda: source.fetch(name, version),
            retries=settings.retry_max,
            base_delay=settings.retry_base_delay,
            context=f"fetch {name}@{version}",
        )

    return fetch


def _relock(
    project_root: str,
    source: Any,
    settings: Settings,
    filters: Sequence[str],
    include_dev: bool,
    keep_locked: Optional[Iterable[str]],
) -> LockResult:
    workspace = Workspace.load(project_root)
    ws_graph = build_graph(workspace, filters, include_dev=include_dev)
    old = load_lockfile(project_root)

    preferred = {}
    if old is not None and keep_locked is not None:
        keep = set(keep_locked)
        preferred = {e.name: e.semantic_version for e in old if e.name in keep}

    options = ResolverOptions(
        strategy=settings.resolution_strategy,
        strict=settings.strict,
        include_dev=include_dev,
        preferred=preferred,
    )
    graph = Resolver(source, options).resolve(ws_graph.edges)

    manager = LockfileManager(settings.checksum_algorithm)
    fetch = retrying_fetcher(source, settings)
    with ProjectLock(lock_path(project_root)):
        with with_rollback(project_root):
            if old is None:
                lockfile = manager.compute(graph, collect_content(graph, fetch))
            else:
                lockfile = manager.update(old, graph, fetch)
            path = save_lockfile(project_root, lockfile)

    diff = UpdateDiff.between(old, lockfile)
    for line in diff.summary():
        logger.info("%s", line)
    return LockResult(graph, lockfile, diff, path, ws_graph.diagnostics)


def lock(
    project_root: str,
    source: Any = None,
    settings: Optional[Settings] = None,
    filters: Sequence[str] = (),
    include_dev: bool = True,
) -> LockResult:
    """Resolve the project and write its lockfile.

    Versions already in the lockfile are kept while they still satisfy
    every constraint; only new or newly conflicting packages move.
    """
    settings = settings or load_settings()
    source = source if source is not None else default_source(settings)
    old = load_lockfile(project_root)
    keep = old.names() if old is not None else []
    return _relock(project_root, source, settings, filters, include_dev, keep)


def update(
    project_root: str,
    packages: Sequence[str] = (),
    source: Any = None,
    settings: Optional[Settings] = None,
    filters: Sequence[str] = (),
    include_dev: bool = True,
) -> LockResult:
    """Re-resolve to the newest allowed versions.

    With ``packages`` only those move; every other locked version is kept
    while it still satisfies its constraints.
    """
    settings = settings or load_settings()
    source = source if source is not None else default_source(settings)
    keep: Optional[List[str]] = None
    if packages:
        old = load_lockfile(project_root)
        if old is not None:
            unknown = sorted(set(packages) - set(old.names()))
            if unknown:
                raise LockfileError(f"not in lockfile: {', '.join(unknown)}")
            keep = [n for n in old.names() if n not in set(packages)]
    return _relock(project_root, source, settings, filters, include_dev, keep)


def install(
    project_root: str,
    source: Any = None,
    settings: Optional[Settings] = None,
    frozen: bool = False,
    prune: bool = True,
) -> InstallResult:
    """Install exactly what the lockfile records.

    Without a lockfile the project is locked first, unless ``frozen``.
    """
    settings = settings or load_settings()
    source = source if source is not None else default_source(settings)
    lockfile = load_lockfile(project_root)
    if lockfile is None:
        if frozen:
            raise LockfileError(f"{Constants.LOCKFILE_NAME} is missing and frozen install was requested")
        lockfile = lock(project_root, source=source, settings=settings).lockfile

    dest = os.path.join(project_root, settings.install_dir)
    scheduler = InstallScheduler(
        source,
        dest,
        max_concurrency=settings.max_concurrency,
        fail_fast=settings.fail_fast,
        timeout=settings.request_timeout,
        retry_max=settings.retry_max,
        retry_base_delay=settings.retry_base_delay,
        verify_checksums=settings.verify_checksums,
    )
    removed: List[str] = []
    with ProjectLock(lock_path(project_root)):
        report = scheduler.install(lockfile)
        if prune:
            for name in sorted(installed_packages(dest)):
                if name not in lockfile:
                    remove_package(dest, name)
                    removed.append(name)
    if removed:
        logger.info("Removed %d package(s) no longer in the lockfile", len(removed))
    return InstallResult(report, lockfile, removed)


def verify(project_root: str, settings: Optional[Settings] = None) -> List[IntegrityViolation]:
    """Check installed content against the lockfile checksums."""
    settings = settings or load_settings()
    lockfile = load_lockfile(project_root)
    if lockfile is None:
        raise LockfileError(f"no {Constants.LOCKFILE_NAME} in {project_root}")
    dest = os.path.join(project_root, settings.install_dir)
    installed = read_installed_content(dest, lockfile.names())
    return LockfileManager(settings.checksum_algorithm).verify(lockfile, installed)
