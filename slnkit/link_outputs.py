"""Link a project's build outputs into a shared directory, and undo it."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from slnkit.artifact_locator import Artifact, ArtifactLocator, FailureKind
from slnkit.config_cache import ConfigCache, default_cache
from slnkit.errors import NoMatchingArtifactError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class LinkOutcome:
    """Result for one output directory (link) or one link file (unlink)."""

    path: Path
    ok: bool
    message: str = ""
    failure: FailureKind | None = None
    links: tuple[Path, ...] = ()


class LinkReport:
    """Collects outcomes appended concurrently by worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: list[LinkOutcome] = []

    def add(self, outcome: LinkOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    @property
    def outcomes(self) -> list[LinkOutcome]:
        with self._lock:
            return list(self._outcomes)

    @property
    def successes(self) -> list[LinkOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def linked(self) -> list[LinkOutcome]:
        """Successful outcomes that actually created links."""
        return [o for o in self.outcomes if o.links]

    @property
    def failures(self) -> list[LinkOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def exit_code(self) -> int:
        """0 when every recorded outcome succeeded, 1 otherwise."""
        return 1 if self.failures else 0


def _worker_count(max_workers: int | None, tasks: int) -> int:
    cpus = os.cpu_count() or 1
    return max(1, min(max_workers or cpus, cpus, tasks))


def _project_name(locator: ArtifactLocator) -> str:
    path = locator.project_path
    return path.stem if path.is_file() else path.resolve().name


def link_project(
    project_dir: str | Path,
    target_dir: str | Path | None = None,
    *,
    max_workers: int | None = None,
    cache: ConfigCache | None = None,
) -> LinkReport:
    """Link the newest ``<project>*<ext>`` found in the output directories into *target_dir*.

    Every output directory is searched in parallel. When several directories
    hold a binary with the same file name, only the newest one is linked and
    the others are reported as superseded. A directory without a matching
    binary is not a failure; the report fails only when nothing was found at
    all or a link could not be created.
    """
    cache = cache or default_cache
    target = target_dir or cache.get("link.target")
    if not target:
        msg = "No link target given and 'link.target' is not configured"
        raise ValidationError(msg)
    if max_workers is None:
        max_workers = cache.get("workers.max_workers")

    locator = ArtifactLocator.from_config(project_dir, cache, include_subfolders=False)
    report = LinkReport()
    try:
        name = _project_name(locator)
        locator.include_patterns = [f"{name}*{locator.binary_extension}"]
        directories = locator.candidate_directories()
    except NotFoundError as exc:
        report.add(LinkOutcome(Path(project_dir), False, str(exc), FailureKind.NOT_FOUND))
        return report

    if not directories:
        report.add(
            LinkOutcome(
                Path(project_dir),
                False,
                "No output directories found. Build the project first.",
                FailureKind.NO_OUTPUT_DIRECTORIES,
            )
        )
        return report

    found: dict[Path, Artifact] = {}
    found_lock = threading.Lock()

    def search_one(directory: Path) -> None:
        try:
            artifact = locator.find_newest([directory])
        except NoMatchingArtifactError:
            report.add(LinkOutcome(directory, True, "No matching binary"))
            return
        with found_lock:
            found[directory] = artifact

    with ThreadPoolExecutor(max_workers=_worker_count(max_workers, len(directories))) as pool:
        list(pool.map(search_one, directories))

    if not found:
        report.add(
            LinkOutcome(
                Path(project_dir),
                False,
                f"No {name}*{locator.binary_extension} in {len(directories)} output directories",
                FailureKind.NO_MATCH,
            )
        )
        return report

    winners: dict[str, tuple[Path, Artifact]] = {}
    for directory, artifact in sorted(
        found.items(), key=lambda item: (-item[1].modified, str(item[1].binary))
    ):
        key = artifact.binary.name.casefold()
        if key in winners:
            report.add(
                LinkOutcome(directory, True, f"Superseded by {winners[key][1].binary}")
            )
        else:
            winners[key] = (directory, artifact)

    # Each link name is written by exactly one worker.
    def link_one(entry: tuple[Path, Artifact]) -> None:
        directory, artifact = entry
        result = locator.link(artifact, target)
        report.add(
            LinkOutcome(
                directory,
                result.ok,
                result.message,
                result.failure,
                tuple(result.links),
            )
        )

    entries = list(winners.values())
    with ThreadPoolExecutor(max_workers=_worker_count(max_workers, len(entries))) as pool:
        list(pool.map(link_one, entries))

    logger.info(
        "Linking completed. Created links from %d directories, failed %d.",
        len(report.linked),
        len(report.failures),
    )
    return report


def unlink_project(
    target_dir: str | Path,
    project_name: str,
    *,
    max_workers: int | None = None,
) -> LinkReport:
    """Remove symbolic links in *target_dir* whose names start with *project_name*."""
    if not project_name:
        msg = "Project name is required"
        raise ValidationError(msg)
    target = Path(target_dir)
    if not target.is_dir():
        msg = f"Link target directory not found: {target}"
        raise NotFoundError(msg)

    prefix = project_name.casefold()
    links = [
        entry
        for entry in target.iterdir()
        if entry.is_symlink() and entry.name.casefold().startswith(prefix)
    ]
    report = LinkReport()
    if not links:
        return report

    def unlink_one(link: Path) -> None:
        try:
            link.unlink()
        except OSError as exc:
            logger.warning("Failed to remove link %s: %s", link, exc)
            report.add(LinkOutcome(link, False, str(exc), FailureKind.IO_ERROR))
        else:
            report.add(LinkOutcome(link, True))

    with ThreadPoolExecutor(max_workers=_worker_count(max_workers, len(links))) as pool:
        list(pool.map(unlink_one, links))

    logger.info(
        "Unlinking completed. Removed %d links, failed to remove %d.",
        len(report.successes),
        len(report.failures),
    )
    return report
