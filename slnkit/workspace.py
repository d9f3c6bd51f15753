"""Load a solution together with every project it lists."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from slnkit.case_insensitive_dict import CaseInsensitiveDict
from slnkit.errors import SlnKitError
from slnkit.project_file import ProjectFile
from slnkit.solution_document import SolutionDocument

logger = logging.getLogger(__name__)


@dataclass
class LoadFailure:
    """A project listed in the solution that could not be loaded."""

    guid: str
    path: Path | None
    error: str


@dataclass
class Workspace:
    """A solution and the project models loaded from it."""

    solution: SolutionDocument
    projects: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)  # guid -> ProjectFile
    failures: list[LoadFailure] = field(default_factory=list)

    def output_directories(
        self, configuration: str | None = None, platform: str | None = None
    ) -> list[Path]:
        """Existing output directories of every loaded project, in solution order."""
        directories: list[Path] = []
        for project in self.projects.values():
            directories.extend(project.get_compiled_outputs(configuration, platform))
        return list(dict.fromkeys(directories))


def _load_project(solution: SolutionDocument, guid: str) -> ProjectFile | LoadFailure:
    path = solution.get_project_file_path(guid)
    if path is None:
        return LoadFailure(guid, None, "solution has no directory to resolve against")
    try:
        return ProjectFile.load(path)
    except (SlnKitError, OSError) as exc:
        return LoadFailure(guid, path, str(exc))


def load_workspace(solution_path: str | Path, max_workers: int | None = None) -> Workspace:
    """Parse a solution and load its projects on a thread pool.

    Project failures are recorded on the workspace instead of raised; only a
    solution that cannot be loaded at all raises.
    """
    solution = SolutionDocument.load(solution_path)
    workspace = Workspace(solution)
    guids = [project.guid for project in solution.projects]
    if not guids:
        return workspace

    workers = min(max_workers or os.cpu_count() or 1, os.cpu_count() or 1, len(guids))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda guid: _load_project(solution, guid), guids))

    for guid, result in zip(guids, results):
        if isinstance(result, LoadFailure):
            logger.warning("Could not load project %s: %s", result.path or guid, result.error)
            workspace.failures.append(result)
        else:
            workspace.projects[guid] = result

    logger.info(
        "Loaded %d of %d projects from %s",
        len(workspace.projects),
        len(guids),
        solution.path,
    )
    return workspace
