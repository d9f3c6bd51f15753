"""Find the newest compiled binary of a project and link it elsewhere."""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from slnkit.config_cache import ConfigCache, default_cache
from slnkit.errors import (
    IOFailure,
    LinkPermissionError,
    NoMatchingArtifactError,
    NoOutputDirectoriesError,
    NotFoundError,
    SlnKitError,
    ValidationError,
)
from slnkit.output_paths import conventional_output_dirs, existing_directories
from slnkit.project_file import ProjectFile, project_extensions
from slnkit.wildcard_match import wildcard_match

logger = logging.getLogger(__name__)

# Windows: "A required privilege is not held by the client."
ERROR_PRIVILEGE_NOT_HELD = 1314


class FailureKind(Enum):
    """Why a bind attempt produced no link."""

    NO_OUTPUT_DIRECTORIES = "no_output_directories"
    NO_MATCH = "no_match"
    PERMISSION_DENIED = "permission_denied"
    IO_ERROR = "io_error"
    NOT_FOUND = "not_found"


@dataclass
class Artifact:
    """A located binary and its companion symbol file, if any."""

    binary: Path
    modified: float
    symbols: Path | None = None


@dataclass
class BindResult:
    """Outcome of a single bind attempt."""

    artifact: Artifact | None = None
    links: list[Path] = field(default_factory=list)
    failure: FailureKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


def create_link(source: Path, target: Path) -> Path:
    """Point *target* at *source*, replacing whatever *target* was before.

    The link is created under a temporary name and renamed over *target*, so
    concurrent callers never see a missing or half-replaced entry.
    """
    source, target = Path(source), Path(target)
    if target.is_dir() and not target.is_symlink():
        msg = f"Refusing to replace directory {target} with a link"
        raise IOFailure(msg)

    staging = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
    try:
        os.symlink(source, staging)
        try:
            os.replace(staging, target)
        except OSError:
            staging.unlink(missing_ok=True)
            raise
    except PermissionError as exc:
        msg = f"Permission denied linking {target} -> {source}: {exc}"
        raise LinkPermissionError(msg) from exc
    except OSError as exc:
        if getattr(exc, "winerror", None) == ERROR_PRIVILEGE_NOT_HELD:
            msg = f"Not allowed to create symbolic link {target}: {exc}"
            raise LinkPermissionError(msg) from exc
        msg = f"Could not link {target} -> {source}: {exc}"
        raise IOFailure(msg) from exc
    logger.debug("Linked %s -> %s", target, source)
    return target


class ArtifactLocator:
    """Selects the most recently built binary among a project's output directories."""

    def __init__(
        self,
        project_path: str | Path,
        *,
        include_subfolders: bool = True,
        configuration: str | None = None,
        platform: str | None = None,
        include_patterns: tuple[str, ...] | list[str] = (),
        exclude_patterns: tuple[str, ...] | list[str] = (),
        binary_extension: str = ".dll",
        symbols_extension: str = ".pdb",
    ) -> None:
        if not project_path:
            msg = "Project path is required"
            raise ValidationError(msg)
        self.project_path = Path(project_path)
        self.include_subfolders = include_subfolders
        self.configuration = configuration
        self.platform = platform
        self.include_patterns = list(include_patterns)
        self.exclude_patterns = list(exclude_patterns)
        self.binary_extension = binary_extension
        self.symbols_extension = symbols_extension
        self.errors: list[str] = []

    @classmethod
    def from_config(
        cls,
        project_path: str | Path,
        cache: ConfigCache | None = None,
        **overrides,
    ) -> ArtifactLocator:
        """Build a locator from the ``artifacts`` configuration section."""
        cache = cache or default_cache
        options = {
            "include_subfolders": cache.get("artifacts.include_subfolders", True),
            "include_patterns": cache.get("artifacts.include_patterns", []),
            "exclude_patterns": cache.get("artifacts.exclude_patterns", []),
            "binary_extension": cache.get("artifacts.binary_extension", ".dll"),
            "symbols_extension": cache.get("artifacts.symbols_extension", ".pdb"),
        }
        options.update(overrides)
        return cls(project_path, **options)

    def include(self, pattern: str) -> ArtifactLocator:
        """Add an include wildcard; a binary must match at least one."""
        self.include_patterns.append(pattern)
        return self

    def exclude(self, pattern: str) -> ArtifactLocator:
        """Add an exclude wildcard; a binary matching any is dropped."""
        self.exclude_patterns.append(pattern)
        return self

    def _record(self, message: str) -> None:
        logger.warning("%s", message)
        self.errors.append(message)

    def project_files(self) -> list[Path]:
        """Project files named by the locator's path."""
        if self.project_path.is_file():
            return [self.project_path]
        if self.project_path.is_dir():
            extensions = project_extensions()
            return sorted(
                p
                for p in self.project_path.iterdir()
                if p.is_file() and p.suffix.lower() in extensions
            )
        msg = f"Project path not found: {self.project_path}"
        raise NotFoundError(msg)

    def candidate_directories(self) -> list[Path]:
        """Existing output directories implied by the project file(s)."""
        project_files = self.project_files()
        if not project_files:
            return existing_directories(conventional_output_dirs(self.project_path))

        directories: list[Path] = []
        for project_file in project_files:
            try:
                project = ProjectFile.load(project_file)
                directories.extend(
                    project.get_compiled_outputs(self.configuration, self.platform)
                )
            except SlnKitError as exc:
                self._record(f"Skipping {project_file}: {exc}")
        return list(dict.fromkeys(directories))

    def _binaries_in(self, directory: Path) -> list[Path]:
        walker = directory.rglob("*") if self.include_subfolders else directory.iterdir()
        extension = self.binary_extension.lower()
        try:
            return [p for p in walker if p.suffix.lower() == extension and p.is_file()]
        except OSError as exc:
            self._record(f"Could not enumerate {directory}: {exc}")
            return []

    def _accepts(self, name: str) -> bool:
        if self.include_patterns and not any(
            wildcard_match(name, pattern) for pattern in self.include_patterns
        ):
            return False
        return not any(wildcard_match(name, pattern) for pattern in self.exclude_patterns)

    def find_newest(self, directories: list[Path] | None = None) -> Artifact:
        """Return the newest binary that passes the include/exclude filters.

        Equal modification times are resolved in favor of the
        lexically-smallest path.
        """
        if directories is None:
            directories = self.candidate_directories()
        if not directories:
            msg = f"No output directories found for {self.project_path}"
            raise NoOutputDirectoriesError(msg)

        best: tuple[float, str, Path] | None = None
        for directory in directories:
            for binary in self._binaries_in(directory):
                if not self._accepts(binary.name):
                    continue
                try:
                    modified = binary.stat().st_mtime
                except OSError as exc:
                    self._record(f"Could not stat {binary}: {exc}")
                    continue
                key = (-modified, str(binary), binary)
                if best is None or key[:2] < best[:2]:
                    best = key

        if best is None:
            msg = f"No {self.binary_extension} matching the filters in {len(directories)} directories"
            raise NoMatchingArtifactError(msg)

        binary = best[2]
        symbols = binary.with_suffix(self.symbols_extension)
        artifact = Artifact(
            binary=binary,
            modified=-best[0],
            symbols=symbols if symbols.is_file() else None,
        )
        logger.debug("Newest artifact for %s is %s", self.project_path, binary)
        return artifact

    def bind(self, target_dir: str | Path, directories: list[Path] | None = None) -> BindResult:
        """Link the newest binary (and its symbols) into *target_dir*."""
        try:
            artifact = self.find_newest(directories)
        except NoOutputDirectoriesError as exc:
            return self._failed(FailureKind.NO_OUTPUT_DIRECTORIES, exc)
        except NoMatchingArtifactError as exc:
            return self._failed(FailureKind.NO_MATCH, exc)
        except NotFoundError as exc:
            return self._failed(FailureKind.NOT_FOUND, exc)
        return self.link(artifact, target_dir)

    def link(self, artifact: Artifact, target_dir: str | Path) -> BindResult:
        """Link an already located artifact (and its symbols) into *target_dir*."""
        result = BindResult(artifact=artifact)
        try:
            target = Path(target_dir)
            target.mkdir(parents=True, exist_ok=True)
            result.links.append(create_link(artifact.binary, target / artifact.binary.name))
            if artifact.symbols is not None:
                result.links.append(
                    create_link(artifact.symbols, target / artifact.symbols.name)
                )
        except LinkPermissionError as exc:
            return self._failed(FailureKind.PERMISSION_DENIED, exc, result)
        except OSError as exc:
            return self._failed(FailureKind.IO_ERROR, exc, result)
        return result

    def _failed(
        self, kind: FailureKind, exc: Exception, result: BindResult | None = None
    ) -> BindResult:
        result = result or BindResult()
        result.failure, result.message = kind, str(exc)
        logger.warning("Bind failed for %s: %s", self.project_path, result.message)
        return result


def bind_project(project_path: str | Path, target_dir: str | Path, **options) -> BindResult:
    """Locate and link the newest build output of a project in one call."""
    return ArtifactLocator(project_path, **options).bind(target_dir)
