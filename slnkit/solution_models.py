"""Entities of a solution container: projects, folders and configurations."""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field

SOLUTION_FOLDER_TYPE_GUID = "{2150E333-8FDC-42A3-9474-1A3956D46DE8}"
CSHARP_PROJECT_TYPE_GUID = "{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}"


class _Nestable:
    """Mixin holding a non-owning reference to the containing folder."""

    _parent_ref: weakref.ReferenceType[SolutionFolder] | None = None

    @property
    def parent_folder(self) -> SolutionFolder | None:
        """The folder this entry is nested in, or None at the solution root."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent_folder.setter
    def parent_folder(self, folder: SolutionFolder | None) -> None:
        self._parent_ref = weakref.ref(folder) if folder is not None else None


@dataclass(eq=False)
class SolutionProject(_Nestable):
    """A buildable project entry of a solution."""

    name: str
    path: str  # relative to the solution directory, as written in the file
    guid: str
    type_guid: str = CSHARP_PROJECT_TYPE_GUID
    configurations: dict[str, str] = field(default_factory=dict)  # "Debug|AnyCPU.ActiveCfg" -> value


@dataclass(eq=False)
class SolutionFolder(_Nestable):
    """A solution folder (pseudo-project used only for grouping)."""

    name: str
    guid: str
    sub_folders: list[SolutionFolder] = field(default_factory=list)
    projects: list[SolutionProject] = field(default_factory=list)

    def is_ancestor_of(self, other: SolutionFolder) -> bool:
        """Return True if *other* is nested (at any depth) below this folder."""
        current = other.parent_folder
        seen: set[int] = set()
        while current is not None and id(current) not in seen:
            if current is self:
                return True
            seen.add(id(current))
            current = current.parent_folder
        return False


@dataclass(frozen=True)
class SolutionConfiguration:
    """A (configuration, platform) pair such as ("Debug", "AnyCPU")."""

    configuration: str
    platform: str

    @property
    def key(self) -> str:
        """The ``Config|Platform`` spelling used inside solution files."""
        return f"{self.configuration}|{self.platform}"

    def matches(self, configuration: str, platform: str) -> bool:
        """Compare against another pair ignoring case."""
        return (
            self.configuration.casefold() == configuration.casefold()
            and self.platform.casefold() == platform.casefold()
        )
