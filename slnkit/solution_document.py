"""Parse, mutate and serialize Visual Studio solution (.sln) files.

The container grammar is line oriented but loosely specified, so parsing is
regex based and lenient: sections that are missing or malformed simply yield
empty collections. Only identity problems (missing file, wrong extension) are
hard failures.

Hierarchy is stored once, in ``nested_projects`` (child GUID -> parent folder
GUID). The ``parent_folder`` / ``sub_folders`` / ``projects`` pointers on the
entities are a cache derived from it by :meth:`SolutionDocument.build_hierarchy`.

Instances are not safe for concurrent mutation; use one writer at a time.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from slnkit.case_insensitive_dict import CaseInsensitiveDict
from slnkit.errors import FormatError, IOFailure, NotFoundError, ValidationError
from slnkit.new_guid import new_guid
from slnkit.solution_models import (
    CSHARP_PROJECT_TYPE_GUID,
    SOLUTION_FOLDER_TYPE_GUID,
    SolutionConfiguration,
    SolutionFolder,
    SolutionProject,
)

logger = logging.getLogger(__name__)

SOLUTION_EXTENSION = ".sln"
FORMAT_VERSION = "12.00"
DEFAULT_VISUAL_STUDIO_VERSION = "17.0.31903.59"
DEFAULT_MINIMUM_VISUAL_STUDIO_VERSION = "10.0.40219.1"
DEFAULT_CONFIGURATIONS = (("Debug", "AnyCPU"), ("Release", "AnyCPU"))

PROJECT_RE = re.compile(
    r'^\s*Project\(\s*"(?P<type_guid>[^"]*)"\s*\)\s*=\s*"(?P<name>[^"]*)"\s*,'
    r'\s*"(?P<path>[^"]*)"\s*,\s*"(?P<guid>[^"]*)"',
    re.MULTILINE | re.IGNORECASE,
)
GLOBAL_SECTION_RE = re.compile(
    r"^\s*GlobalSection\(\s*(?P<name>[^)]*?)\s*\)\s*=\s*(?P<scope>\w+)"
    r"(?P<body>.*?)^\s*EndGlobalSection",
    re.MULTILINE | re.DOTALL | re.IGNORECASE,
)
NESTED_ENTRY_RE = re.compile(
    r"(?P<child>\{[0-9A-F-]+\})\s*=\s*(?P<parent>\{[0-9A-F-]+\})", re.IGNORECASE
)
PROJECT_CONFIG_ENTRY_RE = re.compile(
    r"^(?P<guid>\{[0-9A-F-]+\})\.(?P<key>[^=]+?)\s*=\s*(?P<value>.*)$", re.IGNORECASE
)
VS_VERSION_RE = re.compile(r"^\s*VisualStudioVersion\s*=\s*(\S+)", re.MULTILINE)
MIN_VS_VERSION_RE = re.compile(
    r"^\s*MinimumVisualStudioVersion\s*=\s*(\S+)", re.MULTILINE
)


def _split_global_sections(text: str) -> dict[str, str]:
    """Map lower-cased GlobalSection names to their bodies.

    Repeated sections with the same name are concatenated.
    """
    sections: dict[str, str] = {}
    for match in GLOBAL_SECTION_RE.finditer(text):
        name = match.group("name").casefold()
        sections[name] = sections.get(name, "") + match.group("body")
    return sections


def _section_lines(body: str) -> list[str]:
    return [line.strip() for line in body.splitlines() if line.strip()]


class SolutionDocument:
    """In-memory model of a solution container file."""

    def __init__(self, path: str | Path | None = None) -> None:
        """Create an empty solution, optionally bound to a file path."""
        self.path = Path(path) if path else None
        self.projects: list[SolutionProject] = []
        self.folders: list[SolutionFolder] = []
        self.nested_projects = CaseInsensitiveDict()  # child guid -> parent guid
        self.configurations: list[SolutionConfiguration] = []
        self.visual_studio_version = DEFAULT_VISUAL_STUDIO_VERSION
        self.minimum_visual_studio_version = DEFAULT_MINIMUM_VISUAL_STUDIO_VERSION

    # -----------------------------
    # Loading and parsing
    # -----------------------------

    @classmethod
    def load(cls, path: str | Path) -> SolutionDocument:
        """Read and parse a solution file."""
        if not path:
            msg = "Solution path is required"
            raise ValidationError(msg)
        sln_path = Path(path)
        if not sln_path.is_file():
            msg = f"Solution file not found: {sln_path}"
            raise NotFoundError(msg)
        if sln_path.suffix.lower() != SOLUTION_EXTENSION:
            msg = f"File is not a Visual Studio solution file: {sln_path}"
            raise FormatError(msg)
        try:
            text = sln_path.read_text(encoding="utf-8-sig")
        except OSError as exc:
            msg = f"Could not read solution file {sln_path}: {exc}"
            raise IOFailure(msg) from exc
        return cls.parse(text, sln_path)

    @classmethod
    def parse(cls, text: str, path: str | Path | None = None) -> SolutionDocument:
        """Build a solution model from container text."""
        doc = cls(path)
        doc._parse_header(text)
        doc._parse_projects_and_folders(text)

        sections = _split_global_sections(text)
        doc._parse_nested_projects(sections.get("nestedprojects", ""))
        doc._parse_solution_configurations(
            sections.get("solutionconfigurationplatforms", "")
        )
        doc._parse_project_configurations(
            sections.get("projectconfigurationplatforms", "")
        )

        doc.build_hierarchy()
        logger.debug(
            "Parsed solution %s: %d projects, %d folders, %d configurations",
            doc.path or "<text>",
            len(doc.projects),
            len(doc.folders),
            len(doc.configurations),
        )
        return doc

    def _parse_header(self, text: str) -> None:
        if m := VS_VERSION_RE.search(text):
            self.visual_studio_version = m.group(1)
        if m := MIN_VS_VERSION_RE.search(text):
            self.minimum_visual_studio_version = m.group(1)

    def _parse_projects_and_folders(self, text: str) -> None:
        seen: set[str] = set()
        for match in PROJECT_RE.finditer(text):
            type_guid, name, path, guid = match.group(
                "type_guid", "name", "path", "guid"
            )
            if guid.upper() in seen:
                logger.warning("Skipping duplicate solution entry %s (%s)", name, guid)
                continue
            seen.add(guid.upper())

            if type_guid.upper() == SOLUTION_FOLDER_TYPE_GUID:
                self.folders.append(SolutionFolder(name=name, guid=guid))
            else:
                self.projects.append(
                    SolutionProject(name=name, path=path, guid=guid, type_guid=type_guid)
                )

    def _parse_nested_projects(self, body: str) -> None:
        for match in NESTED_ENTRY_RE.finditer(body):
            self.nested_projects[match.group("child")] = match.group("parent")

    def _parse_solution_configurations(self, body: str) -> None:
        for line in _section_lines(body):
            left, sep, _ = line.partition("=")
            if not sep:
                continue
            parts = left.strip().split("|")
            if len(parts) == 2:
                self._ensure_configuration(parts[0].strip(), parts[1].strip())

    def _parse_project_configurations(self, body: str) -> None:
        for line in _section_lines(body):
            match = PROJECT_CONFIG_ENTRY_RE.match(line)
            if not match:
                continue
            project = self.get_project_by_guid(match.group("guid"))
            if project is None:
                logger.debug(
                    "Discarding configuration entry for unknown project %s",
                    match.group("guid"),
                )
                continue
            project.configurations[match.group("key").strip()] = match.group(
                "value"
            ).strip()

    # -----------------------------
    # Hierarchy
    # -----------------------------

    def build_hierarchy(self) -> None:
        """Rebuild parent/child pointers from ``nested_projects``.

        Entries whose child or parent is unknown are ignored. Running this
        twice yields the same structure.
        """
        for folder in self.folders:
            folder.parent_folder = None
            folder.sub_folders = []
            folder.projects = []
        for project in self.projects:
            project.parent_folder = None

        for project in self.projects:
            parent = self._nesting_parent(project.guid)
            if parent is not None:
                project.parent_folder = parent
                parent.projects.append(project)

        for folder in self.folders:
            parent = self._nesting_parent(folder.guid)
            if parent is not None and parent is not folder:
                folder.parent_folder = parent
                parent.sub_folders.append(folder)

        for child_guid, parent_guid in self.nested_projects.items():
            if self.get_folder_by_guid(parent_guid) is None or (
                self.get_project_by_guid(child_guid) is None
                and self.get_folder_by_guid(child_guid) is None
            ):
                logger.debug("Ignoring dangling nesting %s -> %s", child_guid, parent_guid)

    def _nesting_parent(self, guid: str) -> SolutionFolder | None:
        parent_guid = self.nested_projects.get(guid)
        if parent_guid is None:
            return None
        return self.get_folder_by_guid(parent_guid)

    def _attach(
        self, child: SolutionProject | SolutionFolder, parent: SolutionFolder
    ) -> None:
        """Move *child* under *parent*, updating the relation and the pointers."""
        previous = child.parent_folder
        if isinstance(child, SolutionFolder):
            if previous is not None and child in previous.sub_folders:
                previous.sub_folders.remove(child)
            parent.sub_folders.append(child)
        else:
            if previous is not None and child in previous.projects:
                previous.projects.remove(child)
            parent.projects.append(child)
        child.parent_folder = parent
        self.nested_projects[child.guid] = parent.guid

    # -----------------------------
    # Mutators
    # -----------------------------

    def _taken_guids(self) -> set[str]:
        return {entry.guid.upper() for entry in [*self.projects, *self.folders]}

    def add_project(
        self,
        name: str,
        relative_path: str,
        type_guid: str | None = None,
        parent_folder_guid: str | None = None,
    ) -> str:
        """Add a project and return its new GUID."""
        if not name:
            msg = "Project name is required"
            raise ValidationError(msg)
        if not relative_path:
            msg = "Project path is required"
            raise ValidationError(msg)
        if type_guid and type_guid.upper() == SOLUTION_FOLDER_TYPE_GUID:
            msg = "Use add_folder() to add solution folders"
            raise ValidationError(msg)

        project = SolutionProject(
            name=name,
            path=relative_path,
            guid=new_guid(self._taken_guids()),
            type_guid=type_guid or CSHARP_PROJECT_TYPE_GUID,
        )
        self.projects.append(project)

        if parent_folder_guid:
            parent = self.get_folder_by_guid(parent_folder_guid)
            if parent is not None:
                self._attach(project, parent)
            else:
                logger.warning(
                    "Parent folder %s not found; %s stays at the solution root",
                    parent_folder_guid,
                    name,
                )

        self._add_default_project_configurations(project)
        return project.guid

    def add_folder(self, name: str, parent_folder_guid: str | None = None) -> str:
        """Add a solution folder and return its new GUID."""
        if not name:
            msg = "Folder name is required"
            raise ValidationError(msg)

        folder = SolutionFolder(name=name, guid=new_guid(self._taken_guids()))
        self.folders.append(folder)

        if parent_folder_guid:
            parent = self.get_folder_by_guid(parent_folder_guid)
            if parent is not None:
                self._attach(folder, parent)
            else:
                logger.warning(
                    "Parent folder %s not found; %s stays at the solution root",
                    parent_folder_guid,
                    name,
                )
        return folder.guid

    def add_nesting(self, child_guid: str, parent_folder_guid: str) -> bool:
        """Nest a project or folder under a folder.

        Returns False when either identifier is unknown.
        """
        if not child_guid or not parent_folder_guid:
            msg = "Both child and parent identifiers are required"
            raise ValidationError(msg)

        parent = self.get_folder_by_guid(parent_folder_guid)
        if parent is None:
            return False

        child: SolutionProject | SolutionFolder | None = self.get_project_by_guid(
            child_guid
        )
        if child is None:
            child = self.get_folder_by_guid(child_guid)
        if child is None:
            return False

        if isinstance(child, SolutionFolder) and (
            child is parent or child.is_ancestor_of(parent)
        ):
            msg = f"Cannot nest folder {child.name} inside itself or its descendant"
            raise ValidationError(msg)

        self._attach(child, parent)
        return True

    def _add_default_project_configurations(self, project: SolutionProject) -> None:
        for configuration, platform in DEFAULT_CONFIGURATIONS:
            key = f"{configuration}|{platform}"
            project.configurations.setdefault(f"{key}.ActiveCfg", key)
            project.configurations.setdefault(f"{key}.Build.0", key)
            self._ensure_configuration(configuration, platform)

    def _ensure_configuration(self, configuration: str, platform: str) -> None:
        if not any(c.matches(configuration, platform) for c in self.configurations):
            self.configurations.append(SolutionConfiguration(configuration, platform))

    # -----------------------------
    # Lookups
    # -----------------------------

    def get_project_by_guid(self, guid: str) -> SolutionProject | None:
        """Find a project by identifier, ignoring case."""
        key = guid.casefold()
        return next((p for p in self.projects if p.guid.casefold() == key), None)

    def get_project_by_name(self, name: str) -> SolutionProject | None:
        """Find a project by name, ignoring case."""
        key = name.casefold()
        return next((p for p in self.projects if p.name.casefold() == key), None)

    def get_folder_by_guid(self, guid: str) -> SolutionFolder | None:
        """Find a folder by identifier, ignoring case."""
        key = guid.casefold()
        return next((f for f in self.folders if f.guid.casefold() == key), None)

    def get_folder_by_name(self, name: str) -> SolutionFolder | None:
        """Find a folder by name, ignoring case."""
        key = name.casefold()
        return next((f for f in self.folders if f.name.casefold() == key), None)

    def get_parent_folder(self, guid: str) -> SolutionFolder | None:
        """Return the folder a known project or folder is nested in."""
        if not self._is_known(guid):
            return None
        return self._nesting_parent(guid)

    def get_items_in_folder(self, folder_guid: str) -> list[str]:
        """Return the GUIDs of the known projects and folders nested directly in a folder."""
        key = folder_guid.casefold()
        return [
            child for child, parent in self.nested_projects.items()
            if parent.casefold() == key and self._is_known(child)
        ]

    def _is_known(self, guid: str) -> bool:
        return (
            self.get_project_by_guid(guid) is not None
            or self.get_folder_by_guid(guid) is not None
        )

    @property
    def solution_directory(self) -> Path | None:
        """Directory holding the solution file, if the document has a path."""
        return self.path.parent if self.path else None

    def get_project_file_path(self, project_guid: str) -> Path | None:
        """Absolute path of a project's build description."""
        project = self.get_project_by_guid(project_guid)
        if project is None or self.solution_directory is None:
            return None
        return self.solution_directory / project.path.replace("\\", "/")

    def get_file_guid(self, file_path: str | Path) -> str | None:
        """Return the GUID of the project whose directory contains *file_path*.

        Only directory containment is checked; project files are not read.
        """
        if not file_path or self.solution_directory is None:
            return None
        target = (self.solution_directory / file_path).resolve()
        for project in self.projects:
            project_file = self.get_project_file_path(project.guid)
            if project_file is None:
                continue
            if target.is_relative_to(project_file.resolve().parent):
                return project.guid
        return None

    def configuration_mismatches(self) -> list[tuple[str, str]]:
        """List (project guid, key) entries not backed by a solution configuration."""
        declared = {c.key.casefold() for c in self.configurations}
        mismatches = []
        for project in self.projects:
            for key in project.configurations:
                bar = key.find("|")
                dot = key.find(".", bar + 1)
                prefix = key[:dot] if dot != -1 else key
                if prefix.casefold() not in declared:
                    mismatches.append((project.guid, key))
        for guid, key in mismatches:
            logger.warning("Project %s uses undeclared configuration %s", guid, key)
        return mismatches

    def format_tree(self) -> str:
        """Render the folder hierarchy as indented text."""
        lines: list[str] = []

        def visit(folder: SolutionFolder, depth: int) -> None:
            indent = "  " * depth
            lines.append(f"{indent}+ {folder.name} ({folder.guid})")
            for sub in folder.sub_folders:
                visit(sub, depth + 1)
            lines.extend(
                f"{indent}  - {p.name} ({p.guid})" for p in folder.projects
            )

        for folder in self.folders:
            if folder.parent_folder is None:
                visit(folder, 0)
        lines.extend(
            f"- {p.name} ({p.guid})" for p in self.projects if p.parent_folder is None
        )
        return "\n".join(lines)

    # -----------------------------
    # Serialization
    # -----------------------------

    def serialize(self) -> str:
        """Regenerate the container text from the current model."""
        major = self.visual_studio_version.split(".", 1)[0]
        out = [
            f"Microsoft Visual Studio Solution File, Format Version {FORMAT_VERSION}",
            f"# Visual Studio Version {major}",
            f"VisualStudioVersion = {self.visual_studio_version}",
            f"MinimumVisualStudioVersion = {self.minimum_visual_studio_version}",
        ]

        for project in self.projects:
            out.append(
                f'Project("{project.type_guid}") = "{project.name}", '
                f'"{project.path}", "{project.guid}"'
            )
            out.append("EndProject")
        for folder in self.folders:
            out.append(
                f'Project("{SOLUTION_FOLDER_TYPE_GUID}") = "{folder.name}", '
                f'"{folder.name}", "{folder.guid}"'
            )
            out.append("EndProject")

        out.append("Global")
        out.append("\tGlobalSection(SolutionConfigurationPlatforms) = preSolution")
        out.extend(f"\t\t{c.key} = {c.key}" for c in self.configurations)
        out.append("\tEndGlobalSection")

        out.append("\tGlobalSection(ProjectConfigurationPlatforms) = postSolution")
        for project in self.projects:
            out.extend(
                f"\t\t{project.guid}.{key} = {value}"
                for key, value in project.configurations.items()
            )
        out.append("\tEndGlobalSection")

        out.append("\tGlobalSection(SolutionProperties) = preSolution")
        out.append("\t\tHideSolutionNode = FALSE")
        out.append("\tEndGlobalSection")

        if self.nested_projects:
            out.append("\tGlobalSection(NestedProjects) = preSolution")
            out.extend(
                f"\t\t{child} = {parent}"
                for child, parent in self.nested_projects.items()
            )
            out.append("\tEndGlobalSection")

        out.append("\tGlobalSection(ExtensibilityGlobals) = postSolution")
        out.append(f"\t\tSolutionGuid = {new_guid()}")
        out.append("\tEndGlobalSection")
        out.append("EndGlobal")
        return "\n".join(out) + "\n"

    def save(self, path: str | Path | None = None) -> Path:
        """Write the serialized solution, defaulting to the loaded path."""
        target = Path(path) if path else self.path
        if target is None:
            msg = "No output path given and the solution was not loaded from disk"
            raise ValidationError(msg)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(self.serialize(), encoding="utf-8-sig", newline="\r\n")
        except OSError as exc:
            msg = f"Could not write solution file {target}: {exc}"
            raise IOFailure(msg) from exc
        logger.info("Saved solution to %s", target)
        return target
