"""Create, load, edit and save MSBuild project files (.csproj).

Loading flattens the document into typed collections; saving regenerates the
XML from those collections, so comments, imports and targets that are not
modeled here do not survive a load/save cycle.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from functools import partial
from pathlib import Path

from slnkit.case_insensitive_dict import CaseInsensitiveDict
from slnkit.config_cache import default_cache
from slnkit.errors import FormatError, IOFailure, NotFoundError, ValidationError
from slnkit.msbuild_xml import (
    child_text,
    children_named,
    element_text,
    local_name,
    namespace_of,
    qualified,
)
from slnkit.output_paths import (
    conventional_output_dirs,
    default_configurations,
    default_platforms,
    existing_directories,
    output_paths_in,
)
from slnkit.project_models import (
    AssemblyReference,
    ConditionalPropertyGroup,
    PackageReference,
    ProjectItem,
    ProjectReference,
)

logger = logging.getLogger(__name__)

WEB_SDK = "Microsoft.NET.Sdk.Web"


def project_extensions() -> tuple[str, ...]:
    """Recognized project file extensions (``project.extensions``), lower-cased."""
    return tuple(ext.lower() for ext in default_cache.get("project.extensions", []))


def _require(value: object, what: str) -> None:
    if not value:
        msg = f"{what} is required"
        raise ValidationError(msg)


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(";") if part.strip()]


class ProjectFile:
    """Editable model of a single project build description."""

    def __init__(self, path: str | Path, sdk: str | None = None) -> None:
        """Create a fresh project with the configured SDK, framework and output type."""
        _require(path, "Project path")
        project_path = Path(path)
        if project_path.suffix.lower() not in project_extensions():
            project_path = project_path.with_name(project_path.name + ".csproj")
        if sdk is None:
            sdk = default_cache.get("project.sdk", "")

        self.path = project_path
        self.namespace = ""
        self.root_attributes: dict[str, str] = {"Sdk": sdk} if sdk else {}
        self.properties = CaseInsensitiveDict()
        self.conditional_property_groups: list[ConditionalPropertyGroup] = []
        self.package_references: list[PackageReference] = []
        self.project_references: list[ProjectReference] = []
        self.assembly_references: list[AssemblyReference] = []
        self.items: list[ProjectItem] = []

        self.properties["TargetFramework"] = default_cache.get("project.target_framework")
        self.properties["OutputType"] = default_cache.get("project.output_type")

    @property
    def name(self) -> str:
        """Project name derived from the file name."""
        return self.path.stem

    @property
    def directory(self) -> Path:
        """Directory holding the project file."""
        return self.path.resolve().parent

    # -----------------------------
    # Loading
    # -----------------------------

    @classmethod
    def load(
        cls,
        path: str | Path,
        create_if_missing: bool = False,
        sdk: str | None = None,
    ) -> ProjectFile:
        """Load a project file, or synthesize a new one if allowed."""
        _require(path, "Project path")
        project_path = Path(path)
        if not project_path.is_file():
            if create_if_missing:
                logger.info("Creating new project model for %s", project_path)
                return cls(project_path, sdk)
            msg = f"Project file not found: {project_path}"
            raise NotFoundError(msg)

        try:
            root = ET.parse(project_path).getroot()
        except ET.ParseError as exc:
            msg = f"Malformed project file {project_path}: {exc}"
            raise FormatError(msg) from exc
        except OSError as exc:
            msg = f"Could not read project file {project_path}: {exc}"
            raise IOFailure(msg) from exc

        if local_name(root.tag) != "Project":
            msg = f"{project_path} has no <Project> root element"
            raise FormatError(msg)

        project = cls(project_path, sdk="")
        project.path = project_path
        project.properties.clear()
        project.namespace = namespace_of(root)
        project.root_attributes = dict(root.attrib)
        project._parse_properties(root)
        project._parse_item_groups(root)
        return project

    def _parse_properties(self, root: ET.Element) -> None:
        for group in children_named(root, "PropertyGroup"):
            group_condition = group.get("Condition") or ""
            current: ConditionalPropertyGroup | None = None
            for child in group:
                if not isinstance(child.tag, str):
                    continue
                name, value = local_name(child.tag), element_text(child)
                condition = child.get("Condition")
                if not group_condition and not condition:
                    self.properties[name] = value
                    continue
                # A repeated name starts a new group so both values survive.
                if current is None or name in current.properties:
                    current = ConditionalPropertyGroup(condition=group_condition)
                    self.conditional_property_groups.append(current)
                current.properties[name] = value
                if condition:
                    current.property_conditions[name] = condition

    def _parse_item_groups(self, root: ET.Element) -> None:
        for group in children_named(root, "ItemGroup"):
            for element in group:
                if not isinstance(element.tag, str):
                    continue
                kind = local_name(element.tag)
                include = element.get("Include")
                if not include:
                    continue

                if kind == "PackageReference":
                    version = element.get("Version") or child_text(element, "Version")
                    private_assets = element.get("PrivateAssets") or child_text(
                        element, "PrivateAssets"
                    )
                    self._upsert_package(include, version or "", private_assets)
                elif kind == "ProjectReference":
                    self.add_project_reference(include)
                elif kind == "Reference":
                    self.add_assembly_reference(include, child_text(element, "HintPath"))
                else:
                    metadata = {
                        local_name(child.tag): element_text(child)
                        for child in element
                        if isinstance(child.tag, str)
                    }
                    self.add_item(kind, include, metadata)

    # -----------------------------
    # Properties
    # -----------------------------

    def set_property(self, name: str, value: str) -> None:
        """Set an unconditioned property."""
        _require(name, "Property name")
        self.properties[name] = value

    def remove_property(self, name: str) -> bool:
        """Remove an unconditioned property."""
        _require(name, "Property name")
        if name in self.properties:
            del self.properties[name]
            return True
        return False

    def set_target_framework(self, framework: str) -> None:
        """Set the single target framework (e.g. ``net8.0``)."""
        _require(framework, "Target framework")
        self.set_property("TargetFramework", framework)

    def set_target_frameworks(self, *frameworks: str) -> None:
        """Multi-target; replaces any single ``TargetFramework``."""
        filtered = [f for f in frameworks if f]
        _require(filtered, "Target frameworks")
        self.set_property("TargetFrameworks", ";".join(filtered))
        self.properties.pop("TargetFramework", None)

    def set_output_type(self, output_type: str) -> None:
        """Set ``Library``, ``Exe`` or ``WinExe``."""
        _require(output_type, "Output type")
        self.set_property("OutputType", output_type)

    def set_assembly_name(self, assembly_name: str) -> None:
        _require(assembly_name, "Assembly name")
        self.set_property("AssemblyName", assembly_name)

    def set_root_namespace(self, root_namespace: str) -> None:
        _require(root_namespace, "Root namespace")
        self.set_property("RootNamespace", root_namespace)

    def set_net_framework(self, version: str) -> None:
        """Target classic .NET Framework, e.g. ``4.7.2`` or ``v4.7.2``."""
        _require(version, ".NET Framework version")
        if not version.startswith("v"):
            version = "v" + version
        self.set_property("TargetFrameworkVersion", version)
        self.properties.pop("TargetFramework", None)
        self.properties.pop("TargetFrameworks", None)

    def set_aspnet_core(self, version: str) -> None:
        _require(version, "Version")
        self.set_target_framework(f"net{version}")
        self.add_package_reference("Microsoft.AspNetCore.App", version)

    def set_windows_forms(self, version: str) -> None:
        _require(version, "Version")
        self.set_target_framework(f"net{version}-windows")
        self.set_property("UseWindowsForms", "true")
        self.set_output_type("WinExe")

    def set_wpf(self, version: str) -> None:
        _require(version, "Version")
        self.set_target_framework(f"net{version}-windows")
        self.set_property("UseWPF", "true")
        self.set_output_type("WinExe")

    def set_blazor_webassembly(self, version: str) -> None:
        _require(version, "Version")
        self.set_target_framework(f"net{version}")
        self.add_package_reference("Microsoft.AspNetCore.Components.WebAssembly", version)
        self.add_package_reference(
            "Microsoft.AspNetCore.Components.WebAssembly.DevServer",
            version,
            "runtime; build; native",
        )

    def set_blazor_server(self, version: str) -> None:
        _require(version, "Version")
        self.set_target_framework(f"net{version}")
        self.add_package_reference("Microsoft.AspNetCore.App", version)

    def set_maui(self, version: str) -> None:
        _require(version, "Version")
        self.set_target_framework(
            f"net{version}-android;net{version}-ios;net{version}-maccatalyst"
        )
        self.set_property("UseMaui", "true")
        self.add_package_reference("Microsoft.Maui.Controls", version)

    # -----------------------------
    # References
    # -----------------------------

    def _find_package(self, name: str) -> PackageReference | None:
        key = name.casefold()
        return next(
            (p for p in self.package_references if p.name.casefold() == key), None
        )

    def _upsert_package(
        self, name: str, version: str, private_assets: str | None
    ) -> None:
        existing = self._find_package(name)
        if existing is not None:
            existing.version = version
            existing.private_assets = private_assets
        else:
            self.package_references.append(
                PackageReference(name=name, version=version, private_assets=private_assets)
            )

    def add_package_reference(
        self, name: str, version: str, private_assets: str | None = None
    ) -> None:
        """Add a NuGet package, or update version/assets of an existing one."""
        _require(name, "Package name")
        _require(version, "Package version")
        self._upsert_package(name, version, private_assets)

    def remove_package_reference(self, name: str) -> bool:
        _require(name, "Package name")
        existing = self._find_package(name)
        if existing is None:
            return False
        self.package_references.remove(existing)
        return True

    def _find_project_reference(self, path: str) -> ProjectReference | None:
        key = path.casefold()
        return next(
            (r for r in self.project_references if r.path.casefold() == key), None
        )

    def add_project_reference(self, path: str) -> None:
        """Reference another project by relative path (no duplicates)."""
        _require(path, "Project reference path")
        if self._find_project_reference(path) is None:
            self.project_references.append(ProjectReference(path=path))

    def remove_project_reference(self, path: str) -> bool:
        _require(path, "Project reference path")
        existing = self._find_project_reference(path)
        if existing is None:
            return False
        self.project_references.remove(existing)
        return True

    def _find_assembly(self, name: str) -> AssemblyReference | None:
        key = name.casefold()
        return next(
            (a for a in self.assembly_references if a.name.casefold() == key), None
        )

    def add_assembly_reference(self, name: str, hint_path: str | None = None) -> None:
        """Reference an assembly, updating the hint path if already present."""
        _require(name, "Assembly name")
        existing = self._find_assembly(name)
        if existing is not None:
            existing.hint_path = hint_path
        else:
            self.assembly_references.append(
                AssemblyReference(name=name, hint_path=hint_path)
            )

    def remove_assembly_reference(self, name: str) -> bool:
        _require(name, "Assembly name")
        existing = self._find_assembly(name)
        if existing is None:
            return False
        self.assembly_references.remove(existing)
        return True

    # -----------------------------
    # Items
    # -----------------------------

    def _find_item(self, item_type: str, include: str) -> ProjectItem | None:
        type_key, include_key = item_type.casefold(), include.casefold()
        return next(
            (
                i
                for i in self.items
                if i.item_type.casefold() == type_key
                and i.include.casefold() == include_key
            ),
            None,
        )

    def add_item(
        self, item_type: str, include: str, metadata: dict[str, str] | None = None
    ) -> None:
        """Add an item; an existing type+include pair merges its metadata."""
        _require(item_type, "Item type")
        _require(include, "Item include")
        existing = self._find_item(item_type, include)
        if existing is not None:
            existing.metadata.update(metadata or {})
        else:
            self.items.append(
                ProjectItem(item_type=item_type, include=include, metadata=dict(metadata or {}))
            )

    def remove_item(self, item_type: str, include: str) -> bool:
        _require(item_type, "Item type")
        _require(include, "Item include")
        existing = self._find_item(item_type, include)
        if existing is None:
            return False
        self.items.remove(existing)
        return True

    # -----------------------------
    # Output directories
    # -----------------------------

    def extract_output_paths(
        self, configuration: str | None = None, platform: str | None = None
    ) -> list[Path]:
        """Declared output paths of this model, resolved like the file on disk."""
        return output_paths_in(self.to_element(), self.directory, configuration, platform)

    def get_compiled_outputs(
        self, configuration: str | None = None, platform: str | None = None
    ) -> list[Path]:
        """Existing directories the project's binaries may have been built to.

        Falls back to the conventional ``bin/`` layouts when nothing is
        declared.
        """
        declared = self.extract_output_paths(configuration, platform)
        if declared:
            return existing_directories(declared)

        if configuration:
            configurations = [configuration]
        else:
            configurations = (
                _split_list(self.properties.get("Configurations")) or default_configurations()
            )

        if platform:
            platforms = [platform]
        else:
            declared_platforms = _split_list(self.properties.get("Platforms"))
            platforms = (
                [*declared_platforms, ""] if declared_platforms else default_platforms()
            )

        return existing_directories(
            conventional_output_dirs(self.directory, configurations, platforms)
        )

    # -----------------------------
    # Saving
    # -----------------------------

    def to_element(self) -> ET.Element:
        """Build the XML document for the current model."""
        q = partial(qualified, self.namespace)
        root = ET.Element(q("Project"), dict(self.root_attributes))

        group = ET.SubElement(root, q("PropertyGroup"))
        for name, value in self.properties.items():
            ET.SubElement(group, q(name)).text = value

        for conditional in self.conditional_property_groups:
            attrs = {"Condition": conditional.condition} if conditional.condition else {}
            group = ET.SubElement(root, q("PropertyGroup"), attrs)
            for name, value in conditional.properties.items():
                condition = conditional.property_conditions.get(name)
                element_attrs = {"Condition": condition} if condition else {}
                ET.SubElement(group, q(name), element_attrs).text = value

        if self.package_references:
            group = ET.SubElement(root, q("ItemGroup"))
            for package in self.package_references:
                attrs = {"Include": package.name}
                if package.version:
                    attrs["Version"] = package.version
                if package.private_assets:
                    attrs["PrivateAssets"] = package.private_assets
                ET.SubElement(group, q("PackageReference"), attrs)

        if self.project_references:
            group = ET.SubElement(root, q("ItemGroup"))
            for reference in self.project_references:
                ET.SubElement(group, q("ProjectReference"), {"Include": reference.path})

        if self.assembly_references:
            group = ET.SubElement(root, q("ItemGroup"))
            for assembly in self.assembly_references:
                element = ET.SubElement(group, q("Reference"), {"Include": assembly.name})
                if assembly.hint_path:
                    ET.SubElement(element, q("HintPath")).text = assembly.hint_path

        if self.items:
            group = ET.SubElement(root, q("ItemGroup"))
            for item in self.items:
                element = ET.SubElement(group, q(item.item_type), {"Include": item.include})
                for key, value in item.metadata.items():
                    ET.SubElement(element, q(key)).text = value

        return root

    def to_xml(self) -> str:
        """Serialize the model to an XML string."""
        if self.namespace:
            ET.register_namespace("", self.namespace)
        tree = ET.ElementTree(self.to_element())
        ET.indent(tree, space="  ")
        return ET.tostring(tree.getroot(), encoding="unicode")

    def save(self, path: str | Path | None = None) -> Path:
        """Regenerate the document and write it, creating parent directories."""
        target = Path(path) if path else self.path
        if self.namespace:
            ET.register_namespace("", self.namespace)
        tree = ET.ElementTree(self.to_element())
        ET.indent(tree, space="  ")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tree.write(target, encoding="utf-8", xml_declaration=True)
        except OSError as exc:
            msg = f"Could not write project file {target}: {exc}"
            raise IOFailure(msg) from exc
        logger.info("Saved project to %s", target)
        return target

    # -----------------------------
    # Factories
    # -----------------------------

    @classmethod
    def create_console_app(
        cls, path: str | Path, target_framework: str | None = None
    ) -> ProjectFile:
        project = cls(path)
        if target_framework:
            project.set_target_framework(target_framework)
        project.set_output_type("Exe")
        return project

    @classmethod
    def create_class_library(
        cls, path: str | Path, target_framework: str | None = None
    ) -> ProjectFile:
        project = cls(path)
        if target_framework:
            project.set_target_framework(target_framework)
        project.set_output_type("Library")
        return project

    @classmethod
    def create_web_api(cls, path: str | Path, version: str = "8.0") -> ProjectFile:
        """Create an ASP.NET Core Web API project on the web SDK."""
        project = cls(path, WEB_SDK)
        project.set_target_framework(f"net{version}")
        project.set_output_type("Exe")
        return project

    @classmethod
    def create_mvc_app(cls, path: str | Path, version: str = "8.0") -> ProjectFile:
        """Create an ASP.NET Core MVC project on the web SDK."""
        project = cls(path, WEB_SDK)
        project.set_target_framework(f"net{version}")
        project.set_output_type("Exe")
        return project

    @classmethod
    def create_windows_forms_app(
        cls, path: str | Path, version: str = "8.0"
    ) -> ProjectFile:
        project = cls(path)
        project.set_windows_forms(version)
        return project

    @classmethod
    def create_wpf_app(cls, path: str | Path, version: str = "8.0") -> ProjectFile:
        project = cls(path)
        project.set_wpf(version)
        return project
