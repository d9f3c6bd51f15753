"""Resolution of the build-output directories a project file implies."""

import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from slnkit.config_cache import default_cache
from slnkit.errors import FormatError, IOFailure, NotFoundError
from slnkit.msbuild_xml import element_text, local_name

logger = logging.getLogger(__name__)


def default_configurations() -> list[str]:
    """Configurations tried when a project declares none (``build.configurations``)."""
    return list(default_cache.get("build.configurations", []))


def default_platforms() -> list[str]:
    """Platforms tried when a project declares none (``build.platforms``)."""
    return list(default_cache.get("build.platforms", []))


def condition_matches(
    condition: str | None, configuration: str | None, platform: str | None
) -> bool:
    """Check a ``Condition`` attribute against a requested configuration/platform.

    The test is purely textual: the condition must contain each requested
    value. A missing condition always matches.
    """
    if not condition:
        return True
    if configuration and configuration not in condition:
        return False
    return not (platform and platform not in condition)


def resolve_output_path(
    raw: str,
    project_dir: Path,
    configuration: str | None = None,
    platform: str | None = None,
) -> Path:
    """Turn an ``OutputPath`` value into an absolute, normalized path."""
    value = raw.strip()
    macros = {
        "$(MSBuildProjectDirectory)": str(project_dir),
        "$(ProjectDir)": str(project_dir) + "/",
    }
    if configuration:
        macros["$(Configuration)"] = configuration
    if platform:
        macros["$(Platform)"] = platform
    for macro, replacement in macros.items():
        value = value.replace(macro, replacement)

    value = value.replace("\\", "/")
    path = Path(value)
    if not path.is_absolute():
        path = project_dir / path
    return Path(os.path.normpath(os.path.abspath(path)))


def extract_output_paths(
    project_path: str | Path,
    configuration: str | None = None,
    platform: str | None = None,
) -> list[Path]:
    """Collect every declared ``OutputPath`` of a project file.

    ``OutputPath`` elements are found at any depth and in any namespace. An
    element is skipped when it, or any ancestor, has a ``Condition`` that
    does not mention the requested configuration or platform. The result is
    ordered and duplicate-free.
    """
    path = Path(project_path)
    if not path.is_file():
        msg = f"Project file not found: {path}"
        raise NotFoundError(msg)
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        msg = f"Malformed project file {path}: {exc}"
        raise FormatError(msg) from exc
    except OSError as exc:
        msg = f"Could not read project file {path}: {exc}"
        raise IOFailure(msg) from exc

    return output_paths_in(root, path.resolve().parent, configuration, platform)


def output_paths_in(
    root: ET.Element,
    project_dir: Path,
    configuration: str | None = None,
    platform: str | None = None,
) -> list[Path]:
    """Resolve the matching ``OutputPath`` elements of an already parsed document."""
    parents = {child: parent for parent in root.iter() for child in parent}
    found: list[Path] = []

    for element in root.iter():
        if not isinstance(element.tag, str) or local_name(element.tag) != "OutputPath":
            continue
        if not _ancestry_matches(element, parents, configuration, platform):
            continue
        raw = element_text(element)
        if raw:
            found.append(resolve_output_path(raw, project_dir, configuration, platform))

    return list(dict.fromkeys(found))


def _ancestry_matches(
    element: ET.Element,
    parents: dict[ET.Element, ET.Element],
    configuration: str | None,
    platform: str | None,
) -> bool:
    node: ET.Element | None = element
    while node is not None:
        if not condition_matches(node.get("Condition"), configuration, platform):
            return False
        node = parents.get(node)
    return True


def conventional_output_dirs(
    project_dir: Path,
    configurations: Iterable[str] | None = None,
    platforms: Iterable[str] | None = None,
) -> list[Path]:
    """Enumerate the usual ``bin/`` layouts, whether or not they exist.

    Omitted configurations or platforms come from the ``build`` configuration
    section.
    """
    bin_dir = Path(project_dir) / "bin"
    if configurations is None:
        configurations = default_configurations()
    platforms = default_platforms() if platforms is None else list(platforms)
    candidates: list[Path] = []
    for config in configurations:
        for platform in platforms:
            candidates.append(bin_dir / config)
            if platform:
                candidates.append(bin_dir / platform / config)
                candidates.append(bin_dir / config / platform)
    candidates.append(bin_dir)
    return list(dict.fromkeys(candidates))


def existing_directories(paths: Iterable[Path]) -> list[Path]:
    """Keep only paths that are directories right now."""
    kept = []
    for path in paths:
        if path.is_dir():
            kept.append(path)
        else:
            logger.debug("Skipping missing output directory %s", path)
    return kept
