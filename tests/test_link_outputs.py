"""Tests for linking and unlinking project outputs."""

import os
from pathlib import Path

import pytest

from slnkit.artifact_locator import FailureKind
from slnkit.config_cache import ConfigCache
from slnkit.errors import NotFoundError, ValidationError
from slnkit.link_outputs import LinkOutcome, LinkReport, link_project, unlink_project

DECLARED_OUTPUT = """<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <OutputPath>out\\</OutputPath>
  </PropertyGroup>
</Project>
"""


def make_conventional_project(root: Path, builds: dict[str, float]) -> Path:
    """Create a project without declared outputs and binaries under ``bin/``."""
    root.mkdir(parents=True)
    (root / f"{root.name}.csproj").write_text(
        '<Project Sdk="Microsoft.NET.Sdk"><PropertyGroup /></Project>', encoding="utf-8"
    )
    for relative, mtime in builds.items():
        binary = root / "bin" / relative
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(b"MZ")
        os.utime(binary, (mtime, mtime))
    return root


def make_project(root: Path) -> Path:
    """Create a project with a single declared output directory."""
    root.mkdir(parents=True)
    (root / f"{root.name}.csproj").write_text(DECLARED_OUTPUT, encoding="utf-8")
    out = root / "out"
    out.mkdir()
    (out / f"{root.name}.dll").write_bytes(b"MZ")
    (out / f"{root.name}.pdb").write_bytes(b"PDB")
    (out / "Dependency.dll").write_bytes(b"MZ")
    return root


def test_link_project_links_matching_binary(tmp_path) -> None:
    """Verify the project's own binary and symbols are linked into the target."""
    project = make_project(tmp_path / "Plugin")
    target = tmp_path / "game" / "plugins"

    report = link_project(project, target, cache=ConfigCache())

    assert report.exit_code == 0
    assert len(report.successes) == 1
    assert sorted(p.name for p in report.successes[0].links) == ["Plugin.dll", "Plugin.pdb"]
    assert (target / "Plugin.dll").is_symlink()
    assert not (target / "Dependency.dll").exists()


def test_link_project_uses_configured_target(tmp_path) -> None:
    """Verify the link target falls back to configuration."""
    project = make_project(tmp_path / "Plugin")
    target = tmp_path / "configured"
    config = tmp_path / "slnkit.yml"
    config.write_text(f"link:\n  target: '{target.as_posix()}'\n", encoding="utf-8")

    report = link_project(project, cache=ConfigCache(str(config)))

    assert report.exit_code == 0
    assert (target / "Plugin.dll").is_symlink()


def test_link_project_without_target_raises(tmp_path) -> None:
    """Verify a missing target is a validation error."""
    project = make_project(tmp_path / "Plugin")

    with pytest.raises(ValidationError):
        link_project(project, cache=ConfigCache())


def test_link_project_without_builds_reports_one_failure(tmp_path) -> None:
    """Verify an unbuilt project yields a single failure."""
    project = tmp_path / "Fresh"
    project.mkdir()
    (project / "Fresh.csproj").write_text(
        '<Project Sdk="Microsoft.NET.Sdk" />', encoding="utf-8"
    )

    report = link_project(project, tmp_path / "plugins", cache=ConfigCache())

    assert report.exit_code == 1
    assert [o.failure for o in report.failures] == [FailureKind.NO_OUTPUT_DIRECTORIES]


def test_unlink_removes_only_matching_links(tmp_path) -> None:
    """Verify only symbolic links named after the project are removed."""
    source = tmp_path / "source.dll"
    source.write_bytes(b"MZ")
    target = tmp_path / "plugins"
    target.mkdir()
    for name in ("Plugin.dll", "plugin.pdb", "Other.dll"):
        os.symlink(source, target / name)
    (target / "Plugin.txt").write_text("keep", encoding="utf-8")

    report = unlink_project(target, "Plugin", max_workers=2)

    assert report.exit_code == 0
    assert len(report.successes) == 2
    assert sorted(p.name for p in target.iterdir()) == ["Other.dll", "Plugin.txt"]


def test_unlink_requires_existing_directory(tmp_path) -> None:
    """Verify a missing target directory raises NotFoundError."""
    with pytest.raises(NotFoundError):
        unlink_project(tmp_path / "missing", "Plugin")
    with pytest.raises(ValidationError):
        unlink_project(tmp_path, "")


def test_report_exit_code_reflects_failures(tmp_path) -> None:
    """Verify any failure makes the exit code non-zero."""
    report = LinkReport()
    report.add(LinkOutcome(tmp_path, True))
    assert report.exit_code == 0

    report.add(LinkOutcome(tmp_path, False, "boom", FailureKind.IO_ERROR))
    assert report.exit_code == 1
    assert len(report.outcomes) == 2


def test_link_project_parallel_builds_link_newest_once(tmp_path, monkeypatch) -> None:
    """Verify several workers over Debug, Release and x64 builds link one newest binary."""
    monkeypatch.setattr(os, "cpu_count", lambda: 8)
    project = make_conventional_project(
        tmp_path / "Plugin",
        {
            "Debug/Plugin.dll": 1_000,
            "Release/Plugin.dll": 3_000,
            "x64/Release/Plugin.dll": 2_000,
            "Release/x64/Plugin.dll": 1_500,
        },
    )
    target = tmp_path / "plugins"
    newest = project / "bin" / "Release" / "Plugin.dll"

    for _ in range(5):
        report = link_project(project, target, max_workers=8, cache=ConfigCache())

        assert report.exit_code == 0
        assert [o.path.resolve() for o in report.linked] == [newest.parent.resolve()]
        assert (target / "Plugin.dll").resolve() == newest.resolve()
    assert [p.name for p in target.iterdir()] == ["Plugin.dll"]


def test_link_project_conventional_debug_build_succeeds(tmp_path) -> None:
    """Verify output directories without a matching binary do not fail the run."""
    project = make_conventional_project(tmp_path / "Plugin", {"Debug/Plugin.dll": 1_000})
    target = tmp_path / "plugins"

    report = link_project(project, target, cache=ConfigCache())

    assert report.exit_code == 0
    assert report.failures == []
    assert len(report.linked) == 1
    assert (target / "Plugin.dll").is_symlink()


def test_link_project_without_matching_binary_fails_once(tmp_path) -> None:
    """Verify a run that links nothing reports a single no-match failure."""
    project = make_conventional_project(tmp_path / "Plugin", {"Debug/Other.dll": 1_000})

    report = link_project(project, tmp_path / "plugins", cache=ConfigCache())

    assert report.exit_code == 1
    assert [o.failure for o in report.failures] == [FailureKind.NO_MATCH]
    assert report.linked == []
