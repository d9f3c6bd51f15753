"""Tests for configuration loading, merging and caching."""

import threading
from pathlib import Path

import yaml

from slnkit.config_cache import ConfigCache, default_cache
from slnkit.deep_merge import deep_merge
from slnkit.load_config import DEFAULT_CONFIG, load_config


def test_deep_merge_scalars() -> None:
    """Verify scalar replacement in deep merge."""
    base = {"a": 1, "b": 2}
    update = {"b": 3, "c": 4}
    merged = deep_merge(base, update)
    assert merged == {"a": 1, "b": 3, "c": 4}


def test_deep_merge_nested() -> None:
    """Verify recursive merging of dictionaries."""
    base = {"nested": {"x": 1, "y": 2}}
    update = {"nested": {"y": 3, "z": 4}}
    merged = deep_merge(base, update)
    assert merged == {"nested": {"x": 1, "y": 3, "z": 4}}


def test_deep_merge_arrays_replace() -> None:
    """Verify that arrays are replaced by default."""
    base = {"include_patterns": ["A*"]}
    update = {"include_patterns": ["B*"]}
    merged = deep_merge(base, update)
    assert merged == {"include_patterns": ["B*"]}


def test_deep_merge_exclude_patterns_additive() -> None:
    """Verify that exclude patterns are merged additively without duplicates."""
    base = {"exclude_patterns": ["*.Tests.dll", "x*"]}
    update = {"exclude_patterns": ["x*", "*.Mock.dll"]}
    merged = deep_merge(base, update)
    assert merged["exclude_patterns"] == ["*.Tests.dll", "x*", "*.Mock.dll"]


def test_load_config_defaults() -> None:
    """Verify that default config is loaded when no path is provided."""
    config = load_config(None)
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG
    assert config["project"]["target_framework"] == "net8.0"


def test_load_config_with_file(tmp_path: Path) -> None:
    """Verify that user config correctly overrides defaults."""
    config_file = tmp_path / "slnkit.yml"
    config_data = {
        "artifacts": {"binary_extension": ".exe", "exclude_patterns": ["*.vshost.exe"]},
        "link": {"target": "C:/Game/BepInEx/plugins"},
    }
    config_file.write_text(yaml.dump(config_data))

    loaded = load_config(str(config_file))
    assert loaded["artifacts"]["binary_extension"] == ".exe"
    assert loaded["artifacts"]["symbols_extension"] == ".pdb"  # Default
    assert loaded["artifacts"]["exclude_patterns"] == ["*.vshost.exe"]
    assert loaded["link"]["target"] == "C:/Game/BepInEx/plugins"
    assert DEFAULT_CONFIG["artifacts"]["binary_extension"] == ".dll"


def test_load_config_missing_file_uses_defaults(tmp_path: Path) -> None:
    """Verify that a missing file falls back to defaults."""
    assert load_config(str(tmp_path / "absent.yml")) == DEFAULT_CONFIG


def test_config_cache_dotted_lookup(tmp_path: Path) -> None:
    """Verify dotted keys resolve and missing keys return the default."""
    config_file = tmp_path / "slnkit.yml"
    config_file.write_text(yaml.dump({"workers": {"max_workers": 4}}))
    cache = ConfigCache(str(config_file))

    assert cache.get("workers.max_workers") == 4
    assert cache.get("build.platforms")[0] == "AnyCPU"
    assert cache.get("link.nothing", "fallback") == "fallback"
    assert cache.get("link.target.deeper") is None


def test_config_cache_memoizes_first_value(tmp_path: Path) -> None:
    """Verify a cached value survives later changes until clear()."""
    config_file = tmp_path / "slnkit.yml"
    config_file.write_text(yaml.dump({"link": {"target": "first"}}))
    cache = ConfigCache(str(config_file))
    assert cache.get("link.target") == "first"

    config_file.write_text(yaml.dump({"link": {"target": "second"}}))
    assert cache.get("link.target") == "first"

    cache.clear()
    assert cache.get("link.target") == "second"


def test_config_cache_concurrent_access_agrees() -> None:
    """Verify concurrent first lookups observe the same value."""
    cache = ConfigCache()
    results: list[object] = []
    lock = threading.Lock()

    def read() -> None:
        value = cache.get("artifacts.exclude_patterns")
        with lock:
            results.append(value)

    threads = [threading.Thread(target=read) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == len(threads)
    assert all(value is results[0] for value in results)


def test_default_cache_can_be_pointed_at_a_file(tmp_path: Path) -> None:
    """Verify the shared cache rebinds to a file and back to the defaults."""
    config_file = tmp_path / "slnkit.yml"
    config_file.write_text(yaml.dump({"project": {"target_framework": "net9.0"}}))
    assert default_cache.get("project.target_framework") == "net8.0"

    default_cache.use_file(str(config_file))
    try:
        assert default_cache.get("project.target_framework") == "net9.0"
        assert default_cache.get("project.output_type") == "Library"
    finally:
        default_cache.use_file(None)

    assert default_cache.get("project.target_framework") == "net8.0"
