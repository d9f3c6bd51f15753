"""Logic for loading and merging configuration files."""

import copy
from pathlib import Path
from typing import Any

import yaml

from slnkit.deep_merge import deep_merge

DEFAULT_CONFIG: dict[str, Any] = {
    "build": {
        "configurations": ["Debug", "Release"],
        "platforms": ["AnyCPU", "x64", "x86", "Any CPU", ""],
    },
    "artifacts": {
        "binary_extension": ".dll",
        "symbols_extension": ".pdb",
        "include_subfolders": True,
        "include_patterns": [],
        "exclude_patterns": [],
    },
    "project": {
        "sdk": "Microsoft.NET.Sdk",
        "target_framework": "net8.0",
        "output_type": "Library",
        "extensions": [".csproj", ".vbproj", ".fsproj"],
    },
    "link": {
        "target": "",
    },
    "workers": {
        "max_workers": None,
    },
}


def load_config(path: str | None = None) -> dict[str, Any]:
    """Load configuration from a YAML file and merge it with defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path:
        p = Path(path)
        if p.exists():
            user_config = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            config = deep_merge(config, user_config)
    return config
