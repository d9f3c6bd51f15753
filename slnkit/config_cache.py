"""Lazily loaded, thread-safe view over the configuration."""

import logging
import threading
from typing import Any

from slnkit.load_config import load_config

logger = logging.getLogger(__name__)

_MISSING = object()


class ConfigCache:
    """Memoizes dotted-key lookups such as ``"artifacts.binary_extension"``.

    The configuration file is read on first access. Concurrent first access
    is idempotent: the first value stored for a key is the one every caller
    observes.
    """

    def __init__(self, path: str | None = None) -> None:
        """Bind the cache to an optional YAML configuration file."""
        self.path = path
        self._config: dict[str, Any] | None = None
        self._values: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> dict[str, Any]:
        """The merged configuration, loaded on first use."""
        if self._config is None:
            loaded = load_config(self.path)
            with self._lock:
                if self._config is None:
                    self._config = loaded
                    logger.debug("Loaded configuration from %s", self.path or "defaults")
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at a dotted key, or *default* when absent."""
        cached = self._values.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        node: Any = self.config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]

        with self._lock:
            return self._values.setdefault(key, node)

    def clear(self) -> None:
        """Forget the loaded configuration and memoized values."""
        with self._lock:
            self._config = None
            self._values.clear()

    def use_file(self, path: str | None) -> None:
        """Rebind the cache to another configuration file and drop cached values."""
        with self._lock:
            self.path = path
            self._config = None
            self._values.clear()


# Shared by every module that does not receive an explicit cache.
default_cache = ConfigCache()
