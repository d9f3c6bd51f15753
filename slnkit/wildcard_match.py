"""Case-insensitive ``*``/``?`` file-name patterns."""

import re
from functools import lru_cache


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(escaped, re.IGNORECASE | re.DOTALL)


def wildcard_match(name: str, pattern: str) -> bool:
    """Match the whole of *name* against *pattern*; other characters are literal."""
    return _compile(pattern).fullmatch(name) is not None
