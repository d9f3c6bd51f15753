"""Locate the solution file that owns a directory."""

from pathlib import Path


def find_solution_file(start: str | Path | None = None) -> Path | None:
    """Walk up from *start* to the first directory containing a ``.sln`` file.

    When a directory holds several solutions, the one named after the
    directory wins, otherwise the first in name order.
    """
    current = Path(start).resolve() if start else Path.cwd()
    if current.is_file():
        current = current.parent

    while True:
        candidates = sorted(current.glob("*.sln"))
        if candidates:
            for sln in candidates:
                if sln.stem.lower() == current.name.lower():
                    return sln
            return candidates[0]
        if current.parent == current:
            return None
        current = current.parent
