"""Generation of solution-style identifiers."""

import uuid
from collections.abc import Container


def new_guid(taken: Container[str] = ()) -> str:
    """Return a fresh ``{XXXXXXXX-...}`` upper-case GUID not present in *taken*.

    Membership in *taken* is checked on the upper-cased form.
    """
    while True:
        guid = "{" + str(uuid.uuid4()).upper() + "}"
        if guid not in taken:
            return guid
