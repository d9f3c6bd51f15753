"""Namespace-agnostic helpers over ElementTree MSBuild documents."""

import xml.etree.ElementTree as ET
from collections.abc import Iterator

MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an element tag."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def namespace_of(element: ET.Element) -> str:
    """Return the namespace URI of an element, or an empty string."""
    if element.tag.startswith("{"):
        return element.tag[1:].split("}", 1)[0]
    return ""


def children_named(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield direct children whose local name equals *name*."""
    for child in element:
        if isinstance(child.tag, str) and local_name(child.tag) == name:
            yield child


def child_text(element: ET.Element, name: str) -> str | None:
    """Text of the first direct child called *name*, stripped."""
    for child in children_named(element, name):
        return (child.text or "").strip()
    return None


def element_text(element: ET.Element) -> str:
    """All text inside an element, stripped."""
    return "".join(element.itertext()).strip()


def qualified(namespace: str, name: str) -> str:
    """Build a tag in *namespace* (or unqualified when empty)."""
    return f"{{{namespace}}}{name}" if namespace else name
