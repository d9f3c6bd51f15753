"""Entities of an MSBuild project file."""

from dataclasses import dataclass, field


@dataclass
class PackageReference:
    """A NuGet package reference."""

    name: str
    version: str
    private_assets: str | None = None


@dataclass
class ProjectReference:
    """A reference to another project, by relative path."""

    path: str


@dataclass
class AssemblyReference:
    """A reference to a prebuilt assembly."""

    name: str
    hint_path: str | None = None


@dataclass
class ProjectItem:
    """A generic item such as ``<Compile Include="...">`` with its metadata."""

    item_type: str
    include: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ConditionalPropertyGroup:
    """A ``PropertyGroup`` with a ``Condition`` on itself or on some of its properties.

    ``condition`` is empty when only individual properties are conditioned.
    """

    condition: str
    properties: dict[str, str] = field(default_factory=dict)
    property_conditions: dict[str, str] = field(default_factory=dict)  # name -> Condition
