"""Resource graph data model.

Resources are a tagged union: every variant carries its ``kind`` tag and is
dispatched through explicit type tables in the parser and the emitters rather
than through methods on the variants themselves.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Union


class ResourceKind(str, Enum):
    """Manifest type discriminators."""

    CONTAINER = "container.v0"
    PROJECT = "project.v0"
    DOCKERFILE = "dockerfile.v0"
    VALUE = "value.v0"
    PARAMETER = "parameter.v0"


BUILDABLE_KINDS = frozenset({ResourceKind.PROJECT, ResourceKind.DOCKERFILE})
WORKLOAD_KINDS = frozenset(
    {ResourceKind.CONTAINER, ResourceKind.PROJECT, ResourceKind.DOCKERFILE}
)


@dataclass
class Binding:
    """A named network endpoint exposed by a resource."""

    scheme: str
    protocol: str = "tcp"
    transport: str = "tcp"
    target_port: Optional[int] = None
    port: Optional[int] = None
    external: bool = False


@dataclass
class Volume:
    """A persistent volume mounted into a workload."""

    name: str
    target: str
    read_only: bool = False
    size: Optional[str] = None


@dataclass
class BindMount:
    """A host path mounted into a container."""

    source: str
    target: str
    read_only: bool = False


@dataclass
class GeneratePolicy:
    """Random value generation policy for secret inputs."""

    min_length: int
    lower: bool = True
    upper: bool = True
    numeric: bool = True
    special: bool = True


@dataclass
class ParameterInput:
    """An input declared by a parameter resource."""

    type: str = "string"
    secret: bool = False
    default_value: Optional[str] = None
    generate: Optional[GeneratePolicy] = None


@dataclass
class ContainerResource:
    name: str
    image: str
    env: Dict[str, str] = field(default_factory=dict)
    bindings: Dict[str, Binding] = field(default_factory=dict)
    volumes: List[Volume] = field(default_factory=list)
    bind_mounts: List[BindMount] = field(default_factory=list)
    args: List[str] = field(default_factory=list)
    entrypoint: Optional[str] = None
    connection_string: Optional[str] = None
    kind: ResourceKind = field(default=ResourceKind.CONTAINER, init=False)


@dataclass
class ProjectResource:
    name: str
    path: str
    env: Dict[str, str] = field(default_factory=dict)
    bindings: Dict[str, Binding] = field(default_factory=dict)
    connection_string: Optional[str] = None
    kind: ResourceKind = field(default=ResourceKind.PROJECT, init=False)


@dataclass
class DockerfileResource:
    name: str
    path: str
    context: str
    env: Dict[str, str] = field(default_factory=dict)
    build_args: Dict[str, str] = field(default_factory=dict)
    bindings: Dict[str, Binding] = field(default_factory=dict)
    connection_string: Optional[str] = None
    kind: ResourceKind = field(default=ResourceKind.DOCKERFILE, init=False)


@dataclass
class ValueResource:
    name: str
    value: Optional[str] = None
    connection_string: Optional[str] = None
    kind: ResourceKind = field(default=ResourceKind.VALUE, init=False)


@dataclass
class ParameterResource:
    name: str
    value: str
    inputs: Dict[str, ParameterInput] = field(default_factory=dict)
    connection_string: Optional[str] = None
    kind: ResourceKind = field(default=ResourceKind.PARAMETER, init=False)


Resource = Union[
    ContainerResource,
    ProjectResource,
    DockerfileResource,
    ValueResource,
    ParameterResource,
]


def expression_fields(resource: Resource) -> Dict[str, str]:
    """Return every expression-bearing string field keyed by its path.

    Keys use the same dotted form the resolver understands, e.g.
    ``env.ConnectionStrings__db`` or ``connectionString``.
    """
    fields: Dict[str, str] = {}
    for key, text in getattr(resource, "env", {}).items():
        fields[f"env.{key}"] = text
    for key, text in getattr(resource, "build_args", {}).items():
        fields[f"buildArgs.{key}"] = text
    for index, text in enumerate(getattr(resource, "args", [])):
        fields[f"args.{index}"] = text
    if resource.connection_string is not None:
        fields["connectionString"] = resource.connection_string
    value = getattr(resource, "value", None)
    if value is not None:
        fields["value"] = value
    return fields


@dataclass
class ResourceGraph:
    """All resources of one manifest, in manifest order."""

    resources: Dict[str, Resource] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(self.resources.values())

    def __len__(self) -> int:
        return len(self.resources)

    def get(self, name: str) -> Optional[Resource]:
        return self.resources.get(name)

    @property
    def names(self) -> List[str]:
        return list(self.resources)

    def index_of(self, name: str) -> int:
        """Position of a resource in the original manifest."""
        return self.names.index(name)
