"""Base emitter class for deployment artifact generation.

This module defines the artifact bundle produced for each resolved resource
and the abstract base class all artifact emitters implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import Resource
from ..resolver import ResolvedResource


@dataclass
class ArtifactDocument:
    """One generated document and the file it is written to."""

    file_name: str
    kind: str
    body: Dict[str, Any]


@dataclass
class ArtifactBundle:
    """Every document generated for a single resource.

    ``rendered`` maps file names to rendered text once the bundle has been
    passed through a renderer.
    """

    resource_name: str
    documents: List[ArtifactDocument] = field(default_factory=list)
    rendered: Dict[str, str] = field(default_factory=dict)

    @property
    def file_names(self) -> List[str]:
        return [document.file_name for document in self.documents]

    def documents_of_kind(self, kind: str) -> List[ArtifactDocument]:
        return [document for document in self.documents if document.kind == kind]

    def document(self, file_name: str) -> Optional[ArtifactDocument]:
        for document in self.documents:
            if document.file_name == file_name:
                return document
        return None


class ArtifactEmitter(ABC):
    """Abstract base class for artifact emitters.

    All emitters must implement this interface so the engine can generate
    and render artifacts independent of the target format.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize emitter with optional configuration.

        Args:
            config: Optional emitter-specific configuration
        """
        self.config = config or {}

    @abstractmethod
    def generate(
        self, resource: Resource, resolved: ResolvedResource
    ) -> Optional[ArtifactBundle]:
        """Build the artifact bundle for one fully resolved resource.

        Returns:
            The bundle, or None for resources that produce no artifacts
        """
        raise NotImplementedError

    @abstractmethod
    def render(self, bundle: ArtifactBundle) -> ArtifactBundle:
        """Render every document in ``bundle`` to text."""
        raise NotImplementedError
