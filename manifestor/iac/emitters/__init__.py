"""Artifact emitters package for different deployment targets.

Emitters register themselves by format name on import; the engine looks them
up with ``get_emitter``.
"""

from typing import Dict, Type

from .base import ArtifactBundle, ArtifactDocument, ArtifactEmitter

# Global emitter registry
_EMITTER_REGISTRY: Dict[str, Type[ArtifactEmitter]] = {}


def register_emitter(format_name: str, emitter_class: Type[ArtifactEmitter]) -> None:
    """Register an emitter class for a specific format.

    Args:
        format_name: Name of the artifact format (e.g., 'kubernetes')
        emitter_class: Emitter class implementing ArtifactEmitter
    """
    _EMITTER_REGISTRY[format_name.lower()] = emitter_class


def get_emitter_registry() -> Dict[str, Type[ArtifactEmitter]]:
    """Get a copy of the current emitter registry."""
    return _EMITTER_REGISTRY.copy()


def get_emitter(format_name: str) -> Type[ArtifactEmitter]:
    """Get emitter class for specified format.

    Raises:
        KeyError: If format is not registered
    """
    format_key = format_name.lower()
    if format_key not in _EMITTER_REGISTRY:
        available_formats = list(_EMITTER_REGISTRY.keys())
        raise KeyError(
            f"No emitter registered for format '{format_name}'. "
            f"Available formats: {available_formats}"
        )

    return _EMITTER_REGISTRY[format_key]


# Import emitter implementations to auto-register them
from . import kubernetes_emitter  # noqa: E402,F401

__all__ = [
    "ArtifactBundle",
    "ArtifactDocument",
    "ArtifactEmitter",
    "get_emitter",
    "get_emitter_registry",
    "register_emitter",
]
