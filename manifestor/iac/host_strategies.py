"""Host resolution strategies for binding references.

``{resource.bindings.<name>.host}`` depends on where the workload runs. The
resolver delegates to a ``HostStrategy`` so the target environment decides.
"""

from abc import ABC, abstractmethod
from typing import Dict, Type

from ..utils.naming import k8s_name
from .models import Binding, Resource


class HostStrategy(ABC):
    """Maps a resource binding to the host name other resources use to reach it."""

    name: str = ""

    @abstractmethod
    def host_for(self, resource: Resource, binding_name: str, binding: Binding) -> str:
        raise NotImplementedError


class ServiceNameHostStrategy(HostStrategy):
    """Cluster-internal DNS: the generated Service is named after the resource."""

    name = "service-name"

    def host_for(self, resource: Resource, binding_name: str, binding: Binding) -> str:
        return k8s_name(resource.name)


class LoopbackHostStrategy(HostStrategy):
    """Everything runs on one machine (local development)."""

    name = "loopback"

    def __init__(self, host: str = "localhost") -> None:
        self.host = host

    def host_for(self, resource: Resource, binding_name: str, binding: Binding) -> str:
        return self.host


_STRATEGY_REGISTRY: Dict[str, Type[HostStrategy]] = {
    ServiceNameHostStrategy.name: ServiceNameHostStrategy,
    LoopbackHostStrategy.name: LoopbackHostStrategy,
}


def register_host_strategy(strategy_class: Type[HostStrategy]) -> None:
    """Register a host strategy under its ``name``."""
    _STRATEGY_REGISTRY[strategy_class.name.lower()] = strategy_class


def available_host_strategies() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


def get_host_strategy(name: str) -> HostStrategy:
    """Instantiate a registered host strategy.

    Raises:
        KeyError: If no strategy is registered under ``name``
    """
    key = name.lower()
    if key not in _STRATEGY_REGISTRY:
        raise KeyError(
            f"No host strategy registered as '{name}'. "
            f"Available strategies: {available_host_strategies()}"
        )
    return _STRATEGY_REGISTRY[key]()
