"""Dependency analyzer for manifest resources.

This module builds the reference graph induced by placeholder expressions and
orders resources so that every resource is resolved after all resources it
references. Resources are also grouped into tiers for build scheduling:
resources in the same tier have no reference relationship with each other.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

import networkx as nx

from ..exceptions import CyclicReferenceError, UnknownResourceReference
from .expressions import find_tokens
from .models import Resource, ResourceGraph, ResourceKind, expression_fields

logger = logging.getLogger(__name__)


@dataclass
class ResourceDependency:
    """Represents a resource with its position and direct references."""

    name: str
    kind: ResourceKind
    order: int
    depends_on: Set[str] = field(default_factory=set)


class DependencyAnalyzer:
    """Builds the reference graph and derives the resolution order.

    Edges point from the referencing resource to the referenced one
    (``A -> B`` when A's text mentions ``{B...}``).
    """

    def __init__(self, graph: ResourceGraph) -> None:
        self.graph = graph
        self._manifest_index: Dict[str, int] = {
            name: index for index, name in enumerate(graph.names)
        }
        self.reference_graph = self._build_reference_graph()

    def _extract_dependencies(self, resource: Resource) -> Set[str]:
        """Extract the names of resources referenced by ``resource``.

        Raises:
            MalformedExpression: If a field holds a malformed placeholder
            UnknownResourceReference: If a placeholder names a missing resource
        """
        dependencies = set()
        for field_path, text in expression_fields(resource).items():
            for token in find_tokens(text):
                if token.resource_name not in self.graph:
                    raise UnknownResourceReference(
                        f"Resource '{resource.name}' references unknown resource "
                        f"'{token.resource_name}' in {field_path}",
                        resource_name=token.resource_name,
                        referenced_by=resource.name,
                    )
                if token.resource_name != resource.name:
                    dependencies.add(token.resource_name)
        return dependencies

    def _build_reference_graph(self) -> nx.DiGraph:
        reference_graph = nx.DiGraph()
        for resource in self.graph:
            reference_graph.add_node(resource.name, kind=resource.kind)
        for resource in self.graph:
            for dependency in sorted(self._extract_dependencies(resource)):
                reference_graph.add_edge(resource.name, dependency)
                logger.debug(f"Reference edge: {resource.name} -> {dependency}")
        return reference_graph

    def _check_acyclic(self) -> None:
        if nx.is_directed_acyclic_graph(self.reference_graph):
            return
        edges = nx.find_cycle(self.reference_graph)
        cycle = [source for source, _ in edges] + [edges[0][0]]
        raise CyclicReferenceError(
            f"Manifest contains a reference cycle: {' -> '.join(cycle)}", cycle=cycle
        )

    def resolution_order(self) -> List[str]:
        """Topological order, ties broken by manifest order.

        Raises:
            CyclicReferenceError: If the reference graph contains a cycle
        """
        self._check_acyclic()
        # Reversed edges put every referenced resource before its referrers
        return list(
            nx.lexicographical_topological_sort(
                self.reference_graph.reverse(copy=False),
                key=self._manifest_index.__getitem__,
            )
        )

    def analyze(self) -> List[ResourceDependency]:
        """Return every resource with its direct references, in resolution order."""
        order = self.resolution_order()
        dependencies = [
            ResourceDependency(
                name=name,
                kind=self.graph.resources[name].kind,
                order=position,
                depends_on=set(self.reference_graph.successors(name)),
            )
            for position, name in enumerate(order)
        ]
        logger.info(f"Resolution order for {len(order)} resources: {', '.join(order)}")
        return dependencies

    def build_tiers(self, names: Iterable[str]) -> List[List[str]]:
        """Group ``names`` into tiers with no reference path inside a tier.

        A resource lands in a later tier than every listed resource it reaches
        through the reference graph, directly or through non-listed resources.
        """
        self._check_acyclic()
        selected = self._sorted(names)
        closure = nx.transitive_closure_dag(self.reference_graph)
        subgraph = nx.DiGraph()
        subgraph.add_nodes_from(selected)
        for source in selected:
            for target in selected:
                if source != target and closure.has_edge(source, target):
                    subgraph.add_edge(target, source)
        tiers = [self._sorted(tier) for tier in nx.topological_generations(subgraph)]

        for tier_number, tier in enumerate(tiers):
            logger.debug(f"  Tier {tier_number}: {', '.join(tier)}")
        return tiers

    def _sorted(self, names: Iterable[str]) -> List[str]:
        return sorted(names, key=self._manifest_index.__getitem__)
