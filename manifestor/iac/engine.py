"""Transformation engine for converting a manifest into Kubernetes artifacts.

This module runs the whole pipeline: parse, order, resolve, optionally build
container images, generate and render every bundle, and only then write the
bundles to disk.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from ..config_manager import ManifestorConfig, resolve_state_file
from ..exceptions import ConfigurationError, OperationCancelledError
from ..utils.process_runner import CancellationToken, ProcessRunner
from ..utils.prompts import InteractivePrompt
from .container_builder import (
    BuildSummary,
    ContainerBuildCoordinator,
    ContainerParameters,
)
from .dependency_analyzer import DependencyAnalyzer
from .emitters import get_emitter
from .emitters.base import ArtifactBundle
from .emitters.kubernetes_emitter import GenerationSettings
from .generation_report import GenerationMetrics, GenerationReport
from .host_strategies import get_host_strategy
from .manifest_parser import parse_manifest_file
from .models import BUILDABLE_KINDS, WORKLOAD_KINDS, ResourceGraph
from .output_writer import ArtifactWriter
from .resolver import ExpressionResolver, ResolvedResource
from .secret_store import SecretStore

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "kubernetes"


class TransformationEngine:
    """Engine for transforming a manifest into deployment artifacts."""

    def __init__(
        self,
        config: ManifestorConfig,
        cancellation: Optional[CancellationToken] = None,
        runner: Optional[ProcessRunner] = None,
        prompt: Optional[InteractivePrompt] = None,
        output_format: str = DEFAULT_FORMAT,
    ) -> None:
        """Initialize transformation engine.

        Args:
            config: Validated configuration
            cancellation: Token shared with child processes (created if omitted)
            runner: Process runner for container builds
            prompt: Prompt used before retrying a failed build
            output_format: Registered emitter format name
        """
        self.config = config
        self.cancellation = cancellation or CancellationToken()
        self.runner = runner or ProcessRunner(self.cancellation)
        self.prompt = prompt
        self.output_format = output_format

    def container_parameters(self) -> ContainerParameters:
        build = self.config.build
        return ContainerParameters(
            builder=build.builder,
            registry=build.registry,
            prefix=build.repository_prefix,
            tag=build.image_tag,
            non_interactive=build.non_interactive,
            runtime_identifier=build.runtime_identifier,
            max_parallel_builds=build.max_parallel_builds,
        )

    def generation_settings(self) -> GenerationSettings:
        generation = self.config.generation
        return GenerationSettings(
            namespace=generation.namespace,
            image_pull_policy=generation.image_pull_policy,
            private_registry=generation.private_registry,
            pull_secret_name=generation.pull_secret_name,
            default_volume_size=generation.default_volume_size,
        )

    def create_resolver(
        self, graph: ResourceGraph, secret_store: SecretStore
    ) -> ExpressionResolver:
        try:
            host_strategy = get_host_strategy(self.config.generation.host_strategy)
        except KeyError as e:
            raise ConfigurationError(str(e), config_section="generation", cause=e) from e
        return ExpressionResolver(
            graph,
            host_strategy=host_strategy,
            parameters=self.config.parameters,
            secret_store=secret_store,
        )

    def plan(self, manifest_path: Path | str) -> DependencyAnalyzer:
        """Parse a manifest and analyze its reference graph."""
        graph = parse_manifest_file(manifest_path)
        logger.info(f"Parsed {len(graph)} resources from {manifest_path}")
        return DependencyAnalyzer(graph)

    def generate(
        self, manifest_path: Path | str, build: bool = False
    ) -> GenerationReport:
        """Run the full pipeline for ``manifest_path``.

        Nothing is written unless every resource resolved and rendered.

        Args:
            manifest_path: Path to the manifest file
            build: Build (and push, with a registry) container images first

        Returns:
            GenerationReport describing what was generated
        """
        metrics = GenerationMetrics(build_enabled=build)

        analyzer = self.plan(manifest_path)
        graph = analyzer.graph
        order = analyzer.resolution_order()
        metrics.resources_parsed = len(graph)
        metrics.resolution_order = order
        metrics.workload_resources = sum(1 for r in graph if r.kind in WORKLOAD_KINDS)
        metrics.value_resources = metrics.resources_parsed - metrics.workload_resources
        logger.info(f"Resolution order: {' -> '.join(order)}")

        secret_store = SecretStore(resolve_state_file(self.config.generation))
        resolver = self.create_resolver(graph, secret_store)
        resolved = resolver.resolve_all(order)
        self._raise_if_cancelled()

        parameters = self.container_parameters()
        if build:
            summary = self._build_images(analyzer, resolved, parameters)
            metrics.images_built = summary.images_built
            metrics.images_pushed = summary.images_pushed

        bundles = self._generate_bundles(graph, order, resolved, parameters)
        self._count_documents(bundles, metrics)

        writer = ArtifactWriter(self.config.generation.output_dir)
        written: List[Path] = []
        for bundle in bundles:
            self._raise_if_cancelled()
            written.extend(writer.write_bundle(bundle))
        metrics.files_written = len(written)

        metrics.generated_secrets = len(secret_store.generated_keys)
        if secret_store.dirty:
            path = secret_store.save()
            if path is not None:
                logger.info(f"Saved generated secrets to {path}")

        return GenerationReport(
            metrics=metrics,
            output_directory=writer.output_dir,
            timestamp=datetime.now().isoformat(),
            written_files=written,
        )

    def _build_images(
        self,
        analyzer: DependencyAnalyzer,
        resolved: Dict[str, ResolvedResource],
        parameters: ContainerParameters,
    ) -> BuildSummary:
        graph = analyzer.graph
        buildable = [r.name for r in graph if r.kind in BUILDABLE_KINDS]
        if not buildable:
            logger.info("No buildable resources in manifest")
            return BuildSummary()

        coordinator = ContainerBuildCoordinator(
            self.runner, parameters, prompt=self.prompt, cancellation=self.cancellation
        )
        return coordinator.build_all(
            analyzer.build_tiers(buildable), graph.resources, resolved
        )

    def _generate_bundles(
        self,
        graph: ResourceGraph,
        order: List[str],
        resolved: Dict[str, ResolvedResource],
        parameters: ContainerParameters,
    ) -> List[ArtifactBundle]:
        emitter_class = get_emitter(self.output_format)
        emitter = emitter_class(
            settings=self.generation_settings(), image_namer=parameters.image_for
        )

        bundles = []
        for name in order:
            self._raise_if_cancelled()
            bundle = emitter.generate(graph.resources[name], resolved[name])
            if bundle is None:
                continue
            bundles.append(emitter.render(bundle))
        logger.info(f"Generated artifacts for {len(bundles)} resources")
        return bundles

    @staticmethod
    def _count_documents(
        bundles: List[ArtifactBundle], metrics: GenerationMetrics
    ) -> None:
        for bundle in bundles:
            metrics.deployments += len(bundle.documents_of_kind("Deployment"))
            metrics.config_maps += len(bundle.documents_of_kind("ConfigMap"))
            metrics.secrets += len(bundle.documents_of_kind("Secret"))
            metrics.services += len(bundle.documents_of_kind("Service"))
            for document in bundle.documents_of_kind("StatefulSet"):
                metrics.stateful_sets += 1
                metrics.volume_claims += len(
                    document.body["spec"].get("volumeClaimTemplates", [])
                )

    def _raise_if_cancelled(self) -> None:
        if self.cancellation.cancelled:
            raise OperationCancelledError("Artifact generation cancelled")
