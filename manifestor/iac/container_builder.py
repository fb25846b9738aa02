"""
Container image build coordination for buildable manifest resources.

Each project or Dockerfile resource walks a small state machine:
CheckBuilderHealth -> Build -> Push (only with a registry). Builds of
resources without a reference relationship run concurrently.
"""

import json
import platform
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from ..exceptions import (
    BuilderUnavailableError,
    BuildFailure,
    DaemonError,
    OperationCancelledError,
    PushFailure,
)
from ..utils.process_runner import CancellationToken, ProcessOptions, ProcessRunner
from ..utils.prompts import InteractivePrompt
from .models import DockerfileResource, ProjectResource, Resource, ResourceKind
from .resolver import ResolvedResource

logger = structlog.get_logger(__name__)

DOTNET_COMMAND = "dotnet"
DUPLICATE_FILE_OUTPUT_ERROR = "NETSDK1152"
UNKNOWN_CONTAINER_REGISTRY_ERROR = "CONTAINER1013"
UNKNOWN_REGISTRY_EXIT_CODE = 1013
ALLOW_DUPLICATE_OUTPUT_ARGUMENT = "-p:ErrorOnDuplicatePublishOutputFiles=false"
DUPLICATE_FILES_PROMPT = (
    "dotnet publish does not allow duplicate filenames in the publish output. "
    "Retry the build explicitly allowing them?"
)
# Project publish settings and the values used when a project leaves them unset
PUBLISH_PROPERTY_DEFAULTS = {"PublishSingleFile": "true", "PublishTrimmed": "false"}


class BuildFailureKind(str, Enum):
    RETRYABLE = "retryable"
    UNKNOWN_REGISTRY = "unknown_registry"
    FATAL = "fatal"


def classify_build_failure(stderr: str) -> BuildFailureKind:
    """Classify builder error output. Only duplicate publish output is retryable."""
    text = stderr.lower()
    if DUPLICATE_FILE_OUTPUT_ERROR.lower() in text:
        return BuildFailureKind.RETRYABLE
    if UNKNOWN_CONTAINER_REGISTRY_ERROR.lower() in text:
        return BuildFailureKind.UNKNOWN_REGISTRY
    return BuildFailureKind.FATAL


def default_runtime_identifier() -> str:
    machine = platform.machine().lower()
    return "linux-arm64" if machine in ("arm64", "aarch64") else "linux-x64"


def full_path(path: str) -> str:
    """Absolute form of a manifest path, relative paths taken from the working directory."""
    return str(Path(path).expanduser().resolve())


@dataclass
class ContainerParameters:
    """Where and how images are built and published."""

    builder: str = "docker"
    registry: Optional[str] = None
    prefix: Optional[str] = None
    tag: str = "latest"
    non_interactive: bool = False
    runtime_identifier: Optional[str] = None
    max_parallel_builds: int = 2

    def repository_for(self, resource_name: str) -> str:
        if self.prefix:
            return f"{self.prefix}/{resource_name}".lower()
        return resource_name.lower()

    def image_for(self, resource_name: str) -> str:
        """Fully qualified image reference for a buildable resource."""
        repository = self.repository_for(resource_name)
        if self.registry:
            repository = f"{self.registry}/{repository}"
        return f"{repository}:{self.tag}".lower()


@dataclass
class BuildOutcome:
    resource_name: str
    image: str
    built: bool = False
    pushed: bool = False
    retried: bool = False


@dataclass
class BuildSummary:
    outcomes: Dict[str, BuildOutcome] = field(default_factory=dict)

    @property
    def images_built(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.built)

    @property
    def images_pushed(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.pushed)


class ContainerBuildCoordinator:
    """Builds and pushes container images for project and Dockerfile resources."""

    def __init__(
        self,
        runner: ProcessRunner,
        parameters: ContainerParameters,
        prompt: Optional[InteractivePrompt] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.runner = runner
        self.parameters = parameters
        self.prompt = prompt or InteractivePrompt()
        self.cancellation = cancellation or runner.cancellation
        self._healthy_builders: set[str] = set()
        self._health_lock = threading.Lock()

    # CheckBuilderHealth

    def check_builder_health(self, builder: Optional[str] = None) -> None:
        """Verify the builder exists and its daemon reports no errors.

        Raises:
            BuilderUnavailableError: If the builder binary is not on PATH
            DaemonError: If ``<builder> info`` fails or reports server errors
        """
        builder = builder or self.parameters.builder
        with self._health_lock:
            if builder in self._healthy_builders:
                return

            availability = self.runner.is_available(builder)
            if not availability.available:
                raise BuilderUnavailableError(
                    f"{builder} is not available or found on your system", builder=builder
                )

            result = self.runner.execute(
                availability.path or builder, ["info", "--format", "json"]
            )
            if result.exit_code != 0:
                raise DaemonError(
                    f"'{builder} info' failed: {result.stderr.strip()}",
                    builder=builder,
                    exit_code=result.exit_code,
                )
            try:
                info = json.loads(result.stdout or "{}")
            except json.JSONDecodeError as e:
                raise DaemonError(
                    f"'{builder} info' returned invalid JSON", builder=builder, cause=e
                ) from e

            server_errors = info.get("ServerErrors") if isinstance(info, dict) else None
            if server_errors:
                messages = [str(m) for m in server_errors]
                logger.error("builder_daemon_errors", builder=builder, errors=messages)
                raise DaemonError(
                    "The daemon server reported errors:\n" + "\n".join(messages),
                    builder=builder,
                    server_errors=messages,
                )

            logger.info("builder_healthy", builder=builder)
            self._healthy_builders.add(builder)

    # Build / Push

    def build_and_push(
        self, resource: Resource, resolved: ResolvedResource
    ) -> BuildOutcome:
        """Run the build state machine for one buildable resource."""
        self._raise_if_cancelled()
        self.check_builder_health()

        if resource.kind == ResourceKind.PROJECT:
            return self._build_project(resource)
        if resource.kind == ResourceKind.DOCKERFILE:
            outcome = self._build_dockerfile(resource, resolved)
            self._raise_if_cancelled()
            outcome.pushed = self._push(outcome.image)
            return outcome
        raise ValueError(f"Resource '{resource.name}' of type {resource.kind.value} is not buildable")

    def _publish_properties(self, project_path: str) -> Dict[str, str]:
        """Read the project's own publish settings, defaulting any it leaves unset."""
        args = ["msbuild", project_path]
        args.extend(f"-getProperty:{name}" for name in PUBLISH_PROPERTY_DEFAULTS)
        result = self.runner.execute(DOTNET_COMMAND, args)

        properties = {}
        if result.exit_code != 0:
            logger.warning(
                "project_properties_unavailable",
                project=project_path,
                exit_code=result.exit_code,
            )
        elif result.stdout.strip():
            try:
                document = json.loads(result.stdout)
            except json.JSONDecodeError:
                logger.warning("project_properties_invalid", project=project_path)
            else:
                if isinstance(document, dict):
                    properties = document.get("Properties") or {}

        return {
            name: str(properties.get(name) or default)
            for name, default in PUBLISH_PROPERTY_DEFAULTS.items()
        }

    def _build_project(self, resource: ProjectResource) -> BuildOutcome:
        params = self.parameters
        project_path = full_path(resource.path)
        publish = self._publish_properties(project_path)
        args = [
            "publish",
            project_path,
            "-p:PublishProfile=DefaultContainer",
            f"-p:PublishSingleFile={publish['PublishSingleFile']}",
            f"-p:PublishTrimmed={publish['PublishTrimmed']}",
            "--self-contained",
            "true",
            "--verbosity",
            "quiet",
            "--nologo",
            "-r",
            params.runtime_identifier or default_runtime_identifier(),
            f"-p:ContainerRepository={params.repository_for(resource.name)}",
            f"-p:ContainerImageTag={params.tag}",
        ]
        if params.registry:
            args.append(f"-p:ContainerRegistry={params.registry}")

        outcome = BuildOutcome(resource.name, params.image_for(resource.name))
        log = logger.bind(resource=resource.name, image=outcome.image)
        log.info("project_publish_started")

        result = self.runner.execute(DOTNET_COMMAND, args, ProcessOptions(show_output=True))
        if result.exit_code != 0:
            self._raise_if_cancelled()
            kind = classify_build_failure(result.stderr + result.stdout)
            if kind != BuildFailureKind.RETRYABLE or not self._should_retry():
                raise self._build_failure(resource.name, kind, result.exit_code)

            log.warning("project_publish_retrying", reason="duplicate_output_files")
            outcome.retried = True
            result = self.runner.execute(
                DOTNET_COMMAND,
                [*args, ALLOW_DUPLICATE_OUTPUT_ARGUMENT],
                ProcessOptions(show_output=True),
            )
            if result.exit_code != 0:
                self._raise_if_cancelled()
                # The retry is spent; any failure now is fatal
                kind = classify_build_failure(result.stderr + result.stdout)
                if kind == BuildFailureKind.RETRYABLE:
                    kind = BuildFailureKind.FATAL
                raise self._build_failure(resource.name, kind, result.exit_code)

        outcome.built = True
        # The SDK publishes straight to the registry when one is configured
        outcome.pushed = bool(params.registry)
        log.info("project_publish_completed", pushed=outcome.pushed)
        return outcome

    def _build_dockerfile(
        self, resource: DockerfileResource, resolved: ResolvedResource
    ) -> BuildOutcome:
        image = self.parameters.image_for(resource.name)
        args = ["build", "--tag", image]
        build_args = {key: value.value for key, value in resolved.env.items()}
        build_args.update({key: value.value for key, value in resolved.build_args.items()})
        for key, value in build_args.items():
            args.extend(["--build-arg", f"{key}={value}"])
        args.extend(["--file", full_path(resource.path), full_path(resource.context)])

        log = logger.bind(resource=resource.name, image=image)
        log.info("docker_build_started", build_args=sorted(build_args))
        result = self.runner.execute(
            self.parameters.builder, args, ProcessOptions(show_output=True)
        )
        if result.exit_code != 0:
            self._raise_if_cancelled()
            raise self._build_failure(
                resource.name, classify_build_failure(result.stderr), result.exit_code
            )
        log.info("docker_build_completed")
        return BuildOutcome(resource.name, image, built=True)

    def _push(self, image: str) -> bool:
        registry = self.parameters.registry
        if not registry:
            return False
        log = logger.bind(image=image, registry=registry)
        log.info("image_push_started")
        result = self.runner.execute(
            self.parameters.builder, ["push", image], ProcessOptions(show_output=True)
        )
        if result.exit_code != 0:
            self._raise_if_cancelled()
            raise PushFailure(
                f"Pushing {image} failed: {result.stderr.strip()}",
                image=image,
                registry=registry,
                exit_code=result.exit_code,
            )
        log.info("image_push_completed")
        return True

    def _should_retry(self) -> bool:
        if self.parameters.non_interactive:
            return True
        return self.prompt.confirm(DUPLICATE_FILES_PROMPT)

    @staticmethod
    def _build_failure(
        resource_name: str, kind: BuildFailureKind, exit_code: int
    ) -> BuildFailure:
        if kind == BuildFailureKind.UNKNOWN_REGISTRY:
            return BuildFailure(
                f"Building '{resource_name}' failed: unknown container registry "
                "address, or container registry address not accessible",
                resource_name=resource_name,
                classification=kind,
                exit_code=UNKNOWN_REGISTRY_EXIT_CODE,
            )
        return BuildFailure(
            f"Building '{resource_name}' failed with exit code {exit_code}",
            resource_name=resource_name,
            classification=kind,
            exit_code=exit_code or 1,
        )

    def _raise_if_cancelled(self) -> None:
        if self.cancellation.cancelled:
            raise OperationCancelledError("Container build cancelled")

    # Scheduling

    def build_all(
        self,
        tiers: List[List[str]],
        resources: Dict[str, Resource],
        resolved: Dict[str, ResolvedResource],
    ) -> BuildSummary:
        """Build every resource tier by tier, concurrently within a tier.

        The first failure cancels the remaining work and is re-raised.
        """
        summary = BuildSummary()
        if not any(tiers):
            return summary

        self.check_builder_health()
        with ThreadPoolExecutor(
            max_workers=self.parameters.max_parallel_builds,
            thread_name_prefix="manifestor-build",
        ) as executor:
            for tier in tiers:
                self._raise_if_cancelled()
                futures: Dict[Future, str] = {
                    executor.submit(
                        self.build_and_push, resources[name], resolved[name]
                    ): name
                    for name in tier
                }
                done, pending = wait(futures, return_when=FIRST_EXCEPTION)
                failed = [f for f in done if f.exception() is not None]
                if failed:
                    for future in pending:
                        future.cancel()
                    self.cancellation.cancel()
                    wait(pending)
                    raise self._first_error(failed, futures)
                for future in done:
                    outcome = future.result()
                    summary.outcomes[outcome.resource_name] = outcome

        logger.info(
            "container_builds_completed",
            built=summary.images_built,
            pushed=summary.images_pushed,
        )
        return summary

    @staticmethod
    def _first_error(failed: List[Future], futures: Dict[Future, str]) -> BaseException:
        # Prefer a real failure over the cancellations it triggered
        errors = [f.exception() for f in failed]
        for error in errors:
            if not isinstance(error, OperationCancelledError):
                return error
        return errors[0]
