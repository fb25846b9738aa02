"""Kubernetes emitter for deployment artifact generation.

This module generates the per-resource Kubernetes documents (workload,
ConfigMap, Secret, Services and kustomization) from fully resolved resources.
Documents are plain dictionaries; the renderer only serializes them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ...exceptions import UnresolvedPlaceholderError
from ...utils.naming import k8s_name
from ..expressions import find_unresolved
from ..models import (
    Binding,
    ContainerResource,
    DockerfileResource,
    ProjectResource,
    Resource,
    ResourceKind,
)
from ..resolver import ResolvedResource, effective_target_port
from . import register_emitter
from .base import ArtifactBundle, ArtifactDocument, ArtifactEmitter
from .renderer import TemplateRenderer

logger = logging.getLogger(__name__)

MANAGED_BY = "manifestor"
MANIFEST_TEMPLATE = "manifest.yaml.j2"
KUSTOMIZATION_TEMPLATE = "kustomization.yaml.j2"
MAX_PORT_NAME_LENGTH = 15


@dataclass
class GenerationSettings:
    """Cluster-facing options shared by every generated bundle."""

    namespace: Optional[str] = None
    image_pull_policy: str = "IfNotPresent"
    private_registry: bool = False
    pull_secret_name: str = "image-pull-secret"
    default_volume_size: str = "1Gi"


def default_image_namer(resource_name: str) -> str:
    return f"{resource_name.lower()}:latest"


class KubernetesEmitter(ArtifactEmitter):
    """Emitter for Kubernetes manifests with a kustomization per resource."""

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        image_namer: Optional[Callable[[str], str]] = None,
        renderer: Optional[TemplateRenderer] = None,
    ) -> None:
        """Initialize the emitter.

        Args:
            settings: Namespace, pull policy and registry options
            image_namer: Maps a buildable resource name to its image reference
            renderer: Template renderer (package templates by default)
        """
        self.settings = settings or GenerationSettings()
        super().__init__(config=vars(self.settings))
        self.image_namer = image_namer or default_image_namer
        self.renderer = renderer or TemplateRenderer()

        self._generators: Dict[
            ResourceKind, Callable[[Any, ResolvedResource], Optional[ArtifactBundle]]
        ] = {
            ResourceKind.CONTAINER: self._generate_container,
            ResourceKind.PROJECT: self._generate_built_workload,
            ResourceKind.DOCKERFILE: self._generate_built_workload,
            ResourceKind.VALUE: self._generate_nothing,
            ResourceKind.PARAMETER: self._generate_nothing,
        }

    def generate(
        self, resource: Resource, resolved: ResolvedResource
    ) -> Optional[ArtifactBundle]:
        """Build the artifact bundle for one resolved resource.

        Raises:
            UnresolvedPlaceholderError: If any document still holds a placeholder
        """
        bundle = self._generators[resource.kind](resource, resolved)
        if bundle is not None:
            self._check_no_placeholders(bundle)
            logger.debug(
                f"Generated {len(bundle.documents)} documents for '{resource.name}'"
            )
        return bundle

    def render(self, bundle: ArtifactBundle) -> ArtifactBundle:
        """Render every document of ``bundle`` into ``bundle.rendered``."""
        self._check_no_placeholders(bundle)
        for document in bundle.documents:
            template, model = self._render_model(document)
            bundle.rendered[document.file_name] = self.renderer.render(template, model)
        return bundle

    # Per-kind generation

    def _generate_nothing(self, resource: Resource, resolved: ResolvedResource) -> None:
        return None

    def _generate_container(
        self, resource: ContainerResource, resolved: ResolvedResource
    ) -> ArtifactBundle:
        return self._generate_workload(resource, resolved, resource.image)

    def _generate_built_workload(
        self,
        resource: "ProjectResource | DockerfileResource",
        resolved: ResolvedResource,
    ) -> ArtifactBundle:
        return self._generate_workload(
            resource, resolved, self.image_namer(resource.name)
        )

    def _generate_workload(
        self, resource: Resource, resolved: ResolvedResource, image: str
    ) -> ArtifactBundle:
        name = k8s_name(resource.name)
        bundle = ArtifactBundle(resource_name=resource.name)

        config_data = {
            key: value.value for key, value in resolved.env.items() if not value.secret
        }
        secret_data = {
            key: value.value for key, value in resolved.env.items() if value.secret
        }
        ports = self._ports(resource)

        workload = self._workload(resource, resolved, name, image, ports, config_data, secret_data)
        bundle.documents.append(workload)
        if config_data:
            bundle.documents.append(self._config_map(name, config_data))
        if secret_data:
            bundle.documents.append(self._secret(name, secret_data))
        if ports:
            bundle.documents.append(
                self._service(name, "service.yaml", name, "ClusterIP", ports)
            )
        for binding_name, port in ports:
            if port["external"]:
                service_name = k8s_name(f"{resource.name}-{binding_name}")
                bundle.documents.append(
                    self._service(
                        name,
                        f"service-{k8s_name(binding_name)}.yaml",
                        service_name,
                        "LoadBalancer",
                        [(binding_name, port)],
                    )
                )

        bundle.documents.append(self._kustomization(bundle.file_names))
        return bundle

    # Documents

    def _metadata(self, name: str, app: str) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": name}
        if self.settings.namespace:
            metadata["namespace"] = self.settings.namespace
        metadata["labels"] = {
            "app.kubernetes.io/name": app,
            "app.kubernetes.io/managed-by": MANAGED_BY,
        }
        return metadata

    def _ports(self, resource: Resource) -> List[Tuple[str, Dict[str, Any]]]:
        bindings: Dict[str, Binding] = getattr(resource, "bindings", {})
        ports = []
        for binding_name, binding in bindings.items():
            target_port = effective_target_port(binding)
            if target_port is None:
                target_port = binding.port
            if target_port is None:
                logger.warning(
                    f"Binding '{binding_name}' of '{resource.name}' has no port, skipping"
                )
                continue
            ports.append(
                (
                    binding_name,
                    {
                        "name": k8s_name(binding_name, MAX_PORT_NAME_LENGTH),
                        "port": binding.port or target_port,
                        "target_port": target_port,
                        "protocol": "UDP" if binding.protocol.lower() == "udp" else "TCP",
                        "external": binding.external,
                    },
                )
            )
        return ports

    def _workload(
        self,
        resource: Resource,
        resolved: ResolvedResource,
        name: str,
        image: str,
        ports: List[Tuple[str, Dict[str, Any]]],
        config_data: Dict[str, str],
        secret_data: Dict[str, str],
    ) -> ArtifactDocument:
        volumes = getattr(resource, "volumes", [])
        bind_mounts = getattr(resource, "bind_mounts", [])
        stateful = bool(volumes)

        container: Dict[str, Any] = {
            "name": name,
            "image": image,
            "imagePullPolicy": self.settings.image_pull_policy,
        }
        entrypoint = getattr(resource, "entrypoint", None)
        if entrypoint:
            container["command"] = [entrypoint]
        if resolved.args:
            container["args"] = resolved.args
        if ports:
            container["ports"] = [
                {
                    "name": port["name"],
                    "containerPort": port["target_port"],
                    "protocol": port["protocol"],
                }
                for _, port in ports
            ]
        env_from = []
        if config_data:
            env_from.append({"configMapRef": {"name": f"{name}-env"}})
        if secret_data:
            env_from.append({"secretRef": {"name": f"{name}-secrets"}})
        if env_from:
            container["envFrom"] = env_from

        mounts = [
            {
                "name": k8s_name(volume.name),
                "mountPath": volume.target,
                "readOnly": volume.read_only,
            }
            for volume in volumes
        ]
        pod_volumes = []
        for index, bind_mount in enumerate(bind_mounts):
            volume_name = f"bind-mount-{index}"
            mounts.append(
                {
                    "name": volume_name,
                    "mountPath": bind_mount.target,
                    "readOnly": bind_mount.read_only,
                }
            )
            pod_volumes.append({"name": volume_name, "hostPath": {"path": bind_mount.source}})
        if mounts:
            container["volumeMounts"] = mounts

        pod_spec: Dict[str, Any] = {"containers": [container]}
        if pod_volumes:
            pod_spec["volumes"] = pod_volumes
        if self.settings.private_registry:
            pod_spec["imagePullSecrets"] = [{"name": self.settings.pull_secret_name}]

        selector = {"app.kubernetes.io/name": name}
        spec: Dict[str, Any] = {"replicas": 1, "selector": {"matchLabels": selector}}
        if stateful:
            spec["serviceName"] = name
        spec["template"] = {
            "metadata": {"labels": dict(selector)},
            "spec": pod_spec,
        }
        if stateful:
            spec["volumeClaimTemplates"] = [
                {
                    "metadata": {"name": k8s_name(volume.name)},
                    "spec": {
                        "accessModes": ["ReadWriteOnce"],
                        "resources": {
                            "requests": {
                                "storage": volume.size or self.settings.default_volume_size
                            }
                        },
                    },
                }
                for volume in volumes
            ]

        kind = "StatefulSet" if stateful else "Deployment"
        return ArtifactDocument(
            file_name=f"{kind.lower()}.yaml",
            kind=kind,
            body={
                "apiVersion": "apps/v1",
                "kind": kind,
                "metadata": self._metadata(name, name),
                "spec": spec,
            },
        )

    def _config_map(self, name: str, data: Dict[str, str]) -> ArtifactDocument:
        return ArtifactDocument(
            file_name="config-map.yaml",
            kind="ConfigMap",
            body={
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "metadata": self._metadata(f"{name}-env", name),
                "data": data,
            },
        )

    def _secret(self, name: str, data: Dict[str, str]) -> ArtifactDocument:
        return ArtifactDocument(
            file_name="secret.yaml",
            kind="Secret",
            body={
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": self._metadata(f"{name}-secrets", name),
                "type": "Opaque",
                "stringData": data,
            },
        )

    def _service(
        self,
        app: str,
        file_name: str,
        service_name: str,
        service_type: str,
        ports: List[Tuple[str, Dict[str, Any]]],
    ) -> ArtifactDocument:
        return ArtifactDocument(
            file_name=file_name,
            kind="Service",
            body={
                "apiVersion": "v1",
                "kind": "Service",
                "metadata": self._metadata(service_name, app),
                "spec": {
                    "type": service_type,
                    "selector": {"app.kubernetes.io/name": app},
                    "ports": [
                        {
                            "name": port["name"],
                            "port": port["port"],
                            "targetPort": port["target_port"],
                            "protocol": port["protocol"],
                        }
                        for _, port in ports
                    ],
                },
            },
        )

    def _kustomization(self, file_names: List[str]) -> ArtifactDocument:
        body: Dict[str, Any] = {
            "apiVersion": "kustomize.config.k8s.io/v1beta1",
            "kind": "Kustomization",
        }
        if self.settings.namespace:
            body["namespace"] = self.settings.namespace
        body["resources"] = list(file_names)
        return ArtifactDocument(
            file_name="kustomization.yaml", kind="Kustomization", body=body
        )

    # Rendering

    @staticmethod
    def _render_model(document: ArtifactDocument) -> Tuple[str, Dict[str, Any]]:
        if document.kind == "Kustomization":
            return KUSTOMIZATION_TEMPLATE, {
                "has_namespace": "namespace" in document.body,
                "namespace": document.body.get("namespace", ""),
                "resources": document.body["resources"],
            }
        return MANIFEST_TEMPLATE, {"document": document.body}

    def _check_no_placeholders(self, bundle: ArtifactBundle) -> None:
        leaked = sorted(
            {
                placeholder
                for document in bundle.documents
                for text in _strings(document.body)
                for placeholder in find_unresolved(text)
            }
        )
        if leaked:
            raise UnresolvedPlaceholderError(
                f"Unresolved placeholders in artifacts for '{bundle.resource_name}': "
                f"{', '.join(leaked)}",
                resource_name=bundle.resource_name,
                placeholders=leaked,
            )


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _strings(key)
            yield from _strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _strings(item)


register_emitter("kubernetes", KubernetesEmitter)
