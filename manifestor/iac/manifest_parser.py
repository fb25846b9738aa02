"""Manifest parsing for IaC generation.

This module decodes a JSON or YAML application manifest into a
``ResourceGraph``. Parsing is a pure transform: the only failure mode is
``ParseError``.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..exceptions import ParseError
from .models import (
    BindMount,
    Binding,
    ContainerResource,
    DockerfileResource,
    GeneratePolicy,
    ParameterInput,
    ParameterResource,
    ProjectResource,
    Resource,
    ResourceGraph,
    ResourceKind,
    ValueResource,
    Volume,
)

logger = logging.getLogger(__name__)


def _require_str(name: str, data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        raise ParseError(f"Resource '{name}' is missing required field '{key}'", name)
    if not isinstance(value, str):
        raise ParseError(f"Field '{key}' of resource '{name}' must be a string", name)
    return value


def _optional_str(name: str, data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"Field '{key}' of resource '{name}' must be a string", name)
    return value


def _mapping(name: str, data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ParseError(f"Field '{key}' of resource '{name}' must be a mapping", name)
    return dict(value)


def _string_map(name: str, data: Mapping[str, Any], key: str) -> Dict[str, str]:
    result = {}
    for entry, value in _mapping(name, data, key).items():
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ParseError(
                f"Entry '{entry}' of '{key}' on resource '{name}' must be a string",
                name,
            )
        result[str(entry)] = str(value)
    return result


def _string_list(name: str, data: Mapping[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ParseError(
            f"Field '{key}' of resource '{name}' must be a list of strings", name
        )
    return list(value)


def _port(name: str, binding_name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 < value < 65536:
        raise ParseError(
            f"Binding '{binding_name}' of resource '{name}' has an invalid port: {value!r}",
            name,
        )
    return value


def _parse_bindings(name: str, data: Mapping[str, Any]) -> Dict[str, Binding]:
    bindings = {}
    for binding_name, raw in _mapping(name, data, "bindings").items():
        if not isinstance(raw, Mapping):
            raise ParseError(
                f"Binding '{binding_name}' of resource '{name}' must be a mapping", name
            )
        scheme = raw.get("scheme")
        if not isinstance(scheme, str) or not scheme:
            raise ParseError(
                f"Binding '{binding_name}' of resource '{name}' requires a scheme", name
            )
        bindings[binding_name] = Binding(
            scheme=scheme,
            protocol=raw.get("protocol", "tcp"),
            transport=raw.get("transport", scheme),
            target_port=_port(name, binding_name, raw.get("targetPort")),
            port=_port(name, binding_name, raw.get("port")),
            external=bool(raw.get("external", False)),
        )
    return bindings


def _parse_volumes(name: str, data: Mapping[str, Any]) -> List[Volume]:
    raw_volumes = data.get("volumes") or []
    if not isinstance(raw_volumes, list):
        raise ParseError(f"Field 'volumes' of resource '{name}' must be a list", name)
    volumes = []
    for raw in raw_volumes:
        if not isinstance(raw, Mapping):
            raise ParseError(f"Volumes of resource '{name}' must be mappings", name)
        volumes.append(
            Volume(
                name=_require_str(name, raw, "name"),
                target=_require_str(name, raw, "target"),
                read_only=bool(raw.get("readOnly", False)),
                size=_optional_str(name, raw, "size"),
            )
        )
    return volumes


def _parse_bind_mounts(name: str, data: Mapping[str, Any]) -> List[BindMount]:
    raw_mounts = data.get("bindMounts") or []
    if not isinstance(raw_mounts, list):
        raise ParseError(f"Field 'bindMounts' of resource '{name}' must be a list", name)
    mounts = []
    for raw in raw_mounts:
        if not isinstance(raw, Mapping):
            raise ParseError(f"Bind mounts of resource '{name}' must be mappings", name)
        mounts.append(
            BindMount(
                source=_require_str(name, raw, "source"),
                target=_require_str(name, raw, "target"),
                read_only=bool(raw.get("readOnly", False)),
            )
        )
    return mounts


def _parse_inputs(name: str, data: Mapping[str, Any]) -> Dict[str, ParameterInput]:
    inputs = {}
    for input_name, raw in _mapping(name, data, "inputs").items():
        if not isinstance(raw, Mapping):
            raise ParseError(
                f"Input '{input_name}' of resource '{name}' must be a mapping", name
            )
        default = raw.get("default") or {}
        if not isinstance(default, Mapping):
            raise ParseError(
                f"Default of input '{input_name}' on resource '{name}' must be a mapping",
                name,
            )
        generate = None
        raw_generate = default.get("generate")
        if raw_generate is not None:
            min_length = raw_generate.get("minLength") if isinstance(raw_generate, Mapping) else None
            if isinstance(min_length, bool) or not isinstance(min_length, int) or min_length < 1:
                raise ParseError(
                    f"Input '{input_name}' of resource '{name}' needs a positive "
                    "default.generate.minLength",
                    name,
                )
            generate = GeneratePolicy(
                min_length=min_length,
                lower=bool(raw_generate.get("lower", True)),
                upper=bool(raw_generate.get("upper", True)),
                numeric=bool(raw_generate.get("numeric", True)),
                special=bool(raw_generate.get("special", True)),
            )
        default_value = default.get("value")
        inputs[input_name] = ParameterInput(
            type=raw.get("type", "string"),
            secret=bool(raw.get("secret", False)),
            default_value=None if default_value is None else str(default_value),
            generate=generate,
        )
    return inputs


def _parse_container(name: str, data: Mapping[str, Any]) -> ContainerResource:
    return ContainerResource(
        name=name,
        image=_require_str(name, data, "image"),
        env=_string_map(name, data, "env"),
        bindings=_parse_bindings(name, data),
        volumes=_parse_volumes(name, data),
        bind_mounts=_parse_bind_mounts(name, data),
        args=_string_list(name, data, "args"),
        entrypoint=_optional_str(name, data, "entrypoint"),
        connection_string=_optional_str(name, data, "connectionString"),
    )


def _parse_project(name: str, data: Mapping[str, Any]) -> ProjectResource:
    return ProjectResource(
        name=name,
        path=_require_str(name, data, "path"),
        env=_string_map(name, data, "env"),
        bindings=_parse_bindings(name, data),
        connection_string=_optional_str(name, data, "connectionString"),
    )


def _parse_dockerfile(name: str, data: Mapping[str, Any]) -> DockerfileResource:
    return DockerfileResource(
        name=name,
        path=_require_str(name, data, "path"),
        context=_require_str(name, data, "context"),
        env=_string_map(name, data, "env"),
        build_args=_string_map(name, data, "buildArgs"),
        bindings=_parse_bindings(name, data),
        connection_string=_optional_str(name, data, "connectionString"),
    )


def _parse_value(name: str, data: Mapping[str, Any]) -> ValueResource:
    value = _optional_str(name, data, "value")
    connection_string = _optional_str(name, data, "connectionString")
    if value is None and connection_string is None:
        raise ParseError(
            f"Resource '{name}' requires either 'value' or 'connectionString'", name
        )
    return ValueResource(name=name, value=value, connection_string=connection_string)


def _parse_parameter(name: str, data: Mapping[str, Any]) -> ParameterResource:
    return ParameterResource(
        name=name,
        value=_require_str(name, data, "value"),
        inputs=_parse_inputs(name, data),
        connection_string=_optional_str(name, data, "connectionString"),
    )


_PARSERS: Dict[ResourceKind, Callable[[str, Mapping[str, Any]], Resource]] = {
    ResourceKind.CONTAINER: _parse_container,
    ResourceKind.PROJECT: _parse_project,
    ResourceKind.DOCKERFILE: _parse_dockerfile,
    ResourceKind.VALUE: _parse_value,
    ResourceKind.PARAMETER: _parse_parameter,
}


def parse_manifest(text: str) -> ResourceGraph:
    """Parse manifest text into a resource graph.

    Args:
        text: JSON or YAML manifest document

    Returns:
        ResourceGraph preserving manifest order

    Raises:
        ParseError: If the document is malformed or a resource is invalid
    """
    yaml = YAML(typ="safe")
    try:
        document = yaml.load(text)
    except YAMLError as e:
        raise ParseError(f"Manifest is not well-formed: {e}", cause=e) from e

    if not isinstance(document, Mapping):
        raise ParseError("Manifest must be a mapping with a 'resources' key")
    raw_resources = document.get("resources")
    if not isinstance(raw_resources, Mapping):
        raise ParseError("Manifest 'resources' must be a mapping of name to resource")

    graph = ResourceGraph()
    for name, data in raw_resources.items():
        if not isinstance(name, str) or not name:
            raise ParseError(f"Resource names must be non-empty strings: {name!r}")
        if not isinstance(data, Mapping):
            raise ParseError(f"Resource '{name}' must be a mapping", name)

        type_tag = data.get("type")
        try:
            kind = ResourceKind(type_tag)
        except ValueError:
            raise ParseError(
                f"Resource '{name}' has unrecognized type {type_tag!r}. "
                f"Supported types: {[k.value for k in ResourceKind]}",
                name,
            ) from None

        graph.resources[name] = _PARSERS[kind](name, data)

    logger.info(f"Parsed manifest with {len(graph)} resources")
    return graph


def parse_manifest_file(path: Path | str) -> ResourceGraph:
    """Read and parse a manifest file."""
    manifest_path = Path(path)
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Cannot read manifest {manifest_path}: {e}", cause=e) from e
    logger.debug(f"Loaded manifest from {manifest_path}")
    return parse_manifest(text)
