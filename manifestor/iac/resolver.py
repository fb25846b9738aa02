"""Placeholder expression resolution.

The resolver is a small interpreter over ``{resource.path}`` references into
the resource graph. Each call threads an explicit stack of in-progress
``(resource, path)`` frames so that cycles are detected deterministically, and
every completed lookup is memoized for the lifetime of the run.

Supported paths:

- ``bindings.<binding>.host|port|targetPort|scheme|url``
- ``value`` and ``connectionString``
- ``env.<NAME>``, ``buildArgs.<NAME>``, ``args.<index>``
- ``inputs.<input>`` and ``inputs.<input>.value`` (parameters only)
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from ..exceptions import (
    CyclicReferenceError,
    MissingParameterError,
    UnknownPath,
    UnknownResourceReference,
)
from .expressions import PLACEHOLDER_PATTERN, ExpressionToken, split_expression
from .host_strategies import HostStrategy, ServiceNameHostStrategy
from .models import (
    Binding,
    ParameterResource,
    Resource,
    ResourceGraph,
    expression_fields,
)
from .secret_store import SecretStore, generate_secret

logger = logging.getLogger(__name__)

DEFAULT_TARGET_PORTS = {"http": 8080, "https": 8443}

Frame = Tuple[str, str]


@dataclass(frozen=True)
class ResolvedValue:
    """A fully literal value; ``secret`` is set when any part came from a secret input."""

    value: str
    secret: bool = False


@dataclass
class ResolvedResource:
    """Every expression-bearing field of one resource, resolved."""

    name: str
    fields: Dict[str, ResolvedValue] = field(default_factory=dict)

    def _section(self, prefix: str) -> Dict[str, ResolvedValue]:
        return {
            key[len(prefix) :]: value
            for key, value in self.fields.items()
            if key.startswith(prefix)
        }

    @property
    def env(self) -> Dict[str, ResolvedValue]:
        return self._section("env.")

    @property
    def build_args(self) -> Dict[str, ResolvedValue]:
        return self._section("buildArgs.")

    @property
    def args(self) -> List[str]:
        indexed = self._section("args.")
        return [indexed[key].value for key in sorted(indexed, key=int)]

    @property
    def connection_string(self) -> Optional[ResolvedValue]:
        return self.fields.get("connectionString")


def effective_target_port(binding: Binding) -> Optional[int]:
    """Container port of a binding, falling back to the scheme default."""
    if binding.target_port is not None:
        return binding.target_port
    return DEFAULT_TARGET_PORTS.get(binding.scheme)


def parameter_key(resource_name: str, input_name: str) -> str:
    """Key used for supplied and generated parameter values."""
    if input_name == "value":
        return resource_name
    return f"{resource_name}.{input_name}"


class ExpressionResolver:
    """Resolves placeholder expressions against a resource graph."""

    def __init__(
        self,
        graph: ResourceGraph,
        host_strategy: Optional[HostStrategy] = None,
        parameters: Optional[Mapping[str, str]] = None,
        secret_store: Optional[SecretStore] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            graph: Parsed resource graph
            host_strategy: Policy for ``bindings.<name>.host`` (service name by default)
            parameters: Externally supplied parameter values keyed by parameter name
            secret_store: Store for generated secrets (a fresh in-memory one by default)
        """
        self.graph = graph
        self.host_strategy = host_strategy or ServiceNameHostStrategy()
        self.parameters = dict(parameters or {})
        self.secret_store = secret_store or SecretStore()
        self._memo: Dict[Frame, ResolvedValue] = {}
        self._memo_lock = threading.Lock()

    # Public API

    def resolve_text(self, text: str, owner: Optional[str] = None) -> ResolvedValue:
        """Resolve every placeholder in ``text``.

        Args:
            text: String that may contain placeholders
            owner: Name of the resource the text belongs to (for error context)
        """
        return self._resolve_text(text, [], owner)

    def resolve_reference(self, resource_name: str, path: str) -> ResolvedValue:
        """Resolve ``{resource_name.path}``."""
        return self._resolve(resource_name, tuple(path.split(".")), [], None)

    def resolve_resource(self, resource: Resource) -> ResolvedResource:
        """Resolve every expression-bearing field of ``resource``."""
        resolved = ResolvedResource(name=resource.name)
        for field_path in expression_fields(resource):
            resolved.fields[field_path] = self._resolve(
                resource.name, tuple(field_path.split(".")), [], None
            )
        return resolved

    def resolve_all(self, order: List[str]) -> Dict[str, ResolvedResource]:
        """Resolve every resource, following ``order``."""
        results = {}
        for name in order:
            results[name] = self.resolve_resource(self.graph.resources[name])
            logger.debug(f"Resolved {len(results[name].fields)} fields of '{name}'")
        return results

    @property
    def memo_size(self) -> int:
        with self._memo_lock:
            return len(self._memo)

    # Interpreter

    def _resolve_text(
        self, text: str, stack: List[Frame], owner: Optional[str]
    ) -> ResolvedValue:
        parts = []
        secret = False
        for segment in split_expression(text):
            if isinstance(segment, ExpressionToken):
                resolved = self._resolve(
                    segment.resource_name, segment.path, stack, owner
                )
                parts.append(resolved.value)
                secret = secret or resolved.secret
            else:
                parts.append(segment)
        return ResolvedValue("".join(parts), secret)

    def _resolve_nested(
        self, text: str, stack: List[Frame], owner: str
    ) -> ResolvedValue:
        """Resolve placeholder-shaped spans inside an externally supplied literal."""
        secret = False

        def substitute(match: re.Match) -> str:
            nonlocal secret
            body = match.group(0)[1:-1].split(".")
            resolved = self._resolve(body[0], tuple(body[1:]), stack, owner)
            secret = secret or resolved.secret
            return resolved.value

        value = PLACEHOLDER_PATTERN.sub(substitute, text)
        return ResolvedValue(value, secret)

    def _resolve(
        self,
        resource_name: str,
        path: Tuple[str, ...],
        stack: List[Frame],
        referenced_by: Optional[str],
    ) -> ResolvedValue:
        frame = (resource_name, ".".join(path))
        with self._memo_lock:
            cached = self._memo.get(frame)
        if cached is not None:
            return cached

        if frame in stack:
            start = stack.index(frame)
            cycle = [f"{name}.{p}" for name, p in stack[start:]] + [
                f"{resource_name}.{frame[1]}"
            ]
            raise CyclicReferenceError(
                f"Cyclic reference while resolving {{{resource_name}.{frame[1]}}}",
                cycle=cycle,
            )

        resource = self.graph.get(resource_name)
        if resource is None:
            raise UnknownResourceReference(
                f"Placeholder references unknown resource '{resource_name}'",
                resource_name=resource_name,
                referenced_by=referenced_by or (stack[-1][0] if stack else None),
            )

        stack.append(frame)
        try:
            result = self._lookup(resource, path, stack)
        finally:
            stack.pop()

        with self._memo_lock:
            # First writer wins so concurrent resolvers agree on one value
            result = self._memo.setdefault(frame, result)
        return result

    def _lookup(
        self, resource: Resource, path: Tuple[str, ...], stack: List[Frame]
    ) -> ResolvedValue:
        head, rest = path[0], path[1:]

        if head == "bindings":
            return self._binding_value(resource, path)
        if head == "inputs":
            return self._input_value(resource, path, stack)
        if head == "value" and not rest:
            text = getattr(resource, "value", None)
            if text is None:
                text = resource.connection_string
            if text is None:
                raise self._unknown_path(resource, path, "resource has no value")
            return self._resolve_text(text, stack, resource.name)
        if head == "connectionString" and not rest:
            if resource.connection_string is None:
                raise self._unknown_path(resource, path, "resource has no connectionString")
            return self._resolve_text(resource.connection_string, stack, resource.name)
        if head in ("env", "buildArgs") and len(rest) == 1:
            section = getattr(resource, "env" if head == "env" else "build_args", {})
            if rest[0] not in section:
                raise self._unknown_path(resource, path, f"no {head} entry '{rest[0]}'")
            return self._resolve_text(section[rest[0]], stack, resource.name)
        if head == "args" and len(rest) == 1 and rest[0].isdigit():
            args = getattr(resource, "args", [])
            index = int(rest[0])
            if index >= len(args):
                raise self._unknown_path(resource, path, f"no argument at index {index}")
            return self._resolve_text(args[index], stack, resource.name)

        raise self._unknown_path(resource, path)

    def _binding_value(self, resource: Resource, path: Tuple[str, ...]) -> ResolvedValue:
        bindings: Dict[str, Binding] = getattr(resource, "bindings", {})
        if len(path) != 3:
            raise self._unknown_path(
                resource, path, "expected bindings.<name>.host|port|targetPort|scheme|url"
            )
        binding_name, attribute = path[1], path[2]
        binding = bindings.get(binding_name)
        if binding is None:
            raise self._unknown_path(resource, path, f"no binding '{binding_name}'")

        if attribute == "scheme":
            return ResolvedValue(binding.scheme)
        if attribute == "host":
            return ResolvedValue(
                self.host_strategy.host_for(resource, binding_name, binding)
            )
        if attribute in ("port", "targetPort"):
            return ResolvedValue(str(self._target_port(resource, path, binding)))
        if attribute == "url":
            host = self.host_strategy.host_for(resource, binding_name, binding)
            port = self._target_port(resource, path, binding)
            return ResolvedValue(f"{binding.scheme}://{host}:{port}")
        raise self._unknown_path(resource, path, f"unknown binding attribute '{attribute}'")

    def _target_port(
        self, resource: Resource, path: Tuple[str, ...], binding: Binding
    ) -> int:
        port = effective_target_port(binding)
        if port is None:
            raise self._unknown_path(resource, path, "binding has no targetPort")
        return port

    def _input_value(
        self, resource: Resource, path: Tuple[str, ...], stack: List[Frame]
    ) -> ResolvedValue:
        if not isinstance(resource, ParameterResource):
            raise self._unknown_path(resource, path, "only parameters declare inputs")
        if len(path) not in (2, 3) or (len(path) == 3 and path[2] != "value"):
            raise self._unknown_path(resource, path, "expected inputs.<name>.value")

        input_name = path[1]
        parameter_input = resource.inputs.get(input_name)
        if parameter_input is None:
            raise self._unknown_path(resource, path, f"no input '{input_name}'")

        key = parameter_key(resource.name, input_name)
        if key in self.parameters:
            resolved = self._resolve_nested(self.parameters[key], stack, resource.name)
            return ResolvedValue(resolved.value, parameter_input.secret or resolved.secret)

        stored = self.secret_store.get(key)
        if stored is not None:
            return ResolvedValue(stored, parameter_input.secret)

        if parameter_input.default_value is not None:
            resolved = self._resolve_nested(
                parameter_input.default_value, stack, resource.name
            )
            return ResolvedValue(resolved.value, parameter_input.secret or resolved.secret)

        policy = parameter_input.generate
        if parameter_input.secret and policy is not None:
            value = self.secret_store.get_or_generate(key, lambda: generate_secret(policy))
            return ResolvedValue(value, True)

        raise MissingParameterError(
            f"No value supplied for parameter '{key}'", parameter=key
        )

    @staticmethod
    def _unknown_path(
        resource: Resource, path: Tuple[str, ...], reason: Optional[str] = None
    ) -> UnknownPath:
        dotted = ".".join(path)
        message = f"Cannot resolve path '{dotted}' on resource '{resource.name}'"
        if reason:
            message += f": {reason}"
        return UnknownPath(message, resource_name=resource.name, path=dotted)
