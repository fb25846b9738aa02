"""
Custom Exception Hierarchy for Manifestor

This module provides the exception hierarchy shared by the parser, the
expression resolver, the artifact generator and the container build
coordinator. Every error carries structured context and the process exit code
the CLI should terminate with.
"""

from typing import Any, Dict, List, Optional


class ManifestorError(Exception):
    """
    Base exception class for all Manifestor errors.

    Provides structured error information including context, error codes,
    optional recovery suggestions and the process exit code to report.
    """

    default_exit_code = 1

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
        exit_code: Optional[int] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
            exit_code: Optional process exit code (defaults per class)
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion
        self.exit_code = exit_code if exit_code is not None else self.default_exit_code

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
            "exit_code": self.exit_code,
        }


# Manifest parsing
class ParseError(ManifestorError):
    """Raised when the manifest is malformed or a resource is invalid."""

    def __init__(
        self, message: str, resource_name: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if resource_name:
            context["resource"] = resource_name
        kwargs["context"] = context
        kwargs.setdefault("error_code", "MANIFEST_PARSE_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check the manifest against the supported resource types",
        )
        super().__init__(message, **kwargs)


# Expression resolution
class ResolutionError(ManifestorError):
    """Base class for placeholder expression resolution errors."""

    pass


class MalformedExpression(ResolutionError):
    """Raised for unbalanced braces, empty tokens or tokens without a path."""

    def __init__(
        self, message: str, expression: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if expression is not None:
            context["expression"] = expression
        kwargs["context"] = context
        kwargs.setdefault("error_code", "MALFORMED_EXPRESSION")
        super().__init__(message, **kwargs)


class UnknownResourceReference(ResolutionError):
    """Raised when an expression names a resource missing from the graph."""

    def __init__(
        self,
        message: str,
        resource_name: Optional[str] = None,
        referenced_by: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if resource_name:
            context["resource"] = resource_name
        if referenced_by:
            context["referenced_by"] = referenced_by
        kwargs["context"] = context
        kwargs.setdefault("error_code", "UNKNOWN_RESOURCE")
        super().__init__(message, **kwargs)
        self.resource_name = resource_name


class UnknownPath(ResolutionError):
    """Raised when an expression path does not exist on the resource."""

    def __init__(
        self,
        message: str,
        resource_name: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if resource_name:
            context["resource"] = resource_name
        if path:
            context["path"] = path
        kwargs["context"] = context
        kwargs.setdefault("error_code", "UNKNOWN_PATH")
        super().__init__(message, **kwargs)


class CyclicReferenceError(ResolutionError):
    """Raised when expressions reference each other in a cycle."""

    def __init__(
        self, message: str, cycle: Optional[List[str]] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if cycle:
            context["cycle"] = " -> ".join(cycle)
        kwargs["context"] = context
        kwargs.setdefault("error_code", "CYCLIC_REFERENCE")
        kwargs.setdefault(
            "recovery_suggestion",
            "Break the cycle so that no resource transitively references itself",
        )
        super().__init__(message, **kwargs)
        self.cycle = cycle or []


class MissingParameterError(ResolutionError):
    """Raised when a parameter input has no supplied, default or generated value."""

    def __init__(
        self, message: str, parameter: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if parameter:
            context["parameter"] = parameter
        kwargs["context"] = context
        kwargs.setdefault("error_code", "MISSING_PARAMETER")
        kwargs.setdefault(
            "recovery_suggestion",
            f"Supply a value with --parameter {parameter}=<value>"
            if parameter
            else "Supply a value with --parameter",
        )
        super().__init__(message, **kwargs)


# Artifact generation
class UnresolvedPlaceholderError(ManifestorError):
    """Raised when a placeholder survives until render time."""

    def __init__(
        self,
        message: str,
        resource_name: Optional[str] = None,
        placeholders: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if resource_name:
            context["resource"] = resource_name
        if placeholders:
            context["placeholders"] = placeholders
        kwargs["context"] = context
        kwargs.setdefault("error_code", "UNRESOLVED_PLACEHOLDER")
        super().__init__(message, **kwargs)


# Container builds
class ContainerBuildError(ManifestorError):
    """Base class for container builder errors."""

    pass


class BuilderUnavailableError(ContainerBuildError):
    """Raised when the container builder binary cannot be found."""

    def __init__(self, message: str, builder: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if builder:
            context["builder"] = builder
        kwargs["context"] = context
        kwargs.setdefault("error_code", "BUILDER_UNAVAILABLE")
        kwargs.setdefault(
            "recovery_suggestion",
            "Install docker or podman and make sure it is on PATH",
        )
        super().__init__(message, **kwargs)


class DaemonError(ContainerBuildError):
    """Raised when the builder daemon reports server errors."""

    def __init__(
        self,
        message: str,
        builder: Optional[str] = None,
        server_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if builder:
            context["builder"] = builder
        kwargs["context"] = context
        kwargs.setdefault("error_code", "BUILDER_DAEMON_ERROR")
        kwargs.setdefault(
            "recovery_suggestion", "Check that the container daemon is running"
        )
        super().__init__(message, **kwargs)
        self.server_errors = server_errors or []


class BuildFailure(ContainerBuildError):
    """Raised when a container build or publish step fails."""

    def __init__(
        self,
        message: str,
        resource_name: Optional[str] = None,
        classification: Optional[Any] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if resource_name:
            context["resource"] = resource_name
        if classification is not None:
            context["classification"] = getattr(classification, "value", classification)
        kwargs["context"] = context
        kwargs.setdefault("error_code", "BUILD_FAILED")
        super().__init__(message, **kwargs)
        self.classification = classification


class PushFailure(ContainerBuildError):
    """Raised when pushing an image to the registry fails."""

    def __init__(
        self,
        message: str,
        image: Optional[str] = None,
        registry: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if image:
            context["image"] = image
        if registry:
            context["registry"] = registry
        kwargs["context"] = context
        kwargs.setdefault("error_code", "PUSH_FAILED")
        super().__init__(message, **kwargs)


# Cancellation
class OperationCancelledError(ManifestorError):
    """Raised when the pipeline is cancelled while work is outstanding."""

    default_exit_code = 130

    def __init__(self, message: str = "Operation cancelled", **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "CANCELLED")
        super().__init__(message, **kwargs)


# Configuration
class ConfigurationError(ManifestorError):
    """Raised when configuration validation fails."""

    def __init__(
        self, message: str, config_section: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if config_section:
            context["config_section"] = config_section
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_CONFIG")
        kwargs.setdefault(
            "recovery_suggestion", "Check CLI options and MANIFESTOR_* environment variables"
        )
        super().__init__(message, **kwargs)
