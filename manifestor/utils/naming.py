"""Kubernetes name sanitization.

Resource names in a manifest are free-form. Everything that becomes a
Kubernetes object name, a Service DNS label or an output directory goes
through ``k8s_name`` so the host other resources connect to is the same name
the generated Service carries.
"""

import re

MAX_NAME_LENGTH = 63

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]+")


def k8s_name(value: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Normalize ``value`` into a DNS-1123 label."""
    name = _INVALID_NAME_CHARS.sub("-", value.lower()).strip("-")
    return name[:max_length].rstrip("-") or "resource"
