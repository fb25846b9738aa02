"""
Manifestor

Compiles a declarative application manifest into Kubernetes deployment
artifacts and coordinates building and pushing the container images those
artifacts reference.
"""

__version__ = "0.1.0"
