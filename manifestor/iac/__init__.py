"""Manifest to Kubernetes artifact compilation.

This package turns a deployment manifest into per-resource Kubernetes
documents: parsing, dependency ordering, placeholder resolution, optional
container image builds and artifact emission.
"""
