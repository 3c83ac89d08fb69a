"""Dependency resolution: edges in, one selected version per package out."""

from .cache import MetadataCache
from .models import (
    Conflict,
    DependencyEdge,
    PackageId,
    ResolutionGraph,
    ResolverOptions,
)
from .resolver import Resolver, resolve

__all__ = [
    "MetadataCache",
    "Conflict",
    "DependencyEdge",
    "PackageId",
    "ResolutionGraph",
    "ResolverOptions",
    "Resolver",
    "resolve",
]
