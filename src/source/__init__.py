"""Package sources: where metadata and content come from."""

from .base import PackageSource, PublishedVersion, parse_index
from .memory import InMemoryPackageSource
from .http import HttpPackageSource

__all__ = [
    "PackageSource",
    "PublishedVersion",
    "parse_index",
    "InMemoryPackageSource",
    "HttpPackageSource",
]
