"""Concurrent installation of locked packages."""

from .models import InstallReport, InstallStatus, PackageOutcome
from .locking import ProjectLock
from .extract import detect_format, installed_packages, place_package, read_installed_content, remove_package
from .scheduler import InstallScheduler, install

__all__ = [
    "InstallReport",
    "InstallStatus",
    "PackageOutcome",
    "ProjectLock",
    "detect_format",
    "installed_packages",
    "place_package",
    "read_installed_content",
    "remove_package",
    "InstallScheduler",
    "install",
]
