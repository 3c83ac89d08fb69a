"""Installation outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from constants import ExitCodes


class InstallStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class PackageOutcome:
    """Result of one package pipeline.

    ``cancelled`` marks failures caused by fail-fast rather than by the
    package itself.
    """
    name: str
    version: str
    status: InstallStatus
    reason: str = ""
    cancelled: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status == InstallStatus.SUCCESS

    def __str__(self) -> str:
        if self.ok:
            return f"{self.name}@{self.version}: installed"
        return f"{self.name}@{self.version}: failed ({self.reason})"


@dataclass
class InstallReport:
    """Per-package outcomes keyed by name."""
    outcomes: Dict[str, PackageOutcome] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[PackageOutcome]:
        return [o for _, o in sorted(self.outcomes.items()) if o.ok]

    @property
    def failed(self) -> List[PackageOutcome]:
        return [o for _, o in sorted(self.outcomes.items()) if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> ExitCodes:
        return ExitCodes.SUCCESS if self.ok else ExitCodes.INSTALL_FAILED

    def __getitem__(self, name: str) -> PackageOutcome:
        return self.outcomes[name]

    def __len__(self) -> int:
        return len(self.outcomes)
