"""Dependency checks run before installation."""

import shutil
from dataclasses import dataclass, field
from importlib import metadata
from typing import Dict, Optional

from packaging.requirements import InvalidRequirement, Requirement

from deploykit.models import DependencyStatus

DEFAULT_INSTRUCTIONS = {
    "pip": "Run: python -m ensurepip --upgrade\nOr install your distribution's python3-pip package.",
}


@dataclass
class PythonPackageDependency:
    """A distribution that must be importable by the current interpreter."""

    requirement: Requirement
    install_instructions: str = ""

    @property
    def name(self) -> str:
        return str(self.requirement)

    def check(self) -> DependencyStatus:
        try:
            installed = metadata.version(self.requirement.name)
        except metadata.PackageNotFoundError:
            return DependencyStatus(found=False)

        if self.requirement.specifier and not self.requirement.specifier.contains(
            installed, prereleases=True
        ):
            return DependencyStatus(
                found=False,
                detail=f"found version {installed}, but {self.requirement.specifier} is required",
            )
        return DependencyStatus(found=True, detail=f"version {installed}")


@dataclass
class ExecutableDependency:
    """A command that must be reachable through PATH."""

    name: str
    executable: str
    install_instructions: str = ""

    def check(self) -> DependencyStatus:
        path = shutil.which(self.executable)
        if path:
            return DependencyStatus(found=True, detail=f"found at {path}")
        return DependencyStatus(found=False)


@dataclass
class DependencyRegistry:
    """Maps dependency declarations to checks.

    Registered checks win. Otherwise a declaration such as
    ``"pip >= 21.0"`` is checked as an installed Python distribution.
    """

    checks: Dict[str, object] = field(default_factory=dict)
    instructions: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_INSTRUCTIONS))

    def register(self, declaration: str, check):
        self.checks[declaration] = check

    def find(self, declaration: str) -> Optional[object]:
        if declaration in self.checks:
            return self.checks[declaration]
        try:
            requirement = Requirement(declaration)
        except InvalidRequirement:
            return None

        instructions = self.instructions.get(
            requirement.name,
            f"Run: python -m pip install '{requirement}'",
        )
        return PythonPackageDependency(requirement=requirement, install_instructions=instructions)
