"""
Conversion context shared by every converter and the renderer.
"""

import argparse
import os
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from .types import Globals, Install, QuadletFile, Resource, Service, Unit
from .versions import LATEST, PodmanVersion

SPLITTABLE_KEYS = frozenset({
    "AddCapability",
    "DropCapability",
    "Annotation",
    "Environment",
    "Label",
    "Sysctl",
    "Wants",
    "Requires",
    "BindsTo",
    "Before",
    "After",
    "WantedBy",
    "RequiredBy",
})


def parse_split_options(values: Iterable[str]) -> FrozenSet[str]:
    """Parse comma separated key names given to ``--split-options``."""
    keys = set()
    for value in values:
        for key in value.split(","):
            key = key.strip()
            if not key:
                continue
            if key not in SPLITTABLE_KEYS:
                allowed = ", ".join(sorted(SPLITTABLE_KEYS))
                raise ValueError(f"'{key}' cannot be split (splittable keys: {allowed})")
            keys.add(key)
    return frozenset(keys)


@dataclass(frozen=True)
class ConversionContext:
    """Settings for one podlet invocation."""
    podman_version: PodmanVersion = LATEST
    split_options: FrozenSet[str] = frozenset()
    resolve_dir: Optional[str] = None
    pod: bool = False
    kube: bool = False
    unit: Unit = field(default_factory=Unit)
    install: Optional[Install] = None

    def __post_init__(self):
        if self.pod and self.kube:
            raise ValueError("pod and kube grouping are mutually exclusive")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ConversionContext":
        """Build a context from parsed command line options."""
        resolve_dir = None
        absolute = getattr(args, "absolute_host_paths", None)
        if absolute is not None:
            resolve_dir = absolute or os.getcwd()

        install = None
        wanted_by = list(getattr(args, "wanted_by", None) or [])
        required_by = list(getattr(args, "required_by", None) or [])
        if getattr(args, "install", False) or wanted_by or required_by:
            install = Install(wanted_by=wanted_by, required_by=required_by)
            if not wanted_by and not required_by:
                install = Install.default()

        unit = Unit(
            description=getattr(args, "description", None),
            wants=list(getattr(args, "wants", None) or []),
            requires=list(getattr(args, "requires", None) or []),
            binds_to=list(getattr(args, "binds_to", None) or []),
            before=list(getattr(args, "before", None) or []),
            after=list(getattr(args, "after", None) or []),
        )

        return cls(
            podman_version=getattr(args, "podman_version", None) or LATEST,
            split_options=parse_split_options(getattr(args, "split_options", None) or []),
            resolve_dir=resolve_dir,
            pod=getattr(args, "pod", False),
            kube=getattr(args, "kube", False),
            unit=unit,
            install=install,
        )

    def new_file(
        self,
        name: str,
        resource: Resource,
        unit: Optional[Unit] = None,
        service: Optional[Service] = None,
        globals: Optional[Globals] = None,
    ) -> QuadletFile:
        """Create a quadlet file carrying the common sections of this run."""
        return QuadletFile(
            name=name,
            resource=resource,
            unit=self.unit.merge(unit) if unit else self.unit,
            globals=globals or Globals(),
            service=service or Service(),
            install=self.install or Install(),
        )
