"""
Podman version table.

Each known podman version maps to the quadlet keys (and key values) it
introduced. Identifiers look like ``Container.Entrypoint`` for a key or
``Container.Notify=healthy`` for a specific value of a key; a bare kind
name such as ``Image`` marks the introduction of the file type itself.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, FrozenSet


class PodmanVersion(str, Enum):
    """Podman versions podlet can target."""
    V4_4 = "4.4"
    V4_5 = "4.5"
    V4_6 = "4.6"
    V4_7 = "4.7"
    V4_8 = "4.8"
    V5_0 = "5.0"
    V5_1 = "5.1"
    V5_2 = "5.2"
    V5_3 = "5.3"

    @property
    def key(self) -> tuple:
        major, minor = self.value.split(".")
        return (int(major), int(minor))

    def __lt__(self, other: "PodmanVersion") -> bool:
        return self.key < other.key

    def __le__(self, other: "PodmanVersion") -> bool:
        return self.key <= other.key

    def __gt__(self, other: "PodmanVersion") -> bool:
        return self.key > other.key

    def __ge__(self, other: "PodmanVersion") -> bool:
        return self.key >= other.key

    @classmethod
    def parse(cls, value: str) -> "PodmanVersion":
        """Parse ``5.0``, ``5.0.1`` or ``v5.0`` into a known version."""
        text = value.strip().lstrip("v")
        parts = text.split(".")
        if len(parts) >= 2:
            text = f"{parts[0]}.{parts[1]}"
        for version in cls:
            if version.value == text:
                return version
        known = ", ".join(v.value for v in cls)
        raise ValueError(f"unknown podman version '{value}' (known: {known})")

    def __str__(self) -> str:
        return self.value


LATEST = PodmanVersion.V5_3


_CONTAINER_BASE = (
    "AddCapability", "AddDevice", "Annotation", "ContainerName",
    "DropCapability", "Environment", "EnvironmentFile", "EnvironmentHost",
    "Exec", "ExposeHostPort", "Group", "HealthCmd", "Image", "Label",
    "Network", "NoNewPrivileges", "Notify", "PodmanArgs", "PublishPort",
    "ReadOnly", "RunInit", "SeccompProfile", "SecurityLabelDisable",
    "SecurityLabelFileType", "SecurityLabelLevel", "SecurityLabelType",
    "Timezone", "User", "Volume",
)

_KUBE_BASE = ("ConfigMap", "Network", "PublishPort", "UserNS", "Yaml")

_NETWORK_BASE = (
    "DisableDNS", "DNS", "Driver", "Gateway", "Internal", "IPAMDriver",
    "IPRange", "IPv6", "Label", "Options", "PodmanArgs", "Subnet",
)

_VOLUME_BASE = (
    "Copy", "Device", "Group", "Label", "Options", "PodmanArgs", "Type", "User",
)

_POD_BASE = ("Network", "PodmanArgs", "PodName", "PublishPort", "Volume")

_IMAGE_BASE = (
    "AllTags", "Arch", "AuthFile", "CertDir", "Creds", "DecryptionKey",
    "Image", "ImageTag", "OS", "PodmanArgs", "TLSVerify", "Variant",
)

_BUILD_BASE = (
    "Annotation", "Arch", "AuthFile", "DNS", "DNSOption", "DNSSearch",
    "Environment", "File", "ForceRM", "GroupAdd", "ImageTag", "Label",
    "Network", "PodmanArgs", "Pull", "Secret", "SetWorkingDirectory",
    "Target", "TLSVerify", "Variant", "Volume",
)


def _ids(kind: str, keys) -> FrozenSet[str]:
    return frozenset(f"{kind}.{key}" for key in keys)


VERSION_TABLE: Mapping[PodmanVersion, FrozenSet[str]] = MappingProxyType({
    PodmanVersion.V4_4: (
        frozenset({"Container", "Kube", "Network", "Volume"})
        | _ids("Container", _CONTAINER_BASE)
        | _ids("Kube", _KUBE_BASE)
        | _ids("Network", _NETWORK_BASE)
        | _ids("Volume", _VOLUME_BASE)
    ),
    PodmanVersion.V4_5: (
        _ids("Container", (
            "Rootfs", "Secret", "LogDriver", "Mount", "IP", "IP6",
            "HealthInterval", "HealthOnFailure", "HealthRetries",
            "HealthStartPeriod", "HealthStartupCmd", "HealthStartupInterval",
            "HealthStartupRetries", "HealthStartupSuccess",
            "HealthStartupTimeout", "HealthTimeout", "Tmpfs", "UserNS",
        ))
        | _ids("Kube", ("LogDriver",))
    ),
    PodmanVersion.V4_6: (
        _ids("Container", (
            "AutoUpdate", "SecurityLabelNested", "Mask", "Unmask", "Sysctl",
            "HostName", "Pull", "WorkingDir",
        ))
        | _ids("Kube", ("PodmanArgs",))
    ),
    PodmanVersion.V4_7: (
        _ids("Container", (
            "DNS", "DNSOption", "DNSSearch", "PidsLimit", "ShmSize", "Ulimit",
        ))
        | _ids("Kube", ("AutoUpdate",))
    ),
    PodmanVersion.V4_8: (
        frozenset({"Image", "Globals.ContainersConfModule", "Globals.GlobalArgs"})
        | _ids("Image", _IMAGE_BASE)
        | _ids("Container", (
            "GIDMap", "UIDMap", "SubGIDMap", "SubUIDMap", "ReadOnlyTmpfs",
        ))
    ),
    PodmanVersion.V5_0: (
        frozenset({"Pod", "Container.Notify=healthy"})
        | _ids("Pod", _POD_BASE)
        | _ids("Container", ("Entrypoint", "StopTimeout", "GroupAdd", "Pod"))
    ),
    PodmanVersion.V5_1: frozenset(),
    PodmanVersion.V5_2: (
        frozenset({"Build"})
        | _ids("Build", _BUILD_BASE)
        | _ids("Pod", ("NetworkAlias",))
    ),
    PodmanVersion.V5_3: _ids("Pod", ("AddHost", "DNS", "DNSOption", "DNSSearch")),
})


def introduced_in(identifier: str) -> Optional[PodmanVersion]:
    """Return the version that introduced ``identifier``, or None if unknown."""
    for version in PodmanVersion:
        if identifier in VERSION_TABLE[version]:
            return version
    return None


def is_available(identifier: str, version: PodmanVersion) -> bool:
    """
    Check whether a key, key value or kind is usable at ``version``.

    A value identifier (``Kind.Key=value``) that is not listed falls back to
    its key. Identifiers missing from the table entirely (unit sections and
    keys systemd owns) are always available.
    """
    since = introduced_in(identifier)
    if since is None and "=" in identifier:
        since = introduced_in(identifier.split("=", 1)[0])
    if since is None:
        return True
    return version >= since
