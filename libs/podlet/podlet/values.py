"""
Structured option values.

Parsers for the compound values podman accepts on its command line (volume
specs, device mappings, mounts, root filesystems, security options, ...).
Each value keeps enough structure to rewrite host paths and to serialize back
to the exact text form podman and quadlet understand.
"""

import ipaddress
import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

PathMapper = Callable[[str], str]


class Notify(str, Enum):
    """Value of ``--sdnotify``."""
    CONMON = "conmon"
    CONTAINER = "container"
    HEALTHY = "healthy"
    IGNORE = "ignore"


class PullPolicy(str, Enum):
    """Image pull policy."""
    ALWAYS = "always"
    MISSING = "missing"
    NEVER = "never"
    NEWER = "newer"


class RestartPolicy(str, Enum):
    """systemd ``Restart=`` values."""
    NO = "no"
    ON_SUCCESS = "on-success"
    ON_FAILURE = "on-failure"
    ON_ABNORMAL = "on-abnormal"
    ON_WATCHDOG = "on-watchdog"
    ON_ABORT = "on-abort"
    ALWAYS = "always"

    @classmethod
    def parse(cls, value: str) -> "RestartPolicy":
        """Parse a podman or Compose restart policy."""
        # podman accepts "on-failure[:max_retries]" and "unless-stopped"
        name = value.split(":", 1)[0]
        if name == "unless-stopped":
            return cls.ALWAYS
        return cls(name)


AUTO_UPDATE_LABEL = "io.containers.autoupdate"


class AutoUpdate(str, Enum):
    """Value of the ``io.containers.autoupdate`` label."""
    REGISTRY = "registry"
    LOCAL = "local"

    @classmethod
    def extract(cls, labels: List[str]) -> Tuple[Optional["AutoUpdate"], List[str]]:
        """Split the auto-update label out of a list of ``key=value`` labels."""
        policy = None
        remaining = []
        for label in labels:
            key, _, value = label.partition("=")
            if key == AUTO_UPDATE_LABEL and value in (cls.REGISTRY.value, cls.LOCAL.value):
                policy = cls(value)
            else:
                remaining.append(label)
        return policy, remaining


def is_host_path(source: str) -> bool:
    """Whether a volume source names a host path rather than a named volume."""
    return source.startswith((".", "/", "~", "%"))


def image_to_name(image: str) -> str:
    """Derive a unit name from an image reference."""
    name = image.rstrip("/").rsplit("/", 1)[-1]
    name = name.split("@", 1)[0]
    if ":" in name:
        name = name.rsplit(":", 1)[0]
    return name


def parse_dns(value: str) -> str:
    """Validate a DNS server entry: ``none`` or an IP address."""
    if value == "none":
        return value
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise ValueError("must be 'none' or an IP address")
    return value


def parse_ipv4(value: str) -> str:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        raise ValueError("must be an IPv4 address")
    return value


def parse_ipv6(value: str) -> str:
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        raise ValueError("must be an IPv6 address")
    return value


def parse_pids_limit(value: str) -> int:
    """``-1`` for unlimited, otherwise an unsigned 32-bit integer."""
    number = int(value)
    if number == -1 or 0 <= number <= 0xFFFFFFFF:
        return number
    raise ValueError("must be -1 or between 0 and 4294967295")


VOLUME_OPTIONS = {
    "rw", "ro", "z", "Z", "O", "U", "copy", "nocopy", "dev", "nodev",
    "exec", "noexec", "suid", "nosuid", "bind", "rbind", "idmap",
    "shared", "rshared", "slave", "rslave", "private", "rprivate",
    "unbindable", "runbindable",
}

VOLUME_VALUE_OPTIONS = ("idmap=", "upperdir=", "workdir=")


@dataclass
class VolumeSpec:
    """A ``-v/--volume`` value: ``[source:]destination[:options]``."""
    destination: str
    source: Optional[str] = None
    options: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "VolumeSpec":
        parts = value.split(":")
        if len(parts) == 1:
            source, destination, options = None, parts[0], None
        elif len(parts) == 2:
            if parts[1].startswith("/"):
                source, destination, options = parts[0], parts[1], None
            else:
                source, destination, options = None, parts[0], parts[1]
        elif len(parts) == 3:
            source, destination, options = parts
        else:
            raise ValueError("expected [SOURCE:]DESTINATION[:OPTIONS]")

        if not destination.startswith("/"):
            raise ValueError(f"container path '{destination}' must be absolute")
        if source == "":
            raise ValueError("source must not be empty")
        if options is not None:
            overlay = False
            for option in options.split(","):
                if option in VOLUME_OPTIONS:
                    overlay = overlay or option == "O"
                    continue
                if option.startswith(("upperdir=", "workdir=")) and not overlay:
                    raise ValueError(
                        "'upperdir' and 'workdir' require 'O' to be given first"
                    )
                if option.startswith(VOLUME_VALUE_OPTIONS):
                    continue
                raise ValueError(f"unknown volume option '{option}'")
        return cls(destination=destination, source=source, options=options)

    @property
    def is_host_path(self) -> bool:
        return self.source is not None and is_host_path(self.source)

    def map_host_paths(self, mapper: PathMapper) -> "VolumeSpec":
        source = self.source
        if self.is_host_path:
            source = mapper(source)
        options = self.options
        if options:
            mapped = []
            for option in options.split(","):
                key, sep, path = option.partition("=")
                if sep and key in ("upperdir", "workdir"):
                    option = f"{key}={mapper(path)}"
                mapped.append(option)
            options = ",".join(mapped)
        return replace(self, source=source, options=options)

    def __str__(self) -> str:
        text = self.destination
        if self.source is not None:
            text = f"{self.source}:{text}"
        if self.options:
            text = f"{text}:{self.options}"
        return text


@dataclass
class Device:
    """A ``--device`` value: ``host[:container][:permissions]``."""
    host: str
    container: Optional[str] = None
    permissions: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "Device":
        parts = value.split(":", 2)
        host = parts[0]
        if not host:
            raise ValueError("host device must not be empty")
        second = parts[1] if len(parts) > 1 else ""
        third = parts[2] if len(parts) > 2 else ""

        if second.startswith("/"):
            container, permissions = second, third
        else:
            container, permissions = None, second + third

        if permissions and not set(permissions) <= set("rwm"):
            raise ValueError(f"invalid device permissions '{permissions}'")
        return cls(host=host, container=container, permissions=permissions or None)

    def map_host_paths(self, mapper: PathMapper) -> "Device":
        return replace(self, host=mapper(self.host))

    def __str__(self) -> str:
        text = self.host
        if self.container:
            text = f"{text}:{self.container}"
        if self.permissions:
            text = f"{text}:{self.permissions}"
        return text


MOUNT_TYPES = ("bind", "devpts", "glob", "image", "ramfs", "tmpfs", "volume")

MOUNT_KEY_ALIASES = {
    "src": "source",
    "dst": "destination",
    "target": "destination",
    "ro": "readonly",
}


@dataclass
class Mount:
    """A ``--mount`` value, ``type=TYPE,key=value,...``."""
    type: str
    options: List[Tuple[str, Optional[str]]] = field(default_factory=list)

    @classmethod
    def parse(cls, value: str) -> "Mount":
        items = [item for item in value.split(",") if item]
        if not items or not items[0].startswith("type="):
            raise ValueError("mount must start with 'type='")
        mount_type = items[0][len("type="):]
        if mount_type not in MOUNT_TYPES:
            raise ValueError(
                f"unknown mount type '{mount_type}' "
                f"(expected one of {', '.join(MOUNT_TYPES)})"
            )

        options: List[Tuple[str, Optional[str]]] = []
        for item in items[1:]:
            key, sep, option_value = item.partition("=")
            key = MOUNT_KEY_ALIASES.get(key, key)
            if key == "type":
                raise ValueError("mount type given more than once")
            if key == "readonly" and sep and option_value not in ("true", "false"):
                raise ValueError(f"invalid readonly value '{option_value}'")
            options.append((key, option_value if sep else None))

        mount = cls(type=mount_type, options=options)
        if mount_type != "devpts" and mount.get("destination") is None:
            raise ValueError("mount requires a destination")
        return mount

    def get(self, key: str) -> Optional[str]:
        for option_key, option_value in self.options:
            if option_key == key:
                return option_value if option_value is not None else ""
        return None

    @property
    def source(self) -> Optional[str]:
        return self.get("source")

    @property
    def destination(self) -> Optional[str]:
        return self.get("destination")

    @property
    def readonly(self) -> bool:
        return self.get("readonly") in ("", "true")

    def map_host_paths(self, mapper: PathMapper) -> "Mount":
        if self.type not in ("bind", "glob"):
            return self
        options = [
            (key, mapper(value) if key == "source" and value else value)
            for key, value in self.options
        ]
        return replace(self, options=options)

    def __str__(self) -> str:
        items = [f"type={self.type}"]
        for key, value in self.options:
            items.append(key if value is None else f"{key}={value}")
        return ",".join(items)


@dataclass
class Rootfs:
    """A ``--rootfs`` value: ``PATH[:[O][,idmap[=IDMAP]]]``."""
    path: str
    overlay: bool = False
    idmap: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "Rootfs":
        path, sep, options = value.rpartition(":")
        if not sep:
            return cls(path=value)
        overlay = False
        idmap = None
        for option in options.split(","):
            if option == "O":
                overlay = True
            elif option == "idmap" or option.startswith("idmap="):
                idmap = option[len("idmap="):] if "=" in option else ""
            elif option:
                raise ValueError(f"unknown rootfs option '{option}'")
        if not path:
            raise ValueError("rootfs path must not be empty")
        return cls(path=path, overlay=overlay, idmap=idmap)

    def map_host_paths(self, mapper: PathMapper) -> "Rootfs":
        return replace(self, path=mapper(self.path))

    def __str__(self) -> str:
        options = []
        if self.overlay:
            options.append("O")
        if self.idmap is not None:
            options.append(f"idmap={self.idmap}" if self.idmap else "idmap")
        if options:
            return f"{self.path}:{','.join(options)}"
        return self.path


@dataclass
class DecryptionKey:
    """An image decryption key: ``KEY[:PASSPHRASE]``."""
    key: str
    passphrase: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "DecryptionKey":
        key, sep, passphrase = value.partition(":")
        if not key:
            raise ValueError("decryption key path must not be empty")
        return cls(key=key, passphrase=passphrase if sep else None)

    def map_host_paths(self, mapper: PathMapper) -> "DecryptionKey":
        return replace(self, key=mapper(self.key))

    def __str__(self) -> str:
        if self.passphrase is None:
            return self.key
        return f"{self.key}:{self.passphrase}"


@dataclass
class BuildSecret:
    """A build secret: ``id=ID,src=PATH``."""
    id: str
    source: str

    @classmethod
    def parse(cls, value: str) -> "BuildSecret":
        secret_id = None
        source = None
        for item in value.split(","):
            key, _, item_value = item.partition("=")
            if key == "id":
                secret_id = item_value
            elif key in ("src", "source"):
                source = item_value
            else:
                raise ValueError(f"unknown build secret option '{key}'")
        if not secret_id or not source:
            raise ValueError("build secret requires 'id' and 'src'")
        return cls(id=secret_id, source=source)

    def map_host_paths(self, mapper: PathMapper) -> "BuildSecret":
        return replace(self, source=mapper(self.source))

    def __str__(self) -> str:
        return f"id={self.id},src={self.source}"


class SecurityOptKind(str, Enum):
    APPARMOR = "apparmor"
    LABEL_USER = "label-user"
    LABEL_ROLE = "label-role"
    LABEL_TYPE = "label-type"
    LABEL_LEVEL = "label-level"
    LABEL_FILETYPE = "label-filetype"
    LABEL_DISABLE = "label-disable"
    LABEL_NESTED = "label-nested"
    MASK = "mask"
    NO_NEW_PRIVILEGES = "no-new-privileges"
    SECCOMP = "seccomp"
    PROC_OPTS = "proc-opts"
    UNMASK = "unmask"


@dataclass
class SecurityOpt:
    """One ``--security-opt`` value."""
    kind: SecurityOptKind
    value: str = ""

    @classmethod
    def parse(cls, value: str) -> "SecurityOpt":
        if value == "no-new-privileges" or value == "no-new-privileges=true":
            return cls(SecurityOptKind.NO_NEW_PRIVILEGES)
        name, sep, rest = value.partition("=")
        if not sep:
            raise ValueError("expected OPTION=VALUE")
        if name == "label":
            if rest == "disable":
                return cls(SecurityOptKind.LABEL_DISABLE)
            if rest == "nested":
                return cls(SecurityOptKind.LABEL_NESTED)
            label, sep, label_value = rest.partition(":")
            kinds = {
                "user": SecurityOptKind.LABEL_USER,
                "role": SecurityOptKind.LABEL_ROLE,
                "type": SecurityOptKind.LABEL_TYPE,
                "level": SecurityOptKind.LABEL_LEVEL,
                "filetype": SecurityOptKind.LABEL_FILETYPE,
            }
            if not sep or label not in kinds:
                raise ValueError(f"unknown label option '{rest}'")
            return cls(kinds[label], label_value)
        simple = {
            "apparmor": SecurityOptKind.APPARMOR,
            "mask": SecurityOptKind.MASK,
            "seccomp": SecurityOptKind.SECCOMP,
            "proc-opts": SecurityOptKind.PROC_OPTS,
            "unmask": SecurityOptKind.UNMASK,
        }
        if name not in simple:
            raise ValueError(f"unknown security option '{name}'")
        return cls(simple[name], rest)

    def __str__(self) -> str:
        if self.kind == SecurityOptKind.NO_NEW_PRIVILEGES:
            return "no-new-privileges"
        if self.kind == SecurityOptKind.LABEL_DISABLE:
            return "label=disable"
        if self.kind == SecurityOptKind.LABEL_NESTED:
            return "label=nested"
        if self.kind.value.startswith("label-"):
            return f"label={self.kind.value[len('label-'):]}:{self.value}"
        return f"{self.kind.value}={self.value}"


def clean_path(path: str) -> str:
    """Collapse ``//``, ``/./`` and ``/../`` in an absolute path."""
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned
