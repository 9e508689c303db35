"""
Type definitions for podlet.

These dataclasses are the in-memory form of generated quadlet files. Field
declaration order is the order keys are written in; each field's metadata
(see ``fields.quadlet``) names its key and its downgrade policy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Union

from .fields import AsArgs, quadlet
from .values import (
    AUTO_UPDATE_LABEL,
    BuildSecret,
    DecryptionKey,
    Device,
    Mount,
    Notify,
    PullPolicy,
    RestartPolicy,
    Rootfs,
    VolumeSpec,
    image_to_name,
)
from .versions import PodmanVersion


class Kind(str, Enum):
    """Quadlet file type."""
    CONTAINER = "container"
    POD = "pod"
    KUBE = "kube"
    NETWORK = "network"
    VOLUME = "volume"
    BUILD = "build"
    IMAGE = "image"

    @property
    def section(self) -> str:
        return self.value.capitalize()

    @property
    def extension(self) -> str:
        return self.value


@dataclass
class Unit:
    """The ``[Unit]`` section."""
    description: Optional[str] = field(default=None, metadata=quadlet("Description"))
    wants: List[str] = field(default_factory=list, metadata=quadlet("Wants", join=" "))
    requires: List[str] = field(default_factory=list, metadata=quadlet("Requires", join=" "))
    binds_to: List[str] = field(default_factory=list, metadata=quadlet("BindsTo", join=" "))
    before: List[str] = field(default_factory=list, metadata=quadlet("Before", join=" "))
    after: List[str] = field(default_factory=list, metadata=quadlet("After", join=" "))

    SECTION: ClassVar[str] = "Unit"

    def merge(self, other: "Unit") -> "Unit":
        """Combine two unit sections; ``other`` wins for the description."""
        return Unit(
            description=other.description or self.description,
            wants=_extend_unique(self.wants, other.wants),
            requires=_extend_unique(self.requires, other.requires),
            binds_to=_extend_unique(self.binds_to, other.binds_to),
            before=_extend_unique(self.before, other.before),
            after=_extend_unique(self.after, other.after),
        )


@dataclass
class Service:
    """The ``[Service]`` section."""
    restart: Optional[RestartPolicy] = field(default=None, metadata=quadlet("Restart"))
    working_directory: Optional[str] = field(default=None, metadata=quadlet("WorkingDirectory"))

    SECTION: ClassVar[str] = "Service"


@dataclass
class Install:
    """The ``[Install]`` section."""
    wanted_by: List[str] = field(default_factory=list, metadata=quadlet("WantedBy", join=" "))
    required_by: List[str] = field(default_factory=list, metadata=quadlet("RequiredBy", join=" "))

    SECTION: ClassVar[str] = "Install"

    @classmethod
    def default(cls) -> "Install":
        return cls(wanted_by=["default.target"])


@dataclass
class Globals:
    """Podman global options, written at the end of the kind section."""
    containers_conf_module: List[str] = field(
        default_factory=list,
        metadata=quadlet("ContainersConfModule", host_path=True),
    )
    global_args: List[str] = field(
        default_factory=list,
        metadata=quadlet("GlobalArgs", raw=True),
    )

    SECTION: ClassVar[str] = "Globals"


def _notify(value: Notify) -> str:
    return "true" if value == Notify.CONTAINER else value.value


def _arg(flag: str, **kwargs) -> dict:
    return {"downgrade": AsArgs(flag, **kwargs)}


@dataclass
class Container:
    """The ``[Container]`` section."""
    add_capability: List[str] = field(default_factory=list, metadata=quadlet("AddCapability", join=" "))
    add_device: List[Device] = field(default_factory=list, metadata=quadlet("AddDevice", host_path=True))
    annotation: List[str] = field(default_factory=list, metadata=quadlet("Annotation", join=" "))
    auto_update: Optional[str] = field(
        default=None,
        metadata=quadlet("AutoUpdate", **_arg("--label", template=AUTO_UPDATE_LABEL + "={}")),
    )
    container_name: Optional[str] = field(default=None, metadata=quadlet("ContainerName"))
    dns: List[str] = field(default_factory=list, metadata=quadlet("DNS", **_arg("--dns")))
    dns_option: List[str] = field(default_factory=list, metadata=quadlet("DNSOption", **_arg("--dns-option")))
    dns_search: List[str] = field(default_factory=list, metadata=quadlet("DNSSearch", **_arg("--dns-search")))
    drop_capability: List[str] = field(default_factory=list, metadata=quadlet("DropCapability", join=" "))
    entrypoint: Optional[str] = field(default=None, metadata=quadlet("Entrypoint", **_arg("--entrypoint")))
    environment: List[str] = field(default_factory=list, metadata=quadlet("Environment", join=" "))
    environment_file: List[str] = field(default_factory=list, metadata=quadlet("EnvironmentFile", host_path=True))
    environment_host: bool = field(default=False, metadata=quadlet("EnvironmentHost"))
    exec: Optional[str] = field(default=None, metadata=quadlet("Exec"))
    expose_host_port: List[str] = field(default_factory=list, metadata=quadlet("ExposeHostPort"))
    gid_map: List[str] = field(default_factory=list, metadata=quadlet("GIDMap", **_arg("--gidmap")))
    group: Optional[str] = field(default=None, metadata=quadlet("Group"))
    group_add: List[str] = field(default_factory=list, metadata=quadlet("GroupAdd", **_arg("--group-add")))
    health_cmd: Optional[str] = field(default=None, metadata=quadlet("HealthCmd"))
    health_interval: Optional[str] = field(
        default=None, metadata=quadlet("HealthInterval", **_arg("--health-interval"))
    )
    health_on_failure: Optional[str] = field(
        default=None, metadata=quadlet("HealthOnFailure", **_arg("--health-on-failure"))
    )
    health_retries: Optional[int] = field(
        default=None, metadata=quadlet("HealthRetries", **_arg("--health-retries"))
    )
    health_start_period: Optional[str] = field(
        default=None, metadata=quadlet("HealthStartPeriod", **_arg("--health-start-period"))
    )
    health_startup_cmd: Optional[str] = field(
        default=None, metadata=quadlet("HealthStartupCmd", **_arg("--health-startup-cmd"))
    )
    health_startup_interval: Optional[str] = field(
        default=None, metadata=quadlet("HealthStartupInterval", **_arg("--health-startup-interval"))
    )
    health_startup_retries: Optional[int] = field(
        default=None, metadata=quadlet("HealthStartupRetries", **_arg("--health-startup-retries"))
    )
    health_startup_success: Optional[int] = field(
        default=None, metadata=quadlet("HealthStartupSuccess", **_arg("--health-startup-success"))
    )
    health_startup_timeout: Optional[str] = field(
        default=None, metadata=quadlet("HealthStartupTimeout", **_arg("--health-startup-timeout"))
    )
    health_timeout: Optional[str] = field(
        default=None, metadata=quadlet("HealthTimeout", **_arg("--health-timeout"))
    )
    host_name: Optional[str] = field(default=None, metadata=quadlet("HostName", **_arg("--hostname")))
    image: Optional[str] = field(default=None, metadata=quadlet("Image"))
    ip: Optional[str] = field(default=None, metadata=quadlet("IP", **_arg("--ip")))
    ip6: Optional[str] = field(default=None, metadata=quadlet("IP6", **_arg("--ip6")))
    label: List[str] = field(default_factory=list, metadata=quadlet("Label", join=" "))
    log_driver: Optional[str] = field(default=None, metadata=quadlet("LogDriver", **_arg("--log-driver")))
    mask: List[str] = field(
        default_factory=list,
        metadata=quadlet("Mask", join=":", **_arg("--security-opt", template="mask={}", join=":")),
    )
    mount: List[Mount] = field(
        default_factory=list, metadata=quadlet("Mount", host_path=True, **_arg("--mount"))
    )
    network: List[str] = field(default_factory=list, metadata=quadlet("Network"))
    no_new_privileges: bool = field(default=False, metadata=quadlet("NoNewPrivileges"))
    notify: Optional[Notify] = field(
        default=None,
        metadata=quadlet(
            "Notify",
            value_gated=True,
            format=_notify,
            **_arg("--sdnotify", min_version=PodmanVersion.V4_7),
        ),
    )
    pids_limit: Optional[int] = field(default=None, metadata=quadlet("PidsLimit", **_arg("--pids-limit")))
    pod: Optional[str] = field(default=None, metadata=quadlet("Pod"))
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    publish_port: List[str] = field(default_factory=list, metadata=quadlet("PublishPort"))
    pull: Optional[PullPolicy] = field(default=None, metadata=quadlet("Pull", **_arg("--pull")))
    read_only: bool = field(default=False, metadata=quadlet("ReadOnly"))
    read_only_tmpfs: Optional[bool] = field(
        default=None,
        metadata=quadlet(
            "ReadOnlyTmpfs",
            keep_false=True,
            **_arg("--read-only-tmpfs", constant="false", equals=True),
        ),
    )
    rootfs: Optional[Rootfs] = field(
        default=None, metadata=quadlet("Rootfs", host_path=True, **_arg("--rootfs"))
    )
    run_init: bool = field(default=False, metadata=quadlet("RunInit"))
    seccomp_profile: Optional[str] = field(
        default=None, metadata=quadlet("SeccompProfile", host_path=True)
    )
    secret: List[str] = field(default_factory=list, metadata=quadlet("Secret", **_arg("--secret")))
    security_label_disable: bool = field(default=False, metadata=quadlet("SecurityLabelDisable"))
    security_label_file_type: Optional[str] = field(
        default=None, metadata=quadlet("SecurityLabelFileType")
    )
    security_label_level: Optional[str] = field(default=None, metadata=quadlet("SecurityLabelLevel"))
    security_label_nested: bool = field(
        default=False,
        metadata=quadlet("SecurityLabelNested", **_arg("--security-opt", constant="label=nested")),
    )
    security_label_type: Optional[str] = field(default=None, metadata=quadlet("SecurityLabelType"))
    shm_size: Optional[str] = field(default=None, metadata=quadlet("ShmSize", **_arg("--shm-size")))
    stop_timeout: Optional[int] = field(
        default=None, metadata=quadlet("StopTimeout", **_arg("--stop-timeout"))
    )
    sub_gid_map: Optional[str] = field(
        default=None, metadata=quadlet("SubGIDMap", **_arg("--subgidname"))
    )
    sub_uid_map: Optional[str] = field(
        default=None, metadata=quadlet("SubUIDMap", **_arg("--subuidname"))
    )
    sysctl: List[str] = field(
        default_factory=list, metadata=quadlet("Sysctl", join=" ", **_arg("--sysctl"))
    )
    timezone: Optional[str] = field(default=None, metadata=quadlet("Timezone"))
    tmpfs: List[str] = field(default_factory=list, metadata=quadlet("Tmpfs", **_arg("--tmpfs")))
    uid_map: List[str] = field(default_factory=list, metadata=quadlet("UIDMap", **_arg("--uidmap")))
    ulimit: List[str] = field(default_factory=list, metadata=quadlet("Ulimit", **_arg("--ulimit")))
    unmask: List[str] = field(
        default_factory=list,
        metadata=quadlet("Unmask", join=":", **_arg("--security-opt", template="unmask={}", join=":")),
    )
    user: Optional[str] = field(default=None, metadata=quadlet("User"))
    user_ns: Optional[str] = field(default=None, metadata=quadlet("UserNS", **_arg("--userns")))
    volume: List[VolumeSpec] = field(default_factory=list, metadata=quadlet("Volume", host_path=True))
    working_dir: Optional[str] = field(default=None, metadata=quadlet("WorkingDir", **_arg("--workdir")))

    KIND: ClassVar[Kind] = Kind.CONTAINER

    def default_name(self) -> str:
        if self.container_name:
            return self.container_name
        if self.image:
            return image_to_name(self.image)
        if self.rootfs:
            return image_to_name(self.rootfs.path)
        return "container"


@dataclass
class Pod:
    """The ``[Pod]`` section."""
    add_host: List[str] = field(default_factory=list, metadata=quadlet("AddHost", **_arg("--add-host")))
    dns: List[str] = field(default_factory=list, metadata=quadlet("DNS", **_arg("--dns")))
    dns_option: List[str] = field(default_factory=list, metadata=quadlet("DNSOption", **_arg("--dns-option")))
    dns_search: List[str] = field(default_factory=list, metadata=quadlet("DNSSearch", **_arg("--dns-search")))
    network: List[str] = field(default_factory=list, metadata=quadlet("Network"))
    network_alias: List[str] = field(
        default_factory=list, metadata=quadlet("NetworkAlias", **_arg("--network-alias"))
    )
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    pod_name: Optional[str] = field(default=None, metadata=quadlet("PodName"))
    publish_port: List[str] = field(default_factory=list, metadata=quadlet("PublishPort"))
    volume: List[VolumeSpec] = field(default_factory=list, metadata=quadlet("Volume", host_path=True))

    KIND: ClassVar[Kind] = Kind.POD

    def default_name(self) -> str:
        return self.pod_name or "pod"


def _kube_auto_update(values: List[str]) -> List[str]:
    args = []
    for value in values:
        container, sep, policy = value.rpartition("/")
        key = f"{AUTO_UPDATE_LABEL}/{container}" if sep else AUTO_UPDATE_LABEL
        args.append(f"--annotation={key}={policy}")
    return args


@dataclass
class Kube:
    """The ``[Kube]`` section."""
    auto_update: List[str] = field(
        default_factory=list, metadata=quadlet("AutoUpdate", downgrade=_kube_auto_update)
    )
    config_map: List[str] = field(default_factory=list, metadata=quadlet("ConfigMap", host_path=True))
    log_driver: Optional[str] = field(default=None, metadata=quadlet("LogDriver"))
    network: List[str] = field(default_factory=list, metadata=quadlet("Network"))
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    publish_port: List[str] = field(default_factory=list, metadata=quadlet("PublishPort"))
    user_ns: Optional[str] = field(default=None, metadata=quadlet("UserNS"))
    yaml: str = field(default="", metadata=quadlet("Yaml", host_path=True))

    KIND: ClassVar[Kind] = Kind.KUBE

    def default_name(self) -> str:
        stem = self.yaml.rstrip("/").rsplit("/", 1)[-1]
        for suffix in (".yaml", ".yml", ".json"):
            if stem.endswith(suffix):
                return stem[: -len(suffix)]
        return stem or "kube"


@dataclass
class Network:
    """The ``[Network]`` section."""
    disable_dns: bool = field(default=False, metadata=quadlet("DisableDNS"))
    dns: List[str] = field(default_factory=list, metadata=quadlet("DNS"))
    driver: Optional[str] = field(default=None, metadata=quadlet("Driver"))
    gateway: List[str] = field(default_factory=list, metadata=quadlet("Gateway"))
    internal: bool = field(default=False, metadata=quadlet("Internal"))
    ipam_driver: Optional[str] = field(default=None, metadata=quadlet("IPAMDriver"))
    ip_range: List[str] = field(default_factory=list, metadata=quadlet("IPRange"))
    ipv6: bool = field(default=False, metadata=quadlet("IPv6"))
    label: List[str] = field(default_factory=list, metadata=quadlet("Label", join=" "))
    options: Optional[str] = field(default=None, metadata=quadlet("Options"))
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    subnet: List[str] = field(default_factory=list, metadata=quadlet("Subnet"))

    KIND: ClassVar[Kind] = Kind.NETWORK


@dataclass
class Volume:
    """The ``[Volume]`` section."""
    copy: bool = field(default=False, metadata=quadlet("Copy"))
    device: Optional[str] = field(default=None, metadata=quadlet("Device"))
    group: Optional[str] = field(default=None, metadata=quadlet("Group"))
    label: List[str] = field(default_factory=list, metadata=quadlet("Label", join=" "))
    options: Optional[str] = field(default=None, metadata=quadlet("Options"))
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    type: Optional[str] = field(default=None, metadata=quadlet("Type"))
    user: Optional[str] = field(default=None, metadata=quadlet("User"))

    KIND: ClassVar[Kind] = Kind.VOLUME

    def is_empty(self) -> bool:
        return self == Volume()


@dataclass
class Image:
    """The ``[Image]`` section."""
    all_tags: bool = field(default=False, metadata=quadlet("AllTags"))
    arch: Optional[str] = field(default=None, metadata=quadlet("Arch"))
    auth_file: Optional[str] = field(default=None, metadata=quadlet("AuthFile", host_path=True))
    cert_dir: Optional[str] = field(default=None, metadata=quadlet("CertDir", host_path=True))
    creds: Optional[str] = field(default=None, metadata=quadlet("Creds"))
    decryption_key: Optional[DecryptionKey] = field(
        default=None, metadata=quadlet("DecryptionKey", host_path=True)
    )
    image: str = field(default="", metadata=quadlet("Image"))
    image_tag: Optional[str] = field(default=None, metadata=quadlet("ImageTag"))
    os: Optional[str] = field(default=None, metadata=quadlet("OS"))
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    tls_verify: Optional[bool] = field(default=None, metadata=quadlet("TLSVerify", keep_false=True))
    variant: Optional[str] = field(default=None, metadata=quadlet("Variant"))

    KIND: ClassVar[Kind] = Kind.IMAGE

    def default_name(self) -> str:
        return image_to_name(self.image)


@dataclass
class Build:
    """The ``[Build]`` section."""
    annotation: List[str] = field(default_factory=list, metadata=quadlet("Annotation"))
    arch: Optional[str] = field(default=None, metadata=quadlet("Arch"))
    auth_file: Optional[str] = field(default=None, metadata=quadlet("AuthFile", host_path=True))
    dns: List[str] = field(default_factory=list, metadata=quadlet("DNS"))
    dns_option: List[str] = field(default_factory=list, metadata=quadlet("DNSOption"))
    dns_search: List[str] = field(default_factory=list, metadata=quadlet("DNSSearch"))
    environment: List[str] = field(default_factory=list, metadata=quadlet("Environment", join=" "))
    file: Optional[str] = field(default=None, metadata=quadlet("File", host_path=True))
    force_rm: Optional[bool] = field(default=None, metadata=quadlet("ForceRM", keep_false=True))
    group_add: List[str] = field(default_factory=list, metadata=quadlet("GroupAdd"))
    image_tag: str = field(default="", metadata=quadlet("ImageTag"))
    label: List[str] = field(default_factory=list, metadata=quadlet("Label", join=" "))
    network: List[str] = field(default_factory=list, metadata=quadlet("Network"))
    podman_args: List[str] = field(default_factory=list, metadata=quadlet("PodmanArgs", raw=True))
    pull: Optional[PullPolicy] = field(default=None, metadata=quadlet("Pull"))
    secret: List[BuildSecret] = field(default_factory=list, metadata=quadlet("Secret", host_path=True))
    set_working_directory: Optional[str] = field(
        default=None, metadata=quadlet("SetWorkingDirectory", host_path=True)
    )
    target: Optional[str] = field(default=None, metadata=quadlet("Target"))
    tls_verify: Optional[bool] = field(default=None, metadata=quadlet("TLSVerify", keep_false=True))
    variant: Optional[str] = field(default=None, metadata=quadlet("Variant"))
    volume: List[VolumeSpec] = field(default_factory=list, metadata=quadlet("Volume", host_path=True))

    KIND: ClassVar[Kind] = Kind.BUILD

    def default_name(self) -> str:
        return image_to_name(self.image_tag) if self.image_tag else "build"


Resource = Union[Container, Pod, Kube, Network, Volume, Build, Image]


@dataclass
class QuadletFile:
    """One generated quadlet file."""
    name: str
    resource: Resource
    unit: Unit = field(default_factory=Unit)
    globals: Globals = field(default_factory=Globals)
    service: Service = field(default_factory=Service)
    install: Install = field(default_factory=Install)

    @property
    def kind(self) -> Kind:
        return self.resource.KIND

    @property
    def file_name(self) -> str:
        return f"{self.name}.{self.kind.extension}"

    @property
    def unit_name(self) -> str:
        """Name of the systemd service quadlet generates for this file."""
        if self.kind in (Kind.CONTAINER, Kind.KUBE):
            return f"{self.name}.service"
        return f"{self.name}-{self.kind.value}.service"


@dataclass
class KubeYamlFile:
    """A generated Kubernetes YAML file."""
    name: str
    content: str

    @property
    def file_name(self) -> str:
        return f"{self.name}.yaml"


File = Union[QuadletFile, KubeYamlFile]


def _extend_unique(first: List[str], second: List[str]) -> List[str]:
    result = list(first)
    for item in second:
        if item not in result:
            result.append(item)
    return result
