"""
Podman command option models.

One dataclass per supported podman command. Each can be parsed from a
command line (``parse``) and converted into a quadlet file
(``to_quadlet_file``). Options that matter for quadlet keys, host path
rewriting or version downgrades are parsed into typed fields; the rest are
validated where podman constrains them and carried through to PodmanArgs.
"""

import argparse
import logging
import shlex
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from .args import (
    CommandParser,
    add_global_args,
    boolean,
    checked,
    comma_list,
    int_range,
    non_negative_int,
    number,
    split_globals,
)
from .context import ConversionContext
from .errors import ParseError, UnsupportedOptionError
from .fields import format_arg
from .types import (
    Build,
    Container,
    Globals,
    Image,
    Kube,
    Network,
    Pod,
    QuadletFile,
    Service,
    Unit,
    Volume,
)
from .values import (
    AUTO_UPDATE_LABEL,
    AutoUpdate,
    BuildSecret,
    DecryptionKey,
    Device,
    Mount,
    Notify,
    PullPolicy,
    RestartPolicy,
    Rootfs,
    SecurityOpt,
    SecurityOptKind,
    VolumeSpec,
    image_to_name,
    parse_dns,
    parse_ipv4,
    parse_ipv6,
    parse_pids_limit,
)

logger = logging.getLogger(__name__)


def _control_free(arg: str) -> str:
    # keep \t \n \v \f \r, drop every other ASCII control character
    return "".join(
        c for c in arg if not (ord(c) < 0x20 or ord(c) == 0x7F) or "\t" <= c <= "\r"
    )


def command_join(args: Sequence[str]) -> str:
    """Join a command into one shell-quoted string."""
    return " ".join(shlex.quote(_control_free(arg)) for arg in args)


@dataclass
class GlobalOptions:
    """Podman global options."""
    modules: List[str] = field(default_factory=list)
    args: List[str] = field(default_factory=list)

    @classmethod
    def from_namespace(cls, ns: argparse.Namespace) -> "GlobalOptions":
        return cls(
            modules=list(getattr(ns, "modules", None) or []),
            args=list(getattr(ns, "global_args", None) or []),
        )

    def to_globals(self) -> Globals:
        return Globals(containers_conf_module=list(self.modules), global_args=list(self.args))


def _choice(enum_type, name: str):
    return checked(enum_type, name)


def _health_on_failure(value: str) -> str:
    if value not in ("none", "kill", "restart", "stop"):
        raise ValueError("expected none, kill, restart or stop")
    return value


_RUN_PASSTHROUGH = (
    ("--add-host",), ("--arch",), ("-a", "--attach"), ("--authfile",),
    ("--blkio-weight-device",), ("--cgroup-conf",), ("--cgroup-parent",),
    ("--cgroupns",), ("--cgroups",), ("--chrootdirs",), ("--conmon-pidfile",),
    ("--cpu-period",), ("--cpu-quota",), ("--cpu-rt-period",),
    ("--cpu-rt-runtime",), ("--cpuset-cpus",), ("--cpuset-mems",),
    ("--decryption-key",), ("--detach-keys",), ("--device-cgroup-rule",),
    ("--device-read-bps",), ("--device-read-iops",), ("--device-write-bps",),
    ("--device-write-iops",), ("--env-merge",), ("--gpus",),
    ("--group-entry",), ("--hostuser",), ("--hosts-file",),
    ("--image-volume",), ("--init-path",), ("--ipc",), ("--label-file",),
    ("--link-local-ip",), ("--log-opt",), ("--mac-address",),
    ("-m", "--memory"), ("--memory-reservation",), ("--memory-swap",),
    ("--network-alias",), ("--os",), ("--passwd-entry",), ("--personality",),
    ("--pid",), ("--pidfile",), ("--platform",), ("--pod-id-file",),
    ("--preserve-fd",), ("--preserve-fds",), ("--requires",),
    ("--seccomp-policy",), ("--shm-size-systemd",), ("--stop-signal",),
    ("--systemd",), ("--timeout",), ("--umask",), ("--unsetenv",),
    ("--uts",), ("--variant",), ("--volumes-from",),
)

_RUN_PASSTHROUGH_BOOL = (
    ("--disable-content-trust",), ("-i", "--interactive"), ("--no-healthcheck",),
    ("--no-hosts",), ("--oom-kill-disable",), ("--passwd",), ("--privileged",),
    ("-P", "--publish-all"), ("-q", "--quiet"), ("--rmi",), ("-t", "--tty"),
    ("--unsetenv-all",),
)


def _run_parser() -> CommandParser:
    parser = CommandParser("podman run")
    add_global_args(parser)
    add = parser.add_argument

    add("--cap-add", action="append")
    add("--cap-drop", action="append")
    add("--device", action="append", type=checked(Device.parse, "device"))
    add("--annotation", action="append")
    add("--name")
    add("--dns", action="append", type=checked(parse_dns, "dns"))
    add("--dns-option", action="append")
    add("--dns-search", action="append")
    add("--entrypoint")
    add("-e", "--env", action="append")
    add("--env-file", action="append")
    add("--env-host", action="store_true")
    add("--expose", action="append")
    add("--gidmap", action="append")
    add("--group-add", action="append")
    add("--health-cmd")
    add("--health-interval")
    add("--health-on-failure", type=checked(_health_on_failure, "action"))
    add("--health-retries", type=checked(non_negative_int, "retries"))
    add("--health-start-period")
    add("--health-startup-cmd")
    add("--health-startup-interval")
    add("--health-startup-retries", type=checked(non_negative_int, "retries"))
    add("--health-startup-success", type=checked(non_negative_int, "retries"))
    add("--health-startup-timeout")
    add("--health-timeout")
    add("-h", "--hostname")
    add("--ip", type=checked(parse_ipv4, "IPv4 address"))
    add("--ip6", type=checked(parse_ipv6, "IPv6 address"))
    add("-l", "--label", action="append")
    add("--log-driver")
    add("--mount", action="append", type=checked(Mount.parse, "mount"))
    add("--network", "--net", action="append")
    add("--sdnotify", type=_choice(Notify, "notify policy"))
    add("--pids-limit", type=checked(parse_pids_limit, "pids limit"))
    add("--pod")
    add("-p", "--publish", action="append")
    add("--pull", type=_choice(PullPolicy, "pull policy"))
    add("--read-only", action="store_true")
    add("--read-only-tmpfs", type=checked(boolean, "boolean"), default=True)
    add("--restart", type=_choice(RestartPolicy.parse, "restart policy"))
    add("--rootfs", type=checked(Rootfs.parse, "rootfs"))
    add("--init", action="store_true")
    add("--secret", action="append")
    add("--security-opt", action="append", type=checked(SecurityOpt.parse, "security option"))
    add("--shm-size")
    add("--stop-timeout", type=checked(non_negative_int, "seconds"))
    add("--subgidname")
    add("--subuidname")
    add("--sysctl", action="append")
    add("--tz")
    add("--tmpfs", action="append")
    add("--uidmap", action="append")
    add("--ulimit", action="append")
    add("-u", "--user")
    add("--userns")
    add("-v", "--volume", action="append", type=checked(VolumeSpec.parse, "volume"))
    add("-w", "--workdir")

    parser.passthrough("--blkio-weight", type=int_range(10, 1000))
    parser.passthrough("--memory-swappiness", type=int_range(0, 100))
    parser.passthrough("--oom-score-adj", type=int_range(-1000, 1000))
    parser.passthrough("-c", "--cpu-shares", type=checked(non_negative_int, "shares"))
    parser.passthrough("--cpus", type=checked(number, "number"))
    parser.passthrough("--http-proxy", type=checked(boolean, "boolean"))
    parser.passthrough("--sig-proxy", type=checked(boolean, "boolean"))
    for flags in _RUN_PASSTHROUGH:
        parser.passthrough(*flags)
    for flags in _RUN_PASSTHROUGH_BOOL:
        parser.passthrough(*flags, value=False)
    # quadlet sets these itself
    parser.discard("-d", "--detach")
    parser.discard("--rm")
    parser.discard("--replace")
    parser.discard("--cidfile", value=True)

    add("image")
    add("command", nargs=argparse.REMAINDER)
    return parser


@dataclass
class RunOptions:
    """Options of ``podman run``."""
    image: str
    command: List[str] = field(default_factory=list)
    cap_add: List[str] = field(default_factory=list)
    cap_drop: List[str] = field(default_factory=list)
    device: List[Device] = field(default_factory=list)
    annotation: List[str] = field(default_factory=list)
    name: Optional[str] = None
    dns: List[str] = field(default_factory=list)
    dns_option: List[str] = field(default_factory=list)
    dns_search: List[str] = field(default_factory=list)
    entrypoint: Optional[str] = None
    env: List[str] = field(default_factory=list)
    env_file: List[str] = field(default_factory=list)
    env_host: bool = False
    expose: List[str] = field(default_factory=list)
    gidmap: List[str] = field(default_factory=list)
    group_add: List[str] = field(default_factory=list)
    health_cmd: Optional[str] = None
    health_interval: Optional[str] = None
    health_on_failure: Optional[str] = None
    health_retries: Optional[int] = None
    health_start_period: Optional[str] = None
    health_startup_cmd: Optional[str] = None
    health_startup_interval: Optional[str] = None
    health_startup_retries: Optional[int] = None
    health_startup_success: Optional[int] = None
    health_startup_timeout: Optional[str] = None
    health_timeout: Optional[str] = None
    hostname: Optional[str] = None
    ip: Optional[str] = None
    ip6: Optional[str] = None
    label: List[str] = field(default_factory=list)
    log_driver: Optional[str] = None
    mount: List[Mount] = field(default_factory=list)
    network: List[str] = field(default_factory=list)
    sdnotify: Optional[Notify] = None
    pids_limit: Optional[int] = None
    pod: Optional[str] = None
    publish: List[str] = field(default_factory=list)
    pull: Optional[PullPolicy] = None
    read_only: bool = False
    read_only_tmpfs: bool = True
    restart: Optional[RestartPolicy] = None
    rootfs: Optional[Rootfs] = None
    init: bool = False
    secret: List[str] = field(default_factory=list)
    security_opt: List[SecurityOpt] = field(default_factory=list)
    shm_size: Optional[str] = None
    stop_timeout: Optional[int] = None
    subgidname: Optional[str] = None
    subuidname: Optional[str] = None
    sysctl: List[str] = field(default_factory=list)
    tz: Optional[str] = None
    tmpfs: List[str] = field(default_factory=list)
    uidmap: List[str] = field(default_factory=list)
    ulimit: List[str] = field(default_factory=list)
    user: Optional[str] = None
    userns: Optional[str] = None
    volume: List[VolumeSpec] = field(default_factory=list)
    workdir: Optional[str] = None
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "RunOptions":
        """Parse the arguments following ``podman run``."""
        ns = _run_parser().parse(argv)
        values = {}
        for name in cls.__dataclass_fields__:
            if name == "global_options":
                continue
            value = getattr(ns, name, None)
            if value is not None:
                values[name] = value
        return cls(global_options=GlobalOptions.from_namespace(ns), **values)

    def default_name(self) -> str:
        return self.to_container().default_name()

    def to_container(self) -> Container:
        """Map the options to the ``[Container]`` section."""
        auto_update, labels = AutoUpdate.extract(self.label)

        user, group = self.user, None
        if user and ":" in user:
            user, group = user.split(":", 1)

        podman_args = list(self.podman_args)
        notify = None
        if self.sdnotify in (Notify.CONTAINER, Notify.HEALTHY):
            notify = self.sdnotify
        elif self.sdnotify == Notify.IGNORE:
            podman_args.append(format_arg("--sdnotify", Notify.IGNORE.value))

        container = Container(
            add_capability=list(self.cap_add),
            add_device=list(self.device),
            annotation=list(self.annotation),
            auto_update=auto_update.value if auto_update else None,
            container_name=self.name,
            dns=list(self.dns),
            dns_option=list(self.dns_option),
            dns_search=list(self.dns_search),
            drop_capability=list(self.cap_drop),
            entrypoint=self.entrypoint,
            environment=list(self.env),
            environment_file=list(self.env_file),
            environment_host=self.env_host,
            exec=command_join(self.command) if self.command else None,
            expose_host_port=list(self.expose),
            gid_map=list(self.gidmap),
            group=group,
            group_add=list(self.group_add),
            health_cmd=self.health_cmd,
            health_interval=self.health_interval,
            health_on_failure=self.health_on_failure,
            health_retries=self.health_retries,
            health_start_period=self.health_start_period,
            health_startup_cmd=self.health_startup_cmd,
            health_startup_interval=self.health_startup_interval,
            health_startup_retries=self.health_startup_retries,
            health_startup_success=self.health_startup_success,
            health_startup_timeout=self.health_startup_timeout,
            health_timeout=self.health_timeout,
            host_name=self.hostname,
            image=self.image,
            ip=self.ip,
            ip6=self.ip6,
            label=labels,
            log_driver=self.log_driver,
            mount=list(self.mount),
            network=list(self.network),
            notify=notify,
            pids_limit=self.pids_limit,
            publish_port=list(self.publish),
            pull=self.pull,
            read_only=self.read_only,
            read_only_tmpfs=None if self.read_only_tmpfs else False,
            rootfs=self.rootfs,
            run_init=self.init,
            secret=list(self.secret),
            shm_size=self.shm_size,
            stop_timeout=self.stop_timeout,
            sub_gid_map=self.subgidname,
            sub_uid_map=self.subuidname,
            sysctl=list(self.sysctl),
            timezone=self.tz,
            tmpfs=list(self.tmpfs),
            uid_map=list(self.uidmap),
            ulimit=list(self.ulimit),
            user=user,
            user_ns=self.userns,
            volume=list(self.volume),
            working_dir=self.workdir,
        )
        podman_args.extend(apply_security_opts(container, self.security_opt))
        if self.pod:
            podman_args.append(format_arg("--pod", self.pod))
        container.podman_args = podman_args
        return container

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
    ) -> QuadletFile:
        container = self.to_container()
        return context.new_file(
            name or container.default_name(),
            container,
            unit=unit,
            service=Service(restart=self.restart),
            globals=self.global_options.to_globals(),
        )


def apply_security_opts(container: Container, opts: Sequence[SecurityOpt]) -> List[str]:
    """Set the container keys for security options; return the rest as arguments."""
    args = []
    for opt in opts:
        kind = opt.kind
        if kind in (SecurityOptKind.APPARMOR, SecurityOptKind.LABEL_USER,
                    SecurityOptKind.LABEL_ROLE, SecurityOptKind.PROC_OPTS):
            args.append(format_arg("--security-opt", str(opt)))
        elif kind == SecurityOptKind.LABEL_TYPE:
            container.security_label_type = opt.value
        elif kind == SecurityOptKind.LABEL_LEVEL:
            container.security_label_level = opt.value
        elif kind == SecurityOptKind.LABEL_FILETYPE:
            container.security_label_file_type = opt.value
        elif kind == SecurityOptKind.LABEL_DISABLE:
            container.security_label_disable = True
        elif kind == SecurityOptKind.LABEL_NESTED:
            container.security_label_nested = True
        elif kind == SecurityOptKind.MASK:
            container.mask.extend(p for p in opt.value.split(":") if p)
        elif kind == SecurityOptKind.NO_NEW_PRIVILEGES:
            container.no_new_privileges = True
        elif kind == SecurityOptKind.SECCOMP:
            container.seccomp_profile = opt.value
        elif kind == SecurityOptKind.UNMASK:
            paths = [p for p in opt.value.split(":") if p]
            if "ALL" in paths or "ALL" in container.unmask:
                container.unmask = ["ALL"]
            else:
                container.unmask.extend(paths)
    return args


def _pod_parser() -> CommandParser:
    parser = CommandParser("podman pod create")
    add_global_args(parser)
    add = parser.add_argument
    add("--add-host", action="append")
    add("--dns", action="append", type=checked(parse_dns, "dns"))
    add("--dns-option", action="append")
    add("--dns-search", action="append")
    add("--infra-conmon-pidfile")
    add("--name")
    add("--network", "--net", action="append")
    add("--network-alias", action="append")
    add("-p", "--publish", action="append")
    add("--pod-id-file")
    add("-v", "--volume", action="append", type=checked(VolumeSpec.parse, "volume"))

    for flags in (
        ("--cgroup-parent",), ("--cpus",), ("--cpuset-cpus",), ("--device",),
        ("--device-read-bps",), ("--exit-policy",), ("--gidmap",),
        ("--gpus",), ("--hostname",), ("--infra-command",), ("--infra-image",),
        ("--infra-name",), ("--ip",), ("--ip6",), ("-l", "--label"),
        ("--label-file",), ("--mac-address",), ("-m", "--memory"),
        ("--memory-swap",), ("--pid",), ("--restart",), ("--security-opt",),
        ("--share",), ("--share-parent",), ("--shm-size",),
        ("--shm-size-systemd",), ("--subgidname",), ("--subuidname",),
        ("--sysctl",), ("--uidmap",), ("--userns",), ("--uts",),
        ("--volumes-from",),
    ):
        parser.passthrough(*flags)
    parser.passthrough("--infra", type=checked(boolean, "boolean"))
    parser.passthrough("--blkio-weight", type=int_range(10, 1000))
    parser.passthrough("--no-hosts", value=False)
    parser.discard("--replace")
    add("pod_name", nargs="?")
    return parser


@dataclass
class PodCreateOptions:
    """Options of ``podman pod create``."""
    name: Optional[str] = None
    add_host: List[str] = field(default_factory=list)
    dns: List[str] = field(default_factory=list)
    dns_option: List[str] = field(default_factory=list)
    dns_search: List[str] = field(default_factory=list)
    infra_conmon_pidfile: Optional[str] = None
    network: List[str] = field(default_factory=list)
    network_alias: List[str] = field(default_factory=list)
    publish: List[str] = field(default_factory=list)
    pod_id_file: Optional[str] = None
    volume: List[VolumeSpec] = field(default_factory=list)
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "PodCreateOptions":
        """Parse the arguments following ``podman pod create``."""
        ns = _pod_parser().parse(argv)
        if ns.name and ns.pod_name and ns.name != ns.pod_name:
            raise ParseError("--name", ns.name, f"conflicts with pod name '{ns.pod_name}'")
        return cls(
            name=ns.name or ns.pod_name,
            add_host=ns.add_host or [],
            dns=ns.dns or [],
            dns_option=ns.dns_option or [],
            dns_search=ns.dns_search or [],
            infra_conmon_pidfile=ns.infra_conmon_pidfile,
            network=ns.network or [],
            network_alias=ns.network_alias or [],
            publish=ns.publish or [],
            pod_id_file=ns.pod_id_file,
            volume=ns.volume or [],
            podman_args=ns.podman_args or [],
            global_options=GlobalOptions.from_namespace(ns),
        )

    def to_pod(
        self,
        ignore_infra_conmon_pidfile: bool = False,
        ignore_pod_id_file: bool = False,
    ) -> Pod:
        if self.infra_conmon_pidfile and not ignore_infra_conmon_pidfile:
            raise UnsupportedOptionError(
                "--infra-conmon-pidfile", "podman pod create",
                "it is set by quadlet; ignore it with --ignore-infra-conmon-pidfile",
            )
        if self.pod_id_file and not ignore_pod_id_file:
            raise UnsupportedOptionError(
                "--pod-id-file", "podman pod create",
                "it is set by quadlet; ignore it with --ignore-pod-id-file",
            )
        return Pod(
            add_host=list(self.add_host),
            dns=list(self.dns),
            dns_option=list(self.dns_option),
            dns_search=list(self.dns_search),
            network=list(self.network),
            network_alias=list(self.network_alias),
            podman_args=list(self.podman_args),
            publish_port=list(self.publish),
            volume=list(self.volume),
        )

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
        ignore_infra_conmon_pidfile: bool = False,
        ignore_pod_id_file: bool = False,
    ) -> QuadletFile:
        pod = self.to_pod(ignore_infra_conmon_pidfile, ignore_pod_id_file)
        name = name or self.name
        if not name:
            raise ParseError(None, None, "podman pod create: a pod name is required")
        return context.new_file(name, pod, unit=unit, globals=self.global_options.to_globals())


def _kube_parser() -> CommandParser:
    parser = CommandParser("podman kube play")
    add_global_args(parser)
    add = parser.add_argument
    add("--annotation", action="append")
    add("--configmap", action="append", type=comma_list)
    add("--log-driver")
    add("--network", "--net", action="append")
    add("-p", "--publish", action="append")
    add("--userns")
    for flags in (
        ("--authfile",), ("--cert-dir",), ("--context-dir",), ("--creds",),
        ("--ip",), ("--log-opt",), ("--mac-address",), ("--no-hosts",),
        ("--seccomp-profile-root",), ("--wait",),
    ):
        parser.passthrough(*flags)
    parser.passthrough("--build", type=checked(boolean, "boolean"))
    parser.passthrough("--start", type=checked(boolean, "boolean"))
    parser.passthrough("--tls-verify", type=checked(boolean, "boolean"))
    parser.passthrough("-q", "--quiet", value=False)
    parser.discard("--replace")
    add("file")
    return parser


@dataclass
class KubePlayOptions:
    """Options of ``podman kube play``."""
    file: str
    annotation: List[str] = field(default_factory=list)
    configmap: List[str] = field(default_factory=list)
    log_driver: Optional[str] = None
    network: List[str] = field(default_factory=list)
    publish: List[str] = field(default_factory=list)
    userns: Optional[str] = None
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "KubePlayOptions":
        """Parse the arguments following ``podman kube play``."""
        ns = _kube_parser().parse(argv)
        return cls(
            file=ns.file,
            annotation=ns.annotation or [],
            configmap=[item for items in (ns.configmap or []) for item in items],
            log_driver=ns.log_driver,
            network=ns.network or [],
            publish=ns.publish or [],
            userns=ns.userns,
            podman_args=ns.podman_args or [],
            global_options=GlobalOptions.from_namespace(ns),
        )

    def to_kube(self) -> Kube:
        auto_update = []
        podman_args = []
        for annotation in self.annotation:
            key, _, value = annotation.partition("=")
            prefix = AUTO_UPDATE_LABEL
            if key == prefix:
                auto_update.append(value)
            elif key.startswith(prefix + "/"):
                auto_update.append(f"{key[len(prefix) + 1:]}/{value}")
            else:
                podman_args.append(format_arg("--annotation", annotation))
        return Kube(
            auto_update=auto_update,
            config_map=list(self.configmap),
            log_driver=self.log_driver,
            network=list(self.network),
            podman_args=podman_args + list(self.podman_args),
            publish_port=list(self.publish),
            user_ns=self.userns,
            yaml=self.file,
        )

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
    ) -> QuadletFile:
        kube = self.to_kube()
        return context.new_file(
            name or kube.default_name(), kube, unit=unit,
            globals=self.global_options.to_globals(),
        )


def _network_parser() -> CommandParser:
    parser = CommandParser("podman network create")
    add_global_args(parser)
    add = parser.add_argument
    add("--disable-dns", action="store_true")
    add("--dns", action="append", type=checked(parse_dns, "dns"))
    add("-d", "--driver")
    add("--gateway", action="append")
    add("--internal", action="store_true")
    add("--ipam-driver")
    add("--ip-range", action="append")
    add("--ipv6", action="store_true")
    add("--label", action="append")
    add("-o", "--opt", action="append")
    add("--subnet", action="append")
    parser.passthrough("--interface-name")
    parser.passthrough("--route")
    parser.passthrough("--ignore", value=False)
    add("name", nargs="?")
    return parser


@dataclass
class NetworkCreateOptions:
    """Options of ``podman network create``."""
    name: Optional[str] = None
    disable_dns: bool = False
    dns: List[str] = field(default_factory=list)
    driver: Optional[str] = None
    gateway: List[str] = field(default_factory=list)
    internal: bool = False
    ipam_driver: Optional[str] = None
    ip_range: List[str] = field(default_factory=list)
    ipv6: bool = False
    label: List[str] = field(default_factory=list)
    opt: List[str] = field(default_factory=list)
    subnet: List[str] = field(default_factory=list)
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "NetworkCreateOptions":
        """Parse the arguments following ``podman network create``."""
        ns = _network_parser().parse(argv)
        return cls(
            name=ns.name,
            disable_dns=ns.disable_dns,
            dns=ns.dns or [],
            driver=ns.driver,
            gateway=ns.gateway or [],
            internal=ns.internal,
            ipam_driver=ns.ipam_driver,
            ip_range=ns.ip_range or [],
            ipv6=ns.ipv6,
            label=ns.label or [],
            opt=ns.opt or [],
            subnet=ns.subnet or [],
            podman_args=ns.podman_args or [],
            global_options=GlobalOptions.from_namespace(ns),
        )

    def to_network(self) -> Network:
        return Network(
            disable_dns=self.disable_dns,
            dns=list(self.dns),
            driver=self.driver,
            gateway=list(self.gateway),
            internal=self.internal,
            ipam_driver=self.ipam_driver,
            ip_range=list(self.ip_range),
            ipv6=self.ipv6,
            label=list(self.label),
            options=",".join(self.opt) or None,
            podman_args=list(self.podman_args),
            subnet=list(self.subnet),
        )

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
    ) -> QuadletFile:
        name = name or self.name
        if not name:
            raise ParseError(None, None, "podman network create: a network name is required")
        return context.new_file(
            name, self.to_network(), unit=unit, globals=self.global_options.to_globals()
        )


def apply_volume_opt(volume: Volume, opt: str) -> None:
    """Apply one volume driver option (``-o``) to a volume section."""
    key, sep, value = opt.partition("=")
    if opt == "copy":
        volume.copy = True
    elif opt == "nocopy":
        volume.copy = False
    elif sep and key == "type":
        volume.type = value
    elif sep and key == "device":
        volume.device = value
    elif sep and key == "o":
        options = [volume.options] if volume.options else []
        for option in value.split(","):
            name, has_value, option_value = option.partition("=")
            if has_value and name == "uid":
                volume.user = option_value
            elif has_value and name == "gid":
                volume.group = option_value
            elif option:
                options.append(option)
        volume.options = ",".join(options) or None
    else:
        raise ValueError(f"'{opt}' is not a valid volume driver option")


def _volume_opt(value: str) -> str:
    apply_volume_opt(Volume(), value)
    return value


def _volume_parser() -> CommandParser:
    parser = CommandParser("podman volume create")
    add_global_args(parser)
    add = parser.add_argument
    add("-l", "--label", action="append")
    add("-o", "--opt", action="append", type=checked(_volume_opt, "volume option"))
    parser.passthrough("-d", "--driver")
    parser.passthrough("--ignore", value=False)
    add("name")
    return parser


@dataclass
class VolumeCreateOptions:
    """Options of ``podman volume create``."""
    name: str
    label: List[str] = field(default_factory=list)
    opt: List[str] = field(default_factory=list)
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "VolumeCreateOptions":
        """Parse the arguments following ``podman volume create``."""
        ns = _volume_parser().parse(argv)
        return cls(
            name=ns.name,
            label=ns.label or [],
            opt=ns.opt or [],
            podman_args=ns.podman_args or [],
            global_options=GlobalOptions.from_namespace(ns),
        )

    def to_volume(self) -> Volume:
        volume = Volume(label=list(self.label), podman_args=list(self.podman_args))
        for opt in self.opt:
            apply_volume_opt(volume, opt)
        return volume

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
    ) -> QuadletFile:
        return context.new_file(
            name or self.name, self.to_volume(), unit=unit,
            globals=self.global_options.to_globals(),
        )


def _build_pull(value: str) -> PullPolicy:
    # podman build also accepts --pull=true|false
    if value == "true":
        return PullPolicy.ALWAYS
    if value == "false":
        return PullPolicy.MISSING
    return PullPolicy(value)


def _build_parser() -> CommandParser:
    parser = CommandParser("podman build")
    # build --ssh exposes an agent socket, unlike the global ssh mode
    add_global_args(parser, exclude=("--ssh",))
    add = parser.add_argument
    add("--annotation", action="append")
    add("--arch")
    add("--authfile")
    add("--dns", action="append", type=checked(parse_dns, "dns"))
    add("--dns-option", action="append")
    add("--dns-search", action="append")
    add("--env", action="append")
    add("-f", "--file")
    add("--force-rm", type=checked(boolean, "boolean"))
    add("--group-add", action="append")
    add("--label", action="append")
    add("--network", "--net", action="append")
    add("--pull", type=checked(_build_pull, "pull policy"))
    add("--secret", action="append", type=checked(BuildSecret.parse, "secret"))
    add("-t", "--tag", action="append")
    add("--target")
    add("--tls-verify", type=checked(boolean, "boolean"))
    add("--variant")
    add("-v", "--volume", action="append", type=checked(VolumeSpec.parse, "volume"))

    for flags in (
        ("--add-host",), ("--build-arg",), ("--build-arg-file",),
        ("--build-context",), ("--cache-from",), ("--cache-to",),
        ("--cache-ttl",), ("--cap-add",), ("--cap-drop",), ("--cert-dir",),
        ("--cgroup-parent",), ("--cgroupns",), ("--cpu-period",),
        ("--cpu-quota",), ("--cpuset-cpus",), ("--cpuset-mems",),
        ("--creds",), ("--decryption-key",), ("--device",), ("--format",),
        ("--from",), ("--ignorefile",), ("--iidfile",), ("--ipc",),
        ("--isolation",), ("--jobs",), ("--layer-label",), ("--logfile",),
        ("--manifest",), ("-m", "--memory"), ("--memory-swap",), ("--os",),
        ("--os-feature",), ("--os-version",), ("-o", "--output"), ("--pid",),
        ("--platform",), ("--retry",), ("--retry-delay",),
        ("--security-opt",), ("--shm-size",),
        ("--sign-by",), ("--ssh",), ("--timestamp",), ("--ulimit",),
        ("--unsetenv",), ("--userns",), ("--userns-gid-map",),
        ("--userns-uid-map",), ("--uts",),
    ):
        parser.passthrough(*flags)
    parser.passthrough("-c", "--cpu-shares", type=checked(non_negative_int, "shares"))
    for flag in ("--http-proxy", "--identity-label", "--layers", "--rm", "--skip-unused-stages"):
        parser.passthrough(flag, type=checked(boolean, "boolean"))
    for flags in (
        ("--all-platforms",), ("--compress",), ("--disable-content-trust",),
        ("--no-cache",), ("--no-hostname",), ("--no-hosts",),
        ("--omit-history",), ("-q", "--quiet"), ("--squash",),
        ("--squash-all",), ("--stdin",),
    ):
        parser.passthrough(*flags, value=False)
    add("context", nargs="?")
    return parser


@dataclass
class BuildOptions:
    """Options of ``podman build``."""
    tag: str
    context: Optional[str] = None
    file: Optional[str] = None
    annotation: List[str] = field(default_factory=list)
    arch: Optional[str] = None
    authfile: Optional[str] = None
    dns: List[str] = field(default_factory=list)
    dns_option: List[str] = field(default_factory=list)
    dns_search: List[str] = field(default_factory=list)
    env: List[str] = field(default_factory=list)
    force_rm: bool = True
    group_add: List[str] = field(default_factory=list)
    label: List[str] = field(default_factory=list)
    network: List[str] = field(default_factory=list)
    pull: Optional[PullPolicy] = None
    secret: List[BuildSecret] = field(default_factory=list)
    target: Optional[str] = None
    tls_verify: Optional[bool] = None
    variant: Optional[str] = None
    volume: List[VolumeSpec] = field(default_factory=list)
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "BuildOptions":
        """Parse the arguments following ``podman build``."""
        ns = _build_parser().parse(argv)
        tags = ns.tag or []
        if len(tags) != 1:
            raise ParseError("--tag", None, "exactly one image tag is required")
        if not ns.context and not ns.file:
            raise ParseError(None, None, "podman build: a build context or --file is required")
        return cls(
            tag=tags[0],
            context=ns.context,
            file=ns.file,
            annotation=ns.annotation or [],
            arch=ns.arch,
            authfile=ns.authfile,
            dns=ns.dns or [],
            dns_option=ns.dns_option or [],
            dns_search=ns.dns_search or [],
            env=ns.env or [],
            force_rm=True if ns.force_rm is None else ns.force_rm,
            group_add=ns.group_add or [],
            label=ns.label or [],
            network=ns.network or [],
            pull=ns.pull,
            secret=ns.secret or [],
            target=ns.target,
            tls_verify=ns.tls_verify,
            variant=ns.variant,
            volume=ns.volume or [],
            podman_args=ns.podman_args or [],
            global_options=GlobalOptions.from_namespace(ns),
        )

    def to_build(self) -> Build:
        return Build(
            annotation=list(self.annotation),
            arch=self.arch,
            auth_file=self.authfile,
            dns=list(self.dns),
            dns_option=list(self.dns_option),
            dns_search=list(self.dns_search),
            environment=list(self.env),
            file=self.file,
            force_rm=None if self.force_rm else False,
            group_add=list(self.group_add),
            image_tag=self.tag,
            label=list(self.label),
            network=list(self.network),
            podman_args=list(self.podman_args),
            pull=self.pull,
            secret=list(self.secret),
            set_working_directory=self.context,
            target=self.target,
            tls_verify=self.tls_verify,
            variant=self.variant,
            volume=list(self.volume),
        )

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
    ) -> QuadletFile:
        build = self.to_build()
        return context.new_file(
            name or build.default_name(), build, unit=unit,
            globals=self.global_options.to_globals(),
        )


def _image_parser() -> CommandParser:
    parser = CommandParser("podman image pull")
    add_global_args(parser)
    add = parser.add_argument
    add("-a", "--all-tags", action="store_true")
    add("--arch")
    add("--authfile")
    add("--cert-dir")
    add("--creds")
    add("--decryption-key", type=checked(DecryptionKey.parse, "decryption key"))
    add("--os")
    add("--platform")
    add("--tls-verify", type=checked(boolean, "boolean"))
    add("--variant")
    parser.passthrough("--retry", type=checked(non_negative_int, "attempts"))
    parser.passthrough("--retry-delay")
    parser.passthrough("-q", "--quiet", value=False)
    add("image")
    return parser


@dataclass
class ImagePullOptions:
    """Options of ``podman image pull``."""
    image: str
    all_tags: bool = False
    arch: Optional[str] = None
    authfile: Optional[str] = None
    cert_dir: Optional[str] = None
    creds: Optional[str] = None
    decryption_key: Optional[DecryptionKey] = None
    os: Optional[str] = None
    tls_verify: Optional[bool] = None
    variant: Optional[str] = None
    podman_args: List[str] = field(default_factory=list)
    global_options: GlobalOptions = field(default_factory=GlobalOptions)

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "ImagePullOptions":
        """Parse the arguments following ``podman image pull``."""
        ns = _image_parser().parse(argv)
        os_name, arch, variant = ns.os, ns.arch, ns.variant
        if ns.platform:
            if os_name or arch:
                raise ParseError("--platform", ns.platform, "conflicts with --os and --arch")
            parts = ns.platform.split("/")
            if len(parts) not in (2, 3) or not all(parts):
                raise ParseError("--platform", ns.platform, "expected OS/ARCH[/VARIANT]")
            os_name, arch = parts[0], parts[1]
            if len(parts) == 3:
                variant = parts[2]
        return cls(
            image=ns.image,
            all_tags=ns.all_tags,
            arch=arch,
            authfile=ns.authfile,
            cert_dir=ns.cert_dir,
            creds=ns.creds,
            decryption_key=ns.decryption_key,
            os=os_name,
            tls_verify=ns.tls_verify,
            variant=variant,
            podman_args=ns.podman_args or [],
            global_options=GlobalOptions.from_namespace(ns),
        )

    def to_image(self) -> Image:
        return Image(
            all_tags=self.all_tags,
            arch=self.arch,
            auth_file=self.authfile,
            cert_dir=self.cert_dir,
            creds=self.creds,
            decryption_key=self.decryption_key,
            image=self.image,
            os=self.os,
            podman_args=list(self.podman_args),
            tls_verify=self.tls_verify,
            variant=self.variant,
        )

    def to_quadlet_file(
        self,
        context: ConversionContext,
        name: Optional[str] = None,
        unit: Optional[Unit] = None,
    ) -> QuadletFile:
        image = self.to_image()
        return context.new_file(
            name or image.default_name(), image, unit=unit,
            globals=self.global_options.to_globals(),
        )


CommandOptions = Union[
    RunOptions,
    PodCreateOptions,
    KubePlayOptions,
    NetworkCreateOptions,
    VolumeCreateOptions,
    BuildOptions,
    ImagePullOptions,
]

# (command words, options model)
_COMMANDS: Tuple[Tuple[Tuple[str, ...], type], ...] = (
    (("container", "run"), RunOptions),
    (("container", "create"), RunOptions),
    (("run",), RunOptions),
    (("create",), RunOptions),
    (("pod", "create"), PodCreateOptions),
    (("kube", "play"), KubePlayOptions),
    (("play", "kube"), KubePlayOptions),
    (("network", "create"), NetworkCreateOptions),
    (("volume", "create"), VolumeCreateOptions),
    (("image", "build"), BuildOptions),
    (("build",), BuildOptions),
    (("image", "pull"), ImagePullOptions),
    (("pull",), ImagePullOptions),
)

COMMAND_WORDS = sorted({words[0] for words, _ in _COMMANDS})


def parse_podman_command(argv: Sequence[str]) -> CommandOptions:
    """
    Parse a podman command line (without the leading ``podman``).

    Global options may appear before the subcommand.
    """
    global_tokens, rest = split_globals(argv, COMMAND_WORDS)
    for words, model in _COMMANDS:
        if tuple(rest[: len(words)]) == words:
            logger.debug(f"Parsing podman {' '.join(words)}")
            return model.parse(global_tokens + list(rest[len(words):]))
    raise ParseError(None, " ".join(rest[:2]), "unsupported podman command")
