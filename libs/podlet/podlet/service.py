"""
Compose service conversion.

A ``ComposeService`` wraps one entry of a Compose document's ``services``
mapping. It is converted by building the same option models the podman
command parsers produce (``RunOptions`` and ``BuildOptions``), so a service
and the equivalent ``podman run`` command render identically.
"""

import json
import logging
import re
import shlex
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ParseError, PodletError, UnsupportedOptionError
from .fields import format_arg
from .options import BuildOptions, GlobalOptions, RunOptions
from .types import Unit
from .values import (
    Device,
    Mount,
    PullPolicy,
    RestartPolicy,
    SecurityOpt,
    VolumeSpec,
    is_host_path,
    parse_pids_limit,
)

logger = logging.getLogger(__name__)


SERVICE_KEYS = frozenset({
    "annotations", "attach", "blkio_config", "build", "cap_add", "cap_drop",
    "cgroup", "cgroup_parent", "command", "container_name", "cpu_period",
    "cpu_quota", "cpu_rt_period", "cpu_rt_runtime", "cpu_shares", "cpus",
    "cpuset", "depends_on", "device_cgroup_rules", "devices", "dns",
    "dns_opt", "dns_search", "entrypoint", "env_file", "environment",
    "expose", "extra_hosts", "group_add", "healthcheck", "hostname",
    "image", "init", "ipc", "labels", "logging", "mac_address",
    "mem_limit", "mem_reservation", "mem_swappiness", "memswap_limit",
    "network_mode", "networks", "oom_kill_disable", "oom_score_adj", "pid",
    "pids_limit", "platform", "ports", "privileged", "pull_policy",
    "read_only", "restart", "runtime", "secrets", "security_opt",
    "shm_size", "stdin_open", "stop_grace_period", "stop_signal",
    "storage_opt", "sysctls", "tmpfs", "tty", "ulimits", "user",
    "userns_mode", "uts", "volumes", "working_dir",
})

# (compose key, podman flag) pairs carried through to PodmanArgs
_PODMAN_ARG_KEYS = (
    ("cpu_shares", "--cpu-shares"),
    ("cpus", "--cpus"),
    ("cpuset", "--cpuset-cpus"),
    ("cgroup", "--cgroupns"),
    ("cgroup_parent", "--cgroup-parent"),
    ("ipc", "--ipc"),
    ("uts", "--uts"),
    ("mac_address", "--mac-address"),
    ("mem_limit", "--memory"),
    ("mem_reservation", "--memory-reservation"),
    ("mem_swappiness", "--memory-swappiness"),
    ("memswap_limit", "--memory-swap"),
    ("oom_score_adj", "--oom-score-adj"),
    ("pid", "--pid"),
    ("platform", "--platform"),
    ("stop_signal", "--stop-signal"),
)

# durations podman expects in microseconds
_PODMAN_ARG_MICROSECONDS = (
    ("cpu_period", "--cpu-period"),
    ("cpu_quota", "--cpu-quota"),
    ("cpu_rt_runtime", "--cpu-rt-runtime"),
    ("cpu_rt_period", "--cpu-rt-period"),
)

_PODMAN_ARG_FLAGS = (
    ("oom_kill_disable", "--oom-kill-disable"),
    ("privileged", "--privileged"),
    ("stdin_open", "--interactive"),
    ("tty", "--tty"),
)

_NETWORK_MODES = ("none", "host", "private")
_NETWORK_MODE_PREFIXES = ("bridge", "container:", "ns:", "slirp4netns", "pasta")

_PULL_POLICIES = {
    "always": PullPolicy.ALWAYS,
    "never": PullPolicy.NEVER,
    "missing": PullPolicy.MISSING,
    "if_not_present": PullPolicy.MISSING,
}

_BUILD_KEYS = frozenset({
    "context", "dockerfile", "args", "ssh", "cache_from", "cache_to",
    "additional_contexts", "extra_hosts", "isolation", "labels", "no_cache",
    "pull", "network", "shm_size", "target", "tags", "ulimits", "platforms",
})

_DURATION = re.compile(r"(\d+(?:\.\d+)?)(us|ms|s|m|h)")
_DURATION_UNITS = {"us": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(duration: Any) -> float:
    """Parse a Compose duration (``1m30s``, ``500ms``, ``10``) to seconds."""
    if isinstance(duration, bool):
        raise ValueError(f"invalid duration '{duration}'")
    if isinstance(duration, (int, float)):
        return float(duration)
    text = str(duration).strip()
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return float(text)

    total = 0.0
    position = 0
    for match in _DURATION.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if not text or position != len(text):
        raise ValueError(f"invalid duration '{duration}'")
    return total


def format_duration(duration: Any) -> str:
    """Validate a Compose duration and return it in podman's notation."""
    parse_duration(duration)
    if isinstance(duration, (int, float)):
        return f"{duration}s"
    return str(duration).strip()


def scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def list_or_map(value: Any, separator: str = "=") -> List[str]:
    """Flatten a Compose list-or-mapping attribute into ``key=value`` items."""
    if not value:
        return []
    if isinstance(value, dict):
        items = []
        for key, item in value.items():
            if item is None:
                items.append(str(key))
            else:
                items.append(f"{key}{separator}{scalar(item)}")
        return items
    return [scalar(item) for item in value]


def item_or_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [scalar(item) for item in value]
    return [scalar(value)]


def split_command(value: Any) -> List[str]:
    """A Compose command: a list as is, a string split as a shell would."""
    if value is None:
        return []
    if isinstance(value, list):
        return [scalar(item) for item in value]
    return shlex.split(str(value))


def cache_image(value: str) -> str:
    """Image reference of a ``cache_from``/``cache_to`` entry."""
    if not value.startswith("type="):
        return value
    options = dict(item.partition("=")[::2] for item in value.split(","))
    if options.get("type") != "registry":
        raise ValueError("only the 'registry' cache type is supported")
    unknown = set(options) - {"type", "ref"}
    if unknown or "ref" not in options:
        raise ValueError("cache options other than 'ref' are not supported")
    return options["ref"]


def _ulimits(value: Dict[str, Any]) -> List[str]:
    ulimits = []
    for name, limit in (value or {}).items():
        if isinstance(limit, dict):
            ulimits.append(f"{name}={limit['soft']}:{limit['hard']}")
        else:
            ulimits.append(f"{name}={limit}")
    return ulimits


def _device_rate(value_key: str) -> Callable[[Dict[str, Any]], str]:
    def parse(device: Dict[str, Any]) -> str:
        return f"{device['path']}:{device[value_key]}"
    return parse


def _extra_hosts(value: Any) -> List[str]:
    hosts = []
    if isinstance(value, dict):
        for host, addresses in value.items():
            for address in item_or_list(addresses):
                hosts.append(f"{host}:{address}")
        return hosts
    for entry in value or []:
        host, sep, address = str(entry).partition("=")
        hosts.append(f"{host}:{address}" if sep else str(entry))
    return hosts


def _octal(mode: Any) -> str:
    return f"{mode:04o}" if isinstance(mode, int) else str(mode)


def compose_security_opt(value: str) -> Optional[SecurityOpt]:
    """Parse a Compose ``security_opt`` entry, which may use ``:`` for ``=``."""
    if value in ("no-new-privileges:false", "no-new-privileges=false"):
        return None
    if value == "no-new-privileges:true":
        value = "no-new-privileges"
    colon = value.find(":")
    equals = value.find("=")
    if colon != -1 and (equals == -1 or colon < equals):
        value = value.replace(":", "=", 1)
    return SecurityOpt.parse(value)


class ComposeService:
    """One service of a Compose document."""

    def __init__(self, name: str, data: Optional[Dict[str, Any]] = None):
        if data is not None and not isinstance(data, dict):
            raise ParseError(f"services.{name}", None, "a service must be a mapping")
        self.name = name
        self.data: Dict[str, Any] = dict(data or {})

    @property
    def owner(self) -> str:
        return f"service '{self.name}'"

    @property
    def builds(self) -> bool:
        return self.data.get("build") is not None

    def parse_attribute(self, attribute: str, parser: Callable[[Any], Any], value: Any) -> Any:
        try:
            return parser(value)
        except (ValueError, KeyError, TypeError) as e:
            if isinstance(e, PodletError):
                raise
            reason = f"missing '{e.args[0]}'" if isinstance(e, KeyError) else str(e)
            raise ParseError(f"services.{self.name}.{attribute}", value, reason) from None

    def _unsupported(self, attribute: str, reason: str = "") -> UnsupportedOptionError:
        return UnsupportedOptionError(attribute, self.owner, reason)

    def references(self) -> List[Tuple[str, str]]:
        """``(kind, name)`` for every top-level resource this service uses."""
        refs: List[Tuple[str, str]] = []
        networks = self.data.get("networks")
        if isinstance(networks, (dict, list)):
            refs.extend(("network", str(n)) for n in networks)

        for volume in self.data.get("volumes") or []:
            source = None
            if isinstance(volume, str):
                parts = volume.split(":")
                if len(parts) > 1 and parts[0] and not is_host_path(parts[0]):
                    source = parts[0]
            elif isinstance(volume, dict) and volume.get("type", "volume") == "volume":
                source = volume.get("source")
            if source:
                refs.append(("volume", str(source)))

        for kind, key in (("secret", "secrets"), ("config", "configs")):
            for item in self.data.get(key) or []:
                source = item.get("source") if isinstance(item, dict) else item
                if source:
                    refs.append((kind, str(source)))

        depends_on = self.data.get("depends_on") or []
        refs.extend(("service", str(n)) for n in depends_on)
        return refs

    def check_supported(self) -> List[PodletError]:
        """Errors for every attribute with no quadlet equivalent."""
        errors: List[PodletError] = []
        for key in self.data:
            if str(key).startswith("x-"):
                errors.append(self._unsupported(key, "compose extensions are not supported"))
            elif key not in SERVICE_KEYS:
                errors.append(self._unsupported(key))
        if self.data.get("attach") is False:
            errors.append(self._unsupported("attach"))
        if self.data.get("image") and self.builds:
            errors.append(self._unsupported("build", "'image' and 'build' cannot both be set"))
        return errors

    def restart(self) -> Optional[RestartPolicy]:
        restart = self.data.get("restart")
        if restart is None:
            return None
        return self.parse_attribute("restart", RestartPolicy.parse, str(restart))

    def dependencies(self, prefix: Optional[str] = None) -> Unit:
        """
        The ``[Unit]`` dependencies from ``depends_on``.

        Every dependency orders this unit after it; ``required: false`` gives
        a Wants= instead of Requires=, and ``restart: true`` adds BindsTo=.
        """
        depends_on = self.data.get("depends_on") or {}
        if isinstance(depends_on, list):
            depends_on = {name: None for name in depends_on}

        unit = Unit()
        for name, dependency in depends_on.items():
            dependency = dict(dependency or {})
            condition = dependency.pop("condition", "service_started")
            required = dependency.pop("required", True)
            restart = dependency.pop("restart", False)
            if dependency:
                raise self._unsupported(f"depends_on.{name}.{next(iter(dependency))}")
            if condition == "service_completed_successfully":
                raise self._unsupported(
                    f"depends_on.{name}.condition",
                    "'service_completed_successfully' has no systemd equivalent",
                )
            if condition not in ("service_started", "service_healthy"):
                raise ParseError(
                    f"services.{self.name}.depends_on.{name}.condition",
                    condition,
                    "expected service_started or service_healthy",
                )

            unit_name = f"{prefix}-{name}.service" if prefix else f"{name}.service"
            unit.after.append(unit_name)
            if required:
                unit.requires.append(unit_name)
            else:
                unit.wants.append(unit_name)
            if restart:
                unit.binds_to.append(unit_name)
        return unit

    def _healthcheck(self, run: RunOptions) -> None:
        healthcheck = dict(self.data.get("healthcheck") or {})
        if not healthcheck:
            return
        if healthcheck.pop("disable", False):
            run.health_cmd = "none"
            return

        test = healthcheck.pop("test", None)
        if isinstance(test, str):
            run.health_cmd = test
        elif test:
            kind, args = test[0], test[1:]
            if kind == "NONE":
                run.health_cmd = "none"
            elif kind == "CMD":
                run.health_cmd = json.dumps(args)
            elif kind == "CMD-SHELL":
                run.health_cmd = " ".join(args)
            else:
                raise ParseError(
                    f"services.{self.name}.healthcheck.test", kind,
                    "expected NONE, CMD or CMD-SHELL",
                )

        durations = {
            "interval": "health_interval",
            "timeout": "health_timeout",
            "start_period": "health_start_period",
            "start_interval": "health_startup_interval",
        }
        for key, attribute in durations.items():
            value = healthcheck.pop(key, None)
            if value is not None:
                setattr(run, attribute, self.parse_attribute(f"healthcheck.{key}", format_duration, value))
        retries = healthcheck.pop("retries", None)
        if retries is not None:
            run.health_retries = self.parse_attribute("healthcheck.retries", int, retries)
        if healthcheck:
            raise self._unsupported(f"healthcheck.{next(iter(healthcheck))}")

    def _port(self, port: Any) -> str:
        if not isinstance(port, dict):
            return scalar(port)
        port = dict(port)
        for key in ("name", "app_protocol", "mode"):
            if port.pop(key, None) is not None:
                raise self._unsupported(f"ports.{key}")
        target = port.pop("target", None)
        if target is None:
            raise ParseError(f"services.{self.name}.ports", None, "a long form port requires 'target'")
        published = port.pop("published", None)
        host_ip = port.pop("host_ip", None)
        protocol = port.pop("protocol", None)
        if port:
            raise self._unsupported(f"ports.{next(iter(port))}")

        text = str(target)
        if published is not None:
            text = f"{published}:{text}"
        if host_ip:
            address = f"[{host_ip}]" if ":" in str(host_ip) else host_ip
            text = f"{address}:{text}" if published is not None else f"{address}::{text}"
        if protocol:
            text = f"{text}/{protocol}"
        return text

    def _named_volume(self, source: str, volume_has_options: Dict[str, bool]) -> str:
        if volume_has_options.get(source):
            return f"{source}.volume"
        return source

    def _volumes(
        self,
        run: RunOptions,
        volume_has_options: Dict[str, bool],
    ) -> None:
        for volume in self.data.get("volumes") or []:
            if isinstance(volume, str):
                spec = self.parse_attribute("volumes", VolumeSpec.parse, volume)
                if spec.source is not None and not spec.is_host_path:
                    spec.source = self._named_volume(spec.source, volume_has_options)
                run.volume.append(spec)
                continue

            volume = dict(volume)
            volume_type = volume.pop("type", "volume")
            target = volume.pop("target", None)
            source = volume.pop("source", None)
            read_only = volume.pop("read_only", False)
            if volume.pop("consistency", None) is not None:
                raise self._unsupported("volumes.consistency")
            if volume_type in ("npipe", "cluster"):
                raise self._unsupported("volumes.type", f"'{volume_type}' volumes are not supported")
            if not target:
                raise ParseError(f"services.{self.name}.volumes", None, "a long form volume requires 'target'")

            options = ["ro"] if read_only else []
            if volume_type == "tmpfs":
                tmpfs = dict(volume.pop("tmpfs", None) or {})
                size = tmpfs.pop("size", None)
                mode = tmpfs.pop("mode", None)
                if tmpfs:
                    raise self._unsupported(f"volumes.tmpfs.{next(iter(tmpfs))}")
                if size is not None:
                    options.append(f"size={size}")
                if mode is not None:
                    options.append(f"mode={_octal(mode)}")
                run.tmpfs.append(f"{target}:{','.join(options)}" if options else str(target))
            elif volume_type == "image":
                if not source:
                    raise ParseError(f"services.{self.name}.volumes", None, "an image volume requires 'source'")
                run.mount.append(
                    Mount(type="image", options=[("source", source), ("destination", target)])
                )
            elif volume_type == "bind":
                bind = dict(volume.pop("bind", None) or {})
                propagation = bind.pop("propagation", None)
                selinux = bind.pop("selinux", None)
                bind.pop("create_host_path", None)
                if bind:
                    raise self._unsupported(f"volumes.bind.{next(iter(bind))}")
                if not source:
                    raise ParseError(f"services.{self.name}.volumes", None, "a bind mount requires 'source'")
                if selinux:
                    options.append(selinux)
                if propagation:
                    options.append(propagation)
                run.volume.append(VolumeSpec(
                    destination=target, source=source, options=",".join(options) or None,
                ))
            elif volume_type == "volume":
                options_section = dict(volume.pop("volume", None) or {})
                if options_section.pop("nocopy", False):
                    options.append("nocopy")
                if options_section:
                    raise self._unsupported(f"volumes.volume.{next(iter(options_section))}")
                if source:
                    source = self._named_volume(source, volume_has_options)
                run.volume.append(VolumeSpec(
                    destination=target, source=source, options=",".join(options) or None,
                ))
            else:
                raise ParseError(f"services.{self.name}.volumes.type", volume_type, "unknown volume type")
            if volume:
                raise self._unsupported(f"volumes.{next(iter(volume))}")

    def _networks(self) -> List[str]:
        network_mode = self.data.get("network_mode")
        networks = self.data.get("networks")
        if network_mode is not None and networks:
            raise self._unsupported("network_mode", "'network_mode' and 'networks' cannot both be set")
        if network_mode is not None:
            mode = str(network_mode)
            if mode.startswith("service:"):
                raise self._unsupported(
                    "network_mode", "'service:' is not supported, use 'container:' instead"
                )
            if mode not in _NETWORK_MODES and not mode.startswith(_NETWORK_MODE_PREFIXES):
                raise ParseError(
                    f"services.{self.name}.network_mode", mode, "not a podman network mode"
                )
            return [mode]

        if isinstance(networks, list):
            networks = {name: None for name in networks}
        result = []
        for name, options in (networks or {}).items():
            options = dict(options or {})
            items = [f"alias={alias}" for alias in options.pop("aliases", None) or []]
            for key in ("ipv4_address", "ipv6_address"):
                if options.get(key):
                    items.append(f"ip={options.pop(key)}")
                options.pop(key, None)
            if options.get("mac_address"):
                items.append(f"mac={options.pop('mac_address')}")
            if options.get("interface_name"):
                items.append(f"interface_name={options.pop('interface_name')}")
            options = {k: v for k, v in options.items() if v not in (None, [], {})}
            if options:
                raise self._unsupported(f"networks.{name}.{next(iter(options))}")
            network = f"{name}.network"
            result.append(f"{network}:{','.join(items)}" if items else network)
        return result

    def _secret(self, secret: Any) -> str:
        if not isinstance(secret, dict):
            return str(secret)
        secret = dict(secret)
        items = [str(self.parse_attribute("secrets", lambda s: s["source"], secret))]
        secret.pop("source")
        for key in ("target", "uid", "gid"):
            if secret.get(key) is not None:
                items.append(f"{key}={secret.pop(key)}")
        if secret.get("mode") is not None:
            items.append(f"mode={_octal(secret.pop('mode'))}")
        secret = {k: v for k, v in secret.items() if v is not None}
        if secret:
            raise self._unsupported(f"secrets.{next(iter(secret))}")
        return ",".join(items)

    def _env_files(self) -> List[str]:
        env_file = self.data.get("env_file")
        if env_file is None:
            return []
        entries = env_file if isinstance(env_file, list) else [env_file]
        files = []
        for entry in entries:
            if isinstance(entry, dict):
                if not entry.get("required", True):
                    raise self._unsupported("env_file.required", "optional environment files are not supported")
                files.append(str(self.parse_attribute("env_file", lambda e: e["path"], entry)))
            else:
                files.append(str(entry))
        return files

    def _device(self, device: Any) -> Device:
        if isinstance(device, dict):
            return Device(
                host=str(self.parse_attribute("devices", lambda d: d["source"], device)),
                container=device.get("target"),
                permissions=device.get("permissions"),
            )
        return Device.parse(str(device))

    def _podman_args(self) -> List[str]:
        data = self.data
        args: List[str] = []
        blkio = dict(data.get("blkio_config") or {})
        weight = blkio.pop("weight", None)
        if weight is not None:
            args.append(format_arg("--blkio-weight", weight))
        for device in blkio.pop("weight_device", None) or []:
            entry = self.parse_attribute("blkio_config.weight_device", _device_rate("weight"), device)
            args.append(format_arg("--blkio-weight-device", entry))
        for key in ("device_read_bps", "device_read_iops", "device_write_bps", "device_write_iops"):
            flag = "--" + key.replace("_", "-")
            for device in blkio.pop(key, None) or []:
                args.append(format_arg(flag, self.parse_attribute(f"blkio_config.{key}", _device_rate("rate"), device)))
        if blkio:
            raise self._unsupported(f"blkio_config.{next(iter(blkio))}")

        for key, flag in _PODMAN_ARG_KEYS:
            if data.get(key) is not None:
                args.append(format_arg(flag, scalar(data[key])))
        for key, flag in _PODMAN_ARG_MICROSECONDS:
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, int):
                value = int(round(self.parse_attribute(key, parse_duration, value) * 1_000_000))
            args.append(format_arg(flag, value))
        for key, flag in _PODMAN_ARG_FLAGS:
            if data.get(key):
                args.append(flag)
        for rule in data.get("device_cgroup_rules") or []:
            args.append(format_arg("--device-cgroup-rule", rule))
        for host in _extra_hosts(data.get("extra_hosts")):
            args.append(format_arg("--add-host", host))

        logging_config = dict(data.get("logging") or {})
        logging_config.pop("driver", None)
        for option in list_or_map(logging_config.pop("options", None)):
            args.append(format_arg("--log-opt", option))
        if logging_config:
            raise self._unsupported(f"logging.{next(iter(logging_config))}")
        return args

    def _global_options(self) -> GlobalOptions:
        args = []
        if self.data.get("runtime"):
            args.append(format_arg("--runtime", self.data["runtime"]))
        for option in list_or_map(self.data.get("storage_opt")):
            args.append(format_arg("--storage-opt", option))
        return GlobalOptions(args=args)

    def to_run_options(
        self,
        volume_has_options: Optional[Dict[str, bool]] = None,
        image: Optional[str] = None,
    ) -> RunOptions:
        """
        Build the ``podman run`` options equivalent to this service.

        ``image`` overrides the service image; it is set to the ``.build``
        unit when the service builds its image. Named volumes listed in
        ``volume_has_options`` reference the generated ``.volume`` unit.
        """
        data = self.data
        image = image or data.get("image")
        if not image:
            raise ParseError(f"services.{self.name}", None, "'image' or 'build' is required")

        run = RunOptions(image=str(image))
        run.command = self.parse_attribute("command", split_command, data.get("command"))

        entrypoint = data.get("entrypoint")
        if isinstance(entrypoint, list):
            run.entrypoint = json.dumps([scalar(arg) for arg in entrypoint])
        elif entrypoint is not None:
            run.entrypoint = str(entrypoint)

        run.cap_add = item_or_list(data.get("cap_add"))
        run.cap_drop = item_or_list(data.get("cap_drop"))
        run.name = data.get("container_name")
        run.device = [self.parse_attribute("devices", self._device, d) for d in data.get("devices") or []]
        run.dns = item_or_list(data.get("dns"))
        run.dns_option = item_or_list(data.get("dns_opt"))
        run.dns_search = item_or_list(data.get("dns_search"))
        run.env = list_or_map(data.get("environment"))
        run.env_file = self._env_files()
        run.expose = item_or_list(data.get("expose"))
        run.annotation = list_or_map(data.get("annotations"))
        run.group_add = item_or_list(data.get("group_add"))
        self._healthcheck(run)
        run.hostname = data.get("hostname")
        run.init = bool(data.get("init"))
        run.label = list_or_map(data.get("labels"))
        run.log_driver = (data.get("logging") or {}).get("driver")
        run.network = self._networks()
        if data.get("pids_limit") is not None:
            run.pids_limit = self.parse_attribute("pids_limit", parse_pids_limit, str(data["pids_limit"]))
        run.publish = [self._port(port) for port in data.get("ports") or []]

        pull_policy = data.get("pull_policy")
        if pull_policy is not None:
            if pull_policy not in _PULL_POLICIES:
                raise self._unsupported("pull_policy", f"'{pull_policy}' has no podman equivalent")
            run.pull = _PULL_POLICIES[pull_policy]

        run.read_only = bool(data.get("read_only"))
        run.restart = self.restart()
        run.secret = [self._secret(secret) for secret in data.get("secrets") or []]
        run.security_opt = [
            opt for opt in (
                self.parse_attribute("security_opt", compose_security_opt, str(value))
                for value in data.get("security_opt") or []
            ) if opt is not None
        ]
        if data.get("shm_size") is not None:
            run.shm_size = scalar(data["shm_size"])
        if data.get("stop_grace_period") is not None:
            seconds = self.parse_attribute("stop_grace_period", parse_duration, data["stop_grace_period"])
            run.stop_timeout = int(seconds)
        run.sysctl = list_or_map(data.get("sysctls"))
        run.tmpfs = item_or_list(data.get("tmpfs"))
        run.ulimit = self.parse_attribute("ulimits", _ulimits, data.get("ulimits"))
        if data.get("user") is not None:
            run.user = scalar(data["user"])
        run.userns = data.get("userns_mode")
        self._volumes(run, volume_has_options or {})
        run.workdir = data.get("working_dir")
        run.podman_args = self._podman_args()
        run.global_options = self._global_options()
        return run

    def to_build_options(self) -> Optional[BuildOptions]:
        """The ``podman build`` options for the ``build`` section, if any."""
        build = self.data.get("build")
        if build is None:
            return None
        if not isinstance(build, dict):
            build = {"context": build}

        for key, value in build.items():
            if key in _BUILD_KEYS:
                continue
            if key == "dockerfile_inline":
                raise self._unsupported("build.dockerfile_inline")
            if key in ("entitlements", "secrets") and not value:
                continue
            if key == "privileged" and value is False:
                continue
            raise self._unsupported(f"build.{key}")

        context = build.get("context")
        dockerfile = build.get("dockerfile")
        if not context and not dockerfile:
            raise ParseError(f"services.{self.name}.build", None, "'context' or 'dockerfile' is required")

        tags = build.get("tags") or []
        if len(tags) > 1:
            raise self._unsupported("build.tags", "quadlet supports a single image tag")
        tag = tags[0] if tags else f"localhost/{self.name}:latest"

        args: List[str] = []
        for host in _extra_hosts(build.get("extra_hosts")):
            args.append(format_arg("--add-host", host))
        for arg in list_or_map(build.get("args")):
            args.append(format_arg("--build-arg", arg))
        for build_context in list_or_map(build.get("additional_contexts")):
            args.append(format_arg("--build-context", build_context))
        for key, flag in (("cache_from", "--cache-from"), ("cache_to", "--cache-to")):
            for cache in build.get(key) or []:
                args.append(format_arg(flag, self.parse_attribute(f"build.{key}", cache_image, str(cache))))
        if build.get("isolation"):
            args.append(format_arg("--isolation", build["isolation"]))
        if build.get("no_cache"):
            args.append("--no-cache")
        for platform in build.get("platforms") or []:
            args.append(format_arg("--platform", platform))
        if build.get("shm_size") is not None:
            args.append(format_arg("--shm-size", scalar(build["shm_size"])))
        for ssh in list_or_map(build.get("ssh")):
            args.append(format_arg("--ssh", ssh))
        for ulimit in self.parse_attribute("build.ulimits", _ulimits, build.get("ulimits")):
            args.append(format_arg("--ulimit", ulimit))

        network = build.get("network")
        return BuildOptions(
            tag=str(tag),
            context=str(context) if context else None,
            file=str(dockerfile) if dockerfile else None,
            label=list_or_map(build.get("labels")),
            network=[str(network)] if network else [],
            pull=PullPolicy.ALWAYS if build.get("pull") else None,
            target=build.get("target"),
            podman_args=args,
        )
