"""
Kubernetes Pod YAML generation for Compose documents.

In kube mode every service of a Compose document becomes one container of a
single Kubernetes Pod. Volumes declared with options become
PersistentVolumeClaims annotated the way ``podman kube play`` reads them.
The YAML file is referenced from a ``.kube`` quadlet file.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .context import ConversionContext
from .errors import ParseError, PodletError, UnsupportedOptionError, raise_collected
from .service import (
    ComposeService,
    compose_security_opt,
    item_or_list,
    parse_duration,
    scalar,
    split_command,
)
from .types import File, Kube, KubeYamlFile, Service
from .values import SecurityOptKind, VolumeSpec

logger = logging.getLogger(__name__)

CONTAINER_KEYS = frozenset({
    "build", "cap_add", "cap_drop", "command", "container_name", "cpus",
    "entrypoint", "environment", "healthcheck", "image", "mem_limit",
    "mem_reservation", "ports", "privileged", "pull_policy", "read_only",
    "security_opt", "stdin_open", "tmpfs", "tty", "user", "volumes",
    "working_dir",
})

POD_SPEC_KEYS = frozenset({
    "dns", "dns_opt", "dns_search", "extra_hosts", "hostname", "init", "ipc",
    "pid", "restart", "stop_grace_period", "sysctls",
})

POD_METADATA_KEYS = frozenset({"annotations", "labels"})

_PULL_POLICIES = {
    "always": "Always",
    "never": "Never",
    "missing": "IfNotPresent",
    "if_not_present": "IfNotPresent",
}

_SELINUX_KEYS = {
    SecurityOptKind.LABEL_USER: "user",
    SecurityOptKind.LABEL_ROLE: "role",
    SecurityOptKind.LABEL_TYPE: "type",
    SecurityOptKind.LABEL_LEVEL: "level",
}

_PROTOCOLS = ("TCP", "UDP", "SCTP")

_VOLUME_ANNOTATION = "volume.podman.io/"


def convert_memory(memory: Any) -> str:
    """Convert a Compose byte value (512m, 1gb) to a Kubernetes quantity (512Mi, 1Gi)."""
    if isinstance(memory, int):
        return str(memory)
    memory = str(memory).strip()
    if memory.endswith(("Ki", "Mi", "Gi", "Ti")):
        return memory

    lowered = memory.lower()
    if lowered.endswith("b"):
        lowered = lowered[:-1]
    match = re.fullmatch(r"(\d+)([kmgt]?)", lowered)
    if not match:
        raise ValueError(f"invalid byte value '{memory}'")
    value, unit = match.groups()
    if unit:
        return f"{value}{unit.upper()}i"
    return value


def round_seconds(seconds: float) -> int:
    """Round to whole seconds, half up, never below one."""
    whole = int(seconds)
    if seconds - whole >= 0.5:
        whole += 1
    return max(whole, 1)


def _present(value: Any) -> bool:
    return value not in (None, False, "", [], {})


class PodContainer:
    """Builds the Pod spec entry of one Compose service."""

    def __init__(self, service: ComposeService):
        self.service = service
        self.data = service.data
        self.name = str(self.data.get("container_name") or service.name)

    def _unsupported(self, attribute: str, reason: str = "") -> UnsupportedOptionError:
        return UnsupportedOptionError(attribute, f"{self.service.owner}, Kubernetes pod", reason)

    def check(self) -> None:
        for key, value in self.data.items():
            if key in CONTAINER_KEYS or not _present(value):
                continue
            if key in POD_SPEC_KEYS:
                raise self._unsupported(key, "Kubernetes pods do not support per container options, set it in the pod spec instead")
            if key in POD_METADATA_KEYS:
                raise self._unsupported(key, "Kubernetes pods do not support per container options, set it in the pod metadata instead")
            if key == "devices":
                raise self._unsupported(key, "Kubernetes pod containers do not directly support devices, try a bind mount instead")
            raise self._unsupported(key)

    def _image(self) -> str:
        build = self.data.get("build")
        if build is not None:
            context = build.get("context") if isinstance(build, dict) else build
            if not context:
                raise ParseError(f"services.{self.service.name}.build", None, "'context' is required")
            return str(context)
        image = self.data.get("image")
        if not image:
            raise ParseError(f"services.{self.service.name}", None, "'image' or 'build' is required")
        return str(image)

    def _env(self) -> List[Dict[str, str]]:
        environment = self.data.get("environment") or {}
        if isinstance(environment, list):
            pairs = []
            for item in environment:
                name, sep, value = str(item).partition("=")
                pairs.append((name, value if sep else None))
        else:
            pairs = [(str(k), None if v is None else scalar(v)) for k, v in environment.items()]
        env = []
        for name, value in pairs:
            var = {"name": name}
            if value is not None:
                var["value"] = value
            env.append(var)
        return env

    def _port(self, port: Any) -> Dict[str, Any]:
        if isinstance(port, dict):
            port = dict(port)
            for key in ("app_protocol", "mode"):
                if port.pop(key, None) is not None:
                    raise self._unsupported(f"ports.{key}")
            name = port.pop("name", None)
            target = port.pop("target", None)
            published = port.pop("published", None)
            host_ip = port.pop("host_ip", None)
            protocol = port.pop("protocol", None)
            if port:
                raise self._unsupported(f"ports.{next(iter(port))}")
        else:
            name = None
            host_ip, published, target, protocol = self._short_port(scalar(port))

        if target is None:
            raise ParseError(f"services.{self.service.name}.ports", port, "missing container port")
        if "-" in str(target):
            raise self._unsupported("ports", "Kubernetes does not support port ranges")

        entry: Dict[str, Any] = {}
        if name:
            entry["name"] = str(name)
        entry["containerPort"] = self._port_number(target)
        if published is not None and str(published) != "":
            start, _, end = str(published).partition("-")
            if end and end != start:
                raise self._unsupported(
                    "ports", "Kubernetes only supports publishing to a single, specific, host port",
                )
            entry["hostPort"] = self._port_number(start)
        if host_ip:
            entry["hostIP"] = str(host_ip)
        if protocol:
            protocol = str(protocol).upper()
            if protocol not in _PROTOCOLS:
                raise self._unsupported("ports.protocol", "only TCP, UDP and SCTP are supported")
            entry["protocol"] = protocol
        return entry

    def _short_port(self, port: str) -> Tuple[Optional[str], Optional[str], str, Optional[str]]:
        """Split ``[[host_ip:]published:]target[/protocol]``."""
        port, _, protocol = port.partition("/")
        host_ip = None
        if port.startswith("["):
            host_ip, sep, port = port[1:].partition("]")
            if not sep:
                raise ParseError(f"services.{self.service.name}.ports", port, "unterminated IPv6 address")
            port = port.lstrip(":")
            parts = port.split(":", 1)
        else:
            parts = port.split(":")
            if len(parts) == 3:
                host_ip = parts.pop(0)
        if len(parts) > 2:
            raise ParseError(f"services.{self.service.name}.ports", port, "too many ':' separated parts")
        target = parts[-1]
        published = parts[0] if len(parts) == 2 else None
        return host_ip or None, published or None, target, protocol or None

    def _port_number(self, value: Any) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ParseError(f"services.{self.service.name}.ports", value, "expected a port number") from None
        if not 0 < number < 65536:
            raise ParseError(f"services.{self.service.name}.ports", value, "port out of range")
        return number

    def _probe(self) -> Optional[Dict[str, Any]]:
        healthcheck = dict(self.data.get("healthcheck") or {})
        if not healthcheck or healthcheck.get("disable"):
            return None
        healthcheck.pop("start_interval", None)

        probe: Dict[str, Any] = {}
        test = healthcheck.pop("test", None)
        if isinstance(test, str):
            probe["exec"] = {"command": ["/bin/sh", "-c", test]}
        elif test:
            kind, args = test[0], [scalar(arg) for arg in test[1:]]
            if kind == "NONE":
                return None
            if kind == "CMD":
                probe["exec"] = {"command": args}
            elif kind == "CMD-SHELL":
                probe["exec"] = {"command": ["/bin/sh", "-c", " ".join(args)]}
            else:
                raise ParseError(
                    f"services.{self.service.name}.healthcheck.test", kind,
                    "expected NONE, CMD or CMD-SHELL",
                )

        seconds = {}
        for key in ("interval", "timeout", "start_period"):
            value = healthcheck.pop(key, None)
            if value is not None:
                seconds[key] = round_seconds(self.service.parse_attribute(f"healthcheck.{key}", parse_duration, value))
        if "interval" in seconds:
            probe["periodSeconds"] = seconds["interval"]
        probe["timeoutSeconds"] = seconds.get("timeout", 30)
        retries = healthcheck.pop("retries", None)
        if retries is not None:
            probe["failureThreshold"] = int(retries)
        if "start_period" in seconds:
            probe["initialDelaySeconds"] = seconds["start_period"]
        healthcheck.pop("disable", None)
        if healthcheck:
            raise self._unsupported(f"healthcheck.{next(iter(healthcheck))}")
        return probe

    def _resources(self) -> Dict[str, Any]:
        resources: Dict[str, Dict[str, str]] = {}
        if self.data.get("cpus") is not None:
            resources.setdefault("limits", {})["cpu"] = scalar(self.data["cpus"])
        if self.data.get("mem_limit") is not None:
            memory = self.service.parse_attribute("mem_limit", convert_memory, self.data["mem_limit"])
            resources.setdefault("limits", {})["memory"] = memory
        if self.data.get("mem_reservation") is not None:
            memory = self.service.parse_attribute("mem_reservation", convert_memory, self.data["mem_reservation"])
            resources.setdefault("requests", {})["memory"] = memory
        return resources

    def _selinux_options(self) -> Dict[str, str]:
        options: Dict[str, str] = {}
        for value in self.data.get("security_opt") or []:
            opt = self.service.parse_attribute("security_opt", compose_security_opt, str(value))
            if opt is None:
                continue
            if opt.kind not in _SELINUX_KEYS:
                raise self._unsupported("security_opt", f"'{opt}' is not supported")
            options[_SELINUX_KEYS[opt.kind]] = opt.value
        return options

    def _security_context(self) -> Dict[str, Any]:
        context: Dict[str, Any] = {}
        capabilities = {}
        if self.data.get("cap_add"):
            capabilities["add"] = item_or_list(self.data["cap_add"])
        if self.data.get("cap_drop"):
            capabilities["drop"] = item_or_list(self.data["cap_drop"])
        if capabilities:
            context["capabilities"] = capabilities
        if self.data.get("privileged"):
            context["privileged"] = True
        if self.data.get("read_only"):
            context["readOnlyRootFilesystem"] = True
        selinux = self._selinux_options()
        if selinux:
            context["seLinuxOptions"] = selinux

        user = self.data.get("user")
        if user is not None:
            uid, _, gid = scalar(user).partition(":")
            if not uid.isdigit() or (gid and not gid.isdigit()):
                raise self._unsupported("user", "only numeric UIDs and GIDs are supported")
            context["runAsUser"] = int(uid)
            if gid:
                context["runAsGroup"] = int(gid)
        return context

    def _mount_name(self, mount_path: str) -> str:
        return self.name + mount_path.replace("/", "-").replace("\\", "-")

    def _mount(self, mount_path: str, name: str, read_only: bool = False) -> Dict[str, Any]:
        mount: Dict[str, Any] = {"name": name, "mountPath": mount_path}
        if read_only:
            mount["readOnly"] = True
        return mount

    def _short_volume(self, value: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        spec = self.service.parse_attribute("volumes", VolumeSpec.parse, value)
        options = [o for o in (spec.options or "").split(",") if o]
        read_only = "ro" in options
        selinux = [o for o in options if o in ("z", "Z")]
        remaining = [o for o in options if o not in ("ro", "rw", "z", "Z")]

        if spec.source is None:
            if remaining or selinux:
                raise self._unsupported("volumes", "anonymous volume options are not supported")
            return self._anonymous_volume(spec.destination, read_only)
        if spec.is_host_path:
            if remaining:
                raise self._unsupported("volumes", f"bind mount option '{remaining[0]}' is not supported")
            return self._bind(spec.source, spec.destination, read_only, selinux[0] if selinux else None)
        if remaining or selinux:
            raise self._unsupported("volumes", "additional volume options are not supported")
        return self._named_volume(spec.source, spec.destination, read_only)

    def _anonymous_volume(self, target: str, read_only: bool) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        name = self._mount_name(target)
        return self._mount(target, name, read_only), {"name": name, "emptyDir": {}}

    def _named_volume(self, source: str, target: str, read_only: bool) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        volume = {"name": source, "persistentVolumeClaim": {"claimName": source}}
        return self._mount(target, source, read_only), volume

    def _bind(
        self, source: str, target: str, read_only: bool, selinux: Optional[str],
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        name = self._mount_name(target)
        mount_path = f"{target}:{selinux}" if selinux else target
        return self._mount(mount_path, name, read_only), {"name": name, "hostPath": {"path": source}}

    def _tmpfs(self, target: str, read_only: bool, size: Any = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        name = self._mount_name(target)
        empty_dir: Dict[str, Any] = {"medium": "Memory"}
        if size is not None:
            empty_dir["sizeLimit"] = self.service.parse_attribute("volumes.tmpfs.size", convert_memory, size)
        return self._mount(target, name, read_only), {"name": name, "emptyDir": empty_dir}

    def _long_volume(self, volume: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        volume = dict(volume)
        volume_type = volume.pop("type", "volume")
        target = volume.pop("target", None)
        source = volume.pop("source", None)
        read_only = bool(volume.pop("read_only", False))
        if volume.pop("consistency", None) is not None:
            raise self._unsupported("volumes.consistency")
        if not target:
            raise ParseError(f"services.{self.service.name}.volumes", None, "a long form volume requires 'target'")

        if volume_type == "volume":
            if any(_present(v) for v in (volume.pop("volume", None) or {}).values()):
                raise self._unsupported("volumes.volume", "additional volume options are not supported")
            result = (
                self._named_volume(source, target, read_only) if source
                else self._anonymous_volume(target, read_only)
            )
        elif volume_type == "bind":
            bind = dict(volume.pop("bind", None) or {})
            if bind.pop("propagation", None) is not None:
                raise self._unsupported("volumes.bind.propagation")
            if bind.pop("create_host_path", True) is False:
                raise self._unsupported("volumes.bind.create_host_path")
            selinux = bind.pop("selinux", None)
            if bind:
                raise self._unsupported(f"volumes.bind.{next(iter(bind))}")
            if not source:
                raise ParseError(f"services.{self.service.name}.volumes", None, "a bind mount requires 'source'")
            result = self._bind(str(source), target, read_only, selinux)
        elif volume_type == "tmpfs":
            tmpfs = dict(volume.pop("tmpfs", None) or {})
            if tmpfs.pop("mode", None) is not None:
                raise self._unsupported("volumes.tmpfs.mode")
            size = tmpfs.pop("size", None)
            if tmpfs:
                raise self._unsupported(f"volumes.tmpfs.{next(iter(tmpfs))}")
            result = self._tmpfs(target, read_only, size)
        else:
            raise self._unsupported("volumes.type", f"'{volume_type}' volumes are not supported")
        if volume:
            raise self._unsupported(f"volumes.{next(iter(volume))}")
        return result

    def _volume_mounts(self) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
        mounts = [self._tmpfs(str(target), False) for target in item_or_list(self.data.get("tmpfs"))]
        for volume in self.data.get("volumes") or []:
            if isinstance(volume, dict):
                mounts.append(self._long_volume(volume))
            else:
                mounts.append(self._short_volume(str(volume)))
        return mounts

    def to_dict(self, pod_volumes: List[Dict[str, Any]]) -> Dict[str, Any]:
        """The container entry; the volumes it mounts are added to ``pod_volumes``."""
        self.check()
        data = self.data
        container: Dict[str, Any] = {"name": self.name, "image": self._image()}

        entrypoint = data.get("entrypoint")
        if isinstance(entrypoint, list):
            container["command"] = [scalar(arg) for arg in entrypoint]
        elif entrypoint is not None:
            container["command"] = ["/bin/sh", "-c", str(entrypoint)]
        if data.get("command") is not None:
            container["args"] = self.service.parse_attribute("command", split_command, data["command"])
        if data.get("working_dir"):
            container["workingDir"] = str(data["working_dir"])

        ports = [self._port(port) for port in data.get("ports") or []]
        if ports:
            container["ports"] = ports
        env = self._env()
        if env:
            container["env"] = env
        resources = self._resources()
        if resources:
            container["resources"] = resources

        volume_mounts = []
        for mount, volume in self._volume_mounts():
            volume_mounts.append(mount)
            if all(v["name"] != volume["name"] for v in pod_volumes):
                pod_volumes.append(volume)
        if volume_mounts:
            container["volumeMounts"] = volume_mounts

        probe = self._probe()
        if probe:
            container["livenessProbe"] = probe
        pull_policy = data.get("pull_policy")
        if pull_policy is not None:
            if pull_policy not in _PULL_POLICIES:
                raise self._unsupported("pull_policy", f"'{pull_policy}' is not supported")
            container["imagePullPolicy"] = _PULL_POLICIES[pull_policy]
        security_context = self._security_context()
        if security_context:
            container["securityContext"] = security_context
        if data.get("stdin_open"):
            container["stdin"] = True
        if data.get("tty"):
            container["tty"] = True
        return container


def _driver_annotations(name: str, driver: Optional[str], driver_opts: Dict[str, Any]) -> Dict[str, str]:
    values: Dict[str, Optional[str]] = {"driver": driver}
    mount_options: List[str] = []
    for key, value in driver_opts.items():
        if key in ("device", "type", "import-source", "image"):
            values[key] = scalar(value)
        elif key in ("uid", "gid"):
            if not str(value).isdigit():
                raise ParseError(f"volumes.{name}.driver_opts.{key}", value, "expected a positive integer")
            values[key] = str(value)
        elif key == "o":
            for option in str(value).split(","):
                option_name, sep, option_value = option.partition("=")
                if sep and option_name in ("uid", "gid"):
                    if not option_value.isdigit():
                        raise ParseError(f"volumes.{name}.driver_opts.o", option, "expected an unsigned integer")
                    values[option_name] = option_value
                elif option:
                    mount_options.append(option)
        else:
            raise ParseError(f"volumes.{name}.driver_opts", key, "unknown volume driver option")
    if mount_options:
        values["mount-options"] = ",".join(mount_options)

    annotations = {}
    for key in ("driver", "device", "type", "uid", "gid", "mount-options", "import-source", "image"):
        if values.get(key) is not None:
            annotations[_VOLUME_ANNOTATION + key] = values[key]
    return annotations


def persistent_volume_claim(name: str, data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """A PersistentVolumeClaim for a volume declared with options, else None."""
    owner = f"volume '{name}', Kubernetes pod"
    data = dict(data or {})
    if data.pop("name", None) is not None:
        raise UnsupportedOptionError("name", owner)
    if data.pop("external", False):
        raise UnsupportedOptionError("external", owner)
    driver = data.pop("driver", None)
    driver_opts = data.pop("driver_opts", None) or {}
    labels = data.pop("labels", None) or {}
    if data:
        raise UnsupportedOptionError(next(iter(data)), owner)
    if not driver and not driver_opts and not labels:
        return None

    metadata: Dict[str, Any] = {"name": name}
    if driver or driver_opts:
        metadata["annotations"] = _driver_annotations(name, driver, driver_opts)
    if labels:
        if isinstance(labels, list):
            labels = dict(item.partition("=")[::2] for item in map(str, labels))
        metadata["labels"] = {str(k): "" if v is None else scalar(v) for k, v in labels.items()}
    return {"apiVersion": "v1", "kind": "PersistentVolumeClaim", "metadata": metadata}


def _dump(document: Dict[str, Any]) -> str:
    return yaml.dump(document, default_flow_style=False, sort_keys=False)


def build_pod(name: str, services: List[ComposeService]) -> Dict[str, Any]:
    """Build the Pod manifest with one container per service."""
    errors: List[PodletError] = []
    containers = []
    volumes: List[Dict[str, Any]] = []
    for service in services:
        try:
            containers.append(PodContainer(service).to_dict(volumes))
        except PodletError as e:
            errors.append(e)
    raise_collected(errors)

    spec: Dict[str, Any] = {"containers": containers}
    if volumes:
        spec["volumes"] = volumes
    return {"apiVersion": "v1", "kind": "Pod", "metadata": {"name": name}, "spec": spec}


def convert_kube(document, context: ConversionContext) -> List[File]:
    """
    Convert a Compose document to a ``.kube`` file and its Kubernetes YAML.

    The YAML holds one PersistentVolumeClaim per volume declared with
    options, followed by the Pod.
    """
    errors: List[PodletError] = []
    if document.networks:
        errors.append(UnsupportedOptionError("networks", "compose file, Kubernetes pod"))
    if document.secrets:
        errors.append(UnsupportedOptionError("secrets", "compose file, Kubernetes pod"))
    raise_collected(errors)

    claims = []
    for volume_name, data in document.volumes.items():
        try:
            claim = persistent_volume_claim(volume_name, data)
        except PodletError as e:
            errors.append(e)
            continue
        if claim is not None:
            claims.append(claim)
    try:
        pod = build_pod(document.name, list(document.services.values()))
    except PodletError as e:
        errors.append(e)
    raise_collected(errors)

    content = "".join(_dump(claim) + "---\n" for claim in claims) + _dump(pod)
    yaml_file = KubeYamlFile(f"{document.name}-kube", content)
    logger.debug(f"Generated Kubernetes pod '{document.name}' with {len(pod['spec']['containers'])} containers")

    kube = Kube(yaml=yaml_file.file_name)
    service = None
    if any(compose_service.builds for compose_service in document.services.values()):
        # build contexts are relative to the compose file
        kube.podman_args.append("--build=true")
        service = Service(working_directory=document.directory or os.getcwd())
    return [context.new_file(document.name, kube, service=service), yaml_file]
