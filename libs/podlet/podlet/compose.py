"""
Compose document conversion.

A Compose document is converted in two passes. ``ComposeDocument.check``
validates the document as a whole (unsupported top-level sections and
references to undeclared resources); only then is every service, network
and volume converted. Errors from both passes are collected and reported
together.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .context import ConversionContext
from .errors import (
    ParseError,
    PodletError,
    UndefinedReferenceError,
    UnsupportedOptionError,
    raise_collected,
)
from .fields import format_arg
from .kube import convert_kube
from .options import apply_volume_opt
from .service import ComposeService, list_or_map, scalar
from .types import Container, File, Network, Pod, QuadletFile, Volume

logger = logging.getLogger(__name__)

DOCUMENT = "compose file"

TOP_LEVEL_KEYS = ("version", "name", "include", "services", "networks", "volumes", "configs", "secrets")


def _mapping(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError(key, None, "expected a mapping")
    return value


@dataclass
class ComposeDocument:
    """A parsed Compose document."""
    name: Optional[str] = None
    services: Dict[str, ComposeService] = field(default_factory=dict)
    networks: Dict[str, Any] = field(default_factory=dict)
    volumes: Dict[str, Any] = field(default_factory=dict)
    configs: Dict[str, Any] = field(default_factory=dict)
    secrets: Dict[str, Any] = field(default_factory=dict)
    include: List[Any] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    # directory holding the file, for relative build contexts
    directory: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ComposeDocument":
        """Build a document from decoded YAML. ``version`` is ignored."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ParseError(None, None, "a compose file must be a mapping")

        services = {
            str(name): ComposeService(str(name), service)
            for name, service in _mapping(data, "services").items()
        }
        name = data.get("name")
        return cls(
            name=str(name) if name is not None else None,
            services=services,
            networks=_mapping(data, "networks"),
            volumes=_mapping(data, "volumes"),
            configs=_mapping(data, "configs"),
            secrets=_mapping(data, "secrets"),
            include=list(data.get("include") or []),
            extensions=[str(key) for key in data if key not in TOP_LEVEL_KEYS],
        )

    def check(self, context: ConversionContext) -> List[PodletError]:
        """Validate the document as a whole, returning every problem found."""
        errors: List[PodletError] = []
        if self.include:
            errors.append(UnsupportedOptionError("include", DOCUMENT))
        if self.configs:
            errors.append(UnsupportedOptionError("configs", DOCUMENT))
        for name, secret in self.secrets.items():
            if not (secret or {}).get("external"):
                errors.append(UnsupportedOptionError(
                    f"secrets.{name}", DOCUMENT, "only external secrets are supported",
                ))
        for key in self.extensions:
            reason = "compose extensions are not supported" if key.startswith("x-") else ""
            errors.append(UnsupportedOptionError(key, DOCUMENT, reason))
        if (context.pod or context.kube) and not self.name:
            mode = "pod" if context.pod else "kube"
            errors.append(PodletError(f"the top-level 'name' is required for {mode} output"))
        if not self.services:
            errors.append(ParseError("services", None, "at least one service is required"))

        declared = {
            "network": self.networks,
            "volume": self.volumes,
            "secret": self.secrets,
            "config": self.configs,
            "service": self.services,
        }
        for service in self.services.values():
            errors.extend(service.check_supported())
            for kind, reference in service.references():
                if reference not in declared[kind]:
                    errors.append(UndefinedReferenceError(kind, reference, service.name))
        return errors


def network_to_quadlet(name: str, data: Optional[Dict[str, Any]], context: ConversionContext) -> QuadletFile:
    """Convert a top-level ``networks`` entry to a ``.network`` file."""
    owner = f"network '{name}'"
    data = dict(data or {})
    for key in ("external", "attachable"):
        if data.pop(key, False):
            raise UnsupportedOptionError(key, owner)
    if data.pop("name", None) is not None:
        raise UnsupportedOptionError("name", owner, "the network is named after its key")

    network = Network(
        driver=data.pop("driver", None),
        internal=bool(data.pop("internal", False)),
        ipv6=bool(data.pop("enable_ipv6", False)),
        label=list_or_map(data.pop("labels", None)),
    )
    driver_opts = list_or_map(data.pop("driver_opts", None))
    network.options = ",".join(driver_opts) or None

    ipam = dict(data.pop("ipam", None) or {})
    network.ipam_driver = ipam.pop("driver", None)
    for config in ipam.pop("config", None) or []:
        config = dict(config)
        if config.get("subnet"):
            network.subnet.append(str(config.pop("subnet")))
        if config.get("gateway"):
            network.gateway.append(str(config.pop("gateway")))
        if config.get("ip_range"):
            network.ip_range.append(str(config.pop("ip_range")))
        config = {k: v for k, v in config.items() if v}
        if config:
            raise UnsupportedOptionError(f"ipam.config.{next(iter(config))}", owner)
    ipam = {k: v for k, v in ipam.items() if v}
    if ipam:
        raise UnsupportedOptionError(f"ipam.{next(iter(ipam))}", owner)
    if data:
        raise UnsupportedOptionError(next(iter(data)), owner)
    return context.new_file(name, network)


def volume_to_quadlet(name: str, data: Optional[Dict[str, Any]], context: ConversionContext) -> Optional[QuadletFile]:
    """
    Convert a top-level ``volumes`` entry to a ``.volume`` file.

    Returns None for a volume without options; podman creates those on
    first use, so services reference them by name.
    """
    owner = f"volume '{name}'"
    data = dict(data or {})
    if data.pop("external", False):
        raise UnsupportedOptionError("external", owner)
    if data.pop("name", None) is not None:
        raise UnsupportedOptionError("name", owner, "the volume is named after its key")

    volume = Volume(label=list_or_map(data.pop("labels", None)))
    driver = data.pop("driver", None)
    if driver and driver != "local":
        volume.podman_args.append(format_arg("--driver", driver))
    for key, value in (data.pop("driver_opts", None) or {}).items():
        opt = f"{key}={scalar(value)}"
        try:
            apply_volume_opt(volume, opt)
        except ValueError as e:
            raise ParseError(f"volumes.{name}.driver_opts", opt, str(e)) from None
    if data:
        raise UnsupportedOptionError(next(iter(data)), owner)
    if volume.is_empty():
        return None
    return context.new_file(name, volume)


def _service_files(
    service: ComposeService,
    context: ConversionContext,
    prefix: Optional[str],
    volume_has_options: Dict[str, bool],
) -> List[QuadletFile]:
    # a broken build section is reported before the missing-image error
    build_file = None
    image = None
    build = service.to_build_options()
    if build is not None:
        build_file = build.to_quadlet_file(context)
        if prefix:
            build_file.name = f"{prefix}-{build_file.name}"
        image = build_file.file_name

    run = service.to_run_options(volume_has_options, image)
    name = f"{prefix}-{service.name}" if prefix else service.name
    file = run.to_quadlet_file(context, name=name, unit=service.dependencies(prefix))
    if prefix:
        file.resource.pod = f"{prefix}.pod"
    logger.debug(f"Converted service '{service.name}' to {file.file_name}")
    return [file] + ([build_file] if build_file else [])


def _move_to_pod(files: List[QuadletFile]) -> Pod:
    """Move published ports and networks from the containers to their pod."""
    pod = Pod()
    for file in files:
        container = file.resource
        if not isinstance(container, Container):
            continue
        pod.publish_port.extend(container.publish_port)
        for network in container.network:
            if network not in pod.network:
                pod.network.append(network)
        container.publish_port = []
        container.network = []
    return pod


def convert_compose(document: ComposeDocument, context: ConversionContext) -> List[File]:
    """
    Convert a Compose document to quadlet files.

    In kube mode the whole document becomes one Kubernetes YAML file and a
    ``.kube`` file. Otherwise every service becomes a ``.container`` file
    (plus a ``.build`` file when it builds its image), every network a
    ``.network`` file and every volume with options a ``.volume`` file. In
    pod mode the containers join a ``.pod`` file named after the document.
    """
    raise_collected(document.check(context))

    if context.kube:
        return convert_kube(document, context)

    errors: List[PodletError] = []
    volume_files: List[QuadletFile] = []
    volume_has_options: Dict[str, bool] = {}
    for name, data in document.volumes.items():
        try:
            file = volume_to_quadlet(name, data, context)
        except PodletError as e:
            errors.append(e)
            continue
        volume_has_options[name] = file is not None
        if file is not None:
            volume_files.append(file)

    prefix = document.name if context.pod else None
    service_files: List[QuadletFile] = []
    for service in document.services.values():
        try:
            service_files.extend(_service_files(service, context, prefix, volume_has_options))
        except PodletError as e:
            errors.append(e)

    network_files: List[QuadletFile] = []
    for name, data in document.networks.items():
        try:
            network_files.append(network_to_quadlet(name, data, context))
        except PodletError as e:
            errors.append(e)

    raise_collected(errors)

    files: List[File] = service_files + network_files + volume_files
    if context.pod:
        pod = _move_to_pod(service_files)
        files.append(context.new_file(document.name, pod))
    return files
