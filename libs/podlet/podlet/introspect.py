"""
Quadlet generation from existing podman objects.

The payload of ``podman <kind> inspect`` is turned back into the option
model of the command that would create the object, which is then converted
like any parsed command. Containers and pods are rebuilt from the command
line podman recorded when they were created; networks, volumes and images
from their configuration fields.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .context import ConversionContext
from .errors import IntrospectionShapeError, ParseError
from .fields import format_arg
from .options import (
    ImagePullOptions,
    NetworkCreateOptions,
    PodCreateOptions,
    RunOptions,
    VolumeCreateOptions,
    apply_volume_opt,
    parse_podman_command,
)
from .types import QuadletFile, Volume

logger = logging.getLogger(__name__)

KINDS = ("container", "pod", "network", "volume", "image")

# (kind, name) -> decoded ``podman <kind> inspect <name>`` output
Inspector = Callable[[str, str], Any]


def normalize_payload(payload: Any) -> Dict[str, Any]:
    """Accept a bare object or a one-element list holding one."""
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, list):
        if len(payload) == 1 and isinstance(payload[0], dict):
            return payload[0]
        if len(payload) == 1:
            raise IntrospectionShapeError(f"a list holding a {type(payload[0]).__name__}")
        raise IntrospectionShapeError(f"a list of {len(payload)} items")
    raise IntrospectionShapeError(type(payload).__name__)


def _create_command(command: Any, field_name: str) -> List[str]:
    if not command or not isinstance(command, list):
        raise ParseError(field_name, None, "the object has no recorded create command")
    # drop the podman executable, which may be a full path
    return [str(arg) for arg in command[1:]]


def container_options(data: Dict[str, Any]) -> RunOptions:
    """Rebuild ``podman run`` options from a container inspection."""
    command = _create_command((data.get("Config") or {}).get("CreateCommand"), "Config.CreateCommand")
    options = parse_podman_command(command)
    if not isinstance(options, RunOptions):
        raise ParseError("Config.CreateCommand", " ".join(command[:2]), "not a container create command")
    return options


def pod_options(data: Dict[str, Any]) -> PodCreateOptions:
    """Rebuild ``podman pod create`` options from a pod inspection."""
    command = _create_command(data.get("CreateCommand"), "CreateCommand")
    options = parse_podman_command(command)
    if not isinstance(options, PodCreateOptions):
        raise ParseError("CreateCommand", " ".join(command[:2]), "not a pod create command")
    if not options.name:
        options.name = data.get("Name")
    return options


def pod_members(data: Dict[str, Any]) -> List[str]:
    """Names of a pod's containers, without its infra container."""
    infra_id = data.get("InfraContainerID")
    members = []
    for container in data.get("Containers") or []:
        name = container.get("Name", "")
        if container.get("Id") == infra_id or name.endswith("-infra"):
            continue
        members.append(name)
    return members


def _key_values(mapping: Optional[Dict[str, Any]]) -> List[str]:
    # options without a value, such as copy, are listed with an empty one
    return [
        f"{key}={value}" if value not in (None, "") else str(key)
        for key, value in (mapping or {}).items()
    ]


def network_options(data: Dict[str, Any]) -> NetworkCreateOptions:
    """Rebuild ``podman network create`` options from a network inspection."""
    options = NetworkCreateOptions(
        name=data.get("name"),
        driver=data.get("driver"),
        ipv6=bool(data.get("ipv6_enabled")),
        internal=bool(data.get("internal")),
        disable_dns=not data.get("dns_enabled", True),
        dns=list(data.get("network_dns_servers") or []),
        label=_key_values(data.get("labels")),
        opt=_key_values(data.get("options")),
        ipam_driver=(data.get("ipam_options") or {}).get("driver"),
    )
    if data.get("network_interface"):
        options.podman_args.append(format_arg("--interface-name", data["network_interface"]))

    for subnet in data.get("subnets") or []:
        options.subnet.append(subnet["subnet"])
        if subnet.get("gateway"):
            options.gateway.append(subnet["gateway"])
        lease_range = subnet.get("lease_range") or {}
        if lease_range.get("start_ip") and lease_range.get("end_ip"):
            options.ip_range.append(f"{lease_range['start_ip']}-{lease_range['end_ip']}")

    for route in data.get("routes") or []:
        parts = [route["destination"], route["gateway"]]
        if route.get("metric") is not None:
            parts.append(str(route["metric"]))
        options.podman_args.append(format_arg("--route", ",".join(parts)))
    return options


def volume_options(data: Dict[str, Any]) -> VolumeCreateOptions:
    """Rebuild ``podman volume create`` options from a volume inspection."""
    options = VolumeCreateOptions(name=data.get("Name", ""), label=_key_values(data.get("Labels")))
    driver = data.get("Driver")
    if driver and driver != "local":
        options.podman_args.append(format_arg("--driver", driver))
    for opt in _key_values(data.get("Options")):
        try:
            apply_volume_opt(Volume(), opt)
        except ValueError:
            logger.warning(f"Skipping volume option '{opt}' of volume '{options.name}'")
            continue
        options.opt.append(opt)
    return options


def image_options(data: Dict[str, Any]) -> ImagePullOptions:
    """Rebuild ``podman image pull`` options from an image inspection."""
    tags = data.get("RepoTags") or []
    if not tags:
        raise ParseError("RepoTags", None, "the image has no tags to pull it by")
    return ImagePullOptions(image=tags[-1], arch=data.get("Architecture"), os=data.get("Os"))


def generate(
    kind: str,
    payload: Any,
    context: ConversionContext,
    inspect: Optional[Inspector] = None,
    name: Optional[str] = None,
    ignore_infra_conmon_pidfile: bool = False,
    ignore_pod_id_file: bool = False,
) -> List[QuadletFile]:
    """
    Generate quadlet files for an inspected object.

    ``inspect`` is called for the member containers of a pod. ``name``
    overrides the file name of the object itself.
    """
    data = normalize_payload(payload)
    if kind == "container":
        return [container_options(data).to_quadlet_file(context, name=name)]
    if kind == "network":
        return [network_options(data).to_quadlet_file(context, name=name)]
    if kind == "volume":
        return [volume_options(data).to_quadlet_file(context, name=name)]
    if kind == "image":
        return [image_options(data).to_quadlet_file(context, name=name)]
    if kind != "pod":
        raise ParseError(None, kind, f"expected one of {', '.join(KINDS)}")

    pod_file = pod_options(data).to_quadlet_file(
        context,
        name=name,
        ignore_infra_conmon_pidfile=ignore_infra_conmon_pidfile,
        ignore_pod_id_file=ignore_pod_id_file,
    )
    files = [pod_file]
    members = pod_members(data)
    if members and inspect is None:
        raise ParseError(None, None, "inspecting the containers of a pod requires podman")
    for member in members:
        logger.debug(f"Inspecting container '{member}' of pod '{pod_file.name}'")
        options = container_options(normalize_payload(inspect("container", member)))
        options.pod = None
        file = options.to_quadlet_file(context)
        file.resource.pod = pod_file.file_name
        files.append(file)
    return files
