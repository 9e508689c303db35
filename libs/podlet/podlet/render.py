"""
Quadlet file rendering.

Turns a ``QuadletFile`` into text: host paths are resolved, keys unknown to
the target podman version are downgraded to PodmanArgs (or rejected), and
multi-value keys are joined or split.
"""

import logging
from dataclasses import fields
from typing import Any, Iterable, List, Optional, Tuple

from .context import ConversionContext
from .errors import VersionIncompatibleError
from .fields import Field, format_value
from .paths import resolve_host_paths
from .types import File, KubeYamlFile, QuadletFile
from .versions import PodmanVersion, introduced_in, is_available

logger = logging.getLogger(__name__)

FILE_SEPARATOR = "\n---\n\n"

_NEEDS_QUOTING = set(" \t\n\r\"'\\")


def escape_value(value: str) -> str:
    """
    Escape one value of a space-joined key.

    Values with whitespace, quotes or backslashes are wrapped in double
    quotes with ``\\`` and ``"`` backslash-escaped and newlines written as
    ``\\n``, the quoting systemd unquotes when it splits the line.
    """
    if value and not _NEEDS_QUOTING.intersection(value):
        return value
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


def split_joined(line: str) -> List[str]:
    """Split a space-joined value back into its values."""
    values: List[str] = []
    current: List[str] = []
    in_word = False
    quote: Optional[str] = None
    chars = iter(line)
    for char in chars:
        if quote:
            if char == quote:
                quote = None
            elif char == "\\":
                escaped = next(chars, "")
                current.append(_UNESCAPES.get(escaped, escaped))
            else:
                current.append(char)
        elif char in " \t":
            if in_word:
                values.append("".join(current))
                current = []
                in_word = False
        elif char in "\"'":
            quote = char
            in_word = True
        elif char == "\\":
            escaped = next(chars, "")
            current.append(_UNESCAPES.get(escaped, escaped))
            in_word = True
        else:
            current.append(char)
            in_word = True
    if quote:
        raise ValueError(f"unterminated quote in '{line}'")
    if in_word:
        values.append("".join(current))
    return values


def _key_lines(spec: Field, value: Any, split_options: Iterable[str]) -> List[str]:
    key = spec.key
    if spec.raw:
        return [f"{key}={' '.join(value)}"]
    if not isinstance(value, list):
        return [f"{key}={spec.render_value(value)}"]

    values = [spec.render_value(v) for v in value]
    if spec.join == ":":
        return [f"{key}={':'.join(values)}"]
    if spec.join == " ":
        values = [escape_value(v) for v in values]
        if key not in split_options:
            return [f"{key}={' '.join(values)}"]
    return [f"{key}={v}" for v in values]


def _downgrade(
    spec: Field,
    identifier: str,
    value: Any,
    version: PodmanVersion,
) -> List[str]:
    since = introduced_in(identifier) or introduced_in(identifier.split("=", 1)[0])
    min_version = getattr(spec.downgrade, "min_version", None)
    if spec.downgrade is None or (min_version and version < min_version):
        raise VersionIncompatibleError(identifier, version.value, since and since.value)
    args = spec.downgrade(value)
    logger.debug(f"{identifier} requires podman v{since}, using PodmanArgs: {' '.join(args)}")
    return args


def _entries(section: Any) -> List[Tuple[Field, Any]]:
    entries = []
    for f in fields(section):
        spec = f.metadata.get("quadlet")
        if spec is not None:
            entries.append((spec, getattr(section, f.name)))
    return entries


def render_section(
    section: Any,
    context: ConversionContext,
    prefix: Optional[str] = None,
) -> List[str]:
    """
    Render the key lines of one section.

    With a ``prefix`` (the kind section name, or ``Globals``) every key is
    checked against the target version first. Keys that are too new are
    converted to arguments appended to PodmanArgs, or rejected.
    """
    version = context.podman_version
    entries = [(spec, value) for spec, value in _entries(section) if spec.is_set(value) or spec.raw]

    extra_args: List[str] = []
    gated = set()
    if prefix is not None:
        for spec, value in entries:
            if spec.raw or not spec.is_set(value):
                continue
            identifier = f"{prefix}.{spec.key}"
            if spec.value_gated:
                value_id = f"{identifier}={format_value(value)}"
                if is_available(identifier, version) and not is_available(value_id, version):
                    identifier = value_id
            if not is_available(identifier, version):
                extra_args.extend(_downgrade(spec, identifier, value, version))
                gated.add(spec.key)

    lines: List[str] = []
    for spec, value in entries:
        if spec.key in gated:
            continue
        if spec.raw:
            if spec.key == "PodmanArgs":
                value = list(value) + extra_args
            if not value:
                continue
            if prefix is not None and not is_available(f"{prefix}.{spec.key}", version):
                _downgrade(spec, f"{prefix}.{spec.key}", value, version)
        lines.extend(_key_lines(spec, value, context.split_options))
    return lines


def render(file: File, context: ConversionContext) -> str:
    """Render a generated file to text."""
    if isinstance(file, KubeYamlFile):
        return file.content

    if context.resolve_dir is not None:
        file = resolve_host_paths(file, context.resolve_dir)

    kind = file.kind
    version = context.podman_version
    if not is_available(kind.section, version):
        since = introduced_in(kind.section)
        raise VersionIncompatibleError(
            f"{kind.section} quadlet files", version.value, since and since.value
        )

    kind_lines = render_section(file.resource, context, prefix=kind.section)
    kind_lines.extend(render_section(file.globals, context, prefix="Globals"))

    sections = [
        ("Unit", render_section(file.unit, context)),
        (kind.section, kind_lines),
        ("Service", render_section(file.service, context)),
        ("Install", render_section(file.install, context)),
    ]
    blocks = []
    for name, lines in sections:
        if lines:
            blocks.append("\n".join([f"[{name}]"] + lines) + "\n")
    return "\n".join(blocks)


def render_files(files: Iterable[File], context: ConversionContext) -> str:
    """Render several files for printing, each under a ``# name`` header."""
    rendered = [f"# {file.file_name}\n{render(file, context)}" for file in files]
    return FILE_SEPARATOR.join(rendered)
