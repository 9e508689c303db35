"""
Quadlet key metadata.

Every rendered dataclass field carries a ``Field`` in its metadata describing
the quadlet key it becomes, how repeated values are written, whether it holds
host paths, and what happens when the target podman version predates it.
"""

import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .versions import PodmanVersion


def format_value(value: Any) -> str:
    """Format a single value the way quadlet and podman expect it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def format_arg(flag: str, value: Any = None, equals: bool = False) -> str:
    """Format one podman argument, shell-quoting the value."""
    if value is None:
        return flag
    text = shlex.quote(format_value(value))
    if equals:
        return f"{flag}={text}"
    return f"{flag} {text}"


class AsArgs:
    """
    Downgrade a key to podman arguments.

    ``constant`` replaces the value (for boolean keys); ``template`` wraps each
    value; ``join`` first merges a list into one value. ``min_version`` is the
    oldest podman version that understands the argument at all.
    """

    def __init__(
        self,
        flag: str,
        template: str = "{}",
        constant: Optional[str] = None,
        join: Optional[str] = None,
        equals: bool = False,
        min_version: Optional[PodmanVersion] = None,
    ):
        self.flag = flag
        self.template = template
        self.constant = constant
        self.join = join
        self.equals = equals
        self.min_version = min_version

    def __call__(self, value: Any) -> List[str]:
        if self.constant is not None:
            return [format_arg(self.flag, self.constant, self.equals)]
        values = value if isinstance(value, list) else [value]
        if self.join is not None:
            values = [self.join.join(format_value(v) for v in values)]
        return [
            format_arg(self.flag, self.template.format(format_value(v)), self.equals)
            for v in values
        ]


Downgrade = Union[AsArgs, Callable[[Any], List[str]]]


@dataclass(frozen=True)
class Field:
    """How one dataclass field maps to a quadlet key."""
    key: str
    join: Optional[str] = None
    downgrade: Optional[Downgrade] = None
    host_path: bool = False
    keep_false: bool = False
    raw: bool = False
    value_gated: bool = False
    format: Optional[Callable[[Any], str]] = None

    def render_value(self, value: Any) -> str:
        if self.format is not None:
            return self.format(value)
        return format_value(value)

    def is_set(self, value: Any) -> bool:
        if value is None:
            return False
        if value is False:
            return self.keep_false
        if isinstance(value, (list, str)):
            return len(value) > 0
        return True


def quadlet(key: str, **kwargs) -> Dict[str, Field]:
    """Dataclass field metadata for a quadlet key."""
    return {"quadlet": Field(key, **kwargs)}
