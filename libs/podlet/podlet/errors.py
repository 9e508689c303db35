"""
Error types raised by podlet.

All errors derive from PodletError and ValueError, so callers that only care
about invalid input can catch ValueError.
"""

from typing import Any, Iterable, List, Optional


class PodletError(ValueError):
    """Base class for every podlet conversion error."""


class ParseError(PodletError):
    """A validated option received a malformed or out-of-range value."""

    def __init__(self, flag: Optional[str], value: Any = None, reason: str = ""):
        self.flag = flag
        self.value = value
        self.reason = reason
        if flag and value is not None:
            message = f"invalid value '{value}' for '{flag}'"
        elif flag:
            message = f"invalid use of '{flag}'"
        else:
            message = "invalid arguments"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UndefinedReferenceError(PodletError):
    """A Compose service references an undeclared top-level resource."""

    def __init__(self, kind: str, reference: str, service: str):
        self.kind = kind
        self.reference = reference
        self.service = service
        super().__init__(
            f"service '{service}' references {kind} '{reference}' "
            f"which is not defined in the top-level '{kind}s' section"
        )


class UnsupportedOptionError(PodletError):
    """An option or attribute has no quadlet or Kubernetes equivalent."""

    def __init__(self, attribute: str, owner: str, reason: str = ""):
        self.attribute = attribute
        self.owner = owner
        self.reason = reason
        message = f"'{attribute}' is not supported ({owner})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class VersionIncompatibleError(PodletError):
    """A key is unavailable at the target podman version and cannot be downgraded."""

    def __init__(self, identifier: str, version: str, since: Optional[str] = None):
        self.identifier = identifier
        self.version = version
        self.since = since
        message = f"{identifier} is not supported by podman v{version}"
        if since:
            message = f"{message} (requires v{since} or later)"
        super().__init__(message)


class IntrospectionShapeError(PodletError):
    """An inspection payload is neither one object nor a one-element list."""

    def __init__(self, shape: str):
        self.shape = shape
        super().__init__(
            f"expected a single object or a one-element list, got {shape}"
        )


class ConversionErrors(PodletError):
    """Several errors collected while converting one input."""

    def __init__(self, errors: Iterable[PodletError]):
        self.errors: List[PodletError] = list(errors)
        lines = [f"{len(self.errors)} errors:"]
        lines.extend(f"  - {e}" for e in self.errors)
        super().__init__("\n".join(lines))


def raise_collected(errors: List[PodletError]) -> None:
    """Raise the collected errors, if any."""
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ConversionErrors(errors)
