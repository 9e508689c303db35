"""
Podlet - generate podman quadlet files

Converts podman commands, compose files and existing podman objects to
quadlet files, or compose files to Kubernetes pod YAML.
"""

__version__ = "0.1.0"

from .types import (
    Kind,
    QuadletFile,
    KubeYamlFile,
    Container,
    Pod,
    Kube,
    Network,
    Volume,
    Build,
    Image,
)

from .versions import (
    PodmanVersion,
    LATEST,
)

from .context import ConversionContext

from .errors import (
    PodletError,
    ParseError,
    UndefinedReferenceError,
    UnsupportedOptionError,
    VersionIncompatibleError,
    IntrospectionShapeError,
    ConversionErrors,
)

from .options import parse_podman_command

from .parser import (
    find_compose_file,
    load_compose,
    parse_compose,
)

from .compose import (
    ComposeDocument,
    convert_compose,
)

from .introspect import generate

from .render import (
    render,
    render_files,
)

__all__ = [
    # Types
    "Kind",
    "QuadletFile",
    "KubeYamlFile",
    "Container",
    "Pod",
    "Kube",
    "Network",
    "Volume",
    "Build",
    "Image",
    # Versions
    "PodmanVersion",
    "LATEST",
    "ConversionContext",
    # Errors
    "PodletError",
    "ParseError",
    "UndefinedReferenceError",
    "UnsupportedOptionError",
    "VersionIncompatibleError",
    "IntrospectionShapeError",
    "ConversionErrors",
    # Conversion
    "parse_podman_command",
    "find_compose_file",
    "load_compose",
    "parse_compose",
    "ComposeDocument",
    "convert_compose",
    "generate",
    "render",
    "render_files",
]
