"""
Compose file loading for podlet.

Finds, loads and validates Compose files before they are converted.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

import jsonschema
import yaml

from .compose import ComposeDocument
from .errors import PodletError, raise_collected

logger = logging.getLogger(__name__)

COMPOSE_FILE_NAMES = (
    "compose.yaml",
    "compose.yml",
    "docker-compose.yaml",
    "docker-compose.yml",
)


def find_compose_file(directory: Union[str, Path] = ".") -> Optional[Path]:
    """
    Find the Compose file in a directory.

    Args:
        directory: Directory to search

    Returns:
        Path of the first file found, in the order Compose itself uses, or None
    """
    for name in COMPOSE_FILE_NAMES:
        path = Path(directory) / name
        if path.is_file():
            return path
    return None


def load_compose(source: Union[str, Path, TextIO]) -> Dict[str, Any]:
    """
    Load a Compose file.

    Args:
        source: Path of the file, or an open stream (e.g. stdin)

    Returns:
        Parsed YAML content, with anchors and merge keys resolved

    Raises:
        FileNotFoundError: If the compose file does not exist
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Compose file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
    else:
        data = yaml.safe_load(source)
    return data if data is not None else {}


def get_schema_path() -> Path:
    """Get path to the Compose JSON schema shipped with the package."""
    return Path(__file__).parent / "schemas" / "compose-schema.json"


def load_schema() -> Dict[str, Any]:
    """Load the JSON schema for Compose files."""
    with open(get_schema_path()) as f:
        return json.load(f)


def validate_compose(data: Any) -> List[str]:
    """
    Validate Compose data against the JSON schema.

    Returns list of validation errors (empty if valid).
    """
    validator = jsonschema.Draft7Validator(load_schema())
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        path = ".".join(str(p) for p in error.absolute_path)
        errors.append(f"{path}: {error.message}" if path else error.message)
    return errors


def parse_compose(
    source: Union[str, Path, TextIO],
    validate: bool = True,
) -> ComposeDocument:
    """
    Load, validate and parse a Compose file.

    Args:
        source: Path of the file, or an open stream
        validate: Whether to validate against the schema first

    Returns:
        Parsed ComposeDocument
    """
    data = load_compose(source)
    if validate:
        errors = validate_compose(data)
        if errors:
            logger.debug(f"Compose file failed validation with {len(errors)} errors")
        raise_collected([PodletError(f"invalid compose file: {error}") for error in errors])
    document = ComposeDocument.from_dict(data)
    if isinstance(source, (str, Path)):
        document.directory = str(Path(source).resolve().parent)
    return document
