"""
CLI for podlet - generate quadlet files from podman commands and compose files.

Commands:
    podman      Convert a podman command (run, pod create, kube play, ...)
    compose     Convert a compose file
    generate    Generate from an existing container, pod, network, volume or image
"""

import argparse
import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

import yaml

from .compose import convert_compose
from .context import SPLITTABLE_KEYS, ConversionContext
from .errors import PodletError
from .introspect import KINDS, generate
from .options import parse_podman_command
from .parser import find_compose_file, parse_compose
from .render import render, render_files
from .types import File
from .versions import LATEST, PodmanVersion

logger = logging.getLogger(__name__)

COMMANDS = ("podman", "compose", "generate")

# global options whose value must be attached with "="
_ATTACHED_VALUE_FLAGS = {
    "-f": "--file=.",
    "--file": "--file=.",
    "-a": "--absolute-host-paths=",
    "--absolute-host-paths": "--absolute-host-paths=",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="podlet",
        description="Generate podman quadlet files from a podman command, compose file or existing object",
    )
    parser.add_argument(
        "-f", "--file",
        metavar="DIR",
        help="Write files to DIR instead of stdout (--file alone writes to the current directory)",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing files when writing with --file",
    )
    parser.add_argument(
        "-a", "--absolute-host-paths",
        metavar="DIR",
        help="Resolve relative host paths against DIR (--absolute-host-paths alone uses the current directory)",
    )
    parser.add_argument(
        "--podman-version",
        type=PodmanVersion.parse,
        default=LATEST,
        help=f"Podman version generated files target (default: {LATEST.value})",
    )
    parser.add_argument(
        "--split-options",
        action="append",
        metavar="KEYS",
        help=f"Write these keys one value per line, comma separated ({', '.join(sorted(SPLITTABLE_KEYS))})",
    )
    parser.add_argument(
        "-n", "--name",
        help="Name of the generated file (podman and generate commands)",
    )
    parser.add_argument("-d", "--description", help="[Unit] Description")
    parser.add_argument("--wants", action="append", metavar="UNIT", help="[Unit] Wants")
    parser.add_argument("--requires", action="append", metavar="UNIT", help="[Unit] Requires")
    parser.add_argument("--binds-to", action="append", metavar="UNIT", help="[Unit] BindsTo")
    parser.add_argument("--before", action="append", metavar="UNIT", help="[Unit] Before")
    parser.add_argument("--after", action="append", metavar="UNIT", help="[Unit] After")
    parser.add_argument(
        "-i", "--install",
        action="store_true",
        help="Add an [Install] section (WantedBy=default.target unless set below)",
    )
    parser.add_argument("--wanted-by", action="append", metavar="UNIT", help="[Install] WantedBy")
    parser.add_argument("--required-by", action="append", metavar="UNIT", help="[Install] RequiredBy")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # podman command
    podman_parser = subparsers.add_parser(
        "podman",
        help="Convert a podman command",
    )
    podman_parser.add_argument(
        "podman_args",
        nargs=argparse.REMAINDER,
        help="run, create, pod create, kube play, network create, volume create, build or pull, with its arguments",
    )

    # compose command
    compose_parser = subparsers.add_parser(
        "compose",
        help="Convert a compose file",
    )
    grouping = compose_parser.add_mutually_exclusive_group()
    grouping.add_argument(
        "--pod",
        action="store_true",
        help="Put the services in a pod named after the compose file's name",
    )
    grouping.add_argument(
        "--kube",
        action="store_true",
        help="Generate a Kubernetes pod and a .kube file instead",
    )
    compose_parser.add_argument(
        "compose_file",
        nargs="?",
        metavar="FILE",
        help="Compose file, '-' for stdin (default: compose.yaml etc. in the current directory, else stdin)",
    )

    # generate command
    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate from an existing podman object",
    )
    generate_parser.add_argument(
        "kind",
        choices=KINDS,
        help="Object type",
    )
    generate_parser.add_argument(
        "object",
        help="Name or ID of the object",
    )
    generate_parser.add_argument(
        "--from-json",
        metavar="FILE",
        help="Read the inspect output from FILE ('-' for stdin) instead of running podman",
    )
    generate_parser.add_argument(
        "--ignore-infra-conmon-pidfile",
        action="store_true",
        help="Ignore the pod's --infra-conmon-pidfile, which quadlet sets itself",
    )
    generate_parser.add_argument(
        "--ignore-pod-id-file",
        action="store_true",
        help="Ignore the pod's --pod-id-file, which quadlet sets itself",
    )

    return parser


def attach_optional_values(argv: Sequence[str]) -> List[str]:
    """Rewrite bare ``--file`` and ``--absolute-host-paths`` before the command."""
    result = []
    for i, token in enumerate(argv):
        if token in COMMANDS:
            return result + list(argv[i:])
        result.append(_ATTACHED_VALUE_FLAGS.get(token, token))
    return result


def podman_inspect(kind: str, name: str) -> Any:
    """Run ``podman <kind> inspect <name>`` and decode its output."""
    cmd = ["podman", kind, "inspect", name]
    logger.debug(f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise PodletError(f"'{' '.join(cmd)}' failed: {result.stderr.strip()}")
    return json.loads(result.stdout)


def output_files(
    files: List[File],
    context: ConversionContext,
    output_dir: Optional[str] = None,
    overwrite: bool = False,
) -> None:
    """Output generated files to a directory or stdout."""
    if output_dir is None:
        if len(files) == 1:
            print(render(files[0], context), end="")
        else:
            print(render_files(files, context), end="")
        return

    # render everything before writing anything
    rendered = [(Path(output_dir) / file.file_name, render(file, context)) for file in files]
    if not overwrite:
        for path, _ in rendered:
            if path.exists():
                raise PodletError(f"{path} already exists, use --overwrite to replace it")

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for path, content in rendered:
        path.write_text(content)
        print(f"Written: {path}", file=sys.stderr)


def cmd_podman(args: argparse.Namespace, context: ConversionContext) -> List[File]:
    """Handle podman command."""
    if not args.podman_args:
        raise PodletError("missing podman command")
    options = parse_podman_command(args.podman_args)
    return [options.to_quadlet_file(context, name=args.name)]


def cmd_compose(args: argparse.Namespace, context: ConversionContext) -> List[File]:
    """Handle compose command."""
    source = args.compose_file
    if source == "-":
        source = sys.stdin
    elif source is None:
        source = find_compose_file()
        if source is None:
            if sys.stdin.isatty():
                raise PodletError("no compose file found in the current directory, and stdin is a terminal")
            source = sys.stdin
    logger.debug(f"Reading compose file from {getattr(source, 'name', source)}")

    document = parse_compose(source)
    files = convert_compose(document, context)
    logger.info(f"Converted {len(document.services)} services to {len(files)} files")
    return files


def cmd_generate(args: argparse.Namespace, context: ConversionContext) -> List[File]:
    """Handle generate command."""
    if args.from_json == "-":
        payload = json.load(sys.stdin)
    elif args.from_json:
        with open(args.from_json) as f:
            payload = json.load(f)
    else:
        payload = podman_inspect(args.kind, args.object)

    return generate(
        args.kind,
        payload,
        context,
        inspect=podman_inspect,
        name=args.name,
        ignore_infra_conmon_pidfile=args.ignore_infra_conmon_pidfile,
        ignore_pod_id_file=args.ignore_pod_id_file,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(attach_optional_values(sys.argv[1:] if argv is None else argv))

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "podman": cmd_podman,
        "compose": cmd_compose,
        "generate": cmd_generate,
    }

    handler = commands.get(args.command)
    if not handler:
        parser.print_help()
        return 1

    try:
        context = ConversionContext.from_args(args)
        files = handler(args, context)
        output_files(files, context, args.file, args.overwrite)
    except (ValueError, OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
