"""
argparse helpers for parsing podman command lines.

``CommandParser`` raises ``ParseError`` instead of exiting, and the
``PassThrough`` action records options podlet does not model verbatim so
they can be written to PodmanArgs in their original order.
"""

import argparse
from typing import Any, Callable, List, Optional, Sequence

from .errors import ParseError
from .fields import format_arg


class InvalidValue(argparse.ArgumentTypeError):
    """Raised by ``checked`` validators; keeps the rejected value."""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"invalid value '{value}': {reason}")


def checked(func: Callable[[str], Any], name: Optional[str] = None) -> Callable[[str], Any]:
    """Wrap a parser so a ``ValueError`` becomes an argparse type error."""

    def convert(value: str) -> Any:
        try:
            return func(value)
        except ValueError as e:
            raise InvalidValue(value, str(e) or f"expected {name or func.__name__}")

    convert.__name__ = name or getattr(func, "__name__", "value")
    return convert


def int_range(low: int, high: int) -> Callable[[str], int]:
    """Integer confined to ``low..high`` inclusive."""

    def parse(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise ValueError("expected an integer")
        if not low <= number <= high:
            raise ValueError(f"must be between {low} and {high}")
        return number

    return checked(parse, f"integer {low}..{high}")


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError("must not be negative")
    return number


def number(value: str) -> str:
    """A decimal number, kept as written."""
    float(value)
    return value


def boolean(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError("expected true or false")


def comma_list(value: str) -> List[str]:
    return [item for item in value.split(",") if item]


class PassThrough(argparse.Action):
    """Append the option, formatted as ``--flag value``, to ``dest``."""

    def __init__(self, option_strings, dest, nargs=None, **kwargs):
        if nargs not in (None, 0):
            raise ValueError("PassThrough takes one value or none")
        super().__init__(option_strings, dest, nargs=nargs, default=None, **kwargs)
        long_flags = [o for o in option_strings if o.startswith("--")]
        self.flag = long_flags[0] if long_flags else option_strings[0]

    def __call__(self, parser, namespace, values, option_string=None):
        collected = list(getattr(namespace, self.dest, None) or [])
        if self.nargs == 0:
            collected.append(self.flag)
        else:
            collected.append(format_arg(self.flag, values))
        setattr(namespace, self.dest, collected)


class Discard(argparse.Action):
    """Accept an option quadlet sets on its own and ignore it."""

    def __init__(self, option_strings, dest, nargs=None, **kwargs):
        super().__init__(option_strings, argparse.SUPPRESS, nargs=nargs, default=argparse.SUPPRESS, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        pass


class CommandParser(argparse.ArgumentParser):
    """Argument parser for one podman subcommand."""

    def __init__(self, prog: str, **kwargs):
        super().__init__(
            prog=prog,
            add_help=False,
            allow_abbrev=False,
            exit_on_error=False,
            **kwargs,
        )

    def error(self, message: str):
        raise ParseError(None, None, f"{self.prog}: {message}")

    def passthrough(self, *flags: str, value: bool = True, type=None, dest: str = "podman_args"):
        """Declare options that are carried through to PodmanArgs."""
        kwargs = {"action": PassThrough, "dest": dest}
        if not value:
            kwargs["nargs"] = 0
        if type is not None:
            kwargs["type"] = type
        self.add_argument(*flags, **kwargs)

    def discard(self, *flags: str, value: bool = False):
        self.add_argument(*flags, action=Discard, nargs=None if value else 0)

    def _flag_arities(self):
        takes_value = {}
        for action in self._actions:
            for option in action.option_strings:
                takes_value[option] = action.nargs != 0
        return takes_value

    def _normalize(self, argv: Sequence[str]) -> List[str]:
        """
        Rewrite ``--flag=true|false`` for flags without a value.

        Stops at ``--`` and, when the command has a trailing command line,
        at the first positional argument.
        """
        takes_value = self._flag_arities()
        has_remainder = any(a.nargs == argparse.REMAINDER for a in self._actions)
        result: List[str] = []
        tokens = list(argv)
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if token == "--" or (has_remainder and not token.startswith("-")):
                result.extend(tokens[i:])
                break
            name, sep, value = token.partition("=")
            if sep and name in takes_value and not takes_value[name]:
                try:
                    enabled = boolean(value)
                except ValueError:
                    raise ParseError(name, value, "expected true or false")
                if enabled:
                    result.append(name)
            else:
                result.append(token)
                if not sep and takes_value.get(token) and i + 1 < len(tokens):
                    result.append(tokens[i + 1])
                    i += 1
            i += 1
        return result

    def parse(self, argv: Sequence[str]) -> argparse.Namespace:
        """Parse ``argv``, raising ``ParseError`` on any invalid input."""
        try:
            return self.parse_args(self._normalize(argv))
        except argparse.ArgumentError as e:
            cause = e.__context__
            if isinstance(cause, InvalidValue):
                raise ParseError(e.argument_name, cause.value, cause.reason) from None
            raise ParseError(e.argument_name, None, e.message) from None


GLOBAL_FLAGS = (
    "--cgroup-manager", "--conmon", "--connection", "--events-backend",
    "--hooks-dir", "--identity", "--imagestore", "--log-level",
    "--network-cmd-path", "--network-config-dir", "--out", "--root",
    "--runroot", "--runtime", "--runtime-flag", "--ssh", "--storage-driver",
    "--storage-opt", "--tmpdir", "--url", "--volumepath",
)

GLOBAL_BOOL_FLAGS = ("--remote", "--syslog", "--transient-store")


def add_global_args(parser: CommandParser, exclude: Sequence[str] = ()) -> None:
    """
    Podman's global options, accepted anywhere in the command line.

    Flags in ``exclude`` are left for the subcommand, which gives them a
    different meaning.
    """
    parser.add_argument("--module", action="append", dest="modules")
    parser.add_argument(
        "--log-level",
        action=PassThrough,
        dest="global_args",
        type=checked(_log_level, "log level"),
    )
    for flag in GLOBAL_FLAGS:
        if flag != "--log-level" and flag not in exclude:
            parser.passthrough(flag, dest="global_args")
    for flag in GLOBAL_BOOL_FLAGS:
        parser.passthrough(flag, value=False, dest="global_args")


def _log_level(value: str) -> str:
    if value not in ("debug", "info", "warn", "error", "fatal", "panic", "trace"):
        raise ValueError("expected one of trace, debug, info, warn, error, fatal, panic")
    return value


def split_globals(argv: Sequence[str], words: Sequence[str]) -> tuple:
    """
    Separate podman global options from the subcommand.

    Returns ``(global_tokens, rest)`` where ``rest`` starts at the first of
    ``words``.
    """
    value_flags = set(GLOBAL_FLAGS) | {"--module"}
    tokens = list(argv)
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in words:
            return tokens[:i], tokens[i:]
        if token in value_flags:
            i += 2
            continue
        if token.startswith("-"):
            i += 1
            continue
        raise ParseError(None, token, "unknown podman command")
    raise ParseError(None, None, "missing podman command")
