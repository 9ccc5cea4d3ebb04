r"""
Arbor argument declarations.

Overview
- Cardinal: positional, value-bearing argument ("FILE", "shell", ...).
- Option: named, value-bearing argument with one or more aliases (-o/--output).
- Flag: named, presence-only switch (-v/--verbose); parsed as a boolean.

Each declaration is attached to a Command (Command.argument) and knows two
things about itself:
- __argparse__(parser): register itself on the argparse parser that the
  command tree is rendered into (see arbor.parsing).
- __describe__(): return an immutable ArgumentSpec for completion snapshots
  (see arbor.completions).

Metadata (sanitized on construction)
- descr: Unset | str | Text, non-empty when provided; becomes None when Unset.
- hidden: bool, suppresses the argument from help and completion scripts.
- Cardinal/Option
  • metavar: Unset | str (label in help), non-empty when provided.
  • type: callable converter applied to every raw value.
  • nargs: Unset | "?" | "+" | "*" | int (>= 1).
  • choices: iterable of allowed values; duplicates rejected unless a Set.
  • metavar and choices cannot be combined (help shows one or the other).
- Option/Flag
  • names: shell-style option names matching r"--?[^\W\d_](-?[^\W_]+)*",
    unique, kept in declaration order.
  • dest: key in Matches; derived from the first long name when Unset
    ("--dry-run" -> "dry_run").

Quick example
    >>> from arbor import Command, Cardinal, Option, Flag
    >>> copy = Command("copy").argument(
    ...     Cardinal("source", "file to copy"),
    ...     Option("-m", "--mode", choices=("fast", "safe"), default="safe"),
    ...     Flag("-v", "--verbose"),
    ... )
"""
import argparse
import builtins
import re
from collections.abc import Iterable, Set

from rich.text import Text

from .completions import ArgumentSpec
from .utils import *


def _sanitize_metadata(cls, metadata, /):
    """
    Validate the metadata shared by every declaration ('descr' and 'hidden').

    Raises
    - TypeError: descr is not a string, a rich Text or Unset.
    - ValueError: descr is an empty string after trimming.
    """
    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")
    metadata["descr"] = coalesce(descr)
    metadata["hidden"] = bool(metadata["hidden"])


def _derive_dest(names, /):
    # argparse convention: first long name wins, otherwise the first name.
    name = next((name for name in names if name.startswith("--")), names[0])
    return name.lstrip("-").replace("-", "_")


def _sanitize_named_metadata(cls, metadata, /):
    r"""
    Validate names and dest of option-like declarations (Option, Flag).

    Responsibilities
    - names: at least one; each a non-empty string matching
      r"--?[^\W\d_](-?[^\W_]+)*" ("-x", "-long", "--long-name"); no
      duplicates. Normalized into a tuple preserving declaration order.
    - dest: Unset or a Python identifier; derived from names when Unset.

    Raises
    - TypeError: missing names or non-string entries.
    - ValueError: empty/invalid/duplicate names, invalid dest.
    """
    if not metadata["names"]:
        raise TypeError(f"{cls.__typename__} must specify at least one name")

    names = []
    for name in metadata["names"]:
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} names must be strings")
        elif not (name := name.strip()):
            raise ValueError(f"{cls.__typename__} names cannot be empty-strings")
        elif not re.fullmatch(r"--?[^\W\d_](-?[^\W_]+)*", name):
            raise ValueError(f"{cls.__typename__} names must be valid shell-style option names (unicodes are allowed)")
        elif name in names:
            raise ValueError(f"{cls.__typename__} names cannot contain duplicates")
        names.append(name)
    metadata["names"] = tuple(names)

    if not isinstance(dest := metadata["dest"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'dest' must be a string")
    elif isinstance(dest, str) and not dest.isidentifier():
        raise ValueError(f"{cls.__typename__} 'dest' must be a valid identifier")
    metadata["dest"] = coalesce(dest, _derive_dest(metadata["names"]))


def _sanitize_parametric_metadata(cls, metadata, /):
    """
    Validate metadata of value-bearing declarations (Cardinal, Option).

    Responsibilities
    - metavar: Unset or a non-empty string after trimming.
    - type: callable converter.
    - nargs: Unset | "?" | "+" | "*" | int >= 1.
    - choices: iterable; when not a Set, duplicates are rejected and the
      collection is stabilized into a tuple.
    - metavar and choices are mutually exclusive.
    """
    if not isinstance(metavar := metadata["metavar"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'metavar' must be a string")
    elif isinstance(metavar, str) and not (metavar := metavar.strip()):
        raise ValueError(f"{cls.__typename__} 'metavar' cannot be empty")
    metadata["metavar"] = coalesce(metavar)

    if not callable(metadata["type"]):
        raise TypeError(f"{cls.__typename__} 'type' must be callable")

    if isinstance(nargs := metadata["nargs"], bool) or not isinstance(nargs, str | int | Unset):
        raise TypeError(f"{cls.__typename__} 'nargs' must be a string or an integer")
    if isinstance(nargs, str) and nargs not in ("?", "+", "*"):
        raise ValueError(f"{cls.__typename__} 'nargs' must be one of '?', '+', or '*'")
    if isinstance(nargs, int) and nargs < 1:
        raise ValueError(f"{cls.__typename__} 'nargs' must be a positive integer")
    metadata["nargs"] = coalesce(nargs)

    if isinstance(choices := metadata["choices"], str) or not isinstance(choices, Iterable):
        raise TypeError(f"{cls.__typename__} 'choices' must be a non-string iterable")
    if not isinstance(choices, Set):
        sanitized = []
        for choice in choices:
            if choice in sanitized:
                raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
            sanitized.append(choice)
        choices = tuple(sanitized)
    metadata["choices"] = choices

    # either a generic label or the enumerated choices, never both
    if metadata["metavar"] and metadata["choices"]:
        raise TypeError(f"{cls.__typename__} cannot have both 'metavar' and 'choices'")


def _text(descr, /):
    return None if descr is None else str(descr)


def _help(descr, /):
    # argparse %-formats help strings
    return None if descr is None else _text(descr).replace("%", "%%")


def _parametric_options(self, /):
    """
    argparse keyword arguments common to Cardinal and Option.
    """
    options = {
        "type": self.type,
        "default": self.default,
        "help": argparse.SUPPRESS if self.hidden else _help(self.descr),
    }
    if self.nargs is not None:
        options["nargs"] = self.nargs
    if self.choices:
        options["choices"] = self.choices
    if self.metavar:
        options["metavar"] = self.metavar
    return options


class Cardinal(metaclass=Introspectable):
    """
    Positional, value-bearing argument.

    The name doubles as the destination key in Matches, so it must be a valid
    Python identifier ("shell", "source_file").
    """

    __introspectable__ = (
        "name",
        "descr",
        "metavar",
        "type",
        "nargs",
        "default",
        "choices",
        "hidden",
    )
    __displayable__ = (
        "name",
        "descr",
        "nargs",
        "choices",
    )

    def __init__(
            self,
            name,
            descr=Unset,
            /,
            *,
            metavar=Unset,
            type=str,
            nargs=Unset,
            default=None,
            choices=(),
            hidden=False
    ):
        if not isinstance(name, str):
            raise TypeError(f"{builtins.type(self).__typename__} 'name' must be a string")
        elif not (name := name.strip()).isidentifier():
            raise ValueError(f"{builtins.type(self).__typename__} 'name' must be a valid identifier")

        metadata = {
            "name": name,
            "descr": descr,
            "metavar": metavar,
            "type": type,
            "nargs": nargs,
            "default": default,
            "choices": choices,
            "hidden": hidden,
        }
        _sanitize_metadata(builtins.type(self), metadata)
        _sanitize_parametric_metadata(builtins.type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def dest(self):
        return self._name

    def __argparse__(self, parser, /):
        """
        Register this positional on an argparse parser.
        """
        parser.add_argument(self._name, **_parametric_options(self))

    def __describe__(self):
        return ArgumentSpec(
            names=(),
            dest=self._name,
            descr=_text(self._descr),
            choices=tuple(map(str, self._choices)),
            takes_value=True,
        )


class Option(metaclass=Introspectable):
    """
    Named, value-bearing argument (e.g. -o/--output PATH).
    """

    __introspectable__ = (
        "names",
        "dest",
        "descr",
        "metavar",
        "type",
        "nargs",
        "default",
        "choices",
        "required",
        "hidden",
    )
    __displayable__ = (
        "names",
        "dest",
        "descr",
        "nargs",
        "choices",
        "required",
    )

    def __init__(
            self,
            *names,
            dest=Unset,
            descr=Unset,
            metavar=Unset,
            type=str,
            nargs=Unset,
            default=None,
            choices=(),
            required=False,
            hidden=False
    ):
        metadata = {
            "names": names,
            "dest": dest,
            "descr": descr,
            "metavar": metavar,
            "type": type,
            "nargs": nargs,
            "default": default,
            "choices": choices,
            "required": bool(required),
            "hidden": hidden,
        }
        _sanitize_metadata(builtins.type(self), metadata)
        _sanitize_named_metadata(builtins.type(self), metadata)
        _sanitize_parametric_metadata(builtins.type(self), metadata)

        if metadata["required"] and metadata["hidden"]:
            raise TypeError(f"required {builtins.type(self).__typename__} cannot be hidden")

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    def __argparse__(self, parser, /):
        """
        Register this option on an argparse parser.
        """
        parser.add_argument(*self._names, dest=self._dest, required=self._required, **_parametric_options(self))

    def __describe__(self):
        return ArgumentSpec(
            names=self._names,
            dest=self._dest,
            descr=_text(self._descr),
            choices=tuple(map(str, self._choices)),
            takes_value=True,
        )


class Flag(metaclass=Introspectable):
    """
    Named, presence-only switch. Parsed as True when present, else False.
    """

    __introspectable__ = (
        "names",
        "dest",
        "descr",
        "hidden",
    )

    def __init__(self, *names, dest=Unset, descr=Unset, hidden=False):
        metadata = {
            "names": names,
            "dest": dest,
            "descr": descr,
            "hidden": hidden,
        }
        _sanitize_metadata(builtins.type(self), metadata)
        _sanitize_named_metadata(builtins.type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    def __argparse__(self, parser, /):
        """
        Register this flag on an argparse parser (store_true).
        """
        parser.add_argument(
            *self._names,
            dest=self._dest,
            action="store_true",
            help=argparse.SUPPRESS if self._hidden else _help(self._descr),
        )

    def __describe__(self):
        return ArgumentSpec(
            names=self._names,
            dest=self._dest,
            descr=_text(self._descr),
            choices=(),
            takes_value=False,
        )


__all__ = (
    "Cardinal",
    "Option",
    "Flag",
)
