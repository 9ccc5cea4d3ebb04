"""
Arbor argument parsing (argparse bridge).

A command tree is rendered into one argparse parser per parse. Each node
becomes a parser; children become sub-parsers registered under their names and
aliases. Two details differ from stock argparse:

- Faults, not exits: ArgumentParser.error() raises ArgumentParseError and
  ArgumentParser.exit() (reached after --help/--version output) raises
  CommandExit. Nothing in this module ever terminates the process.
- Scoped values: a selected sub-parser stores its values in a namespace of its
  own, attached to the parent's namespace as (canonical name, namespace). The
  parent therefore never sees its children's values, and aliases typed by the
  user resolve to the canonical child name.

Matches is the read-only, per-node view over such a namespace.
"""
import argparse
import logging
from collections.abc import Mapping
from types import MappingProxyType

from .arguments import _help
from .faults import ArgumentParseError, CommandExit
from .utils import Unset, coalesce

logger = logging.getLogger(__name__)

SUBCOMMAND = "__subcommand__"


class _ScopedSubParsersAction(argparse._SubParsersAction):  # NOQA
    """
    Sub-parsers action that keeps the selected child's values in their own scope.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._canonical = {}

    def add_parser(self, name, **kwargs):
        for alias in (name, *kwargs.get("aliases", ())):
            self._canonical[alias] = name
        return super().add_parser(name, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        name, *tokens = values
        try:
            subparser = self._name_parser_map[name]
        except KeyError:
            raise argparse.ArgumentError(self, f"unknown command {name!r}") from None

        # unrecognized tokens are reported by the sub-parser itself, with its own usage
        setattr(namespace, self.dest, (self._canonical[name], subparser.parse_args(tokens)))


class ArgumentParser(argparse.ArgumentParser):
    """
    argparse.ArgumentParser raising arbor faults instead of exiting.

    Extra keyword
    - colorful: forwarded to the faults this parser raises (default True).
    """

    def __init__(self, *args, colorful=True, **kwargs):
        super().__init__(*args, **kwargs)
        self.colorful = colorful
        self.register("action", "parsers", _ScopedSubParsersAction)

    def error(self, message):
        raise ArgumentParseError(
            message,
            prog=self.prog,
            usage=self.format_usage().strip(),
            hint=f"run '{self.prog} --help' to see valid forms",
            colorful=self.colorful,
        )

    def exit(self, status=0, message=None):
        raise CommandExit((message or "").strip(), status=status, prog=self.prog, colorful=self.colorful)


class Matches(Mapping):
    """
    Parsed values of one command node.

    Behaves as a read-only mapping from argument destination to value; the
    selected child (if any) is reachable through subcommand().
    """

    __slots__ = ("_name", "_values", "_subcommand")

    def __init__(self, name, values=Unset, subcommand=None, /):
        self._name = name
        self._values = MappingProxyType(dict(coalesce(values, {})))
        self._subcommand = subcommand

    @classmethod
    def from_namespace(cls, name, namespace, /):
        """
        Build matches from an argparse namespace produced by build_parser().
        """
        values = dict(vars(namespace))
        subcommand = None
        if (selected := values.pop(SUBCOMMAND, None)) is not None:
            child, subnamespace = selected
            subcommand = child, cls.from_namespace(child, subnamespace)
        return cls(name, values, subcommand)

    @property
    def name(self):
        return self._name

    def subcommand(self):
        """
        Return (canonical child name, child matches), or None when no child was selected.
        """
        return self._subcommand

    def subcommand_name(self):
        return self._subcommand[0] if self._subcommand else None

    def subcommand_matches(self, name, /):
        if self._subcommand and self._subcommand[0] == name:
            return self._subcommand[1]
        return None

    def __getitem__(self, key, /):
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __eq__(self, other, /):
        if not isinstance(other, Matches):
            return NotImplemented
        return (self._name, dict(self._values), self._subcommand) == (other._name, dict(other._values), other._subcommand)

    __hash__ = None

    def __repr__(self):
        return f"matches({self._name!r}, {dict(self._values)!r}, subcommand={self.subcommand_name()!r})"

    def __rich_repr__(self):
        yield "name", self._name
        yield "values", dict(self._values)
        yield "subcommand", self._subcommand


def _epilog(command, /):
    return f"author: {command.author}" if command.author else None


def _populate(parser, command, /):
    if command.version:
        parser.add_argument("-V", "--version", action="version", version="%(prog)s " + _help(command.version))

    for argument in command.arguments:
        argument.__argparse__(parser)

    if not command.children:
        return

    subparsers = parser.add_subparsers(dest=SUBCOMMAND, required=command.subcommand_required, metavar="COMMAND")
    for child in _ordered(command.children.values()):
        _populate(subparsers.add_parser(
            child.name,
            aliases=list(child.aliases),
            help=_help(child.descr),
            description=None if child.descr is None else str(child.descr),
            epilog=_epilog(child),
            colorful=child.color.colorful,
        ), child)


def _ordered(children, /):
    # stable: unordered children keep their registration order, after ordered ones
    return sorted(children, key=lambda child: float("inf") if child.order is None else child.order)


def build_parser(command, /):
    """
    Render a command and its subtree into an ArgumentParser.

    The parser is named after the command; -h/--help is implicit on every
    node and -V/--version is added where a version is set.
    """
    parser = ArgumentParser(
        prog=command.name,
        description=None if command.descr is None else str(command.descr),
        epilog=_epilog(command),
        colorful=command.color.colorful,
    )
    _populate(parser, command)
    logger.debug("built parser for %r", command.name)
    return parser


def parse(command, tokens, /):
    """
    Parse tokens (program name excluded) against a command tree into Matches.

    Raises
    - ArgumentParseError: tokens do not match the tree.
    - CommandExit: help or version output was written.
    """
    namespace = build_parser(command).parse_args(list(tokens))
    return Matches.from_namespace(command.name, namespace)


__all__ = (
    "SUBCOMMAND",
    "ArgumentParser",
    "Matches",
    "build_parser",
    "parse",
)
