"""
Arbor command layer: build command trees and dispatch parsed input through them.

What this module provides
- Command: one node of a command tree. A node owns
  • identity: name and aliases (unique among its siblings),
  • metadata: description, version, author, color preference, display order,
  • an argument specification (Cardinal, Option, Flag declarations),
  • exactly one handler,
  • its children, keyed by name.
- Handler kinds, all invoked as handler.__invoke__(command, matches, context):
  • DefaultHandler: delegate to the selected child (the default).
  • CallableHandler: call a user function f(command, matches, context).
  • CompletionHandler: print a shell completion script (see with_completions).
- ColorChoice: per-node color preference (auto, always, never).

Dispatching
- exec_with(matches, context): run the node's handler.
- exec_from(tokens, context): parse tokens (sys.argv convention, the first
  token is the program name and is skipped) and run exec_with.
- exec(context): exec_from(sys.argv, context).

Parse failures raise ArgumentParseError (CommandExit after --help/--version)
before any handler runs. The context is any caller object; it is handed to
every handler by reference and never stored by a node.

Quick start
    from arbor import Command, Cardinal, Flag

    root = Command("tool", "a small tool", version="1.0")

    @root.command("greet", "say hello").argument(Cardinal("who"), Flag("-l", "--loud")).handle
    def greet(command, matches, context):
        print(f"hi {matches['who']}{'!' if matches['loud'] else ''}")

    root.with_completions()
    root.exec(context={})

Tree invariants
- Strictly hierarchical: a node has at most one parent and never becomes its
  own ancestor.
- A node's key in its parent always equals its name; rename() re-keys it.
- Registering a child whose name is already taken replaces the previous child
  (last-write-wins, the old child is detached). Any other name/alias overlap
  between siblings raises ValueError.
- Option names and destinations are unique within a node; -h/--help is
  reserved, and -V/--version as well once the node has a version.
"""
import logging
import re
import sys
from abc import ABC, abstractmethod
from enum import StrEnum

from rich.text import Text

from .arguments import Cardinal, Option, Flag
from .completions import ArgumentSpec, CommandSpec, Shell, generate
from .faults import *
from .parsing import SUBCOMMAND, parse, _ordered
from .utils import *

logger = logging.getLogger(__name__)


class ColorChoice(StrEnum):
    """
    Color preference of a command.

    - AUTO: let rich detect the terminal.
    - ALWAYS: force styled output.
    - NEVER: plain output, faults rendered without colors.
    """
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"

    @property
    def colorful(self):
        return self is not ColorChoice.NEVER

    def console_options(self):
        """
        Keyword arguments for rich.console.Console matching this preference.
        """
        match self:
            case ColorChoice.ALWAYS:
                return {"force_terminal": True}
            case ColorChoice.NEVER:
                return {"no_color": True}
        return {}


class Handler(ABC):
    """
    What a command does when it is reached by dispatch.
    """

    @abstractmethod
    def __invoke__(self, command, matches, context):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class DefaultHandler(Handler):
    """
    Delegate to the child selected in the matches.

    - child selected: run child.exec_with() with the child's own matches.
    - child missing from the tree: UnknownSubcommandError.
    - nothing selected: no-op, returns None.
    """

    def __invoke__(self, command, matches, context):
        if (selected := matches.subcommand()) is None:
            logger.debug("%r has no selected subcommand", command.name)
            return None

        name, submatches = selected
        try:
            child = command._children[name]
        except KeyError:
            raise UnknownSubcommandError(
                f"{name!r} is not a subcommand of {command.name!r}",
                prog=command.root.name,
                hint=f"run '{command.name} --help' to list the subcommands",
            ) from None
        return child.exec_with(submatches, context)


class CallableHandler(Handler):
    """
    Call a user function as f(command, matches, context) and return its result.

    Arbor faults raised by the function propagate unchanged; every other
    exception is wrapped into HandlerError (the original is kept as __cause__).
    """

    def __init__(self, callback, /):
        if not callable(callback):
            raise TypeError("callable-handler 'callback' must be callable")
        self._callback = callback

    @property
    def callback(self):
        return self._callback

    def __invoke__(self, command, matches, context):
        try:
            return self._callback(command, matches, context)
        except CommandException:
            raise
        except Exception as exc:
            raise HandlerError(
                f"{command.name!r} handler failed: {exc}",
                prog=command.root.name,
                colorful=command.color.colorful,
            ) from exc

    def __repr__(self):
        return f"{type(self).__name__}({getattr(self._callback, '__qualname__', self._callback)!r})"


class CompletionHandler(Handler):
    """
    Write the completion script of a frozen command tree to standard output.

    The shell is read from the 'shell' value of the matches.
    """

    def __init__(self, snapshot, /):
        if not isinstance(snapshot, CommandSpec):
            raise TypeError("completion-handler 'snapshot' must be a command spec")
        self._snapshot = snapshot

    @property
    def snapshot(self):
        return self._snapshot

    def __invoke__(self, command, matches, context):
        sys.stdout.write(generate(Shell(matches["shell"]), self._snapshot))
        sys.stdout.flush()


def _resolve_handler(handler, /):
    if handler is Unset:
        return DefaultHandler()
    elif isinstance(handler, Handler):
        return handler
    elif callable(handler):
        return CallableHandler(handler)
    raise TypeError("command 'handler' must be a handler or a callable")


def _sanitize_name(cls, name, field="name", /):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} {field!r} must be a string")
    elif not re.fullmatch(r"\w[\w.-]*", name := name.strip()):
        raise ValueError(f"{cls.__typename__} {field!r} must be a word (letters, digits, '_', '.', '-')")
    return name


def _sanitize_text(cls, object, field, /):
    if not isinstance(object, str | Text):
        raise TypeError(f"{cls.__typename__} {field!r} must be a string")
    elif isinstance(object, str) and not (object := object.strip()):
        raise ValueError(f"{cls.__typename__} {field!r} cannot be empty")
    return object


def _names(command, /):
    return {command._name, *command._aliases}


def _check_siblings(parent, names, /, *exempt):
    """
    Reject names already used (as a name or an alias) by a child of parent.

    Children listed in exempt are skipped.
    """
    for sibling in parent._children.values():
        if any(sibling is other for other in exempt):
            continue
        if overlap := _names(sibling) & set(names):
            raise ValueError(f"command name {min(overlap)!r} is already in use under {parent._name!r}")


_HELP = ("-h", "--help")
_VERSION = ("-V", "--version")


class Command(metaclass=Introspectable):
    """
    Node of a command tree: identity, argument specification, handler and children.

    Every builder method mutates the node and returns it, so construction
    chains naturally; command() is the exception and returns the new child.
    The tree is meant to be complete before the first dispatch.
    """

    __introspectable__ = (
        "name",
        "aliases",
        "descr",
        "version",
        "author",
        "color",
        "order",
        "subcommand_required",
        "arguments",
        "handler",
        "children",
        "parent",
    )
    __displayable__ = (
        "name",
        "aliases",
        "descr",
        "version",
        "handler",
        "children",
    )

    def __init__(
            self,
            name,
            descr=Unset,
            *,
            aliases=(),
            version=Unset,
            author=Unset,
            color=ColorChoice.AUTO,
            order=Unset,
            subcommand_required=False,
            arguments=(),
            handler=Unset,
            children=(),
    ):
        self._name = _sanitize_name(type(self), name)
        self._aliases = ()
        self._descr = None
        self._version = None
        self._author = None
        self._color = ColorChoice.AUTO
        self._order = None
        self._subcommand_required = False
        self._arguments = ()
        self._handler = DefaultHandler()
        self._children = {}
        self._parent = None

        self.alias(*aliases)
        self.describe(descr, version=version, author=author)
        self.colorize(color)
        self.display_order(order)
        self.require_subcommand(subcommand_required)
        self.argument(*arguments)
        self.handle(handler)
        self.subcommand(*children)

    @property
    def root(self):
        """
        Return the topmost command of the tree this node belongs to.
        """
        child, parent = self, self._parent
        while parent:
            child, parent = parent, parent._parent
        return child

    @property
    def path(self):
        """
        Return the ancestry from the root to this node as a tuple (root first).
        """
        path = [command := self]
        while command._parent:
            path.append(command := command._parent)
        return tuple(reversed(path))

    def rename(self, name, /):
        """
        Change the name of this node; an attached node is re-keyed in its parent.
        """
        name = _sanitize_name(type(self), name)
        if name in self._aliases:
            raise ValueError(f"{type(self).__typename__} 'name' cannot be one of its aliases")
        if (parent := self._parent) is not None and name != self._name:
            _check_siblings(parent, {name}, self)
            parent._children = {
                name if child is self else key: child for key, child in parent._children.items()
            }
        self._name = name
        return self

    def alias(self, *names):
        """
        Add alternative names this node answers to.
        """
        aliases = list(self._aliases)
        for alias in names:
            alias = _sanitize_name(type(self), alias, "aliases")
            if alias == self._name or alias in aliases:
                raise ValueError(f"{type(self).__typename__} 'aliases' cannot contain duplicates")
            aliases.append(alias)
        if self._parent is not None:
            _check_siblings(self._parent, aliases, self)
        self._aliases = tuple(aliases)
        return self

    def describe(self, descr=Unset, *, version=Unset, author=Unset):
        """
        Set descriptive metadata; parameters left Unset keep their current value.

        The version enables -V/--version; the author is shown in help output.
        """
        if descr is not Unset:
            self._descr = _sanitize_text(type(self), descr, "descr")
        if version is not Unset:
            version = _sanitize_text(type(self), version, "version")
            _check_reserved(self, self._arguments, _VERSION)
            self._version = version
        if author is not Unset:
            self._author = _sanitize_text(type(self), author, "author")
        return self

    def colorize(self, color, /):
        try:
            self._color = ColorChoice(color)
        except ValueError:
            raise ValueError(f"{type(self).__typename__} 'color' must be one of auto, always or never") from None
        return self

    def display_order(self, order, /):
        """
        Position of this node among its siblings in help output (lower first).
        """
        if isinstance(order, bool) or not isinstance(order, int | None | Unset):
            raise TypeError(f"{type(self).__typename__} 'order' must be an integer")
        self._order = coalesce(order)
        return self

    def require_subcommand(self, yes=True, /):
        """
        Make invoking this node without one of its children a parse error.
        """
        self._subcommand_required = bool(yes)
        return self

    def argument(self, *specs):
        """
        Append argument declarations (Cardinal, Option, Flag) to this node.

        Raises
        - TypeError: a spec is not an argument declaration.
        - ValueError: an option name or destination is already used on this
          node, or a reserved switch (-h/--help, -V/--version) is redeclared.
        """
        arguments = list(self._arguments)
        names = {name for argument in arguments for name in getattr(argument, "names", ())}
        dests = {argument.dest for argument in arguments}
        for spec in specs:
            if not isinstance(spec, Cardinal | Option | Flag):
                raise TypeError(f"{type(self).__typename__} arguments must be cardinals, options or flags")
            if spec.dest in dests or spec.dest == SUBCOMMAND:
                raise ValueError(f"{type(self).__typename__} argument destination {spec.dest!r} is already in use")
            for name in getattr(spec, "names", ()):
                if name in names:
                    raise ValueError(f"{type(self).__typename__} option name {name!r} is already in use")
                names.add(name)
            dests.add(spec.dest)
            arguments.append(spec)

        _check_reserved(self, arguments, _HELP)
        if self._version is not None:
            _check_reserved(self, arguments, _VERSION)
        self._arguments = tuple(arguments)
        return self

    def handle(self, handler, /):
        """
        Bind the handler of this node.

        Accepts a Handler, any callable f(command, matches, context), or Unset
        to restore the default (delegate to the selected child). Usable as a
        decorator, in which case the decorated name is bound to this node.
        """
        self._handler = _resolve_handler(handler)
        return self

    def subcommand(self, *children):
        """
        Attach children to this node, each under its own name.

        A child whose name is already registered replaces the previous one,
        which is detached; re-attaching a current child keeps its position.

        Raises
        - TypeError: a child is not a Command.
        - ValueError: the child belongs to another parent, would create a
          cycle, or one of its names/aliases collides with another sibling.
        """
        for child in children:
            if not isinstance(child, Command):
                raise TypeError(f"{type(self).__typename__} children must be commands")
            if child._parent is self:
                continue
            if child._parent is not None:
                raise ValueError(f"{type(self).__typename__} {child._name!r} is already attached to {child._parent._name!r}")
            if any(node is child for node in self.path):
                raise ValueError(f"{type(self).__typename__} {child._name!r} cannot be attached to itself or its descendants")

            replaced = self._children.get(child._name)
            _check_siblings(self, _names(child), replaced)
            if replaced is not None:
                logger.debug("%r replaces the existing subcommand of %r", child._name, self._name)
                replaced._parent = None

            self._children[child._name] = child
            child._parent = self
        return self

    def command(self, name, /, *args, **kwargs):
        """
        Create a child command, attach it to this node and return the child.

        Arguments are forwarded to Command().
        """
        child = Command(name, *args, **kwargs)
        self.subcommand(child)
        return child

    def with_completions(self):
        """
        Attach a 'completions' subcommand printing a completion script for this tree.

        The script is rendered from a snapshot taken before the subcommand is
        attached, so it never describes 'completions' itself. The binary name
        in the script is the name of this node.
        """
        if isinstance(getattr(self._children.get("completions"), "_handler", None), CompletionHandler):
            self._children.pop("completions")._parent = None

        snapshot = self.snapshot()
        return self.subcommand(Command(
            "completions",
            "generate a shell completion script",
            arguments=(Cardinal("shell", "target shell", choices=tuple(map(str, Shell))),),
            handler=CompletionHandler(snapshot),
        ))

    def snapshot(self):
        """
        Return the frozen argument specification of this node and its subtree.

        The implicit -h/--help (and -V/--version) switches are included; hidden
        arguments are not.
        """
        arguments = [ArgumentSpec(_HELP, "help", "show this help message and exit", (), False)]
        if self._version is not None:
            arguments.append(ArgumentSpec(_VERSION, "version", "show program's version number and exit", (), False))
        arguments += [argument.__describe__() for argument in self._arguments if not argument.hidden]
        return CommandSpec(
            name=self._name,
            aliases=self._aliases,
            descr=None if self._descr is None else str(self._descr),
            arguments=tuple(arguments),
            children=tuple(child.snapshot() for child in _ordered(self._children.values())),
        )

    def get_all_aliases(self):
        return self._aliases

    def get_matches(self):
        """
        Parse sys.argv against this tree.
        """
        return self.get_matches_from(sys.argv)

    def get_matches_from(self, tokens, /):
        """
        Parse tokens against this tree; the first token is the program name and is skipped.

        Raises
        - TypeError: tokens is not an iterable of strings.
        - ArgumentParseError: tokens do not match the tree.
        - CommandExit: help or version output was written.
        """
        if isinstance(tokens, str):
            raise TypeError("get_matches_from() argument must be an iterable of strings")
        tokens = list(tokens)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("get_matches_from() argument must be an iterable of strings")
        return parse(self, tokens[1:])

    def exec_with(self, matches, context):
        """
        Invoke this node's handler with (self, matches, context) and return its result.
        """
        logger.debug("dispatching to %r", " ".join(command._name for command in self.path))
        return self._handler.__invoke__(self, matches, context)

    def exec_from(self, tokens, context):
        """
        Parse tokens (sys.argv convention) and dispatch them.

        No handler runs when parsing fails.
        """
        return self.exec_with(self.get_matches_from(tokens), context)

    def exec(self, context):
        return self.exec_from(sys.argv, context)


def _check_reserved(command, arguments, reserved, /):
    for argument in arguments:
        if taken := set(getattr(argument, "names", ())) & set(reserved):
            raise ValueError(f"{type(command).__typename__} option name {min(taken)!r} is reserved")


__all__ = (
    "ColorChoice",
    "Handler",
    "DefaultHandler",
    "CallableHandler",
    "CompletionHandler",
    "Command",
)
