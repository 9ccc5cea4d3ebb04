"""
Arbor faults and their rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing failure, grouped
  by domain so messages and logs stay searchable.
- CommandException: base exception that carries a message plus read-only
  options (hint, prog, usage, colorful, ...) and renders itself with
  rich (see __rich__).
- The concrete taxonomy used by the dispatcher and the interactive loop:
    CommandException
    ├── ArgumentParseError      tokens do not match the argument specification
    ├── CommandExit             help/version was displayed, parsing stopped
    ├── TokenizeError           an interactive line could not be split
    ├── UnknownSubcommandError  a selected child is missing from its parent
    ├── HandlerError            a handler failed (original error is __cause__)
    └── LineReadError           the line reader failed
        ├── EndOfInputError     end of input (CTRL-D)
        └── ReadInterruptedError interrupted read (CTRL-C)
- report(): print any fault on a rich console.

Host customization (read from __main__)
- __styles__: palette overrides, keyed by the style names used in __rich__.
- __prog__: program name shown in fault headers.
- __codes__: mapping FaultCode -> label replacing the numeric code.

Propagation policy
- One-shot runs let faults propagate to the caller.
- The interactive loop reports ArgumentParseError, TokenizeError and
  HandlerError and keeps reading; only EndOfInputError and other
  LineReadError terminate it.
"""
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.text import Text

from .utils import Unset, coalesce

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - routing (1110x): UNKNOWN_SUBCOMMAND
    - arguments (1111x): MALFORMED_ARGUMENTS, PARSER_EXIT
    - handlers (1113x): DELEGATED_ERROR
    - interactive input (1115x / 1116x): MALFORMED_LINE, END_OF_INPUT,
      INTERRUPTED_READ, READ_FAILURE
    """
    # --- routing errors ---
    UNKNOWN_SUBCOMMAND          = 11102

    # --- argument errors ---
    MALFORMED_ARGUMENTS         = 11111
    PARSER_EXIT                 = 11117

    # --- delegated errors ---
    DELEGATED_ERROR             = 11131

    # --- interactive input ---
    MALFORMED_LINE              = 11151
    END_OF_INPUT                = 11161
    INTERRUPTED_READ            = 11162
    READ_FAILURE                = 11163

    def normalize(self):
        """
        return the host label for this code, or the numeric value as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class CommandException(Exception):
    """
    Base class of every arbor fault.

    Attributes
    - message: one-sentence, lowercased description.
    - options: read-only mapping of rendering context. Recognized keys:
      hint, prog, usage, colorful (default True).
    - code/title: class-level identity used by the renderer.
    """
    code = FaultCode.DELEGATED_ERROR
    title = "command error"

    def __init__(self, message=Unset, /, **options):
        if not isinstance(message, str | Unset):
            raise TypeError(f"{type(self).__name__}() message must be a string")
        super().__init__(coalesce(message, ""))
        self.message = coalesce(message, "")
        self.options = MappingProxyType(options)

    @property
    def hint(self):
        return self.options.get("hint")

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "usage": "#8A8FA3",
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        } | getattr(main, "__styles__", {}))

        colorful = self.options.get("colorful", True)

        def text(fragment, style):
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), styles[style] if colorful else "")

        parts = ["[ "]
        if prog := getattr(main, "__prog__", self.options.get("prog")):
            parts += [text(prog, "prog-name"), " · "]
        parts += [text(self.code.normalize(), "code"), " | ", text(self.title.title(), "error-title"), " ]"]
        header = Text.assemble(*parts)

        body = [text(self.message, "error-message")]
        if usage := self.options.get("usage"):
            body.append(text(usage, "usage"))
        if hint := self.hint:
            body.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))

        return Group(header, *body)


class ArgumentParseError(CommandException):
    """Tokens do not match the argument specification of the command tree."""
    code = FaultCode.MALFORMED_ARGUMENTS
    title = "invalid arguments"


class CommandExit(CommandException):
    """
    Parsing stopped on purpose (help or version output was written).

    The status mirrors what a command-line parser would have passed to
    sys.exit(); 0 for help/version.
    """
    code = FaultCode.PARSER_EXIT
    title = "exit"

    def __init__(self, message=Unset, /, *, status=0, **options):
        super().__init__(message, **options)
        self.status = status


class TokenizeError(CommandException):
    """An interactive line is not valid shell-style input."""
    code = FaultCode.MALFORMED_LINE
    title = "malformed line"


class UnknownSubcommandError(CommandException):
    """A parsed child name has no counterpart among the parent's children."""
    code = FaultCode.UNKNOWN_SUBCOMMAND
    title = "unknown subcommand"


class HandlerError(CommandException):
    """A handler failed; the original exception is chained as __cause__."""
    code = FaultCode.DELEGATED_ERROR
    title = "handler failure"


class LineReadError(CommandException):
    """The line reader could not produce a line."""
    code = FaultCode.READ_FAILURE
    title = "read failure"


class EndOfInputError(LineReadError):
    code = FaultCode.END_OF_INPUT
    title = "end of input"


class ReadInterruptedError(LineReadError):
    code = FaultCode.INTERRUPTED_READ
    title = "interrupted"


def report(fault, /, *, console=console):
    """
    Print a fault on a rich console (module-level stderr console by default).
    """
    if not isinstance(fault, CommandException):
        raise TypeError("report() argument must be a command exception")
    console.print(fault)


__all__ = (
    "FaultCode",
    "CommandException",
    "ArgumentParseError",
    "CommandExit",
    "TokenizeError",
    "UnknownSubcommandError",
    "HandlerError",
    "LineReadError",
    "EndOfInputError",
    "ReadInterruptedError",
    "report",
)
