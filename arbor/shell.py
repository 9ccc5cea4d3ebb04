"""
Arbor interactive loop.

A Session runs a command tree once against the process arguments and, when
those arguments did not select a subcommand, keeps reading lines and
dispatching them until the input ends.

    STARTUP ──(subcommand resolved)──────────────────────> TERMINATED
       │
       └──(no subcommand)──> AWAITING_LINE ⇄ PROCESSING
                                   │
                                   └──(end of input / read failure)──> TERMINATED

Error policy
- start(): faults propagate to the caller (one-shot run).
- step(): tokenize, parse and handler faults are reported on the session
  console and the loop goes on; an interrupted read prints a hint; end of
  input stops the loop silently; any other read failure is reported and stops
  the loop.

Collaborators
- tokenize(line): shell-style splitting (shlex).
- Reader: line source with history. Readline is the default implementation,
  reading through a rich console with the readline module providing line
  editing and history when the platform has it.
"""
import logging
import os.path
import shlex
import sys
from abc import ABC, abstractmethod
from enum import Enum

from rich.console import Console

from .commands import Command
from .faults import *
from .utils import Unset, coalesce

try:
    import readline
except ImportError:
    readline = None

logger = logging.getLogger(__name__)


class State(Enum):
    STARTUP = "startup"
    AWAITING_LINE = "awaiting-line"
    PROCESSING = "processing"
    TERMINATED = "terminated"


def tokenize(line, /):
    """
    Split a line into tokens the way a POSIX shell would (quotes, escapes).

    Raises
    - TypeError: line is not a string.
    - TokenizeError: unbalanced quotes or a dangling escape.
    """
    if not isinstance(line, str):
        raise TypeError("tokenize() argument must be a string")
    try:
        return shlex.split(line)
    except ValueError as exc:
        raise TokenizeError(
            f"cannot split line: {str(exc).lower()}",
            hint="check for unbalanced quotes or a trailing backslash",
        ) from None


class Reader(ABC):
    """
    Blocking line source used by Session.

    readline() returns one line, or raises EndOfInputError, ReadInterruptedError
    or another LineReadError.
    """

    @abstractmethod
    def readline(self, prompt, /):
        raise NotImplementedError

    @abstractmethod
    def add_history(self, line, /):
        raise NotImplementedError

    def close(self):
        pass


class Readline(Reader):
    """
    Line reader over rich Console.input and the readline module.

    Automatic history is disabled: only lines handed to add_history() are
    recorded. With a history_file, history is loaded on construction and
    written back on close().
    """

    def __init__(self, console=Unset, history_file=Unset, history_length=1000):
        if isinstance(history_length, bool) or not isinstance(history_length, int):
            raise TypeError("readline 'history_length' must be an integer")
        self._console = Console() if console is Unset else console
        self._history_file = coalesce(history_file)
        self._history_length = history_length

        if readline is None:
            logger.debug("readline is unavailable, line editing and history are disabled")
            return

        readline.set_auto_history(False)
        readline.set_history_length(history_length)
        if self._history_file and os.path.exists(self._history_file):
            try:
                readline.read_history_file(self._history_file)
            except OSError as exc:
                logger.warning("cannot read history file %s: %s", self._history_file, exc)

    def readline(self, prompt, /):
        try:
            return self._console.input(prompt, markup=False, emoji=False)
        except EOFError:
            raise EndOfInputError("end of input") from None
        except KeyboardInterrupt:
            raise ReadInterruptedError("read interrupted") from None
        except (OSError, ValueError) as exc:
            raise LineReadError(f"cannot read line: {exc}") from exc

    def add_history(self, line, /):
        if readline is not None:
            readline.add_history(line)

    def close(self):
        if readline is None or not self._history_file:
            return
        try:
            readline.write_history_file(self._history_file)
        except OSError as exc:
            logger.warning("cannot write history file %s: %s", self._history_file, exc)


class Session:
    """
    One interactive run of a command tree.

    Parameters
    - command: root Command; its name is prepended to every line read.
    - context: caller object handed to every handler.
    - prompt: text shown before each line.
    - reader: Reader, defaults to Readline.
    - console: rich Console used for faults and hints, defaults to a stderr
      console following the command's color preference.
    """

    def __init__(self, command, context, prompt="> ", *, reader=Unset, console=Unset):
        if not isinstance(command, Command):
            raise TypeError("session 'command' must be a command")
        if not isinstance(prompt, str):
            raise TypeError("session 'prompt' must be a string")
        if not isinstance(reader, Reader | Unset):
            raise TypeError("session 'reader' must be a reader")

        self._command = command
        self._context = context
        self._prompt = prompt
        self._console = Console(stderr=True, **command.color.console_options()) if console is Unset else console
        self._reader = Readline(Console(**command.color.console_options())) if reader is Unset else reader
        self._state = State.STARTUP

    @property
    def state(self):
        return self._state

    @property
    def context(self):
        return self._context

    def _transition(self, state, /):
        logger.debug("session %s -> %s", self._state.value, state.value)
        self._state = state

    def start(self, argv=Unset):
        """
        Run the command once against argv (sys.argv by default).

        Returns False when a subcommand was resolved (one-shot run, the session
        is terminated), True when the session should go on reading lines.
        Faults propagate.
        """
        if self._state is not State.STARTUP:
            raise RuntimeError("session has already started")

        matches = self._command.get_matches_from(coalesce(argv, sys.argv))
        self._command.exec_with(matches, self._context)

        if matches.subcommand() is not None:
            self._transition(State.TERMINATED)
            return False
        self._transition(State.AWAITING_LINE)
        return True

    def step(self):
        """
        Read and process one line; return whether the session is still alive.
        """
        if self._state is not State.AWAITING_LINE:
            raise RuntimeError(f"session cannot read lines while {self._state.value}")

        try:
            line = self._reader.readline(self._prompt)
        except EndOfInputError:
            self._transition(State.TERMINATED)
            return False
        except ReadInterruptedError:
            self._console.print("press CTRL-D to exit")
            return True
        except LineReadError as fault:
            report(fault, console=self._console)
            self._transition(State.TERMINATED)
            return False
        except Exception as exc:
            fault = LineReadError(f"cannot read line: {exc}", prog=self._command.name)
            fault.__cause__ = exc
            report(fault, console=self._console)
            self._transition(State.TERMINATED)
            return False

        self._transition(State.PROCESSING)
        try:
            self._process(line)
        finally:
            self._transition(State.AWAITING_LINE)
        return True

    def _process(self, line, /):
        try:
            tokens = tokenize(line)
        except TokenizeError as fault:
            report(fault, console=self._console)
            return

        self._reader.add_history(line)

        try:
            self._command.exec_from([self._command.name, *tokens], self._context)
        except CommandExit as fault:
            if fault.status:
                report(fault, console=self._console)
        except CommandException as fault:
            report(fault, console=self._console)
        except Exception as exc:
            fault = HandlerError(f"unexpected failure: {exc}", prog=self._command.name)
            fault.__cause__ = exc
            logger.debug("unexpected failure while dispatching %r", line, exc_info=exc)
            report(fault, console=self._console)

    def run(self, argv=Unset):
        """
        start() then step() until the session terminates; the reader is always closed.
        """
        try:
            if self.start(argv):
                while self.step():
                    pass
        finally:
            self._reader.close()


def repl(command, context, prompt="> ", *, argv=Unset, reader=Unset, console=Unset):
    """
    Run a command tree once, then interactively when no subcommand was given.

    Returns normally when the session terminates; faults of the initial run
    propagate.
    """
    Session(command, context, prompt, reader=reader, console=console).run(argv)


__all__ = (
    "State",
    "Reader",
    "Readline",
    "Session",
    "tokenize",
    "repl",
)
