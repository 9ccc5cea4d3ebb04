"""
Faults module behavioral tests (taxonomy, options, rendering, host hooks).

Conventions
- Test method names follow CamelCase per project convention.
- Rendering is checked on a recording rich console without colors.
"""

from __future__ import annotations

import io
import sys
import unittest
from unittest import TestCase, mock

from rich.console import Console

from arbor.faults import (
    FaultCode,
    CommandException,
    ArgumentParseError,
    CommandExit,
    TokenizeError,
    UnknownSubcommandError,
    HandlerError,
    LineReadError,
    EndOfInputError,
    ReadInterruptedError,
    report,
)


def recording_console():
    return Console(file=io.StringIO(), width=200, color_system=None)


class TestTaxonomy(TestCase):
    def testEveryFaultIsACommandException(self):
        for cls in (
                ArgumentParseError,
                CommandExit,
                TokenizeError,
                UnknownSubcommandError,
                HandlerError,
                LineReadError,
        ):
            self.assertTrue(issubclass(cls, CommandException))

    def testReadFaultsShareABase(self):
        self.assertTrue(issubclass(EndOfInputError, LineReadError))
        self.assertTrue(issubclass(ReadInterruptedError, LineReadError))

    def testCodesAreDistinct(self):
        codes = [ArgumentParseError.code, TokenizeError.code, UnknownSubcommandError.code, HandlerError.code]
        self.assertEqual(len(set(codes)), len(codes))


class TestCommandException(TestCase):
    def testMessageMustBeAString(self):
        with self.assertRaises(TypeError):
            CommandException(3)

    def testMessageDefaultsToEmpty(self):
        self.assertEqual(CommandException().message, "")

    def testOptionsAreReadOnly(self):
        fault = CommandException("bad", hint="try again")
        self.assertEqual(fault.hint, "try again")
        with self.assertRaises(TypeError):
            fault.options["hint"] = "other"  # type: ignore[index]

    def testStrIsTheMessage(self):
        self.assertEqual(str(HandlerError("boom")), "boom")

    def testCommandExitCarriesStatus(self):
        self.assertEqual(CommandExit().status, 0)
        self.assertEqual(CommandExit("usage", status=2).status, 2)


class TestRendering(TestCase):
    def testReportRendersHeaderMessageAndHint(self):
        console = recording_console()
        report(ArgumentParseError("bad input", prog="tool", hint="try --help"), console=console)
        output = console.file.getvalue()
        self.assertIn("tool", output)
        self.assertIn("11111", output)
        self.assertIn("Invalid Arguments", output)
        self.assertIn("bad input", output)
        self.assertIn("→ try --help", output)

    def testReportRendersUsage(self):
        console = recording_console()
        report(ArgumentParseError("bad", usage="usage: tool [-h]"), console=console)
        self.assertIn("usage: tool [-h]", console.file.getvalue())

    def testRendersHeaderThenMessage(self):
        console = recording_console()
        report(HandlerError("boom"), console=console)
        lines = console.file.getvalue().splitlines()
        self.assertTrue(lines[0].startswith("[ "))
        self.assertIn("Handler Failure", lines[0])
        self.assertEqual(lines[1], "boom")

    def testReportRejectsOtherObjects(self):
        with self.assertRaises(TypeError):
            report(ValueError("nope"), console=recording_console())

    def testHostCodesReplaceNumericCodes(self):
        codes = {FaultCode.MALFORMED_ARGUMENTS: "E-ARGS"}
        with mock.patch.object(sys.modules["__main__"], "__codes__", codes, create=True):
            self.assertEqual(FaultCode.MALFORMED_ARGUMENTS.normalize(), "E-ARGS")
            self.assertEqual(FaultCode.MALFORMED_LINE.normalize(), "11151")


if __name__ == "__main__":
    unittest.main()
