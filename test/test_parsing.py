"""
Parsing module behavioral tests (argparse bridge and scoped matches).

Scope
- Values stay scoped to the node that declares them.
- Aliases resolve to canonical names.
- Parse failures and help/version raise faults instead of exiting.

Conventions
- Test method names follow CamelCase per project convention.
- Help/version output is captured from standard output.
"""

from __future__ import annotations

import contextlib
import io
import unittest
from unittest import TestCase

from arbor import Command, Cardinal, Option, Flag, ColorChoice
from arbor.faults import ArgumentParseError, CommandExit
from arbor.parsing import Matches, build_parser, parse


def tree():
    root = Command("tool", "a tool", version="1.2", author="someone")
    root.argument(Option("-m", "--mode", choices=("fast", "safe"), default="safe"))
    child = root.command("copy", "copy files", aliases=("cp",))
    child.argument(Cardinal("source"), Flag("-v", "--verbose"))
    child.command("deep").argument(Option("--depth", type=int, default=1))
    root.command("list")
    return root


class TestScopedMatches(TestCase):
    def testRootValuesOnly(self):
        matches = parse(tree(), ["-m", "fast", "copy", "a.txt", "-v"])
        self.assertEqual(dict(matches), {"mode": "fast"})
        self.assertEqual(matches.name, "tool")
        self.assertEqual(matches.subcommand_name(), "copy")

    def testChildValuesAreScoped(self):
        matches = parse(tree(), ["copy", "a.txt", "-v"])
        child = matches.subcommand_matches("copy")
        self.assertEqual(dict(child), {"source": "a.txt", "verbose": True})
        self.assertEqual(child.name, "copy")
        self.assertIsNone(child.subcommand())

    def testDefaultsAreFilledPerNode(self):
        matches = parse(tree(), ["copy", "a.txt", "deep"])
        copy = matches.subcommand_matches("copy")
        self.assertEqual(copy["verbose"], False)
        self.assertEqual(dict(copy.subcommand_matches("deep")), {"depth": 1})
        self.assertEqual(matches["mode"], "safe")

    def testConverterIsApplied(self):
        matches = parse(tree(), ["copy", "a.txt", "deep", "--depth", "3"])
        self.assertEqual(matches.subcommand_matches("copy").subcommand_matches("deep")["depth"], 3)

    def testAliasResolvesToCanonicalName(self):
        matches = parse(tree(), ["cp", "a.txt"])
        self.assertEqual(matches.subcommand_name(), "copy")
        self.assertIsNotNone(matches.subcommand_matches("copy"))
        self.assertIsNone(matches.subcommand_matches("cp"))

    def testNoSubcommand(self):
        matches = parse(tree(), [])
        self.assertIsNone(matches.subcommand())
        self.assertIsNone(matches.subcommand_name())

    def testLeafHasNoSubcommandKey(self):
        matches = parse(tree(), ["list"])
        self.assertEqual(dict(matches.subcommand_matches("list")), {})


class TestFaults(TestCase):
    def testUnknownOptionRaises(self):
        with self.assertRaises(ArgumentParseError) as context:
            parse(tree(), ["--bogus"])
        self.assertEqual(context.exception.options["prog"], "tool")
        self.assertIn("--bogus", context.exception.message)

    def testUnknownOptionOfChildReportsChildProg(self):
        with self.assertRaises(ArgumentParseError) as context:
            parse(tree(), ["list", "--bogus"])
        self.assertEqual(context.exception.options["prog"], "tool list")

    def testUnknownSubcommandRaises(self):
        with self.assertRaises(ArgumentParseError) as context:
            parse(tree(), ["frobnicate"])
        self.assertIn("frobnicate", context.exception.message)

    def testInvalidChoiceRaises(self):
        with self.assertRaises(ArgumentParseError):
            parse(tree(), ["--mode", "slow"])

    def testMissingPositionalRaises(self):
        with self.assertRaises(ArgumentParseError):
            parse(tree(), ["copy"])

    def testRequiredSubcommand(self):
        root = tree().require_subcommand()
        with self.assertRaises(ArgumentParseError):
            parse(root, [])

    def testUsageAndHintAreAttached(self):
        with self.assertRaises(ArgumentParseError) as context:
            parse(tree(), ["--bogus"])
        self.assertTrue(context.exception.options["usage"].startswith("usage: tool"))
        self.assertIn("tool --help", context.exception.hint)

    def testColorPreferenceIsForwarded(self):
        root = tree().colorize(ColorChoice.NEVER)
        with self.assertRaises(ArgumentParseError) as context:
            parse(root, ["--bogus"])
        self.assertFalse(context.exception.options["colorful"])


class TestHelpAndVersion(TestCase):
    def testHelpRaisesCommandExit(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout), self.assertRaises(CommandExit) as context:
            parse(tree(), ["--help"])
        self.assertEqual(context.exception.status, 0)
        self.assertIn("usage: tool", stdout.getvalue())
        self.assertIn("author: someone", stdout.getvalue())
        self.assertIn("cp", stdout.getvalue())

    def testChildHelp(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout), self.assertRaises(CommandExit):
            parse(tree(), ["copy", "-h"])
        self.assertIn("usage: tool copy", stdout.getvalue())

    def testVersion(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout), self.assertRaises(CommandExit) as context:
            parse(tree(), ["-V"])
        self.assertEqual(context.exception.status, 0)
        self.assertIn("tool 1.2", stdout.getvalue())

    def testPercentSignsAreLiteral(self):
        root = Command("pct", version="100%")
        root.argument(Option("--mode", descr="50%. faster"), Flag("--sure", descr="100% sure"))
        root.command("half", "50% of it")
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout), self.assertRaises(CommandExit):
            parse(root, ["--help"])
        self.assertIn("50%. faster", stdout.getvalue())
        self.assertIn("100% sure", stdout.getvalue())
        self.assertIn("50% of it", stdout.getvalue())
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout), self.assertRaises(CommandExit):
            parse(root, ["--version"])
        self.assertEqual(stdout.getvalue().strip(), "pct 100%")

    def testSnapshotKeepsRawDescriptions(self):
        root = Command("pct").argument(Flag("--sure", descr="100% sure"))
        self.assertIn("100% sure", [argument.descr for argument in root.snapshot().arguments])

    def testNoVersionSwitchWithoutVersion(self):
        with self.assertRaises(ArgumentParseError):
            parse(Command("bare"), ["--version"])


class TestMatches(TestCase):
    def testMappingBehavior(self):
        matches = Matches("tool", {"a": 1})
        self.assertEqual(matches["a"], 1)
        self.assertEqual(len(matches), 1)
        self.assertEqual(list(matches), ["a"])
        with self.assertRaises(TypeError):
            matches["a"] = 2  # type: ignore[index]

    def testEquality(self):
        self.assertEqual(
            Matches("tool", {}, ("copy", Matches("copy", {"x": 1}))),
            Matches("tool", {}, ("copy", Matches("copy", {"x": 1}))),
        )
        self.assertNotEqual(Matches("tool"), Matches("other"))

    def testBuildParserProg(self):
        self.assertEqual(build_parser(tree()).prog, "tool")


if __name__ == "__main__":
    unittest.main()
