"""
Completions module behavioral tests (snapshots and per-shell scripts).

Scope
- Snapshots describe the tree as it was, implicit switches included and
  hidden arguments excluded.
- Every shell renders a non-empty script naming the root command, its
  subcommands with their aliases, option names and enumerated choices.
- The 'completions' subcommand never describes itself.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import contextlib
import io
import unittest
from unittest import TestCase

from arbor import Command, Cardinal, Option, Flag
from arbor.commands import CompletionHandler
from arbor.completions import GENERATORS, CommandSpec, Shell, generate


def tree():
    root = Command("tool", "a tool", version="1.0")
    root.argument(Option("-m", "--mode", "-mode", choices=("fast", "safe"), descr="it's the mode"))
    greet = root.command("greet", "say hello\nwith more lines", aliases=("hi",))
    greet.argument(Cardinal("who", choices=("world", "moon")), Flag("--loud"), Flag("--secret", hidden=True))
    greet.command("twice").argument(Option("-o", "--output", descr="where to write"))
    return root


class TestSnapshot(TestCase):
    def testImplicitSwitches(self):
        spec = tree().snapshot()
        names = [argument.names for argument in spec.arguments]
        self.assertIn(("-h", "--help"), names)
        self.assertIn(("-V", "--version"), names)
        self.assertNotIn(("-V", "--version"), [argument.names for argument in spec.find("greet").arguments])

    def testHiddenArgumentsExcluded(self):
        dests = [argument.dest for argument in tree().snapshot().find("greet").arguments]
        self.assertIn("loud", dests)
        self.assertNotIn("secret", dests)

    def testFindFollowsCanonicalNames(self):
        spec = tree().snapshot()
        self.assertEqual(spec.find("greet", "twice").name, "twice")
        self.assertIsNone(spec.find("hi"))
        self.assertIs(spec.find(), spec)

    def testSnapshotIsFrozen(self):
        root = tree()
        spec = root.snapshot()
        root.command("later")
        self.assertIsNone(spec.find("later"))

    def testDisplayOrder(self):
        root = Command("tool")
        root.command("b")
        root.command("a").display_order(0)
        self.assertEqual([child.name for child in root.snapshot().children], ["a", "b"])


class TestGenerate(TestCase):
    def testEveryShellNamesTheRoot(self):
        spec = tree().snapshot()
        for shell in Shell:
            with self.subTest(shell=shell):
                script = generate(shell, spec)
                self.assertTrue(script.strip())
                self.assertIn("tool", script)
                self.assertIn("greet", script)
                self.assertIn("hi", script)
                self.assertIn("twice", script)
                self.assertIn("--mode", script if shell is not Shell.FISH else script.replace("-l mode", "--mode"))
                self.assertIn("moon", script)

    def testRegistryCoversEveryShell(self):
        self.assertEqual(set(GENERATORS), set(Shell))

    def testShellIdentifiersAsStrings(self):
        self.assertEqual(generate("bash", tree().snapshot()), generate(Shell.BASH, tree().snapshot()))

    def testUnknownShellRejected(self):
        with self.assertRaises(ValueError):
            generate("tcsh", tree().snapshot())

    def testSpecMustBeASnapshot(self):
        with self.assertRaises(TypeError):
            generate(Shell.BASH, tree())

    def testBinNameOverride(self):
        script = generate(Shell.BASH, tree().snapshot(), bin_name="other")
        self.assertIn("complete -F _other -o bashdefault -o default other", script)

    def testBash(self):
        script = generate(Shell.BASH, tree().snapshot())
        self.assertIn("complete -F _tool -o bashdefault -o default tool", script)
        self.assertIn("'tool,greet'|'tool,hi')", script)
        self.assertIn("cmdpath='tool__greet__twice'", script)
        self.assertIn("compgen -W 'fast safe'", script)
        self.assertIn("compgen -f", script)

    def testZsh(self):
        script = generate(Shell.ZSH, tree().snapshot())
        self.assertTrue(script.startswith("#compdef tool\n"))
        self.assertIn("compdef _tool tool", script)
        self.assertIn("compadd -- 'fast' 'safe'", script)
        self.assertIn("_files", script)

    def testFish(self):
        script = generate(Shell.FISH, tree().snapshot())
        self.assertIn("complete -c tool -f", script)
        self.assertIn("-n '__fish_tool_at tool' -a 'hi' -d 'say hello'", script)
        self.assertIn("-s m -l mode -o mode -r -f -a 'fast safe' -d 'it\\'s the mode'", script)
        self.assertIn("-s o -l output -r -F -d 'where to write'", script)
        self.assertIn("-n '__fish_tool_at tool__greet' -l loud", script)

    def testPowershell(self):
        script = generate(Shell.POWERSHELL, tree().snapshot())
        self.assertIn("Register-ArgumentCompleter -Native -CommandName 'tool'", script)
        self.assertIn("'tool;hi;twice' {", script)
        self.assertIn("'it''s the mode'", script)

    def testElvish(self):
        script = generate(Shell.ELVISH, tree().snapshot())
        self.assertIn("set edit:completion:arg-completer[tool]", script)
        self.assertIn("&'tool;greet;twice'= {", script)
        self.assertIn("cand 'moon'", script)

    def testHiddenArgumentsNotCompleted(self):
        for shell in Shell:
            with self.subTest(shell=shell):
                self.assertNotIn("secret", generate(shell, tree().snapshot()))


class TestWithCompletions(TestCase):
    def testCompletionsLeafIsAttachedLast(self):
        root = tree().with_completions()
        self.assertIn("completions", root.children)
        handler = root.children["completions"].handler
        self.assertIsInstance(handler, CompletionHandler)
        self.assertIsInstance(handler.snapshot, CommandSpec)
        self.assertIsNone(handler.snapshot.find("completions"))
        self.assertEqual([child.name for child in handler.snapshot.children], ["greet"])

    def testCompletionsPrintsScript(self):
        root = tree().with_completions()
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            root.exec_from(["tool", "completions", "fish"], context=None)
        self.assertEqual(stdout.getvalue(), generate(Shell.FISH, root.children["completions"].handler.snapshot))

    def testCompletionsShellIsRestricted(self):
        from arbor.faults import ArgumentParseError

        root = tree().with_completions()
        with self.assertRaises(ArgumentParseError):
            root.exec_from(["tool", "completions", "tcsh"], context=None)

    def testWithCompletionsTwiceKeepsOneLeaf(self):
        root = tree().with_completions().with_completions()
        self.assertIsNone(root.children["completions"].handler.snapshot.find("completions"))


if __name__ == "__main__":
    unittest.main()
