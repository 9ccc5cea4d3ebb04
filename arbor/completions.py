"""
Shell completion scripts for arbor command trees.

This module works on a *snapshot* of a command tree: immutable CommandSpec /
ArgumentSpec named tuples produced by Command.snapshot(). Working from a
snapshot keeps the generator independent of the live tree, so the
`completions` command installed by Command.with_completions() is never part of
the script it prints.

Supported shells
- bash, zsh, fish: the script walks the words typed so far through a table of
  (path, word) -> path transitions, then offers the candidates of the node it
  ended on (subcommands and their aliases, option names, positional choices)
  or, right after an option that takes a value, that option's choices.
- powershell, elvish: the words typed so far (up to the first option) are
  joined with ';' and looked up in a table with one entry per reachable
  spelling of every command path, aliases included.

Entry points
- Shell: enumeration of the supported shell identifiers.
- generate(shell, spec, bin_name=Unset) -> str
- GENERATORS: mapping Shell -> renderer(spec, bin_name) -> str
"""
import logging
import re
from enum import StrEnum
from typing import NamedTuple

from .utils import Unset, coalesce

logger = logging.getLogger(__name__)


class Shell(StrEnum):
    BASH = "bash"
    ZSH = "zsh"
    POWERSHELL = "powershell"
    FISH = "fish"
    ELVISH = "elvish"


class ArgumentSpec(NamedTuple):
    """
    Completion-relevant view of one argument.

    names is empty for positionals; takes_value is False for flags.
    """
    names: tuple
    dest: str
    descr: str | None
    choices: tuple
    takes_value: bool

    @property
    def positional(self):
        return not self.names


class CommandSpec(NamedTuple):
    """
    Frozen argument specification of a command and its whole subtree.
    """
    name: str
    aliases: tuple
    descr: str | None
    arguments: tuple
    children: tuple

    def find(self, *path):
        """
        Return the descendant reached by following canonical names, or None.
        """
        spec = self
        for name in path:
            spec = next((child for child in spec.children if child.name == name), None)
            if spec is None:
                return None
        return spec


def _summary(descr, /):
    # completion menus are single-line
    lines = (descr or "").strip().splitlines()
    return lines[0] if lines else ""


def _nodes(spec, /, path=()):
    """
    Yield (canonical path, spec) for every command of the snapshot, depth first.
    """
    path = (*path, spec.name)
    yield path, spec
    for child in spec.children:
        yield from _nodes(child, path)


def _spellings(spec, /, words=()):
    """
    Yield (typed words, spec) for every way a command can be reached.

    The root is always spelled with its name; children once per name or alias.
    """
    words = words or (spec.name,)
    yield words, spec
    for child in spec.children:
        for name in (child.name, *child.aliases):
            yield from _spellings(child, (*words, name))


def _key(path, /):
    return "__".join(path)


def _words(spec, /):
    """
    Candidate words offered at a command: subcommands, options, choices.
    """
    words = []
    for child in spec.children:
        words += [child.name, *child.aliases]
    for argument in spec.arguments:
        words += argument.choices if argument.positional else argument.names
    return words


def _valued(spec, /):
    """
    Options of a command that expect a value, as (names, choices) pairs.
    """
    return [(argument.names, argument.choices) for argument in spec.arguments if argument.names and argument.takes_value]


def _transitions(spec, /):
    """
    Yield (path key, words, target key) for every parent -> child step.
    """
    for path, node in _nodes(spec):
        for child in node.children:
            yield _key(path), (child.name, *child.aliases), _key((*path, child.name))


def _sh(text, /):
    """
    Single-quote a word for bash/zsh.
    """
    return "'" + str(text).replace("'", "'\\''") + "'"


def _function(bin_name, /):
    return "_" + re.sub(r"\W", "_", bin_name)


def _bash(spec, bin_name, /):
    function = _function(bin_name)
    lines = [
        f"{function}() {{",
        "    local cur prev cmdpath i",
        "    COMPREPLY=()",
        '    cur="${COMP_WORDS[COMP_CWORD]}"',
        '    prev="${COMP_WORDS[COMP_CWORD-1]}"',
        f"    cmdpath={_sh(_key((spec.name,)))}",
        "",
    ]

    if transitions := list(_transitions(spec)):
        lines += [
            "    for ((i = 1; i < COMP_CWORD; i++)); do",
            '        case "${cmdpath},${COMP_WORDS[i]}" in',
        ]
        for source, words, target in transitions:
            lines += [
                f"            {'|'.join(_sh(f'{source},{word}') for word in words)})",
                f"                cmdpath={_sh(target)}",
                "                ;;",
            ]
        lines += [
            "        esac",
            "    done",
            "",
        ]

    lines.append('    case "${cmdpath}" in')
    for path, node in _nodes(spec):
        lines.append(f"        {_sh(_key(path))})")
        if valued := _valued(node):
            lines.append('            case "${prev}" in')
            for names, choices in valued:
                lines.append(f"                {'|'.join(map(_sh, names))})")
                if choices:
                    lines.append(f'                    COMPREPLY=($(compgen -W {_sh(" ".join(choices))} -- "${{cur}}"))')
                else:
                    lines.append('                    COMPREPLY=($(compgen -f -- "${cur}"))')
                lines += [
                    "                    return 0",
                    "                    ;;",
                ]
            lines.append("            esac")
        lines += [
            f'            COMPREPLY=($(compgen -W {_sh(" ".join(_words(node)))} -- "${{cur}}"))',
            "            return 0",
            "            ;;",
        ]
    lines += [
        "    esac",
        "}",
        "",
        f"complete -F {function} -o bashdefault -o default {bin_name}",
        "",
    ]
    return "\n".join(lines)


def _zsh(spec, bin_name, /):
    function = _function(bin_name)
    lines = [
        f"#compdef {bin_name}",
        "",
        f"{function}() {{",
        "    local cmdpath prev i",
        "    local -a candidates",
        f"    cmdpath={_sh(_key((spec.name,)))}",
        "",
    ]

    if transitions := list(_transitions(spec)):
        lines += [
            "    for ((i = 2; i < CURRENT; i++)); do",
            '        case "${cmdpath},${words[i]}" in',
        ]
        for source, words, target in transitions:
            lines += [
                f"            {'|'.join(_sh(f'{source},{word}') for word in words)})",
                f"                cmdpath={_sh(target)}",
                "                ;;",
            ]
        lines += [
            "        esac",
            "    done",
            "",
        ]

    lines += [
        '    prev="${words[CURRENT-1]}"',
        '    case "${cmdpath}" in',
    ]
    for path, node in _nodes(spec):
        lines.append(f"        {_sh(_key(path))})")
        if valued := _valued(node):
            lines.append('            case "${prev}" in')
            for names, choices in valued:
                lines.append(f"                {'|'.join(map(_sh, names))})")
                if choices:
                    lines.append(f"                    compadd -- {' '.join(map(_sh, choices))}")
                else:
                    lines.append("                    _files")
                lines += [
                    "                    return",
                    "                    ;;",
                ]
            lines.append("            esac")
        lines += [
            f"            candidates=({' '.join(map(_sh, _words(node)))})",
            "            ;;",
        ]
    lines += [
        "    esac",
        '    compadd -- "${candidates[@]}"',
        "}",
        "",
        f'if [ "$funcstack[1]" = "{function}" ]; then',
        f'    {function} "$@"',
        "else",
        f"    compdef {function} {bin_name}",
        "fi",
        "",
    ]
    return "\n".join(lines)


def _fish_quote(text, /):
    return "'" + str(text).replace("\\", "\\\\").replace("'", "\\'") + "'"


def _fish_names(names, /):
    """
    Translate option names into fish's -s/-l/-o switches.
    """
    switches = []
    for name in names:
        if name.startswith("--"):
            switches += ["-l", name[2:]]
        elif len(name) == 2:
            switches += ["-s", name[1:]]
        else:
            switches += ["-o", name[1:]]
    return " ".join(switches)


def _fish(spec, bin_name, /):
    function = "__fish" + _function(bin_name)
    lines = [
        f"function {function}_cmdpath",
        "    set -l tokens (commandline -opc)",
        "    set -e tokens[1]",
        f"    set -l cmdpath {_fish_quote(_key((spec.name,)))}",
        "    for token in $tokens",
        '        switch "$cmdpath,$token"',
    ]
    for source, words, target in _transitions(spec):
        lines += [
            f"            case {' '.join(_fish_quote(f'{source},{word}') for word in words)}",
            f"                set cmdpath {_fish_quote(target)}",
        ]
    lines += [
        "        end",
        "    end",
        "    echo $cmdpath",
        "end",
        "",
        f"function {function}_at",
        f"    test ({function}_cmdpath) = $argv[1]",
        "end",
        "",
        f"complete -c {bin_name} -f",
    ]

    for path, node in _nodes(spec):
        condition = f"-n {_fish_quote(f'{function}_at {_key(path)}')}"
        for child in node.children:
            for name in (child.name, *child.aliases):
                lines.append(f"complete -c {bin_name} {condition} -a {_fish_quote(name)} -d {_fish_quote(_summary(child.descr))}")
        for argument in node.arguments:
            description = f"-d {_fish_quote(_summary(argument.descr))}"
            if argument.positional:
                if argument.choices:
                    lines.append(f"complete -c {bin_name} {condition} -a {_fish_quote(' '.join(argument.choices))} {description}")
            elif not argument.takes_value:
                lines.append(f"complete -c {bin_name} {condition} {_fish_names(argument.names)} {description}")
            elif argument.choices:
                lines.append(f"complete -c {bin_name} {condition} {_fish_names(argument.names)} -r -f -a {_fish_quote(' '.join(argument.choices))} {description}")
            else:
                lines.append(f"complete -c {bin_name} {condition} {_fish_names(argument.names)} -r -F {description}")
    lines.append("")
    return "\n".join(lines)


def _ps_quote(text, /):
    return "'" + str(text).replace("'", "''") + "'"


def _powershell(spec, bin_name, /):
    lines = [
        "using namespace System.Management.Automation",
        "using namespace System.Management.Automation.Language",
        "",
        f"Register-ArgumentCompleter -Native -CommandName {_ps_quote(bin_name)} -ScriptBlock {{",
        "    param($wordToComplete, $commandAst, $cursorPosition)",
        "",
        "    $commandElements = $commandAst.CommandElements",
        "    $command = @(",
        f"        {_ps_quote(spec.name)}",
        "        for ($i = 1; $i -lt $commandElements.Count; $i++) {",
        "            $element = $commandElements[$i]",
        "            if ($element -isnot [StringConstantExpressionAst] -or",
        "                $element.StringConstantType -ne [StringConstantType]::BareWord -or",
        "                $element.Value.StartsWith('-') -or",
        "                $element.Value -eq $wordToComplete) {",
        "                break",
        "            }",
        "            $element.Value",
        "        }) -join ';'",
        "",
        "    $completions = @(switch ($command) {",
    ]

    def result(text, kind, descr):
        return f"[CompletionResult]::new({_ps_quote(text)}, {_ps_quote(text)}, [CompletionResultType]::{kind}, {_ps_quote(_summary(descr) or text)})"

    for words, node in _spellings(spec):
        lines.append(f"        {_ps_quote(';'.join(words))} {{")
        for argument in node.arguments:
            if argument.positional:
                for choice in argument.choices:
                    lines.append(f"            {result(choice, 'ParameterValue', argument.descr)}")
            else:
                for name in argument.names:
                    lines.append(f"            {result(name, 'ParameterName', argument.descr)}")
        for child in node.children:
            for name in (child.name, *child.aliases):
                lines.append(f"            {result(name, 'ParameterValue', child.descr)}")
        lines += [
            "            break",
            "        }",
        ]

    lines += [
        "    })",
        "",
        '    $completions.Where{ $_.CompletionText -like "$wordToComplete*" } |',
        "        Sort-Object -Property ListItemText",
        "}",
        "",
    ]
    return "\n".join(lines)


def _elvish(spec, bin_name, /):
    lines = [
        "use builtin;",
        "use str;",
        "",
        f"set edit:completion:arg-completer[{bin_name}] = {{|@words|",
        "    fn cand {|text desc|",
        "        edit:complex-candidate $text &display=$text' '$desc",
        "    }",
        f"    var command = {_ps_quote(spec.name)}",
        "    for word $words[1..-1] {",
        "        if (str:has-prefix $word '-') {",
        "            break",
        "        }",
        "        set command = $command';'$word",
        "    }",
        "    var completions = [",
    ]
    for words, node in _spellings(spec):
        lines.append(f"        &{_ps_quote(';'.join(words))}= {{")
        for argument in node.arguments:
            for text in argument.choices if argument.positional else argument.names:
                lines.append(f"            cand {_ps_quote(text)} {_ps_quote(_summary(argument.descr))}")
        for child in node.children:
            for name in (child.name, *child.aliases):
                lines.append(f"            cand {_ps_quote(name)} {_ps_quote(_summary(child.descr))}")
        lines.append("        }")
    lines += [
        "    ]",
        "    if (has-key $completions $command) {",
        "        $completions[$command]",
        "    }",
        "}",
        "",
    ]
    return "\n".join(lines)


GENERATORS = {
    Shell.BASH: _bash,
    Shell.ZSH: _zsh,
    Shell.POWERSHELL: _powershell,
    Shell.FISH: _fish,
    Shell.ELVISH: _elvish,
}


def generate(shell, spec, /, bin_name=Unset):
    """
    Render the completion script of a command tree snapshot.

    Parameters
    - shell: Shell | str, one of bash, zsh, powershell, fish, elvish.
    - spec: CommandSpec of the root command.
    - bin_name: executable name the script registers for; defaults to the
      snapshot root's name.

    Raises
    - ValueError: unsupported shell identifier.
    - TypeError: spec is not a CommandSpec.
    """
    shell = Shell(shell)
    if not isinstance(spec, CommandSpec):
        raise TypeError("generate() spec must be a command spec")
    bin_name = coalesce(bin_name, spec.name)
    logger.debug("rendering %s completions for %r", shell, bin_name)
    return GENERATORS[shell](spec, bin_name)


__all__ = (
    "Shell",
    "ArgumentSpec",
    "CommandSpec",
    "GENERATORS",
    "generate",
)
