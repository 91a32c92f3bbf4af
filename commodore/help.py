"""
Commodore help: read-only views of a command and their rich rendering.

The Help object never changes a command. Its view methods are plain functions
of the command tree (which commands/options/arguments are visible, the term
and description shown for each) and format_help() lays those views out as a
rich renderable:

    usage: git clone [options] <source> [destination]

    clone a repository into a new directory

    arguments:
      source        repository to clone from
    options:
      -q, --quiet   suppress output
      -h, --help    display help for command

Palette keys (override through __styles__ in __main__)
- usage-label, usage-section, description-section
- group-label, option-name, argument-name, children, term-description
- panel-title
"""
import json
from collections import defaultdict

from rich.console import Group
from rich.padding import Padding
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .utils import Unset


def _stringify(value):
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)


class Help:
    def __init__(self, *, help_width=None, sort_subcommands=False, sort_options=False):
        if help_width is not None and (not isinstance(help_width, int) or help_width < 20):
            raise ValueError("help 'help_width' must be an integer of at least 20")
        self.help_width = help_width
        self.sort_subcommands = bool(sort_subcommands)
        self.sort_options = bool(sort_options)

    # --- views ---

    def visible_commands(self, command):
        commands = [child for child in command.commands if not child.hidden]
        if command.has_help_command():
            helper = command.create_command("help").help_option(False)
            helper.arguments("[command]").describe("display help for command")
            commands.append(helper)
        if self.sort_subcommands:
            commands.sort(key=lambda child: child.name)
        return commands

    def visible_options(self, command):
        options = [option for option in command.options if not option.hidden]
        if self.sort_options:
            options.sort(key=lambda option: (option.short or option.long).lstrip("-").lower())
        return options

    def visible_arguments(self, command):
        arguments = command.registered_arguments
        if any(argument.descr for argument in arguments):
            return arguments
        return []

    # --- terms ---

    def subcommand_term(self, command):
        term = command.name
        if aliases := command.aliases:
            term += "|" + aliases[0]
        if command.options:
            term += " [options]"
        if arguments := command.registered_arguments:
            term += " " + " ".join(argument.term for argument in arguments)
        return term

    def option_term(self, option):
        return option.flags

    def argument_term(self, argument):
        return argument.name

    def pad_width(self, command):
        terms = [
            *map(self.option_term, self.visible_options(command)),
            *map(self.subcommand_term, self.visible_commands(command)),
            *map(self.argument_term, self.visible_arguments(command)),
        ]
        return max(map(len, terms), default=0)

    # --- descriptions ---

    def command_usage(self, command):
        name = command.name
        if aliases := command.aliases:
            name += "|" + aliases[0]
        ancestors = [ancestor.name for ancestor in command.path[:-1]]
        return " ".join([*ancestors, name, command.usage]).rstrip()

    def command_description(self, command):
        return command.descr or ""

    def subcommand_description(self, command):
        return command.summary or command.descr or ""

    def option_description(self, option):
        extras = []
        if option.valid_choices:
            extras.append("choices: " + ", ".join(map(_stringify, option.valid_choices)))
        if option.default_value is not Unset:
            if option.required or option.optional or (option.boolean and isinstance(option.default_value, bool)):
                extras.append("default: " + (option.default_descr or _stringify(option.default_value)))
        if option.preset_value is not Unset and option.optional:
            extras.append("preset: " + _stringify(option.preset_value))
        if option.env_var:
            extras.append("env: " + option.env_var)
        return self._join(option.descr, extras)

    def argument_description(self, argument):
        extras = []
        if argument.valid_choices:
            extras.append("choices: " + ", ".join(map(_stringify, argument.valid_choices)))
        if argument.default_value is not Unset:
            extras.append("default: " + (argument.default_descr or _stringify(argument.default_value)))
        return self._join(argument.descr, extras)

    @staticmethod
    def _join(descr, extras):
        descr = str(descr or "")
        if not extras:
            return descr
        if descr:
            return "%s (%s)" % (descr, ", ".join(extras))
        return "(%s)" % ", ".join(extras)

    # --- rendering ---

    def format_help(self, command, *, colorful=False, fancy=False):
        """
        lay out the help of command as a rich renderable.
        """
        styles = defaultdict(str, {
            "usage-label": "bold #00E6FF",
            "usage-section": "bold #36C5F0",
            "description-section": "italic #A3A3A3",
            "group-label": "bold #FFFFFF",
            "option-name": "bold #00E6FF",
            "argument-name": "bold #FFD600",
            "children": "bold #36C5F0",
            "term-description": "#9CA3AF",
            "panel-title": "bold #FF4D94",
        } | getattr(__import__("__main__"), "__styles__", {}))

        def styler(style):
            return styles[style] if colorful else ""

        def text(fragment, style=""):
            return Text(str(fragment), styler(style))

        def section(label, rows, style):
            table = Table.grid(padding=(0, 2))
            table.add_column(no_wrap=True, min_width=self.pad_width(command))
            table.add_column()
            for term, descr in rows:
                table.add_row(text(term, style), text(descr, "term-description"))
            return Group(text(label, "group-label").append(":"), Padding(table, (0, 0, 0, 2)))

        renders = [Text.assemble(text("usage", "usage-label"), ": ", text(self.command_usage(command), "usage-section"))]

        if descr := self.command_description(command):
            renders.append(Text(""))
            renders.append(text(descr, "description-section"))

        sections = []
        if arguments := self.visible_arguments(command):
            sections.append(section("arguments", [
                (self.argument_term(argument), self.argument_description(argument)) for argument in arguments
            ], "argument-name"))
        if options := self.visible_options(command):
            sections.append(section("options", [
                (self.option_term(option), self.option_description(option)) for option in options
            ], "option-name"))
        if commands := self.visible_commands(command):
            sections.append(section("commands", [
                (self.subcommand_term(child), self.subcommand_description(child)) for child in commands
            ], "children"))
        if sections:
            renders.append(Text(""))
            renders.extend(sections)

        renderable = Group(*renders)
        if fancy:
            renderable = Panel(
                renderable,
                title=Text.assemble("[ ", f"{command.name} help".upper(), " ]", style=styler("panel-title")),
                title_align="left",
            )
        return renderable


__all__ = (
    "Help",
)
