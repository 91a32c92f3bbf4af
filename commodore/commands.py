"""
Commodore commands: the command tree, its parse lifecycle and termination.

Overview
- Command: a node of the command tree. It owns its option/argument
  declarations, its subcommands (each holding a weak link back to its parent),
  its value store, lifecycle hooks, event listeners and an optional action.
- command(): build a root (or detached) command from "name <arg> [arg]".
- invoke(): parse a token stream with a command.

Parse lifecycle (per command level)
1. tokenize: known options are applied as they are met ("option:<name>" events);
2. environment pass: options with an env variable and no higher-precedence
   value read it ("option-env:<name>" events);
3. implied pass: options given by the user set the values they imply;
4. dispatch: the first operand naming a subcommand (or the help command, or a
   default subcommand) hands the remaining tokens to that child;
5. otherwise this command finishes: help request, mandatory options,
   conflicts, unknown options, argument binding, then pre_action hooks
   (root first), the action, and post_action hooks (leaf first).

Failures
- Parse failures are CommandException faults (see faults). They are routed
  through Command.trigger(), which either renders them and exits (default),
  calls the exit_override() callback and exits, or raises them.
- Declaration mistakes (duplicate flags, misplaced variadic arguments, ...)
  raise TypeError/ValueError immediately.

Quick example
    >>> program = command("pizza")
    >>> program.option("-p, --peppers", "add peppers").option("-c, --cheese <type>", "cheese", "mozzarella")
    >>> program.parse(["-p"]).opts()
    {'cheese': 'mozzarella', 'peppers': True}
"""
import asyncio
import functools
import inspect
import io
import logging
import operator
import os
import re
import shlex
import sys
import weakref
from collections import defaultdict
from collections.abc import Iterable

from rich.console import Console

from .arguments import Option, Argument
from .coercion import coerce
from .faults import *
from .faults import console as _stderr
from .help import Help
from .syntax import split_arguments
from .tokens import scan, parse_options
from .utils import *
from .values import Source, ValueStore

LOG = logging.getLogger(__name__)

_HOOKS = ("pre_action", "post_action", "pre_subcommand")
_HELP_POSITIONS = ("before_all", "before", "after", "after_all")


class CommandType(type):
    """
    Metaclass for commands: stable __repr__/__rich_repr__ and read-only mirrors
    for every name in __introspectable__.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_name(cls, field, name, /):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} {field!r} must be a string")
    elif not (name := name.strip()) or any(char.isspace() for char in name):
        raise ValueError(f"{cls.__typename__} {field!r} must be a single non-empty word")
    return name


def _sanitize_text(cls, field, text, /):
    if not isinstance(text, str):
        raise TypeError(f"{cls.__typename__} {field!r} must be a string")
    elif not (text := text.strip()):
        raise ValueError(f"{cls.__typename__} {field!r} cannot be empty")
    return text


async def _settle(awaitable):
    return await awaitable


class Command(metaclass=CommandType):
    """
    A node of the command tree.

    Declarations (options, arguments, subcommands, hooks, settings) are made
    through chainable methods that return the command itself, except command()
    which returns the new child so its own declarations can follow.

    Properties
    - The names listed in __introspectable__ are exposed as read-only attributes.
    - parent is a weak back-link; root and path walk it.
    """

    __introspectable__ = (
        "name",
        "descr",
        "summary",
        "aliases",
        "hidden",
        "commands",
        "registered_arguments",
        "args",
        "processed_args",
        "settings",
    )

    __displayable__ = (
        "name",
        "descr",
        "aliases",
        "commands",
        "registered_arguments",
    )

    def __init__(self, name=Unset, /):
        if name is Unset:
            name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "program"
        self._name = _sanitize_name(type(self), "name", name)
        self._descr = None
        self._summary = None
        self._usage = None
        self._aliases = []
        self._hidden = False
        self._parent = None
        self._commands = []
        self._options = []
        self._registered_arguments = []
        self._values = ValueStore(self._name)
        self._listeners = defaultdict(list)
        self._hooks = defaultdict(list)
        self._action = None
        self._default_command = None
        self._help_command = None
        self._help_option = Option("-h, --help", "display help for command")
        self._help_settings = {}
        self._version = None
        self._exit_callback = Unset
        self._output = {"stdout": Console(), "stderr": _stderr, "colorful": False, "fancy": False}
        self._settings = {
            "allow_unknown_option": False,
            "allow_excess_arguments": False,
            "positional_options": False,
            "pass_through_options": False,
            "combine_flag_and_optional_value": True,
            "show_help_after_error": False,
            "show_suggestion_after_error": True,
        }
        self._args = []
        self._processed_args = []

    # --- tree ---

    @property
    def parent(self):
        return self._parent() if self._parent is not None else None

    @property
    def root(self):
        """
        Return the topmost command of the tree this command belongs to.
        """
        child, parent = self, self.parent
        while parent is not None:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the ancestry from root to this command as a tuple.
        """
        path = [command := self]
        while (command := command.parent) is not None:
            path.append(command)
        return tuple(reversed(path))

    @property
    def options(self):
        """declared options followed by the help option (when enabled and not shadowed)."""
        options = list(self._options)
        if (helper := self._help_option) is None:
            return options
        short = helper.short if helper.short and self.find_option(helper.short) is None else None
        long = helper.long if helper.long and self.find_option(helper.long) is None else None
        if short and long:
            options.append(helper)
        elif short or long:
            options.append(Option(short or long, helper.descr or Unset))
        return options

    @property
    def usage(self):
        if self._usage:
            return self._usage
        parts = []
        if self.options:
            parts.append("[options]")
        if self._commands:
            parts.append("[command]")
        parts.extend(argument.term for argument in self._registered_arguments)
        return " ".join(parts)

    @property
    def default_command(self):
        if self._default_command is None:
            return None
        return self.find_command(self._default_command)

    def find_command(self, name, /):
        """the child named (or aliased) name, or None."""
        for child in self._commands:
            if child._name == name or name in child._aliases:
                return child
        return None

    def find_option(self, flag, /):
        """the declared option with the given short or long flag, or None."""
        for option in self._options:
            if option.matches(flag):
                return option
        return None

    def has_help_command(self):
        if self._help_command is not None:
            return self._help_command
        return bool(self._commands) and self._action is None and self.find_command("help") is None

    def is_help_command(self, token, /):
        return token == "help" and self.has_help_command()

    # --- factories ---

    def create_command(self, name=Unset, /):
        return type(self)(name)

    def create_option(self, flags, descr=Unset, /):
        return Option(flags, descr)

    def create_argument(self, name, descr=Unset, /):
        return Argument(name, descr)

    def create_help(self):
        return Help(**self._help_settings)

    # --- subcommands ---

    def command(self, spec, /, *, hidden=False, default=False):
        """
        Create a subcommand from "name <arg> [arg...]" and return it.

        The child copies this command's inheritable settings at creation time.
        """
        name, _, arguments = _sanitize_text(type(self), "command", spec).partition(" ")
        child = self.create_command(name)
        child.copy_inherited_settings(self)
        if arguments.strip():
            child.arguments(arguments)
        self._attach(child, hidden=hidden, default=default)
        return child

    def add_command(self, command, /, *, hidden=False, default=False):
        """Attach an already configured command as a subcommand."""
        if not isinstance(command, Command):
            raise TypeError(f"{type(self).__typename__} add_command() argument must be a command")
        self._attach(command, hidden=hidden, default=default)
        return self

    def _attach(self, child, /, *, hidden, default):
        if child.parent is not None:
            raise ValueError(f"{type(self).__typename__} {child.name!r} is already attached to {child.parent.name!r}")
        for name in (child._name, *child._aliases):
            if self.find_command(name) is not None:
                typeof = "subcommand" if self.parent is not None else "command"
                raise ValueError(f"{type(self).__typename__} {typeof} name {name!r} is already in use")
        child._parent = weakref.ref(self)
        child._hidden = child._hidden or bool(hidden)
        if default:
            self._default_command = child._name
        self._commands.append(child)
        LOG.debug("%s: attached subcommand %s", self._name, child._name)

    def copy_inherited_settings(self, source, /):
        """
        Copy the settings a subcommand inherits: output and help configuration,
        help option, exit strategy, and the parsing and error-display settings.
        """
        if not isinstance(source, Command):
            raise TypeError(f"{type(self).__typename__} copy_inherited_settings() argument must be a command")
        self._output = dict(source._output)
        self._help_settings = dict(source._help_settings)
        self._help_option = source._help_option
        self._exit_callback = source._exit_callback
        for key in (
            "combine_flag_and_optional_value",
            "allow_excess_arguments",
            "positional_options",
            "show_help_after_error",
            "show_suggestion_after_error",
        ):
            self._settings[key] = source._settings[key]
        return self

    # --- identity ---

    def set_name(self, name, /):
        name = _sanitize_name(type(self), "name", name)
        if (parent := self.parent) is not None and parent.find_command(name) not in (None, self):
            raise ValueError(f"{type(self).__typename__} name {name!r} is already in use")
        self._name = name
        return self

    def describe(self, descr, /):
        self._descr = _sanitize_text(type(self), "descr", descr)
        return self

    def summarize(self, summary, /):
        self._summary = _sanitize_text(type(self), "summary", summary)
        return self

    def alias(self, alias, /):
        alias = _sanitize_name(type(self), "alias", alias)
        if alias == self._name:
            raise ValueError(f"{type(self).__typename__} alias cannot be the same as its name")
        if (parent := self.parent) is not None and parent.find_command(alias) not in (None, self):
            raise ValueError(f"{type(self).__typename__} alias {alias!r} is already in use")
        if alias not in self._aliases:
            self._aliases.append(alias)
        return self

    def set_aliases(self, aliases, /):
        if isinstance(aliases, str) or not isinstance(aliases, Iterable):
            raise TypeError(f"{type(self).__typename__} aliases must be an iterable of strings")
        for alias in aliases:
            self.alias(alias)
        return self

    def set_usage(self, usage, /):
        self._usage = _sanitize_text(type(self), "usage", usage)
        return self

    # --- options ---

    def option(self, flags, descr=Unset, parse=Unset, default=Unset, /):
        """
        Declare an option.

        The third argument is either a parser called as parse(raw, previous)
        or, when not callable, the default value.
        """
        return self._declare_option(flags, descr, parse, default, mandatory=False)

    def required_option(self, flags, descr=Unset, parse=Unset, default=Unset, /):
        """Declare an option that must end up with a value (from any source)."""
        return self._declare_option(flags, descr, parse, default, mandatory=True)

    def _declare_option(self, flags, descr, parse, default, /, *, mandatory):
        option = self.create_option(flags, descr)
        if callable(parse):
            option.parser(parse)
        elif parse is not Unset:
            if default is not Unset:
                raise TypeError(f"{type(self).__typename__} option parser must be callable")
            default = parse
        if default is not Unset:
            option.default(default)
        return self.add_option(option.make_mandatory(mandatory))

    def add_option(self, option, /):
        """Register a configured Option and seed its default value."""
        self._register_option(option)
        attribute = option.attribute
        if option.negate:
            if self.find_option("--" + option.long[5:]) is None:
                self._values.set(attribute, coalesce(option.default_value, True), Source.DEFAULT)
        elif option.default_value is not Unset:
            self._values.set(attribute, option.default_value, Source.DEFAULT)
        self.on("option:" + option.name, lambda value=None: self._receive(option, value, Source.CLI))
        self.on("option-env:" + option.name, lambda value=None: self._receive(option, value, Source.ENV))
        return self

    def _register_option(self, option, /):
        if not isinstance(option, Option):
            raise TypeError(f"{type(self).__typename__} add_option() argument must be an option")
        for flag in (option.short, option.long):
            if flag is not None and self.find_option(flag) is not None:
                raise ValueError(f"{type(self).__typename__} option flag {flag!r} is already in use")
        for other in self._options:
            # only a --name/--no-name pair may share an attribute
            if other.attribute == option.attribute and other.negate == option.negate:
                raise ValueError(f"{type(self).__typename__} option attribute {option.attribute!r} is already in use")
        self._options.append(option)

    def _receive(self, option, value, source, /):
        if value is None and option.preset_value is not Unset:
            value = option.preset_value
        # presence flags still run their parser (raw None), e.g. verbosity counters
        if value is not None or (option.boolean and option.parse is not None):
            try:
                value = coerce(option, value, self._values.get(option.attribute), **self._runtime())
            except InvalidArgumentError as error:
                if source is Source.ENV:
                    message = "option '%s' value %r from env '%s' is invalid. %s" % (option.flags, value, option.env_var, error)
                else:
                    message = "option '%s' argument %r is invalid. %s" % (option.flags, value, error)
                raise InvalidArgumentError(message, **(dict(error.options) | {"tool": self})) from error
        if value is None:
            if option.negate:
                value = False
            elif option.boolean or option.optional:
                value = True
            else:
                value = ""
        self._values.set(option.attribute, value, source)

    # --- arguments ---

    def argument(self, name, descr=Unset, parse=Unset, default=Unset, /):
        """
        Declare a positional argument.

        The third argument is either a parser called as parse(raw, previous)
        or, when not callable, the default value.
        """
        argument = self.create_argument(name, descr)
        if callable(parse):
            argument.parser(parse)
        elif parse is not Unset:
            if default is not Unset:
                raise TypeError(f"{type(self).__typename__} argument parser must be callable")
            default = parse
        if default is not Unset:
            argument.default(default)
        return self.add_argument(argument)

    def arguments(self, names, /):
        """Declare several arguments at once: "<source> [destination]"."""
        for name in split_arguments(names):
            self.argument(name)
        return self

    def add_argument(self, argument, /):
        if not isinstance(argument, Argument):
            raise TypeError(f"{type(self).__typename__} add_argument() argument must be an argument")
        if self._registered_arguments and (previous := self._registered_arguments[-1]).variadic:
            raise ValueError(f"{type(self).__typename__} only the last argument can be variadic {previous.name!r}")
        if argument.required and argument.default_value is not Unset and argument.parse is None:
            raise ValueError(f"{type(self).__typename__} a default value for a required argument is never used: {argument.name!r}")
        if any(each.name == argument.name for each in self._registered_arguments):
            raise ValueError(f"{type(self).__typename__} argument name {argument.name!r} is already in use")
        self._registered_arguments.append(argument)
        return self

    # --- behavior settings ---

    def _setting(self, key, value, /):
        self._settings[key] = value
        return self

    def allow_unknown_option(self, allow=True, /):
        return self._setting("allow_unknown_option", bool(allow))

    def allow_excess_arguments(self, allow=True, /):
        return self._setting("allow_excess_arguments", bool(allow))

    def enable_positional_options(self, positional=True, /):
        return self._setting("positional_options", bool(positional))

    def pass_through_options(self, pass_through=True, /):
        return self._setting("pass_through_options", bool(pass_through))

    def combine_flag_and_optional_value(self, combine=True, /):
        return self._setting("combine_flag_and_optional_value", bool(combine))

    def show_help_after_error(self, display=True, /):
        """show help (True) or the given message as a hint after an error."""
        if not isinstance(display, bool | str):
            raise TypeError(f"{type(self).__typename__} show_help_after_error() argument must be a bool or a string")
        return self._setting("show_help_after_error", display)

    def show_suggestion_after_error(self, display=True, /):
        return self._setting("show_suggestion_after_error", bool(display))

    # --- values ---

    def opts(self):
        """this command's option values, keyed by attribute name."""
        return dict(self._values)

    def opts_with_globals(self):
        """option values of the whole path from the root, deeper commands winning."""
        return ValueStore.overlay(*(command._values for command in self.path))

    def get_option_value(self, key, default=None, /):
        return self._values.get(key, default)

    def set_option_value(self, key, value, /):
        self._values.set(key, value, None)
        return self

    def set_option_value_with_source(self, key, value, source, /):
        self._values.set(key, value, Source(source))
        return self

    def get_option_value_source(self, key, /):
        return self._values.source(key)

    # --- events and lifecycle ---

    def on(self, event, listener, /):
        """append listener to the listeners of event; listeners run in registration order."""
        if not isinstance(event, str):
            raise TypeError(f"{type(self).__typename__} event name must be a string")
        if not callable(listener):
            raise TypeError(f"{type(self).__typename__} listener must be callable")
        self._listeners[event].append(listener)
        return self

    def emit(self, event, /, *args):
        """call every listener of event with args; returns whether any listener ran."""
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            listener(*args)
        return bool(listeners)

    def listener_count(self, event, /):
        return len(self._listeners.get(event, ()))

    def action(self, callback, /):
        """
        Set the action, called as callback(*arguments, opts, command) once
        parsing of this command succeeds. It may return an awaitable.
        """
        if not callable(callback):
            raise TypeError(f"{type(self).__typename__} action must be callable")
        self._action = callback
        return self

    def hook(self, event, listener, /):
        """
        Add a lifecycle hook called as listener(hooked, actor).

        events
        - pre_action / post_action: around the action of this command or any descendant.
        - pre_subcommand: before this command hands tokens to a subcommand.
        """
        if event not in _HOOKS:
            raise ValueError(f"{type(self).__typename__} hook event must be one of {', '.join(map(repr, _HOOKS))}")
        if not callable(listener):
            raise TypeError(f"{type(self).__typename__} hook must be callable")
        self._hooks[event].append(listener)
        return self

    # --- help and version ---

    def help_option(self, flags=Unset, descr=Unset, /):
        """customize the help flags and description, or disable them with False."""
        if flags is False:
            self._help_option = None
        else:
            self._help_option = self.create_option(coalesce(flags, "-h, --help"), coalesce(descr, "display help for command"))
        return self

    def add_help_command(self, enabled=True, /):
        """force the implicit "help [command]" subcommand on or off."""
        self._help_command = bool(enabled)
        return self

    def add_help_text(self, position, text, /):
        """
        Print text around the help: position is before_all, before, after or after_all.
        text may be a string or a callable taking the help context.
        """
        if position not in _HELP_POSITIONS:
            raise ValueError(f"{type(self).__typename__} help text position must be one of {', '.join(map(repr, _HELP_POSITIONS))}")
        if not isinstance(text, str) and not callable(text):
            raise TypeError(f"{type(self).__typename__} help text must be a string or a callable")

        def listener(context):
            if value := text(context) if callable(text) else text:
                context["console"].print(value, markup=False, highlight=False)

        return self.on(position.replace("_", "-") + "-help", listener)

    def configure_help(self, **settings):
        """update the settings used to build this command's Help (see Help)."""
        Help(**(self._help_settings | settings))
        self._help_settings = self._help_settings | settings
        return self

    def configure_output(self, *, stdout=Unset, stderr=Unset, colorful=Unset, fancy=Unset):
        """set the rich consoles used for normal and error output, and the styling flags."""
        for name, console in (("stdout", stdout), ("stderr", stderr)):
            if console is not Unset and not isinstance(console, Console):
                raise TypeError(f"{type(self).__typename__} {name!r} must be a rich console")
        self._output = self._output | {
            "stdout": coalesce(stdout, self._output["stdout"]),
            "stderr": coalesce(stderr, self._output["stderr"]),
            "colorful": bool(coalesce(colorful, self._output["colorful"])),
            "fancy": bool(coalesce(fancy, self._output["fancy"])),
        }
        return self

    def help_information(self, error=False):
        """the rendered help as a plain string."""
        help = self.create_help()
        stream = io.StringIO()
        Console(
            file=stream,
            width=help.help_width or self._output["stderr" if error else "stdout"].width,
        ).print(help.format_help(self, fancy=self._output["fancy"]))
        return stream.getvalue()

    def output_help(self, error=False):
        """print the help (with any added help text) to stdout, or stderr for errors."""
        help = self.create_help()
        console = self._output["stderr" if error else "stdout"]
        context = {"error": error, "command": self, "console": console}
        for command in self.path:
            command.emit("before-all-help", context)
        self.emit("before-help", context)
        console.print(
            help.format_help(self, colorful=self._output["colorful"], fancy=self._output["fancy"]),
            width=help.help_width,
        )
        self.emit("after-help", context)
        for command in reversed(self.path):
            command.emit("after-all-help", context)

    def help(self, error=False):
        """output help and terminate (status 1 when shown because of an error)."""
        self.output_help(error)
        self.trigger(HelpDisplayed("(help)", exit_code=1 if error else 0))

    def version(self, version, flags="-V, --version", descr="output the version number", /):
        """register a version option that prints version and terminates."""
        option = self.create_option(flags, descr)
        self._register_option(option)
        self._version = str(version)
        self.on("option:" + option.name, lambda value=None: self._display_version())
        return self

    def _display_version(self):
        self._output["stdout"].print(self._version, markup=False, highlight=False)
        raise VersionDisplayed(self._version, tool=self)

    # --- termination ---

    def exit_override(self, callback=Unset, /):
        """
        Replace process termination.

        Without a callback faults (including help/version exits) are raised to
        the caller. With a callback, it receives the fault and the process then
        exits with the fault's exit code unless the callback raised.
        """
        if callback is not Unset and not callable(callback):
            raise TypeError(f"{type(self).__typename__} exit override must be callable")
        self._exit_callback = coalesce(callback)
        return self

    def error(self, message, /, *, code=FaultCode.COMMAND_ERROR, exit_code=1):
        """report a program error the same way parse errors are reported."""
        self.trigger(CommandError(message, code=FaultCode(code), exit_code=exit_code))

    def _runtime(self):
        return {
            "tool": self,
            "shell": self._exit_callback is Unset,
            "fancy": self._output["fancy"],
            "colorful": self._output["colorful"],
            "console": self._output["stderr"],
        }

    def trigger(self, fault, /, **options):
        if (
                not hasattr(fault, "__trigger__") or
                not callable(fault.__trigger__) or
                not hasattr(fault, "__replace__") or
                not callable(fault.__replace__)
        ):
            raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
        fault = fault.__replace__(**(options | self._runtime()))
        if isinstance(fault, CommandWarning):
            return fault.__trigger__()
        if not fault.__quiet__:
            display = self._settings["show_help_after_error"]
            if isinstance(display, str):
                fault = fault.__replace__(hint=display)
            elif display:
                self.output_help(error=True)
        LOG.debug("%s: %s (%s)", self._name, fault.kind, fault)
        if self._exit_callback:
            self._exit_callback(fault)
            sys.exit(fault.exit_code)
        fault.__trigger__()

    def _surface(self, fault, /):
        # faults that went through trigger() already carry their runtime options
        if "shell" in fault.options:
            raise fault
        (fault.tool if fault.tool is not None else self).trigger(fault)

    # --- parsing ---

    def parse_options(self, argv, /):
        """tokenize argv for this command only; returns (operands, unknown)."""
        return parse_options(self, argv)

    def _prepare(self, argv, origin, /):
        if origin not in ("user", "python"):
            raise ValueError(f"{type(self).__typename__} parse origin must be 'user' or 'python'")
        if argv is Unset:
            tokens, origin = list(sys.argv), "python"
        elif isinstance(argv, str):
            tokens = shlex.split(argv)
        elif isinstance(argv, Iterable):
            tokens = list(argv)
            if not all(isinstance(token, str) for token in tokens):
                raise TypeError(f"{type(self).__typename__} parse() argument must be a string or an iterable of strings")
        else:
            raise TypeError(f"{type(self).__typename__} parse() argument must be a string or an iterable of strings")
        if origin == "python":
            tokens = tokens[1:]
        LOG.debug("%s: parsing %r", self._name, tokens)
        return tokens

    def parse(self, argv=Unset, /, *, origin="user"):
        """
        Parse argv and run the selected action.

        argv defaults to sys.argv (its first item, the script, is skipped; pass
        origin="python" to skip it from an explicit list too). Awaitable hook and
        action results are awaited in order on a fresh event loop; use
        parse_async() from inside a running loop.
        """
        tokens = self._prepare(argv, origin)
        try:
            for result in self._parse_command(tokens):
                if inspect.isawaitable(result):
                    asyncio.run(_settle(result))
        except CommandException as fault:
            self._surface(fault)
        return self

    async def parse_async(self, argv=Unset, /, *, origin="user"):
        """Like parse(), awaiting hook and action results in the running loop."""
        tokens = self._prepare(argv, origin)
        try:
            for result in self._parse_command(tokens):
                if inspect.isawaitable(result):
                    await result
        except CommandException as fault:
            self._surface(fault)
        return self

    def _parse_command(self, tokens, /):
        """
        Generator driving one command level; yields hook and action results so
        the caller can await them before the next step runs.
        """
        if self._settings["pass_through_options"] and (parent := self.parent) is not None:
            if not parent._settings["positional_options"]:
                raise ValueError(
                    f"{type(self).__typename__} {self._name!r} cannot pass through options "
                    f"unless its parent enables positional options"
                )

        found = scan(self, tokens)
        self._parse_options_env()
        self._parse_options_implied()
        operands, unknown = found.operands, found.unknown
        self._args = operands + unknown

        if operands and (child := self.find_command(operands[0])) is not None:
            yield from self._dispatch_subcommand(child, found.without_anchor())
            return
        if operands and self.is_help_command(operands[0]):
            self._dispatch_help_command(operands[1] if len(operands) > 1 else None)
            return
        if (child := self.default_command) is not None:
            self._output_help_if_requested(unknown)
            yield from self._dispatch_subcommand(child, found.leftovers)
            return
        if self._commands and not self._args and self._action is None:
            self.help(error=True)

        self._output_help_if_requested(unknown)
        self._check_for_missing_mandatory_options()
        self._check_for_conflicting_options()

        if self._action is None and operands and self._commands:
            self._unknown_command(operands[0])
        self._check_for_unknown_options(unknown)
        if self._action is None and self._commands:
            self.help(error=True)
        self._process_arguments(operands)

        if self._action is not None:
            yield from self._call_hooks("pre_action")
            yield self._action(*self._processed_args, self.opts(), self)
            yield from self._call_hooks("post_action")

    def _dispatch_subcommand(self, child, tokens, /):
        LOG.debug("%s: dispatching %r to %s", self._name, tokens, child._name)
        for hook in list(self._hooks["pre_subcommand"]):
            yield hook(self, child)
        yield from child._parse_command(tokens)

    def _dispatch_help_command(self, name, /):
        if name is None:
            self.help()
        if (child := self.find_command(name)) is None:
            self.help(error=True)
        child.help()

    def _call_hooks(self, event, /):
        hooks = [(command, hook) for command in self.path for hook in list(command._hooks[event])]
        if event == "post_action":
            hooks.reverse()
        for command, hook in hooks:
            yield hook(command, self)

    def _parse_options_env(self):
        for option in self._options:
            if not option.env_var or option.env_var not in os.environ:
                continue
            attribute = option.attribute
            if attribute in self._values and self._values.source(attribute) is not Source.DEFAULT:
                continue
            LOG.debug("%s: reading %s from env %s", self._name, attribute, option.env_var)
            if option.required or option.optional:
                self.emit("option-env:" + option.name, os.environ[option.env_var])
            else:
                self.emit("option-env:" + option.name)

    def _customized(self, key, /):
        return key in self._values and self._values.source(key) not in (Source.DEFAULT, Source.IMPLIED)

    def _dual(self, attribute, /):
        positive = next((o for o in self._options if not o.negate and o.attribute == attribute), None)
        negative = next((o for o in self._options if o.negate and o.attribute == attribute), None)
        return positive, negative

    def _parse_options_implied(self):
        for option in self._options:
            if not option.implied or not self._customized(attribute := option.attribute):
                continue
            positive, negative = self._dual(attribute)
            if positive is not None and negative is not None:
                # a --foo/--no-foo pair only implies through the form that produced the value
                given = self._values.get(attribute) == coalesce(negative.preset_value, False)
                if option.negate != given:
                    continue
            for key, value in option.implied.items():
                if not self._customized(key):
                    LOG.debug("%s: %s implies %s = %r", self._name, attribute, key, value)
                    self._values.set(key, value, Source.IMPLIED)

    def _output_help_if_requested(self, unknown, /):
        if (helper := self._help_option) is not None and any(map(helper.matches, unknown)):
            self.help()

    def _check_for_missing_mandatory_options(self):
        for command in self.path:
            for option in command._options:
                if option.mandatory and option.attribute not in command._values:
                    raise MissingMandatoryOptionValueError(
                        "required option '%s' not specified" % option.flags,
                        tool=command,
                        hint="pass %s" % (option.long or option.short),
                    )

    def _best_option(self, option, /):
        positive, negative = self._dual(option.attribute)
        value = self._values.get(option.attribute)
        if negative is not None and value == coalesce(negative.preset_value, False):
            return negative
        return positive or option

    def _describe_option(self, option, /):
        if self._values.source(option.attribute) is Source.ENV:
            return "environment variable '%s'" % option.env_var
        return "option '%s'" % self._best_option(option).flags

    def _check_for_conflicting_options(self):
        for command in self.path:
            defined = [
                option for option in command._options
                if option.attribute in command._values and command._values.source(option.attribute) is not Source.DEFAULT
            ]
            for option in defined:
                for other in defined:
                    if other.attribute in option.conflicts_with:
                        message = "%s cannot be used with %s" % (command._describe_option(option), command._describe_option(other))
                        # neither side of a conflict stays bound
                        command._values.discard(option.attribute)
                        command._values.discard(other.attribute)
                        raise ConflictingOptionError(message, tool=command, hint="use only one of them")

    def _check_for_unknown_options(self, unknown, /):
        if not unknown or self._settings["allow_unknown_option"]:
            return
        flag = unknown[0]
        hint = Unset
        if self._settings["show_suggestion_after_error"] and flag.startswith("--"):
            candidates = []
            for command in reversed(self.path):
                candidates.extend(option.long for option in command.create_help().visible_options(command) if option.long)
                if command._settings["positional_options"]:
                    break
            if suggestion := suggest(flag.partition("=")[0], candidates):
                hint = "did you mean %r?" % suggestion
        raise UnknownOptionError("unknown option '%s'" % flag, tool=self, hint=hint)

    def _unknown_command(self, name, /):
        hint = Unset
        if self._settings["show_suggestion_after_error"]:
            candidates = []
            for child in self.create_help().visible_commands(self):
                candidates.append(child.name)
                candidates.extend(child.aliases[:1])
            if suggestion := suggest(name, candidates):
                hint = "did you mean %r?" % suggestion
        raise UnknownCommandError("unknown command '%s'" % name, tool=self, hint=hint)

    def _coerce_argument(self, argument, raw, previous, /):
        try:
            return coerce(argument, raw, previous, **self._runtime())
        except InvalidArgumentError as error:
            raise InvalidArgumentError(
                "command-argument value %r is invalid for argument '%s'. %s" % (raw, argument.name, error),
                **(dict(error.options) | {"tool": self}),
            ) from error

    def _process_arguments(self, operands, /):
        for index, argument in enumerate(self._registered_arguments):
            if argument.required and index >= len(operands):
                raise MissingArgumentError(
                    "missing required argument '%s'" % argument.name,
                    tool=self,
                    hint="usage: %s" % self.create_help().command_usage(self),
                )
        variadic = bool(self._registered_arguments) and self._registered_arguments[-1].variadic
        if not variadic and len(operands) > len(self._registered_arguments) and not self._settings["allow_excess_arguments"]:
            expected = len(self._registered_arguments)
            raise ExcessArgumentsError(
                "too many arguments%s. expected %d %s but got %d." % (
                    " for '%s'" % self._name if self.parent is not None else "",
                    expected,
                    "argument" if expected == 1 else pluralize("argument"),
                    len(operands),
                ),
                tool=self,
            )

        processed = []
        for index, argument in enumerate(self._registered_arguments):
            if argument.variadic:
                if index < len(operands):
                    value = coalesce(argument.default_value)
                    for raw in operands[index:]:
                        value = self._coerce_argument(argument, raw, value)
                else:
                    value = coalesce(argument.default_value, [])
            elif index < len(operands):
                value = self._coerce_argument(argument, operands[index], coalesce(argument.default_value))
            else:
                value = coalesce(argument.default_value)
            processed.append(value)
        self._processed_args = processed


def command(spec=Unset, /):
    """
    Create a detached command, from "name <arg> [arg...]" or named after the running script.
    """
    if spec is Unset:
        return Command()
    if not isinstance(spec, str):
        raise TypeError("command() argument must be a string")
    name, _, arguments = spec.strip().partition(" ")
    self = Command(name)
    if arguments.strip():
        self.arguments(arguments)
    return self


def invoke(command, argv=Unset, /, *, origin="user"):
    """
    Parse argv with command (sys.argv when omitted) and return the command.
    """
    if not isinstance(command, Command):
        raise TypeError("invoke() first argument must be a command")
    return command.parse(argv, origin=origin)


__all__ = (
    "Command",
    "command",
    "invoke",
)

del CommandType
