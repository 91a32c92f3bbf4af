"""
Commodore faults (errors, warnings and informational exits) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing issue.
  Each code also carries a machine-readable kind ("UnknownOption", ...).
- CommandException / CommandWarning: base types that carry message + options and
  know how to render themselves in a lowercased, actionable way.
- HelpDisplayed / VersionDisplayed: non-error terminations (exit status 0) raised
  after help or version output so embedders can intercept them like any fault.
- trigger(): central entry point to surface a fault.
- getdoc(): optional description lookup for a code from the host application.

Termination strategies
- shell (the default for commands): the fault is rendered to the configured stderr
  console and the process exits with the fault's exit code.
- raising (after Command.exit_override()): the fault is raised to the caller.

Host hooks (looked up on __main__)
- __styles__: style overrides for the renderer.
- __codes__: code relabelling used by FaultCode.normalize().
- __docs__: per-code documentation lines appended to rendered faults.
- __prog__: program name shown in headers.
"""
import inspect
import os
import sys
import warnings
from abc import ABC
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the cli (stable identifiers).

    grouping (by high-level domain)
    - informational exits (1000x)
      • HELP_DISPLAYED, VERSION_DISPLAYED
    - routing (1110x)
      • UNKNOWN_COMMAND
    - options (1111x)
      • UNKNOWN_OPTION, MISSING_OPTION_ARGUMENT, CONFLICTING_OPTION,
        MISSING_MANDATORY_OPTION_VALUE
    - arguments (1112x)
      • MISSING_ARGUMENT, EXCESS_ARGUMENTS, INVALID_ARGUMENT
    - program errors (11131), raised through Command.error()
    - warnings (12xxx)
      • CONVERSION_WARNING
    """
    # --- informational exits (10xxx) ---
    HELP_DISPLAYED                  = 10001
    VERSION_DISPLAYED               = 10002

    # --- routing errors (11xxx) ---
    UNKNOWN_COMMAND                 = 11101

    # --- option errors (11xxx) ---
    UNKNOWN_OPTION                  = 11111
    MISSING_OPTION_ARGUMENT         = 11112
    CONFLICTING_OPTION              = 11113
    MISSING_MANDATORY_OPTION_VALUE  = 11114

    # --- argument errors (11xxx) ---
    MISSING_ARGUMENT                = 11121
    EXCESS_ARGUMENTS                = 11122
    INVALID_ARGUMENT                = 11123

    # --- program errors (11xxx) ---
    COMMAND_ERROR                   = 11131

    # --- warnings (12xxx) ---
    CONVERSION_WARNING              = 12131

    @property
    def kind(self):
        """machine-readable fault kind, e.g. "MissingMandatoryOptionValue"."""
        return "".join(part.title() for part in self.name.split("_"))

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette, title_style, message_style):
    main = __import__("__main__")
    styles = defaultdict(str, palette | getattr(main, "__styles__", {}))
    colorful = fault.options.get("colorful", True)
    fancy = fault.options.get("fancy", False)
    output = fault.options.get("console", console)

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        return Text(str(fragment), style)

    if (tool := fault.options.get("tool")) is not None:
        name = tool.root.name
    else:
        name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "program"

    header = Text.assemble(
        "[ ",
        text(getattr(main, "__prog__", name), styler("prog-name")),
        " — ",
        text(fault.code.normalize(), styler("code")),
        " | ",
        text(fault.title.title(), styler(title_style)),
        " ]"
    )
    lines = [text(coalesce(fault.message, ""), styler(message_style))]
    if fault.hint:
        lines.append(Text.assemble(text(" → ", styler("hint-arrow")), text(fault.hint, styler("hint"))))
    if docs := getdoc(fault.code):
        lines.append(text(docs, styler("docs")))

    if fancy:
        return Panel(Group(*lines), title=header, title_align="left", width=output.width - 4)

    return Group(header, *lines)


class CommandException(Exception):
    """
    base class of every parse-time fault.

    options commonly carried
    - tool: the command that detected the fault.
    - hint: a one-line suggestion rendered under the message.
    - code / exit_code / title: overrides of the class defaults.
    - shell, fancy, colorful, console: rendering and termination settings.
    """
    __fault__ = FaultCode.COMMAND_ERROR
    __title__ = "command error"
    __status__ = 1
    __quiet__ = False

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return coalesce(self.message, "")

    @property
    def code(self):
        return FaultCode(self.options.get("code", self.__fault__))

    @property
    def kind(self):
        return self.code.kind

    @property
    def title(self):
        return self.options.get("title", self.__title__)

    @property
    def exit_code(self):
        return self.options.get("exit_code", self.__status__)

    @property
    def hint(self):
        return self.options.get("hint", Unset)

    @property
    def tool(self):
        return self.options.get("tool")

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
            "docs": "underline #00E5FF dim",
        }, "error-title", "error-message")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            raise self from None
        if not self.__quiet__:
            self.options.get("console", console).print(self)
        sys.exit(self.exit_code)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class UnknownOptionError(CommandException):
    __fault__ = FaultCode.UNKNOWN_OPTION
    __title__ = "unknown option"


class UnknownCommandError(CommandException):
    __fault__ = FaultCode.UNKNOWN_COMMAND
    __title__ = "unknown command"


class MissingOptionArgumentError(CommandException):
    __fault__ = FaultCode.MISSING_OPTION_ARGUMENT
    __title__ = "option value required"


class MissingArgumentError(CommandException):
    __fault__ = FaultCode.MISSING_ARGUMENT
    __title__ = "missing argument"


class ExcessArgumentsError(CommandException):
    __fault__ = FaultCode.EXCESS_ARGUMENTS
    __title__ = "too many arguments"


class InvalidArgumentError(CommandException):
    """raise from a custom value parser to reject a value with a friendly message."""
    __fault__ = FaultCode.INVALID_ARGUMENT
    __title__ = "invalid value"


class ConflictingOptionError(CommandException):
    __fault__ = FaultCode.CONFLICTING_OPTION
    __title__ = "conflicting options"


class MissingMandatoryOptionValueError(CommandException):
    __fault__ = FaultCode.MISSING_MANDATORY_OPTION_VALUE
    __title__ = "required option"


class CommandError(CommandException): ...


class HelpDisplayed(CommandException):
    __fault__ = FaultCode.HELP_DISPLAYED
    __title__ = "help"
    __status__ = 0
    __quiet__ = True


class VersionDisplayed(CommandException):
    __fault__ = FaultCode.VERSION_DISPLAYED
    __title__ = "version"
    __status__ = 0
    __quiet__ = True


class CommandWarning(ABC, Warning):
    __fault__ = FaultCode.CONVERSION_WARNING
    __title__ = "warning"

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return coalesce(self.message, "")

    code = CommandException.code
    kind = CommandException.kind
    title = CommandException.title
    hint = CommandException.hint

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #FFB400",  # amber fault code for warnings
            "warning-title": "bold #FFC2E0",  # softer pinky title for warnings

            # body
            "warning-message": "#D6D6DE",  # slightly lighter gray body
            "hint-arrow": "#B8EFAF dim",  # softer green arrow
            "hint": "italic #B8EFAF",  # softer green hint text
            "docs": "underline #FFB400 dim",
        }, "warning-title", "warning-message")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        self.options.get("console", console).print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class ConversionWarning(CommandWarning):
    __title__ = "conversion warning"


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via __replace__(**options) before triggering.
    - in shell mode, rendering happens via rich console; otherwise, exceptions are raised
      and warnings go through the warnings module.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    returns None when no entry exists.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    return getattr(__import__("__main__"), "__docs__", {}).get(code)


__all__ = (
    "CommandException",
    "UnknownOptionError",
    "UnknownCommandError",
    "MissingOptionArgumentError",
    "MissingArgumentError",
    "ExcessArgumentsError",
    "InvalidArgumentError",
    "ConflictingOptionError",
    "MissingMandatoryOptionValueError",
    "CommandError",
    "HelpDisplayed",
    "VersionDisplayed",
    "CommandWarning",
    "ConversionWarning",
    "FaultCode",
    "trigger",
    "getdoc",
)
