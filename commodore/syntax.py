"""
Commodore flag syntax: turns declaration strings into descriptor facts.

Grammar
- Option flags: one optional short flag (`-x`), one optional long flag
  (`--name` or `--no-name`), separated by commas, pipes or spaces, optionally
  followed by a value placeholder: `<value>` (required), `[value]` (optional),
  either with a `...` suffix for variadic values.
- Argument names: `<name>` (required), `[name]` (optional) or a bare `name`
  (required), each with an optional `...` suffix for variadic.

Examples
    >>> parse_flags("-p, --port <number>")
    FlagSpec(short='-p', long='--port', attribute='port', required=True, optional=False, variadic=False, negate=False)
    >>> parse_flags("--no-sauce").attribute
    'sauce'
    >>> parse_argument("[files...]")
    ('files', False, True)
"""
import logging
import re
from typing import NamedTuple

from .utils import camelcase

LOG = logging.getLogger(__name__)

_SHORT = re.compile(r"-[^-]")
_LONG = re.compile(r"--[^-].*")
_VARIADIC = re.compile(r"\w\.\.\.[>\]]$")


class FlagSpec(NamedTuple):
    short: str | None
    long: str | None
    attribute: str
    required: bool
    optional: bool
    variadic: bool
    negate: bool

    @property
    def name(self):
        """the flag name without dashes, as used in option events ("" without flags)."""
        if self.long:
            return self.long[2:]
        return self.short[1:] if self.short else ""


def parse_flags(flags, /):
    """
    Split an option declaration into its short/long flags and value shape.

    Best effort: the first short flag and the first long flag are kept, anything
    else before the placeholder is ignored. A declaration naming no flag yields
    short = long = None and an empty attribute; registration rejects it.
    """
    if not isinstance(flags, str):
        raise TypeError("parse_flags() argument must be a string")

    short = long = None
    for part in re.split(r"[ |,]+", flags.strip()):
        if not part or part.startswith(("<", "[")):
            break
        if short is None and _SHORT.fullmatch(part):
            short = part
        elif long is None and _LONG.fullmatch(part):
            long = part
        else:
            LOG.debug("option flags %r: ignoring %r", flags, part)

    negate = long is not None and long.startswith("--no-")
    name = long[2:] if long else short[1:] if short else ""
    if name.startswith("no-"):
        name = name[3:]

    spec = FlagSpec(
        short=short,
        long=long,
        attribute=camelcase(name),
        required="<" in flags,
        optional="[" in flags,
        variadic=bool(_VARIADIC.search(flags)),
        negate=negate,
    )
    LOG.debug("parsed option flags %r into %r", flags, spec)
    return spec


def parse_argument(token, /):
    """
    Split an argument declaration into (name, required, variadic).
    """
    if not isinstance(token, str):
        raise TypeError("parse_argument() argument must be a string")
    if not (token := token.strip()):
        raise ValueError("argument name must be a non-empty string")

    match token[0]:
        case "<":
            if not token.endswith(">"):
                raise ValueError("argument %r is missing its closing '>'" % token)
            name, required = token[1:-1], True
        case "[":
            if not token.endswith("]"):
                raise ValueError("argument %r is missing its closing ']'" % token)
            name, required = token[1:-1], False
        case _:
            name, required = token, True

    variadic = len(name) > 3 and name.endswith("...")
    if variadic:
        name = name[:-3]
    if not name:
        raise ValueError("argument %r has an empty name" % token)
    return name, required, variadic


def split_arguments(text, /):
    """Split a space separated list of argument declarations."""
    if not isinstance(text, str):
        raise TypeError("split_arguments() argument must be a string")
    return text.split()


__all__ = (
    "FlagSpec",
    "parse_flags",
    "parse_argument",
    "split_arguments",
)
