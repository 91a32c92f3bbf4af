"""
Commodore utilities (internal helpers, carefully exposed)

Scope
- Small building blocks shared by the descriptor, tokenizer and command layers.
- Public-but-internal leaning: stable enough for consumers, designed primarily
  to support the higher-level arguments/commands layers.

Overview
- UnsetType / Unset
  • Singleton sentinel for “value not provided”, distinct from None (None is a
    legitimate default or option value).

- coalesce(value, default=None)
  • Replace Unset with a concrete default, preserving falsey values like None/0/"".

- rename(callable, name) / @rename("name")
  • Assign stable __name__/__qualname__ to generated callables.

- mirror("attr")
  • Read-only property over self._attr that hands out copies of containers.

- pluralize(text)
  • Best-effort English pluralization for messages ("argument" → "arguments").

- camelcase(text)
  • Derive attribute keys from dashed flag names ("chdir-root" → "chdirRoot").

- suggest(word, candidates)
  • Closest-match lookup used for “did you mean …?” hints.

Quick examples
    >>> coalesce(Unset, "fallback")
    'fallback'
    >>> camelcase("dry-run")
    'dryRun'
    >>> suggest("--colr", ["--color", "--verbose"])
    '--color'
"""
import builtins
import difflib
import functools
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Internal sentinel type representing a value that was not provided.

    Characteristics
    - Boolean-false: bool(Unset) is False, but it is distinct from None and 0.
    - Printable: repr(Unset) -> "Unset".
    - Non-subclassable and a singleton per process.
    """

    def __or__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Resolve the Unset sentinel to a concrete default.

    Falsey values like None, 0, "" or [] are preserved as-is; only Unset is replaced.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - rename(callable, name) -> callable
    - rename(name) -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Recursively copy container values (lists, dicts, sets); anything else is returned as-is.
    """
    if isinstance(object, Sequence) and not isinstance(object, str):
        return list(map(_immortalize, object))
    elif isinstance(object, Mapping):
        return dict(zip(object.keys(), map(_immortalize, object.values())))
    elif isinstance(object, Set):
        return set(map(_immortalize, object))
    else:
        return object


def mirror(name, /):
    """
    Define a read-only property that mirrors the private backing attribute "_{name}".

    Containers are copied on every read so callers cannot mutate internal state.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def pluralize(text, /):
    """
    Best-effort English pluralizer for messages. Only the last word of a phrase
    is pluralized; casing of that word is preserved.

    Examples
    - pluralize("argument")        -> "arguments"
    - pluralize("choice")          -> "choices"
    - pluralize("command alias")   -> "command aliases"
    """
    if not isinstance(text, str):
        raise TypeError("pluralize() argument must be a string")
    if not (match := re.search(r'(\S+)(\s*)$', text)):
        return text

    head, last, trail = text[:match.start(1)], match.group(1), match.group(2)
    lower = last.lower()

    if lower in {"series", "species", "information", "metadata"}:
        plural = lower
    elif lower.endswith(("s", "sh", "ch", "x", "z")):
        plural = lower + "es"
    elif lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        plural = lower[:-1] + "ies"
    else:
        plural = lower + "s"

    if last.isupper():
        plural = plural.upper()
    elif last[:1].isupper():
        plural = plural[:1].upper() + plural[1:]

    return head + plural + trail


@functools.cache
def camelcase(text, /):
    """
    Convert a dashed flag name into its attribute key.

    Examples
    - camelcase("port")        -> "port"
    - camelcase("chdir-root")  -> "chdirRoot"
    - camelcase("dry-run-now") -> "dryRunNow"
    """
    if not isinstance(text, str):
        raise TypeError("camelcase() argument must be a string")
    head, *tail = text.split("-")
    return head + "".join(word[:1].upper() + word[1:] for word in tail)


def suggest(word, candidates, /):
    """
    Return the closest candidate to word, or None when nothing is similar enough.

    Long flags are compared without their leading "--" so the dashes do not
    inflate the similarity of unrelated names.
    """
    candidates = list(dict.fromkeys(candidate for candidate in candidates if candidate))
    if word.startswith("--"):
        names = {candidate[2:]: candidate for candidate in candidates if candidate.startswith("--")}
        matches = difflib.get_close_matches(word[2:], names, 1)
        return names[matches[0]] if matches else None
    matches = difflib.get_close_matches(word, candidates, 1)
    return matches[0] if matches else None


Unset = UnsetType()
"""
Internal sentinel for “not provided”.

Use Unset as a default when None is a valid, user-meaningful value but the API
still needs to distinguish “no input” from “explicitly passed None”.
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "pluralize",
    "camelcase",
    "suggest",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
