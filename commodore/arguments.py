r"""
Commodore option and argument descriptors.

Overview
- Option: a named, dash-prefixed input declared from a flags string such as
  "-p, --port <number>", "--no-sauce" or "-l, --list [items...]".
- Argument: a positional input declared from "<name>", "[name]" or "<name...>".

Both are plain descriptors: they hold declaration facts and builder state, and
never hold parsed values (values live in the owning command's ValueStore).

Builder methods return the descriptor itself so declarations chain:
    >>> Option("-d, --drink <size>", "drink size").choices(["small", "large"]).default("small")
    option(flags='-d, --drink <size>', descr='drink size', attribute='drink', ...)

Introspection & representation
- ArgumentType metaclass provides stable __repr__/__rich_repr__ and exposes the
  fields declared in __introspectable__ as read-only properties (see mirror()).
- default_value and preset_value are handed out as-is (not copied) because the
  variadic accumulator relies on their identity.

Metadata (sanitized on construction and in builders)
- descr: Unset | str (non-empty after trimming).
- choices: iterable of distinct values (a bare string is rejected).
- parser: callable taking (raw, previous).
- env / conflicts / implies: names are non-empty strings.
"""
import functools
import operator
import re
from collections.abc import Iterable, Mapping

from rich.text import Text

from .syntax import parse_flags, parse_argument
from .utils import *


class ArgumentType(type):
    """
    Metaclass for descriptors.

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in messages.
    - every name in __introspectable__ becomes a read-only mirror of "_{name}".
    - __displayable__ (if set) narrows which properties are shown by __rich_repr__.
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


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate the shared 'descr' field in place.

    descr becomes None when Unset; a provided string must be non-empty after trimming.
    """
    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")
    metadata["descr"] = coalesce(descr)


def _sanitize_choices(cls, choices, /):
    """
    Internal: normalize allowed values into a tuple, rejecting duplicates.
    """
    if isinstance(choices, str) or not isinstance(choices, Iterable):
        raise TypeError(f"{cls.__typename__} 'choices' must be an iterable of values")
    sanitized = []
    for choice in choices:
        if choice in sanitized:
            raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
        sanitized.append(choice)
    if not sanitized:
        raise ValueError(f"{cls.__typename__} 'choices' cannot be empty")
    return tuple(sanitized)


def _sanitize_name(cls, field, name, /):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} {field!r} must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} {field!r} cannot be empty")
    return name


class Option(metaclass=ArgumentType):
    """
    Named option declared from a flags string.

    Shape (derived from the flags)
    - boolean: no placeholder, e.g. "-v, --verbose" (value True when present).
    - negated boolean: "--no-name" (value False when present; its attribute is "name").
    - required value: "<value>" placeholder, the next token is always consumed.
    - optional value: "[value]" placeholder, the option may appear bare.
    - variadic: "<value...>"/"[value...]", values accumulate into a list.

    Properties
    - The names listed in __introspectable__ are exposed as read-only attributes.
    """

    __introspectable__ = (
        "flags",
        "descr",
        "short",
        "long",
        "name",
        "attribute",
        "required",
        "optional",
        "variadic",
        "negate",
        "mandatory",
        "default_descr",
        "parse",
        "hidden",
        "valid_choices",
        "env_var",
        "conflicts_with",
        "implied",
    )
    __displayable__ = (
        "flags",
        "descr",
        "attribute",
        "default_value",
        "mandatory",
        "hidden",
    )

    def __init__(self, flags, descr=Unset, /):
        if not isinstance(flags, str):
            raise TypeError(f"{type(self).__typename__} flags must be a string")
        spec = parse_flags(flags)
        if spec.short is None and spec.long is None:
            raise ValueError(f"{type(self).__typename__} flags {flags!r} must name a short or a long flag")
        metadata = {
            "flags": flags.strip(),
            "descr": descr,
            "short": spec.short,
            "long": spec.long,
            "name": spec.name,
            "attribute": spec.attribute,
            "required": spec.required,
            "optional": spec.optional,
            "variadic": spec.variadic,
            "negate": spec.negate,
            "mandatory": False,
            "default_value": Unset,
            "default_descr": None,
            "preset_value": Unset,
            "parse": None,
            "hidden": False,
            "valid_choices": (),
            "env_var": None,
            "conflicts_with": (),
            "implied": {},
        }
        _sanitize_metadata(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def default_value(self):
        return self._default_value

    @property
    def preset_value(self):
        return self._preset_value

    @property
    def boolean(self):
        """True for plain presence flags (neither value-taking nor negated)."""
        return not self._required and not self._optional and not self._negate

    def matches(self, flag, /):
        """whether flag is this option's short or long flag."""
        return flag is not None and flag in (self._short, self._long)

    def default(self, value, descr=Unset, /):
        """set the default value (and optionally how help should describe it)."""
        if not isinstance(descr, str | Unset):
            raise TypeError(f"{type(self).__typename__} default description must be a string")
        self._default_value = value
        self._default_descr = coalesce(descr)
        return self

    def preset(self, value, /):
        """value used when the option is given without its optional value."""
        self._preset_value = value
        return self

    def conflicts(self, *names):
        """declare attribute names of options that cannot be used together with this one."""
        conflicts = list(self._conflicts_with)
        for name in names:
            if isinstance(name, str):
                name = (name,)
            for each in name:
                conflicts.append(_sanitize_name(type(self), "conflicts", each))
        self._conflicts_with = tuple(conflicts)
        return self

    def implies(self, mapping=None, /, **values):
        """declare attribute values that are set whenever this option is given."""
        if mapping is not None and not isinstance(mapping, Mapping):
            raise TypeError(f"{type(self).__typename__} implications must be a mapping")
        implied = dict(self._implied)
        for name, value in {**(mapping or {}), **values}.items():
            implied[_sanitize_name(type(self), "implies", name)] = value
        self._implied = implied
        return self

    def env(self, name, /):
        """read the value from the named environment variable when not given on the command line."""
        self._env_var = _sanitize_name(type(self), "env", name)
        return self

    def parser(self, callback, /):
        """install a custom value parser called as callback(raw, previous)."""
        if not callable(callback):
            raise TypeError(f"{type(self).__typename__} parser must be callable")
        self._parse = callback
        return self

    def make_mandatory(self, mandatory=True, /):
        """require a value (from any source) once parsing finishes."""
        self._mandatory = bool(mandatory)
        return self

    def hide(self, hidden=True, /):
        """exclude the option from help output."""
        self._hidden = bool(hidden)
        return self

    def choices(self, values, /):
        """restrict values to the given allowed choices."""
        self._valid_choices = _sanitize_choices(type(self), values)
        return self


class Argument(metaclass=ArgumentType):
    """
    Positional argument declared from "<name>", "[name]" or "<name...>".

    Only the last argument of a command may be variadic; a variadic argument
    absorbs every remaining operand into a list.
    """

    __introspectable__ = (
        "name",
        "descr",
        "required",
        "variadic",
        "default_descr",
        "parse",
        "valid_choices",
    )

    def __init__(self, name, descr=Unset, /):
        name, required, variadic = parse_argument(name)
        metadata = {
            "name": name,
            "descr": descr,
            "required": required,
            "variadic": variadic,
            "default_value": Unset,
            "default_descr": None,
            "parse": None,
            "valid_choices": (),
        }
        _sanitize_metadata(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def default_value(self):
        return self._default_value

    @property
    def term(self):
        """the argument as shown in usage lines: <name>, [name] or <name...>."""
        name = self._name + ("..." if self._variadic else "")
        return f"<{name}>" if self._required else f"[{name}]"

    def default(self, value, descr=Unset, /):
        if not isinstance(descr, str | Unset):
            raise TypeError(f"{type(self).__typename__} default description must be a string")
        self._default_value = value
        self._default_descr = coalesce(descr)
        return self

    def parser(self, callback, /):
        if not callable(callback):
            raise TypeError(f"{type(self).__typename__} parser must be callable")
        self._parse = callback
        return self

    def choices(self, values, /):
        self._valid_choices = _sanitize_choices(type(self), values)
        return self

    def make_required(self, required=True, /):
        self._required = bool(required)
        return self

    def make_optional(self):
        self._required = False
        return self


__all__ = (
    "Option",
    "Argument",
)

del ArgumentType
