"""
Commodore value coercion: raw token strings into option and argument values.

Order of operations for a raw value
1. allowed choices, when declared, must contain the raw value;
2. a custom parser, when installed, is called as parser(raw, previous) and its
   result is the value (it owns accumulation for variadic inputs);
3. otherwise variadic inputs accumulate into a fresh list and anything else is
   kept as the raw string.

Failures surface as InvalidArgumentError carrying the parser's own message;
warnings raised while parsing are re-emitted as ConversionWarning faults.
"""
import logging
import warnings

from .faults import InvalidArgumentError, ConversionWarning, trigger

LOG = logging.getLogger(__name__)


def concat(argument, value, previous, /):
    """
    append value to previous, starting over when previous is the declared default
    (or not a list at all); always returns a new list.
    """
    if previous is argument.default_value or not isinstance(previous, list):
        return [value]
    return [*previous, value]


def coerce(argument, value, previous, /, **options):
    """
    coerce one raw value for an option or argument.

    options are forwarded to any ConversionWarning that is triggered (tool,
    shell, console, ...). raises InvalidArgumentError without command context;
    the caller adds which option or argument was being parsed.
    """
    if (choices := argument.valid_choices) and value not in choices:
        raise InvalidArgumentError(
            "allowed choices are %s." % ", ".join(map(repr, choices)),
            hint="choose one of %s" % ", ".join(map(str, choices)),
        )

    if (parse := argument.parse) is None:
        if argument.variadic:
            return concat(argument, value, previous)
        return value

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            value = parse(value, previous)
        except InvalidArgumentError:
            raise
        except Exception as error:
            LOG.debug("parser for %r rejected %r", argument.name, value, exc_info=True)
            raise InvalidArgumentError(str(error) or type(error).__name__) from error

    for warning in caught:
        trigger(ConversionWarning(str(warning.message)), **options)

    return value


__all__ = (
    "coerce",
    "concat",
)
