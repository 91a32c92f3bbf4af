"""
Commodore argv tokenizer: one left-to-right pass over the tokens given to a command.

Known options are applied as they are met (through the command's "option:<name>"
events); everything else is kept for the command to resolve afterwards:

- operands: plain tokens (candidate subcommand names and positional values);
- unknown: option-looking tokens this command does not declare;
- leftovers: every token that was not consumed, in its original order, with any
  "--" terminator kept, so a subcommand can re-tokenize them with their original
  adjacency.

The help flags are never consumed here; they stay in unknown for whichever
command finally handles the tokens.
"""
import logging
from collections import deque
from typing import NamedTuple

from .faults import MissingOptionArgumentError

LOG = logging.getLogger(__name__)


class ParseResult(NamedTuple):
    operands: list
    unknown: list


class Scan(NamedTuple):
    operands: list
    unknown: list
    leftovers: list
    # index in leftovers of the first operand, None without operands
    anchor: int | None

    @property
    def result(self):
        return ParseResult(self.operands, self.unknown)

    def without_anchor(self):
        """leftovers minus the first operand (the token that named a subcommand)."""
        if self.anchor is None:
            return list(self.leftovers)
        return self.leftovers[:self.anchor] + self.leftovers[self.anchor + 1:]


def looks_like_option(token, /):
    return len(token) > 1 and token[0] == "-"


def scan(command, argv, /):
    """
    Tokenize argv on behalf of command.

    Raises MissingOptionArgumentError when a value-taking option ends the input.
    Value coercion failures raised by the option listeners propagate unchanged.
    """
    settings = command.settings
    positional = settings["positional_options"] or settings["pass_through_options"]

    queue = deque(argv)
    operands, unknown, leftovers = [], [], []
    anchor = None
    variadic = None

    def keep(token, target):
        nonlocal anchor
        if target is operands and not operands:
            anchor = len(leftovers)
        target.append(token)
        leftovers.append(token)

    def apply(option, *value):
        LOG.debug("%s: %s matched %s", command.name, option.flags, value or "(no value)")
        command.emit("option:" + option.name, *value)

    while queue:
        token = queue.popleft()

        # Literal terminator, everything after it is an operand
        if token == "--":
            leftovers.append(token)
            while queue:
                keep(queue.popleft(), operands)
            break

        # A variadic option keeps absorbing plain tokens
        if variadic is not None and not looks_like_option(token):
            apply(variadic, token)
            continue
        variadic = None

        if looks_like_option(token) and (option := command.find_option(token)) is not None:
            if option.required:
                if not queue:
                    raise MissingOptionArgumentError(
                        "option '%s' argument missing" % option.flags,
                        tool=command,
                        hint="pass a value after %s" % token,
                    )
                apply(option, queue.popleft())
            elif option.optional:
                apply(option, queue.popleft() if queue and not looks_like_option(queue[0]) else None)
            else:
                apply(option, None)
            variadic = option if option.variadic else None
            continue

        # Short flag cluster or short flag with an attached value: -abc / -p80
        if len(token) > 2 and token[0] == "-" and token[1] != "-":
            if (option := command.find_option(token[:2])) is not None:
                if option.required or (option.optional and settings["combine_flag_and_optional_value"]):
                    apply(option, token[2:])
                else:
                    apply(option, None)
                    queue.appendleft("-" + token[2:])
                continue

        # Long flag with an attached value: --port=80
        if token.startswith("--") and "=" in token[3:]:
            flag, _, value = token.partition("=")
            if (option := command.find_option(flag)) is not None and (option.required or option.optional):
                apply(option, value)
                continue

        # Not one of ours, stop here when options are positional
        if positional and not operands and not unknown:
            if command.find_command(token) is not None:
                keep(token, operands)
                while queue:
                    keep(queue.popleft(), unknown)
                break
            if command.is_help_command(token):
                keep(token, operands)
                while queue:
                    keep(queue.popleft(), operands)
                break
            if command.default_command is not None:
                keep(token, unknown)
                while queue:
                    keep(queue.popleft(), unknown)
                break

        # Pass-through, the rest is forwarded verbatim
        if settings["pass_through_options"]:
            target = unknown if unknown or looks_like_option(token) else operands
            keep(token, target)
            while queue:
                keep(queue.popleft(), target)
            break

        keep(token, unknown if looks_like_option(token) else operands)

    return Scan(operands, unknown, leftovers, anchor)


def parse_options(command, argv, /):
    """tokenize argv for command and return its operands and unknown tokens."""
    return scan(command, list(argv)).result


__all__ = (
    "ParseResult",
    "Scan",
    "scan",
    "parse_options",
    "looks_like_option",
)
