"""
Commands module behavioral tests (declaration, parsing, dispatch, faults, lifecycle).

Scope
- Validate option/argument binding, defaults, negation, env and implied values.
- Validate friendly faults for unknown, missing, excess, invalid and conflicting input.
- Validate delegation to subcommands, default and help commands, pass-through.
- Validate hooks, async actions and the termination strategies.

Conventions
- Test method names follow CamelCase per project convention.
- Commands call exit_override() so faults are raised instead of exiting,
  except where the shell strategy itself is under test.
"""

import asyncio
import io
import os
import unittest
from unittest import TestCase, mock

from rich.console import Console

from commodore import command, invoke, Command, Option, Argument, Source
from commodore.faults import (
    UnknownOptionError,
    UnknownCommandError,
    MissingOptionArgumentError,
    MissingArgumentError,
    ExcessArgumentsError,
    InvalidArgumentError,
    ConflictingOptionError,
    MissingMandatoryOptionValueError,
    CommandError,
    HelpDisplayed,
    VersionDisplayed,
)


def consoles(program):
    stdout, stderr = io.StringIO(), io.StringIO()
    program.configure_output(
        stdout=Console(file=stdout, width=100),
        stderr=Console(file=stderr, width=100),
    )
    return stdout, stderr


class TestOptions(TestCase):

    def testDefaultsAndFlags(self):
        calls = []
        program = command("pizza").exit_override()
        program.option("-p, --peppers", "add peppers")
        program.option("-c, --cheese <type>", "cheese type", "mozzarella")
        program.action(lambda opts, cmd: calls.append(opts))
        program.parse(["-p"])
        self.assertEqual(calls, [{"peppers": True, "cheese": "mozzarella"}])

    def testCustomParserAccumulates(self):
        program = command("tool").exit_override()
        program.option("-v, --verbose", "verbosity", lambda _, previous: previous + 1, 0)
        program.parse(["-vvv"])
        self.assertEqual(program.get_option_value("verbose"), 3)

    def testNegatedOptionDefaultsToTrue(self):
        program = command("pizza").exit_override().option("--no-sauce", "remove sauce")
        program.parse([])
        self.assertIs(program.get_option_value("sauce"), True)

        program = command("pizza").exit_override().option("--no-sauce", "remove sauce")
        program.parse(["--no-sauce"])
        self.assertIs(program.get_option_value("sauce"), False)

    def testDualOptionsShareAttribute(self):
        program = command("pizza").exit_override()
        program.option("--cheese <type>", "cheese type")
        program.option("--no-cheese", "no cheese")
        program.parse([])
        self.assertNotIn("cheese", program.opts())

        program.parse(["--cheese", "brie", "--no-cheese"])
        self.assertIs(program.get_option_value("cheese"), False)

    def testPresetForOptionalValue(self):
        program = command("tool").exit_override()
        program.add_option(Option("--level [level]", "level").preset("max"))
        program.parse(["--level"])
        self.assertEqual(program.get_option_value("level"), "max")

    def testEnvironmentValue(self):
        program = command("tool").exit_override()
        program.add_option(Option("-p, --port <number>", "port").env("TOOL_PORT").default("80"))
        with mock.patch.dict(os.environ, {"TOOL_PORT": "9000"}):
            program.parse([])
        self.assertEqual(program.get_option_value("port"), "9000")
        self.assertIs(program.get_option_value_source("port"), Source.ENV)

    def testCommandLineBeatsEnvironment(self):
        program = command("tool").exit_override()
        program.add_option(Option("-p, --port <number>", "port").env("TOOL_PORT"))
        with mock.patch.dict(os.environ, {"TOOL_PORT": "9000"}):
            program.parse(["--port", "80"])
        self.assertEqual(program.get_option_value("port"), "80")
        self.assertIs(program.get_option_value_source("port"), Source.CLI)

    def testEnvironmentForBooleanFlag(self):
        program = command("tool").exit_override()
        program.add_option(Option("-d, --debug", "debug").env("TOOL_DEBUG"))
        with mock.patch.dict(os.environ, {"TOOL_DEBUG": "yes"}):
            program.parse([])
        self.assertIs(program.get_option_value("debug"), True)

    def testImpliedValues(self):
        program = command("tool").exit_override()
        program.add_option(Option("--quiet", "no output").implies(verbose=False, log="off"))
        program.option("--verbose", "more output")
        program.parse(["--quiet"])
        self.assertEqual(program.opts(), {"quiet": True, "verbose": False, "log": "off"})
        self.assertIs(program.get_option_value_source("verbose"), Source.IMPLIED)

    def testImpliedValueDoesNotOverrideUser(self):
        program = command("tool").exit_override()
        program.add_option(Option("--quiet", "no output").implies(verbose=False))
        program.option("--verbose", "more output")
        program.parse(["--verbose", "--quiet"])
        self.assertIs(program.get_option_value("verbose"), True)

    def testPrecedenceDefaultEnvCli(self):
        def build():
            program = command("tool").exit_override()
            program.add_option(Option("-p, --port <number>", "port").env("TOOL_PORT").default(80).parser(lambda value, _: int(value)))
            return program

        program = build().parse([])
        self.assertEqual((program.get_option_value("port"), program.get_option_value_source("port")), (80, Source.DEFAULT))
        with mock.patch.dict(os.environ, {"TOOL_PORT": "9000"}):
            program = build().parse([])
            self.assertEqual((program.get_option_value("port"), program.get_option_value_source("port")), (9000, Source.ENV))
            program = build().parse(["--port", "8080"])
            self.assertEqual((program.get_option_value("port"), program.get_option_value_source("port")), (8080, Source.CLI))

    def testEnvironmentNeverOverridesConfig(self):
        program = command("tool").exit_override()
        program.add_option(Option("-p, --port <number>", "port").env("TOOL_PORT"))
        program.set_option_value_with_source("port", "443", "config")
        with mock.patch.dict(os.environ, {"TOOL_PORT": "9000"}):
            program.parse([])
        self.assertEqual(program.get_option_value("port"), "443")

    def testImpliedValueDoesNotOverrideEnvironment(self):
        program = command("tool").exit_override()
        program.add_option(Option("--quiet", "no output").implies(verbose=False))
        program.add_option(Option("--verbose", "more output").env("TOOL_VERBOSE"))
        with mock.patch.dict(os.environ, {"TOOL_VERBOSE": "1"}):
            program.parse(["--quiet"])
        self.assertIs(program.get_option_value("verbose"), True)
        self.assertIs(program.get_option_value_source("verbose"), Source.ENV)

    def testConflictingOptions(self):
        program = command("pay").exit_override()
        program.add_option(Option("--cash", "pay cash").conflicts("credit"))
        program.option("--credit", "pay by card")
        with self.assertRaises(ConflictingOptionError) as context:
            program.parse(["--cash", "--credit"])
        self.assertEqual(str(context.exception), "option '--cash' cannot be used with option '--credit'")
        self.assertNotIn("cash", program.opts())
        self.assertNotIn("credit", program.opts())

    def testVariadicOptionRepeatedOccurrences(self):
        program = command("tool").exit_override()
        program.option("-t, --tag <tags...>", "tags")
        program.option("--plain <value>", "plain value")
        program.parse(["--tag", "a", "--plain", "x", "--tag", "b"])
        self.assertEqual(program.get_option_value("tag"), ["a", "b"])
        self.assertEqual(program.get_option_value("plain"), "x")

    def testVariadicParserSeededWithPrevious(self):
        calls = []

        def collect(value, previous):
            calls.append((value, previous))
            return [*(previous or []), value]

        program = command("tool").exit_override()
        program.add_option(Option("-t, --tag <tags...>", "tags").parser(collect))
        program.option("--plain <value>", "plain value")
        program.parse(["--tag", "a", "--plain", "x", "--tag", "b"])
        self.assertEqual(calls, [("a", None), ("b", ["a"])])
        self.assertEqual(program.get_option_value("tag"), ["a", "b"])

    def testConflictsIgnoreDefaults(self):
        program = command("pay").exit_override()
        program.add_option(Option("--cash", "pay cash").conflicts("credit"))
        program.option("--credit", "pay by card", False)
        program.parse(["--cash"])
        self.assertIs(program.get_option_value("cash"), True)

    def testMandatoryOption(self):
        program = command("pizza").exit_override()
        program.required_option("-c, --cheese <type>", "cheese type")
        with self.assertRaises(MissingMandatoryOptionValueError) as context:
            program.parse([])
        self.assertEqual(str(context.exception), "required option '-c, --cheese <type>' not specified")

    def testMandatoryOptionSatisfiedByDefault(self):
        program = command("pizza").exit_override()
        program.required_option("-c, --cheese <type>", "cheese type", "brie")
        program.parse([])
        self.assertEqual(program.get_option_value("cheese"), "brie")

    def testInvalidChoice(self):
        program = command("drink").exit_override()
        program.add_option(Option("--size <size>", "drink size").choices(["small", "large"]))
        with self.assertRaises(InvalidArgumentError) as context:
            program.parse(["--size", "huge"])
        self.assertTrue(str(context.exception).startswith("option '--size <size>' argument 'huge' is invalid."))
        self.assertIs(context.exception.tool, program)

    def testMissingOptionArgument(self):
        program = command("tool").exit_override().option("--port <number>", "port")
        with self.assertRaises(MissingOptionArgumentError):
            program.parse(["--port"])

    def testUnknownOptionSuggestion(self):
        program = command("tool").exit_override().option("--color", "colorize")
        with self.assertRaises(UnknownOptionError) as context:
            program.parse(["--colr"])
        self.assertEqual(str(context.exception), "unknown option '--colr'")
        self.assertEqual(context.exception.hint, "did you mean '--color'?")

    def testUnknownOptionAllowed(self):
        calls = []
        program = command("tool").exit_override().allow_unknown_option()
        program.argument("[rest...]").action(lambda rest, opts, cmd: calls.append(rest))
        program.parse(["--x", "y"])
        self.assertEqual(calls, [["y"]])

    def testDuplicateFlagRaises(self):
        program = command("tool").option("-p, --port <number>")
        with self.assertRaises(ValueError):
            program.option("-p, --peppers")

    def testDuplicateAttributeRaises(self):
        program = command("tool").option("--dry-run", "simulate")
        with self.assertRaises(ValueError):
            program.option("--dryRun", "simulate too")
        program.option("--no-dry-run", "really run")
        with self.assertRaises(ValueError):
            program.option("--no-dryRun", "really run too")

    def testOptionValueSources(self):
        program = command("tool").option("--port <number>", "port", "80")
        self.assertIs(program.get_option_value_source("port"), Source.DEFAULT)
        program.set_option_value_with_source("port", "443", "config")
        self.assertIs(program.get_option_value_source("port"), Source.CONFIG)
        program.set_option_value("port", "22")
        self.assertIsNone(program.get_option_value_source("port"))
        self.assertEqual(program.get_option_value("port"), "22")


class TestArguments(TestCase):

    def testRequiredAndOptional(self):
        calls = []
        program = command("copy <source> [destination]").exit_override()
        program.action(lambda source, destination, opts, cmd: calls.append((source, destination)))
        program.parse(["a.txt"])
        self.assertEqual(calls, [("a.txt", None)])
        self.assertEqual(program.processed_args, ["a.txt", None])

    def testVariadic(self):
        calls = []
        program = command("rm <files...>").exit_override()
        program.action(lambda files, opts, cmd: calls.append(files))
        program.parse(["a", "b", "c"])
        self.assertEqual(calls, [["a", "b", "c"]])

    def testDefaultAndParser(self):
        calls = []
        program = command("repeat").exit_override()
        program.argument("<count>", "times", lambda value, _: int(value))
        program.argument("[word]", "what to say", "hello")
        program.action(lambda count, word, opts, cmd: calls.append((count, word)))
        program.parse(["3"])
        self.assertEqual(calls, [(3, "hello")])

    def testMissingArgument(self):
        program = command("copy <source>").exit_override()
        with self.assertRaises(MissingArgumentError) as context:
            program.parse([])
        self.assertEqual(str(context.exception), "missing required argument 'source'")

    def testExcessArguments(self):
        program = command("one <a>").exit_override().action(lambda a, opts, cmd: None)
        with self.assertRaises(ExcessArgumentsError) as context:
            program.parse(["x", "y"])
        self.assertEqual(str(context.exception), "too many arguments. expected 1 argument but got 2.")

    def testExcessArgumentsAllowed(self):
        program = command("one <a>").exit_override().allow_excess_arguments()
        program.parse(["x", "y"])
        self.assertEqual(program.processed_args, ["x"])
        self.assertEqual(program.args, ["x", "y"])

    def testInvalidArgumentValue(self):
        program = command("repeat").exit_override()
        program.argument("<count>", "times", lambda value, _: int(value))
        with self.assertRaises(InvalidArgumentError) as context:
            program.parse(["many"])
        self.assertTrue(str(context.exception).startswith("command-argument value 'many' is invalid for argument 'count'."))

    def testOnlyLastArgumentVariadic(self):
        program = command("tool").argument("<files...>")
        with self.assertRaises(ValueError):
            program.argument("<target>")

    def testRequiredArgumentDefaultIsRejected(self):
        with self.assertRaises(ValueError):
            command("tool").argument("<name>", "name", "anonymous")

    def testAddArgument(self):
        program = command("tool").exit_override()
        program.add_argument(Argument("[level]", "level").choices(["low", "high"]).default("low"))
        program.parse([])
        self.assertEqual(program.processed_args, ["low"])
        with self.assertRaises(InvalidArgumentError):
            program.parse(["mid"])


class TestSubcommands(TestCase):

    def build(self, calls):
        program = command("git").exit_override()
        program.option("-v, --verbose", "verbose output")
        clone = program.command("clone <url>").alias("cl").describe("clone a repository")
        clone.option("--depth <depth>", "history depth", lambda value, _: int(value))
        clone.action(lambda url, opts, cmd: calls.append((url, opts, cmd.opts_with_globals())))
        program.command("push").action(lambda opts, cmd: calls.append("push"))
        return program

    def testDispatch(self):
        calls = []
        self.build(calls).parse(["-v", "clone", "repo", "--depth", "1"])
        self.assertEqual(calls, [("repo", {"depth": 1}, {"verbose": True, "depth": 1})])

    def testDispatchByAlias(self):
        calls = []
        self.build(calls).parse("cl repo")
        self.assertEqual(calls[0][0], "repo")

    def testParentOptionsAfterSubcommand(self):
        calls = []
        self.build(calls).parse(["clone", "repo", "-v"])
        self.assertEqual(calls, [("repo", {}, {"verbose": True})])

    def testPositionalParentLeavesOptionsToChild(self):
        program = self.build([]).enable_positional_options()
        with self.assertRaises(UnknownOptionError):
            program.parse(["clone", "repo", "-v"])

    def testUnknownCommand(self):
        with self.assertRaises(UnknownCommandError) as context:
            self.build([]).parse(["clnoe"])
        self.assertEqual(str(context.exception), "unknown command 'clnoe'")
        self.assertEqual(context.exception.hint, "did you mean 'clone'?")

    def testMissingSubcommandShowsHelp(self):
        program = self.build([])
        stdout, stderr = consoles(program)
        with self.assertRaises(HelpDisplayed) as context:
            program.parse([])
        self.assertEqual(context.exception.exit_code, 1)
        self.assertIn("usage: git [options] [command]", stderr.getvalue())

    def testHelpCommand(self):
        program = command("git").exit_override()
        stdout, _ = consoles(program)
        program.command("clone <url>").describe("clone a repository")
        with self.assertRaises(HelpDisplayed) as context:
            program.parse(["help", "clone"])
        self.assertEqual(context.exception.exit_code, 0)
        self.assertIn("usage: git clone [options] <url>", stdout.getvalue())
        self.assertIn("clone a repository", stdout.getvalue())

    def testDefaultCommand(self):
        calls = []
        program = command("tool").exit_override()
        serve = program.command("serve", default=True)
        serve.option("-p, --port <number>", "port")
        serve.action(lambda opts, cmd: calls.append(opts))
        program.parse(["-p", "80"])
        self.assertEqual(calls, [{"port": "80"}])

    def testDuplicateNamesRaise(self):
        program = command("tool")
        program.command("build").alias("b")
        with self.assertRaises(ValueError):
            program.command("b")

    def testAddCommandRequiresDetached(self):
        program, other = command("tool"), command("other")
        child = command("child")
        program.add_command(child)
        with self.assertRaises(ValueError):
            other.add_command(child)
        self.assertIs(child.parent, program)
        self.assertEqual(child.path, (program, child))

    def testPassThroughOptions(self):
        calls = []
        program = command("tool").exit_override().enable_positional_options()
        program.option("-d, --debug", "debug")
        run = program.command("run <cmd> [args...]").pass_through_options()
        run.action(lambda cmd, args, opts, self: calls.append((cmd, args)))
        program.parse(["-d", "run", "node", "--inspect", "x"])
        self.assertEqual(calls, [("node", ["--inspect", "x"])])
        self.assertIs(program.get_option_value("debug"), True)

    def testPassThroughRequiresPositionalParent(self):
        program = command("tool").exit_override()
        program.command("run").pass_through_options()
        with self.assertRaises(ValueError):
            program.parse(["run"])

    def testInheritedSettings(self):
        program = command("tool").exit_override().show_help_after_error("try --help")
        child = program.command("sub")
        self.assertEqual(child.settings["show_help_after_error"], "try --help")
        detached = command("other")
        program.add_command(detached)
        self.assertIs(detached.settings["show_help_after_error"], False)


class TestLifecycle(TestCase):

    def testHooksOrder(self):
        events = []
        program = command("tool").exit_override()
        program.hook("pre_action", lambda hooked, actor: events.append("pre:%s:%s" % (hooked.name, actor.name)))
        program.hook("post_action", lambda hooked, actor: events.append("post:%s:%s" % (hooked.name, actor.name)))
        program.hook("pre_subcommand", lambda hooked, actor: events.append("enter:%s" % actor.name))
        sub = program.command("sub").action(lambda opts, cmd: events.append("action"))
        sub.hook("pre_action", lambda hooked, actor: events.append("pre:%s:%s" % (hooked.name, actor.name)))
        program.parse(["sub"])
        self.assertEqual(events, ["enter:sub", "pre:tool:sub", "pre:sub:sub", "action", "post:tool:sub"])

    def testUnknownHookEventRaises(self):
        with self.assertRaises(ValueError):
            command("tool").hook("post_subcommand", lambda hooked, actor: None)

    def testAsyncAction(self):
        calls = []

        async def run(opts, cmd):
            await asyncio.sleep(0)
            calls.append("ran")

        program = command("tool").exit_override().action(run)
        program.parse([])
        asyncio.run(program.parse_async([]))
        self.assertEqual(calls, ["ran", "ran"])

    def testParseFromPythonArgv(self):
        program = command("tool").exit_override().option("-d, --debug", "debug")
        invoke(program, ["script.py", "-d"], origin="python")
        self.assertIs(program.get_option_value("debug"), True)

    def testParseRejectsNonStrings(self):
        with self.assertRaises(TypeError):
            command("tool").parse(["ok", 1])

    def testEvents(self):
        seen = []
        program = command("tool").exit_override().option("-d, --debug", "debug")
        program.on("option:debug", lambda value=None: seen.append(value))
        self.assertEqual(program.listener_count("option:debug"), 2)
        program.parse(["-d"])
        self.assertEqual(seen, [None])
        self.assertFalse(program.emit("nothing"))


class TestTermination(TestCase):

    def testHelpOption(self):
        program = command("pizza").exit_override().describe("order a pizza")
        program.option("-p, --peppers", "add peppers")
        stdout, _ = consoles(program)
        with self.assertRaises(HelpDisplayed) as context:
            program.parse(["--help"])
        self.assertEqual(context.exception.exit_code, 0)
        output = stdout.getvalue()
        self.assertIn("usage: pizza [options]", output)
        self.assertIn("order a pizza", output)
        self.assertIn("-p, --peppers", output)
        self.assertIn("-h, --help", output)

    def testHelpOptionDisabled(self):
        program = command("tool").exit_override().help_option(False)
        with self.assertRaises(UnknownOptionError):
            program.parse(["--help"])

    def testCustomHelpFlags(self):
        program = command("tool").exit_override().help_option("-?, --usage", "show usage")
        consoles(program)
        with self.assertRaises(HelpDisplayed):
            program.parse(["-?"])

    def testHelpText(self):
        program = command("tool").exit_override()
        program.add_help_text("after", "Example: tool --debug")
        program.add_help_text("before_all", lambda context: "== %s ==" % context["command"].name)
        stdout, _ = consoles(program)
        with self.assertRaises(HelpDisplayed):
            program.parse(["-h"])
        output = stdout.getvalue()
        self.assertTrue(output.startswith("== tool =="))
        self.assertIn("Example: tool --debug", output)

    def testHelpInformation(self):
        program = command("tool").option("-d, --debug", "debug output")
        self.assertIn("usage: tool [options]", program.help_information())

    def testVersion(self):
        program = command("tool").exit_override().version("1.2.3")
        stdout, _ = consoles(program)
        with self.assertRaises(VersionDisplayed) as context:
            program.parse(["-V"])
        self.assertEqual(context.exception.exit_code, 0)
        self.assertEqual(stdout.getvalue().strip(), "1.2.3")

    def testShellStrategyPrintsAndExits(self):
        program = command("tool")
        _, stderr = consoles(program)
        with self.assertRaises(SystemExit) as context:
            program.parse(["--bogus"])
        self.assertEqual(context.exception.code, 1)
        self.assertIn("unknown option '--bogus'", stderr.getvalue())

    def testShowHelpAfterErrorHint(self):
        program = command("tool").show_help_after_error("add --help for details")
        _, stderr = consoles(program)
        with self.assertRaises(SystemExit):
            program.parse(["--bogus"])
        self.assertIn("add --help for details", stderr.getvalue())

    def testShowHelpAfterError(self):
        program = command("tool").show_help_after_error()
        _, stderr = consoles(program)
        with self.assertRaises(SystemExit):
            program.parse(["--bogus"])
        self.assertIn("usage: tool [options]", stderr.getvalue())

    def testShowHelpAfterErrorHintWithOverride(self):
        program = command("tool").exit_override().show_help_after_error("add --help for details")
        consoles(program)
        with self.assertRaises(UnknownOptionError) as context:
            program.parse(["--bogus"])
        self.assertEqual(context.exception.hint, "add --help for details")

    def testShowHelpAfterErrorWithOverride(self):
        program = command("tool").exit_override().show_help_after_error()
        _, stderr = consoles(program)
        with self.assertRaises(UnknownOptionError):
            program.parse(["--bogus"])
        self.assertIn("usage: tool [options]", stderr.getvalue())

    def testHelpShowsDefaults(self):
        program = command("pizza").exit_override()
        program.option("-c, --cheese <type>", "cheese type", "marble")
        program.argument("[size]", "pizza size", "large")
        stdout, _ = consoles(program)
        with self.assertRaises(HelpDisplayed):
            program.parse(["--help"])
        output = stdout.getvalue()
        self.assertIn('default: "marble"', output)
        self.assertIn('default: "large"', output)

    def testExitCallback(self):
        faults = []
        program = command("tool").exit_override(faults.append)
        consoles(program)
        with self.assertRaises(SystemExit) as context:
            program.parse(["--bogus"])
        self.assertEqual(context.exception.code, 1)
        self.assertIsInstance(faults[0], UnknownOptionError)

    def testError(self):
        program = command("tool").exit_override()
        with self.assertRaises(CommandError) as context:
            program.error("database unreachable", exit_code=3)
        self.assertEqual(context.exception.exit_code, 3)
        self.assertEqual(str(context.exception), "database unreachable")


class TestDeclaration(TestCase):

    def testCommandFactoryUsesScriptName(self):
        with mock.patch("sys.argv", ["/usr/bin/deploy"]):
            self.assertEqual(command().name, "deploy")

    def testRepr(self):
        program = command("tool <file>")
        self.assertTrue(repr(program).startswith("command(name='tool'"))

    def testUsage(self):
        program = command("tool")
        program.command("sub")
        program.argument("[file]")
        self.assertEqual(program.usage, "[options] [command] [file]")
        self.assertEqual(program.set_usage("custom").usage, "custom")

    def testCommandIsPlainClass(self):
        self.assertIsInstance(command("tool"), Command)

    def testAliasCannotBeOwnName(self):
        with self.assertRaises(ValueError):
            command("tool").alias("tool")


if __name__ == "__main__":
    unittest.main()
