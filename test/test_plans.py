"""
Plan behavioral tests (binding, dispatch, isolation, metadata).

Scope
- Func plans call the callable with exactly its declared roles.
- Struct plans bind flags per node, inject parent instances and delegate to
  struct and method children.
- Independent plans never share flag state.
- Metadata aliases and descriptions reach the command tree.
- Coroutine commands run to completion and observe cancellation.

Conventions
- Test method names follow CamelCase per project convention.
- Plans are executed directly with an explicit context and prompt.
"""
import asyncio
import io
import unittest
from dataclasses import dataclass
from unittest import TestCase, mock

from rich.console import Console

from climate import faults
from climate.context import Context, Cancelled
from climate.faults import ExitError, InvalidShapeKind, UnknownCommandError, MissingRequiredError
from climate.flags import flag
from climate.metadata import Metadata
from climate.plans import Func, Struct, FuncPlan, StructPlan, Plan

calls = []


@dataclass
class Options:
    verbose: bool = flag(False, short=True)
    count: int = 1


@dataclass
class Git:
    """Track changes.

    A tiny version control front-end.
    """
    verbose: bool = flag(False, short=True)

    def status(self, ctx: Context, args: list[str]) -> None:
        """Show the working tree status."""
        calls.append(("status", self, ctx, args))


@dataclass
class Remote:
    git: Git | None = None
    name: str = "origin"

    def add(self, args: list[str]) -> None:
        calls.append(("add", self, args))

    def show(self):
        calls.append(("show", self))


def version(ctx: Context) -> None:
    calls.append(("version", ctx))


def git():
    return Struct(Git, Git.status, Struct(Remote, Remote.add, Remote.show), version)


class PlanTestCase(TestCase):
    def setUp(self) -> None:
        calls.clear()
        self.context = Context()
        self.stderr = io.StringIO()
        patcher = mock.patch.object(faults, "console", Console(file=self.stderr, width=200, color_system=None))
        patcher.start()
        self.addCleanup(patcher.stop)


class FuncPlanTest(PlanTestCase):
    def testRoleCombinations(self) -> None:
        def none_():
            calls.append(())

        def context_(ctx: Context):
            calls.append((ctx,))

        def options_(opts: Options):
            calls.append((opts,))

        def arguments_(args: list[str]):
            calls.append((args,))

        def context_options(ctx: Context, opts: Options):
            calls.append((ctx, opts))

        def context_arguments(ctx: Context, *args: str):
            calls.append((ctx, args))

        def options_arguments(opts: Options, args: list[str]):
            calls.append((opts, args))

        def every_role(ctx: Context, opts: Options, args: list[str]):
            calls.append((ctx, opts, args))

        context, options = self.context, Options(True, 3)
        cases = (
            (none_, "", ()),
            (context_, "", (context,)),
            (options_, "-v --count 3", (options,)),
            (arguments_, "a b", (["a", "b"],)),
            (context_options, "--count=3 --verbose", (context, options)),
            (context_arguments, "a b", (context, ("a", "b"))),
            (options_arguments, "a -v b --count 3", (options, ["a", "b"])),
            (every_role, "-v a --count=3", (context, options, ["a"])),
        )
        for function, prompt, expected in cases:
            with self.subTest(function=function.__name__):
                calls.clear()
                self.assertIsNone(Func(function).execute(context, None, prompt))
                self.assertEqual(calls, [expected])

    def testDefaultsWhenFlagsAreOmitted(self) -> None:
        def handler(opts: Options):
            calls.append(opts)

        Func(handler).execute(self.context, None, [])
        self.assertEqual(calls, [Options(False, 1)])

    def testFreshOptionsPerExecution(self) -> None:
        def handler(opts: Options):
            calls.append(opts)

        plan = Func(handler)
        plan.execute(self.context, None, "-v")
        plan.execute(self.context, None, "")
        self.assertEqual(calls, [Options(True, 1), Options(False, 1)])

    def testRaisedErrorPropagatesUnchanged(self) -> None:
        error = ValueError("bad input")

        def handler():
            raise error

        with self.assertRaises(ValueError) as caught:
            Func(handler).execute(self.context, None, "")
        self.assertIs(caught.exception, error)
        self.assertIn("bad input", self.stderr.getvalue())

    def testReturnedErrorIsRaised(self) -> None:
        def handler() -> ExitError | None:
            return ExitError(3)

        with self.assertRaises(ExitError) as caught:
            Func(handler).execute(self.context, None, "")
        self.assertEqual(caught.exception.code, 3)

    def testReturnedNoneIsSuccess(self) -> None:
        def handler() -> ValueError | None:
            return None

        self.assertIsNone(Func(handler).execute(self.context, None, ""))

    def testUnexpectedArgumentIsAFault(self) -> None:
        def handler(ctx: Context):
            calls.append(ctx)

        with self.assertRaises(faults.UnexpectedArgumentError):
            Func(handler).execute(self.context, None, "extra")
        self.assertEqual(calls, [])

    def testHelpDoesNotRun(self) -> None:
        def handler(opts: Options):
            """Count things."""
            calls.append(opts)

        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            Func(handler).execute(self.context, None, "--help")
        self.assertEqual(calls, [])
        self.assertIn("Count things.", stdout.getvalue())
        self.assertIn("--count <int>", stdout.getvalue())

    def testMetadataParamsNameUsage(self) -> None:
        def handler(args: list[str]):
            pass

        metadata = Metadata.decode(b'{"short": "copy files", "params": ["files"], "flags": {}}')
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            Func(handler).execute(self.context, metadata, "-h")
        self.assertIn("[files ...]", stdout.getvalue())
        self.assertIn("copy files", stdout.getvalue())

    def testPromptValidation(self) -> None:
        with self.assertRaises(TypeError):
            Func(version).execute(self.context, None, [1, 2])

    def testArgvIsTheDefaultPrompt(self) -> None:
        with mock.patch("sys.argv", ["tool", "extra"]):
            with self.assertRaises(faults.UnexpectedArgumentError):
                Func(version).execute(self.context)

    def testShapeErrors(self) -> None:
        def bad(value: int): ...

        with self.assertRaises(InvalidShapeKind):
            Func(bad)
        with self.assertRaises(InvalidShapeKind):
            Func(Options)

    def testReservedHelpFlagFailsAtConstruction(self) -> None:
        @dataclass
        class Settings:
            help: bool = False

        def handler(opts: Settings): ...

        with self.assertRaises(InvalidShapeKind):
            Func(handler)
        with self.assertRaises(InvalidShapeKind):
            Struct(Settings)

    def testIsAPlan(self) -> None:
        self.assertIsInstance(Func(version), Plan)
        self.assertIsInstance(Func(version), FuncPlan)
        self.assertEqual(Func(version).name, "version")


class CoroutinePlanTest(PlanTestCase):
    def testCoroutineRunsToCompletion(self) -> None:
        async def handler(ctx: Context, args: list[str]):
            await asyncio.sleep(0)
            calls.append(args)

        Func(handler).execute(self.context, None, "a")
        self.assertEqual(calls, [["a"]])

    def testCancellationCancelsTheTask(self) -> None:
        async def handler(ctx: Context):
            ctx.cancel("stop")
            await asyncio.sleep(30)
            calls.append("unreachable")

        with self.assertRaises(Cancelled) as caught:
            Func(handler).execute(self.context, None, "")
        self.assertEqual(caught.exception.cause, "stop")
        self.assertEqual(calls, [])


class StructPlanTest(PlanTestCase):
    def testMethodReceivesBoundInstance(self) -> None:
        git().execute(self.context, None, "-v status a b")
        (name, instance, context, args), = calls
        self.assertEqual(name, "status")
        self.assertEqual(instance, Git(verbose=True))
        self.assertIs(context, self.context)
        self.assertEqual(args, ["a", "b"])

    def testNestedStructLinksToParent(self) -> None:
        git().execute(self.context, None, "-v remote --name upstream add url")
        (name, instance, args), = calls
        self.assertEqual(name, "add")
        self.assertEqual(instance, Remote(git=Git(verbose=True), name="upstream"))
        self.assertEqual(args, ["url"])

    def testPersistentFlagsAfterChildNames(self) -> None:
        git().execute(self.context, None, "remote add -v --name=up x")
        (_, instance, _), = calls
        self.assertTrue(instance.git.verbose)
        self.assertEqual(instance.name, "up")

    def testPlainFunctionChild(self) -> None:
        git().execute(self.context, None, "version")
        self.assertEqual(calls, [("version", self.context)])

    def testMethodWithoutRoles(self) -> None:
        git().execute(self.context, None, "remote show")
        self.assertEqual(calls, [("show", Remote(git=Git()))])

    def testBareInvocationRendersHelp(self) -> None:
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            self.assertIsNone(git().execute(self.context, None, "remote"))
        self.assertEqual(calls, [])
        self.assertIn("subcommands", stdout.getvalue())
        self.assertIn("add", stdout.getvalue())

    def testDocstringDescribesCommands(self) -> None:
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            git().execute(self.context, None, "")
        text = stdout.getvalue()
        self.assertIn("A tiny version control front-end.", text)
        self.assertIn("Show the working tree status.", text)

    def testUnknownCommand(self) -> None:
        with self.assertRaises(UnknownCommandError):
            git().execute(self.context, None, "stauts")
        self.assertIn("did you mean 'status'?", self.stderr.getvalue())

    def testIndependentPlansDoNotShareState(self) -> None:
        @dataclass
        class A:
            flag_a: str = "a"

            def run(self):
                calls.append(self)

        @dataclass
        class B:
            flag_b: str = "b"

            def run(self):
                calls.append(self)

        first, second = Struct(A, A.run), Struct(B, B.run)
        first.execute(self.context, None, "--flag-a=x run")
        second.execute(self.context, None, "run")
        first.execute(self.context, None, "run")
        self.assertEqual(calls, [A("x"), B("b"), A("a")])
        with self.assertRaises(faults.UnknownSwitchError):
            second.execute(self.context, None, "--flag-a=x run")

    def testOnlySelectedChildRuns(self) -> None:
        @dataclass
        class Top:
            level: int = 0

        @dataclass
        class ChildA:
            top: Top | None = None
            value: str = "a"

            def run(self):
                calls.append(("a", self))

        @dataclass
        class ChildB:
            top: Top | None = None
            value: str = "b"

            def run(self):
                calls.append(("b", self))

        plan = Struct(Top, Struct(ChildA, ChildA.run), Struct(ChildB, ChildB.run))
        plan.execute(self.context, None, "--level 2 child-b --value x run")
        self.assertEqual(calls, [("b", ChildB(top=Top(2), value="x"))])

    def testRequiredParentFlag(self) -> None:
        @dataclass
        class Deploy:
            target: str = flag("", required=True)

            def now(self):
                calls.append(self.target)

        plan = Struct(Deploy, Deploy.now)
        with self.assertRaises(MissingRequiredError):
            plan.execute(self.context, None, "now")
        plan.execute(self.context, None, "now --target prod")
        self.assertEqual(calls, ["prod"])

    def testMetadataAliasesAndDescriptions(self) -> None:
        metadata = Metadata.decode(
            b'{"children": {"remote": {"short": "manage remotes", "aliases": ["r"],'
            b' "flags": {"name": "remote name"}}}}'
        )
        git().execute(self.context, metadata, "r show")
        self.assertEqual(calls, [("show", Remote(git=Git()))])
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            git().execute(self.context, metadata, "r --help")
        self.assertIn("manage remotes", stdout.getvalue())
        self.assertIn("remote name", stdout.getvalue())

    def testChildErrorsPropagateUnchanged(self) -> None:
        @dataclass
        class Outer:
            pass

        @dataclass
        class Inner:
            outer: Outer | None = None

            def fail(self):
                raise ExitError(4, "nope")

        with self.assertRaises(ExitError) as caught:
            Struct(Outer, Struct(Inner, Inner.fail)).execute(self.context, None, "inner fail")
        self.assertEqual(caught.exception.code, 4)
        self.assertIn("nope", self.stderr.getvalue())

    def testTreeStructure(self) -> None:
        plan = git()
        self.assertIsInstance(plan, StructPlan)
        self.assertEqual([child.name for child in plan.children], ["status", "remote", "version"])

    def testShapeErrors(self) -> None:
        @dataclass
        class Other:
            pass

        with self.assertRaises(InvalidShapeKind):
            Struct(version)
        with self.assertRaises(InvalidShapeKind):
            Struct(Other, Struct(Remote))
        with self.assertRaises(InvalidShapeKind):
            Struct(Git, "status")
        with self.assertRaises(ValueError):
            Struct(Git, Git.status, Git.status)

    def testShadowedParentFlagFailsAtConstruction(self) -> None:
        @dataclass
        class Parent:
            verbose: bool = False

        @dataclass
        class Child:
            parent: Parent | None = None
            verbose: bool = False

            def go(self): ...

        with self.assertRaises(InvalidShapeKind):
            Struct(Parent, Struct(Child, Child.go))

    def testStaticMethodRunsAsPlainFunction(self) -> None:
        @dataclass
        class Holder:
            @staticmethod
            def ping(ctx: Context):
                calls.append(("ping", ctx))

        Struct(Holder, Holder.ping).execute(self.context, None, "ping")
        self.assertEqual(calls, [("ping", self.context)])


if __name__ == "__main__":
    unittest.main()
