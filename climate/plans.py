"""
Climate plans: executable units built from callables and dataclasses.

What this module provides
- Func(f): a Callable Plan. `f` must look like

      f([ctx: Context], [opts: T], [args: list[str] | *args: str]) -> [error]

  where every part is optional and T is a dataclass whose fields become flags.
  An error return is declared with an exception type (`-> ValueError | None`);
  a returned exception is raised as if the body had raised it.

- Struct(cls, *children): a Struct Plan. `cls` is a dataclass whose fields are
  flags shared by the whole subtree; children are, in display order,
  • other Struct plans (nested subcommands); a child dataclass may declare a
    field typed as its parent dataclass to receive the parent's bound instance,
  • methods of `cls` (passed as `cls.method`), run with the bound instance as
    `self` and otherwise following the Func signature,
  • Func plans or plain functions (leaf commands that ignore the instance).

- Plan: the protocol both variants implement (a single `execute`).

Quick start
    @dataclass
    class Git:
        verbose: bool = flag(short=True)

        def status(self, ctx: Context, args: list[str]) -> None:
            ...

    @dataclass
    class Remote:
        git: Git | None = None

        def add(self, args: list[str]) -> None:
            ...

    run_and_exit(Struct(Git, Git.status, Struct(Remote, Remote.add)))
"""
import asyncio
import dataclasses
import functools
import inspect
import logging
import shlex
import sys
import types
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from . import engine
from .context import Cancelled
from .faults import InvalidShapeKind
from .metadata import EMPTY
from .reflection import Reflection, Role
from .utils import Unset, kebab, program

logger = logging.getLogger(__name__)


@runtime_checkable
class Plan(Protocol):
    def execute(self, context, metadata=None, /, prompt=Unset): ...


def _tokens(prompt):
    """
    Normalize a prompt into a list of tokens.

    - Unset: sys.argv[1:]
    - str: shell-like string split with shlex.split
    - Iterable[str]: used as-is (every item must be a string)
    """
    if prompt is Unset:
        return sys.argv[1:]
    if isinstance(prompt, str):
        return shlex.split(prompt)
    if isinstance(prompt, Iterable):
        tokens = list(prompt)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("execute() prompt must be a string or an iterable of strings")
        return tokens
    raise TypeError("execute() prompt must be a string or an iterable of strings")


def _docstring(object):
    """
    Docstring of a function or class, ignoring the signature-like text that
    dataclasses generate for undocumented classes.
    """
    doc = inspect.getdoc(object) or ""
    if isinstance(object, type) and doc.startswith(object.__name__ + "("):
        return ""
    return doc


def _describe(object, metadata):
    """
    (short, long) from metadata, falling back to the docstring.
    """
    doc = _docstring(object)
    short = metadata.short or doc.partition("\n")[0].strip()
    return short, metadata.long or doc or short


def _documented(flags, metadata):
    """
    Flags with their descriptions filled in from metadata where missing.
    """
    documented = []
    for flag in flags:
        if flag.descr is None and flag.field in metadata.flags:
            flag = dataclasses.replace(flag, descr=metadata.flags[flag.field])
        documented.append(flag)
    return tuple(documented)


def _await(context, awaitable):
    """
    Run a coroutine to completion; cancelling `context` cancels it.
    """
    async def main():
        task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        detach = context.on_cancel(lambda: loop.call_soon_threadsafe(task.cancel))
        try:
            return await awaitable
        finally:
            detach()

    try:
        return asyncio.run(main())
    except asyncio.CancelledError:
        raise Cancelled(context.cause) from None


class FuncPlan:
    """
    Callable Plan: one command backed by a single callable.
    """

    def __init__(self, reflection, /):
        if not isinstance(reflection, Reflection) or reflection.kind != "callable":
            raise InvalidShapeKind("FuncPlan requires a callable reflection")
        self._reflection = reflection
        self._command(self.name, EMPTY)

    @property
    def reflection(self):
        return self._reflection

    @property
    def name(self):
        return kebab(self._reflection.name)

    def execute(self, context, metadata=None, /, prompt=Unset):
        """
        Parse the prompt for this command and run it under `context`.

        Errors raised (or returned, when declared) by the callable propagate
        unchanged; help requests return None without calling it.
        """
        root = self._command(program(), metadata or EMPTY)
        return engine.execute(root, _tokens(prompt), functools.partial(self._run, context))

    def _command(self, name, metadata):
        reflection = self._reflection
        short, long = _describe(reflection.object, metadata)
        params = None
        if Role.ARGUMENTS in reflection.roles:
            params = metadata.params[0] if metadata.params else reflection.argument
        return engine.Command(
            name,
            short=short,
            long=long,
            aliases=metadata.aliases,
            flags=_documented(reflection.options.flags if reflection.options else (), metadata),
            params=params,
            leaf=True,
            target=self,
        )

    def _run(self, context, selection, receiver=None):
        reflection = self._reflection
        options = None
        if reflection.options is not None:
            options = reflection.options.materialize(selection.values_of(selection.command))
        arguments = reflection.arguments(receiver=receiver, context=context, options=options, args=selection.args)
        logger.debug("calling %s with %d argument(s)", reflection.name, len(arguments))

        if reflection.coroutine:
            result = _await(context, reflection.object(*arguments))
        else:
            result = reflection.object(*arguments)

        if reflection.error and isinstance(result, BaseException):
            raise result
        return None

    def __repr__(self):
        return "func-plan(name=%r, roles=%r)" % (
            self.name, tuple(role.name.lower() for role in self._reflection.roles))


class StructPlan:
    """
    Struct Plan: one node of a command tree rooted at a dataclass.
    """

    def __init__(self, reflection, children=(), /):
        if not isinstance(reflection, Reflection) or reflection.kind != "struct":
            raise InvalidShapeKind("StructPlan requires a struct reflection")
        self._reflection = reflection
        self._children = {}
        for child in children:
            if not isinstance(child, FuncPlan | StructPlan):
                raise InvalidShapeKind(f"not a plan: {child!r}")
            if child.name in self._children:
                raise ValueError(f"{reflection.name}: subcommand name {child.name!r} is already in use")
            self._children[child.name] = child
        self._command(self.name, EMPTY)

    @property
    def reflection(self):
        return self._reflection

    @property
    def name(self):
        return kebab(self._reflection.name)

    @property
    def children(self):
        return tuple(self._children.values())

    def execute(self, context, metadata=None, /, prompt=Unset):
        """
        Parse the prompt, bind this node's flags and delegate to the selected
        child; a bare invocation only renders help.
        """
        root = self._command(program(), metadata or EMPTY)
        return engine.execute(root, _tokens(prompt), functools.partial(self._run, context))

    def _command(self, name, metadata):
        reflection = self._reflection
        short, long = _describe(reflection.object, metadata)
        command = engine.Command(
            name,
            short=short,
            long=long,
            aliases=metadata.aliases,
            flags=_documented(reflection.flags, metadata),
            params=None,
            leaf=False,
            target=self,
        )
        for route, child in self._children.items():
            command.add(child._command(route, metadata.child(route)))
        return command

    def _run(self, context, selection, receiver=None):
        reflection = self._reflection
        values = dict(selection.values_of(selection.command))
        if reflection.link is not None and receiver is not None:
            values[reflection.link[0]] = receiver
        instance = reflection.materialize(values)

        if len(selection.chain) < 2:
            return None
        child = selection.chain[1].target
        logger.debug("dispatching %s -> %s", selection.command.route, selection.chain[1].name)
        return child._run(context, selection.descend(), instance)

    def __repr__(self):
        return "struct-plan(name=%r, children=%r)" % (self.name, tuple(self._children))


def Func(function, /):
    """
    Build a Callable Plan from `function` (see the module docstring for the
    accepted signatures). Raises InvalidShapeKind for anything else.
    """
    return FuncPlan(Reflection.callable(function))


def Struct(cls, /, *children):
    """
    Build a Struct Plan from the dataclass `cls` and its children, in order.

    Children may be Struct plans, Func plans, methods of `cls` (passed as
    `cls.method`) or plain functions. A child Struct whose dataclass links to
    a parent must link to `cls`.
    """
    reflection = Reflection.struct(cls)
    plans = []
    for child in children:
        if isinstance(child, StructPlan):
            link = child.reflection.link
            if link is not None and not issubclass(cls, link[1]):
                raise InvalidShapeKind(
                    f"{child.reflection.name}.{link[0]} links to {link[1].__qualname__}, "
                    f"not to its parent {cls.__qualname__}"
                )
            plans.append(child)
        elif isinstance(child, FuncPlan):
            plans.append(child)
        elif callable(child) and not isinstance(child, type):
            attribute = inspect.getattr_static(cls, getattr(child, "__name__", ""), None)
            method = isinstance(attribute, types.FunctionType) and attribute is child
            plans.append(FuncPlan(Reflection.callable(child, method=method)))
        else:
            raise InvalidShapeKind(f"not a subcommand: {child!r}")
    logger.debug("built struct plan %s with %d child(ren)", reflection.name, len(plans))
    return StructPlan(reflection, plans)


__all__ = (
    "Plan",
    "FuncPlan",
    "StructPlan",
    "Func",
    "Struct",
)
