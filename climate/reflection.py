"""
Climate reflection: classify callables and dataclasses once, fail fast.

What this module provides
- Role: the recognised parameter roles of a command callable, in canonical order
  (receiver < context < options < arguments).
- Reflection: immutable descriptor built from a live callable or dataclass type.
  • Reflection.callable(f) classifies
        f([self], [ctx: Context], [opts: <dataclass>], [args: list[str] | *args: str]) -> [error]
  • Reflection.struct(cls) lists the flag-eligible fields of a dataclass and
    the optional link field pointing at a parent dataclass.
  • arguments(...) lays out a call in canonical order from the classified roles.
  • zero() / bind() / materialize() produce fresh bound dataclass instances.

Every unsupported shape raises InvalidShapeKind while the descriptor is built.
"""
import collections.abc
import dataclasses
import functools
import inspect
import logging
import types
import typing
from enum import IntEnum
from inspect import Parameter, Signature

from .context import Context
from .faults import InvalidShapeKind
from .flags import describe, zero
from .utils import mirror

logger = logging.getLogger(__name__)

_SEQUENCES = (list, tuple, collections.abc.Sequence, collections.abc.Iterable, collections.abc.Collection)


class Role(IntEnum):
    RECEIVER = 0
    CONTEXT = 1
    OPTIONS = 2
    ARGUMENTS = 3


def _is_struct(annotation):
    return isinstance(annotation, type) and dataclasses.is_dataclass(annotation)


def _is_error(annotation):
    return isinstance(annotation, type) and issubclass(annotation, BaseException)


def _declares_error(annotation):
    """
    True for `E`, `E | None` or `E1 | E2 | None` where every E is an exception class.
    """
    if _is_error(annotation):
        return True
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        members = [member for member in typing.get_args(annotation) if member is not types.NoneType]
        return bool(members) and all(map(_is_error, members))
    return False


def _is_strings(annotation):
    """
    True for list[str], tuple[str, ...], Sequence[str] and friends (bare list too).
    """
    if annotation is list:
        return True
    origin = typing.get_origin(annotation)
    arguments = typing.get_args(annotation)
    if origin is tuple:
        return arguments == (str, ...)
    return origin in _SEQUENCES and arguments == (str,)


class Reflection:
    """
    Immutable classification of one callable or one dataclass type.

    Callable descriptors
    - roles: ordered tuple of Role (at most one of each, canonical order).
    - options: the struct Reflection of the options dataclass, or None.
    - variadic: positional arguments are collected by *args.
    - argument: name of the positional-arguments parameter, or None.
    - error: the return annotation declares an error return.
    - coroutine: the callable is a coroutine function.

    Struct descriptors
    - flags: Flag descriptors of the flag-eligible fields, in field order.
    - link: (field name, parent type) when a field points at a parent dataclass.
    - parent: lookup-only back-reference to the parent's descriptor.
    """

    kind = mirror("kind")
    object = mirror("object")
    roles = mirror("roles")
    options = mirror("options")
    variadic = mirror("variadic")
    argument = mirror("argument")
    error = mirror("error")
    coroutine = mirror("coroutine")
    flags = mirror("flags")
    link = mirror("link")

    def __init__(self, kind, object, /, **details):
        self._kind = kind
        self._object = object
        self._roles = details.get("roles", ())
        self._options = details.get("options")
        self._variadic = details.get("variadic", False)
        self._argument = details.get("argument")
        self._error = details.get("error", False)
        self._coroutine = details.get("coroutine", False)
        self._collect = details.get("collect", list)
        self._flags = details.get("flags", ())
        self._fields = details.get("fields", ())
        self._link = details.get("link")

    @classmethod
    def callable(cls, function, /, *, method=False):
        """
        Classify a command callable.

        When `method` is True the first parameter is the receiver (the bound
        dataclass instance of the enclosing Struct plan).
        """
        if not callable(function) or isinstance(function, type):
            raise InvalidShapeKind(f"not a func: {function!r}")
        try:
            signature = inspect.signature(function, eval_str=True)
        except (TypeError, ValueError, NameError) as exception:
            raise InvalidShapeKind(f"uninspectable func: {function!r}") from exception

        name = getattr(function, "__qualname__", repr(function))
        parameters = list(signature.parameters.values())
        roles = []
        details = {}

        if method:
            if not parameters or parameters[0].kind not in (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD):
                raise InvalidShapeKind(f"{name}: method must take the receiver as first parameter")
            roles.append(Role.RECEIVER)
            parameters = parameters[1:]

        for parameter in parameters:
            role = cls._classify(name, parameter, details)
            if roles and role <= roles[-1]:
                raise InvalidShapeKind(
                    f"{name}: parameter {parameter.name!r} ({role.name.lower()}) is repeated or out of order; "
                    "expected ([ctx], [opts], [args])"
                )
            roles.append(role)

        returns = signature.return_annotation
        if returns in (Signature.empty, None, types.NoneType):
            details["error"] = False
        elif _declares_error(returns):
            details["error"] = True
        else:
            raise InvalidShapeKind(f"{name}: return annotation must be empty, None or an error type, not {returns!r}")

        details["coroutine"] = inspect.iscoroutinefunction(function)
        logger.debug("classified %s as %s", name, [role.name.lower() for role in roles])
        return cls("callable", function, roles=tuple(roles), **details)

    @staticmethod
    def _classify(name, parameter, details):
        annotation = parameter.annotation

        if parameter.kind in (Parameter.KEYWORD_ONLY, Parameter.VAR_KEYWORD):
            raise InvalidShapeKind(f"{name}: keyword parameter {parameter.name!r} is not supported")

        if parameter.kind is Parameter.VAR_POSITIONAL:
            if annotation not in (Parameter.empty, str):
                raise InvalidShapeKind(f"{name}: *{parameter.name} must be annotated as str")
            details["variadic"] = True
            details["argument"] = parameter.name
            return Role.ARGUMENTS

        if annotation is Parameter.empty:
            match parameter.name:
                case "ctx" | "context":
                    return Role.CONTEXT
                case "args":
                    details["argument"] = parameter.name
                    return Role.ARGUMENTS
            raise InvalidShapeKind(f"{name}: cannot infer the role of unannotated parameter {parameter.name!r}")

        if isinstance(annotation, type) and issubclass(annotation, Context):
            return Role.CONTEXT
        if _is_struct(annotation):
            details["options"] = Reflection.struct(annotation)
            return Role.OPTIONS
        if _is_strings(annotation):
            details["collect"] = tuple if typing.get_origin(annotation) is tuple else list
            details["argument"] = parameter.name
            return Role.ARGUMENTS

        raise InvalidShapeKind(f"{name}: unsupported parameter {parameter.name!r}: {annotation!r}")

    @classmethod
    @functools.cache
    def struct(cls, type, /):
        """
        Classify a dataclass type (cached per type).
        """
        if not _is_struct(type):
            raise InvalidShapeKind(f"not a struct: {type!r}")
        try:
            hints = typing.get_type_hints(type, include_extras=True)
        except (NameError, TypeError) as exception:
            raise InvalidShapeKind(f"unresolvable annotations on {type.__qualname__}") from exception

        flags = []
        fields = []
        link = None
        names = set()

        for field in dataclasses.fields(type):
            if not field.init:
                continue
            annotation = hints.get(field.name, field.type)
            fields.append((field, annotation))
            if field.name.startswith("_"):
                continue

            target = typing.get_args(annotation)[0] if typing.get_origin(annotation) is typing.Annotated else annotation
            if typing.get_origin(target) in (typing.Union, types.UnionType):
                target = next((member for member in typing.get_args(target) if _is_struct(member)), target)
            if _is_struct(target):
                if link:
                    raise InvalidShapeKind(f"{type.__qualname__}: more than one parent link ({link[0]!r}, {field.name!r})")
                link = (field.name, target)
                continue

            flag = describe(type, field, annotation)
            if clash := names.intersection(flag.names):
                raise InvalidShapeKind(f"{type.__qualname__}: flag name {clash.pop()!r} is already in use")
            names.update(flag.names)
            flags.append(flag)

        return cls("struct", type, flags=tuple(flags), fields=tuple(fields), link=link)

    @property
    def parent(self):
        """
        Descriptor of the parent dataclass named by the link field, if any.
        """
        if self._link is None:
            return None
        return Reflection.struct(self._link[1])

    @property
    def name(self):
        return getattr(self._object, "__name__", type(self._object).__name__)

    def arguments(self, *, receiver=None, context=None, options=None, args=()):
        """
        Positional call arguments in canonical order, one per declared role.
        """
        supply = {
            Role.RECEIVER: receiver,
            Role.CONTEXT: context,
            Role.OPTIONS: options,
        }
        values = []
        for role in self._roles:
            if role is not Role.ARGUMENTS:
                values.append(supply[role])
            elif self._variadic:
                values.extend(args)
            else:
                values.append(self._collect(args))
        return tuple(values)

    def zero(self):
        """
        Fresh instance with every field at its default or zero value.
        """
        kwargs = {}
        for field, annotation in self._fields:
            if field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
                kwargs[field.name] = zero(annotation)
        return self._object(**kwargs)

    @staticmethod
    def bind(instance, values, /):
        """
        Bind parsed field values onto a struct instance.
        """
        return dataclasses.replace(instance, **values) if values else instance

    def materialize(self, values=None, /):
        return self.bind(self.zero(), values or {})

    def __repr__(self):
        if self._kind == "callable":
            return "reflection(kind='callable', name=%r, roles=%r)" % (
                self.name, tuple(role.name.lower() for role in self._roles))
        return "reflection(kind='struct', name=%r, flags=%r)" % (self.name, self._flags)


__all__ = (
    "Role",
    "Reflection",
)
