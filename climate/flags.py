r"""
Climate flag descriptors: dataclass fields as command-line flags.

Overview
- flag(...): declare flag options on a dataclass field; a thin wrapper over
  dataclasses.field that stores the options in the field metadata.
- Flag: the immutable descriptor the parsing engine consumes (names, kind,
  converter, choices, default, description, required/hidden).
- describe(cls, field, annotation): classify one field into a Flag, failing
  with InvalidShapeKind on unsupported types.
- zero(annotation): the zero value used when a field declares no default.

Field types
- bool                      → presence flag (also --name=false)
- int | float | str         → single value
- enum.Enum subclasses      → member names (case-insensitive) as choices
- typing.Literal[...]       → listed values as choices
- list[T]                   → repeatable; comma-separated values are split
- T | None                  → T, zero value None
- typing.Annotated[T, "d"]  → T, described as "d"
- any other class built from one string (pathlib.Path, decimal.Decimal, ...)

Example
    @dataclass
    class Options:
        verbose: bool = flag(short=True, descr="print more")
        level: Literal["low", "high"] = "low"
        include: list[Path] = flag(default_factory=list, short="I")
"""
import dataclasses
import enum
import re
import types
import typing
from collections.abc import Callable
from types import MappingProxyType
from typing import Any

from .faults import InvalidShapeKind
from .utils import Unset, coalesce, kebab

_KEY = "climate"

_TRUTHS = {"1": True, "t": True, "true": True, "y": True, "yes": True, "on": True,
           "0": False, "f": False, "false": False, "n": False, "no": False, "off": False}


def flag(
        default=dataclasses.MISSING,
        /,
        *,
        default_factory=dataclasses.MISSING,
        short=Unset,
        name=Unset,
        descr=Unset,
        metavar=Unset,
        required=False,
        hidden=False,
):
    """
    Declare a dataclass field with command-line flag options.

    Parameters
    - default / default_factory: forwarded to dataclasses.field.
    - short: True (first letter of the field) or a single character.
    - name: long name override (without dashes); defaults to the kebab-cased field.
    - descr: help text (metadata documentation and Annotated strings are fallbacks).
    - metavar: value placeholder shown in help.
    - required: the flag must be given on the command line.
    - hidden: omit the flag from help output.
    """
    if short is not Unset and short is not True and not (
            isinstance(short, str) and re.fullmatch(r"[^\W_]", short)):
        raise TypeError("flag() 'short' must be True or a single alphanumeric character")
    if name is not Unset and not (isinstance(name, str) and re.fullmatch(r"[^\W\d_](-?[^\W_]+)*", name)):
        raise TypeError("flag() 'name' must be a dash-separated identifier")
    if not isinstance(required, bool) or not isinstance(hidden, bool):
        raise TypeError("flag() 'required' and 'hidden' must be booleans")
    options = MappingProxyType({
        "short": short,
        "name": name,
        "descr": descr,
        "metavar": metavar,
        "required": required,
        "hidden": hidden,
    })
    return dataclasses.field(default=default, default_factory=default_factory, metadata={_KEY: options})


@dataclasses.dataclass(frozen=True, eq=False, kw_only=True)
class Flag:
    field: str
    names: tuple[str, ...]
    kind: typing.Literal["bool", "value", "list"]
    convert: Callable[[str], Any]
    choices: tuple[str, ...] = ()
    default: Any = None
    descr: str | None = None
    metavar: str = "value"
    required: bool = False
    hidden: bool = False

    @property
    def long(self):
        return next(name for name in self.names if name.startswith("--"))

    @property
    def short(self):
        return next((name for name in self.names if not name.startswith("--")), None)

    def __repr__(self):
        return "flag(%s)" % ", ".join(self.names)


def boolean(value, /):
    """
    Parse the usual spellings of a boolean ("true", "no", "1", ...).
    """
    try:
        return _TRUTHS[value.strip().lower()]
    except KeyError:
        raise ValueError("invalid boolean %r" % value) from None


def _unwrap(annotation):
    """
    Strip Annotated / Optional wrappers; return (type, doc, optional).
    """
    doc = None
    if typing.get_origin(annotation) is typing.Annotated:
        annotation, *extras = typing.get_args(annotation)
        doc = next((extra for extra in extras if isinstance(extra, str)), None)
    optional = False
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        members = [member for member in typing.get_args(annotation) if member is not types.NoneType]
        if len(members) == 1:
            annotation, optional = members[0], True
    return annotation, doc, optional


def _scalar(owner, field, annotation):
    """
    Converter and choices for a single (non-list) value.
    """
    if typing.get_origin(annotation) is typing.Literal:
        values = {str(value): value for value in typing.get_args(annotation)}

        def literal(value):
            try:
                return values[value]
            except KeyError:
                raise ValueError("invalid choice %r" % value) from None

        return literal, tuple(values)

    if isinstance(annotation, type) and issubclass(annotation, enum.Enum):
        members = {member.name.lower(): member for member in annotation}

        def enumeration(value):
            try:
                return members[value.strip().lower()]
            except KeyError:
                raise ValueError("invalid choice %r" % value) from None

        return enumeration, tuple(members)

    if annotation is bool:
        return boolean, ()

    if annotation in (int, float, str):
        return annotation, ()

    if (
            isinstance(annotation, type) and
            not dataclasses.is_dataclass(annotation) and
            not issubclass(annotation, (dict, list, tuple, set, frozenset, bytes))
    ):
        return annotation, ()

    raise InvalidShapeKind(f"{owner.__qualname__}.{field}: unsupported flag type {annotation!r}")


def zero(annotation, /):
    """
    Zero value for a field type without a default.
    """
    annotation, _, optional = _unwrap(annotation)
    if optional:
        return None
    if annotation is bool:
        return False
    if annotation in (int, float, str):
        return annotation()
    if typing.get_origin(annotation) is list or annotation is list:
        return []
    return None


def describe(owner, field, annotation, /):
    """
    Build the Flag descriptor for one dataclass field.

    Raises InvalidShapeKind for unsupported field types.
    """
    options = field.metadata.get(_KEY, {})
    annotation, doc, optional = _unwrap(annotation)

    if typing.get_origin(annotation) is list or annotation is list:
        item, = typing.get_args(annotation) or (str,)
        kind = "list"
        convert, choices = _scalar(owner, field.name, item)
        metavar = kebab(getattr(item, "__name__", "value"))
    elif annotation is bool:
        kind = "bool"
        convert, choices = boolean, ()
        metavar = "bool"
    else:
        kind = "value"
        convert, choices = _scalar(owner, field.name, annotation)
        metavar = kebab(getattr(annotation, "__name__", "value"))

    long = "--" + coalesce(options.get("name", Unset), kebab(field.name))
    names = (long,)
    match options.get("short", Unset):
        case True:
            names = ("-" + kebab(field.name)[0], long)
        case str() as short:
            names = ("-" + short, long)

    if field.default is not dataclasses.MISSING:
        default = field.default
    elif field.default_factory is not dataclasses.MISSING:
        default = field.default_factory()
    else:
        default = None if optional else zero(annotation)

    return Flag(
        field=field.name,
        names=names,
        kind=kind,
        convert=convert,
        choices=choices,
        default=default,
        descr=coalesce(options.get("descr", Unset), doc),
        metavar=coalesce(options.get("metavar", Unset), "choice" if choices else metavar),
        required=options.get("required", False),
        hidden=options.get("hidden", False),
    )


__all__ = (
    "flag",
    "Flag",
    "boolean",
    "describe",
    "zero",
)
