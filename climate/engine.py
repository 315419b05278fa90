"""
Climate command-line engine: command nodes, token parsing, help and reporting.

The plans describe *what* can run; this module decides *what was asked for*.

What this module provides
- Command: one node of the command tree (name, descriptions, aliases, flags,
  positional usage, ordered children) plus an opaque `target` that the plan
  layer uses to find its way back from a node to the plan that built it.
- Selection: the outcome of parsing; the chain of nodes from the root to the
  selected command, the parsed flag values per node, and the residual
  positional arguments.
- parse(root, tokens): tokens → Selection, raising CommandException faults.
- render(command): help output through rich.
- execute(root, tokens, callback): parse, render help when asked for (or when
  a non-leaf node is invoked bare), otherwise hand the Selection to callback.
  Faults and errors escaping callback are reported on stderr and re-raised
  unchanged, so callers never have to print them again.

Syntax accepted
- --name value, --name=value, -n value, -n=value
- boolean flags: --name, --name=false
- list flags: repeatable, comma-separated values are split
- flags of ancestor nodes are accepted after a child name (persistent flags)
- "--" ends flag parsing; everything after it is positional
- -h / --help anywhere renders help for the command resolved so far
"""
import dataclasses
import difflib
import enum
import functools
import logging
import re
from collections import defaultdict, deque
from types import MappingProxyType

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.table import Table
from rich.text import Text

from .faults import *
from .flags import boolean
from .utils import Unset, coalesce, mirror

logger = logging.getLogger(__name__)

_HELP = ("-h", "--help")

_STYLES = {
    "usage-label": "bold #00E6FF",
    "program-name": "bold #FF4D94",
    "description-section": "italic #A3A3A3",
    "group-label": "bold #FFFFFF",
    "flag-name": "bold #22C55E",
    "metavar": "bold #FFD600",
    "choice": "bold #FF4D94",
    "argument-description": "#9CA3AF",
    "default": "dim",
    "children-title": "bold #FFFFFF",
    "children-table": "#4B5563",
    "children": "bold #36C5F0",
    "children-description": "#9CA3AF",
    "aliases": "#9CA3AF italic",
}


@functools.cache
def _ordinal(number):
    """
    Human-friendly ordinal for a 1-based token position ("first", "12th", ...).
    """
    try:
        return ("first", "second", "third", "fourth", "fifth",
                "sixth", "seventh", "eighth", "ninth", "tenth")[number - 1]
    except IndexError:
        pass
    if 10 < number % 100 < 20:
        return f"{number}th"
    return f"{number}%s" % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


class Command:
    """
    One node of the command tree.

    Parameters
    - name: command name (the root is renamed to the program name by plans).
    - short / long: one-line summary and full description.
    - aliases: alternative names accepted by the parent.
    - flags: Flag descriptors bound to this node's values.
    - params: positional placeholder name, or None when the node takes no arguments.
    - leaf: the node runs something; non-leaf nodes only dispatch to children.
    - target: opaque back-reference for the caller (never inspected here).
    """

    name = mirror("name")
    short = mirror("short")
    long = mirror("long")
    aliases = mirror("aliases")
    flags = mirror("flags")
    params = mirror("params")
    leaf = mirror("leaf")
    children = mirror("children")
    parent = mirror("parent")
    target = mirror("target")

    def __init__(self, name, /, *, short="", long="", aliases=(), flags=(), params=None, leaf=True, target=None):
        if not isinstance(name, str) or not name:
            raise TypeError("Command 'name' must be a non-empty string")
        self._name = name
        self._short = short
        self._long = long
        self._aliases = tuple(aliases)
        self._flags = tuple(flags)
        self._params = params
        self._leaf = leaf
        self._target = target
        self._children = {}
        self._routes = {}
        self._parent = None
        self._switches = {}
        for flag in self._flags:
            for switch in flag.names:
                if switch in _HELP:
                    raise InvalidShapeKind(f"command {name!r}: flag name {switch!r} is reserved")
                if switch in self._switches:
                    raise InvalidShapeKind(f"command {name!r}: flag name {switch!r} is already in use")
                self._switches[switch] = flag

    @property
    def path(self):
        """
        Nodes from the root down to this one.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def route(self):
        return " ".join(command.name for command in self.path)

    def add(self, child, /):
        """
        Attach `child` (and its aliases) below this node; names must be unique.
        """
        if child.parent is not None:
            raise ValueError(f"command {child.name!r} is already attached to {child.parent.name!r}")
        for route in (child.name, *child.aliases):
            if route in self._routes:
                raise ValueError(f"{'subcommand' if self.parent else 'command'} name {route!r} is already in use")

        inherited = {switch for command in self.path for switch in command._switches}
        stack = [child]
        while stack:
            node = stack.pop()
            if clash := inherited.intersection(node._switches):
                raise InvalidShapeKind(f"command {node.name!r}: flag name {clash.pop()!r} shadows a parent flag")
            stack.extend(node._children.values())

        child._parent = self
        self._children[child.name] = child
        self._routes.update(dict.fromkeys((child.name, *child.aliases), child))
        return child

    def lookup(self, route, /):
        return self._routes.get(route)

    def switch(self, name, /):
        return self._switches.get(name)

    def __repr__(self):
        return "command(name=%r, children=%r)" % (self._name, tuple(self._children))


@dataclasses.dataclass(frozen=True)
class Selection:
    chain: tuple
    values: MappingProxyType
    args: tuple = ()
    help: bool = False

    @property
    def command(self):
        return self.chain[0]

    @property
    def selected(self):
        return self.chain[-1]

    def values_of(self, command, /):
        return self.values.get(command, MappingProxyType({}))

    def descend(self):
        """
        The same selection seen from the next node of the chain.
        """
        return dataclasses.replace(self, chain=self.chain[1:])


class _Parser:
    """
    Single-use state machine turning tokens into a Selection.
    """

    def __init__(self, root, tokens):
        self.tokens = deque(tokens)
        self.index = 0
        self.command = root
        self.chain = [root]
        self.values = defaultdict(dict)
        self.args = []

    @property
    def position(self):
        return _ordinal(self.index)

    def fail(self, exception, message, /, **options):
        raise exception(message, **options)

    def parse(self):
        help = False
        while self.tokens:
            token = self.tokens.popleft()
            self.index += 1
            if token == "--":
                for token in list(self.tokens):
                    self.index += 1
                    self.positional(token)
                self.tokens.clear()
                break
            if token.startswith("-") and token != "-" and not (
                    self.command.params is not None and re.fullmatch(r"-\d[\d.]*", token)):
                if self.option(token):
                    help = True
                    break
            elif self.command.children and not self.args:
                self.route(token)
            else:
                self.positional(token)

        if not help and not self.command.leaf:
            help = True
        if not help:
            self.required()
        return Selection(
            chain=tuple(self.chain),
            values=MappingProxyType({command: MappingProxyType(self.values[command]) for command in self.chain}),
            args=tuple(self.args),
            help=help,
        )

    def route(self, token):
        child = self.command.lookup(token)
        if child is None:
            nested = self.command.parent is not None
            kind = "subcommand" if nested else "command"
            suggestions = difflib.get_close_matches(token, self.command._routes.keys(), 5)
            if suggestions:
                hint = "did you mean %r? you can also run '%s --help' to see available %ss" % (
                    suggestions[0], self.command.route, kind)
            else:
                hint = "run '%s --help' to see available %ss" % (self.command.route, kind)
            self.fail(
                UnknownSubcommandError if nested else UnknownCommandError,
                "unknown %s %r at %s position" % (kind, token, self.position),
                title="unknown %s" % kind,
                code=FaultCode.UNKNOWN_SUBCOMMAND if nested else FaultCode.UNKNOWN_COMMAND,
                input=token,
                suggestions=suggestions,
                hint=hint,
            )
        self.chain.append(child)
        self.command = child

    def positional(self, token):
        if self.command.params is None:
            self.fail(
                UnexpectedArgumentError,
                "unexpected argument %r at %s position" % (token, self.position),
                title="unexpected argument",
                code=FaultCode.UNEXPECTED_ARGUMENT,
                input=token,
                hint="remove this extra value or run '%s --help' to see the expected usage" % self.command.route,
            )
        self.args.append(token)

    def option(self, token):
        """
        Consume one switch token; return True when help was requested.
        """
        match = re.fullmatch(r"(?P<input>--?[^\W\d_](-?[^\W_]+)*)(=(?P<value>.*))?", token, re.DOTALL)
        if not match:
            self.fail(
                MalformedTokenError,
                "bad form of flag %r at %s position" % (token, self.position),
                title="malformed flag",
                code=FaultCode.MALFORMED_TOKEN,
                input=token,
                hint="try '%s --help' to see valid spellings (for example: --name=value)" % self.command.route,
            )
        input, value = match["input"], match["value"]

        if input in _HELP:
            return True

        for owner in reversed(self.chain):
            if flag := owner.switch(input):
                break
        else:
            names = [name for command in self.chain for name in command._switches]
            suggestions = difflib.get_close_matches(input, names + list(_HELP), 5)
            if suggestions:
                hint = "did you mean %r? you can also run '%s --help' to see all flags" % (
                    suggestions[0], self.command.route)
            else:
                hint = "try '%s --help' to see all available flags" % self.command.route
            self.fail(
                UnknownSwitchError,
                "unknown flag %r at %s position" % (input, self.position),
                title="unknown flag",
                code=FaultCode.UNKNOWN_SWITCH,
                input=input,
                suggestions=suggestions,
                hint=hint,
            )

        if flag.kind == "bool":
            try:
                converted = True if value is None else boolean(value)
            except ValueError:
                self.fail(
                    FlagAssignmentError,
                    "flag %r at %s position expects true or false, not %r" % (input, self.position, value),
                    title="invalid boolean",
                    code=FaultCode.FLAG_ASSIGNMENT,
                    input=input,
                    hint="use %s alone or %s=false" % (input, input),
                )
        else:
            if value is None:
                if not self.tokens:
                    self.fail(
                        OptionValueRequiredError,
                        "flag %r at %s position requires a value" % (input, self.position),
                        title="missing value",
                        code=FaultCode.OPTION_VALUE_REQUIRED,
                        input=input,
                        hint="pass it as %s=<%s> or %s <%s>" % (input, flag.metavar, input, flag.metavar),
                    )
                value = self.tokens.popleft()
                self.index += 1
            raws = value.split(",") if flag.kind == "list" else [value]
            converted = [self.convert(flag, input, raw) for raw in raws]
            if flag.kind == "value":
                converted, = converted

        values = self.values[owner]
        if flag.kind == "list":
            values.setdefault(flag.field, []).extend(converted)
        elif flag.field in values:
            self.fail(
                DuplicatedSwitchError,
                "flag %r at %s position was already provided" % (input, self.position),
                title="duplicated flag",
                code=FaultCode.DUPLICATED_SWITCH,
                input=input,
                hint="keep a single %s; it can be specified only once" % flag.long,
            )
        else:
            values[flag.field] = converted
        return False

    def convert(self, flag, input, raw):
        try:
            return flag.convert(raw)
        except (ValueError, TypeError, KeyError):
            pass
        if flag.choices:
            suggestions = difflib.get_close_matches(raw, flag.choices, 3)
            self.fail(
                InvalidChoiceError,
                "invalid choice %r for flag %r at %s position" % (raw, input, self.position),
                title="invalid choice",
                code=FaultCode.INVALID_CHOICE,
                input=input,
                suggestions=suggestions,
                hint="choose one of: %s" % ", ".join(flag.choices),
            )
        self.fail(
            InvalidValueError,
            "invalid %s value %r for flag %r at %s position" % (flag.metavar, raw, input, self.position),
            title="invalid value",
            code=FaultCode.INVALID_VALUE,
            input=input,
            hint="run '%s --help' to see the expected value" % self.command.route,
        )

    def required(self):
        for command in self.chain:
            for flag in command.flags:
                if flag.required and flag.field not in self.values[command]:
                    raise MissingRequiredError(
                        "required flag %r was not provided" % flag.long,
                        title="missing required flag",
                        code=FaultCode.MISSING_REQUIRED,
                        input=flag.long,
                        hint="add %s <%s> to the command line" % (flag.long, flag.metavar),
                    )


def parse(root, tokens, /):
    """
    Parse `tokens` against the tree rooted at `root`.

    Raises the first CommandException met; returns a Selection otherwise.
    """
    selection = _Parser(root, tokens).parse()
    logger.debug("selected %r with %d argument(s)", selection.selected.route, len(selection.args))
    return selection


def render(command, /, console=Unset):
    """
    Print help for `command`.

    Palette keys can be overridden with a __styles__ mapping in __main__.
    """
    console = coalesce(console, Console())
    styles = defaultdict(str, _STYLES | getattr(__import__("__main__"), "__styles__", {}))

    def text(fragment, style=""):
        return Text(str(fragment), styles[style])

    def names(flag):
        return Text(", ").join(text(name, "flag-name") for name in flag.names)

    def metavar(flag):
        if flag.kind == "bool":
            return Text("")
        if flag.choices:
            body = Text.assemble("{", Text(",").join(text(choice, "choice") for choice in flag.choices), "}")
        else:
            body = Text.assemble("<", text(flag.metavar, "metavar"), ">")
        return Text.assemble(" ", body, " ..." if flag.kind == "list" else "")

    renders = []

    usage = Text()
    usage.append("usage", styles["usage-label"]).append(": ")
    usage.append(text(command.route, "program-name"))
    if command.children:
        usage.append(" <command>")
    if any(node.flags for node in command.path):
        usage.append(" [flags]")
    if command.params is not None:
        usage.append(" [%s ...]" % command.params)
    renders.append(usage.append("\n"))

    if descr := command.long or command.short:
        renders.append(text(descr, "description-section").append("\n"))

    if command.aliases:
        renders.append(Text.assemble(
            text("aliases", "group-label"), ": ", text(", ".join(command.aliases), "aliases"), "\n"))

    if command.children:
        table = Table(
            "name", "help",
            title=text("subcommands" if command.parent else "commands", "children-title"),
            box=ROUNDED,
            style=styles["children-table"],
            header_style=styles["children-title"],
        )
        for name, child in command.children.items():
            if child.short:
                help = text(child.short, "children-description")
            else:
                help = text("run '%s --help' for details" % child.route, "children-description")
            table.add_row(text(name, "children"), help)
        renders.append(table)

    sections = [("flags", command.flags)]
    sections += [("global flags", ancestor.flags) for ancestor in reversed(command.path[:-1]) if ancestor.flags]
    for title, flags in sections:
        block = Text()
        block.append(text(title, "group-label")).append(":\n")
        rows = [(Text.assemble(names(flag), metavar(flag)), flag) for flag in flags if not flag.hidden]
        if title == "flags":
            rows.append((text("-h, --help", "flag-name"), None))
        width = max((len(row) for row, _ in rows), default=0) + 4
        for row, flag in rows:
            block.append("  ").append(row).append(" " * (width - len(row)))
            if flag is None:
                block.append(text("show this help message and exit", "argument-description"))
            else:
                block.append(text(flag.descr or "", "argument-description"))
                if flag.required:
                    block.append(text(" (required)", "default"))
                elif flag.default not in (None, False, "", [], ()):
                    block.append(text(" (default: %s)" % _shown(flag.default), "default"))
            block.append("\n")
        renders.append(block)

    renders[-1].rstrip()
    console.print(Group(*renders))


def _shown(value):
    if isinstance(value, list | tuple):
        return ",".join(map(_shown, value))
    if isinstance(value, enum.Enum):
        return value.name.lower()
    return value


def execute(root, tokens, callback, /):
    """
    Parse `tokens` and run `callback(selection)` for the selected command.

    - help requested, or a non-leaf command invoked bare → help is rendered,
      callback is not called, None is returned.
    - faults and errors raised by callback are reported on stderr and re-raised
      unchanged.
    """
    try:
        selection = parse(root, tokens)
    except CommandException as fault:
        report(fault)
        raise
    if selection.help:
        render(selection.selected)
        return None
    try:
        return callback(selection)
    except Exception as error:
        report(error)
        raise


__all__ = (
    "Command",
    "Selection",
    "parse",
    "render",
    "execute",
)
