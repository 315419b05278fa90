"""
Climate faults: the error taxonomy and its rendering.

Scope
- Construction and packaging defects (fatal, never mapped to an exit code):
  • InvalidShapeKind: a callable/dataclass does not match a supported shape.
  • MalformedMetadata: the metadata payload could not be decoded.
- Exit semantics:
  • ExitError: a domain error that carries the intended process exit code.
- Parsing faults (reported by the engine, then raised; exit code 1):
  • FaultCode: stable numeric identifiers grouped by domain.
  • CommandException and its subclasses know how to render themselves with rich.
- report(): central entry point to surface a fault or a domain error on stderr.

Host customization (read from __main__)
- __prog__: program name shown in fault headers.
- __styles__: palette overrides (keys listed in _STYLES).
- __codes__: mapping FaultCode -> label, to replace numeric codes in output.
"""
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce, program

console = Console(stderr=True)


class InvalidShapeKind(TypeError):
    """
    A callable or dataclass handed to Func/Struct has an unsupported shape.

    This is a programming error in the command tree itself and is raised while
    the plan is being built, never while it runs.
    """


class MalformedMetadata(ValueError):
    """
    The metadata payload is present but cannot be decoded (packaging defect).
    """


class ExitError(Exception):
    """
    Domain error carrying an explicit process exit code.

    An empty message keeps the error silent: only the exit code is reported
    back to the shell.
    """

    def __init__(self, code, message="", /):
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError("ExitError 'code' must be an integer")
        super().__init__(message or "exit status %d" % code)
        self.code = code
        self.message = message

    def __repr__(self):
        return "ExitError(%d, %r)" % (self.code, self.message)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the cli (stable identifiers).

    grouping
    - routing (1110x): UNKNOWN_COMMAND, UNKNOWN_SUBCOMMAND
    - flags (1111x / 1112x): MALFORMED_TOKEN, UNKNOWN_SWITCH, FLAG_ASSIGNMENT,
      DUPLICATED_SWITCH, OPTION_VALUE_REQUIRED, INVALID_VALUE, INVALID_CHOICE,
      MISSING_REQUIRED
    - positionals (1113x): UNEXPECTED_ARGUMENT
    - delegated (1114x): COMMAND_FAILED (a command body raised or returned an error)
    """
    # --- routing errors ---
    UNKNOWN_COMMAND       = 11101
    UNKNOWN_SUBCOMMAND    = 11102

    # --- flag errors ---
    MALFORMED_TOKEN       = 11111
    UNKNOWN_SWITCH        = 11112
    FLAG_ASSIGNMENT       = 11113
    DUPLICATED_SWITCH     = 11115
    OPTION_VALUE_REQUIRED = 11117
    INVALID_VALUE         = 11123
    INVALID_CHOICE        = 11124
    MISSING_REQUIRED      = 11125

    # --- positional errors ---
    UNEXPECTED_ARGUMENT   = 11131

    # --- delegated errors ---
    COMMAND_FAILED        = 11141

    def normalize(self):
        """
        return the host-normalized label for this code (see __codes__).
        """
        main = __import__("__main__")
        return str(getattr(main, "__codes__", {}).get(self, self.value))


_STYLES = {
    "prog-name": "bold #E6E6F0",  # near-white program name
    "code": "bold #00E5FF",  # neon cyan fault code
    "error-title": "bold #FF4DA6",  # pinky title
    "error-message": "#C8C8D0",  # soft gray message
    "hint-arrow": "#9CE19C dim",
    "hint": "italic #9CE19C",
}


class CommandException(Exception):
    """
    a user-facing fault raised while parsing the command line.

    options (all optional, read-only)
    - title: short headline, code: FaultCode, hint: one actionable sentence,
      suggestions: near matches, colorful/fancy: rendering switches,
      plus any context (input, command, ...) useful to reporters.
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(coalesce(message, ""))
        self.message = coalesce(message, "")
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code", FaultCode.COMMAND_FAILED)

    @property
    def hint(self):
        return self.options.get("hint")

    @property
    def suggestions(self):
        return tuple(self.options.get("suggestions", ()))

    def __rich__(self):
        styles = defaultdict(str, _STYLES | getattr(__import__("__main__"), "__styles__", {}))
        colorful = self.options.get("colorful", True)

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            return Text(str(fragment), styles[style] if colorful else "")

        header = Text.assemble(
            "[ ",
            text(program(), "prog-name"),
            " — ",
            text(self.code.normalize(), "code"),
            " | ",
            text(self.options.get("title", "error").title(), "error-title"),
            " ]",
        )
        renders = [text(self.message, "error-message")]
        if self.hint:
            renders.append(Text.assemble(text(" → ", "hint-arrow"), text(self.hint, "hint")))

        if self.options.get("fancy", False):
            return Panel(Group(*renders), title=header, title_align="left")
        return Group(header, *renders)


class UnknownCommandError(CommandException): ...
class UnknownSubcommandError(UnknownCommandError): ...
class MalformedTokenError(CommandException): ...
class UnknownSwitchError(CommandException): ...
class FlagAssignmentError(CommandException): ...
class DuplicatedSwitchError(CommandException): ...
class OptionValueRequiredError(CommandException): ...
class InvalidValueError(CommandException): ...
class InvalidChoiceError(InvalidValueError): ...
class MissingRequiredError(CommandException): ...
class UnexpectedArgumentError(CommandException): ...


def report(error, /):
    """
    surface a fault or a domain error on stderr.

    contract
    - CommandException: rendered as-is.
    - ExitError without a message: silent, only its exit code matters.
    - SystemExit: silent (the command chose its own exit status).
    - anything else: wrapped into a COMMAND_FAILED fault showing str(error).
    """
    if isinstance(error, SystemExit):
        return
    if isinstance(error, ExitError) and not error.message:
        return
    if not isinstance(error, CommandException):
        error = CommandException(
            str(error) or type(error).__name__,
            title="command failed",
            code=FaultCode.COMMAND_FAILED,
        )
    console.print(error)


__all__ = (
    "InvalidShapeKind",
    "MalformedMetadata",
    "ExitError",
    "FaultCode",
    "CommandException",
    "UnknownCommandError",
    "UnknownSubcommandError",
    "MalformedTokenError",
    "UnknownSwitchError",
    "FlagAssignmentError",
    "DuplicatedSwitchError",
    "OptionValueRequiredError",
    "InvalidValueError",
    "InvalidChoiceError",
    "MissingRequiredError",
    "UnexpectedArgumentError",
    "report",
)
