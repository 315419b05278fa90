"""
Climate runner: execute a plan and translate its outcome into an exit code.

- run(plan, ...) -> int: never terminates the process.
- run_and_exit(plan, ...): the single process exit point.
- exit_code(error): the mapping on its own, for embedding hosts.

Exit codes
- success, help, bare non-leaf invocation: 0
- ExitError: its code
- subprocess.CalledProcessError: the child's return code (128 + signal when
  the child was killed by a signal)
- SystemExit raised by a command: its code (None → 0, non-integer → 1)
- anything else, including parsing faults: 1

ExitError and CalledProcessError are also recognised when they are the
explicit cause (`raise ... from`) of the error that escaped.
"""
import logging
import subprocess
import sys

from .context import Context
from .faults import ExitError
from .metadata import Metadata
from .utils import Unset, coalesce

logger = logging.getLogger(__name__)


def exit_code(error, /):
    """
    Map an exception (or None for success) to a process exit code.

    A CalledProcessError with a negative return code (the child was killed by
    signal N) maps to 128 + N, the code a shell reports for it, rather than to
    the raw negative value.
    """
    if error is None:
        return 0
    if isinstance(error, SystemExit):
        match error.code:
            case None:
                return 0
            case int() as code if not isinstance(code, bool):
                return code
            case _:
                return 1

    seen = set()
    cause = error
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        if isinstance(cause, ExitError):
            return cause.code
        if isinstance(cause, subprocess.CalledProcessError):
            return cause.returncode if cause.returncode >= 0 else 128 - cause.returncode
        cause = cause.__cause__
    return 1


def run(plan, context=Unset, *, metadata=Unset, prompt=Unset):
    """
    Execute `plan` under a fresh context and return the exit code.

    Parameters
    - plan: a plan built with Func() or Struct().
    - context: parent context (defaults to the process background context);
      the context created for this run is cancelled when run returns.
    - metadata: optional metadata payload (bytes); a malformed payload raises
      MalformedMetadata instead of being mapped to an exit code.
    - prompt: tokens to parse; sys.argv[1:] when omitted, a shell-like string
      or an iterable of strings otherwise.

    Errors have already been reported by the time run returns.
    """
    decoded = Metadata.decode(metadata) if metadata is not Unset else None
    with Context(coalesce(context, Context.background())) as ctx:
        try:
            plan.execute(ctx, decoded, prompt=prompt)
        except (Exception, SystemExit) as error:
            code = exit_code(error)
            logger.debug("run failed with %s, exit code %d", type(error).__name__, code)
            return code
    logger.debug("run completed, exit code 0")
    return 0


def run_and_exit(plan, context=Unset, *, metadata=Unset, prompt=Unset):
    """
    run(...) and terminate the process with its exit code.
    """
    sys.exit(run(plan, context, metadata=metadata, prompt=prompt))


__all__ = (
    "exit_code",
    "run",
    "run_and_exit",
)
