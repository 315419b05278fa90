"""
Climate execution context: a cancellation-bearing token.

What this module provides
- Context: passed down to every command that declares a context parameter.
  • cancel(cause) signals cancellation; it is idempotent and thread-safe.
  • cancelled / cause report the state; wait(timeout) blocks until cancelled.
  • check() raises Cancelled, for cooperative long-running bodies.
  • on_cancel(callback) registers a hook (e.g. to cancel an asyncio task).
  • Context(parent): a child that is cancelled together with its parent.
  • `with Context(parent) as ctx:` cancels ctx when the block exits, on every path.

- Cancelled: the error surfaced by check() and by cancelled coroutine commands.

Example
    def serve(ctx: Context, opts: Options) -> None:
        while not ctx.wait(timeout=1.0):
            poll()
"""
import functools
import logging
import threading

from .utils import Unset, coalesce

logger = logging.getLogger(__name__)


class Cancelled(Exception):
    """
    Raised when work observes a cancelled context.
    """

    def __init__(self, cause=Unset, /):
        super().__init__(coalesce(cause, "context cancelled"))
        self.cause = coalesce(cause)


class Context:
    __slots__ = ("_parent", "_event", "_lock", "_callbacks", "_cause", "_detach")

    def __init__(self, parent=Unset, /):
        if not isinstance(parent, Context | Unset):
            raise TypeError("Context 'parent' must be a context")
        self._parent = coalesce(parent)
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []
        self._cause = None
        self._detach = None
        if self._parent is not None:
            self._detach = self._parent.on_cancel(lambda: self.cancel(self._parent.cause))

    @classmethod
    @functools.cache
    def background(cls):
        """
        Process-wide root context; nothing ever cancels it.
        """
        return cls()

    @property
    def parent(self):
        return self._parent

    @property
    def cancelled(self):
        return self._event.is_set()

    @property
    def cause(self):
        """
        Reason given to cancel(), or None while the context is live.
        """
        return self._cause

    def cancel(self, cause=Unset, /):
        """
        Cancel this context and every context derived from it.

        Only the first call has an effect; later calls (and their causes) are
        ignored. Registered callbacks run once, in registration order, on the
        calling thread.
        """
        with self._lock:
            if self._event.is_set():
                return
            self._cause = coalesce(cause, "context cancelled")
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        logger.debug("context cancelled: %s", self._cause)
        if self._detach is not None:
            self._detach()
        for callback in callbacks:
            callback()

    def on_cancel(self, callback, /):
        """
        Register `callback` to run when the context is cancelled.

        If the context is already cancelled the callback runs immediately.
        Returns a function that unregisters the callback.
        """
        if not callable(callback):
            raise TypeError("on_cancel() argument must be callable")
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return functools.partial(self._unregister, callback)
        callback()
        return lambda: None

    def _unregister(self, callback):
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def wait(self, timeout=None, /):
        """
        Block until cancelled or until `timeout` seconds pass; return cancelled.
        """
        return self._event.wait(timeout)

    def check(self):
        """
        Raise Cancelled if the context has been cancelled.
        """
        if self._event.is_set():
            raise Cancelled(self._cause)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.cancel()

    def __repr__(self):
        return "context(cancelled=%r)" % self.cancelled


__all__ = (
    "Context",
    "Cancelled",
)
