"""
Tests for the execution context.

Scope
- cancel() is idempotent and keeps the first cause.
- Children are cancelled with their parent, never the other way around.
- on_cancel() hooks run once, immediately when already cancelled, and can be
  unregistered.
- wait() wakes up when another thread cancels.
"""
import threading
import unittest
from unittest import TestCase

from climate.context import Context, Cancelled


class ContextTest(TestCase):
    def testFreshContextIsLive(self) -> None:
        context = Context()
        self.assertFalse(context.cancelled)
        self.assertIsNone(context.cause)
        self.assertIsNone(context.parent)
        context.check()

    def testCancelIsIdempotent(self) -> None:
        context = Context()
        context.cancel("first")
        context.cancel("second")
        self.assertTrue(context.cancelled)
        self.assertEqual(context.cause, "first")

    def testCheckRaisesCancelled(self) -> None:
        context = Context()
        context.cancel("stop")
        with self.assertRaises(Cancelled) as caught:
            context.check()
        self.assertEqual(caught.exception.cause, "stop")

    def testChildFollowsParent(self) -> None:
        parent = Context()
        child = Context(parent)
        grandchild = Context(child)
        parent.cancel("shutdown")
        self.assertTrue(child.cancelled)
        self.assertTrue(grandchild.cancelled)
        self.assertEqual(grandchild.cause, "shutdown")

    def testParentIgnoresChild(self) -> None:
        parent = Context()
        child = Context(parent)
        child.cancel()
        self.assertFalse(parent.cancelled)

    def testChildOfCancelledParentStartsCancelled(self) -> None:
        parent = Context()
        parent.cancel("gone")
        self.assertTrue(Context(parent).cancelled)

    def testOnCancelRunsOnce(self) -> None:
        calls = []
        context = Context()
        context.on_cancel(lambda: calls.append("hook"))
        context.cancel()
        context.cancel()
        self.assertEqual(calls, ["hook"])

    def testOnCancelAfterCancelRunsImmediately(self) -> None:
        calls = []
        context = Context()
        context.cancel()
        context.on_cancel(lambda: calls.append("late"))
        self.assertEqual(calls, ["late"])

    def testOnCancelUnregister(self) -> None:
        calls = []
        context = Context()
        detach = context.on_cancel(lambda: calls.append("hook"))
        detach()
        context.cancel()
        self.assertEqual(calls, [])

    def testWaitWakesUpFromAnotherThread(self) -> None:
        context = Context()
        timer = threading.Timer(0.05, context.cancel)
        timer.start()
        try:
            self.assertTrue(context.wait(5))
        finally:
            timer.cancel()

    def testWaitTimesOut(self) -> None:
        self.assertFalse(Context().wait(0.01))

    def testWithBlockCancels(self) -> None:
        with Context() as context:
            self.assertFalse(context.cancelled)
        self.assertTrue(context.cancelled)

    def testBackgroundIsShared(self) -> None:
        self.assertIs(Context.background(), Context.background())
        with Context(Context.background()):
            pass
        self.assertFalse(Context.background().cancelled)

    def testRejectsNonContextParent(self) -> None:
        with self.assertRaises(TypeError):
            Context("parent")  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
