"""
Cooperative Cancellation

The probe loop never gets killed from outside. Ctrl+C only sets a
token that the controller checks between probes and while waiting
for a reply.

The token is a plain boolean: the SIGINT handler runs on the main
thread between bytecodes and must never block on a lock.
"""

import signal
import time

WAIT_SLICE = 0.05


class CancellationToken:

    def __init__(self, sleep=time.sleep, clock=time.monotonic):
        self._cancelled = False
        self._sleep = sleep
        self._clock = clock

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def wait(self, timeout: float) -> bool:
        """Sleeps up to timeout; returns True early if cancelled."""
        deadline = self._clock() + max(timeout, 0.0)
        while not self._cancelled:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            self._sleep(min(remaining, WAIT_SLICE))
        return self._cancelled


def install_interrupt_handler(token: CancellationToken):
    """Routes SIGINT to token.cancel(). Returns the previous handler."""

    def _on_interrupt(signum, frame):
        token.cancel()

    return signal.signal(signal.SIGINT, _on_interrupt)


def restore_interrupt_handler(previous) -> None:
    signal.signal(signal.SIGINT, previous)
