"""Cooperative cancellation of a running solve."""

from __future__ import annotations

import logging
import signal
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import FrameType

_LOGGER = logging.getLogger(__name__)


class CancellationToken:
    """A flag requesting a running solve to stop.

    The token may be set from any thread, or from a signal handler. The
    solver adapter polls it after each solver iteration; once it is set, the
    solve stops and returns the last completed iterate.

    A token serves a single optimization at a time. It is cleared when the
    optimization starts and again when it finishes, so a cancellation
    requested before the start has no effect.
    """

    def __init__(self) -> None:
        """Initialize a cleared token."""
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def clear(self) -> None:
        """Withdraw a cancellation request."""
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()


def subscribe_cancellation(
    token: CancellationToken,
    signals: Iterable[signal.Signals] = (signal.SIGINT,),
) -> Callable[[], None]:
    """Cancel a token when the process receives one of the given signals.

    The handlers that were installed before are restored by calling the
    returned function. Signal handlers can only be installed from the main
    thread; in other threads nothing is installed and the returned function
    does nothing.

    Args:
        token:   The token to cancel.
        signals: The signals that cancel the token (default: `SIGINT`).

    Returns:
        A function that removes the subscription.
    """
    previous: dict[signal.Signals, Callable[..., object] | int] = {}

    def _unsubscribe() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
        previous.clear()

    if threading.current_thread() is not threading.main_thread():
        _LOGGER.debug("Not in the main thread, signals are not subscribed")
        return _unsubscribe

    def _handler(signum: int, _: FrameType | None) -> None:
        _LOGGER.info("Received signal %d, cancelling the optimization", signum)
        token.cancel()

    for signum in signals:
        handler = signal.signal(signum, _handler)
        previous[signum] = signal.SIG_DFL if handler is None else handler
    return _unsubscribe
