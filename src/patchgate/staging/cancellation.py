"""Cooperative cancellation for runs."""

from __future__ import annotations

import threading

from patchgate.errors import RunCancelledError


class CancellationToken:
    """Flag checked by the phases between items.

    Setting it never interrupts an Admin API call in flight; the phase stops
    before the next update or entry.

    Example:
        >>> token = CancellationToken()
        >>> signal.signal(signal.SIGTERM, lambda *_: token.cancel())
        >>> coordinator.run(cancel_token=token)
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise RunCancelledError once cancel() has been called."""
        if self._event.is_set():
            raise RunCancelledError()


__all__ = ["CancellationToken"]
