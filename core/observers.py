"""
Observer registry used by the core components to publish change
notifications.
"""

import logging
from typing import Callable


logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ObserverRegistry:
    """
    Synchronous, fire-and-forget change notifications.

    Callbacks take no arguments and re-read whatever state they need. A
    callback that raises is logged and does not stop delivery to the rest.
    """

    def __init__(self, name: str = "observers"):
        self.name = name
        self._callbacks: list[Callback] = []

    def subscribe(self, callback: Callback, replay: bool = False) -> Callable[[], None]:
        """Register a callback. Returns a token that unregisters it."""
        self._callbacks.append(callback)
        if replay:
            self._invoke(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self) -> None:
        for callback in list(self._callbacks):
            self._invoke(callback)

    def _invoke(self, callback: Callback) -> None:
        try:
            callback()
        except Exception:
            logger.exception(f"{self.name} callback failed")

    def __len__(self) -> int:
        return len(self._callbacks)
