from __future__ import annotations

import logging

from .flow import Flow

logger = logging.getLogger(__name__)


class JobSlot:
    """Holds the flow that `kill` targets.

    Replacing the current flow does not stop it: an older job keeps running
    in the background and can no longer be killed from the menu.
    """

    def __init__(self) -> None:
        self._current: Flow | None = None

    @property
    def current(self) -> Flow | None:
        return self._current

    def replace(self, flow: Flow) -> Flow | None:
        previous = self._current
        if previous is not None and not previous.done():
            logger.warning("Job %s still running, replaced by %s", previous.name, flow.name)
        self._current = flow
        flow.add_finish_callback(self._release)
        return previous

    def kill(self) -> bool:
        flow = self._current
        if flow is None:
            return False
        return flow.cancel()

    def _release(self, flow: Flow) -> None:
        if self._current is flow:
            self._current = None
