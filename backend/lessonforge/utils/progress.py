"""Progress Reporter: forwards percent milestones to an optional caller callback."""
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Union[None, Awaitable[None]]]


class ProgressReporter:
    """Wraps ``on_progress`` so that reported values only ever go up within 0..100.

    The callback may be a plain function or a coroutine function. A callback
    that raises is logged and ignored: progress is a side channel and must
    never fail a generation.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._last: Optional[int] = None

    @property
    def last(self) -> Optional[int]:
        return self._last

    async def report(self, percent: int) -> None:
        value = max(0, min(100, int(percent)))
        if self._last is not None:
            if value <= self._last:
                return
        self._last = value
        if self._callback is None:
            return
        try:
            result = self._callback(value)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("[progress] callback failed at %d%%", value, exc_info=True)
