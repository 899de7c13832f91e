"""Progress publishing onto consumer-owned queues."""

import logging
import queue
from typing import Optional

from ..cancellation import CancelToken
from ..models.search import IndexProgress

# Sentinel closing a producer-owned progress queue.
END_OF_PROGRESS = None

_PUT_RETRY_INTERVAL = 0.05


def publish(
    target: Optional[queue.Queue],
    progress: IndexProgress,
    cancel: Optional[CancelToken] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Put a progress event on a queue without risking a stuck producer.

    A full queue is retried until there is room. Once the run is
    cancelled, an event that does not fit is dropped instead.

    Args:
        target: Consumer queue, or None to discard.
        progress: Event to publish.
        cancel: Run cancellation token.
        logger: Logger of the publishing component (defaults to module logger).

    Returns:
        True if the event was queued.
    """
    if target is None:
        return False

    while True:
        try:
            target.put(progress, timeout=_PUT_RETRY_INTERVAL)
            return True
        except queue.Full:
            if cancel is not None and cancel.cancelled:
                (logger or logging.getLogger(__name__)).debug(
                    f"Dropped progress update after cancellation: {progress.message!r}"
                )
                return False
