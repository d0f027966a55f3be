"""In-process event bus and event builders for translation jobs."""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from common.schemas import EventType, JobEvent
from common.utils import DateTimeUtils

logger = logging.getLogger(__name__)

EventHandler = Callable[[JobEvent], Union[None, Awaitable[None]]]


def create_job_event(
    event_type: EventType,
    session_key: str,
    task_id: str,
    payload: Optional[Dict[str, Any]] = None,
) -> JobEvent:
    """Build a timestamped job event."""
    return JobEvent(
        event_type=event_type,
        session_key=session_key,
        task_id=task_id,
        timestamp=DateTimeUtils.get_current_utc_datetime(),
        payload=payload or {},
    )


class EventBus:
    """
    Delivers job events to subscribers in subscription order.

    Handlers may be sync or async. A failing handler is logged and skipped;
    it never breaks the job that emitted the event.
    """

    def __init__(self):
        self._handlers: List[tuple] = []

    def subscribe(
        self, handler: EventHandler, event_type: Optional[EventType] = None
    ) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            handler: Callable receiving each JobEvent
            event_type: Only deliver events of this type (all when None)

        Returns:
            Function that removes the subscription
        """
        entry = (event_type, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    async def publish(self, event: JobEvent) -> None:
        """Deliver an event to every matching handler."""
        for event_type, handler in list(self._handlers):
            if event_type is not None and event_type != event.event_type:
                continue
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"❌ Event handler failed for {event.event_type.value} "
                    f"({event.session_key}): {e}",
                    exc_info=True,
                )

        logger.debug(f"📤 Published {event.event_type.value} for {event.session_key}")
