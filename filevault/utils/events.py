from typing import Dict, List, Callable, Optional, Set
import asyncio
import inspect
import logging

from ..models import RateLimitAdvisory

logger = logging.getLogger(__name__)


class EventEmitter:
    """Simple event emitter for client events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners."""
        if event_name not in self._listeners:
            return

        async with self._lock:
            for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
                try:
                    if inspect.iscoroutinefunction(callback):
                        await callback(*args, **kwargs)
                    else:
                        callback(*args, **kwargs)
                except Exception as e:
                    logger.error(f"Error in event listener for {event_name}: {e}")

    async def drain(self):
        """Wait until events emitted with emit_nowait have been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def emit_nowait(self, event_name: str, *args, **kwargs):
        """Emit an event from synchronous code without blocking."""
        if event_name not in self._listeners:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop running, deliver inline
            asyncio.run(self.emit(event_name, *args, **kwargs))
            return
        task = asyncio.create_task(self.emit(event_name, *args, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


class RateLimitNotifier(EventEmitter):
    """
    Advisory channel for HTTP 429 responses.

    The request client holds a reference to one of these and publishes every
    advisory; a UI subscribes with on_advisory() and shows a countdown.
    """

    EVENT = "rate_limited"

    def __init__(self):
        super().__init__()
        self.latest: Optional[RateLimitAdvisory] = None

    def on_advisory(self, callback: Callable[[RateLimitAdvisory], None]):
        self.on(self.EVENT, callback)

    async def notify(self, advisory: RateLimitAdvisory) -> None:
        self.latest = advisory
        logger.info("Rate limited, retry after %ss", advisory.retry_after)
        await self.emit(self.EVENT, advisory)

    def dismiss(self) -> None:
        self.latest = None
