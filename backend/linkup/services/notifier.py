import asyncio
import logging
from typing import Optional, Set

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)


class CompletionNotifier:
    """Fire-and-forget trigger of the completion step.

    ``trigger`` schedules a detached task and returns immediately. The task
    posts ``{event_id, attempt}`` with a short timeout; every failure is
    logged and none is propagated.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.url = settings.completion_url
        self.timeout = settings.notify_timeout
        self.transport = transport
        self._tasks: Set[asyncio.Task] = set()

    def trigger(self, event_id: str, attempt: int = 1) -> Optional[asyncio.Task]:
        if not self.url:
            logger.info(f"No completion URL configured; not triggering completion for {event_id}")
            return None
        task = asyncio.create_task(self.notify(event_id, attempt))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def notify(self, event_id: str, attempt: int = 1) -> bool:
        try:
            await asyncio.wait_for(self._post(event_id, attempt), timeout=self.timeout)
            logger.info(f"Completion triggered for {event_id} (attempt {attempt})")
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Completion trigger for {event_id} timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"Completion trigger for {event_id} failed: {type(e).__name__}: {e}")
        return False

    async def _post(self, event_id: str, attempt: int) -> None:
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                self.url,
                json={"event_id": event_id, "attempt": attempt},
                timeout=self.timeout,
            )
            response.raise_for_status()

    async def drain(self) -> None:
        """Wait for in-flight triggers; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
