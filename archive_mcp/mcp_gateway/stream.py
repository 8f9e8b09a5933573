"""Server-sent event stream held open for one client session."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from archive_mcp.mcp_gateway.constants import (
    KEEPALIVE_INTERVAL_SECONDS,
    LEGACY_SESSION_QUERY_PARAM,
)

logger = logging.getLogger("archive_mcp.mcp_gateway.stream")

KEEPALIVE_FRAME = ": keepalive\n\n"

# A closed peer surfaces as one of these when the frame is written.
_DISCONNECT_ERRORS = (BrokenPipeError, ConnectionResetError, OSError)


def endpoint_for(session_id: str, legacy: bool) -> str:
    """URL the peer should POST follow-up messages to."""
    if legacy:
        return f"/messages?{LEGACY_SESSION_QUERY_PARAM}={session_id}"
    return "/message"


def endpoint_frame(endpoint: str) -> str:
    return f"event: endpoint\ndata: {endpoint}\n\n"


class StreamEmitter:
    """Emits the endpoint event, then keep-alives until the stream ends.

    The stream ends when the peer disconnects, when ``stop_event`` is set
    (gateway shutdown), or when the serving task is cancelled. None of these
    are errors.
    """

    def __init__(
        self,
        session_id: str,
        endpoint: str,
        interval: float = KEEPALIVE_INTERVAL_SECONDS,
        stop_event: asyncio.Event | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self.session_id = session_id
        self.endpoint = endpoint
        self.interval = interval
        self.stop_event = stop_event or asyncio.Event()
        self._is_disconnected = is_disconnected
        self.frames_sent = 0

    async def frames(self) -> AsyncIterator[str]:
        logger.info("stream opened session_id=%s", self.session_id)
        try:
            yield endpoint_frame(self.endpoint)
            self.frames_sent += 1
            while not await self._should_stop():
                try:
                    await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
                if await self._should_stop():
                    break
                yield KEEPALIVE_FRAME
                self.frames_sent += 1
        except _DISCONNECT_ERRORS as e:
            logger.debug("stream peer went away session_id=%s: %s", self.session_id, e)
        except asyncio.CancelledError:
            logger.debug("stream cancelled session_id=%s", self.session_id)
            raise
        finally:
            logger.info(
                "stream closed session_id=%s frames=%d", self.session_id, self.frames_sent
            )

    def stop(self) -> None:
        self.stop_event.set()

    async def _should_stop(self) -> bool:
        if self.stop_event.is_set():
            return True
        if self._is_disconnected is not None:
            try:
                return await self._is_disconnected()
            except _DISCONNECT_ERRORS:
                return True
        return False
