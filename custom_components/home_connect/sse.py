"""Server-Sent Event streams for Home Connect push updates.

This module keeps one event stream per appliance open against the Home
Connect cloud and dispatches the received events to the listeners
registered for that appliance.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Protocol

import httpx
from httpx_sse import aconnect_sse

from .api import (
    HTTP_FORBIDDEN,
    HTTP_OK,
    HTTP_UNAUTHORIZED,
    create_sse_headers,
    extract_events,
)
from .const import (
    REQUEST_READ_TIMEOUT,
    SSE_CONNECTED,
    SSE_DISCONNECTED,
    SSE_KEEP_ALIVE,
    SSE_RECONNECT_DELAY,
    SSE_REQUEST_READ_TIMEOUT,
)
from .models import Event

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

_LOGGER = logging.getLogger(__name__)

SSE_TIMEOUT = httpx.Timeout(REQUEST_READ_TIMEOUT, read=SSE_REQUEST_READ_TIMEOUT)


class EventListener(Protocol):
    """Receiver of the events of one appliance."""

    @property
    def appliance_id(self) -> str:
        """Return the haId of the appliance this listener follows."""

    def on_event(self, event: Event) -> None:
        """Handle an event of the appliance."""

    def on_reconnect(self) -> None:
        """Handle the stream reconnecting after an error."""


class ApplianceEventStream:
    """Event stream connection of a single appliance.

    The stream runs in a background task and reconnects after errors until
    it is closed, the server answers 403, or the access token is rejected.
    A rejected token is handed to the owner through the on_invalid_token
    coroutine, which is expected to open a replacement stream.

    httpx-sse drops comment lines, so there is no comment callback.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        url: str,
        appliance_id: str,
        listeners: Iterable[EventListener],
        get_token: Callable[[], str | None],
        on_invalid_token: Callable[[ApplianceEventStream], Awaitable[None]],
        reconnect_delay: float = SSE_RECONNECT_DELAY,
    ) -> None:
        """Initialize the stream.

        Args:
            session: HTTP client session.
            url: Event stream URL of the appliance.
            appliance_id: haId of the appliance.
            listeners: Live collection of all registered listeners.
            get_token: Callback returning the current access token.
            on_invalid_token: Coroutine called when the server answers 401.
            reconnect_delay: Seconds to wait before reconnecting.

        """
        self._session = session
        self.url = url
        self.appliance_id = appliance_id
        self._listeners = listeners
        self._get_token = get_token
        self._on_invalid_token = on_invalid_token
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._access_token: str | None = None

    @property
    def closed(self) -> bool:
        """Return True once the stream has been closed."""
        return self._closed

    @property
    def access_token(self) -> str | None:
        """Return the access token of the last connection attempt."""
        return self._access_token

    def start(self) -> None:
        """Start the background task running the stream."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(
            self._async_run(), name=f"home_connect_sse_{self.appliance_id}"
        )

    async def async_close(self) -> None:
        """Close the stream and wait for its task to finish."""
        self._closed = True
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _matching_listeners(self) -> list[EventListener]:
        return [
            listener
            for listener in list(self._listeners)
            if listener.appliance_id == self.appliance_id
        ]

    async def _async_run(self) -> None:
        first_attempt = True
        try:
            while not self._closed:
                if not first_attempt:
                    await asyncio.sleep(self._reconnect_delay)
                    if self._closed:
                        break
                    self.on_pre_retry()
                first_attempt = False

                if not await self._async_connect():
                    break
        finally:
            self._closed = True
            self.on_closed()

    async def _async_connect(self) -> bool:
        """Run one connection attempt.

        Returns:
            True if the stream should reconnect, False otherwise.

        """
        self._access_token = self._get_token()
        headers = create_sse_headers(self._access_token or "")
        try:
            async with aconnect_sse(
                self._session, "GET", self.url, headers=headers, timeout=SSE_TIMEOUT
            ) as event_source:
                response = event_source.response
                if response.status_code != HTTP_OK:
                    await response.aread()
                    return await self.on_retry_error(None, response)

                self.on_open(response)
                async for sse in event_source.aiter_sse():
                    if sse.retry is not None:
                        self.on_retry_time(sse.retry)
                    self.on_message(sse.id, sse.event, sse.data)
        except httpx.HTTPError as err:
            return await self.on_retry_error(err, None)

        # Server ended the stream
        return await self.on_retry_error(None, None)

    def on_open(self, response: httpx.Response) -> None:
        """Handle the stream being established."""
        _LOGGER.debug(
            "[%s] SSE channel opened (%d)", self.appliance_id, response.status_code
        )

    def on_message(self, event_id: str, event: str, message: str) -> None:
        """Dispatch a received message to the listeners of this appliance.

        Args:
            event_id: Event id sent by the server.
            event: Event name, e.g. "KEEP-ALIVE", "CONNECTED" or "NOTIFY".
            message: Raw event data.

        """
        if event == SSE_KEEP_ALIVE:
            _LOGGER.debug("[%s] SSE KEEP-ALIVE", self.appliance_id)
        else:
            _LOGGER.debug(
                "[%s] SSE received id: %s event: %s message: %s",
                self.appliance_id,
                event_id,
                event,
                message,
            )

        events: list[Event] = []
        if message:
            try:
                events = extract_events(json.loads(message))
            except (ValueError, TypeError, AttributeError):
                _LOGGER.warning(
                    "[%s] Could not decode SSE message: %s", self.appliance_id, message
                )

        if event in (SSE_CONNECTED, SSE_DISCONNECTED):
            events.append(Event(key=event))

        for item in events:
            self._dispatch(item)

    def _dispatch(self, event: Event) -> None:
        for listener in self._matching_listeners():
            try:
                listener.on_event(event)
            except Exception:
                _LOGGER.exception("[%s] Error in event listener", self.appliance_id)

    def on_retry_time(self, milliseconds: int) -> None:
        """Adopt the reconnect delay announced by the server."""
        _LOGGER.debug("[%s] SSE retry time %d", self.appliance_id, milliseconds)
        self._reconnect_delay = milliseconds / 1000

    async def on_retry_error(
        self,
        error: Exception | None,
        response: httpx.Response | None,
    ) -> bool:
        """Decide whether to reconnect after an error.

        Args:
            error: Transport error, if the connection failed.
            response: Error response, if the server answered.

        Returns:
            True to reconnect, False to stop the stream.

        """
        if error is not None:
            _LOGGER.debug("[%s] SSE error: %s", self.appliance_id, error)

        if response is None:
            return not self._closed

        if response.status_code == HTTP_FORBIDDEN:
            _LOGGER.warning(
                "[%s] Stopping SSE listener! Got FORBIDDEN response from server. "
                "Please check if you are allowed to access this device.",
                self.appliance_id,
            )
            return False

        if response.status_code == HTTP_UNAUTHORIZED:
            _LOGGER.error("[%s] SSE token became invalid, closing SSE", self.appliance_id)
            await self._on_invalid_token(self)
            return False

        _LOGGER.debug(
            "[%s] SSE server error %d", self.appliance_id, response.status_code
        )
        return not self._closed

    def on_pre_retry(self) -> None:
        """Notify the listeners of this appliance before reconnecting."""
        for listener in self._matching_listeners():
            try:
                listener.on_reconnect()
            except Exception:
                _LOGGER.exception("[%s] Error in reconnect listener", self.appliance_id)

    def on_closed(self) -> None:
        """Handle the stream being closed."""
        _LOGGER.debug("[%s] SSE closed", self.appliance_id)
