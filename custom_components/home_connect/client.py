"""Client for the Home Connect cloud API.

The client owns the OAuth session of one account. Every REST call makes sure
a valid access token exists, retries once with a fresh token when the server
rejects it, and maps the vendor JSON into the models of this integration.
Event listeners share one Server-Sent Event stream per appliance.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from .api import (
    HTTP_NO_CONTENT,
    HTTP_NOT_FOUND,
    HTTP_OK,
    CommunicationError,
    ConfigurationError,
    InvalidTokenError,
    async_authorize,
    async_refresh_token,
    check_response_code,
    create_headers,
    create_setting_payload,
    extract_data,
    extract_home_appliance,
    extract_home_appliances,
    extract_program,
    get_api_url,
)
from .const import (
    BSH_JSON_V1,
    REQUEST_READ_TIMEOUT,
    SETTING_FREEZER_SETPOINT_TEMPERATURE,
    SETTING_FREEZER_SUPER_MODE,
    SETTING_FRIDGE_SETPOINT_TEMPERATURE,
    SETTING_FRIDGE_SUPER_MODE,
    SETTING_POWER_STATE,
    SSE_RECONNECT_DELAY,
    STATUS_DOOR_STATE,
    STATUS_OPERATION_STATE,
    STATUS_REMOTE_CONTROL_ACTIVE,
    STATUS_REMOTE_CONTROL_START_ALLOWED,
)
from .models import Data, HomeAppliance, Program, Session
from .sse import ApplianceEventStream

if TYPE_CHECKING:
    from collections.abc import Callable, Collection

    from .sse import EventListener

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

# One initial attempt plus one retry after re-authentication
MAX_ATTEMPTS = 2


class HomeConnectApiClient:
    """Client for the Home Connect REST and event stream API.

    All calls that touch the token or the event streams are serialized by a
    single lock, so concurrent callers never refresh the token twice or race
    on the stream map.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        simulated: bool = False,
        new_refresh_token_callback: Callable[[str], None] | None = None,
        sse_reconnect_delay: float = SSE_RECONNECT_DELAY,
    ) -> None:
        """Initialize the client.

        Args:
            session: HTTP client session.
            client_id: OAuth client id.
            client_secret: OAuth client secret.
            refresh_token: Refresh token from the device flow.
            simulated: Talk to the simulator instead of physical appliances.
            new_refresh_token_callback: Called with the new refresh token
                whenever the server rotates it.
            sse_reconnect_delay: Seconds to wait before reconnecting an
                event stream.

        """
        self._session = session
        self.credentials = Session(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            simulated=simulated,
        )
        self._new_refresh_token_callback = new_refresh_token_callback
        self._sse_reconnect_delay = sse_reconnect_delay
        self.api_url = get_api_url(simulated)

        self._lock = asyncio.Lock()
        self._event_listeners: set[EventListener] = set()
        self._event_streams: dict[str, ApplianceEventStream] = {}

    # Credentials

    async def async_ensure_valid_token(self) -> None:
        """Make sure an access token is available, authorizing if needed.

        Raises:
            ConfigurationError: If no refresh token is configured.
            CommunicationError: If the token could not be obtained.

        """
        async with self._lock:
            await self._async_check_credentials()

    async def _async_check_credentials(self) -> None:
        credentials = self.credentials
        try:
            if credentials.simulated:
                if not credentials.access_token:
                    token = await async_authorize(
                        self._session, self.api_url, credentials.client_id
                    )
                    credentials.access_token = token.access_token
            elif not credentials.refresh_token:
                _LOGGER.error("No refresh token present")
                error_msg = "No refresh token set!"
                raise ConfigurationError(error_msg)
            elif not credentials.access_token:
                await self._async_refresh_token()
        except CommunicationError:
            credentials.invalidate()
            raise

    async def _async_refresh_token(self) -> None:
        credentials = self.credentials
        token = await async_refresh_token(
            self._session,
            self.api_url,
            credentials.refresh_token,
            credentials.client_secret,
        )
        credentials.access_token = token.access_token

        if self._new_refresh_token_callback is not None and token.refresh_token:
            credentials.refresh_token = token.refresh_token
            self._new_refresh_token_callback(token.refresh_token)
            _LOGGER.debug("Refresh token was rotated")

    # REST

    async def _async_request(
        self,
        method: str,
        path: str,
        accepted: Collection[int],
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request, retrying once on an invalid token.

        Must be called with the lock held.
        """
        url = f"{self.api_url}{path}"
        content = json.dumps(payload) if payload is not None else None
        attempt = 0

        while True:
            attempt += 1
            await self._async_check_credentials()

            headers = create_headers(self.credentials.access_token or "")
            if content is not None:
                headers["Content-Type"] = BSH_JSON_V1

            response = await self._session.request(
                method,
                url,
                headers=headers,
                content=content,
                timeout=REQUEST_READ_TIMEOUT,
            )

            try:
                check_response_code(response, accepted)
            except InvalidTokenError as err:
                self.credentials.invalidate()
                if attempt >= MAX_ATTEMPTS:
                    raise CommunicationError(
                        response.status_code, response.reason_phrase, response.text
                    ) from err
                _LOGGER.debug("[%s %s] Retrying request", method, path)
                continue

            _LOGGER.debug(
                "[%s %s] Response code: %d, body: %s",
                method,
                path,
                response.status_code,
                response.text,
            )
            return response

    async def _async_call(
        self,
        path: str,
        accepted: Collection[int],
        parse: Callable[[httpx.Response], _T],
        method: str = "GET",
        payload: dict[str, Any] | None = None,
    ) -> _T | None:
        """Run a request under the lock and parse its response.

        Returns:
            The parsed result, or None if the server could not be reached.

        """
        async with self._lock:
            try:
                response = await self._async_request(method, path, accepted, payload)
            except httpx.RequestError as err:
                _LOGGER.error("Error occurred while communicating with API: %s", err)
                return None
            return parse(response)

    async def async_get_home_appliances(self) -> list[HomeAppliance] | None:
        """Get all appliances paired with the account."""
        return await self._async_call(
            "/api/homeappliances",
            (HTTP_OK,),
            lambda response: _parse_json(response, extract_home_appliances),
        )

    async def async_get_home_appliance(self, ha_id: str) -> HomeAppliance | None:
        """Get a single appliance by its haId."""
        return await self._async_call(
            f"/api/homeappliances/{ha_id}",
            (HTTP_OK,),
            lambda response: _parse_json(response, extract_home_appliance),
        )

    async def async_get_setting(self, ha_id: str, name: str) -> Data | None:
        """Get a setting of an appliance."""
        return await self._async_call(
            f"/api/homeappliances/{ha_id}/settings/{name}",
            (HTTP_OK,),
            lambda response: _parse_json(response, extract_data),
        )

    async def async_put_setting(
        self,
        ha_id: str,
        name: str,
        value: str,
        unit: str | None = None,
        *,
        as_int: bool = False,
    ) -> None:
        """Write a setting of an appliance.

        Args:
            ha_id: Appliance identifier.
            name: Setting key.
            value: New value.
            unit: Optional unit of the value.
            as_int: Send the value as a JSON number.

        """
        payload = create_setting_payload(Data(name, value, unit), as_int=as_int)
        await self._async_call(
            f"/api/homeappliances/{ha_id}/settings/{name}",
            (HTTP_NO_CONTENT,),
            lambda _response: None,
            method="PUT",
            payload=payload,
        )

    async def async_get_status(self, ha_id: str, name: str) -> Data | None:
        """Get a status value of an appliance."""
        return await self._async_call(
            f"/api/homeappliances/{ha_id}/status/{name}",
            (HTTP_OK,),
            lambda response: _parse_json(response, extract_data),
        )

    async def async_get_active_program(self, ha_id: str) -> Program | None:
        """Get the active program, or None if no program is running."""
        return await self._async_get_program(ha_id, "active")

    async def async_get_selected_program(self, ha_id: str) -> Program | None:
        """Get the selected program, or None if no program is selected."""
        return await self._async_get_program(ha_id, "selected")

    async def _async_get_program(self, ha_id: str, kind: str) -> Program | None:
        def parse(response: httpx.Response) -> Program | None:
            if response.status_code == HTTP_NOT_FOUND:
                return None
            return _parse_json(response, extract_program)

        return await self._async_call(
            f"/api/homeappliances/{ha_id}/programs/{kind}",
            (HTTP_OK, HTTP_NOT_FOUND),
            parse,
        )

    async def async_get_power_state(self, ha_id: str) -> Data | None:
        return await self.async_get_setting(ha_id, SETTING_POWER_STATE)

    async def async_set_power_state(self, ha_id: str, state: str) -> None:
        await self.async_put_setting(ha_id, SETTING_POWER_STATE, state)

    async def async_get_freezer_setpoint_temperature(self, ha_id: str) -> Data | None:
        return await self.async_get_setting(ha_id, SETTING_FREEZER_SETPOINT_TEMPERATURE)

    async def async_set_freezer_setpoint_temperature(
        self, ha_id: str, value: str, unit: str | None
    ) -> None:
        await self.async_put_setting(
            ha_id, SETTING_FREEZER_SETPOINT_TEMPERATURE, value, unit, as_int=True
        )

    async def async_get_fridge_setpoint_temperature(self, ha_id: str) -> Data | None:
        return await self.async_get_setting(ha_id, SETTING_FRIDGE_SETPOINT_TEMPERATURE)

    async def async_set_fridge_setpoint_temperature(
        self, ha_id: str, value: str, unit: str | None
    ) -> None:
        await self.async_put_setting(
            ha_id, SETTING_FRIDGE_SETPOINT_TEMPERATURE, value, unit, as_int=True
        )

    async def async_get_fridge_super_mode(self, ha_id: str) -> Data | None:
        return await self.async_get_setting(ha_id, SETTING_FRIDGE_SUPER_MODE)

    async def async_get_freezer_super_mode(self, ha_id: str) -> Data | None:
        return await self.async_get_setting(ha_id, SETTING_FREEZER_SUPER_MODE)

    async def async_get_door_state(self, ha_id: str) -> Data | None:
        return await self.async_get_status(ha_id, STATUS_DOOR_STATE)

    async def async_get_operation_state(self, ha_id: str) -> Data | None:
        return await self.async_get_status(ha_id, STATUS_OPERATION_STATE)

    async def async_is_remote_control_start_allowed(self, ha_id: str) -> bool:
        data = await self.async_get_status(ha_id, STATUS_REMOTE_CONTROL_START_ALLOWED)
        return _is_true(data)

    async def async_is_remote_control_active(self, ha_id: str) -> bool:
        data = await self.async_get_status(ha_id, STATUS_REMOTE_CONTROL_ACTIVE)
        return _is_true(data)

    # Event streams

    async def async_register_event_listener(self, listener: EventListener) -> None:
        """Register a listener for the events of its appliance.

        The first listener of an appliance opens its event stream; later
        listeners share it.

        Raises:
            ConfigurationError: If no refresh token is configured.
            CommunicationError: If the token could not be obtained.

        """
        async with self._lock:
            await self._async_register_event_listener(listener)

    async def _async_register_event_listener(self, listener: EventListener) -> None:
        _LOGGER.debug("Register event listener: %s", listener)
        self._event_listeners.add(listener)

        stream = self._event_streams.get(listener.appliance_id)
        if stream is None or stream.closed:
            await self._async_check_credentials()
            self._open_event_stream(listener.appliance_id)

    def _open_event_stream(self, ha_id: str) -> None:
        stream = ApplianceEventStream(
            self._session,
            f"{self.api_url}/api/homeappliances/{ha_id}/events",
            ha_id,
            self._event_listeners,
            lambda: self.credentials.access_token,
            self._async_handle_invalid_stream_token,
            reconnect_delay=self._sse_reconnect_delay,
        )
        self._event_streams[ha_id] = stream
        stream.start()

    async def async_unregister_event_listener(self, listener: EventListener) -> None:
        """Unregister a listener, closing the stream once nobody uses it."""
        async with self._lock:
            _LOGGER.debug("Unregister event listener: %s", listener)
            self._event_listeners.discard(listener)
            ha_id = listener.appliance_id

            if self._has_listeners(ha_id):
                return

            stream = self._event_streams.pop(ha_id, None)
            if stream is not None:
                await stream.async_close()

    async def async_dispose(self) -> None:
        """Drop all listeners and close all event streams."""
        async with self._lock:
            self._event_listeners.clear()
            streams = list(self._event_streams.values())
            self._event_streams.clear()
            for stream in streams:
                await stream.async_close()

    def _has_listeners(self, ha_id: str) -> bool:
        return any(
            listener.appliance_id == ha_id for listener in self._event_listeners
        )

    async def _async_handle_invalid_stream_token(
        self, stream: ApplianceEventStream
    ) -> None:
        """Replace a stream whose access token was rejected."""
        async with self._lock:
            ha_id = stream.appliance_id
            if self._event_streams.get(ha_id) is not stream:
                return

            # Another stream may already have refreshed the token
            if self.credentials.access_token == stream.access_token:
                self.credentials.invalidate()
            del self._event_streams[ha_id]
            await stream.async_close()

            try:
                await self._async_check_credentials()
            except (ConfigurationError, CommunicationError):
                _LOGGER.exception("[%s] Could not refresh token", ha_id)
                return

            if self._has_listeners(ha_id):
                self._open_event_stream(ha_id)


def _parse_json(
    response: httpx.Response,
    extract: Callable[[dict[str, Any]], _T],
) -> _T:
    try:
        return extract(response.json())
    except (ValueError, KeyError, TypeError, AttributeError) as err:
        raise CommunicationError(
            response.status_code, f"Malformed response: {err}", response.text
        ) from err


def _is_true(data: Data | None) -> bool:
    return data is not None and (data.value or "").lower() == "true"
