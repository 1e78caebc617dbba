"""API helpers for the Home Connect cloud.

This module provides the error types, request headers, response
classification, JSON mapping and OAuth token flows used by the API client.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    API_SIMULATOR_URL,
    API_URL,
    AUTH_CODE_GRANT_SCOPE,
    AUTH_DEFAULT_REDIRECT_URL,
    AUTH_URI_PATH,
    BSH_JSON_V1,
    REQUEST_READ_TIMEOUT,
    TOKEN_URI_PATH,
)
from .models import Data, Event, HomeAppliance, OAuthToken, Option, Program

if TYPE_CHECKING:
    from collections.abc import Collection

    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_NO_CONTENT = 204
HTTP_FOUND = 302
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404


class HomeConnectApiError(Exception):
    """Base exception for Home Connect API errors."""


class ConfigurationError(HomeConnectApiError):
    """Exception raised when the client is missing required configuration."""


class CommunicationError(HomeConnectApiError):
    """Exception raised when the API answers unexpectedly or cannot be reached.

    Attributes:
        status_code: HTTP status code, if a response was received.
        message: HTTP reason phrase or transport error description.
        body: Response body, if a response was received.

    """

    def __init__(
        self,
        status_code: int | None = None,
        message: str | None = None,
        body: str | None = None,
    ) -> None:
        """Initialize the error with the details of the failed exchange."""
        details = " ".join(
            str(part) for part in (status_code, message, body) if part is not None
        )
        super().__init__(f"Request failed: {details}")
        self.status_code = status_code
        self.message = message
        self.body = body


class InvalidTokenError(HomeConnectApiError):
    """Exception raised when the API rejects the access token."""


def get_api_url(simulated: bool) -> str:
    """Return the API host for the physical or the simulated appliances."""
    return API_SIMULATOR_URL if simulated else API_URL


def create_headers(access_token: str) -> dict[str, str]:
    """Create HTTP headers for Home Connect REST requests.

    Args:
        access_token: OAuth access token sent as bearer token.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    return {
        "Accept": BSH_JSON_V1,
        "Authorization": f"Bearer {access_token}",
    }


def create_sse_headers(access_token: str) -> dict[str, str]:
    """Create HTTP headers for the event stream request."""
    return {"Authorization": f"Bearer {access_token}"}


def check_response_code(
    response: httpx.Response,
    accepted: Collection[int],
) -> None:
    """Classify an HTTP response against the accepted status codes.

    Args:
        response: HTTP response object to check.
        accepted: Status codes the caller treats as success.

    Raises:
        InvalidTokenError: If the response is 401 and 401 is not accepted.
        CommunicationError: If any other status code is not accepted.

    """
    status = response.status_code
    if status in accepted:
        return

    if status == HTTP_UNAUTHORIZED:
        _LOGGER.debug("Current token is invalid, need to refresh")
        token_error = "Token invalid"
        raise InvalidTokenError(token_error)

    raise CommunicationError(status, response.reason_phrase, response.text)


def _as_string(value: Any) -> str | None:
    """Convert a JSON scalar to its string form, keeping null as None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _create_home_appliance(data: dict[str, Any]) -> HomeAppliance:
    return HomeAppliance(
        id=data["haId"],
        name=data["name"],
        brand=data["brand"],
        vib=data["vib"],
        connected=bool(data["connected"]),
        type=data["type"],
        enumber=data["enumber"],
    )


def extract_home_appliances(data: dict[str, Any]) -> list[HomeAppliance]:
    """Extract the appliance list from a /homeappliances response.

    Args:
        data: API response data dictionary.

    Returns:
        List of HomeAppliance objects in API order.

    """
    appliances = data.get("data", {}).get("homeappliances", [])
    return [_create_home_appliance(appliance) for appliance in appliances]


def extract_home_appliance(data: dict[str, Any]) -> HomeAppliance:
    """Extract a single appliance from a /homeappliances/{haId} response."""
    return _create_home_appliance(data["data"])


def extract_data(data: dict[str, Any]) -> Data:
    """Extract a setting or status value from an API response.

    Args:
        data: API response data dictionary.

    Returns:
        Data object; value and unit are None when absent or null.

    """
    datum = data["data"]
    return Data(
        name=datum["key"],
        value=_as_string(datum.get("value")),
        unit=datum.get("unit"),
    )


def extract_program(data: dict[str, Any]) -> Program:
    """Extract a program and its options from an API response.

    Args:
        data: API response data dictionary.

    Returns:
        Program object with options in API order.

    """
    program = data["data"]
    options = tuple(
        Option(
            key=option.get("key"),
            value=_as_string(option.get("value")),
            unit=option.get("unit"),
        )
        for option in program.get("options") or []
    )
    return Program(key=program["key"], options=options)


def extract_events(data: dict[str, Any]) -> list[Event]:
    """Extract events from an event stream message.

    Args:
        data: Decoded message body of the form {"items": [...]}.

    Returns:
        List of Event objects in message order.

    """
    return [
        Event(
            key=item.get("key"),
            value=_as_string(item.get("value")),
            unit=item.get("unit"),
        )
        for item in data.get("items") or []
    ]


def extract_token(data: dict[str, Any]) -> OAuthToken:
    """Extract the token pair from an OAuth token endpoint response."""
    return OAuthToken(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
    )


def create_setting_payload(datum: Data, *, as_int: bool = False) -> dict[str, Any]:
    """Create the request body for writing a setting.

    Args:
        datum: Setting to write.
        as_int: Send the value as a JSON number instead of a string.

    Returns:
        Dictionary of the form {"data": {"key", "value", "unit"?}}.

    Raises:
        ValueError: If as_int is set and the value is not an integer.

    """
    value: str | int | None = datum.value
    if as_int and datum.value is not None:
        value = int(datum.value)

    payload: dict[str, Any] = {"key": datum.name, "value": value}
    if datum.unit is not None:
        payload["unit"] = datum.unit
    return {"data": payload}


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for the Home Connect API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=REQUEST_READ_TIMEOUT)
    retry = Retry(total=3, backoff_factor=0.5)
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


def _token_from_response(response: httpx.Response) -> OAuthToken:
    if response.status_code != HTTP_OK:
        _LOGGER.error("Couldn't get token, response code: %d", response.status_code)
        raise CommunicationError(
            response.status_code, response.reason_phrase, response.text
        )

    try:
        return extract_token(response.json())
    except (ValueError, KeyError, TypeError) as err:
        raise CommunicationError(
            response.status_code, f"Malformed token response: {err}", response.text
        ) from err


async def async_authorize(
    session: httpx.AsyncClient,
    base_url: str,
    client_id: str,
) -> OAuthToken:
    """Obtain an access token with the authorization code grant flow.

    Only the simulator accepts this flow without user interaction.

    Args:
        session: HTTP client session.
        base_url: API host.
        client_id: OAuth client id of the simulator application.

    Returns:
        Token pair issued for the authorization code.

    Raises:
        CommunicationError: If either step fails or the server is unreachable.

    """
    _LOGGER.debug("Authorize (authorization code grant flow), client_id: %s", client_id)
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": AUTH_DEFAULT_REDIRECT_URL,
        "scope": AUTH_CODE_GRANT_SCOPE,
    }

    try:
        response = await session.get(
            f"{base_url}{AUTH_URI_PATH}", params=params, follow_redirects=False
        )
        if response.status_code != HTTP_FOUND:
            _LOGGER.error("Couldn't authorize against API, response: %s", response)
            raise CommunicationError(
                response.status_code, response.reason_phrase, response.text
            )

        location = response.headers.get("Location", "")
        code = httpx.URL(location).params.get("code")
        if not code:
            raise CommunicationError(
                response.status_code, "No authorization code in redirect", location
            )
        _LOGGER.debug("Received authorization code, response code: %d", response.status_code)

        form = {
            "client_id": client_id,
            "grant_type": "authorization_code",
            "redirect_uri": AUTH_DEFAULT_REDIRECT_URL,
            "code": code,
        }
        token_response = await session.post(f"{base_url}{TOKEN_URI_PATH}", data=form)
    except httpx.RequestError as err:
        _LOGGER.error("Error occurred while communicating with API: %s", err)
        raise CommunicationError(message=str(err)) from err

    return _token_from_response(token_response)


async def async_refresh_token(
    session: httpx.AsyncClient,
    base_url: str,
    refresh_token: str,
    client_secret: str,
) -> OAuthToken:
    """Obtain an access token with the configured refresh token.

    The refresh token does not expire as long as it is used regularly.

    Args:
        session: HTTP client session.
        base_url: API host.
        refresh_token: Refresh token from the device flow.
        client_secret: OAuth client secret.

    Returns:
        New access token, plus a rotated refresh token if the server sent one.

    Raises:
        CommunicationError: If the refresh fails or the server is unreachable.

    """
    _LOGGER.debug("Refreshing token (device flow)")
    form = {
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
        "client_secret": client_secret,
    }

    try:
        response = await session.post(f"{base_url}{TOKEN_URI_PATH}", data=form)
    except httpx.RequestError as err:
        _LOGGER.error("Error occurred while communicating with API: %s", err)
        raise CommunicationError(message=str(err)) from err

    _LOGGER.debug("Refresh token response code: %d", response.status_code)
    return _token_from_response(response)
