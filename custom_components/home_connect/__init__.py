from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_CLIENT_ID, CONF_CLIENT_SECRET
from homeassistant.core import HomeAssistant

from . import api
from .api import create_session_client
from .client import HomeConnectApiClient
from .const import CONF_REFRESH_TOKEN, CONF_SIMULATOR, DOMAIN

_LOGGER = logging.getLogger(__name__)


def _refresh_token_updater(hass: HomeAssistant, entry: ConfigEntry):
    """Return a callback persisting a rotated refresh token in the entry."""

    def update(refresh_token: str) -> None:
        _LOGGER.debug("Storing new refresh token for entry %s", entry.entry_id)
        hass.config_entries.async_update_entry(
            entry, data={**entry.data, CONF_REFRESH_TOKEN: refresh_token}
        )

    return update


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Home Connect integration for entry %s", entry.entry_id)

    if CONF_CLIENT_ID not in entry.data:
        _LOGGER.error("Missing client id in configuration for entry %s", entry.entry_id)
        return False

    session = create_session_client(hass)
    client = HomeConnectApiClient(
        session,
        entry.data[CONF_CLIENT_ID],
        entry.data.get(CONF_CLIENT_SECRET, ""),
        entry.data.get(CONF_REFRESH_TOKEN, ""),
        simulated=entry.data.get(CONF_SIMULATOR, False),
        new_refresh_token_callback=_refresh_token_updater(hass, entry),
    )

    try:
        _LOGGER.debug("Fetching appliances from Home Connect API")
        appliances = await client.async_get_home_appliances()
    except api.ConfigurationError as err:
        _LOGGER.error("Configuration error for entry %s: %s", entry.entry_id, err)
        return False
    except api.CommunicationError as err:
        _LOGGER.error("API client error for entry %s: %s", entry.entry_id, err)
        return False

    if appliances is None:
        _LOGGER.error("Could not reach Home Connect API for entry %s", entry.entry_id)
        return False
    _LOGGER.info("Successfully retrieved %d appliances from Home Connect API", len(appliances))

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "client": client,
        "appliances": appliances,
    }
    _LOGGER.debug("Stored data for entry %s: %d appliances", entry.entry_id, len(appliances))
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Home Connect integration for entry %s", entry.entry_id)

    entry_data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if entry_data is None:
        _LOGGER.warning("No data stored for entry %s", entry.entry_id)
        return True

    await entry_data["client"].async_dispose()
    _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True
