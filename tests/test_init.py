"""Tests for the Home Connect integration setup."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from homeassistant.const import CONF_CLIENT_ID, CONF_CLIENT_SECRET

from custom_components.home_connect import (
    async_setup_entry,
    async_unload_entry,
)
from custom_components.home_connect.api import CommunicationError, ConfigurationError
from custom_components.home_connect.const import (
    CONF_REFRESH_TOKEN,
    CONF_SIMULATOR,
    DOMAIN,
)
from custom_components.home_connect.models import HomeAppliance

APPLIANCE = HomeAppliance(
    id="X1",
    name="Oven",
    brand="B",
    vib="V",
    connected=True,
    type="Oven",
    enumber="E1",
)


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    hass = Mock()
    hass.data = {}
    hass.config_entries = Mock()
    hass.config_entries.async_update_entry = Mock()
    return hass


@pytest.fixture
def mock_config_entry() -> Mock:
    """Create a mock config entry for testing."""
    entry = Mock()
    entry.entry_id = "test_entry_id"
    entry.data = {
        CONF_CLIENT_ID: "client",
        CONF_CLIENT_SECRET: "secret",
        CONF_REFRESH_TOKEN: "refresh",
        CONF_SIMULATOR: False,
    }
    return entry


class TestAsyncSetupEntry:
    """Tests for async_setup_entry."""

    @pytest.mark.asyncio
    @patch("custom_components.home_connect.HomeConnectApiClient")
    @patch("custom_components.home_connect.create_session_client")
    async def test_setup_stores_client_and_appliances(
        self,
        mock_create_session: Mock,
        mock_client_class: Mock,
        mock_hass: Mock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that setup builds the client from the entry data."""
        client = mock_client_class.return_value
        client.async_get_home_appliances = AsyncMock(return_value=[APPLIANCE])

        assert await async_setup_entry(mock_hass, mock_config_entry) is True

        args = mock_client_class.call_args
        assert args.args == (mock_create_session.return_value, "client", "secret", "refresh")
        assert args.kwargs["simulated"] is False
        assert mock_hass.data[DOMAIN]["test_entry_id"] == {
            "client": client,
            "appliances": [APPLIANCE],
        }

    @pytest.mark.asyncio
    @patch("custom_components.home_connect.HomeConnectApiClient")
    @patch("custom_components.home_connect.create_session_client")
    async def test_rotated_refresh_token_is_persisted(
        self,
        _mock_create_session: Mock,
        mock_client_class: Mock,
        mock_hass: Mock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that the rotation callback updates the config entry."""
        mock_client_class.return_value.async_get_home_appliances = AsyncMock(
            return_value=[]
        )
        await async_setup_entry(mock_hass, mock_config_entry)

        callback = mock_client_class.call_args.kwargs["new_refresh_token_callback"]
        callback("rotated")

        mock_hass.config_entries.async_update_entry.assert_called_once_with(
            mock_config_entry,
            data={**mock_config_entry.data, CONF_REFRESH_TOKEN: "rotated"},
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "side_effect",
        [ConfigurationError("No refresh token set!"), CommunicationError(500, "Error", "")],
    )
    @patch("custom_components.home_connect.HomeConnectApiClient")
    @patch("custom_components.home_connect.create_session_client")
    async def test_setup_fails_on_api_errors(
        self,
        _mock_create_session: Mock,
        mock_client_class: Mock,
        side_effect: Exception,
        mock_hass: Mock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that setup fails when the appliances cannot be fetched."""
        mock_client_class.return_value.async_get_home_appliances = AsyncMock(
            side_effect=side_effect
        )

        assert await async_setup_entry(mock_hass, mock_config_entry) is False
        assert DOMAIN not in mock_hass.data

    @pytest.mark.asyncio
    @patch("custom_components.home_connect.HomeConnectApiClient")
    @patch("custom_components.home_connect.create_session_client")
    async def test_setup_fails_when_api_unreachable(
        self,
        _mock_create_session: Mock,
        mock_client_class: Mock,
        mock_hass: Mock,
        mock_config_entry: Mock,
    ) -> None:
        """Test that setup fails when the client returns no result."""
        mock_client_class.return_value.async_get_home_appliances = AsyncMock(
            return_value=None
        )

        assert await async_setup_entry(mock_hass, mock_config_entry) is False

    @pytest.mark.asyncio
    async def test_setup_fails_without_client_id(self, mock_hass: Mock) -> None:
        """Test that setup fails when the entry lacks a client id."""
        entry = Mock()
        entry.entry_id = "test_entry_id"
        entry.data = {CONF_REFRESH_TOKEN: "refresh"}

        assert await async_setup_entry(mock_hass, entry) is False


class TestAsyncUnloadEntry:
    """Tests for async_unload_entry."""

    @pytest.mark.asyncio
    async def test_unload_disposes_client(
        self, mock_hass: Mock, mock_config_entry: Mock
    ) -> None:
        """Test that unloading disposes the client and drops its data."""
        client = Mock()
        client.async_dispose = AsyncMock()
        mock_hass.data[DOMAIN] = {"test_entry_id": {"client": client, "appliances": []}}

        assert await async_unload_entry(mock_hass, mock_config_entry) is True

        client.async_dispose.assert_awaited_once()
        assert mock_hass.data[DOMAIN] == {}

    @pytest.mark.asyncio
    async def test_unload_without_data(
        self, mock_hass: Mock, mock_config_entry: Mock
    ) -> None:
        """Test that unloading an entry without data succeeds."""
        assert await async_unload_entry(mock_hass, mock_config_entry) is True
