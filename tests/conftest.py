"""Pytest configuration and fixtures for Home Connect tests."""

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

HA_ID = "SIEMENS-HB676G0S6-68A40E3B8F0C"
OTHER_HA_ID = "BOSCH-SMV68TX06E-68A40E1DCC4F"


@pytest.fixture
def create_listener() -> Callable[..., MagicMock]:
    """Fixture providing a factory for mock event listeners.

    Returns:
        A function taking an appliance id and returning a MagicMock that
        exposes appliance_id, on_event and on_reconnect.

    """

    def factory(appliance_id: str = HA_ID) -> MagicMock:
        listener = MagicMock()
        listener.appliance_id = appliance_id
        return listener

    return factory


@pytest.fixture
def sample_appliance_response() -> dict[str, Any]:
    """Fixture providing a single appliance API response."""
    return {
        "data": {
            "haId": "X1",
            "name": "Oven",
            "brand": "B",
            "vib": "V",
            "connected": True,
            "type": "Oven",
            "enumber": "E1",
        },
    }


@pytest.fixture
def sample_appliances_response() -> dict[str, Any]:
    """Fixture providing an appliance list API response."""
    return {
        "data": {
            "homeappliances": [
                {
                    "haId": HA_ID,
                    "name": "Oven",
                    "brand": "SIEMENS",
                    "vib": "HB676G0S6",
                    "connected": True,
                    "type": "Oven",
                    "enumber": "HB676G0S6/01",
                },
                {
                    "haId": OTHER_HA_ID,
                    "name": "Dishwasher",
                    "brand": "BOSCH",
                    "vib": "SMV68TX06E",
                    "connected": False,
                    "type": "Dishwasher",
                    "enumber": "SMV68TX06E/52",
                },
            ],
        },
    }


@pytest.fixture
def sample_setting_response() -> dict[str, Any]:
    """Fixture providing a setting API response with a unit."""
    return {
        "data": {
            "key": "Refrigeration.FridgeFreezer.Setting.SetpointTemperatureFreezer",
            "value": -18,
            "unit": "°C",
        },
    }


@pytest.fixture
def sample_program_response() -> dict[str, Any]:
    """Fixture providing an active program API response."""
    return {
        "data": {
            "key": "Cooking.Oven.Program.HeatingMode.HotAir",
            "options": [
                {
                    "key": "Cooking.Oven.Option.SetpointTemperature",
                    "value": 230,
                    "unit": "°C",
                },
                {
                    "key": "BSH.Common.Option.Duration",
                    "value": 1200,
                    "unit": "seconds",
                },
                {"key": "BSH.Common.Option.ProgramProgress", "value": None},
            ],
        },
    }


@pytest.fixture
def sample_token_response() -> dict[str, Any]:
    """Fixture providing an OAuth token endpoint response."""
    return {
        "access_token": "new_access_token",
        "refresh_token": "new_refresh_token",
        "token_type": "Bearer",
        "expires_in": 86400,
        "scope": "IdentifyAppliance Monitor Settings",
    }
