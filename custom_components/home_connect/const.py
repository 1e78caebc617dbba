"""Constants for the Home Connect integration.

This module contains the constants used throughout the integration,
including API hosts, OAuth parameters, timeouts and well-known appliance keys.
"""

DOMAIN = "home_connect"

API_URL = "https://api.home-connect.com"
API_SIMULATOR_URL = "https://simulator.home-connect.com"

BSH_JSON_V1 = "application/vnd.bsh.sdk.v1+json"

AUTH_URI_PATH = "/security/oauth/authorize"
TOKEN_URI_PATH = "/security/oauth/token"
AUTH_DEFAULT_REDIRECT_URL = "https://apiclient.home-connect.com/o2c.html"
AUTH_CODE_GRANT_SCOPE = "IdentifyAppliance Monitor Settings"

REQUEST_READ_TIMEOUT = 30.0
SSE_REQUEST_READ_TIMEOUT = 90.0  # Keep-alive must arrive within this window
SSE_RECONNECT_DELAY = 3.0  # Seconds, until the server sends its own retry time

# Server-Sent Event names
SSE_KEEP_ALIVE = "KEEP-ALIVE"
SSE_CONNECTED = "CONNECTED"
SSE_DISCONNECTED = "DISCONNECTED"

CONF_REFRESH_TOKEN = "refresh_token"
CONF_SIMULATOR = "simulator"

SETTING_POWER_STATE = "BSH.Common.Setting.PowerState"
SETTING_FREEZER_SETPOINT_TEMPERATURE = (
    "Refrigeration.FridgeFreezer.Setting.SetpointTemperatureFreezer"
)
SETTING_FRIDGE_SETPOINT_TEMPERATURE = (
    "Refrigeration.FridgeFreezer.Setting.SetpointTemperatureRefrigerator"
)
SETTING_FRIDGE_SUPER_MODE = "Refrigeration.FridgeFreezer.Setting.SuperModeRefrigerator"
SETTING_FREEZER_SUPER_MODE = "Refrigeration.FridgeFreezer.Setting.SuperModeFreezer"

STATUS_DOOR_STATE = "BSH.Common.Status.DoorState"
STATUS_OPERATION_STATE = "BSH.Common.Status.OperationState"
STATUS_REMOTE_CONTROL_START_ALLOWED = "BSH.Common.Status.RemoteControlStartAllowed"
STATUS_REMOTE_CONTROL_ACTIVE = "BSH.Common.Status.RemoteControlActive"
