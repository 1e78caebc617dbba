"""Data models for the Home Connect integration."""

from dataclasses import dataclass, field


@dataclass
class Session:
    """OAuth credentials and the current access token of one API client."""

    client_id: str
    client_secret: str
    refresh_token: str
    simulated: bool = False
    access_token: str | None = field(default=None, repr=False)

    def invalidate(self) -> None:
        """Forget the access token so the next call re-authenticates."""
        self.access_token = None


@dataclass(frozen=True)
class OAuthToken:
    """Token pair returned by the OAuth token endpoint."""

    access_token: str
    refresh_token: str | None = None


@dataclass(frozen=True)
class HomeAppliance:
    """Represents a Home Connect appliance.

    Attributes:
        id: Vendor assigned appliance identifier (haId).
        name: Human-readable appliance name.
        brand: Brand name.
        vib: Vendor internal model designation.
        connected: True if the appliance is currently online.
        type: Appliance type, e.g. "Oven" or "FridgeFreezer".
        enumber: E-number of the appliance.

    """

    id: str
    name: str
    brand: str
    vib: str
    connected: bool
    type: str
    enumber: str


@dataclass(frozen=True)
class Data:
    """A single setting or status value."""

    name: str
    value: str | None
    unit: str | None = None


@dataclass(frozen=True)
class Option:
    """A program option."""

    key: str | None
    value: str | None
    unit: str | None = None


@dataclass(frozen=True)
class Program:
    """An active or selected program with its options in API order."""

    key: str
    options: tuple[Option, ...] = ()


@dataclass(frozen=True)
class Event:
    """An item received on the event stream.

    Connection state changes are delivered with key "CONNECTED" or
    "DISCONNECTED" and no value or unit.
    """

    key: str | None
    value: str | None = None
    unit: str | None = None
