"""Connect to a scale and resolve its weight measurement characteristic."""

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from bleak import BleakClient
from bleak.exc import BleakError
from bleak.uuids import normalize_uuid_16

from errors import ScaleConnectionError, ServiceNotFoundError

log = logging.getLogger(__name__)

WEIGHT_SCALE_SERVICE = 0x181D
WEIGHT_MEASUREMENT_CHAR = 0x2A9D
BODY_COMPOSITION_SERVICE = 0x181B
BODY_COMPOSITION_MEASUREMENT_CHAR = 0x2A9C


@dataclass(frozen=True)
class ServicePair:
    """A GATT service and the notifying characteristic read from it."""
    role: str
    service: int
    characteristic: int

    @property
    def service_uuid(self) -> str:
        return normalize_uuid_16(self.service)

    @property
    def characteristic_uuid(self) -> str:
        return normalize_uuid_16(self.characteristic)


PRIMARY = ServicePair("primary", WEIGHT_SCALE_SERVICE, WEIGHT_MEASUREMENT_CHAR)
FALLBACK = ServicePair("fallback", BODY_COMPOSITION_SERVICE, BODY_COMPOSITION_MEASUREMENT_CHAR)

# Fixed priority: the Weight Scale service always wins
SERVICE_PAIRS = (PRIMARY, FALLBACK)


class State(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    RESOLVING_SERVICE = "resolving_service"
    RESOLVING_CHARACTERISTIC = "resolving_characteristic"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class Resolution:
    """Service pair found on the device, with the bound characteristic."""
    pair: ServicePair
    characteristic: Any


class ConnectionSession:
    """Open connection bound to a resolved service and characteristic.

    Only created once both are resolved. Owned by whoever subscribes to it.
    """

    def __init__(
        self,
        device,
        client,
        resolution: Resolution,
        on_close: Callable[["ConnectionSession"], None] | None = None,
    ) -> None:
        self.device = device
        self.client = client
        self.pair = resolution.pair
        self.characteristic = resolution.characteristic
        self.subscription = None
        self._on_close = on_close
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        """Disconnect the transport. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.client.disconnect()
        except BleakError as err:
            log.warning("Disconnect from %s failed: %s", self.device, err)
        finally:
            if self._on_close is not None:
                self._on_close(self)
        log.info("Disconnected from %s", self.device)

    def __repr__(self) -> str:
        return f"<ConnectionSession {self.device} {self.pair.role} open={self.is_open}>"


class ConnectionNegotiator:
    """Connects to a device and resolves the primary or fallback service pair."""

    def __init__(self, client_factory: Callable[[str], Any] = BleakClient) -> None:
        self._client_factory = client_factory
        self.state = State.DISCONNECTED
        self.session: ConnectionSession | None = None

    def _transition(self, state: State) -> None:
        log.debug("Negotiation %s -> %s", self.state.value, state.value)
        self.state = state

    def resolve(self, services, pairs: tuple[ServicePair, ...] = SERVICE_PAIRS) -> Resolution | None:
        """Return the first pair whose service and characteristic both exist."""
        for pair in pairs:
            self._transition(State.RESOLVING_SERVICE)
            service = services.get_service(pair.service_uuid)
            if service is None:
                log.debug("No %s service %#06x", pair.role, pair.service)
                continue

            self._transition(State.RESOLVING_CHARACTERISTIC)
            characteristic = service.get_characteristic(pair.characteristic_uuid)
            if characteristic is None:
                log.debug("Service %#06x has no characteristic %#06x", pair.service, pair.characteristic)
                continue

            return Resolution(pair, characteristic)
        return None

    async def negotiate(self, device) -> ConnectionSession:
        """Connect to device and bind the weight characteristic.

        Raises ScaleConnectionError when the transport cannot connect and
        ServiceNotFoundError, after disconnecting, when neither service pair
        is present.
        """
        if self.session is not None and self.session.is_open:
            raise RuntimeError(f"Already connected to {self.session.device}")

        client = self._client_factory(device.address)
        self._transition(State.CONNECTING)
        log.info("Connecting to %s...", device)

        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as err:
            self._transition(State.FAILED)
            raise ScaleConnectionError(f"Could not connect to {device}: {err}") from err

        try:
            resolution = self.resolve(client.services)
        except BleakError as err:
            await self._abort(client)
            raise ScaleConnectionError(f"Service discovery on {device} failed: {err}") from err

        if resolution is None:
            await self._abort(client)
            raise ServiceNotFoundError(
                f"{device} exposes neither the Weight Scale nor the Body Composition service"
            )

        self._transition(State.READY)
        log.info(
            "Using %s service %#06x, characteristic %#06x",
            resolution.pair.role, resolution.pair.service, resolution.pair.characteristic,
        )
        self.session = ConnectionSession(device, client, resolution, on_close=self._session_closed)
        return self.session

    async def _abort(self, client) -> None:
        self._transition(State.FAILED)
        try:
            await client.disconnect()
        except BleakError as err:
            log.warning("Disconnect after failed negotiation raised: %s", err)

    def _session_closed(self, session: ConnectionSession) -> None:
        if session is self.session:
            self._transition(State.DISCONNECTED)
