"""Notification subscription on a negotiated scale connection."""

import logging
from collections.abc import Awaitable, Callable

from bleak.exc import BleakError

from connection import ConnectionSession
from decode import Measurement, decode_frame
from errors import ScaleConnectionError, SubscriptionActiveError

log = logging.getLogger(__name__)

Teardown = Callable[[], Awaitable[None]]


class Subscription:
    """Routes notifications from one session through the frame decoder.

    Frames are decoded synchronously in the order the transport delivers
    them; nothing is queued.
    """

    def __init__(
        self,
        session: ConnectionSession,
        on_measurement: Callable[[Measurement], None],
    ) -> None:
        self.session = session
        self.on_measurement = on_measurement
        self.active = False
        self._torn_down = False

    async def start(self) -> None:
        await self.session.client.start_notify(self.session.characteristic, self.handle_frame)
        self.active = True
        log.info("Listening for weight notifications from %s", self.session.device)

    def handle_frame(self, sender, data: bytearray) -> None:
        """Notification callback. Rejected frames are dropped."""
        if not self.active:
            return
        measurement = decode_frame(bytes(data))
        if measurement is None:
            log.debug("Dropped frame: %s", bytes(data).hex())
            return
        log.debug("Decoded %.2f %s", measurement.weight_kg, measurement.unit)
        self.on_measurement(measurement)

    async def teardown(self) -> None:
        """Stop notifications and disconnect. Later calls do nothing."""
        if self._torn_down:
            return
        self._torn_down = True
        was_active = self.active
        self.active = False
        try:
            if was_active and self.session.is_open:
                await self.session.client.stop_notify(self.session.characteristic)
        except BleakError as err:
            log.warning("Stopping notifications on %s failed: %s", self.session.device, err)
        finally:
            await self.session.close()


async def subscribe(
    session: ConnectionSession,
    on_measurement: Callable[[Measurement], None],
) -> Teardown:
    """Start notifications on the session's characteristic.

    Returns the teardown coroutine function for this subscription. A session
    carries at most one active subscription.
    """
    if session.subscription is not None and session.subscription.active:
        raise SubscriptionActiveError(f"{session!r} already has an active subscription")
    if not session.is_open:
        raise ScaleConnectionError(f"{session!r} is closed")

    subscription = Subscription(session, on_measurement)
    session.subscription = subscription
    try:
        await subscription.start()
    except BleakError as err:
        await subscription.teardown()
        raise ScaleConnectionError(f"Could not start notifications on {session.device}: {err}") from err

    return subscription.teardown
