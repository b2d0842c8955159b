"""Weigh once: pick the scale, wait for a reading, save it with its BMI."""

import asyncio
import logging
import sys

import db
import scanner
from config import PROFILE, WEIGH_TIMEOUT_SECONDS
from connection import ConnectionNegotiator
from decode import Measurement, bmi_category, calculate_bmi
from errors import ScaleConnectionError, ScaleError
from subscription import subscribe

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
log = logging.getLogger(__name__)


async def read_first_measurement(negotiator: ConnectionNegotiator, device) -> Measurement:
    """Connect, subscribe and return the first accepted measurement.

    The connection is always closed before returning, including on
    cancellation.
    """
    session = await negotiator.negotiate(device)
    first: asyncio.Future[Measurement] = asyncio.get_running_loop().create_future()

    def on_measurement(measurement: Measurement) -> None:
        if not first.done():
            first.set_result(measurement)

    try:
        teardown = await subscribe(session, on_measurement)
        try:
            return await first
        finally:
            await teardown()
    finally:
        await session.close()


async def start_weighing(
    store=db,
    user: dict | None = None,
    locate=scanner.locate,
    negotiator: ConnectionNegotiator | None = None,
    timeout: float | None = WEIGH_TIMEOUT_SECONDS,
) -> dict:
    """Run one weighing session and return the stored measurement record.

    `store` is anything with the db module's add_measurement(). The timeout
    covers connecting, service resolution and waiting for the reading, not
    the device chooser.
    """
    device = await locate()
    negotiator = negotiator or ConnectionNegotiator()

    try:
        measurement = await asyncio.wait_for(read_first_measurement(negotiator, device), timeout)
    except asyncio.TimeoutError as err:
        raise ScaleConnectionError(f"No measurement from {device} within {timeout}s") from err

    height = user.get("height") if user else None
    bmi = calculate_bmi(measurement.weight_kg, height)
    record = store.add_measurement(
        user_id=user["id"] if user else None,
        weight=measurement.weight_kg,
        bmi=bmi,
    )
    log.info("Saved measurement %s: %.2f %s, BMI %.1f", record["id"], measurement.weight_kg, measurement.unit, bmi)
    return record


def ensure_user(store=db) -> dict:
    """Return the stored user, creating it from config.PROFILE on first run."""
    user = store.get_user()
    if user is None:
        log.info("No user profile yet, creating '%s' from config", PROFILE["name"])
        store.save_user(
            name=PROFILE["name"],
            height=PROFILE.get("height_cm"),
            target_weight=PROFILE.get("target_weight_kg"),
        )
        user = store.get_user()
    return user


async def main() -> int:
    """Weigh once from the command line."""
    try:
        db.init_db()
        user = ensure_user()
        record = await start_weighing(db, user)
    except ScaleError as err:
        hint = " Try again." if err.retryable else ""
        log.error("%s%s", err, hint)
        return 1

    category = bmi_category(record["bmi"])
    print(f"Weight: {record['weight']:.2f} kg")
    print(f"BMI:    {record['bmi']:.1f} ({category.label})")
    if user.get("target_weight"):
        diff = record["weight"] - user["target_weight"]
        print(f"Target: {user['target_weight']:.1f} kg ({diff:+.1f} kg)")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        log.info("Stopped")
