"""Find BLE scales by their advertised GATT services and let the operator pick one."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import aioblescan

from config import HCI_DEVICE, SCAN_SECONDS
from connection import BODY_COMPOSITION_SERVICE, WEIGHT_SCALE_SERVICE
from errors import PlatformUnsupportedError, UserCancelledError

log = logging.getLogger(__name__)

SERVICE_CANDIDATES = (WEIGHT_SCALE_SERVICE, BODY_COMPOSITION_SERVICE)

AD_INCOMPLETE_UUID16 = 0x02
AD_COMPLETE_UUID16 = 0x03
AD_SHORT_NAME = 0x08
AD_COMPLETE_NAME = 0x09
AD_SERVICE_DATA_UUID16 = 0x16


@dataclass(frozen=True)
class ScaleDevice:
    """A discovered peripheral, valid for one weighing session."""
    address: str
    name: str | None
    services: frozenset[int]

    def __str__(self) -> str:
        return f"{self.name or 'unknown'} ({self.address})"


def parse_hci_packet(data: bytes) -> tuple[str | None, str | None, set[int]]:
    """Parse raw HCI LE advertising packet.

    Returns (address, device_name, service_uuids). The service set holds the
    16-bit UUIDs from the service lists and from 16-bit service data.
    Non-advertising packets return (None, None, empty set).
    """
    services: set[int] = set()

    if len(data) < 14 or data[0:2] != b'\x04\x3e':
        return None, None, services

    if data[3] != 0x02:  # Not LE Advertising Report
        return None, None, services

    address = ":".join(f"{b:02X}" for b in reversed(data[7:13]))
    adv_len = data[13]
    adv_data = data[14:14 + adv_len]

    device_name = None

    i = 0
    while i < len(adv_data):
        if i + 1 >= len(adv_data):
            break
        length = adv_data[i]
        if length == 0 or i + length >= len(adv_data):
            break
        ad_type = adv_data[i + 1]
        ad_value = adv_data[i + 2:i + 1 + length]

        if ad_type in (AD_SHORT_NAME, AD_COMPLETE_NAME):
            device_name = ad_value.decode("utf-8", errors="replace")
        elif ad_type in (AD_INCOMPLETE_UUID16, AD_COMPLETE_UUID16):
            for j in range(0, len(ad_value) - 1, 2):
                services.add(int.from_bytes(ad_value[j:j + 2], "little"))
        elif ad_type == AD_SERVICE_DATA_UUID16 and len(ad_value) >= 2:
            services.add(int.from_bytes(ad_value[0:2], "little"))

        i += 1 + length

    return address, device_name, services


class _Discovered:
    """Merges advertisements and scan responses per address."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.services: dict[str, set[int]] = {}

    def process(self, data: bytes) -> None:
        address, name, services = parse_hci_packet(data)
        if address is None:
            return
        if name:
            self.names[address] = name
        self.services.setdefault(address, set()).update(services)

    def matching(self, service_candidates: Iterable[int]) -> list[ScaleDevice]:
        wanted = set(service_candidates)
        return [
            ScaleDevice(address, self.names.get(address), frozenset(services))
            for address, services in self.services.items()
            if services & wanted
        ]


async def scan(
    service_candidates: Iterable[int] = SERVICE_CANDIDATES,
    scan_seconds: float = SCAN_SECONDS,
    hci_device: int = HCI_DEVICE,
) -> list[ScaleDevice]:
    """Listen for advertisements and return devices offering a candidate service."""
    try:
        sock = aioblescan.create_bt_socket(hci_device)
    except PermissionError as err:
        raise PlatformUnsupportedError(
            "Permission denied opening the HCI socket. Need CAP_NET_RAW or root."
        ) from err
    except (AttributeError, OSError) as err:
        # AttributeError: no AF_BLUETOOTH socket family on this platform
        raise PlatformUnsupportedError(
            f"No Bluetooth LE adapter hci{hci_device} available: {err}"
        ) from err

    discovered = _Discovered()
    loop = asyncio.get_running_loop()
    try:
        conn, btctrl = await loop._create_connection_transport(
            sock, aioblescan.BLEScanRequester, None, None
        )
    except BaseException:
        sock.close()
        raise

    btctrl.process = discovered.process
    scanning = False
    try:
        await btctrl.send_scan_request()
        scanning = True
        log.info("Scanning for scales for %ss...", scan_seconds)
        await asyncio.sleep(scan_seconds)
    finally:
        if scanning:
            await btctrl.stop_scan_request()
        conn.close()

    devices = discovered.matching(service_candidates)
    log.info("Found %d scale(s)", len(devices))
    return devices


def prompt_for_device(devices: list[ScaleDevice]) -> ScaleDevice | None:
    """Terminal chooser. Returns None when the operator dismisses it."""
    if not devices:
        print("No scales found. Step on the scale to wake it up and try again.")
        return None

    for number, device in enumerate(devices, start=1):
        print(f"  {number}) {device}")

    while True:
        try:
            answer = input("Select scale (Enter to cancel): ").strip()
        except (EOFError, KeyboardInterrupt):
            return None
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(devices):
            return devices[int(answer) - 1]
        print(f"Enter a number between 1 and {len(devices)}.")


async def locate(
    service_candidates: Iterable[int] = SERVICE_CANDIDATES,
    chooser: Callable[[list[ScaleDevice]], ScaleDevice | None] = prompt_for_device,
    scan_seconds: float = SCAN_SECONDS,
) -> ScaleDevice:
    """Discover scales and ask the operator to select one.

    Raises PlatformUnsupportedError if the host has no Bluetooth LE and
    UserCancelledError if the chooser is dismissed.
    """
    candidates = tuple(service_candidates)
    devices = await scan(candidates, scan_seconds=scan_seconds)

    device = chooser(devices)
    if device is None:
        raise UserCancelledError("Device selection was cancelled")

    log.info("Selected %s", device)
    return device
