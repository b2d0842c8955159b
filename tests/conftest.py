"""Shared fixtures: an in-memory stand-in for a BLE scale and a temporary database."""

import asyncio

import pytest
from bleak.uuids import normalize_uuid_16

import db
from connection import BODY_COMPOSITION_SERVICE
from scanner import ScaleDevice


class FakeCharacteristic:
    def __init__(self, uuid: str):
        self.uuid = uuid


class FakeService:
    def __init__(self, uuid: str, characteristics: list[int]):
        self.uuid = uuid
        self.characteristics = {
            normalize_uuid_16(c): FakeCharacteristic(normalize_uuid_16(c)) for c in characteristics
        }

    def get_characteristic(self, uuid: str):
        return self.characteristics.get(uuid)


class FakeServiceCollection:
    def __init__(self, services: dict[int, list[int]]):
        self.services = {
            normalize_uuid_16(s): FakeService(normalize_uuid_16(s), chars) for s, chars in services.items()
        }

    def get_service(self, uuid: str):
        return self.services.get(uuid)


class FakeClient:
    """Mimics the parts of BleakClient the pipeline uses."""

    def __init__(self, address, services, connect_error=None, stop_notify_error=None, frames=()):
        self.address = address
        self.services = FakeServiceCollection(services)
        self.connect_error = connect_error
        self.stop_notify_error = stop_notify_error
        self.frames = list(frames)
        self.is_connected = False
        self.callbacks = {}
        self.start_notify_calls = 0
        self.stop_notify_calls = 0
        self.disconnect_calls = 0

    async def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.is_connected = True

    async def disconnect(self):
        self.disconnect_calls += 1
        self.is_connected = False

    async def start_notify(self, characteristic, callback):
        self.start_notify_calls += 1
        self.callbacks[characteristic.uuid] = callback
        loop = asyncio.get_running_loop()
        for frame in self.frames:
            loop.call_soon(self.notify, frame)

    async def stop_notify(self, characteristic):
        self.stop_notify_calls += 1
        if self.stop_notify_error is not None:
            raise self.stop_notify_error
        self.callbacks.pop(characteristic.uuid, None)

    def notify(self, data: bytes) -> None:
        """Deliver a notification to every subscribed characteristic."""
        for callback in list(self.callbacks.values()):
            callback(None, bytearray(data))


class FakeClientFactory:
    """Stands in for the BleakClient class; remembers the clients it made."""

    def __init__(self, services, **client_kwargs):
        self.services = services
        self.client_kwargs = client_kwargs
        self.clients: list[FakeClient] = []

    def __call__(self, address):
        client = FakeClient(address, self.services, **self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeClient:
        return self.clients[-1]


@pytest.fixture
def scale_clients():
    """Build a fake BleakClient factory for a device exposing `services`."""
    return FakeClientFactory


@pytest.fixture
def device():
    return ScaleDevice(
        address="C8:47:8C:00:11:22",
        name="MIBFS",
        services=frozenset({BODY_COMPOSITION_SERVICE}),
    )


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the db module at a fresh database file."""
    monkeypatch.setattr(db, "DATABASE_PATH", tmp_path / "measurements.db")
    db.init_db()
    return db
