"""Tests for the weighing session orchestration."""

import pytest

import weigh
from connection import (
    BODY_COMPOSITION_MEASUREMENT_CHAR,
    BODY_COMPOSITION_SERVICE,
    FALLBACK,
    ConnectionNegotiator,
    State,
)
from errors import ScaleConnectionError, ServiceNotFoundError, UserCancelledError
from weigh import ensure_user, start_weighing

BODY_COMPOSITION_ONLY = {BODY_COMPOSITION_SERVICE: [BODY_COMPOSITION_MEASUREMENT_CHAR]}
USER = {"id": 1, "name": "Jana", "height": 180, "target_weight": None}


class FakeStore:
    """Records append calls instead of writing them."""

    def __init__(self):
        self.appended = []

    def add_measurement(self, user_id, weight, bmi):
        self.appended.append({"user_id": user_id, "weight": weight, "bmi": bmi})
        return {"id": len(self.appended), "created_at": "2025-03-01 07:00:00", **self.appended[-1]}


def locator_for(device):
    async def locate():
        return device
    return locate


class TestStartWeighing:
    """Tests for start_weighing."""

    @pytest.mark.asyncio
    async def test_body_composition_scale_end_to_end(self, device, scale_clients):
        """Fallback service, one frame, one stored record with its BMI."""
        factory = scale_clients(BODY_COMPOSITION_ONLY, frames=[bytes([0x00, 0xDC, 0x01])])
        negotiator = ConnectionNegotiator(client_factory=factory)
        store = FakeStore()

        record = await start_weighing(store, USER, locate=locator_for(device), negotiator=negotiator)

        assert store.appended == [{"user_id": 1, "weight": 2.38, "bmi": 0.7}]
        assert record["weight"] == 2.38
        assert negotiator.session.pair is FALLBACK
        assert negotiator.state is State.DISCONNECTED
        assert factory.client.stop_notify_calls == 1
        assert factory.client.disconnect_calls == 1

    @pytest.mark.asyncio
    async def test_only_first_accepted_frame_is_stored(self, device, scale_clients):
        frames = [b"\x00", bytes([0x00, 0x58, 0x02]), bytes([0x00, 0xDC, 0x01])]
        factory = scale_clients(BODY_COMPOSITION_ONLY, frames=frames)
        store = FakeStore()

        await start_weighing(
            store, USER, locate=locator_for(device), negotiator=ConnectionNegotiator(client_factory=factory)
        )

        assert store.appended == [{"user_id": 1, "weight": 3.0, "bmi": 0.9}]

    @pytest.mark.asyncio
    async def test_zero_reading_on_wake_up_is_skipped(self, device, scale_clients):
        """The scale's zero frame does not become the stored measurement."""
        frames = [bytes([0x00, 0x00, 0x00]), bytes([0x00, 0xDC, 0x01])]
        factory = scale_clients(BODY_COMPOSITION_ONLY, frames=frames)
        store = FakeStore()

        await start_weighing(
            store, USER, locate=locator_for(device), negotiator=ConnectionNegotiator(client_factory=factory)
        )

        assert store.appended == [{"user_id": 1, "weight": 2.38, "bmi": 0.7}]

    @pytest.mark.asyncio
    async def test_without_user_bmi_is_unknown(self, device, scale_clients):
        factory = scale_clients(BODY_COMPOSITION_ONLY, frames=[bytes([0x00, 0xDC, 0x01])])
        store = FakeStore()

        await start_weighing(
            store, None, locate=locator_for(device), negotiator=ConnectionNegotiator(client_factory=factory)
        )

        assert store.appended == [{"user_id": None, "weight": 2.38, "bmi": 0}]

    @pytest.mark.asyncio
    async def test_timeout_disconnects(self, device, scale_clients):
        """A scale that never sends a frame hits the deadline and is released."""
        factory = scale_clients(BODY_COMPOSITION_ONLY)
        store = FakeStore()

        with pytest.raises(ScaleConnectionError):
            await start_weighing(
                store,
                USER,
                locate=locator_for(device),
                negotiator=ConnectionNegotiator(client_factory=factory),
                timeout=0.05,
            )

        assert store.appended == []
        assert factory.client.disconnect_calls == 1
        assert factory.client.is_connected is False

    @pytest.mark.asyncio
    async def test_unsupported_device(self, device, scale_clients):
        factory = scale_clients({0x180F: [0x2A19]})
        store = FakeStore()

        with pytest.raises(ServiceNotFoundError):
            await start_weighing(
                store, USER, locate=locator_for(device), negotiator=ConnectionNegotiator(client_factory=factory)
            )

        assert store.appended == []
        assert factory.client.is_connected is False

    @pytest.mark.asyncio
    async def test_cancelled_chooser(self, scale_clients):
        async def dismissed():
            raise UserCancelledError("Device selection was cancelled")

        factory = scale_clients(BODY_COMPOSITION_ONLY)

        with pytest.raises(UserCancelledError):
            await start_weighing(
                FakeStore(), USER, locate=dismissed, negotiator=ConnectionNegotiator(client_factory=factory)
            )

        assert factory.clients == []


class TestEnsureUser:
    """Tests for ensure_user."""

    def test_creates_user_from_config(self, temp_db, monkeypatch):
        monkeypatch.setattr(weigh, "PROFILE", {"name": "Jana", "height_cm": 168, "target_weight_kg": 60.0})

        user = ensure_user(temp_db)

        assert user["name"] == "Jana"
        assert user["height"] == 168
        assert user["target_weight"] == 60.0

    def test_keeps_existing_user(self, temp_db):
        user_id = temp_db.save_user(name="Peter", height=181)

        assert ensure_user(temp_db)["id"] == user_id
