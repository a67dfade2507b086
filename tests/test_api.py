from __future__ import annotations

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from conftest import NOW
from pocketpet.core.concurrency import StoreGate
from pocketpet.main import app

PREFIX = "/api/v1"


@pytest.fixture
def client(store, machine) -> TestClient:
    # No context manager: startup would open the configured storage and start ticking.
    app.state.store = store
    app.state.machine = machine
    app.state.gate = StoreGate()
    return TestClient(app)


def test_root(client) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "Pocket Pet" in response.json()["message"]


def test_get_current_pet(client, store) -> None:
    response = client.get(f"{PREFIX}/pet")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == store.selected_id
    assert body["lastUpdated"] == NOW
    assert body["petState"] == "Idle"


def test_feed_action(client) -> None:
    response = client.post(f"{PREFIX}/pet/actions/feed")

    assert response.status_code == 200
    body = response.json()
    assert body["petState"] == "Feeding"
    assert body["busyUntil"] == NOW + 8000
    assert body["cooldowns"] == {"feed": NOW + 60000}


def test_refused_action_returns_unchanged_pet(client) -> None:
    fed = client.post(f"{PREFIX}/pet/actions/feed").json()

    again = client.post(f"{PREFIX}/pet/actions/play")

    assert again.status_code == 200
    assert again.json() == fed


def test_unknown_action_is_a_validation_error(client) -> None:
    assert client.post(f"{PREFIX}/pet/actions/dance").status_code == 422


def test_status(client, clock) -> None:
    client.post(f"{PREFIX}/pet/actions/play")
    clock.advance(2000)

    body = client.get(f"{PREFIX}/pet/status").json()

    assert body["busyRemainingMs"] == 8000
    assert body["cooldownRemainingMs"]["play"] == 88000
    assert body["availableActions"] == []


def test_adopt_list_and_select(client, store) -> None:
    first_id = store.selected_id

    created = client.post(f"{PREFIX}/pets", json={"name": "Tofu"})
    assert created.status_code == 201
    assert created.json()["name"] == "Tofu"

    pets = client.get(f"{PREFIX}/pets").json()
    assert [pet["id"] for pet in pets] == [first_id, created.json()["id"]]

    selected = client.post(f"{PREFIX}/pets/{first_id}/select")
    assert selected.status_code == 200
    assert store.selected_id == first_id


def test_adopt_without_body(client) -> None:
    response = client.post(f"{PREFIX}/pets")
    assert response.status_code == 201
    assert response.json()["name"].startswith("Pet-")


def test_select_unknown_pet(client) -> None:
    assert client.post(f"{PREFIX}/pets/missing/select").status_code == 404


def test_rename(client, store) -> None:
    response = client.patch(f"{PREFIX}/pets/{store.selected_id}", json={"name": "Bean"})

    assert response.status_code == 200
    assert response.json()["name"] == "Bean"
    assert client.patch(f"{PREFIX}/pets/missing", json={"name": "Bean"}).status_code == 404


def test_export_then_import(client, store) -> None:
    exported = client.get(f"{PREFIX}/pet/export").json()
    assert exported["version"] == 1
    exported["pet"]["name"] = "Imported"
    exported["pet"]["id"] = "someone-else"

    response = client.post(f"{PREFIX}/pet/import", json=exported)

    assert response.status_code == 200
    assert response.json()["name"] == "Imported"
    assert response.json()["id"] == store.selected_id


def test_malformed_import(client) -> None:
    response = client.post(f"{PREFIX}/pet/import", json={"version": 1})
    assert response.status_code == 422


def test_actions_write_storage_off_the_event_loop(client, backend, monkeypatch) -> None:
    writes = []
    original = backend.set

    def recording_set(key, value):
        try:
            asyncio.get_running_loop()
            writes.append("loop")
        except RuntimeError:
            writes.append("worker")
        original(key, value)

    monkeypatch.setattr(backend, "set", recording_set)

    assert client.post(f"{PREFIX}/pet/actions/feed").status_code == 200
    assert client.post(f"{PREFIX}/pets", json={"name": "Tofu"}).status_code == 201

    assert writes
    assert set(writes) == {"worker"}


def test_store_gate_runs_one_call_at_a_time() -> None:
    gate = StoreGate()
    active = []
    overlaps = []

    def slow_write(tag):
        active.append(tag)
        overlaps.append(len(active))
        # Long enough for a second call to start if the gate let it.
        time.sleep(0.02)
        active.remove(tag)
        return tag

    async def main():
        return await asyncio.gather(*(gate.run(slow_write, n) for n in range(4)))

    assert asyncio.run(main()) == [0, 1, 2, 3]
    assert overlaps == [1, 1, 1, 1]
