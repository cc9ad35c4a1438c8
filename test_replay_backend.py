"""Tests for the replay capture backend."""

import asyncio
from pathlib import Path

import pytest
import yaml

from sqlprofiler.core.bus import PROFILER_STATUS, QUERY_EVENT, PushRouter
from sqlprofiler.core.errors import CommandError
from sqlprofiler.core.event_store import EventStore
from sqlprofiler.core.models import ConnectionConfig, EventStatus
from sqlprofiler.core.replay_backend import ReplayBackend, load_recording

SAMPLE = Path(__file__).parent / "recordings" / "sample.jsonl"


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def make_backend(recording=SAMPLE):
    router = PushRouter()
    statuses = []
    events = []
    router.subscribe(PROFILER_STATUS, statuses.append)
    router.subscribe(QUERY_EVENT, events.append)
    backend = ReplayBackend(router, recording, interval=0.0)
    return backend, statuses, events


def test_load_sample_recording():
    events = load_recording(SAMPLE)

    assert len(events) == 6
    assert events[0].id == "53-1"
    assert events[0].event_status is EventStatus.RUNNING
    assert events[2].event_status is EventStatus.COMPLETED


def test_load_recording_skips_bad_lines(tmp_path):
    path = tmp_path / "broken.jsonl"
    path.write_text('{"id": "a", "session_id": 1}\nnot json\n\n{"session_id": 2}\n')

    events = load_recording(path)

    assert [e.id for e in events] == ["a"]


def test_load_yaml_recording(tmp_path):
    path = tmp_path / "capture.yaml"
    path.write_text(yaml.safe_dump({"events": [
        {"id": "1-1", "session_id": 1, "sql_text": "select 1"},
        {"id": "1-2", "session_id": 1, "sql_text": "select 2"},
    ]}))

    assert [e.sql_text for e in load_recording(path)] == ["select 1", "select 2"]


@pytest.mark.asyncio
async def test_connect_pushes_connected_status():
    backend, statuses, _ = make_backend()

    await backend.connect(ConnectionConfig(server_name="db01,14330"))

    assert backend.connected
    assert backend.server == "db01,14330"
    assert statuses[-1].connected
    assert not statuses[-1].capturing


@pytest.mark.asyncio
async def test_windows_authentication_rejected():
    backend, statuses, _ = make_backend()

    with pytest.raises(CommandError, match="Windows Authentication is not supported yet"):
        await backend.connect(ConnectionConfig(authentication="windows"))

    assert not backend.connected
    assert statuses == []


@pytest.mark.asyncio
async def test_invalid_port_rejected():
    backend, _, _ = make_backend()

    with pytest.raises(CommandError, match="Invalid port"):
        await backend.connect(ConnectionConfig(server_name="db01,port"))


@pytest.mark.asyncio
async def test_connect_without_recording_fails():
    backend, _, _ = make_backend(recording=None)

    with pytest.raises(CommandError, match="TCP connection to 'db01:1433' failed"):
        await backend.connect(ConnectionConfig(server_name="db01"))


@pytest.mark.asyncio
async def test_missing_recording_file_fails(tmp_path):
    backend, _, _ = make_backend(recording=tmp_path / "missing.jsonl")

    with pytest.raises(CommandError, match="Cannot open recording"):
        await backend.connect(ConnectionConfig())


@pytest.mark.asyncio
async def test_start_capture_requires_connection():
    backend, _, _ = make_backend()

    with pytest.raises(CommandError, match="Not connected"):
        await backend.start_capture()


@pytest.mark.asyncio
async def test_capture_streams_recording_into_store():
    backend, statuses, events = make_backend()
    store = EventStore()
    backend.router.subscribe(QUERY_EVENT, store.upsert)

    await backend.connect(ConnectionConfig())
    await backend.start_capture()
    assert statuses[-1].capturing

    await wait_until(lambda: len(events) == 6)
    await backend.stop_capture()

    assert not statuses[-1].capturing
    assert [e.id for e in store.snapshot()] == ["53-1", "61-1", "61-2", "61-3", "77-1"]
    assert store.get("53-1").event_status is EventStatus.COMPLETED
    assert all(e.captured_at for e in events)


@pytest.mark.asyncio
async def test_disconnect_stops_stream():
    backend, statuses, events = make_backend()
    backend.interval = 10.0
    await backend.connect(ConnectionConfig())
    await backend.start_capture()

    await backend.disconnect()

    assert not backend.connected
    assert not backend.capturing
    assert statuses[-1].connected is False
    assert events == []
