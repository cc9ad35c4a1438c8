"""Capture backend that replays recorded query events."""

import asyncio
import json
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import yaml

from sqlprofiler.core.backend import CaptureBackend
from sqlprofiler.core.bus import PushRouter
from sqlprofiler.core.errors import CommandError
from sqlprofiler.core.models import ConnectionConfig, QueryEvent, parse_server_name

logger = logging.getLogger(__name__)


def load_recording(path: Path) -> List[QueryEvent]:
    """Read recorded events from a JSON lines or YAML file.

    Records that do not parse are skipped with a warning.

    Raises:
        OSError: if the file cannot be read.
    """
    path = Path(path)
    with open(path, 'r') as f:
        if path.suffix in ('.yaml', '.yml'):
            data = yaml.safe_load(f) or []
            if isinstance(data, dict):
                data = data.get('events', [])
            records = list(data)
        else:
            records = []
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning(f"{path}:{line_no}: invalid JSON: {e}")

    events = []
    for record in records:
        try:
            events.append(QueryEvent.from_dict(record))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping recorded event: {e}")

    logger.info(f"Loaded {len(events)} recorded events from {path}")
    return events


class ReplayBackend(CaptureBackend):
    """Emits events from a recording while capturing.

    Connection parameters are validated the same way a live server
    connection would validate them, but nothing is contacted.
    """

    def __init__(self, router: PushRouter, recording: Optional[Path], interval: float = 0.5):
        super().__init__(router)
        self.recording = Path(recording) if recording else None
        self.interval = interval
        self.server: Optional[str] = None
        self._events: List[QueryEvent] = []
        self._cursor = 0
        self._task: Optional[asyncio.Task] = None

    async def connect(self, config: ConnectionConfig) -> None:
        if config.authentication == "windows":
            raise CommandError("Windows Authentication is not supported yet")

        try:
            address = parse_server_name(config.server_name)
        except ValueError as e:
            raise CommandError(str(e)) from e

        if self.recording is None:
            raise CommandError(
                f"TCP connection to '{address.host}:{address.port}' failed: no capture source configured"
            )

        try:
            self._events = load_recording(self.recording)
        except OSError as e:
            raise CommandError(f"Cannot open recording {self.recording}: {e}") from e

        self._cursor = 0
        self.server = config.server_name
        self.connected = True
        self.capturing = False
        logger.info(f"Replaying {self.recording} as {address.host}:{address.port}")
        self.push_status()

    async def disconnect(self) -> None:
        await self._cancel_stream()
        self.connected = False
        self.capturing = False
        self.server = None
        self.push_status()

    async def start_capture(self) -> None:
        if not self.connected:
            raise CommandError("Not connected to a server")
        if self.capturing:
            return

        self.capturing = True
        self._task = asyncio.create_task(self._stream())
        self.push_status()

    async def stop_capture(self) -> None:
        await self._cancel_stream()
        self.capturing = False
        self.push_status()

    async def _cancel_stream(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _stream(self) -> None:
        while self._cursor < len(self._events):
            await asyncio.sleep(self.interval)
            event = self._events[self._cursor]
            self._cursor += 1
            if not event.captured_at:
                event = replace(event, captured_at=datetime.now().isoformat())
            self.push_event(event)

        logger.info("Recording exhausted, waiting for stop")
