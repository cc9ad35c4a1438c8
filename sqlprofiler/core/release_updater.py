"""Updater backed by a release manifest published over HTTP.

Each endpoint serves a JSON manifest such as::

    {"version": "0.3.0", "url": "https://.../sql_profiler_tui-0.3.0-py3-none-any.whl",
     "sha256": "...", "notes": "..."}

The first endpoint returning a valid manifest wins.
"""

import asyncio
import hashlib
import logging
import os
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
from packaging.version import InvalidVersion, Version

from sqlprofiler.core.errors import UpdaterError
from sqlprofiler.core.update_checker import Update, Updater

logger = logging.getLogger(__name__)

DISTRIBUTION = "sql-profiler-tui"


def installed_version() -> Optional[str]:
    """Version of the installed distribution, or None if unknown."""
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        logger.warning(f"Distribution {DISTRIBUTION} is not installed; version unknown")
        return None


class ReleaseUpdate(Update):
    """A release described by a manifest."""

    def __init__(self, manifest: Dict[str, Any], current_version: Optional[str],
                 download_dir: Path, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(str(manifest["version"]), current_version)
        self.url = manifest.get("url", "")
        self.sha256 = manifest.get("sha256")
        self.notes = manifest.get("notes", "")
        self.download_dir = download_dir
        self.timeout = timeout
        self.transport = transport

    async def download_and_install(self) -> None:
        if not self.url:
            raise UpdaterError(f"Release {self.version} has no download url")

        path = await self._download()
        await self._install(path)

    async def _download(self) -> Path:
        self.download_dir.mkdir(parents=True, exist_ok=True)
        path = self.download_dir / self.url.rsplit("/", 1)[-1]
        digest = hashlib.sha256()

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout),
                                         follow_redirects=True,
                                         transport=self.transport) as client:
                async with client.stream("GET", self.url) as response:
                    response.raise_for_status()
                    with open(path, 'wb') as f:
                        async for chunk in response.aiter_bytes():
                            digest.update(chunk)
                            f.write(chunk)
        except httpx.HTTPStatusError as e:
            logger.error(f"Download of {self.url} failed: {e}")
            raise UpdaterError(
                f"Download of version {self.version} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Download of {self.url} failed: {e}")
            raise UpdaterError(f"Download of version {self.version} failed: {type(e).__name__}") from e

        if self.sha256 and digest.hexdigest() != self.sha256.lower():
            path.unlink(missing_ok=True)
            raise UpdaterError(f"Invalid signature: checksum mismatch for {path.name}")

        logger.info(f"Downloaded {path}")
        return path

    async def _install(self, path: Path) -> None:
        process = await asyncio.create_subprocess_exec(
            sys.executable, "-m", "pip", "install", "--upgrade", str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        output, _ = await process.communicate()
        if process.returncode != 0:
            tail = output.decode(errors="replace").strip().splitlines()[-1:] or [""]
            raise UpdaterError(f"Install failed ({process.returncode}): {tail[0]}")
        logger.info(f"Installed version {self.version}")


class ReleaseUpdater(Updater):
    """Checks the configured endpoints for a newer release."""

    def __init__(self, endpoints: List[str], download_dir: Path,
                 current_version: Optional[str] = None, timeout: float = 10.0,
                 relaunch_hook: Optional[Callable[[], None]] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoints = [e for e in endpoints if e]
        self.download_dir = Path(download_dir)
        self.current_version = current_version
        self.timeout = timeout
        self.relaunch_hook = relaunch_hook
        self.transport = transport

    async def check(self) -> Optional[Update]:
        if not self.endpoints:
            raise UpdaterError("The updater does not have any endpoints set.")

        manifest = await self._fetch_manifest()

        if self.current_version is None:
            logger.warning("Current version unknown, not offering updates")
            return None

        try:
            available = Version(str(manifest["version"]))
            current = Version(self.current_version)
        except InvalidVersion as e:
            raise UpdaterError(f"Could not fetch a valid release JSON from the remote: {e}") from e

        if available <= current:
            return None

        return ReleaseUpdate(manifest, self.current_version, self.download_dir,
                             transport=self.transport)

    async def _fetch_manifest(self) -> Dict[str, Any]:
        """Return the first valid manifest.

        Raises:
            UpdaterError: with the release JSON message when every endpoint
                answered but none published a manifest, otherwise with a
                generic failure. Endpoint URLs are logged, never part of the
                message.
        """
        failures = []
        unpublished = True

        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout),
                                     follow_redirects=True,
                                     transport=self.transport) as client:
            for endpoint in self.endpoints:
                try:
                    response = await client.get(endpoint)
                except httpx.HTTPError as e:
                    logger.debug(f"{endpoint}: {e}")
                    failures.append(type(e).__name__)
                    unpublished = False
                    continue

                if response.status_code != 200:
                    logger.debug(f"{endpoint}: HTTP {response.status_code}")
                    failures.append(f"HTTP {response.status_code}")
                    if response.status_code != 404:
                        unpublished = False
                    continue

                try:
                    manifest = response.json()
                except ValueError:
                    logger.debug(f"{endpoint}: invalid manifest")
                    failures.append("invalid manifest")
                    continue

                if isinstance(manifest, dict) and manifest.get("version"):
                    return manifest
                logger.debug(f"{endpoint}: manifest has no version")
                failures.append("manifest has no version")

        if unpublished:
            raise UpdaterError("Could not fetch a valid release JSON from the remote")
        raise UpdaterError(f"Update check failed: {', '.join(failures)}")

    async def relaunch(self) -> None:
        """Restart into the new version.

        With a hook set (the TUI sets one so the terminal is restored first)
        the hook arranges the restart; otherwise the process is replaced now.
        """
        if self.relaunch_hook:
            self.relaunch_hook()
        else:
            relaunch_process()


def relaunch_process() -> None:
    """Replace the current process with a fresh interpreter running the same command."""
    try:
        os.execv(sys.executable, [sys.executable] + sys.argv)
    except OSError as e:
        raise UpdaterError(f"Relaunch failed: {e}") from e
