"""Tests for the HTTP release updater."""

import hashlib

import httpx
import pytest

from sqlprofiler.core.errors import UpdaterError
from sqlprofiler.core.models import Tone
from sqlprofiler.core.release_updater import ReleaseUpdate, ReleaseUpdater
from sqlprofiler.core.update_checker import (
    GENERIC_RULE,
    UpdateChecker,
    UpdateErrorKind,
    UpdatePhase,
    classify_update_error,
)

WHEEL = b"not really a wheel"
WHEEL_URL = "https://releases.example.com/sql_profiler_tui-0.3.0-py3-none-any.whl"


async def accept_update(update):
    return True


def manifest_transport(routes):
    """Serve canned responses keyed by URL."""

    def handler(request):
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, bytes):
            return httpx.Response(200, content=route)
        return httpx.Response(200, json=route)

    return httpx.MockTransport(handler)


def make_updater(tmp_path, routes, endpoints=("https://releases.example.com/latest.json",),
                 current_version="0.2.0"):
    return ReleaseUpdater(
        list(endpoints),
        download_dir=tmp_path,
        current_version=current_version,
        transport=manifest_transport(routes),
    )


@pytest.mark.asyncio
async def test_no_endpoints_is_a_configuration_error(tmp_path):
    updater = ReleaseUpdater([], download_dir=tmp_path, current_version="0.2.0")

    with pytest.raises(UpdaterError) as exc_info:
        await updater.check()

    assert classify_update_error(str(exc_info.value)).kind is UpdateErrorKind.NO_ENDPOINTS


@pytest.mark.asyncio
async def test_newer_release_is_offered(tmp_path):
    updater = make_updater(tmp_path, {
        "https://releases.example.com/latest.json": {"version": "0.3.0", "url": WHEEL_URL},
    })

    update = await updater.check()

    assert update.version == "0.3.0"
    assert update.current_version == "0.2.0"
    assert update.url == WHEEL_URL


@pytest.mark.asyncio
@pytest.mark.parametrize("version", ["0.2.0", "0.1.9"])
async def test_same_or_older_release_is_not_offered(tmp_path, version):
    updater = make_updater(tmp_path, {
        "https://releases.example.com/latest.json": {"version": version},
    })

    assert await updater.check() is None


@pytest.mark.asyncio
async def test_unknown_current_version_offers_nothing(tmp_path):
    updater = make_updater(tmp_path, {
        "https://releases.example.com/latest.json": {"version": "9.0.0"},
    }, current_version=None)

    assert await updater.check() is None


@pytest.mark.asyncio
async def test_falls_back_to_next_endpoint(tmp_path):
    updater = make_updater(tmp_path, {
        "https://mirror.example.com/latest.json": {"version": "0.3.0"},
    }, endpoints=("https://releases.example.com/latest.json", "https://mirror.example.com/latest.json"))

    update = await updater.check()

    assert update.version == "0.3.0"


@pytest.mark.asyncio
async def test_missing_manifest_reports_no_release_metadata(tmp_path):
    updater = make_updater(tmp_path, {})

    with pytest.raises(UpdaterError) as exc_info:
        await updater.check()

    assert classify_update_error(str(exc_info.value)).kind is UpdateErrorKind.NO_RELEASE_METADATA


@pytest.mark.asyncio
async def test_network_failure_is_generic(tmp_path):
    updater = make_updater(tmp_path, {
        "https://releases.example.com/latest.json": httpx.ConnectError("connection refused"),
    })

    with pytest.raises(UpdaterError, match="Update check failed") as exc_info:
        await updater.check()

    assert classify_update_error(str(exc_info.value)).kind is UpdateErrorKind.GENERIC


@pytest.mark.asyncio
async def test_mixed_endpoint_failures_are_generic(tmp_path):
    updater = make_updater(tmp_path, {
        "https://mirror.example.com/latest.json": httpx.ConnectError("connection refused"),
    }, endpoints=("https://releases.example.com/latest.json", "https://mirror.example.com/latest.json"))

    with pytest.raises(UpdaterError) as exc_info:
        await updater.check()

    assert classify_update_error(str(exc_info.value)).kind is UpdateErrorKind.GENERIC


@pytest.mark.asyncio
async def test_automatic_check_with_mixed_endpoint_failures_is_silent(tmp_path):
    updater = make_updater(tmp_path, {
        "https://mirror.example.com/latest.json": httpx.ConnectError("connection refused"),
    }, endpoints=("https://releases.example.com/latest.json", "https://mirror.example.com/latest.json"))
    checker = UpdateChecker(updater, confirm=accept_update)

    await checker.check()

    assert checker.phase is UpdatePhase.IDLE
    assert checker.status.message is None


@pytest.mark.asyncio
async def test_missing_download_is_reported_as_failure(tmp_path):
    updater = make_updater(tmp_path, {
        "https://releases.example.com/latest.json": {"version": "0.3.0", "url": WHEEL_URL},
    })
    checker = UpdateChecker(updater, confirm=accept_update)

    await checker.check(manual=True)

    assert checker.phase is UpdatePhase.ERROR
    assert checker.status.message == GENERIC_RULE.message
    assert checker.status.tone is Tone.ERROR


@pytest.mark.asyncio
async def test_checksum_mismatch_is_a_signature_error(tmp_path):
    update = ReleaseUpdate(
        {"version": "0.3.0", "url": WHEEL_URL, "sha256": "0" * 64},
        "0.2.0",
        download_dir=tmp_path,
        transport=manifest_transport({WHEEL_URL: WHEEL}),
    )

    with pytest.raises(UpdaterError) as exc_info:
        await update.download_and_install()

    assert classify_update_error(str(exc_info.value)).kind is UpdateErrorKind.INVALID_SIGNATURE
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_verified_download_is_installed(tmp_path, monkeypatch):
    installed = []

    async def fake_install(self, path):
        installed.append(path.read_bytes())

    monkeypatch.setattr(ReleaseUpdate, "_install", fake_install)
    update = ReleaseUpdate(
        {"version": "0.3.0", "url": WHEEL_URL, "sha256": hashlib.sha256(WHEEL).hexdigest()},
        "0.2.0",
        download_dir=tmp_path,
        transport=manifest_transport({WHEEL_URL: WHEEL}),
    )

    await update.download_and_install()

    assert installed == [WHEEL]


@pytest.mark.asyncio
async def test_release_without_url_fails(tmp_path):
    update = ReleaseUpdate({"version": "0.3.0"}, "0.2.0", download_dir=tmp_path)

    with pytest.raises(UpdaterError, match="no download url"):
        await update.download_and_install()


@pytest.mark.asyncio
async def test_relaunch_uses_hook(tmp_path):
    calls = []
    updater = ReleaseUpdater(["https://x"], download_dir=tmp_path,
                             relaunch_hook=lambda: calls.append(True))

    await updater.relaunch()

    assert calls == [True]
