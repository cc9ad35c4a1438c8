"""Tests for the update checker."""

import asyncio

import pytest

from sqlprofiler.core.models import Tone
from sqlprofiler.core.update_checker import (
    GENERIC_RULE,
    Update,
    UpdateChecker,
    UpdateErrorKind,
    UpdatePhase,
    Updater,
    classify_update_error,
)


class FakeUpdate(Update):
    def __init__(self, version, error=None):
        super().__init__(version, current_version="0.1.0")
        self.error = error
        self.installed = False

    async def download_and_install(self):
        if self.error:
            raise self.error
        self.installed = True


class FakeUpdater(Updater):
    def __init__(self, update=None, error=None, relaunch_error=None):
        self.update = update
        self.error = error
        self.relaunch_error = relaunch_error
        self.checks = 0
        self.relaunched = False
        self.gate = None

    async def check(self):
        self.checks += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.update

    async def relaunch(self):
        if self.relaunch_error:
            raise self.relaunch_error
        self.relaunched = True


def make_checker(updater, answer=True):
    asked = []

    async def confirm(update):
        asked.append(update.version)
        return answer

    checker = UpdateChecker(updater, confirm)
    checker.asked = asked
    return checker


@pytest.mark.parametrize("text,kind", [
    ("The updater does not have any endpoints set.", UpdateErrorKind.NO_ENDPOINTS),
    ("Invalid signature: checksum mismatch", UpdateErrorKind.INVALID_SIGNATURE),
    ("failed to decode pubkey", UpdateErrorKind.INVALID_SIGNATURE),
    ("Could not fetch a valid release JSON from the remote", UpdateErrorKind.NO_RELEASE_METADATA),
    ("Update check failed: HTTP 404, ConnectError", UpdateErrorKind.GENERIC),
    ("Download of version 0.3.0 failed with status 404", UpdateErrorKind.GENERIC),
    ("connection refused", UpdateErrorKind.GENERIC),
])
def test_classify_update_error(text, kind):
    assert classify_update_error(text).kind is kind


def test_classification_is_case_insensitive():
    assert classify_update_error("NO ENDPOINTS").kind is UpdateErrorKind.NO_ENDPOINTS
    assert classify_update_error("").kind is GENERIC_RULE.kind


@pytest.mark.asyncio
async def test_manual_check_up_to_date():
    checker = make_checker(FakeUpdater())

    await checker.check(manual=True)

    assert checker.phase is UpdatePhase.UP_TO_DATE
    assert checker.status.message == "You are running the latest version."
    assert checker.status.tone is Tone.SUCCESS
    assert not checker.status.checking


@pytest.mark.asyncio
async def test_automatic_check_up_to_date_is_silent():
    checker = make_checker(FakeUpdater())

    await checker.check()

    assert checker.phase is UpdatePhase.IDLE
    assert checker.status.message is None


@pytest.mark.asyncio
async def test_manual_check_shows_progress_message():
    updater = FakeUpdater()
    updater.gate = asyncio.Event()
    checker = make_checker(updater)

    task = asyncio.create_task(checker.check(manual=True))
    await asyncio.sleep(0)

    assert checker.status.checking
    assert checker.status.message == "Checking for updates..."

    updater.gate.set()
    await task


@pytest.mark.asyncio
async def test_manual_check_during_automatic_check_is_ignored():
    updater = FakeUpdater()
    updater.gate = asyncio.Event()
    checker = make_checker(updater)

    first = asyncio.create_task(checker.check())
    await asyncio.sleep(0)
    assert checker.in_flight

    await checker.check(manual=True)
    updater.gate.set()
    await first

    assert updater.checks == 1
    assert not checker.in_flight


@pytest.mark.asyncio
async def test_confirmed_update_installs_and_relaunches():
    update = FakeUpdate("0.3.0")
    updater = FakeUpdater(update=update)
    checker = make_checker(updater)
    phases = []
    checker.add_callback(lambda c: phases.append((c.phase, c.status.message)))

    await checker.check()

    assert checker.asked == ["0.3.0"]
    assert update.installed
    assert updater.relaunched
    assert (UpdatePhase.UPDATE_OFFERED, "Version 0.3.0 is available.") in phases
    assert (UpdatePhase.DOWNLOADING, "Downloading version 0.3.0...") in phases
    assert (UpdatePhase.INSTALLED, "Version 0.3.0 installed.") in phases
    assert checker.phase is UpdatePhase.RESTARTING


@pytest.mark.asyncio
async def test_declined_update_is_not_installed():
    update = FakeUpdate("0.3.0")
    checker = make_checker(FakeUpdater(update=update), answer=False)

    await checker.check()

    assert not update.installed
    assert checker.phase is UpdatePhase.UPDATE_OFFERED
    assert not checker.in_flight


@pytest.mark.asyncio
async def test_relaunch_failure_asks_for_manual_restart():
    updater = FakeUpdater(update=FakeUpdate("0.3.0"), relaunch_error=OSError("exec failed"))
    checker = make_checker(updater)

    await checker.check(manual=True)

    assert checker.phase is UpdatePhase.INSTALLED
    assert "restart the application manually" in checker.status.message
    assert checker.status.tone is Tone.INFO


@pytest.mark.asyncio
async def test_download_failure_is_shown_even_for_automatic_check():
    update = FakeUpdate("0.3.0", error=RuntimeError("connection reset"))
    checker = make_checker(FakeUpdater(update=update))

    await checker.check()

    assert checker.phase is UpdatePhase.ERROR
    assert checker.status.message == GENERIC_RULE.message
    assert checker.status.tone is Tone.ERROR


@pytest.mark.asyncio
async def test_missing_endpoints_suppressed_on_automatic_check():
    error = RuntimeError("The updater does not have any endpoints set.")
    checker = make_checker(FakeUpdater(error=error))

    await checker.check()

    assert checker.phase is UpdatePhase.IDLE
    assert checker.status.message is None


@pytest.mark.asyncio
async def test_missing_endpoints_reported_on_manual_check():
    error = RuntimeError("The updater does not have any endpoints set.")
    checker = make_checker(FakeUpdater(error=error))

    await checker.check(manual=True)

    assert checker.phase is UpdatePhase.ERROR
    assert checker.status.message == "Updates are not configured for this build."
    assert checker.status.tone is Tone.ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [
    "Invalid signature: checksum mismatch for sql_profiler_tui-0.3.0-py3-none-any.whl",
    "failed to decode pubkey",
])
async def test_invalid_signature_suppressed_on_automatic_check(text):
    checker = make_checker(FakeUpdater(error=RuntimeError(text)))

    await checker.check()

    assert checker.phase is UpdatePhase.IDLE
    assert checker.status.message is None


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [
    "Invalid signature: checksum mismatch for sql_profiler_tui-0.3.0-py3-none-any.whl",
    "failed to decode pubkey",
])
async def test_invalid_signature_reported_on_manual_check(text):
    checker = make_checker(FakeUpdater(error=RuntimeError(text)))

    await checker.check(manual=True)

    assert checker.phase is UpdatePhase.ERROR
    assert "could not be verified" in checker.status.message
    assert checker.status.tone is Tone.ERROR


@pytest.mark.asyncio
async def test_generic_failure_suppressed_on_automatic_check(caplog):
    checker = make_checker(FakeUpdater(error=RuntimeError("connection refused")))

    await checker.check()

    assert checker.phase is UpdatePhase.IDLE
    assert checker.status.message is None
    assert "connection refused" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("manual", [False, True])
async def test_missing_release_metadata_is_informational(manual):
    error = RuntimeError("Could not fetch a valid release JSON from the remote")
    checker = make_checker(FakeUpdater(error=error))

    await checker.check(manual=manual)

    assert checker.phase is UpdatePhase.ERROR
    assert checker.status.message == "No published release was found yet."
    assert checker.status.tone is Tone.INFO


@pytest.mark.asyncio
async def test_dismiss_returns_to_idle():
    checker = make_checker(FakeUpdater(error=RuntimeError("boom")))
    await checker.check(manual=True)

    checker.dismiss()

    assert checker.phase is UpdatePhase.IDLE
    assert checker.status.message is None


@pytest.mark.asyncio
async def test_check_can_run_again_after_failure():
    updater = FakeUpdater(error=RuntimeError("boom"))
    checker = make_checker(updater)
    await checker.check(manual=True)

    updater.error = None
    await checker.check(manual=True)

    assert updater.checks == 2
    assert checker.phase is UpdatePhase.UP_TO_DATE
