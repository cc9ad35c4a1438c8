"""Self-update check, download, install and restart."""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from sqlprofiler.core.models import Tone, UpdateStatus

logger = logging.getLogger(__name__)


class UpdatePhase(Enum):
    """Where the update checker is in its cycle."""
    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up-to-date"
    UPDATE_OFFERED = "update-offered"
    DOWNLOADING = "downloading"
    INSTALLED = "installed"
    RESTARTING = "restarting"
    ERROR = "error"


class UpdateErrorKind(Enum):
    """Classification of update failures."""
    NO_ENDPOINTS = "no_endpoints"
    INVALID_SIGNATURE = "invalid_signature"
    NO_RELEASE_METADATA = "no_release_metadata"
    GENERIC = "generic"


@dataclass
class UpdateErrorRule:
    """Maps raw updater error text to a user-facing message."""
    pattern: str
    kind: UpdateErrorKind
    message: str
    tone: Tone
    configuration: bool = False
    compiled_pattern: Optional[re.Pattern] = None

    def __post_init__(self):
        self.compiled_pattern = re.compile(self.pattern, re.IGNORECASE)

    def matches(self, text: str) -> bool:
        return bool(self.compiled_pattern.search(text))


ERROR_RULES = [
    UpdateErrorRule(
        pattern=r"does not have any endpoints|no endpoints",
        kind=UpdateErrorKind.NO_ENDPOINTS,
        message="Updates are not configured for this build.",
        tone=Tone.ERROR,
        configuration=True,
    ),
    UpdateErrorRule(
        pattern=r"signature|public ?key|pubkey",
        kind=UpdateErrorKind.INVALID_SIGNATURE,
        message="The update could not be verified. The updater public key or release signature is invalid.",
        tone=Tone.ERROR,
        configuration=True,
    ),
    UpdateErrorRule(
        pattern=r"valid release json|release metadata",
        kind=UpdateErrorKind.NO_RELEASE_METADATA,
        message="No published release was found yet.",
        tone=Tone.INFO,
    ),
]

GENERIC_RULE = UpdateErrorRule(
    pattern=r".",
    kind=UpdateErrorKind.GENERIC,
    message="Could not check for updates. Please try again later.",
    tone=Tone.ERROR,
)


def classify_update_error(text: str) -> UpdateErrorRule:
    """Return the first rule matching the error text, or the generic rule."""
    for rule in ERROR_RULES:
        if rule.matches(text):
            return rule
    return GENERIC_RULE


class Update:
    """An available release offered by an :class:`Updater`."""

    def __init__(self, version: str, current_version: Optional[str] = None):
        self.version = version
        self.current_version = current_version

    async def download_and_install(self) -> None:
        raise NotImplementedError


class Updater:
    """Release source queried by the update checker."""

    async def check(self) -> Optional[Update]:
        """Return the available update, or None when up to date."""
        raise NotImplementedError

    async def relaunch(self) -> None:
        """Restart the application after an install."""
        raise NotImplementedError


ConfirmCallback = Callable[[Update], Awaitable[bool]]


class UpdateChecker:
    """Runs update checks one at a time and reports through :class:`UpdateStatus`.

    Automatic checks stay quiet unless something is worth telling the user;
    manual checks always end with a visible message.
    """

    def __init__(self, updater: Updater, confirm: ConfirmCallback):
        self.updater = updater
        self.confirm = confirm
        self.phase = UpdatePhase.IDLE
        self._status = UpdateStatus()
        self._in_flight = False
        self.callbacks: List[Callable[["UpdateChecker"], None]] = []

    @property
    def status(self) -> UpdateStatus:
        return self._status

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def add_callback(self, callback: Callable[["UpdateChecker"], None]) -> None:
        self.callbacks.append(callback)

    def _set(self, phase: UpdatePhase, checking: bool = False,
             message: Optional[str] = None, tone: Tone = Tone.INFO) -> None:
        self.phase = phase
        self._status = UpdateStatus(checking=checking, message=message, tone=tone)
        for callback in self.callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    async def check(self, manual: bool = False) -> None:
        """Check for an update and, once confirmed, install it.

        Calls made while another check is running are ignored.
        """
        if self._in_flight:
            logger.debug("Update check already in progress, ignoring request")
            return

        self._in_flight = True
        try:
            await self._run(manual)
        finally:
            self._in_flight = False

    async def _run(self, manual: bool) -> None:
        self._set(
            UpdatePhase.CHECKING,
            checking=True,
            message="Checking for updates..." if manual else None,
        )

        try:
            update = await self.updater.check()
        except Exception as e:
            self._fail(e, manual)
            return

        if update is None:
            logger.info("No update available")
            if manual:
                self._set(UpdatePhase.UP_TO_DATE, message="You are running the latest version.",
                          tone=Tone.SUCCESS)
            else:
                self._set(UpdatePhase.IDLE)
            return

        logger.info(f"Update available: {update.current_version} -> {update.version}")
        self._set(UpdatePhase.UPDATE_OFFERED, message=f"Version {update.version} is available.")

        if not await self.confirm(update):
            logger.info(f"Update {update.version} declined")
            return

        self._set(UpdatePhase.DOWNLOADING, checking=True,
                  message=f"Downloading version {update.version}...")
        try:
            await update.download_and_install()
        except Exception as e:
            self._fail(e, manual=True)
            return

        self._set(UpdatePhase.INSTALLED, message=f"Version {update.version} installed.",
                  tone=Tone.SUCCESS)

        self._set(UpdatePhase.RESTARTING, checking=True, message="Restarting...")
        try:
            await self.updater.relaunch()
        except Exception as e:
            logger.warning(f"Relaunch after update failed: {e}")
            self._set(
                UpdatePhase.INSTALLED,
                message=f"Version {update.version} installed. Please restart the application manually.",
                tone=Tone.INFO,
            )

    def _fail(self, error: Exception, manual: bool) -> None:
        text = str(error)
        rule = classify_update_error(text)

        if rule.kind is UpdateErrorKind.NO_RELEASE_METADATA:
            logger.info(f"Update check: {text}")
            self._set(UpdatePhase.ERROR, message=rule.message, tone=rule.tone)
            return

        if manual:
            logger.error(f"Update failed: {text}")
            self._set(UpdatePhase.ERROR, message=rule.message, tone=rule.tone)
            return

        if rule.configuration:
            logger.debug(f"Updater not configured: {text}")
        else:
            logger.warning(f"Automatic update check failed: {text}")
        self._set(UpdatePhase.IDLE)

    def dismiss(self) -> None:
        """Hide the current message and return to idle."""
        if self._in_flight:
            return
        self._set(UpdatePhase.IDLE)
