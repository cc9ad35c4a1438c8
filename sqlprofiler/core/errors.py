"""Exceptions raised by the profiler core."""


class ProfilerError(Exception):
    """Base class for profiler errors."""


class CommandError(ProfilerError):
    """A backend command was rejected.

    The message is shown to the user verbatim.
    """


class UpdaterError(ProfilerError):
    """Checking, downloading or installing an update failed."""
