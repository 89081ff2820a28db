"""Error kinds raised by the fetch and summarize runs.

Every error here is terminal for the current run; the CLI reports it and
exits non-zero.
"""
from __future__ import annotations


class StravaMileageError(Exception):
    """Base class for errors the CLI reports without a traceback."""


class ConfigError(StravaMileageError, ValueError):
    """Missing credentials or an unusable setting."""


class AuthorizationError(StravaMileageError, RuntimeError):
    """No authorization code arrived, or the token exchange failed."""


class FetchError(StravaMileageError, RuntimeError):
    """A page request failed; the whole fetch is abandoned."""


class SnapshotDecodeError(StravaMileageError, ValueError):
    """The snapshot file or one of its records could not be decoded."""
