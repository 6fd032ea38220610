"""
Exceptions raised by SongPrint.

A query that matches nothing is not an error: matching returns ``None``.
"""


class SongPrintError(Exception):
    """Base class for all SongPrint errors."""


class DeviceUnavailable(SongPrintError):
    """The capture device could not be opened."""


class IndexLoadFailure(SongPrintError):
    """A persisted index exists but could not be read."""


class IndexSaveFailure(SongPrintError):
    """The index could not be written to disk."""


class BandTableInvalid(SongPrintError, ValueError):
    """The frequency band table is empty, unordered or does not cover the upper limit."""


class RecognizerBusy(SongPrintError):
    """An enroll/match action was requested while another one is running."""
