from __future__ import annotations

__all__ = ["TrackingError", "SettingsError", "SolverError", "TrackingInterrupted"]


class TrackingError(Exception):
    """
    Base class for failures of a single linking pass.
    """


class SettingsError(TrackingError, ValueError):
    """
    Raised when a settings mapping is missing a key, has a key of the wrong type,
    carries a key that is not understood by the pass, or when a pass is given an
    invalid argument.
    """

    def __init__(self, key: str, msg: str):
        super().__init__(msg)
        self.key = key


class SolverError(TrackingError, RuntimeError):
    """
    Raised when the linear assignment solver cannot produce an assignment.
    """


class TrackingInterrupted(TrackingError):
    """
    Raised when the workers of a pass did not complete within the allowed time.
    """
