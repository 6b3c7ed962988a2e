"""Error taxonomy shared by stores, the habits facade and the API."""

from __future__ import annotations


class HabitSyncError(Exception):
    """Base class for every error surfaced to callers of the habits core."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = str(self.args[0])


class ValidationError(HabitSyncError):
    """Malformed input."""

    status_code = 400


class UnauthenticatedError(HabitSyncError):
    """No signed-in user or the session credential was rejected."""

    status_code = 401


class NotFoundError(HabitSyncError):
    """Habit or completion does not exist or is not owned by the caller."""

    status_code = 404


class ConflictError(HabitSyncError):
    """The backend reported a uniqueness or concurrent-session conflict."""

    status_code = 409


class TransientStoreError(HabitSyncError):
    """A store call failed for a reason that may go away on a later attempt."""

    status_code = 503


class NetworkError(TransientStoreError):
    """The backend could not be reached or failed while serving the request."""


class StoreTimeoutError(TransientStoreError, TimeoutError):
    """A store call did not finish within the configured timeout."""

    status_code = 504


def error_for_status(status: int, message: str = "") -> HabitSyncError:
    """Translate an HTTP status code returned by a backend into the taxonomy."""

    if status == 401 or status == 403:
        return UnauthenticatedError(message)
    if status == 404:
        return NotFoundError(message)
    if status == 409:
        return ConflictError(message)
    if status in (400, 422):
        return ValidationError(message)
    if status in (408, 504):
        return StoreTimeoutError(message)
    return NetworkError(message or f"Backend responded with HTTP {status}")


__all__ = [
    "ConflictError",
    "HabitSyncError",
    "NetworkError",
    "NotFoundError",
    "StoreTimeoutError",
    "TransientStoreError",
    "UnauthenticatedError",
    "ValidationError",
    "error_for_status",
]
