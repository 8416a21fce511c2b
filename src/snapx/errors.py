"""Error taxonomy shared by the core and the HTTP layer."""

from __future__ import annotations

from fastapi import status


class SnapXError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class InvalidInput(SnapXError):
    """Malformed or missing request data (e.g. a bad query descriptor)."""

    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(SnapXError):
    """The acting principal does not own the collection."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(SnapXError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamFailure(SnapXError):
    """Object storage or the embedding store could not be reached."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
