"""Domain exceptions raised by the availability and booking services.

Routes convert them with ``to_http_exception`` so that callers can tell
"no slots" apart from "could not check".
"""

from fastapi import HTTPException, status


class SpaDomainError(Exception):
    """Base class for domain errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={'message': self.message, 'code': self.code},
        )


class DataUnavailable(SpaDomainError):
    """The booking or configuration store could not be read."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class MalformedBookingTime(DataUnavailable):
    """A stored booking carries a time that is not HH:MM."""
