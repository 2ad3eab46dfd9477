"""
Tagged results returned by the registry, scheduler and ledger.

A component answers every request with either ``Ok(value)`` or
``Err(kind, detail)``. Only the API layer turns an ``Err`` into an HTTP
response.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Domain failure kinds. The value is the short label shown to clients."""

    MOVIE_NOT_FOUND = "Movie Not Found"
    SHOWTIME_NOT_FOUND = "Showtime Not Found"
    BOOKING_NOT_FOUND = "Booking Not Found"
    MOVIE_ALREADY_EXISTS = "Movie Already Exists"
    OVERLAPPING_SHOWTIME = "Overlapping Showtime"
    SEAT_ALREADY_BOOKED = "Seat Already Booked"
    MOVIE_IN_USE = "Movie In Use"
    SHOWTIME_IN_USE = "Showtime In Use"
    INVALID_INTERVAL = "Invalid Argument"
    TRANSIENT_FAILURE = "Service Unavailable"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str


Outcome = Union[Ok[T], Err]
