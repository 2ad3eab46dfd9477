"""
Request and response payloads for the Cinema Booking Backend.

JSON field names are camelCase (``releaseYear``, ``startTime``,
``seatNumber`` ...); the Python attributes stay snake_case.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, Iterable

from pydantic import BaseModel, ConfigDict, Field, FutureDatetime, StringConstraints
from pydantic.alias_generators import to_camel

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MovieIn(CamelModel):
    title: NonBlank = Field(..., description="Unique movie title")
    genre: NonBlank = Field(..., description="Genre, free text")
    duration: int = Field(..., ge=1, description="Running time in minutes")
    rating: float = Field(..., ge=0, description="Rating, e.g. 8.8")
    release_year: int = Field(..., ge=1888, description="Year of first release")


class MovieOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    title: str
    genre: str
    duration: int
    rating: float
    release_year: int


class ShowtimeIn(CamelModel):
    movie_id: int = Field(..., description="Referenced movie id")
    theater: NonBlank = Field(..., description="Theater name")
    start_time: FutureDatetime = Field(..., description="ISO datetime the screening starts")
    end_time: FutureDatetime = Field(..., description="ISO datetime the screening ends")
    price: float = Field(..., ge=0, description="Ticket price")


class ShowtimeOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    movie_id: int
    theater: str
    start_time: datetime
    end_time: datetime
    price: float


class BookingIn(CamelModel):
    showtime_id: int = Field(..., description="Referenced showtime id")
    seat_number: int = Field(..., ge=1, description="Seat number, starting at 1")
    user_id: NonBlank = Field(..., description="Opaque customer identifier")


class ErrorOut(BaseModel):
    status: int
    error: str
    message: str


class MessageOut(BaseModel):
    message: str


FIELD_MESSAGES: Dict[str, Dict[str, str]] = {
    "title": {"missing": "Title is required", "string_too_short": "Title is required"},
    "genre": {"missing": "Genre is required", "string_too_short": "Genre is required"},
    "duration": {"missing": "Duration is required", "greater_than_equal": "Duration must be at least 1 minute"},
    "rating": {"missing": "Rating is required", "greater_than_equal": "Rating must be at least 0"},
    "releaseYear": {
        "missing": "Release year is required",
        "greater_than_equal": "Release year must be at least 1888",
    },
    "movieId": {"missing": "Movie ID is required"},
    "theater": {"missing": "Theater is required", "string_too_short": "Theater is required"},
    "startTime": {"missing": "Start time is required", "datetime_future": "Start time must be in the future"},
    "endTime": {"missing": "End time is required", "datetime_future": "End time must be in the future"},
    "price": {"missing": "Price is required", "greater_than_equal": "Price must be greater than or equal to 0"},
    "showtimeId": {"missing": "Showtime ID is required"},
    "seatNumber": {"missing": "Seat number is required", "greater_than_equal": "Seat number must be at least 1"},
    "userId": {"missing": "User ID is required", "string_too_short": "User ID is required"},
}

BODY_MESSAGES: Dict[str, str] = {
    "json_invalid": "Request body is not valid JSON",
    "missing": "Request body is required",
}


def describe_validation_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Flatten pydantic errors into ``{field: message}``, first error per field wins."""
    described: Dict[str, str] = {}
    for error in errors:
        loc = tuple(error.get("loc") or ("body",))
        kind = error.get("type", "")
        # Errors about the body as a whole, not one of its fields
        if kind == "json_invalid" or loc == ("body",):
            described.setdefault("body", BODY_MESSAGES.get(kind, "Request body must be a JSON object"))
            continue
        field = str(loc[-1])
        if field in described:
            continue
        if error.get("input", ...) is None:
            kind = "missing"
        described[field] = FIELD_MESSAGES.get(field, {}).get(kind, error.get("msg", "Invalid value"))
    return described
