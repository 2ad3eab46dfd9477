"""
Relational tables for the Cinema Booking Backend.

- Movie -> "movies"
- Showtime -> "showtimes"
- Booking -> "bookings"

Uniqueness, foreign keys and numeric lower bounds are declared here so the
database rejects bad rows even if a caller skips the service checks.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

BOOKING_SEAT_CONSTRAINT = "uq_booking_showtime_seat"


class UTCDateTime(TypeDecorator):
    """Stores naive UTC and hands back timezone-aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Movie(Base):
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False, unique=True)
    genre = Column(String(100), nullable=False)
    duration = Column(Integer, nullable=False)
    rating = Column(Float, nullable=False)
    release_year = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("duration >= 1", name="ck_movie_duration_positive"),
        CheckConstraint("rating >= 0", name="ck_movie_rating_non_negative"),
        CheckConstraint("release_year >= 1888", name="ck_movie_release_year"),
    )

    def __repr__(self) -> str:
        return f"<Movie(id={self.id}, title={self.title!r})>"


class Showtime(Base):
    __tablename__ = "showtimes"

    id = Column(Integer, primary_key=True)
    movie_id = Column(Integer, ForeignKey("movies.id"), nullable=False, index=True)
    theater = Column(String(255), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    price = Column(Float, nullable=False)

    __table_args__ = (
        Index("ix_showtime_theater_start", "theater", "start_time"),
        CheckConstraint("end_time > start_time", name="ck_showtime_interval"),
        CheckConstraint("price >= 0", name="ck_showtime_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Showtime(id={self.id}, theater={self.theater!r}, start={self.start_time}, end={self.end_time})>"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    showtime_id = Column(Integer, ForeignKey("showtimes.id"), nullable=False, index=True)
    seat_number = Column(Integer, nullable=False)
    user_id = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("showtime_id", "seat_number", name=BOOKING_SEAT_CONSTRAINT),
        CheckConstraint("seat_number >= 1", name="ck_booking_seat_positive"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, showtime={self.showtime_id}, seat={self.seat_number})>"
