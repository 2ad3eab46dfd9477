"""
Showtime scheduling.

A theater screens one movie at a time: for a given theater no two
showtimes may have overlapping ``[start, end)`` windows. Back-to-back
showtimes (one ends exactly when the next starts) are allowed.

Create and update run the overlap query and the write in one serializable
transaction, so two concurrent requests for clashing windows cannot both
commit. The loser is retried and then sees the winner's row.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import Database, is_foreign_key_violation
from models import Booking, Movie, Showtime, as_utc
from outcomes import Err, ErrorKind, Ok, Outcome

logger = logging.getLogger(__name__)

WINDOW_FORMAT = "%Y-%m-%d %H:%M"


def find_overlapping(
    session: Session, theater: str, start: datetime, end: datetime, exclude_id: Optional[int] = None
) -> List[Showtime]:
    stmt = select(Showtime).where(
        Showtime.theater == theater,
        Showtime.start_time < end,
        Showtime.end_time > start,
    )
    if exclude_id is not None:
        stmt = stmt.where(Showtime.id != exclude_id)
    return list(session.scalars(stmt))


def _not_found(showtime_id: int) -> Err:
    return Err(ErrorKind.SHOWTIME_NOT_FOUND, f"Showtime with ID {showtime_id} not found")


class ShowtimeScheduler:
    def __init__(self, database: Database):
        self.database = database

    def get_showtime(self, showtime_id: int) -> Outcome[Showtime]:
        def work(session: Session):
            showtime = session.get(Showtime, showtime_id)
            return _not_found(showtime_id) if showtime is None else Ok(showtime)

        return self.database.run(work)

    def add_showtime(
        self, movie_id: int, theater: str, start: datetime, end: datetime, price: float
    ) -> Outcome[Showtime]:
        start, end = as_utc(start), as_utc(end)

        def work(session: Session):
            rejected = self._check(session, movie_id, theater, start, end)
            if rejected is not None:
                return rejected
            showtime = Showtime(movie_id=movie_id, theater=theater, start_time=start, end_time=end, price=price)
            session.add(showtime)
            session.flush()
            return Ok(showtime)

        outcome = self.database.run(
            work, on_integrity_error=lambda exc: self._on_conflict(exc, movie_id), serializable=True
        )
        if isinstance(outcome, Ok):
            window = f"{start:{WINDOW_FORMAT}}-{end:{WINDOW_FORMAT}}"
            logger.info(f"Scheduled showtime {outcome.value.id} in {theater!r} {window}")
        else:
            logger.info(f"Rejected showtime in {theater!r}: {outcome.detail}")
        return outcome

    def update_showtime(
        self, showtime_id: int, movie_id: int, theater: str, start: datetime, end: datetime, price: float
    ) -> Outcome[Showtime]:
        start, end = as_utc(start), as_utc(end)

        def work(session: Session):
            showtime = session.get(Showtime, showtime_id)
            if showtime is None:
                return _not_found(showtime_id)
            rejected = self._check(session, movie_id, theater, start, end, exclude_id=showtime_id)
            if rejected is not None:
                return rejected
            showtime.movie_id = movie_id
            showtime.theater = theater
            showtime.start_time = start
            showtime.end_time = end
            showtime.price = price
            session.flush()
            return Ok(showtime)

        outcome = self.database.run(
            work, on_integrity_error=lambda exc: self._on_conflict(exc, movie_id), serializable=True
        )
        if isinstance(outcome, Err):
            logger.info(f"Rejected update of showtime {showtime_id}: {outcome.detail}")
        return outcome

    def delete_showtime(self, showtime_id: int) -> Outcome[None]:
        def work(session: Session):
            showtime = session.get(Showtime, showtime_id)
            if showtime is None:
                return _not_found(showtime_id)
            sold = session.scalar(select(func.count(Booking.id)).where(Booking.showtime_id == showtime_id))
            if sold:
                return Err(ErrorKind.SHOWTIME_IN_USE, f"Showtime with ID {showtime_id} has {sold} booking(s)")
            session.delete(showtime)
            session.flush()
            return Ok(None)

        def on_conflict(exc: IntegrityError) -> Err:
            return Err(ErrorKind.SHOWTIME_IN_USE, f"Showtime with ID {showtime_id} has bookings")

        outcome = self.database.run(work, on_integrity_error=on_conflict, serializable=True)
        if isinstance(outcome, Ok):
            logger.info(f"Deleted showtime {showtime_id}")
        return outcome

    @staticmethod
    def _check(
        session: Session,
        movie_id: int,
        theater: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> Optional[Err]:
        if session.get(Movie, movie_id) is None:
            return Err(ErrorKind.MOVIE_NOT_FOUND, f"Movie with ID {movie_id} not found")
        if end <= start:
            return Err(ErrorKind.INVALID_INTERVAL, "End time must be after start time")
        if find_overlapping(session, theater, start, end, exclude_id):
            return Err(
                ErrorKind.OVERLAPPING_SHOWTIME,
                f"There is already a showtime in theater '{theater}' between "
                f"{start:{WINDOW_FORMAT}} and {end:{WINDOW_FORMAT}}",
            )
        return None

    @staticmethod
    def _on_conflict(exc: IntegrityError, movie_id: int) -> Err:
        # The only foreign key on a showtime is its movie
        if not is_foreign_key_violation(exc):
            raise exc
        return Err(ErrorKind.MOVIE_NOT_FOUND, f"Movie with ID {movie_id} not found")
