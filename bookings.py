"""
Seat bookings.

A seat of a showtime is sold at most once. The ledger checks for an
existing booking and inserts inside one serializable transaction, and the
``(showtime_id, seat_number)`` unique constraint catches any writer that
slips past the check. Either way a lost race is reported to the caller as
``SEAT_ALREADY_BOOKED``, never as a storage error.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import Database, is_foreign_key_violation, is_unique_violation
from models import BOOKING_SEAT_CONSTRAINT, Booking, Showtime
from outcomes import Err, ErrorKind, Ok, Outcome

logger = logging.getLogger(__name__)


def seat_taken(showtime_id: int, seat_number: int) -> Err:
    return Err(
        ErrorKind.SEAT_ALREADY_BOOKED,
        f"Seat {seat_number} is already booked for showtime with ID {showtime_id}",
    )


class BookingLedger:
    def __init__(self, database: Database):
        self.database = database

    def create_booking(self, showtime_id: int, seat_number: int, user_id: str) -> Outcome[Booking]:
        def work(session: Session):
            if session.get(Showtime, showtime_id) is None:
                return Err(ErrorKind.SHOWTIME_NOT_FOUND, f"Showtime with ID {showtime_id} not found")
            existing = session.scalars(
                select(Booking.id).where(
                    Booking.showtime_id == showtime_id,
                    Booking.seat_number == seat_number,
                )
            ).first()
            if existing is not None:
                return seat_taken(showtime_id, seat_number)
            booking = Booking(showtime_id=showtime_id, seat_number=seat_number, user_id=user_id)
            session.add(booking)
            session.flush()
            return Ok(booking)

        def on_conflict(exc: IntegrityError) -> Err:
            if is_unique_violation(exc, BOOKING_SEAT_CONSTRAINT):
                logger.info(f"Seat {seat_number} of showtime {showtime_id} lost an insert race")
                return seat_taken(showtime_id, seat_number)
            if not is_foreign_key_violation(exc):
                raise exc
            # The showtime was deleted after our check
            return Err(ErrorKind.SHOWTIME_NOT_FOUND, f"Showtime with ID {showtime_id} not found")

        outcome = self.database.run(work, on_integrity_error=on_conflict, serializable=True)
        if isinstance(outcome, Ok):
            logger.info(f"Booked seat {seat_number} of showtime {showtime_id} (id={outcome.value.id})")
        else:
            logger.info(f"Booking of seat {seat_number} for showtime {showtime_id} rejected: {outcome.kind.value}")
        return outcome

    def get_booking(self, booking_id: int) -> Outcome[Booking]:
        def work(session: Session):
            booking = session.get(Booking, booking_id)
            if booking is None:
                return Err(ErrorKind.BOOKING_NOT_FOUND, f"Booking with ID {booking_id} not found")
            return Ok(booking)

        return self.database.run(work)

    def count_bookings(self, showtime_id: int) -> Outcome[int]:
        return self.database.run(
            lambda session: Ok(session.scalar(select(func.count(Booking.id)).where(Booking.showtime_id == showtime_id)))
        )
