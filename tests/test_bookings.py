from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import is_foreign_key_violation, is_unique_violation
from models import Booking, Showtime
from outcomes import Err, ErrorKind, Ok


def capture(caught, kind):
    def handler(exc):
        caught.append(exc)
        return Err(kind, "captured")

    return handler


def test_book_free_seat(ledger, showtime):
    outcome = ledger.create_booking(showtime.id, 7, "user-1")

    assert isinstance(outcome, Ok)
    stored = ledger.get_booking(outcome.value.id).value
    assert (stored.showtime_id, stored.seat_number, stored.user_id) == (showtime.id, 7, "user-1")


def test_book_taken_seat(ledger, showtime):
    ledger.create_booking(showtime.id, 1, "user-1")

    outcome = ledger.create_booking(showtime.id, 1, "user-2")

    assert isinstance(outcome, Err)
    assert outcome.kind is ErrorKind.SEAT_ALREADY_BOOKED
    assert outcome.detail == f"Seat 1 is already booked for showtime with ID {showtime.id}"
    assert ledger.count_bookings(showtime.id).value == 1


def test_showtime_is_checked_before_seat(ledger):
    outcome = ledger.create_booking(999, 1, "user-1")

    assert outcome.kind is ErrorKind.SHOWTIME_NOT_FOUND
    assert outcome.detail == "Showtime with ID 999 not found"


def test_same_seat_in_different_showtimes(ledger, scheduler, showtime, movie):
    other = scheduler.add_showtime(
        movie.id, "Theater 2", showtime.start_time, showtime.end_time, showtime.price
    ).value

    assert isinstance(ledger.create_booking(showtime.id, 1, "user-1"), Ok)
    assert isinstance(ledger.create_booking(other.id, 1, "user-1"), Ok)


def test_get_missing_booking(ledger):
    assert ledger.get_booking(5).kind is ErrorKind.BOOKING_NOT_FOUND


def test_unique_constraint_backs_up_the_check(database, ledger, showtime):
    ledger.create_booking(showtime.id, 3, "user-1")

    def duplicate(session):
        session.add(Booking(showtime_id=showtime.id, seat_number=3, user_id="user-2"))
        session.flush()
        return Ok(None)

    caught = []
    outcome = database.run(duplicate, on_integrity_error=capture(caught, ErrorKind.SEAT_ALREADY_BOOKED))

    assert outcome.kind is ErrorKind.SEAT_ALREADY_BOOKED
    assert isinstance(caught[0], IntegrityError)
    assert is_unique_violation(caught[0])
    assert not is_foreign_key_violation(caught[0])


def test_foreign_key_rejects_unknown_showtime(database):
    def orphan(session):
        session.add(Booking(showtime_id=12345, seat_number=1, user_id="user-1"))
        session.flush()
        return Ok(None)

    caught = []
    database.run(orphan, on_integrity_error=capture(caught, ErrorKind.SHOWTIME_NOT_FOUND))

    assert is_foreign_key_violation(caught[0])
    assert not is_unique_violation(caught[0])


def before_booking_insert(monkeypatch, interfere):
    """Run ``interfere(session, booking)`` once, after the ledger's checks and before its insert."""
    original_add = Session.add
    done = []

    def add(self, instance, *args, **kwargs):
        if isinstance(instance, Booking) and not done:
            done.append(instance)
            interfere(self, instance)
        return original_add(self, instance, *args, **kwargs)

    monkeypatch.setattr(Session, "add", add)
    return done


def test_seat_sold_after_the_check_is_already_booked(ledger, showtime, monkeypatch):
    def sell_seat(session, booking):
        session.add(Booking(showtime_id=booking.showtime_id, seat_number=booking.seat_number, user_id="early"))
        session.flush()

    done = before_booking_insert(monkeypatch, sell_seat)

    outcome = ledger.create_booking(showtime.id, 7, "late")

    assert done
    assert outcome.kind is ErrorKind.SEAT_ALREADY_BOOKED
    assert outcome.detail == f"Seat 7 is already booked for showtime with ID {showtime.id}"
    assert ledger.count_bookings(showtime.id).value == 0


def test_showtime_deleted_after_the_check_is_not_found(ledger, scheduler, showtime, monkeypatch):
    def drop_showtime(session, booking):
        session.execute(
            delete(Showtime)
            .where(Showtime.id == booking.showtime_id)
            .execution_options(synchronize_session=False)
        )

    done = before_booking_insert(monkeypatch, drop_showtime)

    outcome = ledger.create_booking(showtime.id, 7, "late")

    assert done
    assert outcome.kind is ErrorKind.SHOWTIME_NOT_FOUND
    assert outcome.detail == f"Showtime with ID {showtime.id} not found"
    # The whole transaction rolled back, the delete included
    assert isinstance(scheduler.get_showtime(showtime.id), Ok)
    assert ledger.count_bookings(showtime.id).value == 0


# HTTP

def test_create_booking_returns_id(client, showtime):
    response = client.post("/bookings", json={"showtimeId": showtime.id, "seatNumber": 1, "userId": "user-1"})

    assert response.status_code == 201
    assert isinstance(response.json(), int)


def test_double_booking_is_409(client, showtime):
    payload = {"showtimeId": showtime.id, "seatNumber": 1, "userId": "user-1"}
    client.post("/bookings", json=payload)

    response = client.post("/bookings", json=payload)

    assert response.status_code == 409
    assert response.json() == {
        "status": 409,
        "error": "Seat Already Booked",
        "message": f"Seat 1 is already booked for showtime with ID {showtime.id}",
    }


def test_booking_unknown_showtime_is_404(client):
    response = client.post("/bookings", json={"showtimeId": 999, "seatNumber": 1, "userId": "user-1"})

    assert response.status_code == 404
    assert response.json()["message"] == "Showtime with ID 999 not found"


def test_booking_validation_messages(client):
    response = client.post("/bookings", json={"seatNumber": 0, "userId": ""})

    assert response.status_code == 400
    assert response.json() == {
        "showtimeId": "Showtime ID is required",
        "seatNumber": "Seat number must be at least 1",
        "userId": "User ID is required",
    }
