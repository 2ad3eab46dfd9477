from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from bookings import BookingLedger
from config import Settings
from database import Database
from main import create_app
from movies import MovieRegistry
from showtimes import ShowtimeScheduler


@pytest.fixture
def database(tmp_path):
    # A file database so that every thread gets its own connection
    db = Database(f"sqlite:///{tmp_path / 'cinema.db'}", retry_attempts=5, retry_delay=0.01, timeout=30.0)
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def registry(database):
    return MovieRegistry(database)


@pytest.fixture
def scheduler(database):
    return ShowtimeScheduler(database)


@pytest.fixture
def ledger(database):
    return BookingLedger(database)


@pytest.fixture
def client(database):
    settings = Settings(database_url=str(database.engine.url), log_level="WARNING")
    return TestClient(create_app(settings, database=database))


@pytest.fixture
def base_time():
    """Top of the hour, one day ahead, in UTC."""
    now = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    return now + timedelta(days=1)


@pytest.fixture
def movie(registry):
    return registry.add_movie("Inception", "Sci-Fi", 148, 8.8, 2010).value


@pytest.fixture
def showtime(scheduler, movie, base_time):
    return scheduler.add_showtime(
        movie.id, "Theater 1", base_time + timedelta(hours=1), base_time + timedelta(hours=3), 12.99
    ).value


def movie_payload(**overrides):
    payload = {"title": "Inception", "genre": "Sci-Fi", "duration": 148, "rating": 8.8, "releaseYear": 2010}
    payload.update(overrides)
    return payload


def showtime_payload(movie_id, start, end, theater="Theater 1", price=12.99):
    return {
        "movieId": movie_id,
        "theater": theater,
        "startTime": start.isoformat(),
        "endTime": end.isoformat(),
        "price": price,
    }
