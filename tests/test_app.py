from fastapi.testclient import TestClient

from config import Settings
from main import STATUS_BY_KIND, create_app
from outcomes import Err, ErrorKind


def test_every_error_kind_has_a_status():
    assert set(STATUS_BY_KIND) == set(ErrorKind)


def test_root(client):
    assert client.get("/").json() == {"message": "Cinema Booking Backend Ready"}


def test_database_report(client):
    report = client.get("/test").json()

    assert report["connection_status"] == "Connected"
    assert report["dialect"] == "sqlite"
    assert "bookings" in report["tables"]


def test_unexpected_error_is_generic_500(database, monkeypatch):
    app = create_app(Settings(log_level="WARNING"), database=database)

    def explode():
        raise RuntimeError("sqlite3 internals leaked")

    monkeypatch.setattr(app.state.registry, "get_all_movies", explode)
    client = TestClient(app, raise_server_exceptions=False)

    response = client.get("/movies/all")

    assert response.status_code == 500
    assert response.json() == {
        "status": 500,
        "error": "Internal Server Error",
        "message": "An unexpected error occurred",
    }


def test_transient_failure_is_503(database, monkeypatch, showtime):
    app = create_app(Settings(log_level="WARNING"), database=database)
    monkeypatch.setattr(
        app.state.ledger, "create_booking", lambda *args: Err(ErrorKind.TRANSIENT_FAILURE, "please retry")
    )

    response = TestClient(app).post("/bookings", json={"showtimeId": showtime.id, "seatNumber": 1, "userId": "u"})

    assert response.status_code == 503
    assert response.json()["error"] == "Service Unavailable"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./elsewhere.db")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")
    monkeypatch.setenv("STORE_RETRY_ATTEMPTS", "0")

    settings = Settings.from_env()

    assert settings.database_url == "sqlite:///./elsewhere.db"
    assert settings.port == 9000
    assert settings.cors_origins == ["http://a.example", "http://b.example"]
    assert settings.store_retry_attempts == 1
