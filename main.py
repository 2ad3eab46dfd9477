import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookings import BookingLedger
from config import Settings, configure_logging
from database import Database
from movies import MovieRegistry
from outcomes import Err, ErrorKind
from schemas import (
    BookingIn,
    ErrorOut,
    MessageOut,
    MovieIn,
    MovieOut,
    ShowtimeIn,
    ShowtimeOut,
    describe_validation_errors,
)
from showtimes import ShowtimeScheduler

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.MOVIE_NOT_FOUND: 404,
    ErrorKind.SHOWTIME_NOT_FOUND: 404,
    ErrorKind.BOOKING_NOT_FOUND: 404,
    ErrorKind.MOVIE_ALREADY_EXISTS: 409,
    ErrorKind.OVERLAPPING_SHOWTIME: 409,
    ErrorKind.SEAT_ALREADY_BOOKED: 409,
    ErrorKind.MOVIE_IN_USE: 409,
    ErrorKind.SHOWTIME_IN_USE: 409,
    ErrorKind.INVALID_INTERVAL: 400,
    ErrorKind.TRANSIENT_FAILURE: 503,
}


def error_response(err: Err) -> JSONResponse:
    status = STATUS_BY_KIND[err.kind]
    body = ErrorOut(status=status, error=err.kind.value, message=err.detail)
    return JSONResponse(status_code=status, content=body.model_dump())


# Components live on app.state; routes reach them through these dependencies

def get_registry(request: Request) -> MovieRegistry:
    return request.app.state.registry


def get_scheduler(request: Request) -> ShowtimeScheduler:
    return request.app.state.scheduler


def get_ledger(request: Request) -> BookingLedger:
    return request.app.state.ledger


router = APIRouter()


@router.get("/")
def read_root():
    return {"message": "Cinema Booking Backend Ready"}


@router.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "dialect": None,
        "connection_status": "Not Connected",
        "tables": [],
    }
    database: Database = request.app.state.database
    try:
        info = database.describe()
        response["database"] = "✅ Connected & Working"
        response["dialect"] = info["dialect"]
        response["connection_status"] = "Connected"
        response["tables"] = info["tables"]
    except Exception as e:
        logger.warning(f"Database check failed: {e!r}")
        response["database"] = f"❌ Error: {type(e).__name__}"
    return response


# Movies
@router.get("/movies/all", response_model=List[MovieOut])
def get_all_movies(registry: MovieRegistry = Depends(get_registry)):
    outcome = registry.get_all_movies()
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value


@router.post("/movies", response_model=MovieOut)
def add_movie(movie: MovieIn, registry: MovieRegistry = Depends(get_registry)):
    outcome = registry.add_movie(movie.title, movie.genre, movie.duration, movie.rating, movie.release_year)
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value


@router.post("/movies/update/{title}", response_model=MovieOut)
def update_movie(title: str, movie: MovieIn, registry: MovieRegistry = Depends(get_registry)):
    outcome = registry.update_movie(title, movie.genre, movie.duration, movie.rating, movie.release_year)
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value


@router.delete("/movies/{title}")
def delete_movie(title: str, registry: MovieRegistry = Depends(get_registry)):
    outcome = registry.delete_movie(title)
    if isinstance(outcome, Err):
        return error_response(outcome)
    return Response(status_code=200)


# Showtimes
@router.get("/showtimes/{showtime_id}", response_model=ShowtimeOut)
def get_showtime(showtime_id: int, scheduler: ShowtimeScheduler = Depends(get_scheduler)):
    outcome = scheduler.get_showtime(showtime_id)
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value


@router.post("/showtimes", response_model=ShowtimeOut, status_code=201)
def add_showtime(showtime: ShowtimeIn, scheduler: ShowtimeScheduler = Depends(get_scheduler)):
    outcome = scheduler.add_showtime(
        showtime.movie_id, showtime.theater, showtime.start_time, showtime.end_time, showtime.price
    )
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value


@router.post("/showtimes/update/{showtime_id}", response_model=ShowtimeOut)
def update_showtime(showtime_id: int, showtime: ShowtimeIn, scheduler: ShowtimeScheduler = Depends(get_scheduler)):
    outcome = scheduler.update_showtime(
        showtime_id, showtime.movie_id, showtime.theater, showtime.start_time, showtime.end_time, showtime.price
    )
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value


@router.delete("/showtimes/{showtime_id}", response_model=MessageOut)
def delete_showtime(showtime_id: int, scheduler: ShowtimeScheduler = Depends(get_scheduler)):
    outcome = scheduler.delete_showtime(showtime_id)
    if isinstance(outcome, Err):
        return error_response(outcome)
    return MessageOut(message=f"Showtime with id {showtime_id} was deleted successfully.")


# Booking
@router.post("/bookings", response_model=int, status_code=201)
def create_booking(booking: BookingIn, ledger: BookingLedger = Depends(get_ledger)):
    outcome = ledger.create_booking(booking.showtime_id, booking.seat_number, booking.user_id)
    if isinstance(outcome, Err):
        return error_response(outcome)
    return outcome.value.id


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=describe_validation_errors(exc.errors()))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    body = ErrorOut(status=500, error="Internal Server Error", message="An unexpected error occurred")
    return JSONResponse(status_code=500, content=body.model_dump())


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the database, the three components and the FastAPI app around them."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    database = database or Database.from_settings(settings)
    database.create_schema()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        database.dispose()

    app = FastAPI(title="Cinema Booking Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.registry = MovieRegistry(database)
    app.state.scheduler = ShowtimeScheduler(database)
    app.state.ledger = BookingLedger(database)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)

    logger.info(f"Cinema Booking Backend ready on {database.dialect}")
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
