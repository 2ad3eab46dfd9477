import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import Database, is_unique_violation
from models import Movie, Showtime
from outcomes import Err, ErrorKind, Ok, Outcome

logger = logging.getLogger(__name__)


def _find_by_title(session: Session, title: str) -> Optional[Movie]:
    return session.scalars(select(Movie).where(Movie.title == title)).first()


def _already_exists(title: str) -> Err:
    return Err(ErrorKind.MOVIE_ALREADY_EXISTS, f"Movie with title '{title}' already exists")


def _not_found(title: str) -> Err:
    return Err(ErrorKind.MOVIE_NOT_FOUND, f"Movie with title '{title}' not found")


class MovieRegistry:
    """CRUD over movies, keyed by their unique title."""

    def __init__(self, database: Database):
        self.database = database

    def get_all_movies(self) -> Outcome[List[Movie]]:
        return self.database.run(lambda session: Ok(list(session.scalars(select(Movie).order_by(Movie.id)))))

    def get_movie(self, movie_id: int) -> Outcome[Movie]:
        def work(session: Session):
            movie = session.get(Movie, movie_id)
            if movie is None:
                return Err(ErrorKind.MOVIE_NOT_FOUND, f"Movie with ID {movie_id} not found")
            return Ok(movie)

        return self.database.run(work)

    def add_movie(self, title: str, genre: str, duration: int, rating: float, release_year: int) -> Outcome[Movie]:
        def work(session: Session):
            if _find_by_title(session, title) is not None:
                return _already_exists(title)
            movie = Movie(title=title, genre=genre, duration=duration, rating=rating, release_year=release_year)
            session.add(movie)
            session.flush()
            return Ok(movie)

        outcome = self.database.run(work, on_integrity_error=lambda exc: self._on_conflict(exc, title))
        if isinstance(outcome, Ok):
            logger.info(f"Added movie {outcome.value.title!r} (id={outcome.value.id})")
        return outcome

    def update_movie(self, title: str, genre: str, duration: int, rating: float, release_year: int) -> Outcome[Movie]:
        """Update a movie in place. The title is the key and never changes."""

        def work(session: Session):
            movie = _find_by_title(session, title)
            if movie is None:
                return _not_found(title)
            movie.genre = genre
            movie.duration = duration
            movie.rating = rating
            movie.release_year = release_year
            session.flush()
            return Ok(movie)

        return self.database.run(work)

    def delete_movie(self, title: str) -> Outcome[None]:
        def work(session: Session):
            movie = _find_by_title(session, title)
            if movie is None:
                return _not_found(title)
            scheduled = session.scalar(select(func.count(Showtime.id)).where(Showtime.movie_id == movie.id))
            if scheduled:
                return Err(
                    ErrorKind.MOVIE_IN_USE,
                    f"Movie with title '{title}' still has {scheduled} showtime(s) scheduled",
                )
            session.delete(movie)
            session.flush()
            return Ok(None)

        outcome = self.database.run(work, on_integrity_error=lambda exc: self._on_delete_conflict(exc, title))
        if isinstance(outcome, Ok):
            logger.info(f"Deleted movie {title!r}")
        return outcome

    @staticmethod
    def _on_conflict(exc: IntegrityError, title: str) -> Err:
        if is_unique_violation(exc):
            return _already_exists(title)
        raise exc

    @staticmethod
    def _on_delete_conflict(exc: IntegrityError, title: str) -> Err:
        # A showtime was scheduled between the check and the delete
        return Err(ErrorKind.MOVIE_IN_USE, f"Movie with title '{title}' is referenced by a showtime")
