# src/catalog_repository/services/movie_service.py
"""
Movie mutations.

Composes the movie repository, the transaction coordinator and the
changeset translator. Every mutation runs in one transaction on the
repository's connection.

Usage:
    service = MovieService(MovieRepository(conn))
    movie = await service.create_movie(MovieCreateInput(name="Alien"), logger)
"""

from datetime import datetime, timezone
from logging import LoggerAdapter
from typing import Optional, Sequence

from catalog_repository.base.changeset import ChangesetTranslator
from catalog_repository.base.exceptions import ConfigurationError
from catalog_repository.base.transaction import TransactionCoordinator
from catalog_repository.base.utils import md5_from_string
from catalog_repository.db_implementations.movie_repository import MovieRepository
from catalog_repository.models.movie import (DEFAULT_MOVIE_IMAGE, Movie,
                                             MovieCreateInput,
                                             MovieDestroyInput,
                                             MovieUpdateInput)

_UPDATABLE_FIELDS = (
    "name",
    "aliases",
    "duration",
    "date",
    "rating",
    "studio_id",
    "director",
    "synopsis",
    "url",
)


class MovieService:
    """
    Service for movie mutations.

    Business rules:
    - The checksum is derived from the name, on create and on rename
    - A movie never stores a back image without a front image; the
      default image stands in for a missing front image
    - The name can be changed but never cleared
    - A batch destroy is all or nothing
    """

    def __init__(
        self,
        repository: MovieRepository,
        coordinator: Optional[TransactionCoordinator] = None,
    ):
        self._repository = repository
        self._coordinator = coordinator or TransactionCoordinator(repository.connection)
        if self._coordinator.connection is not repository.connection:
            raise ValueError("The coordinator and the repository must share one connection.")

    @property
    def repository(self) -> MovieRepository:
        return self._repository

    async def create_movie(self, input: MovieCreateInput, logger: LoggerAdapter) -> Movie:
        front_image = input.front_image
        back_image = input.back_image
        if not front_image and back_image:
            front_image = DEFAULT_MOVIE_IMAGE

        now = datetime.now(timezone.utc)
        new_movie = Movie(
            checksum=md5_from_string(input.name),
            name=input.name,
            aliases=input.aliases,
            duration=input.duration,
            date=input.date,
            rating=input.rating,
            studio_id=input.studio_id,
            director=input.director,
            synopsis=input.synopsis,
            url=input.url,
            created_at=now,
            updated_at=now,
        )

        async with self._coordinator.transaction(logger):
            movie = await self._repository.create(new_movie, logger)
            if front_image:
                await self._repository.update_images(movie.id, front_image, back_image, logger)

        logger.info(f"Movie {movie.id} ('{movie.name}') created.")
        return movie

    async def update_movie(self, input: MovieUpdateInput, logger: LoggerAdapter) -> Movie:
        """
        Apply the fields explicitly set on ``input``.

        Raises:
            ConfigurationError: If the name is set to None.
            NotFoundError: If the movie does not exist.
        """
        translator = ChangesetTranslator.from_input(input)
        values = input.model_dump(include=set(_UPDATABLE_FIELDS))

        if translator.has_field("name") and input.name is None:
            raise ConfigurationError("A movie's name cannot be cleared.")

        patch = translator.translate(values, input.id, fields=_UPDATABLE_FIELDS)
        if patch.is_present("name"):
            patch.set("checksum", md5_from_string(input.name))

        front_included = translator.has_field("front_image")
        back_included = translator.has_field("back_image")

        async with self._coordinator.transaction(logger):
            movie = await self._repository.update(patch, logger)

            if front_included or back_included:
                front_image = input.front_image
                back_image = input.back_image
                if not front_included:
                    front_image = await self._repository.get_front_image(movie.id, logger)
                if not back_included:
                    back_image = await self._repository.get_back_image(movie.id, logger)

                if not front_image and not back_image:
                    await self._repository.destroy_images(movie.id, logger)
                else:
                    await self._repository.update_images(movie.id, front_image, back_image, logger)

        logger.info(f"Movie {movie.id} updated: fields {sorted(translator.present_fields)}")
        return movie

    async def destroy_movie(self, input: MovieDestroyInput, logger: LoggerAdapter) -> bool:
        async with self._coordinator.transaction(logger):
            await self._repository.destroy(input.id, logger)
        return True

    async def destroy_movies(self, ids: Sequence[int], logger: LoggerAdapter) -> bool:
        """Destroy every movie in ``ids`` or, on the first failure, none of them."""
        async with self._coordinator.transaction(logger):
            for movie_id in ids:
                await self._repository.destroy(movie_id, logger)
        logger.info(f"Destroyed {len(ids)} movie(s).")
        return True
