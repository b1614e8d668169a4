# tests/test_movie_service.py

from datetime import date

import pytest

from catalog_repository.base.exceptions import (
    ConfigurationError,
    KeyAlreadyExistsError,
    NotFoundError,
    StorageError,
)
from catalog_repository.base.transaction import TransactionCoordinator
from catalog_repository.base.utils import md5_from_string
from catalog_repository.models.movie import (
    DEFAULT_MOVIE_IMAGE,
    MovieCreateInput,
    MovieDestroyInput,
    MovieUpdateInput,
)
from catalog_repository.services.movie_service import MovieService
from catalog_repository.sqlite.extensions import connect
from tests.conftest import count_rows, insert_scene, insert_studio, link_scene


# =============================================================================
# create_movie
# =============================================================================


async def test_create_movie(movie_service, catalog_db, logger):
    studio_id = await insert_studio(catalog_db, "S")
    movie = await movie_service.create_movie(
        MovieCreateInput(name="Alien", date=date(1979, 5, 25), rating=5, studio_id=studio_id),
        logger,
    )
    assert movie.id is not None
    assert movie.checksum == md5_from_string("Alien")
    assert movie.studio_id == studio_id
    assert movie.created_at == movie.updated_at
    # no images given: no sidecar row
    assert await count_rows(catalog_db, "movies_images") == 0


async def test_create_movie_with_both_images(movie_service, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", front_image=b"front", back_image=b"back"), logger
    )
    repo = movie_service.repository
    assert await repo.get_front_image(movie.id, logger) == b"front"
    assert await repo.get_back_image(movie.id, logger) == b"back"


async def test_create_movie_with_only_back_image_uses_default_front(movie_service, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", back_image=b"back"), logger
    )
    repo = movie_service.repository
    assert await repo.get_front_image(movie.id, logger) == DEFAULT_MOVIE_IMAGE
    assert await repo.get_back_image(movie.id, logger) == b"back"


async def test_create_movie_duplicate_name_rolls_back(movie_service, catalog_db, logger):
    await movie_service.create_movie(MovieCreateInput(name="A"), logger)
    with pytest.raises(KeyAlreadyExistsError):
        await movie_service.create_movie(MovieCreateInput(name="A", front_image=b"f"), logger)
    assert await count_rows(catalog_db, "movies") == 1
    assert await count_rows(catalog_db, "movies_images") == 0
    assert not catalog_db.in_transaction


def test_create_input_rejects_blank_name():
    with pytest.raises(ValueError):
        MovieCreateInput(name="   ")


# =============================================================================
# update_movie
# =============================================================================


async def test_update_movie_absent_vs_null(movie_service, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", rating=5, director="X"), logger
    )

    updated = await movie_service.update_movie(MovieUpdateInput(id=movie.id, director="Y"), logger)
    assert updated.rating == 5
    assert updated.director == "Y"

    updated = await movie_service.update_movie(MovieUpdateInput(id=movie.id, rating=None), logger)
    assert updated.rating is None
    assert updated.director == "Y"
    assert updated.name == "A"


async def test_update_movie_rename_updates_checksum(movie_service, logger):
    movie = await movie_service.create_movie(MovieCreateInput(name="A"), logger)
    updated = await movie_service.update_movie(MovieUpdateInput(id=movie.id, name="B"), logger)
    assert updated.name == "B"
    assert updated.checksum == md5_from_string("B")


async def test_update_movie_cannot_clear_name(movie_service, logger):
    movie = await movie_service.create_movie(MovieCreateInput(name="A"), logger)
    with pytest.raises(ConfigurationError):
        await movie_service.update_movie(MovieUpdateInput(id=movie.id, name=None), logger)


async def test_update_missing_movie(movie_service, catalog_db, logger):
    with pytest.raises(NotFoundError):
        await movie_service.update_movie(MovieUpdateInput(id=999, rating=1), logger)
    assert not catalog_db.in_transaction


async def test_update_without_image_fields_keeps_images(movie_service, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", front_image=b"front", back_image=b"back"), logger
    )
    await movie_service.update_movie(MovieUpdateInput(id=movie.id, rating=2), logger)
    repo = movie_service.repository
    assert await repo.get_front_image(movie.id, logger) == b"front"
    assert await repo.get_back_image(movie.id, logger) == b"back"


async def test_update_one_image_keeps_the_other(movie_service, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", front_image=b"front", back_image=b"back"), logger
    )
    await movie_service.update_movie(MovieUpdateInput(id=movie.id, back_image=b"back2"), logger)
    repo = movie_service.repository
    assert await repo.get_front_image(movie.id, logger) == b"front"
    assert await repo.get_back_image(movie.id, logger) == b"back2"


async def test_update_clearing_front_image_with_back_present_uses_default(movie_service, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", front_image=b"front", back_image=b"back"), logger
    )
    await movie_service.update_movie(MovieUpdateInput(id=movie.id, front_image=None), logger)
    repo = movie_service.repository
    assert await repo.get_front_image(movie.id, logger) == DEFAULT_MOVIE_IMAGE
    assert await repo.get_back_image(movie.id, logger) == b"back"


async def test_update_clearing_both_images_destroys_the_row(movie_service, catalog_db, logger):
    movie = await movie_service.create_movie(
        MovieCreateInput(name="A", front_image=b"front", back_image=b"back"), logger
    )
    await movie_service.update_movie(
        MovieUpdateInput(id=movie.id, front_image=None, back_image=None), logger
    )
    assert await count_rows(catalog_db, "movies_images") == 0


async def test_update_adds_images_to_a_movie_without_any(movie_service, logger):
    movie = await movie_service.create_movie(MovieCreateInput(name="A"), logger)
    await movie_service.update_movie(MovieUpdateInput(id=movie.id, back_image=b"back"), logger)
    repo = movie_service.repository
    assert await repo.get_front_image(movie.id, logger) == DEFAULT_MOVIE_IMAGE
    assert await repo.get_back_image(movie.id, logger) == b"back"


# =============================================================================
# destroy_movie / destroy_movies
# =============================================================================


async def test_destroy_movie(movie_service, catalog_db, logger):
    movie = await movie_service.create_movie(MovieCreateInput(name="A", front_image=b"f"), logger)
    scene_id = await insert_scene(catalog_db)
    await link_scene(catalog_db, movie.id, scene_id)

    assert await movie_service.destroy_movie(MovieDestroyInput(id=movie.id), logger) is True
    assert await movie_service.repository.find(movie.id, logger) is None
    assert await count_rows(catalog_db, "movies_scenes") == 0
    assert await count_rows(catalog_db, "movies_images") == 0


async def test_destroy_movies(movie_service, logger):
    ids = [
        (await movie_service.create_movie(MovieCreateInput(name=n), logger)).id
        for n in ("A", "B", "C")
    ]
    assert await movie_service.destroy_movies(ids[:2], logger) is True
    remaining = await movie_service.repository.all(logger)
    assert [m.name for m in remaining] == ["C"]


async def test_destroy_movies_aborts_whole_batch(movie_service, catalog_db, logger):
    ids = [
        (await movie_service.create_movie(MovieCreateInput(name=n), logger)).id
        for n in ("A", "B", "C")
    ]
    await catalog_db.execute(
        f"""
        CREATE TRIGGER "guard" BEFORE DELETE ON "movies" WHEN OLD."id" = {ids[1]}
        BEGIN SELECT RAISE(ABORT, 'protected'); END
        """
    )

    with pytest.raises(StorageError):
        await movie_service.destroy_movies(ids, logger)
    # the first delete was rolled back too
    assert await movie_service.repository.find(ids[0], logger) is not None
    assert await movie_service.repository.count(logger) == 3


async def test_service_requires_a_shared_connection(movie_repository):
    other_conn = await connect(":memory:")
    try:
        with pytest.raises(ValueError):
            MovieService(movie_repository, TransactionCoordinator(other_conn))
    finally:
        await other_conn.close()
