# src/catalog_repository/db_implementations/movie_repository.py

from logging import LoggerAdapter
from typing import List, Optional

import aiosqlite

from catalog_repository.base.assembler import build_sort
from catalog_repository.base.criteria import Join, MissingTarget, Relation
from catalog_repository.base.query import Column, SqlParam, quote_identifier
from catalog_repository.config import CatalogSettings
from catalog_repository.db_implementations.sqlite_repository import SqliteRepository
from catalog_repository.models.movie import (DEFAULT_MOVIE_IMAGE, Movie,
                                             MovieFilter, MovieSlim)

MOVIES_TABLE = "movies"
MOVIES_SCENES_TABLE = "movies_scenes"
MOVIES_IMAGES_TABLE = "movies_images"

MOVIE_RELATIONS = (
    Relation(name="studios", foreign_key="studio_id"),
    Relation(
        name="scenes",
        foreign_key="scene_id",
        join_table=MOVIES_SCENES_TABLE,
        join_alias="scenes_join",
        owner_key="movie_id",
    ),
)

_IMAGES_JOIN = Join(
    MOVIES_IMAGES_TABLE,
    MOVIES_IMAGES_TABLE,
    (Column(MOVIES_IMAGES_TABLE, "movie_id"), Column(MOVIES_TABLE, "id")),
)

MOVIE_MISSING_TARGETS = {
    "front_image": MissingTarget(Column(MOVIES_IMAGES_TABLE, "front_image"), _IMAGES_JOIN),
    "back_image": MissingTarget(Column(MOVIES_IMAGES_TABLE, "back_image"), _IMAGES_JOIN),
    "scenes": MissingTarget(
        Column(MOVIES_SCENES_TABLE, "scene_id"),
        Join(
            MOVIES_SCENES_TABLE,
            MOVIES_SCENES_TABLE,
            (Column(MOVIES_SCENES_TABLE, "movie_id"), Column(MOVIES_TABLE, "id")),
        ),
    ),
    "studio": MissingTarget(Column(MOVIES_TABLE, "studio_id")),
}


class MovieRepository(SqliteRepository[Movie, MovieFilter]):
    """
    Movies, their scene links and their cover images.

    Cover images live in the ``movies_images`` sidecar table, one row per
    movie. A stored row never has a back image without a front image.
    """

    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        settings: Optional[CatalogSettings] = None,
    ):
        super().__init__(
            db_connection,
            table_name=MOVIES_TABLE,
            entity_type=Movie,
            primary_key="id",
            name_column="name",
            relations=MOVIE_RELATIONS,
            search_columns=("name",),
            missing_targets=MOVIE_MISSING_TARGETS,
            natural_columns=("name",),
            sidecar_tables={MOVIES_IMAGES_TABLE: "movie_id"},
            settings=settings,
        )

    async def find_by_scene_id(self, scene_id: int, logger: LoggerAdapter) -> List[Movie]:
        """Movies linked to the scene; an unknown scene gives an empty list."""
        sql = (
            f"{self._select_sql()} "
            f'LEFT JOIN "{MOVIES_SCENES_TABLE}" AS "scenes_join" '
            f'ON "scenes_join"."movie_id" = "movies"."id" '
            f'WHERE "scenes_join"."scene_id" = ? '
            f'GROUP BY "movies"."id"'
        )
        rows = await self._fetch_all(
            sql, [SqlParam.of(scene_id)], logger, f"finding movies for scene {scene_id}"
        )
        return [self._deserialize_record(r) for r in rows]

    async def all_slim(self, logger: LoggerAdapter) -> List[MovieSlim]:
        """Every movie's id and name, in the default sort order."""
        sort = build_sort(
            self._table_name,
            None,
            self._columns,
            default_sort=self._default_sort,
            natural_columns=self._natural_columns,
        )
        sql = f'SELECT "movies"."id", "movies"."name" FROM "movies" {sort.to_sql()}'
        rows = await self._fetch_all(sql, [], logger, "listing slim movies")
        return [MovieSlim(id=r["id"], name=r["name"]) for r in rows]

    # --- Cover images ---
    async def update_images(
        self,
        movie_id: int,
        front_image: Optional[bytes],
        back_image: Optional[bytes],
        logger: LoggerAdapter,
    ) -> None:
        """
        Replace the movie's cover images.

        The existing row is always deleted and a new one inserted. An empty
        front image next to a back image is stored as DEFAULT_MOVIE_IMAGE.
        Run inside the caller's transaction.
        """
        if not front_image and back_image:
            logger.debug(f"Movie {movie_id}: back image without front image, using default front.")
            front_image = DEFAULT_MOVIE_IMAGE

        await self.destroy_images(movie_id, logger)
        sql = (
            f"INSERT INTO {quote_identifier(MOVIES_IMAGES_TABLE)} "
            f'("movie_id", "front_image", "back_image") VALUES (?, ?, ?)'
        )
        params = [SqlParam.of(movie_id), SqlParam.of(front_image), SqlParam.of(back_image)]
        await self._execute(sql, params, logger, f"storing images for movie {movie_id}")
        logger.info(f"Stored cover images for movie {movie_id}. (Commit handled externally)")

    async def destroy_images(self, movie_id: int, logger: LoggerAdapter) -> None:
        await self._delete_where(MOVIES_IMAGES_TABLE, "movie_id", movie_id, logger)

    async def get_front_image(self, movie_id: int, logger: LoggerAdapter) -> Optional[bytes]:
        return await self._get_image("front_image", movie_id, logger)

    async def get_back_image(self, movie_id: int, logger: LoggerAdapter) -> Optional[bytes]:
        return await self._get_image("back_image", movie_id, logger)

    async def _get_image(
        self, column: str, movie_id: int, logger: LoggerAdapter
    ) -> Optional[bytes]:
        # No sidecar row is not an error
        sql = (
            f"SELECT {quote_identifier(column)} FROM {quote_identifier(MOVIES_IMAGES_TABLE)} "
            f'WHERE "movie_id" = ?'
        )
        row = await self._fetch_one(
            sql, [SqlParam.of(movie_id)], logger, f"reading {column} of movie {movie_id}"
        )
        if row is None:
            return None
        return row[0]
