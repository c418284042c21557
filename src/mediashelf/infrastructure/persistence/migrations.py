# Hey future me - this is the runtime schema ladder! There is no alembic revision tree here:
# the store lives on the user's device and has to upgrade itself the moment it is opened.
# We still use alembic's Operations API (op.add_column, op.create_table, ...) on a runtime
# MigrationContext, so every step reads like a regular alembic upgrade().
#
# RULES:
# 1. Steps run in strict ascending order, each in its own transaction together with the
#    schema_version bump.
# 2. Every step is IDEMPOTENT - it inspects the live schema before touching it. A store that
#    was half-migrated, or recreated by hand, must survive a re-run.
# 3. Versions only move forward. A store newer than this code is left alone.
# 4. The store is never left without a schema_version row.
"""Schema migrator: brings an existing store forward to CURRENT_SCHEMA_VERSION."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from mediashelf.domain.exceptions import MigrationError

if TYPE_CHECKING:
    from mediashelf.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 5
BASE_SCHEMA_VERSION = 1


def _has_table(conn: Connection, table: str) -> bool:
    return sa.inspect(conn).has_table(table)


def _columns(conn: Connection, table: str) -> set[str]:
    return {col["name"] for col in sa.inspect(conn).get_columns(table)}


def _indexes(conn: Connection, table: str) -> set[str]:
    return {idx["name"] for idx in sa.inspect(conn).get_indexes(table) if idx["name"]}


def read_version(conn: Connection) -> int | None:
    """Read the recorded schema version, or None if the store has none."""
    if not _has_table(conn, "schema_version"):
        return None
    return conn.execute(sa.text("SELECT MAX(version) FROM schema_version")).scalar()


def write_version(conn: Connection, version: int) -> None:
    """Replace the single schema_version row."""
    conn.execute(sa.text("DELETE FROM schema_version"))
    conn.execute(
        sa.text("INSERT INTO schema_version (version) VALUES (:version)"),
        {"version": version},
    )


# =============================================================================
# VERSION 1 - minimal structure
# =============================================================================


def create_base_structure(op: Operations, conn: Connection) -> None:
    """Create the v1 tables that are missing (media_files, folders, cache_metadata)."""
    if not _has_table(conn, "media_files"):
        op.create_table(
            "media_files",
            sa.Column("id", sa.Text(), primary_key=True),
            sa.Column("path", sa.Text(), nullable=False, unique=True),
            sa.Column("name", sa.Text(), nullable=True),
            sa.Column("size", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("type", sa.String(10), nullable=False),
            sa.Column("extension", sa.String(16), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("idx_media_type", "media_files", ["type"])
        op.create_index("idx_media_name", "media_files", ["name"])

    if not _has_table(conn, "folders"):
        op.create_table(
            "folders",
            sa.Column("path", sa.Text(), primary_key=True),
            sa.Column("is_custom", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )

    if not _has_table(conn, "cache_metadata"):
        op.create_table(
            "cache_metadata",
            sa.Column("key", sa.Text(), primary_key=True),
            sa.Column("value", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )

    # An unreadable version table (wrong shape) is rebuilt, never kept
    if _has_table(conn, "schema_version") and "version" not in _columns(
        conn, "schema_version"
    ):
        op.drop_table("schema_version")
    if not _has_table(conn, "schema_version"):
        op.create_table(
            "schema_version",
            sa.Column("version", sa.Integer(), primary_key=True),
        )


# =============================================================================
# LADDER STEPS
# =============================================================================


def add_updated_at(op: Operations, conn: Connection) -> None:
    """v2: updated_at tracking column, backfilled from created_at."""
    if "updated_at" not in _columns(conn, "media_files"):
        op.add_column("media_files", sa.Column("updated_at", sa.DateTime(), nullable=True))
    # Runs even when the column already exists: finishes a half-applied backfill
    op.execute(
        sa.text("UPDATE media_files SET updated_at = created_at WHERE updated_at IS NULL")
    )
    if "idx_media_updated" not in _indexes(conn, "media_files"):
        op.create_index("idx_media_updated", "media_files", ["updated_at"])


def add_title(op: Operations, conn: Connection) -> None:
    """v3: title column, backfilled from name."""
    if "title" not in _columns(conn, "media_files"):
        op.add_column("media_files", sa.Column("title", sa.Text(), nullable=True))
    op.execute(sa.text("UPDATE media_files SET title = name WHERE title IS NULL"))


def create_favorites(op: Operations, conn: Connection) -> None:
    """v4: favorites table cascading with media_files."""
    if _has_table(conn, "favorites"):
        return
    op.create_table(
        "favorites",
        sa.Column("media_id", sa.Text(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["media_id"],
            ["media_files.id"],
            name="fk_favorites_media",
            ondelete="CASCADE",
        ),
    )


def create_playlists(op: Operations, conn: Connection) -> None:
    """v5: playlists + playlist_items with a cascading foreign key chain."""
    if not _has_table(conn, "playlists"):
        op.create_table(
            "playlists",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("cover_image", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )

    if not _has_table(conn, "playlist_items"):
        op.create_table(
            "playlist_items",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("playlist_id", sa.String(36), nullable=False),
            sa.Column("media_id", sa.Text(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("added_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(
                ["playlist_id"],
                ["playlists.id"],
                name="fk_playlist_items_playlist",
                ondelete="CASCADE",
            ),
            sa.ForeignKeyConstraint(
                ["media_id"],
                ["media_files.id"],
                name="fk_playlist_items_media",
                ondelete="CASCADE",
            ),
            sa.UniqueConstraint(
                "playlist_id", "position", name="uq_playlist_items_position"
            ),
        )
        op.create_index(
            "idx_playlist_items_playlist", "playlist_items", ["playlist_id"]
        )


@dataclass(frozen=True)
class MigrationStep:
    """One rung of the ladder."""

    version: int
    description: str
    apply: Callable[[Operations, Connection], None]


MIGRATION_STEPS: tuple[MigrationStep, ...] = (
    MigrationStep(2, "add updated_at to media_files", add_updated_at),
    MigrationStep(3, "add title to media_files", add_title),
    MigrationStep(4, "create favorites", create_favorites),
    MigrationStep(5, "create playlists and playlist_items", create_playlists),
)


class SchemaMigrator:
    """Applies MIGRATION_STEPS from the recorded version up to target_version."""

    def __init__(
        self,
        target_version: int = CURRENT_SCHEMA_VERSION,
        steps: tuple[MigrationStep, ...] = MIGRATION_STEPS,
    ) -> None:
        self.target_version = target_version
        self.steps = tuple(sorted(steps, key=lambda s: s.version))

    async def open(self, database: Database) -> int:
        """Bring the store forward and return the resulting schema version.

        Raises:
            MigrationError: if a forward step (or the v1 fallback) fails.
        """
        engine = database.engine

        try:
            async with engine.begin() as conn:
                version = await conn.run_sync(read_version)
        except SQLAlchemyError as e:
            # Hey future me - corrupt or half-created store. Not fatal: we rebuild the v1
            # skeleton (existing tables are kept) and let the ladder run.
            logger.warning("Schema version check failed, rebuilding v1 structure: %s", e)
            version = None

        if version is None:
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(self._create_base)
            except SQLAlchemyError as e:
                raise MigrationError(BASE_SCHEMA_VERSION, str(e)) from e
            version = BASE_SCHEMA_VERSION
            logger.info("Initialized store at schema v%d", version)

        if version > self.target_version:
            logger.warning(
                "Store schema v%d is newer than supported v%d, leaving it untouched",
                version,
                self.target_version,
            )
            return version

        for step in self.steps:
            if step.version <= version or step.version > self.target_version:
                continue
            logger.info("Migrating schema v%d -> v%d: %s", version, step.version, step.description)
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(self._apply_step, step)
            except SQLAlchemyError as e:
                logger.error("Migration to v%d failed: %s", step.version, e)
                raise MigrationError(step.version, str(e)) from e
            version = step.version

        logger.debug("Store at schema v%d", version)
        return version

    @staticmethod
    def _operations(conn: Connection) -> Operations:
        return Operations(MigrationContext.configure(connection=conn))

    def _create_base(self, conn: Connection) -> None:
        create_base_structure(self._operations(conn), conn)
        write_version(conn, BASE_SCHEMA_VERSION)

    def _apply_step(self, conn: Connection, step: MigrationStep) -> None:
        step.apply(self._operations(conn), conn)
        write_version(conn, step.version)
