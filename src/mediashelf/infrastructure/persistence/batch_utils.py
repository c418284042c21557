# Hey future me - these are the tools for keeping SQLite write locks SHORT!
#
# SQLite locks the whole database on every write transaction. Inserting 20k media rows in
# one transaction holds that lock (and the row buffer) for the entire duration. Instead we
# commit every `batch_size` rows, and sleep a tick every few batches so readers on the same
# event loop get a turn.
#
# Unlike a "best effort" importer, a failed batch ABORTS: the caller gets CacheWriteError
# and decides what to do with the rows already committed.
"""Batch write utilities for bounded transaction size."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import Executable
from sqlalchemy.exc import SQLAlchemyError

from mediashelf.domain.exceptions import CacheWriteError

if TYPE_CHECKING:
    from mediashelf.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most batch_size items."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]


async def batch_execute(
    db: Database,
    statement: Executable,
    rows: Sequence[dict[str, Any]],
    batch_size: int = 100,
    breather_interval: int = 5,
    breather_delay: float = 0.01,
) -> int:
    """Execute an executemany-style statement in batches, one transaction each.

    Args:
        db: Database providing session scopes
        statement: Statement executed with each batch of parameter dicts
        rows: Parameter dicts
        batch_size: Rows per transaction (default: 100)
        breather_interval: Batches between brief pauses (default: 5)
        breather_delay: Seconds to sleep at each pause

    Returns:
        Number of batches committed

    Raises:
        CacheWriteError: on the first failed batch; later batches are not attempted
    """
    total_batches = (len(rows) + batch_size - 1) // batch_size
    committed = 0

    for index, batch in enumerate(iter_batches(rows, batch_size)):
        try:
            async with db.session_scope() as session:
                await session.execute(statement, list(batch))
        except SQLAlchemyError as e:
            logger.error(
                "Batch %d/%d failed after %d committed batches: %s",
                index + 1,
                total_batches,
                committed,
                e,
            )
            raise CacheWriteError(
                f"Batch {index + 1}/{total_batches} failed: {e}", batch_index=index
            ) from e

        committed += 1
        if committed % 5 == 0 or committed == total_batches:
            logger.debug(
                "Batch progress: %d/%d (%d rows)",
                committed,
                total_batches,
                min(committed * batch_size, len(rows)),
            )
        if breather_interval and committed % breather_interval == 0:
            await asyncio.sleep(breather_delay)

    return committed
