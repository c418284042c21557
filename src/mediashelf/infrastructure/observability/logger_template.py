"""Shared logger helpers.

USAGE:
    logger = logging.getLogger(__name__)

    async with log_operation(logger, "library.full_scan", roots=len(roots)):
        await run_scan()
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, this logs {operation}.started / .completed / .failed with duration_ms. On failure it
# logs with exc_info and re-raises - it never swallows.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Context manager for logging operation start/end with automatic timing.

    The yielded dict is merged into the completion log, so the body can
    attach results (e.g. ``ctx["records"] = 1200``).

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "library.full_scan")
        **context: Additional fields to include in logs
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)
    result_fields: dict[str, Any] = {}

    try:
        yield result_fields
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, **result_fields, "duration_ms": duration_ms},
    )
