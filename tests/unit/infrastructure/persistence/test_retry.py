"""Tests for lock retry and batch helpers."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from mediashelf.infrastructure.persistence.batch_utils import iter_batches
from mediashelf.infrastructure.persistence.retry import is_lock_error, with_db_retry


def _operational(message: str) -> OperationalError:
    return OperationalError("INSERT ...", {}, Exception(message))


class TestIsLockError:
    """Test lock error detection."""

    def test_locked_and_busy(self) -> None:
        assert is_lock_error(_operational("database is locked")) is True
        assert is_lock_error(_operational("database is BUSY")) is True

    def test_other_errors(self) -> None:
        assert is_lock_error(_operational("no such table: x")) is False
        assert is_lock_error(IntegrityError("INSERT", {}, Exception("locked"))) is False
        assert is_lock_error(ValueError("locked")) is False


class TestWithDbRetry:
    """Test the retry decorator."""

    @staticmethod
    def _flaky(errors: list[Exception]):
        calls: list[int] = []

        async def operation() -> str:
            calls.append(1)
            if errors:
                raise errors.pop(0)
            return "ok"

        return operation, calls

    async def test_retries_lock_errors_then_succeeds(self) -> None:
        operation, calls = self._flaky([_operational("database is locked")])
        wrapped = with_db_retry(max_attempts=3, initial_delay=0.0)(operation)

        with patch("mediashelf.infrastructure.persistence.retry.asyncio.sleep", AsyncMock()):
            assert await wrapped() == "ok"
        assert len(calls) == 2

    async def test_gives_up_after_max_attempts(self) -> None:
        operation, calls = self._flaky([_operational("database is locked")] * 5)
        wrapped = with_db_retry(max_attempts=3, initial_delay=0.0)(operation)

        with patch("mediashelf.infrastructure.persistence.retry.asyncio.sleep", AsyncMock()):
            with pytest.raises(OperationalError):
                await wrapped()
        assert len(calls) == 3

    async def test_other_errors_not_retried(self) -> None:
        operation, calls = self._flaky([_operational("no such table: media_files")])
        wrapped = with_db_retry(max_attempts=3)(operation)

        with pytest.raises(OperationalError):
            await wrapped()
        assert len(calls) == 1


class TestIterBatches:
    """Test batch slicing."""

    def test_slices(self) -> None:
        assert [list(b) for b in iter_batches(list(range(5)), 2)] == [[0, 1], [2, 3], [4]]

    def test_empty(self) -> None:
        assert list(iter_batches([], 100)) == []

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            list(iter_batches([1], 0))
