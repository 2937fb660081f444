"""
Unit tests for the asset importers and the retry strategy.
"""

import sys

import pytest

from buildsync.host import CommandImporter, LoggingImporter, create_importer
from buildsync.models.config import ImporterConfig
from buildsync.validation import ImporterBusyError, ProcessExitError, async_retry


def python_command(code: str):
    return [sys.executable, "-c", code]


@pytest.mark.unit
class TestImporters:
    """Test cases for the importer implementations."""

    @pytest.mark.asyncio
    async def test_logging_importer_records_paths(self):
        importer = LoggingImporter()

        await importer.refresh(["/p/a.dll", "/p/b.dll"])

        assert importer.refreshed == [["/p/a.dll", "/p/b.dll"]]

    @pytest.mark.asyncio
    async def test_command_importer_passes_paths(self, temp_dir):
        record = temp_dir / "args.txt"
        importer = CommandImporter(python_command(
            f"import sys; open({str(record)!r}, 'w').write('\\n'.join(sys.argv[1:]))"
        ))

        await importer.refresh(["/p/a.dll", "/p/b.dll"])

        assert record.read_text().splitlines() == ["/p/a.dll", "/p/b.dll"]

    @pytest.mark.asyncio
    async def test_command_importer_busy(self):
        importer = CommandImporter(python_command("import sys; sys.exit(75)"), busy_exit_code=75)

        with pytest.raises(ImporterBusyError):
            await importer.refresh(["/p/a.dll"])

    @pytest.mark.asyncio
    async def test_command_importer_failure(self):
        importer = CommandImporter(python_command("import sys; print('bad', file=sys.stderr); sys.exit(2)"))

        with pytest.raises(ProcessExitError) as exc_info:
            await importer.refresh(["/p/a.dll"])

        assert exc_info.value.returncode == 2

    def test_command_importer_requires_command(self):
        with pytest.raises(ValueError):
            CommandImporter([])

    def test_create_importer(self):
        assert isinstance(create_importer(None), LoggingImporter)
        assert isinstance(create_importer(ImporterConfig()), LoggingImporter)

        importer = create_importer(ImporterConfig(command=["refresh"], busy_exit_code=9))
        assert isinstance(importer, CommandImporter)
        assert importer.busy_exit_code == 9


@pytest.mark.unit
class TestAsyncRetry:
    """Test cases for async_retry."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ImporterBusyError("busy")
            return "done"

        result = await async_retry(flaky, retry_on=(ImporterBusyError,), delay=0)

        assert result == "done"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        attempts = []

        async def always_busy():
            attempts.append(1)
            raise ImporterBusyError("busy")

        with pytest.raises(ImporterBusyError):
            await async_retry(always_busy, retry_on=(ImporterBusyError,), delay=0, max_attempts=2)

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        attempts = []

        async def broken():
            attempts.append(1)
            raise ValueError("not retryable")

        with pytest.raises(ValueError):
            await async_retry(broken, retry_on=(ImporterBusyError,), delay=0)

        assert len(attempts) == 1
