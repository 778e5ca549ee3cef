import asyncio

import asyncpg
import pytest

from campuswatch.domain.reports.exceptions import InvalidArgument, StorageUnavailable
from campuswatch.infra.postgres import translate_errors


@translate_errors
async def _fails_with(exc: Exception):
	raise exc


@pytest.mark.asyncio
async def test_malformed_uuid_becomes_invalid_argument():
	with pytest.raises(InvalidArgument) as excinfo:
		await _fails_with(asyncpg.exceptions.InvalidTextRepresentationError('invalid input syntax for type uuid: "abc"'))
	assert excinfo.value.reason == "invalid_id"
	assert excinfo.value.kind == "invalid_argument"


@pytest.mark.asyncio
async def test_connection_failures_become_storage_unavailable():
	with pytest.raises(StorageUnavailable):
		await _fails_with(ConnectionRefusedError("db down"))
	with pytest.raises(StorageUnavailable):
		await _fails_with(asyncio.TimeoutError())


@pytest.mark.asyncio
async def test_other_errors_pass_through():
	with pytest.raises(KeyError):
		await _fails_with(KeyError("x"))
