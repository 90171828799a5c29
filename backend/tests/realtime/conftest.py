"""Fixtures for sync engine tests."""

import pytest
import pytest_asyncio

from sync_fakes import FakePullSource, FakePushFactory, FixedClock, make_service


@pytest.fixture
def source():
    return FakePullSource()


@pytest.fixture
def push_factory():
    return FakePushFactory()


@pytest.fixture
def clock():
    return FixedClock()


@pytest_asyncio.fixture
async def service(source, push_factory, clock):
    """Initialized service with crypto on a fake push transport."""
    svc = make_service(source, push_factory, clock)
    await svc.initialize()
    yield svc
    await svc.shutdown()
