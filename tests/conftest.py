"""Shared fixtures for the nativebridge test suite."""

from collections.abc import Iterator

import pytest

from nativebridge import Engine
from nativebridge import EngineScope


@pytest.fixture
def engine() -> Iterator[Engine]:
    """Provide a fresh engine that is closed after the test.

    :yields: Open engine.
    """
    created: Engine = Engine(name="test")
    yield created
    created.close()


@pytest.fixture
def scope(engine: Engine) -> Iterator[Engine]:
    """Enter the test engine for the whole test.

    :yields: Entered engine.
    """
    with EngineScope(engine):
        yield engine
