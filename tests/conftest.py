"""Shared fixtures: a fixed base time and a room with back-to-back windows."""

import logging

import pytest

from tests.helpers import at, room, window

logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


@pytest.fixture
def base_time():
    """Fixed base time for deterministic tests."""
    return at(9)


@pytest.fixture
def two_back_to_back():
    """One room with 09:00-10:00 and 10:00-11:00."""
    return room(
        "room-a",
        window("w1", at(9), at(10)),
        window("w2", at(10), at(11)),
    )
