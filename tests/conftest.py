"""Shared fixtures."""

import random

import pytest

from enigmind.config import EngineConfig
from enigmind.engine import Engine


@pytest.fixture
def engine():
    return Engine(EngineConfig(), rng=random.Random(42))
