"""Shared fixtures."""

import pytest

from tests.helpers import FakeClock, ScriptedGateway, build_orchestrator


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def orchestrator(gateway, clock):
    return build_orchestrator(gateway, clock)
