"""Shared fixtures."""

from __future__ import annotations

import pytest

from bazaar_realtime.domain.credentials import Credentials
from bazaar_realtime.models.options import ConnectionOptions

from tests.fakes import FakeFactory, make_credentials


@pytest.fixture
def credentials() -> Credentials:
    return make_credentials()


@pytest.fixture
def fast_options() -> ConnectionOptions:
    return ConnectionOptions(
        reconnection_attempts=5,
        reconnection_delay=1,
        reconnection_delay_max=5,
        randomization_factor=0.0,
        timeout=200,
    )


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()
