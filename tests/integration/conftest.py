"""
Integration Test Infrastructure

Fixtures that run the fully assembled application (real middleware chain,
real FixedWindowQuotaCounter over fakeredis, real UsageLogWriter over an
in-memory store, real ContentForwarder over httpx.MockTransport).

Reference Documents:
- GUIDELINES pp. 155-157: "high and low gear" testing philosophy
"""

from typing import Iterator

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client(make_app) -> Iterator[TestClient]:
    """
    TestClient with the lifespan running.

    Leaving the context drains the usage log writer, so assertions on
    stored entries belong after the with-block of tests that need them.
    """
    with TestClient(make_app()) as test_client:
        yield test_client
