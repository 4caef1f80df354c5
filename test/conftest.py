import pytest
from aioresponses import aioresponses


@pytest.fixture
def mock_response():
    with aioresponses() as m:
        yield m
