import pytest

from helpers import equator_route


@pytest.fixture
def straight_route():
    """1 km route with reference distances [0, 250, 500, 750, 1000]."""
    return equator_route()
