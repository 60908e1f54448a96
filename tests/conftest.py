import pytest


# Leo ascendant; Moon in Taurus (house 10), Saturn in Capricorn (house 6)
SAMPLE_PLANETS = [
    {"planet": "Sun",     "longitude": 60.2},
    {"planet": "Moon",    "longitude": 45.5, "sign": "Taurus", "house": 10},
    {"planet": "Mars",    "longitude": 100.0},
    {"planet": "Mercury", "longitude": 70.0},
    {"planet": "Jupiter", "longitude": 95.0},
    {"planet": "Venus",   "longitude": 30.5},
    {"planet": "Saturn",  "longitude": 290.0},
    {"planet": "Rahu",    "longitude": 300.0, "is_retrograde": True},
    {"planet": "Ketu",    "longitude": 120.0, "is_retrograde": True},
]

SAMPLE_PROFILE = {
    "birthDate": "1990-06-15",
    "birthTime": "10:30",
    "latitude": 27.7172,
    "longitude": 85.3240,
    "timezoneOffsetMinutes": 345,
}


@pytest.fixture
def sample_planets():
    return [dict(row) for row in SAMPLE_PLANETS]


@pytest.fixture
def sample_profile():
    return dict(SAMPLE_PROFILE)


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c
