import pytest

from safewave.data.store.store import SafeWaveStore
from safewave.risk.analyzer import ACTIONS
from safewave.risk.model import LocationInput, RainWindows, RiskAssessment, RiskLevel, SubScores, WeatherInputs


# ==================== FIXTURES ====================

@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'safewave_test.db'}"


@pytest.fixture
def store(db_url):
    """Open store over a temporary SQLite file, without reference seeds."""
    store = SafeWaveStore(db_url, seed_reference_data=False)
    assert store.open()
    yield store
    store.close()


@pytest.fixture
def make_location():
    def factory(**overrides):
        data = dict(latitude=16.0544, longitude=108.2022, title='Da Nang', subtitle='Da Nang City',
                    province='Da Nang', elevation=10.0)
        data.update(overrides)
        return LocationInput(**data)
    return factory


@pytest.fixture
def make_weather():
    def factory(rain=None, **overrides):
        data = dict(temp=28.0, feels_like=31.0, humidity=70.0, pressure_sea=1012.0,
                    wind_speed=10.0, wind_gusts=15.0, soil_moisture=0.2)
        data.update(overrides)
        return WeatherInputs(rain=RainWindows(**(rain or {})), **data)
    return factory


@pytest.fixture
def calm_weather(make_weather):
    return make_weather()


@pytest.fixture
def severe_weather(make_weather):
    """Weather that saturates every weather component."""
    return make_weather(
        rain=dict(h1=150, h2=170, h3=200, h5=220, h12=250, h24=350, d3=500, d7=600, d14=700),
        wind_speed=200.0, wind_gusts=260.0, humidity=100.0, pressure_sea=880.0, soil_moisture=0.9,
    )


@pytest.fixture
def make_assessment():
    """Hand-built assessment at a given level, independent of the scoring thresholds."""
    def factory(level=RiskLevel.WARNING, score=None, reasons=None):
        level = RiskLevel(level)
        return RiskAssessment(
            score=score if score is not None else {1: 10.0, 2: 40.0, 3: 70.0, 4: 90.0}[int(level)],
            level=level,
            label=level.label,
            local_label=level.local_label,
            subscores=SubScores(weather=50.0, storm=0.0, terrain=10.0),
            confidence=0.7,
            actions=ACTIONS[level],
            terrain_type='Plain',
            soil_type='Wet',
            saturation=0.5,
            reasons=reasons or [],
        )
    return factory
