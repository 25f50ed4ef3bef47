from datetime import timedelta

import pytest

from safewave.data.store.model import ProvinceRainSample, utcnow
from safewave.risk.analyzer import compute_risk
from safewave.risk.model import RiskLevel, RiskReason, StormTrack
from safewave.scan import SCAN_SOURCE, NationalScan, hazard_type
from safewave.service import SafeWaveService

PROVINCES = [
    {'province': 'Da Nang', 'latitude': 16.05, 'longitude': 108.20, 'elevation': 10},
    {'province': 'Quang Nam', 'latitude': 15.88, 'longitude': 108.33, 'elevation': 20},
    {'province': 'Lao Cai', 'latitude': 22.48, 'longitude': 103.97, 'elevation': 120},
]


class FakeWeatherLoader:
    def __init__(self, weather, missing=()):
        self.weather = weather
        self.missing = set(missing)
        self.calls = []

    def fetch_weather(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        if (latitude, longitude) in self.missing:
            return None
        return self.weather


class FakeStormLoader:
    def __init__(self, tracks):
        self.tracks = tracks

    def fetch_storm_tracks(self):
        return self.tracks


@pytest.fixture
def service(store):
    return SafeWaveService(store)


@pytest.fixture
def storm_loader():
    return FakeStormLoader([StormTrack(id='YAGI', latitude=16.2, longitude=108.5, wind_kmh=180)])


def test_scan_clusters_and_persists(service, store, calm_weather, storm_loader):
    scan = NationalScan(service, FakeWeatherLoader(calm_weather), storm_loader, provinces=PROVINCES)
    alerts = scan.run()

    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.level == RiskLevel.DANGER
    assert alert.is_cluster
    assert alert.cluster_count == 2
    assert alert.location_name == 'Da Nang (area)'
    assert alert.type == 'Storm'
    assert alert.source == SCAN_SOURCE

    active = store.get_active_alerts()
    assert len(active) == 1
    assert active[0]['level'] == 'Danger'
    assert active[0]['cluster_count'] == 2
    assert store.count_rows(ProvinceRainSample) == 3
    assert set(store.get_province_list()) == {'Da Nang', 'Quang Nam', 'Lao Cai'}


def test_repeated_scans_supersede_alerts(service, store, calm_weather, storm_loader):
    scan = NationalScan(service, FakeWeatherLoader(calm_weather), storm_loader, provinces=PROVINCES)
    scan.run()
    scan.run()

    active = store.get_active_alerts()
    assert len(active) == 1
    assert active[0]['location_name'] == 'Da Nang (area)'
    assert store.count_rows(ProvinceRainSample) == 6

    # a quiet pass clears the previous pass's alerts
    scan.storm_loader = None
    assert scan.run() == []
    assert store.get_active_alerts() == []


def test_missing_weather_is_skipped(service, store, calm_weather, storm_loader):
    loader = FakeWeatherLoader(calm_weather, missing=[(16.05, 108.20)])
    alerts = NationalScan(service, loader, storm_loader, provinces=PROVINCES).run()

    assert len(loader.calls) == 3
    assert len(alerts) == 1
    assert not alerts[0].is_cluster
    assert alerts[0].location_name == 'Quang Nam'
    assert 'Da Nang' not in store.get_province_list()


def test_no_storm_no_alerts(service, store, calm_weather):
    alerts = NationalScan(service, FakeWeatherLoader(calm_weather), None, provinces=PROVINCES).run()
    assert alerts == []
    assert store.get_active_alerts() == []
    assert store.count_rows(ProvinceRainSample) == 3


def test_stop_abandons_pass(service, store, calm_weather, storm_loader):
    loader = FakeWeatherLoader(calm_weather)
    alerts = NationalScan(service, loader, storm_loader, provinces=PROVINCES).run(should_stop=lambda: True)
    assert alerts == []
    assert loader.calls == []
    assert store.get_active_alerts() == []


def test_requests_are_spaced(service, calm_weather):
    sleeps = []
    scan = NationalScan(service, FakeWeatherLoader(calm_weather), None, provinces=PROVINCES,
                        request_delay_s=1.2, sleep=sleeps.append)
    scan.run()
    assert sleeps == [1.2, 1.2]


def test_build_event(service, calm_weather, severe_weather):
    scan = NationalScan(service, FakeWeatherLoader(calm_weather), None, provinces=PROVINCES, alert_ttl_hours=2)
    province = PROVINCES[0]

    assert scan.build_event(province, calm_weather, compute_risk(calm_weather)) is None

    event = scan.build_event(province, severe_weather, compute_risk(severe_weather))
    assert event.level == RiskLevel.DANGER
    assert event.province == 'Da Nang'
    assert event.rain_amount == 350
    assert event.wind_speed == 200
    assert event.type == 'Flash flood'
    assert event.external_id.startswith('Da Nang-')
    assert utcnow() + timedelta(hours=1) < event.expires_at <= utcnow() + timedelta(hours=2)


def test_hazard_type(calm_weather):
    assessment = compute_risk(calm_weather)
    assert hazard_type(assessment) == 'Severe weather'
    soil = assessment.model_copy(update={
        'reasons': [RiskReason(code='SOIL_TERRAIN', score=70, description='wet slope', source='terrain')],
    })
    assert hazard_type(soil) == 'Landslide'
