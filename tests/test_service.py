import pytest

from safewave.data.store.model import AlertRecord
from safewave.data.store.result import ErrorKind
from safewave.data.store.store import SafeWaveStore
from safewave.risk.model import AlertEvent, RainWindows, RiskLevel, StormInputs, StormTrack
from safewave.service import SafeWaveService


@pytest.fixture
def service(store):
    return SafeWaveService(store, cluster_radius_km=50)


def test_analyze_persists_trail(service, make_location, severe_weather):
    result = service.analyze(make_location(), severe_weather)

    assert result.assessment.level == RiskLevel.DANGER
    assert result.saved.success
    detail = service.get_history_detail(result.saved.data['history_id'])
    assert detail['analysis']['score'] == pytest.approx(result.assessment.score)
    assert len(detail['reasons']) == len(result.assessment.reasons)
    assert detail['rain']['h24'] == 350


def test_analyze_uses_nearest_track(service, make_location, calm_weather):
    tracks = [
        StormTrack(id='far', latitude=5.0, longitude=130.0, wind_kmh=250),
        StormTrack(id='near', latitude=16.1, longitude=108.3, wind_kmh=150),
    ]
    result = service.analyze(make_location(), calm_weather, storm_tracks=tracks)
    assert result.assessment.level == RiskLevel.DANGER
    assert 'near' in result.assessment.reasons[0].description


def test_explicit_storm_wins(service, make_location, calm_weather):
    tracks = [StormTrack(id='near', latitude=16.1, longitude=108.3, wind_kmh=150)]
    result = service.analyze(make_location(), calm_weather, storm_tracks=tracks,
                             storm=StormInputs(distance_km=9999))
    assert result.assessment.level == RiskLevel.SAFE
    assert result.saved.data['history_id'] is None
    assert service.get_history() == []


def test_analyze_without_store(db_url, make_location, severe_weather):
    service = SafeWaveService(SafeWaveStore(db_url))
    result = service.analyze(make_location(), severe_weather)
    assert result.assessment.level == RiskLevel.DANGER
    assert result.saved.kind == ErrorKind.UNAVAILABLE


def test_scan_and_cluster(service, store):
    events = [
        AlertEvent(location_name='Hai Chau', province='Da Nang', level=RiskLevel.WARNING,
                   type='Flash flood', latitude=16.05, longitude=108.20),
        AlertEvent(location_name='Son Tra', province='Da Nang', level=RiskLevel.DANGER,
                   type='Storm', latitude=16.08, longitude=108.22),
    ]
    alerts = service.scan_and_cluster(events)
    assert len(alerts) == 1
    assert alerts[0].type == 'Storm'
    assert store.count_rows(AlertRecord) == 1

    # a tighter radius keeps both
    assert len(service.scan_and_cluster(events, radius_km=1)) == 2
    assert store.count_rows(AlertRecord) == 3


def test_zero_radius_keeps_events_apart(service, store):
    events = [
        AlertEvent(location_name='Hai Chau', level=RiskLevel.WARNING, type='Flash flood',
                   latitude=16.050, longitude=108.200),
        AlertEvent(location_name='Thanh Khe', level=RiskLevel.DANGER, type='Storm',
                   latitude=16.059, longitude=108.200),
    ]
    alerts = service.scan_and_cluster(events, radius_km=0)
    assert [a.location_name for a in alerts] == ['Thanh Khe', 'Hai Chau']
    assert not any(a.is_cluster for a in alerts)
    assert store.count_rows(AlertRecord) == 2


def test_scan_and_cluster_replaces_source(service, store):
    event = AlertEvent(location_name='Son Tra', level=RiskLevel.DANGER, type='Storm',
                       latitude=16.08, longitude=108.22)
    store.save_alerts([event])
    service.scan_and_cluster([event], source='national-scan')
    service.scan_and_cluster([event], source='national-scan')
    assert store.count_rows(AlertRecord) == 2

    assert service.scan_and_cluster([], source='national-scan') == []
    assert store.count_rows(AlertRecord) == 1


def test_history_actions(service, make_location, severe_weather):
    history_id = service.analyze(make_location(), severe_weather).saved.data['history_id']
    assert service.toggle_favorite(history_id).data is True
    assert service.get_history()[0]['is_favorite'] is True
    assert service.delete_history(history_id).success
    assert service.get_history() == []


def test_reference_reads(service, store):
    assert service.get_shelters() == []
    assert service.clear_expired_alerts().data == 0
    assert service.get_active_alerts() == []
    store.record_province_rain('Hue', RainWindows(h24=5))
    assert service.get_province_list() == ['Hue']
    assert service.get_province_rain_history('Hue')[0]['h24'] == 5
    assert service.get_historic_province_records('Hue')[0]['h24'] == 5
