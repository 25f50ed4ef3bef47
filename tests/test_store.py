import threading
from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from safewave.data.store import store as store_module
from safewave.data.store.model import (
    AlertRecord, AnalysisHistory, Location, ProvinceRainSample, RainStats, RiskAnalysis,
    RiskReasonRecord, Shelter, WeatherRecord, utcnow,
)
from safewave.data.store.result import ErrorKind
from safewave.data.store.store import SafeWaveStore
from safewave.risk.model import AlertEvent, RainWindows, RiskLevel, RiskReason

ANALYSIS_TABLES = (Location, WeatherRecord, RainStats, RiskAnalysis, RiskReasonRecord,
                   AnalysisHistory, ProvinceRainSample)


def reason(code, score, source='weather'):
    return RiskReason(code=code, score=score, description=f'{code} description', source=source)


def backdate_history(store, history_ids, days):
    with store._session_factory.begin() as session:
        session.execute(
            update(AnalysisHistory)
            .where(AnalysisHistory.history_id.in_(history_ids))
            .values(created_at=utcnow() - timedelta(days=days))
        )


@pytest.fixture
def saved_history(store, make_location, calm_weather, make_assessment):
    """Three WARNING analyses, returning their history ids."""
    ids = []
    for i in range(3):
        result = store.save_complete_analysis(
            make_location(latitude=16.0 + i), calm_weather, None, make_assessment(RiskLevel.WARNING))
        ids.append(result.data['history_id'])
    return ids


class TestSaveCompleteAnalysis:
    def test_safe_level_skips_history(self, store, make_location, calm_weather, make_assessment):
        result = store.save_complete_analysis(make_location(), calm_weather, calm_weather.rain,
                                              make_assessment(RiskLevel.SAFE))
        assert result.success
        assert result.data['history_id'] is None
        assert store.count_rows(Location) == 1
        assert store.count_rows(WeatherRecord) == 1
        assert store.count_rows(RainStats) == 1
        assert store.count_rows(RiskAnalysis) == 1
        assert store.count_rows(AnalysisHistory) == 0
        assert store.count_rows(ProvinceRainSample) == 1

    @pytest.mark.parametrize('level, risk_type, local_type', [
        (RiskLevel.MINOR, 'Severe weather', 'Thời tiết xấu'),
        (RiskLevel.WARNING, 'Severe weather', 'Thời tiết xấu'),
        (RiskLevel.DANGER, 'Danger', 'Nguy hiểm'),
    ])
    def test_history_for_elevated_levels(self, store, make_location, calm_weather, make_assessment,
                                         level, risk_type, local_type):
        result = store.save_complete_analysis(make_location(), calm_weather, None, make_assessment(level))
        assert result.data['history_id'] is not None

        history = store.get_history()
        assert len(history) == 1
        assert history[0]['id'] == result.data['history_id']
        assert history[0]['risk'] == level.label
        assert history[0]['type'] == risk_type
        assert history[0]['local_type'] == local_type
        assert history[0]['location'] == 'Da Nang'
        assert history[0]['is_favorite'] is False

    def test_reasons_are_stored(self, store, make_location, calm_weather, make_assessment):
        assessment = make_assessment(reasons=[reason('RAIN_HEAVY', 55.0), reason('WIND_GUST', 50.0)])
        result = store.save_complete_analysis(make_location(), calm_weather, None, assessment)
        assert store.count_rows(RiskReasonRecord) == 2

        explicit = store.save_complete_analysis(make_location(), calm_weather, None, assessment,
                                                reasons=[reason('STORM_CORE', 90.0, 'storm')])
        assert explicit.success
        assert store.count_rows(RiskReasonRecord) == 3
        assert result.data['analysis_id'] != explicit.data['analysis_id']

    def test_location_reused_within_tolerance(self, store, make_location, calm_weather, make_assessment):
        first = store.save_complete_analysis(make_location(), calm_weather, None, make_assessment())
        near = store.save_complete_analysis(
            make_location(latitude=16.05445, longitude=108.20215), calm_weather, None, make_assessment())
        far = store.save_complete_analysis(
            make_location(latitude=16.0554), calm_weather, None, make_assessment())

        assert near.data['location_id'] == first.data['location_id']
        assert far.data['location_id'] != first.data['location_id']
        assert store.count_rows(Location) == 2
        assert store.find_location_by_coords(16.05441, 108.20221)['location_id'] == first.data['location_id']
        assert store.find_location_by_coords(0.0, 0.0) is None

    def test_province_falls_back_to_subtitle_then_other(self, store, make_location, calm_weather, make_assessment):
        store.save_complete_analysis(make_location(province=None, subtitle='Quang Nam'),
                                     calm_weather, None, make_assessment())
        store.save_complete_analysis(make_location(latitude=12.0, province=None, subtitle=None),
                                     calm_weather, None, make_assessment())
        assert store.get_province_list() == ['Other', 'Quang Nam']

    def test_failure_rolls_back_everything(self, store, make_location, calm_weather, make_assessment, monkeypatch):
        def boom(*args, **kwargs):
            raise SQLAlchemyError('boom')

        monkeypatch.setattr(store, '_insert_history', boom)
        assessment = make_assessment(reasons=[reason('RAIN_HEAVY', 60.0)])
        result = store.save_complete_analysis(make_location(), calm_weather, None, assessment)

        assert not result.success
        assert result.kind == ErrorKind.DATABASE
        assert 'boom' in result.error
        for model in ANALYSIS_TABLES:
            assert store.count_rows(model) == 0, model.__tablename__

    def test_unexpected_error_is_reported(self, store, make_location, calm_weather, make_assessment,
                                          monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError('history writer crashed')

        monkeypatch.setattr(store, '_insert_history', boom)
        result = store.save_complete_analysis(make_location(), calm_weather, None, make_assessment())

        assert not result.success
        assert result.kind == ErrorKind.DATABASE
        assert 'history writer crashed' in result.error
        for model in ANALYSIS_TABLES:
            assert store.count_rows(model) == 0, model.__tablename__

    def test_detail(self, store, make_location, make_weather, make_assessment):
        weather = make_weather(rain=dict(h1=12.5, h24=80.0, d3=150.0))
        assessment = make_assessment(
            RiskLevel.DANGER,
            reasons=[reason('RAIN_ACCUMULATED', 22.2), reason('STORM_CORE', 90.0, 'storm'), reason('RAIN_HEAVY', 40.0)],
        )
        history_id = store.save_complete_analysis(make_location(), weather, None, assessment).data['history_id']

        detail = store.get_history_detail(history_id)
        assert detail['id'] == history_id
        assert detail['risk'] == 'Danger'
        assert detail['location']['title'] == 'Da Nang'
        assert detail['analysis']['level'] == 4
        assert detail['analysis']['actions'] == assessment.actions
        assert detail['weather']['humidity'] == 70.0
        assert detail['rain']['h1'] == 12.5
        assert detail['rain']['d3'] == 150.0
        assert [r['code'] for r in detail['reasons']] == ['STORM_CORE', 'RAIN_HEAVY', 'RAIN_ACCUMULATED']

    def test_detail_missing(self, store):
        assert store.get_history_detail(12345) is None


class TestRiskReasons:
    def test_append(self, store, make_location, calm_weather, make_assessment):
        analysis_id = store.save_complete_analysis(
            make_location(), calm_weather, None, make_assessment()).data['analysis_id']
        result = store.add_risk_reasons(analysis_id, [reason('WIND_GUST', 50.0)])
        assert result.success
        assert result.data == 1

    def test_unknown_analysis_is_rejected(self, store):
        result = store.add_risk_reasons(9999, [reason('RAIN_HEAVY', 40.0), reason('WIND_GUST', 50.0)])
        assert not result.success
        assert result.kind == ErrorKind.INTEGRITY
        assert store.count_rows(RiskReasonRecord) == 0


class TestProvinceRain:
    def test_cap_keeps_newest(self, db_url):
        with SafeWaveStore(db_url, province_rain_cap=5, seed_reference_data=False) as store:
            for i in range(8):
                assert store.record_province_rain('Lao Cai', RainWindows(h1=i, h24=10 * i)).success
            store.record_province_rain('Yen Bai', RainWindows(h1=99))

            rows = store.get_province_rain_history('Lao Cai')
            assert [r['h1'] for r in rows] == [7, 6, 5, 4, 3]
            assert store.count_rows(ProvinceRainSample) == 6

    def test_default_cap(self, store):
        assert store.province_rain_cap == 100

    def test_limit(self, store):
        for i in range(4):
            store.record_province_rain('Hue', RainWindows(h24=i))
        assert len(store.get_province_rain_history('Hue', limit=2)) == 2

    def test_province_required(self, store):
        result = store.record_province_rain('', RainWindows(h1=1))
        assert result.kind == ErrorKind.INVALID_INPUT
        assert store.count_rows(ProvinceRainSample) == 0

    def test_historic_records(self, store):
        store.record_province_rain('Hue', RainWindows(h24=450), location_note='Perfume river', source='historic')
        store.record_province_rain('Hue', RainWindows(h24=12))
        records = store.get_historic_province_records('Hue')
        assert [r['h24'] for r in records] == [450, 12]
        assert records[0]['source'] == 'historic'
        assert records[0]['location_note'] == 'Perfume river'

    def test_concurrent_writers(self, store):
        def writer(name):
            for i in range(10):
                assert store.record_province_rain(name, RainWindows(h1=i)).success

        threads = [threading.Thread(target=writer, args=(f'P{n}',)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.count_rows(ProvinceRainSample) == 40
        assert store.get_province_list() == ['P0', 'P1', 'P2', 'P3']


class TestAlerts:
    def make_alert(self, name, expires_at=None, level=RiskLevel.WARNING):
        return AlertEvent(location_name=name, province=name, level=level, type='Flash flood',
                          latitude=16.0, longitude=108.0, expires_at=expires_at)

    def test_save_and_list(self, store):
        result = store.save_alerts([self.make_alert('Hue', level=RiskLevel.DANGER), self.make_alert('Vinh')])
        assert result.success
        assert len(result.data) == 2

        alerts = store.get_active_alerts()
        assert {a['location_name'] for a in alerts} == {'Hue', 'Vinh'}
        assert {a['level'] for a in alerts} == {'Danger', 'Warning'}

    def test_create_alert(self, store):
        result = store.create_alert(self.make_alert('Hue'))
        assert isinstance(result.data, int)
        assert store.count_rows(AlertRecord) == 1

    def test_clear_expired(self, store):
        now = utcnow()
        store.save_alerts([
            self.make_alert('expired', now - timedelta(hours=1)),
            self.make_alert('future', now + timedelta(hours=5)),
            self.make_alert('forever'),
        ])
        assert {a['location_name'] for a in store.get_active_alerts()} == {'future', 'forever'}

        result = store.clear_expired_alerts()
        assert result.success
        assert result.data == 1
        assert store.count_rows(AlertRecord) == 2

    def test_replace_alerts_by_source(self, store):
        store.save_alerts([self.make_alert('manual')])
        first = store.replace_alerts('national-scan', [self.make_alert('Hue'), self.make_alert('Vinh')])
        assert first.success
        assert len(first.data) == 2

        second = store.replace_alerts('national-scan', [self.make_alert('Hue', level=RiskLevel.DANGER)])
        assert second.success
        alerts = store.get_active_alerts()
        assert sorted(a['location_name'] for a in alerts) == ['Hue', 'manual']
        assert {a['source'] for a in alerts} == {None, 'national-scan'}
        assert store.count_rows(AlertRecord) == 2

        assert store.replace_alerts('national-scan', []).data == []
        assert [a['location_name'] for a in store.get_active_alerts()] == ['manual']

    def test_failed_replace_keeps_previous_alerts(self, store, monkeypatch):
        store.replace_alerts('national-scan', [self.make_alert('Hue')])

        def boom(alert):
            raise SQLAlchemyError('insert failed')

        monkeypatch.setattr(store, '_alert_row', boom)
        result = store.replace_alerts('national-scan', [self.make_alert('Vinh')])
        assert result.kind == ErrorKind.DATABASE
        assert [a['location_name'] for a in store.get_active_alerts()] == ['Hue']


class TestHistory:
    def test_delete_old_history_keeps_favorites(self, store, saved_history):
        old, old_favorite, fresh = saved_history
        backdate_history(store, [old, old_favorite], days=11)
        assert store.toggle_favorite(old_favorite).data is True

        result = store.delete_old_history(10)
        assert result.data == 1
        assert {h['id'] for h in store.get_history()} == {old_favorite, fresh}

    def test_delete_old_history_nothing_stale(self, store, saved_history):
        assert store.delete_old_history().data == 0
        assert store.count_rows(AnalysisHistory) == 3

    def test_toggle_favorite(self, store, saved_history):
        first, second, third = saved_history
        assert store.toggle_favorite(first).data is True
        assert store.get_history()[0]['id'] == first
        assert store.toggle_favorite(first).data is False
        assert store.get_history()[0]['id'] == third

    def test_toggle_missing(self, store):
        result = store.toggle_favorite(4242)
        assert not result.success
        assert result.kind == ErrorKind.NOT_FOUND
        assert result.data is False

    def test_delete_history(self, store, saved_history):
        target = saved_history[1]
        assert store.delete_history(target).success
        assert store.delete_history(target).kind == ErrorKind.NOT_FOUND
        assert store.get_history_detail(target) is None
        assert store.count_rows(AnalysisHistory) == 2
        assert store.count_rows(RiskAnalysis) == 3

    def test_limit_and_location(self, store, saved_history):
        assert len(store.get_history(limit=2)) == 2
        location_id = store.get_history_detail(saved_history[0])['location']['location_id']
        entries = store.get_history_by_location(location_id)
        assert [e['id'] for e in entries] == [saved_history[0]]


class TestLifecycle:
    def test_unopened_store_is_inert(self, db_url, make_location, calm_weather, make_assessment):
        store = SafeWaveStore(db_url)
        assert not store.available

        result = store.save_complete_analysis(make_location(), calm_weather, None, make_assessment())
        assert result.kind == ErrorKind.UNAVAILABLE
        assert store.record_province_rain('Hue', RainWindows()).kind == ErrorKind.UNAVAILABLE
        assert store.toggle_favorite(1).kind == ErrorKind.UNAVAILABLE
        assert store.get_history() == []
        assert store.get_active_alerts() == []
        assert store.get_shelters() == []
        assert store.get_history_detail(1) is None
        assert store.count_rows(Location) == -1

    def test_unusable_path(self, tmp_path):
        blocker = tmp_path / 'blocker'
        blocker.write_text('not a directory')
        store = SafeWaveStore(f"sqlite:///{blocker / 'safewave.db'}")
        assert store.open() is False
        assert not store.available

    def test_engine_failure(self, db_url, monkeypatch):
        def broken(*args, **kwargs):
            raise SQLAlchemyError('cannot connect')

        monkeypatch.setattr(store_module, 'init_db', broken)
        store = SafeWaveStore(db_url)
        assert store.open() is False
        assert store.get_province_list() == []

    def test_close_and_reopen(self, db_url):
        store = SafeWaveStore(db_url, seed_reference_data=False)
        assert store.open()
        store.record_province_rain('Hue', RainWindows(h1=1))
        store.close()
        assert not store.available
        assert store.open()
        assert store.count_rows(ProvinceRainSample) == 1
        store.close()


class TestSeeding:
    def test_reference_data_seeded_once(self, db_url):
        with SafeWaveStore(db_url) as store:
            shelters = store.get_shelters()
            assert len(shelters) == 8
            assert 'Lào Cai' in store.get_province_list()
            seeded = store.count_rows(ProvinceRainSample)
            assert seeded == 7

        with SafeWaveStore(db_url) as store:
            assert store.count_rows(Shelter) == 8
            assert store.count_rows(ProvinceRainSample) == seeded

    def test_missing_windows_use_daily_total(self, db_url):
        with SafeWaveStore(db_url) as store:
            record = store.get_province_rain_history('Lâm Đồng')[0]
            assert record['h24'] == 150.0
            assert record['d3'] == 150.0
            historic = store.get_historic_province_records('Lâm Đồng')[0]
            assert historic['source'] == 'historic'
