"""
Transactional access layer over the SafeWave SQLite schema.

One SafeWaveStore is built at process start and handed to every consumer.
Writes go through a single lock and one short transaction each, so the store
behaves as a single writer. Nothing here raises to the caller: writes return a
StoreResult, reads fall back to empty values.
"""
import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from alembic.util import CommandError
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from safewave.data.store import seed
from safewave.data.store.crud import (
    AlertCRUD, AnalysisHistoryCRUD, BaseCRUD, LocationCRUD, ProvinceRainCRUD, RainStatsCRUD,
    RiskAnalysisCRUD, RiskReasonCRUD, WeatherRecordCRUD, get_session_factory, init_db,
)
from safewave.data.store.model import (
    AnalysisHistory, Location, ProvinceRainSample, RainStats, RiskAnalysis, Shelter, WeatherRecord, utcnow,
)
from safewave.data.store.result import ErrorKind, StoreResult
from safewave.data.store.schema import upgrade_schema
from safewave.risk.model import (
    AlertEvent, LocationInput, RainWindows, RiskAssessment, RiskLevel, RiskReason, WeatherInputs,
)

logger = logging.getLogger(__name__)

PROVINCE_RAIN_CAP = 100
FALLBACK_PROVINCE = 'Other'
PROVINCE_WINDOWS = ('h1', 'h3', 'h24', 'd3', 'd7', 'd14')
WEATHER_FIELDS = (
    'temp', 'feels_like', 'temp_min', 'temp_max', 'humidity', 'pressure_sea', 'pressure_ground',
    'wind_speed', 'wind_dir', 'wind_gusts', 'cloud_cover', 'uv_index', 'soil_moisture',
)


def _as_dict(record, *exclude) -> dict:
    return {c.key: getattr(record, c.key) for c in record.__table__.columns if c.key not in exclude}


HISTORY_TYPES = {
    True: ('Danger', 'Nguy hiểm'),
    False: ('Severe weather', 'Thời tiết xấu'),
}


def history_risk_type(level: RiskLevel) -> Tuple[str, str]:
    """
    English and Vietnamese history type of an analysis level.
    """
    return HISTORY_TYPES[level == RiskLevel.DANGER]


class SafeWaveStore:
    """
    Embedded store for locations, analyses, alerts, history and reference data.
    """
    def __init__(self, db_url: str = 'sqlite:///safewave.db', echo: bool = False,
                 province_rain_cap: int = PROVINCE_RAIN_CAP, seed_reference_data: bool = True):
        self.db_url = db_url
        self.echo = echo
        self.province_rain_cap = province_rain_cap
        self.seed_reference_data = seed_reference_data
        self._engine = None
        self._session_factory = None
        self._lock = threading.RLock()

    # ========== LIFECYCLE ==========
    @property
    def available(self) -> bool:
        return self._session_factory is not None

    def open(self) -> bool:
        """
        Create the engine, migrate the schema and seed reference data.
        A failure leaves the store unavailable instead of raising.
        """
        if self.available:
            return True
        try:
            url = make_url(self.db_url)
            if url.get_backend_name() == 'sqlite' and url.database not in (None, '', ':memory:'):
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            engine = init_db(self.db_url, echo=self.echo)
            upgrade_schema(engine)
            session_factory = get_session_factory(engine)
            if self.seed_reference_data:
                with session_factory.begin() as session:
                    seed.seed_shelters(session)
                    seed.seed_historical_province_rain(session)
        except (SQLAlchemyError, CommandError, OSError, ValueError) as e:
            logger.error("Store unavailable, running without persistence: %s", e)
            return False
        self._engine = engine
        self._session_factory = session_factory
        logger.info("Store opened at %s", self.db_url)
        return True

    def close(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._session_factory = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ========== TRANSACTION HELPERS ==========
    def _write(self, name: str, fn: Callable[[Session], object]) -> StoreResult:
        if not self.available:
            logger.warning("Store unavailable, skipping %s", name)
            return StoreResult.fail(ErrorKind.UNAVAILABLE, 'Store unavailable')
        with self._lock:
            try:
                with self._session_factory.begin() as session:
                    data = fn(session)
            except IntegrityError as e:
                logger.error("Integrity violation in %s: %s", name, e.orig)
                return StoreResult.fail(ErrorKind.INTEGRITY, str(e.orig))
            except SQLAlchemyError as e:
                logger.error("Error in %s: %s", name, e)
                return StoreResult.fail(ErrorKind.DATABASE, str(e))
            except Exception as e:
                logger.exception("Unexpected error in %s", name)
                return StoreResult.fail(ErrorKind.DATABASE, str(e))
        if isinstance(data, StoreResult):
            return data
        return StoreResult.ok(data)

    def _read(self, name: str, fn: Callable[[Session], object], default):
        if not self.available:
            return default
        try:
            with self._session_factory() as session:
                return fn(session)
        except SQLAlchemyError as e:
            logger.error("Error in %s: %s", name, e)
            return default

    # ========== COMPLETE ANALYSIS ==========
    def _find_or_create_location(self, session: Session, location: LocationInput) -> int:
        repo = LocationCRUD(session)
        existing = repo.find_by_coords(location.latitude, location.longitude)
        if existing is not None:
            return existing.location_id
        return repo.create(location.model_dump()).location_id

    def _insert_weather(self, session: Session, location_id: int, weather: WeatherInputs,
                        rain: RainWindows) -> int:
        data = {name: getattr(weather, name) for name in WEATHER_FIELDS}
        record = WeatherRecordCRUD(session).create({'location_id': location_id, **data})
        RainStatsCRUD(session).create({'weather_id': record.weather_id, **rain.model_dump()})
        return record.weather_id

    def _insert_analysis(self, session: Session, location_id: int, weather_id: Optional[int],
                         analysis: RiskAssessment, reasons: Iterable[RiskReason]) -> int:
        record = RiskAnalysisCRUD(session).create({
            'location_id': location_id,
            'weather_id': weather_id,
            'level': int(analysis.level),
            'label': analysis.label,
            'score': analysis.score,
            'confidence': analysis.confidence,
            'actions': analysis.actions,
            'terrain_type': analysis.terrain_type,
            'soil_type': analysis.soil_type,
            'saturation': analysis.saturation,
        })
        self._insert_reasons(session, record.analysis_id, reasons)
        return record.analysis_id

    @staticmethod
    def _insert_reasons(session: Session, analysis_id: int, reasons: Iterable[RiskReason]) -> int:
        repo = RiskReasonCRUD(session)
        count = 0
        for reason in reasons:
            repo.create({'analysis_id': analysis_id, **reason.model_dump()})
            count += 1
        return count

    def _insert_history(self, session: Session, location_id: int, analysis_id: int,
                        analysis: RiskAssessment) -> Optional[int]:
        if analysis.level < RiskLevel.MINOR:
            return None
        risk_type, risk_type_local = history_risk_type(analysis.level)
        record = AnalysisHistoryCRUD(session).create({
            'location_id': location_id,
            'analysis_id': analysis_id,
            'risk_level': analysis.label,
            'risk_type': risk_type,
            'risk_type_local': risk_type_local,
            'is_favorite': False,
        })
        return record.history_id

    def _append_province_rain(self, session: Session, province: str, rain: RainWindows,
                              location_note: Optional[str] = None, source: Optional[str] = None) -> int:
        repo = ProvinceRainCRUD(session)
        record = repo.create({
            'province': province,
            **{w: getattr(rain, w) for w in PROVINCE_WINDOWS},
            'location_note': location_note,
            'source': source,
        })
        evicted = repo.trim(province, self.province_rain_cap)
        if evicted:
            logger.debug("Evicted %d rain samples for %s", evicted, province)
        return record.entry_id

    def save_complete_analysis(self, location: LocationInput, weather: WeatherInputs,
                               rain: Optional[RainWindows], analysis: RiskAssessment,
                               reasons: Optional[List[RiskReason]] = None) -> StoreResult:
        """
        Persist one analysis unit atomically: location (reused within tolerance),
        weather + rain windows, analysis + reasons, a history entry for level >= 2
        and a province rain sample.
        :return: StoreResult with location_id, weather_id, analysis_id, history_id
        """
        rain = rain if rain is not None else weather.rain
        reasons = analysis.reasons if reasons is None else reasons

        def run(session: Session) -> dict:
            location_id = self._find_or_create_location(session, location)
            weather_id = self._insert_weather(session, location_id, weather, rain)
            analysis_id = self._insert_analysis(session, location_id, weather_id, analysis, reasons)
            history_id = self._insert_history(session, location_id, analysis_id, analysis)
            province = location.province or location.subtitle or FALLBACK_PROVINCE
            self._append_province_rain(session, province, rain)
            return {
                'location_id': location_id,
                'weather_id': weather_id,
                'analysis_id': analysis_id,
                'history_id': history_id,
            }

        return self._write('save_complete_analysis', run)

    def add_risk_reasons(self, analysis_id: int, reasons: List[RiskReason]) -> StoreResult:
        return self._write('add_risk_reasons', lambda s: self._insert_reasons(s, analysis_id, reasons))

    # ========== PROVINCE RAIN ==========
    def record_province_rain(self, province: str, rain: RainWindows, location_note: Optional[str] = None,
                             source: Optional[str] = None) -> StoreResult:
        """
        Append a rain sample and keep only the most recent `province_rain_cap` for that province.
        """
        if not province:
            return StoreResult.fail(ErrorKind.INVALID_INPUT, 'Province is required')
        return self._write(
            'record_province_rain',
            lambda s: self._append_province_rain(s, province, rain, location_note, source),
        )

    def get_province_rain_history(self, province: str, limit: int = 30) -> List[dict]:
        def run(session: Session) -> List[dict]:
            stmt = (
                select(ProvinceRainSample)
                .where(ProvinceRainSample.province == province)
                .order_by(ProvinceRainSample.recorded_at.desc(), ProvinceRainSample.entry_id.desc())
                .limit(limit)
            )
            return [_as_dict(r, 'location_note', 'source') for r in session.scalars(stmt)]
        return self._read('get_province_rain_history', run, [])

    def get_province_list(self) -> List[str]:
        def run(session: Session) -> List[str]:
            stmt = (
                select(ProvinceRainSample.province)
                .where(ProvinceRainSample.province.is_not(None), ProvinceRainSample.province != '')
                .distinct()
                .order_by(ProvinceRainSample.province)
            )
            return list(session.scalars(stmt))
        return self._read('get_province_list', run, [])

    def get_historic_province_records(self, province: str) -> List[dict]:
        def run(session: Session) -> List[dict]:
            stmt = (
                select(ProvinceRainSample)
                .where(ProvinceRainSample.province == province)
                .order_by(ProvinceRainSample.recorded_at.asc(), ProvinceRainSample.entry_id.asc())
            )
            return [
                {
                    'province': r.province,
                    'h24': r.h24,
                    'recorded_at': r.recorded_at,
                    'source': r.source,
                    'location_note': r.location_note,
                }
                for r in session.scalars(stmt)
            ]
        return self._read('get_historic_province_records', run, [])

    # ========== ALERTS ==========
    @staticmethod
    def _alert_row(alert: AlertEvent) -> dict:
        data = alert.model_dump()
        data['level'] = alert.level.label
        return data

    def create_alert(self, alert: AlertEvent) -> StoreResult:
        return self._write('create_alert', lambda s: AlertCRUD(s).create(self._alert_row(alert)).alert_id)

    def save_alerts(self, alerts: Iterable[AlertEvent]) -> StoreResult:
        """
        Insert a batch of alerts in one transaction.
        :return: StoreResult with the new alert ids
        """
        def run(session: Session) -> List[int]:
            repo = AlertCRUD(session)
            return [repo.create(self._alert_row(a)).alert_id for a in alerts]
        return self._write('save_alerts', run)

    def replace_alerts(self, source: str, alerts: Iterable[AlertEvent]) -> StoreResult:
        """
        Swap every alert of `source` for a new batch in one transaction, so a
        repeated scan supersedes the previous one instead of stacking on it.
        :return: StoreResult with the new alert ids
        """
        def run(session: Session) -> List[int]:
            repo = AlertCRUD(session)
            removed = repo.delete(source=source)
            ids = [repo.create({**self._alert_row(a), 'source': source}).alert_id for a in alerts]
            logger.debug("Replaced %d %s alerts with %d", removed, source, len(ids))
            return ids
        return self._write('replace_alerts', run)

    def get_active_alerts(self) -> List[dict]:
        return self._read(
            'get_active_alerts',
            lambda s: [_as_dict(r) for r in AlertCRUD(s).active(utcnow())],
            [],
        )

    def clear_expired_alerts(self) -> StoreResult:
        """
        Delete alerts whose expiry has passed; alerts without expiry are kept.
        :return: StoreResult with the number of deleted rows
        """
        return self._write('clear_expired_alerts', lambda s: AlertCRUD(s).delete_expired(utcnow()))

    # ========== HISTORY ==========
    def delete_old_history(self, days_to_keep: int = 10) -> StoreResult:
        """
        Delete non-favorite history entries older than `days_to_keep` days.
        """
        cutoff = utcnow() - timedelta(days=days_to_keep)
        return self._write('delete_old_history', lambda s: AnalysisHistoryCRUD(s).delete_older_than(cutoff))

    def toggle_favorite(self, history_id: int) -> StoreResult:
        """
        Flip the favorite flag.
        :return: StoreResult with the new state; data is False when the entry does not exist
        """
        def run(session: Session):
            entry = AnalysisHistoryCRUD(session).get_by_id(history_id)
            if entry is None:
                return StoreResult.fail(ErrorKind.NOT_FOUND, f'History entry {history_id} not found', data=False)
            entry.is_favorite = not entry.is_favorite
            return bool(entry.is_favorite)
        return self._write('toggle_favorite', run)

    def delete_history(self, history_id: int) -> StoreResult:
        def run(session: Session):
            if not AnalysisHistoryCRUD(session).delete(record_id=history_id):
                return StoreResult.fail(ErrorKind.NOT_FOUND, f'History entry {history_id} not found')
            return history_id
        return self._write('delete_history', run)

    def get_history(self, limit: int = 100) -> List[dict]:
        def run(session: Session) -> List[dict]:
            stmt = (
                select(AnalysisHistory, Location.title)
                .outerjoin(Location, AnalysisHistory.location_id == Location.location_id)
                .order_by(AnalysisHistory.is_favorite.desc(), AnalysisHistory.created_at.desc(),
                          AnalysisHistory.history_id.desc())
                .limit(limit)
            )
            return [self._history_row(h, title) for h, title in session.execute(stmt)]
        return self._read('get_history', run, [])

    def get_history_by_location(self, location_id: int, limit: int = 50) -> List[dict]:
        def run(session: Session) -> List[dict]:
            stmt = (
                select(AnalysisHistory, Location.title)
                .outerjoin(Location, AnalysisHistory.location_id == Location.location_id)
                .where(AnalysisHistory.location_id == location_id)
                .order_by(AnalysisHistory.created_at.desc(), AnalysisHistory.history_id.desc())
                .limit(limit)
            )
            return [self._history_row(h, title) for h, title in session.execute(stmt)]
        return self._read('get_history_by_location', run, [])

    @staticmethod
    def _history_row(entry: AnalysisHistory, title: Optional[str]) -> dict:
        return {
            'id': entry.history_id,
            'risk': entry.risk_level,
            'type': entry.risk_type,
            'local_type': entry.risk_type_local,
            'created_at': entry.created_at,
            'is_favorite': bool(entry.is_favorite),
            'location': title,
        }

    def get_history_detail(self, history_id: int) -> Optional[dict]:
        """
        Full decision trail of one history entry: location, analysis, weather,
        rain windows and reasons (highest score first). None when missing.
        """
        def run(session: Session) -> Optional[dict]:
            entry = session.get(AnalysisHistory, history_id)
            if entry is None:
                return None
            location = session.get(Location, entry.location_id) if entry.location_id else None
            analysis = session.get(RiskAnalysis, entry.analysis_id) if entry.analysis_id else None
            weather = session.get(WeatherRecord, analysis.weather_id) if analysis and analysis.weather_id else None
            rain = None
            if weather is not None:
                rain = session.scalars(select(RainStats).where(RainStats.weather_id == weather.weather_id)).first()
            reasons = RiskReasonCRUD(session).for_analysis(analysis.analysis_id) if analysis else []
            return {
                **self._history_row(entry, location.title if location else None),
                'location': _as_dict(location) if location else None,
                'analysis': _as_dict(analysis) if analysis else None,
                'weather': _as_dict(weather) if weather else None,
                'rain': _as_dict(rain, 'rain_id', 'weather_id') if rain else None,
                'reasons': [_as_dict(r, 'reason_id', 'analysis_id') for r in reasons],
            }
        return self._read('get_history_detail', run, None)

    # ========== LOCATIONS / SHELTERS ==========
    def find_location_by_coords(self, latitude: float, longitude: float) -> Optional[dict]:
        def run(session: Session) -> Optional[dict]:
            location = LocationCRUD(session).find_by_coords(latitude, longitude)
            return _as_dict(location) if location else None
        return self._read('find_location_by_coords', run, None)

    def get_shelters(self) -> List[dict]:
        def run(session: Session) -> List[dict]:
            stmt = select(Shelter).order_by(Shelter.province, Shelter.name)
            return [_as_dict(s, 'updated_at') for s in session.scalars(stmt)]
        return self._read('get_shelters', run, [])

    def count_rows(self, model) -> int:
        """
        Row count of a mapped table; -1 when the store is unavailable.
        """
        return self._read('count_rows', lambda s: BaseCRUD(s, model).count(), -1)
