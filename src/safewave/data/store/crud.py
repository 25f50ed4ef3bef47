from datetime import datetime
from typing import Optional

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from safewave.data.store.model import (
    AlertRecord, AnalysisHistory, Location, ProvinceRainSample, RainStats, RiskAnalysis,
    RiskReasonRecord, Shelter, WeatherRecord,
)

COORD_TOLERANCE = 0.0001


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.execute('PRAGMA journal_mode=WAL')
    cursor.close()


def init_db(db_url: str = 'sqlite:///safewave.db', echo: bool = False) -> Engine:
    """
    Create the engine; SQLite connections get foreign keys and WAL enabled.
    Schema creation is left to the migrations.
    """
    connect_args = {}
    if db_url.startswith('sqlite'):
        # the scheduler thread and the caller share the engine; writes are serialised by the store
        connect_args['check_same_thread'] = False
    engine = create_engine(db_url, echo=echo, connect_args=connect_args)
    if engine.dialect.name == 'sqlite':
        event.listen(engine, 'connect', _sqlite_pragmas)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


class BaseCRUD:
    """
    Generic operations for a SQLAlchemy model inside a caller-owned transaction.
    Nothing here commits; the store decides the transaction boundary.
    """
    def __init__(self, session: Session, model):
        self.session = session
        self.model = model

    def create(self, data: dict):
        """
        Create a new record for the model.
        :param data: dict of attributes for the model
        :return: the created record, flushed so its primary key is set
        """
        record = self.model(**data)
        self.session.add(record)
        self.session.flush()
        return record

    def delete(self, *, record_id: int = None, **filters) -> int:
        """
        Delete record(s) by primary key or other filters.
        :param record_id: primary key of the record
        :param filters: other column-based filters (e.g., province='...')
        :return: number of rows deleted
        """
        stmt = delete(self.model)
        if record_id is not None:
            pk = self.model.__mapper__.primary_key[0]
            stmt = stmt.where(pk == record_id)
        elif filters:
            stmt = stmt.filter_by(**filters)
        else:
            raise ValueError("Must provide `record_id` or filters to delete.")
        return self.session.execute(stmt).rowcount

    def get(self, **filters):
        return self.session.scalars(select(self.model).filter_by(**filters)).all()

    def get_by_id(self, record_id: int):
        return self.session.get(self.model, record_id)

    def count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        return self.session.scalar(stmt)


class LocationCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, Location)

    def find_by_coords(self, latitude: float, longitude: float) -> Optional[Location]:
        """
        Latest location within COORD_TOLERANCE degrees on both axes.
        """
        stmt = (
            select(Location)
            .where(func.abs(Location.latitude - latitude) < COORD_TOLERANCE)
            .where(func.abs(Location.longitude - longitude) < COORD_TOLERANCE)
            .order_by(Location.created_at.desc(), Location.location_id.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()


class WeatherRecordCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, WeatherRecord)


class RainStatsCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, RainStats)


class RiskAnalysisCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, RiskAnalysis)


class RiskReasonCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, RiskReasonRecord)

    def for_analysis(self, analysis_id: int):
        stmt = (
            select(RiskReasonRecord)
            .where(RiskReasonRecord.analysis_id == analysis_id)
            .order_by(RiskReasonRecord.score.desc())
        )
        return self.session.scalars(stmt).all()


class AlertCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, AlertRecord)

    def active(self, now: datetime):
        stmt = (
            select(AlertRecord)
            .where((AlertRecord.expires_at.is_(None)) | (AlertRecord.expires_at > now))
            .order_by(AlertRecord.detected_at.desc(), AlertRecord.alert_id.desc())
        )
        return self.session.scalars(stmt).all()

    def delete_expired(self, now: datetime) -> int:
        stmt = delete(AlertRecord).where(AlertRecord.expires_at.is_not(None), AlertRecord.expires_at < now)
        return self.session.execute(stmt).rowcount


class AnalysisHistoryCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, AnalysisHistory)

    def delete_older_than(self, cutoff: datetime) -> int:
        """
        Delete non-favorite entries created before `cutoff`.
        """
        stmt = delete(AnalysisHistory).where(
            AnalysisHistory.created_at < cutoff,
            AnalysisHistory.is_favorite.is_(False),
        )
        return self.session.execute(stmt).rowcount


class ProvinceRainCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, ProvinceRainSample)

    def trim(self, province: str, keep: int) -> int:
        """
        Keep only the `keep` most recent samples of a province.
        """
        newest = (
            select(ProvinceRainSample.entry_id)
            .where(ProvinceRainSample.province == province)
            .order_by(ProvinceRainSample.recorded_at.desc(), ProvinceRainSample.entry_id.desc())
            .limit(keep)
        )
        stmt = delete(ProvinceRainSample).where(
            ProvinceRainSample.province == province,
            ProvinceRainSample.entry_id.not_in(newest.scalar_subquery()),
        )
        return self.session.execute(stmt).rowcount

    def has_sourced_rows(self) -> bool:
        return self.count(ProvinceRainSample.source.is_not(None)) > 0


class ShelterCRUD(BaseCRUD):
    def __init__(self, session: Session):
        super().__init__(session, Shelter)
