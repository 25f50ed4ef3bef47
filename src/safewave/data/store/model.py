from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """
    Naive UTC timestamp; SQLite has no timezone-aware column type.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Location(Base):
    __tablename__ = 'locations'

    location_id = Column(Integer, primary_key=True, autoincrement=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    title = Column(String, nullable=False)
    subtitle = Column(String)
    province = Column(String)
    elevation = Column(Float, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index('idx_locations_coords', 'latitude', 'longitude'),)


class WeatherRecord(Base):
    __tablename__ = 'weather_records'

    weather_id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, ForeignKey('locations.location_id', ondelete='CASCADE'),
                         nullable=False, index=True)
    temp = Column(Float)
    feels_like = Column(Float)
    temp_min = Column(Float)
    temp_max = Column(Float)
    humidity = Column(Float)
    pressure_sea = Column(Float)
    pressure_ground = Column(Float)
    wind_speed = Column(Float)
    wind_dir = Column(Float)
    wind_gusts = Column(Float)
    cloud_cover = Column(Float)
    uv_index = Column(Float)
    soil_moisture = Column(Float)
    recorded_at = Column(DateTime, default=utcnow, nullable=False)


class RainStats(Base):
    __tablename__ = 'rain_stats'

    rain_id = Column(Integer, primary_key=True, autoincrement=True)
    weather_id = Column(Integer, ForeignKey('weather_records.weather_id', ondelete='CASCADE'),
                        nullable=False, unique=True)
    h1 = Column(Float, default=0)
    h2 = Column(Float, default=0)
    h3 = Column(Float, default=0)
    h5 = Column(Float, default=0)
    h12 = Column(Float, default=0)
    h24 = Column(Float, default=0)
    d3 = Column(Float, default=0)
    d7 = Column(Float, default=0)
    d14 = Column(Float, default=0)


class RiskAnalysis(Base):
    __tablename__ = 'risk_analyses'

    analysis_id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, ForeignKey('locations.location_id', ondelete='CASCADE'),
                         nullable=False, index=True)
    weather_id = Column(Integer, ForeignKey('weather_records.weather_id', ondelete='SET NULL'))
    level = Column(Integer, nullable=False)
    label = Column(String, nullable=False)
    score = Column(Float)
    confidence = Column(Float)
    actions = Column(Text)
    terrain_type = Column(String)
    soil_type = Column(String)
    saturation = Column(Float)
    analyzed_at = Column(DateTime, default=utcnow, nullable=False)


class RiskReasonRecord(Base):
    __tablename__ = 'risk_reasons'

    reason_id = Column(Integer, primary_key=True, autoincrement=True)
    analysis_id = Column(Integer, ForeignKey('risk_analyses.analysis_id', ondelete='CASCADE'),
                         nullable=False, index=True)
    code = Column(String, nullable=False)
    score = Column(Float)
    description = Column(Text)
    source = Column(String)


class AlertRecord(Base):
    __tablename__ = 'alerts'

    alert_id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String)
    location_name = Column(String, nullable=False)
    province = Column(String)
    level = Column(String, nullable=False)
    type = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    rain_amount = Column(Float, default=0)
    wind_speed = Column(Float, default=0)
    description = Column(Text)
    source = Column(String)
    is_cluster = Column(Boolean, default=False, nullable=False)
    cluster_count = Column(Integer, default=1, nullable=False)
    detected_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at = Column(DateTime)

    __table_args__ = (Index('idx_alerts_coords', 'latitude', 'longitude'),)


class AnalysisHistory(Base):
    __tablename__ = 'analysis_history'

    history_id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, ForeignKey('locations.location_id', ondelete='SET NULL'), index=True)
    analysis_id = Column(Integer, ForeignKey('risk_analyses.analysis_id', ondelete='SET NULL'))
    risk_level = Column(String, nullable=False)
    risk_type = Column(String)
    risk_type_local = Column(String)
    is_favorite = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class ProvinceRainSample(Base):
    __tablename__ = 'province_rain_history'

    entry_id = Column(Integer, primary_key=True, autoincrement=True)
    province = Column(String, nullable=False, index=True)
    h1 = Column(Float, default=0)
    h3 = Column(Float, default=0)
    h24 = Column(Float, default=0)
    d3 = Column(Float, default=0)
    d7 = Column(Float, default=0)
    d14 = Column(Float, default=0)
    location_note = Column(Text)
    source = Column(String)
    recorded_at = Column(DateTime, default=utcnow, nullable=False)


class Shelter(Base):
    __tablename__ = 'shelters'

    shelter_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    province = Column(String, nullable=False, index=True)
    address = Column(Text)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    capacity = Column(Integer)
    contact = Column(String)
    status = Column(String, default='Available')
    updated_at = Column(DateTime, default=utcnow, nullable=False)
