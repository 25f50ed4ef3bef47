from datetime import datetime
from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskLevel(IntEnum):
    SAFE = 1
    MINOR = 2
    WARNING = 3
    DANGER = 4

    @property
    def label(self) -> str:
        return _LABELS[self][0]

    @property
    def local_label(self) -> str:
        return _LABELS[self][1]

    @classmethod
    def from_label(cls, label: str) -> 'RiskLevel':
        """
        Resolve a level from its English or Vietnamese label (case-insensitive).
        """
        needle = label.strip().lower()
        for level, names in _LABELS.items():
            if needle in (names[0].lower(), names[1].lower()):
                return level
        raise ValueError(f"Unknown risk level label: {label!r}")


_LABELS = {
    RiskLevel.SAFE: ('Safe', 'An toàn'),
    RiskLevel.MINOR: ('Minor', 'Nhẹ'),
    RiskLevel.WARNING: ('Warning', 'Cảnh báo'),
    RiskLevel.DANGER: ('Danger', 'Nguy hiểm'),
}


class RainWindows(BaseModel):
    """
    Cumulative precipitation (mm) over trailing windows.
    """
    h1: float = 0.0
    h2: float = 0.0
    h3: float = 0.0
    h5: float = 0.0
    h12: float = 0.0
    h24: float = 0.0
    d3: float = 0.0
    d7: float = 0.0
    d14: float = 0.0

    @field_validator('*', mode='before')
    @classmethod
    def _missing_is_zero(cls, v):
        return 0.0 if v is None else v


class WeatherInputs(BaseModel):
    temp: Optional[float] = None
    feels_like: Optional[float] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    humidity: Optional[float] = None
    pressure_sea: Optional[float] = None
    pressure_ground: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_dir: Optional[float] = None
    wind_gusts: Optional[float] = None
    cloud_cover: Optional[float] = None
    uv_index: Optional[float] = None
    soil_moisture: Optional[float] = None  # volumetric fraction, m3/m3
    rain: RainWindows = Field(default_factory=RainWindows)


class StormTrack(BaseModel):
    id: str
    latitude: float
    longitude: float
    wind_kmh: float = 0.0
    alert_level: Optional[str] = None
    description: Optional[str] = None


class StormInputs(BaseModel):
    distance_km: Optional[float] = None  # None means no active storm
    wind_kmh: float = 0.0
    storm_id: Optional[str] = None


class TerrainInputs(BaseModel):
    elevation_m: float = 0.0
    slope_deg: Optional[float] = None  # derived from elevation when not given


class LocationInput(BaseModel):
    latitude: float
    longitude: float
    title: str
    subtitle: Optional[str] = None
    province: Optional[str] = None
    elevation: float = 0.0


class SubScores(BaseModel):
    weather: float
    storm: float
    terrain: float


class RiskReason(BaseModel):
    code: str
    score: float
    description: str
    source: str


class RiskAssessment(BaseModel):
    score: float
    level: RiskLevel
    label: str
    local_label: str
    subscores: SubScores
    confidence: float
    actions: str
    terrain_type: str
    soil_type: str
    saturation: float
    reasons: List[RiskReason] = Field(default_factory=list)


class AlertEvent(BaseModel):
    """
    A hazard event shown to an operator; either raw or a synthetic cluster.
    """
    model_config = ConfigDict(frozen=True)

    external_id: Optional[str] = None
    location_name: str
    province: Optional[str] = None
    level: RiskLevel
    type: str
    latitude: float
    longitude: float
    rain_amount: float = 0.0
    wind_speed: float = 0.0
    description: Optional[str] = None
    source: Optional[str] = None
    is_cluster: bool = False
    cluster_count: int = 1
    expires_at: Optional[datetime] = None
