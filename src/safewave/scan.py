import logging
import time
from datetime import timedelta
from typing import Callable, List, Optional

from tqdm import tqdm

from safewave.data.sources.loader import GdacsLoader, OpenMeteoLoader, load_provinces
from safewave.data.store.model import utcnow
from safewave.risk.analyzer import compute_risk, nearest_storm
from safewave.risk.model import AlertEvent, RiskAssessment, RiskLevel, TerrainInputs, WeatherInputs
from safewave.service import SafeWaveService

logger = logging.getLogger(__name__)

HAZARD_TYPES = {
    'STORM_CORE': 'Storm',
    'STORM_PROXIMITY': 'Storm',
    'RAIN_HEAVY': 'Flash flood',
    'RAIN_ACCUMULATED': 'Landslide',
    'SOIL_TERRAIN': 'Landslide',
    'WIND_GUST': 'Strong wind',
}
DEFAULT_HAZARD = 'Severe weather'
SCAN_SOURCE = 'national-scan'


def hazard_type(assessment: RiskAssessment) -> str:
    if not assessment.reasons:
        return DEFAULT_HAZARD
    return HAZARD_TYPES.get(assessment.reasons[0].code, DEFAULT_HAZARD)


class NationalScan:
    """
    One fetch-score-cluster-persist pass over all province centroids.
    """
    def __init__(
        self,
        service: SafeWaveService,
        weather_loader: Optional[OpenMeteoLoader] = None,
        storm_loader: Optional[GdacsLoader] = None,
        provinces: Optional[List[dict]] = None,
        alert_ttl_hours: float = 6.0,
        request_delay_s: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.weather_loader = weather_loader or OpenMeteoLoader()
        self.storm_loader = storm_loader
        self.provinces = provinces if provinces is not None else load_provinces()
        self.alert_ttl = timedelta(hours=alert_ttl_hours)
        self.request_delay_s = request_delay_s
        self.sleep = sleep

    def build_event(self, province: dict, weather: WeatherInputs, assessment: RiskAssessment) -> Optional[AlertEvent]:
        if assessment.level < RiskLevel.MINOR:
            return None
        now = utcnow()
        top = assessment.reasons[0].description if assessment.reasons else assessment.actions
        return AlertEvent(
            external_id=f"{province['province']}-{now:%Y%m%d%H%M}",
            location_name=province['province'],
            province=province['province'],
            level=assessment.level,
            type=hazard_type(assessment),
            latitude=province['latitude'],
            longitude=province['longitude'],
            rain_amount=weather.rain.h24,
            wind_speed=weather.wind_speed or 0.0,
            description=top,
            source=SCAN_SOURCE,
            expires_at=now + self.alert_ttl,
        )

    def run(self, should_stop: Callable[[], bool] = lambda: False) -> List[AlertEvent]:
        """
        :param should_stop: polled between provinces; a stop abandons the pass before clustering
        :return: the clustered alerts that were persisted
        """
        store = self.service.store
        tracks = self.storm_loader.fetch_storm_tracks() if self.storm_loader else []
        raw = []
        for i, province in enumerate(tqdm(self.provinces, desc='national scan', unit='province')):
            if should_stop():
                logger.info("National scan abandoned")
                return []
            if i and self.request_delay_s:
                self.sleep(self.request_delay_s)
            lat, lon = province['latitude'], province['longitude']
            weather = self.weather_loader.fetch_weather(lat, lon)
            if weather is None:
                continue
            assessment = compute_risk(
                weather,
                nearest_storm(lat, lon, tracks),
                TerrainInputs(elevation_m=province.get('elevation', 0)),
            )
            store.record_province_rain(province['province'], weather.rain)
            event = self.build_event(province, weather, assessment)
            if event is not None:
                raw.append(event)

        alerts = self.service.scan_and_cluster(raw, source=SCAN_SOURCE)
        logger.info("National scan: %d provinces, %d raw events, %d alerts",
                    len(self.provinces), len(raw), len(alerts))
        return alerts
