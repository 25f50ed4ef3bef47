import json
import logging
from pathlib import Path
from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from safewave.config import GDACS_URL, OPEN_METEO_URL
from safewave.data.sources.utils import compute_rain_windows
from safewave.risk.model import StormTrack, WeatherInputs

logger = logging.getLogger(__name__)

PROVINCES_FILE = Path(__file__).parent / 'provinces.json'

CURRENT_FIELDS = {
    'temp': 'temperature_2m',
    'feels_like': 'apparent_temperature',
    'humidity': 'relative_humidity_2m',
    'pressure_sea': 'pressure_msl',
    'pressure_ground': 'surface_pressure',
    'wind_speed': 'wind_speed_10m',
    'wind_dir': 'wind_direction_10m',
    'wind_gusts': 'wind_gusts_10m',
    'cloud_cover': 'cloud_cover',
}


def load_provinces(path: Path = PROVINCES_FILE) -> List[dict]:
    """
    Province centroids: [{'province', 'latitude', 'longitude', 'elevation'}, ...]
    """
    return json.loads(path.read_text(encoding='utf-8'))


def build_session(retries: int = 3, backoff: float = 1.0) -> requests.Session:
    """
    Session retrying idempotent requests with exponential backoff on
    connection errors and 429/5xx responses.
    """
    retry = Retry(
        total=retries,
        backoff_factor=backoff,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=('GET',),
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session


class BaseJsonLoader:
    """
    GET + JSON decode; a failure after retries means no data this cycle.
    """
    def __init__(self, url: str, timeout: float = 10, retries: int = 3, backoff: float = 1.0,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or build_session(retries, backoff)

    def fetch_json(self, params: Optional[dict] = None):
        resp = self.session.get(self.url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def try_fetch_json(self, params: Optional[dict] = None):
        try:
            return self.fetch_json(params)
        except (requests.RequestException, ValueError) as e:
            logger.warning("Fetch failed for %s: %s", self.url, e)
            return None


class OpenMeteoLoader(BaseJsonLoader):
    """
    Current conditions plus trailing rain windows from Open-Meteo.
    """
    def __init__(self, url: str = OPEN_METEO_URL, **kwargs):
        super().__init__(url, **kwargs)

    @staticmethod
    def _params(latitude: float, longitude: float) -> dict:
        return {
            'latitude': latitude,
            'longitude': longitude,
            'current': ','.join(CURRENT_FIELDS.values()),
            'hourly': 'precipitation,soil_moisture_0_to_1cm',
            'daily': 'precipitation_sum,temperature_2m_max,temperature_2m_min,uv_index_max',
            'past_days': 14,
            'forecast_days': 1,
            'timezone': 'auto',
        }

    def fetch_weather(self, latitude: float, longitude: float) -> Optional[WeatherInputs]:
        payload = self.try_fetch_json(self._params(latitude, longitude))
        if payload is None:
            return None
        try:
            current = payload['current']
            daily = payload.get('daily') or {}
            hourly = payload.get('hourly') or {}
            soil = [v for v in hourly.get('soil_moisture_0_to_1cm') or [] if v is not None]
            return WeatherInputs(
                **{name: current.get(key) for name, key in CURRENT_FIELDS.items()},
                temp_min=(daily.get('temperature_2m_min') or [None])[-1],
                temp_max=(daily.get('temperature_2m_max') or [None])[-1],
                uv_index=(daily.get('uv_index_max') or [None])[-1],
                soil_moisture=soil[-1] if soil else None,
                rain=compute_rain_windows(payload),
            )
        except (KeyError, ValueError) as e:
            logger.warning("Unusable weather data for %.4f,%.4f: %s", latitude, longitude, e)
            return None


class GdacsLoader(BaseJsonLoader):
    """
    Active tropical cyclone positions from the GDACS event list.
    """
    def __init__(self, url: str = GDACS_URL, **kwargs):
        super().__init__(url, **kwargs)

    def fetch_storm_tracks(self) -> List[StormTrack]:
        payload = self.try_fetch_json()
        if not payload:
            return []
        tracks = []
        for feature in payload.get('features', []):
            geometry = feature.get('geometry') or {}
            if geometry.get('type') != 'Point':
                continue
            props = feature.get('properties') or {}
            lon, lat = geometry['coordinates'][:2]
            severity = props.get('severitydata') or {}
            tracks.append(StormTrack(
                id=str(props.get('eventid') or props.get('eventname') or f'{lat:.2f},{lon:.2f}'),
                latitude=lat,
                longitude=lon,
                wind_kmh=severity.get('severity') or 0.0,
                alert_level=props.get('alertlevel'),
                description=props.get('description') or props.get('name'),
            ))
        logger.debug("Fetched %d storm tracks", len(tracks))
        return tracks
