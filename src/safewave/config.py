import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

OPEN_METEO_URL = 'https://api.open-meteo.com/v1/forecast'
GDACS_URL = 'https://www.gdacs.org/gdacsapi/api/events/geteventlist/MAP?eventtypes=TC'


class Settings(BaseSettings):
    """
    Runtime settings, overridable through SAFEWAVE_* environment variables or a .env file.
    """
    model_config = SettingsConfigDict(
        env_prefix='SAFEWAVE_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    # --- storage ---
    db_url: str = 'sqlite:///safewave.db'
    db_echo: bool = False

    # --- scheduling and retention ---
    scan_interval_s: float = 3 * 60 * 60
    retention_interval_s: float = 24 * 60 * 60
    history_days: int = 10
    province_rain_cap: int = 100
    cluster_radius_km: float = 50.0
    alert_ttl_hours: float = 6.0

    # --- data sources ---
    open_meteo_url: str = OPEN_METEO_URL
    gdacs_url: str = GDACS_URL
    request_timeout_s: float = 10.0
    request_retries: int = 3
    request_backoff_s: float = 1.0
    request_delay_s: float = 1.2

    # --- logging ---
    log_level: str = 'INFO'
    log_file: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def setup_logging(settings: Settings) -> None:
    """
    Configure root logging: console always, file when `log_file` is set.
    """
    handlers = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding='utf-8'))
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
