"""
Entry points for a presentation or orchestration layer.
"""
import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel

from safewave.alerts.cluster import DEFAULT_RADIUS_KM, cluster
from safewave.data.store.result import StoreResult
from safewave.data.store.store import SafeWaveStore
from safewave.risk.analyzer import compute_risk, nearest_storm
from safewave.risk.model import (
    AlertEvent, LocationInput, RiskAssessment, StormInputs, StormTrack, TerrainInputs, WeatherInputs,
)

logger = logging.getLogger(__name__)


class AnalysisResult(BaseModel):
    assessment: RiskAssessment
    saved: StoreResult


class SafeWaveService:
    def __init__(self, store: SafeWaveStore, cluster_radius_km: float = DEFAULT_RADIUS_KM):
        self.store = store
        self.cluster_radius_km = cluster_radius_km

    def analyze(self, location: LocationInput, weather: WeatherInputs,
                storm_tracks: Optional[Iterable[StormTrack]] = None,
                storm: Optional[StormInputs] = None) -> AnalysisResult:
        """
        Score a location and persist the full decision trail.
        :param storm_tracks: active storms; the nearest one feeds the storm sub-score
        :param storm: explicit storm inputs, takes precedence over `storm_tracks`
        """
        if storm is None:
            storm = nearest_storm(location.latitude, location.longitude, storm_tracks or [])
        assessment = compute_risk(weather, storm, TerrainInputs(elevation_m=location.elevation))
        saved = self.store.save_complete_analysis(location, weather, weather.rain, assessment)
        if not saved.success:
            logger.warning("Analysis for %s not persisted: %s", location.title, saved.error)
        logger.info("Analysed %s: level %d (%s), score %.1f",
                    location.title, assessment.level, assessment.label, assessment.score)
        return AnalysisResult(assessment=assessment, saved=saved)

    def scan_and_cluster(self, raw_events: Iterable[AlertEvent],
                         radius_km: Optional[float] = None, source: Optional[str] = None) -> List[AlertEvent]:
        """
        Deduplicate raw hazard events and store the resulting alerts.
        :param source: when set, the alerts replace every stored alert of that source,
            even when the new batch is empty
        """
        radius = self.cluster_radius_km if radius_km is None else radius_km
        alerts = cluster(list(raw_events), radius)
        if source is not None:
            saved = self.store.replace_alerts(source, alerts)
        elif alerts:
            saved = self.store.save_alerts(alerts)
        else:
            return alerts
        if not saved.success:
            logger.warning("Clustered alerts not persisted: %s", saved.error)
        return alerts

    def get_active_alerts(self) -> List[dict]:
        return self.store.get_active_alerts()

    def clear_expired_alerts(self) -> StoreResult:
        return self.store.clear_expired_alerts()

    def get_history(self, limit: int = 100) -> List[dict]:
        return self.store.get_history(limit)

    def get_history_detail(self, history_id: int) -> Optional[dict]:
        return self.store.get_history_detail(history_id)

    def toggle_favorite(self, history_id: int) -> StoreResult:
        return self.store.toggle_favorite(history_id)

    def delete_history(self, history_id: int) -> StoreResult:
        return self.store.delete_history(history_id)

    def get_province_rain_history(self, province: str, limit: int = 30) -> List[dict]:
        return self.store.get_province_rain_history(province, limit)

    def get_province_list(self) -> List[str]:
        return self.store.get_province_list()

    def get_historic_province_records(self, province: str) -> List[dict]:
        return self.store.get_historic_province_records(province)

    def get_shelters(self) -> List[dict]:
        return self.store.get_shelters()
