"""
Turns raw weather, storm and terrain inputs into an explainable RiskAssessment.

The reasons attached to an assessment are rebuilt from the same thresholds and
overrides the scoring functions apply, so a stored analysis can be explained
from its inputs alone.
"""
from typing import Iterable, List, Optional

import numpy as np

from safewave.geo import haversine_km_many
from safewave.risk import scoring
from safewave.risk.model import (
    RiskAssessment, RiskLevel, RiskReason, StormInputs, StormTrack, SubScores,
    TerrainInputs, WeatherInputs,
)

ACTIONS = {
    RiskLevel.SAFE: 'No action needed. Keep following weather updates.',
    RiskLevel.MINOR: 'Monitor local forecasts and avoid streams and steep slopes during heavy rain.',
    RiskLevel.WARNING: 'Prepare to evacuate, secure property and locate the nearest shelter.',
    RiskLevel.DANGER: 'Evacuate to the nearest shelter now and stay away from slopes, rivers and low ground.',
}

ACCUMULATED_RAIN_MM = 50.0
BASE_CONFIDENCE = 0.6
MAX_CONFIDENCE = 0.95


def nearest_storm(latitude: float, longitude: float, tracks: Iterable[StormTrack]) -> StormInputs:
    """
    Pick the closest tracked storm; an empty track list means no storm.
    """
    tracks = list(tracks)
    if not tracks:
        return StormInputs()
    distances = haversine_km_many(
        latitude, longitude,
        [t.latitude for t in tracks],
        [t.longitude for t in tracks],
    )
    idx = int(np.argmin(distances))
    return StormInputs(
        distance_km=float(distances[idx]),
        wind_kmh=tracks[idx].wind_kmh,
        storm_id=tracks[idx].id,
    )


def terrain_type(slope_deg: float) -> str:
    if slope_deg < 5:
        return 'Plain'
    if slope_deg < 15:
        return 'Hills'
    if slope_deg < 35:
        return 'Mountain slope'
    return 'Steep mountain'


def soil_type(saturation: float) -> str:
    if saturation >= 0.8:
        return 'Saturated'
    if saturation >= 0.4:
        return 'Wet'
    if saturation > 0:
        return 'Moist'
    return 'Dry'


def _reasons(weather: WeatherInputs, storm: StormInputs, storm_score: float,
             components: dict, slope: float, terrain_score: float,
             saturation: float, bonus: float) -> List[RiskReason]:
    rain = weather.rain
    reasons = []
    if scoring.rain_floor_triggered(rain):
        reasons.append(RiskReason(
            code='RAIN_HEAVY',
            score=round(max(components['rain'], scoring.RAIN_FLOOR), 1),
            description=f'Heavy rain: {rain.h1:.1f} mm in 1h, {rain.h3:.1f} mm in 3h, {rain.h24:.1f} mm in 24h',
            source='weather',
        ))
    if rain.d3 >= ACCUMULATED_RAIN_MM:
        reasons.append(RiskReason(
            code='RAIN_ACCUMULATED',
            score=round(scoring.norm(rain.d3, 50, 500), 1),
            description=f'Accumulated rain: {rain.d3:.1f} mm over 3 days',
            source='weather',
        ))
    if scoring.gust_floor_triggered(weather.wind_gusts):
        reasons.append(RiskReason(
            code='WIND_GUST',
            score=round(max(components['wind'], scoring.GUST_FLOOR), 1),
            description=f'Wind gusts of {weather.wind_gusts:.0f} km/h',
            source='weather',
        ))
    if storm_score > 0:
        core = storm.distance_km < scoring.STORM_CORE_KM
        name = storm.storm_id or 'storm'
        reasons.append(RiskReason(
            code='STORM_CORE' if core else 'STORM_PROXIMITY',
            score=round(storm_score, 1),
            description=f'{name} centre {storm.distance_km:.0f} km away, sustained wind {storm.wind_kmh:.0f} km/h',
            source='storm',
        ))
    if bonus > 0:
        reasons.append(RiskReason(
            code='SOIL_TERRAIN',
            score=round(terrain_score, 1),
            description=f'Soil {saturation:.0%} saturated on {terrain_type(slope).lower()} terrain (~{slope:.0f} deg)',
            source='terrain',
        ))
    reasons.sort(key=lambda r: r.score, reverse=True)
    return reasons


def compute_risk(weather: WeatherInputs, storm: Optional[StormInputs] = None,
                 terrain: Optional[TerrainInputs] = None) -> RiskAssessment:
    storm = storm or StormInputs()
    terrain = terrain or TerrainInputs()

    components = scoring.weather_components(weather)
    weather_score = scoring.compute_weather_score(weather)
    storm_score = scoring.compute_storm_score(storm.distance_km, storm.wind_kmh)
    slope = terrain.slope_deg if terrain.slope_deg is not None else scoring.slope_from_elevation(terrain.elevation_m)
    terrain_score = scoring.compute_terrain_score(slope)
    saturation = components['soil'] / 100.0

    total = scoring.compute_total_risk(weather_score, storm_score, terrain_score, saturation)
    reasons = _reasons(weather, storm, storm_score, components, slope, terrain_score, saturation,
                       total.saturation_bonus)

    confidence = BASE_CONFIDENCE + 0.1 * len({r.source for r in reasons})
    if total.storm_veto or total.weather_veto:
        confidence += 0.05
    confidence = min(confidence, MAX_CONFIDENCE)

    return RiskAssessment(
        score=total.score,
        level=total.level,
        label=total.level.label,
        local_label=total.level.local_label,
        subscores=SubScores(
            weather=round(weather_score, 2),
            storm=round(storm_score, 2),
            terrain=round(terrain_score, 2),
        ),
        confidence=round(confidence, 2),
        actions=ACTIONS[total.level],
        terrain_type=terrain_type(slope),
        soil_type=soil_type(saturation),
        saturation=round(saturation, 3),
        reasons=reasons,
    )
