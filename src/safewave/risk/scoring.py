"""
Weighted multi-signal risk scoring.

Every sub-score lives on a 0-100 scale. Normalisation clamps instead of
extrapolating, and missing optional readings contribute nothing.
"""
from typing import Dict, NamedTuple, Optional

import numpy as np

from safewave.risk.model import RainWindows, RiskLevel, WeatherInputs

# (window, weight, lo, hi) in mm; weights sum to 1 inside the rain component
RAIN_TERMS = (
    ('h1', 0.30, 5, 150),
    ('h3', 0.20, 10, 200),
    ('h12', 0.15, 20, 250),
    ('h24', 0.10, 30, 350),
    ('d3', 0.25, 50, 500),
)
WEATHER_WEIGHTS = {
    'rain': 0.45,
    'wind': 0.35,
    'humidity': 0.05,
    'soil': 0.10,
    'pressure': 0.05,
}
RAIN_FLOOR = 40.0
GUST_FLOOR = 50.0
GUST_FLOOR_KMH = 60.0

STORM_MAX_DISTANCE_KM = 800.0
STORM_INFLUENCE_KM = 300.0
STORM_CORE_KM = 100.0
STORM_CORE_FLOOR = 90.0

TOTAL_WEIGHTS = {'weather': 0.50, 'storm': 0.40, 'terrain': 0.10}
SATURATION_BONUS = 30 * 0.2
STORM_VETO = (80.0, 90.0)    # storm >= 80 forces total >= 90
WEATHER_VETO = (90.0, 85.0)  # weather >= 90 forces total >= 85

LEVEL_THRESHOLDS = (
    (85.0, RiskLevel.DANGER),
    (65.0, RiskLevel.WARNING),
    (35.0, RiskLevel.MINOR),
)

# Placeholder slope model: upper elevation bound (m) -> representative slope (deg).
# Not a DEM measurement.
ELEVATION_SLOPE_BANDS = (
    (50, 2.0),
    (200, 8.0),
    (500, 18.0),
    (1000, 30.0),
    (1500, 40.0),
)
HIGH_ELEVATION_SLOPE = 50.0


def norm(x: Optional[float], lo: float, hi: float) -> float:
    """
    Map x linearly from [lo, hi] onto [0, 100], clamping outside the range.
    """
    if x is None:
        return 0.0
    return float(np.interp(x, [lo, hi], [0.0, 100.0]))


def inv_norm(x: Optional[float], lo: float, hi: float) -> float:
    if x is None:
        return 0.0
    return 100.0 - norm(x, lo, hi)


def rain_score(rain: RainWindows) -> float:
    return sum(weight * norm(getattr(rain, window), lo, hi) for window, weight, lo, hi in RAIN_TERMS)


def wind_score(speed: Optional[float], gusts: Optional[float]) -> float:
    return 0.7 * norm(speed, 30, 200) + 0.3 * norm(gusts, 50, 260)


def pressure_score(pressure_sea: Optional[float]) -> float:
    # a zero reading is a missing sensor, not a 0 hPa atmosphere
    if not pressure_sea:
        return 0.0
    return inv_norm(pressure_sea, 880, 1010)


def weather_components(weather: WeatherInputs) -> Dict[str, float]:
    return {
        'rain': rain_score(weather.rain),
        'wind': wind_score(weather.wind_speed, weather.wind_gusts),
        'humidity': norm(weather.humidity, 60, 100),
        'soil': norm(weather.soil_moisture, 0.4, 0.9),
        'pressure': pressure_score(weather.pressure_sea),
    }


def rain_floor_triggered(rain: RainWindows) -> bool:
    return rain.h1 > 10 or rain.h3 > 20 or rain.h24 > 50


def gust_floor_triggered(gusts: Optional[float]) -> bool:
    return (gusts or 0.0) >= GUST_FLOOR_KMH


def compute_weather_score(weather: WeatherInputs) -> float:
    components = weather_components(weather)
    score = sum(WEATHER_WEIGHTS[name] * value for name, value in components.items())
    if rain_floor_triggered(weather.rain):
        score = max(score, RAIN_FLOOR)
    if gust_floor_triggered(weather.wind_gusts):
        score = max(score, GUST_FLOOR)
    return min(score, 100.0)


def compute_storm_score(distance_km: Optional[float], wind_kmh: Optional[float]) -> float:
    """
    :param distance_km: distance to the storm centre, None when no storm is tracked
    :param wind_kmh: sustained wind of the storm
    """
    if distance_km is None or distance_km > STORM_MAX_DISTANCE_KM:
        return 0.0
    proximity = inv_norm(distance_km, 0, STORM_INFLUENCE_KM)
    score = 0.60 * proximity + 0.40 * norm(wind_kmh, 40, 240)
    if distance_km < STORM_CORE_KM:
        score = max(score, STORM_CORE_FLOOR)
    return score


def slope_from_elevation(elevation_m: Optional[float]) -> float:
    elevation = elevation_m or 0.0
    for upper, slope in ELEVATION_SLOPE_BANDS:
        if elevation < upper:
            return slope
    return HIGH_ELEVATION_SLOPE


def compute_terrain_score(slope_deg: Optional[float]) -> float:
    return norm(slope_deg, 0, 60)


def level_for_score(score: float) -> RiskLevel:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskLevel.SAFE


class TotalRisk(NamedTuple):
    score: float
    level: RiskLevel
    saturation_bonus: float
    storm_veto: bool
    weather_veto: bool


def compute_total_risk(weather: float, storm: float, terrain: float, saturation: float = 0.0) -> TotalRisk:
    """
    Blend sub-scores into the composite and map it to a level.
    :param saturation: soil saturation in [0, 1]
    """
    score = (TOTAL_WEIGHTS['weather'] * weather
             + TOTAL_WEIGHTS['storm'] * storm
             + TOTAL_WEIGHTS['terrain'] * terrain)

    bonus = 0.0
    if terrain > 50:
        bonus = float(np.clip(saturation, 0.0, 1.0)) * SATURATION_BONUS
        score += bonus

    storm_veto = storm >= STORM_VETO[0]
    if storm_veto:
        score = max(score, STORM_VETO[1])
    weather_veto = weather >= WEATHER_VETO[0]
    if weather_veto:
        score = max(score, WEATHER_VETO[1])

    score = min(score, 100.0)
    return TotalRisk(score, level_for_score(score), bonus, storm_veto, weather_veto)
