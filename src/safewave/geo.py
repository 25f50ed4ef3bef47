import numpy as np

EARTH_RADIUS_KM = 6371.0


def haversine_km_many(lat: float, lon: float, lats, lons) -> np.ndarray:
    """
    Great-circle distances (km) from one point to many.
    :param lat: latitude of the origin in degrees
    :param lon: longitude of the origin in degrees
    :param lats: array-like of target latitudes in degrees
    :param lons: array-like of target longitudes in degrees
    :return: array of distances, same length as targets
    """
    lat1 = np.radians(lat)
    lat2 = np.radians(np.asarray(lats, dtype=float))
    dlat = lat2 - lat1
    dlon = np.radians(np.asarray(lons, dtype=float) - lon)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return float(haversine_km_many(lat1, lon1, [lat2], [lon2])[0])
