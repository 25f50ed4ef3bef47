"""
Spatial deduplication of raw hazard events into operator-facing alerts.

Grouping is centred on the highest-priority event of each group: every later
event within `radius_km` of that main event is absorbed. It is not a
transitive closure, so a chain of events each just over the radius apart can
stay split.
"""
import logging
from typing import List, Sequence

import numpy as np

from safewave.geo import haversine_km_many
from safewave.risk.model import AlertEvent

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 50.0
CLUSTER_LABEL = '{province} (area)'
CLUSTER_DESCRIPTION = '{count} hazard events within {radius:g} km'


def _merge(main: AlertEvent, members: Sequence[AlertEvent], radius_km: float) -> AlertEvent:
    count = sum(m.cluster_count for m in members)
    province = main.province or main.location_name
    return main.model_copy(update={
        'location_name': CLUSTER_LABEL.format(province=province),
        'is_cluster': True,
        'cluster_count': count,
        'description': CLUSTER_DESCRIPTION.format(count=count, radius=radius_km),
        'rain_amount': max(m.rain_amount for m in members),
        'wind_speed': max(m.wind_speed for m in members),
    })


def cluster(events: Sequence[AlertEvent], radius_km: float = DEFAULT_RADIUS_KM) -> List[AlertEvent]:
    """
    Group events by proximity to the highest-priority unvisited event.
    :param events: raw (or already clustered) events
    :param radius_km: absorption radius around each main event
    :return: deduplicated events, highest priority first
    """
    if not events:
        return []

    # sorted() is stable, so ties keep input order
    ordered = sorted(events, key=lambda e: e.level, reverse=True)
    lats = np.array([e.latitude for e in ordered], dtype=float)
    lons = np.array([e.longitude for e in ordered], dtype=float)
    visited = np.zeros(len(ordered), dtype=bool)

    result = []
    for i, main in enumerate(ordered):
        if visited[i]:
            continue
        visited[i] = True

        later = np.arange(i + 1, len(ordered))
        later = later[~visited[later]]
        if later.size:
            distances = haversine_km_many(main.latitude, main.longitude, lats[later], lons[later])
            absorbed = later[distances <= radius_km]
        else:
            absorbed = later
        visited[absorbed] = True

        if absorbed.size:
            members = [main] + [ordered[j] for j in absorbed]
            result.append(_merge(main, members, radius_km))
        else:
            result.append(main)

    logger.debug("Clustered %d events into %d alerts (radius %.0f km)", len(events), len(result), radius_km)
    return result
