import json
import logging
from datetime import datetime
from pathlib import Path

from sqlalchemy.orm import Session

from safewave.data.store.crud import ProvinceRainCRUD, ShelterCRUD
from safewave.data.store.model import utcnow

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).parent / 'seeds'
SHELTERS_SEED = SEED_DIR / 'shelters.seed.json'
PROVINCE_RAIN_SEED = SEED_DIR / 'province_rain_records.seed.json'


def _load(path: Path) -> list:
    if not path.exists():
        return []
    records = json.loads(path.read_text(encoding='utf-8'))
    return records if isinstance(records, list) else []


def seed_shelters(session: Session, path: Path = SHELTERS_SEED) -> int:
    """
    Insert bundled shelters, only when the table is empty.
    :return: number of inserted rows
    """
    repo = ShelterCRUD(session)
    if repo.count() > 0:
        return 0
    records = _load(path)
    for item in records:
        repo.create({
            'name': item['name'],
            'province': item['province'],
            'address': item.get('address'),
            'latitude': item['latitude'],
            'longitude': item['longitude'],
            'capacity': item.get('capacity'),
            'contact': item.get('contact'),
            'status': item.get('status') or 'Available',
        })
    if records:
        logger.info("Seeded %d shelters", len(records))
    return len(records)


def seed_historical_province_rain(session: Session, path: Path = PROVINCE_RAIN_SEED) -> int:
    """
    Insert bundled historical rain records unless sourced rows already exist.
    Windows missing from a record fall back to its 24h total.
    :return: number of inserted rows
    """
    repo = ProvinceRainCRUD(session)
    records = _load(path)
    if not records or repo.has_sourced_rows():
        return 0
    for item in records:
        h24 = item.get('h24') or 0
        recorded_at = item.get('recorded_at')
        repo.create({
            'province': item['province'],
            'h1': item.get('h1') or h24,
            'h3': item.get('h3') or h24,
            'h24': h24,
            'd3': item.get('d3') or h24,
            'd7': item.get('d7') or h24,
            'd14': item.get('d14') or h24,
            'location_note': item.get('location_note'),
            'source': item.get('source'),
            'recorded_at': datetime.fromisoformat(recorded_at) if recorded_at else utcnow(),
        })
    logger.info("Seeded %d historical province rain records", len(records))
    return len(records)
