"""create base tables

Revision ID: 0001_base_tables
Revises:
Create Date: 2024-06-01

Tables that already exist are left alone, so databases created before
version tracking pick up only what they are missing.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_base_tables'
down_revision = None
branch_labels = None
depends_on = None

TABLES = (
    'locations', 'weather_records', 'rain_stats', 'risk_analyses', 'risk_reasons',
    'alerts', 'analysis_history', 'province_rain_history', 'shelters',
)


def _create_table(existing, name, *columns):
    if name not in existing:
        op.create_table(name, *columns)


def _create_index(inspector, existing, name, table, columns, unique=False):
    if table in existing and name in {i['name'] for i in inspector.get_indexes(table)}:
        return
    op.create_index(name, table, columns, unique=unique)


def upgrade():
    inspector = sa.inspect(op.get_bind())
    existing = set(inspector.get_table_names())

    _create_table(
        existing, 'locations',
        sa.Column('location_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('subtitle', sa.String()),
        sa.Column('elevation', sa.Float()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_table(
        existing, 'weather_records',
        sa.Column('weather_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.location_id', ondelete='CASCADE'),
                  nullable=False),
        *[sa.Column(name, sa.Float()) for name in (
            'temp', 'feels_like', 'temp_min', 'temp_max', 'humidity', 'pressure_sea', 'pressure_ground',
            'wind_speed', 'wind_dir', 'wind_gusts', 'cloud_cover', 'uv_index', 'soil_moisture',
        )],
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
    )
    _create_table(
        existing, 'rain_stats',
        sa.Column('rain_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('weather_id', sa.Integer(), sa.ForeignKey('weather_records.weather_id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        *[sa.Column(name, sa.Float()) for name in ('h1', 'h2', 'h3', 'h5', 'h12', 'h24', 'd3', 'd7', 'd14')],
    )
    _create_table(
        existing, 'risk_analyses',
        sa.Column('analysis_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.location_id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('weather_id', sa.Integer(), sa.ForeignKey('weather_records.weather_id', ondelete='SET NULL')),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(), nullable=False),
        sa.Column('score', sa.Float()),
        sa.Column('confidence', sa.Float()),
        sa.Column('actions', sa.Text()),
        sa.Column('terrain_type', sa.String()),
        sa.Column('soil_type', sa.String()),
        sa.Column('saturation', sa.Float()),
        sa.Column('analyzed_at', sa.DateTime(), nullable=False),
    )
    _create_table(
        existing, 'risk_reasons',
        sa.Column('reason_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('analysis_id', sa.Integer(), sa.ForeignKey('risk_analyses.analysis_id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('score', sa.Float()),
        sa.Column('description', sa.Text()),
        sa.Column('source', sa.String()),
    )
    _create_table(
        existing, 'alerts',
        sa.Column('alert_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String()),
        sa.Column('location_name', sa.String(), nullable=False),
        sa.Column('province', sa.String()),
        sa.Column('level', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('rain_amount', sa.Float()),
        sa.Column('wind_speed', sa.Float()),
        sa.Column('description', sa.Text()),
        sa.Column('source', sa.String()),
        sa.Column('is_cluster', sa.Boolean(), nullable=False),
        sa.Column('cluster_count', sa.Integer(), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime()),
    )
    _create_table(
        existing, 'analysis_history',
        sa.Column('history_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.location_id', ondelete='SET NULL')),
        sa.Column('analysis_id', sa.Integer(), sa.ForeignKey('risk_analyses.analysis_id', ondelete='SET NULL')),
        sa.Column('risk_level', sa.String(), nullable=False),
        sa.Column('risk_type', sa.String()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_table(
        existing, 'province_rain_history',
        sa.Column('entry_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('province', sa.String(), nullable=False),
        *[sa.Column(name, sa.Float()) for name in ('h1', 'h3', 'h24', 'd3', 'd7', 'd14')],
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
    )
    _create_table(
        existing, 'shelters',
        sa.Column('shelter_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('province', sa.String(), nullable=False),
        sa.Column('address', sa.Text()),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('capacity', sa.Integer()),
        sa.Column('contact', sa.String()),
        sa.Column('status', sa.String()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    _create_index(inspector, existing, 'idx_locations_coords', 'locations', ['latitude', 'longitude'])
    _create_index(inspector, existing, 'ix_weather_records_location_id', 'weather_records', ['location_id'])
    _create_index(inspector, existing, 'ix_risk_analyses_location_id', 'risk_analyses', ['location_id'])
    _create_index(inspector, existing, 'ix_risk_reasons_analysis_id', 'risk_reasons', ['analysis_id'])
    _create_index(inspector, existing, 'idx_alerts_coords', 'alerts', ['latitude', 'longitude'])
    _create_index(inspector, existing, 'ix_alerts_detected_at', 'alerts', ['detected_at'])
    _create_index(inspector, existing, 'ix_analysis_history_location_id', 'analysis_history', ['location_id'])
    _create_index(inspector, existing, 'ix_analysis_history_created_at', 'analysis_history', ['created_at'])
    _create_index(inspector, existing, 'ix_province_rain_history_province', 'province_rain_history', ['province'])
    _create_index(inspector, existing, 'ix_shelters_province', 'shelters', ['province'])


def downgrade():
    for name in reversed(TABLES):
        op.drop_table(name)
