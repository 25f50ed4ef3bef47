"""add analysis_history.risk_type_local

Revision ID: 0006_history_local_type
Revises: 0005_province_rain_source
Create Date: 2024-09-02

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0006_history_local_type'
down_revision = '0005_province_rain_source'
branch_labels = None
depends_on = None


def upgrade():
    columns = {c['name'] for c in sa.inspect(op.get_bind()).get_columns('analysis_history')}
    if 'risk_type_local' in columns:
        return
    with op.batch_alter_table('analysis_history') as batch_op:
        batch_op.add_column(sa.Column('risk_type_local', sa.String()))


def downgrade():
    with op.batch_alter_table('analysis_history') as batch_op:
        batch_op.drop_column('risk_type_local')
