"""add locations.province

Revision ID: 0003_location_province
Revises: 0002_history_favorite
Create Date: 2024-07-08

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_location_province'
down_revision = '0002_history_favorite'
branch_labels = None
depends_on = None


def upgrade():
    columns = {c['name'] for c in sa.inspect(op.get_bind()).get_columns('locations')}
    if 'province' in columns:
        return
    with op.batch_alter_table('locations') as batch_op:
        batch_op.add_column(sa.Column('province', sa.String()))


def downgrade():
    with op.batch_alter_table('locations') as batch_op:
        batch_op.drop_column('province')
