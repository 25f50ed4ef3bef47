"""add province_rain_history.location_note

Revision ID: 0004_province_rain_note
Revises: 0003_location_province
Create Date: 2024-08-15

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0004_province_rain_note'
down_revision = '0003_location_province'
branch_labels = None
depends_on = None


def upgrade():
    columns = {c['name'] for c in sa.inspect(op.get_bind()).get_columns('province_rain_history')}
    if 'location_note' in columns:
        return
    with op.batch_alter_table('province_rain_history') as batch_op:
        batch_op.add_column(sa.Column('location_note', sa.Text()))


def downgrade():
    with op.batch_alter_table('province_rain_history') as batch_op:
        batch_op.drop_column('location_note')
