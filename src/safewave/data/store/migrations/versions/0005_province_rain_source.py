"""add province_rain_history.source

Revision ID: 0005_province_rain_source
Revises: 0004_province_rain_note
Create Date: 2024-08-15

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0005_province_rain_source'
down_revision = '0004_province_rain_note'
branch_labels = None
depends_on = None


def upgrade():
    columns = {c['name'] for c in sa.inspect(op.get_bind()).get_columns('province_rain_history')}
    if 'source' in columns:
        return
    with op.batch_alter_table('province_rain_history') as batch_op:
        batch_op.add_column(sa.Column('source', sa.String()))


def downgrade():
    with op.batch_alter_table('province_rain_history') as batch_op:
        batch_op.drop_column('source')
