"""add analysis_history.is_favorite

Revision ID: 0002_history_favorite
Revises: 0001_base_tables
Create Date: 2024-06-20

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_history_favorite'
down_revision = '0001_base_tables'
branch_labels = None
depends_on = None


def upgrade():
    columns = {c['name'] for c in sa.inspect(op.get_bind()).get_columns('analysis_history')}
    if 'is_favorite' in columns:
        return
    with op.batch_alter_table('analysis_history') as batch_op:
        batch_op.add_column(sa.Column('is_favorite', sa.Boolean(), nullable=False, server_default='0'))


def downgrade():
    with op.batch_alter_table('analysis_history') as batch_op:
        batch_op.drop_column('is_favorite')
