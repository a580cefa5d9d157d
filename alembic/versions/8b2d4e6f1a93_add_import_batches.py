"""add_import_batches

Revision ID: 8b2d4e6f1a93
Revises: 3f1c9a2b7d10
Create Date: 2026-10-19 11:02:37.540216

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2d4e6f1a93'
down_revision: Union[str, None] = '3f1c9a2b7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'import_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('total_jobs', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_import_batches_id'), 'import_batches', ['id'], unique=False)

    # Batch membership; SQLite needs the table rebuilt to add the foreign key
    with op.batch_alter_table('import_jobs') as batch_op:
        batch_op.add_column(sa.Column('batch_id', sa.Integer(), nullable=True))
        batch_op.create_foreign_key('fk_import_jobs_batch_id', 'import_batches', ['batch_id'], ['id'])
        batch_op.create_index(batch_op.f('ix_import_jobs_batch_id'), ['batch_id'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('import_jobs') as batch_op:
        batch_op.drop_index(batch_op.f('ix_import_jobs_batch_id'))
        batch_op.drop_constraint('fk_import_jobs_batch_id', type_='foreignkey')
        batch_op.drop_column('batch_id')

    op.drop_index(op.f('ix_import_batches_id'), table_name='import_batches')
    op.drop_table('import_batches')
