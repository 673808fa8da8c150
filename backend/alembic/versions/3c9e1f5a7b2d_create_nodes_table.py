"""create nodes table

Revision ID: 3c9e1f5a7b2d
Revises:
Create Date: 2026-10-17 19:20:41.512093

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3c9e1f5a7b2d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'nodes',
        sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('parent_id', sa.String(length=36), nullable=True),
        sa.Column('child_ids', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('seq'),
    )
    with op.batch_alter_table('nodes', schema=None) as batch_op:
        batch_op.create_index(op.f('ix_nodes_id'), ['id'], unique=True)
        batch_op.create_index('ix_nodes_level_parent_id', ['level', 'parent_id'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('nodes', schema=None) as batch_op:
        batch_op.drop_index('ix_nodes_level_parent_id')
        batch_op.drop_index(op.f('ix_nodes_id'))

    op.drop_table('nodes')
