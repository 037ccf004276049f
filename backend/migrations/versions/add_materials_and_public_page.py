"""add_materials_and_public_page

Revision ID: add_materials_and_public_page
Revises: create_ambassador_tables
Create Date: 2026-10-19 18:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'add_materials_and_public_page'
down_revision: Union[str, None] = 'create_ambassador_tables'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'ambassador_materials',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('category', sa.String(64), nullable=True),
        sa.Column('file_url', sa.String(512), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('dimensions', sa.String(32), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ambassador_materials_type_order', 'ambassador_materials', ['type', 'display_order'])

    op.add_column('ambassadors', sa.Column('show_on_public_page', sa.Boolean(), nullable=False, server_default=sa.false()))
    op.add_column('ambassadors', sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'))
    op.create_index('ix_ambassadors_public_page', 'ambassadors', ['show_on_public_page', 'display_order'])

    op.add_column('profiles', sa.Column('city', sa.String(128), nullable=True))
    op.add_column('profiles', sa.Column('state', sa.String(64), nullable=True))
    op.add_column('profiles', sa.Column('public_bio', sa.Text(), nullable=True))
    op.add_column('profiles', sa.Column('instagram_url', sa.String(512), nullable=True))
    op.add_column('profiles', sa.Column('linkedin_url', sa.String(512), nullable=True))
    op.add_column('profiles', sa.Column('website_url', sa.String(512), nullable=True))


def downgrade() -> None:
    for column in ('website_url', 'linkedin_url', 'instagram_url', 'public_bio', 'state', 'city'):
        op.drop_column('profiles', column)
    op.drop_index('ix_ambassadors_public_page', table_name='ambassadors')
    op.drop_column('ambassadors', 'display_order')
    op.drop_column('ambassadors', 'show_on_public_page')
    op.drop_index('ix_ambassador_materials_type_order', table_name='ambassador_materials')
    op.drop_table('ambassador_materials')
