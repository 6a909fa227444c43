"""initial schema

Revision ID: 3a1f0c9d2b7e
Revises:
Create Date: 2026-10-19 10:02:11.418230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a1f0c9d2b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'votings',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_hours', sa.Float(), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('complete_notified', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_votings_created_at', 'votings', ['created_at'])
    op.create_index('ix_votings_end_at', 'votings', ['end_at'])
    op.create_index('ix_votings_user_id', 'votings', ['user_id'])

    op.create_table(
        'voting_options',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('voting_id', sa.String(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('pixel_ratio', sa.Float(), nullable=False),
        sa.Column('width', sa.Integer(), nullable=False),
        sa.Column('height', sa.Integer(), nullable=False),
        sa.Column('media_type', sa.Enum('IMAGE', 'VIDEO', name='mediatype'), nullable=False),
        sa.ForeignKeyConstraint(['voting_id'], ['votings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_voting_options_voting_id', 'voting_options', ['voting_id'])

    op.create_table(
        'votes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('voting_id', sa.String(), nullable=False),
        sa.Column('option_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['voting_id'], ['votings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['option_id'], ['voting_options.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('voting_id', 'user_id', name='uq_votes_voting_user'),
    )
    op.create_index('ix_votes_voting_id', 'votes', ['voting_id'])
    op.create_index('ix_votes_user_id', 'votes', ['user_id'])
    op.create_index('ix_votes_created_at', 'votes', ['created_at'])

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('refresh_token_hash', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('ix_sessions_expires_at', 'sessions', ['expires_at'])

    op.create_table(
        'magic_tokens',
        sa.Column('token_hash', sa.String(), nullable=False),
        sa.Column('user_email', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('token_hash'),
    )
    op.create_index('ix_magic_tokens_expires_at', 'magic_tokens', ['expires_at'])

    op.create_table(
        'figma_auth_codes',
        sa.Column('code_hash', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('code_hash'),
    )
    op.create_index('ix_figma_auth_codes_expires_at', 'figma_auth_codes', ['expires_at'])


def downgrade() -> None:
    # Reverse order of creation
    op.drop_index('ix_figma_auth_codes_expires_at', table_name='figma_auth_codes')
    op.drop_table('figma_auth_codes')
    op.drop_index('ix_magic_tokens_expires_at', table_name='magic_tokens')
    op.drop_table('magic_tokens')
    op.drop_index('ix_sessions_expires_at', table_name='sessions')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_index('ix_votes_created_at', table_name='votes')
    op.drop_index('ix_votes_user_id', table_name='votes')
    op.drop_index('ix_votes_voting_id', table_name='votes')
    op.drop_table('votes')
    op.drop_index('ix_voting_options_voting_id', table_name='voting_options')
    op.drop_table('voting_options')
    op.drop_index('ix_votings_user_id', table_name='votings')
    op.drop_index('ix_votings_end_at', table_name='votings')
    op.drop_index('ix_votings_created_at', table_name='votings')
    op.drop_table('votings')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    sa.Enum(name='mediatype').drop(op.get_bind(), checkfirst=True)
