"""Initial schema: users, letters, email_verifications

Revision ID: 001
Revises:
Create Date: 2025-12-01

Creates the tables for accounts, letters (drafts, scheduled and delivered)
and email verification codes.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create initial tables."""

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('public_id', sa.String(32), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('nickname', sa.String(20), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('profile_image_url', sa.String(), nullable=True),
        sa.Column('google_id', sa.String(), nullable=True),
        sa.Column('kakao_id', sa.String(), nullable=True),
        sa.Column('encrypted_refresh_token', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('google_id'),
        sa.UniqueConstraint('kakao_id'),
    )
    op.create_index('ix_users_public_id', 'users', ['public_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_nickname', 'users', ['nickname'], unique=True)

    op.create_table(
        'letters',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), server_default='', nullable=False),
        sa.Column('image_urls', sa.JSON(), server_default='[]', nullable=False),
        sa.Column('bgm_url', sa.String(), nullable=True),
        sa.Column('audio_url', sa.String(), nullable=True),
        sa.Column('category', sa.String(16), server_default='TEXT', nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('receiver_id', sa.Integer(), nullable=True),
        sa.Column('sender_nickname', sa.String(20), nullable=False),
        sa.Column('scheduled_at', sa.Date(), nullable=True),
        sa.Column('is_draft', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_delivered', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('is_open', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('draft_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['receiver_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_letters_sender_id', 'letters', ['sender_id'])
    op.create_index('ix_letters_receiver_id', 'letters', ['receiver_id'])
    op.create_index('ix_letters_due', 'letters', ['is_delivered', 'scheduled_at'])
    op.create_index('ix_letters_receiver_created', 'letters', ['receiver_id', 'created_at'])

    op.create_table(
        'email_verifications',
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('code', sa.String(16), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('verified', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('email'),
    )


def downgrade() -> None:
    """Drop initial tables."""
    op.drop_table('email_verifications')

    op.drop_index('ix_letters_receiver_created', table_name='letters')
    op.drop_index('ix_letters_due', table_name='letters')
    op.drop_index('ix_letters_receiver_id', table_name='letters')
    op.drop_index('ix_letters_sender_id', table_name='letters')
    op.drop_table('letters')

    op.drop_index('ix_users_nickname', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_public_id', table_name='users')
    op.drop_table('users')
