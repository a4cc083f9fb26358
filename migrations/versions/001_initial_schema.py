"""Initial schema: users, sessions, vocabulary, plans, subscriptions, usage quotas

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    user_role_enum = sa.Enum('user', 'admin', name='user_role_enum')
    subscription_status_enum = sa.Enum(
        'active', 'trialing', 'past_due', 'canceled', 'incomplete', 'unpaid',
        name='subscription_status_enum',
    )

    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        *_timestamps(),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('role', user_role_enum, nullable=False),
        sa.Column('has_used_trial', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('trial_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_email', sa.String(100), nullable=True),
        sa.Column('trial_ip_address', sa.String(64), nullable=True),
    )
    op.create_index('ix_user_id', 'user', ['id'])
    op.create_index('ix_user_username', 'user', ['username'], unique=True)
    op.create_index('ix_user_email', 'user', ['email'], unique=True)
    op.create_index('ix_user_has_used_trial', 'user', ['has_used_trial'])
    op.create_index('ix_user_trial_expires_at', 'user', ['trial_expires_at'])
    op.create_index('ix_user_trial_email', 'user', ['trial_email'])
    op.create_index('ix_user_trial_ip_address', 'user', ['trial_ip_address'])

    op.create_table(
        'user_session',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('session_token', sa.String(512), nullable=False),
        *_timestamps(),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_user_session_id', 'user_session', ['id'])
    op.create_index('ix_user_session_session_token', 'user_session', ['session_token'], unique=True)

    op.create_table(
        'vocabulary_item',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('word', sa.String(100), nullable=False),
        sa.Column('definition', sa.Text(), nullable=True),
        sa.Column('context', sa.Text(), nullable=True),
        sa.Column('source_type', sa.String(50), nullable=False),
        sa.Column('notes', sa.Text(), nullable=False),
        sa.Column('review_count', sa.Integer(), nullable=False),
        sa.Column('correct_count', sa.Integer(), nullable=False),
        sa.Column('incorrect_count', sa.Integer(), nullable=False),
        sa.Column('ease_factor', sa.Float(), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False),
        sa.Column('next_review_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('mastered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('added_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'word', name='uq_vocabulary_item_user_word'),
        sa.CheckConstraint('ease_factor >= 1.3', name='ck_vocabulary_item_ease_floor'),
        sa.CheckConstraint('review_count >= 0', name='ck_vocabulary_item_review_count'),
    )
    op.create_index('ix_vocabulary_item_id', 'vocabulary_item', ['id'])
    op.create_index('ix_vocabulary_item_user_id', 'vocabulary_item', ['user_id'])
    op.create_index('ix_vocabulary_item_user_due', 'vocabulary_item', ['user_id', 'next_review_date'])

    op.create_table(
        'subscription_plan',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('name_jp', sa.String(100), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('interval', sa.String(20), nullable=False),
        sa.Column('ai_practice', sa.Boolean(), nullable=False),
        sa.Column('ai_chat', sa.Boolean(), nullable=False),
        sa.Column('export_data', sa.Boolean(), nullable=False),
        sa.Column('vocabulary', sa.Boolean(), nullable=True),
        sa.Column('view_mistakes', sa.Boolean(), nullable=True),
        sa.Column('daily_practice_limit', sa.Integer(), nullable=True),
        sa.Column('daily_ai_chat_limit', sa.Integer(), nullable=True),
        sa.Column('max_vocabulary_words', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'user_subscription',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False, unique=True),
        sa.Column('plan_id', sa.String(50), nullable=False),
        sa.Column('status', subscription_status_enum, nullable=False),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_user_subscription_id', 'user_subscription', ['id'])
    op.create_index('ix_user_subscription_plan_id', 'user_subscription', ['plan_id'])

    op.create_table(
        'usage_quota',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('used_count', sa.Integer(), nullable=False),
        sa.Column('limit_count', sa.Integer(), nullable=True),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'resource_type', 'period_start', name='uq_usage_quota_period'),
        sa.CheckConstraint('used_count >= 0', name='ck_usage_quota_used_count'),
    )
    op.create_index('ix_usage_quota_id', 'usage_quota', ['id'])
    op.create_index('ix_usage_quota_lookup', 'usage_quota', ['user_id', 'resource_type', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_usage_quota_lookup', table_name='usage_quota')
    op.drop_index('ix_usage_quota_id', table_name='usage_quota')
    op.drop_table('usage_quota')
    op.drop_index('ix_user_subscription_plan_id', table_name='user_subscription')
    op.drop_index('ix_user_subscription_id', table_name='user_subscription')
    op.drop_table('user_subscription')
    op.drop_table('subscription_plan')
    op.drop_index('ix_vocabulary_item_user_due', table_name='vocabulary_item')
    op.drop_index('ix_vocabulary_item_user_id', table_name='vocabulary_item')
    op.drop_index('ix_vocabulary_item_id', table_name='vocabulary_item')
    op.drop_table('vocabulary_item')
    op.drop_index('ix_user_session_session_token', table_name='user_session')
    op.drop_index('ix_user_session_id', table_name='user_session')
    op.drop_table('user_session')
    for name in ('ix_user_trial_ip_address', 'ix_user_trial_email', 'ix_user_trial_expires_at',
                 'ix_user_has_used_trial', 'ix_user_email', 'ix_user_username', 'ix_user_id'):
        op.drop_index(name, table_name='user')
    op.drop_table('user')
    sa.Enum(name='subscription_status_enum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='user_role_enum').drop(op.get_bind(), checkfirst=True)
