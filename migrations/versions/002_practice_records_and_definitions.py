"""Practice history and AI dictionary fields on vocabulary items

Revision ID: 002_practice_records_and_definitions
Revises: 001_initial_schema
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '002_practice_records_and_definitions'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('vocabulary_item', sa.Column('phonetic', sa.String(100), nullable=True))
    op.add_column('vocabulary_item', sa.Column('meanings', postgresql.JSONB(), nullable=True))
    op.add_column('vocabulary_item', sa.Column('definition_error', sa.Boolean(), nullable=False,
                                               server_default=sa.false()))

    op.create_table(
        'practice_record',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('question_type', sa.String(50), nullable=False),
        sa.Column('difficulty', sa.String(50), nullable=False),
        sa.Column('questions_count', sa.Integer(), nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('total_time_seconds', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('answers_json', postgresql.JSONB(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_practice_record_id', 'practice_record', ['id'])
    op.create_index('ix_practice_record_user_id', 'practice_record', ['user_id'])
    op.create_index('ix_practice_record_session_id', 'practice_record', ['session_id'])
    op.create_index('ix_practice_record_user_completed', 'practice_record', ['user_id', 'completed_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_practice_record_user_completed', table_name='practice_record')
    op.drop_index('ix_practice_record_session_id', table_name='practice_record')
    op.drop_index('ix_practice_record_user_id', table_name='practice_record')
    op.drop_index('ix_practice_record_id', table_name='practice_record')
    op.drop_table('practice_record')
    op.drop_column('vocabulary_item', 'definition_error')
    op.drop_column('vocabulary_item', 'meanings')
    op.drop_column('vocabulary_item', 'phonetic')
