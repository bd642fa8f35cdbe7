"""create competition, round, question, team and answer tables

Revision ID: 5c1d7e2a9b30
Revises:
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1d7e2a9b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'competition',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('host_pin_hash', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'round',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('competition_id', sa.String(length=36), sa.ForeignKey('competition.id'), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_round_competition_id', 'round', ['competition_id'])
    op.create_table(
        'question',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('round_id', sa.String(length=36), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=True),
        sa.Column('grading', sa.String(length=16), nullable=False),
        sa.Column('content', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_question_round_id', 'question', ['round_id'])
    op.create_table(
        'team',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('competition_id', sa.String(length=36), sa.ForeignKey('competition.id'), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('color', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('competition_id', 'name', name='uq_team_competition_name'),
    )
    op.create_index('ix_team_competition_id', 'team', ['competition_id'])
    op.create_table(
        'answer',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('question_id', sa.String(length=36), sa.ForeignKey('question.id'), nullable=False),
        sa.Column('round_id', sa.String(length=36), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('submitted_content', sa.JSON(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('score_awarded', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('team_id', 'question_id', name='uq_answer_team_question'),
    )
    op.create_index('ix_answer_team_id', 'answer', ['team_id'])
    op.create_index('ix_answer_question_id', 'answer', ['question_id'])
    op.create_index('ix_answer_round_id', 'answer', ['round_id'])


def downgrade():
    op.drop_table('answer')
    op.drop_table('team')
    op.drop_table('question')
    op.drop_table('round')
    op.drop_table('competition')
