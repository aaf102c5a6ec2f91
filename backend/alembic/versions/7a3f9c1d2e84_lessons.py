"""lessons table

Revision ID: 7a3f9c1d2e84
Revises: 5e1c2d3a4b6f
Create Date: 2026-10-19 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7a3f9c1d2e84'
down_revision = '5e1c2d3a4b6f'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'lessons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('grade', sa.String(length=32), nullable=False),
        sa.Column('subject', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('content_md', sa.Text(), nullable=False),
        sa.Column('is_published', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_lessons_id'), 'lessons', ['id'], unique=False)
    op.create_index(op.f('ix_lessons_grade'), 'lessons', ['grade'], unique=False)
    op.create_index(op.f('ix_lessons_subject'), 'lessons', ['subject'], unique=False)
    op.create_index(op.f('ix_lessons_created_by'), 'lessons', ['created_by'], unique=False)
    op.create_index(op.f('ix_lessons_created_at'), 'lessons', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_lessons_created_at'), table_name='lessons')
    op.drop_index(op.f('ix_lessons_created_by'), table_name='lessons')
    op.drop_index(op.f('ix_lessons_subject'), table_name='lessons')
    op.drop_index(op.f('ix_lessons_grade'), table_name='lessons')
    op.drop_index(op.f('ix_lessons_id'), table_name='lessons')
    op.drop_table('lessons')
