"""Add KPI contribution and progress tables

Revision ID: 0001_kpi_progress
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_kpi_progress'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade():
    # Aportes por análisis y KPI
    op.create_table('kpi_contributions',
        *_audit_columns(),
        sa.Column('analysis_id', sa.String(length=64), nullable=False),
        sa.Column('document_id', sa.String(length=64), nullable=True),
        sa.Column('unit_id', sa.String(length=64), nullable=True),
        sa.Column('kra_id', sa.String(length=20), nullable=False),
        sa.Column('initiative_id', sa.String(length=50), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('quarter', sa.Integer(), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('target_type', sa.String(length=30), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('analysis_id', 'initiative_id', name='uq_contribution_analysis_kpi')
    )
    op.create_index(op.f('ix_kpi_contributions_id'), 'kpi_contributions', ['id'], unique=False)
    op.create_index(op.f('ix_kpi_contributions_analysis_id'), 'kpi_contributions', ['analysis_id'], unique=False)
    op.create_index(op.f('ix_kpi_contributions_kra_id'), 'kpi_contributions', ['kra_id'], unique=False)
    op.create_index(op.f('ix_kpi_contributions_initiative_id'), 'kpi_contributions', ['initiative_id'], unique=False)
    op.create_index(op.f('ix_kpi_contributions_year'), 'kpi_contributions', ['year'], unique=False)

    # Progreso acumulado por KPI, año y trimestre
    op.create_table('kpi_progress_records',
        *_audit_columns(),
        sa.Column('kra_id', sa.String(length=20), nullable=False),
        sa.Column('kra_title', sa.String(length=300), nullable=True),
        sa.Column('initiative_id', sa.String(length=50), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('quarter', sa.Integer(), nullable=False),
        sa.Column('target_type', sa.String(length=30), nullable=False),
        sa.Column('total_reported', sa.Float(), nullable=False),
        sa.Column('target_value', sa.Float(), nullable=True),
        sa.Column('achievement_percent', sa.Float(), nullable=False),
        sa.Column('status', sa.Enum('MET', 'ON_TRACK', 'MISSED', 'PENDING', name='progressstatus'), nullable=False),
        sa.Column('submission_count', sa.Integer(), nullable=False),
        sa.Column('participating_units', sa.JSON(), nullable=True),
        sa.Column('manual_override', sa.Float(), nullable=True),
        sa.Column('manual_override_reason', sa.Text(), nullable=True),
        sa.Column('manual_override_by', sa.Integer(), nullable=True),
        sa.Column('manual_override_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kra_id', 'initiative_id', 'year', 'quarter', name='uq_progress_period')
    )
    op.create_index(op.f('ix_kpi_progress_records_id'), 'kpi_progress_records', ['id'], unique=False)
    op.create_index(op.f('ix_kpi_progress_records_kra_id'), 'kpi_progress_records', ['kra_id'], unique=False)
    op.create_index(op.f('ix_kpi_progress_records_initiative_id'), 'kpi_progress_records', ['initiative_id'], unique=False)
    op.create_index(op.f('ix_kpi_progress_records_year'), 'kpi_progress_records', ['year'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_kpi_progress_records_year'), table_name='kpi_progress_records')
    op.drop_index(op.f('ix_kpi_progress_records_initiative_id'), table_name='kpi_progress_records')
    op.drop_index(op.f('ix_kpi_progress_records_kra_id'), table_name='kpi_progress_records')
    op.drop_index(op.f('ix_kpi_progress_records_id'), table_name='kpi_progress_records')
    op.drop_table('kpi_progress_records')
    sa.Enum(name='progressstatus').drop(op.get_bind(), checkfirst=True)

    op.drop_index(op.f('ix_kpi_contributions_year'), table_name='kpi_contributions')
    op.drop_index(op.f('ix_kpi_contributions_initiative_id'), table_name='kpi_contributions')
    op.drop_index(op.f('ix_kpi_contributions_kra_id'), table_name='kpi_contributions')
    op.drop_index(op.f('ix_kpi_contributions_analysis_id'), table_name='kpi_contributions')
    op.drop_index(op.f('ix_kpi_contributions_id'), table_name='kpi_contributions')
    op.drop_table('kpi_contributions')
