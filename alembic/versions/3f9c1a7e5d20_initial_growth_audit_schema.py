"""Initial growth audit schema

Revision ID: 3f9c1a7e5d20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1a7e5d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'leads',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('full_name', sa.Text()),
        sa.Column('business_name', sa.Text()),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('mobile_number', sa.Text()),
        sa.Column('website_url', sa.Text()),
        sa.Column('industry', sa.Text()),
        sa.Column('goal', sa.Text()),
        sa.Column('primary_concern', sa.Text()),
        sa.Column('source', sa.Text()),
        sa.Column('lead_score', sa.Integer()),
        sa.Column('lead_category', sa.Text()),
        sa.Column('status', sa.Text()),
        sa.Column('extra_data', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_leads_email', 'leads', ['email'])

    op.create_table(
        'audit_runs',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=True),
        sa.Column('report_id', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('industry', sa.Text()),
        sa.Column('goal', sa.Text()),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('scores', sa.JSON(), nullable=True),
        sa.Column('confidence', sa.JSON(), nullable=True),
        sa.Column('insights', sa.JSON(), nullable=True),
        sa.Column('recommendations', sa.JSON(), nullable=True),
        sa.Column('snapshot', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('attempt', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('superseded_by', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_audit_runs_lead_id', 'audit_runs', ['lead_id'])
    op.create_index('ix_audit_runs_report_id', 'audit_runs', ['report_id'])
    op.create_index('ix_audit_runs_superseded_by', 'audit_runs', ['superseded_by'])

    op.create_table(
        'simulator_runs',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=True),
        sa.Column('audit_run_id', sa.Text(), sa.ForeignKey('audit_runs.id'), nullable=True),
        sa.Column('visitors', sa.Integer()),
        sa.Column('avg_order_value', sa.Float()),
        sa.Column('inputs', sa.JSON()),
        sa.Column('outputs', sa.JSON()),
        *_timestamps(),
    )
    op.create_index('ix_simulator_runs_lead_id', 'simulator_runs', ['lead_id'])

    op.create_table(
        'generated_messages',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('audit_run_id', sa.Text(), nullable=True),
        sa.Column('simulator_run_id', sa.Text(), nullable=True),
        sa.Column('domain', sa.Text()),
        sa.Column('weakest_funnel_stage', sa.Text()),
        sa.Column('top_findings', sa.JSON()),
        sa.Column('estimated_revenue_gain', sa.Text()),
        sa.Column('urgency_factor', sa.Text()),
        sa.Column('email_version', sa.Text()),
        sa.Column('whatsapp_version', sa.Text()),
        sa.Column('sms_version', sa.Text()),
        sa.Column('call_script_version', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_generated_messages_lead_id', 'generated_messages', ['lead_id'])

    op.create_table(
        'automation_tasks',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), sa.ForeignKey('leads.id'), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('priority', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('title', sa.Text()),
        sa.Column('generated_message_id', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_automation_tasks_lead_id', 'automation_tasks', ['lead_id'])

    op.create_table(
        'events',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('lead_id', sa.Text(), nullable=True),
        sa.Column('audit_run_id', sa.Text(), nullable=True),
        sa.Column('simulator_run_id', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_events_lead_id', 'events', ['lead_id'])
    op.create_index('ix_events_type', 'events', ['type'])


def downgrade() -> None:
    op.drop_index('ix_events_type', table_name='events')
    op.drop_index('ix_events_lead_id', table_name='events')
    op.drop_table('events')
    op.drop_index('ix_automation_tasks_lead_id', table_name='automation_tasks')
    op.drop_table('automation_tasks')
    op.drop_index('ix_generated_messages_lead_id', table_name='generated_messages')
    op.drop_table('generated_messages')
    op.drop_index('ix_simulator_runs_lead_id', table_name='simulator_runs')
    op.drop_table('simulator_runs')
    op.drop_index('ix_audit_runs_superseded_by', table_name='audit_runs')
    op.drop_index('ix_audit_runs_report_id', table_name='audit_runs')
    op.drop_index('ix_audit_runs_lead_id', table_name='audit_runs')
    op.drop_table('audit_runs')
    op.drop_index('ix_leads_email', table_name='leads')
    op.drop_table('leads')
