"""Create automation tables

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-19

Workflows (grafo em JSON), runs com optimistic locking, cadências de
follow-up, contatos, integrações e audit trail.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'a7c1e2d3f4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'workflows',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('entry_node_id', sa.String(100), nullable=True),
        sa.Column('nodes', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('edges', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_workflows_tenant_id', 'workflows', ['tenant_id'], unique=False)

    op.create_table(
        'workflow_runs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('workflow_id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='running'),
        sa.Column('cursor', sa.String(100), nullable=True),
        sa.Column('variables', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('execution_logs', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('step_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wait', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('correlation_key', sa.String(255), nullable=True),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['workflow_id'], ['workflows.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    # Índices
    with op.batch_alter_table('workflow_runs', schema=None) as batch_op:
        batch_op.create_index('ix_workflow_runs_tenant_id', ['tenant_id'], unique=False)
        batch_op.create_index('ix_workflow_runs_status', ['status'], unique=False)
        batch_op.create_index('ix_workflow_runs_correlation_key', ['correlation_key'], unique=False)
        batch_op.create_index('idx_workflow_runs_waiting', ['tenant_id', 'correlation_key', 'status'], unique=False)

    op.create_table(
        'integrations',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('platform', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_integrations_tenant_id', 'integrations', ['tenant_id'], unique=False)

    op.create_table(
        'contacts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('facebook_id', sa.String(100), nullable=True),
        sa.Column('instagram_id', sa.String(100), nullable=True),
        sa.Column('integration_id', sa.String(36), nullable=True),
        sa.ForeignKeyConstraint(['integration_id'], ['integrations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_contacts_tenant_id', 'contacts', ['tenant_id'], unique=False)

    op.create_table(
        'followup_cadences',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('steps', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_followup_cadences_tenant_id', 'followup_cadences', ['tenant_id'], unique=False)

    op.create_table(
        'audit_events',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('tenant_id', sa.String(36), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('actor_type', sa.String(20), nullable=False),
        sa.Column('actor_name', sa.String(255), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('target_type', sa.String(50), nullable=False),
        sa.Column('target_id', sa.String(36), nullable=False),
        sa.Column('event_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    with op.batch_alter_table('audit_events', schema=None) as batch_op:
        batch_op.create_index('idx_audit_events_tenant_target', ['tenant_id', 'target_type', 'target_id'], unique=False)
        batch_op.create_index('idx_audit_events_timestamp', ['timestamp'], unique=False)
        batch_op.create_index('idx_audit_events_action', ['action'], unique=False)


def downgrade():
    op.drop_table('audit_events')
    op.drop_index('ix_followup_cadences_tenant_id', table_name='followup_cadences')
    op.drop_table('followup_cadences')
    op.drop_index('ix_contacts_tenant_id', table_name='contacts')
    op.drop_table('contacts')
    op.drop_index('ix_integrations_tenant_id', table_name='integrations')
    op.drop_table('integrations')
    op.drop_table('workflow_runs')
    op.drop_index('ix_workflows_tenant_id', table_name='workflows')
    op.drop_table('workflows')
