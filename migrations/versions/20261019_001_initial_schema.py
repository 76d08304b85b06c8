"""Initial schema for RightSize AI

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create metrics, cost and recommendation tables."""
    # Usage samples (CPU in millicores, memory in bytes)
    op.create_table(
        'pod_metrics',
        sa.Column('namespace', sa.String(length=255), nullable=False),
        sa.Column('pod_name', sa.String(length=255), nullable=False),
        sa.Column('container_name', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cpu_millicores', sa.Float(), nullable=True),
        sa.Column('memory_bytes', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('namespace', 'pod_name', 'container_name', 'timestamp')
    )
    op.create_index(
        'ix_pod_metrics_namespace_timestamp', 'pod_metrics', ['namespace', 'timestamp']
    )

    # Requests/limits snapshots; the newest row is the current allocation
    op.create_table(
        'resource_requests',
        sa.Column('namespace', sa.String(length=255), nullable=False),
        sa.Column('pod_name', sa.String(length=255), nullable=False),
        sa.Column('container_name', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cpu_request', sa.Float(), nullable=True),
        sa.Column('cpu_limit', sa.Float(), nullable=True),
        sa.Column('memory_request', sa.Float(), nullable=True),
        sa.Column('memory_limit', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('namespace', 'pod_name', 'container_name', 'timestamp')
    )
    op.create_index(
        'ix_resource_requests_namespace_timestamp',
        'resource_requests',
        ['namespace', 'timestamp']
    )

    op.create_table(
        'namespace_costs',
        sa.Column('namespace', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('compute_cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('storage_cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('network_cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('other_cost', sa.Float(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('namespace', 'timestamp')
    )
    op.create_index(
        'ix_namespace_costs_namespace_timestamp', 'namespace_costs', ['namespace', 'timestamp']
    )

    op.create_table(
        'recommendations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('namespace', sa.String(length=255), nullable=False),
        sa.Column('pod_name', sa.String(length=255), nullable=False),
        sa.Column('container_name', sa.String(length=255), nullable=False),
        sa.Column('resource_type', sa.String(length=6), nullable=False),
        sa.Column('current_request', sa.Float(), nullable=False),
        sa.Column('current_limit', sa.Float(), nullable=False),
        sa.Column('recommended_request', sa.Float(), nullable=False),
        sa.Column('recommended_limit', sa.Float(), nullable=False),
        sa.Column('p50_usage', sa.Float(), nullable=False),
        sa.Column('p95_usage', sa.Float(), nullable=False),
        sa.Column('p99_usage', sa.Float(), nullable=False),
        sa.Column('max_usage', sa.Float(), nullable=False),
        sa.Column('potential_savings', sa.Float(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('risk_level', sa.String(length=6), nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('applied', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_recommendations_namespace_created_at',
        'recommendations',
        ['namespace', 'created_at']
    )
    op.create_index(
        'ix_recommendations_workload',
        'recommendations',
        ['namespace', 'pod_name', 'container_name', 'resource_type']
    )

    op.create_table(
        'recommendation_actions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('recommendation_id', sa.Integer(), nullable=True),
        sa.Column('namespace', sa.String(length=255), nullable=False),
        sa.Column('pod_name', sa.String(length=255), nullable=False),
        sa.Column('container_name', sa.String(length=255), nullable=False),
        sa.Column('resource_type', sa.String(length=6), nullable=False),
        sa.Column('action', sa.String(length=6), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['recommendation_id'], ['recommendations.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_recommendation_actions_namespace_applied_at',
        'recommendation_actions',
        ['namespace', 'applied_at']
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index(
        'ix_recommendation_actions_namespace_applied_at', table_name='recommendation_actions'
    )
    op.drop_table('recommendation_actions')

    op.drop_index('ix_recommendations_workload', table_name='recommendations')
    op.drop_index('ix_recommendations_namespace_created_at', table_name='recommendations')
    op.drop_table('recommendations')

    op.drop_index('ix_namespace_costs_namespace_timestamp', table_name='namespace_costs')
    op.drop_table('namespace_costs')

    op.drop_index('ix_resource_requests_namespace_timestamp', table_name='resource_requests')
    op.drop_table('resource_requests')

    op.drop_index('ix_pod_metrics_namespace_timestamp', table_name='pod_metrics')
    op.drop_table('pod_metrics')
