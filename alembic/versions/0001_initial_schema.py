"""Initial schema - users, projects, work items, watches, saved queries, jobs.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Creates:
- users, user_email_addresses, groups, group_memberships
- projects, work_items, work_item_watches, work_item_visits
- work_item_comments, work_item_changes
- named_queries, query_settings
- jobs (notification outbox)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ==========================================================================
    # users and groups
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('is_system', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )

    op.create_table(
        'user_email_addresses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_user_email_addresses_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_user_email_addresses'),
        sa.UniqueConstraint('email', name='uq_user_email_addresses_email'),
    )
    op.create_index('idx_user_email_addresses_user', 'user_email_addresses', ['user_id'])

    op.create_table(
        'groups',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_groups'),
        sa.UniqueConstraint('name', name='uq_groups_name'),
    )

    op.create_table(
        'group_memberships',
        sa.Column('group_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE', name='fk_group_memberships_group_id_groups'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_group_memberships_user_id_users'),
        sa.PrimaryKeyConstraint('group_id', 'user_id', name='pk_group_memberships'),
    )

    # ==========================================================================
    # projects and work items
    # ==========================================================================
    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_projects'),
        sa.UniqueConstraint('key', name='uq_projects_key'),
    )

    op.create_table(
        'work_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=True),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('state', sa.String(100), nullable=False),
        sa.Column('submitter_id', sa.Uuid(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('threading_reference', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE', name='fk_work_items_project_id_projects'),
        sa.ForeignKeyConstraint(['submitter_id'], ['users.id'], ondelete='SET NULL', name='fk_work_items_submitter_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_work_items'),
        sa.UniqueConstraint('project_id', 'number', name='uq_work_items_project_number'),
    )

    op.create_table(
        'work_item_watches',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('work_item_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('watching', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['work_item_id'], ['work_items.id'], ondelete='CASCADE', name='fk_work_item_watches_work_item_id_work_items'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_work_item_watches_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_work_item_watches'),
        sa.UniqueConstraint('work_item_id', 'user_id', name='uq_work_item_watches_item_user'),
    )
    op.create_index('idx_work_item_watches_user', 'work_item_watches', ['user_id'])

    op.create_table(
        'work_item_visits',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('work_item_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('visited_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['work_item_id'], ['work_items.id'], ondelete='CASCADE', name='fk_work_item_visits_work_item_id_work_items'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_work_item_visits_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_work_item_visits'),
        sa.UniqueConstraint('work_item_id', 'user_id', name='uq_work_item_visits_item_user'),
    )

    op.create_table(
        'work_item_comments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('work_item_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['work_item_id'], ['work_items.id'], ondelete='CASCADE', name='fk_work_item_comments_work_item_id_work_items'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL', name='fk_work_item_comments_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_work_item_comments'),
    )
    op.create_index('idx_work_item_comments_item', 'work_item_comments', ['work_item_id', 'created_at'])

    op.create_table(
        'work_item_changes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('work_item_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['work_item_id'], ['work_items.id'], ondelete='CASCADE', name='fk_work_item_changes_work_item_id_work_items'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL', name='fk_work_item_changes_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_work_item_changes'),
    )
    op.create_index('idx_work_item_changes_item', 'work_item_changes', ['work_item_id', 'created_at'])

    # ==========================================================================
    # saved queries
    # ==========================================================================
    op.create_table(
        'named_queries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE', name='fk_named_queries_project_id_projects'),
        sa.PrimaryKeyConstraint('id', name='pk_named_queries'),
        sa.UniqueConstraint('project_id', 'name', name='uq_named_queries_project_name'),
    )
    op.create_index('idx_named_queries_project_position', 'named_queries', ['project_id', 'position'])

    op.create_table(
        'query_settings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=True),
        sa.Column('user_queries', sa.JSON(), nullable=False),
        sa.Column('user_query_watches', sa.JSON(), nullable=False),
        sa.Column('query_watches', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE', name='fk_query_settings_user_id_users'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE', name='fk_query_settings_project_id_projects'),
        sa.PrimaryKeyConstraint('id', name='pk_query_settings'),
        sa.UniqueConstraint('user_id', 'project_id', name='uq_query_settings_user_project'),
    )
    op.create_index('idx_query_settings_project', 'query_settings', ['project_id'])

    # ==========================================================================
    # jobs (notification outbox)
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('run_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_jobs'),
    )
    op.create_index('idx_jobs_pending', 'jobs', ['status', 'run_at'])
    op.create_index(
        'uq_job_idempotency',
        'jobs',
        ['idempotency_key'],
        unique=True,
        postgresql_where=sa.text('idempotency_key IS NOT NULL'),
    )


def downgrade() -> None:
    op.drop_table('jobs')
    op.drop_table('query_settings')
    op.drop_table('named_queries')
    op.drop_table('work_item_changes')
    op.drop_table('work_item_comments')
    op.drop_table('work_item_visits')
    op.drop_table('work_item_watches')
    op.drop_table('work_items')
    op.drop_table('projects')
    op.drop_table('group_memberships')
    op.drop_table('groups')
    op.drop_table('user_email_addresses')
    op.drop_table('users')
