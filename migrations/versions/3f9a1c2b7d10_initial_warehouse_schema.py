"""initial warehouse schema

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-18 09:12:31.402117

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c2b7d10'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade():
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_account_id', 'users', ['account_id'])
    op.create_index('ux_users_lower_email', 'users', [sa.text('lower(email)')], unique=True)

    # crews <-> team_members reference each other; leader FK is added below
    op.create_table(
        'crews',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('leader_member_id', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_crews_account_id', 'crews', ['account_id'])
    op.create_index(
        'ux_crews_account_name_live', 'crews', ['account_id', sa.text('lower(name)')],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL'),
    )

    op.create_table(
        'team_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=40), nullable=True),
        sa.Column('role', sa.String(length=20), server_default='worker', nullable=False),
        sa.Column('status', sa.String(length=20), server_default='invited', nullable=False),
        sa.Column('crew_id', sa.Integer(), nullable=True),
        sa.Column('invite_nonce', sa.String(length=64), nullable=True),
        sa.Column('invited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invite_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('owner','manager','storeman','foreman','worker')", name='ck_team_members_role_valid'
        ),
        sa.CheckConstraint("status IN ('invited','active')", name='ck_team_members_status_valid'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['crew_id'], ['crews.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_team_members_account_id', 'team_members', ['account_id'])
    op.create_index('ix_team_members_user_id', 'team_members', ['user_id'])
    op.create_index('ix_team_members_crew_id', 'team_members', ['crew_id'])
    op.create_index(
        'ux_team_members_account_email_live', 'team_members', ['account_id', sa.text('lower(email)')],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL'),
    )
    op.create_index(
        'ux_team_members_account_user_live', 'team_members', ['account_id', 'user_id'],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL AND user_id IS NOT NULL'),
    )
    op.create_foreign_key(
        'fk_crews_leader_member_id', 'crews', 'team_members',
        ['leader_member_id'], ['id'], ondelete='SET NULL',
    )

    op.create_table(
        'inventory_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=160), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_locations_account_id', 'inventory_locations', ['account_id'])
    op.create_index(
        'ux_inventory_locations_account_label_live', 'inventory_locations', ['account_id', sa.text('lower(label)')],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL'),
    )

    op.create_table(
        'materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('inventory_location_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=20), server_default='szt', nullable=False),
        sa.Column('family_key', sa.String(length=255), nullable=True),
        sa.Column('base_quantity', sa.Numeric(14, 3), server_default=sa.text('0'), nullable=False),
        sa.Column('current_quantity', sa.Numeric(14, 3), server_default=sa.text('0'), nullable=False),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('cta_url', sa.String(length=1024), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['inventory_location_id'], ['inventory_locations.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_materials_account_id', 'materials', ['account_id'])
    op.create_index('ix_materials_inventory_location_id', 'materials', ['inventory_location_id'])
    op.create_index('ix_materials_account_lower_title', 'materials', ['account_id', sa.text('lower(title)')])
    op.create_index('ix_materials_account_family', 'materials', ['account_id', 'family_key'])
    op.create_index(
        'ux_materials_account_location_title_live', 'materials',
        ['account_id', 'inventory_location_id', sa.text('lower(title)')],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL'),
    )

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('inventory_location_id', sa.Integer(), nullable=True),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('qty_delta', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=True),
        sa.Column('occurred_on', sa.Date(), nullable=False),
        sa.Column('source_type', sa.String(length=40), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "kind IN ('delivery','usage','relocation_out','relocation_in','audit','adjustment')",
            name='ck_stock_movements_kind_valid',
        ),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['inventory_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['created_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_movements_account_id', 'stock_movements', ['account_id'])
    op.create_index('ix_stock_movements_material_id', 'stock_movements', ['material_id'])
    op.create_index('ix_stock_movements_account_day', 'stock_movements', ['account_id', 'occurred_on'])

    op.create_table(
        'inventory_relocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('client_key', sa.String(length=120), nullable=True),
        sa.Column('from_material_id', sa.Integer(), nullable=False),
        sa.Column('to_material_id', sa.Integer(), nullable=False),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Numeric(14, 3), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_material_id'], ['materials.id']),
        sa.ForeignKeyConstraint(['to_material_id'], ['materials.id']),
        sa.ForeignKeyConstraint(['from_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['to_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['created_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'client_key', name='uq_inventory_relocations_account_client_key'),
    )
    op.create_index('ix_inventory_relocations_account_id', 'inventory_relocations', ['account_id'])

    op.create_table(
        'deliveries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('inventory_location_id', sa.Integer(), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('place_label', sa.String(length=255), nullable=True),
        sa.Column('person', sa.String(length=255), nullable=True),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('delivery_cost', sa.Numeric(12, 2), server_default=sa.text('0'), nullable=False),
        sa.Column('materials_cost', sa.Numeric(12, 2), server_default=sa.text('0'), nullable=False),
        sa.Column('invoice_path', sa.String(length=1024), nullable=True),
        sa.Column('approved', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('delivery_cost >= 0', name='ck_deliveries_delivery_cost_nonneg'),
        sa.CheckConstraint('materials_cost >= 0', name='ck_deliveries_materials_cost_nonneg'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['inventory_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deliveries_account_id', 'deliveries', ['account_id'])
    op.create_index('ix_deliveries_inventory_location_id', 'deliveries', ['inventory_location_id'])
    op.create_index('ix_deliveries_account_date', 'deliveries', ['account_id', 'delivery_date'])

    op.create_table(
        'delivery_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('delivery_id', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=True),
        sa.CheckConstraint('qty > 0', name='ck_delivery_items_qty_positive'),
        sa.CheckConstraint('unit_price IS NULL OR unit_price >= 0', name='ck_delivery_items_unit_price_nonneg'),
        sa.ForeignKeyConstraint(['delivery_id'], ['deliveries.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delivery_items_delivery_id', 'delivery_items', ['delivery_id'])
    op.create_index('ix_delivery_items_material_id', 'delivery_items', ['material_id'])

    op.create_table(
        'project_places',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['project_places.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_project_places_account_id', 'project_places', ['account_id'])
    op.create_index('ix_project_places_parent_id', 'project_places', ['parent_id'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('place_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='todo', nullable=False),
        sa.Column('assigned_crew_id', sa.Integer(), nullable=True),
        sa.Column('assigned_member_id', sa.Integer(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('todo','in_progress','done')", name='ck_tasks_status_valid'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['place_id'], ['project_places.id']),
        sa.ForeignKeyConstraint(['assigned_crew_id'], ['crews.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['assigned_member_id'], ['team_members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_account_id', 'tasks', ['account_id'])
    op.create_index('ix_tasks_place_id', 'tasks', ['place_id'])
    op.create_index('ix_tasks_assigned_crew_id', 'tasks', ['assigned_crew_id'])
    op.create_index('ix_tasks_assigned_member_id', 'tasks', ['assigned_member_id'])

    op.create_table(
        'daily_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('client_key', sa.String(length=120), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('person', sa.String(length=255), nullable=True),
        sa.Column('reporter_member_id', sa.Integer(), nullable=True),
        sa.Column('inventory_location_id', sa.Integer(), nullable=False),
        sa.Column('place', sa.String(length=255), nullable=True),
        sa.Column('stage_id', sa.Integer(), nullable=True),
        sa.Column('crew_mode', sa.String(length=10), server_default='solo', nullable=False),
        sa.Column('crew_id', sa.Integer(), nullable=True),
        sa.Column('crew_name', sa.String(length=120), nullable=True),
        sa.Column('group_key', sa.String(length=255), nullable=True),
        sa.Column('members', sa.JSON(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=True),
        sa.Column('is_completed', sa.Boolean(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approved', sa.Boolean(), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("crew_mode IN ('crew','solo','ad_hoc')", name='ck_daily_reports_crew_mode_valid'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reporter_member_id'], ['team_members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['inventory_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['stage_id'], ['project_places.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['crew_id'], ['crews.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['approved_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'client_key', name='uq_daily_reports_account_client_key'),
    )
    op.create_index('ix_daily_reports_account_id', 'daily_reports', ['account_id'])
    op.create_index('ix_daily_reports_account_date', 'daily_reports', ['account_id', 'date'])

    op.create_table(
        'daily_report_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('report_id', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('qty_used', sa.Numeric(14, 3), nullable=False),
        sa.CheckConstraint('qty_used > 0', name='ck_daily_report_items_qty_positive'),
        sa.ForeignKeyConstraint(['report_id'], ['daily_reports.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_daily_report_items_report_id', 'daily_report_items', ['report_id'])
    op.create_index('ix_daily_report_items_material_id', 'daily_report_items', ['material_id'])

    op.create_table(
        'inventory_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('inventory_location_id', sa.Integer(), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('person', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('approved', sa.Boolean(), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['inventory_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['created_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['approved_by'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_sessions_account_id', 'inventory_sessions', ['account_id'])

    op.create_table(
        'inventory_session_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('system_qty', sa.Numeric(14, 3), nullable=False),
        sa.Column('counted_qty', sa.Numeric(14, 3), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['inventory_sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'material_id', name='uq_inventory_session_items_session_material'),
    )
    op.create_index('ix_inventory_session_items_session_id', 'inventory_session_items', ['session_id'])

    op.create_table(
        'designer_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('family_key', sa.String(length=255), nullable=False),
        sa.Column('planned_qty', sa.Numeric(14, 3), server_default=sa.text('0'), nullable=False),
        sa.Column('planned_unit_price', sa.Numeric(12, 4), nullable=True),
        sa.Column('planned_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('stage_id', sa.Integer(), nullable=True),
        sa.Column('place_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('planned_qty >= 0', name='ck_designer_plans_planned_qty_nonneg'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stage_id'], ['project_places.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['place_id'], ['project_places.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_designer_plans_account_id', 'designer_plans', ['account_id'])

    op.create_table(
        'email_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('member_id', sa.Integer(), nullable=True),
        sa.Column('to_email', sa.String(length=320), nullable=False),
        sa.Column('template', sa.String(length=64), nullable=False),
        sa.Column('subject', sa.String(length=200), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['member_id'], ['team_members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_logs_to_email', 'email_logs', ['to_email'])
    op.create_index('ix_email_logs_status', 'email_logs', ['status'])


def downgrade():
    op.drop_table('email_logs')
    op.drop_table('designer_plans')
    op.drop_table('inventory_session_items')
    op.drop_table('inventory_sessions')
    op.drop_table('daily_report_items')
    op.drop_table('daily_reports')
    op.drop_table('tasks')
    op.drop_table('project_places')
    op.drop_table('delivery_items')
    op.drop_table('deliveries')
    op.drop_table('inventory_relocations')
    op.drop_table('stock_movements')
    op.drop_table('materials')
    op.drop_table('inventory_locations')
    op.drop_constraint('fk_crews_leader_member_id', 'crews', type_='foreignkey')
    op.drop_table('team_members')
    op.drop_table('crews')
    op.drop_table('users')
    op.drop_table('accounts')
