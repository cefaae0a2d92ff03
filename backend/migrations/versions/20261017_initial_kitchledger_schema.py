"""Initial schema: tenants, branches, batch ledger, recipes, waste, approvals

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17

This migration creates:
1. Tenant and Branch (tenancy root)
2. InventoryBatch, InventoryMovement, StockLevel (batch ledger)
3. Recipe, RecipeIngredient, ProductionRun
4. WasteLog, WasteCostLine
5. ApprovalRequest
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. TENANCY
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_branches_tenant_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_branches_tenant_id', 'branches', ['tenant_id'])

    # ==========================================================================
    # 2. BATCH LEDGER
    # ==========================================================================
    op.create_table('inventory_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=False, server_default='General'),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('quantity_milli', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity_milli >= 0', name='ck_batches_quantity_nonneg'),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_batches_cost_nonneg'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_batches_tenant_id', 'inventory_batches', ['tenant_id'])
    op.create_index('ix_inventory_batches_branch_id', 'inventory_batches', ['branch_id'])
    op.create_index(
        'ix_batches_fifo', 'inventory_batches',
        ['tenant_id', 'branch_id', 'item_name', 'unit', 'received_at', 'id'],
    )

    op.create_table('inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta_milli', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_movements_tenant_id', 'inventory_movements', ['tenant_id'])
    op.create_index('ix_inventory_movements_branch_id', 'inventory_movements', ['branch_id'])
    op.create_index('ix_inventory_movements_batch_id', 'inventory_movements', ['batch_id'])
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_occurred_at', 'inventory_movements', ['occurred_at'])
    op.create_index(
        'ix_movements_item', 'inventory_movements',
        ['tenant_id', 'branch_id', 'item_name', 'unit', 'movement_type'],
    )

    op.create_table('stock_levels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('minimum_milli', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('maximum_milli', sa.Integer(), nullable=True),
        sa.Column('reorder_milli', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'item_name', 'category', 'unit', 'tenant_id', 'branch_id',
            name='uq_stock_levels_product_branch',
        ),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_levels_tenant_id', 'stock_levels', ['tenant_id'])
    op.create_index('ix_stock_levels_branch_id', 'stock_levels', ['branch_id'])

    # ==========================================================================
    # 3. RECIPES & PRODUCTION
    # ==========================================================================
    op.create_table('recipes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('portion_size_milli', sa.Integer(), nullable=False),
        sa.Column('portion_unit', sa.String(length=32), nullable=False, server_default='portion'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('portion_size_milli > 0', name='ck_recipes_portion_positive'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'product_name', name='uq_recipes_tenant_product'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_recipes_tenant_id', 'recipes', ['tenant_id'])

    op.create_table('recipe_ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recipe_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('quantity_milli', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity_milli > 0', name='ck_recipe_ingredients_qty_positive'),
        sa.ForeignKeyConstraint(['recipe_id'], ['recipes.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_recipe_ingredients_recipe_id', 'recipe_ingredients', ['recipe_id'])

    op.create_table('production_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('recipe_id', sa.Integer(), nullable=False),
        sa.Column('quantity_produced_milli', sa.Integer(), nullable=False),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('produced_by', sa.Integer(), nullable=True),
        sa.Column('produced_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['recipe_id'], ['recipes.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_production_runs_tenant_id', 'production_runs', ['tenant_id'])
    op.create_index('ix_production_runs_branch_id', 'production_runs', ['branch_id'])
    op.create_index('ix_production_runs_recipe_id', 'production_runs', ['recipe_id'])

    # ==========================================================================
    # 4. WASTE
    # ==========================================================================
    op.create_table('waste_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('waste_kind', sa.String(length=16), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('recipe_id', sa.Integer(), nullable=True),
        sa.Column('quantity_milli', sa.Integer(), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_basis', sa.String(length=16), nullable=False, server_default='EXACT'),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False, server_default='MEDIUM'),
        sa.Column('preventable', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('tags_json', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('logged_by', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('cost_cents >= 0', name='ck_waste_cost_nonneg'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['recipe_id'], ['recipes.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_waste_logs_tenant_id', 'waste_logs', ['tenant_id'])
    op.create_index('ix_waste_logs_branch_id', 'waste_logs', ['branch_id'])
    op.create_index('ix_waste_logs_waste_kind', 'waste_logs', ['waste_kind'])
    op.create_index('ix_waste_logs_recipe_id', 'waste_logs', ['recipe_id'])
    op.create_index('ix_waste_logs_created_at', 'waste_logs', ['created_at'])
    op.create_index('ix_waste_tenant_branch_created', 'waste_logs', ['tenant_id', 'branch_id', 'created_at'])

    op.create_table('waste_cost_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('waste_log_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('requested_milli', sa.Integer(), nullable=False),
        sa.Column('consumed_milli', sa.Integer(), nullable=False),
        sa.Column('shortfall_milli', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exact_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('estimated_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_basis', sa.String(length=16), nullable=False),
        sa.ForeignKeyConstraint(['waste_log_id'], ['waste_logs.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_waste_cost_lines_waste_log_id', 'waste_cost_lines', ['waste_log_id'])

    # ==========================================================================
    # 5. APPROVALS
    # ==========================================================================
    op.create_table('approval_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('submitted_by', sa.Integer(), nullable=True),
        sa.Column('target_type', sa.String(length=32), nullable=False),
        sa.Column('target_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('payload_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('snapshot_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reviewed_by', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_comment', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_approval_requests_tenant_id', 'approval_requests', ['tenant_id'])
    op.create_index('ix_approval_requests_branch_id', 'approval_requests', ['branch_id'])
    op.create_index('ix_approval_requests_submitted_by', 'approval_requests', ['submitted_by'])
    op.create_index('ix_approval_requests_status', 'approval_requests', ['status'])
    op.create_index('ix_approvals_tenant_status', 'approval_requests', ['tenant_id', 'status'])


def downgrade():
    op.drop_table('approval_requests')
    op.drop_table('waste_cost_lines')
    op.drop_table('waste_logs')
    op.drop_table('production_runs')
    op.drop_table('recipe_ingredients')
    op.drop_table('recipes')
    op.drop_table('stock_levels')
    op.drop_table('inventory_movements')
    op.drop_table('inventory_batches')
    op.drop_table('branches')
    op.drop_table('tenants')
