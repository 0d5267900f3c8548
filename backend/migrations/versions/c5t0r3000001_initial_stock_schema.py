"""initial stock schema

Revision ID: c5t0r3000001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the campus store schema:
- products (+ set items, year tags, price history)
- students
- transactions, transaction_items, transaction_item_components
- transfer_branches, branch_stock, stock_transfers, stock_transfer_items
- audit_logs

Money columns are integer cents. products.version_id backs optimistic
concurrency on stock writes.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c5t0r3000001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # products: central catalog and stock
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('for_course', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('branch', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('remarks', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_set', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('last_price_updated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_course', 'products', ['for_course'])

    op.create_table(
        'product_set_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('set_product_id', sa.Integer(), nullable=False),
        # No FK: component rows may outlive the component product
        sa.Column('component_product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['set_product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_set_items_set', 'product_set_items', ['set_product_id'])
    op.create_index('ix_product_set_items_component_product_id', 'product_set_items', ['component_product_id'])

    op.create_table(
        'product_years',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'year', name='uq_product_years_product_year'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_years_product_id', 'product_years', ['product_id'])
    op.create_index('ix_product_years_year', 'product_years', ['year'])

    op.create_table(
        'product_price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by', sa.String(length=120), nullable=False, server_default='System'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_price_history_product_id', 'product_price_history', ['product_id'])

    # ============================================================================
    # students
    # ============================================================================
    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('student_code', sa.String(length=64), nullable=False),
        sa.Column('course', sa.String(length=120), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_code', name='uq_students_code'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # transfer_branches / branch_stock (needed before transactions.branch_id)
    # ============================================================================
    op.create_table(
        'transfer_branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_transfer_branches_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'branch_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['branch_id'], ['transfer_branches.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'product_id', name='uq_branch_stock_branch_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_branch_stock_branch_id', 'branch_stock', ['branch_id'])
    op.create_index('ix_branch_stock_product_id', 'branch_stock', ['product_id'])

    # ============================================================================
    # transactions: student sales and branch transfer records
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_code', sa.String(length=64), nullable=False),
        sa.Column('transaction_type', sa.String(length=32), nullable=False, server_default='student'),
        sa.Column('student_id', sa.Integer(), nullable=True),
        sa.Column('student_name', sa.String(length=255), nullable=True),
        sa.Column('student_code', sa.String(length=64), nullable=True),
        sa.Column('student_course', sa.String(length=120), nullable=True),
        sa.Column('student_year', sa.Integer(), nullable=True),
        sa.Column('student_branch', sa.String(length=120), nullable=True),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('branch_name', sa.String(length=255), nullable=True),
        sa.Column('branch_location', sa.String(length=255), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('remarks', sa.Text(), nullable=False, server_default=''),
        *_timestamps(),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['transfer_branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_code', name='uq_transactions_code'),
        sa.CheckConstraint(
            "(transaction_type = 'student' AND student_id IS NOT NULL AND branch_id IS NULL) OR "
            "(transaction_type = 'branch_transfer' AND branch_id IS NOT NULL AND student_id IS NULL)",
            name='ck_transactions_variant'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_transaction_type', 'transactions', ['transaction_type'])
    op.create_index('ix_transactions_student', 'transactions', ['student_id'])
    op.create_index('ix_transactions_course', 'transactions', ['student_course'])
    op.create_index('ix_transactions_date', 'transactions', ['transaction_date'])
    op.create_index('ix_transactions_branch', 'transactions', ['branch_id'])

    op.create_table(
        'transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('is_set', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='fulfilled'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_product_id', 'transaction_items', ['product_id'])

    op.create_table(
        'transaction_item_components',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_item_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('taken', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('reason', sa.String(length=255), nullable=False, server_default=''),
        sa.ForeignKeyConstraint(['transaction_item_id'], ['transaction_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_item_components_transaction_item_id',
                    'transaction_item_components', ['transaction_item_id'])

    # ============================================================================
    # stock_transfers: central -> branch movements
    # ============================================================================
    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('to_branch_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('transfer_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deduct_from_central', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('include_in_revenue', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('remarks', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(length=120), nullable=False, server_default='System'),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['to_branch_id'], ['transfer_branches.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_transfers_to_branch_id', 'stock_transfers', ['to_branch_id'])
    op.create_index('ix_stock_transfers_status', 'stock_transfers', ['status'])
    op.create_index('ix_stock_transfers_date', 'stock_transfers', ['transfer_date'])

    op.create_table(
        'stock_transfer_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stock_transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['stock_transfer_id'], ['stock_transfers.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_transfer_items_stock_transfer_id', 'stock_transfer_items', ['stock_transfer_id'])
    op.create_index('ix_stock_transfer_items_product_id', 'stock_transfer_items', ['product_id'])

    # ============================================================================
    # audit_logs: stock correction requests
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('before_quantity', sa.Integer(), nullable=False),
        sa.Column('after_quantity', sa.Integer(), nullable=False),
        sa.Column('stock_at_approval', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(length=120), nullable=False, server_default='System'),
        sa.Column('approved_by', sa.String(length=120), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_product_id', 'audit_logs', ['product_id'])
    op.create_index('ix_audit_logs_status', 'audit_logs', ['status'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('stock_transfer_items')
    op.drop_table('stock_transfers')
    op.drop_table('transaction_item_components')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('branch_stock')
    op.drop_table('transfer_branches')
    op.drop_table('students')
    op.drop_table('product_price_history')
    op.drop_table('product_years')
    op.drop_table('product_set_items')
    op.drop_table('products')
