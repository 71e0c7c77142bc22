"""Initial back office schema: companies, users, sales, warranties, service histories

Revision ID: 001_initial_backoffice_schema
Revises:
Create Date: 2026-10-17

Includes the partial unique index that allows at most one open service
(status received or in_repair) per warranty.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_backoffice_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


OPEN_SERVICE_PREDICATE = sa.text("status IN ('received', 'in_repair')")


def _timestamps(*names):
    return [sa.Column(name, sa.DateTime(timezone=True), nullable=False) for name in names]


def upgrade() -> None:
    # ==================== companies / users ====================
    op.create_table(
        'companies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('tax_id', sa.String(50), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps('created_at', 'updated_at'),
    )
    op.create_index('ix_companies_tax_id', 'companies', ['tax_id'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'company_members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, comment='owner, admin, seller, inventory'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('invited_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        *_timestamps('joined_at', 'updated_at'),
        sa.UniqueConstraint('company_id', 'user_id', name='uq_company_members_company_user'),
    )
    op.create_index('ix_company_members_company_id', 'company_members', ['company_id'])
    op.create_index('ix_company_members_user_id', 'company_members', ['user_id'])

    # ==================== catalog / sales ====================
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('default_warranty_months', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps('created_at'),
        sa.UniqueConstraint('company_id', 'sku', name='uq_products_company_sku'),
    )
    op.create_index('ix_products_company_id', 'products', ['company_id'])

    op.create_table(
        'sales',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, comment='Seller'),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False, comment='cash, card, check, transfer'),
        sa.Column('warranty_months', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps('created_at'),
        sa.UniqueConstraint('company_id', 'invoice_number', name='uq_sales_company_invoice'),
    )
    op.create_index('ix_sales_company_id', 'sales', ['company_id'])
    op.create_index('ix_sales_invoice_number', 'sales', ['invoice_number'])
    op.create_index('ix_sales_customer_name', 'sales', ['customer_name'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('sale_id', sa.Uuid(), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False),
        sa.Column('serial_number', sa.String(255), nullable=True),
        sa.Column('warranty_months', sa.Integer(), nullable=False),
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_serial_number', 'sale_items', ['serial_number'])

    # ==================== warranties ====================
    op.create_table(
        'warranties',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sale_id', sa.Uuid(), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sale_item_id', sa.Uuid(), sa.ForeignKey('sale_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('serial_number', sa.String(255), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('invoice_number', sa.String(50), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('warranty_months', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.Date(), nullable=False, comment='start_date + warranty_months'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.UniqueConstraint('sale_item_id', 'serial_number', name='uq_warranties_item_serial'),
    )
    op.create_index('ix_warranties_company_id', 'warranties', ['company_id'])
    op.create_index('ix_warranties_sale_id', 'warranties', ['sale_id'])
    op.create_index('ix_warranties_serial_number', 'warranties', ['serial_number'])
    op.create_index('ix_warranties_company_created', 'warranties', ['company_id', 'created_at'])
    op.create_index('ix_warranties_company_expires', 'warranties', ['company_id', 'expires_at'])

    # ==================== service histories ====================
    op.create_table(
        'service_histories',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('warranty_id', sa.Uuid(), sa.ForeignKey('warranties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('serial_number', sa.String(255), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, comment='received, in_repair, delivered'),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('observations', sa.Text(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=False),
        sa.Column('entry_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        *_timestamps('updated_at'),
    )
    op.create_index('ix_service_histories_company_id', 'service_histories', ['company_id'])
    op.create_index('ix_service_histories_warranty_id', 'service_histories', ['warranty_id'])
    op.create_index('ix_service_histories_serial_number', 'service_histories', ['serial_number'])
    op.create_index('ix_service_histories_company_status', 'service_histories', ['company_id', 'status'])
    op.create_index(
        'uq_service_histories_open_per_warranty',
        'service_histories',
        ['warranty_id'],
        unique=True,
        postgresql_where=OPEN_SERVICE_PREDICATE,
        sqlite_where=OPEN_SERVICE_PREDICATE,
    )


def downgrade() -> None:
    op.drop_index('uq_service_histories_open_per_warranty', table_name='service_histories')
    op.drop_table('service_histories')
    op.drop_table('warranties')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('products')
    op.drop_table('company_members')
    op.drop_table('users')
    op.drop_table('companies')
