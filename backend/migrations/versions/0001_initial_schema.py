"""initial schema: authz, bases, catalog, purchasing, stock, points, sales, settings

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _fk(name: str, target: str, nullable: bool = False, ondelete: str | None = None):
    return sa.Column(name, sa.Integer(), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _quantities():
    return [
        sa.Column('box_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pack_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('piece_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_pieces', sa.Integer(), nullable=False, server_default='0'),
    ]


def _index(table: str, *columns: str, unique: bool = False):
    op.create_index(f"ix_{table}_{'_'.join(columns)}", table, list(columns), unique=unique)


def upgrade():
    # --- authz ---
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('service', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('description_i18n', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    _index('permissions', 'code', unique=True)
    _index('permissions', 'service')

    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_system', sa.Boolean(), nullable=True, server_default=sa.text('0')),
        sa.Column('description_i18n', sa.JSON(), nullable=True),
        *_timestamps(),
    )

    op.create_table('groups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description_i18n', sa.JSON(), nullable=True),
        sa.Column('base_scope', sa.JSON(), nullable=True),
        *_timestamps(),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        sa.Column('locale', sa.String(length=8), nullable=True, server_default='zh-CN'),
        sa.Column('tz', sa.String(length=64), nullable=True, server_default='Asia/Shanghai'),
        *_timestamps(),
    )
    _index('users', 'email', unique=True)

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('role_id', 'roles.id', ondelete='CASCADE'),
        _fk('permission_id', 'permissions.id', ondelete='CASCADE'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_table('group_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('group_id', 'groups.id', ondelete='CASCADE'),
        _fk('role_id', 'roles.id', ondelete='CASCADE'),
        sa.UniqueConstraint('group_id', 'role_id', name='uq_group_role'),
    )
    op.create_table('user_groups',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('user_id', 'users.id', ondelete='CASCADE'),
        _fk('group_id', 'groups.id', ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'group_id', name='uq_user_group'),
    )
    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('user_id', 'users.id', ondelete='CASCADE'),
        _fk('role_id', 'roles.id', ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('base_id', sa.Integer(), nullable=True),
        sa.Column('perms_snapshot', sa.JSON(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _index('audit_logs', 'actor_user_id')
    _index('audit_logs', 'action')
    _index('audit_logs', 'base_id')

    op.create_table('data_permission_rules',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('role_id', 'roles.id', ondelete='CASCADE'),
        sa.Column('resource', sa.String(length=64), nullable=False),
        sa.Column('field', sa.String(length=64), nullable=False),
        sa.Column('operator', sa.String(length=16), nullable=False, server_default='eq'),
        sa.Column('value_type', sa.String(length=32), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('description', sa.String(length=255)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
    )
    _index('data_permission_rules', 'role_id')
    _index('data_permission_rules', 'resource')

    op.create_table('field_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('role_id', 'roles.id', ondelete='CASCADE'),
        sa.Column('resource', sa.String(length=64), nullable=False),
        sa.Column('field', sa.String(length=64), nullable=False),
        sa.Column('can_read', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('can_write', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_timestamps(),
        sa.UniqueConstraint('role_id', 'resource', 'field', name='uq_field_permission'),
    )
    _index('field_permissions', 'role_id')
    _index('field_permissions', 'resource')

    # --- bases & master data ---
    op.create_table('bases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('address', sa.String(length=255)),
        sa.Column('contact_person', sa.String(length=64)),
        sa.Column('contact_phone', sa.String(length=32)),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='CNY'),
        sa.Column('language', sa.String(length=8), nullable=False, server_default='zh-CN'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    _index('bases', 'code', unique=True)
    _index('bases', 'name')

    op.create_table('categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('name_i18n', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
    )
    _index('categories', 'code', unique=True)

    op.create_table('goods',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('name_i18n', sa.JSON(), nullable=True),
        _fk('category_id', 'categories.id', nullable=True),
        sa.Column('retail_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pack_per_box', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('piece_per_pack', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('image_url', sa.String(length=512)),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('pack_per_box >= 1', name='ck_goods_pack_per_box'),
        sa.CheckConstraint('piece_per_pack >= 1', name='ck_goods_piece_per_pack'),
    )
    _index('goods', 'code', unique=True)
    _index('goods', 'name')
    _index('goods', 'category_id')

    op.create_table('goods_local_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        _fk('goods_id', 'goods.id'),
        sa.Column('retail_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('pack_price_cents', sa.Integer(), nullable=True),
        sa.Column('alias', sa.String(length=128)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        sa.UniqueConstraint('goods_id', 'base_id', name='uq_goods_local_setting'),
    )
    _index('goods_local_settings', 'base_id')
    _index('goods_local_settings', 'goods_id')

    op.create_table('locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('address', sa.String(length=255)),
        sa.Column('contact_person', sa.String(length=64)),
        sa.Column('contact_phone', sa.String(length=32)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    _index('locations', 'base_id')
    _index('locations', 'type')
    _index('locations', 'code', unique=True)

    op.create_table('personnel',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('email', sa.String(length=128)),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    _index('personnel', 'base_id')
    _index('personnel', 'role')
    _index('personnel', 'code', unique=True)

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('contact_person', sa.String(length=64)),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('email', sa.String(length=128)),
        sa.Column('address', sa.String(length=255)),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    _index('suppliers', 'code', unique=True)
    _index('suppliers', 'name')

    op.create_table('supplier_bases',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('supplier_id', 'suppliers.id', ondelete='CASCADE'),
        _fk('base_id', 'bases.id'),
        sa.Column('payment_terms', sa.String(length=32), nullable=False, server_default='NET_30'),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        sa.UniqueConstraint('supplier_id', 'base_id', name='uq_supplier_base'),
    )
    _index('supplier_bases', 'supplier_id')
    _index('supplier_bases', 'base_id')

    # --- purchasing ---
    op.create_table('purchase_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('code', sa.String(length=32), nullable=False),
        _fk('supplier_id', 'suppliers.id'),
        _fk('target_location_id', 'locations.id', nullable=True),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('actual_amount_cents', sa.Integer(), nullable=True),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('notes', sa.Text()),
        _fk('created_by', 'users.id'),
        *_timestamps(),
    )
    _index('purchase_orders', 'base_id')
    _index('purchase_orders', 'code', unique=True)
    _index('purchase_orders', 'supplier_id')
    _index('purchase_orders', 'status')

    op.create_table('purchase_order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('purchase_order_id', 'purchase_orders.id', ondelete='CASCADE'),
        _fk('goods_id', 'goods.id'),
        sa.Column('box_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pack_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('piece_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_pieces', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
    )
    _index('purchase_order_items', 'purchase_order_id')
    _index('purchase_order_items', 'goods_id')

    op.create_table('purchase_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('purchase_order_id', 'purchase_orders.id', ondelete='CASCADE'),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_on', sa.Date(), nullable=False),
        sa.Column('method', sa.String(length=32)),
        sa.Column('notes', sa.Text()),
        _fk('created_by', 'users.id'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _index('purchase_payments', 'purchase_order_id')

    op.create_table('arrivals',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('code', sa.String(length=32), nullable=False),
        _fk('purchase_order_id', 'purchase_orders.id'),
        _fk('location_id', 'locations.id'),
        sa.Column('arrival_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text()),
        _fk('created_by', 'users.id'),
        *_timestamps(),
    )
    _index('arrivals', 'base_id')
    _index('arrivals', 'code', unique=True)
    _index('arrivals', 'purchase_order_id')
    _index('arrivals', 'location_id')
    _index('arrivals', 'arrival_date')

    op.create_table('arrival_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('arrival_id', 'arrivals.id', ondelete='CASCADE'),
        _fk('goods_id', 'goods.id'),
        *_quantities(),
    )
    _index('arrival_items', 'arrival_id')
    _index('arrival_items', 'goods_id')

    # --- stock movements ---
    op.create_table('stock_outs',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('out_date', sa.Date(), nullable=False),
        _fk('goods_id', 'goods.id'),
        _fk('location_id', 'locations.id'),
        sa.Column('target_name', sa.String(length=128)),
        sa.Column('related_order_id', sa.Integer(), nullable=True),
        sa.Column('related_order_code', sa.String(length=32), nullable=True),
        *_quantities(),
        sa.Column('remark', sa.Text()),
        _fk('created_by', 'users.id'),
        *_timestamps(),
    )
    _index('stock_outs', 'base_id')
    _index('stock_outs', 'code', unique=True)
    _index('stock_outs', 'type')
    _index('stock_outs', 'out_date')
    _index('stock_outs', 'goods_id')
    _index('stock_outs', 'location_id')
    _index('stock_outs', 'related_order_code')

    op.create_table('transfer_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        _fk('from_base_id', 'bases.id'),
        _fk('from_location_id', 'locations.id'),
        _fk('to_base_id', 'bases.id'),
        _fk('to_location_id', 'locations.id'),
        _fk('goods_id', 'goods.id'),
        sa.Column('transfer_date', sa.Date(), nullable=False),
        *_quantities(),
        _fk('stock_out_id', 'stock_outs.id', nullable=True),
        sa.Column('notes', sa.Text()),
        _fk('created_by', 'users.id'),
        *_timestamps(),
    )
    _index('transfer_orders', 'code', unique=True)
    _index('transfer_orders', 'from_base_id')
    _index('transfer_orders', 'to_base_id')
    _index('transfer_orders', 'to_location_id')
    _index('transfer_orders', 'goods_id')

    # --- points ---
    op.create_table('points',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('address', sa.String(length=255)),
        sa.Column('contact_person', sa.String(length=64)),
        sa.Column('contact_phone', sa.String(length=32)),
        _fk('owner_id', 'users.id', nullable=True),
        _fk('dealer_id', 'users.id', nullable=True),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    _index('points', 'base_id')
    _index('points', 'code', unique=True)
    _index('points', 'name')
    _index('points', 'owner_id')
    _index('points', 'dealer_id')

    op.create_table('point_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        _fk('base_id', 'bases.id'),
        _fk('point_id', 'points.id'),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text()),
        _fk('shipping_location_id', 'locations.id', nullable=True),
        *[
            col
            for step in ('confirmed', 'shipped', 'delivered', 'completed', 'cancelled')
            for col in (
                sa.Column(f'{step}_at', sa.DateTime(timezone=True)),
                sa.Column(f'{step}_by', sa.Integer()),
            )
        ],
        sa.Column('cancel_reason', sa.String(length=255)),
        _fk('created_by', 'users.id'),
        *_timestamps(),
    )
    _index('point_orders', 'code', unique=True)
    _index('point_orders', 'base_id')
    _index('point_orders', 'point_id')
    _index('point_orders', 'status')
    _index('point_orders', 'payment_status')

    op.create_table('point_order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('point_order_id', 'point_orders.id', ondelete='CASCADE'),
        _fk('goods_id', 'goods.id'),
        sa.Column('box_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pack_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
    )
    _index('point_order_items', 'point_order_id')
    _index('point_order_items', 'goods_id')

    op.create_table('point_goods',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('point_id', 'points.id', ondelete='CASCADE'),
        _fk('goods_id', 'goods.id'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=True),
        sa.Column('max_box_quantity', sa.Integer(), nullable=True),
        sa.Column('max_pack_quantity', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
        sa.UniqueConstraint('point_id', 'goods_id', name='uq_point_goods'),
    )
    _index('point_goods', 'point_id')
    _index('point_goods', 'goods_id')

    op.create_table('point_visits',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        _fk('point_id', 'points.id', ondelete='CASCADE'),
        _fk('visitor_id', 'users.id'),
        sa.Column('visit_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('notes', sa.Text()),
        sa.Column('images', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    _index('point_visits', 'base_id')
    _index('point_visits', 'point_id')
    _index('point_visits', 'visitor_id')
    _index('point_visits', 'visit_date')

    # --- sales ---
    op.create_table('customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('base_id', 'bases.id'),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('contact_person', sa.String(length=64)),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('email', sa.String(length=128)),
        sa.Column('address', sa.String(length=255)),
        sa.Column('notes', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    _index('customers', 'base_id')
    _index('customers', 'code', unique=True)
    _index('customers', 'name')

    op.create_table('distribution_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        _fk('base_id', 'bases.id'),
        _fk('customer_id', 'customers.id'),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='NEW'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text()),
        _fk('created_by', 'users.id'),
        *_timestamps(),
    )
    _index('distribution_orders', 'code', unique=True)
    _index('distribution_orders', 'base_id')
    _index('distribution_orders', 'customer_id')
    _index('distribution_orders', 'status')

    op.create_table('distribution_order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('distribution_order_id', 'distribution_orders.id', ondelete='CASCADE'),
        _fk('goods_id', 'goods.id'),
        sa.Column('box_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pack_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('piece_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_pieces', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
    )
    _index('distribution_order_items', 'distribution_order_id')
    _index('distribution_order_items', 'goods_id')

    # --- settings ---
    op.create_table('currency_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('currency_code', sa.String(length=8), nullable=False),
        sa.Column('currency_name', sa.String(length=64), nullable=False),
        sa.Column('fixed_rate', sa.Numeric(18, 6), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_timestamps(),
    )
    _index('currency_rates', 'currency_code', unique=True)

    op.create_table('global_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('value_type', sa.String(length=16), nullable=False, server_default='string'),
        sa.Column('description', sa.Text()),
        sa.Column('category', sa.String(length=64)),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        _fk('created_by', 'users.id', nullable=True),
        *_timestamps(),
    )
    _index('global_settings', 'key', unique=True)
    _index('global_settings', 'category')

    op.create_table('translations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=191), nullable=False),
        sa.Column('language', sa.String(length=8), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('namespace', sa.String(length=64), nullable=False, server_default='common'),
        *_timestamps(),
        sa.UniqueConstraint('key', 'language', name='uq_translation_key_language'),
    )
    _index('translations', 'key')
    _index('translations', 'language')
    _index('translations', 'namespace')


def downgrade():
    for table in (
        'translations', 'global_settings', 'currency_rates',
        'distribution_order_items', 'distribution_orders', 'customers',
        'point_visits', 'point_goods', 'point_order_items', 'point_orders', 'points',
        'transfer_orders', 'stock_outs', 'arrival_items', 'arrivals',
        'purchase_payments', 'purchase_order_items', 'purchase_orders',
        'supplier_bases', 'suppliers', 'personnel', 'locations',
        'goods_local_settings', 'goods', 'categories', 'bases',
        'field_permissions', 'data_permission_rules', 'audit_logs',
        'user_roles', 'user_groups', 'group_roles', 'role_permissions',
        'users', 'groups', 'roles', 'permissions',
    ):
        op.drop_table(table)
