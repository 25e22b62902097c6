"""esquema kardex y pedidos

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19

Usuarios, productos, almacenes, saldos, tipos de movimiento, kardex,
pedidos, ventas, correlativos y auditoría.
"""
from alembic import op
import sqlalchemy as sa

revision = '20261019_01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('password_hash', sa.String(200), nullable=False),
        sa.Column('role', sa.String(30), nullable=False),
        sa.Column('nombre', sa.String(100), nullable=True),
        sa.Column('apellido', sa.String(100), nullable=True),
        sa.Column('correo', sa.String(255), nullable=True),
        sa.Column('activo', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('unit_of_measure', sa.String(10), nullable=False),
        sa.Column('precio_venta', sa.Numeric(14, 2), nullable=False),
        sa.Column('stock_minimo', sa.Numeric(12, 4), nullable=False),
        sa.Column('maneja_stock', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('code', name='uq_product_code'),
    )
    op.create_index('ix_products_code', 'products', ['code'])

    op.create_table(
        'almacenes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('codigo', sa.String(50), nullable=False),
        sa.Column('nombre', sa.String(200), nullable=False),
        sa.Column('direccion', sa.String(300), nullable=True),
        sa.Column('responsable', sa.String(200), nullable=True),
        sa.Column('activo', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('codigo', name='uq_almacen_codigo'),
    )
    op.create_index('ix_almacenes_codigo', 'almacenes', ['codigo'])

    op.create_table(
        'stocks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('producto_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('almacen_id', sa.Integer(), sa.ForeignKey('almacenes.id'), nullable=False),
        sa.Column('cantidad_actual', sa.Numeric(12, 4), nullable=False),
        sa.Column('costo_promedio', sa.Numeric(14, 4), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('producto_id', 'almacen_id', name='uq_stock_producto_almacen'),
    )
    op.create_index('ix_stocks_producto_id', 'stocks', ['producto_id'])
    op.create_index('ix_stocks_almacen_id', 'stocks', ['almacen_id'])

    op.create_table(
        'tipos_movimiento',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('codigo', sa.String(50), nullable=False),
        sa.Column('nombre', sa.String(100), nullable=False),
        sa.Column('descripcion', sa.String(300), nullable=True),
        sa.Column('tipo_operacion', sa.String(20), nullable=False),
        sa.Column('afecta_stock', sa.Boolean(), nullable=False),
        sa.Column('requiere_documento', sa.Boolean(), nullable=False),
        sa.Column('requiere_autorizacion', sa.Boolean(), nullable=False),
        sa.Column('es_ajuste', sa.Boolean(), nullable=False),
        sa.Column('activo', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('codigo', name='uq_tipo_movimiento_codigo'),
    )
    op.create_index('ix_tipos_movimiento_codigo', 'tipos_movimiento', ['codigo'])

    op.create_table(
        'movimientos_kardex',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('producto_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('almacen_id', sa.Integer(), sa.ForeignKey('almacenes.id'), nullable=False),
        sa.Column('almacen_destino_id', sa.Integer(), sa.ForeignKey('almacenes.id'), nullable=True),
        sa.Column('tipo_movimiento_id', sa.Integer(), sa.ForeignKey('tipos_movimiento.id'), nullable=False),
        sa.Column('tipo_movimiento', sa.String(50), nullable=False),
        sa.Column('sentido', sa.String(10), nullable=False),
        sa.Column('afecta_stock', sa.Boolean(), nullable=False),
        sa.Column('movimiento_relacionado_id', sa.Integer(), sa.ForeignKey('movimientos_kardex.id'), nullable=True),
        sa.Column('cantidad', sa.Numeric(12, 4), nullable=False),
        sa.Column('precio_unitario', sa.Numeric(14, 4), nullable=True),
        sa.Column('costo_total', sa.Numeric(14, 2), nullable=True),
        sa.Column('stock_anterior', sa.Numeric(12, 4), nullable=True),
        sa.Column('stock_nuevo', sa.Numeric(12, 4), nullable=True),
        sa.Column('costo_promedio_resultante', sa.Numeric(14, 4), nullable=True),
        sa.Column('documento_referencia', sa.String(200), nullable=True),
        sa.Column('numero_documento', sa.String(50), nullable=True),
        sa.Column('referencia_tipo', sa.String(30), nullable=True),
        sa.Column('referencia_id', sa.Integer(), nullable=True),
        sa.Column('fecha_solicitud', sa.DateTime(), nullable=False),
        sa.Column('fecha_movimiento', sa.DateTime(), nullable=True),
        sa.Column('usuario_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('autorizado_por', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('fecha_autorizacion', sa.DateTime(), nullable=True),
        sa.Column('motivo_movimiento', sa.String(500), nullable=True),
        sa.Column('observaciones', sa.String(500), nullable=True),
        sa.Column('motivo_rechazo', sa.String(500), nullable=True),
        sa.Column('estado_movimiento', sa.String(20), nullable=False),
        sa.Column('fecha_creacion', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_kardex_producto_almacen_fecha', 'movimientos_kardex',
                    ['producto_id', 'almacen_id', 'fecha_movimiento'])
    op.create_index('ix_movimientos_kardex_estado_movimiento', 'movimientos_kardex', ['estado_movimiento'])
    op.create_index('ix_movimientos_kardex_referencia_id', 'movimientos_kardex', ['referencia_id'])
    op.create_index('ix_movimientos_kardex_tipo_movimiento', 'movimientos_kardex', ['tipo_movimiento'])

    op.create_table(
        'pedidos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('numero_pedido', sa.String(20), nullable=False),
        sa.Column('cliente_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('usuario_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('almacen_id', sa.Integer(), sa.ForeignKey('almacenes.id'), nullable=False),
        sa.Column('estado', sa.String(20), nullable=False),
        sa.Column('tipo_pedido', sa.String(30), nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
        sa.Column('descuento', sa.Numeric(14, 2), nullable=False),
        sa.Column('impuesto', sa.Numeric(14, 2), nullable=False),
        sa.Column('total', sa.Numeric(14, 2), nullable=False),
        sa.Column('observaciones', sa.String(500), nullable=True),
        sa.Column('fecha_pedido', sa.DateTime(), nullable=False),
        sa.Column('aprobado_por', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('fecha_aprobacion', sa.DateTime(), nullable=True),
        sa.Column('motivo_rechazo', sa.String(500), nullable=True),
        sa.Column('metodo_pago', sa.String(20), nullable=True),
        sa.Column('fecha_pago', sa.DateTime(), nullable=True),
        sa.Column('comprobante_pago', sa.String(500), nullable=True),
        sa.Column('fecha_envio', sa.DateTime(), nullable=True),
        sa.Column('venta_id', sa.Integer(), nullable=True),
        sa.Column('cancelado_por', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('fecha_cancelacion', sa.DateTime(), nullable=True),
        sa.Column('motivo_cancelacion', sa.String(500), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_pedidos_numero_pedido', 'pedidos', ['numero_pedido'], unique=True)
    op.create_index('ix_pedidos_cliente_id', 'pedidos', ['cliente_id'])
    op.create_index('ix_pedidos_estado', 'pedidos', ['estado'])
    op.create_index('ix_pedidos_venta_id', 'pedidos', ['venta_id'])

    op.create_table(
        'pedido_detalles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pedido_id', sa.Integer(), sa.ForeignKey('pedidos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('linea', sa.Integer(), nullable=False),
        sa.Column('producto_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('cantidad', sa.Numeric(12, 4), nullable=False),
        sa.Column('precio_unitario', sa.Numeric(14, 4), nullable=False),
        sa.Column('descuento', sa.Numeric(14, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
    )
    op.create_index('ix_pedido_detalles_pedido_id', 'pedido_detalles', ['pedido_id'])
    op.create_index('ix_pedido_detalles_producto_id', 'pedido_detalles', ['producto_id'])

    op.create_table(
        'pedido_actualizaciones',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pedido_id', sa.Integer(), sa.ForeignKey('pedidos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mensaje', sa.String(500), nullable=False),
        sa.Column('usuario_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('fecha', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_pedido_actualizaciones_pedido_id', 'pedido_actualizaciones', ['pedido_id'])

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('numero', sa.String(20), nullable=False),
        sa.Column('cliente_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('usuario_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('pedido_id', sa.Integer(), sa.ForeignKey('pedidos.id'), nullable=True),
        sa.Column('fecha_venta', sa.DateTime(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
        sa.Column('descuento', sa.Numeric(14, 2), nullable=False),
        sa.Column('impuestos', sa.Numeric(14, 2), nullable=False),
        sa.Column('total', sa.Numeric(14, 2), nullable=False),
        sa.Column('estado', sa.String(20), nullable=False),
        sa.Column('observaciones', sa.String(500), nullable=True),
        sa.UniqueConstraint('pedido_id', name='uq_sale_pedido'),
    )
    op.create_index('ix_sales_numero', 'sales', ['numero'], unique=True)
    op.create_index('ix_sales_cliente_id', 'sales', ['cliente_id'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 4), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 4), nullable=False),
        sa.Column('discount', sa.Numeric(14, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False),
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])
    op.create_index('ix_sale_lines_product_id', 'sale_lines', ['product_id'])

    op.create_table(
        'correlativos',
        sa.Column('serie', sa.String(10), primary_key=True),
        sa.Column('ultimo_numero', sa.Integer(), nullable=False),
    )

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_role', sa.String(50), nullable=True),
        sa.Column('module', sa.String(50), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('summary', sa.String(500), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        comment='Auditoría kardex/pedidos - inmutable',
    )
    op.create_index('idx_audit_log_timestamp', 'audit_log', ['timestamp'])
    op.create_index('idx_audit_log_module_action', 'audit_log', ['module', 'action'])
    op.create_index('idx_audit_log_user_id', 'audit_log', ['user_id'])


def downgrade():
    for tabla in ('audit_log', 'correlativos', 'sale_lines', 'sales', 'pedido_actualizaciones',
                  'pedido_detalles', 'pedidos', 'movimientos_kardex', 'tipos_movimiento', 'stocks',
                  'almacenes', 'products', 'users'):
        op.drop_table(tabla)
