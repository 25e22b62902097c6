from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


# ===== KARDEX =====

class MovimientoOut(BaseModel):
    id: int
    producto_id: int
    almacen_id: int
    almacen_destino_id: Optional[int] = None
    tipo_movimiento: str
    sentido: str
    afecta_stock: bool
    movimiento_relacionado_id: Optional[int] = None
    cantidad: Decimal
    precio_unitario: Optional[Decimal] = None
    costo_total: Optional[Decimal] = None
    stock_anterior: Optional[Decimal] = None
    stock_nuevo: Optional[Decimal] = None
    costo_promedio_resultante: Optional[Decimal] = None
    documento_referencia: Optional[str] = None
    numero_documento: Optional[str] = None
    referencia_tipo: Optional[str] = None  # "VENTA", "COMPRA"
    referencia_id: Optional[int] = None
    fecha_solicitud: datetime
    fecha_movimiento: Optional[datetime] = None  # None mientras está PENDIENTE
    usuario_id: int
    autorizado_por: Optional[int] = None
    fecha_autorizacion: Optional[datetime] = None
    motivo_movimiento: Optional[str] = None
    observaciones: Optional[str] = None
    motivo_rechazo: Optional[str] = None
    estado_movimiento: str

    class Config:
        from_attributes = True

class KardexFilaOut(MovimientoOut):
    saldo_acumulado: Decimal

class TipoMovimientoOut(BaseModel):
    id: int
    codigo: str
    nombre: str
    descripcion: Optional[str] = None
    tipo_operacion: str
    afecta_stock: bool
    requiere_documento: bool
    requiere_autorizacion: bool
    es_ajuste: bool
    activo: bool

    class Config:
        from_attributes = True

class MovimientoIn(BaseModel):
    producto_id: int
    almacen_id: int
    tipo_movimiento: str
    cantidad: Decimal
    costo_unitario: Optional[Decimal] = None
    almacen_destino_id: Optional[int] = None
    documento_referencia: Optional[str] = None
    numero_documento: Optional[str] = None
    motivo: Optional[str] = None
    observaciones: Optional[str] = None


# ===== PEDIDOS =====

class PedidoLineaIn(BaseModel):
    producto_id: int
    cantidad: Decimal
    precio_unitario: Optional[Decimal] = None  # Solo personal; None = precio de venta del producto
    descuento: Decimal = Decimal("0")

class PedidoDetalleOut(BaseModel):
    linea: int
    producto_id: int
    cantidad: Decimal
    precio_unitario: Decimal
    descuento: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True

class PedidoActualizacionOut(BaseModel):
    id: int
    mensaje: str
    usuario_id: int
    fecha: datetime

    class Config:
        from_attributes = True

class PedidoOut(BaseModel):
    id: int
    numero_pedido: str
    cliente_id: int
    usuario_id: int
    almacen_id: int
    estado: str
    tipo_pedido: str
    subtotal: Decimal
    descuento: Decimal
    impuesto: Decimal
    total: Decimal
    observaciones: Optional[str] = None
    fecha_pedido: datetime
    aprobado_por: Optional[int] = None
    fecha_aprobacion: Optional[datetime] = None
    motivo_rechazo: Optional[str] = None
    metodo_pago: Optional[str] = None
    fecha_pago: Optional[datetime] = None
    comprobante_pago: Optional[str] = None
    fecha_envio: Optional[datetime] = None
    venta_id: Optional[int] = None
    cancelado_por: Optional[int] = None
    fecha_cancelacion: Optional[datetime] = None
    motivo_cancelacion: Optional[str] = None
    detalles: List[PedidoDetalleOut] = []
    actualizaciones: List[PedidoActualizacionOut] = []

    class Config:
        from_attributes = True

class VentaOut(BaseModel):
    id: int
    numero: str
    cliente_id: int
    pedido_id: Optional[int] = None
    fecha_venta: datetime
    subtotal: Decimal
    descuento: Decimal
    impuestos: Decimal
    total: Decimal
    estado: str

    class Config:
        from_attributes = True

class EnvioOut(BaseModel):
    pedido: PedidoOut
    venta: VentaOut
    movimientos: List[MovimientoOut]
