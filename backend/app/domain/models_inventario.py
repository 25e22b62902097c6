"""
Modelos del Dominio de Inventario (KARDEX)
==========================================

- Almacén
- Stock (saldo por producto y almacén, con costo promedio ponderado)
- TipoMovimiento (catálogo cerrado de tipos de movimiento)
- MovimientoKardex (registro inmutable, solo INSERT una vez APROBADO)
"""
from sqlalchemy import Integer, String, Boolean, ForeignKey, Numeric, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from ..db import Base
from .enums import EstadoMovimiento, Sentido, TipoOperacion


class Almacen(Base):
    """
    Almacén/Depósito
    Permite manejar múltiples ubicaciones de inventario.
    Un despliegue de un solo almacén es el caso degenerado (PRINCIPAL).
    """
    __tablename__ = "almacenes"
    __table_args__ = (UniqueConstraint('codigo', name='uq_almacen_codigo'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    codigo: Mapped[str] = mapped_column(String(50), index=True)
    nombre: Mapped[str] = mapped_column(String(200))
    direccion: Mapped[str | None] = mapped_column(String(300), nullable=True)
    responsable: Mapped[str | None] = mapped_column(String(200), nullable=True)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    stocks = relationship("Stock", back_populates="almacen")


class Stock(Base):
    """
    Stock por Producto y Almacén
    Mantiene la cantidad actual y costo promedio por ubicación.
    Solo lo escribe KardexService, en la misma transacción que el movimiento.
    """
    __tablename__ = "stocks"
    __table_args__ = (UniqueConstraint('producto_id', 'almacen_id', name='uq_stock_producto_almacen'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    producto_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    almacen_id: Mapped[int] = mapped_column(ForeignKey("almacenes.id"), index=True)
    cantidad_actual: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0)
    costo_promedio: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=0)  # Costo promedio ponderado
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    producto = relationship("Product", back_populates="stocks")
    almacen = relationship("Almacen", back_populates="stocks")


class TipoMovimiento(Base):
    """
    Definición de tipo de movimiento (ENTRADA_COMPRA, SALIDA_VENTA, ...).
    Un tipo puede existir solo para auditoría (afecta_stock = False).
    """
    __tablename__ = "tipos_movimiento"
    __table_args__ = (UniqueConstraint('codigo', name='uq_tipo_movimiento_codigo'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    codigo: Mapped[str] = mapped_column(String(50), index=True)
    nombre: Mapped[str] = mapped_column(String(100))
    descripcion: Mapped[str | None] = mapped_column(String(300), nullable=True)
    tipo_operacion: Mapped[str] = mapped_column(String(20))  # ENTRADA | SALIDA | TRANSFERENCIA
    afecta_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    requiere_documento: Mapped[bool] = mapped_column(Boolean, default=False)
    requiere_autorizacion: Mapped[bool] = mapped_column(Boolean, default=False)
    es_ajuste: Mapped[bool] = mapped_column(Boolean, default=False)  # Se lista en /ajustes-inventario
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def operacion(self) -> TipoOperacion:
        return TipoOperacion(self.tipo_operacion)


class MovimientoKardex(Base):
    """
    Movimiento de Inventario (KARDEX)
    - PENDIENTE: visible en el historial, sin efecto en stock ni costo
    - APROBADO: congelado (stock_anterior, stock_nuevo, costo); nunca se modifica ni elimina
    - RECHAZADO: visible en el historial, sin efecto
    Las correcciones se hacen con movimientos compensatorios nuevos.
    """
    __tablename__ = "movimientos_kardex"
    __table_args__ = (
        Index('ix_kardex_producto_almacen_fecha', 'producto_id', 'almacen_id', 'fecha_movimiento'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    producto_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    almacen_id: Mapped[int] = mapped_column(ForeignKey("almacenes.id"), index=True)
    almacen_destino_id: Mapped[int | None] = mapped_column(ForeignKey("almacenes.id"), nullable=True)
    tipo_movimiento_id: Mapped[int] = mapped_column(ForeignKey("tipos_movimiento.id"), index=True)
    tipo_movimiento: Mapped[str] = mapped_column(String(50), index=True)  # Código congelado del tipo
    sentido: Mapped[str] = mapped_column(String(10))  # ENTRADA | SALIDA sobre el saldo de almacen_id
    afecta_stock: Mapped[bool] = mapped_column(Boolean, default=True)  # Congelado del tipo al registrar
    movimiento_relacionado_id: Mapped[int | None] = mapped_column(
        ForeignKey("movimientos_kardex.id"), nullable=True
    )  # Par de una transferencia

    cantidad: Mapped[Decimal] = mapped_column(Numeric(12, 4))  # Siempre > 0; el signo lo da "sentido"
    precio_unitario: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)  # Costo unitario
    costo_total: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    stock_anterior: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    stock_nuevo: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    costo_promedio_resultante: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    documento_referencia: Mapped[str | None] = mapped_column(String(200), nullable=True)
    numero_documento: Mapped[str | None] = mapped_column(String(50), nullable=True)
    referencia_tipo: Mapped[str | None] = mapped_column(String(30), nullable=True)  # "VENTA", "COMPRA", "PEDIDO"
    referencia_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    fecha_solicitud: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    fecha_movimiento: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)  # Fecha efectiva en stock
    usuario_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    autorizado_por: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    fecha_autorizacion: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    motivo_movimiento: Mapped[str | None] = mapped_column(String(500), nullable=True)
    observaciones: Mapped[str | None] = mapped_column(String(500), nullable=True)
    motivo_rechazo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    estado_movimiento: Mapped[str] = mapped_column(String(20), default=EstadoMovimiento.PENDIENTE.value, index=True)
    fecha_creacion: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    producto = relationship("Product")
    almacen = relationship("Almacen", foreign_keys=[almacen_id])
    almacen_destino = relationship("Almacen", foreign_keys=[almacen_destino_id])
    tipo = relationship("TipoMovimiento")

    @property
    def estado(self) -> EstadoMovimiento:
        return EstadoMovimiento(self.estado_movimiento)

    @property
    def es_entrada(self) -> bool:
        return self.sentido == Sentido.ENTRADA.value

    @property
    def cantidad_con_signo(self):
        """Efecto neto sobre el saldo (0 si no afecta stock)."""
        if not self.afecta_stock:
            return Decimal("0")
        return self.cantidad if self.es_entrada else -self.cantidad
