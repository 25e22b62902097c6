"""
Modelos de Pedidos (portal de clientes)
=======================================

Pedido -> (aprobación) -> (pago) -> (envío: venta + salidas de kardex).
"""
from sqlalchemy import Integer, String, ForeignKey, Numeric, DateTime
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from ..db import Base
from .enums import EstadoPedido, TipoPedido, MetodoPago


class Pedido(Base):
    """
    Pedido de un cliente.
    Solo lo modifican los métodos de transición de PedidoService.
    `version` detecta escrituras concurrentes (optimistic locking).
    """
    __tablename__ = "pedidos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    numero_pedido: Mapped[str] = mapped_column(String(20), unique=True, index=True)  # PED-000001
    cliente_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("users.id"))  # Quién lo registró
    almacen_id: Mapped[int] = mapped_column(ForeignKey("almacenes.id"))  # Almacén de despacho
    estado: Mapped[str] = mapped_column(String(20), default=EstadoPedido.PENDIENTE.value, index=True)
    tipo_pedido: Mapped[str] = mapped_column(String(30), default=TipoPedido.PEDIDO_APROBACION.value)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    descuento: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    impuesto: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    observaciones: Mapped[str | None] = mapped_column(String(500), nullable=True)
    fecha_pedido: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    # Aprobación / rechazo
    aprobado_por: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    fecha_aprobacion: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    motivo_rechazo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Pago
    metodo_pago: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fecha_pago: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    comprobante_pago: Mapped[str | None] = mapped_column(String(500), nullable=True)  # Referencia opaca al archivo

    # Envío
    fecha_envio: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    venta_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)  # sales.id generada

    # Cancelación
    cancelado_por: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    fecha_cancelacion: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    motivo_cancelacion: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    detalles = relationship("PedidoDetalle", back_populates="pedido", cascade="all, delete-orphan",
                            order_by="PedidoDetalle.linea")
    actualizaciones = relationship("PedidoActualizacion", back_populates="pedido", cascade="all, delete-orphan",
                                   order_by="PedidoActualizacion.id")

    __mapper_args__ = {"version_id_col": version}

    @property
    def estado_actual(self) -> EstadoPedido:
        return EstadoPedido(self.estado)

    @property
    def tipo(self) -> TipoPedido:
        return TipoPedido(self.tipo_pedido)

    @property
    def metodo(self) -> MetodoPago | None:
        return MetodoPago(self.metodo_pago) if self.metodo_pago else None


class PedidoDetalle(Base):
    __tablename__ = "pedido_detalles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pedido_id: Mapped[int] = mapped_column(ForeignKey("pedidos.id", ondelete="CASCADE"), index=True)
    linea: Mapped[int] = mapped_column(Integer, default=1)
    producto_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    cantidad: Mapped[Decimal] = mapped_column(Numeric(12, 4))
    precio_unitario: Mapped[Decimal] = mapped_column(Numeric(14, 4))
    descuento: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2))  # cantidad * precio_unitario - descuento

    pedido = relationship("Pedido", back_populates="detalles")
    producto = relationship("Product")


class PedidoActualizacion(Base):
    """Novedades del envío (no cambian el estado del pedido)"""
    __tablename__ = "pedido_actualizaciones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pedido_id: Mapped[int] = mapped_column(ForeignKey("pedidos.id", ondelete="CASCADE"), index=True)
    mensaje: Mapped[str] = mapped_column(String(500))
    usuario_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    fecha: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    pedido = relationship("Pedido", back_populates="actualizaciones")
