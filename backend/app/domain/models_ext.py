from sqlalchemy import Integer, String, Boolean, ForeignKey, Numeric, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from ..db import Base


class Product(Base):
    """
    Producto/Artículo del catálogo.
    - Código único
    - Unidad de medida (UN, KG, M2, etc.)
    - maneja_stock: indica si el producto requiere control de inventario (kardex)
    El stock NO vive aquí: el único escritor de saldos es el kardex (tabla stocks).
    """
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint('code', name='uq_product_code'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    unit_of_measure: Mapped[str] = mapped_column(String(10), default="UN")
    precio_venta: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    stock_minimo: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=0)
    maneja_stock: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    stocks = relationship("Stock", back_populates="producto")


class Sale(Base):
    """
    Venta generada al procesar el envío de un pedido.
    Un pedido genera a lo más una venta (uq_sale_pedido).
    """
    __tablename__ = "sales"
    __table_args__ = (UniqueConstraint('pedido_id', name='uq_sale_pedido'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    numero: Mapped[str] = mapped_column(String(20), unique=True, index=True)  # V001-00000001
    cliente_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    pedido_id: Mapped[int | None] = mapped_column(ForeignKey("pedidos.id"), nullable=True)
    fecha_venta: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    currency: Mapped[str] = mapped_column(String(3), default="PEN")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    descuento: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    impuestos: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    estado: Mapped[str] = mapped_column(String(20), default="PROCESADA")  # PENDIENTE | PROCESADA | ANULADA
    observaciones: Mapped[str | None] = mapped_column(String(500), nullable=True)
    lines = relationship("SaleLine", back_populates="sale", cascade="all, delete-orphan",
                         order_by="SaleLine.line_number")


class SaleLine(Base):
    """
    Línea de detalle de una venta
    """
    __tablename__ = "sale_lines"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_id: Mapped[int] = mapped_column(ForeignKey("sales.id", ondelete="CASCADE"), index=True)
    line_number: Mapped[int] = mapped_column(Integer, default=1)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 4))
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2))  # quantity * unit_price - discount
    sale = relationship("Sale", back_populates="lines")
    product = relationship("Product")


class Correlativo(Base):
    """
    Último número emitido por serie (PED, V001, ...).
    Se incrementa con un UPDATE atómico para no saltar ni repetir números.
    """
    __tablename__ = "correlativos"
    serie: Mapped[str] = mapped_column(String(10), primary_key=True)
    ultimo_numero: Mapped[int] = mapped_column(Integer, default=0)
