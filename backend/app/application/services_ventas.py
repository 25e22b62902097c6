"""
Registro de ventas generadas por el envío de pedidos.
La venta replica las líneas del pedido a su precio y descuento registrados.
"""
from datetime import datetime
from sqlalchemy.exc import IntegrityError

from ..domain.models_ext import Sale, SaleLine
from ..domain.models_pedidos import Pedido
from ..infrastructure.unit_of_work import UnitOfWork
from .errors import ConflictoConcurrenciaError
from .services_correlative import siguiente_numero_venta


def registrar_venta_desde_pedido(uow: UnitOfWork, *, pedido: Pedido, usuario_id: int, fecha: datetime) -> Sale:
    """
    Crea la venta del pedido. Un pedido genera a lo más una venta (uq_sale_pedido):
    si otra transacción ya la creó, se informa conflicto de concurrencia.
    """
    numero_pedido = pedido.numero_pedido
    sale = Sale(
        numero=siguiente_numero_venta(uow),
        cliente_id=pedido.cliente_id,
        usuario_id=usuario_id,
        pedido_id=pedido.id,
        fecha_venta=fecha,
        subtotal=pedido.subtotal,
        descuento=pedido.descuento,
        impuestos=pedido.impuesto,
        total=pedido.total,
        observaciones=f"Generada desde pedido {numero_pedido}",
    )
    sale.lines = [
        SaleLine(
            line_number=d.linea,
            product_id=d.producto_id,
            quantity=d.cantidad,
            unit_price=d.precio_unitario,
            discount=d.descuento,
            subtotal=d.subtotal,
        )
        for d in pedido.detalles
    ]
    uow.ventas.add(sale)
    try:
        uow.db.flush()
    except IntegrityError as e:
        raise ConflictoConcurrenciaError(f"El pedido {numero_pedido} ya tiene una venta registrada") from e
    return sale
