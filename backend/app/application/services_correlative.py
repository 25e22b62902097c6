"""
Servicio para generar correlativos de pedidos y ventas.

Formato:
- Pedidos: PED-000001
- Ventas:  V001-00000001 (serie + secuencial de 8 dígitos)
"""
from ..infrastructure.unit_of_work import UnitOfWork

SERIE_PEDIDOS = "PED"
SERIE_VENTAS = "V001"

# Dígitos del secuencial por serie
DIGITOS_POR_SERIE = {
    SERIE_PEDIDOS: 6,
    SERIE_VENTAS: 8,
}


def generate_correlative(uow: UnitOfWork, serie: str) -> str:
    """
    Genera el siguiente correlativo de la serie.

    - Incremento atómico sobre la tabla correlativos (sin saltos ni repetidos)
    - Independiente del ID de la base de datos
    - Si la transacción hace rollback el número se libera
    """
    numero = uow.correlativos.siguiente(serie)
    digitos = DIGITOS_POR_SERIE.get(serie, 6)
    return f"{serie}-{numero:0{digitos}d}"


def siguiente_numero_pedido(uow: UnitOfWork) -> str:
    return generate_correlative(uow, SERIE_PEDIDOS)


def siguiente_numero_venta(uow: UnitOfWork) -> str:
    return generate_correlative(uow, SERIE_VENTAS)
