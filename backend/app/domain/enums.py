from enum import Enum


class UserRole(str, Enum):
    ADMINISTRADOR = "ADMINISTRADOR"
    VENDEDOR = "VENDEDOR"
    ALMACENERO = "ALMACENERO"
    CONTADOR = "CONTADOR"
    CLIENTE = "CLIENTE"  # Solo portal de clientes - sus propios pedidos


# Quién puede hacer qué (debe coincidir con la matriz de permisos del frontend)
ROLES_PERSONAL = frozenset({UserRole.ADMINISTRADOR, UserRole.VENDEDOR, UserRole.ALMACENERO, UserRole.CONTADOR})
ROLES_GESTION_PEDIDOS = frozenset({UserRole.ADMINISTRADOR, UserRole.VENDEDOR})
ROLES_REGISTRO_MOVIMIENTOS = frozenset({UserRole.ADMINISTRADOR, UserRole.ALMACENERO})
ROLES_AUTORIZACION_MOVIMIENTOS = frozenset({UserRole.ADMINISTRADOR})
ROLES_LECTURA_KARDEX = frozenset({UserRole.ADMINISTRADOR, UserRole.ALMACENERO, UserRole.CONTADOR})


class TipoOperacion(str, Enum):
    ENTRADA = "ENTRADA"
    SALIDA = "SALIDA"
    TRANSFERENCIA = "TRANSFERENCIA"


class Sentido(str, Enum):
    """Efecto de una fila del kardex sobre el saldo de su propio almacén"""
    ENTRADA = "ENTRADA"
    SALIDA = "SALIDA"


class EstadoMovimiento(str, Enum):
    PENDIENTE = "PENDIENTE"
    APROBADO = "APROBADO"
    RECHAZADO = "RECHAZADO"

    def puede_pasar_a(self, destino: "EstadoMovimiento") -> bool:
        return destino in TRANSICIONES_MOVIMIENTO[self]

    @property
    def es_terminal(self) -> bool:
        return not TRANSICIONES_MOVIMIENTO[self]


TRANSICIONES_MOVIMIENTO = {
    EstadoMovimiento.PENDIENTE: frozenset({EstadoMovimiento.APROBADO, EstadoMovimiento.RECHAZADO}),
    EstadoMovimiento.APROBADO: frozenset(),
    EstadoMovimiento.RECHAZADO: frozenset(),
}


class TipoPedido(str, Enum):
    PEDIDO_APROBACION = "PEDIDO_APROBACION"
    COMPRA_DIRECTA = "COMPRA_DIRECTA"


class EstadoPedido(str, Enum):
    PENDIENTE = "PENDIENTE"
    EN_PROCESO = "EN_PROCESO"
    APROBADO = "APROBADO"
    PAGADO = "PAGADO"
    PROCESADO = "PROCESADO"  # En camino: venta creada y stock descontado
    CANCELADO = "CANCELADO"
    RECHAZADO = "RECHAZADO"

    def puede_pasar_a(self, destino: "EstadoPedido") -> bool:
        return destino in TRANSICIONES_PEDIDO[self]

    @property
    def es_terminal(self) -> bool:
        return not TRANSICIONES_PEDIDO[self]


TRANSICIONES_PEDIDO = {
    EstadoPedido.PENDIENTE: frozenset({
        EstadoPedido.EN_PROCESO, EstadoPedido.APROBADO, EstadoPedido.RECHAZADO, EstadoPedido.CANCELADO,
    }),
    EstadoPedido.EN_PROCESO: frozenset({
        EstadoPedido.APROBADO, EstadoPedido.RECHAZADO, EstadoPedido.CANCELADO,
    }),
    EstadoPedido.APROBADO: frozenset({EstadoPedido.PAGADO}),
    EstadoPedido.PAGADO: frozenset({EstadoPedido.PROCESADO}),
    EstadoPedido.PROCESADO: frozenset(),
    EstadoPedido.CANCELADO: frozenset(),
    EstadoPedido.RECHAZADO: frozenset(),
}


class MetodoPago(str, Enum):
    EFECTIVO = "EFECTIVO"
    TARJETA = "TARJETA"
    TRANSFERENCIA = "TRANSFERENCIA"
    YAPE = "YAPE"
    PLIN = "PLIN"

    @property
    def requiere_comprobante(self) -> bool:
        return self in METODOS_CON_COMPROBANTE


METODOS_CON_COMPROBANTE = frozenset({MetodoPago.TRANSFERENCIA, MetodoPago.YAPE, MetodoPago.PLIN})
