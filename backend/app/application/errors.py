"""
Errores de negocio del Kardex y Pedidos
=======================================

Cada error lleva un código estable (para la UI) y el status HTTP con el que
lo expone la API. Se propagan tal cual al llamador; solo
ConflictoConcurrenciaError admite reintentar la operación completa.
"""


class InventarioError(Exception):
    """Excepción base para errores del módulo de inventario y pedidos"""
    codigo = "INVENTORY_ERROR"
    status_http = 400

    def __init__(self, mensaje: str):
        super().__init__(mensaje)
        self.mensaje = mensaje


class ValidacionError(InventarioError):
    """Datos de entrada mal formados (cantidad <= 0, referencia/motivo faltante, ...)"""
    codigo = "VALIDATION_ERROR"
    status_http = 422


class ComprobanteFaltanteError(ValidacionError):
    """El método de pago exige comprobante y no se envió"""
    codigo = "MISSING_PROOF"


class TipoMovimientoDesconocidoError(InventarioError):
    codigo = "UNKNOWN_MOVEMENT_TYPE"
    status_http = 422


class NoEncontradoError(InventarioError):
    codigo = "NOT_FOUND"
    status_http = 404


class ProductoNoEncontradoError(NoEncontradoError):
    pass


class AlmacenNoEncontradoError(NoEncontradoError):
    pass


class MovimientoNoEncontradoError(NoEncontradoError):
    pass


class PedidoNoEncontradoError(NoEncontradoError):
    pass


class EstadoInvalidoError(InventarioError):
    """Transición no permitida desde el estado actual"""
    codigo = "INVALID_STATE"
    status_http = 409


class StockInsuficienteError(InventarioError):
    """Una SALIDA dejaría el stock en negativo"""
    codigo = "INSUFFICIENT_STOCK"
    status_http = 409

    def __init__(self, producto_id: int, almacen_id: int, disponible, solicitado):
        super().__init__(
            f"Stock insuficiente para producto {producto_id} en almacén {almacen_id}. "
            f"Disponible: {disponible}, Solicitado: {solicitado}"
        )
        self.producto_id = producto_id
        self.almacen_id = almacen_id
        self.disponible = disponible
        self.solicitado = solicitado


class ConflictoConcurrenciaError(InventarioError):
    """La entidad cambió entre la lectura y la escritura; el llamador puede reintentar"""
    codigo = "CONCURRENCY_CONFLICT"
    status_http = 409


class PermisoDenegadoError(InventarioError):
    codigo = "FORBIDDEN"
    status_http = 403
