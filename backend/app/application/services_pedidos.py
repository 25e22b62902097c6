"""
Servicio de Pedidos (máquina de estados)
========================================

PENDIENTE -> EN_PROCESO -> APROBADO -> PAGADO -> PROCESADO
     \\            \\
      +-> RECHAZADO / CANCELADO

- COMPRA_DIRECTA nace APROBADO (aprobación automática)
- procesar_envio crea la venta y las SALIDA_VENTA del kardex una sola vez
- Cada transición relee el pedido (FOR UPDATE) y valida el estado dentro de la transacción;
  la columna `version` detecta escrituras concurrentes que se cuelen igual

El servicio no hace commit: lo hace el llamador (router) sobre la UnitOfWork.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..domain.enums import (
    EstadoPedido, TipoPedido, MetodoPago, ROLES_GESTION_PEDIDOS, ROLES_PERSONAL,
)
from ..domain.models import User
from ..domain.models_ext import Sale
from ..domain.models_inventario import MovimientoKardex
from ..domain.models_pedidos import Pedido, PedidoDetalle, PedidoActualizacion
from ..infrastructure.locks import ClaveStock
from ..infrastructure.unit_of_work import UnitOfWork
from .errors import (
    AlmacenNoEncontradoError, ComprobanteFaltanteError, ConflictoConcurrenciaError, EstadoInvalidoError,
    PedidoNoEncontradoError, PermisoDenegadoError, ProductoNoEncontradoError, ValidacionError,
)
from .services_audit import (
    MODULE_PEDIDOS, ACTION_CREATE, ACTION_UPDATE, ACTION_APPROVE, ACTION_REJECT, ACTION_PAY,
    ACTION_SHIP, ACTION_CANCEL, ACTION_ANULATE,
)
from .services_correlative import siguiente_numero_pedido
from .services_costeo import q_cantidad, q_costo, q_importe
from .services_kardex import BorradorMovimiento, KardexService, TIPO_SALIDA_VENTA
from .services_ventas import registrar_venta_desde_pedido

logger = logging.getLogger(__name__)

REFERENCIA_VENTA = "VENTA"


@dataclass
class LineaPedido:
    """Línea solicitada. Sin precio se toma el precio de venta del producto."""
    producto_id: int
    cantidad: Decimal
    precio_unitario: Optional[Decimal] = None
    descuento: Decimal = Decimal("0")


@dataclass
class TotalesPedido:
    detalles: List[PedidoDetalle] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    descuento: Decimal = Decimal("0.00")
    impuesto: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


@dataclass
class ResultadoEnvio:
    pedido: Pedido
    venta: Sale
    movimientos: List[MovimientoKardex]


def calcular_totales(lineas: Sequence[Tuple[int, Decimal, Decimal, Decimal]], igv_rate: Decimal) -> TotalesPedido:
    """
    Totales deterministas a partir de (producto_id, cantidad, precio_unitario, descuento):
    - subtotal de línea = cantidad * precio_unitario - descuento
    - subtotal = suma de líneas; impuesto = subtotal * IGV; total = subtotal + impuesto
    """
    if not lineas:
        raise ValidacionError("El pedido debe tener al menos una línea")
    totales = TotalesPedido()
    subtotal = Decimal("0")
    descuento_total = Decimal("0")
    for idx, (producto_id, cantidad, precio, descuento) in enumerate(lineas, start=1):
        cantidad = q_cantidad(cantidad) if cantidad is not None else None
        if cantidad is None or cantidad <= 0:
            raise ValidacionError(f"Línea {idx}: la cantidad debe ser mayor a cero")
        precio = q_costo(precio)
        if precio < 0:
            raise ValidacionError(f"Línea {idx}: el precio unitario no puede ser negativo")
        descuento = q_importe(descuento or 0)
        bruto = q_importe(cantidad * precio)
        if descuento < 0 or descuento > bruto:
            raise ValidacionError(f"Línea {idx}: el descuento debe estar entre 0 y {bruto}")
        subtotal_linea = q_importe(bruto - descuento)
        totales.detalles.append(PedidoDetalle(
            linea=idx, producto_id=producto_id, cantidad=cantidad,
            precio_unitario=precio, descuento=descuento, subtotal=subtotal_linea,
        ))
        subtotal += subtotal_linea
        descuento_total += descuento

    totales.subtotal = q_importe(subtotal)
    totales.descuento = q_importe(descuento_total)
    totales.impuesto = q_importe(totales.subtotal * igv_rate)
    totales.total = q_importe(totales.subtotal + totales.impuesto)
    return totales


def _metodo_pago(valor) -> MetodoPago:
    try:
        return MetodoPago(getattr(valor, "value", valor))
    except ValueError:
        metodos = ", ".join(m.value for m in MetodoPago)
        raise ValidacionError(f"Método de pago inválido: {valor}. Use uno de: {metodos}")


class PedidoService:
    def __init__(self, uow: UnitOfWork, kardex: KardexService = None, reloj: Callable[[], datetime] = None):
        self.uow = uow
        self.reloj = reloj or datetime.now
        self.kardex = kardex or KardexService(uow, reloj=self.reloj)

    # ===== Permisos =====

    @staticmethod
    def _exigir_personal(usuario: User):
        if not usuario.tiene_rol(ROLES_GESTION_PEDIDOS):
            raise PermisoDenegadoError("Acción reservada al personal de ventas")

    @staticmethod
    def _exigir_dueno_o_personal(pedido: Pedido, usuario: User, roles=ROLES_GESTION_PEDIDOS):
        if usuario.tiene_rol(roles):
            return
        if usuario.es_cliente and pedido.cliente_id == usuario.id:
            return
        raise PermisoDenegadoError(f"No tiene acceso al pedido {pedido.numero_pedido}")

    # ===== Lectura =====

    def _pedido(self, pedido_id: int, bloquear: bool = True) -> Pedido:
        if bloquear:
            self.uow.bloquear_pedido(pedido_id)
        pedido = self.uow.pedidos.get_for_update(pedido_id) if bloquear else self.uow.pedidos.get(pedido_id)
        if not pedido:
            raise PedidoNoEncontradoError(f"Pedido {pedido_id} no encontrado")
        return pedido

    def obtener(self, pedido_id: int, usuario: User) -> Pedido:
        pedido = self._pedido(pedido_id, bloquear=False)
        self._exigir_dueno_o_personal(pedido, usuario, roles=ROLES_PERSONAL)
        return pedido

    def listar(self, usuario: User, estado: Optional[EstadoPedido] = None, cliente_id: Optional[int] = None,
               page: int = 1, limit: int = 20) -> Tuple[List[Pedido], int]:
        if not usuario.tiene_rol(ROLES_PERSONAL):
            raise PermisoDenegadoError("Solo el personal puede listar todos los pedidos")
        estados = [estado] if estado else None
        return self.uow.pedidos.list(cliente_id=cliente_id, estados=estados,
                                     offset=(page - 1) * limit, limit=limit)

    def mis_pedidos(self, usuario: User, page: int = 1, limit: int = 20) -> Tuple[List[Pedido], int]:
        return self.uow.pedidos.list(cliente_id=usuario.id, offset=(page - 1) * limit, limit=limit)

    def pendientes(self, usuario: User, page: int = 1, limit: int = 20) -> Tuple[List[Pedido], int]:
        self._exigir_personal(usuario)
        return self.uow.pedidos.list(estados=[EstadoPedido.PENDIENTE, EstadoPedido.EN_PROCESO],
                                     offset=(page - 1) * limit, limit=limit)

    # ===== Transición =====

    def _transicionar(self, pedido: Pedido, destino: EstadoPedido, **campos) -> Pedido:
        """Valida la transición, aplica campos y estado, y escribe (detecta versión obsoleta)."""
        origen = pedido.estado_actual
        # Tras un flush fallido el pedido queda expirado y no se puede leer
        numero = pedido.numero_pedido
        if not origen.puede_pasar_a(destino):
            raise EstadoInvalidoError(
                f"El pedido {numero} está {origen.value} y no puede pasar a {destino.value}"
            )
        for nombre, valor in campos.items():
            setattr(pedido, nombre, valor)
        pedido.estado = destino.value
        try:
            self.uow.db.flush()
        except StaleDataError as e:
            raise ConflictoConcurrenciaError(
                f"El pedido {numero} fue modificado por otra operación; reintente"
            ) from e
        logger.info(f"Pedido {numero}: {origen.value} -> {destino.value}")
        return pedido

    def _auditar(self, pedido: Pedido, usuario: User, action: str, summary: str, metadata_: dict = None):
        self.uow.auditar(
            module=MODULE_PEDIDOS, action=action, entity_type="Pedido", entity_id=pedido.id,
            summary=f"{pedido.numero_pedido}: {summary}", metadata_=metadata_,
            user_id=usuario.id, user_role=usuario.role,
        )

    # ===== Operaciones =====

    def crear(self, usuario: User, lineas: Sequence[LineaPedido], cliente_id: Optional[int] = None,
              tipo_pedido: TipoPedido = TipoPedido.PEDIDO_APROBACION, almacen_id: Optional[int] = None,
              observaciones: Optional[str] = None) -> Pedido:
        """
        Crea un pedido con totales calculados desde sus líneas (nunca confía en totales del cliente).
        PEDIDO_APROBACION nace PENDIENTE; COMPRA_DIRECTA nace APROBADO (aprobado_por = None).
        """
        if usuario.es_cliente:
            if cliente_id is not None and cliente_id != usuario.id:
                raise PermisoDenegadoError("Un cliente solo puede crear pedidos a su nombre")
            cliente_id = usuario.id
        else:
            self._exigir_personal(usuario)
            if cliente_id is None:
                raise ValidacionError("Debe indicar el cliente del pedido")
            cliente = self.uow.users.get(cliente_id)
            if not cliente or not cliente.activo:
                raise ValidacionError(f"Cliente {cliente_id} no encontrado o inactivo")
        tipo_pedido = TipoPedido(getattr(tipo_pedido, "value", tipo_pedido))

        filas = []
        for linea in lineas or []:
            producto = self.uow.productos.get(linea.producto_id)
            if not producto:
                raise ProductoNoEncontradoError(f"Producto {linea.producto_id} no encontrado")
            if not producto.active:
                raise ValidacionError(f"El producto {producto.code} está inactivo")
            if usuario.es_cliente:
                # El cliente compra a precio de lista; precio y descuento solo los fija el personal
                precio, descuento = producto.precio_venta, Decimal("0")
            else:
                precio = linea.precio_unitario if linea.precio_unitario is not None else producto.precio_venta
                descuento = linea.descuento
            filas.append((linea.producto_id, linea.cantidad, precio, descuento))
        totales = calcular_totales(filas, settings.igv_rate)

        almacen = (
            self.uow.almacenes.get(almacen_id) if almacen_id
            else self.uow.almacenes.by_codigo(settings.almacen_despacho_codigo)
        )
        if not almacen or not almacen.activo:
            raise AlmacenNoEncontradoError(
                f"Almacén de despacho {almacen_id or settings.almacen_despacho_codigo} no encontrado o inactivo"
            )

        ahora = self.reloj()
        pedido = Pedido(
            numero_pedido=siguiente_numero_pedido(self.uow),
            cliente_id=cliente_id,
            usuario_id=usuario.id,
            almacen_id=almacen.id,
            tipo_pedido=tipo_pedido.value,
            estado=EstadoPedido.PENDIENTE.value,
            subtotal=totales.subtotal,
            descuento=totales.descuento,
            impuesto=totales.impuesto,
            total=totales.total,
            observaciones=observaciones,
            fecha_pedido=ahora,
        )
        if tipo_pedido == TipoPedido.COMPRA_DIRECTA:
            pedido.estado = EstadoPedido.APROBADO.value
            pedido.fecha_aprobacion = ahora
        pedido.detalles = totales.detalles
        self.uow.pedidos.add(pedido)
        self.uow.db.flush()

        logger.info(f"Pedido {pedido.numero_pedido} creado ({pedido.tipo_pedido}, {pedido.estado}) total={pedido.total}")
        self._auditar(pedido, usuario, ACTION_CREATE, f"creado {pedido.tipo_pedido} total {pedido.total}")
        return pedido

    def marcar_en_proceso(self, pedido_id: int, usuario: User) -> Pedido:
        self._exigir_personal(usuario)
        pedido = self._transicionar(self._pedido(pedido_id), EstadoPedido.EN_PROCESO)
        self._auditar(pedido, usuario, ACTION_UPDATE, "en proceso")
        return pedido

    def aprobar(self, pedido_id: int, usuario: User) -> Pedido:
        self._exigir_personal(usuario)
        pedido = self._pedido(pedido_id)
        if pedido.tipo != TipoPedido.PEDIDO_APROBACION:
            raise EstadoInvalidoError(f"El pedido {pedido.numero_pedido} es {pedido.tipo_pedido} y no requiere aprobación")
        self._transicionar(pedido, EstadoPedido.APROBADO, aprobado_por=usuario.id, fecha_aprobacion=self.reloj())
        self._auditar(pedido, usuario, ACTION_APPROVE, "aprobado")
        return pedido

    def rechazar(self, pedido_id: int, usuario: User, motivo: str) -> Pedido:
        self._exigir_personal(usuario)
        if not (motivo or "").strip():
            raise ValidacionError("El motivo de rechazo es obligatorio")
        pedido = self._transicionar(
            self._pedido(pedido_id), EstadoPedido.RECHAZADO,
            aprobado_por=usuario.id, fecha_aprobacion=self.reloj(), motivo_rechazo=motivo.strip(),
        )
        self._auditar(pedido, usuario, ACTION_REJECT, f"rechazado: {pedido.motivo_rechazo[:80]}")
        return pedido

    def marcar_pagado(self, pedido_id: int, usuario: User, metodo_pago, comprobante_pago: Optional[str] = None) -> Pedido:
        """
        APROBADO -> PAGADO. TRANSFERENCIA, YAPE y PLIN exigen comprobante
        (referencia opaca al archivo; el archivo lo guarda otro servicio).
        """
        metodo = _metodo_pago(metodo_pago)
        pedido = self._pedido(pedido_id)
        self._exigir_dueno_o_personal(pedido, usuario)
        if not pedido.estado_actual.puede_pasar_a(EstadoPedido.PAGADO):
            raise EstadoInvalidoError(
                f"El pedido {pedido.numero_pedido} está {pedido.estado} y no puede marcarse como pagado"
            )
        comprobante = (comprobante_pago or "").strip() or None
        if metodo.requiere_comprobante and not comprobante:
            raise ComprobanteFaltanteError(f"El método de pago {metodo.value} requiere comprobante de pago")
        self._transicionar(
            pedido, EstadoPedido.PAGADO,
            metodo_pago=metodo.value, comprobante_pago=comprobante, fecha_pago=self.reloj(),
        )
        self._auditar(pedido, usuario, ACTION_PAY, f"pagado con {metodo.value}", {"comprobante": comprobante})
        return pedido

    def crear_y_pagar(self, usuario: User, lineas: Sequence[LineaPedido], metodo_pago,
                      comprobante_pago: Optional[str] = None, almacen_id: Optional[int] = None,
                      observaciones: Optional[str] = None) -> Pedido:
        """Compra directa del portal: crea (APROBADO) y paga en la misma transacción."""
        metodo = _metodo_pago(metodo_pago)
        if metodo.requiere_comprobante and not (comprobante_pago or "").strip():
            raise ComprobanteFaltanteError(f"El método de pago {metodo.value} requiere comprobante de pago")
        pedido = self.crear(usuario, lineas, tipo_pedido=TipoPedido.COMPRA_DIRECTA,
                            almacen_id=almacen_id, observaciones=observaciones)
        return self.marcar_pagado(pedido.id, usuario, metodo, comprobante_pago)

    def procesar_envio(self, pedido_id: int, usuario: User) -> ResultadoEnvio:
        """
        PAGADO -> PROCESADO. Exactamente una vez:
        crea la venta y una SALIDA_VENTA por línea, todo o nada.
        Si el pedido ya tiene venta, devuelve el resultado existente sin efectos.
        """
        self._exigir_personal(usuario)
        pedido = self._pedido(pedido_id)
        if pedido.venta_id:
            return self._resultado_existente(pedido)
        if not pedido.estado_actual.puede_pasar_a(EstadoPedido.PROCESADO):
            raise EstadoInvalidoError(
                f"El pedido {pedido.numero_pedido} está {pedido.estado}; solo se envían pedidos PAGADO"
            )

        lineas_stock = [d for d in pedido.detalles if d.producto and d.producto.maneja_stock]
        demanda: Dict[ClaveStock, Decimal] = {}
        for d in lineas_stock:
            clave = (d.producto_id, pedido.almacen_id)
            demanda[clave] = demanda.get(clave, Decimal("0")) + d.cantidad
        self.uow.bloquear_stock(demanda.keys())

        # Releer bajo bloqueo: un envío concurrente pudo terminar mientras esperábamos
        pedido = self._pedido(pedido_id)
        if pedido.venta_id:
            return self._resultado_existente(pedido)
        if not pedido.estado_actual.puede_pasar_a(EstadoPedido.PROCESADO):
            raise EstadoInvalidoError(f"El pedido {pedido.numero_pedido} está {pedido.estado}")
        self.kardex.verificar_stock_suficiente(demanda)

        ahora = self.reloj()
        venta = registrar_venta_desde_pedido(self.uow, pedido=pedido, usuario_id=usuario.id, fecha=ahora)
        movimientos = []
        if lineas_stock:
            movimientos = self.kardex.registrar_movimientos([
                BorradorMovimiento(
                    producto_id=d.producto_id,
                    almacen_id=pedido.almacen_id,
                    tipo_movimiento=TIPO_SALIDA_VENTA,
                    cantidad=d.cantidad,
                    documento_referencia=f"Venta {venta.numero}",
                    numero_documento=venta.numero,
                    referencia_tipo=REFERENCIA_VENTA,
                    referencia_id=venta.id,
                    motivo=f"Envío pedido {pedido.numero_pedido}",
                )
                for d in lineas_stock
            ], usuario)

        self._transicionar(pedido, EstadoPedido.PROCESADO, fecha_envio=ahora, venta_id=venta.id)
        logger.info(f"Pedido {pedido.numero_pedido} enviado: venta {venta.numero}, {len(movimientos)} salidas de kardex")
        self._auditar(pedido, usuario, ACTION_SHIP, f"enviado, venta {venta.numero}",
                      {"venta_id": venta.id, "movimientos": [m.id for m in movimientos]})
        return ResultadoEnvio(pedido=pedido, venta=venta, movimientos=movimientos)

    def _resultado_existente(self, pedido: Pedido) -> ResultadoEnvio:
        logger.info(f"Pedido {pedido.numero_pedido} ya enviado (venta {pedido.venta_id}); se devuelve el resultado existente")
        venta = self.uow.ventas.get(pedido.venta_id)
        movimientos = self.uow.movimientos.by_referencia(REFERENCIA_VENTA, pedido.venta_id)
        return ResultadoEnvio(pedido=pedido, venta=venta, movimientos=movimientos)

    def cancelar(self, pedido_id: int, usuario: User, motivo: Optional[str] = None) -> Pedido:
        """Solo PENDIENTE o EN_PROCESO; nunca después de pagado o enviado."""
        pedido = self._pedido(pedido_id)
        self._exigir_dueno_o_personal(pedido, usuario)
        self._transicionar(
            pedido, EstadoPedido.CANCELADO,
            cancelado_por=usuario.id, fecha_cancelacion=self.reloj(), motivo_cancelacion=motivo,
        )
        self._auditar(pedido, usuario, ACTION_CANCEL, "cancelado")
        return pedido

    def anular(self, pedido_id: int, usuario: User, motivo: Optional[str] = None) -> Pedido:
        """Cancelación hecha por el personal (mismas reglas de estado que cancelar)."""
        self._exigir_personal(usuario)
        pedido = self._transicionar(
            self._pedido(pedido_id), EstadoPedido.CANCELADO,
            cancelado_por=usuario.id, fecha_cancelacion=self.reloj(), motivo_cancelacion=motivo,
        )
        self._auditar(pedido, usuario, ACTION_ANULATE, f"anulado: {motivo or 'sin motivo'}")
        return pedido

    def agregar_actualizacion_envio(self, pedido_id: int, usuario: User, mensaje: str) -> PedidoActualizacion:
        """Novedad de envío; no cambia el estado del pedido."""
        self._exigir_personal(usuario)
        if not (mensaje or "").strip():
            raise ValidacionError("El mensaje de la actualización es obligatorio")
        pedido = self._pedido(pedido_id)
        if pedido.estado_actual != EstadoPedido.PROCESADO:
            raise EstadoInvalidoError(f"El pedido {pedido.numero_pedido} aún no ha sido enviado")
        actualizacion = PedidoActualizacion(mensaje=mensaje.strip(), usuario_id=usuario.id, fecha=self.reloj())
        pedido.actualizaciones.append(actualizacion)
        self.uow.db.flush()
        self._auditar(pedido, usuario, ACTION_UPDATE, f"actualización de envío: {actualizacion.mensaje[:80]}")
        return actualizacion
