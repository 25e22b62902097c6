"""
Servicio de KARDEX (libro de movimientos de inventario)
=======================================================

Único escritor de saldos (tabla stocks). Cada movimiento que afecta stock:
1. toma el bloqueo de su saldo (producto, almacén), en orden ascendente
2. valida stock suficiente para TODO el lote antes de escribir nada
3. costea (promedio ponderado), congela stock_anterior/stock_nuevo
4. actualiza el saldo en la misma transacción que inserta el movimiento

Los tipos con requiere_autorizacion quedan PENDIENTE sin efecto en stock
hasta que AutorizacionService los aprueba.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence
import logging

from ..domain.enums import EstadoMovimiento, Sentido, TipoOperacion
from ..domain.models import User
from ..domain.models_ext import Product
from ..domain.models_inventario import Almacen, MovimientoKardex, TipoMovimiento
from ..infrastructure.locks import ClaveStock
from ..infrastructure.unit_of_work import UnitOfWork
from .errors import (
    AlmacenNoEncontradoError, ProductoNoEncontradoError, StockInsuficienteError,
    TipoMovimientoDesconocidoError, ValidacionError,
)
from .services_audit import MODULE_KARDEX, ACTION_POST
from .services_costeo import (
    ResultadoCosteo, costear_entrada, costear_salida, costear_sin_efecto, q_cantidad, q_costo, q_importe,
)

logger = logging.getLogger(__name__)

# Códigos de tipos usados por el sistema (el catálogo completo se siembra en seed_demo)
TIPO_ENTRADA_COMPRA = "ENTRADA_COMPRA"
TIPO_SALIDA_VENTA = "SALIDA_VENTA"
TIPO_SALIDA_TRANSFERENCIA = "SALIDA_TRANSFERENCIA"
TIPO_ENTRADA_TRANSFERENCIA = "ENTRADA_TRANSFERENCIA"


@dataclass
class BorradorMovimiento:
    """Datos de un movimiento antes de registrarse"""
    producto_id: int
    almacen_id: int
    tipo_movimiento: str
    cantidad: Decimal
    costo_unitario: Optional[Decimal] = None
    almacen_destino_id: Optional[int] = None
    documento_referencia: Optional[str] = None
    numero_documento: Optional[str] = None
    referencia_tipo: Optional[str] = None
    referencia_id: Optional[int] = None
    motivo: Optional[str] = None
    observaciones: Optional[str] = None


@dataclass(frozen=True)
class Saldo:
    producto_id: int
    almacen_id: int
    cantidad: Decimal
    costo_promedio: Decimal

    @property
    def valor_total(self) -> Decimal:
        return q_importe(self.cantidad * self.costo_promedio)


def _clave(m: MovimientoKardex) -> ClaveStock:
    return (m.producto_id, m.almacen_id)


class KardexService:
    """
    Registro de movimientos y mantenimiento de saldos.

    `reloj` fija fecha_movimiento en el instante en que el movimiento afecta el stock;
    así el orden (fecha_movimiento, id) del kardex coincide con el orden real de aplicación.
    """

    def __init__(self, uow: UnitOfWork, reloj: Callable[[], datetime] = None):
        self.uow = uow
        self.reloj = reloj or datetime.now

    # ===== Validaciones =====

    def _validar_producto(self, producto_id: int) -> Product:
        product = self.uow.productos.get(producto_id)
        if not product:
            raise ProductoNoEncontradoError(f"Producto {producto_id} no encontrado")
        if not product.active:
            raise ValidacionError(f"El producto {product.code} está inactivo")
        if not product.maneja_stock:
            raise ValidacionError(f"El producto {product.code} no maneja stock")
        return product

    def _validar_almacen(self, almacen_id: int) -> Almacen:
        almacen = self.uow.almacenes.get(almacen_id)
        if not almacen:
            raise AlmacenNoEncontradoError(f"Almacén {almacen_id} no encontrado")
        if not almacen.activo:
            raise ValidacionError(f"El almacén {almacen.codigo} está inactivo")
        return almacen

    def _tipo(self, codigo: str) -> TipoMovimiento:
        tipo = self.uow.tipos_movimiento.by_codigo(codigo) if codigo else None
        if not tipo:
            raise TipoMovimientoDesconocidoError(f"Tipo de movimiento desconocido: {codigo}")
        if not tipo.activo:
            raise ValidacionError(f"El tipo de movimiento {codigo} está inactivo")
        return tipo

    def _validar_borrador(self, b: BorradorMovimiento) -> TipoMovimiento:
        tipo = self._tipo(b.tipo_movimiento)
        if tipo.codigo == TIPO_ENTRADA_TRANSFERENCIA:
            raise ValidacionError(
                f"{TIPO_ENTRADA_TRANSFERENCIA} se genera automáticamente; registre {TIPO_SALIDA_TRANSFERENCIA}"
            )
        if b.cantidad is None or Decimal(str(b.cantidad)) <= 0:
            raise ValidacionError("La cantidad debe ser mayor a cero")
        if b.costo_unitario is not None and Decimal(str(b.costo_unitario)) < 0:
            raise ValidacionError("El costo unitario no puede ser negativo")
        if tipo.requiere_documento and not (b.documento_referencia or "").strip():
            raise ValidacionError(f"El tipo {tipo.codigo} requiere documento de referencia")
        if tipo.requiere_autorizacion and not (b.motivo or "").strip():
            raise ValidacionError(f"El tipo {tipo.codigo} requiere un motivo")

        self._validar_producto(b.producto_id)
        self._validar_almacen(b.almacen_id)
        if tipo.operacion == TipoOperacion.TRANSFERENCIA:
            if not b.almacen_destino_id:
                raise ValidacionError("La transferencia requiere almacén destino")
            if b.almacen_destino_id == b.almacen_id:
                raise ValidacionError("El almacén destino debe ser distinto del almacén origen")
            self._validar_almacen(b.almacen_destino_id)
        return tipo

    # ===== Registro =====

    def registrar_movimiento(self, borrador: BorradorMovimiento, usuario: User) -> MovimientoKardex:
        """
        Registra un movimiento. Devuelve la fila principal (en transferencias, la SALIDA del origen).

        Raises:
            ValidacionError, TipoMovimientoDesconocidoError, ProductoNoEncontradoError,
            AlmacenNoEncontradoError, StockInsuficienteError, ConflictoConcurrenciaError
        """
        return self.registrar_movimientos([borrador], usuario)[0]

    def registrar_movimientos(self, borradores: Sequence[BorradorMovimiento], usuario: User) -> List[MovimientoKardex]:
        """
        Registra un lote todo-o-nada: si una línea no tiene stock no se escribe ninguna.
        Devuelve la fila principal de cada borrador, en el mismo orden.
        """
        if not borradores:
            raise ValidacionError("No hay movimientos que registrar")
        tipos = [self._validar_borrador(b) for b in borradores]

        inmediatos = [
            (b, t) for b, t in zip(borradores, tipos)
            if not t.requiere_autorizacion or not t.afecta_stock
        ]
        claves = set()
        for b, t in inmediatos:
            claves.add((b.producto_id, b.almacen_id))
            if t.operacion == TipoOperacion.TRANSFERENCIA:
                claves.add((b.producto_id, b.almacen_destino_id))
        # Bloqueos antes de cualquier escritura
        self.uow.bloquear_stock(claves)

        ahora = self.reloj()
        grupos: List[List[MovimientoKardex]] = []
        por_aplicar: List[MovimientoKardex] = []
        for b, tipo in zip(borradores, tipos):
            filas = self._construir_filas(b, tipo, usuario, ahora)
            grupos.append(filas)
            if not tipo.requiere_autorizacion or not tipo.afecta_stock:
                por_aplicar.extend(filas)

        if por_aplicar:
            self.verificar_disponibilidad(por_aplicar)

        for filas in grupos:
            for fila in filas:
                self.uow.movimientos.add(fila)
        self.uow.db.flush()
        for filas in grupos:
            if len(filas) == 2:
                salida, entrada = filas
                salida.movimiento_relacionado_id = entrada.id
                entrada.movimiento_relacionado_id = salida.id

        if por_aplicar:
            self.aplicar_lote(por_aplicar, autorizado_por=None)
        else:
            self.uow.db.flush()

        principales = [filas[0] for filas in grupos]

        for m in principales:
            logger.info(
                f"Movimiento {m.id} {m.tipo_movimiento} registrado ({m.estado_movimiento}): "
                f"producto={m.producto_id} almacén={m.almacen_id} cantidad={m.cantidad}"
            )
            if m.referencia_tipo is None:
                self.uow.auditar(
                    module=MODULE_KARDEX, action=ACTION_POST, entity_type="MovimientoKardex", entity_id=m.id,
                    summary=f"{m.tipo_movimiento} {m.cantidad} producto {m.producto_id} ({m.estado_movimiento})",
                    user_id=usuario.id, user_role=usuario.role,
                )
        return principales

    def _construir_filas(self, b: BorradorMovimiento, tipo: TipoMovimiento, usuario: User,
                         ahora: datetime) -> List[MovimientoKardex]:
        cantidad = q_cantidad(b.cantidad)
        comunes = dict(
            producto_id=b.producto_id,
            cantidad=cantidad,
            afecta_stock=tipo.afecta_stock,
            documento_referencia=(b.documento_referencia or "").strip() or None,
            numero_documento=b.numero_documento,
            referencia_tipo=b.referencia_tipo,
            referencia_id=b.referencia_id,
            fecha_solicitud=ahora,
            usuario_id=usuario.id,
            motivo_movimiento=b.motivo,
            observaciones=b.observaciones,
            estado_movimiento=EstadoMovimiento.PENDIENTE.value,
        )
        if tipo.operacion == TipoOperacion.TRANSFERENCIA:
            tipo_entrada = self._tipo(TIPO_ENTRADA_TRANSFERENCIA)
            salida = MovimientoKardex(
                almacen_id=b.almacen_id, almacen_destino_id=b.almacen_destino_id,
                tipo_movimiento_id=tipo.id, tipo_movimiento=tipo.codigo, sentido=Sentido.SALIDA.value,
                **comunes,
            )
            entrada = MovimientoKardex(
                almacen_id=b.almacen_destino_id,
                tipo_movimiento_id=tipo_entrada.id, tipo_movimiento=tipo_entrada.codigo,
                sentido=Sentido.ENTRADA.value,
                **comunes,
            )
            return [salida, entrada]

        sentido = Sentido.SALIDA if tipo.operacion == TipoOperacion.SALIDA else Sentido.ENTRADA
        precio = None
        if sentido == Sentido.ENTRADA and b.costo_unitario is not None:
            precio = q_costo(b.costo_unitario)
        return [MovimientoKardex(
            almacen_id=b.almacen_id,
            tipo_movimiento_id=tipo.id, tipo_movimiento=tipo.codigo, sentido=sentido.value,
            precio_unitario=precio,
            **comunes,
        )]

    # ===== Saldos =====

    def verificar_disponibilidad(self, filas: Sequence[MovimientoKardex]) -> None:
        """Pre-chequeo del lote completo: ninguna SALIDA deja un saldo en negativo."""
        demanda: Dict[ClaveStock, Decimal] = {}
        for m in filas:
            if m.afecta_stock and not m.es_entrada:
                demanda[_clave(m)] = demanda.get(_clave(m), Decimal("0")) + m.cantidad
        self.verificar_stock_suficiente(demanda)

    def verificar_stock_suficiente(self, demanda: Dict[ClaveStock, Decimal]) -> None:
        """Requiere los bloqueos de todas las claves de `demanda`."""
        for (producto_id, almacen_id), solicitado in sorted(demanda.items()):
            stock = self.uow.stocks.get_for_update(producto_id, almacen_id)
            disponible = stock.cantidad_actual if stock else Decimal("0")
            if solicitado > disponible:
                raise StockInsuficienteError(producto_id, almacen_id, disponible, solicitado)

    def aplicar_lote(self, filas: Sequence[MovimientoKardex], autorizado_por: Optional[User]) -> None:
        """
        Aplica al saldo filas PENDIENTE ya persistidas (bloqueos tomados por el llamador).
        Se aplican en orden de id; la ENTRADA de una transferencia recibe el costo de su SALIDA.
        """
        ahora = self.reloj()
        por_id = {f.id: f for f in filas}
        for m in sorted(filas, key=lambda f: f.id):
            if m.tipo_movimiento == TIPO_ENTRADA_TRANSFERENCIA and m.movimiento_relacionado_id in por_id:
                m.precio_unitario = por_id[m.movimiento_relacionado_id].precio_unitario
            self._aplicar_movimiento(m, ahora, autorizado_por)
        self.uow.db.flush()

    def _aplicar_movimiento(self, m: MovimientoKardex, ahora: datetime, autorizado_por: Optional[User]) -> None:
        """Muta el saldo y congela los valores del movimiento. Única escritura de Stock."""
        if not m.afecta_stock:
            stock = self.uow.stocks.get_for_update(m.producto_id, m.almacen_id)
            cantidad_actual = stock.cantidad_actual if stock else Decimal("0")
            costo_actual = stock.costo_promedio if stock else Decimal("0")
            costeo = costear_sin_efecto(cantidad_actual, costo_actual, m.cantidad)
        else:
            stock = self.uow.stocks.get_or_create_for_update(m.producto_id, m.almacen_id)
            if m.es_entrada:
                costo = m.precio_unitario if m.precio_unitario is not None else stock.costo_promedio
                costeo = costear_entrada(stock.cantidad_actual, stock.costo_promedio, m.cantidad, costo)
            else:
                if m.cantidad > stock.cantidad_actual:
                    raise StockInsuficienteError(m.producto_id, m.almacen_id, stock.cantidad_actual, m.cantidad)
                costeo = costear_salida(stock.cantidad_actual, stock.costo_promedio, m.cantidad)
            stock.cantidad_actual = costeo.stock_nuevo
            stock.costo_promedio = costeo.costo_promedio_resultante

        self._congelar(m, costeo, ahora, autorizado_por)
        logger.debug(
            f"Saldo producto={m.producto_id} almacén={m.almacen_id}: "
            f"{costeo.stock_anterior} -> {costeo.stock_nuevo} (costo promedio {costeo.costo_promedio_resultante})"
        )

    @staticmethod
    def _congelar(m: MovimientoKardex, costeo: ResultadoCosteo, ahora: datetime, autorizado_por: Optional[User]):
        m.precio_unitario = costeo.costo_unitario
        m.costo_total = costeo.costo_total
        m.stock_anterior = costeo.stock_anterior
        m.stock_nuevo = costeo.stock_nuevo
        m.costo_promedio_resultante = costeo.costo_promedio_resultante
        m.fecha_movimiento = ahora
        m.estado_movimiento = EstadoMovimiento.APROBADO.value
        if autorizado_por is not None:
            m.autorizado_por = autorizado_por.id
            m.fecha_autorizacion = ahora

    def obtener_saldo(self, producto_id: int, almacen_id: int) -> Saldo:
        """
        Saldo actual del producto en el almacén.
        Si aún no existe, crea el saldo en cero (bajo el bloqueo de la clave).
        """
        self._validar_producto(producto_id)
        self._validar_almacen(almacen_id)
        stock = self.uow.stocks.get(producto_id, almacen_id)
        if stock is None:
            self.uow.bloquear_stock([(producto_id, almacen_id)])
            stock = self.uow.stocks.get_or_create_for_update(producto_id, almacen_id)
        return Saldo(producto_id, almacen_id, stock.cantidad_actual, stock.costo_promedio)

    def listar_stock(self, producto_id: Optional[int] = None, almacen_id: Optional[int] = None) -> List[Saldo]:
        return [
            Saldo(s.producto_id, s.almacen_id, s.cantidad_actual, s.costo_promedio)
            for s in self.uow.stocks.list(producto_id=producto_id, almacen_id=almacen_id)
        ]
