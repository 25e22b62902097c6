"""
Consultas del KARDEX (reconstrucción de saldos)
===============================================

Reconstruye saldos recorriendo los movimientos APROBADOS, sin leer la tabla stocks.
Los valores usados (sentido, afecta_stock, cantidad, costo_total) son los congelados
en cada movimiento, nunca el catálogo vigente.

Valida: saldo del kardex = saldo físico (stocks).
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..domain.enums import EstadoMovimiento
from ..domain.models_ext import Product
from ..domain.models_inventario import Almacen, MovimientoKardex, Stock, TipoMovimiento
from .errors import AlmacenNoEncontradoError, ProductoNoEncontradoError
from .services_costeo import q_importe

CERO = Decimal("0")


def _inicio(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _fin_exclusivo(d: date) -> datetime:
    return datetime.combine(d + timedelta(days=1), time.min)


@dataclass
class KardexProducto:
    producto_id: int
    almacen_id: Optional[int]
    fecha_desde: Optional[date]
    fecha_hasta: Optional[date]
    movimientos: List[MovimientoKardex] = field(default_factory=list)
    saldo_inicial: Decimal = CERO
    saldo_final: Decimal = CERO
    total_entradas: Decimal = CERO
    total_salidas: Decimal = CERO
    valor_entradas: Decimal = CERO
    valor_salidas: Decimal = CERO

    def con_saldo(self) -> Iterator[Tuple[MovimientoKardex, Decimal]]:
        """Movimientos con el saldo acumulado tras cada uno"""
        saldo = self.saldo_inicial
        for m in self.movimientos:
            saldo += m.cantidad_con_signo
            yield m, saldo


@dataclass
class FiltrosMovimiento:
    producto_id: Optional[int] = None
    almacen_id: Optional[int] = None
    tipo_movimiento: Optional[str] = None
    estado: Optional[EstadoMovimiento] = None
    fecha_desde: Optional[date] = None
    fecha_hasta: Optional[date] = None
    solo_ajustes: bool = False
    page: int = 1
    limit: int = 50


class KardexQuery:
    def __init__(self, db: Session):
        self.db = db

    def _aprobados(self):
        return self.db.query(MovimientoKardex).filter(
            MovimientoKardex.estado_movimiento == EstadoMovimiento.APROBADO.value
        )

    def obtener_kardex(
        self,
        producto_id: int,
        almacen_id: Optional[int] = None,
        fecha_desde: Optional[date] = None,
        fecha_hasta: Optional[date] = None
    ) -> KardexProducto:
        """
        Kardex de un producto (en un almacén, o en todos si almacen_id es None).

        - saldo_inicial: neto de los movimientos aprobados anteriores a fecha_desde
        - movimientos: aprobados dentro del rango (ambas fechas inclusive), por (fecha_movimiento, id)
        - saldo_final = saldo_inicial + entradas - salidas
        """
        if not self.db.get(Product, producto_id):
            raise ProductoNoEncontradoError(f"Producto {producto_id} no encontrado")
        if almacen_id is not None and not self.db.get(Almacen, almacen_id):
            raise AlmacenNoEncontradoError(f"Almacén {almacen_id} no encontrado")

        base = self._aprobados().filter(MovimientoKardex.producto_id == producto_id)
        if almacen_id is not None:
            base = base.filter(MovimientoKardex.almacen_id == almacen_id)

        kardex = KardexProducto(producto_id, almacen_id, fecha_desde, fecha_hasta)
        if fecha_desde:
            anteriores = base.filter(MovimientoKardex.fecha_movimiento < _inicio(fecha_desde)).all()
            kardex.saldo_inicial = sum((m.cantidad_con_signo for m in anteriores), CERO)

        query = base
        if fecha_desde:
            query = query.filter(MovimientoKardex.fecha_movimiento >= _inicio(fecha_desde))
        if fecha_hasta:
            query = query.filter(MovimientoKardex.fecha_movimiento < _fin_exclusivo(fecha_hasta))
        kardex.movimientos = query.order_by(MovimientoKardex.fecha_movimiento, MovimientoKardex.id).all()

        for m in kardex.movimientos:
            if not m.afecta_stock:
                continue
            if m.es_entrada:
                kardex.total_entradas += m.cantidad
                kardex.valor_entradas += m.costo_total or CERO
            else:
                kardex.total_salidas += m.cantidad
                kardex.valor_salidas += m.costo_total or CERO
        kardex.valor_entradas = q_importe(kardex.valor_entradas)
        kardex.valor_salidas = q_importe(kardex.valor_salidas)
        kardex.saldo_final = kardex.saldo_inicial + kardex.total_entradas - kardex.total_salidas
        return kardex

    def listar_movimientos(self, filtros: FiltrosMovimiento) -> Tuple[List[MovimientoKardex], int]:
        """Movimientos en cualquier estado, más recientes primero."""
        fecha = func.coalesce(MovimientoKardex.fecha_movimiento, MovimientoKardex.fecha_solicitud)
        query = self.db.query(MovimientoKardex)
        if filtros.solo_ajustes:
            query = query.join(TipoMovimiento, TipoMovimiento.id == MovimientoKardex.tipo_movimiento_id).filter(
                TipoMovimiento.es_ajuste.is_(True)
            )
        if filtros.producto_id:
            query = query.filter(MovimientoKardex.producto_id == filtros.producto_id)
        if filtros.almacen_id:
            query = query.filter(MovimientoKardex.almacen_id == filtros.almacen_id)
        if filtros.tipo_movimiento:
            query = query.filter(MovimientoKardex.tipo_movimiento == filtros.tipo_movimiento)
        if filtros.estado:
            query = query.filter(MovimientoKardex.estado_movimiento == EstadoMovimiento(filtros.estado).value)
        if filtros.fecha_desde:
            query = query.filter(fecha >= _inicio(filtros.fecha_desde))
        if filtros.fecha_hasta:
            query = query.filter(fecha < _fin_exclusivo(filtros.fecha_hasta))

        total = query.count()
        page = max(filtros.page, 1)
        items = (
            query.order_by(fecha.desc(), MovimientoKardex.id.desc())
            .offset((page - 1) * filtros.limit)
            .limit(filtros.limit)
            .all()
        )
        return items, total

    def resumen_kardex(self, fecha_desde: Optional[date] = None, fecha_hasta: Optional[date] = None) -> Dict[str, Any]:
        query = self._aprobados()
        if fecha_desde:
            query = query.filter(MovimientoKardex.fecha_movimiento >= _inicio(fecha_desde))
        if fecha_hasta:
            query = query.filter(MovimientoKardex.fecha_movimiento < _fin_exclusivo(fecha_hasta))

        resumen = {
            "total_movimientos": 0,
            "total_entradas": CERO,
            "total_salidas": CERO,
            "valor_total_entradas": CERO,
            "valor_total_salidas": CERO,
            "productos_afectados": 0,
            "por_tipo": {},
        }
        productos = set()
        for m in query.all():
            resumen["total_movimientos"] += 1
            resumen["por_tipo"][m.tipo_movimiento] = resumen["por_tipo"].get(m.tipo_movimiento, 0) + 1
            productos.add(m.producto_id)
            if not m.afecta_stock:
                continue
            if m.es_entrada:
                resumen["total_entradas"] += m.cantidad
                resumen["valor_total_entradas"] += m.costo_total or CERO
            else:
                resumen["total_salidas"] += m.cantidad
                resumen["valor_total_salidas"] += m.costo_total or CERO
        resumen["productos_afectados"] = len(productos)
        resumen["valor_total_entradas"] = q_importe(resumen["valor_total_entradas"])
        resumen["valor_total_salidas"] = q_importe(resumen["valor_total_salidas"])
        return resumen

    def verificar_saldos(self) -> List[Dict[str, Any]]:
        """
        Para cada saldo (stocks) compara la cantidad viva con la reconstruida del kardex.
        cuadra = True cuando coinciden.
        """
        reconstruido: Dict[Tuple[int, int], Decimal] = {}
        for m in self._aprobados().filter(MovimientoKardex.afecta_stock.is_(True)).all():
            clave = (m.producto_id, m.almacen_id)
            reconstruido[clave] = reconstruido.get(clave, CERO) + m.cantidad_con_signo

        resultado = []
        for s in self.db.query(Stock).order_by(Stock.producto_id, Stock.almacen_id).all():
            cantidad_kardex = reconstruido.get((s.producto_id, s.almacen_id), CERO)
            resultado.append({
                "producto_id": s.producto_id,
                "almacen_id": s.almacen_id,
                "cantidad_stock": s.cantidad_actual,
                "cantidad_kardex": cantidad_kardex,
                "diferencia": s.cantidad_actual - cantidad_kardex,
                "cuadra": s.cantidad_actual == cantidad_kardex,
            })
        return resultado
