"""
Autorización de movimientos (ajustes de inventario)
===================================================

PENDIENTE -> APROBADO | RECHAZADO (ambos terminales).
Aprobar es el único camino por el que un movimiento PENDIENTE adquiere
costo, stock_anterior y stock_nuevo. El stock se revalida al aprobar.
"""
from typing import List
import logging

from ..domain.enums import EstadoMovimiento, ROLES_AUTORIZACION_MOVIMIENTOS
from ..domain.models import User
from ..domain.models_inventario import MovimientoKardex
from ..infrastructure.unit_of_work import UnitOfWork
from .errors import EstadoInvalidoError, MovimientoNoEncontradoError, PermisoDenegadoError, ValidacionError
from .services_audit import MODULE_AJUSTES, ACTION_APPROVE, ACTION_REJECT
from .services_kardex import KardexService

logger = logging.getLogger(__name__)


class AutorizacionService:
    def __init__(self, uow: UnitOfWork, kardex: KardexService = None):
        self.uow = uow
        self.kardex = kardex or KardexService(uow)

    def _verificar_autorizador(self, usuario: User):
        if not usuario.tiene_rol(ROLES_AUTORIZACION_MOVIMIENTOS):
            raise PermisoDenegadoError("No tiene permisos para autorizar movimientos de inventario")

    def _grupo(self, movimiento_id: int) -> List[MovimientoKardex]:
        """Movimiento y, si es parte de una transferencia, su par."""
        movimiento = self.uow.movimientos.get(movimiento_id)
        if not movimiento:
            raise MovimientoNoEncontradoError(f"Movimiento {movimiento_id} no encontrado")
        grupo = [movimiento]
        if movimiento.movimiento_relacionado_id:
            par = self.uow.movimientos.get(movimiento.movimiento_relacionado_id)
            if par:
                grupo.append(par)
        return grupo

    @staticmethod
    def _exigir_pendiente(grupo: List[MovimientoKardex], destino: EstadoMovimiento, accion: str):
        for m in grupo:
            if not m.estado.puede_pasar_a(destino):
                raise EstadoInvalidoError(
                    f"No se puede {accion} el movimiento {m.id}: estado actual {m.estado_movimiento}"
                )

    def aprobar(self, movimiento_id: int, usuario: User) -> MovimientoKardex:
        """
        Aprueba un movimiento PENDIENTE y lo aplica al saldo.

        Raises:
            MovimientoNoEncontradoError, EstadoInvalidoError,
            StockInsuficienteError (el movimiento sigue PENDIENTE), ConflictoConcurrenciaError
        """
        self._verificar_autorizador(usuario)
        grupo = self._grupo(movimiento_id)
        self._exigir_pendiente(grupo, EstadoMovimiento.APROBADO, "aprobar")

        self.uow.bloquear_stock([(m.producto_id, m.almacen_id) for m in grupo])
        # Releer bajo bloqueo: otro aprobador pudo adelantarse
        grupo = [self.uow.movimientos.get_for_update(m.id) for m in grupo]
        self._exigir_pendiente(grupo, EstadoMovimiento.APROBADO, "aprobar")

        self.kardex.verificar_disponibilidad(grupo)
        self.kardex.aplicar_lote(grupo, autorizado_por=usuario)

        movimiento = next(m for m in grupo if m.id == movimiento_id)
        logger.info(f"Movimiento {movimiento.id} aprobado por usuario {usuario.id}: stock {movimiento.stock_anterior} -> {movimiento.stock_nuevo}")
        self.uow.auditar(
            module=MODULE_AJUSTES, action=ACTION_APPROVE, entity_type="MovimientoKardex", entity_id=movimiento.id,
            summary=f"Ajuste {movimiento.tipo_movimiento} aprobado ({movimiento.cantidad})",
            metadata_={"stock_anterior": str(movimiento.stock_anterior), "stock_nuevo": str(movimiento.stock_nuevo)},
            user_id=usuario.id, user_role=usuario.role,
        )
        return movimiento

    def rechazar(self, movimiento_id: int, usuario: User, motivo: str) -> MovimientoKardex:
        """Rechaza un movimiento PENDIENTE. Sin efecto en stock; el motivo es obligatorio."""
        self._verificar_autorizador(usuario)
        if not (motivo or "").strip():
            raise ValidacionError("El motivo de rechazo es obligatorio")
        grupo = self._grupo(movimiento_id)
        self._exigir_pendiente(grupo, EstadoMovimiento.RECHAZADO, "rechazar")

        # Mismos bloqueos que aprobar: un aprobador en curso termina antes de releer
        self.uow.bloquear_stock([(m.producto_id, m.almacen_id) for m in grupo])
        grupo = [self.uow.movimientos.get_for_update(m.id) for m in grupo]
        self._exigir_pendiente(grupo, EstadoMovimiento.RECHAZADO, "rechazar")

        ahora = self.kardex.reloj()
        for m in grupo:
            m.estado_movimiento = EstadoMovimiento.RECHAZADO.value
            m.motivo_rechazo = motivo.strip()
            m.autorizado_por = usuario.id
            m.fecha_autorizacion = ahora
        self.uow.db.flush()

        movimiento = next(m for m in grupo if m.id == movimiento_id)
        logger.info(f"Movimiento {movimiento.id} rechazado por usuario {usuario.id}: {movimiento.motivo_rechazo}")
        self.uow.auditar(
            module=MODULE_AJUSTES, action=ACTION_REJECT, entity_type="MovimientoKardex", entity_id=movimiento.id,
            summary=f"Ajuste {movimiento.tipo_movimiento} rechazado: {movimiento.motivo_rechazo[:80]}",
            user_id=usuario.id, user_role=usuario.role,
        )
        return movimiento
