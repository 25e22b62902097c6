from contextlib import contextmanager
from typing import Iterable
from sqlalchemy.orm import Session
from ..config import settings
from ..db import SessionLocal
from ..application.services_audit import log_audit
from .locks import LockRegistry, ClaveStock, stock_locks, pedido_locks
from .repositories import (
    ProductoRepository, AlmacenRepository, TipoMovimientoRepository, StockRepository,
    MovimientoRepository, PedidoRepository, VentaRepository, CorrelativoRepository, UserRepository,
)


class UnitOfWork:
    """
    Una transacción = una mutación.
    Los bloqueos de pedido y de saldo tomados en la transacción se liberan al commit/rollback.
    """

    def __init__(self, db: Session = None, locks: LockRegistry = None, lock_timeout: float = None,
                 locks_pedidos: LockRegistry = None):
        self.db: Session = db if db is not None else SessionLocal()
        self.locks = locks if locks is not None else stock_locks
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.stock_lock_timeout_seconds
        self.locks_pedidos = locks_pedidos if locks_pedidos is not None else pedido_locks
        self._claves_tomadas: set[ClaveStock] = set()
        self._pedidos_tomados: set[int] = set()
        self._auditoria: list[dict] = []
        self.productos = ProductoRepository(self.db)
        self.almacenes = AlmacenRepository(self.db)
        self.tipos_movimiento = TipoMovimientoRepository(self.db)
        self.stocks = StockRepository(self.db)
        self.movimientos = MovimientoRepository(self.db)
        self.pedidos = PedidoRepository(self.db)
        self.ventas = VentaRepository(self.db)
        self.correlativos = CorrelativoRepository(self.db)
        self.users = UserRepository(self.db)

    def bloquear_stock(self, claves: Iterable[ClaveStock]) -> None:
        """
        Toma los bloqueos de saldo en orden ascendente (producto_id, almacen_id).
        Reentrante dentro de la misma UnitOfWork.

        Una clave menor que otra ya tomada rompería el orden global: se intenta
        sin espera y, si está ocupada, se informa conflicto (reintentable).
        Conviene pedir todas las claves de la transacción en una sola llamada.
        """
        from ..application.errors import ConflictoConcurrenciaError

        for clave in sorted(set(claves)):
            if clave in self._claves_tomadas:
                continue
            fuera_de_orden = bool(self._claves_tomadas) and clave < max(self._claves_tomadas)
            if not self.locks.adquirir(clave, 0 if fuera_de_orden else self.lock_timeout):
                raise ConflictoConcurrenciaError(
                    f"Tiempo de espera agotado bloqueando el saldo producto={clave[0]} almacén={clave[1]}"
                )
            self._claves_tomadas.add(clave)

    def bloquear_pedido(self, pedido_id: int) -> None:
        """
        Serializa las transiciones de un pedido hasta el commit/rollback. Reentrante.
        Se toma antes que los saldos; si ya hay otros bloqueos se intenta sin espera.
        """
        from ..application.errors import ConflictoConcurrenciaError

        if pedido_id in self._pedidos_tomados:
            return
        espera = 0 if (self._claves_tomadas or self._pedidos_tomados) else self.lock_timeout
        if not self.locks_pedidos.adquirir((pedido_id,), espera):
            raise ConflictoConcurrenciaError(
                f"El pedido {pedido_id} está siendo modificado por otra operación; reintente"
            )
        self._pedidos_tomados.add(pedido_id)

    def _liberar_bloqueos(self):
        for clave in self._claves_tomadas:
            self.locks.liberar(clave)
        self._claves_tomadas.clear()
        for pedido_id in self._pedidos_tomados:
            self.locks_pedidos.liberar((pedido_id,))
        self._pedidos_tomados.clear()

    def auditar(self, **evento) -> None:
        """Encola un evento de auditoría; se escribe solo si la transacción confirma."""
        self._auditoria.append(evento)

    def commit(self):
        try:
            self.db.commit()
        finally:
            self._liberar_bloqueos()
        eventos, self._auditoria = self._auditoria, []
        for evento in eventos:
            log_audit(self.db, **evento)

    def rollback(self):
        self._auditoria.clear()
        try:
            self.db.rollback()
        finally:
            self._liberar_bloqueos()

    def close(self):
        try:
            self.db.close()
        finally:
            self._liberar_bloqueos()

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise
        finally:
            self.close()
