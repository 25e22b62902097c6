"""
Bloqueos en proceso por clave
=============================

- Saldos (producto_id, almacen_id): serializa el leer-modificar-escribir de un Stock.
- Pedidos (pedido_id,): serializa las transiciones de un mismo pedido.

Se complementan con SELECT ... FOR UPDATE en bases que lo soportan.
Orden global: primero el pedido, luego los saldos en orden ascendente
(ver UnitOfWork.bloquear_pedido y UnitOfWork.bloquear_stock), para que
dos transacciones con claves en común no se bloqueen mutuamente.
"""
import threading
from typing import Dict, Hashable, Tuple

ClaveStock = Tuple[int, int]


class LockRegistry:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def _lock_para(self, clave: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(clave)
            if lock is None:
                lock = threading.Lock()
                self._locks[clave] = lock
            return lock

    def adquirir(self, clave: Hashable, timeout: float) -> bool:
        return self._lock_para(clave).acquire(timeout=timeout)

    def liberar(self, clave: Hashable) -> None:
        self._lock_para(clave).release()


stock_locks = LockRegistry()
pedido_locks = LockRegistry()
