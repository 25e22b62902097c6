"""
Tests de concurrencia sobre saldos (producto, almacén), ajustes y pedidos

Cada hilo usa su propia UnitOfWork (sesión) y todos comparten el registro de bloqueos.
"""
import threading
import time
from decimal import Decimal

import pytest

from app.application.errors import ConflictoConcurrenciaError, EstadoInvalidoError, StockInsuficienteError
from app.application.queries_kardex import KardexQuery
from app.application.services_autorizacion import AutorizacionService
from app.application.services_kardex import BorradorMovimiento, KardexService
from app.application.services_pedidos import LineaPedido, PedidoService
from app.domain.enums import EstadoMovimiento, EstadoPedido, MetodoPago
from app.domain.models_ext import Sale
from app.domain.models_inventario import MovimientoKardex
from app.infrastructure.locks import LockRegistry
from app.infrastructure.unit_of_work import UnitOfWork


def _en_paralelo(n, operacion):
    """Ejecuta `operacion(i)` en n hilos que arrancan a la vez; devuelve resultado o excepción por hilo."""
    barrera = threading.Barrier(n)
    resultados = [None] * n

    def _hilo(i):
        barrera.wait()
        try:
            resultados[i] = operacion(i)
        except Exception as e:
            resultados[i] = e

    hilos = [threading.Thread(target=_hilo, args=(i,)) for i in range(n)]
    for h in hilos:
        h.start()
    for h in hilos:
        h.join(timeout=60)
    return resultados


class TestVentasConcurrentes:
    def test_dos_salidas_sobre_el_mismo_saldo(self, nueva_uow, admin, crear_producto, almacen_id,
                                              ingresar_stock, saldo):
        """Saldo 5: dos ventas de 3 a la vez -> una pasa, la otra no tiene stock; saldo final 2"""
        producto_id = crear_producto("C-001")
        ingresar_stock(producto_id, almacen_id, 5, 4)

        def vender(_):
            uow = nueva_uow()
            try:
                m = KardexService(uow).registrar_movimiento(BorradorMovimiento(
                    producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento="SALIDA_VENTA",
                    cantidad=Decimal("3"), documento_referencia="BOL B001-9",
                ), admin)
                uow.commit()
                return m.id
            except Exception:
                uow.rollback()
                raise

        resultados = _en_paralelo(2, vender)

        exitos = [r for r in resultados if isinstance(r, int)]
        fallos = [r for r in resultados if isinstance(r, Exception)]
        assert len(exitos) == 1
        assert len(fallos) == 1 and isinstance(fallos[0], StockInsuficienteError)
        assert saldo(producto_id, almacen_id)[0] == Decimal("2")

    def test_entradas_concurrentes_no_pierden_actualizaciones(self, nueva_uow, admin, crear_producto,
                                                               almacen_id, saldo):
        producto_id = crear_producto("C-002")

        def comprar(i):
            uow = nueva_uow()
            try:
                KardexService(uow).registrar_movimiento(BorradorMovimiento(
                    producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento="ENTRADA_COMPRA",
                    cantidad=Decimal("2"), costo_unitario=Decimal("3"), documento_referencia=f"FAC {i}",
                ), admin)
                uow.commit()
            except Exception:
                uow.rollback()
                raise

        resultados = _en_paralelo(4, comprar)

        assert all(r is None for r in resultados)
        assert saldo(producto_id, almacen_id) == (Decimal("8"), Decimal("3"))
        filas = KardexQuery(nueva_uow().db).verificar_saldos()
        assert all(f["cuadra"] for f in filas)


class TestAutorizacionConcurrente:
    def test_rechazo_espera_a_la_aprobacion_en_curso(self, nueva_uow, admin, almacenero, crear_producto, almacen_id,
                                                     ingresar_stock, saldo, monkeypatch):
        """La aprobación retiene el saldo; el rechazo simultáneo relee y encuentra APROBADO"""
        producto_id = crear_producto("C-010")
        ingresar_stock(producto_id, almacen_id, 5, 4)
        uow = nueva_uow()
        movimiento_id = KardexService(uow).registrar_movimiento(BorradorMovimiento(
            producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento="ENTRADA_AJUSTE_POSITIVO",
            cantidad=Decimal("5"), costo_unitario=Decimal("4"), motivo="Sobrante en conteo",
        ), almacenero).id
        uow.commit()

        dentro, continuar = threading.Event(), threading.Event()
        verificar = KardexService.verificar_disponibilidad

        def verificar_pausado(self, filas):
            dentro.set()
            continuar.wait(5)
            return verificar(self, filas)

        monkeypatch.setattr(KardexService, "verificar_disponibilidad", verificar_pausado)

        resultados = {}

        def ejecutar(nombre, operacion):
            uow = nueva_uow()
            try:
                operacion(AutorizacionService(uow))
                uow.commit()
                resultados[nombre] = "ok"
            except Exception as e:
                uow.rollback()
                resultados[nombre] = e

        aprobador = threading.Thread(target=ejecutar, args=("aprobar", lambda s: s.aprobar(movimiento_id, admin)))
        rechazador = threading.Thread(
            target=ejecutar, args=("rechazar", lambda s: s.rechazar(movimiento_id, admin, "No procede")),
        )
        aprobador.start()
        assert dentro.wait(5)
        rechazador.start()
        time.sleep(0.2)
        continuar.set()
        aprobador.join(30)
        rechazador.join(30)

        assert resultados["aprobar"] == "ok"
        assert isinstance(resultados["rechazar"], EstadoInvalidoError)
        m = nueva_uow().movimientos.get(movimiento_id)
        assert m.estado == EstadoMovimiento.APROBADO
        assert m.motivo_rechazo is None
        assert saldo(producto_id, almacen_id) == (Decimal("10"), Decimal("4"))


class TestPedidosConcurrentes:
    @pytest.fixture
    def pedido_pagado(self, nueva_uow, cliente, vendedor, crear_producto, almacen_id, ingresar_stock):
        producto_id = crear_producto("C-020", "10.00")
        ingresar_stock(producto_id, almacen_id, 10, 4)
        uow = nueva_uow()
        servicio = PedidoService(uow)
        pedido = servicio.crear(cliente, [LineaPedido(producto_id, Decimal("3"))])
        servicio.aprobar(pedido.id, vendedor)
        servicio.marcar_pagado(pedido.id, cliente, MetodoPago.EFECTIVO)
        pedido_id = pedido.id
        uow.commit()
        return pedido_id, producto_id

    def test_dos_envios_generan_una_sola_venta(self, nueva_uow, vendedor, pedido_pagado, almacen_id, saldo):
        pedido_id, producto_id = pedido_pagado

        def enviar(_):
            uow = nueva_uow()
            try:
                venta_id = PedidoService(uow).procesar_envio(pedido_id, vendedor).venta.id
                uow.commit()
                return venta_id
            except Exception:
                uow.rollback()
                raise

        resultados = _en_paralelo(2, enviar)

        assert all(isinstance(r, int) for r in resultados), resultados
        assert resultados[0] == resultados[1]
        assert saldo(producto_id, almacen_id)[0] == Decimal("7")
        db = nueva_uow().db
        assert db.query(Sale).filter_by(pedido_id=pedido_id).count() == 1
        assert db.query(MovimientoKardex).filter_by(referencia_tipo="VENTA").count() == 1

    def test_aprobacion_y_cancelacion_simultaneas(self, nueva_uow, cliente, vendedor, crear_producto):
        """Sobre un pedido PENDIENTE gana una sola transición; la otra se rechaza"""
        producto_id = crear_producto("C-021", "10.00")
        uow = nueva_uow()
        pedido_id = PedidoService(uow).crear(cliente, [LineaPedido(producto_id, Decimal("1"))]).id
        uow.commit()

        operaciones = [
            lambda s: s.aprobar(pedido_id, vendedor),
            lambda s: s.cancelar(pedido_id, cliente, "Ya no lo necesito"),
        ]

        def transicionar(i):
            uow = nueva_uow()
            try:
                estado = operaciones[i](PedidoService(uow)).estado_actual
                uow.commit()
                return estado
            except Exception:
                uow.rollback()
                raise

        resultados = _en_paralelo(2, transicionar)

        exitos = [r for r in resultados if isinstance(r, EstadoPedido)]
        fallos = [r for r in resultados if isinstance(r, Exception)]
        assert len(exitos) == 1 and len(fallos) == 1, resultados
        assert isinstance(fallos[0], (EstadoInvalidoError, ConflictoConcurrenciaError))
        assert nueva_uow().pedidos.get(pedido_id).estado_actual == exitos[0]


class TestBloqueos:
    def test_bloqueo_ocupado_agota_espera(self, almacen_id):
        locks = LockRegistry()
        retenedor = UnitOfWork(locks=locks, lock_timeout=1)
        retenedor.bloquear_stock([(1, almacen_id)])
        esperando = UnitOfWork(locks=locks, lock_timeout=0.1)
        try:
            with pytest.raises(ConflictoConcurrenciaError):
                esperando.bloquear_stock([(1, almacen_id)])
        finally:
            esperando.close()
            retenedor.close()
        # Liberado al cerrar: se puede volver a tomar
        otra = UnitOfWork(locks=locks, lock_timeout=0.1)
        otra.bloquear_stock([(1, almacen_id)])
        otra.close()

    def test_clave_fuera_de_orden_no_espera(self, almacen_id):
        """Tomar una clave menor que otra ya retenida no espera: conflicto inmediato si está ocupada"""
        locks = LockRegistry()
        primera = UnitOfWork(locks=locks, lock_timeout=30)
        primera.bloquear_stock([(1, almacen_id)])
        segunda = UnitOfWork(locks=locks, lock_timeout=30)
        segunda.bloquear_stock([(2, almacen_id)])
        inicio = time.monotonic()
        try:
            with pytest.raises(ConflictoConcurrenciaError):
                segunda.bloquear_stock([(1, almacen_id)])
        finally:
            segunda.close()
            primera.close()
        assert time.monotonic() - inicio < 5

    def test_pedido_ocupado_agota_espera(self):
        locks_pedidos = LockRegistry()
        retenedor = UnitOfWork(locks_pedidos=locks_pedidos, lock_timeout=1)
        retenedor.bloquear_pedido(7)
        esperando = UnitOfWork(locks_pedidos=locks_pedidos, lock_timeout=0.1)
        try:
            with pytest.raises(ConflictoConcurrenciaError):
                esperando.bloquear_pedido(7)
        finally:
            esperando.close()
            retenedor.close()
        otra = UnitOfWork(locks_pedidos=locks_pedidos, lock_timeout=0.1)
        otra.bloquear_pedido(7)
        otra.close()
