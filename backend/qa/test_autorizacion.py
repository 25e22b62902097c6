"""
Tests de autorización de ajustes de inventario (PENDIENTE -> APROBADO | RECHAZADO)
"""
import pytest
from decimal import Decimal

from app.application.errors import (
    EstadoInvalidoError, PermisoDenegadoError, StockInsuficienteError, ValidacionError,
)
from app.application.services_autorizacion import AutorizacionService
from app.application.services_kardex import BorradorMovimiento, KardexService
from app.domain.enums import EstadoMovimiento


@pytest.fixture
def registrar_ajuste(nueva_uow, almacenero):
    def _registrar(producto_id, almacen_id, tipo, cantidad, costo=None):
        uow = nueva_uow()
        m = KardexService(uow).registrar_movimiento(BorradorMovimiento(
            producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento=tipo,
            cantidad=Decimal(str(cantidad)), costo_unitario=Decimal(str(costo)) if costo is not None else None,
            motivo="Diferencia de inventario",
        ), almacenero)
        uow.commit()
        return m.id
    return _registrar


class TestAprobacion:
    def test_ajuste_sin_stock_no_se_aprueba(self, nueva_uow, admin, crear_producto, almacen_id,
                                            ingresar_stock, registrar_ajuste, saldo):
        """Saldo 5 @ 4: un ajuste negativo de 10 queda pendiente y su aprobación falla"""
        producto_id = crear_producto("A-001")
        ingresar_stock(producto_id, almacen_id, 5, 4)
        movimiento_id = registrar_ajuste(producto_id, almacen_id, "SALIDA_AJUSTE_NEGATIVO", 10)
        assert saldo(producto_id, almacen_id) == (Decimal("5"), Decimal("4"))

        uow = nueva_uow()
        with pytest.raises(StockInsuficienteError):
            AutorizacionService(uow).aprobar(movimiento_id, admin)
        uow.rollback()

        assert uow.movimientos.get(movimiento_id).estado == EstadoMovimiento.PENDIENTE
        assert saldo(producto_id, almacen_id) == (Decimal("5"), Decimal("4"))

    def test_aprobar_aplica_y_congela(self, nueva_uow, admin, crear_producto, almacen_id,
                                      ingresar_stock, registrar_ajuste, saldo):
        producto_id = crear_producto("A-002")
        ingresar_stock(producto_id, almacen_id, 5, 4)
        movimiento_id = registrar_ajuste(producto_id, almacen_id, "ENTRADA_AJUSTE_POSITIVO", 5, costo=6)

        uow = nueva_uow()
        m = AutorizacionService(uow).aprobar(movimiento_id, admin)
        uow.commit()

        assert m.estado == EstadoMovimiento.APROBADO
        assert m.autorizado_por == admin.id
        assert m.fecha_movimiento is not None
        assert (m.stock_anterior, m.stock_nuevo) == (Decimal("5"), Decimal("10"))
        assert saldo(producto_id, almacen_id) == (Decimal("10"), Decimal("5"))

    def test_aprobado_es_terminal(self, nueva_uow, admin, crear_producto, almacen_id,
                                  ingresar_stock, registrar_ajuste, saldo):
        producto_id = crear_producto("A-003")
        ingresar_stock(producto_id, almacen_id, 5, 4)
        movimiento_id = registrar_ajuste(producto_id, almacen_id, "SALIDA_MERMA", 1)

        uow = nueva_uow()
        AutorizacionService(uow).aprobar(movimiento_id, admin)
        uow.commit()

        uow = nueva_uow()
        with pytest.raises(EstadoInvalidoError):
            AutorizacionService(uow).aprobar(movimiento_id, admin)
        with pytest.raises(EstadoInvalidoError):
            AutorizacionService(uow).rechazar(movimiento_id, admin, "tarde")
        uow.rollback()
        assert saldo(producto_id, almacen_id)[0] == Decimal("4")

    def test_solo_administrador_autoriza(self, nueva_uow, almacenero, crear_producto, almacen_id,
                                         registrar_ajuste):
        producto_id = crear_producto("A-004")
        movimiento_id = registrar_ajuste(producto_id, almacen_id, "ENTRADA_AJUSTE_POSITIVO", 1, costo=1)
        uow = nueva_uow()
        with pytest.raises(PermisoDenegadoError):
            AutorizacionService(uow).aprobar(movimiento_id, almacenero)


class TestRechazo:
    def test_rechazo_exige_motivo(self, nueva_uow, admin, crear_producto, almacen_id, registrar_ajuste):
        producto_id = crear_producto("A-010")
        movimiento_id = registrar_ajuste(producto_id, almacen_id, "ENTRADA_AJUSTE_POSITIVO", 1, costo=1)
        uow = nueva_uow()
        with pytest.raises(ValidacionError):
            AutorizacionService(uow).rechazar(movimiento_id, admin, "   ")

    def test_rechazado_sin_efecto_y_terminal(self, nueva_uow, admin, crear_producto, almacen_id,
                                             registrar_ajuste, saldo):
        producto_id = crear_producto("A-011")
        movimiento_id = registrar_ajuste(producto_id, almacen_id, "ENTRADA_AJUSTE_POSITIVO", 3, costo=2)

        uow = nueva_uow()
        m = AutorizacionService(uow).rechazar(movimiento_id, admin, "No corresponde")
        uow.commit()
        assert m.estado == EstadoMovimiento.RECHAZADO
        assert m.motivo_rechazo == "No corresponde"
        assert m.stock_nuevo is None

        uow = nueva_uow()
        with pytest.raises(EstadoInvalidoError):
            AutorizacionService(uow).aprobar(movimiento_id, admin)
        uow.rollback()
        assert saldo(producto_id, almacen_id)[0] == Decimal("0")


@pytest.fixture
def transferencia_con_autorizacion(nueva_uow):
    """SALIDA_TRANSFERENCIA pasa a requerir autorización."""
    uow = nueva_uow()
    uow.tipos_movimiento.by_codigo("SALIDA_TRANSFERENCIA").requiere_autorizacion = True
    uow.commit()


@pytest.fixture
def solicitar_transferencia(nueva_uow, almacenero, transferencia_con_autorizacion):
    def _solicitar(producto_id, origen_id, destino_id, cantidad):
        uow = nueva_uow()
        salida = KardexService(uow).registrar_movimiento(BorradorMovimiento(
            producto_id=producto_id, almacen_id=origen_id, tipo_movimiento="SALIDA_TRANSFERENCIA",
            cantidad=Decimal(str(cantidad)), almacen_destino_id=destino_id, motivo="Reposición de tienda",
        ), almacenero)
        ids = salida.id, salida.movimiento_relacionado_id
        uow.commit()
        return ids
    return _solicitar


class TestTransferenciaPendiente:
    def test_aprobar_la_entrada_aplica_el_par(self, nueva_uow, admin, crear_producto, crear_almacen, almacen_id,
                                              ingresar_stock, solicitar_transferencia, saldo):
        producto_id = crear_producto("A-030")
        tienda_id = crear_almacen("TIENDA")
        ingresar_stock(producto_id, almacen_id, 10, 5)

        salida_id, entrada_id = solicitar_transferencia(producto_id, almacen_id, tienda_id, 4)
        assert saldo(producto_id, almacen_id) == (Decimal("10"), Decimal("5"))
        assert saldo(producto_id, tienda_id) == (Decimal("0"), Decimal("0"))

        uow = nueva_uow()
        AutorizacionService(uow).aprobar(entrada_id, admin)
        uow.commit()

        salida, entrada = uow.movimientos.get(salida_id), uow.movimientos.get(entrada_id)
        assert salida.estado == entrada.estado == EstadoMovimiento.APROBADO
        assert salida.autorizado_por == entrada.autorizado_por == admin.id
        assert entrada.precio_unitario == Decimal("5")
        assert saldo(producto_id, almacen_id) == (Decimal("6"), Decimal("5"))
        assert saldo(producto_id, tienda_id) == (Decimal("4"), Decimal("5"))

    def test_rechazar_la_salida_rechaza_el_par(self, nueva_uow, admin, crear_producto, crear_almacen, almacen_id,
                                               ingresar_stock, solicitar_transferencia, saldo):
        producto_id = crear_producto("A-031")
        tienda_id = crear_almacen("TIENDA")
        ingresar_stock(producto_id, almacen_id, 10, 5)
        salida_id, entrada_id = solicitar_transferencia(producto_id, almacen_id, tienda_id, 4)

        uow = nueva_uow()
        AutorizacionService(uow).rechazar(salida_id, admin, "Tienda sin espacio")
        uow.commit()

        for movimiento_id in (salida_id, entrada_id):
            m = uow.movimientos.get(movimiento_id)
            assert m.estado == EstadoMovimiento.RECHAZADO
            assert m.motivo_rechazo == "Tienda sin espacio"

        uow = nueva_uow()
        with pytest.raises(EstadoInvalidoError):
            AutorizacionService(uow).aprobar(entrada_id, admin)
        uow.rollback()
        assert saldo(producto_id, almacen_id) == (Decimal("10"), Decimal("5"))
        assert saldo(producto_id, tienda_id) == (Decimal("0"), Decimal("0"))
