"""
Tests de consultas del KARDEX: reconstrucción de saldos desde los movimientos
"""
import pytest
from datetime import date, datetime
from decimal import Decimal

from app.application.errors import AlmacenNoEncontradoError, ProductoNoEncontradoError
from app.application.queries_kardex import FiltrosMovimiento, KardexQuery
from app.application.services_kardex import BorradorMovimiento, KardexService
from app.domain.enums import EstadoMovimiento


@pytest.fixture
def registrar(nueva_uow, admin):
    """Registra y confirma un movimiento con fecha fija."""
    def _registrar(fecha: datetime, **datos):
        uow = nueva_uow()
        datos["cantidad"] = Decimal(str(datos["cantidad"]))
        if datos.get("costo_unitario") is not None:
            datos["costo_unitario"] = Decimal(str(datos["costo_unitario"]))
        m = KardexService(uow, reloj=lambda: fecha).registrar_movimiento(BorradorMovimiento(**datos), admin)
        uow.commit()
        return m.id
    return _registrar


@pytest.fixture
def historial(crear_producto, almacen_id, registrar):
    """
    Enero: +10 @ 5 (día 5), -3 (día 10)
    Febrero: +5 @ 8 (día 2), -4 (día 20)
    """
    producto_id = crear_producto("Q-001")
    compra = dict(producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento="ENTRADA_COMPRA",
                  documento_referencia="FAC 1")
    venta = dict(producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento="SALIDA_VENTA",
                 documento_referencia="BOL 1")
    registrar(datetime(2026, 1, 5, 9, 0), cantidad=10, costo_unitario=5, **compra)
    registrar(datetime(2026, 1, 10, 18, 30), cantidad=3, **venta)
    registrar(datetime(2026, 2, 2, 8, 0), cantidad=5, costo_unitario=8, **compra)
    registrar(datetime(2026, 2, 20, 23, 59), cantidad=4, **venta)
    return producto_id


class TestKardexProducto:
    def test_saldo_reconstruido_igual_al_vivo(self, db_query, historial, almacen_id, saldo):
        kardex = db_query.obtener_kardex(historial, almacen_id)
        assert kardex.saldo_inicial == Decimal("0")
        assert kardex.total_entradas == Decimal("15")
        assert kardex.total_salidas == Decimal("7")
        assert kardex.saldo_final == saldo(historial, almacen_id)[0] == Decimal("8")

    def test_saldo_acumulado_por_fila(self, db_query, historial, almacen_id):
        kardex = db_query.obtener_kardex(historial, almacen_id)
        saldos = [s for _, s in kardex.con_saldo()]
        assert saldos == [Decimal("10"), Decimal("7"), Decimal("12"), Decimal("8")]
        # El saldo acumulado coincide con el stock_nuevo congelado
        assert all(m.stock_nuevo == s for m, s in kardex.con_saldo())

    def test_rango_de_fechas_inclusivo(self, db_query, historial, almacen_id):
        kardex = db_query.obtener_kardex(historial, almacen_id, date(2026, 2, 2), date(2026, 2, 20))
        assert kardex.saldo_inicial == Decimal("7")
        assert len(kardex.movimientos) == 2
        assert kardex.saldo_final == Decimal("8")

    def test_valorizacion(self, db_query, historial, almacen_id):
        kardex = db_query.obtener_kardex(historial, almacen_id, fecha_hasta=date(2026, 1, 31))
        assert kardex.valor_entradas == Decimal("50.00")
        assert kardex.valor_salidas == Decimal("15.00")

    def test_producto_o_almacen_inexistente(self, db_query, historial):
        with pytest.raises(ProductoNoEncontradoError):
            db_query.obtener_kardex(9999)
        with pytest.raises(AlmacenNoEncontradoError):
            db_query.obtener_kardex(historial, 9999)


class TestListadoYVerificacion:
    def test_listado_incluye_pendientes_y_filtra(self, db_query, historial, almacen_id, registrar):
        registrar(datetime(2026, 3, 1, 10, 0), producto_id=historial, almacen_id=almacen_id,
                  tipo_movimiento="SALIDA_MERMA", cantidad=1, motivo="Rotura")

        items, total = db_query.listar_movimientos(FiltrosMovimiento(producto_id=historial))
        assert total == 5
        assert items[0].estado == EstadoMovimiento.PENDIENTE

        ajustes, total_ajustes = db_query.listar_movimientos(FiltrosMovimiento(solo_ajustes=True))
        assert total_ajustes == 1
        assert ajustes[0].tipo_movimiento == "SALIDA_MERMA"

        enero, total_enero = db_query.listar_movimientos(FiltrosMovimiento(
            fecha_desde=date(2026, 1, 1), fecha_hasta=date(2026, 1, 31),
        ))
        assert total_enero == 2

    def test_paginacion(self, db_query, historial):
        items, total = db_query.listar_movimientos(FiltrosMovimiento(producto_id=historial, page=2, limit=3))
        assert total == 4
        assert len(items) == 1

    def test_verificar_saldos_cuadra(self, db_query, historial, almacen_id):
        filas = db_query.verificar_saldos()
        fila = next(f for f in filas if f["producto_id"] == historial and f["almacen_id"] == almacen_id)
        assert fila["cuadra"] is True
        assert fila["diferencia"] == Decimal("0")

    def test_resumen(self, db_query, historial):
        resumen = db_query.resumen_kardex(date(2026, 1, 1), date(2026, 1, 31))
        assert resumen["total_movimientos"] == 2
        assert resumen["por_tipo"] == {"ENTRADA_COMPRA": 1, "SALIDA_VENTA": 1}
        assert resumen["productos_afectados"] == 1


@pytest.fixture
def db_query(nueva_uow):
    return KardexQuery(nueva_uow().db)
