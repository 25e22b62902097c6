"""
Tests de API - Kardex, ajustes de inventario e inventarios
"""
from decimal import Decimal


def _d(valor) -> Decimal:
    return Decimal(str(valor))


def _crear_producto(client, headers, code="API-001", precio="10.00"):
    r = client.post("/inventarios/productos", json={"code": code, "name": f"Producto {code}",
                                                   "precio_venta": precio}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()["data"]["id"]


def _almacen_principal(client, headers):
    r = client.get("/inventarios/almacenes", headers=headers)
    return next(a["id"] for a in r.json()["data"] if a["codigo"] == "PRINCIPAL")


def _entrada(client, headers, producto_id, almacen_id, cantidad, costo):
    return client.post("/kardex/manual", json={
        "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "ENTRADA_COMPRA",
        "cantidad": str(cantidad), "costo_unitario": str(costo), "documento_referencia": "FAC F001-20",
    }, headers=headers)


class TestKardexAPI:
    def test_entrada_manual_y_kardex_del_producto(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)

        r = _entrada(client, headers_admin, producto_id, almacen_id, 10, 5)
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["data"]["estado_movimiento"] == "APROBADO"
        assert _d(body["data"]["stock_nuevo"]) == Decimal("10")

        r = client.get(f"/kardex/producto/{producto_id}", headers=headers_admin)
        data = r.json()["data"]
        assert _d(data["saldo_final"]) == Decimal("10")
        assert len(data["movimientos"]) == 1
        assert _d(data["movimientos"][0]["saldo_acumulado"]) == Decimal("10")

        r = client.get("/inventarios/stock", params={"producto_id": producto_id}, headers=headers_admin)
        saldo = r.json()["data"][0]
        assert _d(saldo["cantidad"]) == Decimal("10")
        assert _d(saldo["valor_total"]) == Decimal("50.00")

    def test_stock_insuficiente_responde_409(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        _entrada(client, headers_admin, producto_id, almacen_id, 2, 5)

        r = client.post("/kardex/manual", json={
            "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "SALIDA_VENTA",
            "cantidad": "3", "documento_referencia": "BOL 1",
        }, headers=headers_admin)
        assert r.status_code == 409
        body = r.json()
        assert body["success"] is False
        assert body["code"] == "INSUFFICIENT_STOCK"

    def test_cantidad_cero_responde_422(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        r = _entrada(client, headers_admin, producto_id, almacen_id, 0, 5)
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_tipo_desconocido(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        r = client.post("/kardex/manual", json={
            "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "SALIDA_REGALO",
            "cantidad": "1",
        }, headers=headers_admin)
        assert r.status_code == 422
        assert r.json()["code"] == "UNKNOWN_MOVEMENT_TYPE"

    def test_contador_lee_pero_no_registra(self, client, headers_admin, headers_contador):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        _entrada(client, headers_admin, producto_id, almacen_id, 1, 1)

        r = client.get("/kardex/", params={"producto_id": producto_id}, headers=headers_contador)
        assert r.status_code == 200
        assert r.json()["pagination"]["total"] == 1

        r = _entrada(client, headers_contador, producto_id, almacen_id, 1, 1)
        assert r.status_code == 403

    def test_movimiento_inexistente(self, client, headers_admin):
        r = client.get("/kardex/99999", headers=headers_admin)
        assert r.status_code == 404
        assert r.json()["code"] == "NOT_FOUND"

    def test_verificacion_y_tipos(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        _entrada(client, headers_admin, producto_id, almacen_id, 4, 2)

        r = client.get("/kardex/verificacion", headers=headers_admin)
        assert r.status_code == 200
        assert all(f["cuadra"] for f in r.json()["data"])

        r = client.get("/kardex/tipos-movimiento", headers=headers_admin)
        codigos = {t["codigo"] for t in r.json()["data"]}
        assert {"ENTRADA_COMPRA", "SALIDA_VENTA", "SALIDA_TRANSFERENCIA", "CONTEO_FISICO"} <= codigos


class TestAjustesAPI:
    def test_ajuste_pendiente_y_aprobacion(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        _entrada(client, headers_admin, producto_id, almacen_id, 10, 3)

        r = client.post("/ajustes-inventario/", json={
            "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "SALIDA_MERMA",
            "cantidad": "2", "motivo": "Vencidos",
        }, headers=headers_admin)
        assert r.status_code == 200
        movimiento = r.json()["data"]
        assert movimiento["estado_movimiento"] == "PENDIENTE"
        assert movimiento["stock_nuevo"] is None

        r = client.get("/ajustes-inventario/", params={"estado": "PENDIENTE"}, headers=headers_admin)
        assert [m["id"] for m in r.json()["data"]] == [movimiento["id"]]

        r = client.put(f"/ajustes-inventario/{movimiento['id']}/aprobar", headers=headers_admin)
        assert r.status_code == 200
        assert r.json()["data"]["estado_movimiento"] == "APROBADO"
        assert _d(r.json()["data"]["stock_nuevo"]) == Decimal("8")

        r = client.put(f"/ajustes-inventario/{movimiento['id']}/aprobar", headers=headers_admin)
        assert r.status_code == 409
        assert r.json()["code"] == "INVALID_STATE"

    def test_rechazo_de_ajuste(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        r = client.post("/ajustes-inventario/", json={
            "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "ENTRADA_AJUSTE_POSITIVO",
            "cantidad": "5", "costo_unitario": "1", "motivo": "Sobrante",
        }, headers=headers_admin)
        movimiento_id = r.json()["data"]["id"]

        r = client.put(f"/ajustes-inventario/{movimiento_id}/rechazar", json={"motivo_rechazo": "No sustentado"},
                       headers=headers_admin)
        assert r.status_code == 200
        assert r.json()["data"]["estado_movimiento"] == "RECHAZADO"
        assert r.json()["data"]["motivo_rechazo"] == "No sustentado"

    def test_tipo_que_no_es_ajuste(self, client, headers_admin):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        r = client.post("/ajustes-inventario/", json={
            "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "ENTRADA_COMPRA",
            "cantidad": "1", "costo_unitario": "1", "documento_referencia": "FAC 1",
        }, headers=headers_admin)
        assert r.status_code == 422

    def test_almacenero_no_aprueba(self, client, headers_admin, headers_de, almacenero):
        producto_id = _crear_producto(client, headers_admin)
        almacen_id = _almacen_principal(client, headers_admin)
        r = client.post("/ajustes-inventario/", json={
            "producto_id": producto_id, "almacen_id": almacen_id, "tipo_movimiento": "ENTRADA_AJUSTE_POSITIVO",
            "cantidad": "1", "costo_unitario": "1", "motivo": "Sobrante",
        }, headers=headers_de(almacenero))
        assert r.status_code == 200
        r = client.put(f"/ajustes-inventario/{r.json()['data']['id']}/aprobar", headers=headers_de(almacenero))
        assert r.status_code == 403
