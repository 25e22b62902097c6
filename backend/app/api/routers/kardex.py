"""
API de KARDEX
=============

Historial de movimientos, kardex por producto y registro manual de movimientos.
Los movimientos no se editan ni eliminan: las correcciones son movimientos nuevos.
"""
from fastapi import APIRouter, Query, Depends
from datetime import date
from sqlalchemy.orm import Session
from typing import Optional
from ...dependencies import get_db
from ...infrastructure.unit_of_work import UnitOfWork
from ...application.dtos import MovimientoIn, MovimientoOut, KardexFilaOut, TipoMovimientoOut
from ...application.errors import MovimientoNoEncontradoError
from ...application.queries_kardex import KardexQuery, FiltrosMovimiento
from ...application.services_kardex import KardexService, BorradorMovimiento
from ...domain.enums import EstadoMovimiento, ROLES_LECTURA_KARDEX, ROLES_REGISTRO_MOVIMIENTOS
from ...domain.models import User
from ...security.auth import require_roles
from ..respuestas import ok, paginacion

router = APIRouter(prefix="/kardex", tags=["kardex"])

@router.get("/")
def list_movimientos(
    producto_id: Optional[int] = Query(None),
    almacen_id: Optional[int] = Query(None),
    tipo_movimiento: Optional[str] = Query(None, description="Código del tipo (ENTRADA_COMPRA, SALIDA_VENTA, ...)"),
    estado: Optional[EstadoMovimiento] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    filtros = FiltrosMovimiento(
        producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento=tipo_movimiento, estado=estado,
        fecha_desde=fecha_desde, fecha_hasta=fecha_hasta, page=page, limit=limit,
    )
    items, total = KardexQuery(db).listar_movimientos(filtros)
    return ok([MovimientoOut.model_validate(m) for m in items], pagination=paginacion(page, limit, total))

@router.get("/tipos-movimiento")
def list_tipos_movimiento(
    solo_activos: bool = Query(True),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    tipos = UnitOfWork(db).tipos_movimiento.list(solo_activos=solo_activos)
    return ok([TipoMovimientoOut.model_validate(t) for t in tipos])

@router.get("/resumen")
def resumen(
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    return ok(KardexQuery(db).resumen_kardex(fecha_desde, fecha_hasta))

@router.get("/verificacion")
def verificacion(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    """Saldo físico (stocks) vs saldo reconstruido del kardex."""
    filas = KardexQuery(db).verificar_saldos()
    descuadres = sum(1 for f in filas if not f["cuadra"])
    mensaje = "Todos los saldos cuadran" if not descuadres else f"{descuadres} saldo(s) no cuadran"
    return ok(filas, mensaje)

@router.get("/producto/{producto_id}")
def kardex_producto(
    producto_id: int,
    almacen_id: Optional[int] = Query(None, description="Sin almacén: todos los almacenes"),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    kardex = KardexQuery(db).obtener_kardex(producto_id, almacen_id, fecha_desde, fecha_hasta)
    return ok({
        "producto_id": kardex.producto_id,
        "almacen_id": kardex.almacen_id,
        "fecha_desde": kardex.fecha_desde,
        "fecha_hasta": kardex.fecha_hasta,
        "saldo_inicial": kardex.saldo_inicial,
        "saldo_final": kardex.saldo_final,
        "total_entradas": kardex.total_entradas,
        "total_salidas": kardex.total_salidas,
        "valor_entradas": kardex.valor_entradas,
        "valor_salidas": kardex.valor_salidas,
        "movimientos": [
            KardexFilaOut(**MovimientoOut.model_validate(m).model_dump(), saldo_acumulado=saldo)
            for m, saldo in kardex.con_saldo()
        ],
    })

@router.post("/manual")
def registrar_movimiento_manual(
    payload: MovimientoIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_REGISTRO_MOVIMIENTOS)),
):
    """
    Registra un movimiento manual.
    Si el tipo requiere autorización queda PENDIENTE (ver /ajustes-inventario).
    """
    uow = UnitOfWork(db)
    try:
        movimiento = KardexService(uow).registrar_movimiento(BorradorMovimiento(**payload.model_dump()), current_user)
        uow.commit()
        mensaje = (
            "Movimiento registrado" if movimiento.estado == EstadoMovimiento.APROBADO
            else "Movimiento registrado, pendiente de autorización"
        )
        return ok(MovimientoOut.model_validate(movimiento), mensaje)
    except Exception:
        uow.rollback()
        raise

@router.get("/{movimiento_id}")
def get_movimiento(
    movimiento_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    movimiento = UnitOfWork(db).movimientos.get(movimiento_id)
    if not movimiento:
        raise MovimientoNoEncontradoError(f"Movimiento {movimiento_id} no encontrado")
    return ok(MovimientoOut.model_validate(movimiento))
