"""
API de Ajustes de Inventario
============================

Ajustes manuales (positivos, negativos, mermas). Los tipos que requieren
autorización quedan PENDIENTE hasta que un ADMINISTRADOR los aprueba o rechaza.
"""
from fastapi import APIRouter, Query, Depends
from pydantic import BaseModel, Field
from datetime import date
from sqlalchemy.orm import Session
from typing import Optional
from ...dependencies import get_db
from ...infrastructure.unit_of_work import UnitOfWork
from ...application.dtos import MovimientoIn, MovimientoOut, TipoMovimientoOut
from ...application.errors import ValidacionError
from ...application.queries_kardex import KardexQuery, FiltrosMovimiento
from ...application.services_autorizacion import AutorizacionService
from ...application.services_kardex import KardexService, BorradorMovimiento
from ...domain.enums import (
    EstadoMovimiento, ROLES_AUTORIZACION_MOVIMIENTOS, ROLES_LECTURA_KARDEX, ROLES_REGISTRO_MOVIMIENTOS,
)
from ...domain.models import User
from ...security.auth import require_roles
from ..respuestas import ok, paginacion

router = APIRouter(prefix="/ajustes-inventario", tags=["ajustes-inventario"])

class RechazoIn(BaseModel):
    motivo_rechazo: str = Field(..., description="Motivo obligatorio")

@router.get("/")
def list_ajustes(
    producto_id: Optional[int] = Query(None),
    almacen_id: Optional[int] = Query(None),
    estado: Optional[EstadoMovimiento] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    filtros = FiltrosMovimiento(
        producto_id=producto_id, almacen_id=almacen_id, estado=estado,
        fecha_desde=fecha_desde, fecha_hasta=fecha_hasta, solo_ajustes=True, page=page, limit=limit,
    )
    items, total = KardexQuery(db).listar_movimientos(filtros)
    return ok([MovimientoOut.model_validate(m) for m in items], pagination=paginacion(page, limit, total))

@router.get("/tipos-movimiento")
def list_tipos_ajuste(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_LECTURA_KARDEX)),
):
    tipos = UnitOfWork(db).tipos_movimiento.list(solo_activos=True, solo_ajustes=True)
    return ok([TipoMovimientoOut.model_validate(t) for t in tipos])

@router.post("/")
def crear_ajuste(
    payload: MovimientoIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_REGISTRO_MOVIMIENTOS)),
):
    uow = UnitOfWork(db)
    try:
        tipo = uow.tipos_movimiento.by_codigo(payload.tipo_movimiento)
        if tipo and not tipo.es_ajuste:
            raise ValidacionError(f"{tipo.codigo} no es un tipo de ajuste; use /kardex/manual")
        movimiento = KardexService(uow).registrar_movimiento(BorradorMovimiento(**payload.model_dump()), current_user)
        uow.commit()
        return ok(MovimientoOut.model_validate(movimiento), f"Ajuste registrado ({movimiento.estado_movimiento})")
    except Exception:
        uow.rollback()
        raise

@router.put("/{movimiento_id}/aprobar")
def aprobar_ajuste(
    movimiento_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_AUTORIZACION_MOVIMIENTOS)),
):
    uow = UnitOfWork(db)
    try:
        movimiento = AutorizacionService(uow).aprobar(movimiento_id, current_user)
        uow.commit()
        return ok(MovimientoOut.model_validate(movimiento), "Ajuste aprobado")
    except Exception:
        uow.rollback()
        raise

@router.put("/{movimiento_id}/rechazar")
def rechazar_ajuste(
    movimiento_id: int,
    payload: RechazoIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_AUTORIZACION_MOVIMIENTOS)),
):
    uow = UnitOfWork(db)
    try:
        movimiento = AutorizacionService(uow).rechazar(movimiento_id, current_user, payload.motivo_rechazo)
        uow.commit()
        return ok(MovimientoOut.model_validate(movimiento), "Ajuste rechazado")
    except Exception:
        uow.rollback()
        raise
