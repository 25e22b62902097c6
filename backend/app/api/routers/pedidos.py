"""
API de Pedidos
==============

Portal de clientes (crear, pagar, cancelar, mis pedidos) y gestión del
personal (aprobar, rechazar, procesar envío, anular).
"""
from fastapi import APIRouter, Query, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import List, Optional
from ...dependencies import get_db
from ...infrastructure.unit_of_work import UnitOfWork
from ...application.dtos import PedidoLineaIn, PedidoOut, PedidoActualizacionOut, EnvioOut, VentaOut, MovimientoOut
from ...application.services_pedidos import PedidoService, LineaPedido
from ...domain.enums import EstadoPedido, TipoPedido, MetodoPago
from ...domain.models import User
from ...security.auth import get_current_user
from ..respuestas import ok, paginacion

router = APIRouter(prefix="/pedidos", tags=["pedidos"])

class PedidoIn(BaseModel):
    lineas: List[PedidoLineaIn] = Field(..., min_length=1)
    cliente_id: Optional[int] = None  # Obligatorio si lo registra el personal
    tipo_pedido: TipoPedido = TipoPedido.PEDIDO_APROBACION
    almacen_id: Optional[int] = None
    observaciones: Optional[str] = None

class CompraDirectaIn(BaseModel):
    lineas: List[PedidoLineaIn] = Field(..., min_length=1)
    metodo_pago: MetodoPago
    comprobante_pago: Optional[str] = None
    almacen_id: Optional[int] = None
    observaciones: Optional[str] = None

class PagoIn(BaseModel):
    metodo_pago: MetodoPago
    comprobante_pago: Optional[str] = None  # Referencia al archivo ya subido

class MotivoIn(BaseModel):
    motivo: Optional[str] = None

class RechazoIn(BaseModel):
    motivo_rechazo: str

class ActualizacionIn(BaseModel):
    mensaje: str = Field(..., min_length=1, max_length=500)

def _lineas(payload_lineas: List[PedidoLineaIn]) -> List[LineaPedido]:
    return [LineaPedido(**l.model_dump()) for l in payload_lineas]

def _transicion(db: Session, operacion, mensaje: str):
    """Ejecuta una operación del servicio en su propia transacción."""
    uow = UnitOfWork(db)
    try:
        pedido = operacion(PedidoService(uow))
        uow.commit()
        return ok(PedidoOut.model_validate(pedido), mensaje)
    except Exception:
        uow.rollback()
        raise

@router.post("/")
def crear_pedido(payload: PedidoIn, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _transicion(
        db,
        lambda s: s.crear(current_user, _lineas(payload.lineas), cliente_id=payload.cliente_id,
                          tipo_pedido=payload.tipo_pedido, almacen_id=payload.almacen_id,
                          observaciones=payload.observaciones),
        "Pedido creado",
    )

@router.post("/crear-y-pagar")
def crear_y_pagar(payload: CompraDirectaIn, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Compra directa: el pedido nace aprobado y queda pagado en la misma operación."""
    return _transicion(
        db,
        lambda s: s.crear_y_pagar(current_user, _lineas(payload.lineas), payload.metodo_pago,
                                  payload.comprobante_pago, almacen_id=payload.almacen_id,
                                  observaciones=payload.observaciones),
        "Compra registrada y pagada",
    )

@router.get("/mis-pedidos")
def mis_pedidos(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = PedidoService(UnitOfWork(db)).mis_pedidos(current_user, page, limit)
    return ok([PedidoOut.model_validate(p) for p in items], pagination=paginacion(page, limit, total))

@router.get("/pendientes")
def pedidos_pendientes(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = PedidoService(UnitOfWork(db)).pendientes(current_user, page, limit)
    return ok([PedidoOut.model_validate(p) for p in items], pagination=paginacion(page, limit, total))

@router.get("/")
def list_pedidos(
    estado: Optional[EstadoPedido] = Query(None),
    cliente_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = PedidoService(UnitOfWork(db)).listar(current_user, estado, cliente_id, page, limit)
    return ok([PedidoOut.model_validate(p) for p in items], pagination=paginacion(page, limit, total))

@router.get("/{pedido_id}")
def get_pedido(pedido_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ok(PedidoOut.model_validate(PedidoService(UnitOfWork(db)).obtener(pedido_id, current_user)))

@router.put("/{pedido_id}/marcar-en-proceso")
def marcar_en_proceso(pedido_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _transicion(db, lambda s: s.marcar_en_proceso(pedido_id, current_user), "Pedido en proceso")

@router.put("/{pedido_id}/aprobar")
def aprobar_pedido(pedido_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _transicion(db, lambda s: s.aprobar(pedido_id, current_user), "Pedido aprobado")

@router.put("/{pedido_id}/rechazar")
def rechazar_pedido(pedido_id: int, payload: RechazoIn, db: Session = Depends(get_db),
                    current_user: User = Depends(get_current_user)):
    return _transicion(db, lambda s: s.rechazar(pedido_id, current_user, payload.motivo_rechazo), "Pedido rechazado")

@router.post("/{pedido_id}/marcar-pagado")
def marcar_pagado(pedido_id: int, payload: PagoIn, db: Session = Depends(get_db),
                  current_user: User = Depends(get_current_user)):
    return _transicion(
        db,
        lambda s: s.marcar_pagado(pedido_id, current_user, payload.metodo_pago, payload.comprobante_pago),
        "Pago registrado",
    )

@router.post("/{pedido_id}/procesar-envio")
def procesar_envio(pedido_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Crea la venta y descuenta stock. Repetir la llamada devuelve el mismo resultado."""
    uow = UnitOfWork(db)
    try:
        resultado = PedidoService(uow).procesar_envio(pedido_id, current_user)
        uow.commit()
        data = EnvioOut(
            pedido=PedidoOut.model_validate(resultado.pedido),
            venta=VentaOut.model_validate(resultado.venta),
            movimientos=[MovimientoOut.model_validate(m) for m in resultado.movimientos],
        )
        return ok(data, f"Pedido enviado, venta {resultado.venta.numero}")
    except Exception:
        uow.rollback()
        raise

@router.put("/{pedido_id}/cancelar")
def cancelar_pedido(pedido_id: int, payload: Optional[MotivoIn] = None, db: Session = Depends(get_db),
                    current_user: User = Depends(get_current_user)):
    motivo = payload.motivo if payload else None
    return _transicion(db, lambda s: s.cancelar(pedido_id, current_user, motivo), "Pedido cancelado")

@router.put("/{pedido_id}/anular")
def anular_pedido(pedido_id: int, payload: Optional[MotivoIn] = None, db: Session = Depends(get_db),
                  current_user: User = Depends(get_current_user)):
    motivo = payload.motivo if payload else None
    return _transicion(db, lambda s: s.anular(pedido_id, current_user, motivo), "Pedido anulado")

@router.post("/{pedido_id}/actualizacion-envio")
def actualizacion_envio(pedido_id: int, payload: ActualizacionIn, db: Session = Depends(get_db),
                        current_user: User = Depends(get_current_user)):
    uow = UnitOfWork(db)
    try:
        actualizacion = PedidoService(uow).agregar_actualizacion_envio(pedido_id, current_user, payload.mensaje)
        uow.commit()
        return ok(PedidoActualizacionOut.model_validate(actualizacion), "Actualización registrada")
    except Exception:
        uow.rollback()
        raise
