"""
API de Inventarios
==================

Catálogo de productos y almacenes, y consulta de saldos.
El stock NO se edita aquí: solo cambia a través del kardex.
"""
from fastapi import APIRouter, Query, Depends
from pydantic import BaseModel, Field
from decimal import Decimal
from sqlalchemy.orm import Session
from typing import List, Optional
from ...dependencies import get_db
from ...infrastructure.unit_of_work import UnitOfWork
from ...application.errors import ValidacionError
from ...application.services_kardex import KardexService
from ...domain.enums import ROLES_PERSONAL, ROLES_REGISTRO_MOVIMIENTOS
from ...domain.models_ext import Product
from ...domain.models_inventario import Almacen
from ...domain.models import User
from ...security.auth import get_current_user, require_roles
from ..respuestas import ok

router = APIRouter(prefix="/inventarios", tags=["inventarios"])

# ===== PRODUCTOS =====

class ProductIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    unit_of_measure: str = "UN"  # UN, KG, M2, L, etc.
    precio_venta: Decimal = Field(default=Decimal("0"), ge=0)
    stock_minimo: Decimal = Field(default=Decimal("0"), ge=0)
    maneja_stock: bool = True

class ProductOut(BaseModel):
    id: int
    code: str
    name: str
    description: str | None
    unit_of_measure: str
    precio_venta: Decimal
    stock_minimo: Decimal
    maneja_stock: bool
    active: bool

    class Config:
        from_attributes = True

@router.post("/productos")
def create_product(
    payload: ProductIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_REGISTRO_MOVIMIENTOS)),
):
    """Crea un producto. El stock inicial se registra con un movimiento ENTRADA_COMPRA o ajuste."""
    uow = UnitOfWork(db)
    try:
        if uow.productos.by_code(payload.code):
            raise ValidacionError(f"Ya existe un producto con código {payload.code}")
        product = uow.productos.add(Product(**payload.model_dump()))
        uow.commit()
        return ok(ProductOut.model_validate(product), "Producto creado")
    except Exception:
        uow.rollback()
        raise

@router.get("/productos")
def list_products(
    active: bool | None = Query(None, description="Filtrar por estado activo/inactivo"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    uow = UnitOfWork(db)
    return ok([ProductOut.model_validate(p) for p in uow.productos.list(active=active)])

# ===== ALMACENES =====

class AlmacenIn(BaseModel):
    codigo: str = Field(..., min_length=1, max_length=50)
    nombre: str = Field(..., min_length=1, max_length=200)
    direccion: str | None = None
    responsable: str | None = None

class AlmacenOut(BaseModel):
    id: int
    codigo: str
    nombre: str
    direccion: str | None
    responsable: str | None
    activo: bool

    class Config:
        from_attributes = True

@router.post("/almacenes")
def create_almacen(
    payload: AlmacenIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_REGISTRO_MOVIMIENTOS)),
):
    uow = UnitOfWork(db)
    try:
        if uow.almacenes.by_codigo(payload.codigo):
            raise ValidacionError(f"Ya existe un almacén con código {payload.codigo}")
        almacen = uow.almacenes.add(Almacen(**payload.model_dump()))
        uow.commit()
        return ok(AlmacenOut.model_validate(almacen), "Almacén creado")
    except Exception:
        uow.rollback()
        raise

@router.get("/almacenes")
def list_almacenes(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    uow = UnitOfWork(db)
    return ok([AlmacenOut.model_validate(a) for a in uow.almacenes.list()])

# ===== STOCK =====

class StockOut(BaseModel):
    producto_id: int
    almacen_id: int
    cantidad: Decimal
    costo_promedio: Decimal
    valor_total: Decimal

@router.get("/stock")
def list_stock(
    producto_id: Optional[int] = Query(None),
    almacen_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ROLES_PERSONAL)),
):
    """Saldos actuales con su valorización (cantidad x costo promedio)."""
    saldos = KardexService(UnitOfWork(db)).listar_stock(producto_id=producto_id, almacen_id=almacen_id)
    data: List[StockOut] = [
        StockOut(producto_id=s.producto_id, almacen_id=s.almacen_id, cantidad=s.cantidad,
                 costo_promedio=s.costo_promedio, valor_total=s.valor_total)
        for s in saldos
    ]
    return ok(data)
