"""
Seed de datos para iniciar el sistema desde cero.

Crea:
- Catálogo de tipos de movimiento del kardex
- Almacén de despacho (settings.almacen_despacho_codigo)
- Series de correlativos (PED, V001)
- (demo) usuario administrador y productos de ejemplo
"""
from decimal import Decimal
from sqlalchemy.orm import Session
from ..config import settings
from ..domain.enums import TipoOperacion, UserRole
from ..domain.models import User
from ..domain.models_ext import Product, Correlativo
from ..domain.models_inventario import Almacen, TipoMovimiento
from ..security.auth import get_password_hash
from .services_correlative import SERIE_PEDIDOS, SERIE_VENTAS

E, S, T = TipoOperacion.ENTRADA.value, TipoOperacion.SALIDA.value, TipoOperacion.TRANSFERENCIA.value

# (codigo, nombre, operación, afecta_stock, requiere_documento, requiere_autorizacion, es_ajuste)
TIPOS_MOVIMIENTO = [
    ("ENTRADA_COMPRA", "Entrada por compra", E, True, True, False, False),
    ("ENTRADA_DEVOLUCION_CLIENTE", "Devolución de cliente", E, True, True, False, False),
    ("ENTRADA_AJUSTE_POSITIVO", "Ajuste positivo de inventario", E, True, False, True, True),
    ("SALIDA_VENTA", "Salida por venta", S, True, True, False, False),
    ("SALIDA_DEVOLUCION_PROVEEDOR", "Devolución a proveedor", S, True, True, False, False),
    ("SALIDA_AJUSTE_NEGATIVO", "Ajuste negativo de inventario", S, True, False, True, True),
    ("SALIDA_MERMA", "Merma", S, True, False, True, True),
    ("SALIDA_TRANSFERENCIA", "Transferencia entre almacenes (salida)", T, True, False, False, False),
    ("ENTRADA_TRANSFERENCIA", "Transferencia entre almacenes (entrada)", T, True, False, False, False),
    ("CONTEO_FISICO", "Conteo físico (solo registro)", E, False, False, False, True),
]


def seed_catalogo_base(db: Session) -> dict:
    """
    Tipos de movimiento, almacén de despacho y series de correlativos.
    Idempotente: no duplica lo que ya existe. No hace commit.
    """
    result = {"tipos": 0, "almacen": False, "series": 0}
    for codigo, nombre, operacion, afecta, documento, autorizacion, ajuste in TIPOS_MOVIMIENTO:
        if db.query(TipoMovimiento).filter(TipoMovimiento.codigo == codigo).first():
            continue
        db.add(TipoMovimiento(
            codigo=codigo, nombre=nombre, tipo_operacion=operacion, afecta_stock=afecta,
            requiere_documento=documento, requiere_autorizacion=autorizacion, es_ajuste=ajuste, activo=True,
        ))
        result["tipos"] += 1

    if not db.query(Almacen).filter(Almacen.codigo == settings.almacen_despacho_codigo).first():
        db.add(Almacen(codigo=settings.almacen_despacho_codigo, nombre="Almacén principal", activo=True))
        result["almacen"] = True

    for serie in (SERIE_PEDIDOS, SERIE_VENTAS):
        if not db.get(Correlativo, serie):
            db.add(Correlativo(serie=serie, ultimo_numero=0))
            result["series"] += 1
    db.flush()
    return result


def seed_demo_data(db: Session, admin_user: str = "admin", admin_pass: str = "admin") -> dict:
    """
    Catálogo base + usuario administrador + productos de ejemplo.
    Si ya existen, no duplica.
    """
    result = seed_catalogo_base(db)

    admin = db.query(User).filter(User.username == admin_user).first()
    if not admin:
        db.add(User(
            username=admin_user,
            password_hash=get_password_hash(admin_pass),
            role=UserRole.ADMINISTRADOR.value,
            nombre="Administrador",
        ))
        result["admin"] = True

    productos = [
        ("P001", "Producto demo 1", Decimal("10.00")),
        ("P002", "Producto demo 2", Decimal("25.00")),
    ]
    for code, name, precio in productos:
        if not db.query(Product).filter(Product.code == code).first():
            db.add(Product(code=code, name=name, precio_venta=precio, maneja_stock=True))
    db.commit()
    return result
