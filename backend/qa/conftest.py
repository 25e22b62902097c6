"""
Configuración global de pytest para tests de Kardex y Pedidos

La base de datos es un archivo SQLite temporal: DATABASE_URL se fija antes
de importar cualquier módulo de `app`, porque el engine se crea al importar.
Cada test parte de un esquema recreado con el catálogo base sembrado.
"""
import os
import sys
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="kardex_qa_")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR) / 'kardex_test.db'}"
os.environ["LOG_DIR"] = str(Path(_TMP_DIR) / "logs")
os.environ.setdefault("SECRET_KEY", "clave-de-pruebas-con-mas-de-32-caracteres")

# Agregar el directorio raíz al path para imports
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

from app.db import SessionLocal, engine, recreate_schema_from_models  # noqa: E402
from app.application.seed_demo import seed_catalogo_base  # noqa: E402
from app.application.services_kardex import BorradorMovimiento, KardexService  # noqa: E402
from app.config import settings  # noqa: E402
from app.domain.enums import UserRole  # noqa: E402
from app.domain.models import User  # noqa: E402
from app.domain.models_ext import Product  # noqa: E402
from app.domain.models_inventario import Almacen  # noqa: E402
from app.infrastructure.locks import LockRegistry  # noqa: E402
from app.infrastructure.unit_of_work import UnitOfWork  # noqa: E402


@pytest.fixture(autouse=True)
def esquema():
    """Esquema limpio + tipos de movimiento, almacén PRINCIPAL y series."""
    recreate_schema_from_models(bind=engine)
    db = SessionLocal()
    try:
        seed_catalogo_base(db)
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture
def locks():
    """Registro de bloqueos propio del test (no comparte estado con otros tests)."""
    return LockRegistry()


@pytest.fixture
def locks_pedidos():
    return LockRegistry()


@pytest.fixture
def nueva_uow(locks, locks_pedidos):
    """Fábrica de UnitOfWork, cada una con su propia sesión."""
    creadas = []

    def _crear():
        uow = UnitOfWork(SessionLocal(), locks=locks, lock_timeout=5, locks_pedidos=locks_pedidos)
        creadas.append(uow)
        return uow

    yield _crear
    for uow in creadas:
        uow.close()


@pytest.fixture
def uow(nueva_uow):
    return nueva_uow()


def _persistir(obj):
    db = SessionLocal()
    try:
        db.add(obj)
        db.commit()
        db.refresh(obj)
        db.expunge(obj)
        return obj
    finally:
        db.close()


@pytest.fixture
def crear_usuario():
    """Usuarios con hash ficticio: los tests de servicio no validan contraseñas."""
    def _crear(username: str, role: UserRole = UserRole.ADMINISTRADOR, activo: bool = True) -> User:
        return _persistir(User(username=username, password_hash="x", role=role.value, activo=activo))
    return _crear


@pytest.fixture
def admin(crear_usuario):
    return crear_usuario("admin_qa", UserRole.ADMINISTRADOR)


@pytest.fixture
def almacenero(crear_usuario):
    return crear_usuario("almacenero_qa", UserRole.ALMACENERO)


@pytest.fixture
def vendedor(crear_usuario):
    return crear_usuario("vendedor_qa", UserRole.VENDEDOR)


@pytest.fixture
def cliente(crear_usuario):
    return crear_usuario("cliente_qa", UserRole.CLIENTE)


@pytest.fixture
def otro_cliente(crear_usuario):
    return crear_usuario("cliente_qa_2", UserRole.CLIENTE)


@pytest.fixture
def crear_producto():
    def _crear(code: str, precio_venta="10.00", maneja_stock: bool = True, active: bool = True) -> int:
        producto = _persistir(Product(
            code=code, name=f"Producto {code}", precio_venta=Decimal(precio_venta),
            maneja_stock=maneja_stock, active=active,
        ))
        return producto.id
    return _crear


@pytest.fixture
def crear_almacen():
    def _crear(codigo: str, activo: bool = True) -> int:
        return _persistir(Almacen(codigo=codigo, nombre=f"Almacén {codigo}", activo=activo)).id
    return _crear


@pytest.fixture
def almacen_id():
    """Almacén de despacho sembrado (PRINCIPAL)."""
    db = SessionLocal()
    try:
        return db.query(Almacen).filter(Almacen.codigo == settings.almacen_despacho_codigo).one().id
    finally:
        db.close()


@pytest.fixture
def ingresar_stock(nueva_uow, admin):
    """Registra y confirma una ENTRADA_COMPRA."""
    def _ingresar(producto_id: int, almacen_id: int, cantidad, costo):
        uow = nueva_uow()
        movimiento = KardexService(uow).registrar_movimiento(BorradorMovimiento(
            producto_id=producto_id, almacen_id=almacen_id, tipo_movimiento="ENTRADA_COMPRA",
            cantidad=Decimal(str(cantidad)), costo_unitario=Decimal(str(costo)),
            documento_referencia="FAC F001-1",
        ), admin)
        movimiento_id = movimiento.id
        uow.commit()
        uow.close()
        return movimiento_id
    return _ingresar


@pytest.fixture
def saldo(nueva_uow):
    """(cantidad, costo_promedio) vivos en stocks; (0, 0) si no hay saldo."""
    def _saldo(producto_id: int, almacen_id: int):
        uow = nueva_uow()
        try:
            stock = uow.stocks.get(producto_id, almacen_id)
            if stock is None:
                return Decimal("0"), Decimal("0")
            return stock.cantidad_actual, stock.costo_promedio
        finally:
            uow.close()
    return _saldo
