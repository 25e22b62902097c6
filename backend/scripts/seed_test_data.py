#!/usr/bin/env python3
"""
Script para cargar datos de prueba del Kardex y Pedidos.

Uso:
  cd backend && python -m scripts.seed_test_data
  cd backend && python scripts/seed_test_data.py

Crea:
- Catálogo base (tipos de movimiento, almacén PRINCIPAL, series)
- Usuario admin (admin/admin) y cliente demo (cliente/cliente) si no existen
- Productos demo con stock inicial (ENTRADA_COMPRA)
- Un pedido PENDIENTE del cliente demo

Ideal para pruebas funcionales y E2E.
"""
import sys
from pathlib import Path
from decimal import Decimal

# Agregar backend al path
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from app.db import SessionLocal, init_db
from app.application.seed_demo import seed_demo_data
from app.application.services_kardex import BorradorMovimiento, KardexService
from app.application.services_pedidos import LineaPedido, PedidoService
from app.config import settings
from app.domain.enums import UserRole
from app.domain.models import User
from app.domain.models_ext import Product
from app.domain.models_pedidos import Pedido
from app.infrastructure.unit_of_work import UnitOfWork
from app.security.auth import get_password_hash

STOCK_INICIAL = {
    "P001": (Decimal("50"), Decimal("6.50")),
    "P002": (Decimal("20"), Decimal("15.00")),
}


def ensure_cliente_demo(db) -> User:
    cliente = db.query(User).filter(User.username == "cliente").first()
    if not cliente:
        cliente = User(
            username="cliente",
            password_hash=get_password_hash("cliente"),
            role=UserRole.CLIENTE.value,
            nombre="Cliente Demo",
        )
        db.add(cliente)
        db.commit()
        print("   ✓ Cliente demo creado")
    return cliente


def seed_stock_inicial(uow: UnitOfWork, admin: User) -> int:
    """Una ENTRADA_COMPRA por producto demo sin saldo."""
    almacen = uow.almacenes.by_codigo(settings.almacen_despacho_codigo)
    kardex = KardexService(uow)
    count = 0
    for code, (cantidad, costo) in STOCK_INICIAL.items():
        producto = uow.db.query(Product).filter(Product.code == code).first()
        if not producto or uow.stocks.get(producto.id, almacen.id):
            continue
        kardex.registrar_movimiento(BorradorMovimiento(
            producto_id=producto.id,
            almacen_id=almacen.id,
            tipo_movimiento="ENTRADA_COMPRA",
            cantidad=cantidad,
            costo_unitario=costo,
            documento_referencia="Inventario inicial",
        ), admin)
        count += 1
    uow.commit()
    return count


def seed_pedido_demo(uow: UnitOfWork, cliente: User):
    if uow.db.query(Pedido).filter(Pedido.cliente_id == cliente.id).first():
        return None
    productos = uow.db.query(Product).filter(Product.code.in_(list(STOCK_INICIAL))).order_by(Product.code).all()
    pedido = PedidoService(uow).crear(cliente, [LineaPedido(p.id, Decimal("2")) for p in productos])
    uow.commit()
    return pedido


def main():
    print("🌱 Kardex y Pedidos - Carga de datos de prueba")
    print("=" * 50)

    init_db()
    db = SessionLocal()
    try:
        print("\n1. Ejecutando seed demo...")
        result = seed_demo_data(db, admin_user="admin", admin_pass="admin")
        print(f"   ✓ Tipos de movimiento nuevos: {result['tipos']}")
        if result.get("admin"):
            print("   ✓ Usuario admin creado")

        admin = db.query(User).filter(User.username == "admin").one()
        cliente = ensure_cliente_demo(db)

        print("\n2. Stock inicial...")
        uow = UnitOfWork(db)
        print(f"   ✓ {seed_stock_inicial(uow, admin)} entrada(s) registradas")

        print("\n3. Pedido de ejemplo...")
        pedido = seed_pedido_demo(uow, cliente)
        if pedido:
            print(f"   ✓ Pedido {pedido.numero_pedido} (total {pedido.total})")

        print("\n✅ Datos de prueba listos.")
        print("   Usuarios: admin / admin, cliente / cliente")
        return 0

    except Exception as e:
        print(f"\n❌ Error: {e}")
        import traceback
        traceback.print_exc()
        db.rollback()
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
