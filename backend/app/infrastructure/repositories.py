from decimal import Decimal
from sqlalchemy.orm import Session, selectinload
from ..domain.models import User
from ..domain.models_ext import Product, Sale, Correlativo
from ..domain.models_inventario import Almacen, Stock, TipoMovimiento, MovimientoKardex
from ..domain.models_pedidos import Pedido


class ProductoRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, p: Product): self.db.add(p); return p
    def get(self, id: int): return self.db.get(Product, id)
    def by_code(self, code: str):
        return self.db.query(Product).filter(Product.code == code).first()
    def list(self, active: bool | None = None):
        q = self.db.query(Product)
        if active is not None:
            q = q.filter(Product.active == active)
        return q.order_by(Product.code).all()


class AlmacenRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, a: Almacen): self.db.add(a); return a
    def get(self, id: int): return self.db.get(Almacen, id)
    def by_codigo(self, codigo: str):
        return self.db.query(Almacen).filter(Almacen.codigo == codigo).first()
    def list(self): return self.db.query(Almacen).order_by(Almacen.codigo).all()


class TipoMovimientoRepository:
    def __init__(self, db: Session): self.db = db
    def by_codigo(self, codigo: str):
        return self.db.query(TipoMovimiento).filter(TipoMovimiento.codigo == codigo).first()
    def list(self, solo_activos: bool = True, solo_ajustes: bool = False):
        q = self.db.query(TipoMovimiento)
        if solo_activos:
            q = q.filter(TipoMovimiento.activo.is_(True))
        if solo_ajustes:
            q = q.filter(TipoMovimiento.es_ajuste.is_(True))
        return q.order_by(TipoMovimiento.codigo).all()


class StockRepository:
    def __init__(self, db: Session): self.db = db

    def get(self, producto_id: int, almacen_id: int):
        return self.db.query(Stock).filter_by(producto_id=producto_id, almacen_id=almacen_id).first()

    def get_for_update(self, producto_id: int, almacen_id: int):
        """Relee la fila (nunca la copia del identity map) y la bloquea hasta el commit."""
        return (
            self.db.query(Stock)
            .filter_by(producto_id=producto_id, almacen_id=almacen_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_or_create_for_update(self, producto_id: int, almacen_id: int) -> Stock:
        s = self.get_for_update(producto_id, almacen_id)
        if not s:
            s = Stock(producto_id=producto_id, almacen_id=almacen_id,
                      cantidad_actual=Decimal('0'), costo_promedio=Decimal('0'))
            self.db.add(s); self.db.flush()
        return s

    def list(self, producto_id: int | None = None, almacen_id: int | None = None):
        q = self.db.query(Stock).options(selectinload(Stock.producto), selectinload(Stock.almacen))
        if producto_id:
            q = q.filter(Stock.producto_id == producto_id)
        if almacen_id:
            q = q.filter(Stock.almacen_id == almacen_id)
        return q.order_by(Stock.producto_id, Stock.almacen_id).all()


class MovimientoRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, m: MovimientoKardex): self.db.add(m); return m
    def get(self, id: int): return self.db.get(MovimientoKardex, id)

    def get_for_update(self, id: int):
        return (
            self.db.query(MovimientoKardex)
            .filter(MovimientoKardex.id == id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def by_referencia(self, referencia_tipo: str, referencia_id: int):
        return (
            self.db.query(MovimientoKardex)
            .filter_by(referencia_tipo=referencia_tipo, referencia_id=referencia_id)
            .order_by(MovimientoKardex.id)
            .all()
        )


class PedidoRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, p: Pedido): self.db.add(p); return p
    def get(self, id: int): return self.db.get(Pedido, id)

    def get_for_update(self, id: int):
        return (
            self.db.query(Pedido)
            .filter(Pedido.id == id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def list(self, cliente_id: int | None = None, estados=None, offset: int = 0, limit: int | None = None):
        q = self.db.query(Pedido)
        if cliente_id:
            q = q.filter(Pedido.cliente_id == cliente_id)
        if estados:
            q = q.filter(Pedido.estado.in_([getattr(e, "value", e) for e in estados]))
        total = q.count()
        q = q.order_by(Pedido.fecha_pedido.desc(), Pedido.id.desc()).offset(offset)
        if limit:
            q = q.limit(limit)
        return q.all(), total


class VentaRepository:
    def __init__(self, db: Session): self.db = db
    def add(self, s: Sale): self.db.add(s); return s
    def get(self, id: int): return self.db.get(Sale, id)


class CorrelativoRepository:
    def __init__(self, db: Session): self.db = db

    def siguiente(self, serie: str) -> int:
        """Incremento atómico (UPDATE ... SET n = n + 1): la fila queda bloqueada hasta el commit."""
        actualizadas = (
            self.db.query(Correlativo)
            .filter(Correlativo.serie == serie)
            .update({Correlativo.ultimo_numero: Correlativo.ultimo_numero + 1}, synchronize_session=False)
        )
        if not actualizadas:
            self.db.add(Correlativo(serie=serie, ultimo_numero=1)); self.db.flush()
            return 1
        return self.db.query(Correlativo.ultimo_numero).filter(Correlativo.serie == serie).scalar()


class UserRepository:
    def __init__(self, db: Session): self.db = db
    def get(self, id: int): return self.db.get(User, id)
