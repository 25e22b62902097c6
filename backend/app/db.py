import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings


def build_engine(database_url: str, **kwargs):
    """Crea el engine; en SQLite permite compartir conexiones entre hilos."""
    if database_url.startswith("sqlite"):
        if database_url.startswith("sqlite:///./"):
            os.makedirs("./data", exist_ok=True)
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        kwargs["connect_args"] = connect_args
    return create_engine(database_url, echo=False, future=True, **kwargs)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def _import_all_models():
    """Importa todos los modelos para que Base.metadata los registre."""
    from .domain import models  # noqa: F401 - User
    from .domain import models_ext  # noqa: F401 - Product, Sale, SaleLine, Correlativo
    from .domain import models_inventario  # noqa: F401 - Almacen, Stock, TipoMovimiento, MovimientoKardex
    from .domain import models_pedidos  # noqa: F401 - Pedido, PedidoDetalle, PedidoActualizacion
    from .domain import models_audit  # noqa: F401 - AuditLog


def init_db(bind=None):
    """Crear tablas si no existen (arranque normal)."""
    _import_all_models()
    Base.metadata.create_all(bind=bind or engine)


def recreate_schema_from_models(bind=None):
    """Elimina todas las tablas y las recrea desde los modelos."""
    _import_all_models()
    Base.metadata.drop_all(bind=bind or engine)
    Base.metadata.create_all(bind=bind or engine)
