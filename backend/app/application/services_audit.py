"""
Auditoría de Acciones - Kardex y Pedidos
========================================
Registro inmutable de las acciones relevantes.
- Try-safe: no bloquea transacciones si falla auditoría
- Solo INSERT, prohibido UPDATE/DELETE
- Usa sesión separada para no afectar la transacción principal
- Los servicios encolan el evento en la UnitOfWork; se escribe después del commit
"""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from ..domain.models_audit import AuditLog

logger = logging.getLogger(__name__)

# Módulos estándar
MODULE_KARDEX = "KARDEX"
MODULE_AJUSTES = "AJUSTES"
MODULE_PEDIDOS = "PEDIDOS"
MODULE_VENTAS = "VENTAS"

# Acciones estándar
ACTION_CREATE = "CREATE"
ACTION_POST = "POST"
ACTION_APPROVE = "APPROVE"
ACTION_REJECT = "REJECT"
ACTION_UPDATE = "UPDATE"
ACTION_PAY = "PAY"
ACTION_SHIP = "SHIP"
ACTION_CANCEL = "CANCEL"
ACTION_ANULATE = "ANULATE"


def log_audit(
    db: Session,
    module: str,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    summary: Optional[str] = None,
    metadata_: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
    user_role: Optional[str] = None,
) -> None:
    """
    Registra un evento de auditoría. Inmutable.
    Try-safe: sesión separada (mismo engine que `db`), no afecta la transacción principal.
    """
    audit_db = None
    try:
        audit_db = Session(bind=db.get_bind())
        log = AuditLog(
            module=module,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            summary=summary,
            metadata_=metadata_,
            user_id=user_id,
            user_role=user_role,
        )
        audit_db.add(log)
        audit_db.commit()
    except Exception:
        if audit_db:
            audit_db.rollback()
        # No fallar la operación principal
        logger.warning(f"No se pudo registrar auditoría {module}/{action} {entity_type}:{entity_id}", exc_info=True)
    finally:
        if audit_db:
            audit_db.close()
