"""
Formato de respuesta común de la API
====================================

Éxito: {"success": true, "data": ..., "message": ..., "pagination": ...}
Error: {"success": false, "code": ..., "message": ...} (ver main.py)
"""
import math
from typing import Any, Optional


def ok(data: Any = None, message: Optional[str] = None, pagination: Optional[dict] = None) -> dict:
    return {"success": True, "data": data, "message": message, "pagination": pagination}


def paginacion(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 1,
    }


def error(code: str, message: str) -> dict:
    return {"success": False, "code": code, "message": message}
