import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from .db import init_db, SessionLocal
from .api.routers import health, inventarios, kardex, ajustes_inventario, pedidos
from .api.respuestas import error
from .application.errors import InventarioError
from .application.seed_demo import seed_catalogo_base
from .infrastructure.logging_config import setup_logging
from .config import settings as app_settings

# Configurar logging al iniciar la aplicación
setup_logging(app_settings.log_dir)
logger = logging.getLogger(__name__)

# Inicializar BD y catálogo base (no fallar si la conexión no está configurada - primer arranque)
try:
    init_db()
    db = SessionLocal()
    try:
        seed_catalogo_base(db)
        db.commit()
    finally:
        db.close()
except Exception as e:
    logger.warning("No se pudo inicializar la base de datos: %s. Puede requerir configuración inicial.", e)

app = FastAPI(
    title="Kardex y Pedidos",
    version="0.1.0",
    description="Kardex valorizado (costo promedio ponderado) y flujo de pedidos de clientes",
    docs_url="/docs" if app_settings.environment != "production" else None,
    redoc_url="/redoc" if app_settings.environment != "production" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)

# Middleware para agregar headers de seguridad HTTP
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if app_settings.environment == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response

# ===== Errores: {"success": false, "code": ..., "message": ...} =====

_CODIGOS_HTTP = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}

@app.exception_handler(InventarioError)
async def inventario_error_handler(request: Request, exc: InventarioError):
    logger.info(f"{request.method} {request.url.path} -> {exc.codigo}: {exc.mensaje}")
    return JSONResponse(status_code=exc.status_http, content=error(exc.codigo, exc.mensaje))

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    codigo = _CODIGOS_HTTP.get(exc.status_code, f"HTTP_{exc.status_code}")
    return JSONResponse(status_code=exc.status_code, content=error(codigo, str(exc.detail)), headers=exc.headers)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    detalle = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', []))}: {e.get('msg')}" for e in exc.errors()
    )
    return JSONResponse(status_code=422, content=error("VALIDATION_ERROR", detalle))

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Error inesperado en {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content=error("INTERNAL_ERROR", "Error interno del servidor"))

app.include_router(health.router)
app.include_router(inventarios.router)
app.include_router(kardex.router)
app.include_router(ajustes_inventario.router)
app.include_router(pedidos.router)
