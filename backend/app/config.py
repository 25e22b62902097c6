from decimal import Decimal
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator
import secrets

BASE_DIR = Path(__file__).resolve().parent.parent  # backend/

class Settings(BaseSettings):
    # ===== ENTORNO =====
    environment: str = Field(default="development", env="ENVIRONMENT")
    debug: bool = Field(default=False, env="DEBUG")

    # ===== DATABASE =====
    database_url: str = Field(default="sqlite:///./data/kardex.db", env="DATABASE_URL")

    # ===== SECURITY =====
    secret_key: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        env="SECRET_KEY"
    )
    access_token_expire_minutes: int = Field(default=120, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    # ===== CORS =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        env="ALLOWED_ORIGINS"
    )

    # ===== PEDIDOS / VENTAS =====
    igv_rate: Decimal = Field(default=Decimal("0.18"), env="IGV_RATE")
    almacen_despacho_codigo: str = Field(default="PRINCIPAL", env="ALMACEN_DESPACHO_CODIGO")

    # ===== KARDEX =====
    # Segundos de espera por el bloqueo de un saldo (producto, almacén)
    stock_lock_timeout_seconds: float = Field(default=10.0, env="STOCK_LOCK_TIMEOUT_SECONDS")

    # ===== LOGS =====
    log_dir: str = Field(default="logs", env="LOG_DIR")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @model_validator(mode="after")
    def validate_secret_key(self):
        if self.environment == "production" and len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY debe tener al menos 32 caracteres en producción.")
        return self

    @model_validator(mode="after")
    def validate_igv_rate(self):
        if self.igv_rate < 0 or self.igv_rate >= 1:
            raise ValueError("IGV_RATE debe estar entre 0 y 1 (ej: 0.18).")
        return self

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
