from datetime import datetime
from sqlalchemy import Integer, String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from ..db import Base
from .enums import UserRole, ROLES_PERSONAL


class User(Base):
    """
    Usuario autenticado (personal o cliente del portal).
    El core solo confía en el principal ya autenticado; no valida credenciales.
    """
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(30), default=UserRole.VENDEDOR.value)
    nombre: Mapped[str | None] = mapped_column(String(100), nullable=True)
    apellido: Mapped[str | None] = mapped_column(String(100), nullable=True)
    correo: Mapped[str | None] = mapped_column(String(255), nullable=True)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    @property
    def rol(self) -> UserRole:
        return UserRole(self.role)

    @property
    def es_personal(self) -> bool:
        return self.rol in ROLES_PERSONAL

    @property
    def es_cliente(self) -> bool:
        return self.rol == UserRole.CLIENTE

    def tiene_rol(self, roles) -> bool:
        return self.rol in roles
