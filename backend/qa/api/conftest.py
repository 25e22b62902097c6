"""
Fixtures para tests de integración API.
Usa TestClient de FastAPI contra la app real, sobre la BD temporal de qa/conftest.py.
Los tokens se emiten directamente: el login es responsabilidad de otro servicio.
"""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.domain.enums import UserRole
from app.security.auth import create_access_token


@pytest.fixture(scope="session")
def client():
    """Cliente HTTP para tests de API sin autenticación."""
    return TestClient(app)


def _headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.username})}"}


@pytest.fixture
def headers_de():
    return _headers


@pytest.fixture
def headers_admin(admin):
    return _headers(admin)


@pytest.fixture
def headers_vendedor(vendedor):
    return _headers(vendedor)


@pytest.fixture
def headers_cliente(cliente):
    return _headers(cliente)


@pytest.fixture
def headers_contador(crear_usuario):
    return _headers(crear_usuario("contador_qa", UserRole.CONTADOR))
