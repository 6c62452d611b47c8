import json
import os
from datetime import date
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ASAAS_WEBHOOK_TOKEN"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from escola_financeiro import models
from escola_financeiro.config import GATEWAY_CONFIG_KEY, WHATSAPP_CONFIG_KEY
from escola_financeiro.database import Base, get_db
from escola_financeiro.dependencies import get_asaas_factory, get_evolution_factory
from escola_financeiro.main import app
from escola_financeiro.services.asaas_client import AsaasClient
from escola_financeiro.services.gateway_config import write_setting
from escola_financeiro.services.whatsapp import EvolutionClient

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ══════════════════════════════════════════════════════════
# FAKES HTTP (Asaas / Evolution)
# ══════════════════════════════════════════════════════════

class AsaasFake:
    """Simula a API do Asaas e registra cada requisição recebida."""

    def __init__(self):
        self.requests = []
        self.existing_customer = None
        self.failing_references = set()
        self.reject_updates = False
        self.reject_cancel = False
        self._payments = 0

    def calls(self, method, suffix=None):
        return [
            r for r in self.requests
            if r.method == method and (suffix is None or r.url.path.endswith(suffix))
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path.endswith("/customers") and request.method == "GET":
            found = [{"id": self.existing_customer}] if self.existing_customer else []
            return httpx.Response(200, json={"data": found})

        if path.endswith("/customers") and request.method == "POST":
            return httpx.Response(200, json={"id": "cus_novo"})

        if path.endswith("/payments") and request.method == "POST":
            if body.get("externalReference") in self.failing_references:
                return httpx.Response(400, json={"errors": [{"description": "Cliente inválido"}]})
            self._payments += 1
            n = self._payments
            return httpx.Response(200, json={
                "id": f"pay_{n}",
                "bankSlipUrl": f"https://asaas.test/boleto/{n}",
                "invoiceUrl": f"https://asaas.test/i/{n}",
            })

        if "/payments/" in path and request.method == "POST":
            if self.reject_updates:
                return httpx.Response(400, json={"errors": [{"description": "Cobrança já recebida"}]})
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1], "value": body.get("value")})

        if "/payments/" in path and request.method == "DELETE":
            if self.reject_cancel:
                return httpx.Response(400, json={"errors": [{"description": "Não pode ser removida"}]})
            return httpx.Response(200, json={"deleted": True, "id": path.rsplit("/", 1)[-1]})

        return httpx.Response(404, json={"errors": [{"description": "rota desconhecida"}]})


class EvolutionFake:
    def __init__(self):
        self.requests = []
        self.status_code = 201
        self.response = {"key": {"id": "MSG123"}}
        self.fail_connection = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_connection:
            raise httpx.ConnectError("conexão recusada", request=request)
        return httpx.Response(self.status_code, json=self.response)


# ══════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def asaas():
    return AsaasFake()


@pytest.fixture
def evolution():
    return EvolutionFake()


@pytest.fixture
def client(db_session, asaas, evolution):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_asaas_factory] = lambda: (
        lambda config: AsaasClient(config, transport=httpx.MockTransport(asaas.handler))
    )
    app.dependency_overrides[get_evolution_factory] = lambda: (
        lambda config: EvolutionClient(config, transport=httpx.MockTransport(evolution.handler))
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def asaas_config(db_session):
    config = {"provider": "asaas", "environment": "sandbox", "api_key": "$aact_teste_1234"}
    write_setting(db_session, GATEWAY_CONFIG_KEY, config)
    return config


@pytest.fixture
def manual_config(db_session):
    config = {"provider": "manual", "environment": "sandbox", "api_key": ""}
    write_setting(db_session, GATEWAY_CONFIG_KEY, config)
    return config


@pytest.fixture
def whatsapp_config(db_session):
    config = {
        "url": "https://evolution.test",
        "apikey": "evo-key",
        "instance": "escola",
        "enabled_channels": {"diary": True, "financial": False},
    }
    write_setting(db_session, WHATSAPP_CONFIG_KEY, config)
    return config


# ══════════════════════════════════════════════════════════
# FÁBRICAS DE DADOS
# ══════════════════════════════════════════════════════════

def make_enrollment(db, candidate_name="Ana Souza", details=None, student=None):
    if details is None:
        details = {
            "parent_name": "Carlos Souza",
            "parent_cpf": "123.456.789-09",
            "parent_email": "carlos@example.com",
        }
    enrollment = models.Enrollment(
        candidate_name=candidate_name,
        academic_year=2026,
        details=details,
        student_id=student.id if student else None,
    )
    db.add(enrollment)
    db.commit()
    return enrollment


def make_installment(db, enrollment, **kwargs):
    fields = {
        "installment_number": 1,
        "due_date": date(2026, 3, 10),
        "value": Decimal("500.00"),
        "status": "pending",
        "is_published": False,
    }
    fields.update(kwargs)
    inst = models.Installment(enrollment_id=enrollment.id, **fields)
    db.add(inst)
    db.commit()
    return inst


def make_student(db, name="Ana Souza", financial_responsible=None):
    student = models.Student(name=name, financial_responsible=financial_responsible or {})
    db.add(student)
    db.commit()
    return student
