from datetime import date, datetime, timedelta
from decimal import Decimal

from escola_financeiro.services.mensalidades import today_br
from escola_financeiro.services.recebiveis import resumo_financeiro
from tests.conftest import make_enrollment, make_installment, make_student

URL = "/api/mensalidades"


def _carteira(db):
    ana = make_enrollment(db, candidate_name="Ana Souza")
    bruno = make_enrollment(db, candidate_name="Bruno Lima")
    return {
        "vencida": make_installment(db, ana, due_date=date(2020, 2, 10), value=Decimal("100.00")),
        "paga": make_installment(
            db, ana, due_date=date(2020, 3, 10), value=Decimal("200.00"),
            status="paid", paid_at=datetime(2020, 3, 9, 12, 0), is_published=True,
        ),
        "futura": make_installment(
            db, bruno, due_date=date(2099, 3, 10), value=Decimal("300.00"), is_published=True,
        ),
        "cancelada": make_installment(
            db, bruno, due_date=date(2099, 4, 10), value=Decimal("50.00"), status="cancelled",
        ),
    }


def test_listagem_com_totais(client, db_session):
    _carteira(db_session)

    body = client.get(URL).json()
    assert body["total"] == 4
    assert [m["due_date"] for m in body["mensalidades"]] == [
        "2020-02-10", "2020-03-10", "2099-03-10", "2099-04-10",
    ]
    assert body["totais"] == {"total": 650.0, "received": 200.0, "overdue": 100.0, "pending": 300.0}


def test_filtros(client, db_session):
    _carteira(db_session)

    assert client.get(URL, params={"status": "paid"}).json()["total"] == 1
    assert client.get(URL, params={"year": 2099}).json()["total"] == 2
    assert client.get(URL, params={"year": 2020, "month": 2}).json()["totais"]["overdue"] == 100.0
    assert client.get(URL, params={"search": "bruno"}).json()["total"] == 2


def test_busca_trata_curingas_como_texto(client, db_session):
    make_installment(db_session, make_enrollment(db_session, candidate_name="Turma 50% bolsa"))
    make_installment(db_session, make_enrollment(db_session, candidate_name="Turma 500"))
    make_installment(db_session, make_enrollment(db_session, candidate_name="Ana_Clara"))
    make_installment(db_session, make_enrollment(db_session, candidate_name="AnaXClara"))

    body = client.get(URL, params={"search": "50%"}).json()
    assert [m["enrollment"]["candidate_name"] for m in body["mensalidades"]] == ["Turma 50% bolsa"]

    body = client.get(URL, params={"search": "ana_"}).json()
    assert [m["enrollment"]["candidate_name"] for m in body["mensalidades"]] == ["Ana_Clara"]


def test_filtro_mes_sem_ano(client, db_session):
    r = client.get(URL, params={"month": 3})
    assert r.status_code == 400

    r = client.get(URL, params={"year": 2026, "month": 13})
    assert r.status_code == 400


# ── resumo financeiro ──────────────────────────────────────

def test_resumo_financeiro(client, db_session):
    hoje = today_br()
    ana = make_enrollment(db_session, candidate_name="Ana Souza", student=make_student(db_session, name="Ana S. Souza"))
    bruno = make_enrollment(db_session, candidate_name="Bruno Lima")

    make_installment(db_session, ana, due_date=hoje - timedelta(days=3), value=Decimal("100.00"))
    make_installment(
        db_session, ana, due_date=hoje - timedelta(days=20), value=Decimal("180.00"),
        status="paid", paid_at=datetime(2020, 1, 1), discount_value=Decimal("20.00"),
    )
    make_installment(db_session, bruno, due_date=hoje + timedelta(days=8), value=Decimal("300.00"))
    make_installment(
        db_session, bruno, due_date=hoje + timedelta(days=2), value=Decimal("55.00"),
        surcharge_value=Decimal("5.00"),
    )
    make_installment(db_session, ana, due_date=hoje, value=Decimal("400.00"))
    make_installment(db_session, bruno, due_date=hoje + timedelta(days=1), value=Decimal("70.00"), status="cancelled")

    r = client.get(f"{URL}/resumo")
    assert r.status_code == 200
    body = r.json()
    assert body["expected_revenue"] == 1105.0
    assert body["collected_revenue"] == 180.0
    assert body["overdue_amount"] == 100.0
    assert body["overdue_count"] == 1
    assert body["total_discounts"] == 20.0
    assert body["total_surcharges"] == 5.0
    assert [(u["due_date"], u["student_name"]) for u in body["upcoming"]] == [
        (hoje.isoformat(), "Ana S. Souza"),
        ((hoje + timedelta(days=2)).isoformat(), "Bruno Lima"),
    ]


def test_resumo_limita_proximos_vencimentos(db_session):
    enrollment = make_enrollment(db_session)
    hoje = date(2026, 3, 1)
    for dia in range(7, -1, -1):
        make_installment(db_session, enrollment, installment_number=dia + 1, due_date=hoje + timedelta(days=dia))

    upcoming = resumo_financeiro(db_session, hoje=hoje)["upcoming"]
    assert [u["installment_number"] for u in upcoming] == [1, 2, 3, 4, 5]


def test_resumo_sem_mensalidades(client, db_session):
    body = client.get(f"{URL}/resumo").json()
    assert body["expected_revenue"] == 0.0
    assert body["overdue_count"] == 0
    assert body["upcoming"] == []


# ── ações em massa ─────────────────────────────────────────

def test_acao_em_massa_exige_confirmacao(client, db_session):
    carteira = _carteira(db_session)

    r = client.post(f"{URL}/acao-em-massa", json={"ids": [carteira["vencida"].id], "action": "publish"})
    assert r.status_code == 409
    assert r.json()["title"] == "Ação em Massa"

    db_session.expire_all()
    assert carteira["vencida"].is_published is False


def test_baixa_em_massa_so_em_pendentes(client, db_session):
    carteira = _carteira(db_session)
    ids = [carteira["vencida"].id, carteira["paga"].id, carteira["cancelada"].id, "fantasma"]

    r = client.post(f"{URL}/acao-em-massa", json={"ids": ids, "action": "mark_paid", "confirmed": True})
    assert r.status_code == 200
    body = r.json()
    assert body["aplicadas"] == [carteira["vencida"].id]
    assert sorted(body["ignoradas"]) == sorted([carteira["paga"].id, carteira["cancelada"].id])
    assert body["nao_encontradas"] == ["fantasma"]

    db_session.expire_all()
    assert carteira["vencida"].status == "paid"
    assert carteira["vencida"].paid_at is not None
    assert carteira["vencida"].payment_method == "bulk_manual"
    assert carteira["cancelada"].status == "cancelled"
    assert carteira["cancelada"].paid_at is None
    assert carteira["paga"].paid_at == datetime(2020, 3, 9, 12, 0)


def test_publicar_e_ocultar_em_massa(client, db_session):
    carteira = _carteira(db_session)
    ids = [carteira["vencida"].id, carteira["futura"].id]

    client.post(f"{URL}/acao-em-massa", json={"ids": ids, "action": "publish", "confirmed": True})
    db_session.expire_all()
    assert carteira["vencida"].is_published is True

    client.post(f"{URL}/acao-em-massa", json={"ids": ids, "action": "hide", "confirmed": True})
    db_session.expire_all()
    assert carteira["vencida"].is_published is False
    assert carteira["futura"].is_published is False


def test_acao_em_massa_sem_ids(client, db_session):
    r = client.post(f"{URL}/acao-em-massa", json={"ids": [], "action": "publish", "confirmed": True})
    assert r.status_code == 400


# ── portal do responsável ──────────────────────────────────

def test_portal_so_publicadas(client, db_session):
    enrollment = make_enrollment(db_session)
    proxima = make_installment(
        db_session, enrollment, installment_number=3, due_date=date(2099, 5, 10), is_published=True,
        meta={"pix_key": "financeiro@escola.com.br"},
    )
    mais_proxima = make_installment(
        db_session, enrollment, installment_number=2, due_date=date(2099, 4, 10), is_published=True,
    )
    make_installment(db_session, enrollment, installment_number=4, due_date=date(2099, 6, 10))
    antiga = make_installment(
        db_session, enrollment, installment_number=0, due_date=date(2020, 1, 10),
        status="paid", paid_at=datetime(2020, 1, 9, 9, 0), is_published=True,
    )
    recente = make_installment(
        db_session, enrollment, installment_number=1, due_date=date(2020, 2, 10),
        status="cancelled", is_published=True,
    )

    r = client.get("/api/portal/mensalidades", params={"enrollment_id": enrollment.id})
    assert r.status_code == 200
    body = r.json()
    assert [m["id"] for m in body["open"]] == [mais_proxima.id, proxima.id]
    assert [m["id"] for m in body["history"]] == [recente.id, antiga.id]
    assert body["open"][1]["pix_key"] == "financeiro@escola.com.br"
    assert body["open"][0]["pix_key"] is None


def test_portal_marca_vencidas(client, db_session):
    enrollment = make_enrollment(db_session)
    make_installment(db_session, enrollment, due_date=date(2020, 1, 10), is_published=True)

    body = client.get("/api/portal/mensalidades", params={"enrollment_id": enrollment.id}).json()
    assert body["open"][0]["status"] == "overdue"
