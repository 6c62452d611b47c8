import json
from decimal import Decimal

from tests.conftest import make_enrollment, make_installment

URL = "/functions/manage-payment"


def test_update_value(client, db_session, asaas, asaas_config):
    inst = make_installment(db_session, make_enrollment(db_session), gateway_integration_id="pay_5")

    r = client.post(URL, json={
        "action": "update_value",
        "installment_id": inst.id,
        "payload": {
            "newValue": 475,
            "discount_value": 25,
            "surcharge_value": 0,
            "negotiation_notes": "Pontualidade",
            "negotiation_type": "discount",
        },
    })
    assert r.status_code == 200
    assert r.json() == {"message": "Valor atualizado", "installment_id": inst.id}

    sent = json.loads(asaas.calls("POST", "/payments/pay_5")[0].content)
    assert sent == {"value": 475.0}

    db_session.expire_all()
    assert inst.value == Decimal("475.00")
    assert inst.original_value == Decimal("500.00")
    assert inst.discount_value == Decimal("25.00")
    assert inst.negotiation_notes == "Pontualidade"


def test_original_value_capturado_uma_vez(client, db_session, asaas, asaas_config):
    inst = make_installment(
        db_session, make_enrollment(db_session), gateway_integration_id="pay_5",
        value=Decimal("450.00"), original_value=Decimal("500.00"),
    )

    client.post(URL, json={
        "action": "update_value",
        "installment_id": inst.id,
        "payload": {"newValue": 520, "surcharge_value": 20, "negotiation_type": "surcharge"},
    })

    db_session.expire_all()
    assert inst.original_value == Decimal("500.00")
    assert inst.value == Decimal("520.00")


def test_cancel(client, db_session, asaas, asaas_config):
    inst = make_installment(
        db_session, make_enrollment(db_session), gateway_integration_id="pay_5", is_published=True,
    )

    r = client.post(URL, json={"action": "cancel", "installment_id": inst.id})
    assert r.status_code == 200
    assert r.json()["message"] == "Cobrança cancelada"
    assert len(asaas.calls("DELETE", "/payments/pay_5")) == 1

    db_session.expire_all()
    assert inst.status == "cancelled"
    assert inst.is_published is False


def test_sem_vinculo_com_gateway(client, db_session, asaas, asaas_config):
    inst = make_installment(db_session, make_enrollment(db_session))

    r = client.post(URL, json={"action": "cancel", "installment_id": inst.id})
    assert r.status_code == 400
    assert asaas.requests == []


def test_mensalidade_inexistente(client, db_session, asaas_config):
    r = client.post(URL, json={"action": "cancel", "installment_id": "nao-existe"})
    assert r.status_code == 404


def test_gateway_manual(client, db_session, asaas, manual_config):
    inst = make_installment(db_session, make_enrollment(db_session), gateway_integration_id="pay_5")

    r = client.post(URL, json={"action": "cancel", "installment_id": inst.id})
    assert r.status_code == 400
    assert asaas.requests == []


def test_update_value_sem_payload(client, db_session, asaas, asaas_config):
    inst = make_installment(db_session, make_enrollment(db_session), gateway_integration_id="pay_5")

    r = client.post(URL, json={"action": "update_value", "installment_id": inst.id})
    assert r.status_code == 400
    assert asaas.requests == []


def test_recusa_do_asaas_nao_grava(client, db_session, asaas, asaas_config):
    asaas.reject_updates = True
    inst = make_installment(db_session, make_enrollment(db_session), gateway_integration_id="pay_5")

    r = client.post(URL, json={
        "action": "update_value",
        "installment_id": inst.id,
        "payload": {"newValue": 100},
    })
    assert r.status_code == 502
    assert r.json() == {"error": "Erro ao atualizar valor no Asaas: Cobrança já recebida"}

    db_session.expire_all()
    assert inst.value == Decimal("500.00")
    assert inst.negotiation_date is None
