"""
Serviço: Webhook de status de pagamento (Asaas)
escola_financeiro/services/webhook_pagamento.py

O Asaas envia: { "event": "PAYMENT_RECEIVED", "payment": { "id", "paymentDate", "billingType" } }

Respostas:
  200 "Ignored: ..."        → payload fora do formato ou evento que não confirma pagamento
  200 "Installment not found" → id desconhecido (erro de dado nosso, não adianta reenviar)
  200 "Already paid"        → reentrega / replay, nenhuma alteração
  200 "Success"             → mensalidade marcada como paga
  500                       → falha interna; o Asaas reenviará
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from dateutil import parser as date_parser
from sqlalchemy.orm import Session

from escola_financeiro.config import TZ_BRASIL
from escola_financeiro.models import Installment, InstallmentStatus, PaymentMethod

logger = logging.getLogger(__name__)

EVENTOS_CONFIRMACAO = ("PAYMENT_RECEIVED", "PAYMENT_CONFIRMED")


def parse_payment_date(raw: Optional[str]) -> datetime:
    """paymentDate do Asaas (data local) ou agora, se ausente/ilegível."""
    if raw:
        try:
            parsed = date_parser.isoparse(raw)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=TZ_BRASIL)
            return parsed
        except (ValueError, OverflowError, TypeError):
            logger.warning(f"paymentDate ilegível: {raw!r}, usando data atual")
    return datetime.now(timezone.utc)


def map_billing_type(billing_type: Optional[str]) -> str:
    return PaymentMethod.PIX.value if billing_type == "PIX" else PaymentMethod.BOLETO.value


def processar_evento(db: Session, event: Any) -> Tuple[int, dict]:
    if not isinstance(event, dict) or not event.get("event") or not isinstance(event.get("payment"), dict):
        return 200, {"message": "Ignored: Invalid Payload"}

    if event["event"] not in EVENTOS_CONFIRMACAO:
        logger.info(f"Evento ignorado: {event['event']}")
        return 200, {"message": "Ignored: Not a confirmation event"}

    payment = event["payment"]
    asaas_id = payment.get("id")
    if not isinstance(asaas_id, str) or not isinstance(payment.get("paymentDate"), (str, type(None))):
        return 200, {"message": "Ignored: Invalid Payload"}

    billing_type = payment.get("billingType")

    logger.info(f"Processando pagamento {asaas_id} - Tipo: {billing_type}")

    inst = db.query(Installment).filter(
        Installment.gateway_integration_id == asaas_id
    ).first()

    if not inst:
        logger.error(f"Parcela não encontrada para este ID Asaas: {asaas_id}")
        return 200, {"message": "Installment not found"}

    if inst.status == InstallmentStatus.PAID.value:
        logger.info(f"Parcela {inst.id} já está paga.")
        return 200, {"message": "Already paid"}

    inst.status = InstallmentStatus.PAID.value
    inst.paid_at = parse_payment_date(payment.get("paymentDate"))
    inst.payment_method = map_billing_type(billing_type)
    db.commit()

    logger.info(f"Parcela {inst.id} atualizada para PAGO.")
    return 200, {"message": "Success"}
