"""
Serviço: Ações sobre cobranças já vinculadas ao gateway (manage-payment)
escola_financeiro/services/gerenciar_pagamento.py

  update_value → altera o valor no Asaas e grava a negociação localmente
  cancel       → cancela no Asaas e marca a mensalidade como cancelada

O Asaas é chamado antes da escrita local: se ele recusar, nada muda aqui.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from escola_financeiro.models import Installment, InstallmentStatus
from escola_financeiro.schemas import GatewayConfig, ManagePaymentIn, UpdateValuePayload
from escola_financeiro.services.asaas_client import AsaasClient
from escola_financeiro.services.errors import InvalidStateError, ValidationError
from escola_financeiro.services.gateway_config import require_asaas
from escola_financeiro.services.mensalidades import get_installment
from escola_financeiro.services.negociacao import aplicar_negociacao, to_money

logger = logging.getLogger(__name__)


async def atualizar_valor(
    db: Session, inst: Installment, payload: UpdateValuePayload, asaas: AsaasClient
) -> None:
    new_value = to_money(payload.newValue)
    if new_value < 0:
        raise ValidationError("O novo valor não pode ser negativo.")

    await asaas.update_payment_value(inst.gateway_integration_id, new_value)

    aplicar_negociacao(
        inst,
        final_value=new_value,
        discount_value=payload.discount_value,
        surcharge_value=payload.surcharge_value,
        negotiation_type=payload.negotiation_type,
        notes=payload.negotiation_notes,
    )
    db.commit()
    logger.info(f"Parcela {inst.id}: valor atualizado no Asaas para {new_value}")


async def cancelar(db: Session, inst: Installment, asaas: AsaasClient) -> None:
    await asaas.cancel_payment(inst.gateway_integration_id)

    inst.status = InstallmentStatus.CANCELLED.value
    inst.is_published = False
    db.commit()
    logger.info(f"Parcela {inst.id}: cobrança {inst.gateway_integration_id} cancelada no Asaas")


async def gerenciar_pagamento(
    db: Session,
    request: ManagePaymentIn,
    config: Optional[GatewayConfig],
    asaas_factory: Callable[[GatewayConfig], AsaasClient],
) -> dict:
    config = require_asaas(config)

    inst = get_installment(db, request.installment_id, with_student=False)
    if not inst.gateway_integration_id:
        raise ValidationError("Mensalidade sem cobrança no Asaas.")
    if inst.status != InstallmentStatus.PENDING.value:
        raise InvalidStateError(f"Mensalidade com status '{inst.status}' não pode ser alterada.")

    asaas = asaas_factory(config)

    if request.action == "update_value":
        if request.payload is None:
            raise ValidationError("Payload obrigatório para update_value.")
        await atualizar_valor(db, inst, request.payload, asaas)
        return {"message": "Valor atualizado", "installment_id": inst.id}

    await cancelar(db, inst, asaas)
    return {"message": "Cobrança cancelada", "installment_id": inst.id}
