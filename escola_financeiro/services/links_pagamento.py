"""
Serviço: Geração de cobranças no gateway (send-payment-link)
escola_financeiro/services/links_pagamento.py

Para um lote de mensalidades, garante que cada uma tenha uma cobrança
hospedada no Asaas:
  1. Resolve pagador (nome, CPF, e-mail) a partir da matrícula
  2. Busca/cria o cliente no Asaas pelo CPF
  3. Cria a cobrança BOLETO (Boleto + Pix) com externalReference = id
  4. Grava gateway_integration_id, billing_url, payment_method=boleto
     e publica a mensalidade

Cada mensalidade é processada e gravada de forma independente:
a falha de uma não interrompe o lote. Erros de configuração abortam
o lote inteiro antes de qualquer chamada.
"""

import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from escola_financeiro.models import Installment, InstallmentStatus, PaymentMethod
from escola_financeiro.schemas import GatewayConfig
from escola_financeiro.services.asaas_client import AsaasClient
from escola_financeiro.services.errors import (
    CobrancaError,
    GatewayError,
    InvalidStateError,
    ValidationError,
)
from escola_financeiro.services.gateway_config import require_asaas
from escola_financeiro.services.resolvers import resolve_payer

logger = logging.getLogger(__name__)

AsaasFactory = Callable[[GatewayConfig], AsaasClient]


def default_asaas_factory(config: GatewayConfig) -> AsaasClient:
    return AsaasClient(config)


async def gerar_cobranca_parcela(db: Session, inst: Installment, asaas: AsaasClient) -> str:
    """
    Gera a cobrança de UMA mensalidade e grava o vínculo.
    Devolve o id da cobrança no Asaas. Lança CobrancaError em falha.
    """
    if inst.status != InstallmentStatus.PENDING.value:
        raise InvalidStateError(f"Mensalidade com status '{inst.status}' não pode gerar cobrança.")

    if inst.gateway_integration_id:
        logger.info(f"Parcela {inst.id} já vinculada ao Asaas ({inst.gateway_integration_id})")
        return inst.gateway_integration_id

    enrollment = inst.enrollment
    payer = resolve_payer(enrollment)
    if not payer.cpf:
        raise ValidationError(f"CPF do responsável não encontrado para {enrollment.candidate_name}")

    customer_id = await asaas.get_or_create_customer(payer.name, payer.cpf, payer.email)

    payment = await asaas.create_payment(
        customer_id=customer_id,
        value=inst.value,
        due_date=inst.due_date,
        description=f"Mensalidade {inst.installment_number} - {enrollment.candidate_name}",
        external_reference=inst.id,
    )
    asaas_id = payment.get("id")
    if not asaas_id:
        raise GatewayError("Erro Asaas: resposta sem id da cobrança")

    inst.gateway_integration_id = asaas_id
    inst.billing_url = payment.get("bankSlipUrl") or payment.get("invoiceUrl")
    inst.payment_method = PaymentMethod.BOLETO.value
    inst.is_published = True
    db.commit()

    logger.info(f"Parcela {inst.id} → cobrança Asaas {asaas_id}")
    return asaas_id


async def gerar_links_pagamento(
    db: Session,
    installment_ids: List[str],
    config: Optional[GatewayConfig],
    asaas_factory: AsaasFactory = default_asaas_factory,
) -> Dict:
    """
    Processa o lote em ordem. Retorna:
        {"processed": N, "details": [{id, status, asaas_id?, message?}, ...]}
    com um item por id recebido.
    """
    if not installment_ids or not isinstance(installment_ids, list):
        raise ValidationError("Nenhuma mensalidade selecionada.")

    config = require_asaas(config)
    asaas = asaas_factory(config)

    logger.info(f"Iniciando geração para {len(installment_ids)} parcelas...")

    encontrados = {
        inst.id: inst
        for inst in db.query(Installment)
        .options(joinedload(Installment.enrollment))
        .filter(Installment.id.in_(installment_ids))
        .all()
    }

    results = []
    for inst_id in installment_ids:
        inst = encontrados.get(inst_id)
        if inst is None:
            results.append({"id": inst_id, "status": "error", "message": "Mensalidade não encontrada"})
            continue

        try:
            asaas_id = await gerar_cobranca_parcela(db, inst, asaas)
            results.append({"id": inst_id, "status": "success", "asaas_id": asaas_id})
        except CobrancaError as e:
            db.rollback()
            logger.warning(f"Falha parcela {inst_id}: {e.message}")
            results.append({"id": inst_id, "status": "error", "message": e.message})
        except Exception as e:
            db.rollback()
            logger.error(f"Falha parcela {inst_id}: {e}", exc_info=True)
            results.append({"id": inst_id, "status": "error", "message": str(e)})

    return {"processed": len(results), "details": results}
