"""
Router: Funções de servidor (gateway e notificações)
escola_financeiro/routers/funcoes.py

Endpoints:
    POST /functions/send-payment-link      → Gera cobranças Asaas em lote
    POST /functions/webhook-payment-status → Webhook de pagamento do Asaas
    POST /functions/manage-payment         → Altera valor / cancela no Asaas
    POST /functions/send-whatsapp          → Envia notificação via Evolution API

send-payment-link e webhook leem o corpo cru: payloads fora do formato
são respondidos pela própria função (400 / "Ignored"), não com 422.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from escola_financeiro import config
from escola_financeiro.database import get_db
from escola_financeiro.dependencies import (
    get_asaas_factory,
    get_evolution_factory,
    get_gateway_config,
)
from escola_financeiro.schemas import GatewayConfig, ManagePaymentIn
from escola_financeiro.services.gerenciar_pagamento import gerenciar_pagamento
from escola_financeiro.services.links_pagamento import AsaasFactory, gerar_links_pagamento
from escola_financeiro.services.webhook_pagamento import processar_evento
from escola_financeiro.services.whatsapp import EvolutionFactory, enviar_notificacao

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])


async def _read_json(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


# ══════════════════════════════════════════════════════════
# ASAAS
# ══════════════════════════════════════════════════════════

@router.post("/send-payment-link")
async def send_payment_link(
    request: Request,
    db: Session = Depends(get_db),
    gateway_config: Optional[GatewayConfig] = Depends(get_gateway_config),
    asaas_factory: AsaasFactory = Depends(get_asaas_factory),
):
    body = await _read_json(request)
    ids = body.get("installment_ids") if isinstance(body, dict) else None
    return await gerar_links_pagamento(db, ids, gateway_config, asaas_factory)


@router.post("/webhook-payment-status")
async def webhook_payment_status(request: Request, db: Session = Depends(get_db)):
    if config.ASAAS_WEBHOOK_TOKEN:
        token = request.headers.get("asaas-access-token")
        if token != config.ASAAS_WEBHOOK_TOKEN:
            logger.warning("Webhook com token inválido recusado")
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

    event = await _read_json(request)
    try:
        status_code, body = processar_evento(db, event)
    except Exception as e:
        db.rollback()
        logger.error(f"Erro no webhook: {e}", exc_info=True)
        return JSONResponse({"error": str(e)}, status_code=500)
    return JSONResponse(body, status_code=status_code)


@router.post("/manage-payment")
async def manage_payment(
    body: ManagePaymentIn,
    db: Session = Depends(get_db),
    gateway_config: Optional[GatewayConfig] = Depends(get_gateway_config),
    asaas_factory: AsaasFactory = Depends(get_asaas_factory),
):
    return await gerenciar_pagamento(db, body, gateway_config, asaas_factory)


# ══════════════════════════════════════════════════════════
# WHATSAPP
# ══════════════════════════════════════════════════════════

@router.post("/send-whatsapp")
async def send_whatsapp(
    request: Request,
    db: Session = Depends(get_db),
    evolution_factory: EvolutionFactory = Depends(get_evolution_factory),
):
    payload = await _read_json(request)
    status_code, body = await enviar_notificacao(db, payload, evolution_factory)
    return JSONResponse(body, status_code=status_code)
