"""
Router: Configuração do Gateway (admin)
=======================================
GET  /api/admin/financeiro/gateway → Configuração atual (API key mascarada)
PUT  /api/admin/financeiro/gateway → Grava a configuração

Um PUT com api_key vazia mantém a chave já gravada.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from escola_financeiro.config import GATEWAY_CONFIG_KEY
from escola_financeiro.database import get_db
from escola_financeiro.schemas import GatewayConfig, GatewayConfigIn
from escola_financeiro.services.errors import ValidationError
from escola_financeiro.services.gateway_config import (
    DatabaseGatewayConfigProvider,
    mask_api_key,
    write_setting,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/financeiro", tags=["admin-financeiro"])


def _public_view(cfg: GatewayConfig) -> dict:
    return {
        "provider": cfg.provider,
        "environment": cfg.environment,
        "api_key": mask_api_key(cfg.api_key),
        "has_api_key": bool(cfg.api_key),
        "wallet_id": cfg.wallet_id,
    }


@router.get("/gateway")
async def obter_gateway(db: Session = Depends(get_db)):
    cfg = DatabaseGatewayConfigProvider(db).get() or GatewayConfig()
    return _public_view(cfg)


@router.put("/gateway")
async def salvar_gateway(body: GatewayConfigIn, db: Session = Depends(get_db)):
    atual = DatabaseGatewayConfigProvider(db).get()
    api_key = body.api_key or (atual.api_key if atual else "")

    if body.provider == "asaas" and not api_key:
        raise ValidationError("API Key obrigatória para o provedor Asaas.")

    cfg = GatewayConfig(
        provider=body.provider,
        environment=body.environment,
        api_key=api_key,
        wallet_id=body.wallet_id,
    )
    write_setting(db, GATEWAY_CONFIG_KEY, cfg.model_dump())
    logger.info(f"Gateway financeiro atualizado: {cfg.provider} ({cfg.environment})")

    return {"success": True, "config": _public_view(cfg)}
