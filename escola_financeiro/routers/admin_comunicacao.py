"""
Router: Configuração de Comunicação (admin)
===========================================
GET  /api/admin/comunicacao/whatsapp       → Configuração atual (apikey mascarada)
PUT  /api/admin/comunicacao/whatsapp       → Atualização parcial da configuração
POST /api/admin/comunicacao/whatsapp/teste → Cria notificação de teste e dispara o envio

Um PUT com apikey vazia mantém a chave já gravada; enabled_channels é
mesclado canal a canal.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from escola_financeiro.database import get_db
from escola_financeiro.dependencies import get_evolution_factory
from escola_financeiro.schemas import WhatsAppConfig, WhatsAppConfigIn, WhatsAppTestIn
from escola_financeiro.services.gateway_config import mask_api_key
from escola_financeiro.services.whatsapp import (
    EvolutionFactory,
    enviar_teste,
    ler_configuracao,
    salvar_configuracao,
)

router = APIRouter(prefix="/api/admin/comunicacao", tags=["admin-comunicacao"])


def _public_view(cfg: WhatsAppConfig) -> dict:
    return {
        "url": cfg.url,
        "apikey": mask_api_key(cfg.apikey or ""),
        "has_apikey": bool(cfg.apikey),
        "instance": cfg.instance,
        "enabled_channels": cfg.enabled_channels,
    }


@router.get("/whatsapp")
async def obter_whatsapp(db: Session = Depends(get_db)):
    return _public_view(ler_configuracao(db))


@router.put("/whatsapp")
async def salvar_whatsapp(body: WhatsAppConfigIn, db: Session = Depends(get_db)):
    cfg = salvar_configuracao(db, body)
    return {"success": True, "config": _public_view(cfg)}


@router.post("/whatsapp/teste")
async def testar_whatsapp(
    body: WhatsAppTestIn,
    db: Session = Depends(get_db),
    evolution_factory: EvolutionFactory = Depends(get_evolution_factory),
):
    status_code, result = await enviar_teste(db, body, evolution_factory)
    return JSONResponse(result, status_code=status_code)
