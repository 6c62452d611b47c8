"""
Router: Recebíveis (mensalidades) e portal do responsável
escola_financeiro/routers/mensalidades.py

Endpoints:
    GET  /api/mensalidades                → Lista com filtros e totais
    GET  /api/mensalidades/resumo         → Indicadores do painel financeiro
    POST /api/mensalidades/acao-em-massa  → Publicar / ocultar / baixa em lote
    GET  /api/portal/mensalidades         → Mensalidades publicadas de uma matrícula
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from escola_financeiro.database import get_db
from escola_financeiro.schemas import BulkActionIn
from escola_financeiro.services.recebiveis import (
    acao_em_massa,
    listar_mensalidades,
    mensalidades_do_responsavel,
    resumo_financeiro,
)

router = APIRouter(prefix="/api/mensalidades", tags=["mensalidades"])
portal_router = APIRouter(prefix="/api/portal", tags=["portal"])


@router.get("")
async def listar(
    status: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return listar_mensalidades(db, status=status, year=year, month=month, search=search)


@router.get("/resumo")
async def resumo(db: Session = Depends(get_db)):
    return resumo_financeiro(db)


@router.post("/acao-em-massa")
async def acao_em_massa_endpoint(body: BulkActionIn, db: Session = Depends(get_db)):
    return acao_em_massa(db, body.ids, body.action, body.confirmed)


@portal_router.get("/mensalidades")
async def portal_mensalidades(
    enrollment_id: str = Query(...),
    db: Session = Depends(get_db),
):
    return mensalidades_do_responsavel(db, enrollment_id)
