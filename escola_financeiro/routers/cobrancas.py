"""
Router: Detalhe da Cobrança
escola_financeiro/routers/cobrancas.py

Endpoints (uma mensalidade por vez):
    GET   /{id}                → Mensalidade + flags da tela
    PUT   /{id}/instrucoes     → Salvar Pix/Boleto manual (e publicar)
    POST  /{id}/publicacao     → Alternar publicado/rascunho
    POST  /{id}/gerar-cobranca → Gerar Pix/Boleto no Asaas
    POST  /{id}/baixa          → Baixa manual
    POST  /{id}/negociacao     → Desconto/acréscimo
    PATCH /{id}/datas          → Corrigir vencimento ou data de pagamento
    POST  /{id}/cancelamento   → Cancelar (local ou Asaas)

Operações com confirmação respondem 409 {confirmation_required: true, ...}
enquanto o corpo não trouxer confirmed=true.
"""

from fastapi import APIRouter, Depends

from escola_financeiro.dependencies import get_charge_service
from escola_financeiro.schemas import (
    ConfirmIn,
    DateEditIn,
    MarkPaidIn,
    NegotiationIn,
    PaymentInstructionsIn,
)
from escola_financeiro.services.cobranca_detalhe import ChargeDetailService

router = APIRouter(prefix="/api/cobrancas", tags=["cobrancas"])


@router.get("/{installment_id}")
async def obter_cobranca(
    installment_id: str,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return service.detalhe(installment_id)


@router.put("/{installment_id}/instrucoes")
async def salvar_instrucoes(
    installment_id: str,
    body: PaymentInstructionsIn,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return service.salvar_instrucoes(installment_id, body)


@router.post("/{installment_id}/publicacao")
async def alternar_publicacao(
    installment_id: str,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return service.alternar_publicacao(installment_id)


@router.post("/{installment_id}/gerar-cobranca")
async def gerar_cobranca(
    installment_id: str,
    body: ConfirmIn,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return await service.gerar_cobranca(installment_id, body.confirmed)


@router.post("/{installment_id}/baixa")
async def dar_baixa(
    installment_id: str,
    body: MarkPaidIn,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return service.dar_baixa(installment_id, body)


@router.post("/{installment_id}/negociacao")
async def negociar(
    installment_id: str,
    body: NegotiationIn,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return await service.negociar(installment_id, body)


@router.patch("/{installment_id}/datas")
async def editar_data(
    installment_id: str,
    body: DateEditIn,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return service.editar_data(installment_id, body)


@router.post("/{installment_id}/cancelamento")
async def cancelar(
    installment_id: str,
    body: ConfirmIn,
    service: ChargeDetailService = Depends(get_charge_service),
):
    return await service.cancelar(installment_id, body.confirmed)
