"""
Serviço: Detalhe da Cobrança
escola_financeiro/services/cobranca_detalhe.py

Media todas as transições de UMA mensalidade:
  carregar, salvar instruções (e publicar), alternar publicação,
  gerar cobrança no Asaas, dar baixa manual, negociar valor,
  corrigir datas e cancelar.

Confirmações: operações consequentes exigem confirmed=True; sem isso
levantam ConfirmationRequired ANTES de qualquer escrita.

Toda operação que escreve devolve a mensalidade relida do banco.

Máquina de estados (status):
  pending → paid       (baixa manual ou webhook)
  pending → cancelled  (cancelamento)
  paid / cancelled são terminais. is_published só muda com status=pending.
"""

import logging
from datetime import datetime, time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from escola_financeiro.config import TZ_BRASIL
from escola_financeiro.models import Installment, InstallmentStatus
from escola_financeiro.schemas import (
    DateEditIn,
    GatewayConfig,
    InstallmentMetadata,
    ManagePaymentIn,
    MarkPaidIn,
    NegotiationIn,
    PaymentInstructionsIn,
    UpdateValuePayload,
)
from escola_financeiro.services.asaas_client import AsaasClient
from escola_financeiro.services.errors import (
    ConfirmationRequired,
    GatewayConfigError,
    InvalidStateError,
    ValidationError,
)
from escola_financeiro.services.gerenciar_pagamento import gerenciar_pagamento
from escola_financeiro.services.links_pagamento import (
    default_asaas_factory,
    gerar_cobranca_parcela,
)
from escola_financeiro.services.mensalidades import (
    get_installment,
    installment_to_dict,
    is_overdue,
    reload_installment,
)
from escola_financeiro.services.negociacao import (
    aplicar_negociacao,
    base_value,
    calcular_negociacao,
)

logger = logging.getLogger(__name__)


def _as_datetime(d) -> datetime:
    """Data escolhida na tela → meia-noite no horário de Brasília."""
    return datetime.combine(d, time.min, tzinfo=TZ_BRASIL)


class ChargeDetailService:

    def __init__(
        self,
        db: Session,
        gateway_config: Optional[GatewayConfig],
        asaas_factory: Callable[[GatewayConfig], AsaasClient] = default_asaas_factory,
    ):
        self.db = db
        self.gateway_config = gateway_config
        self.asaas_factory = asaas_factory

    # ── helpers ────────────────────────────────────────────

    @property
    def asaas_ativo(self) -> bool:
        return bool(self.gateway_config and self.gateway_config.is_asaas)

    def _gateway_linked(self, inst: Installment) -> bool:
        return self.asaas_ativo and bool(inst.gateway_integration_id)

    def _require_pending(self, inst: Installment, acao: str) -> None:
        if inst.status == InstallmentStatus.PAID.value:
            raise InvalidStateError(f"Cobrança já paga: não é possível {acao}.")
        if inst.status == InstallmentStatus.CANCELLED.value:
            raise InvalidStateError(f"Cobrança cancelada: não é possível {acao}.")

    # ── leitura ────────────────────────────────────────────

    def detalhe(self, installment_id: str) -> dict:
        inst = reload_installment(self.db, installment_id)
        is_paid = inst.status == InstallmentStatus.PAID.value
        is_pending = inst.status == InstallmentStatus.PENDING.value

        data = installment_to_dict(inst)
        data["gateway"] = {
            "provider": self.gateway_config.provider if self.gateway_config else None,
            "environment": self.gateway_config.environment if self.gateway_config else None,
        }
        data["flags"] = {
            "is_paid": is_paid,
            "is_overdue": is_overdue(inst),
            "has_gateway": bool(inst.billing_url),
            "can_negotiate": is_pending,
            "can_cancel": is_pending,
            "can_generate_gateway": is_pending and self.asaas_ativo and not inst.gateway_integration_id,
        }
        return data

    # ── instruções de pagamento / publicação ───────────────

    def salvar_instrucoes(self, installment_id: str, body: PaymentInstructionsIn) -> dict:
        inst = get_installment(self.db, installment_id)
        if body.publish:
            self._require_pending(inst, "publicar")

        instrucoes = InstallmentMetadata(
            pix_key=body.pix_key, boleto_code=body.boleto_code, boleto_url=body.boleto_url,
        )
        sem_metodo = not (instrucoes.has_payment_instructions() or inst.billing_url)
        if body.publish and sem_metodo and not body.confirmed:
            raise ConfirmationRequired(
                title="Método de Pagamento Ausente",
                message=(
                    "Você está liberando a cobrança sem nenhum método de pagamento "
                    "(Pix/Boleto, Link) configurado. O responsável verá a cobrança mas "
                    "não conseguirá pagar. Deseja continuar?"
                ),
                confirm_text="Liberar Mesmo Assim",
            )

        meta = dict(inst.meta or {})
        meta.update({
            "pix_key": body.pix_key or "",
            "boleto_code": body.boleto_code or "",
            "boleto_url": body.boleto_url or "",
        })
        inst.meta = meta
        if body.publish:
            inst.is_published = True
        self.db.commit()

        logger.info(f"Parcela {inst.id}: instruções salvas (publicar={body.publish})")
        data = self.detalhe(installment_id)
        data["mensagem"] = (
            "Cobrança salva e liberada para o responsável!" if body.publish
            else "Configurações salvas (Rascunho)"
        )
        return data

    def alternar_publicacao(self, installment_id: str) -> dict:
        inst = get_installment(self.db, installment_id)
        self._require_pending(inst, "alterar a publicação")

        inst.is_published = not inst.is_published
        self.db.commit()

        data = self.detalhe(installment_id)
        data["mensagem"] = "Cobrança publicada!" if data["is_published"] else "Cobrança ocultada (Rascunho)"
        return data

    # ── gateway ────────────────────────────────────────────

    async def gerar_cobranca(self, installment_id: str, confirmed: bool) -> dict:
        if not self.asaas_ativo or not self.gateway_config.api_key:
            raise GatewayConfigError("Gateway Asaas não configurado.")

        inst = get_installment(self.db, installment_id)
        self._require_pending(inst, "gerar cobrança")
        if inst.gateway_integration_id:
            raise InvalidStateError("Cobrança já gerada no Asaas.")

        if not confirmed:
            raise ConfirmationRequired(
                title="Gerar Cobrança (Asaas)",
                message=(
                    "Deseja gerar Pix e Boleto automaticamente para esta mensalidade? "
                    "O valor será registrado no Asaas."
                ),
                confirm_text="Gerar Agora",
            )

        try:
            await gerar_cobranca_parcela(self.db, inst, self.asaas_factory(self.gateway_config))
        except Exception:
            self.db.rollback()
            raise

        data = self.detalhe(installment_id)
        data["mensagem"] = "Cobrança gerada com sucesso via Asaas!"
        return data

    # ── baixa manual ───────────────────────────────────────

    def dar_baixa(self, installment_id: str, body: MarkPaidIn) -> dict:
        inst = get_installment(self.db, installment_id)
        self._require_pending(inst, "confirmar recebimento")

        if not body.confirmed:
            raise ConfirmationRequired(
                title="Confirmar Recebimento",
                message="Confirmar recebimento deste valor?",
                confirm_text="Confirmar Recebimento",
            )

        # TODO: cobrança viva no Asaas continua aberta após baixa manual; cancelar/baixar lá também
        meta = dict(inst.meta or {})
        meta["manual_obs"] = body.obs
        inst.status = InstallmentStatus.PAID.value
        inst.paid_at = _as_datetime(body.paid_at)
        inst.payment_method = body.payment_method
        inst.meta = meta
        self.db.commit()

        logger.info(f"Parcela {inst.id}: baixa manual ({body.payment_method})")
        data = self.detalhe(installment_id)
        data["mensagem"] = "Pagamento confirmado com sucesso!"
        return data

    # ── negociação ─────────────────────────────────────────

    async def negociar(self, installment_id: str, body: NegotiationIn) -> dict:
        inst = get_installment(self.db, installment_id)
        self._require_pending(inst, "negociar")

        resultado = calcular_negociacao(
            original=base_value(inst),
            tipo=body.type,
            modo=body.mode,
            valor=body.value,
            notas=body.notes,
        )

        if not body.confirmed:
            raise ConfirmationRequired(
                title="Confirmar Negociação",
                message="O valor da cobrança será alterado. Confirmar negociação?",
            )

        if self._gateway_linked(inst):
            await gerenciar_pagamento(
                self.db,
                ManagePaymentIn(
                    action="update_value",
                    installment_id=inst.id,
                    payload=UpdateValuePayload(
                        newValue=resultado.final_value,
                        discount_value=resultado.discount_value,
                        surcharge_value=resultado.surcharge_value,
                        negotiation_notes=resultado.notes,
                        negotiation_type=resultado.negotiation_type,
                    ),
                ),
                self.gateway_config,
                self.asaas_factory,
            )
        else:
            aplicar_negociacao(
                inst,
                final_value=resultado.final_value,
                discount_value=resultado.discount_value,
                surcharge_value=resultado.surcharge_value,
                negotiation_type=resultado.negotiation_type,
                notes=resultado.notes,
            )
            self.db.commit()

        logger.info(
            f"Parcela {inst.id}: negociação {resultado.negotiation_type} "
            f"{resultado.original_value} → {resultado.final_value}"
        )
        data = self.detalhe(installment_id)
        data["mensagem"] = "Negociação aplicada com sucesso!"
        return data

    # ── datas ──────────────────────────────────────────────

    def editar_data(self, installment_id: str, body: DateEditIn) -> dict:
        inst = get_installment(self.db, installment_id)

        if body.field == "paid_at":
            if inst.status != InstallmentStatus.PAID.value:
                raise ValidationError("Data de pagamento só pode ser alterada em cobranças pagas.")
            inst.paid_at = _as_datetime(body.value)
        else:
            inst.due_date = body.value
        self.db.commit()

        data = self.detalhe(installment_id)
        data["mensagem"] = "Data atualizada com sucesso!"
        return data

    # ── cancelamento ───────────────────────────────────────

    async def cancelar(self, installment_id: str, confirmed: bool) -> dict:
        inst = get_installment(self.db, installment_id)
        self._require_pending(inst, "cancelar")

        via_gateway = self._gateway_linked(inst)
        if not confirmed:
            raise ConfirmationRequired(
                title="Cancelar Cobrança",
                message="Tem certeza? Isso cancelará a cobrança no sistema" + (
                    " e no Asaas." if via_gateway else "."
                ),
                confirm_text="Sim, Cancelar",
            )

        if via_gateway:
            await gerenciar_pagamento(
                self.db,
                ManagePaymentIn(action="cancel", installment_id=inst.id),
                self.gateway_config,
                self.asaas_factory,
            )
        else:
            inst.status = InstallmentStatus.CANCELLED.value
            inst.is_published = False
            self.db.commit()

        logger.info(f"Parcela {inst.id}: cancelada (gateway={via_gateway})")
        data = self.detalhe(installment_id)
        data["mensagem"] = "Cobrança cancelada com sucesso."
        return data
