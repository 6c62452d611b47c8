"""
Schemas (pydantic)
escola_financeiro/schemas.py

Registros tipados para os campos JSON livres (metadata da mensalidade,
details da matrícula, configurações) e payloads de entrada da API.
Chaves desconhecidas são preservadas (extra="allow").
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════
# REGISTROS JSON
# ══════════════════════════════════════════════════════════

class InstallmentMetadata(BaseModel):
    """Instruções manuais de pagamento e observações da mensalidade."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    pix_key: Optional[str] = None
    boleto_code: Optional[str] = None
    boleto_url: Optional[str] = None
    manual_obs: Optional[str] = None

    def has_payment_instructions(self) -> bool:
        return bool(self.pix_key or self.boleto_code or self.boleto_url)


class FinancialResponsible(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    name: Optional[str] = None
    cpf: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    celular: Optional[str] = None
    whatsapp: Optional[str] = None


class EnrollmentDetails(BaseModel):
    """Ficha da matrícula (enrollments.details)."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    parent_name: Optional[str] = None
    parent_cpf: Optional[str] = None
    parent_email: Optional[str] = None
    financial_responsible: Optional[FinancialResponsible] = None
    student_cpf: Optional[str] = None


class GatewayConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: Literal["manual", "asaas"] = "manual"
    environment: Literal["sandbox", "production"] = "sandbox"
    api_key: str = ""
    wallet_id: Optional[str] = None

    @property
    def base_url(self) -> str:
        if self.environment == "production":
            return "https://api.asaas.com/api/v3"
        return "https://sandbox.asaas.com/api/v3"

    @property
    def is_asaas(self) -> bool:
        return self.provider == "asaas"


class WhatsAppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    apikey: Optional[str] = None
    instance: Optional[str] = None
    enabled_channels: Dict[str, bool] = Field(default_factory=dict)

    def is_complete(self) -> bool:
        return bool(self.url and self.apikey and self.instance)


# ══════════════════════════════════════════════════════════
# ENTRADAS: DETALHE DA COBRANÇA
# ══════════════════════════════════════════════════════════

class PaymentInstructionsIn(BaseModel):
    pix_key: Optional[str] = ""
    boleto_code: Optional[str] = ""
    boleto_url: Optional[str] = ""
    publish: bool = False
    confirmed: bool = False


class ConfirmIn(BaseModel):
    confirmed: bool = False


class MarkPaidIn(BaseModel):
    payment_method: Literal["pix", "boleto", "credit_card", "debit_card", "cash", "transfer"] = "pix"
    paid_at: date
    obs: str = ""
    confirmed: bool = False


class NegotiationIn(BaseModel):
    type: Literal["discount", "surcharge"]
    mode: Literal["fixed", "percent"] = "fixed"
    value: Decimal
    notes: str = ""
    confirmed: bool = False


class DateEditIn(BaseModel):
    field: Literal["due_date", "paid_at"]
    value: date


# ══════════════════════════════════════════════════════════
# ENTRADAS: FUNÇÕES / ADMIN
# ══════════════════════════════════════════════════════════

class UpdateValuePayload(BaseModel):
    newValue: Decimal
    discount_value: Decimal = Decimal("0")
    surcharge_value: Decimal = Decimal("0")
    negotiation_notes: Optional[str] = None
    negotiation_type: Optional[Literal["discount", "surcharge"]] = None


class ManagePaymentIn(BaseModel):
    action: Literal["update_value", "cancel"]
    installment_id: str
    payload: Optional[UpdateValuePayload] = None


class BulkActionIn(BaseModel):
    ids: List[str]
    action: Literal["publish", "hide", "mark_paid"]
    confirmed: bool = False


class GatewayConfigIn(BaseModel):
    provider: Literal["manual", "asaas"] = "manual"
    environment: Literal["sandbox", "production"] = "sandbox"
    api_key: Optional[str] = None
    wallet_id: Optional[str] = None


class WhatsAppConfigIn(BaseModel):
    """Atualização parcial: campos ausentes mantêm o valor gravado."""

    url: Optional[str] = None
    apikey: Optional[str] = None
    instance: Optional[str] = None
    enabled_channels: Dict[str, bool] = Field(default_factory=dict)


class WhatsAppTestIn(BaseModel):
    user_id: str
    phone: str
    channel: str = "diary"
    message: Optional[str] = None
