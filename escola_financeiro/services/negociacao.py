"""
Serviço: Negociação de mensalidades (desconto / acréscimo)
escola_financeiro/services/negociacao.py

Regras:
  - O ajuste é SEMPRE calculado sobre o valor original (original_value,
    ou o valor atual se a mensalidade nunca foi negociada).
  - Uma nova negociação substitui a anterior (não acumula).
  - Só um de desconto/acréscimo fica diferente de zero.

    desconto fixo      → discount = v              final = original - discount
    desconto %         → discount = original*v/100 final = original - discount
    acréscimo fixo     → surcharge = v             final = original + surcharge
    acréscimo %        → surcharge = original*v/100 final = original + surcharge
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from escola_financeiro.models import Installment, NegotiationType
from escola_financeiro.services.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, ROUND_HALF_UP)


@dataclass
class ResultadoNegociacao:
    original_value: Decimal
    discount_value: Decimal
    surcharge_value: Decimal
    final_value: Decimal
    negotiation_type: str
    notes: str = ""


def base_value(inst: Installment) -> Decimal:
    """Valor original capturado na primeira negociação, ou o valor atual."""
    if inst.original_value is not None:
        return to_money(inst.original_value)
    return to_money(inst.value)


def calcular_negociacao(
    original: Decimal,
    tipo: str,
    modo: str,
    valor: Decimal,
    notas: str = "",
) -> ResultadoNegociacao:
    original = to_money(original)
    valor = Decimal(str(valor))

    if valor < 0:
        raise ValidationError("O valor da negociação não pode ser negativo.")
    if modo not in ("fixed", "percent"):
        raise ValidationError(f"Modo de negociação inválido: {modo}")

    ajuste = valor if modo == "fixed" else original * valor / Decimal("100")
    ajuste = to_money(ajuste)

    if tipo == NegotiationType.DISCOUNT.value:
        if modo == "percent" and valor > 100:
            raise ValidationError("Desconto percentual não pode passar de 100%.")
        final = original - ajuste
        if final < 0:
            raise ValidationError("O desconto não pode ser maior que o valor original.")
        return ResultadoNegociacao(original, ajuste, ZERO, final, tipo, notas)

    if tipo == NegotiationType.SURCHARGE.value:
        return ResultadoNegociacao(original, ZERO, ajuste, original + ajuste, tipo, notas)

    raise ValidationError(f"Tipo de negociação inválido: {tipo}")


def aplicar_negociacao(
    inst: Installment,
    final_value: Decimal,
    discount_value: Decimal,
    surcharge_value: Decimal,
    negotiation_type: Optional[str],
    notes: Optional[str],
) -> None:
    """
    Escreve todos os campos da negociação na mensalidade (sem commit).
    original_value só é gravado se ainda não existe.
    """
    if inst.original_value is None:
        inst.original_value = to_money(inst.value)
    inst.value = to_money(final_value)
    inst.discount_value = to_money(discount_value)
    inst.surcharge_value = to_money(surcharge_value)
    inst.negotiation_type = negotiation_type
    inst.negotiation_notes = notes
    inst.negotiation_date = datetime.now(timezone.utc)
