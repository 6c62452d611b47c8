"""
Serviço: Resolução por cadeia de fallback
escola_financeiro/services/resolvers.py

Cada dado (nome/CPF/e-mail do pagador, telefone do destinatário) é
resolvido por uma lista ORDENADA de funções; a primeira que devolver
um valor não vazio vence. A precedência fica explícita na lista.
"""

import re
from typing import Callable, Iterable, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from escola_financeiro.models import Enrollment
from escola_financeiro.schemas import EnrollmentDetails, FinancialResponsible
from escola_financeiro.services.errors import ValidationError

T = TypeVar("T")

Resolver = Callable[[T], Optional[str]]

PLACEHOLDER_EMAIL = "email@exemplo.com"


def resolve_first(resolvers: Iterable[Resolver], source: T) -> Optional[str]:
    for resolver in resolvers:
        value = resolver(source)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def only_digits(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    return digits or None


# ══════════════════════════════════════════════════════════
# PAGADOR (matrícula)
# ══════════════════════════════════════════════════════════

class PayerSource:
    """Dados da matrícula já validados, entrada dos resolvers do pagador."""

    def __init__(self, enrollment: Enrollment):
        self.enrollment = enrollment
        try:
            self.details = EnrollmentDetails.model_validate(enrollment.details or {})
        except PydanticValidationError as e:
            campos = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValidationError(f"Ficha da matrícula inválida: {campos}") from e

    @property
    def responsible(self) -> FinancialResponsible:
        return self.details.financial_responsible or FinancialResponsible()


PAYER_NAME_RESOLVERS = [
    lambda s: s.details.parent_name,
    lambda s: s.responsible.name,
    lambda s: s.enrollment.candidate_name,
]

PAYER_CPF_RESOLVERS = [
    lambda s: s.details.parent_cpf,
    lambda s: s.responsible.cpf,
    lambda s: s.details.student_cpf,
]

PAYER_EMAIL_RESOLVERS = [
    lambda s: s.details.parent_email,
    lambda s: s.responsible.email,
    lambda s: PLACEHOLDER_EMAIL,
]


class Payer:
    def __init__(self, name: Optional[str], cpf: Optional[str], email: str):
        self.name = name
        self.cpf = cpf
        self.email = email


def resolve_payer(enrollment: Enrollment) -> Payer:
    """Nome, CPF (somente dígitos) e e-mail do pagador. cpf=None se não houver."""
    source = PayerSource(enrollment)
    return Payer(
        name=resolve_first(PAYER_NAME_RESOLVERS, source),
        cpf=only_digits(resolve_first(PAYER_CPF_RESOLVERS, source)),
        email=resolve_first(PAYER_EMAIL_RESOLVERS, source),
    )


# ══════════════════════════════════════════════════════════
# TELEFONE
# ══════════════════════════════════════════════════════════

PHONE_KEYS_USER = ("phone", "mobile", "whatsapp", "celular")
PHONE_KEYS_RESPONSIBLE = ("phone", "mobile", "celular", "whatsapp")


def phone_from_mapping(data: Optional[dict], keys: Iterable[str]) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    return resolve_first([lambda d, k=k: d.get(k) for k in keys], data)


def normalize_br_phone(phone: str) -> Optional[str]:
    """Somente dígitos; prefixa 55 quando falta o DDI."""
    digits = only_digits(phone)
    if not digits:
        return None
    if len(digits) <= 11 and not digits.startswith("55"):
        digits = "55" + digits
    return digits
