"""
Serviço: Acesso às mensalidades (installments)
escola_financeiro/services/mensalidades.py

Leitura com joins, serialização e helpers de estado compartilhados
pelo detalhe da cobrança, pelas funções do gateway e pelas listagens.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session, joinedload

from escola_financeiro.config import TZ_BRASIL
from escola_financeiro.models import Enrollment, Installment, InstallmentStatus
from escola_financeiro.schemas import InstallmentMetadata
from escola_financeiro.services.errors import NotFoundError


def get_installment(db: Session, installment_id: str, with_student: bool = True) -> Installment:
    query = db.query(Installment)
    if with_student:
        query = query.options(
            joinedload(Installment.enrollment).joinedload(Enrollment.student)
        )
    inst = query.filter(Installment.id == installment_id).first()
    if not inst:
        raise NotFoundError("Cobrança não encontrada.")
    return inst


def reload_installment(db: Session, installment_id: str) -> Installment:
    """Releitura completa após qualquer escrita (nunca patch otimista)."""
    db.expire_all()
    return get_installment(db, installment_id)


def read_metadata(inst: Installment) -> InstallmentMetadata:
    return InstallmentMetadata.model_validate(inst.meta or {})


def today_br() -> date:
    return datetime.now(TZ_BRASIL).date()


def is_overdue(inst: Installment, hoje: Optional[date] = None) -> bool:
    hoje = hoje or today_br()
    return inst.status == InstallmentStatus.PENDING.value and inst.due_date < hoje


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def installment_to_dict(inst: Installment) -> Dict[str, Any]:
    data = {
        "id": inst.id,
        "enrollment_id": inst.enrollment_id,
        "installment_number": inst.installment_number,
        "due_date": _iso(inst.due_date),
        "value": _money(inst.value),
        "original_value": _money(inst.original_value),
        "discount_value": _money(inst.discount_value) or 0.0,
        "surcharge_value": _money(inst.surcharge_value) or 0.0,
        "negotiation_type": inst.negotiation_type,
        "negotiation_notes": inst.negotiation_notes,
        "negotiation_date": _iso(inst.negotiation_date),
        "status": inst.status,
        "is_published": bool(inst.is_published),
        "paid_at": _iso(inst.paid_at),
        "payment_method": inst.payment_method,
        "gateway_integration_id": inst.gateway_integration_id,
        "billing_url": inst.billing_url,
        "metadata": dict(inst.meta or {}),
    }
    enrollment = inst.enrollment
    if enrollment is not None:
        student = enrollment.student
        data["enrollment"] = {
            "id": enrollment.id,
            "candidate_name": enrollment.candidate_name,
            "academic_year": enrollment.academic_year,
            "student": {
                "id": student.id,
                "name": student.name,
            } if student else None,
        }
    return data
