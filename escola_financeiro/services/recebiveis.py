"""
Serviço: Recebíveis e portal do responsável
escola_financeiro/services/recebiveis.py

- Listagem de mensalidades com filtros (status, ano/mês, nome) e totais
- Resumo financeiro (previsto, recebido, atraso, descontos, próximos vencimentos)
- Ações em massa (publicar, ocultar, baixa) restritas a mensalidades pendentes
- Visão do responsável: só mensalidades publicadas, em aberto x histórico
"""

import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from escola_financeiro.models import Enrollment, Installment, InstallmentStatus, PaymentMethod
from escola_financeiro.services.errors import ConfirmationRequired, ValidationError
from escola_financeiro.services.mensalidades import (
    installment_to_dict,
    is_overdue,
    read_metadata,
    today_br,
)

logger = logging.getLogger(__name__)


def _periodo(year: Optional[int], month: Optional[int]):
    if month is not None and year is None:
        raise ValidationError("Filtro de mês exige o ano.")
    if year is None:
        return None, None
    if month is None:
        return date(year, 1, 1), date(year, 12, 31)
    if not 1 <= month <= 12:
        raise ValidationError("Mês inválido.")
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def listar_mensalidades(
    db: Session,
    status: Optional[str] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    search: Optional[str] = None,
) -> dict:
    query = db.query(Installment).options(joinedload(Installment.enrollment).joinedload(Enrollment.student))

    if status:
        query = query.filter(Installment.status == status)

    inicio, fim = _periodo(year, month)
    if inicio:
        query = query.filter(Installment.due_date >= inicio, Installment.due_date <= fim)

    if search:
        termo = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        query = query.join(Installment.enrollment).filter(
            Enrollment.candidate_name.ilike(f"%{termo}%", escape="\\")
        )

    mensalidades = query.order_by(Installment.due_date.asc()).all()

    hoje = today_br()
    totais = {"total": Decimal("0"), "received": Decimal("0"), "overdue": Decimal("0"), "pending": Decimal("0")}
    for inst in mensalidades:
        valor = Decimal(inst.value or 0)
        totais["total"] += valor
        if inst.status == InstallmentStatus.PAID.value:
            totais["received"] += valor
        elif is_overdue(inst, hoje):
            totais["overdue"] += valor
        elif inst.status == InstallmentStatus.PENDING.value:
            totais["pending"] += valor

    return {
        "mensalidades": [installment_to_dict(i) for i in mensalidades],
        "totais": {k: float(v) for k, v in totais.items()},
        "total": len(mensalidades),
    }


JANELA_PROXIMOS_VENCIMENTOS = 7
LIMITE_PROXIMOS_VENCIMENTOS = 5


def _nome_do_aluno(inst: Installment) -> Optional[str]:
    enrollment = inst.enrollment
    if enrollment is None:
        return None
    if enrollment.student is not None:
        return enrollment.student.name
    return enrollment.candidate_name


def resumo_financeiro(db: Session, hoje: Optional[date] = None) -> dict:
    """Indicadores do painel financeiro sobre todas as mensalidades.

    Em atraso: pendentes com vencimento anterior a hoje. Próximos
    vencimentos: pendentes que vencem entre hoje e hoje + 7 dias, as
    cinco mais próximas.
    """
    hoje = hoje or today_br()
    mensalidades = db.query(Installment).options(
        joinedload(Installment.enrollment).joinedload(Enrollment.student)
    ).all()

    totais = {
        "expected_revenue": Decimal("0"),
        "collected_revenue": Decimal("0"),
        "overdue_amount": Decimal("0"),
        "total_discounts": Decimal("0"),
        "total_surcharges": Decimal("0"),
    }
    overdue_count = 0
    limite = hoje + timedelta(days=JANELA_PROXIMOS_VENCIMENTOS)
    proximas = []

    for inst in mensalidades:
        valor = Decimal(inst.value or 0)
        totais["expected_revenue"] += valor
        totais["total_discounts"] += Decimal(inst.discount_value or 0)
        totais["total_surcharges"] += Decimal(inst.surcharge_value or 0)
        if inst.status == InstallmentStatus.PAID.value:
            totais["collected_revenue"] += valor
        elif inst.status == InstallmentStatus.PENDING.value:
            if inst.due_date < hoje:
                totais["overdue_amount"] += valor
                overdue_count += 1
            elif inst.due_date <= limite:
                proximas.append(inst)

    proximas.sort(key=lambda i: i.due_date)
    upcoming = [
        {
            "id": inst.id,
            "installment_number": inst.installment_number,
            "due_date": inst.due_date.isoformat(),
            "value": float(inst.value),
            "student_name": _nome_do_aluno(inst),
        }
        for inst in proximas[:LIMITE_PROXIMOS_VENCIMENTOS]
    ]

    return {
        **{k: float(v) for k, v in totais.items()},
        "overdue_count": overdue_count,
        "upcoming": upcoming,
    }


def acao_em_massa(db: Session, ids: List[str], action: str, confirmed: bool) -> dict:
    if not ids:
        raise ValidationError("Nenhuma mensalidade selecionada.")
    if not confirmed:
        raise ConfirmationRequired(
            title="Ação em Massa",
            message=f"Tem certeza que deseja aplicar esta ação em {len(ids)} itens?",
        )

    mensalidades = db.query(Installment).filter(Installment.id.in_(ids)).all()
    aplicadas, ignoradas = [], []

    agora = datetime.now(timezone.utc)
    for inst in mensalidades:
        if inst.status != InstallmentStatus.PENDING.value:
            ignoradas.append(inst.id)
            continue
        if action == "publish":
            inst.is_published = True
        elif action == "hide":
            inst.is_published = False
        elif action == "mark_paid":
            inst.status = InstallmentStatus.PAID.value
            inst.paid_at = agora
            inst.payment_method = PaymentMethod.BULK_MANUAL.value
        aplicadas.append(inst.id)

    db.commit()

    encontrados = {i.id for i in mensalidades}
    nao_encontradas = [i for i in ids if i not in encontrados]
    logger.info(f"Ação em massa '{action}': {len(aplicadas)} aplicadas, {len(ignoradas)} ignoradas")

    return {
        "mensagem": "Ação em massa concluída com sucesso!",
        "aplicadas": aplicadas,
        "ignoradas": ignoradas,
        "nao_encontradas": nao_encontradas,
    }


# ══════════════════════════════════════════════════════════
# PORTAL DO RESPONSÁVEL
# ══════════════════════════════════════════════════════════

def _portal_item(inst: Installment) -> dict:
    meta = read_metadata(inst)
    return {
        "id": inst.id,
        "installment_number": inst.installment_number,
        "due_date": inst.due_date.isoformat(),
        "value": float(inst.value),
        "status": "overdue" if is_overdue(inst) else inst.status,
        "paid_at": inst.paid_at.isoformat() if inst.paid_at else None,
        "billing_url": inst.billing_url,
        "pix_key": meta.pix_key or None,
        "boleto_code": meta.boleto_code or None,
        "boleto_url": meta.boleto_url or None,
    }


def mensalidades_do_responsavel(db: Session, enrollment_id: str) -> dict:
    publicadas = db.query(Installment).filter(
        Installment.enrollment_id == enrollment_id,
        Installment.is_published == True,  # noqa: E712
    ).all()

    em_aberto = sorted(
        (i for i in publicadas if i.status == InstallmentStatus.PENDING.value),
        key=lambda i: i.due_date,
    )
    historico = sorted(
        (i for i in publicadas if i.status in (InstallmentStatus.PAID.value, InstallmentStatus.CANCELLED.value)),
        key=lambda i: i.due_date,
        reverse=True,
    )
    return {
        "open": [_portal_item(i) for i in em_aberto],
        "history": [_portal_item(i) for i in historico],
    }
